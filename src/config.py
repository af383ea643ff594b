from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    hf_token: str = ""
    model_id: str = "microsoft/Florence-2-base-ft"
    device: str = "cuda"
    model_cache_dir: str = "/app/models"
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000

    max_new_tokens: int = 128
    warmup_image_size: int = 768
    autoload_model: bool = False

    text_generation_url: str = "https://text.pollinations.ai/openai"
    text_generation_model: str = "openai"
    text_generation_timeout: float = 60.0
    suggestion_count: int = 10

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
