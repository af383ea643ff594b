import torch

from src.utils.logger import logger

# fp16 matmuls are only worth it from Volta onwards
_MIN_FP16_CAPABILITY = (7, 0)


def initialize_gpu() -> str:
    if torch.cuda.is_available():
        device_name = torch.cuda.get_device_name(0)
        total_mem = torch.cuda.get_device_properties(0).total_memory / (1024 ** 3)
        logger.info(f"GPU detected: {device_name} ({total_mem:.1f} GB)")
        return "cuda"
    if torch.backends.mps.is_available():
        logger.info("Apple MPS device detected")
        return "mps"
    logger.warning("No GPU available, falling back to CPU")
    return "cpu"


def supports_half_precision(device: str) -> bool:
    if device == "cuda":
        if not torch.cuda.is_available():
            return False
        return torch.cuda.get_device_capability(0) >= _MIN_FP16_CAPABILITY
    if device == "mps":
        return torch.backends.mps.is_available()
    return False


def get_vram_usage_gb() -> float:
    if not torch.cuda.is_available():
        return 0.0
    return torch.cuda.memory_allocated(0) / (1024 ** 3)


def get_vram_total_gb() -> float:
    if not torch.cuda.is_available():
        return 0.0
    return torch.cuda.get_device_properties(0).total_memory / (1024 ** 3)


def get_vram_percent() -> float:
    total = get_vram_total_gb()
    if total == 0:
        return 0.0
    return get_vram_usage_gb() / total * 100


def clear_gpu_cache():
    if torch.cuda.is_available():
        torch.cuda.empty_cache()
        torch.cuda.synchronize()
        logger.info("GPU cache cleared")
