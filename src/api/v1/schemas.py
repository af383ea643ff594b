from typing import List, Optional

from pydantic import BaseModel, Field


class ProgressItemSchema(BaseModel):
    file_id: str = Field(..., description="Model file being fetched")
    loaded: int = Field(0, description="Bytes fetched so far")
    total: Optional[int] = Field(None, description="Expected size in bytes, if known")
    percentage: float = Field(0.0, description="Share of the file fetched, 0 to 100")


class WorkerStatusResponse(BaseModel):
    model_id: str = Field(..., description="HuggingFace id of the captioning model")
    load_state: str = Field(..., description="unloaded, loading, ready or failed")
    failure_reason: Optional[str] = Field(None, description="Why the model failed to load")
    busy: bool = Field(..., description="Whether an inference is currently running")
    image_cached: bool = Field(..., description="Whether preprocessed image inputs are cached")
    progress: List[ProgressItemSchema] = Field(
        default_factory=list, description="Files still being fetched during load"
    )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "model_id": "microsoft/Florence-2-base-ft",
                    "load_state": "loading",
                    "failure_reason": None,
                    "busy": False,
                    "image_cached": False,
                    "progress": [
                        {
                            "file_id": "pytorch_model.bin",
                            "loaded": 104857600,
                            "total": 463221266,
                            "percentage": 22.64,
                        }
                    ],
                }
            ]
        }
    }


class SuggestRequest(BaseModel):
    caption: str = Field(
        ...,
        min_length=1,
        description="Caption produced by the vision model for the pet photo",
        json_schema_extra={"examples": ["A fluffy orange cat sleeping on a blue couch."]},
    )
    language: str = Field(
        default="English",
        min_length=1,
        description="Language the names should be suggested in",
    )
    seed: Optional[int] = Field(
        default=None,
        description="Seed forwarded to the text generator; change it to get new names",
    )


class SuggestResponse(BaseModel):
    language: str = Field(..., description="Language of the suggestions")
    suggestions: str = Field(..., description="Markdown numbered list of names with explanations")


class ErrorResponse(BaseModel):
    detail: str = Field(..., description="Error description")

    model_config = {
        "json_schema_extra": {
            "examples": [{"detail": "Name suggestion failed: 503 Service Unavailable"}]
        }
    }
