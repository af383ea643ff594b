from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

from src.models.enums import Precision

if TYPE_CHECKING:
    from src.inference.base import BaseInferenceEngine


@dataclass
class ModelHandle:
    model_id: str
    engine: BaseInferenceEngine
    precision: Precision
    disk_path: Optional[str] = None
    loaded_at: float = field(default_factory=time.time)


@dataclass
class ProgressItem:
    file_id: str
    loaded: int = 0
    total: Optional[int] = None

    @property
    def percentage(self) -> float:
        if not self.total:
            return 0.0
        return min(100.0, self.loaded / self.total * 100)


@dataclass
class CachedVisionInput:
    image_ref: str
    inputs: Dict[str, Any]
    image_size: Tuple[int, int]


@dataclass(frozen=True)
class InferenceRequest:
    task: str
    image_ref: str
    language_hint: Optional[str] = None
    conversation_history: Tuple[str, ...] = ()


@dataclass
class InferenceResult:
    task: str
    output: Any
    elapsed_millis: float


@dataclass(frozen=True)
class DecodingParams:
    max_new_tokens: int = 128
    num_beams: int = 1
    do_sample: bool = False

    def as_kwargs(self) -> Dict[str, Any]:
        return {
            "max_new_tokens": self.max_new_tokens,
            "num_beams": self.num_beams,
            "do_sample": self.do_sample,
        }
