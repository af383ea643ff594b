from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple

from src.config import settings
from src.models.enums import Precision
from src.models.model_info import DecodingParams

ProgressCallback = Callable[[Dict[str, Any]], None]


class BaseInferenceEngine(ABC):
    """Black-box vision-language engine driven by the lifecycle manager.

    Every method may block; callers run them on the inference lane.
    """

    def __init__(self, model_id: str):
        self.model_id = model_id
        self.device = settings.device
        self._loaded = False

    @abstractmethod
    def probe_capability(self) -> bool:
        """Whether the device supports reduced-precision compute."""

    @abstractmethod
    def load_assets(
        self, progress_callback: ProgressCallback, precision: Precision
    ) -> Optional[str]:
        pass

    @abstractmethod
    def encode_prompt(self, text: str) -> Dict[str, Any]:
        pass

    @abstractmethod
    def blank_vision_input(self, size: int) -> Dict[str, Any]:
        pass

    @abstractmethod
    def preprocess_image(self, image_ref: str) -> Tuple[Dict[str, Any], Tuple[int, int]]:
        pass

    @abstractmethod
    def generate(self, inputs: Dict[str, Any], params: DecodingParams) -> Any:
        pass

    @abstractmethod
    def decode(self, generated: Any) -> str:
        pass

    @abstractmethod
    def post_process(self, raw_output: str, task: str, image_size: Tuple[int, int]) -> Any:
        pass

    @abstractmethod
    def unload(self) -> None:
        pass

    @property
    def is_loaded(self) -> bool:
        return self._loaded
