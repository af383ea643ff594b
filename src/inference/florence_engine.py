from typing import Any, Dict, Optional, Tuple

import torch

from src.core.download_manager import DownloadManager
from src.inference.base import BaseInferenceEngine, ProgressCallback
from src.inference.tasks import TASK_OUTPUT_SHAPES, split_task_token
from src.models.enums import Precision
from src.models.model_info import DecodingParams
from src.utils.gpu_utils import clear_gpu_cache, supports_half_precision
from src.utils.image_loader import load_image
from src.utils.logger import logger

_SPECIAL_TOKENS = ("</s>", "<s>", "<pad>")


class Florence2Engine(BaseInferenceEngine):
    def __init__(self, model_id: str, download_manager: Optional[DownloadManager] = None):
        super().__init__(model_id)
        self._download_manager = download_manager or DownloadManager()
        self._model = None
        self._processor = None
        self._dtype = torch.float32

    def probe_capability(self) -> bool:
        return supports_half_precision(self.device)

    def load_assets(
        self, progress_callback: ProgressCallback, precision: Precision
    ) -> Optional[str]:
        from transformers import AutoModelForCausalLM, AutoProcessor

        model_path = self._download_manager.download(self.model_id, progress_callback)

        logger.info(f"Loading Florence-2: {self.model_id} ({precision.value}) from {model_path}")
        self._dtype = torch.float16 if precision == Precision.FP16 else torch.float32
        self._processor = AutoProcessor.from_pretrained(
            model_path, trust_remote_code=True
        )
        self._model = AutoModelForCausalLM.from_pretrained(
            model_path,
            torch_dtype=self._dtype,
            trust_remote_code=True,
        ).to(self.device)
        self._model.eval()
        self._loaded = True
        logger.info(f"Florence-2 loaded: {self.model_id}")
        return model_path

    def construct_prompt(self, text: str) -> str:
        """Rewrite a leading Florence task token into its natural-language prompt.

        Fixed-prompt tasks (``<CAPTION>``, ``<MORE_DETAILED_CAPTION>``, ...) only
        accept the bare token, so any conditioning text after it (history, the
        ``Language:`` line) is appended to the expanded prompt. Tasks that take
        an input get the trailing text substituted for ``{input}``. Anything
        else is passed through unchanged.
        """
        task, rest = split_task_token(text)
        fixed = getattr(self._processor, "task_prompts_without_inputs", None) or {}
        with_input = getattr(self._processor, "task_prompts_with_input", None) or {}

        if task in fixed:
            return self._processor._construct_prompts([task])[0] + rest
        if task in with_input:
            return self._processor._construct_prompts([text])[0]
        return text

    def encode_prompt(self, text: str) -> Dict[str, Any]:
        prompt = self.construct_prompt(text)
        encoded = self._processor.tokenizer([prompt], return_tensors="pt")
        return {"input_ids": encoded["input_ids"].to(self.device)}

    def blank_vision_input(self, size: int) -> Dict[str, Any]:
        pixel_values = torch.zeros(
            (1, 3, size, size), dtype=self._dtype, device=self.device
        )
        return {"pixel_values": pixel_values}

    def preprocess_image(self, image_ref: str) -> Tuple[Dict[str, Any], Tuple[int, int]]:
        image, image_size = load_image(image_ref)
        processed = self._processor.image_processor(image, return_tensors="pt")
        pixel_values = processed["pixel_values"].to(self.device, self._dtype)
        return {"pixel_values": pixel_values}, image_size

    def generate(self, inputs: Dict[str, Any], params: DecodingParams) -> Any:
        with torch.no_grad():
            return self._model.generate(
                input_ids=inputs["input_ids"],
                pixel_values=inputs["pixel_values"],
                **params.as_kwargs(),
            )

    def decode(self, generated: Any) -> str:
        return self._processor.batch_decode(generated, skip_special_tokens=False)[0]

    def post_process(self, raw_output: str, task: str, image_size: Tuple[int, int]) -> Any:
        if task in TASK_OUTPUT_SHAPES:
            return self._processor.post_process_generation(
                raw_output, task=task, image_size=image_size
            )
        text = raw_output
        for token in _SPECIAL_TOKENS:
            text = text.replace(token, "")
        return {task: text.strip()}

    def unload(self) -> None:
        del self._model
        del self._processor
        self._model = None
        self._processor = None
        self._loaded = False
        clear_gpu_cache()
        logger.info(f"Florence-2 unloaded: {self.model_id}")
