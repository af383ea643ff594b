from __future__ import annotations

import time
from typing import Optional

from src.config import settings
from src.core.model_manager import ModelLifecycleManager
from src.core.progress import EventSink
from src.core.prompt_builder import build_prompt
from src.core.vision_cache import VisionCache
from src.inference.base import BaseInferenceEngine
from src.inference.tasks import output_shape
from src.models.model_info import DecodingParams, InferenceRequest, InferenceResult
from src.models.protocol import CompleteEvent, ErrorEvent
from src.utils.exceptions import (
    BusyError,
    InferenceFailure,
    NotReadyError,
)
from src.utils.logger import logger


class InferenceDispatcher:
    """Runs caption requests against the shared model, one at a time.

    A request that arrives while another is executing is rejected with
    `BusyError` rather than queued.
    """

    def __init__(
        self,
        manager: ModelLifecycleManager,
        cache: VisionCache,
        params: Optional[DecodingParams] = None,
    ):
        self._manager = manager
        self._cache = cache
        self._params = params or DecodingParams(max_new_tokens=settings.max_new_tokens)
        self._in_flight = False

    @property
    def is_busy(self) -> bool:
        return self._in_flight

    async def submit(self, request: InferenceRequest) -> InferenceResult:
        handle = self._manager.require_ready()
        if self._in_flight:
            raise BusyError()

        self._in_flight = True
        try:
            return await self._manager.run_in_lane(self._execute, handle.engine, request)
        finally:
            self._in_flight = False

    async def run(self, request: InferenceRequest, sink: EventSink) -> Optional[InferenceResult]:
        try:
            result = await self.submit(request)
        except (NotReadyError, BusyError, InferenceFailure) as e:
            logger.warning(f"Run rejected or failed: {e}")
            sink(ErrorEvent(message=str(e)))
            return None
        sink(CompleteEvent(result=result.output, elapsed_millis=result.elapsed_millis))
        return result

    def _execute(self, engine: BaseInferenceEngine, request: InferenceRequest) -> InferenceResult:
        start = time.perf_counter()
        try:
            vision = self._cache.get_or_compute(request.image_ref, engine.preprocess_image)
            prompt = build_prompt(
                request.task, request.conversation_history, request.language_hint
            )
            inputs = {**engine.encode_prompt(prompt), **vision.inputs}
            generated = engine.generate(inputs, self._params)
            raw_output = engine.decode(generated)
            elapsed_millis = (time.perf_counter() - start) * 1000
            output = engine.post_process(raw_output, request.task, vision.image_size)
        except Exception as e:
            raise InferenceFailure(request.task, str(e) or e.__class__.__name__) from e

        logger.info(
            f"{request.task} ({output_shape(request.task)}) finished in {elapsed_millis:.0f}ms"
        )
        return InferenceResult(
            task=request.task, output=output, elapsed_millis=elapsed_millis
        )
