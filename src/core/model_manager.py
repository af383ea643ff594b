from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, List, Optional

from src.config import settings
from src.core.progress import EventSink, ProgressTracker
from src.inference.base import BaseInferenceEngine
from src.models.enums import LoadState, Precision
from src.models.model_info import DecodingParams, ModelHandle, ProgressItem
from src.models.protocol import ErrorEvent, LoadingEvent, ReadyEvent
from src.utils.exceptions import LoadFailure, NotReadyError
from src.utils.logger import logger

WARMUP_PROMPT = "a"
WARMUP_PARAMS = DecodingParams(max_new_tokens=1)


class ModelLifecycleManager:
    """Owns the single model instance and its load state machine.

    unloaded -> loading -> ready | failed. `ready` and `failed` are final for
    the life of the process. All blocking engine work, loading and inference
    alike, goes through one worker thread (the inference lane).
    """

    def __init__(
        self,
        engine: BaseInferenceEngine,
        warmup_image_size: Optional[int] = None,
    ):
        self._engine = engine
        self._warmup_image_size = warmup_image_size or settings.warmup_image_size
        self._state = LoadState.UNLOADED
        self._failure_reason: Optional[str] = None
        self._handle: Optional[ModelHandle] = None
        self._load_task: Optional[asyncio.Task] = None
        self._tracker: Optional[ProgressTracker] = None
        self._lane = ThreadPoolExecutor(max_workers=1, thread_name_prefix="inference-lane")

    @property
    def model_id(self) -> str:
        return self._engine.model_id

    @property
    def state(self) -> LoadState:
        return self._state

    @property
    def failure_reason(self) -> Optional[str]:
        return self._failure_reason

    @property
    def handle(self) -> Optional[ModelHandle]:
        return self._handle

    @property
    def progress_items(self) -> List[ProgressItem]:
        if self._tracker is None:
            return []
        return self._tracker.items

    def require_ready(self) -> ModelHandle:
        if self._state != LoadState.READY or self._handle is None:
            raise NotReadyError(self._state.value)
        return self._handle

    async def run_in_lane(self, fn: Callable[..., Any], *args) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._lane, fn, *args)

    async def ensure_loaded(self, progress_sink: EventSink) -> ModelHandle:
        if self._state == LoadState.READY:
            return self._handle

        if self._state == LoadState.FAILED:
            failure = LoadFailure(self._failure_reason)
            progress_sink(ErrorEvent(message=str(failure)))
            raise failure

        if self._state == LoadState.UNLOADED:
            self._state = LoadState.LOADING
            self._load_task = asyncio.create_task(self._load(progress_sink))
        else:
            logger.info("Model load already in progress, waiting for it")

        return await asyncio.shield(self._load_task)

    async def _load(self, emit: EventSink) -> ModelHandle:
        model_id = self._engine.model_id
        logger.info(f"Loading model {model_id}")
        emit(LoadingEvent(message="Loading model..."))
        self._tracker = ProgressTracker(emit)

        try:
            precision = await self.run_in_lane(self._resolve_precision)
            disk_path = await self.run_in_lane(
                self._engine.load_assets, self._tracker.on_progress, precision
            )
            emit(LoadingEvent(message="Compiling and warming up model..."))
            await self.run_in_lane(self._warm_up)
        except Exception as e:
            await self._fail(str(e) or e.__class__.__name__)
            failure = LoadFailure(self._failure_reason)
            emit(ErrorEvent(message=str(failure)))
            raise failure from e

        self._handle = ModelHandle(
            model_id=model_id,
            engine=self._engine,
            precision=precision,
            disk_path=disk_path,
        )
        self._state = LoadState.READY
        logger.info(f"Model {model_id} ready ({precision.value})")
        emit(ReadyEvent())
        return self._handle

    async def _fail(self, reason: str) -> None:
        logger.error(f"Failed to load {self._engine.model_id}: {reason}")
        self._state = LoadState.FAILED
        self._failure_reason = reason
        self._handle = None
        try:
            await self.run_in_lane(self._engine.unload)
        except Exception as e:
            logger.warning(f"Engine cleanup after failed load raised: {e}")

    def _resolve_precision(self) -> Precision:
        try:
            supported = self._engine.probe_capability()
        except Exception as e:
            logger.warning(f"Capability probe failed, assuming no fp16: {e}")
            supported = False
        return Precision.FP16 if supported else Precision.FP32

    def _warm_up(self) -> None:
        # One tiny generate so the first real request doesn't pay for
        # kernel compilation and cache allocation.
        inputs = {
            **self._engine.encode_prompt(WARMUP_PROMPT),
            **self._engine.blank_vision_input(self._warmup_image_size),
        }
        self._engine.generate(inputs, WARMUP_PARAMS)

    def shutdown(self) -> None:
        """Drain the inference lane, then release the engine.

        Blocks until a generate already running on the lane returns, so the
        weights are never freed under it. Call it off the event loop.
        """
        self._lane.shutdown(wait=True, cancel_futures=True)
        if self._engine.is_loaded:
            self._engine.unload()
        logger.info("Model lifecycle manager shut down")
