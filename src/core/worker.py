from __future__ import annotations

import asyncio
from typing import Optional, Set

from src.core.dispatcher import InferenceDispatcher
from src.core.message_bus import MessageBus
from src.core.model_manager import ModelLifecycleManager
from src.core.vision_cache import VisionCache
from src.models.protocol import LoadCommand, ResetCommand, RunCommand, parse_command
from src.utils.exceptions import LoadFailure, ProtocolError
from src.utils.logger import logger


class InferenceWorker:
    """Background command loop in front of the model.

    Every command read from the bus is handled in its own task, so a `reset`
    is applied while a `run` is still generating. Load and run serialize
    themselves through the manager and the dispatcher.
    """

    def __init__(
        self,
        bus: MessageBus,
        manager: ModelLifecycleManager,
        dispatcher: InferenceDispatcher,
        cache: VisionCache,
    ):
        self.bus = bus
        self.manager = manager
        self.dispatcher = dispatcher
        self.cache = cache
        self._serve_task: Optional[asyncio.Task] = None
        self._handlers: Set[asyncio.Task] = set()

    @property
    def is_running(self) -> bool:
        return self._serve_task is not None and not self._serve_task.done()

    async def start(self) -> None:
        if self.is_running:
            return
        self.bus.bind(asyncio.get_running_loop())
        self._serve_task = asyncio.create_task(self._serve())
        logger.info("Inference worker started")

    async def stop(self) -> None:
        tasks = list(self._handlers)
        if self._serve_task is not None:
            tasks.append(self._serve_task)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._serve_task = None
        self._handlers.clear()
        logger.info("Inference worker stopped")

    async def _serve(self) -> None:
        while True:
            message = await self.bus.receive()
            try:
                command = parse_command(message)
            except ProtocolError as e:
                logger.warning(f"Ignoring command: {e}")
                continue
            task = asyncio.create_task(self.handle(command))
            self._handlers.add(task)
            task.add_done_callback(self._handlers.discard)

    async def handle(self, command) -> None:
        if isinstance(command, LoadCommand):
            try:
                await self.manager.ensure_loaded(self.bus.publish)
            except LoadFailure as e:
                # already reported on the bus by the manager
                logger.debug(f"load finished with failure: {e}")
        elif isinstance(command, RunCommand):
            await self.dispatcher.run(command.to_request(), self.bus.publish)
        elif isinstance(command, ResetCommand):
            self.cache.invalidate()
