from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from src.core.message_bus import MessageBus
from src.models.enums import WorkerStatus
from src.models.model_info import ProgressItem
from src.models.protocol import (
    CompleteEvent,
    DoneEvent,
    ErrorEvent,
    InitiateEvent,
    LoadCommand,
    LoadingEvent,
    ProgressEvent,
    ReadyEvent,
    ResetCommand,
    RunCommand,
    WorkerEvent,
    parse_event,
)
from src.utils.exceptions import ProtocolError
from src.utils.logger import logger


class WorkerClient:
    """Caller-side view of the worker, driven only by bus events.

    Tracks the status the UI shows (idle, loading, ready, running, error) and
    the per-file download progress.
    """

    def __init__(self, bus: MessageBus):
        self._bus = bus
        self._events: asyncio.Queue = bus.subscribe()
        self.status = WorkerStatus.IDLE
        self.loading_message: Optional[str] = None
        self.progress_items: Dict[str, ProgressItem] = {}
        self.last_result: Any = None
        self.last_elapsed_millis: Optional[float] = None
        self.last_error: Optional[str] = None
        # Events carry no request id, so errors are matched to what is outstanding
        self._runs_pending = 0
        self._load_pending = False

    def load(self) -> None:
        if self.status != WorkerStatus.READY:
            self._load_pending = True
        self._bus.send(LoadCommand().to_message())

    def run(
        self,
        task: str,
        image_ref: str,
        language_hint: Optional[str] = None,
        conversation_history: Sequence[str] = (),
    ) -> None:
        command = RunCommand(
            task=task,
            image_ref=image_ref,
            language_hint=language_hint,
            conversation_history=list(conversation_history),
        )
        if self.status == WorkerStatus.READY:
            self.status = WorkerStatus.RUNNING
        self._runs_pending += 1
        self._bus.send(command.to_message())

    def reset(self) -> None:
        self._bus.send(ResetCommand().to_message())

    def close(self) -> None:
        self._bus.unsubscribe(self._events)

    async def next_event(self, timeout: Optional[float] = None) -> WorkerEvent:
        """Wait for the next recognised event, skipping unknown ones."""
        while True:
            raw = await asyncio.wait_for(self._events.get(), timeout)
            try:
                event = parse_event(raw)
            except ProtocolError as e:
                logger.warning(f"Dropping malformed event: {e}")
                continue
            if event is None:
                continue
            self.apply(event)
            return event

    async def events(self) -> AsyncIterator[WorkerEvent]:
        while True:
            yield await self.next_event()

    async def wait_for(self, *names: str, timeout: Optional[float] = None) -> WorkerEvent:
        while True:
            event = await self.next_event(timeout)
            if event.event in names:
                return event

    def apply(self, event: WorkerEvent) -> None:
        if isinstance(event, LoadingEvent):
            self.status = WorkerStatus.LOADING
            self.loading_message = event.message
        elif isinstance(event, InitiateEvent):
            self.progress_items[event.file_id] = ProgressItem(
                file_id=event.file_id, total=event.total
            )
        elif isinstance(event, ProgressEvent):
            item = self.progress_items.setdefault(
                event.file_id, ProgressItem(file_id=event.file_id)
            )
            item.loaded = event.loaded
            item.total = event.total
        elif isinstance(event, DoneEvent):
            self.progress_items.pop(event.file_id, None)
        elif isinstance(event, ReadyEvent):
            self._load_pending = False
            self.status = WorkerStatus.READY
            self.loading_message = None
        elif isinstance(event, CompleteEvent):
            self._runs_pending = max(0, self._runs_pending - 1)
            if not self._runs_pending:
                self.status = WorkerStatus.READY
            self.last_result = event.result
            self.last_elapsed_millis = event.elapsed_millis
        elif isinstance(event, ErrorEvent):
            self.last_error = event.message
            self._apply_error()

    def _apply_error(self) -> None:
        # Runs are answered as soon as they are rejected, so an error while a
        # run is outstanding belongs to that run; only a load error is terminal.
        if self._runs_pending:
            self._runs_pending -= 1
            if self.status == WorkerStatus.RUNNING and not self._runs_pending:
                self.status = WorkerStatus.READY
        elif self._load_pending or self.status == WorkerStatus.LOADING:
            self._load_pending = False
            self.status = WorkerStatus.ERROR

    @property
    def progress(self) -> List[ProgressItem]:
        return list(self.progress_items.values())
