from __future__ import annotations

import asyncio
from typing import Any, List, Optional

from src.utils.logger import logger


class MessageBus:
    """Asynchronous transport between callers and the inference worker.

    Commands go into a single inbox read by the worker. Events are fanned out
    to every subscriber queue. `publish` and `send` are safe to call from any
    thread once the bus is bound to the worker's event loop; deliveries keep
    the order in which they were made.
    """

    def __init__(self):
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._subscribers: List[asyncio.Queue] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    @property
    def is_bound(self) -> bool:
        return self._loop is not None

    def _schedule(self, callback, *args) -> None:
        if self._loop is None:
            raise RuntimeError("MessageBus is not bound to an event loop")
        self._loop.call_soon_threadsafe(callback, *args)

    # caller -> worker

    def send(self, command: Any) -> None:
        self._schedule(self._inbox.put_nowait, command)

    async def receive(self) -> Any:
        return await self._inbox.get()

    # worker -> caller

    def publish(self, event: Any) -> None:
        self._schedule(self._deliver, event)

    def _deliver(self, event: Any) -> None:
        name = getattr(event, "event", None)
        if name != "progress":
            logger.debug(f"Event: {name or event}")
        for queue in list(self._subscribers):
            queue.put_nowait(event)

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
