import threading
from typing import Any, Callable, Dict, List

from src.models.model_info import ProgressItem
from src.models.protocol import DoneEvent, InitiateEvent, ProgressEvent
from src.utils.logger import logger

EventSink = Callable[[Any], None]


class ProgressTracker:
    """Turns raw per-file download callbacks into ordered protocol events.

    Each file gets exactly one `initiate` (on first sighting), progress that
    never goes backwards, and one `done`, after which it is forgotten.
    """

    def __init__(self, sink: EventSink):
        self._sink = sink
        self._lock = threading.Lock()
        self._items: Dict[str, ProgressItem] = {}
        self._finished: set = set()

    @property
    def items(self) -> List[ProgressItem]:
        with self._lock:
            return [
                ProgressItem(file_id=i.file_id, loaded=i.loaded, total=i.total)
                for i in self._items.values()
            ]

    def _start(self, file_id: str, total) -> ProgressItem:
        item = ProgressItem(file_id=file_id, total=total)
        self._items[file_id] = item
        self._sink(InitiateEvent(file_id=file_id, total=total))
        return item

    def on_progress(self, info: Dict[str, Any]) -> None:
        status = info.get("status")
        file_id = info.get("file")
        if not file_id or status not in ("initiate", "progress", "done"):
            return

        with self._lock:
            if file_id in self._finished:
                logger.debug(f"Ignoring {status} for finished file {file_id}")
                return
            item = self._items.get(file_id)
            if item is None:
                item = self._start(file_id, info.get("total"))
            if status == "progress":
                item.loaded = max(item.loaded, int(info.get("loaded") or 0))
                if info.get("total") is not None:
                    item.total = info["total"]
                self._sink(ProgressEvent(file_id=file_id, loaded=item.loaded, total=item.total))
            elif status == "done":
                del self._items[file_id]
                self._finished.add(file_id)
                self._sink(DoneEvent(file_id=file_id))
