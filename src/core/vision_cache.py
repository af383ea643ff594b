import threading
from typing import Any, Callable, Dict, Optional, Tuple

from src.models.model_info import CachedVisionInput
from src.utils.logger import logger

PreprocessFn = Callable[[str], Tuple[Dict[str, Any], Tuple[int, int]]]


class VisionCache:
    """Holds the preprocessed inputs of the most recently used image.

    Only one image is cached at a time and it is matched by reference, not by
    pixel content. `invalidate` may be called from any thread while a
    computation is running; a result computed across an invalidation is
    returned to its caller but never stored.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._entry: Optional[CachedVisionInput] = None
        self._generation = 0

    @property
    def cached_ref(self) -> Optional[str]:
        entry = self._entry
        return entry.image_ref if entry else None

    def get_or_compute(
        self, image_ref: str, preprocess_fn: PreprocessFn
    ) -> CachedVisionInput:
        with self._lock:
            entry = self._entry
            generation = self._generation
        if entry is not None and entry.image_ref == image_ref:
            logger.debug(f"Vision cache hit for {image_ref[:64]}")
            return entry

        logger.debug(f"Vision cache miss for {image_ref[:64]}")
        inputs, image_size = preprocess_fn(image_ref)
        computed = CachedVisionInput(
            image_ref=image_ref, inputs=inputs, image_size=image_size
        )

        with self._lock:
            if self._generation == generation:
                self._entry = computed
        return computed

    def invalidate(self) -> None:
        with self._lock:
            self._entry = None
            self._generation += 1
        logger.debug("Vision cache invalidated")
