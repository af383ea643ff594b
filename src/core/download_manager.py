from __future__ import annotations

import fnmatch
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from huggingface_hub import HfApi, hf_hub_download
from huggingface_hub.utils import tqdm as hf_tqdm

from src.config import settings
from src.utils.exceptions import DownloadError
from src.utils.logger import logger

ProgressCallback = Callable[[Dict[str, Any]], None]

DEFAULT_IGNORE_PATTERNS = ("*.onnx", "onnx/*", "*.msgpack", "*.h5", "*.ot", "*.md")


def byte_progress_class(filename: str, total: Optional[int], emit: ProgressCallback):
    """tqdm class for one file download that forwards every chunk as a progress dict."""

    class _FileProgress(hf_tqdm):
        def __init__(self, *args, **kwargs):
            self.bytes_loaded = kwargs.get("initial") or 0
            super().__init__(*args, **kwargs)

        def update(self, n=1):
            # disabled bars skip counting, so bytes are tracked here
            self.bytes_loaded += n or 0
            emit({
                "status": "progress",
                "file": filename,
                "loaded": self.bytes_loaded,
                "total": total,
            })
            return super().update(n)

    return _FileProgress


class DownloadManager:
    """Fetches model repositories file by file, reporting byte progress per file.

    Progress is reported through plain dicts shaped like
    ``{"status": "initiate" | "progress" | "done", "file": ..., "loaded": ...,
    "total": ...}``.
    """

    def __init__(self, ignore_patterns: Sequence[str] = DEFAULT_IGNORE_PATTERNS):
        self._cache_dir = Path(settings.model_cache_dir)
        self._cache_dir.mkdir(parents=True, exist_ok=True)
        self._ignore_patterns = tuple(ignore_patterns)

    def _model_disk_path(self, model_id: str) -> Path:
        safe_name = model_id.replace("/", "--")
        return self._cache_dir / safe_name

    def is_cached(self, model_id: str) -> bool:
        path = self._model_disk_path(model_id)
        return path.exists() and any(path.iterdir())

    def get_disk_path(self, model_id: str) -> Optional[str]:
        path = self._model_disk_path(model_id)
        if path.exists() and any(path.iterdir()):
            return str(path)
        return None

    def _is_ignored(self, filename: str) -> bool:
        return any(fnmatch.fnmatch(filename, p) for p in self._ignore_patterns)

    def list_repo_files(self, model_id: str) -> List[Tuple[str, Optional[int]]]:
        token = settings.hf_token or None
        info = HfApi().model_info(model_id, files_metadata=True, token=token)
        return [
            (sibling.rfilename, sibling.size)
            for sibling in info.siblings or []
            if not self._is_ignored(sibling.rfilename)
        ]

    def download(
        self, model_id: str, progress_callback: Optional[ProgressCallback] = None
    ) -> str:
        """Blocking download of every model file into the local cache dir."""
        emit = progress_callback or (lambda _: None)
        local_dir = self._model_disk_path(model_id)

        try:
            files = self.list_repo_files(model_id)
        except Exception as e:
            if self.is_cached(model_id):
                logger.warning(
                    f"Could not list {model_id} ({e}); using disk cache at {local_dir}"
                )
                return str(local_dir)
            raise DownloadError(model_id, str(e))

        token = settings.hf_token or None
        logger.info(f"Fetching {len(files)} files for {model_id}")
        for filename, size in files:
            emit({"status": "initiate", "file": filename, "total": size})
            target = local_dir / filename
            if target.exists() and (size is None or target.stat().st_size == size):
                logger.debug(f"{model_id}/{filename} already on disk")
            else:
                try:
                    hf_hub_download(
                        repo_id=model_id,
                        filename=filename,
                        local_dir=str(local_dir),
                        token=token,
                        tqdm_class=byte_progress_class(filename, size, emit),
                    )
                except Exception as e:
                    raise DownloadError(model_id, f"{filename}: {e}")
            loaded = target.stat().st_size if target.exists() else (size or 0)
            emit({
                "status": "progress",
                "file": filename,
                "loaded": loaded,
                "total": size if size is not None else loaded,
            })
            emit({"status": "done", "file": filename})

        logger.info(f"Download complete: {model_id}")
        return str(local_dir)
