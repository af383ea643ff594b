from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from src.core.download_manager import DownloadManager
from src.utils.exceptions import DownloadError


@pytest.fixture
def download_manager(tmp_path):
    with patch("src.core.download_manager.settings") as mock_settings:
        mock_settings.model_cache_dir = str(tmp_path)
        mock_settings.hf_token = ""
        manager = DownloadManager()
    return manager


def _repo(*files):
    info = SimpleNamespace(
        siblings=[SimpleNamespace(rfilename=name, size=size) for name, size in files]
    )
    api = MagicMock()
    api.return_value.model_info.return_value = info
    return api


def _fake_download(local_content=b"x", chunk_size=None):
    def download(repo_id, filename, local_dir, token, tqdm_class=None):
        target = Path(local_dir) / filename
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(local_content)
        if chunk_size and tqdm_class is not None:
            with tqdm_class(total=len(local_content), initial=0, disable=True) as bar:
                for start in range(0, len(local_content), chunk_size):
                    bar.update(len(local_content[start:start + chunk_size]))
        return str(target)

    return MagicMock(side_effect=download)


def test_is_cached_false(download_manager):
    assert download_manager.is_cached("nonexistent/model") is False


def test_get_disk_path_exists(download_manager):
    path = download_manager._model_disk_path("test/model")
    path.mkdir(parents=True)
    (path / "config.json").write_text("{}")
    assert download_manager.get_disk_path("test/model") == str(path)


def test_model_disk_path_format(download_manager):
    path = download_manager._model_disk_path("org/model-name")
    assert "org--model-name" in str(path)


def test_download_reports_each_file_in_order(download_manager):
    events = []
    api = _repo(("config.json", 1), ("model.safetensors", 1))
    fetch = _fake_download()

    with patch("src.core.download_manager.HfApi", api), \
         patch("src.core.download_manager.hf_hub_download", fetch), \
         patch("src.core.download_manager.settings") as mock_settings:
        mock_settings.hf_token = ""
        path = download_manager.download("org/model", events.append)

    assert path == str(download_manager._model_disk_path("org/model"))
    assert [(e["status"], e["file"]) for e in events] == [
        ("initiate", "config.json"),
        ("progress", "config.json"),
        ("done", "config.json"),
        ("initiate", "model.safetensors"),
        ("progress", "model.safetensors"),
        ("done", "model.safetensors"),
    ]
    assert events[1]["loaded"] == events[1]["total"] == 1
    assert fetch.call_count == 2


def test_download_skips_files_already_on_disk(download_manager):
    local = download_manager._model_disk_path("org/model")
    local.mkdir(parents=True)
    (local / "config.json").write_bytes(b"{}")
    fetch = _fake_download()

    with patch("src.core.download_manager.HfApi", _repo(("config.json", 2))), \
         patch("src.core.download_manager.hf_hub_download", fetch):
        download_manager.download("org/model")

    fetch.assert_not_called()


def test_ignored_files_are_not_listed(download_manager):
    api = _repo(("config.json", 1), ("onnx/model.onnx", 1), ("README.md", 1))
    with patch("src.core.download_manager.HfApi", api):
        files = download_manager.list_repo_files("org/model")
    assert files == [("config.json", 1)]


def test_listing_failure_falls_back_to_disk_cache(download_manager):
    local = download_manager._model_disk_path("org/model")
    local.mkdir(parents=True)
    (local / "config.json").write_text("{}")
    api = MagicMock()
    api.return_value.model_info.side_effect = OSError("offline")

    with patch("src.core.download_manager.HfApi", api):
        assert download_manager.download("org/model") == str(local)


def test_listing_failure_without_cache_raises(download_manager):
    api = MagicMock()
    api.return_value.model_info.side_effect = OSError("offline")

    with patch("src.core.download_manager.HfApi", api):
        with pytest.raises(DownloadError, match="offline"):
            download_manager.download("org/model")


def test_file_failure_raises_download_error(download_manager):
    fetch = MagicMock(side_effect=OSError("connection reset"))
    with patch("src.core.download_manager.HfApi", _repo(("model.safetensors", 10))), \
         patch("src.core.download_manager.hf_hub_download", fetch):
        with pytest.raises(DownloadError, match="model.safetensors: connection reset"):
            download_manager.download("org/model")


def test_download_streams_byte_progress(download_manager):
    events = []
    fetch = _fake_download(local_content=b"x" * 10, chunk_size=4)

    with patch("src.core.download_manager.HfApi", _repo(("model.safetensors", 10))), \
         patch("src.core.download_manager.hf_hub_download", fetch):
        download_manager.download("org/model", events.append)

    progress = [(e["loaded"], e["total"]) for e in events if e["status"] == "progress"]
    assert progress == [(4, 10), (8, 10), (10, 10), (10, 10)]
    assert events[0]["status"] == "initiate"
    assert events[-1]["status"] == "done"
