"""
Shared pytest fixtures: an in-memory engine plus wired-up worker components.
"""
import threading
from typing import Dict, Optional

import pytest

from src.core.dispatcher import InferenceDispatcher
from src.core.message_bus import MessageBus
from src.core.model_manager import ModelLifecycleManager
from src.core.vision_cache import VisionCache
from src.core.worker import InferenceWorker
from src.inference.base import BaseInferenceEngine

WARMUP_SIZE = 8


class FakeEngine(BaseInferenceEngine):
    """Engine double that records every call and never touches torch."""

    def __init__(self, files: Optional[Dict[str, int]] = None):
        super().__init__("test/florence-2")
        self.files = files if files is not None else {"config.json": 1000, "model.safetensors": 4000}
        self.probe_result = True
        self.probe_error: Optional[Exception] = None
        self.load_error: Optional[Exception] = None
        self.warmup_error: Optional[Exception] = None
        self.generate_error: Optional[Exception] = None

        self.load_calls = 0
        self.precision = None
        self.unloaded = False
        self.unload_thread: Optional[str] = None
        self.preprocess_calls = []
        self.warmup_calls = []
        self.generate_calls = []

        # set a gate to hold asset loading or real generate calls until the test releases them
        self.load_gate: Optional[threading.Event] = None
        self.gate: Optional[threading.Event] = None
        self.generating = threading.Event()

    def probe_capability(self) -> bool:
        if self.probe_error:
            raise self.probe_error
        return self.probe_result

    def load_assets(self, progress_callback, precision):
        self.load_calls += 1
        self.precision = precision
        for name, size in self.files.items():
            progress_callback({"status": "initiate", "file": name, "total": size})
            progress_callback({"status": "progress", "file": name, "loaded": size // 2, "total": size})
            progress_callback({"status": "progress", "file": name, "loaded": size, "total": size})
            progress_callback({"status": "done", "file": name})
        if self.load_gate is not None:
            self.load_gate.wait(5)
        if self.load_error:
            raise self.load_error
        self._loaded = True
        return "/models/test--florence-2"

    def encode_prompt(self, text):
        return {"input_ids": text}

    def blank_vision_input(self, size):
        return {"pixel_values": ("blank", size)}

    def preprocess_image(self, image_ref):
        self.preprocess_calls.append(image_ref)
        return {"pixel_values": ("pixels", image_ref)}, (640, 480)

    def generate(self, inputs, params):
        if inputs["pixel_values"][0] == "blank":
            self.warmup_calls.append((inputs, params))
            if self.warmup_error:
                raise self.warmup_error
            return ["a"]

        self.generate_calls.append((inputs, params))
        self.generating.set()
        if self.gate is not None:
            self.gate.wait(5)
        if self.generate_error:
            error, self.generate_error = self.generate_error, None
            raise error
        return [f"{inputs['input_ids']}|{inputs['pixel_values'][1]}"]

    def decode(self, generated):
        return f"<s>{generated[0]}</s>"

    def post_process(self, raw_output, task, image_size):
        return {task: raw_output.replace("<s>", "").replace("</s>", ""), "size": image_size}

    def unload(self):
        self.unloaded = True
        self.unload_thread = threading.current_thread().name
        self._loaded = False


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def manager(engine):
    manager = ModelLifecycleManager(engine, warmup_image_size=WARMUP_SIZE)
    yield manager
    manager.shutdown()


@pytest.fixture
def cache():
    return VisionCache()


@pytest.fixture
def dispatcher(manager, cache):
    return InferenceDispatcher(manager, cache)


@pytest.fixture
async def worker(manager, dispatcher, cache):
    worker = InferenceWorker(MessageBus(), manager, dispatcher, cache)
    await worker.start()
    yield worker
    await worker.stop()
