import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI

from src.api.v1 import names as names_module
from src.api.v1 import worker as worker_module
from src.config import settings
from src.core.dispatcher import InferenceDispatcher
from src.core.message_bus import MessageBus
from src.core.model_manager import ModelLifecycleManager
from src.core.name_suggester import NameSuggester
from src.core.vision_cache import VisionCache
from src.core.worker import InferenceWorker
from src.inference.florence_engine import Florence2Engine
from src.models.protocol import LoadCommand
from src.utils.gpu_utils import get_vram_percent, initialize_gpu
from src.utils.logger import logger

worker: InferenceWorker = None  # type: ignore
name_suggester: NameSuggester = None  # type: ignore

TAGS_METADATA = [
    {
        "name": "health",
        "description": "System health and readiness checks.",
    },
    {
        "name": "worker",
        "description": (
            "The background captioning worker. Connect to the `/v1/worker` "
            "WebSocket to send `load`, `run` and `reset` commands and receive "
            "`loading`, `initiate`, `progress`, `done`, `ready`, `complete` and "
            "`error` events."
        ),
    },
    {
        "name": "names",
        "description": "Turn a photo caption into pet name suggestions.",
    },
]


def build_worker() -> InferenceWorker:
    engine = Florence2Engine(settings.model_id)
    manager = ModelLifecycleManager(engine)
    cache = VisionCache()
    dispatcher = InferenceDispatcher(manager, cache)
    return InferenceWorker(MessageBus(), manager, dispatcher, cache)


@asynccontextmanager
async def lifespan(app: FastAPI):
    global worker, name_suggester
    logger.info("Pet Name Picker starting up...")
    device = initialize_gpu()
    settings.device = device

    worker = build_worker()
    name_suggester = NameSuggester()
    worker_module.worker = worker
    names_module.name_suggester = name_suggester

    await worker.start()
    if settings.autoload_model:
        worker.bus.send(LoadCommand().to_message())

    logger.info(f"Pet Name Picker ready on device={device}")
    yield

    logger.info("Pet Name Picker shutting down...")
    await worker.stop()
    await asyncio.to_thread(worker.manager.shutdown)
    await name_suggester.close()
    logger.info("Pet Name Picker shutdown complete")


app = FastAPI(
    title="Pet Name Picker",
    version="0.1.0",
    summary="Caption a pet photo with Florence-2 and turn it into name suggestions",
    description=(
        "## Overview\n\n"
        "A single Florence-2 model runs inside a background worker. Callers "
        "talk to it only through the message protocol on `/v1/worker`:\n\n"
        "1. send `{\"command\": \"load\"}` and watch the download progress until `ready`;\n"
        "2. send `{\"command\": \"run\", \"task\": \"<MORE_DETAILED_CAPTION>\", "
        "\"imageRef\": \"data:image/png;base64,...\", \"languageHint\": \"English\"}`;\n"
        "3. post the caption from the `complete` event to `/v1/names/suggest`.\n\n"
        "Send `{\"command\": \"reset\"}` when the user picks a different photo."
    ),
    openapi_tags=TAGS_METADATA,
    lifespan=lifespan,
    docs_url=None,
    redoc_url="/docs",
    openapi_url="/openapi.json",
)

app.include_router(worker_module.router, prefix="/v1", tags=["worker"])
app.include_router(names_module.router, prefix="/v1", tags=["names"])


@app.get(
    "/health",
    tags=["health"],
    summary="Health check",
    description=(
        "Returns the server status, the active compute device, the model's "
        "load state and current VRAM usage."
    ),
    response_description="Server health status",
    responses={
        200: {
            "description": "Server is healthy",
            "content": {
                "application/json": {
                    "example": {
                        "status": "ok",
                        "device": "cuda",
                        "load_state": "ready",
                        "vram_usage_percent": 12.5,
                    }
                }
            },
        }
    },
)
async def health():
    return {
        "status": "ok",
        "device": settings.device,
        "load_state": worker.manager.state.value if worker else "unloaded",
        "vram_usage_percent": get_vram_percent(),
    }
