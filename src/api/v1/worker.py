import asyncio

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from src.api.v1.schemas import ProgressItemSchema, WorkerStatusResponse
from src.core.worker import InferenceWorker
from src.utils.logger import logger

router = APIRouter()

# Injected at startup
worker: InferenceWorker = None  # type: ignore


def _to_wire(event):
    return event.to_message() if hasattr(event, "to_message") else event


@router.websocket("/worker")
async def worker_socket(websocket: WebSocket):
    """Bridges one caller to the worker's message bus.

    Text frames from the client are forwarded as commands; every event the
    worker publishes is sent back as a JSON frame.
    """
    await websocket.accept()
    bus = worker.bus
    events = bus.subscribe()

    async def pump():
        while True:
            event = await events.get()
            await websocket.send_json(_to_wire(event))

    sender = asyncio.create_task(pump())
    try:
        while True:
            bus.send(await websocket.receive_text())
    except WebSocketDisconnect:
        logger.info("Worker socket disconnected")
    finally:
        sender.cancel()
        bus.unsubscribe(events)


@router.get(
    "/worker/status",
    response_model=WorkerStatusResponse,
    summary="Get inference worker status",
    description=(
        "Returns the captioning model's load state, any load failure reason, "
        "per-file download progress while loading, whether a caption is "
        "currently being generated, and whether an image is cached."
    ),
    response_description="Snapshot of the worker state",
)
async def get_worker_status():
    manager = worker.manager
    return WorkerStatusResponse(
        model_id=manager.model_id,
        load_state=manager.state.value,
        failure_reason=manager.failure_reason,
        busy=worker.dispatcher.is_busy,
        image_cached=worker.cache.cached_ref is not None,
        progress=[
            ProgressItemSchema(
                file_id=i.file_id, loaded=i.loaded, total=i.total, percentage=i.percentage
            )
            for i in manager.progress_items
        ],
    )
