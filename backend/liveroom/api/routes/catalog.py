"""
Catalog endpoints: a one-off bucket snapshot and a live stream of them.
"""

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from liveroom.core.logging import bind_request_context, get_logger
from liveroom.core.security import get_current_identity, websocket_identity
from liveroom.models.audience import Identity
from liveroom.schemas.catalog import CatalogResponse
from liveroom.services.catalog_service import CatalogBuckets, CatalogWatcher, load_catalog
from liveroom.services.interfaces.document_store import DocumentStore
from liveroom.services.store_factory import get_store
from liveroom.services.window_clock import Clock, get_clock

logger = get_logger(__name__)
router = APIRouter(prefix="/catalog", tags=["Catalog"])


@router.get("/", response_model=CatalogResponse)
async def get_catalog(
    identity: Identity = Depends(get_current_identity),
    store: DocumentStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
):
    """Rooms split into yours / upcoming / current for the caller."""
    now = clock()
    buckets = await load_catalog(store, identity.user_id, now)
    return CatalogResponse.from_buckets(buckets, now)


@router.websocket("/stream")
async def stream_catalog(
    websocket: WebSocket,
    store: DocumentStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
):
    """Pushes a fresh snapshot whenever bucket membership or order changes."""
    identity = websocket_identity(websocket)
    if identity is None:
        await websocket.close(code=1008, reason="Unable to resolve user session")
        return

    bind_request_context(websocket.headers.get("x-request-id"), user_id=identity.user_id, path=websocket.url.path)
    await websocket.accept()

    async def push(buckets: CatalogBuckets):
        await websocket.send_json(CatalogResponse.from_buckets(buckets, clock()).model_dump(mode="json"))

    watcher = CatalogWatcher(store, identity.user_id, on_update=push, clock=clock)
    try:
        await watcher.start()
        # Inbound frames are ignored; receiving only detects the disconnect
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("catalog_stream_disconnected", user_id=identity.user_id)
    finally:
        await watcher.close()
