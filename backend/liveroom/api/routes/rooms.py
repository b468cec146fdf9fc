"""
Room endpoints: lifecycle, action gating, operator settings, entry and the
locked-room countdown gate.
"""

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status

from liveroom.core.errors import EngineError
from liveroom.core.logging import bind_request_context, get_logger
from liveroom.core.security import get_current_identity, require_host, websocket_identity
from liveroom.models.audience import Identity
from liveroom.models.room import RoomLifecycleState
from liveroom.schemas.gate import GateEventMessage
from liveroom.schemas.room import (
    JoinResponse,
    LifecycleResponse,
    RoomActionResponse,
    RoomResponse,
    RoomUpsert,
    RsvpConfigResponse,
    RsvpConfigUpdate,
)
from liveroom.services import admission_service, audience_service, room_service
from liveroom.services.countdown_gate import CountdownGate, GateEvent
from liveroom.services.interfaces.document_store import DocumentStore
from liveroom.services.lifecycle_service import decide_room_action, resolve_room
from liveroom.services.rsvp_service import get_room_rsvp
from liveroom.services.store_factory import get_store
from liveroom.services.window_clock import Clock, format_countdown, get_clock, remaining_ms

logger = get_logger(__name__)
router = APIRouter(prefix="/rooms", tags=["Rooms"])


@router.get("/{room_id}", response_model=RoomResponse)
async def get_room_endpoint(
    room_id: str,
    store: DocumentStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
):
    """Room with its ledger and resolved lifecycle. Always read fresh."""
    room = await room_service.get_room(store, room_id)
    return RoomResponse.from_room(room, clock())


@router.get("/{room_id}/lifecycle", response_model=LifecycleResponse)
async def get_lifecycle_endpoint(
    room_id: str,
    store: DocumentStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
):
    """Lifecycle resolved against server time, with the countdown to start."""
    room = await room_service.get_room(store, room_id)
    now = clock()
    state = resolve_room(room, now)

    starts_in = None
    if state == RoomLifecycleState.UPCOMING and room.window.start_ms:
        starts_in = remaining_ms(room.window.start_ms, now)

    return LifecycleResponse(
        room_id=room_id,
        state=state,
        now_ms=now,
        starts_in_ms=starts_in,
        countdown=format_countdown(starts_in) if starts_in is not None else None,
    )


@router.get("/{room_id}/action", response_model=RoomActionResponse)
async def get_room_action_endpoint(
    room_id: str,
    identity: Identity = Depends(get_current_identity),
    store: DocumentStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
):
    """What the caller can do with this room right now: enter, register, wait or nothing."""
    room = await room_service.get_room(store, room_id)
    record = await get_room_rsvp(store, room_id, identity.user_id)
    rsvp_status = record.status.value if record is not None and record.status else None
    return RoomActionResponse(
        room_id=room_id,
        action=decide_room_action(room, rsvp_status, clock()),
        rsvp_status=rsvp_status,
    )


@router.put("/{room_id}", response_model=RoomResponse)
async def upsert_room_endpoint(
    room_id: str,
    room_data: RoomUpsert,
    _host: Identity = Depends(require_host),
    store: DocumentStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
):
    """Create or update the room's schedule and live flag. Host only."""
    room = await room_service.upsert_room(
        store,
        room_id,
        is_live=room_data.is_live,
        start_ms=room_data.start_ms,
        end_ms=room_data.end_ms,
    )
    return RoomResponse.from_room(room, clock())


@router.patch("/{room_id}/rsvp-config", response_model=RsvpConfigResponse)
async def update_rsvp_config_endpoint(
    room_id: str,
    config_data: RsvpConfigUpdate,
    _host: Identity = Depends(require_host),
    store: DocumentStore = Depends(get_store),
):
    """Open/close RSVPs or change capacity. Counters are left alone. Host only."""
    ledger = await admission_service.configure(
        store,
        room_id,
        is_open=config_data.open,
        capacity=config_data.capacity,
    )
    return RsvpConfigResponse(**ledger.model_dump())


@router.post("/{room_id}/join", response_model=JoinResponse, status_code=status.HTTP_201_CREATED)
async def join_room_endpoint(
    room_id: str,
    identity: Identity = Depends(get_current_identity),
    store: DocumentStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
):
    """
    Enter a room that is currently open.

    Upcoming rooms go through the countdown gate, ended rooms are closed.
    """
    room = await room_service.get_room(store, room_id)
    state = resolve_room(room, clock())
    if state != RoomLifecycleState.CURRENT:
        detail = "This show has ended." if state == RoomLifecycleState.ENDED else "Room is still locked."
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)

    session_key = await audience_service.join(store, room_id, identity, clock)
    return JoinResponse(room_id=room_id, session_key=session_key)


@router.websocket("/{room_id}/gate")
async def countdown_gate_endpoint(
    websocket: WebSocket,
    room_id: str,
    store: DocumentStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
):
    """
    Locked-room countdown.

    Streams armed / tick / expired / stillLocked events and finishes with
    unlocked (carrying the session key) or closed.
    """
    identity = websocket_identity(websocket)
    if identity is None:
        await websocket.close(code=1008, reason="Unable to resolve user session")
        return

    bind_request_context(
        websocket.headers.get("x-request-id"),
        user_id=identity.user_id,
        room_id=room_id,
        path=websocket.url.path,
    )
    await websocket.accept()

    async def emit(event: GateEvent):
        await websocket.send_json(GateEventMessage.from_event(event).model_dump())

    gate = CountdownGate(store, identity, emit=emit, clock=clock)
    try:
        room = await room_service.get_room(store, room_id)
        final_state = await gate.run(room)
        logger.info("gate_finished", room_id=room_id, user_id=identity.user_id, state=final_state.value)
        await websocket.close(code=1000)
    except WebSocketDisconnect:
        gate.disarm()
        logger.info("gate_client_disconnected", room_id=room_id, user_id=identity.user_id)
    except EngineError as e:
        logger.warning("gate_aborted", room_id=room_id, error=e.message)
        await websocket.send_json({"event": "error", "room_id": room_id, "message": e.message})
        await websocket.close(code=1011)
