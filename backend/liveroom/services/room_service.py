"""
Room reads and operator writes.

Room meta (live flag, schedule) lives at rooms/{roomId}; its capacity
ledger lives at rooms/{roomId}/rsvp_config and is only mutated by the
admission service.
"""

import asyncio
from typing import Optional

from liveroom.core.errors import RoomNotFoundError
from liveroom.core.logging import get_logger
from liveroom.models.room import Room, RsvpConfig
from liveroom.services.interfaces.document_store import DocumentStore
from liveroom.services.lifecycle_service import resolve_room, room_state_rank
from liveroom.services.window_clock import get_room_window

logger = get_logger(__name__)

ROOMS_PATH = "rooms"
ACTIVE_ROOM_PATH = "event_config/active_room_id"

# Unset start sorts after every scheduled room
UNSCHEDULED_SORT_KEY = 2 ** 63


def room_path(room_id: str) -> str:
    return f"{ROOMS_PATH}/{room_id}"


def rsvp_config_path(room_id: str) -> str:
    return f"{ROOMS_PATH}/{room_id}/rsvp_config"


def room_from_doc(room_id: str, doc: Optional[dict], rsvp_config_doc: Optional[dict] = None) -> Room:
    doc = doc or {}
    return Room(
        id=room_id,
        is_live=bool(doc.get("isLive")),
        window=get_room_window(doc),
        rsvp_config=RsvpConfig.from_doc(rsvp_config_doc),
    )


def room_sort_key(room: Room, now: int) -> tuple:
    """State rank, then start ascending (unset last), then id."""
    return (
        room_state_rank(resolve_room(room, now)),
        room.window.start_ms or UNSCHEDULED_SORT_KEY,
        room.id,
    )


async def get_active_room_id(store: DocumentStore) -> Optional[str]:
    doc = await store.read(ACTIVE_ROOM_PATH)
    if not doc or not doc.get("roomId"):
        return None
    return str(doc["roomId"])


async def get_room(store: DocumentStore, room_id: str) -> Room:
    """Authoritative read of one room, including its ledger."""
    doc, ledger = await asyncio.gather(
        store.read(room_path(room_id)),
        store.read(rsvp_config_path(room_id)),
    )
    if doc is None and ledger is None and room_id != await get_active_room_id(store):
        raise RoomNotFoundError(f"Room {room_id} not found")
    return room_from_doc(room_id, doc, ledger)


async def list_rooms(store: DocumentStore, now: int) -> list[Room]:
    """
    All rooms, sorted by state rank / start / id.
    Falls back to the configured active room when no room exists yet.
    """
    docs = await store.read_children(ROOMS_PATH)
    room_ids = sorted(docs)
    ledgers = await asyncio.gather(*(store.read(rsvp_config_path(room_id)) for room_id in room_ids))
    rooms = [
        room_from_doc(room_id, docs[room_id], ledger)
        for room_id, ledger in zip(room_ids, ledgers)
    ]

    if not rooms:
        active_room_id = await get_active_room_id(store)
        if active_room_id:
            rooms.append(Room(id=active_room_id))

    rooms.sort(key=lambda room: room_sort_key(room, now))
    return rooms


async def upsert_room(
    store: DocumentStore,
    room_id: str,
    is_live: bool = False,
    start_ms: int = 0,
    end_ms: int = 0,
) -> Room:
    """Operator write of the room meta. The ledger is left untouched."""
    doc = {
        "isLive": is_live,
        "eventConfig": {"startTimeMs": start_ms, "endTimeMs": end_ms},
    }
    await store.atomic_multi_write({room_path(room_id): doc})
    logger.info("room_upserted", room_id=room_id, is_live=is_live, start_ms=start_ms, end_ms=end_ms)
    return await get_room(store, room_id)
