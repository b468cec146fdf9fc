"""
Audience join writer.

Every join creates a new session record. Callers without an account also
leave an entry under the room's unregistered list, keyed by phone. The
per-room audience index entry is upserted through a transaction so
first_seen survives repeated and concurrent joins by the same user
(re-entry after a disconnect).
"""

import uuid
from typing import Optional

from liveroom.core.errors import ProfileIncompleteError, StorePermissionError
from liveroom.core.logging import get_logger
from liveroom.core.metrics import record_join
from liveroom.models.audience import AudienceIndexEntry, AudienceSession, Identity, UnregisteredVisit
from liveroom.models.base import coerce_int
from liveroom.services.interfaces.document_store import DocumentStore
from liveroom.services.window_clock import Clock, now_ms

logger = get_logger(__name__)


def session_path(room_id: str, session_key: str) -> str:
    return f"audience_data/{room_id}/{session_key}"


def audience_index_path(room_id: str, user_id: str) -> str:
    return f"rooms/{room_id}/audience_index/{user_id}"


def user_profile_path(user_id: str) -> str:
    return f"users/{user_id}"


def unregistered_visit_path(room_id: str, phone: str) -> str:
    return f"rooms/{room_id}/unregistered/{phone}"


def new_session_key() -> str:
    return uuid.uuid4().hex


async def get_audience_entry(store: DocumentStore, room_id: str, user_id: str) -> Optional[AudienceIndexEntry]:
    doc = await store.read(audience_index_path(room_id, user_id))
    return AudienceIndexEntry.from_doc(doc) if doc is not None else None


async def get_last_room_id(store: DocumentStore, user_id: str) -> Optional[str]:
    """Last room the user entered. Permission denied reads as none."""
    try:
        profile = await store.read(user_profile_path(user_id))
    except StorePermissionError:
        logger.warning("user_profile_unavailable", user_id=user_id)
        return None
    last_room_id = str((profile or {}).get("lastRoomId") or "").strip()
    return last_room_id or None


async def _remember_last_room(store: DocumentStore, room_id: str, identity: Identity, now: int) -> None:
    def apply(current: Optional[dict]):
        return {
            **(current or {}),
            "displayName": identity.display_name,
            "username": identity.display_name,
            "role": identity.role,
            "phone": identity.phone,
            "email": identity.email,
            "lastLoginAt": now,
            "lastRoomId": room_id,
        }

    try:
        await store.transactional_update(user_profile_path(identity.user_id), apply)
    except StorePermissionError:
        # Profile writes are optional; entering the room still succeeds
        logger.warning("user_profile_update_denied", user_id=identity.user_id, room_id=room_id)


async def join(
    store: DocumentStore,
    room_id: str,
    identity: Identity,
    clock: Clock = now_ms,
) -> str:
    """Record that the caller entered the room. Returns the new session key."""
    username = identity.display_name.strip()
    if not username:
        raise ProfileIncompleteError()

    session_key = new_session_key()
    now = clock()

    session = AudienceSession(
        user_id=identity.user_id,
        username=username,
        email=identity.email,
        phone=identity.phone,
        role=identity.role,
        joined_at=now,
    )
    writes = {session_path(room_id, session_key): session.to_doc()}
    if identity.unregistered and identity.phone:
        visit = UnregisteredVisit(phone=identity.phone, email=identity.email, timestamp=now)
        writes[unregistered_visit_path(room_id, identity.phone)] = visit.to_doc()
    await store.atomic_multi_write(writes)

    first_join = False

    def upsert(current: Optional[dict]):
        nonlocal first_join
        first_seen = coerce_int((current or {}).get("firstSeen"))
        first_join = first_seen <= 0
        entry = AudienceIndexEntry(
            user_id=identity.user_id,
            username=username,
            email=identity.email,
            phone=identity.phone,
            role=identity.role,
            first_seen=now if first_join else first_seen,
            last_seen=now,
            last_session_key=session_key,
        )
        return {**(current or {}), **entry.to_doc()}

    await store.transactional_update(audience_index_path(room_id, identity.user_id), upsert)
    await _remember_last_room(store, room_id, identity, now)

    record_join(first_join)
    logger.info(
        "audience_joined",
        room_id=room_id,
        user_id=identity.user_id,
        session_key=session_key,
        first_join=first_join,
    )
    return session_key
