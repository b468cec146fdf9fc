"""
RSVP registration: idempotency, single-flight, and the dual-view write.

Flow for register():
  1. Single-flight guard on (room, user) within this process
  2. Existing active room-side record -> return its status, no counter change
  3. Capacity ledger transaction (admission_service.admit)
  4. One atomic multi-key write of both record views

KNOWN DRIFT
===========
Step 4 is not part of the ledger transaction. If it fails after step 3
committed, the counter holds a seat with no matching record. We log it as
a data-integrity warning and still return the ledger outcome; nothing is
repaired automatically. A retry by the same user then finds no record and
takes a second slot, so one user can be counted twice after such a failure.
"""

from contextlib import asynccontextmanager
from typing import Optional

from liveroom.core.errors import (
    RegistrationClosedError,
    RegistrationInProgressError,
    RsvpNotFoundError,
    StoreError,
    StorePermissionError,
    TransientStoreError,
)
from liveroom.core.logging import get_logger
from liveroom.core.metrics import dual_write_failures, record_cancellation, record_rsvp_outcome
from liveroom.models.audience import Identity
from liveroom.models.room import Room, RoomLifecycleState
from liveroom.models.rsvp import AdmissionOutcome, RsvpRecord, RsvpStatus, UserRsvpRecord
from liveroom.services import admission_service
from liveroom.services.interfaces.document_store import DocumentStore
from liveroom.services.lifecycle_service import resolve_room
from liveroom.services.room_service import get_room
from liveroom.services.window_clock import Clock, now_ms

logger = get_logger(__name__)


def room_rsvp_path(room_id: str, user_id: str) -> str:
    return f"rooms/{room_id}/rsvps/{user_id}"


def user_rsvps_path(user_id: str) -> str:
    return f"users/{user_id}/rsvps"


def user_rsvp_path(user_id: str, room_id: str) -> str:
    return f"{user_rsvps_path(user_id)}/{room_id}"


class SingleFlightGuard:
    """Rejects a second concurrent operation on the same (room, user)."""

    def __init__(self):
        self._pending: set[tuple[str, str]] = set()

    @asynccontextmanager
    async def hold(self, room_id: str, user_id: str):
        key = (room_id, user_id)
        if key in self._pending:
            raise RegistrationInProgressError()
        self._pending.add(key)
        try:
            yield
        finally:
            self._pending.discard(key)


_guard = SingleFlightGuard()


async def get_room_rsvp(store: DocumentStore, room_id: str, user_id: str) -> Optional[RsvpRecord]:
    doc = await store.read(room_rsvp_path(room_id, user_id))
    return RsvpRecord.from_doc(doc) if doc is not None else None


async def get_user_rsvps(store: DocumentStore, user_id: str) -> dict[str, UserRsvpRecord]:
    """The caller's RSVP set keyed by room id. Permission denied reads as empty."""
    try:
        docs = await store.read_children(user_rsvps_path(user_id))
    except StorePermissionError:
        logger.warning("user_rsvps_unavailable", user_id=user_id)
        return {}
    return {room_id: UserRsvpRecord.from_doc(doc) for room_id, doc in docs.items()}


async def write_rsvp_views(
    store: DocumentStore,
    room: Room,
    identity: Identity,
    status: RsvpStatus,
    now: int,
) -> bool:
    """
    Write the room-side and user-side records in one multi-key update.

    Returns False (after logging) when the write failed. register keeps the
    ledger outcome it already committed; cancel releases nothing.
    """
    room_record = RsvpRecord(
        status=status,
        created_at=now,
        user_id=identity.user_id,
        display_name=identity.display_name,
        phone=identity.phone,
    )
    user_record = UserRsvpRecord(
        status=status,
        room_id=room.id,
        start_time_ms=room.window.start_ms,
        end_time_ms=room.window.end_ms,
        updated_at=now,
    )
    try:
        await store.atomic_multi_write({
            room_rsvp_path(room.id, identity.user_id): room_record.to_doc(),
            user_rsvp_path(identity.user_id, room.id): user_record.to_doc(),
        })
    except StoreError as e:
        dual_write_failures.inc()
        logger.warning(
            "rsvp_dual_write_failed",
            room_id=room.id,
            user_id=identity.user_id,
            status=status.value,
            error=str(e),
            integrity="nothing_released" if status == RsvpStatus.CANCELLED else "ledger_without_record",
        )
        return False
    return True


async def register(
    store: DocumentStore,
    room: Room,
    identity: Identity,
    clock: Clock = now_ms,
    guard: SingleFlightGuard = _guard,
) -> AdmissionOutcome:
    """
    Register the caller for an upcoming room.

    The caller has already checked the room is UPCOMING.
    """
    async with guard.hold(room.id, identity.user_id):
        existing = await get_room_rsvp(store, room.id, identity.user_id)
        if existing is not None and existing.is_active:
            record_rsvp_outcome("existing")
            logger.info(
                "rsvp_already_active",
                room_id=room.id,
                user_id=identity.user_id,
                status=existing.status.value,
            )
            return AdmissionOutcome(existing.status.value)

        outcome = await admission_service.admit(store, room.id)
        record_rsvp_outcome(outcome.value)
        if outcome == AdmissionOutcome.REFUSED:
            logger.warning("rsvp_refused", room_id=room.id, user_id=identity.user_id)
            return outcome

        await write_rsvp_views(store, room, identity, RsvpStatus(outcome.value), clock())
        logger.info("rsvp_created", room_id=room.id, user_id=identity.user_id, status=outcome.value)
        return outcome


async def register_for_room(
    store: DocumentStore,
    room_id: str,
    identity: Identity,
    clock: Clock = now_ms,
) -> AdmissionOutcome:
    """Load the room, require it to still be upcoming, then register."""
    room = await get_room(store, room_id)
    state = resolve_room(room, clock())
    if state != RoomLifecycleState.UPCOMING:
        logger.info("rsvp_rejected_not_upcoming", room_id=room_id, state=state.value)
        raise RegistrationClosedError()
    return await register(store, room, identity, clock)


async def cancel(
    store: DocumentStore,
    room_id: str,
    identity: Identity,
    clock: Clock = now_ms,
    guard: SingleFlightGuard = _guard,
) -> RsvpStatus:
    """
    Cancel the caller's active RSVP and release its ledger slot.
    Returns the status that was released.

    Both views are marked cancelled before the slot is released. If that
    write fails nothing is released, so a retry cannot release twice.
    """
    async with guard.hold(room_id, identity.user_id):
        existing = await get_room_rsvp(store, room_id, identity.user_id)
        if existing is None or not existing.is_active:
            raise RsvpNotFoundError()

        room = await get_room(store, room_id)
        released = existing.status
        if not await write_rsvp_views(store, room, identity, RsvpStatus.CANCELLED, clock()):
            raise TransientStoreError("Unable to cancel right now. Please retry.")
        await admission_service.release(store, room_id, released)

        record_cancellation(released.value)
        logger.info("rsvp_cancelled", room_id=room_id, user_id=identity.user_id, released=released.value)
        return released
