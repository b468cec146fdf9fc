"""
Tests for the capacity ledger and RSVP registration, including concurrency.
"""

import asyncio

import pytest

from liveroom.core.config import get_settings
from liveroom.core.errors import (
    RegistrationClosedError,
    RegistrationInProgressError,
    RsvpNotFoundError,
    TransientStoreError,
)
from liveroom.models.audience import Identity
from liveroom.models.rsvp import AdmissionOutcome, RsvpRecord, RsvpStatus, is_active_rsvp_status
from liveroom.services import admission_service, rsvp_service
from liveroom.services.room_service import get_room, rsvp_config_path


def make_identity(n: int) -> Identity:
    return Identity(user_id=f"user-{n}", display_name=f"User {n}", phone=f"+1555{n:04d}")


@pytest.mark.asyncio
async def test_admit_defaults_missing_ledger(store):
    """A room with no ledger behaves as open with 100 seats."""
    outcome = await admission_service.admit(store, "fresh-room")
    assert outcome == AdmissionOutcome.REGISTERED

    ledger = await admission_service.get_ledger(store, "fresh-room")
    assert ledger.open is True
    assert ledger.capacity == 100
    assert ledger.booked_count == 1
    assert ledger.waitlist_count == 0


@pytest.mark.asyncio
async def test_admit_waitlists_when_full(store, small_room):
    outcomes = [await admission_service.admit(store, small_room) for _ in range(3)]
    assert outcomes == [
        AdmissionOutcome.REGISTERED,
        AdmissionOutcome.REGISTERED,
        AdmissionOutcome.WAITLISTED,
    ]
    ledger = await admission_service.get_ledger(store, small_room)
    assert (ledger.booked_count, ledger.waitlist_count) == (2, 1)


@pytest.mark.asyncio
async def test_zero_capacity_is_unlimited(store):
    await admission_service.configure(store, "open-room", capacity=0)
    for _ in range(5):
        assert await admission_service.admit(store, "open-room") == AdmissionOutcome.REGISTERED
    ledger = await admission_service.get_ledger(store, "open-room")
    assert ledger.booked_count == 5


@pytest.mark.asyncio
async def test_closed_ledger_refuses_without_writing(store, small_room):
    await admission_service.configure(store, small_room, is_open=False)
    before = await store.read(rsvp_config_path(small_room))

    outcome = await admission_service.admit(store, small_room)

    assert outcome == AdmissionOutcome.REFUSED
    assert await store.read(rsvp_config_path(small_room)) == before


@pytest.mark.asyncio
async def test_ledger_tolerates_malformed_counters(store):
    await store.atomic_multi_write({
        rsvp_config_path("messy"): {"open": "false", "capacity": "2", "bookedCount": "abc", "extra": 1},
    })
    # Only a boolean false closes RSVPs
    assert await admission_service.admit(store, "messy") == AdmissionOutcome.REGISTERED

    doc = await store.read(rsvp_config_path("messy"))
    assert doc["bookedCount"] == 1
    assert doc["capacity"] == 2
    assert doc["extra"] == 1


@pytest.mark.asyncio
async def test_concurrent_admissions_never_overbook(store):
    """40 simultaneous callers against 10 seats: exactly 10 registered, 30 waitlisted."""
    await admission_service.configure(store, "hot-room", capacity=10)

    outcomes = await asyncio.gather(*(admission_service.admit(store, "hot-room") for _ in range(40)))

    assert outcomes.count(AdmissionOutcome.REGISTERED) == 10
    assert outcomes.count(AdmissionOutcome.WAITLISTED) == 30
    ledger = await admission_service.get_ledger(store, "hot-room")
    assert (ledger.booked_count, ledger.waitlist_count) == (10, 30)


@pytest.mark.asyncio
async def test_burst_larger_than_retry_limit_admits_everyone(store):
    """More simultaneous callers than the configured retry limit still all get an outcome."""
    callers = get_settings().TRANSACTION_MAX_RETRIES + 30
    await admission_service.configure(store, "burst-room", capacity=10)

    outcomes = await asyncio.gather(
        *(admission_service.admit(store, "burst-room") for _ in range(callers)),
        return_exceptions=True,
    )

    assert not [o for o in outcomes if isinstance(o, Exception)]
    assert outcomes.count(AdmissionOutcome.REGISTERED) == 10
    assert outcomes.count(AdmissionOutcome.WAITLISTED) == callers - 10
    ledger = await admission_service.get_ledger(store, "burst-room")
    assert (ledger.booked_count, ledger.waitlist_count) == (10, callers - 10)


@pytest.mark.asyncio
async def test_concurrent_registrations_keep_views_consistent(store, small_room, clock):
    room = await get_room(store, small_room)
    users = [make_identity(n) for n in range(6)]

    outcomes = await asyncio.gather(*(rsvp_service.register(store, room, user, clock) for user in users))

    assert outcomes.count(AdmissionOutcome.REGISTERED) == 2
    assert outcomes.count(AdmissionOutcome.WAITLISTED) == 4
    for user, outcome in zip(users, outcomes):
        room_side = await rsvp_service.get_room_rsvp(store, small_room, user.user_id)
        user_side = (await rsvp_service.get_user_rsvps(store, user.user_id))[small_room]
        assert room_side.status.value == outcome.value
        assert user_side.status == room_side.status
        assert user_side.start_time_ms == room.window.start_ms


@pytest.mark.asyncio
async def test_register_is_idempotent(store, upcoming_room, identity, clock):
    first = await rsvp_service.register(store, upcoming_room, identity, clock)
    second = await rsvp_service.register(store, upcoming_room, identity, clock)

    assert first == second == AdmissionOutcome.REGISTERED
    ledger = await admission_service.get_ledger(store, upcoming_room.id)
    assert ledger.booked_count == 1


@pytest.mark.asyncio
async def test_register_writes_both_views(store, upcoming_room, identity, clock):
    await rsvp_service.register(store, upcoming_room, identity, clock)

    room_doc = await store.read(rsvp_service.room_rsvp_path(upcoming_room.id, identity.user_id))
    user_doc = await store.read(rsvp_service.user_rsvp_path(identity.user_id, upcoming_room.id))

    assert room_doc["status"] == "registered"
    assert room_doc["displayName"] == "Asha"
    assert room_doc["createdAt"] == clock.now
    assert user_doc["status"] == "registered"
    assert user_doc["roomId"] == upcoming_room.id
    assert user_doc["startTimeMs"] == upcoming_room.window.start_ms
    assert user_doc["updatedAt"] == clock.now


@pytest.mark.asyncio
async def test_refused_register_writes_no_records(store, small_room, identity, clock):
    await admission_service.configure(store, small_room, is_open=False)
    room = await get_room(store, small_room)

    outcome = await rsvp_service.register(store, room, identity, clock)

    assert outcome == AdmissionOutcome.REFUSED
    assert await rsvp_service.get_room_rsvp(store, small_room, identity.user_id) is None
    assert await rsvp_service.get_user_rsvps(store, identity.user_id) == {}


@pytest.mark.asyncio
async def test_dual_write_failure_keeps_ledger_outcome(store, upcoming_room, identity, clock, monkeypatch):
    async def failing_multi_write(updates):
        raise TransientStoreError()

    monkeypatch.setattr(store, "atomic_multi_write", failing_multi_write)

    outcome = await rsvp_service.register(store, upcoming_room, identity, clock)

    assert outcome == AdmissionOutcome.REGISTERED
    ledger = await admission_service.get_ledger(store, upcoming_room.id)
    assert ledger.booked_count == 1
    assert await rsvp_service.get_room_rsvp(store, upcoming_room.id, identity.user_id) is None


@pytest.mark.asyncio
async def test_single_flight_rejects_second_concurrent_register(store, upcoming_room, identity, clock):
    guard = rsvp_service.SingleFlightGuard()

    async with guard.hold(upcoming_room.id, identity.user_id):
        with pytest.raises(RegistrationInProgressError):
            await rsvp_service.register(store, upcoming_room, identity, clock, guard=guard)

    # Released once the first call finishes
    outcome = await rsvp_service.register(store, upcoming_room, identity, clock, guard=guard)
    assert outcome == AdmissionOutcome.REGISTERED


@pytest.mark.asyncio
async def test_register_for_room_requires_upcoming(store, current_room, ended_room, identity, clock):
    with pytest.raises(RegistrationClosedError):
        await rsvp_service.register_for_room(store, current_room.id, identity, clock)
    with pytest.raises(RegistrationClosedError):
        await rsvp_service.register_for_room(store, ended_room.id, identity, clock)


@pytest.mark.asyncio
async def test_cancel_releases_seat_and_mirrors_status(store, small_room, identity, clock):
    room = await get_room(store, small_room)
    await rsvp_service.register(store, room, identity, clock)

    released = await rsvp_service.cancel(store, small_room, identity, clock)

    assert released == RsvpStatus.REGISTERED
    ledger = await admission_service.get_ledger(store, small_room)
    assert ledger.booked_count == 0
    room_side = await rsvp_service.get_room_rsvp(store, small_room, identity.user_id)
    user_side = (await rsvp_service.get_user_rsvps(store, identity.user_id))[small_room]
    assert room_side.status == user_side.status == RsvpStatus.CANCELLED

    # A cancelled RSVP can register again
    assert await rsvp_service.register(store, room, identity, clock) == AdmissionOutcome.REGISTERED


@pytest.mark.asyncio
async def test_cancel_waitlisted_decrements_waitlist(store, small_room, clock):
    room = await get_room(store, small_room)
    users = [make_identity(n) for n in range(3)]
    for user in users:
        await rsvp_service.register(store, room, user, clock)

    released = await rsvp_service.cancel(store, small_room, users[2], clock)

    assert released == RsvpStatus.WAITLISTED
    ledger = await admission_service.get_ledger(store, small_room)
    assert (ledger.booked_count, ledger.waitlist_count) == (2, 0)


@pytest.mark.asyncio
async def test_cancel_keeps_seat_when_record_write_fails(store, small_room, identity, clock, monkeypatch):
    room = await get_room(store, small_room)
    await rsvp_service.register(store, room, identity, clock)
    real_multi_write = store.atomic_multi_write

    async def failing_multi_write(updates):
        raise TransientStoreError()

    monkeypatch.setattr(store, "atomic_multi_write", failing_multi_write)
    with pytest.raises(TransientStoreError):
        await rsvp_service.cancel(store, small_room, identity, clock)

    ledger = await admission_service.get_ledger(store, small_room)
    assert ledger.booked_count == 1
    record = await rsvp_service.get_room_rsvp(store, small_room, identity.user_id)
    assert record.status == RsvpStatus.REGISTERED

    # Retrying once the store recovers releases the seat exactly once
    monkeypatch.setattr(store, "atomic_multi_write", real_multi_write)
    assert await rsvp_service.cancel(store, small_room, identity, clock) == RsvpStatus.REGISTERED
    ledger = await admission_service.get_ledger(store, small_room)
    assert ledger.booked_count == 0


@pytest.mark.asyncio
async def test_cancel_without_rsvp(store, upcoming_room, identity, clock):
    with pytest.raises(RsvpNotFoundError):
        await rsvp_service.cancel(store, upcoming_room.id, identity, clock)


@pytest.mark.asyncio
async def test_release_never_goes_negative(store):
    ledger = await admission_service.release(store, "empty-room", RsvpStatus.REGISTERED)
    assert ledger.booked_count == 0


def test_records_store_status_as_lowercase_value():
    doc = RsvpRecord(status=RsvpStatus.REGISTERED, user_id="u1").to_doc()
    assert doc["status"] == "registered"
    assert RsvpRecord.from_doc(doc).status == RsvpStatus.REGISTERED


def test_status_parsing_accepts_enums_and_loose_strings():
    assert RsvpStatus.parse(RsvpStatus.WAITLISTED) == RsvpStatus.WAITLISTED
    assert RsvpStatus.parse(AdmissionOutcome.REGISTERED) == RsvpStatus.REGISTERED
    assert RsvpStatus.parse(" Waitlisted ") == RsvpStatus.WAITLISTED
    assert RsvpStatus.parse(AdmissionOutcome.REFUSED) is None
    assert RsvpStatus.parse(None) is None
    assert is_active_rsvp_status(RsvpStatus.WAITLISTED)
    assert is_active_rsvp_status("REGISTERED")
    assert not is_active_rsvp_status(RsvpStatus.CANCELLED)
