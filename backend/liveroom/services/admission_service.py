"""
Capacity ledger: the register-or-waitlist decision for a room.

CONCURRENCY STRATEGY: Optimistic Transaction with Retry
========================================================

Problem:
  Two users try to take the last seat simultaneously.
  Both read bookedCount=99 (capacity 100), both write 100, both "register".
  Result: 101 admissions against 100 seats.

Solution:
  Every counter change is a transactional read-modify-write on
  rooms/{roomId}/rsvp_config:

  1. Read the ledger (missing fields default to open / 100 / 0 / 0)
  2. Closed -> abort, nothing written, caller gets REFUSED
  3. Full (capacity > 0 and bookedCount >= capacity) -> waitlistCount + 1
     Otherwise -> bookedCount + 1
  4. Commit only if nobody else committed since step 1; otherwise the store
     re-runs steps 1-4 against the fresh ledger

  Whichever writer commits first wins the seat; at most `capacity` callers
  ever see REGISTERED no matter how many race.

  This module is the only writer of rsvp_config.
"""

from typing import Optional

from liveroom.core.logging import get_logger
from liveroom.core.metrics import ledger_latency, ledger_retries
from liveroom.models.room import RsvpConfig
from liveroom.models.rsvp import AdmissionOutcome, RsvpStatus
from liveroom.services.interfaces.document_store import ABORT, DocumentStore
from liveroom.services.room_service import rsvp_config_path

logger = get_logger(__name__)


def _merge(current: Optional[dict], config: RsvpConfig) -> dict:
    # Keep unknown fields other tools may have put on the ledger
    return {**(current or {}), **config.to_doc()}


async def get_ledger(store: DocumentStore, room_id: str) -> RsvpConfig:
    return RsvpConfig.from_doc(await store.read(rsvp_config_path(room_id)))


async def admit(store: DocumentStore, room_id: str) -> AdmissionOutcome:
    """
    Take a seat or a waitlist slot in one ledger transaction.

    Returns:
        REGISTERED or WAITLISTED when the transaction committed
        REFUSED when RSVPs are closed (terminal, do not retry)

    Raises:
        TransientStoreError when the store is unreachable or contention
        outlasted the retry limit (caller may retry)
    """
    attempts = 0
    assigned: Optional[AdmissionOutcome] = None

    def apply(current: Optional[dict]):
        nonlocal attempts, assigned
        attempts += 1
        assigned = None

        config = RsvpConfig.from_doc(current)
        if not config.open:
            return ABORT

        if config.is_full:
            config.waitlist_count += 1
            assigned = AdmissionOutcome.WAITLISTED
        else:
            config.booked_count += 1
            assigned = AdmissionOutcome.REGISTERED
        return _merge(current, config)

    with ledger_latency.time():
        result = await store.transactional_update(rsvp_config_path(room_id), apply)

    if attempts > 1:
        ledger_retries.inc(attempts - 1)
        logger.info("ledger_retry", room_id=room_id, attempts=attempts, reason="concurrent_writer")

    if not result.committed or assigned is None:
        logger.info("ledger_refused", room_id=room_id, reason="rsvp_closed")
        return AdmissionOutcome.REFUSED

    ledger = RsvpConfig.from_doc(result.value)
    logger.info(
        "ledger_committed",
        room_id=room_id,
        outcome=assigned.value,
        booked=ledger.booked_count,
        waitlisted=ledger.waitlist_count,
        capacity=ledger.capacity,
    )
    return assigned


async def release(store: DocumentStore, room_id: str, status: RsvpStatus) -> RsvpConfig:
    """
    Give back the seat or waitlist slot held by a cancelled RSVP.
    Runs even when RSVPs are closed; counters never go below zero.
    There is no automatic waitlist promotion.
    """

    def apply(current: Optional[dict]):
        config = RsvpConfig.from_doc(current)
        if status == RsvpStatus.REGISTERED:
            config.booked_count = max(config.booked_count - 1, 0)
        elif status == RsvpStatus.WAITLISTED:
            config.waitlist_count = max(config.waitlist_count - 1, 0)
        else:
            return ABORT
        return _merge(current, config)

    with ledger_latency.time():
        result = await store.transactional_update(rsvp_config_path(room_id), apply)

    ledger = RsvpConfig.from_doc(result.value)
    logger.info(
        "ledger_released",
        room_id=room_id,
        status=status.value,
        committed=result.committed,
        booked=ledger.booked_count,
        waitlisted=ledger.waitlist_count,
    )
    return ledger


async def configure(
    store: DocumentStore,
    room_id: str,
    is_open: Optional[bool] = None,
    capacity: Optional[int] = None,
) -> RsvpConfig:
    """Operator change of the open flag and/or capacity. Counters are untouched."""

    def apply(current: Optional[dict]):
        config = RsvpConfig.from_doc(current)
        if is_open is not None:
            config.open = is_open
        if capacity is not None:
            config.capacity = capacity
        return _merge(current, config)

    result = await store.transactional_update(rsvp_config_path(room_id), apply)
    ledger = RsvpConfig.from_doc(result.value)
    logger.info("ledger_configured", room_id=room_id, open=ledger.open, capacity=ledger.capacity)
    return ledger
