"""
RSVP endpoints with concurrency-safe capacity admission.
"""

from fastapi import APIRouter, Depends, status

from liveroom.core.logging import get_logger
from liveroom.core.security import get_current_identity
from liveroom.models.audience import Identity
from liveroom.models.rsvp import AdmissionOutcome
from liveroom.schemas.rsvp import RsvpCancelResponse, RsvpResponse
from liveroom.services import rsvp_service
from liveroom.services.interfaces.document_store import DocumentStore
from liveroom.services.store_factory import get_store
from liveroom.services.window_clock import Clock, get_clock

logger = get_logger(__name__)
router = APIRouter(prefix="/rooms", tags=["RSVPs"])

OUTCOME_MESSAGES = {
    AdmissionOutcome.REGISTERED: "Registered for {room_id}. It now appears in Your Shows.",
    AdmissionOutcome.WAITLISTED: "Added to waitlist for {room_id}.",
    AdmissionOutcome.REFUSED: "RSVP is currently closed for this room.",
}


@router.post("/{room_id}/rsvp", response_model=RsvpResponse, status_code=status.HTTP_200_OK)
async def create_rsvp(
    room_id: str,
    identity: Identity = Depends(get_current_identity),
    store: DocumentStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
):
    """
    Register for an upcoming room.

    The seat counter is updated in an optimistic transaction, so concurrent
    registrations never push bookedCount past capacity. Once full, callers
    land on the waitlist. Repeating the call returns the existing status.
    """
    outcome = await rsvp_service.register_for_room(store, room_id, identity, clock)
    return RsvpResponse(
        room_id=room_id,
        status=outcome,
        message=OUTCOME_MESSAGES[outcome].format(room_id=room_id),
    )


@router.delete("/{room_id}/rsvp", response_model=RsvpCancelResponse)
async def cancel_rsvp(
    room_id: str,
    identity: Identity = Depends(get_current_identity),
    store: DocumentStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
):
    """Cancel the caller's RSVP and give the slot back to the ledger."""
    released = await rsvp_service.cancel(store, room_id, identity, clock)
    return RsvpCancelResponse(
        room_id=room_id,
        released=released,
        message="RSVP cancelled successfully",
    )
