"""
Pydantic schemas for RSVP responses.
"""

from pydantic import BaseModel

from liveroom.models.rsvp import AdmissionOutcome, RsvpStatus


class RsvpResponse(BaseModel):
    room_id: str
    status: AdmissionOutcome
    message: str


class RsvpCancelResponse(BaseModel):
    room_id: str
    status: RsvpStatus = RsvpStatus.CANCELLED
    released: RsvpStatus
    message: str
