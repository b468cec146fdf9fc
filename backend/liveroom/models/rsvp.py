"""
RSVP records, mirrored per room and per user.

Both views are always written together in one multi-key update so they
agree on status for a given (room, user) pair.
"""

from enum import Enum
from typing import Optional

from pydantic import field_validator

from liveroom.models.base import DocumentModel, coerce_int


class RsvpStatus(str, Enum):
    REGISTERED = "registered"
    WAITLISTED = "waitlisted"
    CANCELLED = "cancelled"

    @classmethod
    def parse(cls, value) -> Optional["RsvpStatus"]:
        if isinstance(value, cls):
            return value
        # Other str enums (AdmissionOutcome) parse by their value
        value = getattr(value, "value", value)
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            return None


class AdmissionOutcome(str, Enum):
    REGISTERED = "registered"
    WAITLISTED = "waitlisted"
    REFUSED = "refused"


ACTIVE_STATUSES = (RsvpStatus.REGISTERED, RsvpStatus.WAITLISTED)


def is_active_rsvp_status(status) -> bool:
    return RsvpStatus.parse(status) in ACTIVE_STATUSES


class _StatusDocument(DocumentModel):
    status: Optional[RsvpStatus] = None

    @field_validator("status", mode="before")
    @classmethod
    def _lenient_status(cls, value):
        return RsvpStatus.parse(value)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES


class RsvpRecord(_StatusDocument):
    """Room-side record at rooms/{roomId}/rsvps/{userId}."""

    user_id: str = ""
    display_name: str = ""
    phone: str = ""
    created_at: int = 0


class UserRsvpRecord(_StatusDocument):
    """User-side record at users/{userId}/rsvps/{roomId}."""

    room_id: str = ""
    start_time_ms: int = 0
    end_time_ms: int = 0
    updated_at: int = 0

    @field_validator("start_time_ms", "end_time_ms", "updated_at", mode="before")
    @classmethod
    def _timestamp(cls, value):
        return coerce_int(value)
