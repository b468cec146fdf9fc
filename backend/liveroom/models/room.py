"""
Room model and its capacity ledger document.

Key design decisions:
- Lifecycle (upcoming/current/ended) is never stored, it is derived from
  the window and live flag on every read
- A window bound of 0 means unset
- rsvp_config lives at its own store path so the ledger transaction only
  contends on the counters, not on operator edits of the room meta
"""

from enum import Enum

from pydantic import Field, field_validator

from liveroom.models.base import DocumentModel, coerce_int

DEFAULT_CAPACITY = 100


class RoomLifecycleState(str, Enum):
    UPCOMING = "upcoming"
    CURRENT = "current"
    ENDED = "ended"


class RoomAction(str, Enum):
    ENTER = "enter"
    REGISTER = "register"
    WAIT = "wait"
    ENDED = "ended"


class RoomWindow(DocumentModel):
    start_ms: int = 0
    end_ms: int = 0

    @field_validator("start_ms", "end_ms", mode="before")
    @classmethod
    def _non_negative(cls, value):
        return max(coerce_int(value), 0)


class RsvpConfig(DocumentModel):
    open: bool = True
    capacity: int = DEFAULT_CAPACITY
    booked_count: int = 0
    waitlist_count: int = 0

    @field_validator("open", mode="before")
    @classmethod
    def _closed_only_when_false(cls, value):
        # Only an explicit false closes RSVPs
        return value is not False

    @field_validator("capacity", "booked_count", "waitlist_count", mode="before")
    @classmethod
    def _count(cls, value):
        return coerce_int(value)

    @property
    def is_full(self) -> bool:
        return self.capacity > 0 and self.booked_count >= self.capacity


class Room(DocumentModel):
    id: str
    is_live: bool = False
    window: RoomWindow = Field(default_factory=RoomWindow)
    rsvp_config: RsvpConfig = Field(default_factory=RsvpConfig)

    def __repr__(self) -> str:
        return f"<Room(id={self.id}, live={self.is_live}, window={self.window.start_ms}-{self.window.end_ms})>"
