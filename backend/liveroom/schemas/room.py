"""
Pydantic schemas for room-related request/response validation.
"""

from typing import Optional

from pydantic import BaseModel, Field, model_validator

from liveroom.models.room import Room, RoomAction, RoomLifecycleState
from liveroom.services.lifecycle_service import resolve_room


class RoomUpsert(BaseModel):
    is_live: bool = False
    start_ms: int = Field(0, ge=0)
    end_ms: int = Field(0, ge=0)

    @model_validator(mode="after")
    def _end_after_start(self):
        if self.start_ms and self.end_ms and self.end_ms <= self.start_ms:
            raise ValueError("end_ms must be after start_ms")
        return self


class RsvpConfigUpdate(BaseModel):
    open: Optional[bool] = None
    capacity: Optional[int] = Field(None, ge=0, le=100000)


class RsvpConfigResponse(BaseModel):
    open: bool
    capacity: int
    booked_count: int
    waitlist_count: int


class RoomResponse(BaseModel):
    id: str
    is_live: bool
    start_ms: int
    end_ms: int
    state: RoomLifecycleState
    rsvp_config: RsvpConfigResponse

    @classmethod
    def from_room(cls, room: Room, now: int) -> "RoomResponse":
        return cls(
            id=room.id,
            is_live=room.is_live,
            start_ms=room.window.start_ms,
            end_ms=room.window.end_ms,
            state=resolve_room(room, now),
            rsvp_config=RsvpConfigResponse(**room.rsvp_config.model_dump()),
        )


class LifecycleResponse(BaseModel):
    room_id: str
    state: RoomLifecycleState
    now_ms: int
    starts_in_ms: Optional[int] = None
    countdown: Optional[str] = None


class RoomActionResponse(BaseModel):
    room_id: str
    action: RoomAction
    rsvp_status: Optional[str] = None


class JoinResponse(BaseModel):
    room_id: str
    session_key: str
