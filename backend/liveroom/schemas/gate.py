"""
Wire shape of countdown gate events sent over the gate WebSocket.
"""

from typing import Optional

from pydantic import BaseModel

from liveroom.services.countdown_gate import GateEvent
from liveroom.services.window_clock import format_countdown


class GateEventMessage(BaseModel):
    event: str
    room_id: str
    remaining_ms: Optional[int] = None
    countdown: Optional[str] = None
    message: Optional[str] = None
    session_key: Optional[str] = None

    @classmethod
    def from_event(cls, event: GateEvent) -> "GateEventMessage":
        return cls(
            event=event.kind.value,
            room_id=event.room_id,
            remaining_ms=event.remaining_ms,
            countdown=format_countdown(event.remaining_ms) if event.remaining_ms is not None else None,
            message=event.message,
            session_key=event.session_key,
        )
