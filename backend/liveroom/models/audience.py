"""
Audience documents written when a user enters a room.
"""

from pydantic import Field

from liveroom.models.base import DocumentModel


class Identity(DocumentModel):
    """Caller identity, resolved upstream before the engine runs."""

    user_id: str
    display_name: str = ""
    phone: str = ""
    email: str = ""
    role: str = "audience"
    # Phone verified but no account profile behind it
    unregistered: bool = False


class Restrictions(DocumentModel):
    is_muted: bool = False
    is_bid_banned: bool = False
    is_kicked: bool = False


class AudienceSession(DocumentModel):
    """Session-scoped join record at audience_data/{roomId}/{sessionKey}."""

    user_id: str
    username: str
    email: str = ""
    phone: str = ""
    role: str = "audience"
    joined_at: int
    restrictions: Restrictions = Field(default_factory=Restrictions)


class AudienceIndexEntry(DocumentModel):
    """Per-room, per-user entry at rooms/{roomId}/audience_index/{userId}.

    first_seen is written once; later joins only move last_seen and
    last_session_key.
    """

    user_id: str
    username: str = ""
    email: str = ""
    phone: str = ""
    role: str = "audience"
    first_seen: int
    last_seen: int
    last_session_key: str = ""


class UnregisteredVisit(DocumentModel):
    """Entry by a caller without an account, at rooms/{roomId}/unregistered/{phone}."""

    phone: str
    email: str = ""
    timestamp: int
    source: str = "otp"
