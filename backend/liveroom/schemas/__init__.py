from liveroom.schemas.room import (
    RoomUpsert, RsvpConfigUpdate, RsvpConfigResponse, RoomResponse,
    LifecycleResponse, RoomActionResponse, JoinResponse,
)
from liveroom.schemas.rsvp import RsvpResponse, RsvpCancelResponse
from liveroom.schemas.catalog import CatalogResponse
from liveroom.schemas.gate import GateEventMessage

__all__ = [
    "RoomUpsert", "RsvpConfigUpdate", "RsvpConfigResponse", "RoomResponse",
    "LifecycleResponse", "RoomActionResponse", "JoinResponse",
    "RsvpResponse", "RsvpCancelResponse",
    "CatalogResponse",
    "GateEventMessage",
]
