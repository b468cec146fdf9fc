"""
Pydantic schemas for the catalog buckets.
"""

from pydantic import BaseModel

from liveroom.schemas.room import RoomResponse
from liveroom.services.catalog_service import CatalogBuckets


class CatalogResponse(BaseModel):
    yours: list[RoomResponse]
    upcoming: list[RoomResponse]
    current: list[RoomResponse]
    now_ms: int

    @classmethod
    def from_buckets(cls, buckets: CatalogBuckets, now: int) -> "CatalogResponse":
        return cls(
            yours=[RoomResponse.from_room(room, now) for room in buckets.yours],
            upcoming=[RoomResponse.from_room(room, now) for room in buckets.upcoming],
            current=[RoomResponse.from_room(room, now) for room in buckets.current],
            now_ms=now,
        )
