"""
Catalog aggregation: partitions rooms into "yours / upcoming / current".

  yours     rooms the caller holds an active RSVP for; the last room they
            entered sorts first
  upcoming  UPCOMING rooms not in yours
  current   CURRENT rooms not in yours

ENDED rooms appear in no bucket. Within a bucket rooms sort by state rank,
then start time (unset last), then id.

Buckets depend on the clock as well as on data, so CatalogWatcher recomputes
on room changes, on RSVP/profile changes and on a periodic tick.
"""

import asyncio
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Optional

from liveroom.core.config import get_settings
from liveroom.core.logging import get_logger
from liveroom.models.room import Room, RoomLifecycleState
from liveroom.models.rsvp import is_active_rsvp_status
from liveroom.services.audience_service import get_last_room_id, user_profile_path
from liveroom.services.interfaces.document_store import DocumentStore, Subscription
from liveroom.services.lifecycle_service import resolve_room
from liveroom.services.room_service import ROOMS_PATH, list_rooms, room_sort_key
from liveroom.services.rsvp_service import get_user_rsvps
from liveroom.services.window_clock import Clock, now_ms

logger = get_logger(__name__)


@dataclass
class CatalogBuckets:
    yours: list[Room] = field(default_factory=list)
    upcoming: list[Room] = field(default_factory=list)
    current: list[Room] = field(default_factory=list)

    def fingerprint(self) -> tuple:
        return tuple(tuple(room.id for room in bucket) for bucket in (self.yours, self.upcoming, self.current))


def _status_of(record: Any):
    return getattr(record, "status", record)


def get_buckets(
    rooms: list[Room],
    rsvps: Mapping[str, Any],
    now: int,
    last_room_id: Optional[str] = None,
) -> CatalogBuckets:
    """rsvps maps room id to a UserRsvpRecord (or a bare status)."""
    states = {room.id: resolve_room(room, now) for room in rooms}
    live_rooms = [room for room in rooms if states[room.id] != RoomLifecycleState.ENDED]

    yours = [room for room in live_rooms if is_active_rsvp_status(_status_of(rsvps.get(room.id)))]
    yours.sort(key=lambda room: (0 if last_room_id and room.id == last_room_id else 1, *room_sort_key(room, now)))
    your_ids = {room.id for room in yours}

    def bucket(state: RoomLifecycleState) -> list[Room]:
        picked = [room for room in live_rooms if states[room.id] == state and room.id not in your_ids]
        return sorted(picked, key=lambda room: room_sort_key(room, now))

    return CatalogBuckets(
        yours=yours,
        upcoming=bucket(RoomLifecycleState.UPCOMING),
        current=bucket(RoomLifecycleState.CURRENT),
    )


async def load_catalog(store: DocumentStore, user_id: str, now: int) -> CatalogBuckets:
    rooms, rsvps, last_room_id = await asyncio.gather(
        list_rooms(store, now),
        get_user_rsvps(store, user_id),
        get_last_room_id(store, user_id),
    )
    return get_buckets(rooms, rsvps, now, last_room_id)


class CatalogWatcher:
    """
    Live catalog for one user.

    Holds explicit subscriptions to the room collection and the user's
    document subtree (RSVPs and profile); close() releases them.
    on_update is awaited only when bucket membership or order changed.
    """

    def __init__(
        self,
        store: DocumentStore,
        user_id: str,
        on_update: Callable[[CatalogBuckets], Awaitable[None]],
        clock: Clock = now_ms,
        tick_interval_s: Optional[float] = None,
    ):
        self.store = store
        self.user_id = user_id
        self.on_update = on_update
        self.clock = clock
        self.tick_interval_s = tick_interval_s or get_settings().CATALOG_TICK_INTERVAL_S

        self._rooms: list[Room] = []
        self._rsvps: dict = {}
        self._last_room_id: Optional[str] = None
        self._last_fingerprint: Optional[tuple] = None
        self._subscriptions: list[Subscription] = []
        self._tick_task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()
        self._closed = False

    async def start(self) -> CatalogBuckets:
        self._subscriptions.append(await self.store.subscribe(ROOMS_PATH, self._on_rooms_changed))
        self._subscriptions.append(
            await self.store.subscribe(user_profile_path(self.user_id), self._on_user_changed)
        )

        self._rooms = await list_rooms(self.store, self.clock())
        await self._reload_user()
        buckets = await self.recompute()

        self._tick_task = asyncio.create_task(self._tick_loop())
        logger.info("catalog_watch_started", user_id=self.user_id, rooms=len(self._rooms))
        return buckets

    async def close(self):
        # Notifications already in flight see this and emit nothing
        self._closed = True
        if self._tick_task:
            self._tick_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._tick_task
            self._tick_task = None
        for subscription in self._subscriptions:
            await subscription.close()
        self._subscriptions.clear()
        logger.info("catalog_watch_closed", user_id=self.user_id)

    async def recompute(self) -> CatalogBuckets:
        async with self._lock:
            buckets = get_buckets(self._rooms, self._rsvps, self.clock(), self._last_room_id)
            fingerprint = buckets.fingerprint()
            if not self._closed and fingerprint != self._last_fingerprint:
                self._last_fingerprint = fingerprint
                await self.on_update(buckets)
            return buckets

    async def _reload_user(self):
        self._rsvps, self._last_room_id = await asyncio.gather(
            get_user_rsvps(self.store, self.user_id),
            get_last_room_id(self.store, self.user_id),
        )

    async def _on_rooms_changed(self, path: str):
        if self._closed:
            return
        self._rooms = await list_rooms(self.store, self.clock())
        await self.recompute()

    async def _on_user_changed(self, path: str):
        if self._closed:
            return
        await self._reload_user()
        await self.recompute()

    async def _tick_loop(self):
        while True:
            await asyncio.sleep(self.tick_interval_s)
            await self.recompute()
