"""
Locked-room countdown gate.

State machine:

  CLOSED --arm--> ARMED --> WAITING --tick(remaining<=0)--> EXPIRED
      --> RECONCILING --authoritative UPCOMING / timeout--> WAITING (stillLocked)
                      --authoritative CURRENT----------------> UNLOCKED (join)
                      --authoritative ENDED------------------> CLOSED

The local countdown only says when to ask again. Admission always waits for
a fresh read of the room from the store, because the client clock can be
skewed and the operator can delay the start.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

from liveroom.core.config import get_settings
from liveroom.core.errors import RoomNotFoundError, TransientStoreError
from liveroom.core.logging import get_logger
from liveroom.core.metrics import record_gate_event
from liveroom.models.audience import Identity
from liveroom.models.room import Room, RoomLifecycleState
from liveroom.services import audience_service
from liveroom.services.interfaces.document_store import DocumentStore
from liveroom.services.lifecycle_service import resolve_room
from liveroom.services.room_service import get_room
from liveroom.services.window_clock import Clock, now_ms, remaining_ms

logger = get_logger(__name__)

STILL_LOCKED_MESSAGE = "Room is still locked. Please wait a little more."
RECHECK_FAILED_MESSAGE = "Unable to open room right now. Please retry."
ENDED_MESSAGE = "This show has ended."


class GateState(str, Enum):
    CLOSED = "closed"
    ARMED = "armed"
    WAITING = "waiting"
    EXPIRED = "expired"
    RECONCILING = "reconciling"
    UNLOCKED = "unlocked"


class GateEventKind(str, Enum):
    ARMED = "armed"
    TICK = "tick"
    EXPIRED = "expired"
    STILL_LOCKED = "stillLocked"
    UNLOCKED = "unlocked"
    CLOSED = "closed"


@dataclass
class GateEvent:
    kind: GateEventKind
    room_id: str
    remaining_ms: Optional[int] = None
    message: Optional[str] = None
    session_key: Optional[str] = None


EmitFn = Callable[[GateEvent], Awaitable[None]]
JoinFn = Callable[[DocumentStore, str, Identity, Clock], Awaitable[str]]


class CountdownGate:

    def __init__(
        self,
        store: DocumentStore,
        identity: Identity,
        emit: EmitFn,
        clock: Clock = now_ms,
        joiner: JoinFn = audience_service.join,
        recheck_timeout_s: Optional[float] = None,
        recheck_interval_s: Optional[float] = None,
        tick_interval_s: Optional[float] = None,
    ):
        settings = get_settings()
        self.store = store
        self.identity = identity
        self.emit = emit
        self.clock = clock
        self.joiner = joiner
        self.recheck_timeout_s = recheck_timeout_s or settings.GATE_RECHECK_TIMEOUT_S
        self.recheck_interval_ms = int((recheck_interval_s or settings.GATE_RECHECK_INTERVAL_S) * 1000)
        self.tick_interval_s = tick_interval_s or settings.GATE_TICK_INTERVAL_S

        self.state = GateState.CLOSED
        self.room: Optional[Room] = None
        self.deadline_ms = 0
        self.session_key: Optional[str] = None

    async def _transition(self, state: GateState, kind: GateEventKind, **fields) -> None:
        self.state = state
        if kind != GateEventKind.TICK:
            record_gate_event(kind.value)
            logger.info("gate_transition", room_id=self.room.id, state=state.value, gate_event=kind.value)
        await self.emit(GateEvent(kind=kind, room_id=self.room.id, **fields))

    def _next_deadline(self, now: int) -> int:
        start = self.room.window.start_ms
        return start if start > now else now + self.recheck_interval_ms

    async def arm(self, room: Room) -> None:
        """Start counting down to the room's start."""
        self.room = room
        self.session_key = None
        now = self.clock()
        # No schedule: expire at once and let the fresh read decide
        self.deadline_ms = room.window.start_ms or now
        await self._transition(GateState.ARMED, GateEventKind.ARMED, remaining_ms=remaining_ms(self.deadline_ms, now))
        self.state = GateState.WAITING

    def disarm(self) -> None:
        self.state = GateState.CLOSED

    async def tick(self) -> None:
        """Advance the countdown; on expiry, reconcile with the store."""
        if self.state != GateState.WAITING:
            return
        remaining = remaining_ms(self.deadline_ms, self.clock())
        if remaining > 0:
            await self._transition(GateState.WAITING, GateEventKind.TICK, remaining_ms=remaining)
            return
        await self._transition(GateState.EXPIRED, GateEventKind.EXPIRED, remaining_ms=0)
        await self.reconcile()

    async def _fetch_authoritative(self) -> Room:
        try:
            return await get_room(self.store, self.room.id)
        except RoomNotFoundError:
            # Meta vanished: keep the schedule we armed with, drop the live flag
            return Room(id=self.room.id, window=self.room.window, rsvp_config=self.room.rsvp_config)

    async def _still_locked(self, message: str) -> None:
        now = self.clock()
        self.deadline_ms = self._next_deadline(now)
        await self._transition(
            GateState.WAITING,
            GateEventKind.STILL_LOCKED,
            remaining_ms=remaining_ms(self.deadline_ms, now),
            message=message,
        )

    async def reconcile(self) -> None:
        """Re-read the room from the store and admit only if it is CURRENT."""
        self.state = GateState.RECONCILING
        try:
            latest = await asyncio.wait_for(self._fetch_authoritative(), timeout=self.recheck_timeout_s)
        except asyncio.TimeoutError:
            logger.warning("gate_recheck_timeout", room_id=self.room.id, timeout_s=self.recheck_timeout_s)
            await self._still_locked(RECHECK_FAILED_MESSAGE)
            return
        except TransientStoreError as e:
            logger.warning("gate_recheck_failed", room_id=self.room.id, error=str(e))
            await self._still_locked(RECHECK_FAILED_MESSAGE)
            return

        self.room = latest
        state = resolve_room(latest, self.clock())

        if state == RoomLifecycleState.ENDED:
            await self._transition(GateState.CLOSED, GateEventKind.CLOSED, message=ENDED_MESSAGE)
            return
        if state == RoomLifecycleState.UPCOMING:
            await self._still_locked(STILL_LOCKED_MESSAGE)
            return

        try:
            self.session_key = await self.joiner(self.store, latest.id, self.identity, self.clock)
        except TransientStoreError as e:
            logger.warning("gate_join_failed", room_id=latest.id, error=str(e))
            await self._still_locked(RECHECK_FAILED_MESSAGE)
            return
        await self._transition(GateState.UNLOCKED, GateEventKind.UNLOCKED, session_key=self.session_key)

    async def run(self, room: Room) -> GateState:
        """Arm and drive the gate on a timer until it unlocks or closes."""
        await self.arm(room)
        while self.state == GateState.WAITING:
            await self.tick()
            if self.state == GateState.WAITING:
                await asyncio.sleep(self.tick_interval_s)
        return self.state
