"""
Room lifecycle resolution.

A room's phase is derived from its schedule window and the operator's
live flag every time it is read. Rules, first match wins:

  1. start set and now < start              -> UPCOMING
  2. end set and now >= end                 -> ENDED
  3. live flag                              -> CURRENT
  4. start set, now >= start, before end    -> CURRENT
  5. otherwise (no schedule, not live)      -> UPCOMING

The end time is authoritative once passed: a live flag cannot revive an
ended room. A live flag does open a room that has no start time.
"""

from typing import Optional

from liveroom.models.room import Room, RoomAction, RoomLifecycleState, RoomWindow
from liveroom.models.rsvp import is_active_rsvp_status

_STATE_RANK = {
    RoomLifecycleState.CURRENT: 0,
    RoomLifecycleState.UPCOMING: 1,
    RoomLifecycleState.ENDED: 2,
}


def resolve_lifecycle(window: RoomWindow, live_flag: bool, now: int) -> RoomLifecycleState:
    start, end = window.start_ms, window.end_ms

    if start and now < start:
        return RoomLifecycleState.UPCOMING
    if end and now >= end:
        return RoomLifecycleState.ENDED
    if live_flag:
        return RoomLifecycleState.CURRENT
    if start and now >= start and (not end or now < end):
        return RoomLifecycleState.CURRENT

    return RoomLifecycleState.UPCOMING


def resolve_room(room: Room, now: int) -> RoomLifecycleState:
    return resolve_lifecycle(room.window, room.is_live, now)


def room_state_rank(state: RoomLifecycleState) -> int:
    return _STATE_RANK.get(state, 2)


def decide_room_action(room: Room, rsvp_status: Optional[str], now: int) -> RoomAction:
    """What tapping a room does for a caller with the given RSVP status."""
    state = resolve_room(room, now)

    if state == RoomLifecycleState.ENDED:
        return RoomAction.ENDED
    if state == RoomLifecycleState.UPCOMING:
        if is_active_rsvp_status(rsvp_status):
            return RoomAction.WAIT
        return RoomAction.REGISTER
    return RoomAction.ENTER
