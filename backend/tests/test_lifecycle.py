"""
Tests for lifecycle resolution, room actions and schedule parsing.
"""

import pytest

from liveroom.models.room import Room, RoomAction, RoomLifecycleState, RoomWindow
from liveroom.services.lifecycle_service import decide_room_action, resolve_lifecycle, room_state_rank
from liveroom.services.window_clock import format_countdown, get_room_window, parse_time_ms, remaining_ms

NOW = 1_000_000


@pytest.mark.parametrize(
    "start, end, live, expected",
    [
        (NOW + 1, 0, False, RoomLifecycleState.UPCOMING),
        (NOW + 1, 0, True, RoomLifecycleState.UPCOMING),
        (NOW - 10, NOW, True, RoomLifecycleState.ENDED),
        (0, NOW - 1, False, RoomLifecycleState.ENDED),
        (0, 0, True, RoomLifecycleState.CURRENT),
        (NOW, 0, False, RoomLifecycleState.CURRENT),
        (NOW - 10, NOW + 10, False, RoomLifecycleState.CURRENT),
        (0, 0, False, RoomLifecycleState.UPCOMING),
        (0, NOW + 10, False, RoomLifecycleState.UPCOMING),
    ],
)
def test_resolve_lifecycle(start, end, live, expected):
    """Rules apply in order: future start, passed end, live flag, open window, default."""
    window = RoomWindow(start_ms=start, end_ms=end)
    assert resolve_lifecycle(window, live, NOW) == expected


def test_live_flag_cannot_revive_ended_room():
    window = RoomWindow(start_ms=NOW - 100, end_ms=NOW - 1)
    assert resolve_lifecycle(window, True, NOW) == RoomLifecycleState.ENDED


def test_state_rank_orders_current_first():
    ranks = [room_state_rank(state) for state in (
        RoomLifecycleState.CURRENT, RoomLifecycleState.UPCOMING, RoomLifecycleState.ENDED
    )]
    assert ranks == sorted(ranks)
    assert ranks[0] == 0


def test_decide_room_action():
    upcoming = Room(id="a", window=RoomWindow(start_ms=NOW + 1000))
    current = Room(id="b", is_live=True)
    ended = Room(id="c", window=RoomWindow(end_ms=NOW - 1))

    assert decide_room_action(upcoming, None, NOW) == RoomAction.REGISTER
    assert decide_room_action(upcoming, "cancelled", NOW) == RoomAction.REGISTER
    assert decide_room_action(upcoming, "Registered", NOW) == RoomAction.WAIT
    assert decide_room_action(upcoming, "waitlisted", NOW) == RoomAction.WAIT
    assert decide_room_action(current, None, NOW) == RoomAction.ENTER
    assert decide_room_action(ended, "registered", NOW) == RoomAction.ENDED


def test_parse_time_ms_accepts_numbers_and_iso_strings():
    assert parse_time_ms(1700000000000) == 1700000000000
    assert parse_time_ms(1700000000000.9) == 1700000000000
    assert parse_time_ms("1700000000000") == 1700000000000
    assert parse_time_ms("2026-01-01T00:00:00Z") == 1_767_225_600_000
    assert parse_time_ms("2026-01-01T00:00:00") == 1_767_225_600_000
    assert parse_time_ms("2026-01-01T05:30:00+05:30") == 1_767_225_600_000


@pytest.mark.parametrize("value", [None, "", "  ", "soon", True, float("nan"), float("inf"), {}, []])
def test_parse_time_ms_garbage_is_unset(value):
    assert parse_time_ms(value) == 0


def test_get_room_window_reads_event_config():
    window = get_room_window({"eventConfig": {"startTimeMs": 10, "endTimeMs": "20"}})
    assert (window.start_ms, window.end_ms) == (10, 20)

    legacy = get_room_window({"event_config": {"startTime": "1970-01-01T00:00:01Z"}})
    assert (legacy.start_ms, legacy.end_ms) == (1000, 0)

    assert get_room_window(None) == RoomWindow()
    assert get_room_window({"eventConfig": {"startTimeMs": -5}}).start_ms == 0


def test_countdown_formatting():
    assert remaining_ms(NOW + 5000, NOW) == 5000
    assert remaining_ms(NOW - 5000, NOW) == 0

    assert format_countdown(0) == "0s"
    assert format_countdown(7_000) == "7s"
    assert format_countdown(5 * 60_000 + 6_000) == "5m 6s"
    assert format_countdown(3 * 3_600_000 + 4 * 60_000) == "3h 4m"
    assert format_countdown(26 * 3_600_000) == "1d 2h"
    assert format_countdown(-50) == "0s"
