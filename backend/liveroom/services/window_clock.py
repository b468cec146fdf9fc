"""
Window clock: epoch-millisecond time and room schedule parsing.
"""

import math
import time
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from liveroom.models.room import RoomWindow

Clock = Callable[[], int]


def now_ms() -> int:
    return int(time.time() * 1000)


def get_clock() -> Clock:
    """FastAPI dependency; tests override it with a controllable clock."""
    return now_ms


def parse_time_ms(value: Any) -> int:
    """
    Schedule value to epoch ms. Accepts numbers and ISO-8601 strings
    (naive strings are read as UTC). Anything else, or garbage, is 0 (unset).
    """
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value) if math.isfinite(value) else 0
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.isdigit():
            return int(text)
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return 0
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return int(parsed.timestamp() * 1000)
    return 0


def get_room_window(doc: Optional[dict]) -> RoomWindow:
    """Read the window from a room meta document's event config."""
    doc = doc or {}
    cfg = doc.get("eventConfig") or doc.get("event_config") or {}
    start = cfg.get("startTimeMs")
    end = cfg.get("endTimeMs")
    return RoomWindow(
        start_ms=parse_time_ms(start if start is not None else cfg.get("startTime")),
        end_ms=parse_time_ms(end if end is not None else cfg.get("endTime")),
    )


def remaining_ms(target_ms: int, now: int) -> int:
    return max(0, target_ms - now)


def format_countdown(ms_remaining: int) -> str:
    """1d 2h / 3h 4m / 5m 6s / 7s"""
    total_seconds = max(0, int(ms_remaining or 0)) // 1000
    days, rest = divmod(total_seconds, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, seconds = divmod(rest, 60)

    if days > 0:
        return f"{days}d {hours}h"
    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"
