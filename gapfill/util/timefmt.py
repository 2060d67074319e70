# gapfill/util/timefmt.py
from __future__ import annotations

import re
from typing import Tuple

MINUTES_PER_DAY = 1440

_HHMM_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


def parse_hhmm(s: str) -> Tuple[int, int]:
    if not isinstance(s, str):
        raise ValueError(f"Invalid HH:MM: {s!r}")
    m = _HHMM_RE.match(s.strip())
    if not m:
        raise ValueError(f"Invalid HH:MM: {s!r}")
    hh = int(m.group(1))
    mm = int(m.group(2))
    # 24:00 is accepted as the end of the day frame.
    if hh == 24 and mm == 0:
        return hh, mm
    if not (0 <= hh <= 23 and 0 <= mm <= 59):
        raise ValueError(f"Invalid HH:MM: {s!r}")
    return hh, mm


def to_minutes(s: str) -> int:
    """HH:MM -> minutes since midnight."""
    hh, mm = parse_hhmm(s)
    return hh * 60 + mm


def minutes_to_hhmm(minutes: int) -> str:
    """Minutes since midnight -> zero-padded HH:MM (wraps at midnight)."""
    m = int(minutes) % MINUTES_PER_DAY
    return f"{m // 60:02d}:{m % 60:02d}"


def hhmm_compact(minutes: int) -> str:
    return minutes_to_hhmm(minutes).replace(":", "")


def snap_up(minutes: int, snap_min: int) -> int:
    if snap_min <= 1:
        return int(minutes)
    return -(-int(minutes) // snap_min) * snap_min


def snap_down(minutes: int, snap_min: int) -> int:
    if snap_min <= 1:
        return int(minutes)
    return (int(minutes) // snap_min) * snap_min


def snap_nearest(minutes: float, snap_min: int) -> int:
    # Half-up rounding; round() would use banker's rounding on .5.
    if snap_min <= 1:
        return int(minutes + 0.5) if minutes >= 0 else -int(-minutes + 0.5)
    q = minutes / snap_min
    n = int(q + 0.5) if q >= 0 else -int(-q + 0.5)
    return n * snap_min


def format_duration(minutes: int) -> str:
    """Human label: "1h 30m", "2h", "45m"."""
    minutes = max(0, int(minutes))
    hours, mins = divmod(minutes, 60)
    if hours and mins:
        return f"{hours}h {mins}m"
    if hours:
        return f"{hours}h"
    return f"{mins}m"
