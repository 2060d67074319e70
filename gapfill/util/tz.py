# gapfill/util/tz.py
from __future__ import annotations

import datetime as dt
import re
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

_OFFSET_RE = re.compile(r"^([+-])(\d{2}):?(\d{2})$")


def normalize_tz_name(name: Optional[str]) -> str:
    """Canonical timezone name: "local", "UTC", an IANA name or a fixed offset."""
    s = "" if name is None else str(name).strip()
    if not s or s.lower() in {"local", "system"}:
        return "local"
    if s.lower() in {"utc", "z", "gmt"}:
        return "UTC"
    return s


def resolve_tz(name: Optional[str]) -> dt.tzinfo:
    """Resolve a timezone name into a tzinfo; ValueError for unknown names."""
    tz_name = normalize_tz_name(name)
    if tz_name == "UTC":
        return dt.timezone.utc
    if tz_name == "local":
        return dt.datetime.now().astimezone().tzinfo or dt.timezone.utc

    m = _OFFSET_RE.match(tz_name)
    if m:
        sign_s, hh_s, mm_s = m.groups()
        hh, mm = int(hh_s), int(mm_s)
        if hh > 23 or mm > 59:
            raise ValueError(f"Invalid timezone offset: {tz_name!r}")
        sign = 1 if sign_s == "+" else -1
        return dt.timezone(sign * dt.timedelta(hours=hh, minutes=mm))

    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as ex:
        raise ValueError(f"Invalid timezone identifier: {tz_name!r}") from ex


def to_wall_clock(d: Optional[dt.datetime], tz: dt.tzinfo) -> Optional[dt.datetime]:
    """Naive wall-clock time in `tz`.

    Aware datetimes are converted; naive ones are already taken to be
    wall-clock time in `tz` and pass through unchanged.
    """
    if d is None or d.tzinfo is None:
        return d
    return d.astimezone(tz).replace(tzinfo=None)
