# gapfill/util/period.py
from __future__ import annotations

import calendar
import datetime as dt

PERIODS = ("day", "week", "month")


def _check_period(period: str) -> str:
    p = str(period or "").strip().lower()
    if p not in PERIODS:
        raise ValueError(f"Unknown period: {period!r} (expected one of {', '.join(PERIODS)})")
    return p


def period_start(period: str, d: dt.date) -> dt.date:
    """Calendar-aligned start of the period containing `d` (weeks start Monday)."""
    p = _check_period(period)
    if p == "day":
        return d
    if p == "week":
        return d - dt.timedelta(days=d.weekday())
    return d.replace(day=1)


def period_length_days(period: str, d: dt.date) -> int:
    p = _check_period(period)
    if p == "day":
        return 1
    if p == "week":
        return 7
    return calendar.monthrange(d.year, d.month)[1]


def period_progress(period: str, now: dt.datetime) -> float:
    """Fraction [0, 1) of the current period already elapsed at `now`."""
    start = dt.datetime.combine(period_start(period, now.date()), dt.time(0, 0), tzinfo=now.tzinfo)
    total_s = period_length_days(period, now.date()) * 86400.0
    elapsed_s = (now - start).total_seconds()
    return max(0.0, min(1.0, elapsed_s / total_s))


def is_same_period(period: str, a: dt.date, b: dt.date) -> bool:
    return period_start(period, a) == period_start(period, b)
