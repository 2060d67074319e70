# gapfill/interval.py
"""Interval algebra over a single day, in minutes since midnight.

Intervals are plain (start, end) tuples with start < end. All helpers are
pure and return new lists.
"""

from __future__ import annotations

from typing import Iterable, List, Tuple

Span = Tuple[int, int]


def union_intervals(intervals: Iterable[Span]) -> List[Span]:
    """Merge overlapping and touching intervals (linear scan over sorted input)."""
    ivs = sorted((int(s), int(e)) for s, e in intervals if e > s)
    if not ivs:
        return []
    out: List[Span] = []
    cur_s, cur_e = ivs[0]
    for s, e in ivs[1:]:
        if s <= cur_e:
            cur_e = max(cur_e, e)
        else:
            out.append((cur_s, cur_e))
            cur_s, cur_e = s, e
    out.append((cur_s, cur_e))
    return out


def subtract(base: Span, blocks: Iterable[Span]) -> List[Span]:
    """Subtract `blocks` from `base` and return the free intervals in order."""
    a, b = base
    if a >= b:
        return []
    out: List[Span] = []
    cur = a
    for s, e in union_intervals(blocks):
        if e <= cur:
            continue
        if s >= b:
            break
        if s > cur:
            out.append((cur, min(s, b)))
        cur = max(cur, e)
        if cur >= b:
            break
    if cur < b:
        out.append((cur, b))
    return [(s, e) for s, e in out if e > s]


def overlaps(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    """Half-open overlap test; touching intervals do not overlap."""
    return a_start < b_end and b_start < a_end


def total_minutes(intervals: Iterable[Span]) -> int:
    return sum(max(0, e - s) for s, e in intervals)
