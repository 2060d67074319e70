# gapfill/gaps.py
"""Free-time gaps for one day.

`find_gaps` turns the day's fixed events into the complementary set of
gaps:

- merge overlapping events into fixed blocks;
- snap the gap start up and the gap end down to the grid;
- reserve a buffer before every following event (not before the day end).

Gap ids are derived from (snapped start, ordinal) so identical inputs give
identical ids.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence, Tuple

from .config import GapConfig
from .interval import subtract, union_intervals
from .model import Blocker, DayBoundaries, Event, FixedBlock, Gap
from .util.timefmt import hhmm_compact, snap_down, snap_up, to_minutes

logger = logging.getLogger(__name__)


def day_bounds_minutes(day: DayBoundaries) -> Tuple[int, int]:
    """Parse day boundaries; raises ValueError when they are malformed or empty."""
    start = to_minutes(day.day_start)
    end = to_minutes(day.day_end)
    if end <= start:
        raise ValueError(f"day_end must be after day_start ({day.day_start}-{day.day_end})")
    return start, end


def normalize_event(ev: Event, day_start: int, day_end: int) -> Optional[Tuple[int, int]]:
    """Clamp one event into the day frame; None when nothing usable remains."""
    try:
        s = to_minutes(ev.start)
        e = to_minutes(ev.end)
    except ValueError as exc:
        logger.warning("Excluding event %r: %s", ev.title, exc)
        return None

    if ev.crosses_midnight or e < s:
        # The part after midnight belongs to the next day's frame.
        e = day_end
    if s < day_start:
        s = day_start
    e = min(e, day_end)

    if e <= s:
        logger.debug("Event %r (%s-%s) has no extent inside the day frame", ev.title, ev.start, ev.end)
        return None
    return s, e


def fixed_blocks(events: Iterable[Event], day: DayBoundaries) -> Tuple[FixedBlock, ...]:
    day_start, day_end = day_bounds_minutes(day)
    spans: List[Tuple[int, int]] = []
    for ev in events:
        span = normalize_event(ev, day_start, day_end)
        if span is not None:
            spans.append(span)
    return tuple(FixedBlock(s, e) for s, e in union_intervals(spans))


def gap_id_for(start: int, ordinal: int) -> str:
    return f"gap-{hhmm_compact(start)}-{ordinal}"


def find_gaps(
    events: Sequence[Event],
    day: DayBoundaries,
    cfg: Optional[GapConfig] = None,
) -> Tuple[Gap, ...]:
    cfg = cfg or GapConfig()
    day_start, day_end = day_bounds_minutes(day)
    snap = int(cfg.snap_increment or 10)
    buffer_min = int(cfg.buffer_before_event or 0)

    blocks = fixed_blocks(events, day)
    raw = subtract((day_start, day_end), [(b.start, b.end) for b in blocks])

    out: List[Gap] = []
    for s, e in raw:
        start = snap_up(s, snap)
        end = snap_down(e, snap)
        if e != day_end:
            end -= buffer_min
        if end - start <= 0:
            continue
        out.append(Gap(gap_id=gap_id_for(start, len(out)), start=start, end=end))

    logger.debug("find_gaps: %d events -> %d blocks -> %d gaps", len(events), len(blocks), len(out))
    return tuple(out)


def subtract_blockers_from_gaps(
    gaps: Sequence[Gap],
    blockers: Sequence[Blocker],
    cfg: Optional[GapConfig] = None,
) -> Tuple[Gap, ...]:
    """Cut accepted/moved blockers out of gaps.

    Untouched gaps keep their id; a cut gap yields `{gap_id}-sub-{n}` pieces,
    re-snapped to the grid, and pieces shorter than `min_subgap_minutes` are
    dropped.
    """
    if not blockers:
        return tuple(gaps)
    cfg = cfg or GapConfig()
    snap = int(cfg.snap_increment or 10)
    min_len = int(cfg.min_subgap_minutes or 0)
    spans = [(int(b.start), int(b.end)) for b in blockers if b.end > b.start]

    out: List[Gap] = []
    for g in gaps:
        pieces = subtract((g.start, g.end), spans)
        if pieces == [(g.start, g.end)]:
            out.append(g)
            continue
        n = 0
        for s, e in pieces:
            s2 = snap_up(s, snap)
            e2 = snap_down(e, snap)
            if e2 - s2 < max(1, min_len):
                continue
            out.append(Gap(gap_id=f"{g.gap_id}-sub-{n}", start=s2, end=e2, location_label=g.location_label))
            n += 1
    return tuple(out)


def total_gap_minutes(gaps: Iterable[Gap]) -> int:
    return sum(g.duration for g in gaps)
