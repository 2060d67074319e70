# gapfill/drag.py
"""Live re-placement of one suggestion while the user drags or resizes it.

Every function is pure: it takes the current gaps/blockers explicitly and
returns a new value. `None` means "no valid placement"; the caller keeps
its last known-good position.
"""

from __future__ import annotations

import math
from typing import Iterable, Optional, Sequence, Tuple

from .config import DEFAULT_CONFIG, EngineConfig
from .gaps import subtract_blockers_from_gaps
from .interval import overlaps
from .model import Blocker, ExtensionResult, Gap, SnapResult, Suggestion
from .util.timefmt import MINUTES_PER_DAY, snap_nearest

TWO_PI = 2.0 * math.pi


def min_duration_for_dots(dots: int, cfg: Optional[EngineConfig] = None) -> int:
    """Shortest duration drawn with `dots` dots (dot centers span the arc)."""
    g = (cfg or DEFAULT_CONFIG).gap
    if dots <= 1:
        return g.dot_edge_minutes
    return dots * g.minutes_per_dot - g.dot_edge_minutes


def min_drag_duration(cfg: Optional[EngineConfig] = None) -> int:
    cfg = cfg or DEFAULT_CONFIG
    return min_duration_for_dots(cfg.gap.min_dots_for_drag, cfg)


def time_ranges_overlap(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    return overlaps(a_start, a_end, b_start, b_end)


def find_overlapping_suggestions(target: Suggestion, others: Iterable[Suggestion]) -> Tuple[Suggestion, ...]:
    if not target.placed:
        return ()
    return tuple(
        s for s in others
        if s.task_id != target.task_id and s.placed
        and time_ranges_overlap(target.start, target.end, s.start, s.end)  # type: ignore[arg-type]
    )


def can_fit_in_gap(gap: Gap, duration: int) -> bool:
    return gap.duration >= duration


def position_with_shrink(
    cursor: int,
    duration: int,
    gap_start: int,
    gap_end: int,
    cfg: Optional[EngineConfig] = None,
) -> Optional[Tuple[int, int]]:
    """Center `duration` on `cursor`; pin (shrink, not slide) at the gap edges.

    None when the result is shorter than the minimum drag duration.
    """
    cfg = cfg or DEFAULT_CONFIG
    min_dur = min_drag_duration(cfg)
    snap = cfg.gap.drag_snap_minutes
    if gap_end - gap_start < min_dur:
        return None

    half = min(duration, gap_end - gap_start) / 2.0
    start = max(cursor - half, gap_start)
    end = min(cursor + half, gap_end)

    start_i = max(snap_nearest(start, snap), gap_start)
    end_i = min(snap_nearest(end, snap), gap_end)
    if end_i - start_i < min_dur:
        return None
    return start_i, end_i


def find_gap_for_cursor(
    cursor: int,
    gaps: Sequence[Gap],
    cfg: Optional[EngineConfig] = None,
    current_gap_id: Optional[str] = None,
) -> Optional[Gap]:
    """Pick the target gap for `cursor`.

    Inside a gap: that gap. Past the end of the current gap: the next gap;
    before its start: the previous one. Without a current gap: the nearest
    gap. None when the directional neighbor does not exist.
    """
    min_dur = min_drag_duration(cfg)
    valid = [g for g in sorted(gaps, key=lambda g: (g.start, g.gap_id)) if g.duration >= min_dur]
    if not valid:
        return None

    for g in valid:
        if g.start <= cursor <= g.end:
            return g

    idx = next((i for i, g in enumerate(valid) if g.gap_id == current_gap_id), -1)
    if idx >= 0:
        cur = valid[idx]
        if cursor > cur.end:
            return valid[idx + 1] if idx + 1 < len(valid) else None
        if cursor < cur.start:
            return valid[idx - 1] if idx > 0 else None

    if cursor < valid[0].start:
        return valid[0]
    for g, nxt in zip(valid, valid[1:]):
        if g.end < cursor < nxt.start:
            return nxt if (nxt.start - cursor) < (cursor - g.end) else g
    return valid[-1]


def snap_to_gap(
    cursor: float,
    duration: int,
    gaps: Sequence[Gap],
    cfg: Optional[EngineConfig] = None,
    current_gap_id: Optional[str] = None,
    blockers: Sequence[Blocker] = (),
) -> Optional[SnapResult]:
    cfg = cfg or DEFAULT_CONFIG
    if blockers:
        gaps = subtract_blockers_from_gaps(gaps, blockers, cfg.gap)
    if not gaps:
        return None

    c = snap_nearest(cursor, cfg.gap.drag_snap_minutes)
    gap = find_gap_for_cursor(c, gaps, cfg, current_gap_id)
    if gap is None:
        return None

    pos = position_with_shrink(c, duration, gap.start, gap.end, cfg)
    if pos is None:
        # Jumping in keeps the dragged duration, re-clamped to this gap.
        keep = max(min_drag_duration(cfg), min(int(duration), gap.duration))
        if c <= gap.start:
            pos = (gap.start, gap.start + keep)
        else:
            pos = (gap.end - keep, gap.end)

    return SnapResult(start=pos[0], end=pos[1], target_gap=gap, snapped=gap.gap_id != current_gap_id)


# --- Duration adjustment -----------------------------------------------------------


def _first_blocker_after(start: int, blockers: Iterable[Blocker]) -> Optional[int]:
    after = [b.start for b in blockers if b.start >= start]
    return min(after) if after else None


def calculate_max_duration(start: int, gap_end: int, blockers: Sequence[Blocker] = ()) -> int:
    """Longest duration from a fixed `start` before the gap end or the next blocker."""
    limit = gap_end
    nxt = _first_blocker_after(start, blockers)
    if nxt is not None:
        limit = min(limit, nxt)
    return max(0, limit - start)


def adjust_duration(
    duration: int,
    delta_steps: int,
    cfg: Optional[EngineConfig] = None,
    max_duration: Optional[int] = None,
    min_duration: Optional[int] = None,
) -> int:
    """Step the duration by whole drag-snap increments within [min, max]."""
    cfg = cfg or DEFAULT_CONFIG
    lo = min_drag_duration(cfg) if min_duration is None else int(min_duration)
    out = int(duration) + int(delta_steps) * cfg.gap.drag_snap_minutes
    if max_duration is not None:
        out = min(out, int(max_duration))
    return max(out, lo)


def calculate_new_end(start: int, duration: int) -> int:
    return int(start) + int(duration)


def calculate_extension(
    midpoint: int,
    target_duration: int,
    gap_start: int,
    gap_end: int,
    blockers: Sequence[Blocker] = (),
) -> ExtensionResult:
    """Grow (or shrink) a suggestion around its midpoint.

    Symmetric growth is tried first; otherwise the side with more room takes
    the remainder. `blocked` is set whenever the target is not reached.
    """
    lo_bound = gap_start
    hi_bound = gap_end
    for b in sorted(blockers, key=lambda b: (b.start, b.end)):
        if b.end <= midpoint:
            lo_bound = max(lo_bound, b.end)
        if b.start >= midpoint:
            hi_bound = min(hi_bound, b.start)
            break

    back = max(0, midpoint - lo_bound)
    fwd = max(0, hi_bound - midpoint)
    max_possible = back + fwd
    target = min(int(target_duration), max_possible)

    half = -(-target // 2)
    if back >= half and fwd >= target - half:
        start, end = midpoint - half, midpoint + (target - half)
    elif back > fwd:
        end = midpoint + fwd
        start = end - target
    else:
        start = midpoint - back
        end = start + target

    start = max(start, lo_bound)
    end = min(end, hi_bound)
    actual = end - start

    blocked = actual < target_duration
    reason = None
    if blocked:
        if back < fwd:
            reason = "Limited by previous block" if lo_bound > gap_start else "Limited by gap edge"
        else:
            reason = "Limited by next block" if hi_bound < gap_end else "Limited by gap edge"

    return ExtensionResult(
        duration=actual,
        start=start,
        end=end,
        max_allowed_duration=max_possible,
        blocked=blocked,
        block_reason=reason,
    )


def blockers_from_accepted(
    suggestions: Iterable[Suggestion],
    exclude_task_id: Optional[str] = None,
) -> Tuple[Blocker, ...]:
    return tuple(
        s.as_blocker("accepted") for s in suggestions
        if s.placed and s.task_id != exclude_task_id
    )


# --- Dial geometry ---------------------------------------------------------------


def angle_to_minutes(angle: float) -> int:
    """Radians on the 24h dial (0 at 12 o'clock, clockwise) -> minutes."""
    a = angle % TWO_PI
    return int(a / TWO_PI * MINUTES_PER_DAY + 0.5) % MINUTES_PER_DAY


def minutes_to_angle(minutes: float) -> float:
    return (float(minutes) % MINUTES_PER_DAY) / MINUTES_PER_DAY * TWO_PI


def coords_to_angle(x: float, y: float, center_x: float = 50.0, center_y: float = 50.0) -> float:
    """Point on the dial -> radians clockwise from 12 o'clock, in [0, 2*pi)."""
    angle = math.atan2(x - center_x, -(y - center_y))
    return angle + TWO_PI if angle < 0 else angle
