# gapfill/scheduler.py
"""Packing scored candidates into gaps.

Building blocks shared by both strategies live here:

- partition and priority sort;
- 0/1 knapsack selection of optional work;
- ordering enumeration for mandatory work;
- per-gap duration allocation (shrink, restore, tiered extension).

`schedule_greedy` chains them directly. `schedule_suggestions` dispatches
between the greedy strategy and the beam search in `gapfill.search`.
"""

from __future__ import annotations

import itertools
import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .config import DEFAULT_CONFIG, EngineConfig
from .enrich import is_location_compatible
from .gaps import total_gap_minutes
from .model import Candidate, Gap, ScheduleResult, Suggestion, SuggestionStatus
from .scoring import can_shrink
from .util.timefmt import snap_down

logger = logging.getLogger(__name__)

STRATEGIES = ("search", "greedy")

# (candidate, gap, start, duration)
Placement = Tuple[Candidate, Gap, int, int]


def partition_candidates(candidates: Iterable[Candidate]) -> Tuple[List[Candidate], List[Candidate]]:
    mandatory: List[Candidate] = []
    optional: List[Candidate] = []
    for c in candidates:
        (mandatory if c.mandatory else optional).append(c)
    return mandatory, optional


def _priority_key(c: Candidate):
    return (-c.score.priority, -c.score.need, c.score.duration, c.task_id)


def sort_by_priority(candidates: Iterable[Candidate]) -> List[Candidate]:
    """Highest priority first; ties prefer higher need, then shorter duration."""
    return sorted(candidates, key=_priority_key)


def effective_base(c: Candidate, cfg: Optional[EngineConfig] = None) -> int:
    """Minimum minutes `c` may be placed with."""
    if can_shrink(c.kind, cfg):
        return c.score.base_duration
    return c.score.duration


def max_duration(c: Candidate, cfg: Optional[EngineConfig] = None) -> int:
    """Upper bound for `c` once slack is handed out."""
    cfg = cfg or DEFAULT_CONFIG
    ext = cfg.extension
    if not ext.enabled:
        return c.score.duration
    return max(c.score.duration, snap_down(int(c.score.duration * ext.max_factor), ext.step_minutes))


def effective_duration_with_shrink(c: Candidate, available: int, cfg: Optional[EngineConfig] = None) -> Optional[int]:
    """Duration `c` gets in `available` minutes, or None when it does not fit.

    Full duration when it fits. Shrinkable kinds otherwise take the largest
    shrink step that fits without going below their floor.
    """
    cfg = cfg or DEFAULT_CONFIG
    duration = c.score.duration
    floor = effective_base(c, cfg)
    if available < floor:
        return None
    if available >= duration:
        return duration
    snapped = snap_down(available, cfg.shrink.step_minutes)
    return snapped if snapped >= floor else None


def knapsack_select(
    candidates: Sequence[Candidate],
    capacity: int,
    cfg: Optional[EngineConfig] = None,
) -> List[Candidate]:
    """0/1 knapsack over minutes: maximize total priority within `capacity`.

    Values are integer milli-priorities so results do not depend on float
    summation order. Items are visited in priority order and only strict
    improvements replace a cell, so equal-value ties keep higher-priority and
    shorter items. Equal total value prefers more items.
    """
    cap = max(0, int(capacity))
    items = sort_by_priority(candidates)
    if cap == 0 or not items:
        return []

    weights = [effective_base(c, cfg) for c in items]
    values = [int(round(c.score.priority * 1000)) for c in items]

    best: List[Tuple[int, int]] = [(0, 0)] * (cap + 1)
    took: List[List[bool]] = []
    for w, v in zip(weights, values):
        row = [False] * (cap + 1)
        for c in range(cap, w - 1, -1):
            prev_v, prev_n = best[c - w]
            cand = (prev_v + v, prev_n + 1)
            if cand > best[c]:
                best[c] = cand
                row[c] = True
        took.append(row)

    chosen: List[int] = []
    c = cap
    for i in range(len(items) - 1, -1, -1):
        if took[i][c]:
            chosen.append(i)
            c -= weights[i]
    return [items[i] for i in sorted(chosen)]


def _evaluate_order(order: Sequence[Candidate], gaps: Sequence[Gap], cfg: EngineConfig) -> Tuple[int, int]:
    remaining = [g.duration for g in gaps]
    placed = 0
    minutes = 0
    for c in order:
        for i, g in enumerate(gaps):
            eff = effective_duration_with_shrink(c, remaining[i], cfg)
            if eff is None or not is_location_compatible(c.task.location_preference, g.location_label):
                continue
            remaining[i] -= eff
            placed += 1
            minutes += eff
            break
        else:
            break
    return placed, minutes


def enumerate_best_order(
    candidates: Sequence[Candidate],
    gaps: Sequence[Gap],
    cfg: Optional[EngineConfig] = None,
) -> Tuple[List[Candidate], int]:
    """Try every ordering (small inputs only) and keep the one that places most.

    Returns (order, orderings evaluated). Above `permutation_limit` the
    priority order is returned unevaluated.
    """
    cfg = cfg or DEFAULT_CONFIG
    ordered = sort_by_priority(candidates)
    n = len(ordered)
    if n == 0:
        return [], 0
    limit = int(cfg.search.permutation_limit or 8)
    if n > limit:
        logger.warning("Ordering enumeration skipped: %d candidates > limit %d; using priority order", n, limit)
        return ordered, 0

    best = list(ordered)
    best_score = -1
    evaluated = 0
    for perm in itertools.permutations(ordered):
        evaluated += 1
        placed, minutes = _evaluate_order(perm, gaps, cfg)
        score = placed * 10000 + minutes
        if score > best_score:
            best_score = score
            best = list(perm)
    return best, evaluated


def _tiers(cfg: EngineConfig) -> List[Tuple[float, float]]:
    t = cfg.tiers
    inf = float("inf")
    return [(t.mandatory, inf), (t.high, t.mandatory), (t.normal, t.high), (-inf, t.normal)]


def allocate_durations_to_gap(
    candidates: Sequence[Candidate],
    gap_duration: int,
    cfg: Optional[EngineConfig] = None,
) -> Tuple[Dict[str, int], List[Candidate]]:
    """Split one gap's minutes between competing candidates (given in order).

    Phase 1 reserves each candidate's minimum while it fits. Phase 2 restores
    candidates toward their ideal duration, tier by tier, in proportion to
    what each is missing. Phase 3 hands out what is left in extension steps,
    tier by tier, up to `max_duration`. Returns (task_id -> minutes, rejected).
    """
    cfg = cfg or DEFAULT_CONFIG
    alloc: Dict[str, int] = {}
    selected: List[Candidate] = []
    rejected: List[Candidate] = []

    used = 0
    for c in candidates:
        base = effective_base(c, cfg)
        if used + base <= gap_duration:
            selected.append(c)
            alloc[c.task_id] = base
            used += base
        else:
            rejected.append(c)

    remaining = gap_duration - used
    tiers = _tiers(cfg)

    for lo, hi in tiers:
        if remaining <= 0:
            break
        tier = [c for c in selected if lo <= c.score.need < hi]
        wants = [(c, max(0, c.score.duration - alloc[c.task_id])) for c in tier]
        total_want = sum(w for _, w in wants)
        if total_want <= 0:
            continue
        give = min(remaining, total_want)
        for c, want in wants:
            extra = (want * give) // total_want
            alloc[c.task_id] += extra
            remaining -= extra

    ext = cfg.extension
    if ext.enabled and remaining >= ext.min_extra_minutes:
        step = int(ext.step_minutes)
        for lo, hi in tiers:
            tier = [c for c in selected if lo <= c.score.need < hi]
            progressed = True
            while progressed and remaining >= step:
                progressed = False
                for c in tier:
                    if remaining < step:
                        break
                    if alloc[c.task_id] + step <= max_duration(c, cfg):
                        alloc[c.task_id] += step
                        remaining -= step
                        progressed = True

    grid = int(cfg.shrink.step_minutes)
    for c in selected:
        snapped = snap_down(alloc[c.task_id], grid)
        if snapped >= effective_base(c, cfg):
            alloc[c.task_id] = snapped

    return alloc, rejected


def assign_order_to_gaps(
    ordered: Sequence[Candidate],
    gaps: Sequence[Gap],
    cfg: Optional[EngineConfig] = None,
) -> Tuple[List[Placement], List[Candidate]]:
    """Walk gaps in time order and pack the still-unplaced candidates into each.

    Returns (placements, unplaced) with unplaced in input order.
    """
    cfg = cfg or DEFAULT_CONFIG
    pending = list(ordered)
    placements: List[Placement] = []

    for g in gaps:
        if not pending:
            break
        compatible = [c for c in pending if is_location_compatible(c.task.location_preference, g.location_label)]
        if not compatible:
            continue
        alloc, _ = allocate_durations_to_gap(compatible, g.duration, cfg)
        cursor = g.start
        placed_ids = set()
        for c in compatible:
            minutes = alloc.get(c.task_id)
            if not minutes:
                continue
            placements.append((c, g, cursor, minutes))
            cursor += minutes
            placed_ids.add(c.task_id)
        pending = [c for c in pending if c.task_id not in placed_ids]

    return placements, pending


def _to_suggestion(c: Candidate, gap: Optional[Gap], start: Optional[int], minutes: int) -> Suggestion:
    placed = gap is not None and start is not None
    return Suggestion(
        task_id=c.task_id,
        gap_id=gap.gap_id if placed else None,
        start=start if placed else None,
        end=(start + minutes) if placed else None,
        duration=minutes,
        location_label=gap.location_label if placed else None,
        need=c.score.need,
        importance=c.score.importance,
        priority=c.score.priority,
        mandatory=c.mandatory,
        status=SuggestionStatus.PENDING if placed else SuggestionStatus.DROPPED,
    )


def build_schedule_result(
    placements: Sequence[Placement],
    candidates: Sequence[Candidate],
    *,
    strategy: str,
    orderings_evaluated: int = 0,
) -> ScheduleResult:
    """Assemble a ScheduleResult; every candidate without a placement is dropped."""
    scheduled = sorted(
        (_to_suggestion(c, g, start, minutes) for c, g, start, minutes in placements),
        key=lambda s: (s.start, s.gap_id, s.task_id),
    )
    placed_ids = {c.task_id for c, _, _, _ in placements}
    dropped = [_to_suggestion(c, None, None, c.score.duration) for c in sort_by_priority(candidates) if c.task_id not in placed_ids]
    mandatory_dropped = tuple(s.task_id for s in dropped if s.mandatory)
    if mandatory_dropped:
        logger.warning("Mandatory tasks could not be placed: %s", ", ".join(mandatory_dropped))
    return ScheduleResult(
        scheduled=tuple(scheduled),
        dropped=tuple(dropped),
        total_scheduled_minutes=sum(s.duration for s in scheduled),
        total_dropped_minutes=sum(s.duration for s in dropped),
        orderings_evaluated=orderings_evaluated,
        mandatory_dropped=mandatory_dropped,
        strategy=strategy,
    )


def schedule_greedy(
    candidates: Sequence[Candidate],
    gaps: Sequence[Gap],
    cfg: Optional[EngineConfig] = None,
) -> ScheduleResult:
    cfg = cfg or DEFAULT_CONFIG
    mandatory, optional = partition_candidates(candidates)
    order, evaluated = enumerate_best_order(mandatory, gaps, cfg)

    reserved = sum(effective_base(c, cfg) for c in mandatory)
    capacity = max(0, total_gap_minutes(gaps) - reserved)
    chosen = knapsack_select(optional, capacity, cfg)

    placements, _ = assign_order_to_gaps(order + sort_by_priority(chosen), gaps, cfg)
    return build_schedule_result(placements, candidates, strategy="greedy", orderings_evaluated=evaluated)


def schedule_suggestions(
    candidates: Sequence[Candidate],
    gaps: Sequence[Gap],
    cfg: Optional[EngineConfig] = None,
    *,
    strategy: str = "search",
) -> ScheduleResult:
    if strategy == "greedy":
        return schedule_greedy(candidates, gaps, cfg)
    if strategy == "search":
        from .search import schedule_with_search

        return schedule_with_search(candidates, gaps, cfg)
    raise ValueError(f"Unknown strategy: {strategy!r} (expected one of {', '.join(STRATEGIES)})")
