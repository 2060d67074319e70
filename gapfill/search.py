# gapfill/search.py
"""Bounded beam search over gap allocations.

A state assigns (candidate, minutes) allocations to each gap. The search:

1. anchors mandatory candidates at their minimum duration, most constrained
   first, trying each feasible gap combination (capped) plus the placement of
   the best mandatory ordering;
2. walks gaps in time order; for each gap it expands anchored allocations
   to the expansion levels and fills the rest with further candidates;
3. keeps the best `beam_width` states after every gap.

States are ranked by (mandatory candidates placed, utility), so a
mandatory candidate is never traded away for optional work. Utility is
concave in allocated minutes:

    U = p * (1 - exp(-alpha * t / ideal)) + finish_bonus * p * [t >= ideal]
    U *= 1 + duration_need_bonus * ideal / 60

minus a switch cost per extra task in a gap and a cost per unused minute.
"""

from __future__ import annotations

import itertools
import logging
import math
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterator, List, Optional, Sequence, Tuple

from .config import DEFAULT_CONFIG, EngineConfig
from .enrich import is_exact_location_match, is_location_compatible
from .gaps import total_gap_minutes
from .model import Candidate, Gap, ScheduleResult
from .scheduler import (
    Placement,
    assign_order_to_gaps,
    build_schedule_result,
    effective_base,
    enumerate_best_order,
    knapsack_select,
    max_duration,
    partition_candidates,
    sort_by_priority,
)
from .util.timefmt import snap_down

logger = logging.getLogger(__name__)

# (pool index, minutes)
Alloc = Tuple[int, int]


@dataclass(frozen=True)
class SearchState:
    gaps: Tuple[Tuple[Alloc, ...], ...]
    used: FrozenSet[int]

    def gap_used(self, gi: int) -> int:
        return sum(m for _, m in self.gaps[gi])

    def with_gap(self, gi: int, allocs: Tuple[Alloc, ...], used: Optional[FrozenSet[int]] = None) -> "SearchState":
        gaps = self.gaps[:gi] + (allocs,) + self.gaps[gi + 1:]
        return SearchState(gaps=gaps, used=self.used if used is None else used)


def task_utility(minutes: int, ideal: int, priority: float, cfg: Optional[EngineConfig] = None) -> float:
    """Concave value of giving `minutes` to a task whose ideal session is `ideal`."""
    if minutes <= 0 or ideal <= 0:
        return 0.0
    s = (cfg or DEFAULT_CONFIG).search
    p = min(priority, s.max_priority)
    u = p * (1.0 - math.exp(-s.alpha * minutes / ideal))
    if minutes >= ideal:
        u += s.finish_bonus * p
    return u * (1.0 + s.duration_need_bonus * (ideal / 60.0))


def expansion_levels(remaining: int, base: int, cap: int, cfg: Optional[EngineConfig] = None) -> List[int]:
    """Candidate durations: fractions of `remaining` on the step grid, within [base, cap]."""
    cfg = cfg or DEFAULT_CONFIG
    step = int(cfg.shrink.step_minutes)
    out = set()
    for frac in cfg.search.expansion_levels:
        d = min(snap_down(int(remaining * frac), step), cap)
        if base <= d <= remaining:
            out.add(d)
    return sorted(out)


class _Context:
    def __init__(self, pool: Sequence[Candidate], gaps: Sequence[Gap], cfg: EngineConfig):
        self.pool = list(pool)
        self.gaps = list(gaps)
        self.cfg = cfg
        self.base = [effective_base(c, cfg) for c in self.pool]
        self.cap = [max_duration(c, cfg) for c in self.pool]
        self.compatible = [
            [is_location_compatible(c.task.location_preference, g.location_label) for g in self.gaps] for c in self.pool
        ]
        self.exact = [
            [is_exact_location_match(c.task.location_preference, g.location_label) for g in self.gaps] for c in self.pool
        ]
        self.scored = 0

    def utility(self, st: SearchState) -> float:
        s = self.cfg.search
        total = 0.0
        for gi, allocs in enumerate(st.gaps):
            for j, minutes in allocs:
                c = self.pool[j]
                u = task_utility(minutes, c.score.duration, c.score.priority, self.cfg)
                if self.exact[j][gi]:
                    u += s.location_match_bonus * min(c.score.priority, s.max_priority)
                total += u
            if len(allocs) > 1:
                total -= s.switch_cost * (len(allocs) - 1)
            unused = self.gaps[gi].duration - st.gap_used(gi)
            if unused > 0:
                total -= s.unused_cost * unused
        return total

    def rank_key(self, st: SearchState):
        self.scored += 1
        mandatory = sum(1 for j in st.used if self.pool[j].mandatory)
        return (-mandatory, -self.utility(st), st.gaps)

    def prune(self, states: Sequence[SearchState], k: int) -> List[SearchState]:
        unique: Dict[Tuple, SearchState] = {}
        for st in states:
            unique.setdefault(st.gaps, st)
        return sorted(unique.values(), key=self.rank_key)[: max(1, k)]


def _anchor_order(ctx: _Context, mandatory: Sequence[int]) -> List[int]:
    """Most constrained first: fewest gaps that could hold the minimum, then priority."""

    def fits(j: int) -> int:
        return sum(1 for gi, g in enumerate(ctx.gaps) if ctx.compatible[j][gi] and g.duration >= ctx.base[j])

    return sorted(mandatory, key=lambda j: (fits(j), j))


def _anchor_combinations(ctx: _Context, mandatory: Sequence[int]) -> Iterator[Tuple[Tuple[int, int], ...]]:
    """Yield (pool index, gap index) anchor tuples; unanchorable tasks are skipped."""
    order = _anchor_order(ctx, mandatory)

    def rec(i: int, used: List[int], acc: Tuple[Tuple[int, int], ...]) -> Iterator[Tuple[Tuple[int, int], ...]]:
        if i >= len(order):
            yield acc
            return
        j = order[i]
        valid = [
            gi for gi, g in enumerate(ctx.gaps)
            if ctx.compatible[j][gi] and g.duration - used[gi] >= ctx.base[j]
        ]
        if not valid:
            yield from rec(i + 1, used, acc)
            return
        for gi in valid:
            used[gi] += ctx.base[j]
            yield from rec(i + 1, used, acc + ((j, gi),))
            used[gi] -= ctx.base[j]

    yield from rec(0, [0] * len(ctx.gaps), ())


def _best_order_anchor(ctx: _Context, mandatory: Sequence[int]) -> Tuple[Tuple[int, int], ...]:
    """Anchors taken from the best mandatory ordering packed first-fit."""
    pool = [ctx.pool[j] for j in mandatory]
    order, _ = enumerate_best_order(pool, ctx.gaps, ctx.cfg)
    placements, _ = assign_order_to_gaps(order, ctx.gaps, ctx.cfg)
    index = {c.task_id: j for j, c in zip(mandatory, pool)}
    gap_index = {g.gap_id: gi for gi, g in enumerate(ctx.gaps)}
    return tuple((index[c.task_id], gap_index[g.gap_id]) for c, g, _, _ in placements)


def _anchor_state(ctx: _Context, combo: Sequence[Tuple[int, int]]) -> SearchState:
    per_gap: List[List[Alloc]] = [[] for _ in ctx.gaps]
    for j, gi in sorted(combo):
        per_gap[gi].append((j, ctx.base[j]))
    return SearchState(gaps=tuple(tuple(a) for a in per_gap), used=frozenset(j for j, _ in combo))


def _anchor_states(ctx: _Context, mandatory: Sequence[int]) -> List[SearchState]:
    limit = int(ctx.cfg.search.max_anchor_combinations or 64)
    states = [_anchor_state(ctx, combo) for combo in itertools.islice(_anchor_combinations(ctx, mandatory), limit)]
    if mandatory:
        greedy = _anchor_state(ctx, _best_order_anchor(ctx, mandatory))
        if all(st.gaps != greedy.gaps for st in states):
            states.append(greedy)
    if not states:
        states.append(SearchState(gaps=tuple(() for _ in ctx.gaps), used=frozenset()))
    return states


def _expand_branches(ctx: _Context, st: SearchState, gi: int) -> List[SearchState]:
    anchors = st.gaps[gi]
    if not anchors:
        return [st]
    branches = [st]
    total = ctx.gaps[gi].duration
    for pos in range(len(anchors)):
        nxt: List[SearchState] = []
        for br in branches:
            allocs = br.gaps[gi]
            j, _ = allocs[pos]
            others = sum(m for k, (_, m) in enumerate(allocs) if k != pos)
            levels = expansion_levels(total - others, ctx.base[j], ctx.cap[j], ctx.cfg)
            if not levels:
                nxt.append(br)
                continue
            for minutes in levels:
                new_allocs = allocs[:pos] + ((j, minutes),) + allocs[pos + 1:]
                nxt.append(br.with_gap(gi, new_allocs))
        branches = ctx.prune(nxt, ctx.cfg.search.beam_width)
    return branches


def _fill_branches(ctx: _Context, st: SearchState, gi: int) -> List[SearchState]:
    """Add further candidates to gap `gi`, one per depth, keeping a beam per depth.

    Candidates are added in pool (priority) order so the same set is never
    produced in two different orders.
    """
    s = ctx.cfg.search
    total = ctx.gaps[gi].duration
    out = [st]
    frontier: List[Tuple[SearchState, int]] = [(st, -1)]
    for _depth in range(int(s.max_tasks_per_gap)):
        nxt: List[Tuple[SearchState, int]] = []
        for cur, last in frontier:
            remaining = total - cur.gap_used(gi)
            for j in range(last + 1, len(ctx.pool)):
                if j in cur.used or not ctx.compatible[j][gi] or remaining < ctx.base[j]:
                    continue
                for minutes in expansion_levels(remaining, ctx.base[j], ctx.cap[j], ctx.cfg):
                    new = cur.with_gap(gi, cur.gaps[gi] + ((j, minutes),), used=cur.used | {j})
                    nxt.append((new, j))
        if not nxt:
            break
        last_by_state = {}
        for new, j in nxt:
            last_by_state.setdefault(new.gaps, j)
        kept = ctx.prune([new for new, _ in nxt], s.beam_width)
        frontier = [(k, last_by_state[k.gaps]) for k in kept]
        out.extend(k for k, _ in frontier)
    return out


def _placements(ctx: _Context, st: SearchState) -> List[Placement]:
    out: List[Placement] = []
    for gi, allocs in enumerate(st.gaps):
        g = ctx.gaps[gi]
        cursor = g.start
        for j, minutes in allocs:
            minutes = min(minutes, g.end - cursor)
            if minutes <= 0:
                continue
            out.append((ctx.pool[j], g, cursor, minutes))
            cursor += minutes
    return out


def schedule_with_search(
    candidates: Sequence[Candidate],
    gaps: Sequence[Gap],
    cfg: Optional[EngineConfig] = None,
) -> ScheduleResult:
    cfg = cfg or DEFAULT_CONFIG
    if not gaps or not candidates:
        return build_schedule_result([], candidates, strategy="search")

    mandatory, optional = partition_candidates(candidates)
    mandatory = sort_by_priority(mandatory)
    reserved = sum(effective_base(c, cfg) for c in mandatory)
    chosen = knapsack_select(optional, max(0, total_gap_minutes(gaps) - reserved), cfg)

    ctx = _Context(mandatory + sort_by_priority(chosen), gaps, cfg)
    anchors = _anchor_states(ctx, list(range(len(mandatory))))

    frontier = anchors
    for gi in range(len(ctx.gaps)):
        nxt: List[SearchState] = []
        for st in frontier:
            for br in _expand_branches(ctx, st, gi):
                nxt.extend(_fill_branches(ctx, br, gi))
        frontier = ctx.prune(nxt, cfg.search.beam_width)

    best = ctx.prune(frontier, 1)[0]
    logger.debug(
        "search: %d candidates, %d anchors, %d states scored", len(ctx.pool), len(anchors), ctx.scored
    )
    return build_schedule_result(
        _placements(ctx, best), candidates, strategy="search", orderings_evaluated=len(anchors)
    )
