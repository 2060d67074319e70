# gapfill/scoring.py
"""Need / importance / duration scoring.

Need is the time-pressure half of a task's priority and is computed per task
kind:

  deadline  convex ramp from the creation-time floor to 1.0 at the deadline
  backlog   saturating growth with neglect, never mandatory
  routine   progress toward the period goal vs. time left in the period

Importance is the user-assigned half. The scheduler only consumes
`Score.priority` (need + importance, each capped at 1) and the durations.
"""

from __future__ import annotations

import datetime as dt
import math
from dataclasses import replace
from typing import Callable, Dict, Iterable, Optional, Tuple

from .config import DEFAULT_CONFIG, DurationConfig, EngineConfig, NeedRange, ScoringConfig
from .model import (
    BacklogDetail,
    Candidate,
    DeadlineDetail,
    RoutineDetail,
    Score,
    Task,
    TaskStatus,
)
from .util.period import is_same_period, period_progress, period_start
from .util.timefmt import snap_up

MANDATORY_TOLERANCE = 1e-6


def _clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


def _in_range(x: float, rng: NeedRange) -> float:
    return _clamp(x, rng.min_score, rng.max_score)


def remaining_work_fraction(task: Task, cfg: ScoringConfig) -> float:
    total = task.total_duration_expected or cfg.default_total_duration
    if total <= 0:
        return 1.0
    return 1.0 - min(task.status.time_spent_minutes / float(total), 1.0)


def _deadline_need(task: Task, detail: DeadlineDetail, now: dt.datetime, cfg: ScoringConfig) -> float:
    rng = cfg.deadline
    deadline = detail.deadline
    if now >= deadline or now.date() == deadline.date():
        return _in_range(1.0, rng)

    span_s = (deadline - task.created_at).total_seconds()
    if span_s <= 0:
        return _in_range(1.0, rng)

    p = _clamp((now - task.created_at).total_seconds() / span_s, 0.0, 1.0)
    base = rng.min_score + (rng.max_score - rng.min_score) * p ** cfg.deadline_ramp_exponent
    need = base * (0.3 + 0.7 * remaining_work_fraction(task, cfg))
    return _in_range(max(need, rng.min_score), rng)


def _backlog_need(task: Task, detail: BacklogDetail, now: dt.datetime, cfg: ScoringConfig) -> float:
    rng = cfg.backlog
    span = rng.max_score - rng.min_score
    if span <= 0:
        return rng.min_score
    ref = task.status.last_activity or task.created_at
    days = max(0.0, (now - ref).total_seconds() / 86400.0)
    growth = 1.0 - math.exp(-cfg.backlog_daily_growth * days / span)
    need = rng.min_score + span * growth * (0.3 + 0.7 * remaining_work_fraction(task, cfg))
    return _in_range(need, rng)


def completions_in_current_period(task: Task, now: dt.datetime) -> int:
    """Completion counter, treated as 0 once `now` is past the stored period."""
    detail = task.detail
    st = task.status
    if not isinstance(detail, RoutineDetail) or detail.goal is None:
        return st.completions_this_period
    if st.period_start is not None and not is_same_period(detail.goal.period, st.period_start, now.date()):
        return 0
    return st.completions_this_period


def _routine_need(task: Task, detail: RoutineDetail, now: dt.datetime, cfg: ScoringConfig) -> float:
    rng = cfg.routine
    span = rng.max_score - rng.min_score
    goal = detail.goal
    if goal is None or goal.count <= 0:
        return _in_range(rng.min_score + span * 0.4, rng)

    remaining = goal.count - completions_in_current_period(task, now)
    if remaining <= 0:
        return min(cfg.routine_goal_cap_score, rng.max_score)

    last = task.status.last_activity
    if last is not None and (now - last).total_seconds() < cfg.routine_cooldown_hours * 3600.0:
        return rng.min_score

    time_left = 1.0 - period_progress(goal.period, now)
    urgency = (remaining / float(goal.count)) / max(time_left, 0.1)
    return _in_range(rng.min_score + span * _clamp((urgency - 0.5) / 1.5, 0.0, 1.0), rng)


_NEED_BY_DETAIL: Dict[type, Callable[..., float]] = {
    DeadlineDetail: _deadline_need,
    BacklogDetail: _backlog_need,
    RoutineDetail: _routine_need,
}


def compute_need(task: Task, now: dt.datetime, cfg: Optional[ScoringConfig] = None) -> float:
    cfg = cfg or DEFAULT_CONFIG.scoring
    fn = _NEED_BY_DETAIL.get(type(task.detail))
    if fn is None:
        raise TypeError(f"Unsupported task detail: {type(task.detail).__name__}")
    return fn(task, task.detail, now, cfg)


def importance_weight(level: Optional[str], cfg: Optional[ScoringConfig] = None) -> float:
    w = (cfg or DEFAULT_CONFIG.scoring).importance
    return {"low": w.low, "medium": w.medium, "high": w.high}.get(str(level or "").lower(), w.medium)


def session_duration(task: Task, cfg: Optional[DurationConfig] = None) -> int:
    cfg = cfg or DEFAULT_CONFIG.duration
    sd = task.session_duration
    total = task.total_duration_expected
    if isinstance(sd, int) and sd > 0:
        dur = sd
    elif isinstance(total, int) and total > 0:
        dur = int(_clamp(math.ceil(total / cfg.sessions_per_total), cfg.min_session, cfg.max_session))
    else:
        dur = cfg.default_session
    return max(cfg.absolute_floor, int(dur))


def can_shrink(kind: str, cfg: Optional[EngineConfig] = None) -> bool:
    return kind in (cfg or DEFAULT_CONFIG).shrink.allowed_types


def shrink_floor(kind: str, duration: int, cfg: Optional[EngineConfig] = None) -> int:
    cfg = cfg or DEFAULT_CONFIG
    if not can_shrink(kind, cfg):
        return duration
    floor = snap_up(max(cfg.duration.absolute_floor, int(duration * cfg.shrink.min_factor)), cfg.shrink.step_minutes)
    return min(duration, floor)


def compute_priority(need: float, importance: float) -> float:
    return min(need, 1.0) + min(importance, 1.0)


def is_mandatory(need: float, cfg: Optional[ScoringConfig] = None) -> bool:
    cfg = cfg or DEFAULT_CONFIG.scoring
    return need >= cfg.mandatory_threshold - MANDATORY_TOLERANCE


def score_task(task: Task, now: dt.datetime, cfg: Optional[EngineConfig] = None) -> Score:
    cfg = cfg or DEFAULT_CONFIG
    need = compute_need(task, now, cfg.scoring)
    importance = importance_weight(task.importance, cfg.scoring)
    duration = session_duration(task, cfg.duration)
    return Score(
        need=need,
        importance=importance,
        duration=duration,
        base_duration=shrink_floor(task.kind, duration, cfg),
        priority=compute_priority(need, importance),
    )


def make_candidate(task: Task, now: dt.datetime, cfg: Optional[EngineConfig] = None) -> Candidate:
    cfg = cfg or DEFAULT_CONFIG
    score = score_task(task, now, cfg)
    return Candidate(task=task, score=score, mandatory=is_mandatory(score.need, cfg.scoring))


def score_tasks(tasks: Iterable[Task], now: dt.datetime, cfg: Optional[EngineConfig] = None) -> Tuple[Candidate, ...]:
    return tuple(make_candidate(t, now, cfg) for t in tasks)


def filter_displayable(candidates: Iterable[Candidate], cfg: Optional[ScoringConfig] = None) -> Tuple[Candidate, ...]:
    cfg = cfg or DEFAULT_CONFIG.scoring
    return tuple(c for c in candidates if c.score.need >= cfg.display_threshold)


def reduce_scores_for_accepted(
    candidates: Iterable[Candidate],
    accepted_task_ids: Iterable[str],
    cfg: Optional[ScoringConfig] = None,
) -> Tuple[Candidate, ...]:
    """Lower need/importance for tasks that already have an accepted session.

    The capped need keeps a repeat session below any mandatory task.
    """
    cfg = cfg or DEFAULT_CONFIG.scoring
    accepted = set(accepted_task_ids)
    out = []
    for c in candidates:
        if c.task_id not in accepted:
            out.append(c)
            continue
        need = min(c.score.need * cfg.accepted_reduction_factor, cfg.accepted_need_cap)
        importance = c.score.importance * cfg.accepted_reduction_factor
        score = replace(c.score, need=need, importance=importance, priority=compute_priority(need, importance))
        out.append(replace(c, score=score, mandatory=is_mandatory(need, cfg)))
    return tuple(out)


# --- Lifecycle helpers -----------------------------------------------------------


def is_active(task: Task) -> bool:
    return bool(task.active) and task.status.completion_state != "completed"


def is_task_complete(task: Task, cfg: Optional[ScoringConfig] = None) -> bool:
    cfg = cfg or DEFAULT_CONFIG.scoring
    total = task.total_duration_expected or cfg.default_total_duration
    return task.status.time_spent_minutes >= total


def is_routine_goal_reached(task: Task) -> bool:
    detail = task.detail
    if not isinstance(detail, RoutineDetail) or detail.goal is None:
        return False
    return task.status.completions_this_period >= detail.goal.count


def reset_period_if_needed(task: Task, now: dt.datetime) -> Task:
    """Return `task` with daily flags and period counters reset for `now`.

    Returns the same object when nothing changes.
    """
    st = task.status
    today = now.date()
    updates = {}

    if st.last_reset_date is not None and st.last_reset_date != today:
        if st.completed_today or st.time_spent_today:
            updates.update(completed_today=False, time_spent_today=0)
        updates["last_reset_date"] = today
    elif st.last_reset_date is None:
        updates["last_reset_date"] = today

    detail = task.detail
    if isinstance(detail, RoutineDetail) and detail.goal is not None:
        start = period_start(detail.goal.period, today)
        if st.period_start is None:
            updates["period_start"] = start
        elif st.period_start < start:
            updates.update(completions_this_period=0, period_start=start)

    if not updates:
        return task
    new_status: TaskStatus = replace(st, **updates)
    return replace(task, status=new_status)
