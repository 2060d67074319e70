# gapfill/engine.py
"""recompute(inputs) -> outputs.

One pure pass over the whole pipeline:

  gaps -> blocker subtraction -> location labels -> scoring -> scheduling

A reactive caller re-runs it whenever the date, events, tasks or clock
change. Identical inputs give identical outputs.
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, replace
from typing import Optional, Sequence, Tuple

from .config import DEFAULT_CONFIG, EngineConfig
from .enrich import Enricher, enrich_gaps_with_location
from .gaps import find_gaps, subtract_blockers_from_gaps, total_gap_minutes
from .model import Blocker, Candidate, DayBoundaries, DeadlineDetail, Event, Gap, RoutineDetail, ScheduleResult, Task
from .scheduler import partition_candidates, schedule_suggestions
from .scoring import (
    filter_displayable,
    is_active,
    is_routine_goal_reached,
    is_task_complete,
    reduce_scores_for_accepted,
    reset_period_if_needed,
    score_tasks,
)
from .util.tz import resolve_tz, to_wall_clock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EngineInputs:
    events: Tuple[Event, ...]
    tasks: Tuple[Task, ...]
    now: dt.datetime
    day: DayBoundaries = DayBoundaries()
    blockers: Tuple[Blocker, ...] = ()
    accepted_task_ids: Tuple[str, ...] = ()
    strategy: str = "search"
    tz: str = "local"


@dataclass(frozen=True)
class PipelineSummary:
    events: int
    gaps: int
    gap_minutes: int
    active_tasks: int
    candidates: int
    displayable: int
    mandatory: int
    optional: int
    scheduled: int
    dropped: int
    mandatory_dropped: int
    scheduled_minutes: int
    dropped_minutes: int


@dataclass(frozen=True)
class EngineOutputs:
    gaps: Tuple[Gap, ...]
    candidates: Tuple[Candidate, ...]
    result: ScheduleResult
    summary: PipelineSummary


def align_to_wall_clock(tasks: Sequence[Task], now: dt.datetime, tz: str = "local") -> Tuple[Tuple[Task, ...], dt.datetime]:
    """Bring `now` and every task datetime to naive wall-clock time in `tz`.

    Offset-aware and naive values can then be compared freely.
    """
    tzinfo = resolve_tz(tz)
    out = []
    for t in tasks:
        updates = {}
        created = to_wall_clock(t.created_at, tzinfo)
        if created is not t.created_at:
            updates["created_at"] = created
        if isinstance(t.detail, DeadlineDetail):
            deadline = to_wall_clock(t.detail.deadline, tzinfo)
            if deadline is not t.detail.deadline:
                updates["detail"] = replace(t.detail, deadline=deadline)
        last = to_wall_clock(t.status.last_activity, tzinfo)
        if last is not t.status.last_activity:
            updates["status"] = replace(t.status, last_activity=last)
        out.append(replace(t, **updates) if updates else t)
    return tuple(out), to_wall_clock(now, tzinfo)


def prepare_tasks(tasks: Sequence[Task], now: dt.datetime) -> Tuple[Task, ...]:
    """Active tasks with their daily/period counters brought up to `now`."""
    return tuple(reset_period_if_needed(t, now) for t in tasks if is_active(t))


def generate_candidates(
    tasks: Sequence[Task],
    now: dt.datetime,
    cfg: Optional[EngineConfig] = None,
    accepted_task_ids: Sequence[str] = (),
    tz: str = "local",
) -> Tuple[Candidate, ...]:
    """Score tasks without scheduling them (displayable candidates only)."""
    cfg = cfg or DEFAULT_CONFIG
    tasks, now = align_to_wall_clock(tasks, now, tz)
    scored = score_tasks(prepare_tasks(tasks, now), now, cfg)
    scored = reduce_scores_for_accepted(scored, accepted_task_ids, cfg.scoring)
    return filter_displayable(scored, cfg.scoring)


def recompute(
    inputs: EngineInputs,
    cfg: Optional[EngineConfig] = None,
    enricher: Enricher = enrich_gaps_with_location,
) -> EngineOutputs:
    cfg = cfg or DEFAULT_CONFIG

    gaps = find_gaps(inputs.events, inputs.day, cfg.gap)
    gaps = subtract_blockers_from_gaps(gaps, inputs.blockers, cfg.gap)
    gaps = tuple(enricher(gaps, inputs.events))

    tasks, now = align_to_wall_clock(inputs.tasks, inputs.now, inputs.tz)
    active = prepare_tasks(tasks, now)
    scored = reduce_scores_for_accepted(score_tasks(active, now, cfg), inputs.accepted_task_ids, cfg.scoring)
    candidates = filter_displayable(scored, cfg.scoring)
    result = schedule_suggestions(candidates, gaps, cfg, strategy=inputs.strategy)

    mandatory, optional = partition_candidates(candidates)
    summary = PipelineSummary(
        events=len(inputs.events),
        gaps=len(gaps),
        gap_minutes=total_gap_minutes(gaps),
        active_tasks=len(active),
        candidates=len(scored),
        displayable=len(candidates),
        mandatory=len(mandatory),
        optional=len(optional),
        scheduled=len(result.scheduled),
        dropped=len(result.dropped),
        mandatory_dropped=len(result.mandatory_dropped),
        scheduled_minutes=result.total_scheduled_minutes,
        dropped_minutes=result.total_dropped_minutes,
    )
    logger.info(
        "recompute: %d gaps (%d min), %d/%d candidates displayable, %d scheduled, %d dropped (%d mandatory)",
        summary.gaps,
        summary.gap_minutes,
        summary.displayable,
        summary.candidates,
        summary.scheduled,
        summary.dropped,
        summary.mandatory_dropped,
    )
    return EngineOutputs(gaps=gaps, candidates=candidates, result=result, summary=summary)


@dataclass(frozen=True)
class SessionComplete:
    task: Task
    is_now_complete: bool
    goal_reached: Optional[bool] = None


def mark_session_complete(
    task: Task,
    minutes_spent: int,
    now: dt.datetime,
    cfg: Optional[EngineConfig] = None,
) -> SessionComplete:
    """Record a finished session and return the updated task.

    Routines count one completion per session and never complete by time
    spent; other kinds complete once `total_duration_expected` is reached.
    """
    if minutes_spent < 0:
        raise ValueError(f"minutes_spent must be >= 0; got {minutes_spent}")
    cfg = cfg or DEFAULT_CONFIG

    task = reset_period_if_needed(task, now)
    st = task.status
    state = "in_progress" if st.completion_state == "not_started" else st.completion_state
    st = replace(
        st,
        time_spent_minutes=st.time_spent_minutes + int(minutes_spent),
        time_spent_today=st.time_spent_today + int(minutes_spent),
        completion_state=state,
        last_activity=now,
    )

    routine = isinstance(task.detail, RoutineDetail)
    if routine:
        st = replace(st, completions_this_period=st.completions_this_period + 1, completed_today=True)
    task = replace(task, status=st)

    done = (not routine) and is_task_complete(task, cfg.scoring)
    if done:
        task = replace(task, status=replace(task.status, completion_state="completed"))

    return SessionComplete(
        task=task,
        is_now_complete=done,
        goal_reached=is_routine_goal_reached(task) if routine else None,
    )
