"""JSON I/O for events, tasks, blockers and engine results (internal)."""

from __future__ import annotations

import dataclasses
import datetime as dt
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import orjson

from .model import (
    BacklogDetail,
    Blocker,
    DeadlineDetail,
    Event,
    Gap,
    RecurrenceGoal,
    RoutineDetail,
    ScheduleResult,
    Suggestion,
    COMPLETION_STATES,
    IMPORTANCE_LEVELS,
    LOCATION_PREFERENCES,
    TASK_KINDS,
    Task,
    TaskStatus,
)
from .util.period import PERIODS
from .util.timefmt import to_minutes

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class InputError(ValueError):
    """A JSON input document has the wrong shape."""


def _read_json(path: PathLike) -> Any:
    p = Path(path)
    try:
        return json.loads(p.read_text(encoding="utf-8", errors="replace"))
    except FileNotFoundError as e:
        raise InputError(f"file not found: {p}") from e
    except json.JSONDecodeError as e:
        raise InputError(f"{p}: invalid JSON ({e.msg} at line {e.lineno})") from e


def _records(obj: Any, key: str) -> List[Any]:
    if isinstance(obj, dict):
        if key not in obj:
            raise InputError(f"expected a list or an object with {key!r}")
        obj = obj[key]
    if not isinstance(obj, list):
        raise InputError(f"{key} must be a JSON list")
    return obj


def _as_int(v: Any) -> Optional[int]:
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, int):
        return v
    if isinstance(v, float) and v.is_integer():
        return int(v)
    return None


def _as_datetime(v: Any, field: str, ident: str) -> dt.datetime:
    if isinstance(v, dt.datetime):
        return v
    if not isinstance(v, str) or not v.strip():
        raise InputError(f"task {ident}: {field} must be an ISO datetime string")
    try:
        return dt.datetime.fromisoformat(v.strip())
    except ValueError as e:
        raise InputError(f"task {ident}: invalid {field} {v!r}") from e


def _as_date(v: Any, field: str, ident: str) -> Optional[dt.date]:
    if v is None:
        return None
    if not isinstance(v, str):
        raise InputError(f"task {ident}: {field} must be an ISO date string")
    try:
        return dt.date.fromisoformat(v.strip())
    except ValueError as e:
        raise InputError(f"task {ident}: invalid {field} {v!r}") from e


# --- Events --------------------------------------------------------------------


def event_from_dict(raw: Mapping[str, Any]) -> Optional[Event]:
    """Build an Event; returns None (and logs) for records without start/end."""
    start = raw.get("start")
    end = raw.get("end")
    if not isinstance(start, str) or not isinstance(end, str):
        logger.warning("Skipping event without string start/end: %r", dict(raw))
        return None
    loc = raw.get("location")
    return Event(
        start=start,
        end=end,
        title=str(raw.get("title") or ""),
        crosses_midnight=bool(raw.get("crosses_midnight", False)),
        source=str(raw.get("source") or "calendar"),
        location=str(loc) if loc is not None else None,
    )


def events_from_obj(obj: Any) -> Tuple[Event, ...]:
    out = []
    for raw in _records(obj, "events"):
        if not isinstance(raw, dict):
            logger.warning("Skipping non-object event record: %r", raw)
            continue
        ev = event_from_dict(raw)
        if ev is not None:
            out.append(ev)
    return tuple(out)


def load_events(path: PathLike) -> Tuple[Event, ...]:
    return events_from_obj(_read_json(path))


# --- Tasks ---------------------------------------------------------------------


def _status_from_dict(raw: Any, ident: str) -> TaskStatus:
    if raw is None:
        return TaskStatus()
    if not isinstance(raw, dict):
        raise InputError(f"task {ident}: status must be an object")
    state = raw.get("completion_state", "not_started")
    if state not in COMPLETION_STATES:
        raise InputError(f"task {ident}: unknown completion_state {state!r}")
    last = raw.get("last_activity")
    return TaskStatus(
        time_spent_minutes=_as_int(raw.get("time_spent_minutes")) or 0,
        time_spent_today=_as_int(raw.get("time_spent_today")) or 0,
        completion_state=state,
        last_activity=None if last is None else _as_datetime(last, "status.last_activity", ident),
        completions_this_period=_as_int(raw.get("completions_this_period")) or 0,
        period_start=_as_date(raw.get("period_start"), "status.period_start", ident),
        completed_today=bool(raw.get("completed_today", False)),
        last_reset_date=_as_date(raw.get("last_reset_date"), "status.last_reset_date", ident),
    )


def _goal_from_dict(raw: Any, ident: str) -> Optional[RecurrenceGoal]:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise InputError(f"task {ident}: goal must be an object")
    count = _as_int(raw.get("count"))
    period = raw.get("period")
    if count is None or count < 0:
        raise InputError(f"task {ident}: goal.count must be a non-negative integer")
    if period not in PERIODS:
        raise InputError(f"task {ident}: goal.period must be one of {', '.join(PERIODS)}")
    return RecurrenceGoal(count=count, period=period)


def task_from_dict(raw: Mapping[str, Any]) -> Task:
    ident = raw.get("id") or raw.get("task_id")
    if not isinstance(ident, str) or not ident.strip():
        raise InputError("every task needs a non-empty string id")
    kind = raw.get("kind")
    if kind == "deadline":
        if "deadline" not in raw:
            raise InputError(f"task {ident}: deadline tasks need a deadline")
        detail: Any = DeadlineDetail(deadline=_as_datetime(raw["deadline"], "deadline", ident))
    elif kind == "backlog":
        detail = BacklogDetail()
    elif kind == "routine":
        detail = RoutineDetail(goal=_goal_from_dict(raw.get("goal"), ident))
    else:
        raise InputError(f"task {ident}: unknown kind {kind!r} (expected one of {', '.join(TASK_KINDS)})")

    if "created_at" not in raw:
        raise InputError(f"task {ident}: created_at is required")
    importance = str(raw.get("importance") or "medium").lower()
    if importance not in IMPORTANCE_LEVELS:
        raise InputError(f"task {ident}: importance must be one of {', '.join(IMPORTANCE_LEVELS)}")
    preference = str(raw.get("location_preference") or "no_preference")
    if preference not in LOCATION_PREFERENCES:
        raise InputError(f"task {ident}: unknown location_preference {preference!r}")

    return Task(
        task_id=ident,
        title=str(raw.get("title") or ident),
        detail=detail,
        created_at=_as_datetime(raw["created_at"], "created_at", ident),
        importance=importance,
        session_duration=_as_int(raw.get("session_duration")),
        total_duration_expected=_as_int(raw.get("total_duration_expected")),
        location_preference=preference,
        status=_status_from_dict(raw.get("status"), ident),
        active=bool(raw.get("active", True)),
    )


def tasks_from_obj(obj: Any) -> Tuple[Task, ...]:
    out = []
    for raw in _records(obj, "tasks"):
        if not isinstance(raw, dict):
            raise InputError(f"task records must be objects; got {type(raw).__name__}")
        out.append(task_from_dict(raw))
    return tuple(out)


def load_tasks(path: PathLike) -> Tuple[Task, ...]:
    return tasks_from_obj(_read_json(path))


# --- Blockers ------------------------------------------------------------------


def _minute_value(v: Any) -> Optional[int]:
    if isinstance(v, str):
        return to_minutes(v)
    return _as_int(v)


def blockers_from_obj(obj: Any) -> Tuple[Blocker, ...]:
    out = []
    for raw in _records(obj, "blockers"):
        if not isinstance(raw, dict):
            logger.warning("Skipping non-object blocker record: %r", raw)
            continue
        try:
            start = _minute_value(raw.get("start"))
            end = _minute_value(raw.get("end"))
        except ValueError as e:
            logger.warning("Skipping blocker %r: %s", raw, e)
            continue
        if start is None or end is None or end <= start:
            logger.warning("Skipping blocker without a positive extent: %r", raw)
            continue
        out.append(Blocker(start=start, end=end, kind=str(raw.get("kind") or "accepted")))
    return tuple(out)


def load_blockers(path: PathLike) -> Tuple[Blocker, ...]:
    return blockers_from_obj(_read_json(path))


# --- Output --------------------------------------------------------------------


def gap_to_dict(g: Gap) -> Dict[str, Any]:
    return {
        "id": g.gap_id,
        "start": g.start_time,
        "end": g.end_time,
        "duration": g.duration,
        "label": g.duration_label,
        "location": g.location_label,
    }


def gaps_to_dict(gaps: Sequence[Gap]) -> Dict[str, Any]:
    return {
        "gaps": [gap_to_dict(g) for g in gaps],
        "total_minutes": sum(g.duration for g in gaps),
    }


def suggestion_to_dict(s: Suggestion) -> Dict[str, Any]:
    return {
        "task_id": s.task_id,
        "gap_id": s.gap_id,
        "start": s.start_time,
        "end": s.end_time,
        "duration": s.duration,
        "location": s.location_label,
        "need": round(s.need, 4),
        "importance": round(s.importance, 4),
        "priority": round(s.priority, 4),
        "mandatory": s.mandatory,
        "status": s.status.value,
    }


def result_to_dict(result: ScheduleResult, summary: Any = None) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "strategy": result.strategy,
        "scheduled": [suggestion_to_dict(s) for s in result.scheduled],
        "dropped": [suggestion_to_dict(s) for s in result.dropped],
        "total_scheduled_minutes": result.total_scheduled_minutes,
        "total_dropped_minutes": result.total_dropped_minutes,
        "orderings_evaluated": result.orderings_evaluated,
        "mandatory_dropped": list(result.mandatory_dropped),
    }
    if summary is not None:
        out["summary"] = dataclasses.asdict(summary)
    return out


def dumps_json(obj: Any) -> str:
    return orjson.dumps(obj, option=orjson.OPT_INDENT_2).decode("utf-8") + "\n"
