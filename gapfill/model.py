# gapfill/model.py
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Tuple, Union

from .util.timefmt import format_duration, minutes_to_hhmm


IMPORTANCE_LEVELS = ("low", "medium", "high")
LOCATION_PREFERENCES = ("home", "near_home", "workplace", "near_workplace", "no_preference")
COMPLETION_STATES = ("not_started", "in_progress", "completed")


# --- Timeline ----------------------------------------------------------------


@dataclass(frozen=True)
class DayBoundaries:
    day_start: str = "08:00"
    day_end: str = "23:00"


@dataclass(frozen=True)
class Event:
    start: str
    end: str
    title: str = ""
    crosses_midnight: bool = False
    source: str = "calendar"  # "calendar" | "timetable" | free-form
    location: Optional[str] = None


@dataclass(frozen=True)
class FixedBlock:
    start: int
    end: int

    @property
    def duration(self) -> int:
        return self.end - self.start


@dataclass(frozen=True)
class Gap:
    gap_id: str
    start: int
    end: int
    location_label: Optional[str] = None

    @property
    def duration(self) -> int:
        return self.end - self.start

    @property
    def start_time(self) -> str:
        return minutes_to_hhmm(self.start)

    @property
    def end_time(self) -> str:
        return minutes_to_hhmm(self.end)

    @property
    def duration_label(self) -> str:
        return format_duration(self.duration)


@dataclass(frozen=True)
class Blocker:
    start: int
    end: int
    kind: str = "event"  # "event" | "accepted" | "moved"


# --- Tasks -------------------------------------------------------------------


@dataclass(frozen=True)
class RecurrenceGoal:
    count: int
    period: str  # "day" | "week" | "month"


@dataclass(frozen=True)
class TaskStatus:
    time_spent_minutes: int = 0
    time_spent_today: int = 0
    completion_state: str = "not_started"
    last_activity: Optional[dt.datetime] = None
    completions_this_period: int = 0
    period_start: Optional[dt.date] = None
    completed_today: bool = False
    last_reset_date: Optional[dt.date] = None


@dataclass(frozen=True)
class DeadlineDetail:
    deadline: dt.datetime
    kind = "deadline"


@dataclass(frozen=True)
class BacklogDetail:
    kind = "backlog"


@dataclass(frozen=True)
class RoutineDetail:
    goal: Optional[RecurrenceGoal] = None
    kind = "routine"


TaskDetail = Union[DeadlineDetail, BacklogDetail, RoutineDetail]
TASK_KINDS = ("deadline", "backlog", "routine")


@dataclass(frozen=True)
class Task:
    task_id: str
    title: str
    detail: TaskDetail
    created_at: dt.datetime
    importance: str = "medium"
    session_duration: Optional[int] = None
    total_duration_expected: Optional[int] = None
    location_preference: str = "no_preference"
    status: TaskStatus = field(default_factory=TaskStatus)
    active: bool = True

    @property
    def kind(self) -> str:
        return self.detail.kind


# --- Scoring / scheduling ------------------------------------------------------


@dataclass(frozen=True)
class Score:
    need: float
    importance: float
    duration: int        # ideal session minutes
    base_duration: int   # shrink floor (== duration for non-shrinkable kinds)
    priority: float


@dataclass(frozen=True)
class Candidate:
    task: Task
    score: Score
    mandatory: bool

    @property
    def task_id(self) -> str:
        return self.task.task_id

    @property
    def kind(self) -> str:
        return self.task.kind


class SuggestionStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    SKIPPED = "skipped"
    DROPPED = "dropped"


@dataclass(frozen=True)
class Suggestion:
    task_id: str
    gap_id: Optional[str]
    start: Optional[int]
    end: Optional[int]
    duration: int
    location_label: Optional[str] = None
    need: float = 0.0
    importance: float = 0.0
    priority: float = 0.0
    mandatory: bool = False
    status: SuggestionStatus = SuggestionStatus.PENDING

    @property
    def start_time(self) -> Optional[str]:
        return None if self.start is None else minutes_to_hhmm(self.start)

    @property
    def end_time(self) -> Optional[str]:
        return None if self.end is None else minutes_to_hhmm(self.end)

    @property
    def placed(self) -> bool:
        return self.gap_id is not None and self.start is not None and self.end is not None

    def as_blocker(self, kind: str = "accepted") -> Blocker:
        if not self.placed:
            raise ValueError(f"suggestion {self.task_id!r} has no placement")
        return Blocker(start=int(self.start), end=int(self.end), kind=kind)  # type: ignore[arg-type]


def _transition(s: Suggestion, status: SuggestionStatus) -> Suggestion:
    if s.status is not SuggestionStatus.PENDING:
        raise ValueError(f"suggestion {s.task_id!r} is already {s.status.value}")
    return replace(s, status=status)


def accept_suggestion(s: Suggestion) -> Suggestion:
    if not s.placed:
        raise ValueError(f"cannot accept dropped suggestion {s.task_id!r}")
    return _transition(s, SuggestionStatus.ACCEPTED)


def skip_suggestion(s: Suggestion) -> Suggestion:
    return _transition(s, SuggestionStatus.SKIPPED)


@dataclass(frozen=True)
class ScheduleResult:
    scheduled: Tuple[Suggestion, ...]
    dropped: Tuple[Suggestion, ...]
    total_scheduled_minutes: int
    total_dropped_minutes: int
    orderings_evaluated: int
    mandatory_dropped: Tuple[str, ...]
    strategy: str = "search"

    @property
    def mandatory(self) -> Tuple[Suggestion, ...]:
        return tuple(s for s in self.scheduled + self.dropped if s.mandatory)

    @property
    def optional(self) -> Tuple[Suggestion, ...]:
        return tuple(s for s in self.scheduled + self.dropped if not s.mandatory)


# --- Drag ----------------------------------------------------------------------


@dataclass(frozen=True)
class SnapResult:
    start: int
    end: int
    target_gap: Gap
    snapped: bool

    @property
    def duration(self) -> int:
        return self.end - self.start

    @property
    def start_time(self) -> str:
        return minutes_to_hhmm(self.start)

    @property
    def end_time(self) -> str:
        return minutes_to_hhmm(self.end)


@dataclass(frozen=True)
class ExtensionResult:
    duration: int
    start: int
    end: int
    max_allowed_duration: int
    blocked: bool
    block_reason: Optional[str] = None

    @property
    def start_time(self) -> str:
        return minutes_to_hhmm(self.start)

    @property
    def end_time(self) -> str:
        return minutes_to_hhmm(self.end)


__all__ = [
    "Blocker",
    "BacklogDetail",
    "Candidate",
    "DayBoundaries",
    "DeadlineDetail",
    "Event",
    "ExtensionResult",
    "FixedBlock",
    "Gap",
    "RecurrenceGoal",
    "RoutineDetail",
    "Score",
    "ScheduleResult",
    "SnapResult",
    "Suggestion",
    "SuggestionStatus",
    "Task",
    "TaskDetail",
    "TaskStatus",
    "accept_suggestion",
    "skip_suggestion",
]
