"""gapfill.api

Stable *library* entrypoint for gapfill.

Policy:
  - Only names listed in __all__ are considered public API.
  - Everything else is internal and may change without notice.
"""

from __future__ import annotations

from gapfill.config import DEFAULT_CONFIG, ConfigError, EngineConfig, config_from_dict, load_config
from gapfill.drag import calculate_extension, snap_to_gap
from gapfill.engine import (
    EngineInputs,
    EngineOutputs,
    PipelineSummary,
    SessionComplete,
    mark_session_complete,
    recompute,
)
from gapfill.enrich import enrich_gaps_with_location, is_location_compatible
from gapfill.gaps import find_gaps, subtract_blockers_from_gaps
from gapfill.io import InputError, dumps_json, load_events, load_tasks, result_to_dict
from gapfill.model import (
    BacklogDetail,
    Blocker,
    Candidate,
    DayBoundaries,
    DeadlineDetail,
    Event,
    ExtensionResult,
    Gap,
    RecurrenceGoal,
    RoutineDetail,
    ScheduleResult,
    Score,
    SnapResult,
    Suggestion,
    SuggestionStatus,
    Task,
    TaskStatus,
    accept_suggestion,
    skip_suggestion,
)
from gapfill.scheduler import schedule_suggestions
from gapfill.scoring import compute_need, score_tasks


# --- Public API exports ---------------------------------------------------
_PUBLIC_EXPORTS = (
    "BacklogDetail",
    "Blocker",
    "Candidate",
    "ConfigError",
    "DEFAULT_CONFIG",
    "DayBoundaries",
    "DeadlineDetail",
    "EngineConfig",
    "EngineInputs",
    "EngineOutputs",
    "Event",
    "ExtensionResult",
    "Gap",
    "InputError",
    "PipelineSummary",
    "RecurrenceGoal",
    "RoutineDetail",
    "ScheduleResult",
    "Score",
    "SessionComplete",
    "SnapResult",
    "Suggestion",
    "SuggestionStatus",
    "Task",
    "TaskStatus",
    "accept_suggestion",
    "calculate_extension",
    "compute_need",
    "config_from_dict",
    "dumps_json",
    "enrich_gaps_with_location",
    "find_gaps",
    "is_location_compatible",
    "load_config",
    "load_events",
    "load_tasks",
    "mark_session_complete",
    "recompute",
    "result_to_dict",
    "schedule_suggestions",
    "score_tasks",
    "skip_suggestion",
    "snap_to_gap",
    "subtract_blockers_from_gaps",
)

__all__ = [n for n in _PUBLIC_EXPORTS if n in globals()]
# --- /Public API exports --------------------------------------------------
