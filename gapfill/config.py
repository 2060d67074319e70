# gapfill/config.py
"""Engine configuration.

Every tunable constant the engine uses lives in one of the frozen
dataclasses below. `EngineConfig()` gives the defaults; `load_config` and
`config_from_dict` layer partial JSON overrides on top of them, e.g.:

    {
      "gap": {"snap_increment": 5, "buffer_before_event": 0},
      "scoring": {"backlog": {"min": 0.4, "max": 0.6}},
      "search": {"beam_width": 4}
    }
"""

from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Tuple, Union


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class GapConfig:
    snap_increment: int = 10
    buffer_before_event: int = 10
    min_subgap_minutes: int = 5
    # Drag model: a suggestion is drawn as dots of `minutes_per_dot`.
    minutes_per_dot: int = 10
    dot_edge_minutes: int = 5
    min_dots_for_drag: int = 5
    drag_snap_minutes: int = 10


@dataclass(frozen=True)
class NeedRange:
    min_score: float
    max_score: float


@dataclass(frozen=True)
class ImportanceWeights:
    low: float = 0.3
    medium: float = 0.6
    high: float = 0.9


@dataclass(frozen=True)
class ScoringConfig:
    display_threshold: float = 0.5
    mandatory_threshold: float = 1.0
    deadline: NeedRange = NeedRange(0.1, 1.0)
    deadline_ramp_exponent: float = 2.0
    backlog: NeedRange = NeedRange(0.5, 0.7)
    backlog_daily_growth: float = 0.02
    routine: NeedRange = NeedRange(0.0, 0.9)
    routine_goal_cap_score: float = 0.49
    routine_cooldown_hours: float = 4.0
    importance: ImportanceWeights = ImportanceWeights()
    default_total_duration: int = 60
    accepted_reduction_factor: float = 0.5
    accepted_need_cap: float = 0.85


@dataclass(frozen=True)
class DurationConfig:
    default_session: int = 30
    absolute_floor: int = 10
    min_session: int = 15
    max_session: int = 120
    sessions_per_total: int = 4


@dataclass(frozen=True)
class ExtensionConfig:
    enabled: bool = True
    min_extra_minutes: int = 10
    max_factor: float = 2.0
    step_minutes: int = 10


@dataclass(frozen=True)
class ShrinkConfig:
    allowed_types: Tuple[str, ...] = ("deadline",)
    step_minutes: int = 10
    min_factor: float = 0.5


@dataclass(frozen=True)
class ExtensionTiers:
    mandatory: float = 1.0
    high: float = 0.75
    normal: float = 0.5


@dataclass(frozen=True)
class SearchConfig:
    beam_width: int = 8
    expansion_levels: Tuple[float, ...] = (0.2, 0.4, 0.6, 0.8, 1.0)
    alpha: float = 3.0
    finish_bonus: float = 0.15
    max_priority: float = 2.0
    duration_need_bonus: float = 0.1
    switch_cost: float = 0.05
    unused_cost: float = 0.001
    location_match_bonus: float = 0.05
    max_anchor_combinations: int = 64
    max_tasks_per_gap: int = 4
    permutation_limit: int = 8


@dataclass(frozen=True)
class EngineConfig:
    gap: GapConfig = field(default_factory=GapConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    duration: DurationConfig = field(default_factory=DurationConfig)
    extension: ExtensionConfig = field(default_factory=ExtensionConfig)
    shrink: ShrinkConfig = field(default_factory=ShrinkConfig)
    tiers: ExtensionTiers = field(default_factory=ExtensionTiers)
    search: SearchConfig = field(default_factory=SearchConfig)


DEFAULT_CONFIG = EngineConfig()


def _coerce(section: str, key: str, default: Any, raw: Any) -> Any:
    where = f"{section}.{key}"
    if isinstance(default, NeedRange):
        if not isinstance(raw, Mapping):
            raise ConfigError(f"{where} must be an object with min/max")
        lo = raw.get("min", raw.get("min_score", default.min_score))
        hi = raw.get("max", raw.get("max_score", default.max_score))
        return NeedRange(float(_coerce(section, key + ".min", 0.0, lo)), float(_coerce(section, key + ".max", 0.0, hi)))
    if isinstance(default, ImportanceWeights):
        if not isinstance(raw, Mapping):
            raise ConfigError(f"{where} must be an object with low/medium/high")
        unknown = set(raw) - {"low", "medium", "high"}
        if unknown:
            raise ConfigError(f"Unknown keys in {where}: {', '.join(sorted(unknown))}")
        vals = {k: float(_coerce(section, f"{key}.{k}", 0.0, v)) for k, v in raw.items()}
        return dataclasses.replace(default, **vals)
    if isinstance(default, bool):
        if not isinstance(raw, bool):
            raise ConfigError(f"{where} must be a boolean; got {raw!r}")
        return raw
    if isinstance(default, int):
        if isinstance(raw, bool) or not isinstance(raw, (int, float)) or int(raw) != raw:
            raise ConfigError(f"{where} must be an integer; got {raw!r}")
        return int(raw)
    if isinstance(default, float):
        if isinstance(raw, bool) or not isinstance(raw, (int, float)):
            raise ConfigError(f"{where} must be a number; got {raw!r}")
        return float(raw)
    if isinstance(default, tuple):
        if not isinstance(raw, (list, tuple)):
            raise ConfigError(f"{where} must be a list; got {raw!r}")
        kind = type(default[0]) if default else str
        if kind is float:
            return tuple(float(_coerce(section, key, 0.0, x)) for x in raw)
        return tuple(str(x) for x in raw)
    raise ConfigError(f"Unsupported config value at {where}")


def _apply_section(section: str, base: Any, raw: Any) -> Any:
    if not isinstance(raw, Mapping):
        raise ConfigError(f"config section {section!r} must be an object")
    known = {f.name: f for f in dataclasses.fields(base)}
    unknown = [k for k in raw if k not in known]
    if unknown:
        raise ConfigError(f"Unknown keys in {section}: {', '.join(sorted(map(str, unknown)))}")
    updates = {k: _coerce(section, k, getattr(base, k), v) for k, v in raw.items()}
    return dataclasses.replace(base, **updates)


def validate_config(cfg: EngineConfig) -> EngineConfig:
    """Raise ConfigError on inconsistent values; return cfg unchanged otherwise."""
    g = cfg.gap
    if g.snap_increment <= 0 or g.drag_snap_minutes <= 0 or g.minutes_per_dot <= 0:
        raise ConfigError("gap snap increments and minutes_per_dot must be positive")
    if g.buffer_before_event < 0 or g.min_subgap_minutes < 0:
        raise ConfigError("gap.buffer_before_event and gap.min_subgap_minutes must be >= 0")

    s = cfg.scoring
    for name in ("deadline", "backlog", "routine"):
        rng: NeedRange = getattr(s, name)
        if rng.min_score > rng.max_score:
            raise ConfigError(f"scoring.{name}: min must be <= max")
    if s.display_threshold > s.mandatory_threshold:
        raise ConfigError("scoring.display_threshold must be <= scoring.mandatory_threshold")
    if s.backlog.max_score >= s.mandatory_threshold:
        raise ConfigError("scoring.backlog.max must stay below scoring.mandatory_threshold")
    if s.routine.max_score >= s.mandatory_threshold:
        raise ConfigError("scoring.routine.max must stay below scoring.mandatory_threshold")

    d = cfg.duration
    if d.absolute_floor <= 0 or d.default_session < d.absolute_floor:
        raise ConfigError("duration.absolute_floor must be positive and <= duration.default_session")
    if d.min_session > d.max_session or d.sessions_per_total <= 0:
        raise ConfigError("duration.min_session must be <= duration.max_session")

    if cfg.extension.max_factor < 1.0 or cfg.extension.step_minutes <= 0:
        raise ConfigError("extension.max_factor must be >= 1 and extension.step_minutes positive")
    if cfg.shrink.step_minutes <= 0 or not (0.0 < cfg.shrink.min_factor <= 1.0):
        raise ConfigError("shrink.step_minutes must be positive and shrink.min_factor in (0, 1]")

    t = cfg.tiers
    if not (t.mandatory >= t.high >= t.normal):
        raise ConfigError("tiers must satisfy mandatory >= high >= normal")

    q = cfg.search
    if q.beam_width < 1 or q.max_anchor_combinations < 1 or q.max_tasks_per_gap < 1:
        raise ConfigError("search.beam_width, max_anchor_combinations and max_tasks_per_gap must be >= 1")
    if not q.expansion_levels or any(not (0.0 < x <= 1.0) for x in q.expansion_levels):
        raise ConfigError("search.expansion_levels must be non-empty fractions in (0, 1]")
    if q.max_priority <= 0 or q.permutation_limit < 1:
        raise ConfigError("search.max_priority must be positive and search.permutation_limit >= 1")
    return cfg


def config_from_dict(raw: Mapping[str, Any] | None, base: EngineConfig | None = None) -> EngineConfig:
    cfg = base or DEFAULT_CONFIG
    if not raw:
        return validate_config(cfg)
    if not isinstance(raw, Mapping):
        raise ConfigError(f"config must be a JSON object; got {type(raw).__name__}")

    sections: Dict[str, Any] = {}
    for name, val in raw.items():
        if name not in {f.name for f in dataclasses.fields(cfg)}:
            raise ConfigError(f"Unknown config section: {name!r}")
        sections[name] = _apply_section(name, getattr(cfg, name), val)
    return validate_config(dataclasses.replace(cfg, **sections))


def load_config(path: Union[str, Path, None]) -> EngineConfig:
    """Load a JSON config file. A missing/empty path yields the defaults."""
    if not path:
        return DEFAULT_CONFIG
    p = Path(path)
    try:
        raw = json.loads(p.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {p}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Config file is not valid JSON: {p}: {e}") from e
    return config_from_dict(raw)
