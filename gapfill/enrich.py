# gapfill/enrich.py
"""Location labels for gaps.

Default layering:

- home is the base layer, spanning the whole day;
- timetable events form one `workplace` span;
- calendar events form one `other` span;
- an event with an explicit `location` joins that location's span instead
  of its source's.

Where spans overlap a gap, the shortest span wins. Callers with better
location data can pass their own `(gaps, events) -> gaps` function to the
engine.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .model import Event, Gap
from .util.timefmt import MINUTES_PER_DAY, to_minutes

Enricher = Callable[[Sequence[Gap], Sequence[Event]], Tuple[Gap, ...]]

_SOURCE_LOCATION = {
    "timetable": "workplace",
    "calendar": "other",
}

_PREFERENCE_LOCATION = {
    "home": "home",
    "near_home": "home",
    "workplace": "workplace",
    "near_workplace": "workplace",
}


@dataclass(frozen=True)
class LocationSpan:
    location: str
    start: int
    end: int
    duration: float


def _event_location(ev: Event) -> Optional[str]:
    if ev.location and ev.location.strip():
        return ev.location.strip()
    return _SOURCE_LOCATION.get(ev.source)


def build_location_spans(events: Sequence[Event]) -> List[LocationSpan]:
    bounds: Dict[str, List[Tuple[int, int]]] = {loc: [] for loc in _SOURCE_LOCATION.values()}
    for ev in events:
        location = _event_location(ev)
        if location is None:
            continue
        try:
            bounds.setdefault(location, []).append((to_minutes(ev.start), to_minutes(ev.end)))
        except ValueError:
            continue
    spans: List[LocationSpan] = []
    for location, found in bounds.items():
        if not found:
            continue
        start = min(s for s, _ in found)
        end = max(e for _, e in found)
        spans.append(LocationSpan(location, start, end, float(end - start)))
    spans.append(LocationSpan("home", 0, MINUTES_PER_DAY, math.inf))
    return spans


def location_for_gap(gap: Gap, spans: Sequence[LocationSpan]) -> str:
    overlapping = [sp for sp in spans if sp.start < gap.end and sp.end > gap.start]
    if not overlapping:
        return "home"
    # sorted() is stable: equal durations keep span order.
    return sorted(overlapping, key=lambda sp: sp.duration)[0].location


def enrich_gaps_with_location(gaps: Sequence[Gap], events: Sequence[Event]) -> Tuple[Gap, ...]:
    spans = build_location_spans(events)
    return tuple(replace(g, location_label=location_for_gap(g, spans)) for g in gaps)


def is_location_compatible(preference: Optional[str], label: Optional[str]) -> bool:
    """Can a task with `preference` run in a gap labelled `label`?"""
    want = _PREFERENCE_LOCATION.get(str(preference or "no_preference"))
    if want is None:
        return True
    if label is None or label == "unknown":
        return True
    return label == want


def is_exact_location_match(preference: Optional[str], label: Optional[str]) -> bool:
    want = _PREFERENCE_LOCATION.get(str(preference or "no_preference"))
    return want is not None and want == label
