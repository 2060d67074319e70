from __future__ import annotations

import argparse
import datetime as dt
import logging
import os
import sys
from pathlib import Path
from typing import Any, Tuple

from .config import EngineConfig, load_config
from .engine import EngineInputs, recompute
from .gaps import find_gaps, subtract_blockers_from_gaps
from .enrich import enrich_gaps_with_location
from .io import dumps_json, gaps_to_dict, load_blockers, load_events, load_tasks, result_to_dict
from .model import Blocker, DayBoundaries
from .scheduler import STRATEGIES
from .util.timefmt import parse_hhmm

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )


def _day(args: argparse.Namespace) -> DayBoundaries:
    for flag, value in (("--day-start", args.day_start), ("--day-end", args.day_end)):
        try:
            parse_hhmm(value)
        except ValueError as e:
            raise SystemExit(f"gapfill: invalid {flag} value: {e}")
    return DayBoundaries(day_start=args.day_start, day_end=args.day_end)


def _blockers(path: str | None) -> Tuple[Blocker, ...]:
    if not path:
        return ()
    return load_blockers(path)


def _write(text: str, out: str) -> None:
    if out == "-":
        sys.stdout.write(text)
        return
    p = Path(out)
    try:
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(text, encoding="utf-8")
    except OSError as e:
        raise SystemExit(f"gapfill: cannot write '{out}': {e}")
    logger.debug("Wrote %d bytes to %s", len(text), p)
    print(str(p.resolve()))


def _cmd_gaps(args: argparse.Namespace, cfg: EngineConfig) -> Any:
    events = load_events(args.events)
    gaps = find_gaps(events, _day(args), cfg.gap)
    gaps = subtract_blockers_from_gaps(gaps, _blockers(args.blockers), cfg.gap)
    return gaps_to_dict(enrich_gaps_with_location(gaps, events))


def _cmd_plan(args: argparse.Namespace, cfg: EngineConfig) -> Any:
    try:
        now = dt.datetime.fromisoformat(args.now)
    except ValueError as e:
        raise SystemExit(f"gapfill: invalid --now value: {e}")
    inputs = EngineInputs(
        events=load_events(args.events),
        tasks=load_tasks(args.tasks),
        now=now,
        day=_day(args),
        blockers=_blockers(args.blockers),
        accepted_task_ids=tuple(args.accepted or ()),
        strategy=args.strategy,
        tz=args.tz,
    )
    outputs = recompute(inputs, cfg)
    data = result_to_dict(outputs.result, outputs.summary)
    data["gaps"] = gaps_to_dict(outputs.gaps)["gaps"]
    return data


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="gapfill",
        description="Find free gaps in a day and schedule task suggestions into them.",
    )
    ap.add_argument(
        "--log-level",
        default=os.getenv("GAPFILL_LOG_LEVEL", "WARNING"),
        type=str.upper,
        choices=LOG_LEVELS,
        help="Logging level (default: env GAPFILL_LOG_LEVEL or WARNING)",
    )
    sub = ap.add_subparsers(dest="command", required=True)

    def common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--events", required=True, help="Events JSON (list or {\"events\": [...]})")
        p.add_argument("--day-start", default="08:00", help="Day frame start HH:MM (default: 08:00)")
        p.add_argument("--day-end", default="23:00", help="Day frame end HH:MM (default: 23:00)")
        p.add_argument("--blockers", default=None, help="Blockers JSON to subtract from gaps")
        p.add_argument("--config", default=None, help="Engine config JSON with partial overrides")
        p.add_argument("--out", default="-", help="Output JSON path, '-' for stdout (default: -)")

    g = sub.add_parser("gaps", help="Write the day's free gaps as JSON")
    common(g)
    g.set_defaults(func=_cmd_gaps)

    p = sub.add_parser("plan", help="Score tasks and schedule suggestions into the gaps")
    common(p)
    p.add_argument("--tasks", required=True, help="Tasks JSON (list or {\"tasks\": [...]})")
    p.add_argument("--now", required=True, help="Current time as an ISO datetime, e.g. 2026-03-02T09:00")
    p.add_argument("--strategy", default="search", choices=STRATEGIES, help="Scheduling strategy (default: search)")
    p.add_argument("--accepted", nargs="*", default=None, metavar="ID", help="Task ids that already have an accepted session")
    p.add_argument(
        "--tz",
        default=os.getenv("GAPFILL_TZ", "local"),
        help="Timezone that offset-aware datetimes are converted to (default: env GAPFILL_TZ or 'local')",
    )
    p.set_defaults(func=_cmd_plan)
    return ap


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    _setup_logging(args.log_level)

    try:
        cfg = load_config(args.config)
        data = args.func(args, cfg)
    except ValueError as e:
        raise SystemExit(f"gapfill: {e}")

    _write(dumps_json(data), args.out)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
