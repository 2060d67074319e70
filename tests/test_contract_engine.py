import datetime as dt
import unittest
from dataclasses import replace

from gapfill.engine import EngineInputs, generate_candidates, mark_session_complete, recompute
from gapfill.model import (
    BacklogDetail,
    Blocker,
    DeadlineDetail,
    Event,
    RecurrenceGoal,
    RoutineDetail,
    Task,
    TaskStatus,
)

# Wednesday.
NOW = dt.datetime(2026, 3, 4, 8, 0)
WEEK = dt.date(2026, 3, 2)

EVENTS = (
    Event("09:00", "10:00", "lecture", source="timetable"),
    Event("12:00", "13:00", "lunch"),
    Event("15:00", "16:00", "lab", source="timetable"),
)


def _tasks():
    return (
        Task("due", "Report", DeadlineDetail(dt.datetime(2026, 3, 4, 18, 0)), NOW - dt.timedelta(days=5),
             importance="high", session_duration=60),
        Task("inbox", "Inbox zero", BacklogDetail(), NOW - dt.timedelta(days=20)),
        Task("gym", "Gym", RoutineDetail(RecurrenceGoal(3, "week")), NOW - dt.timedelta(days=60),
             status=TaskStatus(completions_this_period=3, period_start=WEEK)),
        Task("old", "Archived", BacklogDetail(), NOW - dt.timedelta(days=20), active=False),
    )


class TestEnginePipelineContract(unittest.TestCase):
    def test_recompute_end_to_end(self) -> None:
        with self.assertLogs("gapfill.engine", level="INFO") as cm:
            out = recompute(EngineInputs(events=EVENTS, tasks=_tasks(), now=NOW))
        self.assertIn("recompute:", "\n".join(cm.output))

        s = out.summary
        self.assertEqual(s.events, 3)
        self.assertEqual(s.gaps, len(out.gaps))
        self.assertEqual(s.active_tasks, 3)
        self.assertEqual(s.candidates, 3)
        self.assertEqual({c.task_id for c in out.candidates}, {"due", "inbox"})
        self.assertEqual((s.mandatory, s.optional), (1, 1))
        self.assertEqual(s.scheduled + s.dropped, s.displayable)

        scheduled = {x.task_id: x for x in out.result.scheduled}
        self.assertIn("due", scheduled)
        self.assertTrue(scheduled["due"].mandatory)
        gaps = {g.gap_id: g for g in out.gaps}
        for x in out.result.scheduled:
            self.assertGreaterEqual(x.start, gaps[x.gap_id].start)
            self.assertLessEqual(x.end, gaps[x.gap_id].end)
        self.assertEqual(gaps["gap-0800-0"].location_label, "home")
        self.assertEqual(gaps["gap-1000-1"].location_label, "workplace")

    def test_recompute_is_deterministic(self) -> None:
        inputs = EngineInputs(events=EVENTS, tasks=_tasks(), now=NOW)
        self.assertEqual(recompute(inputs), recompute(inputs))
        greedy = replace(inputs, strategy="greedy")
        self.assertEqual(recompute(greedy).result.strategy, "greedy")

    def test_accepted_tasks_are_demoted(self) -> None:
        out = recompute(EngineInputs(events=EVENTS, tasks=_tasks(), now=NOW, accepted_task_ids=("due",)))
        self.assertEqual(out.summary.mandatory, 0)
        due = next(c for c in out.candidates if c.task_id == "due")
        self.assertAlmostEqual(due.score.need, 0.5)

    def test_blockers_and_custom_enricher(self) -> None:
        def everywhere_work(gaps, events):
            return tuple(replace(g, location_label="workplace") for g in gaps)

        inputs = EngineInputs(events=EVENTS, tasks=_tasks(), now=NOW, blockers=(Blocker(13 * 60 + 30, 14 * 60, "accepted"),))
        out = recompute(inputs, enricher=everywhere_work)
        self.assertIn("gap-1300-2-sub-0", {g.gap_id for g in out.gaps})
        self.assertIn("gap-1300-2-sub-1", {g.gap_id for g in out.gaps})
        self.assertTrue(all(g.location_label == "workplace" for g in out.gaps))

    def test_offset_aware_and_naive_datetimes_mix(self) -> None:
        base = [c.score for c in recompute(EngineInputs(events=EVENTS, tasks=_tasks(), now=NOW)).candidates]

        tokyo_now = NOW.replace(tzinfo=dt.timezone(dt.timedelta(hours=9)))
        out = recompute(EngineInputs(events=EVENTS, tasks=_tasks(), now=tokyo_now, tz="+09:00"))
        self.assertEqual([c.score for c in out.candidates], base)

        utc = dt.timezone.utc
        aware_tasks = []
        for t in _tasks():
            t = replace(t, created_at=t.created_at.replace(tzinfo=utc))
            if isinstance(t.detail, DeadlineDetail):
                t = replace(t, detail=DeadlineDetail(t.detail.deadline.replace(tzinfo=utc)))
            aware_tasks.append(t)
        out = recompute(EngineInputs(events=EVENTS, tasks=tuple(aware_tasks), now=NOW, tz="UTC"))
        self.assertEqual([c.score for c in out.candidates], base)
        cands = generate_candidates(aware_tasks, NOW, tz="UTC")
        self.assertEqual([c.score for c in cands], base)

    def test_generate_candidates_without_scheduling(self) -> None:
        cands = generate_candidates(_tasks(), NOW)
        self.assertEqual([c.task_id for c in cands], ["due", "inbox"])


class TestSessionCompleteContract(unittest.TestCase):
    def test_deadline_completes_when_total_reached(self) -> None:
        task = Task("d", "d", DeadlineDetail(NOW + dt.timedelta(days=2)), NOW - dt.timedelta(days=2),
                    total_duration_expected=60, status=TaskStatus(time_spent_minutes=30, completion_state="in_progress"))
        res = mark_session_complete(task, 30, NOW)
        self.assertTrue(res.is_now_complete)
        self.assertIsNone(res.goal_reached)
        self.assertEqual(res.task.status.completion_state, "completed")
        self.assertEqual(res.task.status.time_spent_minutes, 60)
        self.assertEqual(res.task.status.last_activity, NOW)

    def test_first_session_moves_to_in_progress(self) -> None:
        task = Task("b", "b", BacklogDetail(), NOW - dt.timedelta(days=2), total_duration_expected=120)
        res = mark_session_complete(task, 10, NOW)
        self.assertFalse(res.is_now_complete)
        self.assertEqual(res.task.status.completion_state, "in_progress")
        self.assertEqual(res.task.status.time_spent_today, 10)

    def test_routine_counts_completions(self) -> None:
        task = Task("r", "r", RoutineDetail(RecurrenceGoal(2, "week")), NOW - dt.timedelta(days=30),
                    status=TaskStatus(completions_this_period=1, period_start=WEEK, time_spent_minutes=500))
        res = mark_session_complete(task, 30, NOW)
        self.assertFalse(res.is_now_complete)
        self.assertTrue(res.goal_reached)
        self.assertTrue(res.task.status.completed_today)
        self.assertEqual(res.task.status.completions_this_period, 2)
        self.assertEqual(res.task.status.completion_state, "in_progress")

    def test_negative_minutes_rejected(self) -> None:
        task = Task("b", "b", BacklogDetail(), NOW)
        with self.assertRaises(ValueError):
            mark_session_complete(task, -5, NOW)


if __name__ == "__main__":
    unittest.main(verbosity=2)
