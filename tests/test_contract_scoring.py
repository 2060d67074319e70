import datetime as dt
import unittest
from dataclasses import replace

from gapfill.config import DEFAULT_CONFIG
from gapfill.model import (
    BacklogDetail,
    DeadlineDetail,
    RecurrenceGoal,
    RoutineDetail,
    Task,
    TaskStatus,
)
from gapfill.scoring import (
    compute_need,
    filter_displayable,
    importance_weight,
    is_active,
    is_routine_goal_reached,
    is_task_complete,
    make_candidate,
    reduce_scores_for_accepted,
    reset_period_if_needed,
    score_task,
    score_tasks,
    session_duration,
    shrink_floor,
)

# 2026-03-02 is a Monday.
MONDAY = dt.datetime(2026, 3, 2, 0, 0)


def _deadline(task_id="d1", created=dt.datetime(2026, 3, 1, 9, 0), deadline=dt.datetime(2026, 3, 11, 9, 0), **kw) -> Task:
    return Task(task_id=task_id, title=task_id, detail=DeadlineDetail(deadline), created_at=created, **kw)


def _routine(task_id="r1", goal=RecurrenceGoal(3, "week"), **kw) -> Task:
    return Task(task_id=task_id, title=task_id, detail=RoutineDetail(goal), created_at=MONDAY - dt.timedelta(days=30), **kw)


def _backlog(task_id="b1", created=MONDAY - dt.timedelta(days=10), **kw) -> Task:
    return Task(task_id=task_id, title=task_id, detail=BacklogDetail(), created_at=created, **kw)


class TestNeedContract(unittest.TestCase):
    def test_deadline_nine_tenths_in_is_optional_but_displayed(self) -> None:
        """The p**2 ramp is already at 0.83 here, well above the floor, yet still below mandatory."""
        now = dt.datetime(2026, 3, 10, 9, 0)
        c = make_candidate(_deadline(), now)
        self.assertAlmostEqual(c.score.need, 0.1 + 0.9 * 0.81, places=6)
        self.assertFalse(c.mandatory)
        self.assertEqual(filter_displayable([c]), (c,))

    def test_deadline_ramp_starts_at_floor(self) -> None:
        self.assertAlmostEqual(compute_need(_deadline(), dt.datetime(2026, 3, 1, 9, 0)), 0.1)

    def test_deadline_same_day_or_overdue_is_mandatory(self) -> None:
        same_day = dt.datetime(2026, 3, 11, 7, 0)
        overdue = dt.datetime(2026, 3, 12, 7, 0)
        self.assertEqual(compute_need(_deadline(), same_day), 1.0)
        self.assertEqual(compute_need(_deadline(), overdue), 1.0)
        self.assertTrue(make_candidate(_deadline(), same_day).mandatory)

    def test_deadline_need_drops_with_work_done(self) -> None:
        now = dt.datetime(2026, 3, 10, 9, 0)
        fresh = compute_need(_deadline(total_duration_expected=120), now)
        half = compute_need(_deadline(total_duration_expected=120, status=TaskStatus(time_spent_minutes=60)), now)
        self.assertLess(half, fresh)

    def test_routine_goal_met_is_capped_below_display(self) -> None:
        now = dt.datetime(2026, 3, 4, 12, 0)
        st = TaskStatus(completions_this_period=3, period_start=dt.date(2026, 3, 2), last_activity=now - dt.timedelta(days=2))
        task = _routine(status=st)
        self.assertEqual(compute_need(task, now), 0.49)
        self.assertEqual(compute_need(task, now + dt.timedelta(days=2)), 0.49)
        self.assertEqual(filter_displayable([make_candidate(task, now)]), ())

    def test_routine_need_resets_with_new_week(self) -> None:
        st = TaskStatus(completions_this_period=3, period_start=dt.date(2026, 3, 2))
        next_monday = dt.datetime(2026, 3, 9, 0, 0)
        self.assertAlmostEqual(compute_need(_routine(status=st), next_monday), 0.9 * (0.5 / 1.5))

    def test_routine_cooldown_and_no_goal(self) -> None:
        now = dt.datetime(2026, 3, 4, 12, 0)
        recent = TaskStatus(last_activity=now - dt.timedelta(hours=1), period_start=dt.date(2026, 3, 2))
        self.assertEqual(compute_need(_routine(status=recent), now), 0.0)
        self.assertAlmostEqual(compute_need(_routine(goal=None), now), 0.36)

    def test_routine_behind_schedule_is_never_mandatory(self) -> None:
        sunday_night = dt.datetime(2026, 3, 8, 22, 0)
        st = TaskStatus(period_start=dt.date(2026, 3, 2))
        c = make_candidate(_routine(status=st), sunday_night)
        self.assertAlmostEqual(c.score.need, 0.9)
        self.assertFalse(c.mandatory)

    def test_backlog_grows_but_is_never_mandatory(self) -> None:
        young = compute_need(_backlog(created=MONDAY - dt.timedelta(days=1)), MONDAY)
        old = compute_need(_backlog(created=MONDAY - dt.timedelta(days=400)), MONDAY)
        self.assertGreaterEqual(young, 0.5)
        self.assertGreater(old, young)
        self.assertLessEqual(old, 0.7)
        self.assertFalse(make_candidate(_backlog(created=MONDAY - dt.timedelta(days=4000)), MONDAY).mandatory)

    def test_unknown_detail_is_rejected(self) -> None:
        bad = replace(_backlog(), detail=object())  # type: ignore[arg-type]
        with self.assertRaises(TypeError):
            compute_need(bad, MONDAY)


class TestScoreContract(unittest.TestCase):
    def test_importance_weights(self) -> None:
        self.assertEqual(importance_weight("low"), 0.3)
        self.assertEqual(importance_weight("HIGH"), 0.9)
        self.assertEqual(importance_weight(None), 0.6)

    def test_session_duration_rules(self) -> None:
        self.assertEqual(session_duration(_backlog(session_duration=45)), 45)
        self.assertEqual(session_duration(_backlog(total_duration_expected=200)), 50)
        self.assertEqual(session_duration(_backlog(total_duration_expected=20)), 15)
        self.assertEqual(session_duration(_backlog(total_duration_expected=1000)), 120)
        self.assertEqual(session_duration(_backlog()), 30)
        self.assertEqual(session_duration(_backlog(session_duration=5)), 10)

    def test_only_deadlines_shrink(self) -> None:
        self.assertEqual(shrink_floor("deadline", 60), 30)
        self.assertEqual(shrink_floor("deadline", 45), 30)
        self.assertEqual(shrink_floor("deadline", 15), 10)
        self.assertEqual(shrink_floor("routine", 60), 60)
        self.assertEqual(shrink_floor("backlog", 60), 60)

    def test_priority_is_capped_sum(self) -> None:
        s = score_task(_deadline(importance="high"), dt.datetime(2026, 3, 11, 8, 0))
        self.assertAlmostEqual(s.priority, 1.9)
        self.assertEqual(s.duration, 30)
        self.assertEqual(s.base_duration, 20)

    def test_reduce_scores_for_accepted(self) -> None:
        now = dt.datetime(2026, 3, 11, 8, 0)
        cands = score_tasks([_deadline("a", importance="high"), _deadline("b")], now)
        self.assertTrue(all(c.mandatory for c in cands))
        out = reduce_scores_for_accepted(cands, ["a"], DEFAULT_CONFIG.scoring)
        a, b = out
        self.assertAlmostEqual(a.score.need, 0.5)
        self.assertAlmostEqual(a.score.importance, 0.45)
        self.assertAlmostEqual(a.score.priority, 0.95)
        self.assertFalse(a.mandatory)
        self.assertIs(b, cands[1])


class TestLifecycleContract(unittest.TestCase):
    def test_inactive_and_completed_tasks(self) -> None:
        self.assertTrue(is_active(_backlog()))
        self.assertFalse(is_active(_backlog(active=False)))
        self.assertFalse(is_active(_backlog(status=TaskStatus(completion_state="completed"))))

    def test_reset_daily_flags_on_new_day(self) -> None:
        st = TaskStatus(completed_today=True, time_spent_today=40, last_reset_date=dt.date(2026, 3, 1))
        out = reset_period_if_needed(_backlog(status=st), MONDAY)
        self.assertFalse(out.status.completed_today)
        self.assertEqual(out.status.time_spent_today, 0)
        self.assertEqual(out.status.last_reset_date, dt.date(2026, 3, 2))

    def test_reset_period_counter_on_new_week(self) -> None:
        st = TaskStatus(completions_this_period=2, period_start=dt.date(2026, 2, 23), last_reset_date=dt.date(2026, 3, 2))
        out = reset_period_if_needed(_routine(status=st), MONDAY)
        self.assertEqual(out.status.completions_this_period, 0)
        self.assertEqual(out.status.period_start, dt.date(2026, 3, 2))

    def test_first_seen_routine_keeps_its_counter(self) -> None:
        st = TaskStatus(completions_this_period=2, last_reset_date=dt.date(2026, 3, 2))
        out = reset_period_if_needed(_routine(status=st), MONDAY)
        self.assertEqual(out.status.completions_this_period, 2)
        self.assertEqual(out.status.period_start, dt.date(2026, 3, 2))

    def test_completion_checks(self) -> None:
        self.assertFalse(is_task_complete(_backlog(total_duration_expected=90, status=TaskStatus(time_spent_minutes=60))))
        self.assertTrue(is_task_complete(_backlog(status=TaskStatus(time_spent_minutes=60))))
        self.assertFalse(is_routine_goal_reached(_routine(status=TaskStatus(completions_this_period=2))))
        self.assertTrue(is_routine_goal_reached(_routine(status=TaskStatus(completions_this_period=3))))

    def test_nothing_to_reset_returns_same_object(self) -> None:
        task = _backlog(status=TaskStatus(last_reset_date=dt.date(2026, 3, 2)))
        self.assertIs(reset_period_if_needed(task, MONDAY), task)


if __name__ == "__main__":
    unittest.main(verbosity=2)
