import math
import unittest

from gapfill.drag import (
    adjust_duration,
    angle_to_minutes,
    blockers_from_accepted,
    calculate_extension,
    calculate_max_duration,
    calculate_new_end,
    can_fit_in_gap,
    coords_to_angle,
    find_gap_for_cursor,
    find_overlapping_suggestions,
    min_drag_duration,
    minutes_to_angle,
    time_ranges_overlap,
    snap_to_gap,
)
from gapfill.model import Blocker, Gap, Suggestion

A = Gap("gap-0900-0", 540, 600)
B = Gap("gap-1100-1", 660, 720)


def _sugg(task_id, start, end, gap_id="gap-0900-0"):
    return Suggestion(task_id=task_id, gap_id=gap_id, start=start, end=end, duration=end - start)


class TestDragSnapContract(unittest.TestCase):
    def test_minimum_drag_duration(self) -> None:
        self.assertEqual(min_drag_duration(), 45)

    def test_cursor_past_gap_end_jumps_to_next_gap(self) -> None:
        res = snap_to_gap(640, 45, [A, B], current_gap_id=A.gap_id)
        self.assertIsNotNone(res)
        self.assertEqual(res.target_gap, B)
        self.assertEqual((res.start_time, res.end_time), ("11:00", "11:45"))
        self.assertTrue(res.snapped)

    def test_cursor_past_gap_end_skips_gap_too_small_to_drag_into(self) -> None:
        small = Gap("gap-1020-1", 620, 640)
        later = Gap("gap-1140-2", 700, 760)
        res = snap_to_gap(630, 45, [A, small, later], current_gap_id=A.gap_id)
        self.assertIsNotNone(res)
        self.assertEqual(res.target_gap, later)
        self.assertEqual((res.start, res.end), (700, 745))
        self.assertTrue(res.snapped)

    def test_cursor_before_gap_start_jumps_to_previous_gap(self) -> None:
        res = snap_to_gap(630, 45, [A, B], current_gap_id=B.gap_id)
        self.assertEqual(res.target_gap, A)
        self.assertEqual((res.start, res.end), (555, 600))

    def test_inside_gap_centers_and_snaps(self) -> None:
        res = snap_to_gap(695, 50, [A, B], current_gap_id=B.gap_id)
        self.assertEqual(res.target_gap, B)
        self.assertFalse(res.snapped)
        self.assertEqual((res.start, res.end), (670, 720))

    def test_never_shorter_than_minimum(self) -> None:
        for cursor in range(530, 735, 5):
            for duration in (45, 60, 90):
                res = snap_to_gap(cursor, duration, [A, B], current_gap_id=A.gap_id)
                if res is None:
                    continue
                self.assertGreaterEqual(res.duration, 45, (cursor, duration))
                self.assertGreaterEqual(res.start, res.target_gap.start)
                self.assertLessEqual(res.end, res.target_gap.end)

    def test_edge_pin_shrinks_instead_of_sliding(self) -> None:
        wide = Gap("gap-0900-0", 540, 660)
        res = snap_to_gap(560, 60, [wide], current_gap_id=wide.gap_id)
        self.assertEqual((res.start, res.end), (540, 590))

    def test_no_neighbor_or_no_valid_gap_returns_none(self) -> None:
        self.assertIsNone(snap_to_gap(740, 45, [A, B], current_gap_id=B.gap_id))
        self.assertIsNone(snap_to_gap(600, 45, [Gap("gap-0900-0", 540, 580)]))
        self.assertIsNone(snap_to_gap(600, 45, []))

    def test_blockers_are_cut_out_before_snapping(self) -> None:
        wide = Gap("gap-0900-0", 540, 720)
        res = snap_to_gap(560, 45, [wide], blockers=[Blocker(600, 640, "accepted")])
        self.assertEqual(res.target_gap.gap_id, "gap-0900-0-sub-0")
        self.assertLessEqual(res.end, 600)

    def test_find_gap_for_cursor_nearest_without_current(self) -> None:
        self.assertEqual(find_gap_for_cursor(610, [A, B]), A)
        self.assertEqual(find_gap_for_cursor(650, [A, B]), B)
        self.assertEqual(find_gap_for_cursor(400, [A, B]), A)


class TestDragDurationContract(unittest.TestCase):
    def test_adjust_duration_steps_and_clamps(self) -> None:
        self.assertEqual(adjust_duration(60, 2), 80)
        self.assertEqual(adjust_duration(60, -5), 45)
        self.assertEqual(adjust_duration(60, 5, max_duration=90), 90)
        self.assertEqual(adjust_duration(60, -5, min_duration=20), 20)

    def test_max_duration_stops_at_next_blocker(self) -> None:
        self.assertEqual(calculate_max_duration(540, 720), 180)
        self.assertEqual(calculate_max_duration(540, 720, [Blocker(500, 530), Blocker(620, 650)]), 80)

    def test_symmetric_extension(self) -> None:
        res = calculate_extension(600, 60, 540, 720)
        self.assertEqual((res.start, res.end, res.duration), (570, 630, 60))
        self.assertFalse(res.blocked)
        self.assertIsNone(res.block_reason)
        self.assertEqual(res.max_allowed_duration, 180)

    def test_asymmetric_extension_uses_free_side(self) -> None:
        res = calculate_extension(600, 60, 540, 720, [Blocker(560, 580)])
        self.assertEqual((res.start, res.end), (580, 640))
        self.assertFalse(res.blocked)

    def test_blocked_reasons(self) -> None:
        prev = calculate_extension(600, 200, 540, 720, [Blocker(560, 580), Blocker(650, 700)])
        self.assertEqual((prev.start, prev.end), (580, 650))
        self.assertTrue(prev.blocked)
        self.assertEqual(prev.block_reason, "Limited by previous block")

        nxt = calculate_extension(600, 200, 540, 720, [Blocker(610, 640)])
        self.assertTrue(nxt.blocked)
        self.assertEqual(nxt.block_reason, "Limited by next block")
        self.assertEqual((nxt.start, nxt.end), (540, 610))

        edge = calculate_extension(560, 300, 540, 720)
        self.assertEqual((edge.start, edge.end), (540, 720))
        self.assertEqual(edge.block_reason, "Limited by gap edge")

    def test_new_end_follows_duration(self) -> None:
        self.assertEqual(calculate_new_end(600, adjust_duration(45, 1)), 655)

    def test_fit_and_overlap_helpers(self) -> None:
        self.assertTrue(can_fit_in_gap(A, 60))
        self.assertFalse(can_fit_in_gap(A, 61))
        x = _sugg("x", 540, 580)
        y = _sugg("y", 570, 600)
        z = _sugg("z", 580, 600)
        self.assertEqual(find_overlapping_suggestions(x, [x, y, z]), (y,))
        blockers = blockers_from_accepted([x, y, Suggestion("d", None, None, None, 30)], exclude_task_id="y")
        self.assertEqual(blockers, (Blocker(540, 580, "accepted"),))

    def test_touching_ranges_do_not_overlap(self) -> None:
        self.assertTrue(time_ranges_overlap(540, 580, 570, 600))
        self.assertFalse(time_ranges_overlap(540, 580, 580, 600))


class TestDialGeometryContract(unittest.TestCase):
    def test_angles(self) -> None:
        self.assertEqual(angle_to_minutes(0.0), 0)
        self.assertEqual(angle_to_minutes(math.pi), 720)
        self.assertEqual(angle_to_minutes(-math.pi / 2), 1080)
        self.assertAlmostEqual(minutes_to_angle(360), math.pi / 2)
        self.assertEqual(angle_to_minutes(minutes_to_angle(555)), 555)

    def test_coords_run_clockwise_from_top(self) -> None:
        self.assertAlmostEqual(coords_to_angle(50, 0), 0.0)
        self.assertAlmostEqual(coords_to_angle(100, 50), math.pi / 2)
        self.assertAlmostEqual(coords_to_angle(50, 100), math.pi)
        self.assertAlmostEqual(coords_to_angle(0, 50), 3 * math.pi / 2)


if __name__ == "__main__":
    unittest.main(verbosity=2)
