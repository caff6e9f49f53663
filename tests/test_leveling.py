from __future__ import annotations

import unittest

from leveling import XP_TABLE, apply_xp, level_for_xp, level_progress, xp_threshold
from models import Profile


class TestLevelCurve(unittest.TestCase):
    def test_table_thresholds(self) -> None:
        self.assertEqual(xp_threshold(1), 0)
        self.assertEqual(xp_threshold(2), 100)
        self.assertEqual(xp_threshold(25), 85000)
        self.assertEqual(xp_threshold(0), 0)

    def test_tail_grows_fifteen_percent_per_level(self) -> None:
        self.assertEqual(xp_threshold(26), 85000 + 14950)
        step_26 = xp_threshold(27) - xp_threshold(26)
        self.assertAlmostEqual(step_26 / 14950, 1.15, places=3)

    def test_thresholds_strictly_increase(self) -> None:
        previous = -1
        for level in range(1, 120):
            threshold = xp_threshold(level)
            self.assertGreater(threshold, previous)
            previous = threshold

    def test_level_for_xp_inverts_threshold(self) -> None:
        for level in range(1, 120):
            threshold = xp_threshold(level)
            self.assertEqual(level_for_xp(threshold), level)
            if level > 1:
                self.assertEqual(level_for_xp(threshold - 1), level - 1)

    def test_level_for_negative_xp_is_one(self) -> None:
        self.assertEqual(level_for_xp(-50), 1)

    def test_progress_inside_level(self) -> None:
        progress = level_progress(150)
        self.assertEqual(progress, {"level": 2, "xp_in_level": 50, "xp_for_level": 150, "xp_to_next": 100})

    def test_table_matches_threshold(self) -> None:
        for index, xp in enumerate(XP_TABLE):
            self.assertEqual(xp_threshold(index + 1), xp)


class TestApplyXp(unittest.TestCase):
    def test_level_up_reports_change(self) -> None:
        profile, change = apply_xp(Profile(), 260)
        self.assertEqual(profile.xp, 260)
        self.assertEqual(profile.level, 3)
        self.assertEqual(profile.xp_to_next, 240)
        self.assertEqual(change, 2)

    def test_negative_delta_clamps_and_demotes(self) -> None:
        start, _ = apply_xp(Profile(), 120)
        profile, change = apply_xp(start, -500)
        self.assertEqual(profile.xp, 0)
        self.assertEqual(profile.level, 1)
        self.assertEqual(change, -1)

    def test_input_profile_untouched(self) -> None:
        original = Profile()
        apply_xp(original, 1000)
        self.assertEqual(original.xp, 0)


if __name__ == "__main__":
    unittest.main()
