from __future__ import annotations

import unittest

from mdtranslator.translation.tracker import ProgressTracker, calculate_percentage


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class ProgressTrackerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = FakeClock()
        self.tracker = ProgressTracker(clock=self.clock)

    def test_first_sample_is_raw_then_smoothed(self) -> None:
        self.tracker.start("t1", 1000)

        self.clock.now = 1000
        progress = self.tracker.update("t1", 100)
        self.assertAlmostEqual(progress.tokens_per_second, 100.0)
        self.assertAlmostEqual(progress.estimated_remaining_ms, 9000.0)

        self.clock.now = 2000
        progress = self.tracker.update("t1", 300)
        self.assertAlmostEqual(progress.tokens_per_second, 0.7 * 100 + 0.3 * 200)

    def test_updates_inside_noise_floor_keep_rate(self) -> None:
        self.tracker.start("t1", 1000)
        self.clock.now = 50

        progress = self.tracker.update("t1", 40)

        self.assertEqual(progress.total_tokens, 40)
        self.assertEqual(progress.tokens_per_second, 0.0)
        self.assertEqual(progress.last_update_time, 50)

    def test_percentage_is_capped_and_zero_without_estimate(self) -> None:
        self.assertEqual(calculate_percentage(50, 0), 0.0)
        self.assertEqual(calculate_percentage(150, 100), 100.0)
        self.assertEqual(calculate_percentage(25, 100), 25.0)

        self.tracker.start("t1", 100)
        self.tracker.update("t1", 40)
        self.assertEqual(self.tracker.get("t1").to_dict()["percentage"], 40.0)

    def test_persist_is_throttled(self) -> None:
        self.tracker.start("t1", 100)

        self.clock.now = 2999
        self.assertFalse(self.tracker.should_persist("t1"))
        self.clock.now = 3000
        self.assertTrue(self.tracker.should_persist("t1"))
        self.assertFalse(self.tracker.should_persist("t1"))
        self.assertFalse(self.tracker.should_persist("unknown"))

    def test_resume_starts_from_previous_tokens(self) -> None:
        progress = self.tracker.start("t1", 100, resume_tokens=30)
        self.assertEqual(progress.total_tokens, 30)
        self.assertEqual(progress.percentage, 30.0)

    def test_restart_only_refreshes_estimate(self) -> None:
        self.tracker.start("t1", 100)
        self.tracker.update("t1", 20)

        progress = self.tracker.start("t1", 400)

        self.assertEqual(progress.total_tokens, 20)
        self.assertEqual(progress.estimated_total_tokens, 400)

    def test_complete_evicts_entry(self) -> None:
        self.tracker.start("t1", 100)

        final = self.tracker.complete("t1", final_total_tokens=95)

        self.assertEqual(final.total_tokens, 95)
        self.assertEqual(final.estimated_remaining_ms, 0.0)
        self.assertIsNone(self.tracker.get("t1"))
        self.assertEqual(self.tracker.active_ids(), [])

    def test_unknown_ids_are_ignored(self) -> None:
        self.assertIsNone(self.tracker.update("missing", 10))
        self.assertIsNone(self.tracker.complete("missing"))


if __name__ == "__main__":
    unittest.main()
