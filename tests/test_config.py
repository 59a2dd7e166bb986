import dataclasses
import unittest

from pushupsense.config import AnalyzerConfig, Backpressure, in_range


class AnalyzerConfigTests(unittest.TestCase):
    def test_defaults(self) -> None:
        config = AnalyzerConfig()
        self.assertEqual(config.target_count, 0)
        self.assertEqual(config.visibility_threshold, 0.6)
        self.assertEqual(config.hysteresis_deg, 20.0)
        self.assertIs(config.live_backpressure, Backpressure.DROP_OLDEST)

    def test_config_is_immutable(self) -> None:
        with self.assertRaises(dataclasses.FrozenInstanceError):
            AnalyzerConfig().target_count = 5

    def test_rejects_invalid_values(self) -> None:
        bad = [
            {"target_count": -1},
            {"visibility_threshold": 1.5},
            {"elbow_up_threshold": 100.0, "elbow_down_threshold": 110.0},
            {"elbow_up_threshold": 110.0, "elbow_down_threshold": 110.0},
            {"hip_range": (220.0, 140.0)},
            {"too_fast_duration_ms": -5},
            {"sampled_frame_interval_ms": 0},
            {"live_backpressure": "drop-newest"},
        ]
        for kwargs in bad:
            with self.subTest(kwargs=kwargs):
                with self.assertRaises(ValueError):
                    AnalyzerConfig(**kwargs)

    def test_backpressure_accepts_string(self) -> None:
        config = AnalyzerConfig(live_backpressure="drop-oldest")
        self.assertIs(config.live_backpressure, Backpressure.DROP_OLDEST)

    def test_with_overrides_skips_none(self) -> None:
        base = AnalyzerConfig()
        self.assertIs(base.with_overrides(target_count=None), base)
        changed = base.with_overrides(target_count=12, visibility_threshold=None)
        self.assertEqual(changed.target_count, 12)
        self.assertEqual(changed.visibility_threshold, base.visibility_threshold)

    def test_from_env_parses_fields(self) -> None:
        env = {
            "PUSHUPSENSE_TARGET_COUNT": "10",
            "PUSHUPSENSE_ELBOW_DOWN_THRESHOLD": "100.5",
            "PUSHUPSENSE_HIP_RANGE": "150, 210",
            "PUSHUPSENSE_LIVE_BACKPRESSURE": "DROP-OLDEST",
            "PUSHUPSENSE_KNEE_BENT_DEG": "",
            "UNRELATED": "x",
        }
        config = AnalyzerConfig.from_env(env)
        self.assertEqual(config.target_count, 10)
        self.assertEqual(config.elbow_down_threshold, 100.5)
        self.assertEqual(config.hip_range, (150.0, 210.0))
        self.assertEqual(config.knee_bent_deg, AnalyzerConfig().knee_bent_deg)

    def test_from_env_reports_bad_variable(self) -> None:
        with self.assertRaisesRegex(ValueError, "PUSHUPSENSE_HIP_RANGE"):
            AnalyzerConfig.from_env({"PUSHUPSENSE_HIP_RANGE": "150"})
        with self.assertRaisesRegex(ValueError, "PUSHUPSENSE_TARGET_COUNT"):
            AnalyzerConfig.from_env({"PUSHUPSENSE_TARGET_COUNT": "ten"})

    def test_in_range_is_inclusive(self) -> None:
        self.assertTrue(in_range(140.0, (140.0, 220.0)))
        self.assertTrue(in_range(220.0, (140.0, 220.0)))
        self.assertFalse(in_range(139.9, (140.0, 220.0)))


if __name__ == "__main__":
    unittest.main()
