import io
import unittest
from contextlib import redirect_stderr
from unittest import mock

import run
from pushupsense.events import FeedbackCategory, FeedbackEvent, SessionResult


class MainTests(unittest.TestCase):
    def test_requires_exactly_one_source(self) -> None:
        with redirect_stderr(io.StringIO()):
            self.assertEqual(run.main([]), 1)
            self.assertEqual(run.main(["--live", "--video", "clip.mp4"]), 1)

    def test_invalid_config_is_reported(self) -> None:
        err = io.StringIO()
        with redirect_stderr(err):
            self.assertEqual(run.main(["--video", "clip.mp4", "--visibility", "2"]), 1)
        self.assertIn("visibility_threshold", err.getvalue())

    def test_missing_video_is_reported(self) -> None:
        with mock.patch.object(run, "run_offline", side_effect=FileNotFoundError("Cannot open video: nope.mp4")):
            err = io.StringIO()
            with redirect_stderr(err):
                self.assertEqual(run.main(["--video", "nope.mp4"]), 1)
        self.assertIn("nope.mp4", err.getvalue())

    def test_video_run_passes_overrides(self) -> None:
        result = SessionResult(2, (FeedbackEvent(1, FeedbackCategory.GOOD_JOB), FeedbackEvent(2, FeedbackCategory.TOO_FAST)))
        with mock.patch.object(run, "run_offline", return_value=result) as run_offline, mock.patch.object(
            run, "write_session_summary"
        ) as write_summary, mock.patch("sys.stdout", new_callable=io.StringIO) as out:
            code = run.main(["--video", "clip.mp4", "--target", "5", "--interval-ms", "100", "--output", "s.json"])
        self.assertEqual(code, 0)
        config = run_offline.call_args.args[1]
        self.assertEqual(config.target_count, 5)
        self.assertEqual(config.sampled_frame_interval_ms, 100)
        write_summary.assert_called_once_with(result, "s.json", "video")
        self.assertIn("Reps: 2", out.getvalue())

    def test_cancelled_session_exits_130(self) -> None:
        with mock.patch.object(run, "run_offline", return_value=None), redirect_stderr(io.StringIO()):
            self.assertEqual(run.main(["--video", "clip.mp4"]), 130)


if __name__ == "__main__":
    unittest.main()
