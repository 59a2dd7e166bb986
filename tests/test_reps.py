import unittest

from _frames import down, pose_frame, up

from pushupsense.config import AnalyzerConfig
from pushupsense.events import (
    CountChanged,
    ExerciseState,
    Feedback,
    FeedbackCategory,
    FeedbackEvent,
    ProcessingComplete,
    Ready,
    StateChanged,
    TargetReached,
)
from pushupsense.reps import PushUpAnalyzer


def _started(config=None, **kw) -> tuple[PushUpAnalyzer, list]:
    analyzer = PushUpAnalyzer(config, **kw)
    seen: list = []
    analyzer.subscribe(seen.append)
    analyzer.start_processing()
    return analyzer, seen


def _rep(analyzer: PushUpAnalyzer, start_ms: float, duration_ms: float = 2000.0) -> list:
    events = analyzer.ingest(down(start_ms))
    events += analyzer.ingest(up(start_ms + duration_ms))
    return events


class ScenarioTests(unittest.TestCase):
    def test_good_repetition(self) -> None:
        analyzer, _ = _started()
        self.assertEqual(analyzer.ingest(up(0)), [Ready()])
        self.assertIs(analyzer.state, ExerciseState.READY_UP)

        self.assertEqual(analyzer.ingest(down(100)), [StateChanged(ExerciseState.DOWN)])
        events = analyzer.ingest(up(2100))
        self.assertEqual(
            events,
            [
                CountChanged(1),
                StateChanged(ExerciseState.READY_UP),
                Feedback(FeedbackCategory.GOOD_JOB, 1),
            ],
        )
        self.assertEqual(analyzer.count, 1)

    def test_fast_repetition(self) -> None:
        analyzer, _ = _started()
        analyzer.ingest(up(0))
        events = _rep(analyzer, 100, duration_ms=500)
        self.assertIn(Feedback(FeedbackCategory.TOO_FAST, 1), events)

    def test_target_reached_once(self) -> None:
        analyzer, seen = _started(AnalyzerConfig(target_count=3))
        analyzer.ingest(up(0))
        for i in range(4):
            _rep(analyzer, 1000 + i * 3000)
        self.assertEqual(seen.count(TargetReached()), 1)
        self.assertEqual(analyzer.count, 4)
        self.assertEqual(len(analyzer.feedback_log), 4)
        # announced right after the third repetition's feedback
        target_at = seen.index(TargetReached())
        self.assertEqual(seen[target_at - 1], Feedback(FeedbackCategory.GOOD_JOB, 3))

    def test_no_target_never_fires(self) -> None:
        analyzer, seen = _started(AnalyzerConfig(target_count=0))
        analyzer.ingest(up(0))
        for i in range(6):
            _rep(analyzer, 1000 + i * 3000)
        self.assertNotIn(TargetReached(), seen)
        self.assertEqual(analyzer.count, 6)

    def test_invisible_frame_changes_nothing(self) -> None:
        analyzer, seen = _started()
        analyzer.ingest(up(0))
        before = list(seen)
        events = analyzer.ingest(pose_frame(90.0, timestamp_ms=100, confidence=0.2, other_side_confidence=0.2))
        self.assertEqual(events, [])
        self.assertEqual(seen, before)
        self.assertIs(analyzer.state, ExerciseState.READY_UP)
        self.assertEqual(analyzer.window_size, 0)


class StateMachineTests(unittest.TestCase):
    def test_nothing_counts_before_ready_pose(self) -> None:
        analyzer, seen = _started()
        for t, frame in enumerate([down(0), up(2000, knee=100.0), down(4000), up(6000, knee=100.0)]):
            self.assertEqual(analyzer.ingest(frame), [], msg=f"frame {t}")
        self.assertIs(analyzer.state, ExerciseState.NOT_READY)
        self.assertEqual(seen, [CountChanged(0)])

    def test_ready_frame_is_not_sampled(self) -> None:
        analyzer, _ = _started()
        analyzer.ingest(up(0))
        self.assertEqual(analyzer.window_size, 0)
        analyzer.ingest(up(50))
        self.assertEqual(analyzer.window_size, 1)

    def test_hysteresis_band_holds_state(self) -> None:
        analyzer, _ = _started()
        analyzer.ingest(up(0))
        self.assertEqual(analyzer.ingest(pose_frame(120.0, timestamp_ms=100)), [])
        self.assertIs(analyzer.state, ExerciseState.READY_UP)

        analyzer.ingest(pose_frame(105.0, timestamp_ms=200))
        self.assertIs(analyzer.state, ExerciseState.DOWN)
        for t, elbow in ((300, 112.0), (400, 125.0), (500, 130.0)):
            self.assertEqual(analyzer.ingest(pose_frame(elbow, timestamp_ms=t)), [])
            self.assertIs(analyzer.state, ExerciseState.DOWN)

        analyzer.ingest(pose_frame(131.0, timestamp_ms=1500))
        self.assertEqual(analyzer.count, 1)

    def test_unstable_lower_body_blocks_transitions(self) -> None:
        analyzer, _ = _started()
        analyzer.ingest(up(0))
        self.assertEqual(analyzer.ingest(pose_frame(90.0, hip=120.0, timestamp_ms=100)), [])
        self.assertIs(analyzer.state, ExerciseState.READY_UP)
        self.assertEqual(analyzer.window_size, 1)

        analyzer.ingest(down(200))
        self.assertEqual(analyzer.ingest(pose_frame(170.0, knee=110.0, timestamp_ms=2200)), [])
        self.assertIs(analyzer.state, ExerciseState.DOWN)
        self.assertEqual(analyzer.count, 0)

    def test_feedback_reflects_window_since_last_rep(self) -> None:
        analyzer, _ = _started()
        analyzer.ingest(up(0))
        analyzer.ingest(down(100))
        analyzer.ingest(pose_frame(140.0, timestamp_ms=1500))
        self.assertEqual(analyzer.feedback_log, (FeedbackEvent(1, FeedbackCategory.NOT_ELBOW_UP_ENOUGH),))

        analyzer.ingest(pose_frame(100.0, timestamp_ms=2000))
        analyzer.ingest(up(3500))
        self.assertEqual(analyzer.feedback_log[-1], FeedbackEvent(2, FeedbackCategory.NOT_ELBOW_DOWN_ENOUGH))

    def test_count_is_monotonic_and_matches_log(self) -> None:
        analyzer, seen = _started()
        analyzer.ingest(up(0))
        for i in range(5):
            _rep(analyzer, 1000 + i * 3000, duration_ms=300 if i % 2 else 2000)
        counts = [e.count for e in seen if isinstance(e, CountChanged)]
        self.assertEqual(counts, [0, 1, 2, 3, 4, 5])
        self.assertEqual([e.repetition_index for e in analyzer.feedback_log], [1, 2, 3, 4, 5])

    def test_frames_without_timestamp_use_clock(self) -> None:
        ticks = iter([0.0, 100.0, 600.0])
        analyzer, _ = _started(clock=lambda: next(ticks))
        analyzer.ingest(up())
        analyzer.ingest(down())
        analyzer.ingest(up())
        self.assertEqual(analyzer.feedback_log, (FeedbackEvent(1, FeedbackCategory.TOO_FAST),))


class LifecycleTests(unittest.TestCase):
    def test_ingest_ignored_until_started(self) -> None:
        analyzer = PushUpAnalyzer()
        self.assertEqual(analyzer.ingest(up(0)), [])
        self.assertIs(analyzer.state, ExerciseState.NOT_READY)

    def test_start_announces_zero_count(self) -> None:
        analyzer = PushUpAnalyzer()
        self.assertEqual(analyzer.start_processing(), [CountChanged(0)])
        self.assertTrue(analyzer.is_processing)

    def test_stop_returns_result_once(self) -> None:
        analyzer, seen = _started()
        analyzer.ingest(up(0))
        _rep(analyzer, 100)
        result = analyzer.stop_processing()
        self.assertEqual(result.total_count, 1)
        self.assertEqual(result.feedback_log, (FeedbackEvent(1, FeedbackCategory.GOOD_JOB),))
        self.assertEqual(seen[-1], ProcessingComplete(1, result.feedback_log))
        self.assertEqual(seen[-1].result, result)

        self.assertIsNone(analyzer.stop_processing())
        self.assertEqual(sum(isinstance(e, ProcessingComplete) for e in seen), 1)

    def test_cancel_discards_session(self) -> None:
        analyzer, seen = _started()
        analyzer.ingest(up(0))
        analyzer.cancel_processing()
        self.assertFalse(analyzer.is_processing)
        self.assertEqual(analyzer.ingest(down(100)), [])
        self.assertIsNone(analyzer.stop_processing())
        self.assertFalse(any(isinstance(e, ProcessingComplete) for e in seen))

    def test_restart_clears_previous_session(self) -> None:
        analyzer, _ = _started(AnalyzerConfig(target_count=1))
        analyzer.ingest(up(0))
        _rep(analyzer, 100)
        analyzer.stop_processing()

        analyzer.start_processing()
        self.assertEqual(analyzer.count, 0)
        self.assertEqual(analyzer.feedback_log, ())
        self.assertIs(analyzer.state, ExerciseState.NOT_READY)
        analyzer.ingest(up(0))
        self.assertIn(TargetReached(), _rep(analyzer, 100))

    def test_reset_while_processing(self) -> None:
        analyzer, _ = _started()
        analyzer.ingest(up(0))
        _rep(analyzer, 100)
        self.assertEqual(analyzer.reset(), [CountChanged(0)])
        self.assertIs(analyzer.state, ExerciseState.NOT_READY)
        self.assertTrue(analyzer.is_processing)
        self.assertEqual(analyzer.feedback_log, ())

    def test_failing_subscriber_does_not_break_others(self) -> None:
        analyzer = PushUpAnalyzer()

        def broken(event):
            raise RuntimeError("boom")

        seen: list = []
        analyzer.subscribe(broken)
        analyzer.subscribe(seen.append)
        with self.assertLogs("pushupsense.reps", level="ERROR"):
            analyzer.start_processing()
        self.assertEqual(seen, [CountChanged(0)])

    def test_unsubscribe(self) -> None:
        analyzer = PushUpAnalyzer()
        seen: list = []
        unsubscribe = analyzer.subscribe(seen.append)
        unsubscribe()
        unsubscribe()
        analyzer.start_processing()
        self.assertEqual(seen, [])


if __name__ == "__main__":
    unittest.main()
