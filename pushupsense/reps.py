"""
Push-up repetition counting: readiness gate, debounced UP/DOWN state machine,
per-repetition feedback and the session log.
"""
from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from .config import AnalyzerConfig, in_range
from .events import (
    AnalyzerEvent,
    CountChanged,
    ExerciseState,
    Feedback,
    FeedbackEvent,
    ProcessingComplete,
    Ready,
    SessionResult,
    StateChanged,
    TargetReached,
)
from .feedback import CycleWindow, classify
from .pose import PoseFrame
from .sides import SideAngles, select_side

logger = logging.getLogger(__name__)

EventCallback = Callable[[AnalyzerEvent], None]


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class PushUpAnalyzer:
    """
    Counts push-ups from a stream of pose frames.

    NOT_READY until the user holds the starting pose, then alternates
    READY_UP -> DOWN -> READY_UP; only DOWN -> READY_UP counts. Both
    transitions also require straight hips and knees. The gap between the
    down and up elbow thresholds keeps a pose hovering near one boundary from
    flipping the state back and forth.

    Not reentrant: callers deliver one frame at a time.
    """

    def __init__(
        self,
        config: Optional[AnalyzerConfig] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.config = config or AnalyzerConfig()
        self._clock = clock or _monotonic_ms
        self._subscribers: list[EventCallback] = []
        self._state = ExerciseState.NOT_READY
        self._count = 0
        self._window = CycleWindow()
        self._feedback_log: list[FeedbackEvent] = []
        self._processing = False
        self._target_announced = False

    @property
    def state(self) -> ExerciseState:
        return self._state

    @property
    def count(self) -> int:
        return self._count

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def feedback_log(self) -> tuple[FeedbackEvent, ...]:
        return tuple(self._feedback_log)

    @property
    def window_size(self) -> int:
        return len(self._window)

    def subscribe(self, callback: EventCallback) -> Callable[[], None]:
        """Register an event observer. Returns a function that unregisters it."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def _emit(self, event: AnalyzerEvent, sink: list[AnalyzerEvent]) -> None:
        sink.append(event)
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception("analyzer: event subscriber failed on %s", type(event).__name__)

    def _clear(self) -> None:
        self._state = ExerciseState.NOT_READY
        self._count = 0
        self._feedback_log.clear()
        self._window.reset()
        self._target_announced = False

    def start_processing(self) -> list[AnalyzerEvent]:
        """Begin a fresh session: NOT_READY, count 0, empty log and window."""
        self._clear()
        self._processing = True
        emitted: list[AnalyzerEvent] = []
        self._emit(CountChanged(self._count), emitted)
        logger.info("analyzer: processing started (target=%s)", self.config.target_count or "unlimited")
        return emitted

    def stop_processing(self) -> Optional[SessionResult]:
        """Finish the session and emit ProcessingComplete once.

        Returns None when no session is running (e.g. a second stop).
        """
        if not self._processing:
            return None
        self._processing = False
        result = SessionResult(self._count, tuple(self._feedback_log))
        logger.info(
            "analyzer: processing stopped (count=%s feedback=%s)", result.total_count, len(result.feedback_log)
        )
        self._emit(ProcessingComplete(result.total_count, result.feedback_log), [])
        return result

    def cancel_processing(self) -> None:
        """End the session without a result."""
        if self._processing:
            logger.info("analyzer: processing cancelled at count=%s", self._count)
        self._processing = False

    def reset(self) -> list[AnalyzerEvent]:
        """Clear count, state and log; re-announce the count if a session is running."""
        self._clear()
        emitted: list[AnalyzerEvent] = []
        if self._processing:
            self._emit(CountChanged(self._count), emitted)
        logger.info("analyzer: state reset")
        return emitted

    def ingest(self, frame: PoseFrame) -> list[AnalyzerEvent]:
        """Analyze one pose frame. Returns the events it produced (also sent to subscribers)."""
        if not self._processing:
            return []
        angles = select_side(frame, self.config.visibility_threshold)
        if angles is None:
            logger.debug("analyzer: frame skipped, no reliable side")
            return []
        now_ms = frame.timestamp_ms if frame.timestamp_ms is not None else self._clock()
        logger.debug(
            "analyzer: %s elbow=%.1f hip=%.1f knee=%.1f state=%s",
            angles.side.value, angles.elbow.degrees, angles.hip.degrees, angles.knee.degrees, self._state.value,
        )

        emitted: list[AnalyzerEvent] = []
        if self._state is ExerciseState.NOT_READY:
            if self._is_ready_pose(angles):
                self._state = ExerciseState.READY_UP
                logger.info("analyzer: ready pose detected (%s side)", angles.side.value)
                self._emit(Ready(), emitted)
            return emitted

        self._window.add(angles)
        elbow = angles.elbow.degrees
        if not self._lower_body_stable(angles):
            return emitted

        if self._state is ExerciseState.DOWN and elbow > self.config.elbow_up_threshold:
            self._complete_repetition(now_ms, emitted)
        elif self._state is ExerciseState.READY_UP and elbow < self.config.elbow_down_threshold:
            self._state = ExerciseState.DOWN
            self._window.mark_cycle_start(now_ms)
            logger.debug("analyzer: transitioned to DOWN at %.0f ms", now_ms)
            self._emit(StateChanged(self._state), emitted)
        return emitted

    def _is_ready_pose(self, angles: SideAngles) -> bool:
        cfg = self.config
        return (
            in_range(angles.elbow.degrees, cfg.ready_elbow_range)
            and in_range(angles.hip.degrees, cfg.ready_hip_range)
            and in_range(angles.knee.degrees, cfg.ready_knee_range)
        )

    def _lower_body_stable(self, angles: SideAngles) -> bool:
        return in_range(angles.hip.degrees, self.config.hip_range) and in_range(
            angles.knee.degrees, self.config.knee_range
        )

    def _complete_repetition(self, now_ms: float, emitted: list[AnalyzerEvent]) -> None:
        self._count += 1
        self._state = ExerciseState.READY_UP
        self._emit(CountChanged(self._count), emitted)
        self._emit(StateChanged(self._state), emitted)

        extrema = self._window.extrema()
        duration_ms = self._window.duration_ms(now_ms)
        if extrema is None:
            logger.warning("analyzer: rep %s has no angle samples, feedback skipped", self._count)
        else:
            category = classify(extrema, duration_ms, self.config)
            self._feedback_log.append(FeedbackEvent(self._count, category))
            logger.info(
                "analyzer: rep %s feedback=%s (dur_ms=%s elbow=%.0f/%.0f hip_min=%.0f knee_min=%.0f n=%s)",
                self._count,
                category.value,
                None if duration_ms is None else round(duration_ms),
                extrema.min_elbow,
                extrema.max_elbow,
                extrema.min_hip,
                extrema.min_knee,
                extrema.samples,
            )
            self._emit(Feedback(category, self._count), emitted)
        self._window.reset()

        target = self.config.target_count
        if target > 0 and self._count >= target and not self._target_announced:
            self._target_announced = True
            logger.info("analyzer: target of %s reached", target)
            self._emit(TargetReached(), emitted)
