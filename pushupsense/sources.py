"""
Frame ingestion regimes feeding a :class:`~pushupsense.reps.PushUpAnalyzer`.

Both variants end in the analyzer's single-frame `ingest` and guarantee that
at most one frame is inside it at a time:

- :class:`LiveFrameSource` receives frames at sensor rate and runs pose
  estimation asynchronously. While an estimate is in flight, newer frames
  replace the single pending slot instead of queueing (drop-oldest).
- :class:`SampledFrameSource` walks a finite recording at a fixed step,
  waiting for every estimate before moving on, honoring pause and
  cooperative cancellation.
"""
from __future__ import annotations

import concurrent.futures
import dataclasses
import functools
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

from .config import AnalyzerConfig, Backpressure
from .events import SessionResult
from .pose import PoseEstimator, PoseFrame
from .reps import PushUpAnalyzer

logger = logging.getLogger(__name__)


class SourceDurationError(RuntimeError):
    """Raised when a recorded source's total duration cannot be determined."""


class FrameRetriever(Protocol):
    def duration_ms(self) -> float:
        ...

    def frame_at(self, timestamp_ms: float) -> Any:
        ...

    def release(self) -> None:
        ...


def _stamp(frame: PoseFrame, timestamp_ms: Optional[float]) -> PoseFrame:
    if timestamp_ms is None or frame.timestamp_ms is not None:
        return frame
    return dataclasses.replace(frame, timestamp_ms=timestamp_ms)


class LiveFrameSource:
    """Live regime: asynchronous estimation with a one-slot, keep-latest buffer.

    Analyzer events are delivered on the worker thread; subscribers must not
    call stop() or cancel() from there.
    """

    def __init__(
        self,
        analyzer: PushUpAnalyzer,
        estimator: PoseEstimator,
        config: Optional[AnalyzerConfig] = None,
        executor: Optional[concurrent.futures.Executor] = None,
    ):
        self.analyzer = analyzer
        self.estimator = estimator
        self.config = config or analyzer.config
        if self.config.live_backpressure is not Backpressure.DROP_OLDEST:
            raise ValueError(f"Unsupported live backpressure policy: {self.config.live_backpressure}")
        self._executor = executor
        self._owns_executor = executor is None
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        # serializes every call into the analyzer; taken before _lock, never inside it
        self._core = threading.Lock()
        self._inflight: Optional[concurrent.futures.Future] = None
        self._accepting = False
        self._busy = False
        self._pending: Optional[tuple[Any, Optional[float]]] = None
        self._generation = 0
        self.submitted = 0
        self.dropped = 0
        self.failed = 0

    def start(self) -> None:
        with self._lock:
            if self._accepting:
                raise RuntimeError("live source already started")
            if self._executor is None:
                self._executor = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="live_pose")
            self._generation += 1
            self._pending = None
            self._busy = False
            self._accepting = True
            self.submitted = self.dropped = self.failed = 0
        with self._core:
            self.analyzer.start_processing()
        logger.info("live: source started")

    def offer(self, image: Any, timestamp_ms: Optional[float] = None) -> bool:
        """Hand a captured image to the source.

        Returns True if estimation started right away, False if the image was
        parked as the pending frame (replacing an older one) or rejected
        because the source is not running.
        """
        with self._lock:
            if not self._accepting:
                return False
            if self._busy:
                if self._pending is not None:
                    self.dropped += 1
                self._pending = (image, timestamp_ms)
                return False
            self._busy = True
            generation = self._generation
        self._submit(image, timestamp_ms, generation)
        return True

    def _submit(self, image: Any, timestamp_ms: Optional[float], generation: int) -> None:
        try:
            future = self._executor.submit(self.estimator.estimate, image)
        except RuntimeError:
            # executor shut down by a concurrent cancel
            with self._lock:
                if generation == self._generation:
                    self._busy = False
                    self._idle.notify_all()
            return
        with self._lock:
            self.submitted += 1
            self._inflight = future
        future.add_done_callback(
            functools.partial(self._on_estimate, generation=generation, timestamp_ms=timestamp_ms)
        )

    def _on_estimate(
        self,
        future: concurrent.futures.Future,
        generation: int,
        timestamp_ms: Optional[float],
    ) -> None:
        with self._lock:
            if generation != self._generation:
                logger.debug("live: discarding estimate from an abandoned session")
                return
        next_item: Optional[tuple[Any, Optional[float]]] = None
        try:
            try:
                frame = future.result()
            except Exception:
                with self._lock:
                    self.failed += 1
                logger.warning("live: pose estimation failed, frame skipped", exc_info=True)
                frame = None
            if frame is not None:
                with self._core:
                    with self._lock:
                        current = generation == self._generation
                    # stop() may have abandoned this estimate while it ran
                    if current:
                        self.analyzer.ingest(_stamp(frame, timestamp_ms))
        finally:
            with self._lock:
                if generation == self._generation:
                    if self._accepting and self._pending is not None:
                        next_item, self._pending = self._pending, None
                    else:
                        self._busy = False
                        self._idle.notify_all()
        if next_item is not None:
            self._submit(next_item[0], next_item[1], generation)

    def stop(self, timeout: Optional[float] = None) -> Optional[SessionResult]:
        """Stop accepting frames, let the in-flight estimate finish, then finalize.

        The pending frame, if any, is discarded. If the in-flight estimate does
        not finish within `timeout` seconds its result is abandoned.
        """
        with self._idle:
            if self._accepting and self._pending is not None:
                self.dropped += 1
            self._accepting = False
            self._pending = None
            if not self._idle.wait_for(lambda: not self._busy, timeout):
                logger.warning("live: estimate still in flight after %.1fs, abandoning it", timeout)
                self._generation += 1
                self._busy = False
        with self._core:
            result = self.analyzer.stop_processing()
        self._shutdown_executor()
        logger.info(
            "live: source stopped (submitted=%s dropped=%s failed=%s)", self.submitted, self.dropped, self.failed
        )
        return result

    def cancel(self) -> None:
        """Abandon the session: pending and in-flight frames are ignored, no result."""
        with self._idle:
            self._generation += 1
            self._accepting = False
            self._pending = None
            self._busy = False
            self._idle.notify_all()
        with self._core:
            self.analyzer.cancel_processing()
        self._shutdown_executor()
        logger.info("live: source cancelled")

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait until the estimator is no longer running a frame.

        Call before closing the estimator. Returns False if an estimate is still
        running after `timeout` seconds.
        """
        with self._lock:
            future = self._inflight
        if future is None:
            return True
        done, _ = concurrent.futures.wait([future], timeout)
        return bool(done)

    def _shutdown_executor(self) -> None:
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None


@dataclass(frozen=True)
class PlaybackSnapshot:
    position_ms: Optional[float]
    playing: bool


class PlaybackState:
    """Playback position and play/pause flag owned by a player thread.

    The sampled loop only reads it, through consistent snapshots.
    """

    def __init__(self, playing: bool = True, position_ms: Optional[float] = None):
        self._lock = threading.Lock()
        self._playing = playing
        self._position_ms = position_ms

    def update(self, position_ms: Optional[float] = None, playing: Optional[bool] = None) -> None:
        with self._lock:
            if position_ms is not None:
                self._position_ms = float(position_ms)
            if playing is not None:
                self._playing = bool(playing)

    def pause(self) -> None:
        self.update(playing=False)

    def resume(self) -> None:
        self.update(playing=True)

    def snapshot(self) -> PlaybackSnapshot:
        with self._lock:
            return PlaybackSnapshot(self._position_ms, self._playing)


_ALWAYS_PLAYING = PlaybackSnapshot(position_ms=None, playing=True)

# Marker for an estimate abandoned by cancellation.
_ABANDONED = object()


class SampledFrameSource:
    """Sampled regime: step through a finite recording at a fixed interval.

    Timestamps come from the attached player's position when it reports one,
    otherwise from a virtual clock that advances by the interval per analyzed
    step. While the player is paused the loop waits one interval and retries.
    """

    def __init__(
        self,
        analyzer: PushUpAnalyzer,
        estimator: PoseEstimator,
        retriever: FrameRetriever,
        config: Optional[AnalyzerConfig] = None,
        playback: Optional[PlaybackState] = None,
        cancel_event: Optional[threading.Event] = None,
        on_progress: Optional[Callable[[float], None]] = None,
        sleep: Optional[Callable[[float], Any]] = None,
        executor: Optional[concurrent.futures.Executor] = None,
    ):
        self.analyzer = analyzer
        self.estimator = estimator
        self.retriever = retriever
        self.config = config or analyzer.config
        self.playback = playback
        self.cancel_event = cancel_event or threading.Event()
        self.on_progress = on_progress
        self._sleep = sleep or self.cancel_event.wait
        self._executor = executor
        self.analyzed = 0
        self.skipped = 0

    @property
    def interval_ms(self) -> int:
        return self.config.sampled_frame_interval_ms

    def cancel(self) -> None:
        self.cancel_event.set()

    def run(self) -> Optional[SessionResult]:
        """Analyze the whole recording.

        Returns the SessionResult, or None when cancelled. Raises
        SourceDurationError before any analysis if the length is unknown.
        The retriever is released on every exit path. With its own executor,
        run() returns only once no estimate is running.
        """
        executor = self._executor or concurrent.futures.ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="sampled_pose"
        )
        cancelled = False
        try:
            duration_ms = self._read_duration()
            self.analyzer.start_processing()
            logger.info("sampled: starting (duration_ms=%.0f interval_ms=%s)", duration_ms, self.interval_ms)
            try:
                cancelled = self._loop(executor, duration_ms)
            except BaseException:
                self.analyzer.cancel_processing()
                raise
        finally:
            self._release()
            if self._executor is None:
                # the estimator may be closed as soon as run() returns
                executor.shutdown(wait=True, cancel_futures=True)

        if cancelled:
            logger.info("sampled: cancelled after %s analyzed frames", self.analyzed)
            self.analyzer.cancel_processing()
            return None
        logger.info("sampled: finished (analyzed=%s skipped=%s)", self.analyzed, self.skipped)
        return self.analyzer.stop_processing()

    def _read_duration(self) -> float:
        try:
            duration_ms = float(self.retriever.duration_ms())
        except Exception as exc:
            raise SourceDurationError(f"Could not read source duration: {exc}") from exc
        if not duration_ms > 0:
            raise SourceDurationError(f"Source reported no usable duration ({duration_ms})")
        return duration_ms

    def _loop(self, executor: concurrent.futures.Executor, duration_ms: float) -> bool:
        """Run steps until the end of the source. Returns True if cancelled."""
        interval_s = self.interval_ms / 1000.0
        virtual_ms = 0.0
        while True:
            if self.cancel_event.is_set():
                return True
            snapshot = self.playback.snapshot() if self.playback is not None else _ALWAYS_PLAYING
            if not snapshot.playing:
                self._sleep(interval_s)
                continue
            timestamp_ms = snapshot.position_ms if snapshot.position_ms is not None else virtual_ms
            if timestamp_ms >= duration_ms:
                return False

            if self._step(executor, timestamp_ms, interval_s) is _ABANDONED:
                return True
            if self.on_progress is not None:
                self.on_progress(min(1.0, timestamp_ms / duration_ms))
            virtual_ms = timestamp_ms + self.interval_ms
            if self.playback is not None:
                # keep pace with a real player
                self._sleep(interval_s)

    def _step(self, executor: concurrent.futures.Executor, timestamp_ms: float, interval_s: float):
        try:
            image = self.retriever.frame_at(timestamp_ms)
        except Exception:
            logger.warning("sampled: could not read frame at %.0f ms", timestamp_ms, exc_info=True)
            image = None
        if image is None:
            self.skipped += 1
            return None

        future = executor.submit(self.estimator.estimate, image)
        while not future.done():
            if self.cancel_event.is_set():
                future.cancel()
                return _ABANDONED
            concurrent.futures.wait([future], timeout=interval_s)
        try:
            frame = future.result()
        except Exception:
            logger.warning("sampled: pose estimation failed at %.0f ms", timestamp_ms, exc_info=True)
            self.skipped += 1
            return None

        if frame is None:
            self.skipped += 1
            return None
        self.analyzed += 1
        return self.analyzer.ingest(_stamp(frame, timestamp_ms))

    def _release(self) -> None:
        try:
            self.retriever.release()
        except Exception:
            logger.exception("sampled: failed to release frame retriever")
