"""
Live webcam pipeline: capture -> asynchronous pose estimation (drop-oldest)
-> push-up analyzer. Ends on stop_event, camera end, or (optionally) when the
target count is reached.
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from .config import AnalyzerConfig
from .events import AnalyzerEvent, SessionResult, TargetReached
from .io_stream import webcam_frames
from .pose import MediaPipePoseEstimator, PoseEstimator
from .reps import PushUpAnalyzer
from .sources import LiveFrameSource

logger = logging.getLogger(__name__)

# Seconds to wait for the last in-flight estimate when stopping.
STOP_TIMEOUT_SEC = 2.0


def close_when_idle(source: LiveFrameSource, estimator: PoseEstimator, timeout: Optional[float] = None) -> bool:
    """Close `estimator` once `source` has no estimate running.

    Leaves it open (and returns False) if the worker is still busy after
    `timeout` seconds.
    """
    if not source.join(STOP_TIMEOUT_SEC if timeout is None else timeout):
        logger.warning("live: estimator still busy, leaving it open")
        return False
    close = getattr(estimator, "close", None)
    if close is None:
        return True
    try:
        close()
    except Exception:
        logger.exception("live: failed to close pose estimator")
    return True


def run_live_pipeline(
    config: Optional[AnalyzerConfig] = None,
    camera_id: int = 0,
    target_fps: float = 20,
    on_event: Optional[Callable[[AnalyzerEvent], None]] = None,
    stop_event: Optional[threading.Event] = None,
    stop_at_target: bool = False,
    estimator: Optional[PoseEstimator] = None,
) -> Optional[SessionResult]:
    """
    Run the live capture loop until stopped.
    Returns the SessionResult, or None if interrupted (Ctrl+C cancels the session).
    """
    config = config or AnalyzerConfig()
    stop_event = stop_event or threading.Event()
    analyzer = PushUpAnalyzer(config)
    if on_event is not None:
        analyzer.subscribe(on_event)
    if stop_at_target:
        analyzer.subscribe(lambda ev: stop_event.set() if isinstance(ev, TargetReached) else None)

    owns_estimator = estimator is None
    estimator = estimator or MediaPipePoseEstimator()
    source = LiveFrameSource(analyzer, estimator, config)
    source.start()
    frames = 0
    result: Optional[SessionResult] = None
    try:
        for frame_bgr, ts_ms in webcam_frames(camera_id, target_fps=target_fps):
            if stop_event.is_set():
                break
            source.offer(frame_bgr, ts_ms)
            frames += 1
            if frames % 100 == 0:
                logger.info(
                    "live: frame %s (count=%s dropped=%s)", frames, analyzer.count, source.dropped
                )
        result = source.stop(timeout=STOP_TIMEOUT_SEC)
    except KeyboardInterrupt:
        logger.info("live: interrupted, cancelling session")
        source.cancel()
        return None
    except BaseException:
        source.cancel()
        raise
    finally:
        if owns_estimator:
            close_when_idle(source, estimator)
    return result
