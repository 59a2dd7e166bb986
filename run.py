#!/usr/bin/env python3
"""
Push-up analysis: recorded video (sampled) or live webcam.
Usage:
  Video: python run.py --video path/to/video.mp4 [--target 10] [--output summary.json]
  Live:  python run.py --live [--camera 0] [--target 10]
"""
from __future__ import annotations

import argparse
import logging
import sys
import threading
from pathlib import Path
from typing import Callable, Optional

from dotenv import load_dotenv

from pushupsense.config import AnalyzerConfig
from pushupsense.events import AnalyzerEvent, SessionResult, event_to_dict
from pushupsense.io_stream import VideoFrameRetriever
from pushupsense.live import run_live_pipeline
from pushupsense.pose import MediaPipePoseEstimator, PoseEstimator
from pushupsense.reps import PushUpAnalyzer
from pushupsense.sources import SampledFrameSource, SourceDurationError
from pushupsense.summary import log_session_summary, write_session_summary

logger = logging.getLogger("pushupsense.run")


def run_offline(
    video_path: str,
    config: Optional[AnalyzerConfig] = None,
    on_event: Optional[Callable[[AnalyzerEvent], None]] = None,
    cancel_event: Optional[threading.Event] = None,
    estimator: Optional[PoseEstimator] = None,
) -> Optional[SessionResult]:
    """Process a video file at a fixed step: pose -> analyzer -> SessionResult.

    Returns None if cancelled. Raises FileNotFoundError for unreadable files and
    SourceDurationError when the length cannot be determined.
    """
    config = config or AnalyzerConfig()
    analyzer = PushUpAnalyzer(config)
    if on_event is not None:
        analyzer.subscribe(on_event)
    retriever = VideoFrameRetriever(video_path)
    owns_estimator = estimator is None
    try:
        estimator = estimator or MediaPipePoseEstimator()
    except BaseException:
        retriever.release()
        raise
    source = SampledFrameSource(
        analyzer,
        estimator,
        retriever,
        config,
        cancel_event=cancel_event,
        on_progress=lambda p: logger.debug("progress %.0f%%", p * 100),
    )
    try:
        return source.run()
    finally:
        if owns_estimator:
            estimator.close()


def _print_event(event: AnalyzerEvent) -> None:
    payload = event_to_dict(event)
    if payload["type"] == "processing_complete":
        return
    if payload["type"] == "feedback":
        payload["label"] = event.category.label
    print(payload, flush=True)


def build_config(args: argparse.Namespace) -> AnalyzerConfig:
    return AnalyzerConfig.from_env().with_overrides(
        target_count=args.target,
        visibility_threshold=args.visibility,
        sampled_frame_interval_ms=args.interval_ms,
    )


def main(argv: Optional[list[str]] = None) -> int:
    # Load .env so PUSHUPSENSE_* thresholds can be tuned without flags
    load_dotenv()
    load_dotenv(Path(__file__).resolve().parent / ".env")

    ap = argparse.ArgumentParser(description="Push-up counter: recorded video or live webcam")
    ap.add_argument("--video", type=str, default=None, help="Path to video file (sampled mode)")
    ap.add_argument("--live", action="store_true", help="Use live webcam")
    ap.add_argument("--camera", type=int, default=0, help="Camera device id (default 0)")
    ap.add_argument("--target", type=int, default=None, help="Target repetitions (0 = unlimited)")
    ap.add_argument("--stop-at-target", action="store_true", help="Live mode: stop once the target is reached")
    ap.add_argument("--interval-ms", type=int, default=None, help="Sampling step for video mode (ms)")
    ap.add_argument("--visibility", type=float, default=None, help="Minimum landmark confidence (0-1)")
    ap.add_argument("--output", type=str, default=None, help="Write the session summary JSON here")
    ap.add_argument("--verbose", action="store_true", help="Debug logging")
    args = ap.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.live and args.video:
        print("Error: provide exactly one of --video or --live", file=sys.stderr)
        return 1
    if not args.live and not args.video:
        print("Error: provide --video PATH or --live", file=sys.stderr)
        return 1

    try:
        config = build_config(args)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.live:
        source = "live"
        try:
            result = run_live_pipeline(
                config,
                camera_id=args.camera,
                on_event=_print_event,
                stop_at_target=args.stop_at_target,
            )
        except RuntimeError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
    else:
        source = "video"
        cancel_event = threading.Event()
        try:
            result = run_offline(args.video, config, on_event=_print_event, cancel_event=cancel_event)
        except KeyboardInterrupt:
            cancel_event.set()
            result = None
        except (FileNotFoundError, SourceDurationError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

    if result is None:
        print("Session cancelled; no summary produced.", file=sys.stderr)
        return 130
    log_session_summary(result, source)
    if args.output:
        write_session_summary(result, args.output, source)
    print(f"Done. Reps: {result.total_count}.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
