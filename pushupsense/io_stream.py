"""
Frame access for recorded video (seekable, by timestamp) and webcam (stream).
"""
from __future__ import annotations

import time
from typing import Generator, Optional

import cv2
import numpy as np


class VideoFrameRetriever:
    """
    Seekable frame access into a video file via OpenCV.
    Duration is derived from frame count and fps; 0.0 when the container
    reports neither.
    """

    def __init__(self, video_path: str):
        self.video_path = video_path
        self._cap = cv2.VideoCapture(video_path)
        if not self._cap.isOpened():
            self._cap.release()
            raise FileNotFoundError(f"Cannot open video: {video_path}")

    @property
    def fps(self) -> float:
        return float(self._cap.get(cv2.CAP_PROP_FPS) or 0.0)

    def duration_ms(self) -> float:
        fps = self.fps
        frame_count = float(self._cap.get(cv2.CAP_PROP_FRAME_COUNT) or 0.0)
        if fps <= 0 or frame_count <= 0:
            return 0.0
        return frame_count / fps * 1000.0

    def frame_at(self, timestamp_ms: float) -> Optional[np.ndarray]:
        """Decode the frame shown at `timestamp_ms`, or None past the end."""
        self._cap.set(cv2.CAP_PROP_POS_MSEC, float(timestamp_ms))
        ret, frame = self._cap.read()
        if not ret:
            return None
        return frame

    def release(self) -> None:
        self._cap.release()


def webcam_frames(
    camera_id: int = 0,
    target_fps: float = 20,
) -> Generator[tuple[np.ndarray, float], None, None]:
    """
    Yield frames from webcam with graceful shutdown.
    Yields: (frame_bgr, timestamp_ms) with a monotonic capture timestamp.
    """
    cap = cv2.VideoCapture(camera_id)
    if not cap.isOpened():
        raise RuntimeError(f"Cannot open camera {camera_id}. Check permissions and that no other app is using it.")
    try:
        # Prefer a reasonable resolution for speed
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, 1280)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, 720)
        cap.set(cv2.CAP_PROP_FPS, target_fps)
        while True:
            ret, frame = cap.read()
            if not ret:
                break
            yield (frame, time.monotonic() * 1000.0)
    finally:
        cap.release()
