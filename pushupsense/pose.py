"""
Pose data model and MediaPipe Pose estimation.

The analyzer only consumes :class:`PoseFrame`; :class:`MediaPipePoseEstimator`
turns BGR images into frames using the Pose Landmarker task (MediaPipe 0.10+),
CPU-only, with landmark visibility carried as confidence.
"""
from __future__ import annotations

import os
import types
import urllib.request
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Protocol

import cv2
import numpy as np


class Side(str, Enum):
    LEFT = "left"
    RIGHT = "right"


class BodyPart(str, Enum):
    SHOULDER = "shoulder"
    ELBOW = "elbow"
    WRIST = "wrist"
    HIP = "hip"
    KNEE = "knee"
    ANKLE = "ankle"


class JointId(str, Enum):
    LEFT_SHOULDER = "left_shoulder"
    RIGHT_SHOULDER = "right_shoulder"
    LEFT_ELBOW = "left_elbow"
    RIGHT_ELBOW = "right_elbow"
    LEFT_WRIST = "left_wrist"
    RIGHT_WRIST = "right_wrist"
    LEFT_HIP = "left_hip"
    RIGHT_HIP = "right_hip"
    LEFT_KNEE = "left_knee"
    RIGHT_KNEE = "right_knee"
    LEFT_ANKLE = "left_ankle"
    RIGHT_ANKLE = "right_ankle"

    @classmethod
    def of(cls, side: Side, part: BodyPart) -> "JointId":
        return cls(f"{side.value}_{part.value}")

    @property
    def side(self) -> Side:
        return Side(self.value.split("_", 1)[0])

    @property
    def part(self) -> BodyPart:
        return BodyPart(self.value.split("_", 1)[1])


# MediaPipe Pose landmark indices for the joints we track
class LandmarkIdx:
    LEFT_SHOULDER = 11
    RIGHT_SHOULDER = 12
    LEFT_ELBOW = 13
    RIGHT_ELBOW = 14
    LEFT_WRIST = 15
    RIGHT_WRIST = 16
    LEFT_HIP = 23
    RIGHT_HIP = 24
    LEFT_KNEE = 25
    RIGHT_KNEE = 26
    LEFT_ANKLE = 27
    RIGHT_ANKLE = 28


_MEDIAPIPE_INDEX: dict[JointId, int] = {
    joint: getattr(LandmarkIdx, joint.name) for joint in JointId
}


@dataclass(frozen=True)
class Landmark:
    """Single detected joint in image coordinates with its confidence."""

    x: float
    y: float
    confidence: float

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")

    @property
    def point(self) -> tuple[float, float]:
        return (self.x, self.y)


@dataclass(frozen=True)
class PoseFrame:
    """Immutable pose estimate for one analyzed frame.

    Joints the estimator did not report are absent from `landmarks`; a landmark
    at the image origin is a real detection.
    """

    landmarks: Mapping[JointId, Landmark] = field(default_factory=dict)
    timestamp_ms: Optional[float] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "landmarks", types.MappingProxyType(dict(self.landmarks)))

    def get(self, joint: JointId) -> Optional[Landmark]:
        return self.landmarks.get(joint)

    def __contains__(self, joint: object) -> bool:
        return joint in self.landmarks

    def __len__(self) -> int:
        return len(self.landmarks)

    @classmethod
    def from_points(
        cls,
        points: Mapping[JointId, tuple[float, float, float]],
        timestamp_ms: Optional[float] = None,
    ) -> "PoseFrame":
        """Build a frame from `{joint: (x, y, confidence)}`."""
        return cls(
            landmarks={joint: Landmark(x, y, conf) for joint, (x, y, conf) in points.items()},
            timestamp_ms=timestamp_ms,
        )


class PoseEstimator(Protocol):
    def estimate(self, image: Any) -> Optional[PoseFrame]:
        """Return the pose found in `image`, or None when nobody is detected."""
        ...


@dataclass(frozen=True)
class PoseConfig:
    """Options for the MediaPipe Pose Landmarker."""

    min_detection_confidence: float = 0.5
    min_presence_confidence: float = 0.5
    min_tracking_confidence: float = 0.5
    model_complexity: int = 1
    cache_dir: Optional[str] = None


# Pose Landmarker model URL (lite = faster, CPU-friendly)
_POSE_MODEL_URL = "https://storage.googleapis.com/mediapipe-models/pose_landmarker/pose_landmarker_lite/float16/1/pose_landmarker_lite.task"
_POSE_MODEL_FILENAME = "pose_landmarker_lite.task"


def _get_model_path(cache_dir: Optional[str] = None) -> str:
    """Return path to pose landmarker model, downloading if needed."""
    if cache_dir is None:
        cache_dir = os.path.join(os.path.dirname(__file__), "..", "models")
    os.makedirs(cache_dir, exist_ok=True)
    path = os.path.join(cache_dir, _POSE_MODEL_FILENAME)
    if not os.path.isfile(path):
        urllib.request.urlretrieve(_POSE_MODEL_URL, path)
    return path


def _create_landmarker(config: PoseConfig):
    """Create PoseLandmarker instance (MediaPipe 0.10+ tasks API)."""
    from mediapipe.tasks.python.core import base_options
    from mediapipe.tasks.python.vision import PoseLandmarker, PoseLandmarkerOptions
    from mediapipe.tasks.python.vision.core import vision_task_running_mode

    model_path = _get_model_path(config.cache_dir)
    base = base_options.BaseOptions(model_asset_path=model_path)
    options = PoseLandmarkerOptions(
        base_options=base,
        running_mode=vision_task_running_mode.VisionTaskRunningMode.IMAGE,
        num_poses=1,
        min_pose_detection_confidence=config.min_detection_confidence,
        min_pose_presence_confidence=config.min_presence_confidence,
        min_tracking_confidence=config.min_tracking_confidence,
    )
    return PoseLandmarker.create_from_options(options)


def create_pose_detector(config: Optional[PoseConfig] = None):
    """
    Create pose detector. Uses MediaPipe 0.10+ PoseLandmarker (CPU-friendly),
    falling back to the legacy solutions API on older MediaPipe releases.
    """
    config = config or PoseConfig()
    try:
        return _create_landmarker(config)
    except Exception:
        # Fallback: try legacy API (MediaPipe < 0.10)
        import mediapipe as mp
        return mp.solutions.pose.Pose(
            static_image_mode=False,
            model_complexity=min(config.model_complexity, 2),
            min_detection_confidence=config.min_detection_confidence,
            min_tracking_confidence=config.min_tracking_confidence,
        )


def _clamp_unit(value: Optional[float]) -> float:
    if value is None:
        return 0.0
    return float(min(1.0, max(0.0, value)))


def landmarks_to_frame(
    landmarks: Any,
    width: int,
    height: int,
    timestamp_ms: Optional[float] = None,
) -> PoseFrame:
    """Convert a MediaPipe landmark list (normalized coords) into a PoseFrame in pixels."""
    points: dict[JointId, Landmark] = {}
    for joint, idx in _MEDIAPIPE_INDEX.items():
        if idx >= len(landmarks):
            continue
        lm = landmarks[idx]
        points[joint] = Landmark(
            x=lm.x * width,
            y=lm.y * height,
            confidence=_clamp_unit(getattr(lm, "visibility", None)),
        )
    return PoseFrame(landmarks=points, timestamp_ms=timestamp_ms)


def process_frame(
    frame_bgr: np.ndarray,
    pose,  # PoseLandmarker or legacy mp.solutions.pose.Pose
    timestamp_ms: Optional[float] = None,
) -> Optional[PoseFrame]:
    """
    Run pose estimation on one BGR frame.
    Returns a PoseFrame in pixel coords, or None if no pose.
    """
    h, w = frame_bgr.shape[:2]
    rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)

    # MediaPipe 0.10+ PoseLandmarker
    if hasattr(pose, "detect"):
        from mediapipe.tasks.python.vision.core import image as mp_image
        mp_img = mp_image.Image(image_format=mp_image.ImageFormat.SRGB, data=rgb)
        result = pose.detect(mp_img)
        if not result.pose_landmarks or len(result.pose_landmarks) == 0:
            return None
        return landmarks_to_frame(result.pose_landmarks[0], w, h, timestamp_ms)
    # Legacy mp.solutions.pose.Pose (MediaPipe < 0.10)
    results = pose.process(rgb)
    if not results.pose_landmarks:
        return None
    return landmarks_to_frame(results.pose_landmarks.landmark, w, h, timestamp_ms)


class MediaPipePoseEstimator:
    """PoseEstimator backed by a MediaPipe detector.

    Not thread-safe; the ingestion sources run it on a single worker.
    """

    def __init__(self, config: Optional[PoseConfig] = None, detector: Any = None):
        self.config = config or PoseConfig()
        self._detector = detector if detector is not None else create_pose_detector(self.config)

    def estimate(self, image: np.ndarray) -> Optional[PoseFrame]:
        return process_frame(image, self._detector)

    def close(self) -> None:
        close = getattr(self._detector, "close", None)
        if close is not None:
            close()
