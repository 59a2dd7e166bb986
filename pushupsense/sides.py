"""
Per-frame side selection.

Each body side yields an elbow, hip and knee triad. A triad's angle is only
computed when all three landmarks are present and confident; the side's score
is the mean confidence of its landmarks either way, so partially visible sides
can still be ranked.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .geometry import angle
from .pose import BodyPart, JointId, PoseFrame, Side

logger = logging.getLogger(__name__)

# Preferred side when both score the same.
DEFAULT_SIDE = Side.RIGHT


class Joint(str, Enum):
    ELBOW = "elbow"
    HIP = "hip"
    KNEE = "knee"


# (first, vertex, last) body parts per measured joint
TRIADS: dict[Joint, tuple[BodyPart, BodyPart, BodyPart]] = {
    Joint.ELBOW: (BodyPart.SHOULDER, BodyPart.ELBOW, BodyPart.WRIST),
    Joint.HIP: (BodyPart.SHOULDER, BodyPart.HIP, BodyPart.KNEE),
    Joint.KNEE: (BodyPart.HIP, BodyPart.KNEE, BodyPart.ANKLE),
}


@dataclass(frozen=True)
class JointAngle:
    side: Side
    degrees: float
    confidence: float


@dataclass(frozen=True)
class SideMeasurement:
    side: Side
    angle: Optional[JointAngle]
    score: float

    @property
    def valid(self) -> bool:
        return self.angle is not None


@dataclass(frozen=True)
class SideAngles:
    """Elbow, hip and knee angles taken from one chosen side of one frame."""

    side: Side
    elbow: JointAngle
    hip: JointAngle
    knee: JointAngle
    confidence: float


def measure_joint(
    frame: PoseFrame,
    side: Side,
    joint: Joint,
    visibility_threshold: float,
) -> SideMeasurement:
    landmarks = [frame.get(JointId.of(side, part)) for part in TRIADS[joint]]
    score = sum(lm.confidence for lm in landmarks if lm is not None) / len(landmarks)
    if any(lm is None or lm.confidence < visibility_threshold for lm in landmarks):
        return SideMeasurement(side, None, score)
    first, vertex, last = landmarks
    deg = angle(first.point, vertex.point, last.point)
    return SideMeasurement(side, JointAngle(side, deg, score), score)


def _pick(left_valid: bool, left_score: float, right_valid: bool, right_score: float) -> Optional[Side]:
    if left_valid and right_valid:
        if left_score == right_score:
            return DEFAULT_SIDE
        return Side.LEFT if left_score > right_score else Side.RIGHT
    if left_valid:
        return Side.LEFT
    if right_valid:
        return Side.RIGHT
    return None


def select_joint_angle(
    frame: PoseFrame,
    joint: Joint,
    visibility_threshold: float,
) -> Optional[JointAngle]:
    """Angle for one joint from whichever side is more reliable, or None."""
    left = measure_joint(frame, Side.LEFT, joint, visibility_threshold)
    right = measure_joint(frame, Side.RIGHT, joint, visibility_threshold)
    chosen = _pick(left.valid, left.score, right.valid, right.score)
    if chosen is None:
        return None
    return left.angle if chosen is Side.LEFT else right.angle


def _measure_side(frame: PoseFrame, side: Side, visibility_threshold: float) -> tuple[Optional[SideAngles], float]:
    measured = {joint: measure_joint(frame, side, joint, visibility_threshold) for joint in Joint}
    score = sum(m.score for m in measured.values()) / len(measured)
    if not all(m.valid for m in measured.values()):
        return None, score
    return (
        SideAngles(
            side=side,
            elbow=measured[Joint.ELBOW].angle,
            hip=measured[Joint.HIP].angle,
            knee=measured[Joint.KNEE].angle,
            confidence=score,
        ),
        score,
    )


def select_side(frame: PoseFrame, visibility_threshold: float) -> Optional[SideAngles]:
    """Choose one side for all three joints of this frame.

    A side qualifies only if its elbow, hip and knee triads are all valid.
    Returns None when neither side qualifies; the caller skips the frame.
    """
    left, left_score = _measure_side(frame, Side.LEFT, visibility_threshold)
    right, right_score = _measure_side(frame, Side.RIGHT, visibility_threshold)
    chosen = _pick(left is not None, left_score, right is not None, right_score)
    if chosen is None:
        logger.debug(
            "sides: no valid side (left=%.2f right=%.2f threshold=%.2f)",
            left_score, right_score, visibility_threshold,
        )
        return None
    return left if chosen is Side.LEFT else right
