"""
Per-repetition angle accumulation and form classification.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

from .config import AnalyzerConfig
from .events import FeedbackCategory
from .sides import SideAngles


@dataclass(frozen=True)
class CycleExtrema:
    max_elbow: float
    min_elbow: float
    min_hip: float
    min_knee: float
    samples: int


class CycleWindow:
    """Angles seen since the last counted repetition (or since readiness)."""

    def __init__(self) -> None:
        self._elbow: list[float] = []
        self._hip: list[float] = []
        self._knee: list[float] = []
        self.started_at_ms: Optional[float] = None

    def __len__(self) -> int:
        return len(self._elbow)

    def add(self, angles: SideAngles) -> None:
        self._elbow.append(angles.elbow.degrees)
        self._hip.append(angles.hip.degrees)
        self._knee.append(angles.knee.degrees)

    def mark_cycle_start(self, timestamp_ms: float) -> None:
        self.started_at_ms = timestamp_ms

    def duration_ms(self, now_ms: float) -> Optional[float]:
        if self.started_at_ms is None:
            return None
        return now_ms - self.started_at_ms

    def extrema(self) -> Optional[CycleExtrema]:
        if not self._elbow:
            return None
        elbow = np.asarray(self._elbow, dtype=float)
        return CycleExtrema(
            max_elbow=float(np.max(elbow)),
            min_elbow=float(np.min(elbow)),
            min_hip=float(np.min(self._hip)),
            min_knee=float(np.min(self._knee)),
            samples=len(elbow),
        )

    def reset(self) -> None:
        self._elbow.clear()
        self._hip.clear()
        self._knee.clear()
        self.started_at_ms = None


def classify(
    extrema: CycleExtrema,
    duration_ms: Optional[float],
    config: AnalyzerConfig,
) -> FeedbackCategory:
    """First matching rule wins; GOOD_JOB when nothing is wrong.

    An unknown duration (no recorded cycle start) never counts as too fast.
    """
    if duration_ms is not None and duration_ms < config.too_fast_duration_ms:
        return FeedbackCategory.TOO_FAST
    if extrema.max_elbow < config.not_up_enough_deg:
        return FeedbackCategory.NOT_ELBOW_UP_ENOUGH
    if extrema.min_elbow > config.not_down_enough_deg:
        return FeedbackCategory.NOT_ELBOW_DOWN_ENOUGH
    if extrema.min_hip < config.hip_too_low_deg:
        return FeedbackCategory.HIP_TOO_LOW
    if extrema.min_knee < config.knee_bent_deg:
        return FeedbackCategory.KNEE_BENT_TOO_MUCH
    return FeedbackCategory.GOOD_JOB
