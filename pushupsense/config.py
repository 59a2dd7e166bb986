"""Analyzer thresholds and ingestion options.

Every tunable lives on :class:`AnalyzerConfig` so tests and deployments can
adjust behavior without touching the state machine. Angles are in degrees,
durations in milliseconds.
"""
from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional

Range = tuple[float, float]

ENV_PREFIX = "PUSHUPSENSE_"


class Backpressure(str, Enum):
    """Live-regime policy for frames arriving while an estimate is in flight."""

    DROP_OLDEST = "drop-oldest"


def _check_range(name: str, value: Range) -> None:
    if len(value) != 2:
        raise ValueError(f"{name} must be a (min, max) pair")
    lo, hi = value
    if lo > hi:
        raise ValueError(f"{name} min must not exceed max, got {value}")


def in_range(value: float, bounds: Range) -> bool:
    """Inclusive range check used by readiness and alignment tests."""
    return bounds[0] <= value <= bounds[1]


@dataclass(frozen=True)
class AnalyzerConfig:
    """Immutable configuration for one analysis session.

    Attributes:
        target_count: Repetitions after which TargetReached fires; 0 disables it.
        visibility_threshold: Minimum landmark confidence for a joint triad to count.
        elbow_up_threshold: Elbow angle above which DOWN returns to READY_UP.
        elbow_down_threshold: Elbow angle below which READY_UP enters DOWN. The
            gap up to `elbow_up_threshold` is the hysteresis band.
        hip_range: Hip angles treated as a straight trunk.
        knee_range: Knee angles treated as straight legs.
        ready_elbow_range, ready_hip_range, ready_knee_range: Starting pose
            that arms the counter.
        too_fast_duration_ms: Cycles shorter than this are TOO_FAST.
        not_up_enough_deg: Cycle max elbow below this is NOT_ELBOW_UP_ENOUGH.
        not_down_enough_deg: Cycle min elbow above this is NOT_ELBOW_DOWN_ENOUGH.
        hip_too_low_deg: Cycle min hip below this is HIP_TOO_LOW.
        knee_bent_deg: Cycle min knee below this is KNEE_BENT_TOO_MUCH.
        sampled_frame_interval_ms: Step of the sampled (recorded video) regime.
        live_backpressure: Policy for the live regime.
    """

    target_count: int = 0
    visibility_threshold: float = 0.6
    elbow_up_threshold: float = 130.0
    elbow_down_threshold: float = 110.0
    hip_range: Range = (140.0, 220.0)
    knee_range: Range = (130.0, 205.0)
    ready_elbow_range: Range = (140.0, 190.0)
    ready_hip_range: Range = (140.0, 190.0)
    ready_knee_range: Range = (125.0, 180.0)
    too_fast_duration_ms: int = 1000
    not_up_enough_deg: float = 160.0
    not_down_enough_deg: float = 95.0
    hip_too_low_deg: float = 160.0
    knee_bent_deg: float = 130.0
    sampled_frame_interval_ms: int = 50
    live_backpressure: Backpressure = Backpressure.DROP_OLDEST

    def __post_init__(self) -> None:
        if self.target_count < 0:
            raise ValueError("target_count must be >= 0 (0 = unlimited)")
        if not 0.0 <= self.visibility_threshold <= 1.0:
            raise ValueError("visibility_threshold must be within [0, 1]")
        if self.elbow_down_threshold >= self.elbow_up_threshold:
            raise ValueError(
                "elbow_down_threshold must be below elbow_up_threshold "
                f"(got down={self.elbow_down_threshold}, up={self.elbow_up_threshold})"
            )
        for name in ("hip_range", "knee_range", "ready_elbow_range", "ready_hip_range", "ready_knee_range"):
            _check_range(name, getattr(self, name))
        if self.too_fast_duration_ms < 0:
            raise ValueError("too_fast_duration_ms must be non-negative")
        if self.sampled_frame_interval_ms <= 0:
            raise ValueError("sampled_frame_interval_ms must be positive")
        object.__setattr__(self, "live_backpressure", Backpressure(self.live_backpressure))

    @property
    def hysteresis_deg(self) -> float:
        return self.elbow_up_threshold - self.elbow_down_threshold

    def with_overrides(self, **overrides) -> "AnalyzerConfig":
        """Return a copy with the non-None overrides applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return dataclasses.replace(self, **changes) if changes else self

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AnalyzerConfig":
        """Build a config from `PUSHUPSENSE_<FIELD>` environment variables.

        Ranges are written as `min,max`. Unset variables keep their defaults.
        """
        env = os.environ if environ is None else environ
        values = {}
        for f in dataclasses.fields(cls):
            raw = env.get(ENV_PREFIX + f.name.upper())
            if raw is None or raw.strip() == "":
                continue
            values[f.name] = _parse_field(f.name, raw, f.default)
        return cls(**values)


def _parse_field(name: str, raw: str, default):
    try:
        if isinstance(default, Backpressure):
            return Backpressure(raw.strip().lower())
        if isinstance(default, tuple):
            parts = [p for p in raw.replace(";", ",").split(",") if p.strip()]
            if len(parts) != 2:
                raise ValueError("expected 'min,max'")
            return (float(parts[0]), float(parts[1]))
        if isinstance(default, int):
            return int(raw)
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid value for {ENV_PREFIX}{name.upper()}: {raw!r} ({exc})") from exc
