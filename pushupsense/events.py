"""
Analyzer event vocabulary, session result types and their JSON-ready forms.
"""
from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, NamedTuple, Union


class ExerciseState(str, Enum):
    NOT_READY = "not_ready"
    READY_UP = "up"
    DOWN = "down"


class FeedbackCategory(str, Enum):
    NOT_ELBOW_UP_ENOUGH = "not_elbow_up_enough"
    NOT_ELBOW_DOWN_ENOUGH = "not_elbow_down_enough"
    HIP_TOO_LOW = "hip_too_low"
    HIP_TOO_HIGH = "hip_too_high"  # reserved, no rule produces it yet
    KNEE_BENT_TOO_MUCH = "knee_bent_too_much"
    TOO_FAST = "too_fast"
    GOOD_JOB = "good_job"

    @property
    def label(self) -> str:
        return _FEEDBACK_LABELS[self]


_FEEDBACK_LABELS = {
    FeedbackCategory.NOT_ELBOW_UP_ENOUGH: "Straighten your arms at the top",
    FeedbackCategory.NOT_ELBOW_DOWN_ENOUGH: "Bend your elbows more",
    FeedbackCategory.HIP_TOO_LOW: "Hips are sagging",
    FeedbackCategory.HIP_TOO_HIGH: "Hips are too high",
    FeedbackCategory.KNEE_BENT_TOO_MUCH: "Keep your knees straight",
    FeedbackCategory.TOO_FAST: "Slow down",
    FeedbackCategory.GOOD_JOB: "Good job!",
}


class FeedbackEvent(NamedTuple):
    repetition_index: int
    category: FeedbackCategory


@dataclass(frozen=True)
class SessionResult:
    total_count: int
    feedback_log: tuple[FeedbackEvent, ...] = ()


# Analyzer events. NOT_READY is never reported through StateChanged; the
# NOT_READY -> READY_UP step is announced by Ready.

@dataclass(frozen=True)
class CountChanged:
    count: int


@dataclass(frozen=True)
class StateChanged:
    state: ExerciseState


@dataclass(frozen=True)
class Ready:
    pass


@dataclass(frozen=True)
class Feedback:
    category: FeedbackCategory
    repetition_index: int


@dataclass(frozen=True)
class TargetReached:
    pass


@dataclass(frozen=True)
class ProcessingComplete:
    total_count: int
    feedback_log: tuple[FeedbackEvent, ...]

    @property
    def result(self) -> SessionResult:
        return SessionResult(self.total_count, self.feedback_log)


AnalyzerEvent = Union[CountChanged, StateChanged, Ready, Feedback, TargetReached, ProcessingComplete]

_EVENT_TYPES = {
    CountChanged: "count_changed",
    StateChanged: "state_changed",
    Ready: "ready",
    Feedback: "feedback",
    TargetReached: "target_reached",
    ProcessingComplete: "processing_complete",
}


def event_type(event: AnalyzerEvent) -> str:
    return _EVENT_TYPES[type(event)]


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, FeedbackEvent):
        return {"repetition_index": value.repetition_index, "category": value.category.value}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


def event_to_dict(event: AnalyzerEvent) -> dict[str, Any]:
    """JSON-ready dict for an analyzer event, tagged with its `type`."""
    payload: dict[str, Any] = {"type": event_type(event)}
    for f in fields(event):
        payload[f.name] = _plain(getattr(event, f.name))
    return payload


def session_result_to_dict(result: SessionResult) -> dict[str, Any]:
    return {
        "total_count": result.total_count,
        "feedback_log": _plain(result.feedback_log),
    }
