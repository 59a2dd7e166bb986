"""pushupsense: push-up repetition counting and form feedback from pose estimates.

Pose frames from a live camera or a recorded video are reduced to elbow, hip
and knee angles, fed through a debounced UP/DOWN state machine, and scored per
repetition.
"""

__all__ = [
    "config",
    "events",
    "reps",
    "sources",
]

__version__ = "0.1.0"
