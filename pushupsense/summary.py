"""
End-of-session summary: tallies per feedback category, log lines, JSON export.
"""
from __future__ import annotations

import json
import logging
import os
from collections import Counter
from typing import Any, Optional

from .events import FeedbackCategory, SessionResult, session_result_to_dict

logger = logging.getLogger(__name__)


def summarize_session(result: SessionResult, source: str = "live") -> dict[str, Any]:
    """Build a JSON-ready summary of one finished session."""
    tally = Counter(event.category for event in result.feedback_log)
    rated = len(result.feedback_log)
    good = tally.get(FeedbackCategory.GOOD_JOB, 0)
    # Most frequent fault; ties keep enum declaration order
    faults = [c for c in FeedbackCategory if c is not FeedbackCategory.GOOD_JOB and tally.get(c)]
    top_fault: Optional[FeedbackCategory] = max(faults, key=lambda c: tally[c]) if faults else None
    summary = session_result_to_dict(result)
    summary.update(
        {
            "source": source,
            "rated_reps": rated,
            "good_form_ratio": (good / rated) if rated else None,
            "feedback_counts": {c.value: tally.get(c, 0) for c in FeedbackCategory},
            "top_fault": top_fault.value if top_fault else None,
            "top_fault_label": top_fault.label if top_fault else None,
        }
    )
    return summary


def log_session_summary(result: SessionResult, source: str = "live") -> dict[str, Any]:
    summary = summarize_session(result, source)
    logger.info(
        "summary: source=%s total=%s rated=%s good_ratio=%s top_fault=%s",
        source,
        summary["total_count"],
        summary["rated_reps"],
        summary["good_form_ratio"],
        summary["top_fault"],
    )
    for event in result.feedback_log:
        logger.info("  rep[%s] %s (%s)", event.repetition_index, event.category.value, event.category.label)
    return summary


def write_session_summary(result: SessionResult, path: str, source: str = "live") -> str:
    """Write this run's summary as JSON to `path` and return the path."""
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, "w") as f:
        json.dump(summarize_session(result, source), f, indent=2)
    logger.info("summary: written to %s", path)
    return path
