"""
Joint-angle math on 2D image points.
"""
from __future__ import annotations

import math

# Vectors shorter than this (pixels) are treated as coincident points.
EPSILON = 1e-4

Point = tuple[float, float]


def angle(p1: Point, vertex: Point, p3: Point) -> float:
    """Unsigned angle at `vertex` between rays to p1 and p3, in degrees [0, 180].

    Returns 0.0 when either ray is degenerate (its end point sits on the vertex).
    """
    v1 = (p1[0] - vertex[0], p1[1] - vertex[1])
    v3 = (p3[0] - vertex[0], p3[1] - vertex[1])
    norm1 = math.hypot(v1[0], v1[1])
    norm3 = math.hypot(v3[0], v3[1])
    if norm1 < EPSILON or norm3 < EPSILON:
        return 0.0
    cos_val = (v1[0] * v3[0] + v1[1] * v3[1]) / (norm1 * norm3)
    cos_val = max(-1.0, min(1.0, cos_val))
    deg = math.degrees(math.acos(cos_val))
    if math.isnan(deg):
        return 0.0
    return deg
