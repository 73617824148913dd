# bounds.py
# Homeostat - range helpers shared by every subsystem

from __future__ import annotations

import math


def clamp(value: float, min_value: float = 0.0, max_value: float = 1.0) -> float:
    if math.isnan(value):
        return min_value
    return max(min_value, min(max_value, value))


def clamp01(value: float) -> float:
    return clamp(value, 0.0, 1.0)


def clamp100(value: float) -> float:
    return clamp(value, 0.0, 100.0)


def as_number(value) -> float | None:
    """
    Accept ints/floats from untrusted payloads.
    Booleans, strings, NaN, infinities and ints too large for a float
    are rejected.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    if not math.isfinite(number):
        return None
    return number
