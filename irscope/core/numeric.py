"""Shared numeric policy.

Every value that reaches a weight vector passes through ``safe_number`` so a
single malformed sample can never write NaN into persisted state.
"""
from __future__ import annotations

import math
from collections.abc import Sequence


def safe_number(value: object, fallback: float = 0.0) -> float:
    """Coerce *value* to a finite float, or return *fallback*.

    Integers too large for a float (e.g. a long literal in a stored
    document) count as non-finite.
    """
    if isinstance(value, bool):
        return float(value)
    try:
        n = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError, OverflowError):
        return fallback
    return n if math.isfinite(n) else fallback


def clamp(x: float, lo: float, hi: float) -> float:
    """Clamp *x* to ``[lo, hi]``; non-finite or non-numeric input maps to *lo*."""
    n = safe_number(x, fallback=math.nan)
    if math.isnan(n):
        return lo
    return max(lo, min(hi, n))


def round_half_up(x: float) -> int:
    """Nearest integer, halves going up (``2.5 -> 3``, ``-2.5 -> -2``)."""
    return math.floor(x + 0.5)


def dot(w: Sequence[float], x: Sequence[float]) -> float:
    """Dot product over the shorter of the two sequences."""
    n = min(len(w), len(x))
    return sum(safe_number(w[i]) * safe_number(x[i]) for i in range(n))
