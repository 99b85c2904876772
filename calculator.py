"""Attendance arithmetic.

All functions are pure. Ratios are computed with :class:`fractions.Fraction`
so thresholds such as 70% give exact results instead of float noise.
"""

from __future__ import annotations

import math
from fractions import Fraction
from typing import Iterable, Tuple

from schemas import AttendanceRecord

# Returned by delta() when 100% is required and an absence is already on
# record: no number of further presents can restore compliance. Kept within
# 32 bits so JSON clients that parse numbers as doubles read it back exactly.
DELTA_UNREACHABLE = 2**31 - 1
# Returned by delta() when 0% is required: every remaining class can be missed.
DELTA_UNBOUNDED = -(2**31 - 1)


def _round_half_up(value: Fraction) -> int:
    return math.floor(value + Fraction(1, 2))


def percentage(presents: int, absents: int) -> int:
    """Return the attendance percentage, rounded half up.

    No classes counted yet means nothing has been held against the student,
    so the result is 100 rather than 0.
    """

    total = presents + absents
    if total <= 0:
        return 100
    return _round_half_up(Fraction(presents * 100, total))


def delta(presents: int, absents: int, required_pct: int) -> int:
    """Return how many classes must be attended (positive) or may be skipped
    (negative) to sit exactly at ``required_pct``.

    Zero means exactly at the threshold with no slack, or that no class has
    been held yet.
    """

    total = presents + absents
    if total == 0:
        return 0

    required = Fraction(required_pct, 100)
    if required == 0:
        return DELTA_UNBOUNDED

    if Fraction(presents, total) >= required:
        return -math.floor(presents / required - total)

    if required >= 1:
        return DELTA_UNREACHABLE
    return math.ceil((required * total - presents) / (1 - required))


def tally(records: Iterable[AttendanceRecord]) -> Tuple[int, int, int]:
    """Count ``(presents, absents, cancelled)`` in ``records``."""

    counts = {"present": 0, "absent": 0, "cancelled": 0}
    for record in records:
        counts[record.status] += 1
    return counts["present"], counts["absent"], counts["cancelled"]


__all__ = ["DELTA_UNBOUNDED", "DELTA_UNREACHABLE", "delta", "percentage", "tally"]
