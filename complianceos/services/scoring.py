"""Rounding helpers shared by every score and percentage."""

import math


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (Python's round() is banker's)."""
    return int(math.floor(value + 0.5))


def percentage(part: int, total: int) -> int:
    """Whole-number percentage; 0 when total is 0."""
    if total <= 0:
        return 0
    return round_half_up(part / total * 100)
