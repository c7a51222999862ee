"""Rounding helpers"""
import math


def round_half_up(value: float) -> int:
    """
    Round to the nearest integer, halves towards positive infinity

    Python's round() uses banker's rounding (round(2.5) == 2); points and
    progress always round .5 up.
    """
    return math.floor(value + 0.5)
