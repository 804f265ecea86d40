"""Numeric primitives shared by the volume analyzers.

Every function returns a defined neutral value (0) for empty or degenerate
input instead of raising or producing NaN.
"""
from __future__ import annotations

import math
from typing import Sequence

from .models import FormRating

FORM_SCORES = {
    FormRating.CLEAN: 1.0,
    FormRating.SOME_BREAKDOWN: 0.5,
    FormRating.UGLY: 0.0,
}


def average(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def total(values: Sequence[float]) -> float:
    return sum(values, 0)


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (11.5 -> 12, -2.5 -> -2)."""
    return int(math.floor(value + 0.5))


def linear_regression_slope(values: Sequence[float]) -> float:
    """Least-squares slope of ``values`` against their index 0..n-1."""
    n = len(values)
    if n < 2:
        return 0.0

    sum_x = sum_y = sum_xy = sum_xx = 0.0
    for i, y in enumerate(values):
        sum_x += i
        sum_y += y
        sum_xy += i * y
        sum_xx += i * i

    denominator = n * sum_xx - sum_x * sum_x
    if denominator == 0:
        return 0.0
    return (n * sum_xy - sum_x * sum_y) / denominator


def pearson_correlation(x: Sequence[float], y: Sequence[float]) -> float:
    if len(x) != len(y) or len(x) < 2:
        return 0.0

    mean_x = average(x)
    mean_y = average(y)
    numerator = 0.0
    sum_sq_x = 0.0
    sum_sq_y = 0.0
    for xi, yi in zip(x, y):
        dx = xi - mean_x
        dy = yi - mean_y
        numerator += dx * dy
        sum_sq_x += dx * dx
        sum_sq_y += dy * dy

    denominator = math.sqrt(sum_sq_x * sum_sq_y)
    if denominator == 0:
        return 0.0
    return numerator / denominator


def form_to_score(rating: FormRating) -> float:
    return FORM_SCORES[rating]


def estimated_one_rep_max(weight: float, reps: int, rir: float = 0) -> float:
    """
    Epley estimate counting reps in reserve as reps that could have been done.

    1RM = w * (1 + (reps + rir) / 30); a set with one or fewer effective reps
    is already a max.
    """
    actual_reps = reps + rir
    if actual_reps <= 1:
        return weight
    return weight * (1 + actual_reps / 30)
