"""Within-block fatigue signals: effort-rating (RIR) drift and form quality trend."""

from __future__ import annotations

from typing import Sequence

from .constants import (
    FORM_SLOPE_DEGRADING,
    FORM_SLOPE_IMPROVING,
    MIN_FORM_TREND_WEEKS,
    MIN_RIR_DRIFT_WEEKS,
    RIR_DRIFT_CONCERNING,
    RIR_DRIFT_CONCERNING_PROGRESSIVE,
    RIR_DRIFT_ELEVATED,
)
from .metrics import linear_regression_slope
from .models import DriftSignificance, FormTrend, FormTrendResult, MuscleVolumeData, RirDriftResult


def classify_rir_drift(drift: float, is_progressive: bool) -> DriftSignificance:
    if drift > RIR_DRIFT_CONCERNING or (drift > RIR_DRIFT_CONCERNING_PROGRESSIVE and is_progressive):
        return DriftSignificance.CONCERNING
    if drift > RIR_DRIFT_ELEVATED:
        return DriftSignificance.ELEVATED
    return DriftSignificance.NORMAL


def calculate_rir_drift(weeks: Sequence[MuscleVolumeData]) -> RirDriftResult:
    """
    Measures how much harder the same work felt by the end of the window.

    RIR drift is first-week average RIR minus last-week average RIR, so a
    positive value means sets ended closer to failure. The drift counts as
    progressive when the midpoint week already sits below the first week.
    """
    if len(weeks) < MIN_RIR_DRIFT_WEEKS:
        return RirDriftResult(drift=0.0, significance=DriftSignificance.NORMAL)

    first_week = weeks[0]
    last_week = weeks[-1]
    mid_week = weeks[len(weeks) // 2]

    drift = first_week.average_rir - last_week.average_rir
    is_progressive = mid_week.average_rir < first_week.average_rir

    return RirDriftResult(drift=drift, significance=classify_rir_drift(drift, is_progressive))


def analyze_form_trend(weeks: Sequence[MuscleVolumeData]) -> FormTrendResult:
    if len(weeks) < MIN_FORM_TREND_WEEKS:
        return FormTrendResult(avg_degradation=0.0, trend=FormTrend.STABLE)

    form_scores = [week.average_form_score for week in weeks]
    slope = linear_regression_slope(form_scores)
    # Positive degradation = form got worse between first and last week
    avg_degradation = form_scores[0] - form_scores[-1]

    if slope < FORM_SLOPE_DEGRADING:
        trend = FormTrend.DEGRADING
    elif slope > FORM_SLOPE_IMPROVING:
        trend = FormTrend.IMPROVING
    else:
        trend = FormTrend.STABLE

    return FormTrendResult(avg_degradation=avg_degradation, trend=trend)
