"""Week-over-week strength progression analysis from logged best sets."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from .constants import (
    DECLINING_AVG_RATE,
    DECLINING_SLOPE,
    IMPROVING_AVG_RATE,
    IMPROVING_MIN_SLOPE,
    MIN_PROGRESSION_WEEKS,
)
from .metrics import average, estimated_one_rep_max, form_to_score, linear_regression_slope, total
from .models import (
    ExerciseWeekPerformance,
    FormRating,
    ProgressionAnalysis,
    ProgressionStatus,
    ProgressionTrend,
    SetLog,
)

logger = logging.getLogger(__name__)


def set_rir(set_log: SetLog, default: float = 0) -> float:
    """Reported RIR, else RIR implied by RPE (10 - RPE), else ``default``."""
    if set_log.rir is not None:
        return set_log.rir
    if set_log.rpe:
        return max(0.0, 10 - set_log.rpe)
    return default


def set_form(set_log: SetLog) -> FormRating:
    return set_log.form or FormRating.CLEAN


def set_e1rm(set_log: SetLog) -> float:
    return estimated_one_rep_max(set_log.weight_kg, set_log.reps, set_rir(set_log))


def find_best_set(sets: Sequence[SetLog]) -> Optional[SetLog]:
    """Returns the working set with the highest estimated 1RM, or None if there is none."""
    best_set = None
    best_e1rm = 0.0
    for set_log in sets:
        if set_log.is_warmup:
            continue
        e1rm = set_e1rm(set_log)
        if best_set is None or e1rm > best_e1rm:
            best_set = set_log
            best_e1rm = e1rm
    return best_set


def categorize_progression(rates: Sequence[float]) -> ProgressionTrend:
    """
    Classifies a series of weekly e1RM % changes.

    Improving needs a positive average that is not itself trending down;
    declining is either a negative average or a steep downward trend.
    """
    if not rates:
        return ProgressionTrend.MAINTAINING

    avg = average(rates)
    slope = linear_regression_slope(rates)

    if avg > IMPROVING_AVG_RATE and slope >= IMPROVING_MIN_SLOPE:
        return ProgressionTrend.IMPROVING
    if avg < DECLINING_AVG_RATE or slope < DECLINING_SLOPE:
        return ProgressionTrend.DECLINING
    return ProgressionTrend.MAINTAINING


def analyze_exercise_progression(
    weekly_sets: Sequence[Sequence[SetLog]],
    min_weeks: int = MIN_PROGRESSION_WEEKS,
) -> ProgressionAnalysis:
    """
    Analyzes one exercise across consecutive weeks of logged sets.

    Args:
        weekly_sets: One list of set logs per week, oldest first.
        min_weeks: Weeks with a working set required for an analysis.

    Returns:
        ProgressionAnalysis with status INSUFFICIENT_DATA when fewer than
        ``min_weeks`` weeks are usable, otherwise the average weekly e1RM
        change (%), its trend, the summed RIR drift, the average form
        degradation and the number of weeks used.
    """
    if len(weekly_sets) < min_weeks:
        return ProgressionAnalysis(status=ProgressionStatus.INSUFFICIENT_DATA)

    best_sets = [best for best in (find_best_set(week) for week in weekly_sets) if best is not None]
    if len(best_sets) < min_weeks:
        logger.debug(
            "Only %s of %s weeks have a working set; progression needs %s.",
            len(best_sets), len(weekly_sets), min_weeks,
        )
        return ProgressionAnalysis(status=ProgressionStatus.INSUFFICIENT_DATA)

    progression_rates: List[float] = []
    rir_drifts: List[float] = []
    form_changes: List[float] = []

    for prev, curr in zip(best_sets, best_sets[1:]):
        prev_e1rm = set_e1rm(prev)
        curr_e1rm = set_e1rm(curr)
        # A zero-load week has no meaningful percentage change
        progression_rates.append(((curr_e1rm - prev_e1rm) / prev_e1rm) * 100 if prev_e1rm else 0.0)
        rir_drifts.append(set_rir(prev) - set_rir(curr))
        form_changes.append(form_to_score(set_form(prev)) - form_to_score(set_form(curr)))

    return ProgressionAnalysis(
        status=ProgressionStatus.ANALYZED,
        avg_progression_rate=average(progression_rates),
        progression_trend=categorize_progression(progression_rates),
        total_rir_drift=total(rir_drifts),
        avg_form_degradation=average(form_changes),
        week_count=len(best_sets),
    )


def build_exercise_week_performance(
    sets: Sequence[SetLog],
    previous: Optional[ExerciseWeekPerformance] = None,
) -> Optional[ExerciseWeekPerformance]:
    """Best set of the week for one exercise, with deltas against last week's best."""
    best = find_best_set(sets)
    if best is None:
        return None

    rir = set_rir(best)
    e1rm = set_e1rm(best)
    e1rm_change = None
    rir_drift = None
    if previous is not None:
        if previous.estimated_1rm:
            e1rm_change = ((e1rm - previous.estimated_1rm) / previous.estimated_1rm) * 100
        rir_drift = previous.best_set_rir - rir

    return ExerciseWeekPerformance(
        exercise_id=best.exercise_id,
        exercise_name=best.exercise_name,
        best_set_weight=best.weight_kg,
        best_set_reps=best.reps,
        best_set_rir=int(round(rir)),
        best_set_form=set_form(best),
        estimated_1rm=e1rm,
        e1rm_change=e1rm_change,
        rir_drift=rir_drift,
    )


__all__ = [
    "find_best_set",
    "categorize_progression",
    "analyze_exercise_progression",
    "build_exercise_week_performance",
    "set_rir",
]
