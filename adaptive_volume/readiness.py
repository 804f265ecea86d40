import logging
from datetime import date
from typing import List, Optional, Sequence, Tuple

from .constants import (
    CHECK_IN_MAX_DAYS_BEFORE,
    MIN_RECOVERY_PAIRS,
    MODERATE_CORRELATION,
    NEUTRAL_RECOVERY_SCORE,
    STRESS_INVERSION_BASE,
    STRONG_CORRELATION,
)
from .metrics import average, pearson_correlation
from .models import CorrelationSignificance, DailyCheckIn, RecoveryCorrelationResult, WorkoutSession

logger = logging.getLogger(__name__)

# Performance score mapping: completion % plus a bonus for a low session RPE
RPE_CEILING = 10.0
RPE_WEIGHT = 2.0
PERFORMANCE_MIN = 0.0
PERFORMANCE_MAX = 100.0

# Interpretation thresholds on the 1-5 recovery scale
LOW_RECOVERY = 2.5
HIGH_RECOVERY = 3.5
LOW_RECOVERY_CORRELATION = 0.5
HIGH_RECOVERY_CORRELATION = 0.3


def find_check_in_before(
    check_ins: Sequence[DailyCheckIn],
    workout_date: date,
    max_days_before: int = CHECK_IN_MAX_DAYS_BEFORE,
) -> Optional[DailyCheckIn]:
    """
    Returns the most recent check-in logged on the workout day or up to
    ``max_days_before`` days earlier, or None.
    """
    best = None
    best_days_before = None
    for check_in in check_ins:
        days_before = (workout_date - check_in.date).days
        if 0 <= days_before <= max_days_before:
            if best_days_before is None or days_before < best_days_before:
                best = check_in
                best_days_before = days_before
    return best


def calculate_recovery_score(check_in: DailyCheckIn) -> float:
    """
    Averages the subjective recovery factors present on a check-in (1-5).

    Stress is inverted so that every factor reads "higher is better".
    A check-in without any rating scores neutral (3).
    """
    factors = [
        rating for rating in (
            check_in.sleep_quality,
            check_in.energy_level,
            check_in.soreness_level,
            check_in.mood_rating,
        ) if rating
    ]
    if check_in.stress_level:
        factors.append(STRESS_INVERSION_BASE - check_in.stress_level)

    if not factors:
        return NEUTRAL_RECOVERY_SCORE
    return average(factors)


def calculate_workout_performance(workout: WorkoutSession) -> float:
    score = workout.completion_percent
    if workout.session_rpe is not None:
        score += (RPE_CEILING - workout.session_rpe) * RPE_WEIGHT
    return max(PERFORMANCE_MIN, min(PERFORMANCE_MAX, score))


def interpret_recovery_correlation(correlation: float, avg_recovery: float) -> str:
    if avg_recovery < LOW_RECOVERY and correlation > LOW_RECOVERY_CORRELATION:
        return 'Low recovery is impacting performance. Consider reducing volume.'
    if avg_recovery >= HIGH_RECOVERY and correlation < HIGH_RECOVERY_CORRELATION:
        return 'Recovering well from current volume. May have room to increase.'
    if LOW_RECOVERY <= avg_recovery <= HIGH_RECOVERY:
        return 'Recovery is moderate. Current volume appears sustainable.'
    return 'Insufficient pattern detected.'


def collect_recovery_pairs(
    check_ins: Sequence[DailyCheckIn],
    workouts: Sequence[WorkoutSession],
) -> List[Tuple[float, float]]:
    pairs = []
    for workout in workouts:
        if workout.completed_at is None:
            continue
        check_in = find_check_in_before(check_ins, workout.planned_date)
        if check_in is None:
            continue
        pairs.append((calculate_recovery_score(check_in), calculate_workout_performance(workout)))
    return pairs


def analyze_recovery_correlation(
    check_ins: Sequence[DailyCheckIn],
    workouts: Sequence[WorkoutSession],
) -> RecoveryCorrelationResult:
    """
    Correlates pre-workout subjective recovery with how the session went.

    Args:
        check_ins: Daily check-ins, any order.
        workouts: Workout sessions; unfinished ones are ignored.

    Returns:
        RecoveryCorrelationResult. With fewer than 8 usable
        (recovery, performance) pairs the correlation is 0 and the
        significance INSUFFICIENT_DATA.
    """
    pairs = collect_recovery_pairs(check_ins, workouts)

    if len(pairs) < MIN_RECOVERY_PAIRS:
        logger.debug(f"Recovery correlation: {len(pairs)} pairs, need {MIN_RECOVERY_PAIRS}.")
        return RecoveryCorrelationResult(
            correlation=0.0,
            avg_recovery_score=0.0,
            significance=CorrelationSignificance.INSUFFICIENT_DATA,
            interpretation='Need more data points to analyze recovery patterns.',
        )

    recovery_scores = [recovery for recovery, _ in pairs]
    performance_scores = [performance for _, performance in pairs]
    correlation = pearson_correlation(recovery_scores, performance_scores)
    avg_recovery = average(recovery_scores)

    if abs(correlation) >= STRONG_CORRELATION:
        significance = CorrelationSignificance.STRONG
    elif abs(correlation) >= MODERATE_CORRELATION:
        significance = CorrelationSignificance.MODERATE
    else:
        significance = CorrelationSignificance.WEAK

    logger.debug(
        f"Recovery correlation over {len(pairs)} sessions: r={correlation:.3f}, "
        f"avg recovery={avg_recovery:.2f}, significance={significance.value}."
    )

    return RecoveryCorrelationResult(
        correlation=correlation,
        avg_recovery_score=avg_recovery,
        significance=significance,
        interpretation=interpret_recovery_correlation(correlation, avg_recovery),
    )
