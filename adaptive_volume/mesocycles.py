"""End-of-block analysis: per-muscle volume verdicts and overall recovery."""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Dict, Mapping, Optional, Sequence

from .baseline import tolerance_for
from .constants import MIN_MESOCYCLE_WEEKS, OVERALL_RECOVERY_SHARE
from .drift import analyze_form_trend, calculate_rir_drift
from .metrics import average, total
from .models import (
    DailyCheckIn,
    DriftSignificance,
    FormTrendResult,
    MesocycleAnalysis,
    MuscleGroup,
    MuscleOutcome,
    MuscleTolerance,
    MuscleVolumeData,
    MuscleVolumeTotals,
    OverallRecovery,
    ProgressionAnalysis,
    ProgressionStatus,
    ProgressionTrend,
    RirDriftResult,
    UserVolumeProfile,
    VerdictResult,
    VolumeVerdict,
    WorkoutSession,
)
from .readiness import analyze_recovery_correlation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerdictWeights:
    """
    Point values behind the too-high / too-low volume verdict.

    These are product heuristics; callers may pass their own instance but the
    defaults must stay as they are until re-tuned with product input.
    """
    # Too-high indicators
    declining_progression: int = 30
    concerning_rir_drift: int = 30
    elevated_rir_drift: int = 15
    severe_form_degradation: int = 25
    moderate_form_degradation: int = 10
    above_mrv: int = 15
    severe_form_threshold: float = 0.3
    moderate_form_threshold: float = 0.15

    # Too-low indicators
    strong_progression: int = 25
    strong_progression_rate: float = 2.0
    flat_rir_drift: int = 20
    flat_rir_drift_threshold: float = 0.3
    stable_form: int = 15
    stable_form_threshold: float = 0.05
    below_mev: int = 30

    # Verdict cutoffs
    verdict_cutoff: int = 50
    strong_verdict_cutoff: int = 70
    adjustment: int = 2
    strong_adjustment: int = 3
    base_confidence: int = 50
    max_confidence: int = 90
    optimal_base_confidence: int = 60
    optimal_confidence_spread: int = 30


DEFAULT_VERDICT_WEIGHTS = VerdictWeights()


def too_high_score(
    progression: ProgressionAnalysis,
    rir_drift: RirDriftResult,
    form_trend: FormTrendResult,
    current_sets: float,
    tolerance: MuscleTolerance,
    weights: VerdictWeights = DEFAULT_VERDICT_WEIGHTS,
) -> int:
    score = 0
    if progression.progression_trend == ProgressionTrend.DECLINING:
        score += weights.declining_progression
    if rir_drift.significance == DriftSignificance.CONCERNING:
        score += weights.concerning_rir_drift
    elif rir_drift.significance == DriftSignificance.ELEVATED:
        score += weights.elevated_rir_drift
    if form_trend.avg_degradation > weights.severe_form_threshold:
        score += weights.severe_form_degradation
    elif form_trend.avg_degradation > weights.moderate_form_threshold:
        score += weights.moderate_form_degradation
    if current_sets > tolerance.estimated_mrv:
        score += weights.above_mrv
    return score


def too_low_score(
    progression: ProgressionAnalysis,
    rir_drift: RirDriftResult,
    form_trend: FormTrendResult,
    current_sets: float,
    tolerance: MuscleTolerance,
    weights: VerdictWeights = DEFAULT_VERDICT_WEIGHTS,
) -> int:
    score = 0
    if (progression.progression_trend == ProgressionTrend.IMPROVING
            and progression.avg_progression_rate > weights.strong_progression_rate):
        score += weights.strong_progression
    if rir_drift.drift < weights.flat_rir_drift_threshold:
        score += weights.flat_rir_drift
    if form_trend.avg_degradation < weights.stable_form_threshold:
        score += weights.stable_form
    if current_sets < tolerance.estimated_mev:
        score += weights.below_mev
    return score


def determine_volume_verdict(
    progression: ProgressionAnalysis,
    rir_drift: RirDriftResult,
    form_trend: FormTrendResult,
    current_sets: float,
    tolerance: MuscleTolerance,
    weights: VerdictWeights = DEFAULT_VERDICT_WEIGHTS,
) -> VerdictResult:
    """
    Scores the evidence that a muscle's weekly volume was too high or too low.

    Returns:
        VerdictResult with the verdict, a 0-100 confidence and the suggested
        change in weekly sets for the next block.
    """
    if progression.status == ProgressionStatus.INSUFFICIENT_DATA:
        return VerdictResult(verdict=VolumeVerdict.INSUFFICIENT_DATA, confidence=0, adjustment=0)

    high = too_high_score(progression, rir_drift, form_trend, current_sets, tolerance, weights)
    low = too_low_score(progression, rir_drift, form_trend, current_sets, tolerance, weights)

    if high >= weights.verdict_cutoff:
        adjustment = weights.strong_adjustment if high >= weights.strong_verdict_cutoff else weights.adjustment
        return VerdictResult(
            verdict=VolumeVerdict.TOO_HIGH,
            confidence=min(weights.max_confidence, weights.base_confidence + high),
            adjustment=-adjustment,
        )
    if low >= weights.verdict_cutoff:
        adjustment = weights.strong_adjustment if low >= weights.strong_verdict_cutoff else weights.adjustment
        return VerdictResult(
            verdict=VolumeVerdict.TOO_LOW,
            confidence=min(weights.max_confidence, weights.base_confidence + low),
            adjustment=adjustment,
        )
    return VerdictResult(
        verdict=VolumeVerdict.OPTIMAL,
        confidence=weights.optimal_base_confidence + max(0, weights.optimal_confidence_spread - abs(high - low)),
        adjustment=0,
    )


def assess_overall_recovery(outcomes: Mapping[MuscleGroup, MuscleOutcome]) -> OverallRecovery:
    judged = [o for o in outcomes.values() if o.volume_verdict != VolumeVerdict.INSUFFICIENT_DATA]
    if not judged:
        return OverallRecovery.WELL_RECOVERED

    too_high = sum(1 for o in judged if o.volume_verdict == VolumeVerdict.TOO_HIGH)
    too_low = sum(1 for o in judged if o.volume_verdict == VolumeVerdict.TOO_LOW)

    if too_high > len(judged) * OVERALL_RECOVERY_SHARE:
        return OverallRecovery.UNDER_RECOVERED
    if too_low > len(judged) * OVERALL_RECOVERY_SHARE:
        return OverallRecovery.UNDER_STIMULATED
    return OverallRecovery.WELL_RECOVERED


def rir_progression_trend(weeks: Sequence[MuscleVolumeData]) -> ProgressionTrend:
    """
    Coarse trend from first vs last week average RIR, used when only weekly
    aggregates are available: a drop of more than one rep reads as declining,
    holding or gaining reserve reads as improving.
    """
    first_rir = weeks[0].average_rir
    last_rir = weeks[-1].average_rir
    if first_rir - last_rir > 1:
        return ProgressionTrend.DECLINING
    if last_rir >= first_rir:
        return ProgressionTrend.IMPROVING
    return ProgressionTrend.MAINTAINING


def observed_progression_rate(weeks: Sequence[MuscleVolumeData]) -> float:
    changes = [
        performance.e1rm_change
        for week in weeks
        for performance in week.exercise_performance
        if performance.e1rm_change is not None
    ]
    return average(changes)


def _insufficient_outcome(muscle: MuscleGroup, weekly_sets: float) -> MuscleOutcome:
    return MuscleOutcome(
        muscle=muscle,
        weekly_sets=weekly_sets,
        progression_rate=0.0,
        progression_trend=ProgressionTrend.MAINTAINING,
        rir_drift=0.0,
        form_degradation=0.0,
        recovery_correlation=0.0,
        volume_verdict=VolumeVerdict.INSUFFICIENT_DATA,
        confidence=0,
        suggested_adjustment=0,
    )


def analyze_mesocycle(
    mesocycle_id: str,
    muscle_data: Mapping[MuscleGroup, Sequence[MuscleVolumeData]],
    profile: UserVolumeProfile,
    start_date: date,
    end_date: date,
    check_ins: Sequence[DailyCheckIn] = (),
    workouts: Sequence[WorkoutSession] = (),
    weights: Optional[VerdictWeights] = None,
) -> MesocycleAnalysis:
    """
    Builds the end-of-block report for one mesocycle.

    Args:
        mesocycle_id: The analysed block.
        muscle_data: Weekly aggregates per muscle, oldest week first.
        profile: The user's current UserVolumeProfile.
        start_date, end_date: Block boundaries, carried into the report.
        check_ins, workouts: Optional recovery inputs; when supplied the
            block-level recovery correlation is attached to every outcome.
        weights: Verdict scoring weights, defaults to DEFAULT_VERDICT_WEIGHTS.
    """
    weights = weights or DEFAULT_VERDICT_WEIGHTS
    muscle_volumes: Dict[MuscleGroup, MuscleVolumeTotals] = {}
    muscle_outcomes: Dict[MuscleGroup, MuscleOutcome] = {}
    max_weeks = 0

    recovery_correlation = 0.0
    if check_ins and workouts:
        recovery_correlation = analyze_recovery_correlation(check_ins, workouts).correlation

    for muscle, weeks in muscle_data.items():
        muscle = MuscleGroup(muscle)
        max_weeks = max(max_weeks, len(weeks))

        working_sets = [week.working_sets for week in weeks]
        avg_weekly_sets = average(working_sets)
        muscle_volumes[muscle] = MuscleVolumeTotals(
            avg_weekly_sets=avg_weekly_sets,
            total_sets=int(total(working_sets)),
            effective_sets=int(total([week.effective_sets for week in weeks])),
        )

        if len(weeks) < MIN_MESOCYCLE_WEEKS:
            logger.debug(f"Mesocycle {mesocycle_id}: {muscle.value} has {len(weeks)} weeks, skipping verdict.")
            muscle_outcomes[muscle] = _insufficient_outcome(muscle, avg_weekly_sets)
            continue

        rir_drift = calculate_rir_drift(weeks)
        form_trend = analyze_form_trend(weeks)
        progression_trend = rir_progression_trend(weeks)

        # The aggregate path has no per-exercise rates, so the verdict sees a rate of 0
        progression = ProgressionAnalysis(
            status=ProgressionStatus.ANALYZED,
            avg_progression_rate=0.0,
            progression_trend=progression_trend,
            total_rir_drift=rir_drift.drift,
            avg_form_degradation=form_trend.avg_degradation,
            week_count=len(weeks),
        )
        verdict = determine_volume_verdict(
            progression,
            rir_drift,
            form_trend,
            avg_weekly_sets,
            tolerance_for(profile, muscle),
            weights,
        )
        logger.debug(
            f"Mesocycle {mesocycle_id}: {muscle.value} {avg_weekly_sets:.1f} sets/wk -> "
            f"{verdict.verdict.value} ({verdict.confidence}%, {verdict.adjustment:+d} sets)."
        )

        muscle_outcomes[muscle] = MuscleOutcome(
            muscle=muscle,
            weekly_sets=avg_weekly_sets,
            progression_rate=observed_progression_rate(weeks),
            progression_trend=progression_trend,
            rir_drift=rir_drift.drift,
            form_degradation=form_trend.avg_degradation,
            recovery_correlation=recovery_correlation,
            volume_verdict=verdict.verdict,
            confidence=verdict.confidence,
            suggested_adjustment=verdict.adjustment,
        )

    return MesocycleAnalysis(
        id=f"meso-analysis-{mesocycle_id}",
        mesocycle_id=str(mesocycle_id),
        start_date=start_date,
        end_date=end_date,
        weeks=max_weeks,
        muscle_volumes=muscle_volumes,
        muscle_outcomes=muscle_outcomes,
        overall_recovery=assess_overall_recovery(muscle_outcomes),
    )
