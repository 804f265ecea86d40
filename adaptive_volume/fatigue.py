"""Mid-block fatigue alerts from the trailing weeks of volume data."""

import logging
from collections import defaultdict
from typing import Dict, Iterable, List

from .constants import (
    APPROACHING_MRV_FRACTION,
    FATIGUE_MIN_WEEKS,
    FATIGUE_WINDOW_WEEKS,
    FORM_DEGRADATION_ALERT,
)
from .drift import analyze_form_trend, calculate_rir_drift
from .models import (
    DriftSignificance,
    FatigueAlert,
    FatigueAlertSeverity,
    FatigueAlertType,
    MuscleGroup,
    MuscleVolumeData,
    UserVolumeProfile,
)

logger = logging.getLogger(__name__)


def group_by_muscle(weeks: Iterable[MuscleVolumeData]) -> Dict[MuscleGroup, List[MuscleVolumeData]]:
    """Groups weekly aggregates per muscle, keeping input (oldest-first) order."""
    by_muscle: Dict[MuscleGroup, List[MuscleVolumeData]] = defaultdict(list)
    for week in weeks:
        by_muscle[week.muscle].append(week)
    return dict(by_muscle)


def assess_current_fatigue_status(
    recent_weeks: Iterable[MuscleVolumeData],
    profile: UserVolumeProfile,
) -> List[FatigueAlert]:
    """
    Checks each muscle's last three weeks against its learned tolerance.

    Muscles with fewer than two recent weeks, or without a learned tolerance,
    are skipped. A muscle can raise several alerts in the same pass.
    """
    alerts: List[FatigueAlert] = []

    for muscle, weeks in group_by_muscle(recent_weeks).items():
        tolerance = profile.muscle_tolerance.get(muscle)
        if tolerance is None:
            continue

        window = weeks[-FATIGUE_WINDOW_WEEKS:]
        if len(window) < FATIGUE_MIN_WEEKS:
            continue

        rir_drift = calculate_rir_drift(window)
        form_trend = analyze_form_trend(window)
        current_sets = window[-1].working_sets
        name = muscle.value

        if current_sets >= tolerance.estimated_mrv * APPROACHING_MRV_FRACTION:
            alerts.append(FatigueAlert(
                muscle=muscle,
                type=FatigueAlertType.APPROACHING_MRV,
                severity=FatigueAlertSeverity.WARNING,
                message=(
                    f"{name.capitalize()} volume is approaching your estimated maximum "
                    f"({current_sets}/{tolerance.estimated_mrv} sets)"
                ),
                suggestion='Consider maintaining current volume or planning a deload',
            ))

        if rir_drift.significance == DriftSignificance.ELEVATED:
            alerts.append(FatigueAlert(
                muscle=muscle,
                type=FatigueAlertType.RIR_DRIFT,
                severity=FatigueAlertSeverity.WARNING,
                message=f"{name.capitalize()} exercises are feeling harder than previous weeks",
                suggestion='Fatigue may be accumulating. Monitor closely or reduce volume slightly.',
            ))
        elif rir_drift.significance == DriftSignificance.CONCERNING:
            alerts.append(FatigueAlert(
                muscle=muscle,
                type=FatigueAlertType.RIR_DRIFT,
                severity=FatigueAlertSeverity.ALERT,
                message=f"Significant fatigue accumulation detected for {name}",
                suggestion='Consider reducing volume by 2-3 sets or taking a deload week',
            ))

        if form_trend.avg_degradation > FORM_DEGRADATION_ALERT:
            alerts.append(FatigueAlert(
                muscle=muscle,
                type=FatigueAlertType.FORM_DEGRADATION,
                severity=FatigueAlertSeverity.WARNING,
                message=f"Form quality declining on {name} exercises",
                suggestion='Volume may be exceeding recovery. Reduce weight or sets.',
            ))

    if alerts:
        logger.info(f"Fatigue check for user {profile.user_id}: {len(alerts)} alert(s).")
    return alerts
