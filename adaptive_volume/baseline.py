"""
Research-anchored starting volumes used to seed new volume profiles.

Weekly working-set landmarks per muscle group (Israetel, Schoenfeld et al.).
"""
from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, Optional

from .constants import ENHANCED_MULTIPLIER, TRAINING_AGE_MULTIPLIERS
from .metrics import round_half_up
from .models import (
    MuscleGroup,
    MuscleTolerance,
    TrainingAge,
    UserVolumeProfile,
    VolumeConfidence,
)

BASELINE_VOLUME_RECOMMENDATIONS: Dict[MuscleGroup, Dict[str, int]] = {
    MuscleGroup.CHEST:      {'mev': 8, 'mrv': 22, 'optimal': 12},
    MuscleGroup.BACK:       {'mev': 8, 'mrv': 25, 'optimal': 14},
    MuscleGroup.SHOULDERS:  {'mev': 6, 'mrv': 22, 'optimal': 12},
    MuscleGroup.BICEPS:     {'mev': 4, 'mrv': 20, 'optimal': 10},
    MuscleGroup.TRICEPS:    {'mev': 4, 'mrv': 18, 'optimal': 8},
    MuscleGroup.QUADS:      {'mev': 6, 'mrv': 20, 'optimal': 12},
    MuscleGroup.HAMSTRINGS: {'mev': 4, 'mrv': 16, 'optimal': 10},
    MuscleGroup.GLUTES:     {'mev': 4, 'mrv': 16, 'optimal': 8},
    MuscleGroup.CALVES:     {'mev': 6, 'mrv': 20, 'optimal': 12},
    MuscleGroup.ABS:        {'mev': 0, 'mrv': 20, 'optimal': 8},
    MuscleGroup.TRAPS:      {'mev': 0, 'mrv': 16, 'optimal': 6},
    MuscleGroup.FOREARMS:   {'mev': 0, 'mrv': 12, 'optimal': 4},
    MuscleGroup.ADDUCTORS:  {'mev': 0, 'mrv': 12, 'optimal': 4},
}


def get_adjusted_baseline(
    muscle: MuscleGroup,
    training_age: TrainingAge,
    is_enhanced: bool,
) -> Dict[str, int]:
    """
    Scales the baseline landmarks for training age and enhancement status.

    Returns:
        {'mev': int, 'mrv': int, 'optimal': int}
    """
    base = BASELINE_VOLUME_RECOMMENDATIONS[muscle]

    multiplier = TRAINING_AGE_MULTIPLIERS[TrainingAge(training_age)]
    if is_enhanced:
        multiplier *= ENHANCED_MULTIPLIER

    return {
        'mev': round_half_up(base['mev'] * multiplier),
        'mrv': round_half_up(base['mrv'] * multiplier),
        'optimal': round_half_up(base['optimal'] * multiplier),
    }


def baseline_tolerance(
    muscle: MuscleGroup,
    training_age: TrainingAge,
    is_enhanced: bool,
    now: Optional[datetime] = None,
) -> MuscleTolerance:
    baseline = get_adjusted_baseline(muscle, training_age, is_enhanced)
    return MuscleTolerance(
        estimated_mrv=baseline['mrv'],
        estimated_mev=baseline['mev'],
        confidence=VolumeConfidence.LOW,
        data_points=0,
        last_updated=now or datetime.now(timezone.utc),
    )


def tolerance_for(profile: UserVolumeProfile, muscle: MuscleGroup) -> MuscleTolerance:
    """Learned tolerance for ``muscle``, or its baseline if the profile predates it."""
    tolerance = profile.muscle_tolerance.get(muscle)
    if tolerance is None:
        tolerance = baseline_tolerance(muscle, profile.training_age, profile.is_enhanced)
    return tolerance


def create_initial_volume_profile(
    user_id: str,
    training_age: TrainingAge,
    is_enhanced: bool = False,
    now: Optional[datetime] = None,
) -> UserVolumeProfile:
    now = now or datetime.now(timezone.utc)
    training_age = TrainingAge(training_age)
    muscle_tolerance = {
        muscle: baseline_tolerance(muscle, training_age, is_enhanced, now)
        for muscle in MuscleGroup
    }
    return UserVolumeProfile(
        user_id=str(user_id),
        updated_at=now,
        muscle_tolerance=muscle_tolerance,
        global_recovery_multiplier=1.0,
        is_enhanced=is_enhanced,
        training_age=training_age,
    )


def apply_profile_settings(
    profile: UserVolumeProfile,
    training_age: Optional[TrainingAge] = None,
    is_enhanced: Optional[bool] = None,
    global_recovery_multiplier: Optional[float] = None,
    now: Optional[datetime] = None,
) -> UserVolumeProfile:
    """
    Returns a copy of ``profile`` with new user settings.

    Muscles with no completed mesocycle behind them (``data_points == 0``) are
    re-seeded from the baseline for the new training age and enhancement
    status. Learned tolerances are kept as they are.
    """
    now = now or datetime.now(timezone.utc)
    training_age = TrainingAge(training_age) if training_age is not None else profile.training_age
    is_enhanced = profile.is_enhanced if is_enhanced is None else is_enhanced
    if global_recovery_multiplier is None:
        global_recovery_multiplier = profile.global_recovery_multiplier

    muscle_tolerance = {}
    for muscle in MuscleGroup:
        tolerance = profile.muscle_tolerance.get(muscle)
        if tolerance is None or tolerance.data_points == 0:
            tolerance = baseline_tolerance(muscle, training_age, is_enhanced, now)
        muscle_tolerance[muscle] = tolerance

    return replace(
        profile,
        updated_at=now,
        muscle_tolerance=muscle_tolerance,
        global_recovery_multiplier=global_recovery_multiplier,
        is_enhanced=is_enhanced,
        training_age=training_age,
    )
