"""
Learning model for the user's per-muscle volume tolerances (MRV / MEV).
"""
import logging
import math
from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional

from .baseline import tolerance_for
from .constants import (
    CONFIDENCE_HIGH_DATA_POINTS,
    CONFIDENCE_MEDIUM_DATA_POINTS,
    MIN_MEV_MRV_GAP,
    VOLUME_LEARNING_RATE,
)
from .metrics import round_half_up
from .models import (
    MesocycleAnalysis,
    MuscleTolerance,
    UserVolumeProfile,
    VolumeConfidence,
    VolumeVerdict,
)

logger = logging.getLogger(__name__)


def ema(target: float, current: float, alpha: float = VOLUME_LEARNING_RATE) -> int:
    """One EMA step towards ``target``, rounded to whole sets."""
    return round_half_up(alpha * target + (1 - alpha) * current)


def confidence_for(data_points: int) -> VolumeConfidence:
    if data_points >= CONFIDENCE_HIGH_DATA_POINTS:
        return VolumeConfidence.HIGH
    if data_points >= CONFIDENCE_MEDIUM_DATA_POINTS:
        return VolumeConfidence.MEDIUM
    return VolumeConfidence.LOW


def update_muscle_tolerance(
    current: MuscleTolerance,
    verdict: VolumeVerdict,
    observed_sets: float,
    now: datetime,
    alpha: float = VOLUME_LEARNING_RATE,
) -> MuscleTolerance:
    """
    Moves a muscle's MRV/MEV estimates towards what the last block showed.

    - too_high: the observed volume was beyond MRV, pull MRV below it.
    - too_low: the user handled it easily, push MRV above it and MEV up to it.
    - optimal: anchor MRV a few sets above and MEV a couple below the observed volume.

    MEV is then kept at least MIN_MEV_MRV_GAP sets below MRV.
    """
    mrv = current.estimated_mrv
    mev = current.estimated_mev

    if verdict == VolumeVerdict.TOO_HIGH:
        new_mrv_target = min(mrv, observed_sets - 1)
        mrv = ema(new_mrv_target, mrv, alpha)
    elif verdict == VolumeVerdict.TOO_LOW:
        new_mrv_target = max(mrv, observed_sets + 3)
        mrv = ema(new_mrv_target, mrv, alpha)
        new_mev_target = max(mev, observed_sets)
        mev = ema(new_mev_target, mev, alpha)
    elif verdict == VolumeVerdict.OPTIMAL:
        mrv = ema(observed_sets + 4, mrv, alpha)
        mev = ema(max(0, observed_sets - 2), mev, alpha)
    else:
        raise ValueError(f"Cannot learn from verdict {verdict!r}")

    mev = min(mev, mrv - MIN_MEV_MRV_GAP)
    data_points = current.data_points + 1

    return MuscleTolerance(
        estimated_mrv=mrv,
        estimated_mev=mev,
        confidence=confidence_for(data_points),
        data_points=data_points,
        last_updated=now,
    )


def update_volume_profile(
    current_profile: UserVolumeProfile,
    analysis: MesocycleAnalysis,
    now: Optional[datetime] = None,
) -> UserVolumeProfile:
    """
    Applies one mesocycle's verdicts to the user's learned tolerances.

    Pure: returns a new profile and leaves ``current_profile`` untouched. The
    caller persists the result and must be the only writer for this user and
    mesocycle, since two updates from the same stale profile would each
    overwrite the other's contribution.

    Args:
        current_profile: The profile the analysis was computed against.
        analysis: The completed mesocycle's analysis.
        now: Timestamp recorded on updated entries (defaults to UTC now).

    Returns:
        A new UserVolumeProfile.
    """
    now = now or datetime.now(timezone.utc)
    muscle_tolerance = dict(current_profile.muscle_tolerance)

    for muscle, outcome in analysis.muscle_outcomes.items():
        if outcome.volume_verdict == VolumeVerdict.INSUFFICIENT_DATA:
            continue

        observed_sets = outcome.weekly_sets
        if observed_sets is None or not math.isfinite(observed_sets) or observed_sets < 0:
            logger.warning(
                f"Skipping {muscle.value} for user {current_profile.user_id}: "
                f"invalid observed weekly sets {observed_sets!r}."
            )
            continue

        previous = tolerance_for(current_profile, muscle)
        updated = update_muscle_tolerance(previous, outcome.volume_verdict, observed_sets, now)
        muscle_tolerance[muscle] = updated
        logger.info(
            f"Volume profile {current_profile.user_id} {muscle.value}: {outcome.volume_verdict.value} "
            f"at {observed_sets:.1f} sets/wk, MRV {previous.estimated_mrv}->{updated.estimated_mrv}, "
            f"MEV {previous.estimated_mev}->{updated.estimated_mev}, confidence {updated.confidence.value}."
        )

    return replace(current_profile, muscle_tolerance=muscle_tolerance, updated_at=now)
