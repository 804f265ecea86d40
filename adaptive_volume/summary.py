from typing import List, Sequence

from .baseline import tolerance_for
from .metrics import round_half_up
from .models import MuscleGroup, MuscleVolumeData, UserVolumeProfile, VolumeStatus, VolumeSummary, VolumeTrend

LOW_PERCENT_OF_MRV = 50
HIGH_PERCENT_OF_MRV = 85
AT_LIMIT_PERCENT_OF_MRV = 100
TREND_TOLERANCE_SETS = 1


def get_volume_summary(
    current_week: Sequence[MuscleVolumeData],
    previous_week: Sequence[MuscleVolumeData],
    profile: UserVolumeProfile,
) -> List[VolumeSummary]:
    """Dashboard cards: this week's sets per muscle against the learned MEV/MRV."""
    previous_sets = {week.muscle: week.working_sets for week in previous_week}
    summaries = []

    for week in current_week:
        tolerance = profile.muscle_tolerance.get(week.muscle)
        if tolerance is None:
            continue

        current_sets = week.working_sets
        prev_sets = previous_sets.get(week.muscle, current_sets)
        if tolerance.estimated_mrv > 0:
            percent_of_mrv = round_half_up(current_sets / tolerance.estimated_mrv * 100)
        else:
            percent_of_mrv = 0

        # MEV check first: under MEV is its own state whatever the MRV share
        if current_sets < tolerance.estimated_mev:
            status = VolumeStatus.BELOW_MEV
        elif percent_of_mrv < LOW_PERCENT_OF_MRV:
            status = VolumeStatus.LOW
        elif percent_of_mrv >= AT_LIMIT_PERCENT_OF_MRV:
            status = VolumeStatus.AT_LIMIT
        elif percent_of_mrv >= HIGH_PERCENT_OF_MRV:
            status = VolumeStatus.HIGH
        else:
            status = VolumeStatus.OPTIMAL

        if current_sets > prev_sets + TREND_TOLERANCE_SETS:
            trend = VolumeTrend.UP
        elif current_sets < prev_sets - TREND_TOLERANCE_SETS:
            trend = VolumeTrend.DOWN
        else:
            trend = VolumeTrend.STABLE

        summaries.append(VolumeSummary(
            muscle=week.muscle,
            current_sets=current_sets,
            estimated_mev=tolerance.estimated_mev,
            estimated_mrv=tolerance.estimated_mrv,
            percent_of_mrv=percent_of_mrv,
            status=status,
            trend=trend,
        ))

    return summaries


def empty_volume_summary(profile: UserVolumeProfile) -> List[VolumeSummary]:
    """One zero-set card per muscle, shown before any week has been logged."""
    summaries = []
    for muscle in MuscleGroup:
        tolerance = tolerance_for(profile, muscle)
        summaries.append(VolumeSummary(
            muscle=muscle,
            current_sets=0,
            estimated_mev=tolerance.estimated_mev,
            estimated_mrv=tolerance.estimated_mrv,
            percent_of_mrv=0,
            status=VolumeStatus.BELOW_MEV,
            trend=VolumeTrend.STABLE,
        ))
    return summaries
