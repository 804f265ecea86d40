"""
Rolls raw set logs up into weekly per-muscle volume aggregates.

Sets are credited to the primary muscle of their exercise only.
"""
import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .constants import DEFAULT_AVERAGE_RIR, DEFAULT_SET_RIR, EFFECTIVE_SET_MAX_RIR
from .metrics import average, form_to_score
from .models import (
    ExerciseWeekPerformance,
    FormRating,
    MuscleGroup,
    MuscleVolumeData,
    SetLog,
)
from .progression import build_exercise_week_performance, set_form, set_rir

logger = logging.getLogger(__name__)


def is_effective_set(set_log: SetLog) -> bool:
    """A working set taken close enough to failure with acceptable form."""
    if set_log.is_warmup:
        return False
    rir = set_rir(set_log, default=EFFECTIVE_SET_MAX_RIR)
    return rir <= EFFECTIVE_SET_MAX_RIR and set_form(set_log) != FormRating.UGLY


def _exercise_performance(
    working_sets: Sequence[SetLog],
    previous: Optional[MuscleVolumeData],
) -> List[ExerciseWeekPerformance]:
    previous_by_exercise = {}
    if previous is not None:
        previous_by_exercise = {p.exercise_id: p for p in previous.exercise_performance}

    by_exercise: Dict[str, List[SetLog]] = defaultdict(list)
    for set_log in working_sets:
        by_exercise[set_log.exercise_id].append(set_log)

    performances = []
    for exercise_id, sets in by_exercise.items():
        performance = build_exercise_week_performance(sets, previous_by_exercise.get(exercise_id))
        if performance is not None:
            performances.append(performance)
    return performances


def aggregate_weekly_volume(
    set_logs: Iterable[SetLog],
    exercise_muscles: Mapping[str, MuscleGroup],
    week_number: int,
    mesocycle_id: str,
    previous: Optional[Mapping[MuscleGroup, MuscleVolumeData]] = None,
) -> Dict[MuscleGroup, MuscleVolumeData]:
    """
    Builds one week of MuscleVolumeData from that week's logged sets.

    Args:
        set_logs: Every set logged during the week, warm-ups included.
        exercise_muscles: Primary muscle per exercise id.
        week_number: Week index within the mesocycle (1-based).
        mesocycle_id: The mesocycle the week belongs to.
        previous: Last week's aggregates, used for week-over-week deltas on
            each exercise's best set.

    Returns:
        Aggregates keyed by muscle, only for muscles that had at least one set.
    """
    previous = previous or {}
    sets_by_muscle: Dict[MuscleGroup, List[SetLog]] = defaultdict(list)

    for set_log in set_logs:
        muscle = exercise_muscles.get(set_log.exercise_id)
        if muscle is None:
            logger.debug(f"No primary muscle for exercise {set_log.exercise_id} ({set_log.exercise_name}), skipping set.")
            continue
        sets_by_muscle[MuscleGroup(muscle)].append(set_log)

    aggregates = {}
    for muscle, sets in sets_by_muscle.items():
        working = [s for s in sets if not s.is_warmup]
        rirs = [set_rir(s, default=DEFAULT_SET_RIR) for s in working]
        form_scores = [form_to_score(set_form(s)) for s in working]

        aggregates[muscle] = MuscleVolumeData(
            muscle=muscle,
            week_number=week_number,
            mesocycle_id=str(mesocycle_id),
            total_sets=len(sets),
            working_sets=len(working),
            effective_sets=sum(1 for s in working if is_effective_set(s)),
            total_volume=sum(s.weight_kg * s.reps for s in working),
            average_rir=average(rirs) if rirs else DEFAULT_AVERAGE_RIR,
            average_form_score=average(form_scores) if form_scores else 1.0,
            exercise_performance=_exercise_performance(working, previous.get(muscle)),
        )

    return aggregates
