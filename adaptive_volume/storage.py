"""
PostgreSQL access for volume profiles, weekly aggregates and mesocycle analyses.

Every function takes an open cursor (RealDictCursor rows expected) and leaves
transaction control (commit / rollback) to the caller.
"""
import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

import psycopg2
import psycopg2.extras

from .baseline import create_initial_volume_profile
from .models import (
    DailyCheckIn,
    ExerciseWeekPerformance,
    FormRating,
    MesocycleAnalysis,
    MuscleGroup,
    MuscleVolumeData,
    SetLog,
    UserVolumeProfile,
    WorkoutSession,
)

logger = logging.getLogger(__name__)

WEEKLY_VOLUME_COLUMNS = """
    muscle_group, mesocycle_id, week_number, week_start, total_sets, working_sets,
    effective_sets, total_volume, average_rir, average_form_score, exercise_performance
"""


def _row_to_profile(row) -> UserVolumeProfile:
    return UserVolumeProfile.from_dict({
        'user_id': row['user_id'],
        'updated_at': row['updated_at'],
        'muscle_tolerance': row['muscle_tolerance'],
        'global_recovery_multiplier': float(row['global_recovery_multiplier']),
        'is_enhanced': row['is_enhanced'],
        'training_age': row['training_age'],
    })


def _row_to_weekly_volume(row) -> MuscleVolumeData:
    return MuscleVolumeData(
        muscle=MuscleGroup(row['muscle_group']),
        week_number=int(row['week_number']),
        mesocycle_id=str(row['mesocycle_id']) if row['mesocycle_id'] else '',
        total_sets=int(row['total_sets']),
        working_sets=int(row['working_sets']),
        effective_sets=int(row['effective_sets']),
        total_volume=float(row['total_volume']),
        average_rir=float(row['average_rir']) if row['average_rir'] is not None else 2.0,
        average_form_score=float(row['average_form_score']) if row['average_form_score'] is not None else 1.0,
        exercise_performance=[
            ExerciseWeekPerformance.from_dict(p) for p in (row.get('exercise_performance') or [])
        ],
    )


def fetch_volume_profile(
    cur: 'psycopg2.extensions.cursor',
    user_id: str,
    for_update: bool = False,
) -> Optional[UserVolumeProfile]:
    """
    Loads the user's profile, or None for a user without one yet.

    With ``for_update`` the row stays locked until the caller's transaction
    ends, which serialises concurrent mesocycle rollovers for the same user.
    """
    query = """
        SELECT user_id, muscle_tolerance, global_recovery_multiplier, is_enhanced,
               training_age, updated_at
        FROM user_volume_profiles
        WHERE user_id = %s
    """
    if for_update:
        query += " FOR UPDATE"
    cur.execute(query, (str(user_id),))
    row = cur.fetchone()
    if not row:
        return None
    return _row_to_profile(row)


def save_volume_profile(cur: 'psycopg2.extensions.cursor', profile: UserVolumeProfile) -> None:
    data = profile.to_dict()
    cur.execute(
        """
        INSERT INTO user_volume_profiles
            (user_id, muscle_tolerance, global_recovery_multiplier, is_enhanced, training_age, updated_at)
        VALUES (%s, %s, %s, %s, %s, %s)
        ON CONFLICT (user_id) DO UPDATE SET
            muscle_tolerance = EXCLUDED.muscle_tolerance,
            global_recovery_multiplier = EXCLUDED.global_recovery_multiplier,
            is_enhanced = EXCLUDED.is_enhanced,
            training_age = EXCLUDED.training_age,
            updated_at = EXCLUDED.updated_at;
        """,
        (
            profile.user_id,
            psycopg2.extras.Json(data['muscle_tolerance']),
            profile.global_recovery_multiplier,
            profile.is_enhanced,
            profile.training_age.value,
            profile.updated_at,
        ),
    )


def insert_volume_profile_if_absent(cur: 'psycopg2.extensions.cursor', profile: UserVolumeProfile) -> None:
    data = profile.to_dict()
    cur.execute(
        """
        INSERT INTO user_volume_profiles
            (user_id, muscle_tolerance, global_recovery_multiplier, is_enhanced, training_age, updated_at)
        VALUES (%s, %s, %s, %s, %s, %s)
        ON CONFLICT (user_id) DO NOTHING;
        """,
        (
            profile.user_id,
            psycopg2.extras.Json(data['muscle_tolerance']),
            profile.global_recovery_multiplier,
            profile.is_enhanced,
            profile.training_age.value,
            profile.updated_at,
        ),
    )


def fetch_user_settings(cur: 'psycopg2.extensions.cursor', user_id: str) -> Optional[dict]:
    """The user's experience level and enhancement flag, which seed a new profile."""
    cur.execute("SELECT experience_level, is_enhanced FROM users WHERE id = %s;", (str(user_id),))
    return cur.fetchone()


def fetch_mesocycle(cur: 'psycopg2.extensions.cursor', user_id: str, mesocycle_id: str) -> Optional[dict]:
    cur.execute(
        "SELECT id, user_id, start_date, end_date FROM mesocycles WHERE id = %s AND user_id = %s;",
        (str(mesocycle_id), str(user_id)),
    )
    return cur.fetchone()


def fetch_mesocycle_weeks(
    cur: 'psycopg2.extensions.cursor',
    user_id: str,
    mesocycle_id: str,
) -> Dict[MuscleGroup, List[MuscleVolumeData]]:
    """Weekly aggregates of one mesocycle per muscle, oldest week first."""
    cur.execute(
        f"""
        SELECT {WEEKLY_VOLUME_COLUMNS}
        FROM weekly_muscle_volume
        WHERE user_id = %s AND mesocycle_id = %s
        ORDER BY muscle_group, week_number ASC;
        """,
        (str(user_id), str(mesocycle_id)),
    )
    weeks: Dict[MuscleGroup, List[MuscleVolumeData]] = defaultdict(list)
    for row in cur.fetchall():
        data = _row_to_weekly_volume(row)
        weeks[data.muscle].append(data)
    return dict(weeks)


def fetch_recent_weeks(
    cur: 'psycopg2.extensions.cursor',
    user_id: str,
    weeks: int = 3,
) -> List[Tuple[date, List[MuscleVolumeData]]]:
    """
    The user's last ``weeks`` logged weeks, oldest first.

    Returns:
        A list of (week_start, aggregates for that week) tuples.
    """
    cur.execute(
        f"""
        SELECT {WEEKLY_VOLUME_COLUMNS}
        FROM weekly_muscle_volume
        WHERE user_id = %s
          AND week_start IN (
              SELECT DISTINCT week_start FROM weekly_muscle_volume
              WHERE user_id = %s
              ORDER BY week_start DESC
              LIMIT %s
          )
        ORDER BY week_start ASC, muscle_group;
        """,
        (str(user_id), str(user_id), weeks),
    )
    by_week: Dict[date, List[MuscleVolumeData]] = {}
    for row in cur.fetchall():
        by_week.setdefault(row['week_start'], []).append(_row_to_weekly_volume(row))
    return sorted(by_week.items(), key=lambda item: item[0])


def upsert_weekly_volume(
    cur: 'psycopg2.extensions.cursor',
    user_id: str,
    week_start: date,
    data: MuscleVolumeData,
) -> None:
    cur.execute(
        """
        INSERT INTO weekly_muscle_volume
            (user_id, mesocycle_id, week_number, week_start, muscle_group, total_sets, working_sets,
             effective_sets, total_volume, average_rir, average_form_score, exercise_performance)
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        ON CONFLICT (user_id, week_start, muscle_group) DO UPDATE SET
            mesocycle_id = EXCLUDED.mesocycle_id,
            week_number = EXCLUDED.week_number,
            total_sets = EXCLUDED.total_sets,
            working_sets = EXCLUDED.working_sets,
            effective_sets = EXCLUDED.effective_sets,
            total_volume = EXCLUDED.total_volume,
            average_rir = EXCLUDED.average_rir,
            average_form_score = EXCLUDED.average_form_score,
            exercise_performance = EXCLUDED.exercise_performance;
        """,
        (
            str(user_id),
            data.mesocycle_id or None,
            data.week_number,
            week_start,
            data.muscle.value,
            data.total_sets,
            data.working_sets,
            data.effective_sets,
            data.total_volume,
            data.average_rir,
            data.average_form_score,
            psycopg2.extras.Json([p.to_dict() for p in data.exercise_performance]),
        ),
    )


def delete_weekly_volume_except(
    cur: 'psycopg2.extensions.cursor',
    user_id: str,
    week_start: date,
    muscles: Iterable[MuscleGroup],
) -> int:
    """Drops the week's rows for muscles not in ``muscles``; returns how many went."""
    cur.execute(
        """
        DELETE FROM weekly_muscle_volume
        WHERE user_id = %s AND week_start = %s AND muscle_group <> ALL(%s::text[]);
        """,
        (str(user_id), week_start, sorted(muscle.value for muscle in muscles)),
    )
    return cur.rowcount


def fetch_recovery_inputs(
    cur: 'psycopg2.extensions.cursor',
    user_id: str,
    start_date: date,
    end_date: date,
) -> Tuple[List[DailyCheckIn], List[WorkoutSession]]:
    """Check-ins (from the day before ``start_date``) and workouts within the block."""
    cur.execute(
        """
        SELECT date, sleep_quality, energy_level, soreness_level, mood_rating, stress_level
        FROM daily_check_ins
        WHERE user_id = %s AND date BETWEEN %s::date - 1 AND %s
        ORDER BY date ASC;
        """,
        (str(user_id), start_date, end_date),
    )
    check_ins = [
        DailyCheckIn(
            date=row['date'],
            sleep_quality=row['sleep_quality'],
            energy_level=row['energy_level'],
            soreness_level=row['soreness_level'],
            mood_rating=row['mood_rating'],
            stress_level=row['stress_level'],
        )
        for row in cur.fetchall()
    ]

    cur.execute(
        """
        SELECT planned_date, completed_at, completion_percent, session_rpe
        FROM workouts
        WHERE user_id = %s AND planned_date BETWEEN %s AND %s
        ORDER BY planned_date ASC;
        """,
        (str(user_id), start_date, end_date),
    )
    workouts = [
        WorkoutSession(
            planned_date=row['planned_date'],
            completion_percent=float(row['completion_percent'] or 0),
            completed_at=row['completed_at'],
            session_rpe=float(row['session_rpe']) if row['session_rpe'] is not None else None,
        )
        for row in cur.fetchall()
    ]
    return check_ins, workouts


def save_mesocycle_analysis(
    cur: 'psycopg2.extensions.cursor',
    user_id: str,
    analysis: MesocycleAnalysis,
) -> None:
    data = analysis.to_dict()
    cur.execute(
        """
        INSERT INTO mesocycle_analyses
            (user_id, mesocycle_id, start_date, end_date, weeks, muscle_volumes, muscle_outcomes, overall_recovery)
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
        ON CONFLICT (user_id, mesocycle_id) DO UPDATE SET
            start_date = EXCLUDED.start_date,
            end_date = EXCLUDED.end_date,
            weeks = EXCLUDED.weeks,
            muscle_volumes = EXCLUDED.muscle_volumes,
            muscle_outcomes = EXCLUDED.muscle_outcomes,
            overall_recovery = EXCLUDED.overall_recovery,
            created_at = NOW();
        """,
        (
            str(user_id),
            analysis.mesocycle_id,
            analysis.start_date,
            analysis.end_date,
            analysis.weeks,
            psycopg2.extras.Json(data['muscle_volumes']),
            psycopg2.extras.Json(data['muscle_outcomes']),
            analysis.overall_recovery.value,
        ),
    )


ANALYSIS_COLUMNS = "mesocycle_id, start_date, end_date, weeks, muscle_volumes, muscle_outcomes, overall_recovery"


def _row_to_analysis(row) -> MesocycleAnalysis:
    return MesocycleAnalysis.from_dict({
        'id': f"meso-analysis-{row['mesocycle_id']}",
        'mesocycle_id': row['mesocycle_id'],
        'start_date': row['start_date'],
        'end_date': row['end_date'],
        'weeks': row['weeks'],
        'muscle_volumes': row['muscle_volumes'],
        'muscle_outcomes': row['muscle_outcomes'],
        'overall_recovery': row['overall_recovery'],
    })


def fetch_latest_analysis(cur: 'psycopg2.extensions.cursor', user_id: str) -> Optional[MesocycleAnalysis]:
    cur.execute(
        f"""
        SELECT {ANALYSIS_COLUMNS}
        FROM mesocycle_analyses
        WHERE user_id = %s
        ORDER BY created_at DESC
        LIMIT 1;
        """,
        (str(user_id),),
    )
    row = cur.fetchone()
    return _row_to_analysis(row) if row else None


def fetch_mesocycle_analysis(
    cur: 'psycopg2.extensions.cursor',
    user_id: str,
    mesocycle_id: str,
) -> Optional[MesocycleAnalysis]:
    """The stored analysis of one mesocycle, or None if it was never rolled over."""
    cur.execute(
        f"""
        SELECT {ANALYSIS_COLUMNS}
        FROM mesocycle_analyses
        WHERE user_id = %s AND mesocycle_id = %s;
        """,
        (str(user_id), str(mesocycle_id)),
    )
    row = cur.fetchone()
    return _row_to_analysis(row) if row else None


def fetch_week_set_logs(
    cur: 'psycopg2.extensions.cursor',
    user_id: str,
    week_start: date,
) -> Tuple[List[SetLog], Dict[str, MuscleGroup]]:
    """
    Raw sets logged in the seven days from ``week_start``.

    Returns:
        The sets (warm-ups included) and the primary muscle of every exercise
        seen that maps onto a tracked muscle group.
    """
    cur.execute(
        """
        SELECT ws.exercise_id, e.name AS exercise_name, e.main_target_muscle_group,
               ws.actual_weight, ws.actual_reps, ws.actual_rir, ws.actual_rpe,
               ws.form_rating, ws.is_warmup, ws.completed_at
        FROM workout_sets ws
        JOIN workouts w ON ws.workout_id = w.id
        JOIN exercises e ON ws.exercise_id = e.id
        WHERE w.user_id = %s
          AND w.planned_date >= %s AND w.planned_date < %s
        ORDER BY w.planned_date ASC, ws.set_number ASC;
        """,
        (str(user_id), week_start, week_start + timedelta(days=7)),
    )
    set_logs: List[SetLog] = []
    exercise_muscles: Dict[str, MuscleGroup] = {}
    known_muscles = {m.value for m in MuscleGroup}

    for row in cur.fetchall():
        exercise_id = str(row['exercise_id'])
        set_logs.append(SetLog(
            exercise_id=exercise_id,
            exercise_name=row['exercise_name'],
            weight_kg=float(row['actual_weight']),
            reps=int(row['actual_reps']),
            rir=row['actual_rir'],
            rpe=float(row['actual_rpe']) if row['actual_rpe'] is not None else None,
            form=FormRating(row['form_rating']) if row['form_rating'] else None,
            is_warmup=bool(row['is_warmup']),
            logged_at=row['completed_at'],
        ))
        muscle = row['main_target_muscle_group']
        if muscle in known_muscles:
            exercise_muscles[exercise_id] = MuscleGroup(muscle)

    return set_logs, exercise_muscles


def fetch_week_aggregates(
    cur: 'psycopg2.extensions.cursor',
    user_id: str,
    week_start: date,
) -> Dict[MuscleGroup, MuscleVolumeData]:
    cur.execute(
        f"""
        SELECT {WEEKLY_VOLUME_COLUMNS}
        FROM weekly_muscle_volume
        WHERE user_id = %s AND week_start = %s;
        """,
        (str(user_id), week_start),
    )
    return {MuscleGroup(row['muscle_group']): _row_to_weekly_volume(row) for row in cur.fetchall()}


def load_or_create_profile(
    cur: 'psycopg2.extensions.cursor',
    user_id: str,
    for_update: bool = False,
) -> Optional[UserVolumeProfile]:
    """
    The user's profile, seeding it from the baseline table on first use.

    A concurrent creator never overwrites an existing row: the seed insert is
    a no-op on conflict and the stored row is read back. Returns None for an
    unknown user.
    """
    profile = fetch_volume_profile(cur, user_id, for_update=for_update)
    if profile is not None:
        return profile

    settings = fetch_user_settings(cur, user_id)
    if settings is None:
        return None

    seed = create_initial_volume_profile(
        user_id,
        settings['experience_level'] or 'intermediate',
        is_enhanced=bool(settings['is_enhanced']),
    )
    insert_volume_profile_if_absent(cur, seed)
    logger.info(f"Seeded baseline volume profile for user {user_id} ({seed.training_age.value}).")
    return fetch_volume_profile(cur, user_id, for_update=for_update)
