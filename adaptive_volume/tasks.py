import os
import logging
from datetime import date, timedelta

import psycopg2
import psycopg2.extras
from redis import Redis
from rq import Queue, Retry, get_current_job

from .aggregation import aggregate_weekly_volume
from .app import get_db_connection, release_db_connection
from .learning_models import update_volume_profile
from .mesocycles import analyze_mesocycle
from . import storage

logger = logging.getLogger(__name__)

# Redis connection for RQ
redis_url = os.getenv("REDIS_URL", "redis://redis:6379/0")
redis_conn = Redis.from_url(redis_url)

# Default queue used by the API and worker
queue = Queue("volume", connection=redis_conn)

DEFAULT_RETRY = Retry(max=3, interval=[10, 30, 60])


def _log_retry():
    job = get_current_job()
    if job and job.meta.get("retry_count", 0) > 0:
        logger.info("Retry attempt %s for job %s", job.meta["retry_count"], job.id)


def enqueue_mesocycle_rollover(user_id, mesocycle_id):
    """Enqueue the end-of-mesocycle analysis and profile update with retry strategy."""
    return queue.enqueue(
        run_mesocycle_rollover,
        user_id=str(user_id),
        mesocycle_id=str(mesocycle_id),
        retry=DEFAULT_RETRY,
    )


def enqueue_weekly_aggregation(user_id, mesocycle_id, week_number, week_start):
    return queue.enqueue(
        run_weekly_aggregation,
        user_id=str(user_id),
        mesocycle_id=str(mesocycle_id),
        week_number=int(week_number),
        week_start=week_start.isoformat() if isinstance(week_start, date) else str(week_start),
        retry=DEFAULT_RETRY,
    )


def run_mesocycle_rollover(user_id, mesocycle_id):
    """
    Analyses a completed mesocycle and folds the verdicts into the user's profile.

    Everything happens in one transaction. The profile row is read FOR UPDATE
    so concurrent rollovers for the same user run one after the other. A
    mesocycle that already has a stored analysis is not learned from again:
    the stored analysis is returned and the profile is left untouched.

    Returns:
        The analysis as a dict, or None when the user or mesocycle is unknown.
    """
    _log_retry()

    conn = None
    try:
        conn = get_db_connection()
        with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
            profile = storage.load_or_create_profile(cur, user_id, for_update=True)
            if profile is None:
                logger.warning("Rollover skipped: user %s not found.", user_id)
                conn.rollback()
                return None

            mesocycle = storage.fetch_mesocycle(cur, user_id, mesocycle_id)
            if mesocycle is None:
                logger.warning("Rollover skipped: mesocycle %s not found for user %s.", mesocycle_id, user_id)
                conn.rollback()
                return None

            existing = storage.fetch_mesocycle_analysis(cur, user_id, mesocycle_id)
            if existing is not None:
                logger.info("Mesocycle %s already rolled over for user %s; profile unchanged.", mesocycle_id, user_id)
                conn.rollback()
                return existing.to_dict()

            start_date = mesocycle["start_date"]
            end_date = mesocycle["end_date"] or date.today()

            muscle_data = storage.fetch_mesocycle_weeks(cur, user_id, mesocycle_id)
            check_ins, workouts = storage.fetch_recovery_inputs(cur, user_id, start_date, end_date)

            analysis = analyze_mesocycle(
                mesocycle_id,
                muscle_data,
                profile,
                start_date,
                end_date,
                check_ins=check_ins,
                workouts=workouts,
            )
            updated_profile = update_volume_profile(profile, analysis)

            storage.save_mesocycle_analysis(cur, user_id, analysis)
            storage.save_volume_profile(cur, updated_profile)
        conn.commit()
        logger.info(
            "Mesocycle %s rolled over for user %s: %s muscles analysed, overall recovery %s.",
            mesocycle_id,
            user_id,
            len(analysis.muscle_outcomes),
            analysis.overall_recovery.value,
        )
        return analysis.to_dict()
    except psycopg2.Error as e:
        logger.error("Database error during mesocycle rollover for user %s: %s", user_id, e, exc_info=True)
        if conn:
            conn.rollback()
        raise
    finally:
        if conn:
            release_db_connection(conn)


def run_weekly_aggregation(user_id, mesocycle_id, week_number, week_start):
    """
    Rebuilds one week of per-muscle aggregates from the raw set logs.

    Rows of muscles that no longer have sets in the week are removed in the
    same transaction.
    """
    _log_retry()

    if isinstance(week_start, str):
        week_start = date.fromisoformat(week_start)

    conn = None
    try:
        conn = get_db_connection()
        with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
            set_logs, exercise_muscles = storage.fetch_week_set_logs(cur, user_id, week_start)
            previous = storage.fetch_week_aggregates(cur, user_id, week_start - timedelta(days=7))
            aggregates = aggregate_weekly_volume(
                set_logs,
                exercise_muscles,
                week_number,
                mesocycle_id,
                previous=previous,
            )
            for data in aggregates.values():
                storage.upsert_weekly_volume(cur, user_id, week_start, data)
            removed = storage.delete_weekly_volume_except(cur, user_id, week_start, aggregates.keys())
        conn.commit()
        logger.info(
            "Aggregated week %s (%s) for user %s: %s sets over %s muscles, %s stale rows removed.",
            week_number,
            week_start.isoformat(),
            user_id,
            len(set_logs),
            len(aggregates),
            removed,
        )
        return sorted(muscle.value for muscle in aggregates)
    except psycopg2.Error as e:
        logger.error("Database error during weekly aggregation for user %s: %s", user_id, e, exc_info=True)
        if conn:
            conn.rollback()
        raise
    finally:
        if conn:
            release_db_connection(conn)
