from flask import Blueprint, request, jsonify, g
from datetime import date
import math
import uuid
import psycopg2
import psycopg2.extras

from ..app import get_db_connection, release_db_connection, jwt_required, limiter, logger
from ..baseline import apply_profile_settings, get_adjusted_baseline
from ..fatigue import assess_current_fatigue_status
from ..models import MuscleGroup, TrainingAge
from ..storage import fetch_latest_analysis, fetch_recent_weeks, load_or_create_profile, save_volume_profile
from ..summary import empty_volume_summary, get_volume_summary
from ..constants import FATIGUE_WINDOW_WEEKS

volume_bp = Blueprint('volume', __name__)

PROFILE_SETTINGS = {'training_age', 'is_enhanced', 'global_recovery_multiplier'}


def _forbidden(user_id_str, what):
    logger.warning(f"Forbidden attempt by user {g.current_user_id} to access {what} for user {user_id_str}")
    return jsonify(error="Forbidden. You can only access your own data."), 403


def _user_not_found(user_id_str):
    logger.info(f"Volume request for unknown user {user_id_str}.")
    return jsonify(error="User not found."), 404


def _parse_profile_settings(data):
    settings = {}
    if 'training_age' in data:
        try:
            settings['training_age'] = TrainingAge(data['training_age'])
        except ValueError:
            valid = ", ".join(age.value for age in TrainingAge)
            raise ValueError(f"Unknown training_age. Expected one of: {valid}.") from None
    if 'is_enhanced' in data:
        if not isinstance(data['is_enhanced'], bool):
            raise ValueError("is_enhanced must be a boolean.")
        settings['is_enhanced'] = data['is_enhanced']
    if 'global_recovery_multiplier' in data:
        multiplier = data['global_recovery_multiplier']
        if (isinstance(multiplier, bool) or not isinstance(multiplier, (int, float))
                or not math.isfinite(multiplier) or multiplier <= 0):
            raise ValueError("global_recovery_multiplier must be a positive number.")
        settings['global_recovery_multiplier'] = float(multiplier)
    return settings


@volume_bp.route('/v1/users/<uuid:user_id>/volume-profile', methods=['GET'])
@jwt_required
@limiter.limit("60 per minute")
def get_volume_profile(user_id):
    user_id_str = str(user_id)
    if user_id_str != g.current_user_id:
        return _forbidden(user_id_str, "volume profile")

    conn = None
    try:
        conn = get_db_connection()
        with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
            profile = load_or_create_profile(cur, user_id_str)
        conn.commit()
        if profile is None:
            return _user_not_found(user_id_str)
        return jsonify(profile.to_dict()), 200

    except psycopg2.Error as e:
        logger.error(f"Database error fetching volume profile for user {user_id_str}: {e}", exc_info=True)
        if conn:
            conn.rollback()
        return jsonify(error="Database operation failed while fetching the volume profile."), 500
    finally:
        if conn:
            release_db_connection(conn)


@volume_bp.route('/v1/users/<uuid:user_id>/volume-profile', methods=['PATCH'])
@jwt_required
@limiter.limit("30 per hour")
def update_volume_profile_settings(user_id):
    """
    Changes training age, enhancement status or the global recovery multiplier.

    Muscles without a completed mesocycle are re-seeded from the matching
    baseline; learned tolerances are kept.
    """
    user_id_str = str(user_id)
    if user_id_str != g.current_user_id:
        return _forbidden(user_id_str, "volume profile update")

    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify(error="Request body must be a JSON object."), 400
    unknown = sorted(set(data) - PROFILE_SETTINGS)
    if unknown:
        return jsonify(error=f"Unknown field(s): {', '.join(unknown)}."), 400
    if not data:
        return jsonify(error=f"Provide at least one of: {', '.join(sorted(PROFILE_SETTINGS))}."), 400

    try:
        settings = _parse_profile_settings(data)
    except ValueError as e:
        return jsonify(error=str(e)), 400

    conn = None
    try:
        conn = get_db_connection()
        with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
            profile = load_or_create_profile(cur, user_id_str, for_update=True)
            if profile is None:
                conn.rollback()
                return _user_not_found(user_id_str)
            updated = apply_profile_settings(profile, **settings)
            save_volume_profile(cur, updated)
        conn.commit()
        logger.info(f"Volume profile settings updated for user {user_id_str}: {sorted(settings)}")
        return jsonify(updated.to_dict()), 200

    except psycopg2.Error as e:
        logger.error(f"Database error updating volume profile for user {user_id_str}: {e}", exc_info=True)
        if conn:
            conn.rollback()
        return jsonify(error="Database operation failed while updating the volume profile."), 500
    finally:
        if conn:
            release_db_connection(conn)


@volume_bp.route('/v1/users/<uuid:user_id>/volume-summary', methods=['GET'])
@jwt_required
@limiter.limit("60 per minute")
def get_volume_summary_route(user_id):
    user_id_str = str(user_id)
    if user_id_str != g.current_user_id:
        return _forbidden(user_id_str, "volume summary")

    conn = None
    try:
        conn = get_db_connection()
        with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
            profile = load_or_create_profile(cur, user_id_str)
            if profile is None:
                conn.rollback()
                return _user_not_found(user_id_str)
            recent = fetch_recent_weeks(cur, user_id_str, weeks=2)
        conn.commit()

        if not recent:
            return jsonify({
                'week_start': None,
                'muscles': [summary.to_dict() for summary in empty_volume_summary(profile)],
            }), 200

        week_start, current_week = recent[-1]
        previous_week = recent[-2][1] if len(recent) > 1 else []
        summaries = get_volume_summary(current_week, previous_week, profile)
        return jsonify({
            'week_start': week_start.isoformat(),
            'muscles': [summary.to_dict() for summary in summaries],
        }), 200

    except psycopg2.Error as e:
        logger.error(f"Database error building volume summary for user {user_id_str}: {e}", exc_info=True)
        if conn:
            conn.rollback()
        return jsonify(error="Database operation failed while building the volume summary."), 500
    finally:
        if conn:
            release_db_connection(conn)


@volume_bp.route('/v1/users/<uuid:user_id>/fatigue-alerts', methods=['GET'])
@jwt_required
@limiter.limit("60 per minute")
def get_fatigue_alerts(user_id):
    user_id_str = str(user_id)
    if user_id_str != g.current_user_id:
        return _forbidden(user_id_str, "fatigue alerts")

    conn = None
    try:
        conn = get_db_connection()
        with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
            profile = load_or_create_profile(cur, user_id_str)
            if profile is None:
                conn.rollback()
                return _user_not_found(user_id_str)
            recent = fetch_recent_weeks(cur, user_id_str, weeks=FATIGUE_WINDOW_WEEKS)
        conn.commit()

        recent_weeks = [data for _, week in recent for data in week]
        alerts = assess_current_fatigue_status(recent_weeks, profile)
        return jsonify({'alerts': [alert.to_dict() for alert in alerts]}), 200

    except psycopg2.Error as e:
        logger.error(f"Database error assessing fatigue for user {user_id_str}: {e}", exc_info=True)
        if conn:
            conn.rollback()
        return jsonify(error="Database operation failed while assessing fatigue."), 500
    finally:
        if conn:
            release_db_connection(conn)


@volume_bp.route('/v1/users/<uuid:user_id>/mesocycle-analysis/latest', methods=['GET'])
@jwt_required
@limiter.limit("60 per minute")
def get_latest_mesocycle_analysis(user_id):
    user_id_str = str(user_id)
    if user_id_str != g.current_user_id:
        return _forbidden(user_id_str, "mesocycle analysis")

    conn = None
    try:
        conn = get_db_connection()
        with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
            analysis = fetch_latest_analysis(cur, user_id_str)

        if analysis is None:
            return jsonify(error="No completed mesocycle analysis yet."), 404
        return jsonify(analysis.to_dict()), 200

    except psycopg2.Error as e:
        logger.error(f"Database error fetching mesocycle analysis for user {user_id_str}: {e}", exc_info=True)
        return jsonify(error="Database operation failed while fetching the analysis."), 500
    finally:
        if conn:
            release_db_connection(conn)


@volume_bp.route('/v1/users/<uuid:user_id>/mesocycles/<uuid:mesocycle_id>/complete', methods=['POST'])
@jwt_required
@limiter.limit("10 per hour")
def complete_mesocycle(user_id, mesocycle_id):
    user_id_str = str(user_id)
    if user_id_str != g.current_user_id:
        return _forbidden(user_id_str, "mesocycle completion")

    from .. import tasks  # Imported here to avoid a circular import on startup
    job = tasks.enqueue_mesocycle_rollover(user_id_str, str(mesocycle_id))
    logger.info(f"Enqueued mesocycle rollover job {job.id} for user {user_id_str}, mesocycle {mesocycle_id}")
    return jsonify({
        "message": "Mesocycle rollover enqueued",
        "job_id": job.id,
        "mesocycle_id": str(mesocycle_id),
    }), 202


@volume_bp.route('/v1/users/<uuid:user_id>/weekly-volume', methods=['POST'])
@jwt_required
@limiter.limit("30 per hour")
def aggregate_week(user_id):
    """Queues aggregation of one logged week into per-muscle volume rows."""
    user_id_str = str(user_id)
    if user_id_str != g.current_user_id:
        return _forbidden(user_id_str, "weekly volume")

    data = request.get_json(silent=True) or {}
    try:
        mesocycle_id = str(uuid.UUID(str(data['mesocycle_id'])))
        week_number = int(data['week_number'])
        week_start = date.fromisoformat(str(data['week_start']))
        if week_number < 1:
            raise ValueError("week_number must be at least 1")
    except (KeyError, TypeError, ValueError) as e:
        logger.info(f"Rejected weekly volume request for user {user_id_str}: {e}")
        return jsonify(error=f"Invalid request: {e}"), 400

    from .. import tasks
    job = tasks.enqueue_weekly_aggregation(user_id_str, mesocycle_id, week_number, week_start)
    logger.info(f"Enqueued weekly aggregation job {job.id} for user {user_id_str}, week {week_start.isoformat()}")
    return jsonify({
        "message": "Weekly aggregation enqueued",
        "job_id": job.id,
        "week_start": week_start.isoformat(),
    }), 202


@volume_bp.route('/v1/volume/baseline', methods=['POST'])
@limiter.limit("60 per minute")
def baseline_volume():
    """Research-based starting landmarks for a training age, before any learning."""
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify(error="Request body must be a JSON object."), 400
    try:
        training_age = TrainingAge(data.get('training_age', TrainingAge.INTERMEDIATE.value))
    except ValueError:
        valid = ", ".join(age.value for age in TrainingAge)
        return jsonify(error=f"Unknown training_age. Expected one of: {valid}."), 400

    is_enhanced = data.get('is_enhanced', False)
    if not isinstance(is_enhanced, bool):
        return jsonify(error="is_enhanced must be a boolean."), 400

    return jsonify({
        'training_age': training_age.value,
        'is_enhanced': is_enhanced,
        'muscles': {
            muscle.value: get_adjusted_baseline(muscle, training_age, is_enhanced)
            for muscle in MuscleGroup
        },
    }), 200
