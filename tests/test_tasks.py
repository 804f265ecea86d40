import uuid
from datetime import date, datetime, timezone
from unittest.mock import ANY, MagicMock, patch

import psycopg2
import pytest

from adaptive_volume import tasks
from adaptive_volume.baseline import create_initial_volume_profile
from adaptive_volume.models import MuscleGroup, MuscleVolumeData, SetLog, VolumeVerdict

NOW = datetime(2024, 2, 1, tzinfo=timezone.utc)
USER_ID = str(uuid.uuid4())
MESOCYCLE_ID = str(uuid.uuid4())


def _week(number, working_sets, rir):
    return MuscleVolumeData(
        muscle=MuscleGroup.CHEST, week_number=number, mesocycle_id=MESOCYCLE_ID,
        total_sets=working_sets, working_sets=working_sets, effective_sets=working_sets,
        total_volume=working_sets * 500.0, average_rir=rir, average_form_score=1.0,
    )


@pytest.fixture
def mock_conn():
    conn = MagicMock()
    with patch('adaptive_volume.tasks.get_db_connection', return_value=conn), \
            patch('adaptive_volume.tasks.release_db_connection') as release, \
            patch('adaptive_volume.tasks.get_current_job', return_value=None):
        conn.release = release
        yield conn


@patch('adaptive_volume.tasks.queue')
def test_enqueue_mesocycle_rollover_uses_retry(mock_queue):
    mock_queue.enqueue.return_value = MagicMock(id='job-1')

    job = tasks.enqueue_mesocycle_rollover(uuid.UUID(USER_ID), uuid.UUID(MESOCYCLE_ID))

    assert job.id == 'job-1'
    args, kwargs = mock_queue.enqueue.call_args
    assert args[0] is tasks.run_mesocycle_rollover
    assert kwargs['user_id'] == USER_ID
    assert kwargs['mesocycle_id'] == MESOCYCLE_ID
    assert kwargs['retry'] is tasks.DEFAULT_RETRY


@patch('adaptive_volume.tasks.queue')
def test_enqueue_weekly_aggregation_serialises_date(mock_queue):
    tasks.enqueue_weekly_aggregation(USER_ID, MESOCYCLE_ID, 2, date(2024, 1, 8))

    args, kwargs = mock_queue.enqueue.call_args
    assert args[0] is tasks.run_weekly_aggregation
    assert kwargs['week_start'] == '2024-01-08'
    assert kwargs['week_number'] == 2


@patch('adaptive_volume.tasks.storage')
def test_rollover_updates_profile_in_one_transaction(mock_storage, mock_conn):
    profile = create_initial_volume_profile(USER_ID, 'intermediate', now=NOW)
    mock_storage.load_or_create_profile.return_value = profile
    mock_storage.fetch_mesocycle.return_value = {
        'id': MESOCYCLE_ID, 'user_id': USER_ID, 'start_date': date(2024, 1, 1), 'end_date': date(2024, 1, 28),
    }
    # Easy block well below chest MEV: too_low
    mock_storage.fetch_mesocycle_weeks.return_value = {
        MuscleGroup.CHEST: [_week(1, 4, 2.0), _week(2, 4, 2.0), _week(3, 4, 2.0)],
    }
    mock_storage.fetch_recovery_inputs.return_value = ([], [])
    mock_storage.fetch_mesocycle_analysis.return_value = None

    result = tasks.run_mesocycle_rollover(USER_ID, MESOCYCLE_ID)

    assert result['muscle_outcomes']['chest']['volume_verdict'] == VolumeVerdict.TOO_LOW.value
    mock_storage.load_or_create_profile.assert_called_once()
    assert mock_storage.load_or_create_profile.call_args.kwargs['for_update'] is True
    mock_storage.save_mesocycle_analysis.assert_called_once()
    saved_profile = mock_storage.save_volume_profile.call_args[0][1]
    assert saved_profile.muscle_tolerance[MuscleGroup.CHEST].data_points == 1
    assert profile.muscle_tolerance[MuscleGroup.CHEST].data_points == 0
    mock_conn.commit.assert_called_once()
    mock_conn.release.assert_called_once_with(mock_conn)


@patch('adaptive_volume.tasks.storage')
def test_rollover_for_unknown_mesocycle_writes_nothing(mock_storage, mock_conn):
    mock_storage.load_or_create_profile.return_value = create_initial_volume_profile(USER_ID, 'novice', now=NOW)
    mock_storage.fetch_mesocycle.return_value = None

    assert tasks.run_mesocycle_rollover(USER_ID, MESOCYCLE_ID) is None

    mock_storage.save_volume_profile.assert_not_called()
    mock_conn.rollback.assert_called_once()
    mock_conn.commit.assert_not_called()


@patch('adaptive_volume.tasks.storage')
def test_rollover_database_error_rolls_back_and_reraises(mock_storage, mock_conn):
    mock_storage.load_or_create_profile.side_effect = psycopg2.OperationalError("lock timeout")

    with pytest.raises(psycopg2.OperationalError):
        tasks.run_mesocycle_rollover(USER_ID, MESOCYCLE_ID)

    mock_conn.rollback.assert_called_once()
    mock_conn.release.assert_called_once_with(mock_conn)


@patch('adaptive_volume.tasks.storage')
def test_weekly_aggregation_upserts_each_muscle(mock_storage, mock_conn):
    mock_storage.fetch_week_set_logs.return_value = (
        [
            SetLog(exercise_id='bench', exercise_name='Bench', weight_kg=100, reps=5, rir=2),
            SetLog(exercise_id='squat', exercise_name='Squat', weight_kg=140, reps=5, rir=2),
        ],
        {'bench': MuscleGroup.CHEST, 'squat': MuscleGroup.QUADS},
    )
    mock_storage.fetch_week_aggregates.return_value = {}

    result = tasks.run_weekly_aggregation(USER_ID, MESOCYCLE_ID, 2, '2024-01-08')

    assert result == ['chest', 'quads']
    mock_storage.fetch_week_aggregates.assert_called_once_with(ANY, USER_ID, date(2024, 1, 1))
    assert mock_storage.upsert_weekly_volume.call_count == 2
    for call in mock_storage.upsert_weekly_volume.call_args_list:
        assert call[0][2] == date(2024, 1, 8)
        assert call[0][3].week_number == 2
    mock_conn.commit.assert_called_once()
    mock_storage.delete_weekly_volume_except.assert_called_once()
    kept = set(mock_storage.delete_weekly_volume_except.call_args[0][3])
    assert kept == {MuscleGroup.CHEST, MuscleGroup.QUADS}


@patch('adaptive_volume.tasks.storage')
def test_completing_same_mesocycle_twice_learns_once(mock_storage, mock_conn):
    stored = {
        'profile': create_initial_volume_profile(USER_ID, 'intermediate', now=NOW),
        'analyses': {},
    }

    def save_analysis(cur, user_id, analysis):
        stored['analyses'][analysis.mesocycle_id] = analysis

    def save_profile(cur, profile):
        stored['profile'] = profile

    mock_storage.load_or_create_profile.side_effect = lambda cur, uid, for_update=False: stored['profile']
    mock_storage.fetch_mesocycle_analysis.side_effect = lambda cur, uid, meso_id: stored['analyses'].get(meso_id)
    mock_storage.save_mesocycle_analysis.side_effect = save_analysis
    mock_storage.save_volume_profile.side_effect = save_profile
    mock_storage.fetch_mesocycle.return_value = {
        'id': MESOCYCLE_ID, 'user_id': USER_ID, 'start_date': date(2024, 1, 1), 'end_date': date(2024, 1, 28),
    }
    mock_storage.fetch_mesocycle_weeks.return_value = {
        MuscleGroup.CHEST: [_week(1, 4, 2.0), _week(2, 4, 2.0), _week(3, 4, 2.0)],
    }
    mock_storage.fetch_recovery_inputs.return_value = ([], [])

    first = tasks.run_mesocycle_rollover(USER_ID, MESOCYCLE_ID)
    second = tasks.run_mesocycle_rollover(USER_ID, MESOCYCLE_ID)

    assert second == first
    chest = stored['profile'].muscle_tolerance[MuscleGroup.CHEST]
    assert chest.data_points == 1
    assert chest.confidence.value == 'low'
    assert len(stored['analyses']) == 1
    mock_storage.save_volume_profile.assert_called_once()
    mock_conn.commit.assert_called_once()


@patch('adaptive_volume.tasks.storage')
def test_reaggregating_week_drops_muscle_without_sets(mock_storage, mock_conn):
    # Squats were deleted from the week since the last run; only bench remains
    mock_storage.fetch_week_set_logs.return_value = (
        [SetLog(exercise_id='bench', exercise_name='Bench', weight_kg=100, reps=5, rir=2)],
        {'bench': MuscleGroup.CHEST},
    )
    mock_storage.fetch_week_aggregates.return_value = {}
    mock_storage.delete_weekly_volume_except.return_value = 1

    result = tasks.run_weekly_aggregation(USER_ID, MESOCYCLE_ID, 2, '2024-01-08')

    assert result == ['chest']
    args = mock_storage.delete_weekly_volume_except.call_args[0]
    assert args[1:3] == (USER_ID, date(2024, 1, 8))
    assert set(args[3]) == {MuscleGroup.CHEST}
    mock_conn.commit.assert_called_once()


@patch('adaptive_volume.tasks.storage')
def test_reaggregating_empty_week_clears_all_rows(mock_storage, mock_conn):
    mock_storage.fetch_week_set_logs.return_value = ([], {})
    mock_storage.fetch_week_aggregates.return_value = {}
    mock_storage.delete_weekly_volume_except.return_value = 3

    assert tasks.run_weekly_aggregation(USER_ID, MESOCYCLE_ID, 2, '2024-01-08') == []

    mock_storage.upsert_weekly_volume.assert_not_called()
    assert set(mock_storage.delete_weekly_volume_except.call_args[0][3]) == set()
