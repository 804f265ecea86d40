import unittest
import uuid
from datetime import date, datetime, timezone
from unittest.mock import MagicMock

import psycopg2.extras

from adaptive_volume import storage
from adaptive_volume.baseline import create_initial_volume_profile
from adaptive_volume.models import FormRating, MuscleGroup, MuscleVolumeData, TrainingAge

NOW = datetime(2024, 2, 1, tzinfo=timezone.utc)


def _profile_row(user_id, profile=None):
    profile = profile or create_initial_volume_profile(user_id, TrainingAge.INTERMEDIATE, now=NOW)
    data = profile.to_dict()
    return {
        'user_id': uuid.UUID(user_id),
        'muscle_tolerance': data['muscle_tolerance'],
        'global_recovery_multiplier': 1.0,
        'is_enhanced': False,
        'training_age': 'intermediate',
        'updated_at': NOW,
    }


def _volume_row(muscle, week_start, week_number=1, working_sets=10):
    return {
        'muscle_group': muscle,
        'mesocycle_id': uuid.UUID('11111111-1111-1111-1111-111111111111'),
        'week_number': week_number,
        'week_start': week_start,
        'total_sets': working_sets + 2,
        'working_sets': working_sets,
        'effective_sets': working_sets - 1,
        'total_volume': 4000,
        'average_rir': 2.5,
        'average_form_score': None,
        'exercise_performance': [],
    }


class TestVolumeProfileStorage(unittest.TestCase):

    def setUp(self):
        self.cur = MagicMock()
        self.user_id = str(uuid.uuid4())

    def test_fetch_missing_profile(self):
        self.cur.fetchone.return_value = None
        self.assertIsNone(storage.fetch_volume_profile(self.cur, self.user_id))
        query = self.cur.execute.call_args[0][0]
        self.assertNotIn("FOR UPDATE", query)

    def test_fetch_for_update_locks_row(self):
        self.cur.fetchone.return_value = _profile_row(self.user_id)

        profile = storage.fetch_volume_profile(self.cur, self.user_id, for_update=True)

        self.assertIn("FOR UPDATE", self.cur.execute.call_args[0][0])
        self.assertEqual(profile.user_id, self.user_id)
        self.assertEqual(profile.muscle_tolerance[MuscleGroup.CHEST].estimated_mrv, 22)

    def test_save_profile_upserts_json(self):
        profile = create_initial_volume_profile(self.user_id, TrainingAge.NOVICE, now=NOW)

        storage.save_volume_profile(self.cur, profile)

        query, params = self.cur.execute.call_args[0]
        self.assertIn("ON CONFLICT (user_id) DO UPDATE", query)
        self.assertEqual(params[0], self.user_id)
        self.assertIsInstance(params[1], psycopg2.extras.Json)
        self.assertEqual(params[1].adapted['chest']['estimated_mrv'], 15)
        self.assertEqual(params[4], 'novice')

    def test_load_or_create_returns_existing_profile(self):
        self.cur.fetchone.return_value = _profile_row(self.user_id)

        profile = storage.load_or_create_profile(self.cur, self.user_id)

        self.assertEqual(profile.user_id, self.user_id)
        self.assertEqual(self.cur.execute.call_count, 1)

    def test_load_or_create_seeds_from_user_settings(self):
        self.cur.fetchone.side_effect = [
            None,
            {'experience_level': 'advanced', 'is_enhanced': False},
            _profile_row(self.user_id),
        ]

        profile = storage.load_or_create_profile(self.cur, self.user_id, for_update=True)

        self.assertIsNotNone(profile)
        queries = [c[0][0] for c in self.cur.execute.call_args_list]
        self.assertIn("ON CONFLICT (user_id) DO NOTHING", queries[2])
        insert_params = self.cur.execute.call_args_list[2][0][1]
        self.assertEqual(insert_params[4], 'advanced')
        self.assertIn("FOR UPDATE", queries[3])

    def test_load_or_create_unknown_user(self):
        self.cur.fetchone.side_effect = [None, None]
        self.assertIsNone(storage.load_or_create_profile(self.cur, self.user_id))
        self.assertEqual(self.cur.execute.call_count, 2)


class TestWeeklyVolumeStorage(unittest.TestCase):

    def setUp(self):
        self.cur = MagicMock()
        self.user_id = str(uuid.uuid4())

    def test_fetch_mesocycle_weeks_groups_by_muscle(self):
        self.cur.fetchall.return_value = [
            _volume_row('back', date(2024, 1, 1), 1),
            _volume_row('back', date(2024, 1, 8), 2),
            _volume_row('chest', date(2024, 1, 1), 1),
        ]

        weeks = storage.fetch_mesocycle_weeks(self.cur, self.user_id, 'meso')

        self.assertEqual(set(weeks), {MuscleGroup.BACK, MuscleGroup.CHEST})
        self.assertEqual([w.week_number for w in weeks[MuscleGroup.BACK]], [1, 2])
        back = weeks[MuscleGroup.BACK][0]
        self.assertEqual(back.mesocycle_id, '11111111-1111-1111-1111-111111111111')
        self.assertEqual(back.average_form_score, 1.0)
        self.assertEqual(back.average_rir, 2.5)

    def test_fetch_recent_weeks_orders_by_week_start(self):
        self.cur.fetchall.return_value = [
            _volume_row('chest', date(2024, 1, 8)),
            _volume_row('chest', date(2024, 1, 1)),
            _volume_row('back', date(2024, 1, 8)),
        ]

        recent = storage.fetch_recent_weeks(self.cur, self.user_id, weeks=2)

        self.assertEqual([week_start for week_start, _ in recent], [date(2024, 1, 1), date(2024, 1, 8)])
        self.assertEqual(len(recent[1][1]), 2)
        self.assertEqual(self.cur.execute.call_args[0][1][2], 2)

    def test_upsert_weekly_volume(self):
        data = MuscleVolumeData(
            muscle=MuscleGroup.QUADS, week_number=3, mesocycle_id='meso', total_sets=10, working_sets=8,
            effective_sets=6, total_volume=9000.0, average_rir=1.5, average_form_score=0.75,
        )

        storage.upsert_weekly_volume(self.cur, self.user_id, date(2024, 1, 15), data)

        query, params = self.cur.execute.call_args[0]
        self.assertIn("ON CONFLICT (user_id, week_start, muscle_group)", query)
        self.assertEqual(params[:5], (self.user_id, 'meso', 3, date(2024, 1, 15), 'quads'))

    def test_delete_stale_rows_keeps_listed_muscles(self):
        self.cur.rowcount = 1

        removed = storage.delete_weekly_volume_except(
            self.cur, self.user_id, date(2024, 1, 15), [MuscleGroup.QUADS, MuscleGroup.CHEST],
        )

        self.assertEqual(removed, 1)
        query, params = self.cur.execute.call_args[0]
        self.assertIn("DELETE FROM weekly_muscle_volume", query)
        self.assertIn("<> ALL", query)
        self.assertEqual(params, (self.user_id, date(2024, 1, 15), ['chest', 'quads']))

    def test_delete_stale_rows_of_empty_week(self):
        self.cur.rowcount = 4
        self.assertEqual(storage.delete_weekly_volume_except(self.cur, self.user_id, date(2024, 1, 15), []), 4)
        self.assertEqual(self.cur.execute.call_args[0][1][2], [])

    def test_fetch_week_set_logs_maps_primary_muscles(self):
        bench_id = uuid.uuid4()
        neck_id = uuid.uuid4()
        self.cur.fetchall.return_value = [
            {
                'exercise_id': bench_id, 'exercise_name': 'Bench Press', 'main_target_muscle_group': 'chest',
                'actual_weight': 100, 'actual_reps': 5, 'actual_rir': 2, 'actual_rpe': None,
                'form_rating': 'some_breakdown', 'is_warmup': False, 'completed_at': NOW,
            },
            {
                'exercise_id': neck_id, 'exercise_name': 'Neck Curl', 'main_target_muscle_group': 'neck',
                'actual_weight': 10, 'actual_reps': 15, 'actual_rir': None, 'actual_rpe': 8,
                'form_rating': None, 'is_warmup': False, 'completed_at': NOW,
            },
        ]

        set_logs, exercise_muscles = storage.fetch_week_set_logs(self.cur, self.user_id, date(2024, 1, 15))

        self.assertEqual(len(set_logs), 2)
        self.assertEqual(set_logs[0].form, FormRating.SOME_BREAKDOWN)
        self.assertIsNone(set_logs[1].form)
        self.assertEqual(set_logs[1].rpe, 8.0)
        self.assertEqual(exercise_muscles, {str(bench_id): MuscleGroup.CHEST})
        params = self.cur.execute.call_args[0][1]
        self.assertEqual(params[1:], (date(2024, 1, 15), date(2024, 1, 22)))


class TestAnalysisStorage(unittest.TestCase):

    def setUp(self):
        self.cur = MagicMock()
        self.user_id = str(uuid.uuid4())

    def test_no_analysis_yet(self):
        self.cur.fetchone.return_value = None
        self.assertIsNone(storage.fetch_latest_analysis(self.cur, self.user_id))

    def test_latest_analysis_from_row(self):
        self.cur.fetchone.return_value = {
            'mesocycle_id': 'meso',
            'start_date': date(2024, 1, 1),
            'end_date': date(2024, 1, 28),
            'weeks': 4,
            'muscle_volumes': {'chest': {'avg_weekly_sets': 12.0, 'total_sets': 48, 'effective_sets': 40}},
            'muscle_outcomes': {},
            'overall_recovery': 'well_recovered',
        }

        analysis = storage.fetch_latest_analysis(self.cur, self.user_id)

        self.assertEqual(analysis.id, 'meso-analysis-meso')
        self.assertEqual(analysis.muscle_volumes[MuscleGroup.CHEST].total_sets, 48)

    def test_recovery_inputs(self):
        self.cur.fetchall.side_effect = [
            [{'date': date(2024, 1, 1), 'sleep_quality': 4, 'energy_level': 3, 'soreness_level': 4,
              'mood_rating': 5, 'stress_level': 2}],
            [{'planned_date': date(2024, 1, 2), 'completed_at': NOW, 'completion_percent': 95,
              'session_rpe': None}],
        ]

        check_ins, workouts = storage.fetch_recovery_inputs(
            self.cur, self.user_id, date(2024, 1, 1), date(2024, 1, 28),
        )

        self.assertEqual(check_ins[0].mood_rating, 5)
        self.assertEqual(workouts[0].completion_percent, 95.0)
        self.assertIsNone(workouts[0].session_rpe)

    def test_analysis_of_one_mesocycle(self):
        self.cur.fetchone.return_value = {
            'mesocycle_id': 'meso',
            'start_date': date(2024, 1, 1),
            'end_date': date(2024, 1, 28),
            'weeks': 4,
            'muscle_volumes': {},
            'muscle_outcomes': {},
            'overall_recovery': 'under_recovered',
        }

        analysis = storage.fetch_mesocycle_analysis(self.cur, self.user_id, 'meso')

        self.assertEqual(analysis.mesocycle_id, 'meso')
        query, params = self.cur.execute.call_args[0]
        self.assertIn("mesocycle_id = %s", query)
        self.assertEqual(params, (self.user_id, 'meso'))

    def test_mesocycle_never_rolled_over(self):
        self.cur.fetchone.return_value = None
        self.assertIsNone(storage.fetch_mesocycle_analysis(self.cur, self.user_id, 'meso'))
