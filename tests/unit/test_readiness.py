from datetime import date, datetime, timedelta, timezone

import pytest

from adaptive_volume.models import CorrelationSignificance, DailyCheckIn, WorkoutSession
from adaptive_volume.readiness import (
    analyze_recovery_correlation,
    calculate_recovery_score,
    calculate_workout_performance,
    find_check_in_before,
    interpret_recovery_correlation,
)

START = date(2024, 1, 1)


def _check_in(day, rating=4, stress=None):
    return DailyCheckIn(
        date=day,
        sleep_quality=rating,
        energy_level=rating,
        soreness_level=rating,
        mood_rating=rating,
        stress_level=stress,
    )


def _workout(day, completion=100.0, rpe=None, completed=True):
    completed_at = datetime(day.year, day.month, day.day, 18, tzinfo=timezone.utc) if completed else None
    return WorkoutSession(planned_date=day, completion_percent=completion, completed_at=completed_at, session_rpe=rpe)


class TestFindCheckInBefore:
    def test_prefers_same_day_over_day_before(self):
        yesterday = _check_in(START, rating=2)
        today = _check_in(START + timedelta(days=1), rating=5)
        assert find_check_in_before([today, yesterday], START + timedelta(days=1)) is today
        assert find_check_in_before([yesterday, today], START + timedelta(days=1)) is today

    def test_ignores_check_ins_after_the_workout_or_too_old(self):
        later = _check_in(START + timedelta(days=1))
        stale = _check_in(START - timedelta(days=2))
        assert find_check_in_before([later, stale], START) is None


class TestScores:
    def test_recovery_score_inverts_stress(self):
        assert calculate_recovery_score(_check_in(START, rating=4, stress=2)) == pytest.approx(4.0)
        assert calculate_recovery_score(_check_in(START, rating=4, stress=5)) == pytest.approx(17 / 5)

    def test_recovery_score_without_ratings_is_neutral(self):
        assert calculate_recovery_score(DailyCheckIn(date=START)) == 3.0

    def test_workout_performance(self):
        assert calculate_workout_performance(_workout(START, completion=90, rpe=7)) == pytest.approx(96)
        assert calculate_workout_performance(_workout(START, completion=80)) == pytest.approx(80)

    def test_workout_performance_is_clamped(self):
        assert calculate_workout_performance(_workout(START, completion=100, rpe=5)) == 100
        assert calculate_workout_performance(_workout(START, completion=0, rpe=10)) == 0


class TestRecoveryCorrelation:
    def test_fewer_than_eight_pairs_is_insufficient(self):
        days = [START + timedelta(days=i) for i in range(7)]
        result = analyze_recovery_correlation([_check_in(d) for d in days], [_workout(d) for d in days])

        assert result.significance == CorrelationSignificance.INSUFFICIENT_DATA
        assert result.correlation == 0
        assert result.interpretation == 'Need more data points to analyze recovery patterns.'

    def test_unfinished_workouts_do_not_pair(self):
        days = [START + timedelta(days=i) for i in range(10)]
        workouts = [_workout(d, completed=i % 2 == 0) for i, d in enumerate(days)]
        result = analyze_recovery_correlation([_check_in(d) for d in days], workouts)
        assert result.significance == CorrelationSignificance.INSUFFICIENT_DATA

    def test_performance_tracking_recovery_is_strong(self):
        ratings = [2, 3, 4, 5, 2, 3, 4, 5]
        days = [START + timedelta(days=i) for i in range(len(ratings))]
        check_ins = [_check_in(d, rating=r) for d, r in zip(days, ratings)]
        workouts = [_workout(d, completion=50 + 10 * r) for d, r in zip(days, ratings)]

        result = analyze_recovery_correlation(check_ins, workouts)

        assert result.correlation == pytest.approx(1.0)
        assert result.avg_recovery_score == pytest.approx(3.5)
        assert result.significance == CorrelationSignificance.STRONG
        assert result.interpretation == 'Recovery is moderate. Current volume appears sustainable.'


@pytest.mark.parametrize("correlation, avg_recovery, expected", [
    (0.7, 2.0, 'Low recovery is impacting performance. Consider reducing volume.'),
    (0.1, 4.0, 'Recovering well from current volume. May have room to increase.'),
    (0.9, 3.0, 'Recovery is moderate. Current volume appears sustainable.'),
    (0.9, 4.5, 'Insufficient pattern detected.'),
])
def test_interpretation(correlation, avg_recovery, expected):
    assert interpret_recovery_correlation(correlation, avg_recovery) == expected
