"""
Domain types for the adaptive volume engine.

Closed vocabularies are string-valued enums so they serialize to the same
values the database CHECK constraints and the JSON API use. Per-muscle
containers are always keyed by ``MuscleGroup``.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class MuscleGroup(str, Enum):
    CHEST = 'chest'
    BACK = 'back'
    SHOULDERS = 'shoulders'
    BICEPS = 'biceps'
    TRICEPS = 'triceps'
    QUADS = 'quads'
    HAMSTRINGS = 'hamstrings'
    GLUTES = 'glutes'
    CALVES = 'calves'
    ABS = 'abs'
    TRAPS = 'traps'
    FOREARMS = 'forearms'
    ADDUCTORS = 'adductors'


class FormRating(str, Enum):
    CLEAN = 'clean'
    SOME_BREAKDOWN = 'some_breakdown'
    UGLY = 'ugly'


class TrainingAge(str, Enum):
    NOVICE = 'novice'
    INTERMEDIATE = 'intermediate'
    ADVANCED = 'advanced'


class ProgressionTrend(str, Enum):
    IMPROVING = 'improving'
    MAINTAINING = 'maintaining'
    DECLINING = 'declining'


class ProgressionStatus(str, Enum):
    ANALYZED = 'analyzed'
    INSUFFICIENT_DATA = 'insufficient_data'


class DriftSignificance(str, Enum):
    NORMAL = 'normal'
    ELEVATED = 'elevated'
    CONCERNING = 'concerning'


class FormTrend(str, Enum):
    IMPROVING = 'improving'
    STABLE = 'stable'
    DEGRADING = 'degrading'


class CorrelationSignificance(str, Enum):
    INSUFFICIENT_DATA = 'insufficient_data'
    WEAK = 'weak'
    MODERATE = 'moderate'
    STRONG = 'strong'


class VolumeVerdict(str, Enum):
    TOO_HIGH = 'too_high'
    OPTIMAL = 'optimal'
    TOO_LOW = 'too_low'
    INSUFFICIENT_DATA = 'insufficient_data'


class OverallRecovery(str, Enum):
    UNDER_RECOVERED = 'under_recovered'
    WELL_RECOVERED = 'well_recovered'
    UNDER_STIMULATED = 'under_stimulated'


class VolumeConfidence(str, Enum):
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'


class FatigueAlertType(str, Enum):
    APPROACHING_MRV = 'approaching_mrv'
    RIR_DRIFT = 'rir_drift'
    FORM_DEGRADATION = 'form_degradation'


class FatigueAlertSeverity(str, Enum):
    WARNING = 'warning'
    ALERT = 'alert'


class VolumeStatus(str, Enum):
    BELOW_MEV = 'below_mev'
    LOW = 'low'
    OPTIMAL = 'optimal'
    HIGH = 'high'
    AT_LIMIT = 'at_limit'


class VolumeTrend(str, Enum):
    UP = 'up'
    DOWN = 'down'
    STABLE = 'stable'


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


def _require_finite(name: str, value: float) -> None:
    if value is None or not math.isfinite(value):
        raise ValueError(f"{name} must be a finite number, got {value!r}")


def _require_range(name: str, value: float, low: float, high: float) -> None:
    _require_finite(name, value)
    if not low <= value <= high:
        raise ValueError(f"{name} must be between {low} and {high}, got {value!r}")


# --- External inputs ---

@dataclass(frozen=True)
class SetLog:
    """A single logged set as recorded by the workout tracker."""
    exercise_id: str
    exercise_name: str
    weight_kg: float
    reps: int
    rir: Optional[int] = None
    rpe: Optional[float] = None
    form: Optional[FormRating] = None
    is_warmup: bool = False
    logged_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        _require_finite('weight_kg', self.weight_kg)
        if self.weight_kg < 0:
            raise ValueError("weight_kg must be non-negative")
        if self.reps < 0:
            raise ValueError("reps must be non-negative")
        if self.rir is not None and self.rir < 0:
            raise ValueError("rir must be non-negative")
        if self.rpe is not None:
            _require_range('rpe', self.rpe, 0, 10)


@dataclass(frozen=True)
class DailyCheckIn:
    """Subjective daily ratings (1-5). Missing ratings are None."""
    date: date
    sleep_quality: Optional[int] = None
    energy_level: Optional[int] = None
    soreness_level: Optional[int] = None
    mood_rating: Optional[int] = None
    stress_level: Optional[int] = None

    def __post_init__(self) -> None:
        for name in ('sleep_quality', 'energy_level', 'soreness_level', 'mood_rating', 'stress_level'):
            rating = getattr(self, name)
            if rating is not None:
                _require_range(name, rating, 1, 5)


@dataclass(frozen=True)
class WorkoutSession:
    planned_date: date
    completion_percent: float
    completed_at: Optional[datetime] = None
    session_rpe: Optional[float] = None

    def __post_init__(self) -> None:
        _require_range('completion_percent', self.completion_percent, 0, 100)
        if self.session_rpe is not None:
            _require_range('session_rpe', self.session_rpe, 0, 10)


# --- Weekly aggregates ---

@dataclass(frozen=True)
class ExerciseWeekPerformance:
    exercise_id: str
    exercise_name: str
    best_set_weight: float
    best_set_reps: int
    best_set_rir: int
    best_set_form: FormRating
    estimated_1rm: float
    e1rm_change: Optional[float] = None  # % vs prior week, positive = progress
    rir_drift: Optional[float] = None    # positive = felt harder

    def to_dict(self) -> Dict[str, Any]:
        return {
            'exercise_id': self.exercise_id,
            'exercise_name': self.exercise_name,
            'best_set_weight': self.best_set_weight,
            'best_set_reps': self.best_set_reps,
            'best_set_rir': self.best_set_rir,
            'best_set_form': self.best_set_form.value,
            'estimated_1rm': self.estimated_1rm,
            'e1rm_change': self.e1rm_change,
            'rir_drift': self.rir_drift,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ExerciseWeekPerformance':
        return cls(
            exercise_id=str(data['exercise_id']),
            exercise_name=data['exercise_name'],
            best_set_weight=float(data['best_set_weight']),
            best_set_reps=int(data['best_set_reps']),
            best_set_rir=int(data['best_set_rir']),
            best_set_form=FormRating(data['best_set_form']),
            estimated_1rm=float(data['estimated_1rm']),
            e1rm_change=data.get('e1rm_change'),
            rir_drift=data.get('rir_drift'),
        )


@dataclass(frozen=True)
class MuscleVolumeData:
    """One muscle, one week, one mesocycle."""
    muscle: MuscleGroup
    week_number: int
    mesocycle_id: str
    total_sets: int
    working_sets: int
    effective_sets: int
    total_volume: float
    average_rir: float
    average_form_score: float
    exercise_performance: List[ExerciseWeekPerformance] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.effective_sets < 0 or self.working_sets < 0 or self.total_sets < 0:
            raise ValueError("set counts must be non-negative")
        if not self.effective_sets <= self.working_sets <= self.total_sets:
            raise ValueError(
                f"expected effective_sets <= working_sets <= total_sets for {self.muscle.value} "
                f"week {self.week_number}, got {self.effective_sets}/{self.working_sets}/{self.total_sets}"
            )
        _require_finite('total_volume', self.total_volume)
        _require_finite('average_rir', self.average_rir)
        _require_finite('average_form_score', self.average_form_score)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'muscle': self.muscle.value,
            'week_number': self.week_number,
            'mesocycle_id': self.mesocycle_id,
            'total_sets': self.total_sets,
            'working_sets': self.working_sets,
            'effective_sets': self.effective_sets,
            'total_volume': self.total_volume,
            'average_rir': self.average_rir,
            'average_form_score': self.average_form_score,
            'exercise_performance': [p.to_dict() for p in self.exercise_performance],
        }


# --- Learned profile ---

@dataclass(frozen=True)
class MuscleTolerance:
    estimated_mrv: int
    estimated_mev: int
    confidence: VolumeConfidence
    data_points: int
    last_updated: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            'estimated_mrv': self.estimated_mrv,
            'estimated_mev': self.estimated_mev,
            'confidence': self.confidence.value,
            'data_points': self.data_points,
            'last_updated': self.last_updated.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MuscleTolerance':
        return cls(
            estimated_mrv=int(data['estimated_mrv']),
            estimated_mev=int(data['estimated_mev']),
            confidence=VolumeConfidence(data['confidence']),
            data_points=int(data['data_points']),
            last_updated=_parse_datetime(data['last_updated']),
        )


@dataclass(frozen=True)
class UserVolumeProfile:
    user_id: str
    updated_at: datetime
    muscle_tolerance: Dict[MuscleGroup, MuscleTolerance]
    global_recovery_multiplier: float = 1.0
    is_enhanced: bool = False
    training_age: TrainingAge = TrainingAge.INTERMEDIATE

    def to_dict(self) -> Dict[str, Any]:
        return {
            'user_id': self.user_id,
            'updated_at': self.updated_at.isoformat(),
            'muscle_tolerance': {m.value: t.to_dict() for m, t in self.muscle_tolerance.items()},
            'global_recovery_multiplier': self.global_recovery_multiplier,
            'is_enhanced': self.is_enhanced,
            'training_age': self.training_age.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'UserVolumeProfile':
        tolerances = {
            MuscleGroup(muscle): MuscleTolerance.from_dict(values)
            for muscle, values in (data.get('muscle_tolerance') or {}).items()
        }
        return cls(
            user_id=str(data['user_id']),
            updated_at=_parse_datetime(data['updated_at']),
            muscle_tolerance=tolerances,
            global_recovery_multiplier=float(data.get('global_recovery_multiplier') or 1.0),
            is_enhanced=bool(data.get('is_enhanced', False)),
            training_age=TrainingAge(data.get('training_age') or TrainingAge.INTERMEDIATE.value),
        )


# --- Analyzer results ---

@dataclass(frozen=True)
class ProgressionAnalysis:
    status: ProgressionStatus
    avg_progression_rate: float = 0.0
    progression_trend: ProgressionTrend = ProgressionTrend.MAINTAINING
    total_rir_drift: float = 0.0
    avg_form_degradation: float = 0.0
    week_count: int = 0


@dataclass(frozen=True)
class RirDriftResult:
    drift: float
    significance: DriftSignificance


@dataclass(frozen=True)
class FormTrendResult:
    avg_degradation: float
    trend: FormTrend


@dataclass(frozen=True)
class RecoveryCorrelationResult:
    correlation: float
    avg_recovery_score: float
    significance: CorrelationSignificance
    interpretation: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'correlation': self.correlation,
            'avg_recovery_score': self.avg_recovery_score,
            'significance': self.significance.value,
            'interpretation': self.interpretation,
        }


@dataclass(frozen=True)
class VerdictResult:
    verdict: VolumeVerdict
    confidence: int
    adjustment: int


# --- Mesocycle report ---

@dataclass(frozen=True)
class MuscleVolumeTotals:
    avg_weekly_sets: float
    total_sets: int
    effective_sets: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'avg_weekly_sets': self.avg_weekly_sets,
            'total_sets': self.total_sets,
            'effective_sets': self.effective_sets,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MuscleVolumeTotals':
        return cls(
            avg_weekly_sets=float(data['avg_weekly_sets']),
            total_sets=int(data['total_sets']),
            effective_sets=int(data['effective_sets']),
        )


@dataclass(frozen=True)
class MuscleOutcome:
    muscle: MuscleGroup
    weekly_sets: float
    progression_rate: float
    progression_trend: ProgressionTrend
    rir_drift: float
    form_degradation: float
    recovery_correlation: float
    volume_verdict: VolumeVerdict
    confidence: int
    suggested_adjustment: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'muscle': self.muscle.value,
            'weekly_sets': self.weekly_sets,
            'progression_rate': self.progression_rate,
            'progression_trend': self.progression_trend.value,
            'rir_drift': self.rir_drift,
            'form_degradation': self.form_degradation,
            'recovery_correlation': self.recovery_correlation,
            'volume_verdict': self.volume_verdict.value,
            'confidence': self.confidence,
            'suggested_adjustment': self.suggested_adjustment,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MuscleOutcome':
        return cls(
            muscle=MuscleGroup(data['muscle']),
            weekly_sets=float(data['weekly_sets']),
            progression_rate=float(data['progression_rate']),
            progression_trend=ProgressionTrend(data['progression_trend']),
            rir_drift=float(data['rir_drift']),
            form_degradation=float(data['form_degradation']),
            recovery_correlation=float(data['recovery_correlation']),
            volume_verdict=VolumeVerdict(data['volume_verdict']),
            confidence=int(data['confidence']),
            suggested_adjustment=int(data['suggested_adjustment']),
        )


@dataclass(frozen=True)
class MesocycleAnalysis:
    id: str
    mesocycle_id: str
    start_date: date
    end_date: date
    weeks: int
    muscle_volumes: Dict[MuscleGroup, MuscleVolumeTotals]
    muscle_outcomes: Dict[MuscleGroup, MuscleOutcome]
    overall_recovery: OverallRecovery

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'mesocycle_id': self.mesocycle_id,
            'start_date': self.start_date.isoformat(),
            'end_date': self.end_date.isoformat(),
            'weeks': self.weeks,
            'muscle_volumes': {m.value: v.to_dict() for m, v in self.muscle_volumes.items()},
            'muscle_outcomes': {m.value: o.to_dict() for m, o in self.muscle_outcomes.items()},
            'overall_recovery': self.overall_recovery.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MesocycleAnalysis':
        return cls(
            id=str(data['id']),
            mesocycle_id=str(data['mesocycle_id']),
            start_date=_parse_date(data['start_date']),
            end_date=_parse_date(data['end_date']),
            weeks=int(data['weeks']),
            muscle_volumes={
                MuscleGroup(m): MuscleVolumeTotals.from_dict(v)
                for m, v in (data.get('muscle_volumes') or {}).items()
            },
            muscle_outcomes={
                MuscleGroup(m): MuscleOutcome.from_dict(o)
                for m, o in (data.get('muscle_outcomes') or {}).items()
            },
            overall_recovery=OverallRecovery(data['overall_recovery']),
        )


# --- Display-only outputs ---

@dataclass(frozen=True)
class FatigueAlert:
    muscle: MuscleGroup
    type: FatigueAlertType
    severity: FatigueAlertSeverity
    message: str
    suggestion: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'muscle': self.muscle.value,
            'type': self.type.value,
            'severity': self.severity.value,
            'message': self.message,
            'suggestion': self.suggestion,
        }


@dataclass(frozen=True)
class VolumeSummary:
    muscle: MuscleGroup
    current_sets: int
    estimated_mev: int
    estimated_mrv: int
    percent_of_mrv: int
    status: VolumeStatus
    trend: VolumeTrend

    def to_dict(self) -> Dict[str, Any]:
        return {
            'muscle': self.muscle.value,
            'current_sets': self.current_sets,
            'estimated_mev': self.estimated_mev,
            'estimated_mrv': self.estimated_mrv,
            'percent_of_mrv': self.percent_of_mrv,
            'status': self.status.value,
            'trend': self.trend.value,
        }
