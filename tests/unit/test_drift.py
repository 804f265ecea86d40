import pytest

from adaptive_volume.drift import analyze_form_trend, calculate_rir_drift, classify_rir_drift
from adaptive_volume.models import DriftSignificance, FormTrend, MuscleGroup, MuscleVolumeData


def _weeks(rirs=None, forms=None):
    rirs = rirs or [2.0] * len(forms)
    forms = forms or [1.0] * len(rirs)
    return [
        MuscleVolumeData(
            muscle=MuscleGroup.CHEST,
            week_number=i + 1,
            mesocycle_id='meso-1',
            total_sets=12,
            working_sets=10,
            effective_sets=8,
            total_volume=5000.0,
            average_rir=rir,
            average_form_score=form,
        )
        for i, (rir, form) in enumerate(zip(rirs, forms))
    ]


class TestRirDrift:
    def test_large_drift_is_concerning(self):
        result = calculate_rir_drift(_weeks(rirs=[3.0, 1.5, 0.5]))
        assert result.drift == pytest.approx(2.5)
        assert result.significance == DriftSignificance.CONCERNING

    def test_progressive_drift_lowers_concerning_threshold(self):
        result = calculate_rir_drift(_weeks(rirs=[3.0, 2.0, 1.4]))
        assert result.drift == pytest.approx(1.6)
        assert result.significance == DriftSignificance.CONCERNING

    def test_sudden_drift_of_same_size_is_only_elevated(self):
        result = calculate_rir_drift(_weeks(rirs=[3.0, 3.2, 1.4]))
        assert result.drift == pytest.approx(1.6)
        assert result.significance == DriftSignificance.ELEVATED

    def test_small_drift_is_elevated(self):
        result = calculate_rir_drift(_weeks(rirs=[3.0, 2.5, 1.8]))
        assert result.significance == DriftSignificance.ELEVATED

    def test_stable_effort_is_normal(self):
        result = calculate_rir_drift(_weeks(rirs=[2.0, 2.0, 2.5]))
        assert result.drift == pytest.approx(-0.5)
        assert result.significance == DriftSignificance.NORMAL

    def test_two_weeks_is_not_enough(self):
        result = calculate_rir_drift(_weeks(rirs=[3.0, 0.0]))
        assert result.drift == 0
        assert result.significance == DriftSignificance.NORMAL

    @pytest.mark.parametrize("drift, progressive, expected", [
        (2.01, False, DriftSignificance.CONCERNING),
        (2.0, False, DriftSignificance.ELEVATED),
        (1.5, True, DriftSignificance.ELEVATED),
        (1.51, True, DriftSignificance.CONCERNING),
        (1.0, True, DriftSignificance.NORMAL),
    ])
    def test_classification_boundaries(self, drift, progressive, expected):
        assert classify_rir_drift(drift, progressive) == expected


class TestFormTrend:
    def test_declining_form(self):
        result = analyze_form_trend(_weeks(forms=[1.0, 0.8, 0.6]))
        assert result.avg_degradation == pytest.approx(0.4)
        assert result.trend == FormTrend.DEGRADING

    def test_improving_form(self):
        result = analyze_form_trend(_weeks(forms=[0.5, 1.0]))
        assert result.avg_degradation == pytest.approx(-0.5)
        assert result.trend == FormTrend.IMPROVING

    def test_flat_form_is_stable(self):
        result = analyze_form_trend(_weeks(forms=[0.75, 0.75, 0.75]))
        assert result.avg_degradation == 0
        assert result.trend == FormTrend.STABLE

    def test_single_week_is_stable(self):
        result = analyze_form_trend(_weeks(forms=[0.2]))
        assert result.avg_degradation == 0
        assert result.trend == FormTrend.STABLE
