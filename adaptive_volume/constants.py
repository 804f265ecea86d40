# adaptive_volume/constants.py
from .models import TrainingAge

# EMA learning rate applied to MRV/MEV estimates after each mesocycle
VOLUME_LEARNING_RATE = 0.3

# Minimum gap (sets/week) kept between estimated MEV and MRV
MIN_MEV_MRV_GAP = 2

# Data points (completed mesocycles) needed for each confidence tier
CONFIDENCE_HIGH_DATA_POINTS = 4
CONFIDENCE_MEDIUM_DATA_POINTS = 2

TRAINING_AGE_MULTIPLIERS = {
    TrainingAge.NOVICE: 0.7,  # Novices need less volume
    TrainingAge.INTERMEDIATE: 1.0,
    TrainingAge.ADVANCED: 1.15,
}
ENHANCED_MULTIPLIER = 1.4

# Minimum sample sizes
MIN_PROGRESSION_WEEKS = 3
MIN_RIR_DRIFT_WEEKS = 3
MIN_FORM_TREND_WEEKS = 2
MIN_MESOCYCLE_WEEKS = 3
MIN_RECOVERY_PAIRS = 8

# Progression categorization (% e1RM change per week)
IMPROVING_AVG_RATE = 0.5
IMPROVING_MIN_SLOPE = -0.1
DECLINING_AVG_RATE = -0.5
DECLINING_SLOPE = -0.3

# RIR drift significance (reps)
RIR_DRIFT_CONCERNING = 2.0
RIR_DRIFT_CONCERNING_PROGRESSIVE = 1.5
RIR_DRIFT_ELEVATED = 1.0

# Form trend slope bounds (form score per week)
FORM_SLOPE_DEGRADING = -0.05
FORM_SLOPE_IMPROVING = 0.05

# Recovery correlation
NEUTRAL_RECOVERY_SCORE = 3.0
STRESS_INVERSION_BASE = 6
CHECK_IN_MAX_DAYS_BEFORE = 1
STRONG_CORRELATION = 0.6
MODERATE_CORRELATION = 0.4

# Fatigue monitor
FATIGUE_WINDOW_WEEKS = 3
FATIGUE_MIN_WEEKS = 2
APPROACHING_MRV_FRACTION = 0.9
FORM_DEGRADATION_ALERT = 0.25

# Overall mesocycle classification: share of muscles with a verdict
OVERALL_RECOVERY_SHARE = 0.3

# Effective set criteria and RIR fallbacks used when aggregating set logs
EFFECTIVE_SET_MAX_RIR = 3
DEFAULT_SET_RIR = 2
DEFAULT_AVERAGE_RIR = 2.0
