# habitpulse/utils/constants.py
"""
Central constants for the analytics pipeline.
Thresholds and weights live here so every engine classifies the same way.
"""

# ============================================
# FORMATION STAGES
# ============================================
STAGE_INITIATION = "INITIATION"
STAGE_LEARNING = "LEARNING"
STAGE_STABILITY = "STABILITY"
STAGE_MASTERY = "MASTERY"

FORMATION_STAGE_CHOICES = [
    STAGE_INITIATION,
    STAGE_LEARNING,
    STAGE_STABILITY,
    STAGE_MASTERY,
]

# Weakest-link thresholds, checked in order. A habit stays in the first stage
# whose criteria it fails to clear.
#   days: minimum days since the habit started
#   success_rate / consistency: minimum scores
#   streak: minimum current streak
STAGE_THRESHOLDS = {
    STAGE_INITIATION: {'days': 7, 'success_rate': 0.3, 'consistency': None, 'streak': 3},
    STAGE_LEARNING: {'days': 21, 'success_rate': 0.6, 'consistency': 0.6, 'streak': 7},
    STAGE_STABILITY: {'days': 66, 'success_rate': 0.8, 'consistency': 0.7, 'streak': 21},
}

# Lally et al. (2010): median time to automaticity
HABIT_FORMATION_DAYS = 66

# ============================================
# HABIT METRICS
# ============================================
HABIT_STRENGTH_WEIGHTS = {
    'success_rate': 0.4,
    'consistency': 0.4,
    'streak': 0.2,
}

FORMATION_PROGRESS_WEIGHTS = {
    'time': 0.3,
    'streak': 0.4,
    'success': 0.3,
}
FORMATION_PROGRESS_STREAK_TARGET = 21

TREND_STABLE_DELTA = 0.1
WEEKEND_WEEKDAY_DELTA = 0.2

# Gap-based consistency normalises the gap stdev by one week
GAP_CONSISTENCY_NORMALIZER = 7.0

# Pattern recognizer thresholds (strictly greater than)
PATTERN_THRESHOLDS = {
    'WEEKLY_CYCLE': 0.7,
    'STREAK_BEHAVIOR': 0.6,
    'SEASONAL_VARIATION': 0.5,
    'RECOVERY_BEHAVIOR': 0.6,
}
SEASONAL_MIN_DAYS = 90
SEASONAL_MIN_MONTHS = 3

STREAK_MILESTONES = [
    ('FIRST_STREAK', 'Completed 3 days in a row', 3),
    ('WEEK_STREAK', 'Completed 1 week consistently', 7),
    ('HABIT_FORMING', 'Completed 21 days - habit forming', 21),
    ('HABIT_FORMED', 'Completed 66 days - habit formed', 66),
]

# ============================================
# FORMATION ANALYSIS
# ============================================
STRENGTH_SCORE_WEIGHTS = {
    'frequency': 0.3,
    'consistency': 0.3,
    'automaticity': 0.25,
    'context_stability': 0.15,
}

STRENGTH_CATEGORY_BOUNDS = [
    (0.8, 'VERY_STRONG'),
    (0.6, 'STRONG'),
    (0.4, 'MODERATE'),
    (0.2, 'WEAK'),
]

BARRIER_LOW_SUCCESS_RATE = 0.5
BARRIER_INCONSISTENT_TIMING = 0.6
BARRIER_GAP_DAYS = 3

TRIGGER_MIN_COMPLETIONS = 3
TRIGGER_MINUTE_NORMALIZER = 30.0

# ============================================
# CORRELATION
# ============================================
CORRELATION_MIN_OVERLAP = 3
CORRELATION_STRONG_THRESHOLD = 0.5

# ============================================
# TIMING
# ============================================
TIMING_MIN_ATTEMPTS = 3
DEFAULT_OPTIMAL_WINDOW = ((8, 0), (10, 0))
PREDICTION_HOUR_WEIGHT = 0.7
PREDICTION_DAY_WEIGHT = 0.3

# (minimum combined sample size, confidence)
PREDICTION_CONFIDENCE_BANDS = [
    (30, 0.95),
    (20, 0.85),
    (10, 0.75),
    (5, 0.60),
]
PREDICTION_CONFIDENCE_FLOOR = 0.40

# ============================================
# GROUP DYNAMICS
# ============================================
MOMENTUM_DECAY_BASE = 1.1
GROUP_STREAK_MIN_RATE = 0.5
COHESION_BOOST_CAP = 0.2
MIN_SYNERGY_MEMBERS = 2

CONTRIBUTION_PERFORMANCE_WEIGHT = 0.6
CONTRIBUTION_ACTIVITY_WEIGHT = 0.4

LEADER_RATE_FACTOR = 1.2
LEADER_ATTEMPT_FACTOR = 1.2
HIGH_PERFORMER_RATE_FACTOR = 1.1
ACTIVE_PARTICIPANT_ATTEMPT_FACTOR = 1.2

# ============================================
# CHALLENGES
# ============================================
MAX_CHALLENGES = 5
MAX_DIFFICULTY = 0.9

HIGH_PERFORMANCE_AVERAGE = 0.8
LOW_PERFORMANCE_AVERAGE = 0.4
HARDER_MULTIPLIER = 1.2
EASIER_MULTIPLIER = 0.8
STRUGGLING_DURATION_FACTOR = 1.3

# ============================================
# RECOMMENDATIONS
# ============================================
MAX_STRATEGIES = 5
LOW_STRENGTH_THRESHOLD = 0.5
