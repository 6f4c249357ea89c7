"""
Shared constants used across the analysis engine.
Single source of truth for thresholds, tunables and record field names.
"""

# ─── Numerical kernel ──────────────────────────────────────

# Pivot magnitude below which a matrix is treated as singular
PIVOT_TOLERANCE = 1e-12
# Substitute used for a near-zero pivot under the legacy "epsilon" policy
LEGACY_PIVOT_EPSILON = 1e-10
SINGULAR_POLICIES = ("raise", "epsilon")

# Cofactor expansion is O(2^n * n); beyond this size use elimination
MAX_COFACTOR_SIZE = 10

EIGEN_MAX_ITERATIONS = 100
EIGEN_TOLERANCE = 1e-10

# ─── Clustering ────────────────────────────────────────────

KMEANS_MAX_ITERATIONS = 100
KMEANS_TOLERANCE = 1e-3
NOISE_LABEL = -1

# ─── Pattern recognition / anomaly detection ──────────────

PATTERN_SIMILARITY_THRESHOLD = 0.8
ANOMALY_Z_THRESHOLD = 2.5
ISOLATION_TREES = 100
ISOLATION_MAX_DEPTH = 10
EULER_MASCHERONI = 0.5772156649

TREND_STABLE_SLOPE = 0.01
CHANGE_POINT_WINDOW = 5
CHANGE_POINT_SHIFT = 0.20

# ─── Neural network ────────────────────────────────────────

NN_DEFAULT_LEARNING_RATE = 0.1
NN_ACTIVATIONS = ("sigmoid", "tanh", "relu")
NN_LOG_EVERY = 100

# ─── Multivariate ──────────────────────────────────────────

FACTOR_INITIAL_COMMUNALITY = 0.5
FACTOR_MAX_ITERATIONS = 100
FACTOR_TOLERANCE = 1e-6
BETA_CF_MAX_ITERATIONS = 200
BETA_CF_EPSILON = 1e-10

# ─── Outlier battery ───────────────────────────────────────

MAD_SCALE = 0.6745
LOF_OUTLIER_THRESHOLD = 1.5

# ─── Sleep debt (two-process homeostatic model) ────────────

MIN_SLEEP_DEBT_DAYS = 7
DAILY_DEBT_DECAY = 0.05          # 5% natural recovery per day
RECOVERY_RATE = 0.25             # share of debt recovered per extended night
MAX_USEFUL_EXTRA_HOURS = 2.0
OPTIMAL_NIGHT_RECOVERY = 0.10    # share of need recovered per optimal night
DEFAULT_SLEEP_NEED = 8.0
LONG_SLEEP_HOURS = 8.0
MIN_WEEKEND_NIGHTS = 4
MIN_LONG_SLEEP_NIGHTS = 3
DEBT_TREND_DEAD_BAND = 1.0
DEBT_HISTORY_LIMIT = 30
DEFAULT_WAKE_HOUR = 7.0

# (upper bound in hours, label) evaluated in order
SEVERITY_THRESHOLDS = [
    (2.0, "none"),
    (5.0, "mild"),
    (10.0, "moderate"),
    (15.0, "severe"),
]
SEVERITY_CEILING = "critical"
SEVERITY_LEVELS = ("none", "mild", "moderate", "severe", "critical")

# Accident-risk multipliers aligned with SEVERITY_LEVELS
ACCIDENT_RISK = {
    "none": 1.0,
    "mild": 1.5,
    "moderate": 2.0,
    "severe": 3.0,
    "critical": 4.0,
}

# ─── Chronotype (MCTQ) ─────────────────────────────────────

MIN_CHRONOTYPE_DAYS = 14
POPULATION_MIDPOINT = 4.5
CHRONOTYPE_SHARE = {"morning": "25%", "intermediate": "50%", "evening": "25%"}


# ─── Illness early warning ─────────────────────────────────

MIN_ILLNESS_DAYS = 14
ILLNESS_RECENT_DAYS = 7
ILLNESS_BASELINE_DAYS = 90
ILLNESS_TREND_DAYS = 3

# Per-type weight in the risk score
ILLNESS_WEIGHTS = {
    "hrv_drop": 2.0,
    "temp_spike": 2.5,
    "rhr_elevation": 1.5,
    "readiness_crash": 1.0,
}

# (upper bound on the 0-100 risk score, label) evaluated in order
ILLNESS_RISK_THRESHOLDS = [
    (15.0, "none"),
    (35.0, "low"),
    (60.0, "moderate"),
    (80.0, "high"),
]
ILLNESS_RISK_CEILING = "critical"

# ─── Insight engine ────────────────────────────────────────

MIN_ANOMALY_BASELINE_DAYS = 30
MIN_TREND_DAYS = 7
MIN_FORECAST_DAYS = 14
MIN_CLUSTER_DAYS = 9
TREND_REPORT_R2 = 0.5
ARCHETYPE_CLUSTERS = 3

SEVERITY_ORDER = {"high": 0, "medium": 1, "low": 2}

# Daily feature columns consumed by the engine layers
SLEEP_FEATURES = ["sleep_hours", "deep_hours", "rem_hours", "efficiency", "hrv"]
ANOMALY_FEATURES = [
    "sleep_hours", "deep_hours", "rem_hours", "efficiency",
    "steps", "active_calories", "readiness_score",
]
DIMENSION_LABELS = {
    "sleep_hours": "Sleep Duration",
    "deep_hours": "Deep Sleep",
    "rem_hours": "REM Sleep",
    "efficiency": "Sleep Efficiency",
    "hrv": "HRV",
    "steps": "Steps",
    "active_calories": "Calories",
    "readiness_score": "Readiness",
    "resting_hr": "Resting HR",
}
