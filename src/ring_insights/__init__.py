"""
ring_insights
=============
Statistical and machine-learning analysis engine for smart-ring
biometrics (sleep, activity, readiness).

The engine only computes: it takes daily records from a data-acquisition
collaborator and returns result objects and ``Insight`` values for
rendering or export collaborators.  It performs no network, file or
environment access of its own; ``settings.load_settings`` reads
``RING_INSIGHTS_*`` variables only when a caller invokes it.
"""

from ring_insights.analytics.hypothesis import HypothesisResult, HypothesisTesting
from ring_insights.chronotype import ChronotypeAnalysis, ChronotypeAnalyzer
from ring_insights.errors import (
    ConfigurationError,
    InsufficientDataError,
    NumericalDegeneracyError,
    RingInsightsError,
    SingularMatrixError,
)
from ring_insights.illness import IllnessAnalysis, IllnessDetector
from ring_insights.insight_engine import EngineReport, InsightEngine, health_score
from ring_insights.insights import Insight
from ring_insights.records import SleepRecord, build_daily_frame, clean_daily_frame, hours_to_clock
from ring_insights.settings import DEFAULT_SETTINGS, EngineSettings, load_settings
from ring_insights.sleep_debt import SleepDebtAnalysis, SleepDebtCalculator

__version__ = "0.1.0"

__all__ = [
    "ChronotypeAnalysis",
    "ChronotypeAnalyzer",
    "ConfigurationError",
    "DEFAULT_SETTINGS",
    "EngineReport",
    "EngineSettings",
    "HypothesisResult",
    "HypothesisTesting",
    "IllnessAnalysis",
    "IllnessDetector",
    "Insight",
    "InsightEngine",
    "InsufficientDataError",
    "NumericalDegeneracyError",
    "RingInsightsError",
    "SingularMatrixError",
    "SleepDebtAnalysis",
    "SleepDebtCalculator",
    "SleepRecord",
    "build_daily_frame",
    "clean_daily_frame",
    "health_score",
    "hours_to_clock",
    "load_settings",
]
