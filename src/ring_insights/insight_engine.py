"""
Insight Engine
==============
Runs every analysis component over one date-ordered daily frame and
collects the results as ranked ``Insight`` objects.

  Layer 0  Load & clean        sort, dedupe, coerce metric columns
  Layer 1  Pattern match       latest night vs the reference pattern library
  Layer 2  Anomaly             latest day vs a >= 30-day baseline (z-score)
  Layer 3  Readiness trend     OLS slope over the last 14 days (R^2 > 0.5)
  Layer 4  Forecast            7-day Holt-Winters readiness forecast
  Layer 5  Archetypes          K-Means (k=3) over standardised sleep features
  Layer 6  Key dimensions      PCA over the available daily metrics
  Layer 7  Sleep debt          homeostatic debt model (>= 7 nights)
  Layer 8  Recommendations     rule-based advice for the latest day

A layer that lacks data is skipped.  A layer that raises a
``RingInsightsError`` is logged, the report is marked "degraded" and the
remaining layers still run.  Anything else propagates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from ring_insights import constants as C
from ring_insights.analytics.clustering import KMeans
from ring_insights.analytics.forecasting import TimeSeriesForecast
from ring_insights.analytics.linalg import make_rng, standardize
from ring_insights.analytics.multivariate import MultivariateStats, summarize_pca
from ring_insights.analytics.patterns import AnomalyDetector, Pattern, PatternRecognizer, TrendAnalyzer
from ring_insights.errors import ConfigurationError, RingInsightsError
from ring_insights.insights import Insight, clip_confidence, rank_insights
from ring_insights.records import clean_daily_frame, records_from_frame
from ring_insights.settings import DEFAULT_SETTINGS, EngineSettings
from ring_insights.sleep_debt import SleepDebtAnalysis, SleepDebtCalculator

log = logging.getLogger("insight_engine")

# Layer 1 matches one vector per day in SLEEP_FEATURES order:
# hours, hours, hours, efficiency fraction, HRV ms
DEFAULT_PATTERNS = [
    Pattern("excellent_sleep", (8.5, 1.5, 2.0, 0.95, 75.0), "Excellent Sleep Pattern"),
    Pattern("sleep_deprivation", (5.5, 0.5, 0.8, 0.75, 45.0), "Sleep Deprivation Pattern"),
]

ARCHETYPE_NAMES = ["restricted", "typical", "restorative"]


@dataclass
class Prediction:
    metric: str
    predicted: float
    confidence: float
    trend: str
    trend_strength: float


@dataclass
class EngineReport:
    insights: List[Insight] = field(default_factory=list)
    analysis_status: str = "success"
    degraded_reasons: List[str] = field(default_factory=list)
    n_days: int = 0
    predictions: List[Prediction] = field(default_factory=list)
    health_score: Optional[int] = None
    sleep_debt: Optional[SleepDebtAnalysis] = None

    def degrade(self, reason: str) -> None:
        if self.analysis_status == "success":
            self.analysis_status = "degraded"
        self.degraded_reasons.append(reason)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "insights": [i.to_dict() for i in self.insights],
            "analysis_status": self.analysis_status,
            "degraded_reasons": list(self.degraded_reasons),
            "n_days": self.n_days,
            "predictions": [p.__dict__.copy() for p in self.predictions],
            "health_score": self.health_score,
        }


def efficiency_fraction(value: float) -> float:
    """Ring payloads report efficiency in percent; patterns use a fraction."""
    return value / 100.0 if value > 1.0 else value


def _value(day: Mapping[str, Any], key: str) -> float:
    v = day.get(key)
    if v is None or pd.isna(v):
        return 0.0
    return float(v)


def health_score(day: Mapping[str, Any]) -> int:
    """0-100 composite: sleep 40%, activity 30%, readiness 30%.

    Missing metrics count as 0.
    """
    sleep = (
        min(_value(day, "sleep_hours") / 8.0, 1.0) * 0.4
        + min(_value(day, "deep_hours") / 1.5, 1.0) * 0.3
        + min(_value(day, "rem_hours") / 2.0, 1.0) * 0.2
        + min(efficiency_fraction(_value(day, "efficiency")), 1.0) * 0.1
    ) * 40.0
    activity = (
        min(_value(day, "steps") / 10000.0, 1.0) * 0.5
        + min(_value(day, "active_calories") / 2500.0, 1.0) * 0.3
        + min(_value(day, "activity_score") / 100.0, 1.0) * 0.2
    ) * 30.0
    readiness = _value(day, "readiness_score") * 0.3
    return int(round(max(0.0, min(100.0, sleep + activity + readiness))))


class InsightEngine:
    """Orchestrates the analysis layers for one wearer's daily history."""

    def __init__(self, settings: Optional[EngineSettings] = None,
                 patterns: Optional[Sequence[Pattern]] = None):
        self.settings = settings or DEFAULT_SETTINGS
        self._rng = make_rng(self.settings.seed)
        self.recognizer = PatternRecognizer(self.settings.pattern_threshold)
        for pattern in (DEFAULT_PATTERNS if patterns is None else patterns):
            if len(pattern.features) != len(C.SLEEP_FEATURES):
                raise ConfigurationError(
                    f"Pattern {pattern.id!r} has {len(pattern.features)} features; "
                    f"layer 1 matches {len(C.SLEEP_FEATURES)} ({', '.join(C.SLEEP_FEATURES)})"
                )
            self.recognizer.add_pattern(pattern)
        self.trend = TrendAnalyzer()
        self.sleep_debt = SleepDebtCalculator()

    # ─── MAIN ENTRY ────────────────────────────────────────

    def analyze(self, frame) -> EngineReport:
        report = EngineReport()
        log.info("Insight engine - analysing daily history...")

        df = self._layer0_load_and_clean(frame)
        report.n_days = len(df)
        if df.empty:
            log.info("   No daily rows; nothing to analyse")
            report.analysis_status = "failed"
            report.degraded_reasons.append("no_daily_rows")
            return report

        latest = df.iloc[-1].to_dict()
        report.health_score = health_score(latest)

        layers = [
            ("pattern", lambda: self._layer1_patterns(latest)),
            ("anomaly", lambda: self._layer2_anomaly(df)),
            ("trend", lambda: self._layer3_trend(df)),
            ("forecast", lambda: self._layer4_forecast(df, report)),
            ("archetype", lambda: self._layer5_archetypes(df)),
            ("dimension", lambda: self._layer6_dimensions(df)),
            ("sleep_debt", lambda: self._layer7_sleep_debt(df, report)),
            ("recommendation", lambda: self._layer8_recommendations(latest)),
        ]
        collected: List[Insight] = []
        for name, run in layers:
            try:
                collected.extend(run())
            except RingInsightsError as e:
                log.warning("%s layer failed; continuing in degraded mode: %s", name, e)
                report.degrade(f"{name}_layer_failed")

        report.insights = rank_insights(collected)
        log.info(
            "   Insight digest (%d days): %d insights, status=%s",
            report.n_days, len(report.insights), report.analysis_status,
        )
        return report

    # ─── Layers ────────────────────────────────────────────

    def _layer0_load_and_clean(self, frame) -> pd.DataFrame:
        return clean_daily_frame(frame)

    def _layer1_patterns(self, latest: Dict[str, Any]) -> List[Insight]:
        raw = [latest.get(c) for c in C.SLEEP_FEATURES]
        if any(v is None or pd.isna(v) for v in raw):
            return []
        features = [float(v) for v in raw]
        features[C.SLEEP_FEATURES.index("efficiency")] = efficiency_fraction(features[3])
        match = self.recognizer.recognize(features)
        if match is None:
            return []
        return [Insight(
            type="pattern",
            severity="low" if "Excellent" in match.label else "high",
            title=f"{match.label} Detected",
            narrative=(f"Last night's sleep matches the {match.label.lower()} with "
                       f"{match.confidence * 100:.1f}% similarity."),
            confidence=clip_confidence(match.confidence),
            evidence={"pattern_id": match.id, "features": features},
        )]

    def _layer2_anomaly(self, df: pd.DataFrame) -> List[Insight]:
        complete = df.dropna(subset=C.ANOMALY_FEATURES)
        if len(complete) < C.MIN_ANOMALY_BASELINE_DAYS + 1 or complete.index[-1] != df.index[-1]:
            log.info("   Layer 2: skipped (need %d baseline days + today)", C.MIN_ANOMALY_BASELINE_DAYS)
            return []
        values = complete[C.ANOMALY_FEATURES].to_numpy(dtype=np.float64)
        detector = AnomalyDetector(
            threshold=self.settings.anomaly_threshold,
            seed=self._rng,
            num_trees=self.settings.isolation_trees,
            max_depth=self.settings.isolation_max_depth,
        )
        detector.train(values[:-1])
        result = detector.detect(values[-1])
        if not result.is_anomaly:
            return []
        affected = [C.DIMENSION_LABELS[C.ANOMALY_FEATURES[i]] for i in result.dimensions]
        return [Insight(
            type="anomaly",
            severity="high" if result.score > 3 else "medium",
            title="Unusual Metrics Detected",
            narrative=f"Unusual values in: {', '.join(affected)} (max z-score {result.score:.2f}).",
            confidence=clip_confidence(result.score / 3.0),
            evidence={
                "z_scores": dict(zip(C.ANOMALY_FEATURES, result.z_scores)),
                "isolation_score": detector.isolation_score(values[-1]),
            },
        )]

    def _readiness(self, df: pd.DataFrame) -> pd.Series:
        return df.set_index("day")["readiness_score"].dropna()

    def _layer3_trend(self, df: pd.DataFrame) -> List[Insight]:
        recent = self._readiness(df).iloc[-14:]
        if len(recent) < C.MIN_TREND_DAYS:
            return []
        direction = self.trend.detect_trend(recent.to_numpy())
        strength = self.trend.trend_strength(recent.to_numpy())
        if strength <= C.TREND_REPORT_R2:
            return []
        return [Insight(
            type="trend",
            severity="high" if direction == "decreasing" else "low",
            title=f"{direction.capitalize()} Readiness Trend",
            narrative=(f"Your readiness score is {direction} with {strength * 100:.0f}% "
                       f"consistency over the past {len(recent)} days."),
            confidence=clip_confidence(strength),
            evidence={"trend": direction, "r2": strength,
                      "p_value": self.trend.slope_significance(recent.to_numpy())},
        )]

    def _layer4_forecast(self, df: pd.DataFrame, report: EngineReport) -> List[Insight]:
        readiness = self._readiness(df)
        if len(readiness) < C.MIN_FORECAST_DAYS:
            return []
        forecast = TimeSeriesForecast(seasonality=7).add_data(readiness).holt_winters_forecast(7)
        recent = readiness.iloc[-14:].to_numpy()
        direction = self.trend.detect_trend(recent)
        strength = self.trend.trend_strength(recent)
        report.predictions = [
            Prediction(f"readiness_day_{i + 1}", float(v), max(0.6, 1 - i * 0.05), direction, strength)
            for i, v in enumerate(forecast)
        ]
        expected = float(np.mean(forecast))
        current = float(readiness.iloc[-7:].mean())
        if expected >= current * 0.9:
            return []
        return [Insight(
            type="prediction",
            severity="medium",
            title="Declining Readiness Forecasted",
            narrative=f"Readiness may average {expected:.0f} over the next week (now {current:.0f}).",
            confidence=0.75,
            evidence={"forecast": [float(v) for v in forecast]},
        )]

    def _layer5_archetypes(self, df: pd.DataFrame) -> List[Insight]:
        complete = df.dropna(subset=C.SLEEP_FEATURES)
        if len(complete) < C.MIN_CLUSTER_DAYS or complete.index[-1] != df.index[-1]:
            return []
        values = complete[C.SLEEP_FEATURES].to_numpy(dtype=np.float64)
        model = KMeans(
            C.ARCHETYPE_CLUSTERS,
            max_iterations=self.settings.kmeans_max_iterations,
            tolerance=self.settings.kmeans_tolerance,
            seed=self._rng,
        )
        labels = model.fit(standardize(values))

        # name clusters by mean sleep duration, shortest first
        hours = [values[labels == k, 0].mean() if np.any(labels == k) else np.inf
                 for k in range(C.ARCHETYPE_CLUSTERS)]
        names = {int(k): ARCHETYPE_NAMES[rank] for rank, k in enumerate(np.argsort(hours))}
        today = int(labels[-1])
        share = float(np.mean(labels == today))
        return [Insight(
            type="cluster",
            severity="medium" if names[today] == "restricted" else "low",
            title=f"Last night fits your {names[today]} sleep archetype",
            narrative=(f"{share * 100:.0f}% of your nights fall in this group "
                       f"(mean {hours[today]:.1f} h of sleep)."),
            confidence=clip_confidence(share + 0.5),
            evidence={"archetype": names[today], "share": share,
                      "inertia": model.inertia_, "sizes": np.bincount(labels).tolist()},
        )]

    def _layer6_dimensions(self, df: pd.DataFrame) -> List[Insight]:
        columns = [c for c in C.DIMENSION_LABELS if df[c].notna().sum() >= C.MIN_CLUSTER_DAYS]
        complete = df.dropna(subset=columns)
        if len(columns) < 2 or len(complete) < max(C.MIN_CLUSTER_DAYS, len(columns) + 1):
            return []
        values = standardize(complete[columns].to_numpy(dtype=np.float64))
        result = MultivariateStats(self.settings, seed=self._rng).pca(values, min(3, len(columns)))
        labels = [C.DIMENSION_LABELS[c] for c in columns]
        summary = summarize_pca(result, labels)
        lead = summary[0]
        return [Insight(
            type="dimension",
            severity="low",
            title=f"{lead['dominant']} drives most of your day-to-day variation",
            narrative=(f"The first health dimension explains {lead['explained_variance']:.0f}% of "
                       f"the variance across {len(columns)} metrics."),
            confidence=clip_confidence(lead["explained_variance"] / 100.0),
            evidence={"components": summary},
        )]

    def _layer7_sleep_debt(self, df: pd.DataFrame, report: EngineReport) -> List[Insight]:
        records = records_from_frame(df)
        if len(records) < C.MIN_SLEEP_DEBT_DAYS:
            return []
        analysis = self.sleep_debt.analyze_sleep_debt(records)
        report.sleep_debt = analysis
        return analysis.insights

    def _layer8_recommendations(self, latest: Dict[str, Any]) -> List[Insight]:
        recs = []

        def present(key: str) -> bool:
            v = latest.get(key)
            return v is not None and not pd.isna(v)

        if present("sleep_hours") and latest["sleep_hours"] < 7:
            recs.append(Insight("recommendation", "high", "Increase Sleep Duration",
                                f"You slept {latest['sleep_hours']:.1f} hours. Aim for 7-9 hours.",
                                0.9))
        if present("deep_hours") and latest["deep_hours"] < 1.0:
            recs.append(Insight("recommendation", "medium", "Improve Deep Sleep Quality",
                                "Deep sleep was low. Cut late caffeine and keep a consistent schedule.",
                                0.8))
        if present("steps") and latest["steps"] < 5000:
            recs.append(Insight("recommendation", "medium", "Increase Daily Activity",
                                "Steps are below recommended levels. Try for 7,000-10,000 a day.",
                                0.85))
        if present("readiness_score") and latest["readiness_score"] < 70:
            recs.append(Insight("recommendation", "high", "Focus on Recovery",
                                "Low readiness suggests your body needs recovery. Keep activity light today.",
                                0.9))
        return recs
