"""
Illness Early Warning
=====================
Flags likely immune activation from deviations against the wearer's own
baseline:

  1. Baselines are the mean and population std of HRV, temperature delta,
     resting HR and readiness over up to 90 days, excluding the most
     recent 7 so an ongoing illness does not shift them.
  2. Each of the last 7 days is checked per metric:

        hrv_drop          (mean - hrv) / std > 1.5
        temp_spike        |z| > 1.5 and delta > mean + 0.4 C
        rhr_elevation     z > 1.5 and > 5 bpm above mean
        readiness_crash   (mean - score) / std > 2.0

     Consecutive days of one type merge into a single anomaly.
  3. Risk = sum(severity * weight * duration factor) / 10, boosted when
     several types coincide, capped at 100.

A zero std is replaced with 1 (0.1 C for temperature) before dividing.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Dict, List, Sequence, Tuple

import numpy as np
import pandas as pd

from ring_insights import constants as C
from ring_insights.errors import require_samples
from ring_insights.insights import Insight, clip_confidence
from ring_insights.records import clean_daily_frame

log = logging.getLogger("illness")

# Metric -> daily frame column
BIOMETRIC_COLUMNS = {
    "hrv": "hrv",
    "temperature": "temperature_delta",
    "resting_hr": "resting_hr",
    "readiness": "readiness_score",
}
POSITIVE_ONLY = ("hrv", "resting_hr")


# ─── Result types ──────────────────────────────────────────

@dataclass(frozen=True)
class Baseline:
    mean: float
    std: float
    n: int


@dataclass(frozen=True)
class IllnessAnomaly:
    type: str
    severity: float     # 0-100
    description: str
    start_day: date
    duration: int       # days
    deviation: float    # baseline standard deviations

    @property
    def end_day(self) -> date:
        return date.fromordinal(self.start_day.toordinal() + self.duration - 1)


@dataclass(frozen=True)
class BiometricTrend:
    current: float
    baseline: float
    change: float
    trend: str          # increasing / decreasing / stable


@dataclass(frozen=True)
class RecoveryStatus:
    needs_rest: bool
    estimated_recovery_days: int
    recommendation: str


@dataclass(frozen=True)
class EarlyWarning:
    indicator: str
    days_ago: int
    description: str


@dataclass(frozen=True)
class HistoricalPatterns:
    likely_illnesses: int
    average_warning_window: int
    common_precursors: List[str]


@dataclass
class IllnessRecommendations:
    immediate: List[str] = field(default_factory=list)
    preventive: List[str] = field(default_factory=list)
    monitoring: List[str] = field(default_factory=list)


@dataclass
class IllnessAnalysis:
    risk_level: str
    risk_score: float
    confidence: float
    anomalies: List[IllnessAnomaly]
    biometric_trends: Dict[str, BiometricTrend]
    recovery_status: RecoveryStatus
    early_warnings: List[EarlyWarning]
    historical_patterns: HistoricalPatterns
    recommendations: IllnessRecommendations
    insights: List[Insight]


def _values(series: pd.Series, metric: str) -> np.ndarray:
    values = series.dropna().to_numpy(dtype=np.float64)
    if metric in POSITIVE_ONLY:
        values = values[values > 0]
    return values


# ─── Detector ──────────────────────────────────────────────

class IllnessDetector:
    """Stateless; ``analyze`` takes a daily frame or a list of day mappings."""

    def __init__(self, min_days: int = C.MIN_ILLNESS_DAYS,
                 recent_days: int = C.ILLNESS_RECENT_DAYS,
                 baseline_days: int = C.ILLNESS_BASELINE_DAYS):
        self.min_days = min_days
        self.recent_days = recent_days
        self.baseline_days = baseline_days

    def calculate_baselines(self, df: pd.DataFrame) -> Dict[str, Baseline]:
        """Per-metric baseline; metrics with no usable values are left out."""
        window = df.iloc[:-self.recent_days].tail(self.baseline_days)
        baselines = {}
        for metric, column in BIOMETRIC_COLUMNS.items():
            values = _values(window[column], metric)
            if values.size:
                baselines[metric] = Baseline(float(values.mean()), float(values.std()), int(values.size))
        return baselines

    def detect_anomalies(self, df: pd.DataFrame, baselines: Dict[str, Baseline]) -> List[IllnessAnomaly]:
        found: List[IllnessAnomaly] = []
        for row in df.tail(self.recent_days).to_dict("records"):
            day = row["day"].date()
            hrv, temp = row.get("hrv"), row.get("temperature_delta")
            rhr, score = row.get("resting_hr"), row.get("readiness_score")

            base = baselines.get("hrv")
            if base and pd.notna(hrv) and hrv > 0:
                deviation = (base.mean - hrv) / (base.std or 1.0)
                if deviation > 1.5:
                    found.append(IllnessAnomaly(
                        "hrv_drop", min(100.0, deviation * 30), (
                            f"HRV {deviation:.1f} SD below baseline "
                            f"({hrv:.0f} vs {base.mean:.0f} ms)"),
                        day, 1, deviation))

            base = baselines.get("temperature")
            if base and pd.notna(temp):
                deviation = (temp - base.mean) / (base.std or 0.1)
                if abs(deviation) > 1.5 and temp > base.mean + 0.4:
                    found.append(IllnessAnomaly(
                        "temp_spike", min(100.0, abs(deviation) * 35), (
                            f"Temperature {abs(deviation):.1f} SD above baseline "
                            f"({temp:+.2f} vs {base.mean:+.2f} C)"),
                        day, 1, abs(deviation)))

            base = baselines.get("resting_hr")
            if base and pd.notna(rhr) and rhr > 0:
                change = rhr - base.mean
                deviation = change / (base.std or 1.0)
                if deviation > 1.5 and change > 5:
                    found.append(IllnessAnomaly(
                        "rhr_elevation", min(100.0, deviation * 30), (
                            f"Resting HR {deviation:.1f} SD above baseline "
                            f"(+{change:.0f} bpm, {rhr:.0f} vs {base.mean:.0f})"),
                        day, 1, deviation))

            base = baselines.get("readiness")
            if base and pd.notna(score):
                deviation = (base.mean - score) / (base.std or 1.0)
                if deviation > 2.0:
                    found.append(IllnessAnomaly(
                        "readiness_crash", min(100.0, deviation * 25), (
                            f"Readiness {deviation:.1f} SD below baseline "
                            f"({score:.0f} vs {base.mean:.0f})"),
                        day, 1, deviation))
        return self.consolidate_anomalies(found)

    @staticmethod
    def consolidate_anomalies(anomalies: Sequence[IllnessAnomaly]) -> List[IllnessAnomaly]:
        """Merge runs of consecutive days per type; most severe first."""
        by_type: Dict[str, List[IllnessAnomaly]] = {}
        for item in anomalies:
            by_type.setdefault(item.type, []).append(item)

        merged: List[IllnessAnomaly] = []
        for items in by_type.values():
            items = sorted(items, key=lambda a: a.start_day)
            current = items[0]
            for item in items[1:]:
                if (item.start_day - current.end_day).days <= 1:
                    current = replace(
                        current,
                        duration=(item.end_day - current.start_day).days + 1,
                        severity=max(current.severity, item.severity),
                        deviation=max(current.deviation, item.deviation),
                    )
                else:
                    merged.append(current)
                    current = item
            merged.append(current)
        return sorted(merged, key=lambda a: -a.severity)

    @staticmethod
    def assess_risk(anomalies: Sequence[IllnessAnomaly], n_days: int) -> Tuple[str, float, float]:
        """Return (level, score 0-100, confidence 0-100)."""
        score = 0.0
        for item in anomalies:
            duration_factor = min(2.0, 1.0 + (item.duration - 1) * 0.3)
            score += item.severity * C.ILLNESS_WEIGHTS[item.type] * duration_factor
        kinds = len({a.type for a in anomalies})
        if kinds >= 3:
            score *= 1.5
        elif kinds == 2:
            score *= 1.2
        score = min(100.0, score / 10.0)

        level = C.ILLNESS_RISK_CEILING
        for upper, label in C.ILLNESS_RISK_THRESHOLDS:
            if score < upper:
                level = label
                break

        data_quality = min(100.0, n_days / C.ILLNESS_BASELINE_DAYS * 100.0)
        consistency = min(100.0, len(anomalies) * 25.0) if anomalies else 50.0
        return level, round(score, 1), round((data_quality + consistency) / 2.0, 1)

    @staticmethod
    def determine_trend(values: Sequence[float]) -> str:
        """Second half vs first half of ``values``; within 5% is stable."""
        values = [float(v) for v in values]
        if len(values) < 2:
            return "stable"
        first = values[:math.ceil(len(values) / 2)]
        second = values[len(values) // 2:]
        first_avg = float(np.mean(first))
        if first_avg == 0:
            return "stable"
        change = (float(np.mean(second)) - first_avg) / abs(first_avg) * 100.0
        if abs(change) < 5:
            return "stable"
        return "increasing" if change > 0 else "decreasing"

    def analyze_biometric_trends(self, df: pd.DataFrame,
                                 baselines: Dict[str, Baseline]) -> Dict[str, BiometricTrend]:
        recent = df.tail(C.ILLNESS_TREND_DAYS)
        digits = {"hrv": 0, "temperature": 2, "resting_hr": 0}
        trends = {}
        for metric, places in digits.items():
            values = _values(recent[BIOMETRIC_COLUMNS[metric]], metric)
            base = baselines.get(metric)
            current = float(values.mean()) if values.size else float("nan")
            baseline = base.mean if base else float("nan")
            if not values.size or base is None:
                change = 0.0
            elif metric == "hrv":
                change = round((current - baseline) / baseline * 100.0, 1) if baseline > 0 else 0.0
            else:
                change = round(current - baseline, places)
            trends[metric] = BiometricTrend(
                current=round(current, places),
                baseline=round(baseline, places),
                change=change,
                trend=self.determine_trend(values),
            )
        return trends

    @staticmethod
    def _improving(trends: Dict[str, BiometricTrend]) -> int:
        return sum([
            trends["hrv"].trend == "increasing",
            trends["temperature"].trend == "decreasing",
            trends["resting_hr"].trend == "decreasing",
        ])

    def assess_recovery_status(self, score: float, trends: Dict[str, BiometricTrend]) -> RecoveryStatus:
        if score > 60:
            days = 5
        elif score > 40:
            days = 3
        elif score > 20:
            days = 1
        else:
            days = 0
        if self._improving(trends) >= 2:
            days = max(0, days - 1)

        if score > 70:
            text = ("Significant illness indicators detected. Prioritise rest and consider "
                    "medical consultation if symptoms worsen.")
        elif score > 50:
            text = ("High illness risk. Take 2-3 rest days, avoid intense training and focus on "
                    "sleep quality.")
        elif score > 30:
            text = "Moderate risk. Halve training intensity, prioritise sleep and monitor symptoms."
        elif score > 15:
            text = ("Slight elevation in illness markers. Consider a light activity day and get "
                    "adequate sleep tonight.")
        else:
            text = "No rest needed. Biometric markers are within your normal range."
        return RecoveryStatus(score > 35, days, text)

    @staticmethod
    def detect_early_warnings(anomalies: Sequence[IllnessAnomaly], today: date) -> List[EarlyWarning]:
        """One warning per leading indicator, dated against the latest day of data."""
        texts = {
            "hrv_drop": ("HRV Decline",
                         "HRV dropped {dev:.1f} SD below your baseline {ago} days ago, a sign of "
                         "possible immune activation."),
            "temp_spike": ("Temperature Elevation",
                           "Body temperature rose above baseline {ago} days ago, a common early "
                           "sign of infection or inflammation."),
            "rhr_elevation": ("Elevated Resting Heart Rate",
                              "Resting heart rate increased {ago} days ago, indicating "
                              "cardiovascular stress or an immune response."),
        }
        warnings = []
        for kind, (indicator, template) in texts.items():
            match = next((a for a in anomalies if a.type == kind), None)
            if match is None:
                continue
            ago = (today - match.start_day).days
            warnings.append(EarlyWarning(indicator, ago, template.format(dev=match.deviation, ago=ago)))
        return warnings

    def analyze_historical_patterns(self, df: pd.DataFrame,
                                    baselines: Dict[str, Baseline]) -> HistoricalPatterns:
        """Count past episodes: 14-day windows with >= 2 nights of HRV 1.5 SD low.

        A window that qualifies is counted once and the scan resumes after it.
        """
        base = baselines.get("hrv")
        episodes = 0
        if base is not None:
            hrv = df["hrv"].to_numpy(dtype=np.float64)
            low = (hrv > 0) & (hrv < base.mean - 1.5 * base.std)
            i = 7
            while i < len(df) - 7:
                if int(low[i - 7:i + 7].sum()) >= 2:
                    episodes += 1
                    i += 14
                else:
                    i += 1
        precursors = []
        if episodes:
            precursors = ["HRV decline 2-4 days before symptoms", "Elevated resting heart rate",
                          "Reduced sleep quality"]
        return HistoricalPatterns(episodes, 3 if episodes else 2, precursors)

    @staticmethod
    def generate_recommendations(level: str) -> IllnessRecommendations:
        recs = IllnessRecommendations()
        if level in ("critical", "high"):
            recs.immediate += [
                "Complete rest: avoid all intense physical activity",
                "Sleep 9+ hours tonight with an early bedtime",
                "Increase fluid intake and favour anti-inflammatory nutrition",
                "Consult a healthcare provider if symptoms worsen",
                "Cancel non-essential commitments for the next 2-3 days",
            ]
            recs.monitoring += [
                "Track body temperature twice daily",
                "Watch for flu-like symptoms",
                "Check HRV and resting HR daily for recovery trends",
            ]
        elif level == "moderate":
            recs.immediate += [
                "Reduce training intensity by 70% for the next 2 days",
                "Target 8+ hours of sleep tonight",
                "Limit social gatherings to avoid spreading infection",
            ]
            recs.monitoring += [
                "Monitor readiness over the next 3 days",
                "Track sleep quality and HRV trends",
            ]
        elif level == "low":
            recs.immediate += [
                "Reduce workout intensity by 30-50% today",
                "Get 8+ hours of sleep",
                "Stay hydrated throughout the day",
            ]
            recs.monitoring += [
                "Check readiness tomorrow morning",
                "Note any emerging symptoms",
            ]
        recs.preventive += [
            "Keep a consistent sleep schedule (within 30 minutes)",
            "Practise stress management",
            "Respect rest days to avoid overtraining",
            "Wash hands frequently",
        ]
        return recs

    def generate_insights(self, level: str, anomalies: Sequence[IllnessAnomaly],
                          trends: Dict[str, BiometricTrend], history: HistoricalPatterns,
                          confidence: float) -> List[Insight]:
        conf = clip_confidence(confidence / 100.0)
        severity = {"critical": "high", "high": "high", "moderate": "medium"}.get(level, "low")
        plural = "anomaly" if len(anomalies) == 1 else "anomalies"
        if level == "none":
            action = "No action needed. Keep monitoring daily biometrics."
        elif level == "critical":
            action = "Priority: complete rest and medical consultation."
        elif level == "high":
            action = "Priority: take 2-3 rest days."
        else:
            action = "Priority: reduce activity intensity."

        insights = [Insight(
            type="anomaly",
            severity=severity,
            title=f"{level.upper()} illness risk ({len(anomalies)} {plural})",
            narrative=action,
            confidence=conf,
            evidence={"anomalies": [a.type for a in anomalies]},
        )]
        hrv = trends["hrv"]
        if hrv.change < -15:
            insights.append(Insight(
                type="anomaly",
                severity="medium",
                title=f"Significant HRV suppression ({hrv.change:.0f}% below baseline)",
                narrative=("HRV suppression indicates autonomic stress, often from immune "
                           "activation. Prioritise sleep and stress reduction."),
                confidence=conf,
                evidence={"current": hrv.current, "baseline": hrv.baseline},
            ))
        temp = trends["temperature"]
        if temp.change > 0.3:
            insights.append(Insight(
                type="anomaly",
                severity="medium",
                title=f"Elevated body temperature ({temp.change:+.2f} C)",
                narrative=("Temperature elevation often precedes symptoms by 1-3 days. Resting "
                           "early can reduce illness severity."),
                confidence=conf,
                evidence={"current": temp.current, "baseline": temp.baseline},
            ))
        if history.likely_illnesses:
            insights.append(Insight(
                type="pattern",
                severity="low",
                title=f"{history.likely_illnesses} likely illness episode(s) in your history",
                narrative=(f"Past episodes showed a ~{history.average_warning_window}-day warning "
                           "window. Act on early warnings to limit their impact."),
                confidence=conf,
                evidence={"episodes": history.likely_illnesses},
            ))
        improving = self._improving(trends)
        if improving >= 2 and anomalies:
            insights.append(Insight(
                type="trend",
                severity="low",
                title="Recovery trend despite anomalies",
                narrative=("Key markers are improving. Return to light activity only once all "
                           "metrics normalise."),
                confidence=conf,
                evidence={"improving_metrics": improving},
            ))
        return insights

    def analyze(self, frame) -> IllnessAnalysis:
        df = clean_daily_frame(frame)
        require_samples(len(df), self.min_days, "days of biometric data")

        baselines = self.calculate_baselines(df)
        anomalies = self.detect_anomalies(df, baselines)
        level, score, confidence = self.assess_risk(anomalies, len(df))
        trends = self.analyze_biometric_trends(df, baselines)
        history = self.analyze_historical_patterns(df, baselines)
        today = df["day"].iloc[-1].date()
        log.info("Illness risk %s (score %.1f, %d anomalies, confidence %.0f)",
                 level, score, len(anomalies), confidence)

        return IllnessAnalysis(
            risk_level=level,
            risk_score=score,
            confidence=confidence,
            anomalies=anomalies,
            biometric_trends=trends,
            recovery_status=self.assess_recovery_status(score, trends),
            early_warnings=self.detect_early_warnings(anomalies, today),
            historical_patterns=history,
            recommendations=self.generate_recommendations(level),
            insights=self.generate_insights(level, anomalies, trends, history, confidence),
        )
