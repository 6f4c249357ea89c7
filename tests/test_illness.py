"""
Tests for the illness early-warning detector.

Covers: personal baselines that exclude the recent week, anomaly
thresholds and run consolidation, the weighted risk score, biometric
trends, early warnings, historical episodes, insights and the
minimum-history guard.
"""
from datetime import date, timedelta

import pandas as pd
import pytest

from conftest import START
from ring_insights.errors import InsufficientDataError
from ring_insights.illness import IllnessAnomaly, IllnessDetector


@pytest.fixture
def detector():
    return IllnessDetector()


def biometrics(n_days=31, sick_from=None):
    """Alternating healthy days; from ``sick_from`` on, every metric turns."""
    rows = []
    for i in range(n_days):
        even = i % 2 == 0
        row = {
            "day": START + timedelta(days=i),
            "hrv": 50.0 if even else 60.0,
            "resting_hr": 50.0 if even else 52.0,
            "temperature_delta": -0.1 if even else 0.1,
            "readiness_score": 78.0 if even else 82.0,
        }
        if sick_from is not None and i >= sick_from:
            row.update(hrv=35.0, resting_hr=60.0, temperature_delta=0.8, readiness_score=60.0)
        rows.append(row)
    return pd.DataFrame(rows)


def anomaly(kind, day, severity=50.0):
    return IllnessAnomaly(kind, severity, "", day, 1, 2.0)


# ─── Healthy history ──────────────────────────────────────────


class TestHealthy:

    def test_baselines_skip_recent_week(self, detector):
        frame = biometrics(sick_from=24)
        baselines = detector.calculate_baselines(frame)
        assert baselines["hrv"].mean == pytest.approx(55.0)
        assert baselines["hrv"].std == pytest.approx(5.0)
        assert baselines["hrv"].n == 24
        assert baselines["temperature"].mean == pytest.approx(0.0)

    def test_no_anomalies(self, detector):
        result = detector.analyze(biometrics())
        assert result.anomalies == []
        assert result.risk_level == "none"
        assert result.risk_score == 0
        assert result.confidence == pytest.approx(42.2)
        assert result.early_warnings == []
        assert result.historical_patterns.likely_illnesses == 0
        assert result.recovery_status.needs_rest is False
        assert result.recovery_status.estimated_recovery_days == 0

    def test_single_low_insight(self, detector):
        result = detector.analyze(biometrics())
        assert len(result.insights) == 1
        assert result.insights[0].severity == "low"
        assert result.recommendations.immediate == []
        assert result.recommendations.preventive

    def test_accepts_day_mappings(self, detector):
        records = biometrics().to_dict("records")
        assert detector.analyze(records).risk_level == "none"

    def test_short_history_rejected(self, detector):
        with pytest.raises(InsufficientDataError) as exc:
            detector.analyze(biometrics(13))
        assert (exc.value.required, exc.value.available) == (14, 13)


# ─── Illness onset ────────────────────────────────────────────


class TestOnset:

    @pytest.fixture
    def result(self, detector):
        return detector.analyze(biometrics(sick_from=28))

    def test_every_metric_flags_a_three_day_run(self, result):
        assert {a.type for a in result.anomalies} == {
            "hrv_drop", "temp_spike", "rhr_elevation", "readiness_crash"}
        assert all(a.duration == 3 for a in result.anomalies)
        assert all(a.start_day == START + timedelta(days=28) for a in result.anomalies)
        assert all(a.severity == 100 for a in result.anomalies)

    def test_risk_is_critical(self, result):
        assert result.risk_score == 100
        assert result.risk_level == "critical"
        assert result.confidence == pytest.approx(67.2)

    def test_trends(self, result):
        trends = result.biometric_trends
        assert trends["hrv"].change == pytest.approx(-36.4)
        assert trends["hrv"].trend == "stable"
        assert trends["temperature"].change == pytest.approx(0.8)
        assert trends["resting_hr"].change == pytest.approx(9.0)

    def test_early_warnings_count_from_latest_day(self, result):
        assert [w.indicator for w in result.early_warnings] == [
            "HRV Decline", "Temperature Elevation", "Elevated Resting Heart Rate"]
        assert all(w.days_ago == 2 for w in result.early_warnings)

    def test_recovery(self, result):
        assert result.recovery_status.needs_rest is True
        assert result.recovery_status.estimated_recovery_days == 5
        assert "medical consultation" in result.recovery_status.recommendation
        assert result.recommendations.immediate
        assert result.recommendations.monitoring

    def test_history_finds_the_episode(self, result):
        assert result.historical_patterns.likely_illnesses == 1
        assert result.historical_patterns.average_warning_window == 3

    def test_insights(self, result):
        assert [i.type for i in result.insights] == ["anomaly", "anomaly", "anomaly", "pattern"]
        assert result.insights[0].severity == "high"
        assert result.insights[0].title.startswith("CRITICAL")
        assert all(0 <= i.confidence <= 1 for i in result.insights)

    def test_small_temperature_rise_ignored(self, detector):
        # 2.5 SD above a tight baseline but under the 0.4 C floor
        frame = biometrics()
        frame.loc[30, "temperature_delta"] = 0.25
        result = detector.analyze(frame)
        assert "temp_spike" not in {a.type for a in result.anomalies}


# ─── Building blocks ──────────────────────────────────────────


class TestConsolidate:

    def test_gap_splits_runs(self):
        day = date(2024, 3, 1)
        merged = IllnessDetector.consolidate_anomalies([
            anomaly("hrv_drop", day, 40.0),
            anomaly("hrv_drop", day + timedelta(days=1), 70.0),
            anomaly("hrv_drop", day + timedelta(days=3), 30.0),
        ])
        assert [(a.duration, a.severity) for a in merged] == [(2, 70.0), (1, 30.0)]
        assert merged[0].end_day == day + timedelta(days=1)

    def test_types_kept_apart(self):
        day = date(2024, 3, 1)
        merged = IllnessDetector.consolidate_anomalies([
            anomaly("hrv_drop", day), anomaly("temp_spike", day)])
        assert len(merged) == 2


class TestRisk:

    def test_single_mild_anomaly_is_none(self):
        level, score, _ = IllnessDetector.assess_risk([anomaly("hrv_drop", START)], 30)
        assert score == pytest.approx(10.0)
        assert level == "none"

    def test_two_types_boosted(self):
        found = [anomaly("hrv_drop", START, 100.0), anomaly("temp_spike", START, 100.0)]
        level, score, confidence = IllnessDetector.assess_risk(found, 90)
        assert score == pytest.approx(54.0)
        assert level == "moderate"
        assert confidence == pytest.approx(75.0)

    @pytest.mark.parametrize("values,expected", [
        ([50, 50, 60], "increasing"),
        ([60, 50], "decreasing"),
        ([50, 51], "stable"),
        ([50], "stable"),
        ([0, 10], "stable"),
    ])
    def test_determine_trend(self, values, expected):
        assert IllnessDetector.determine_trend(values) == expected
