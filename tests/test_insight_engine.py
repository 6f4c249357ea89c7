"""
Tests for the layered insight engine.

Covers: the full run over a synthetic 45-day history, degraded mode when
a layer raises an engine error, propagation of anything else, the empty
history path, ranking, and the health-score composite.
"""
import numpy as np
import pandas as pd
import pytest

from ring_insights.analytics.patterns import Pattern
from ring_insights.constants import SEVERITY_ORDER, SLEEP_FEATURES
from ring_insights.errors import ConfigurationError, InsufficientDataError
from ring_insights.insight_engine import DEFAULT_PATTERNS, InsightEngine, efficiency_fraction, health_score
from ring_insights.settings import EngineSettings


@pytest.fixture
def engine():
    return InsightEngine(EngineSettings(seed=5))


# ─── Full run ─────────────────────────────────────────────────


class TestAnalyze:

    def test_full_history(self, engine, daily_frame):
        report = engine.analyze(daily_frame)
        assert report.analysis_status == "success"
        assert report.degraded_reasons == []
        assert report.n_days == 45
        assert 0 <= report.health_score <= 100
        types = {i.type for i in report.insights}
        assert {"cluster", "dimension", "sleep_debt"} <= types
        assert report.sleep_debt is not None
        assert len(report.sleep_debt.debt_history) == 30

    def test_forecast_predictions(self, engine, daily_frame):
        report = engine.analyze(daily_frame)
        assert [p.metric for p in report.predictions] == [f"readiness_day_{i}" for i in range(1, 8)]
        assert report.predictions[0].confidence == 1.0
        assert report.predictions[-1].confidence == pytest.approx(0.7)
        assert all(np.isfinite(p.predicted) for p in report.predictions)

    def test_insights_ranked_by_severity(self, engine, daily_frame):
        report = engine.analyze(daily_frame)
        order = [SEVERITY_ORDER[i.severity] for i in report.insights]
        assert order == sorted(order)

    def test_input_frame_untouched(self, engine, daily_frame):
        before = daily_frame.copy()
        engine.analyze(daily_frame)
        pd.testing.assert_frame_equal(daily_frame, before)

    def test_anomalous_last_day(self, engine, daily_frame):
        frame = daily_frame.copy()
        frame.loc[44, "sleep_hours"] = 3.0
        report = engine.analyze(frame)
        anomalies = [i for i in report.insights if i.type == "anomaly"]
        assert len(anomalies) == 1
        assert "Sleep Duration" in anomalies[0].narrative
        assert anomalies[0].severity == "high"

    def test_short_history_skips_heavy_layers(self, engine, daily_frame):
        report = engine.analyze(daily_frame.iloc[:8])
        types = {i.type for i in report.insights}
        assert report.analysis_status == "success"
        assert "anomaly" not in types
        assert "cluster" not in types
        assert report.predictions == []
        assert report.sleep_debt is not None

    def test_sleep_only_history(self, engine):
        frame = pd.DataFrame({
            "day": pd.date_range("2024-01-01", periods=10, freq="D"),
            "sleep_hours": [6.0] * 10,
        })
        report = engine.analyze(frame)
        assert report.analysis_status == "success"
        titles = [i.title for i in report.insights]
        assert "Increase Sleep Duration" in titles
        assert report.sleep_debt.current_debt > 0


# ─── Failure handling ─────────────────────────────────────────


class TestDegradedMode:

    def test_empty_frame_fails(self, engine):
        report = engine.analyze(pd.DataFrame(columns=["day", "sleep_hours"]))
        assert report.analysis_status == "failed"
        assert report.degraded_reasons == ["no_daily_rows"]
        assert report.insights == []

    def test_layer_error_degrades(self, engine, daily_frame, monkeypatch):
        def boom(df):
            raise InsufficientDataError("not enough", required=9, available=0)

        monkeypatch.setattr(engine, "_layer5_archetypes", boom)
        report = engine.analyze(daily_frame)
        assert report.analysis_status == "degraded"
        assert report.degraded_reasons == ["archetype_layer_failed"]
        # later layers still ran
        assert report.sleep_debt is not None

    def test_unexpected_error_propagates(self, engine, daily_frame, monkeypatch):
        def boom(df):
            raise RuntimeError("bug")

        monkeypatch.setattr(engine, "_layer6_dimensions", boom)
        with pytest.raises(RuntimeError):
            engine.analyze(daily_frame)

    def test_pattern_of_wrong_length_rejected(self):
        with pytest.raises(ConfigurationError):
            InsightEngine(patterns=[Pattern("overtraining", (12000.0, 800.0, 4.5, 8.0), "Overtraining")])

    def test_every_default_pattern_is_reachable(self, engine):
        ids = {p.id for p in engine.recognizer.get_patterns()}
        assert ids == {p.id for p in DEFAULT_PATTERNS}
        assert all(len(p.features) == len(SLEEP_FEATURES) for p in DEFAULT_PATTERNS)

    def test_report_to_dict(self, engine, daily_frame):
        payload = engine.analyze(daily_frame).to_dict()
        assert set(payload) == {"insights", "analysis_status", "degraded_reasons",
                                "n_days", "predictions", "health_score"}
        assert payload["insights"][0]["type"]


# ─── Health score ─────────────────────────────────────────────


class TestHealthScore:

    def test_perfect_day(self):
        day = {
            "sleep_hours": 8.0, "deep_hours": 1.5, "rem_hours": 2.0, "efficiency": 100,
            "steps": 10000, "active_calories": 2500, "activity_score": 100, "readiness_score": 100,
        }
        assert health_score(day) == 100

    def test_missing_metrics_count_as_zero(self):
        assert health_score({}) == 0
        assert health_score({"readiness_score": 80, "hrv": np.nan}) == 24

    def test_efficiency_fraction(self):
        assert efficiency_fraction(88) == pytest.approx(0.88)
        assert efficiency_fraction(0.88) == 0.88
