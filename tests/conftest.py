"""
Shared test configuration.

Adds src/ to sys.path so the suite runs from a plain checkout without
``pip install -e .``, and provides the synthetic daily-history fixtures
used across modules.
"""

import os
import sys
from datetime import date, datetime, timedelta

import numpy as np
import pandas as pd
import pytest

_project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
_src_dir = os.path.join(_project_root, "src")

if _src_dir not in sys.path:
    sys.path.insert(0, _src_dir)

# 2024-01-01 is a Monday
START = date(2024, 1, 1)


def make_night(day: date, hours: float, bedtime_hour: float = 23.0):
    """Sleep payload in ring units (seconds), bedtime on the previous evening."""
    start = datetime.combine(day - timedelta(days=1), datetime.min.time()) + timedelta(hours=bedtime_hour)
    end = start + timedelta(hours=hours)
    return {
        "day": day.isoformat(),
        "bedtime_start": start.isoformat(),
        "bedtime_end": end.isoformat(),
        "total_sleep_duration": hours * 3600,
    }


def weekday_weekend_nights(n_days: int, weekday_hours: float, weekend_hours: float, start=START):
    nights = []
    for i in range(n_days):
        day = start + timedelta(days=i)
        nights.append(make_night(day, weekend_hours if day.weekday() >= 5 else weekday_hours))
    return nights


@pytest.fixture
def daily_frame():
    """45 days of plausible daily metrics with a gently rising readiness score."""
    rng = np.random.default_rng(7)
    n = 45
    days = pd.date_range("2024-01-01", periods=n, freq="D")
    sleep = rng.normal(7.3, 0.5, n)
    return pd.DataFrame({
        "day": days,
        "sleep_hours": sleep,
        "deep_hours": rng.normal(1.3, 0.2, n),
        "rem_hours": rng.normal(1.8, 0.2, n),
        "efficiency": rng.normal(88, 3, n),
        "hrv": rng.normal(55, 6, n),
        "resting_hr": rng.normal(54, 2, n),
        "steps": rng.normal(8500, 1500, n),
        "active_calories": rng.normal(450, 80, n),
        "activity_score": rng.normal(80, 5, n),
        "readiness_score": 70 + 0.3 * np.arange(n) + rng.normal(0, 1.5, n),
    })


@pytest.fixture
def nights():
    """Factory: ``nights(n_days, weekday_hours, weekend_hours)`` -> payload list."""
    return weekday_weekend_nights
