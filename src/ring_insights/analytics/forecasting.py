"""
Short-horizon forecasting for daily metrics.

``TimeSeriesForecast`` holds one ordered series (a date-indexed
``pd.Series`` or plain values) and offers moving averages, an OLS trend
extrapolation, additive seasonal decomposition and a Holt-Winters
forecast seeded from that decomposition.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List

import numpy as np
import pandas as pd

from ring_insights.errors import ConfigurationError, InsufficientDataError

log = logging.getLogger("forecasting")


@dataclass
class Decomposition:
    trend: np.ndarray
    seasonal: np.ndarray
    residual: np.ndarray


class TimeSeriesForecast:

    def __init__(self, seasonality: int = 7):
        if seasonality < 1:
            raise ConfigurationError("seasonality must be >= 1")
        self.seasonality = int(seasonality)
        self._series = pd.Series(dtype=np.float64)

    def add_data(self, data) -> "TimeSeriesForecast":
        """Append observations; a Series keeps its index and is re-sorted by it."""
        if isinstance(data, pd.Series):
            incoming = data.astype(np.float64).dropna()
        else:
            values = np.array(data, dtype=np.float64)
            if values.ndim != 1:
                raise ConfigurationError("Series values must be one-dimensional")
            start = len(self._series)
            incoming = pd.Series(values, index=range(start, start + values.size))
        combined = pd.concat([self._series, incoming]) if len(self._series) else incoming
        self._series = combined.sort_index(kind="stable")
        return self

    @property
    def values(self) -> np.ndarray:
        return self._series.to_numpy(dtype=np.float64)

    def _require(self, minimum: int) -> np.ndarray:
        values = self.values
        if values.size < minimum:
            raise InsufficientDataError(
                f"Need at least {minimum} observations, got {values.size}",
                required=minimum, available=values.size,
            )
        return values

    def moving_average(self, window: int) -> np.ndarray:
        """Trailing mean; the result has ``len - window + 1`` entries."""
        if window < 1:
            raise ConfigurationError("window must be >= 1")
        self._require(window)
        return self._series.rolling(window).mean().dropna().to_numpy()

    def exponential_moving_average(self, alpha: float = 0.3) -> np.ndarray:
        if not 0 < alpha <= 1:
            raise ConfigurationError("alpha must be in (0, 1]")
        self._require(1)
        return self._series.ewm(alpha=alpha, adjust=False).mean().to_numpy()

    def linear_forecast(self, steps: int) -> np.ndarray:
        values = self._require(2)
        x = np.arange(values.size, dtype=np.float64)
        slope, intercept = np.polyfit(x, values, 1)
        future = np.arange(values.size, values.size + steps, dtype=np.float64)
        return slope * future + intercept

    def decompose_seasonality(self) -> Decomposition:
        """Additive decomposition: centred moving-average trend, per-phase
        mean of the detrended values, remainder as residual.  The edges
        where the centred window does not fit use the raw value as trend.
        """
        values = self._require(self.seasonality)
        n, s = values.size, self.seasonality
        ma = self.moving_average(s)
        offset = s // 2

        trend = values.copy()
        for i in range(offset, n - offset):
            if i - offset < ma.size:
                trend[i] = ma[i - offset]

        phase = np.arange(n) % s
        detrended = values - trend
        season_means = np.array([
            detrended[phase == k].mean() if np.any(phase == k) else 0.0 for k in range(s)
        ])
        seasonal = season_means[phase]
        return Decomposition(trend=trend, seasonal=seasonal, residual=values - trend - seasonal)

    def holt_winters_forecast(self, steps: int, alpha: float = 0.3, beta: float = 0.1,
                              gamma: float = 0.1) -> np.ndarray:
        """Additive Holt-Winters, seasonal indices seeded from the decomposition.

            level  = a (y - s) + (1 - a)(level + trend)
            trend  = b (level - prev) + (1 - b) trend
            s      = g (y - level) + (1 - g) s
        """
        for name, value in (("alpha", alpha), ("beta", beta), ("gamma", gamma)):
            if not 0 <= value <= 1:
                raise ConfigurationError(f"{name} must be in [0, 1]")
        values = self._require(self.seasonality)
        s = self.seasonality
        seasonal = self.decompose_seasonality().seasonal[:s].copy()

        level = values[0]
        trend = 0.0
        for i in range(1, values.size):
            prev = level
            k = i % s
            level = alpha * (values[i] - seasonal[k]) + (1 - alpha) * (prev + trend)
            trend = beta * (level - prev) + (1 - beta) * trend
            seasonal[k] = gamma * (values[i] - level) + (1 - gamma) * seasonal[k]

        forecast = np.array([
            level + (h + 1) * trend + seasonal[(values.size + h) % s] for h in range(steps)
        ])
        log.debug("Holt-Winters: level=%.3f trend=%.4f horizon=%d", level, trend, steps)
        return forecast

    def detect_anomalies(self, threshold: float = 2.0) -> List[Dict[str, float]]:
        """Points whose population z-score exceeds ``threshold``."""
        values = self._require(1)
        std = values.std()
        if std == 0:
            return []
        z = np.abs(values - values.mean()) / std
        return [
            {"index": int(i), "value": float(values[i]), "score": float(z[i])}
            for i in np.flatnonzero(z > threshold)
        ]
