"""
Univariate outlier battery.

Every method returns an ``OutlierResult`` so callers can swap detectors
without touching the consuming code.  Zero spreads (std, MAD, IQR) are
replaced with 1 before dividing.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import List

import numpy as np

from ring_insights.analytics.clustering import DBSCAN
from ring_insights.analytics.linalg import SeedLike, as_vector, make_rng
from ring_insights.analytics.patterns import average_path_length
from ring_insights.constants import ISOLATION_MAX_DEPTH, ISOLATION_TREES, LOF_OUTLIER_THRESHOLD, MAD_SCALE, NOISE_LABEL
from ring_insights.errors import ConfigurationError, InsufficientDataError

log = logging.getLogger("outliers")


@dataclass
class OutlierResult:
    outliers: List[int]
    scores: np.ndarray
    threshold: float
    method: str
    extra: dict = field(default_factory=dict)

    @property
    def count(self) -> int:
        return len(self.outliers)


def _flag(scores: np.ndarray, threshold: float) -> List[int]:
    return [int(i) for i in np.flatnonzero(scores > threshold)]


def _nonzero(value: float) -> float:
    return value if value != 0 else 1.0


class OutlierDetector:

    def __init__(self, seed: SeedLike = None):
        self._rng = make_rng(seed)

    @staticmethod
    def _data(data, minimum: int = 1) -> np.ndarray:
        values = as_vector(data, "data")
        if values.size < minimum:
            raise InsufficientDataError(
                f"Need at least {minimum} observations, got {values.size}",
                required=minimum, available=values.size,
            )
        return values

    def z_score(self, data, threshold: float = 3.0) -> OutlierResult:
        """|x - mean| / std with the population std."""
        values = self._data(data)
        std = _nonzero(float(values.std()))
        scores = np.abs((values - values.mean()) / std)
        return OutlierResult(_flag(scores, threshold), scores, threshold, "Z-Score")

    def modified_z_score(self, data, threshold: float = 3.5) -> OutlierResult:
        """0.6745 * |x - median| / MAD (Iglewicz & Hoaglin)."""
        values = self._data(data)
        median = float(np.median(values))
        mad = _nonzero(float(np.median(np.abs(values - median))))
        scores = np.abs(MAD_SCALE * (values - median) / mad)
        return OutlierResult(_flag(scores, threshold), scores, threshold, "Modified Z-Score (MAD)")

    def iqr(self, data, multiplier: float = 1.5) -> OutlierResult:
        """Tukey fences; the score is the distance beyond the fence in IQRs."""
        values = self._data(data)
        q1, q3 = np.percentile(values, [25, 75])
        spread = q3 - q1
        lower, upper = q1 - multiplier * spread, q3 + multiplier * spread
        unit = _nonzero(float(spread))
        scores = np.where(values < lower, (lower - values) / unit,
                          np.where(values > upper, (values - upper) / unit, 0.0))
        outliers = [int(i) for i in np.flatnonzero((values < lower) | (values > upper))]
        return OutlierResult(outliers, scores, multiplier, "IQR",
                             extra={"lower": float(lower), "upper": float(upper)})

    def _path_length(self, value: float, sample: np.ndarray, max_depth: int) -> float:
        depth = 0
        while sample.size > 1 and depth < max_depth:
            lo, hi = sample.min(), sample.max()
            if lo == hi:
                break
            split = self._rng.uniform(lo, hi)
            sample = sample[sample < split] if value < split else sample[sample >= split]
            depth += 1
        return depth + average_path_length(sample.size)

    def isolation_forest(self, data, num_trees: int = ISOLATION_TREES,
                         sample_size: int = None, contamination: float = 0.1,
                         max_depth: int = ISOLATION_MAX_DEPTH) -> OutlierResult:
        """Simplified 1-D isolation forest.

        Each tree splits at a uniform value inside the current sample's
        range, so far-off values isolate in fewer steps.
        score = 2^(-E[h(x)] / c(sample_size)); the ``contamination`` share of
        highest scores (ties included) is flagged.
        """
        values = self._data(data, minimum=2)
        if not 0 <= contamination < 1:
            raise ConfigurationError("contamination must be in [0, 1)")
        n = values.size
        size = min(256, n) if sample_size is None else min(int(sample_size), n)

        scores = np.empty(n)
        for i, value in enumerate(values):
            total = 0.0
            for _ in range(num_trees):
                sample = self._rng.choice(values, size=size, replace=False)
                total += self._path_length(value, sample, max_depth)
            scores[i] = total / num_trees
        c = _nonzero(average_path_length(size))
        scores = 2.0 ** (-scores / c)

        threshold = float(np.sort(scores)[::-1][int(math.floor(n * contamination))])
        outliers = [int(i) for i in np.flatnonzero(scores >= threshold)]
        return OutlierResult(outliers, scores, threshold, "Isolation Forest")

    def lof(self, data, k: int = 5, threshold: float = LOF_OUTLIER_THRESHOLD) -> OutlierResult:
        """1-D Local Outlier Factor; > ``threshold`` means sparser than its neighbours."""
        values = self._data(data)
        n = values.size
        if not 1 <= k < n:
            raise InsufficientDataError(f"LOF needs 1 <= k < n ({n}), got k={k}",
                                        required=k + 1, available=n)
        dist = np.abs(values[:, None] - values[None, :])
        np.fill_diagonal(dist, np.inf)
        neighbors = np.argsort(dist, axis=1, kind="stable")[:, :k]
        k_dist = np.take_along_axis(dist, neighbors[:, -1:], axis=1).ravel()

        reach = np.maximum(np.take_along_axis(dist, neighbors, axis=1), k_dist[neighbors])
        lrd = k / np.maximum(reach.sum(axis=1), 1e-10)
        scores = lrd[neighbors].mean(axis=1) / lrd
        return OutlierResult(_flag(scores, threshold), scores, threshold, "Local Outlier Factor")

    def dbscan_outliers(self, data, epsilon: float, min_points: int = 3) -> OutlierResult:
        """Noise points of a 1-D DBSCAN; ``min_points`` counts other points only."""
        values = self._data(data)
        labels = DBSCAN(epsilon, min_points + 1).fit(values.reshape(-1, 1))
        scores = (labels == NOISE_LABEL).astype(np.float64)
        outliers = [int(i) for i in np.flatnonzero(labels == NOISE_LABEL)]
        return OutlierResult(outliers, scores, float(epsilon), "DBSCAN",
                             extra={"labels": labels.tolist()})

    def moving_average_anomaly(self, data, window: int = 10, threshold: float = 3.0) -> OutlierResult:
        """Z-score of each value against the preceding ``window`` values.

        The first ``window`` observations have no history and score 0.
        """
        values = self._data(data)
        if window < 1:
            raise ConfigurationError("window must be >= 1")
        scores = np.zeros(values.size)
        for i in range(window, values.size):
            history = values[i - window:i]
            scores[i] = abs(values[i] - history.mean()) / _nonzero(float(history.std()))
        result = OutlierResult(_flag(scores, threshold), scores, threshold, "Moving Average")
        log.debug("Moving-average scan flagged %d of %d points", result.count, values.size)
        return result
