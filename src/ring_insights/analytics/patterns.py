"""
Pattern recognition, anomaly detection and trend analysis.

  PatternRecognizer - session-scoped library of named reference vectors,
                      matched by cosine similarity or DTW distance.
  AnomalyDetector   - baseline mean/std with z-score detection, an
                      isolation-forest style score and a kNN LOF score.
  TrendAnalyzer     - OLS slope over the time index, R^2, change points,
                      slope significance and ADF stationarity.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from typing import List, Optional, Sequence, Tuple

import numpy as np
from scipy import stats as sp_stats
from statsmodels.tsa.stattools import adfuller

from ring_insights.analytics.linalg import (
    SeedLike,
    as_matrix,
    as_vector,
    cosine_similarity,
    make_rng,
    pairwise_distances,
)
from ring_insights.constants import (
    ANOMALY_Z_THRESHOLD,
    CHANGE_POINT_SHIFT,
    CHANGE_POINT_WINDOW,
    EULER_MASCHERONI,
    ISOLATION_MAX_DEPTH,
    ISOLATION_TREES,
    PATTERN_SIMILARITY_THRESHOLD,
    TREND_STABLE_SLOPE,
)
from ring_insights.errors import ConfigurationError, InsufficientDataError

log = logging.getLogger("patterns")


# ─── Pattern library ───────────────────────────────────────

@dataclass(frozen=True)
class Pattern:
    id: str
    features: Tuple[float, ...]
    label: str
    confidence: float = 1.0

    def __post_init__(self):
        object.__setattr__(self, "features", tuple(float(v) for v in self.features))


def dtw_distance(seq1: Sequence[float], seq2: Sequence[float]) -> float:
    """Dynamic Time Warping distance with absolute-difference cost.

        D[i][j] = |a_i - b_j| + min(D[i-1][j], D[i][j-1], D[i-1][j-1])

    O(n*m) time, one row of the table kept at a time.
    """
    a, b = as_vector(seq1, "seq1"), as_vector(seq2, "seq2")
    if a.size == 0 or b.size == 0:
        raise ConfigurationError("DTW needs two non-empty sequences")
    prev = np.full(b.size + 1, np.inf)
    prev[0] = 0.0
    for i in range(1, a.size + 1):
        cur = np.full(b.size + 1, np.inf)
        cost = np.abs(a[i - 1] - b)
        for j in range(1, b.size + 1):
            cur[j] = cost[j - 1] + min(prev[j], cur[j - 1], prev[j - 1])
        prev = cur
    return float(prev[b.size])


class PatternRecognizer:
    """Owned, in-memory catalogue of reference patterns."""

    def __init__(self, threshold: float = PATTERN_SIMILARITY_THRESHOLD):
        self.threshold = float(threshold)
        self._patterns: List[Pattern] = []

    def add_pattern(self, pattern: Pattern) -> None:
        if any(p.id == pattern.id for p in self._patterns):
            raise ConfigurationError(f"Pattern id {pattern.id!r} already registered")
        self._patterns.append(pattern)

    def remove_pattern(self, pattern_id: str) -> bool:
        before = len(self._patterns)
        self._patterns = [p for p in self._patterns if p.id != pattern_id]
        return len(self._patterns) < before

    def get_patterns(self) -> List[Pattern]:
        return list(self._patterns)

    def recognize(self, features) -> Optional[Pattern]:
        """Best cosine match among patterns of the same dimensionality.

        Returns a copy of the pattern whose ``confidence`` is the similarity,
        or None when nothing reaches the threshold.
        """
        query = as_vector(features, "features")
        best: Optional[Pattern] = None
        best_score = -math.inf
        for pattern in self._patterns:
            if len(pattern.features) != query.size:
                continue
            similarity = cosine_similarity(query, pattern.features)
            if similarity > best_score and similarity >= self.threshold:
                best_score = similarity
                best = replace(pattern, confidence=similarity)
        return best

    def recognize_sequence(self, sequence) -> Optional[Pattern]:
        """Closest pattern by DTW distance; confidence = 1 / (1 + distance)."""
        best: Optional[Pattern] = None
        best_distance = math.inf
        for pattern in self._patterns:
            distance = dtw_distance(sequence, pattern.features)
            if distance < best_distance:
                best_distance = distance
                best = pattern
        if best is None:
            return None
        confidence = 1.0 / (1.0 + best_distance)
        if confidence < self.threshold:
            return None
        return replace(best, confidence=confidence)


# ─── Anomaly detection ─────────────────────────────────────

@dataclass
class AnomalyResult:
    is_anomaly: bool
    score: float
    z_scores: List[float] = field(default_factory=list)
    dimensions: List[int] = field(default_factory=list)


def average_path_length(n: int) -> float:
    """Expected unsuccessful-search path length of a BST with n nodes.

        c(n) = 2 H(n-1) - 2(n-1)/n,   H(i) ~ ln(i) + 0.5772
    """
    if n <= 1:
        return 0.0
    if n == 2:
        return 1.0
    return 2.0 * (math.log(n - 1) + EULER_MASCHERONI) - 2.0 * (n - 1) / n


class AnomalyDetector:
    """Baseline-trained multivariate anomaly scorer."""

    def __init__(self, threshold: float = ANOMALY_Z_THRESHOLD, seed: SeedLike = None,
                 num_trees: int = ISOLATION_TREES, max_depth: int = ISOLATION_MAX_DEPTH):
        self.threshold = float(threshold)
        self.num_trees = int(num_trees)
        self.max_depth = int(max_depth)
        self._rng = make_rng(seed)
        self._data: Optional[np.ndarray] = None
        self.mean_: Optional[np.ndarray] = None
        self.std_: Optional[np.ndarray] = None
        self._k_distance_cache = {}

    def train(self, data) -> "AnomalyDetector":
        baseline = as_matrix(data, "data")
        if baseline.shape[0] == 0:
            raise InsufficientDataError("Anomaly baseline is empty", required=1, available=0)
        self._data = baseline
        self.mean_ = baseline.mean(axis=0)
        self.std_ = baseline.std(axis=0)
        self._k_distance_cache = {}
        log.info("Anomaly baseline trained on %d observations x %d dimensions", *baseline.shape)
        return self

    def _baseline(self, point) -> Tuple[np.ndarray, np.ndarray]:
        if self._data is None:
            raise ConfigurationError("AnomalyDetector is not trained yet")
        p = as_vector(point, "point")
        if p.size != self._data.shape[1]:
            raise ConfigurationError(
                f"Point has {p.size} dimensions, baseline has {self._data.shape[1]}"
            )
        return self._data, p

    def detect(self, point) -> AnomalyResult:
        """Per-dimension |z| against the baseline; zero std is treated as 1."""
        _, p = self._baseline(point)
        std = np.where(self.std_ == 0, 1.0, self.std_)
        z = np.abs((p - self.mean_) / std)
        score = float(z.max())
        return AnomalyResult(
            is_anomaly=score > self.threshold,
            score=score,
            z_scores=z.tolist(),
            dimensions=[int(i) for i in np.flatnonzero(z > self.threshold)],
        )

    def isolation_score(self, point, num_trees: Optional[int] = None,
                        max_depth: Optional[int] = None) -> float:
        """Isolation-forest style score in (0, 1]; values near 1 are anomalous.

        For each tree the baseline is split repeatedly on a random dimension
        at a uniform value inside the current range, following the side the
        point falls on, until one sample remains or ``max_depth`` is hit.
        Unresolved leaves add c(size).  score = 2^(-E[h] / c(n)).
        """
        data, p = self._baseline(point)
        trees = self.num_trees if num_trees is None else int(num_trees)
        depth_cap = self.max_depth if max_depth is None else int(max_depth)
        n, dims = data.shape

        total = 0.0
        for _ in range(trees):
            current = data
            depth = 0
            while current.shape[0] > 1 and depth < depth_cap:
                dim = int(self._rng.integers(dims))
                lo, hi = current[:, dim].min(), current[:, dim].max()
                if lo == hi:
                    break
                split = self._rng.uniform(lo, hi)
                current = current[current[:, dim] < split] if p[dim] < split else current[current[:, dim] >= split]
                depth += 1
            total += depth + average_path_length(current.shape[0])

        c = average_path_length(n)
        if c == 0:
            return 0.5
        return float(2.0 ** (-(total / trees) / c))

    def _k_distances(self, k: int) -> Tuple[np.ndarray, np.ndarray]:
        if k not in self._k_distance_cache:
            dist = pairwise_distances(self._data)
            np.fill_diagonal(dist, np.inf)
            order = np.argsort(dist, axis=1)[:, :k]
            k_dist = np.take_along_axis(dist, order[:, -1:], axis=1).ravel()
            reach = np.maximum(np.take_along_axis(dist, order, axis=1), k_dist[order])
            lrd = 1.0 / np.maximum(reach.mean(axis=1), 1e-10)
            self._k_distance_cache[k] = (k_dist, lrd)
        return self._k_distance_cache[k]

    def lof(self, point, k: int = 5) -> float:
        """Local Outlier Factor of ``point`` against the baseline.

            reach(p, o) = max(k-distance(o), d(p, o))
            lrd(p)      = 1 / mean_{o in N_k(p)} reach(p, o)
            LOF(p)      = mean_{o in N_k(p)} lrd(o) / lrd(p)

        ~1 inside a cluster, > 1 for isolated points.
        """
        data, p = self._baseline(point)
        if not 1 <= k < data.shape[0]:
            raise InsufficientDataError(
                f"LOF needs 1 <= k < baseline size ({data.shape[0]}), got k={k}",
                required=k + 1, available=data.shape[0],
            )
        k_dist, lrd = self._k_distances(k)
        d = np.sqrt(np.sum((data - p) ** 2, axis=1))
        neighbors = np.argsort(d)[:k]
        reach = np.maximum(d[neighbors], k_dist[neighbors])
        lrd_p = 1.0 / max(float(reach.mean()), 1e-10)
        return float(lrd[neighbors].mean() / lrd_p)


# ─── Trend analysis ────────────────────────────────────────

def _linear_fit(values: np.ndarray) -> Tuple[float, float]:
    n = values.size
    x = np.arange(n, dtype=np.float64)
    sx, sy = x.sum(), values.sum()
    sxy, sxx = float(x @ values), float(x @ x)
    denom = n * sxx - sx * sx
    slope = (n * sxy - sx * sy) / denom
    intercept = (sy - slope * sx) / n
    return float(slope), float(intercept)


class TrendAnalyzer:
    """Stateless trend helpers over an ordered series."""

    def __init__(self, stable_slope: float = TREND_STABLE_SLOPE):
        self.stable_slope = float(stable_slope)

    @staticmethod
    def _series(data, minimum: int = 2) -> np.ndarray:
        values = as_vector(data, "data")
        if values.size < minimum:
            raise InsufficientDataError(
                f"Trend analysis needs at least {minimum} points, got {values.size}",
                required=minimum, available=values.size,
            )
        return values

    def slope(self, data) -> float:
        return _linear_fit(self._series(data))[0]

    def detect_trend(self, data) -> str:
        s = self.slope(data)
        if abs(s) < self.stable_slope:
            return "stable"
        return "increasing" if s > 0 else "decreasing"

    def trend_strength(self, data) -> float:
        """R^2 of the OLS line over the index; 0 for a constant series."""
        values = self._series(data)
        s, b = _linear_fit(values)
        pred = s * np.arange(values.size) + b
        ss_tot = float(np.sum((values - values.mean()) ** 2))
        if ss_tot == 0:
            return 0.0
        return 1.0 - float(np.sum((values - pred) ** 2)) / ss_tot

    def detect_change_points(self, data, window: int = CHANGE_POINT_WINDOW,
                             shift: float = CHANGE_POINT_SHIFT) -> List[int]:
        """Indices where the next-window mean differs from the prior-window
        mean by more than ``shift`` (relative).  Windows with a zero prior
        mean are skipped since the relative shift is undefined there.
        """
        if window < 1:
            raise ConfigurationError("window must be >= 1")
        values = as_vector(data, "data")
        points: List[int] = []
        for i in range(window, values.size - window):
            before = values[i - window:i].mean()
            after = values[i:i + window].mean()
            if before == 0:
                continue
            if abs(after - before) / abs(before) > shift:
                points.append(i)
        return points

    def slope_significance(self, data) -> float:
        """Two-sided p-value for H0: slope = 0."""
        values = self._series(data, minimum=3)
        if np.std(values) < 1e-10:
            return 1.0
        result = sp_stats.linregress(np.arange(values.size), values)
        return float(result.pvalue)

    def is_stationary(self, data, alpha: float = 0.05) -> bool:
        """Augmented Dickey-Fuller test; short series are assumed stationary."""
        values = as_vector(data, "data")
        if values.size < 8 or np.std(values) < 1e-10:
            return True
        try:
            _, p_value, *_ = adfuller(values, maxlag=1)
        except (ValueError, np.linalg.LinAlgError) as e:
            log.warning("ADF test failed; assuming stationary: %s", e)
            return True
        return bool(p_value < alpha)
