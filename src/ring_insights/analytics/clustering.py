"""
Clustering: K-Means (K-Means++ seeding, Lloyd iterations) and DBSCAN.

Used for the "archetype" view: groups days with similar sleep/activity/
readiness feature vectors.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from ring_insights.analytics.linalg import SeedLike, as_matrix, as_vector, make_rng, pairwise_distances
from ring_insights.constants import KMEANS_MAX_ITERATIONS, KMEANS_TOLERANCE, NOISE_LABEL
from ring_insights.errors import ConfigurationError, InsufficientDataError

log = logging.getLogger("clustering")


class KMeans:
    """K-Means with K-Means++ initialisation.

    Centroids with no assigned points keep their previous position.
    Iteration stops once no centroid moves more than ``tolerance`` or after
    ``max_iterations`` Lloyd steps.
    """

    def __init__(self, k: int, max_iterations: int = KMEANS_MAX_ITERATIONS,
                 tolerance: float = KMEANS_TOLERANCE, seed: SeedLike = None):
        if int(k) < 1:
            raise ConfigurationError(f"k must be >= 1, got {k}")
        if max_iterations < 1:
            raise ConfigurationError("max_iterations must be >= 1")
        self.k = int(k)
        self.max_iterations = int(max_iterations)
        self.tolerance = float(tolerance)
        self._rng = make_rng(seed)
        self.centroids_: Optional[np.ndarray] = None
        self.inertia_: Optional[float] = None
        self.n_iter_: int = 0

    def _init_centroids(self, data: np.ndarray) -> np.ndarray:
        n = data.shape[0]
        centroids = [data[self._rng.integers(n)].copy()]
        for _ in range(1, self.k):
            dist = pairwise_distances(data, np.array(centroids)).min(axis=1)
            weights = dist * dist
            total = weights.sum()
            if total <= 0:
                idx = int(self._rng.integers(n))
            else:
                idx = int(self._rng.choice(n, p=weights / total))
            centroids.append(data[idx].copy())
        return np.array(centroids)

    def fit(self, data) -> np.ndarray:
        """Cluster ``data`` (n x d) and return the per-point assignment."""
        points = as_matrix(data, "data")
        n = points.shape[0]
        if n == 0:
            raise ConfigurationError("Cannot cluster an empty dataset")
        if self.k > n:
            raise InsufficientDataError(f"k={self.k} exceeds the number of points ({n})",
                                        required=self.k, available=n)

        centroids = self._init_centroids(points)
        for iteration in range(self.max_iterations):
            labels = np.argmin(pairwise_distances(points, centroids), axis=1)
            new_centroids = centroids.copy()
            for j in range(self.k):
                members = points[labels == j]
                if len(members):
                    new_centroids[j] = members.mean(axis=0)
            shift = np.sqrt(np.sum((new_centroids - centroids) ** 2, axis=1)).max()
            centroids = new_centroids
            self.n_iter_ = iteration + 1
            if shift <= self.tolerance:
                log.info("Converged after %d iterations", self.n_iter_)
                break

        self.centroids_ = centroids
        distances = pairwise_distances(points, centroids)
        labels = np.argmin(distances, axis=1)
        self.inertia_ = float(np.sum(distances[np.arange(n), labels] ** 2))
        return labels.astype(int)

    def _require_fitted(self) -> np.ndarray:
        if self.centroids_ is None:
            raise ConfigurationError("KMeans instance is not fitted yet")
        return self.centroids_

    def predict(self, point) -> int:
        centroids = self._require_fitted()
        p = as_vector(point, "point")
        if p.shape[0] != centroids.shape[1]:
            raise ConfigurationError(
                f"Point has {p.shape[0]} features, centroids have {centroids.shape[1]}"
            )
        return int(np.argmin(np.sqrt(np.sum((centroids - p) ** 2, axis=1))))

    def get_centroids(self) -> np.ndarray:
        return self._require_fitted().copy()


class DBSCAN:
    """Density-based clustering.

    A point whose epsilon-neighbourhood (itself included) holds at least
    ``min_points`` points is a core point; clusters grow transitively through
    core points and absorb border points.  Everything else is noise (-1).
    Deterministic for fixed data order and parameters.
    """

    def __init__(self, epsilon: float, min_points: int):
        if epsilon <= 0:
            raise ConfigurationError(f"epsilon must be positive, got {epsilon}")
        if min_points < 1:
            raise ConfigurationError(f"min_points must be >= 1, got {min_points}")
        self.epsilon = float(epsilon)
        self.min_points = int(min_points)
        self.core_points_: List[int] = []
        self.noise_: List[int] = []
        self.labels_: Optional[np.ndarray] = None

    def fit(self, data) -> np.ndarray:
        points = as_matrix(data, "data")
        n = points.shape[0]
        dist = pairwise_distances(points)
        neighbors = [np.flatnonzero(dist[i] <= self.epsilon) for i in range(n)]
        is_core = np.array([len(nb) >= self.min_points for nb in neighbors], dtype=bool)

        labels = np.full(n, NOISE_LABEL, dtype=int)
        visited = np.zeros(n, dtype=bool)
        cluster_id = 0
        for i in range(n):
            if visited[i]:
                continue
            visited[i] = True
            if not is_core[i]:
                continue

            labels[i] = cluster_id
            queue = deque(neighbors[i])
            while queue:
                j = int(queue.popleft())
                if labels[j] == NOISE_LABEL:
                    labels[j] = cluster_id
                if visited[j]:
                    continue
                visited[j] = True
                if is_core[j]:
                    queue.extend(neighbors[j])
            cluster_id += 1

        self.labels_ = labels
        self.core_points_ = [int(i) for i in np.flatnonzero(is_core)]
        self.noise_ = [int(i) for i in np.flatnonzero(labels == NOISE_LABEL)]
        log.info("DBSCAN found %d clusters, %d noise points", cluster_id, len(self.noise_))
        return labels.copy()


# ─── Cluster quality ───────────────────────────────────────

def silhouette_score(data, labels) -> float:
    """Mean silhouette coefficient, noise points (-1) excluded.

        s(i) = (b - a) / max(a, b)

    a = mean distance to the own cluster, b = smallest mean distance to
    another cluster.  Singleton clusters contribute 0.
    """
    points = as_matrix(data, "data")
    labels = np.asarray(labels, dtype=int)
    if labels.shape[0] != points.shape[0]:
        raise ConfigurationError("labels and data lengths differ")
    keep = labels != NOISE_LABEL
    points, labels = points[keep], labels[keep]
    clusters = np.unique(labels)
    if len(clusters) < 2:
        raise ConfigurationError("silhouette_score needs at least 2 clusters")

    dist = pairwise_distances(points)
    scores = np.zeros(len(points))
    for i in range(len(points)):
        own = labels == labels[i]
        own[i] = False
        if not own.any():
            continue
        a = dist[i, own].mean()
        b = min(dist[i, labels == c].mean() for c in clusters if c != labels[i])
        denom = max(a, b)
        scores[i] = 0.0 if denom == 0 else (b - a) / denom
    return float(scores.mean())


@dataclass
class ElbowResult:
    k: int
    inertias: List[float]
    scores: List[float]


def find_optimal_k(data, max_k: int = 10, trials: int = 5, seed: SeedLike = None,
                   max_iterations: int = KMEANS_MAX_ITERATIONS) -> ElbowResult:
    """Elbow method: maximise the second difference of mean inertia.

        score(k) = I(k-2) - 2 I(k-1) + I(k),   k >= 3
    """
    points = as_matrix(data, "data")
    max_k = min(int(max_k), points.shape[0])
    if max_k < 3:
        raise ConfigurationError("find_optimal_k needs max_k >= 3 and at least 3 points")
    rng = make_rng(seed)

    inertias: List[float] = []
    scores: List[float] = []
    for k in range(1, max_k + 1):
        runs = []
        for _ in range(trials):
            model = KMeans(k, max_iterations=max_iterations, seed=rng)
            model.fit(points)
            runs.append(model.inertia_)
        inertias.append(float(np.mean(runs)))
        if k >= 3:
            scores.append(inertias[k - 3] - 2 * inertias[k - 2] + inertias[k - 1])

    best = int(np.argmax(scores)) + 3
    return ElbowResult(k=best, inertias=inertias, scores=scores)
