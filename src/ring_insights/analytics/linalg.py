"""
Matrix/Vector Kernel
====================
Pure functions over numpy arrays shared by every analysis component.

Inputs are copied to contiguous float64 arrays (row-major buffer + stride),
so caller-owned lists/arrays are never mutated.

Algorithms:
  * invert       Gauss-Jordan elimination with partial pivoting.
  * determinant  Cofactor (Laplace) expansion evaluated iteratively over
                 column subsets, O(2^n * n); capped at ``max_cofactor_size``.
  * eigen        Power iteration + deflation.  Adequate for the small,
                 symmetric covariance/correlation matrices used here; not a
                 general-purpose eigensolver.
"""

from __future__ import annotations

import logging
import math
from typing import List, Optional, Tuple, Union

import numpy as np

from ring_insights.constants import (
    EIGEN_MAX_ITERATIONS,
    EIGEN_TOLERANCE,
    LEGACY_PIVOT_EPSILON,
    MAX_COFACTOR_SIZE,
    PIVOT_TOLERANCE,
    SINGULAR_POLICIES,
)
from ring_insights.errors import ConfigurationError, SingularMatrixError

log = logging.getLogger("linalg")

SeedLike = Union[None, int, np.random.Generator]


def make_rng(seed: SeedLike = None) -> np.random.Generator:
    """Return a Generator; an existing Generator is passed through."""
    if isinstance(seed, np.random.Generator):
        return seed
    return np.random.default_rng(seed)


# ─── Shape coercion ────────────────────────────────────────

def as_vector(values, name: str = "vector") -> np.ndarray:
    arr = np.array(values, dtype=np.float64)
    if arr.ndim != 1:
        raise ConfigurationError(f"{name} must be one-dimensional, got shape {arr.shape}")
    return arr


def as_matrix(values, name: str = "matrix") -> np.ndarray:
    """Copy ``values`` into a 2-D float array; ragged rows are rejected."""
    try:
        arr = np.array(values, dtype=np.float64)
    except ValueError as e:
        raise ConfigurationError(f"{name} rows must all have the same length") from e
    if arr.ndim != 2:
        raise ConfigurationError(f"{name} must be two-dimensional, got shape {arr.shape}")
    return arr


def as_square(values, name: str = "matrix") -> np.ndarray:
    arr = as_matrix(values, name)
    if arr.shape[0] != arr.shape[1]:
        raise ConfigurationError(f"{name} must be square, got shape {arr.shape}")
    return arr


# ─── Basic products ────────────────────────────────────────

def dot(a, b) -> float:
    a, b = as_vector(a, "a"), as_vector(b, "b")
    if a.shape != b.shape:
        raise ConfigurationError(f"Vector lengths differ: {a.shape[0]} vs {b.shape[0]}")
    return float(a @ b)


def transpose(matrix) -> np.ndarray:
    return as_matrix(matrix).T.copy()


def multiply(a, b) -> np.ndarray:
    a, b = as_matrix(a, "A"), as_matrix(b, "B")
    if a.shape[1] != b.shape[0]:
        raise ConfigurationError(f"Cannot multiply {a.shape} by {b.shape}")
    return a @ b


def outer(u, v, scalar: float = 1.0) -> np.ndarray:
    return scalar * np.outer(as_vector(u), as_vector(v))


def trace(matrix) -> float:
    return float(np.trace(as_square(matrix)))


def euclidean_distance(a, b) -> float:
    a, b = np.asarray(a, dtype=np.float64), np.asarray(b, dtype=np.float64)
    if a.shape != b.shape:
        raise ConfigurationError(f"Vector lengths differ: {a.shape} vs {b.shape}")
    return float(math.sqrt(np.sum((a - b) ** 2)))


def pairwise_distances(points: np.ndarray, others: Optional[np.ndarray] = None) -> np.ndarray:
    """Euclidean distance matrix between rows of ``points`` and ``others``."""
    others = points if others is None else others
    diff = points[:, None, :] - others[None, :, :]
    return np.sqrt(np.sum(diff * diff, axis=2))


def cosine_similarity(a, b) -> float:
    a, b = as_vector(a, "a"), as_vector(b, "b")
    if a.shape != b.shape:
        raise ConfigurationError(f"Vector lengths differ: {a.shape[0]} vs {b.shape[0]}")
    denom = np.linalg.norm(a) * np.linalg.norm(b)
    if denom == 0:
        return 0.0
    return float(a @ b / denom)


# ─── Inversion ─────────────────────────────────────────────

def invert(matrix, singular_policy: str = "raise",
           tolerance: float = PIVOT_TOLERANCE) -> np.ndarray:
    """Invert a square matrix by Gauss-Jordan elimination with partial pivoting.

    ``singular_policy``:
      "raise"   - SingularMatrixError when the best pivot is below ``tolerance``.
      "epsilon" - legacy behaviour: the pivot is replaced with +/-1e-10 and
                  elimination continues, yielding a huge but finite result.
    """
    if singular_policy not in SINGULAR_POLICIES:
        raise ConfigurationError(f"Unknown singular_policy {singular_policy!r}")
    a = as_square(matrix)
    n = a.shape[0]
    aug = np.hstack([a, np.eye(n)])

    for i in range(n):
        max_row = i + int(np.argmax(np.abs(aug[i:, i])))
        if max_row != i:
            aug[[i, max_row]] = aug[[max_row, i]]

        pivot = aug[i, i]
        if abs(pivot) < tolerance:
            if singular_policy == "raise":
                raise SingularMatrixError(
                    f"Matrix is singular (pivot {pivot:.3e} at column {i})",
                    pivot_index=i,
                )
            log.warning("Near-zero pivot at column %d; substituting %.0e", i, LEGACY_PIVOT_EPSILON)
            pivot = math.copysign(LEGACY_PIVOT_EPSILON, pivot) if pivot != 0 else LEGACY_PIVOT_EPSILON
            aug[i, i] = pivot

        aug[i] = aug[i] / pivot
        factors = aug[:, i].copy()
        factors[i] = 0.0
        aug -= np.outer(factors, aug[i])

    return aug[:, n:].copy()


def solve(matrix, rhs, singular_policy: str = "raise") -> np.ndarray:
    return invert(matrix, singular_policy) @ np.asarray(rhs, dtype=np.float64)


# ─── Determinant ───────────────────────────────────────────

def determinant(matrix, max_cofactor_size: int = MAX_COFACTOR_SIZE) -> float:
    """Determinant by cofactor expansion along successive rows.

    The expansion is evaluated bottom-up over subsets of used columns
    instead of by recursion: for the rows ``i..n-1`` and the set ``S`` of
    columns already consumed by rows ``0..i-1``

        D(i, S) = sum_{j not in S} (-1)^{pos(j, S)} * M[i, j] * D(i+1, S u {j})

    where ``pos(j, S)`` counts unused columns left of ``j``.  Cost grows as
    2^n, so matrices larger than ``max_cofactor_size`` are rejected.
    """
    m = as_square(matrix)
    n = m.shape[0]
    if n == 0:
        return 1.0
    if n > max_cofactor_size:
        raise ConfigurationError(
            f"Cofactor determinant limited to {max_cofactor_size}x{max_cofactor_size}, got {n}x{n}"
        )
    if n == 1:
        return float(m[0, 0])
    if n == 2:
        return float(m[0, 0] * m[1, 1] - m[0, 1] * m[1, 0])

    full = (1 << n) - 1
    by_popcount: List[List[int]] = [[] for _ in range(n + 1)]
    for mask in range(full + 1):
        by_popcount[bin(mask).count("1")].append(mask)

    minors = np.zeros(full + 1, dtype=np.float64)
    minors[full] = 1.0
    for row in range(n - 1, -1, -1):
        for mask in by_popcount[row]:
            total = 0.0
            position = 0
            for col in range(n):
                if mask & (1 << col):
                    continue
                entry = m[row, col]
                if entry != 0.0:
                    sign = -1.0 if position % 2 else 1.0
                    total += sign * entry * minors[mask | (1 << col)]
                position += 1
            minors[mask] = total
    return float(minors[0])


# ─── Descriptive helpers ───────────────────────────────────

def column_means(data: np.ndarray) -> np.ndarray:
    return data.mean(axis=0)


def column_stds(data: np.ndarray, ddof: int = 1) -> np.ndarray:
    if data.shape[0] <= ddof:
        return np.zeros(data.shape[1])
    return data.std(axis=0, ddof=ddof)


def standardize(data: np.ndarray) -> np.ndarray:
    """Z-score columns; zero-variance columns are divided by 1."""
    stds = column_stds(data)
    stds = np.where(stds == 0, 1.0, stds)
    return (data - column_means(data)) / stds


def covariance_matrix(centered: np.ndarray) -> np.ndarray:
    """Sample covariance of already-centred data (divides by n - 1)."""
    n = centered.shape[0]
    return centered.T @ centered / max(n - 1, 1)


def cross_covariance(x_centered: np.ndarray, y_centered: np.ndarray) -> np.ndarray:
    n = x_centered.shape[0]
    return x_centered.T @ y_centered / max(n - 1, 1)


def correlation_matrix(data: np.ndarray) -> np.ndarray:
    centered = data - column_means(data)
    cov = covariance_matrix(centered)
    stds = column_stds(data)
    stds = np.where(stds == 0, 1.0, stds)
    return cov / np.outer(stds, stds)


# ─── Eigendecomposition ────────────────────────────────────

def eigen(matrix, n_components: Optional[int] = None,
          max_iterations: int = EIGEN_MAX_ITERATIONS,
          tolerance: float = EIGEN_TOLERANCE,
          seed: SeedLike = None) -> Tuple[np.ndarray, np.ndarray]:
    """Power iteration with deflation.

    Extracts the dominant eigenpair of the live matrix, then deflates

        A <- A - lambda * v v^T

    and repeats.  Returns ``(eigenvalues, eigenvectors)`` in extraction order;
    ``eigenvectors[i]`` is the unit vector for ``eigenvalues[i]``.  Each
    vector gets at most ``max_iterations`` multiplications.
    """
    a = as_square(matrix).copy()
    n = a.shape[0]
    k = n if n_components is None else min(int(n_components), n)
    rng = make_rng(seed)

    values = np.zeros(k)
    vectors = np.zeros((k, n))
    for comp in range(k):
        v = rng.random(n)
        v /= np.linalg.norm(v)
        for _ in range(max_iterations):
            av = a @ v
            norm = np.linalg.norm(av)
            if norm < 1e-300:
                break
            new_v = av / norm
            # sign flips each step when the dominant eigenvalue is negative
            delta = min(np.linalg.norm(new_v - v), np.linalg.norm(new_v + v))
            v = new_v
            if delta < tolerance:
                break
        lam = float(v @ (a @ v))
        values[comp] = lam
        vectors[comp] = v
        a = a - lam * np.outer(v, v)

    return values, vectors


def sorted_eigen(matrix, n_components: Optional[int] = None, **kwargs) -> Tuple[np.ndarray, np.ndarray]:
    """Full decomposition sorted descending by eigenvalue, truncated to k."""
    values, vectors = eigen(matrix, **kwargs)
    order = np.argsort(-values, kind="stable")
    values, vectors = values[order], vectors[order]
    if n_components is not None:
        values, vectors = values[:n_components], vectors[:n_components]
    return values, vectors
