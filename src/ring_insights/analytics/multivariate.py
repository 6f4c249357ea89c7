"""
Multivariate Statistics
=======================
PCA, principal-axis factor analysis, canonical correlation, one-way MANOVA
and linear discriminant analysis.

Every decomposition goes through ``linalg.eigen`` (power iteration +
deflation), so results are only as good as that routine: fine for the
handful of daily-metric dimensions analysed here, not for large or
ill-conditioned matrices.  Eigenvector signs are arbitrary.

P-values for MANOVA come from a hand-rolled F CDF built on the
regularised incomplete beta function (Lentz continued fraction).
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np

from ring_insights.analytics.linalg import (
    SeedLike,
    as_matrix,
    column_means,
    correlation_matrix,
    covariance_matrix,
    cross_covariance,
    determinant,
    invert,
    make_rng,
    sorted_eigen,
    standardize,
)
from ring_insights.constants import (
    BETA_CF_EPSILON,
    BETA_CF_MAX_ITERATIONS,
    FACTOR_INITIAL_COMMUNALITY,
    FACTOR_TOLERANCE,
)
from ring_insights.errors import ConfigurationError, InsufficientDataError, NumericalDegeneracyError
from ring_insights.settings import DEFAULT_SETTINGS, EngineSettings

log = logging.getLogger("multivariate")

_FPMIN = 1e-30


# ─── F distribution ────────────────────────────────────────

def _beta_continued_fraction(x: float, a: float, b: float) -> float:
    qab, qap, qam = a + b, a + 1.0, a - 1.0
    c = 1.0
    d = 1.0 - qab * x / qap
    if abs(d) < _FPMIN:
        d = _FPMIN
    d = 1.0 / d
    h = d
    for m in range(1, BETA_CF_MAX_ITERATIONS + 1):
        m2 = 2 * m
        aa = m * (b - m) * x / ((qam + m2) * (a + m2))
        d = 1.0 + aa * d
        d = _FPMIN if abs(d) < _FPMIN else d
        c = 1.0 + aa / c
        c = _FPMIN if abs(c) < _FPMIN else c
        d = 1.0 / d
        h *= d * c

        aa = -(a + m) * (qab + m) * x / ((a + m2) * (qap + m2))
        d = 1.0 + aa * d
        d = _FPMIN if abs(d) < _FPMIN else d
        c = 1.0 + aa / c
        c = _FPMIN if abs(c) < _FPMIN else c
        d = 1.0 / d
        delta = d * c
        h *= delta
        if abs(delta - 1.0) < BETA_CF_EPSILON:
            break
    return h


def regularized_incomplete_beta(x: float, a: float, b: float) -> float:
    """I_x(a, b), normalised so that I_1(a, b) = 1."""
    if a <= 0 or b <= 0:
        raise ConfigurationError("Beta parameters must be positive")
    if x <= 0:
        return 0.0
    if x >= 1:
        return 1.0
    log_bt = (math.lgamma(a + b) - math.lgamma(a) - math.lgamma(b)
              + a * math.log(x) + b * math.log(1.0 - x))
    bt = math.exp(log_bt)
    if x < (a + 1.0) / (a + b + 2.0):
        return bt * _beta_continued_fraction(x, a, b) / a
    return 1.0 - bt * _beta_continued_fraction(1.0 - x, b, a) / b


def f_cdf(x: float, df1: float, df2: float) -> float:
    """CDF of the F distribution: I_{d1 x / (d1 x + d2)}(d1/2, d2/2)."""
    if df1 <= 0 or df2 <= 0:
        raise ConfigurationError(f"F degrees of freedom must be positive, got ({df1}, {df2})")
    if x <= 0:
        return 0.0
    if math.isinf(x):
        return 1.0
    return regularized_incomplete_beta(df1 * x / (df1 * x + df2), df1 / 2.0, df2 / 2.0)


# ─── Result types ──────────────────────────────────────────

@dataclass
class PCAResult:
    components: np.ndarray          # k x p, rows are unit eigenvectors
    eigenvalues: np.ndarray
    explained_variance: np.ndarray  # percent
    cumulative_variance: np.ndarray
    loadings: np.ndarray            # p x k
    scores: np.ndarray              # n x k
    means: np.ndarray

    def transform(self, data) -> np.ndarray:
        x = as_matrix(data, "data")
        if x.shape[1] != self.means.shape[0]:
            raise ConfigurationError(f"Expected {self.means.shape[0]} features, got {x.shape[1]}")
        return (x - self.means) @ self.components.T


@dataclass
class FactorAnalysisResult:
    loadings: np.ndarray            # p x n_factors
    unique_variances: np.ndarray
    communalities: np.ndarray
    eigenvalues: np.ndarray
    n_iter: int = 0


@dataclass
class CanonicalCorrelationResult:
    correlations: np.ndarray
    x_coefficients: np.ndarray      # one row per canonical pair
    y_coefficients: np.ndarray


@dataclass
class ManovaResult:
    wilks_lambda: float
    pillai_trace: float
    hotelling_lawley_trace: float
    f_statistic: float
    df1: float
    df2: float
    p_value: float
    reject: bool


@dataclass
class LDAResult:
    scalings: np.ndarray            # p x k, columns are discriminant axes
    means: np.ndarray               # class x p
    priors: np.ndarray
    explained: np.ndarray           # percent of retained separation
    classes: List = field(default_factory=list)

    def transform(self, data) -> np.ndarray:
        x = as_matrix(data, "data")
        if x.shape[1] != self.scalings.shape[0]:
            raise ConfigurationError(f"Expected {self.scalings.shape[0]} features, got {x.shape[1]}")
        return x @ self.scalings


# ─── Analyses ──────────────────────────────────────────────

class MultivariateStats:
    """Stateless apart from the random generator that seeds power iteration."""

    def __init__(self, settings: Optional[EngineSettings] = None, seed: SeedLike = None):
        self.settings = settings or DEFAULT_SETTINGS
        self._rng = make_rng(self.settings.seed if seed is None else seed)

    def _eigen(self, matrix: np.ndarray, n_components: Optional[int] = None):
        return sorted_eigen(
            matrix,
            n_components,
            max_iterations=self.settings.eigen_max_iterations,
            tolerance=self.settings.eigen_tolerance,
            seed=self._rng,
        )

    def _invert(self, matrix: np.ndarray) -> np.ndarray:
        return invert(matrix, self.settings.singular_policy)

    def pca(self, data, n_components: Optional[int] = None) -> PCAResult:
        x = as_matrix(data, "data")
        n, p = x.shape
        if n < 2:
            raise InsufficientDataError(f"PCA needs at least 2 observations, got {n}",
                                        required=2, available=n)
        k = p if n_components is None else int(n_components)
        if not 1 <= k <= p:
            raise ConfigurationError(f"n_components must be in [1, {p}], got {k}")

        means = column_means(x)
        centered = x - means
        values, vectors = self._eigen(covariance_matrix(centered))
        total = float(values.sum())
        explained = values[:k] / total * 100.0 if total > 0 else np.zeros(k)
        components = vectors[:k]
        return PCAResult(
            components=components,
            eigenvalues=values[:k],
            explained_variance=explained,
            cumulative_variance=np.cumsum(explained),
            loadings=components.T.copy(),
            scores=centered @ components.T,
            means=means,
        )

    def _factor_loadings(self, corr: np.ndarray, communalities: np.ndarray, n_factors: int):
        adjusted = corr.copy()
        np.fill_diagonal(adjusted, communalities)
        values, vectors = self._eigen(adjusted, n_factors)
        values = np.maximum(values, 0.0)
        return (vectors * np.sqrt(values)[:, None]).T, values

    def factor_analysis(self, data, n_factors: int,
                        max_iterations: Optional[int] = None,
                        tolerance: float = FACTOR_TOLERANCE) -> FactorAnalysisResult:
        """Iterative principal-axis factoring on the correlation matrix."""
        x = as_matrix(data, "data")
        n, p = x.shape
        if not 1 <= n_factors <= p:
            raise ConfigurationError(f"n_factors must be in [1, {p}], got {n_factors}")
        if n < 2:
            raise InsufficientDataError("Factor analysis needs at least 2 observations",
                                        required=2, available=n)
        cap = self.settings.factor_max_iterations if max_iterations is None else int(max_iterations)

        corr = correlation_matrix(standardize(x))
        communalities = np.full(p, FACTOR_INITIAL_COMMUNALITY)
        iterations = 0
        for iterations in range(1, cap + 1):
            loadings, _ = self._factor_loadings(corr, communalities, n_factors)
            updated = np.sum(loadings ** 2, axis=1)
            change = float(np.max(np.abs(updated - communalities)))
            communalities = updated
            if change < tolerance:
                log.info("Factor analysis converged after %d iterations", iterations)
                break

        loadings, values = self._factor_loadings(corr, communalities, n_factors)
        return FactorAnalysisResult(
            loadings=loadings,
            unique_variances=1.0 - communalities,
            communalities=communalities,
            eigenvalues=values,
            n_iter=iterations,
        )

    def canonical_correlation(self, x_data, y_data) -> CanonicalCorrelationResult:
        """Eigen-analysis of Sxx^-1 Sxy Syy^-1 Syx on standardised data."""
        x, y = as_matrix(x_data, "X"), as_matrix(y_data, "Y")
        if x.shape[0] != y.shape[0]:
            raise ConfigurationError(f"X has {x.shape[0]} rows but Y has {y.shape[0]}")
        xs, ys = standardize(x), standardize(y)
        sxx, syy = covariance_matrix(xs), covariance_matrix(ys)
        sxy = cross_covariance(xs, ys)
        syx = sxy.T

        sxx_inv, syy_inv = self._invert(sxx), self._invert(syy)
        m = sxx_inv @ sxy @ syy_inv @ syx
        k = min(x.shape[1], y.shape[1])
        values, vectors = self._eigen(m, k)
        correlations = np.sqrt(np.clip(values, 0.0, 1.0))

        to_y = syy_inv @ syx
        y_coef = np.array([
            to_y @ vectors[i] / (correlations[i] if correlations[i] > 0 else 1.0)
            for i in range(k)
        ])
        return CanonicalCorrelationResult(correlations=correlations,
                                          x_coefficients=vectors, y_coefficients=y_coef)

    def manova(self, groups: Sequence, alpha: float = 0.05) -> ManovaResult:
        """One-way MANOVA.

            Wilks  = |W| / |B + W|
            Pillai = tr(B (B + W)^-1)
            H-L    = tr(B W^-1)

        Wilks' Lambda is converted to F with Rao's approximation; q = g - 1,
        t = sqrt((p^2 q^2 - 4) / (p^2 + q^2 - 5)) (1 when the denominator
        is not positive), df1 = p q, df2 = w t - (p q - 2) / 2 with
        w = n - 1 - (p + g) / 2.
        """
        mats = [as_matrix(g_, f"group {i}") for i, g_ in enumerate(groups)]
        g = len(mats)
        if g < 2:
            raise ConfigurationError("MANOVA needs at least 2 groups")
        p = mats[0].shape[1]
        if any(m.shape[1] != p for m in mats):
            raise ConfigurationError("All groups must have the same number of variables")
        if any(m.shape[0] == 0 for m in mats):
            raise InsufficientDataError("MANOVA groups must be non-empty", required=1, available=0)
        n = sum(m.shape[0] for m in mats)

        q = g - 1
        denom = p * p + q * q - 5
        t = math.sqrt((p * p * q * q - 4) / denom) if denom > 0 else 1.0
        df1 = float(p * q)
        df2 = (n - 1 - (p + g) / 2.0) * t - (p * q - 2) / 2.0
        if df2 <= 0:
            raise InsufficientDataError(
                f"Too few observations ({n}) for {p} variables in {g} groups",
                required=n + int(math.ceil(-df2)) + 1, available=n,
            )

        grand = column_means(np.vstack(mats))
        b = np.zeros((p, p))
        w = np.zeros((p, p))
        for m in mats:
            mean = column_means(m)
            diff = mean - grand
            b += m.shape[0] * np.outer(diff, diff)
            centered = m - mean
            w += centered.T @ centered

        total = b + w
        det_w = determinant(w, self.settings.max_cofactor_size)
        det_total = determinant(total, self.settings.max_cofactor_size)
        if det_total == 0:
            if self.settings.singular_policy == "raise":
                raise NumericalDegeneracyError("|B + W| is zero; variables are collinear")
            log.warning("|B + W| is zero; dividing by 1")
            det_total = 1.0
        wilks = det_w / det_total
        pillai = float(np.trace(b @ self._invert(total)))
        hotelling = float(np.trace(b @ self._invert(w)))

        if wilks <= 0:
            f_stat = math.inf
        else:
            root = wilks ** (1.0 / t)
            f_stat = (1.0 - root) / root * (df2 / df1)
        p_value = 1.0 - f_cdf(f_stat, df1, df2)
        log.info("MANOVA: Wilks=%.4f F(%.1f, %.1f)=%.3f p=%.4g", wilks, df1, df2, f_stat, p_value)
        return ManovaResult(
            wilks_lambda=float(wilks),
            pillai_trace=pillai,
            hotelling_lawley_trace=hotelling,
            f_statistic=float(f_stat),
            df1=df1,
            df2=float(df2),
            p_value=float(p_value),
            reject=bool(p_value < alpha),
        )

    def lda(self, data, labels, n_components: Optional[int] = None) -> LDAResult:
        """Fisher LDA via the eigenvectors of Sw^-1 Sb."""
        x = as_matrix(data, "data")
        y = list(labels)
        if len(y) != x.shape[0]:
            raise ConfigurationError(f"{x.shape[0]} rows but {len(y)} labels")
        classes = list(dict.fromkeys(y))
        if len(classes) < 2:
            raise ConfigurationError("LDA needs at least 2 classes")
        p = x.shape[1]
        k = min(len(classes) - 1, p) if n_components is None else int(n_components)
        if not 1 <= k <= p:
            raise ConfigurationError(f"n_components must be in [1, {p}], got {k}")

        y_arr = np.array(y, dtype=object)
        overall = column_means(x)
        means, priors = [], []
        sb = np.zeros((p, p))
        sw = np.zeros((p, p))
        for c in classes:
            members = x[y_arr == c]
            mean = column_means(members)
            means.append(mean)
            priors.append(members.shape[0] / x.shape[0])
            diff = mean - overall
            sb += members.shape[0] * np.outer(diff, diff)
            centered = members - mean
            sw += centered.T @ centered

        values, vectors = self._eigen(self._invert(sw) @ sb, k)
        total = float(values.sum())
        explained = values / total * 100.0 if total > 0 else np.zeros(k)
        return LDAResult(
            scalings=vectors.T.copy(),
            means=np.array(means),
            priors=np.array(priors),
            explained=explained,
            classes=classes,
        )


def summarize_pca(result: PCAResult, labels: Sequence[str]) -> List[Dict[str, object]]:
    """Name each component after its heaviest-loading variable."""
    out = []
    for i, component in enumerate(result.components):
        top = int(np.argmax(np.abs(component)))
        out.append({
            "component": i + 1,
            "dominant": labels[top],
            "loading": float(component[top]),
            "explained_variance": float(result.explained_variance[i]),
        })
    return out
