"""
Classical hypothesis tests on top of scipy.stats.

Each test returns a ``HypothesisResult`` with the statistic, p-value,
the reject decision at ``alpha`` and an effect size where one is
conventional:

  one-sample / paired t   Cohen's d = (mean - mu0) / s
  two-sample t            d = (m1 - m2) / sqrt((s1^2 + s2^2) / 2)
  chi-square              Cramer's V
  one-way ANOVA           eta^2 = SSB / (SSB + SSW)
  Mann-Whitney U          rank-biserial r = 1 - 2U / (n1 n2)

Zero-variance samples raise NumericalDegeneracyError instead of
returning an infinite or NaN statistic.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np
from scipy import stats as sp_stats

from ring_insights.analytics.linalg import as_matrix, as_vector
from ring_insights.errors import ConfigurationError, NumericalDegeneracyError, require_samples

log = logging.getLogger("hypothesis")

ALTERNATIVES = ("two-sided", "greater", "less")


@dataclass(frozen=True)
class HypothesisResult:
    statistic: float
    p_value: float
    reject: bool
    confidence_interval: Optional[Tuple[float, float]] = None
    effect_size: Optional[float] = None
    extra: Dict[str, Any] = field(default_factory=dict)


def _sample(values, name: str) -> np.ndarray:
    x = as_vector(values, name)
    require_samples(x.size, 2, f"observations in {name}")
    return x


class HypothesisTesting:
    """Stateless apart from the significance level."""

    def __init__(self, alpha: float = 0.05):
        if not 0.0 < alpha < 1.0:
            raise ConfigurationError(f"alpha must be in (0, 1), got {alpha}")
        self.alpha = alpha

    def _result(self, statistic, p_value, **kwargs) -> HypothesisResult:
        p = float(p_value)
        return HypothesisResult(float(statistic), p, p < self.alpha, **kwargs)

    def one_sample_t(self, data, mu0: float, alternative: str = "two-sided") -> HypothesisResult:
        """t-test of mean(data) against ``mu0``, with a two-sided 1 - alpha interval."""
        if alternative not in ALTERNATIVES:
            raise ConfigurationError(f"alternative must be one of {ALTERNATIVES}")
        x = _sample(data, "data")
        sd = float(x.std(ddof=1))
        if sd == 0:
            raise NumericalDegeneracyError("Sample has zero variance")
        mean = float(x.mean())
        se = sd / np.sqrt(x.size)
        t, p = sp_stats.ttest_1samp(x, mu0, alternative=alternative)
        low, high = sp_stats.t.interval(1.0 - self.alpha, x.size - 1, loc=mean, scale=se)
        return self._result(t, p, confidence_interval=(float(low), float(high)),
                            effect_size=(mean - mu0) / sd, extra={"df": x.size - 1})

    def two_sample_t(self, data1, data2, equal_variance: bool = True) -> HypothesisResult:
        """Student's (pooled) or Welch's t-test for independent samples."""
        a, b = _sample(data1, "data1"), _sample(data2, "data2")
        v1, v2 = float(a.var(ddof=1)), float(b.var(ddof=1))
        if v1 + v2 == 0:
            raise NumericalDegeneracyError("Both samples have zero variance")
        t, p = sp_stats.ttest_ind(a, b, equal_var=equal_variance)
        if equal_variance:
            df = a.size + b.size - 2.0
        else:
            s1, s2 = v1 / a.size, v2 / b.size
            df = (s1 + s2) ** 2 / (s1 ** 2 / (a.size - 1) + s2 ** 2 / (b.size - 1))
        d = (a.mean() - b.mean()) / np.sqrt((v1 + v2) / 2.0)
        return self._result(t, p, effect_size=float(d), extra={"df": float(df)})

    def paired_t(self, data1, data2) -> HypothesisResult:
        a, b = as_vector(data1, "data1"), as_vector(data2, "data2")
        if a.size != b.size:
            raise ConfigurationError(f"Paired samples must have equal length ({a.size} vs {b.size})")
        return self.one_sample_t(a - b, 0.0)

    def chi_square(self, table) -> HypothesisResult:
        """Pearson chi-square test of independence, no continuity correction."""
        observed = as_matrix(table, "table")
        if min(observed.shape) < 2:
            raise ConfigurationError(f"Contingency table must be at least 2x2, got {observed.shape}")
        if np.any(observed.sum(axis=0) == 0) or np.any(observed.sum(axis=1) == 0):
            raise NumericalDegeneracyError("Contingency table has an empty row or column")
        chi2, p, dof, expected = sp_stats.chi2_contingency(observed, correction=False)
        v = np.sqrt(chi2 / (observed.sum() * (min(observed.shape) - 1)))
        return self._result(chi2, p, effect_size=float(v),
                            extra={"df": int(dof), "expected": np.asarray(expected)})

    def anova(self, *groups: Sequence[float]) -> HypothesisResult:
        """One-way ANOVA across two or more groups."""
        if len(groups) < 2:
            raise ConfigurationError("ANOVA needs at least two groups")
        samples = [_sample(g, f"group {i}") for i, g in enumerate(groups)]
        pooled = np.concatenate(samples)
        grand = pooled.mean()
        ssb = float(sum(s.size * (s.mean() - grand) ** 2 for s in samples))
        ssw = float(sum(((s - s.mean()) ** 2).sum() for s in samples))
        if ssw == 0:
            raise NumericalDegeneracyError("Every group has zero within-group variance")
        df_between, df_within = len(samples) - 1, pooled.size - len(samples)
        f, p = sp_stats.f_oneway(*samples)
        log.debug("ANOVA over %d groups: F=%.3f p=%.4f", len(samples), f, p)
        return self._result(f, p, effect_size=ssb / (ssb + ssw), extra={
            "ssb": ssb, "ssw": ssw,
            "msb": ssb / df_between, "msw": ssw / df_within,
            "df_between": df_between, "df_within": df_within,
        })

    def mann_whitney(self, data1, data2) -> HypothesisResult:
        """Two-sided Mann-Whitney U; the statistic is the smaller of U1 and U2."""
        a, b = _sample(data1, "data1"), _sample(data2, "data2")
        u1, p = sp_stats.mannwhitneyu(a, b, alternative="two-sided")
        u = min(float(u1), a.size * b.size - float(u1))
        return self._result(u, p, effect_size=1.0 - 2.0 * u / (a.size * b.size))

    def ks_test(self, data1, data2) -> HypothesisResult:
        """Two-sample Kolmogorov-Smirnov test; the statistic is the largest CDF gap."""
        a, b = _sample(data1, "data1"), _sample(data2, "data2")
        d, p = sp_stats.ks_2samp(a, b)
        return self._result(d, p)
