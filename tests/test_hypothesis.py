"""
Tests for the hypothesis-testing helpers.

Expected statistics are worked by hand on tiny samples; p-values for the
rank tests are the exact small-sample values.
"""
import numpy as np
import pytest

from ring_insights.analytics.hypothesis import HypothesisTesting
from ring_insights.errors import ConfigurationError, InsufficientDataError, NumericalDegeneracyError


@pytest.fixture
def ht():
    return HypothesisTesting(alpha=0.05)


# ─── t-tests ──────────────────────────────────────────────────


class TestTTests:

    def test_one_sample_at_the_mean(self, ht):
        result = ht.one_sample_t([1, 2, 3, 4, 5], 3.0)
        assert result.statistic == pytest.approx(0.0)
        assert result.p_value == pytest.approx(1.0)
        assert result.reject is False
        low, high = result.confidence_interval
        assert low == pytest.approx(3 - 1.9633, abs=1e-3)
        assert high == pytest.approx(3 + 1.9633, abs=1e-3)
        assert result.effect_size == pytest.approx(0.0)

    def test_one_sample_one_sided(self, ht):
        greater = ht.one_sample_t([5.1, 5.3, 4.9, 5.2, 5.4, 5.0], 4.0, alternative="greater")
        less = ht.one_sample_t([5.1, 5.3, 4.9, 5.2, 5.4, 5.0], 4.0, alternative="less")
        assert greater.reject is True
        assert less.p_value == pytest.approx(1.0 - greater.p_value)

    def test_unknown_alternative(self, ht):
        with pytest.raises(ConfigurationError):
            ht.one_sample_t([1, 2, 3], 0.0, alternative="both")

    def test_two_sample_pooled(self, ht):
        result = ht.two_sample_t([1, 2, 3], [4, 5, 6])
        assert result.statistic == pytest.approx(-3.6742, abs=1e-4)
        assert result.extra["df"] == 4
        assert result.effect_size == pytest.approx(-3.0)
        assert result.reject is True

    def test_welch_df_matches_pooled_for_equal_spread(self, ht):
        result = ht.two_sample_t([1, 2, 3], [4, 5, 6], equal_variance=False)
        assert result.extra["df"] == pytest.approx(4.0)

    def test_paired(self, ht):
        result = ht.paired_t([10, 12, 15], [9, 11, 13])
        assert result.statistic == pytest.approx(4.0)
        assert result.extra["df"] == 2

    def test_paired_length_mismatch(self, ht):
        with pytest.raises(ConfigurationError):
            ht.paired_t([1, 2, 3], [1, 2])

    def test_constant_sample_is_degenerate(self, ht):
        with pytest.raises(NumericalDegeneracyError):
            ht.one_sample_t([4.0, 4.0, 4.0], 3.0)
        with pytest.raises(NumericalDegeneracyError):
            ht.two_sample_t([1.0, 1.0], [2.0, 2.0])

    def test_single_observation_rejected(self, ht):
        with pytest.raises(InsufficientDataError):
            ht.one_sample_t([1.0], 0.0)


# ─── Categorical and variance tests ───────────────────────────


class TestChiSquareAndAnova:

    def test_chi_square(self, ht):
        result = ht.chi_square([[10, 20], [20, 10]])
        assert result.statistic == pytest.approx(20 / 3)
        assert result.p_value == pytest.approx(0.0098, abs=1e-4)
        assert result.reject is True
        assert result.effect_size == pytest.approx(1 / 3)
        assert result.extra["df"] == 1
        np.testing.assert_allclose(result.extra["expected"], [[15, 15], [15, 15]])

    def test_chi_square_empty_column(self, ht):
        with pytest.raises(NumericalDegeneracyError):
            ht.chi_square([[0, 5], [0, 7]])

    def test_anova(self, ht):
        result = ht.anova([1, 2, 3], [4, 5, 6], [7, 8, 9])
        assert result.statistic == pytest.approx(27.0)
        assert result.effect_size == pytest.approx(0.9)
        assert result.extra["msb"] == pytest.approx(27.0)
        assert result.extra["msw"] == pytest.approx(1.0)
        assert (result.extra["df_between"], result.extra["df_within"]) == (2, 6)
        assert result.reject is True

    def test_anova_needs_two_groups(self, ht):
        with pytest.raises(ConfigurationError):
            ht.anova([1, 2, 3])


# ─── Rank and distribution tests ──────────────────────────────


class TestNonParametric:

    def test_mann_whitney_full_separation(self, ht):
        result = ht.mann_whitney([1, 2, 3], [4, 5, 6])
        assert result.statistic == 0
        assert result.effect_size == pytest.approx(1.0)
        assert result.p_value == pytest.approx(0.1)
        assert result.reject is False

    def test_mann_whitney_symmetric(self, ht):
        a = ht.mann_whitney([1, 2, 3], [4, 5, 6])
        b = ht.mann_whitney([4, 5, 6], [1, 2, 3])
        assert a.statistic == b.statistic

    def test_ks(self, ht):
        result = ht.ks_test([1, 2, 3], [4, 5, 6])
        assert result.statistic == pytest.approx(1.0)
        assert result.p_value == pytest.approx(0.1)
        assert result.effect_size is None

    def test_ks_same_sample(self, ht):
        result = ht.ks_test([1, 2, 3, 4], [1, 2, 3, 4])
        assert result.statistic == pytest.approx(0.0)
        assert result.reject is False


def test_alpha_validated():
    with pytest.raises(ConfigurationError):
        HypothesisTesting(alpha=1.5)
