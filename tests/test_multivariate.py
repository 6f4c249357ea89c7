"""
Tests for multivariate statistics.

Covers: F CDF / incomplete beta against scipy, PCA (variance bookkeeping,
numpy eigenvalues as oracle), principal-axis factoring, canonical
correlation, one-way MANOVA (determinant ratio, exact-F case against
scipy, degenerate inputs) and LDA.
"""
import numpy as np
import pytest
from scipy import special, stats

from ring_insights.analytics.multivariate import (
    MultivariateStats,
    f_cdf,
    regularized_incomplete_beta,
    summarize_pca,
)
from ring_insights.errors import ConfigurationError, InsufficientDataError, NumericalDegeneracyError
from ring_insights.settings import EngineSettings


@pytest.fixture
def mv():
    return MultivariateStats(seed=0)


# ─── F distribution ───────────────────────────────────────────


class TestDistributions:

    @pytest.mark.parametrize("x,a,b", [(0.1, 0.5, 0.5), (0.3, 2.0, 5.0), (0.7, 10.0, 3.0), (0.95, 1.0, 40.0)])
    def test_incomplete_beta_matches_scipy(self, x, a, b):
        assert regularized_incomplete_beta(x, a, b) == pytest.approx(special.betainc(a, b, x), rel=1e-7)

    def test_incomplete_beta_bounds(self):
        assert regularized_incomplete_beta(0.0, 2.0, 3.0) == 0.0
        assert regularized_incomplete_beta(1.0, 2.0, 3.0) == 1.0

    @pytest.mark.parametrize("x,d1,d2", [(0.5, 2, 10), (1.0, 4, 20), (3.2, 3, 30), (8.0, 1, 5)])
    def test_f_cdf_matches_scipy(self, x, d1, d2):
        assert f_cdf(x, d1, d2) == pytest.approx(stats.f.cdf(x, d1, d2), rel=1e-7)

    def test_f_cdf_edges(self):
        assert f_cdf(0.0, 2, 10) == 0.0
        assert f_cdf(float("inf"), 2, 10) == 1.0
        with pytest.raises(ConfigurationError):
            f_cdf(1.0, 0, 10)


# ─── PCA ──────────────────────────────────────────────────────


@pytest.fixture
def spread_data():
    rng = np.random.default_rng(13)
    return rng.normal(size=(120, 3)) * np.array([5.0, 2.0, 0.5])


class TestPCA:

    def test_explained_variance_sums_to_100(self, mv, spread_data):
        result = mv.pca(spread_data)
        assert result.explained_variance.sum() == pytest.approx(100.0)
        assert result.cumulative_variance[-1] == pytest.approx(100.0)

    def test_eigenvalues_match_numpy(self, mv, spread_data):
        result = mv.pca(spread_data)
        expected = np.sort(np.linalg.eigvalsh(np.cov(spread_data, rowvar=False)))[::-1]
        np.testing.assert_allclose(result.eigenvalues, expected, rtol=1e-6)

    def test_first_component_is_widest_axis(self, mv, spread_data):
        result = mv.pca(spread_data, n_components=1)
        assert result.components.shape == (1, 3)
        assert int(np.argmax(np.abs(result.components[0]))) == 0
        assert result.explained_variance[0] > 80

    def test_transform_matches_scores(self, mv, spread_data):
        result = mv.pca(spread_data, n_components=2)
        np.testing.assert_allclose(result.transform(spread_data), result.scores)

    def test_summary_names_dominant_variable(self, mv, spread_data):
        summary = summarize_pca(mv.pca(spread_data, n_components=1), ["sleep", "hrv", "steps"])
        assert summary[0]["dominant"] == "sleep"

    def test_bad_component_count(self, mv, spread_data):
        with pytest.raises(ConfigurationError):
            mv.pca(spread_data, n_components=4)

    def test_single_row(self, mv):
        with pytest.raises(InsufficientDataError):
            mv.pca([[1.0, 2.0]])


# ─── Factor analysis ──────────────────────────────────────────


class TestFactorAnalysis:

    def test_one_latent_factor(self, mv):
        rng = np.random.default_rng(2)
        latent = rng.normal(size=(300, 1))
        data = latent @ np.full((1, 4), 0.9) + rng.normal(scale=0.4, size=(300, 4))
        result = mv.factor_analysis(data, n_factors=1)
        assert result.loadings.shape == (4, 1)
        assert np.all(np.abs(result.loadings[:, 0]) > 0.7)
        np.testing.assert_allclose(result.unique_variances, 1.0 - result.communalities)
        assert result.n_iter >= 1

    def test_too_many_factors(self, mv, spread_data):
        with pytest.raises(ConfigurationError):
            mv.factor_analysis(spread_data, n_factors=5)


# ─── Canonical correlation ────────────────────────────────────


class TestCanonicalCorrelation:

    def test_univariate_equals_abs_pearson(self, mv):
        rng = np.random.default_rng(6)
        x = rng.normal(size=(80, 1))
        y = -0.6 * x + rng.normal(scale=0.5, size=(80, 1))
        result = mv.canonical_correlation(x, y)
        r = abs(np.corrcoef(x[:, 0], y[:, 0])[0, 1])
        assert result.correlations[0] == pytest.approx(r, rel=1e-6)

    def test_row_mismatch(self, mv):
        with pytest.raises(ConfigurationError):
            mv.canonical_correlation(np.zeros((5, 2)), np.zeros((4, 2)))


# ─── MANOVA ───────────────────────────────────────────────────


def _groups(shift, seed=1, size=15):
    rng = np.random.default_rng(seed)
    return [rng.normal(size=(size, 2)) + np.array([i * shift, 0.0]) for i in range(3)]


class TestManova:

    def test_wilks_is_determinant_ratio(self, mv):
        groups = _groups(shift=1.0)
        result = mv.manova(groups)
        grand = np.vstack(groups).mean(axis=0)
        w = sum((g - g.mean(axis=0)).T @ (g - g.mean(axis=0)) for g in groups)
        b = sum(len(g) * np.outer(g.mean(axis=0) - grand, g.mean(axis=0) - grand) for g in groups)
        assert result.wilks_lambda == pytest.approx(np.linalg.det(w) / np.linalg.det(b + w))
        assert result.pillai_trace == pytest.approx(np.trace(b @ np.linalg.inv(b + w)))
        assert result.hotelling_lawley_trace == pytest.approx(np.trace(b @ np.linalg.inv(w)))

    def test_exact_f_for_two_variables(self, mv):
        # with p = 2 Rao's approximation is exact: F(4, 2(n - 4))
        groups = _groups(shift=0.5, seed=3)
        result = mv.manova(groups)
        n = sum(len(g) for g in groups)
        assert result.df1 == 4
        assert result.df2 == pytest.approx(2 * (n - 4))
        expected = stats.f.sf(result.f_statistic, 4, 2 * (n - 4))
        assert result.p_value == pytest.approx(expected, rel=1e-6, abs=1e-9)

    def test_separated_groups_reject(self, mv):
        result = mv.manova(_groups(shift=5.0))
        assert result.reject
        assert result.wilks_lambda < 0.1

    def test_collinear_variables(self, mv):
        rng = np.random.default_rng(0)
        groups = []
        for i in range(3):
            col = rng.normal(size=(10, 1)) + i
            groups.append(np.hstack([col, 2.0 * col]))
        with pytest.raises(NumericalDegeneracyError):
            mv.manova(groups)

    def test_too_few_observations(self, mv):
        groups = [[[0.0, 1.0]], [[1.0, 0.0]], [[2.0, 2.0]]]
        with pytest.raises(InsufficientDataError):
            mv.manova(groups)

    def test_one_group(self, mv):
        with pytest.raises(ConfigurationError):
            mv.manova([np.zeros((5, 2))])


# ─── LDA ──────────────────────────────────────────────────────


class TestLDA:

    def test_axis_follows_separating_variable(self, mv):
        rng = np.random.default_rng(10)
        a = rng.normal(size=(30, 2)) + np.array([0.0, 0.0])
        b = rng.normal(size=(30, 2)) + np.array([4.0, 0.0])
        data = np.vstack([a, b])
        labels = ["rested"] * 30 + ["tired"] * 30
        result = mv.lda(data, labels)
        assert result.classes == ["rested", "tired"]
        assert result.scalings.shape == (2, 1)
        assert abs(result.scalings[0, 0]) > abs(result.scalings[1, 0])
        np.testing.assert_allclose(result.priors, [0.5, 0.5])
        projected = result.transform(data)[:, 0]
        assert abs(projected[:30].mean() - projected[30:].mean()) > 2 * projected[:30].std()

    def test_single_class(self, mv):
        with pytest.raises(ConfigurationError):
            mv.lda(np.zeros((4, 2)), ["a"] * 4)


class TestSettings:

    def test_epsilon_policy_tolerates_collinearity(self):
        rng = np.random.default_rng(0)
        groups = []
        for i in range(3):
            col = rng.normal(size=(10, 1)) + i
            groups.append(np.hstack([col, 2.0 * col]))
        result = MultivariateStats(EngineSettings(singular_policy="epsilon"), seed=0).manova(groups)
        assert np.isfinite(result.wilks_lambda)
