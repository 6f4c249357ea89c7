"""
Tests for OLS, polynomial and logistic regression.
"""
import numpy as np
import pytest

from ring_insights.analytics.regression import (
    LinearRegression,
    LogisticRegression,
    PolynomialRegression,
    sigmoid,
)
from ring_insights.errors import ConfigurationError, InsufficientDataError, SingularMatrixError


class TestLinearRegression:

    def test_exact_line(self):
        x = [1.0, 2.0, 3.0, 4.0, 5.0]
        y = [5.0, 8.0, 11.0, 14.0, 17.0]
        model = LinearRegression().fit(x, y)
        assert model.intercept_ == pytest.approx(2.0)
        np.testing.assert_allclose(model.coefficients_, [3.0])
        assert model.score(x, y) == pytest.approx(1.0)
        assert model.predict([10.0])[0] == pytest.approx(32.0)

    def test_multiple_features(self):
        rng = np.random.default_rng(4)
        X = rng.normal(size=(40, 3))
        y = 1.5 + X @ np.array([2.0, -1.0, 0.5])
        model = LinearRegression().fit(X, y)
        np.testing.assert_allclose(model.coefficients_, [2.0, -1.0, 0.5], atol=1e-8)
        assert model.get_coefficients()["intercept"] == pytest.approx(1.5)

    def test_collinear_features_raise(self):
        X = [[1.0, 1.0], [2.0, 2.0], [3.0, 3.0], [4.0, 4.0]]
        with pytest.raises(SingularMatrixError):
            LinearRegression().fit(X, [1.0, 2.0, 3.0, 4.0])

    def test_length_mismatch(self):
        with pytest.raises(ConfigurationError):
            LinearRegression().fit([1.0, 2.0, 3.0], [1.0, 2.0])

    def test_empty(self):
        with pytest.raises(InsufficientDataError):
            LinearRegression().fit(np.zeros((0, 1)), [])

    def test_predict_before_fit(self):
        with pytest.raises(ConfigurationError):
            LinearRegression().predict([1.0])


class TestPolynomialRegression:

    def test_quadratic(self):
        x = np.linspace(-3, 3, 15)
        y = 1.0 - 2.0 * x + 0.5 * x ** 2
        model = PolynomialRegression(degree=2).fit(x, y)
        assert model.intercept_ == pytest.approx(1.0)
        np.testing.assert_allclose(model.coefficients_, [-2.0, 0.5], atol=1e-8)

    def test_invalid_degree(self):
        with pytest.raises(ConfigurationError):
            PolynomialRegression(degree=0)


class TestLogisticRegression:

    def test_separable_data(self):
        x = np.concatenate([np.linspace(-4, -1, 10), np.linspace(1, 4, 10)])
        y = np.array([0] * 10 + [1] * 10)
        model = LogisticRegression(learning_rate=0.5, iterations=500).fit(x, y)
        np.testing.assert_array_equal(model.predict_class(x), y)
        # cross-entropy falls over training
        assert model.losses_[-1] < model.losses_[0]

    def test_probabilities_bounded(self):
        model = LogisticRegression(iterations=50).fit([[0.0], [1.0]], [0, 1])
        p = model.predict([[-100.0], [100.0]])
        assert np.all((p >= 0) & (p <= 1))

    def test_rejects_non_binary_targets(self):
        with pytest.raises(ConfigurationError):
            LogisticRegression().fit([[0.0], [1.0]], [0, 2])

    def test_sigmoid_extremes(self):
        assert sigmoid(0.0) == pytest.approx(0.5)
        assert np.isfinite(sigmoid(np.array([-1e6, 1e6]))).all()
