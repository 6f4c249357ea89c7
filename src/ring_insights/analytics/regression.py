"""
Supervised fitting: ordinary least squares via the normal equation,
polynomial feature expansion, and logistic regression by batch gradient
descent.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

import numpy as np

from ring_insights.analytics.linalg import as_matrix, as_vector, invert
from ring_insights.errors import ConfigurationError, InsufficientDataError

log = logging.getLogger("regression")


def _design(X, name: str = "X") -> np.ndarray:
    x = np.array(X, dtype=np.float64)
    if x.ndim == 1:
        x = x.reshape(-1, 1)
    return as_matrix(x, name)


def _check_xy(x: np.ndarray, y: np.ndarray) -> None:
    if x.shape[0] != y.shape[0]:
        raise ConfigurationError(f"X has {x.shape[0]} rows but y has {y.shape[0]} values")
    if x.shape[0] == 0:
        raise InsufficientDataError("Cannot fit on an empty dataset", required=1, available=0)


class LinearRegression:
    """OLS fit of ``y = b0 + X b``.

    Solved with the normal equation after prepending an intercept column:

        beta = (X^T X)^-1 X^T y

    No regularisation: an ill-conditioned X^T X either raises
    SingularMatrixError or, under the "epsilon" policy, yields unstable
    coefficients.  Callers should scale features and keep n > p.
    """

    def __init__(self, singular_policy: str = "raise"):
        self.singular_policy = singular_policy
        self.intercept_: float = 0.0
        self.coefficients_: np.ndarray = np.zeros(0)
        self._fitted = False

    def _features(self, x: np.ndarray) -> np.ndarray:
        return x

    def fit(self, X, y) -> "LinearRegression":
        x = self._features(_design(X))
        target = as_vector(y, "y")
        _check_xy(x, target)

        xi = np.hstack([np.ones((x.shape[0], 1)), x])
        xt = xi.T
        beta = invert(xt @ xi, self.singular_policy) @ (xt @ target)

        self.intercept_ = float(beta[0])
        self.coefficients_ = beta[1:].copy()
        self._fitted = True
        return self

    def predict(self, X) -> np.ndarray:
        if not self._fitted:
            raise ConfigurationError("Model is not fitted yet")
        x = self._features(_design(X))
        if x.shape[1] != self.coefficients_.shape[0]:
            raise ConfigurationError(
                f"Expected {self.coefficients_.shape[0]} features, got {x.shape[1]}"
            )
        return self.intercept_ + x @ self.coefficients_

    def score(self, X, y) -> float:
        """Coefficient of determination R^2 on (X, y)."""
        target = as_vector(y, "y")
        resid = target - self.predict(X)
        ss_tot = float(np.sum((target - target.mean()) ** 2))
        if ss_tot == 0:
            return 0.0
        return 1.0 - float(np.sum(resid ** 2)) / ss_tot

    def get_coefficients(self) -> Dict[str, object]:
        return {"intercept": self.intercept_, "coefficients": self.coefficients_.tolist()}


class PolynomialRegression(LinearRegression):
    """Linear regression on per-feature powers 1..degree.

    Row ``[a, b]`` with degree 2 expands to ``[a, b, a^2, b^2]``
    (no cross terms).
    """

    def __init__(self, degree: int = 2, singular_policy: str = "raise"):
        if degree < 1:
            raise ConfigurationError(f"degree must be >= 1, got {degree}")
        super().__init__(singular_policy)
        self.degree = int(degree)

    def _features(self, x: np.ndarray) -> np.ndarray:
        return np.hstack([x ** d for d in range(1, self.degree + 1)])


def sigmoid(z):
    return 1.0 / (1.0 + np.exp(-np.clip(z, -500, 500)))


class LogisticRegression:
    """Binary classifier trained by batch gradient descent.

    Always runs all ``iterations`` steps; there is no convergence
    check.  Gradient of the mean cross-entropy:

        dL/dw = X^T (sigmoid(Xw + b) - y) / n
    """

    def __init__(self, learning_rate: float = 0.01, iterations: int = 1000):
        if learning_rate <= 0:
            raise ConfigurationError("learning_rate must be positive")
        if iterations < 1:
            raise ConfigurationError("iterations must be >= 1")
        self.learning_rate = float(learning_rate)
        self.iterations = int(iterations)
        self.intercept_: float = 0.0
        self.coefficients_: Optional[np.ndarray] = None
        self.losses_: List[float] = []

    def fit(self, X, y) -> "LogisticRegression":
        x = _design(X)
        target = as_vector(y, "y")
        _check_xy(x, target)
        if not np.all(np.isin(target, (0.0, 1.0))):
            raise ConfigurationError("Logistic regression targets must be 0 or 1")

        n, m = x.shape
        w = np.zeros(m)
        b = 0.0
        self.losses_ = []
        for _ in range(self.iterations):
            p = sigmoid(x @ w + b)
            err = p - target
            w -= self.learning_rate * (x.T @ err) / n
            b -= self.learning_rate * float(err.sum()) / n
            clipped = np.clip(p, 1e-12, 1 - 1e-12)
            self.losses_.append(float(-np.mean(target * np.log(clipped) + (1 - target) * np.log(1 - clipped))))

        self.coefficients_ = w
        self.intercept_ = b
        return self

    def predict(self, X) -> np.ndarray:
        """Probability of class 1 for each row."""
        if self.coefficients_ is None:
            raise ConfigurationError("Model is not fitted yet")
        x = _design(X)
        return sigmoid(x @ self.coefficients_ + self.intercept_)

    def predict_class(self, X, threshold: float = 0.5) -> np.ndarray:
        return (self.predict(X) >= threshold).astype(int)
