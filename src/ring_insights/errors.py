"""
Error taxonomy for the analysis engine.

All conditions are local to one analysis call. Callers decide whether to
show an error state or fall back to a previous result.
"""

from __future__ import annotations

from typing import Optional


class RingInsightsError(Exception):
    """Base class for every condition raised by the engine."""


class InsufficientDataError(RingInsightsError, ValueError):
    """A minimum-sample precondition was violated."""

    def __init__(self, message: str, required: Optional[int] = None,
                 available: Optional[int] = None):
        super().__init__(message)
        self.required = required
        self.available = available


class ConfigurationError(RingInsightsError, ValueError):
    """Invalid parameters or mismatched input shapes."""


class NumericalDegeneracyError(RingInsightsError, ArithmeticError):
    """A computation hit a degenerate numerical state."""


class SingularMatrixError(NumericalDegeneracyError):
    """Matrix inversion met a pivot below tolerance."""

    def __init__(self, message: str, pivot_index: Optional[int] = None):
        super().__init__(message)
        self.pivot_index = pivot_index


def require_samples(available: int, required: int, what: str) -> None:
    """Raise InsufficientDataError unless ``available >= required``."""
    if available < required:
        raise InsufficientDataError(
            f"Minimum {required} {what} required, got {available}",
            required=required,
            available=available,
        )
