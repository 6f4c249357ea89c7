"""
Engine settings.
Single source of truth for iteration caps, seeds and the singular-matrix
policy. Environment overrides are read only when a caller asks for them
through ``load_settings``; the analysis components never touch the
environment themselves.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv

from ring_insights import constants as C
from ring_insights.errors import ConfigurationError

ENV_PREFIX = "RING_INSIGHTS_"


@dataclass(frozen=True)
class EngineSettings:
    seed: Optional[int] = None
    singular_policy: str = "raise"
    kmeans_max_iterations: int = C.KMEANS_MAX_ITERATIONS
    kmeans_tolerance: float = C.KMEANS_TOLERANCE
    eigen_max_iterations: int = C.EIGEN_MAX_ITERATIONS
    eigen_tolerance: float = C.EIGEN_TOLERANCE
    factor_max_iterations: int = C.FACTOR_MAX_ITERATIONS
    isolation_trees: int = C.ISOLATION_TREES
    isolation_max_depth: int = C.ISOLATION_MAX_DEPTH
    max_cofactor_size: int = C.MAX_COFACTOR_SIZE
    nn_log_every: int = C.NN_LOG_EVERY
    anomaly_threshold: float = C.ANOMALY_Z_THRESHOLD
    pattern_threshold: float = C.PATTERN_SIMILARITY_THRESHOLD

    def __post_init__(self):
        if self.singular_policy not in C.SINGULAR_POLICIES:
            raise ConfigurationError(
                f"singular_policy must be one of {C.SINGULAR_POLICIES}, "
                f"got {self.singular_policy!r}"
            )
        for name in ("kmeans_max_iterations", "eigen_max_iterations",
                     "factor_max_iterations", "isolation_trees",
                     "isolation_max_depth", "max_cofactor_size", "nn_log_every"):
            if getattr(self, name) < 1:
                raise ConfigurationError(f"{name} must be >= 1")

    def with_overrides(self, **kwargs) -> "EngineSettings":
        return replace(self, **kwargs)


DEFAULT_SETTINGS = EngineSettings()

# env suffix -> (field, parser)
_ENV_FIELDS = {
    "SEED": ("seed", int),
    "SINGULAR_POLICY": ("singular_policy", str),
    "MAX_ITERATIONS": ("kmeans_max_iterations", int),
    "EIGEN_MAX_ITERATIONS": ("eigen_max_iterations", int),
    "FACTOR_MAX_ITERATIONS": ("factor_max_iterations", int),
    "ISOLATION_TREES": ("isolation_trees", int),
    "ISOLATION_MAX_DEPTH": ("isolation_max_depth", int),
    "MAX_COFACTOR_SIZE": ("max_cofactor_size", int),
    "ANOMALY_THRESHOLD": ("anomaly_threshold", float),
    "PATTERN_THRESHOLD": ("pattern_threshold", float),
}


def load_settings(env_file: Optional[Union[str, Path]] = None) -> EngineSettings:
    """Build settings from ``RING_INSIGHTS_*`` environment variables.

    Loads ``env_file`` (or a ``.env`` found by python-dotenv) first without
    overriding variables already set in the process. Unset or empty
    variables keep their defaults.
    """
    if env_file is not None:
        load_dotenv(Path(env_file))
    else:
        load_dotenv()

    overrides = {}
    for suffix, (field_name, parser) in _ENV_FIELDS.items():
        raw = (os.getenv(ENV_PREFIX + suffix) or "").strip()
        if not raw:
            continue
        try:
            overrides[field_name] = parser(raw)
        except ValueError as e:
            raise ConfigurationError(
                f"{ENV_PREFIX}{suffix}={raw!r} is not a valid {parser.__name__}"
            ) from e
    return EngineSettings(**overrides)
