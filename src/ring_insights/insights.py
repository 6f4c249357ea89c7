"""
Insight value objects shared by every analysis pass.
Created fresh per call, handed to rendering/export collaborators and
never mutated afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Iterable, List

from ring_insights.constants import SEVERITY_ORDER

INSIGHT_TYPES = ("pattern", "anomaly", "trend", "prediction", "recommendation",
                 "cluster", "dimension", "sleep_debt", "circadian")


@dataclass(frozen=True)
class Insight:
    type: str
    severity: str
    title: str
    narrative: str
    confidence: float
    evidence: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def insight_rank(item: Insight) -> tuple:
    """Sort key: highest severity first, then most confident."""
    return (SEVERITY_ORDER.get(item.severity, len(SEVERITY_ORDER)), -item.confidence)


def rank_insights(items: Iterable[Insight]) -> List[Insight]:
    return sorted(items, key=insight_rank)


def clip_confidence(value: float) -> float:
    return float(max(0.0, min(1.0, value)))
