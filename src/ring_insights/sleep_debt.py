"""
Sleep Debt Calculator
=====================
Homeostatic sleep-debt model loosely following the two-process model of
sleep regulation (Borbely, 1982).

  1. Sleep need is inferred from free-day sleep (weekends), falling back
     to long-sleep nights, then to a population default of 8 h.
  2. Debt is walked night by night in input order:

        debt = max(0, debt * (1 - 0.05) + (need - actual))

  3. Severity, trend, performance impact and a recovery plan are derived
     from the final debt.  The impact formulas are fixed heuristics from
     sleep-research literature, not fitted to the wearer.

State is recomputed from the full history on every call.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Sequence

import numpy as np

from ring_insights import constants as C
from ring_insights.errors import require_samples
from ring_insights.insights import Insight, clip_confidence
from ring_insights.records import SleepInput, SleepRecord, coerce_sleep_records, hours_to_clock

log = logging.getLogger("sleep_debt")


# ─── Result types ──────────────────────────────────────────

@dataclass(frozen=True)
class SleepNeedEstimate:
    sleep_need: float
    confidence: int
    method: str


@dataclass(frozen=True)
class DebtEntry:
    day: date
    debt: float
    daily_deficit: float


@dataclass(frozen=True)
class DebtImpact:
    cognitive_impairment: float   # percent
    equivalent_bac: float         # blood-alcohol equivalent
    accident_risk: float          # relative risk multiplier
    description: str


@dataclass(frozen=True)
class RecoveryPlan:
    days_to_recovery: int
    hours_needed_tonight: float
    weekend_recovery_plan: str


@dataclass
class Recommendations:
    immediate: List[str] = field(default_factory=list)
    weekly: List[str] = field(default_factory=list)
    long_term: List[str] = field(default_factory=list)


@dataclass
class SleepDebtAnalysis:
    current_debt: float
    severity: str
    debt_trend: str
    debt_history: List[DebtEntry]
    estimated_sleep_need: float
    confidence: int
    recovery_estimate: RecoveryPlan
    impact: DebtImpact
    recommendations: Recommendations
    insights: List[Insight]


IMPACT_DESCRIPTIONS = {
    "none": "Minimal impairment. Normal cognitive and physical function.",
    "mild": ("Mild impairment. Slight decreases in attention, reaction time and mood. "
             "Performance on complex tasks affected."),
    "moderate": ("Moderate impairment. Significant deficits in attention, memory and executive "
                 "function. Equivalent to mild alcohol intoxication."),
    "severe": ("Severe impairment. Major cognitive deficits, emotional dysregulation and "
               "increased accident risk. Equivalent to moderate alcohol intoxication."),
    "critical": ("Critical impairment. Profound cognitive dysfunction, microsleeps and severely "
                 "increased accident risk. Operating a vehicle or machinery is dangerous."),
}


# ─── Calculator ────────────────────────────────────────────

class SleepDebtCalculator:
    """Stateless; every method works on the records it is given."""

    def __init__(self, decay: float = C.DAILY_DEBT_DECAY, recovery_rate: float = C.RECOVERY_RATE,
                 wake_hour: float = C.DEFAULT_WAKE_HOUR):
        self.decay = decay
        self.recovery_rate = recovery_rate
        self.wake_hour = wake_hour

    def estimate_sleep_need(self, records: Sequence[SleepInput]) -> SleepNeedEstimate:
        """Infer sleep need from free-day sleep.

        With at least 4 weekend nights the weekend extension
        (weekend mean - weekday mean) picks the tier:
          < 0.5 h  -> weekday mean,                       confidence 85
          < 1.5 h  -> weekend mean - 0.3 * extension,     confidence 75
          else     -> weekday mean + 1 (chronic debt),    confidence 60
        Otherwise the mean of nights over 8 h (>= 3 of them, confidence 60)
        or the 8 h default (confidence 40).
        """
        nights = coerce_sleep_records(records)
        weekend = [r.total_sleep_hours for r in nights if r.is_weekend]
        weekday = [r.total_sleep_hours for r in nights if not r.is_weekend]

        if len(weekend) < C.MIN_WEEKEND_NIGHTS:
            long_nights = [r.total_sleep_hours for r in nights if r.total_sleep_hours > C.LONG_SLEEP_HOURS]
            if len(long_nights) >= C.MIN_LONG_SLEEP_NIGHTS:
                return SleepNeedEstimate(round(float(np.mean(long_nights)), 1), 60, "long_sleep_days")
            return SleepNeedEstimate(C.DEFAULT_SLEEP_NEED, 40, "default")

        weekend_avg = float(np.mean(weekend))
        if not weekday:
            return SleepNeedEstimate(round(weekend_avg, 1), 60, "weekend_only")
        weekday_avg = float(np.mean(weekday))
        extension = weekend_avg - weekday_avg

        if extension < 0.5:
            need, confidence = weekday_avg, 85
        elif extension < 1.5:
            need, confidence = weekend_avg - extension * 0.3, 75
        else:
            need, confidence = weekday_avg + 1.0, 60
        return SleepNeedEstimate(round(need, 1), confidence, "weekend_extension")

    def calculate_debt_history(self, records: Sequence[SleepInput], sleep_need: float) -> List[DebtEntry]:
        history = []
        debt = 0.0
        for record in coerce_sleep_records(records):
            deficit = sleep_need - record.total_sleep_hours
            debt = max(0.0, debt * (1.0 - self.decay) + deficit)
            history.append(DebtEntry(record.day, round(debt, 2), round(deficit, 2)))
        return history

    @staticmethod
    def assess_severity(debt: float) -> str:
        for upper, label in C.SEVERITY_THRESHOLDS:
            if debt < upper:
                return label
        return C.SEVERITY_CEILING

    @staticmethod
    def analyze_trend(history: Sequence[DebtEntry]) -> str:
        """Last 7 days vs the 7 before, with a +/-1 h dead band."""
        if len(history) < 7:
            return "stable"
        recent = history[-7:]
        previous = history[-14:-7]
        if not previous:
            return "stable"
        change = np.mean([h.debt for h in recent]) - np.mean([h.debt for h in previous])
        if abs(change) < C.DEBT_TREND_DEAD_BAND:
            return "stable"
        return "improving" if change < 0 else "worsening"

    def calculate_impact(self, debt: float) -> DebtImpact:
        """Roughly 10% cognitive loss and 0.02 BAC per 2 h of debt (capped at 50%)."""
        severity = self.assess_severity(debt)
        return DebtImpact(
            cognitive_impairment=round(min(50.0, debt / 2.0 * 10.0), 1),
            equivalent_bac=round(debt / 2.0 * 0.02, 3),
            accident_risk=C.ACCIDENT_RISK[severity],
            description=IMPACT_DESCRIPTIONS[severity],
        )

    def generate_recovery_plan(self, debt: float, sleep_need: float) -> RecoveryPlan:
        tonight = min(C.MAX_USEFUL_EXTRA_HOURS, debt * self.recovery_rate)
        days = int(math.ceil(debt / (sleep_need * C.OPTIMAL_NIGHT_RECOVERY))) if sleep_need > 0 else 0

        if debt < 2:
            plan = "No special recovery needed. Maintain your current schedule."
        elif debt < 5:
            plan = (f"Sleep {sleep_need + 1:g} hours Fri-Sat and Sat-Sun to recover "
                    f"{2 * self.recovery_rate * 4:.1f}h of debt.")
        else:
            plan = (f"Priority recovery: sleep {sleep_need + 1.5:g} hours Fri-Sun. This weekend can "
                    f"recover ~{2 * self.recovery_rate * 6:.1f}h. Full recovery requires {days} days "
                    f"of optimal sleep.")
        return RecoveryPlan(days, round(tonight, 1), plan)

    def recommended_bedtime(self, sleep_need: float) -> str:
        return hours_to_clock(self.wake_hour - sleep_need)

    def generate_recommendations(self, debt: float, severity: str, sleep_need: float,
                                 history: Sequence[DebtEntry]) -> Recommendations:
        recs = Recommendations()
        if severity in ("severe", "critical"):
            recs.immediate += [
                f"Sleep {sleep_need + 2:g}+ hours tonight: set bedtime "
                f"{math.ceil(sleep_need + 2)} hours before wake time",
                "Cancel non-essential obligations today to prioritise sleep",
                "Avoid driving or operating machinery if possible",
                "No alcohol tonight (impairs recovery sleep quality)",
            ]
        elif severity == "moderate":
            recs.immediate += [
                f"Tonight: target {sleep_need + 1:g}+ hours of sleep",
                "Minimise caffeine after 2 PM",
                "Dim lights and avoid screens 2 hours before bed",
            ]
        elif severity == "mild":
            recs.immediate += [
                f"Aim for {sleep_need:g} hours of sleep tonight",
                "Consider an earlier bedtime tonight if possible",
            ]
        else:
            recs.immediate.append(f"Maintain current schedule ({sleep_need:g} hours per night)")

        recs.weekly.append(f"Keep a consistent schedule: bed by {self.recommended_bedtime(sleep_need)}")
        recs.weekly.append("Protect weeknight sleep; decline evening commitments if needed")
        if debt > 3:
            recs.weekly.append("Weekend recovery: sleep 1-2 hours extra Friday and Saturday nights")
            recs.weekly.append("Get morning sunlight to strengthen the circadian rhythm")
        recs.weekly.append("Track sleep daily to prevent debt accumulation")

        recs.long_term.append("Identify chronic sleep restrictors (work schedule, evening habits, environment)")
        recs.long_term.append(f"Build a sleep buffer: target {sleep_need:g} h + 15 minutes")
        if sum(1 for h in history[-14:] if h.daily_deficit > 1) > 7:
            recs.long_term.append(
                "Chronic sleep restriction detected: consider restructuring your schedule "
                "or a sleep-medicine consultation"
            )
        recs.long_term.append("Automate a wind-down routine")
        return recs

    @staticmethod
    def longest_deficit_streak(history: Sequence[DebtEntry], window: int = 14,
                               min_deficit: float = 0.5) -> int:
        best = streak = 0
        for entry in history[-window:]:
            streak = streak + 1 if entry.daily_deficit > min_deficit else 0
            best = max(best, streak)
        return best

    def generate_insights(self, debt: float, severity: str, history: Sequence[DebtEntry],
                          sleep_need: float, confidence: int) -> List[Insight]:
        if debt > 5:
            level, advice = "high", ("Debt above 5 hours impairs cognitive function and metabolic "
                                     "health. Prioritise recovery this week.")
        elif debt > 2:
            level, advice = "medium", "This debt is recoverable with consistent optimal sleep this week."
        else:
            level, advice = "low", "Minimal sleep debt. Focus on maintaining current sleep duration."
        base_conf = clip_confidence(confidence / 100.0)

        insights = [Insight(
            type="sleep_debt",
            severity=level,
            title=f"Current sleep debt: {debt:.1f} hours ({severity})",
            narrative=advice,
            confidence=base_conf,
            evidence={"days": len(history), "sleep_need": sleep_need, "debt": debt},
        )]

        streak = self.longest_deficit_streak(history)
        if streak >= 3:
            insights.append(Insight(
                type="sleep_debt",
                severity="medium",
                title=f"{streak} consecutive days of sleep restriction",
                narrative=("Consecutive deficits compound quickly. Break the cycle tonight with an "
                           "extended sleep opportunity."),
                confidence=base_conf,
                evidence={"streak": streak},
            ))

        weekends = [h for h in history[-C.DEBT_HISTORY_LIMIT:] if h.day.weekday() >= 5]
        if len(weekends) >= C.MIN_WEEKEND_NIGHTS:
            weekend_deficit = float(np.mean([h.daily_deficit for h in weekends]))
            if weekend_deficit > 0.5:
                insights.append(Insight(
                    type="sleep_debt",
                    severity="medium",
                    title="Weekend sleep restriction pattern",
                    narrative=("Sleep stays short even on weekends, which leaves no room for "
                               "recovery. Protect weekend morning sleep."),
                    confidence=base_conf,
                    evidence={"weekend_deficit": round(weekend_deficit, 1),
                              "weekend_nights": len(weekends)},
                ))

        if debt > 5:
            days = int(math.ceil(debt / (sleep_need * C.OPTIMAL_NIGHT_RECOVERY)))
            insights.append(Insight(
                type="sleep_debt",
                severity="low",
                title=f"An optimal weekend can recover ~{debt * self.recovery_rate:.1f}h of debt",
                narrative=(f"Full recovery needs sustained optimal sleep, not one weekend. "
                           f"Budget {days} days."),
                confidence=base_conf,
                evidence={"recovery_rate": self.recovery_rate, "days_to_recovery": days},
            ))
        return insights

    def analyze_sleep_debt(self, records: Sequence[SleepInput]) -> SleepDebtAnalysis:
        nights: List[SleepRecord] = coerce_sleep_records(records)
        require_samples(len(nights), C.MIN_SLEEP_DEBT_DAYS, "days of sleep data")

        need = self.estimate_sleep_need(nights)
        history = self.calculate_debt_history(nights, need.sleep_need)
        debt = history[-1].debt if history else 0.0
        severity = self.assess_severity(debt)
        log.info("Sleep debt %.2fh (%s), need %.1fh via %s", debt, severity,
                 need.sleep_need, need.method)

        return SleepDebtAnalysis(
            current_debt=debt,
            severity=severity,
            debt_trend=self.analyze_trend(history),
            debt_history=history[-C.DEBT_HISTORY_LIMIT:],
            estimated_sleep_need=need.sleep_need,
            confidence=need.confidence,
            recovery_estimate=self.generate_recovery_plan(debt, need.sleep_need),
            impact=self.calculate_impact(debt),
            recommendations=self.generate_recommendations(debt, severity, need.sleep_need, history),
            insights=self.generate_insights(debt, severity, history, need.sleep_need, need.confidence),
        )


def debt_series(history: Sequence[DebtEntry]) -> Dict[str, List[float]]:
    """Column-oriented view for chart/export collaborators."""
    return {
        "day": [h.day.isoformat() for h in history],
        "debt": [h.debt for h in history],
        "daily_deficit": [h.daily_deficit for h in history],
    }
