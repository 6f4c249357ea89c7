"""
Chronotype analysis (MCTQ-style).

Work days are Monday-Friday, free days Saturday and Sunday.  The
chronotype is read from the sleep-debt-corrected free-day midpoint

    MSFsc = MSF - (SD_free - SD_work) / 2

where MSF is the mean free-day sleep midpoint and SD the mean sleep
duration.  Midpoints are averaged on an unwrapped clock (times before
noon count as +24 h) so nights straddling midnight average correctly.
All times are decimal hours since local midnight; use
``records.hours_to_clock`` to display them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np

from ring_insights import constants as C
from ring_insights.errors import InsufficientDataError, require_samples
from ring_insights.insights import Insight, clip_confidence
from ring_insights.records import SleepInput, SleepRecord, clock_hours, coerce_sleep_records, hours_to_clock

log = logging.getLogger("chronotype")


@dataclass(frozen=True)
class SleepTiming:
    average_midpoint: float
    workday_midpoint: float
    freeday_midpoint: float
    corrected_midpoint: float
    average_duration: float
    average_bedtime: float
    average_wake_time: float
    weekend_extension: float


@dataclass(frozen=True)
class SocialJetlag:
    magnitude: float
    severity: str
    weekday_restriction: bool
    recommendation: str


@dataclass(frozen=True)
class CircadianPhase:
    estimated_dlmo: float
    optimal_sleep_onset: float
    natural_wake_time: float
    phase_advancement: float    # positive = earlier than the population


@dataclass(frozen=True)
class ReadinessWindows:
    morning: float
    afternoon: float
    evening: float

    @property
    def peak(self) -> str:
        scores = {"morning": self.morning, "afternoon": self.afternoon, "evening": self.evening}
        return max(scores, key=scores.get)


@dataclass
class ChronotypeAnalysis:
    chronotype: str
    chronotype_score: float
    confidence: int
    timing: SleepTiming
    social_jetlag: SocialJetlag
    circadian_phase: CircadianPhase
    readiness_windows: Optional[ReadinessWindows]
    recommendations: Dict[str, Dict[str, str]] = field(default_factory=dict)
    insights: List[Insight] = field(default_factory=list)


def _unwrapped(hours: float) -> float:
    return hours + 24.0 if hours < 12.0 else hours


def clock_gap(a: float, b: float) -> float:
    """Shortest distance between two clock times in hours, e.g. 23.75 vs 1.0 -> 1.25."""
    d = abs(a - b) % 24.0
    return min(d, 24.0 - d)


def night_midpoint(record: SleepRecord) -> Optional[float]:
    """Unwrapped midpoint of the sleep period, or None without bedtimes."""
    if record.bedtime_start is None or record.bedtime_end is None:
        return None
    start = _unwrapped(clock_hours(record.bedtime_start))
    end = _unwrapped(clock_hours(record.bedtime_end))
    return (start + end) / 2.0


def classify_chronotype(midpoint: float):
    """Map MSFsc (hours) to (label, score in [-2, 2]); positive = morning.

    Midpoints from 18:00 on are read as before midnight (negative hours).
    """
    if midpoint >= 18.0:
        midpoint -= 24.0
    if midpoint < 3.5:
        label, score = "morning", 2.0 - midpoint / 3.5
    elif midpoint < 4.5:
        label, score = "morning", 1.0 - (midpoint - 3.5)
    elif midpoint < 5.5:
        label, score = "intermediate", 0.0
    elif midpoint < 6.5:
        label, score = "evening", -1.0 + (6.5 - midpoint)
    else:
        label, score = "evening", -2.0 + (7.5 - midpoint)
    return label, round(float(np.clip(score, -2.0, 2.0)), 2)


def assess_social_jetlag(magnitude: float, weekend_extension: float) -> SocialJetlag:
    if magnitude < 0.5:
        severity = "none"
        text = "Work-day and free-day sleep timing match closely."
    elif magnitude < 1.0:
        severity = "mild"
        text = (f"{magnitude:.1f} hours misalignment. Consider shifting your schedule gradually "
                "to reduce circadian strain.")
    elif magnitude < 2.0:
        severity = "moderate"
        text = (f"{magnitude:.1f} hours of social jetlag is a significant misalignment that can "
                "affect metabolism, mood and cognition. Prioritise schedule consistency.")
    else:
        severity = "severe"
        text = (f"{magnitude:.1f} hours of social jetlag is clinically significant. Consider "
                "adjusting your work schedule if possible.")
    return SocialJetlag(round(magnitude, 2), severity, weekend_extension > 0.5, text)


class ChronotypeAnalyzer:

    def __init__(self, min_days: int = C.MIN_CHRONOTYPE_DAYS):
        self.min_days = min_days

    @staticmethod
    def _mean_midpoint(records: Sequence[SleepRecord], what: str) -> float:
        points = [m for m in (night_midpoint(r) for r in records) if m is not None]
        if not points:
            raise InsufficientDataError(f"No {what} with bedtimes to compute a sleep midpoint",
                                        required=1, available=0)
        return float(np.mean(points)) % 24.0

    @staticmethod
    def _mean_duration(records: Sequence[SleepRecord]) -> float:
        durations = [r.total_sleep_hours for r in records if r.total_sleep_hours > 0]
        return float(np.mean(durations)) if durations else 0.0

    @staticmethod
    def _confidence(nights: Sequence[SleepRecord], work: int, free: int) -> int:
        confidence = 60
        if len(nights) >= 21:
            confidence += 10
        if len(nights) >= 30:
            confidence += 10
        if work >= 8 and free >= 4:
            confidence += 10
        midpoints = [m for m in (night_midpoint(r) for r in nights) if m is not None]
        if len(midpoints) > 1 and float(np.var(midpoints)) < 1.0:
            confidence += 10
        return min(95, confidence)

    @staticmethod
    def readiness_windows(readiness: Sequence[float]) -> Optional[ReadinessWindows]:
        """Split the last 14 readiness scores into 5/5/4 blocks."""
        recent = [float(v) for v in list(readiness)[-14:]]
        blocks = [recent[:5], recent[5:10], recent[10:]]
        if any(not b for b in blocks):
            return None
        return ReadinessWindows(*(round(float(np.mean(b)), 1) for b in blocks))

    @staticmethod
    def estimate_circadian_phase(midpoint: float, duration: float) -> CircadianPhase:
        onset = midpoint - duration / 2.0
        return CircadianPhase(
            estimated_dlmo=(onset - 2.0) % 24.0,
            optimal_sleep_onset=onset % 24.0,
            natural_wake_time=(midpoint + duration / 2.0) % 24.0,
            phase_advancement=round(C.POPULATION_MIDPOINT - midpoint, 2),
        )

    @staticmethod
    def generate_recommendations(chronotype: str, midpoint: float) -> Dict[str, Dict[str, str]]:
        bedtime, wake = midpoint - 4.0, midpoint + 4.0
        morning_light = ("Bright light within 30 minutes of waking to advance your phase"
                         if chronotype == "evening" else
                         "Morning daylight keeps your phase anchored")
        evening = ("Dim lights 2-3 hours before bed; blue light delays an already early phase"
                   if chronotype == "morning" else
                   "Avoid bright light for 3 hours before bed to support melatonin onset")
        exercise = {"morning": "Morning or midday",
                    "evening": "Afternoon or early evening"}.get(chronotype, "Late morning to early evening")
        deep_work = {"morning": "Early morning",
                     "evening": "Late morning through afternoon"}.get(chronotype, "Mid-morning to early afternoon")
        return {
            "sleep_schedule": {
                "bedtime": hours_to_clock(bedtime),
                "wake_time": hours_to_clock(wake),
                "rationale": f"Centred on your corrected sleep midpoint of {hours_to_clock(midpoint)}.",
            },
            "light_exposure": {"morning": morning_light, "evening": evening},
            "meal_timing": {
                "first_meal": hours_to_clock(wake + 1.0),
                "last_meal": hours_to_clock(bedtime - 3.0),
            },
            "exercise_timing": {"optimal": exercise, "avoid": "Within 3 hours of bedtime"},
            "work_schedule": {"deep_work": deep_work, "meetings": "Afternoon"},
        }

    @staticmethod
    def generate_insights(chronotype: str, jetlag: SocialJetlag, extension: float,
                          nights: int, windows: Optional[ReadinessWindows],
                          confidence: int) -> List[Insight]:
        conf = clip_confidence(confidence / 100.0)
        advice = {
            "evening": ("Evening types often carry social jetlag from work schedules. Lean on "
                        "morning light and consistent timing."),
            "morning": "Morning types should avoid forcing late schedules.",
            "intermediate": "Intermediate types have the most scheduling flexibility but still gain from consistency.",
        }[chronotype]
        insights = [Insight(
            type="circadian",
            severity="low",
            title=f"You are a {chronotype} chronotype ({C.CHRONOTYPE_SHARE[chronotype]} of people)",
            narrative=advice,
            confidence=conf,
            evidence={"nights": nights},
        )]
        if jetlag.magnitude > 0.5:
            insights.append(Insight(
                type="circadian",
                severity="high" if jetlag.severity == "severe" else "medium",
                title=f"{jetlag.magnitude:.1f}-hour social jetlag detected",
                narrative=jetlag.recommendation,
                confidence=conf,
                evidence={"magnitude": jetlag.magnitude, "severity": jetlag.severity},
            ))
        if abs(extension) > 0.5:
            if extension > 0:
                title = f"{extension:.1f} hours of weekend catch-up sleep"
                text = "Weekend catch-up points to weekday restriction. Extend weekday sleep."
            else:
                title = f"{abs(extension):.1f} hours less sleep on weekends"
                text = "Shorter weekend sleep suggests social obligations cutting into free days."
            insights.append(Insight(
                type="sleep_debt", severity="medium", title=title, narrative=text,
                confidence=conf, evidence={"weekend_extension": round(extension, 2)},
            ))
        if windows is not None:
            peak = windows.peak
            insights.append(Insight(
                type="recommendation",
                severity="low",
                title=f"Readiness peaks in the {peak} block",
                narrative=f"Schedule demanding work during {peak} hours and protect that time.",
                confidence=conf,
                evidence={"morning": windows.morning, "afternoon": windows.afternoon,
                          "evening": windows.evening},
            ))
        return insights

    def analyze(self, records: Sequence[SleepInput],
                readiness: Optional[Sequence[float]] = None) -> ChronotypeAnalysis:
        nights = coerce_sleep_records(records)
        require_samples(len(nights), self.min_days, "nights of sleep data")
        work = [r for r in nights if not r.is_weekend]
        free = [r for r in nights if r.is_weekend]
        if not work or not free:
            raise InsufficientDataError("Need both work-day and free-day nights",
                                        required=1, available=0)

        work_mid = self._mean_midpoint(work, "work days")
        free_mid = self._mean_midpoint(free, "free days")
        overall_mid = self._mean_midpoint(nights, "nights")
        duration = self._mean_duration(nights)
        extension = self._mean_duration(free) - self._mean_duration(work)
        corrected = free_mid - extension / 2.0

        chronotype, score = classify_chronotype(corrected)
        jetlag = assess_social_jetlag(clock_gap(free_mid, work_mid), extension)
        confidence = self._confidence(nights, len(work), len(free))
        windows = self.readiness_windows(readiness) if readiness is not None else None

        bedtimes = [_unwrapped(clock_hours(r.bedtime_start)) for r in nights if r.bedtime_start]
        wakes = [clock_hours(r.bedtime_end) for r in nights if r.bedtime_end]
        timing = SleepTiming(
            average_midpoint=overall_mid,
            workday_midpoint=work_mid,
            freeday_midpoint=free_mid,
            corrected_midpoint=corrected,
            average_duration=duration,
            average_bedtime=float(np.mean(bedtimes)) % 24.0 if bedtimes else float("nan"),
            average_wake_time=float(np.mean(wakes)) if wakes else float("nan"),
            weekend_extension=extension,
        )
        log.info("Chronotype %s (score %.2f, MSFsc %.2fh, confidence %d)",
                 chronotype, score, corrected, confidence)
        return ChronotypeAnalysis(
            chronotype=chronotype,
            chronotype_score=score,
            confidence=confidence,
            timing=timing,
            social_jetlag=jetlag,
            circadian_phase=self.estimate_circadian_phase(corrected, duration),
            readiness_windows=windows,
            recommendations=self.generate_recommendations(chronotype, corrected),
            insights=self.generate_insights(chronotype, jetlag, extension, len(nights),
                                            windows, confidence),
        )
