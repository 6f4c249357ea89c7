"""
Daily record types and frame helpers.

The data-acquisition side hands over ring payloads (durations in seconds,
ISO timestamps with the wearer's UTC offset).  ``SleepRecord.from_mapping``
converts one payload; ``build_daily_frame`` joins sleep, activity and
readiness payloads into the one-row-per-day frame the insight engine
consumes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd

from ring_insights.errors import ConfigurationError

log = logging.getLogger("records")

SECONDS_PER_HOUR = 3600.0

# Engine column -> (payload field, divisor)
SLEEP_COLUMNS = {
    "sleep_hours": ("total_sleep_duration", SECONDS_PER_HOUR),
    "deep_hours": ("deep_sleep_duration", SECONDS_PER_HOUR),
    "rem_hours": ("rem_sleep_duration", SECONDS_PER_HOUR),
    "efficiency": ("efficiency", 1.0),
    "hrv": ("average_hrv", 1.0),
    "resting_hr": ("lowest_heart_rate", 1.0),
    "temperature_delta": ("temperature_delta", 1.0),
}
ACTIVITY_COLUMNS = {
    "steps": ("steps", 1.0),
    "active_calories": ("active_calories", 1.0),
    "activity_score": ("score", 1.0),
}
READINESS_COLUMNS = {
    "readiness_score": ("score", 1.0),
}
DAILY_COLUMNS = ["day", *SLEEP_COLUMNS, *ACTIVITY_COLUMNS, *READINESS_COLUMNS]


def _to_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return pd.Timestamp(value).date()
    except (ValueError, TypeError) as e:
        raise ConfigurationError(f"Unparseable day {value!r}") from e


def _to_datetime(value) -> Optional[datetime]:
    if value is None or value == "" or (not isinstance(value, str) and pd.isna(value)):
        return None
    if isinstance(value, datetime):
        return value
    try:
        return pd.Timestamp(value).to_pydatetime()
    except (ValueError, TypeError) as e:
        raise ConfigurationError(f"Unparseable timestamp {value!r}") from e


def _optional(value, divisor: float = 1.0) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    return float(value) / divisor


def clock_hours(moment: datetime) -> float:
    """Local wall-clock time as decimal hours, e.g. 23:30 -> 23.5."""
    return moment.hour + moment.minute / 60.0 + moment.second / 3600.0


def hours_to_clock(hours: float) -> str:
    """Decimal hours to a 12-hour clock string; wraps around midnight.

    >>> hours_to_clock(23.5)
    '11:30 PM'
    >>> hours_to_clock(-1)
    '11:00 PM'
    """
    total_minutes = int(round((hours % 24) * 60)) % (24 * 60)
    h, m = divmod(total_minutes, 60)
    period = "PM" if h >= 12 else "AM"
    display = h - 12 if h > 12 else (12 if h == 0 else h)
    return f"{display}:{m:02d} {period}"


@dataclass(frozen=True)
class SleepRecord:
    day: date
    total_sleep_hours: float
    bedtime_start: Optional[datetime] = None
    bedtime_end: Optional[datetime] = None
    deep_hours: Optional[float] = None
    rem_hours: Optional[float] = None
    efficiency: Optional[float] = None
    hrv: Optional[float] = None
    resting_hr: Optional[float] = None

    @property
    def is_weekend(self) -> bool:
        return self.day.weekday() >= 5

    @property
    def time_in_bed_hours(self) -> Optional[float]:
        if self.bedtime_start is None or self.bedtime_end is None:
            return None
        return (self.bedtime_end - self.bedtime_start).total_seconds() / SECONDS_PER_HOUR

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "SleepRecord":
        """Build from a ring payload (seconds) or an already-converted row (hours)."""
        if "day" not in payload:
            raise ConfigurationError("Sleep payload is missing 'day'")
        if "total_sleep_hours" in payload:
            total = _optional(payload["total_sleep_hours"])
        elif "sleep_hours" in payload:
            total = _optional(payload["sleep_hours"])
        else:
            total = _optional(payload.get("total_sleep_duration"), SECONDS_PER_HOUR)
        if total is None:
            raise ConfigurationError(f"Sleep payload for {payload['day']} has no duration")

        def pick(column: str) -> Optional[float]:
            if column in payload:
                return _optional(payload[column])
            source, divisor = SLEEP_COLUMNS[column]
            return _optional(payload.get(source), divisor)

        return cls(
            day=_to_date(payload["day"]),
            total_sleep_hours=total,
            bedtime_start=_to_datetime(payload.get("bedtime_start")),
            bedtime_end=_to_datetime(payload.get("bedtime_end")),
            deep_hours=pick("deep_hours"),
            rem_hours=pick("rem_hours"),
            efficiency=pick("efficiency"),
            hrv=pick("hrv"),
            resting_hr=pick("resting_hr"),
        )


SleepInput = Union[SleepRecord, Mapping[str, Any]]


def coerce_sleep_records(items: Iterable[SleepInput]) -> List[SleepRecord]:
    """Normalise records without reordering them."""
    return [item if isinstance(item, SleepRecord) else SleepRecord.from_mapping(item)
            for item in items]


def _payload_frame(payloads: Optional[Sequence[Mapping[str, Any]]], columns: dict) -> pd.DataFrame:
    if not payloads:
        # typed empty frame so the outer merge on ``day`` keeps datetime keys
        return pd.DataFrame({"day": pd.to_datetime([]),
                             **{column: pd.Series(dtype=np.float64) for column in columns}})
    raw = pd.DataFrame(list(payloads))
    if "day" not in raw.columns:
        raise ConfigurationError("Payloads must carry a 'day' field")
    out = pd.DataFrame({"day": pd.to_datetime(raw["day"])})
    for column, (source, divisor) in columns.items():
        if source in raw.columns:
            out[column] = pd.to_numeric(raw[source], errors="coerce") / divisor
        else:
            out[column] = np.nan
    return out.drop_duplicates("day", keep="last")


def build_daily_frame(sleep: Sequence[Mapping[str, Any]],
                      activity: Optional[Sequence[Mapping[str, Any]]] = None,
                      readiness: Optional[Sequence[Mapping[str, Any]]] = None) -> pd.DataFrame:
    """Outer-join the three payload streams on ``day`` into engine columns."""
    frame = _payload_frame(sleep, SLEEP_COLUMNS)
    for payloads, columns in ((activity, ACTIVITY_COLUMNS), (readiness, READINESS_COLUMNS)):
        frame = frame.merge(_payload_frame(payloads, columns), on="day", how="outer")
    return clean_daily_frame(frame)


def clean_daily_frame(frame: Union[pd.DataFrame, Sequence[Mapping[str, Any]]]) -> pd.DataFrame:
    """Sort by day, drop duplicate days and coerce metric columns to float.

    Missing engine columns are added as NaN so downstream layers can test
    availability with ``notna()``.
    """
    df = frame.copy() if isinstance(frame, pd.DataFrame) else pd.DataFrame(list(frame))
    if "day" not in df.columns:
        if "date" in df.columns:
            df = df.rename(columns={"date": "day"})
        else:
            raise ConfigurationError("Daily frame needs a 'day' column")
    df["day"] = pd.to_datetime(df["day"])
    df = df.sort_values("day").drop_duplicates("day", keep="last").reset_index(drop=True)
    for column in DAILY_COLUMNS[1:]:
        if column in df.columns:
            df[column] = pd.to_numeric(df[column], errors="coerce")
        else:
            df[column] = np.nan
    log.debug("Cleaned daily frame: %d days, %s -> %s", len(df),
              df["day"].min() if len(df) else None, df["day"].max() if len(df) else None)
    return df


def records_from_frame(frame: pd.DataFrame) -> List[SleepRecord]:
    """Sleep records for every day of a cleaned frame that has a duration."""
    df = clean_daily_frame(frame)
    records = []
    for row in df.to_dict("records"):
        if pd.isna(row.get("sleep_hours")):
            continue
        records.append(SleepRecord.from_mapping(row))
    return records
