"""
Canonical Health Records
========================
The internal, source-independent shape of every health event we store.

These models are the contract between the normaliser, the reconciliation
engine and the persistence layer. ``to_row()`` is the single place that
decides which columns a record writes; the storage schema follows these
models, not the other way round.

All timestamps are timezone-aware and written as UTC ISO 8601 strings so
the unique indexes on timestamp columns compare like with like.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator


def utc_iso(value: datetime) -> str:
    """Render a datetime as a UTC ISO string. Naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ---------------------------------------------------------------------------
# Glucose
# ---------------------------------------------------------------------------

class GlucoseReading(BaseModel):
    """One CGM reading. Unique on ``timestamp``; first write wins."""

    timestamp: datetime
    value: float  # mmol/L, one decimal
    trend: Optional[str] = None
    source: str = "tidepool"

    def to_row(self) -> dict:
        return {
            "timestamp": utc_iso(self.timestamp),
            "value": self.value,
            "trend": self.trend,
            "source": self.source,
        }


# ---------------------------------------------------------------------------
# Insulin
# ---------------------------------------------------------------------------

class InsulinDose(BaseModel):
    """A bolus (units delivered) or basal segment (units/hour).

    Unique on ``(timestamp, type)``: a bolus and a basal change can land on
    the same instant.
    """

    timestamp: datetime
    type: Literal["bolus", "basal"]
    units: float
    sub_type: Optional[str] = None
    duration: Optional[int] = None  # basal segment length, milliseconds
    source: str = "tidepool"

    def to_row(self) -> dict:
        return {
            "timestamp": utc_iso(self.timestamp),
            "type": self.type,
            "units": self.units,
            "sub_type": self.sub_type,
            "duration": self.duration,
            "source": self.source,
        }


# ---------------------------------------------------------------------------
# Running / workout sessions
# ---------------------------------------------------------------------------

class RunningSession(BaseModel):
    """A workout session, unique on ``start_time``.

    Created by the Tidepool activity pipeline without heart rate; the
    Strava reconciliation later fills ``avg_heart_rate``/``max_heart_rate``.
    ``id`` is only set on rows read back from storage.
    """

    id: Optional[int] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    distance_km: Optional[float] = None
    duration_seconds: Optional[int] = None
    avg_pace_sec_per_km: Optional[int] = None
    avg_heart_rate: Optional[int] = None
    max_heart_rate: Optional[int] = None
    elevation_gain_m: Optional[float] = None
    activity_name: str = ""
    active_calories: Optional[int] = None
    source: str = "tidepool"

    @field_validator("start_time", "end_time")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)

    def to_row(self) -> dict:
        return {
            "start_time": utc_iso(self.start_time),
            "end_time": utc_iso(self.end_time) if self.end_time else None,
            "distance_km": self.distance_km,
            "duration_seconds": self.duration_seconds,
            "avg_pace_sec_per_km": self.avg_pace_sec_per_km,
            "avg_heart_rate": self.avg_heart_rate,
            "max_heart_rate": self.max_heart_rate,
            "elevation_gain_m": self.elevation_gain_m,
            "activity_name": self.activity_name,
            "active_calories": self.active_calories,
            "source": self.source,
        }


class HeartRateCandidate(BaseModel):
    """A secondary-source activity that may carry heart rate for a session."""

    activity_id: int
    start_time: datetime
    distance_km: float = 0.0
    avg_heart_rate: Optional[int] = None
    max_heart_rate: Optional[int] = None

    @field_validator("start_time")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @property
    def has_heart_rate(self) -> bool:
        return self.avg_heart_rate is not None and self.max_heart_rate is not None


class HeartRateUpdate(BaseModel):
    """Field-level update proposed by reconciliation for one stored session."""

    session_id: int
    avg_heart_rate: int
    max_heart_rate: int
    activity_id: int

    def to_row(self) -> dict:
        return {
            "avg_heart_rate": self.avg_heart_rate,
            "max_heart_rate": self.max_heart_rate,
        }


# ---------------------------------------------------------------------------
# Daily rollups
# ---------------------------------------------------------------------------

class ActivitySummary(BaseModel):
    """Per-day workout totals, recomputed from sessions and overwritten."""

    date: date
    active_calories: int = 0
    exercise_minutes: int = 0
    workouts: int = Field(default=0, ge=0)

    def to_row(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "active_calories": self.active_calories,
            "exercise_minutes": self.exercise_minutes,
            "workouts": self.workouts,
        }
