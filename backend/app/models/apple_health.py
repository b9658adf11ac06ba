"""
Apple Health Sync Schemas
=========================
Payload pushed by the iOS Shortcuts export. The phone sends camelCase keys;
aliases map them onto snake_case attributes.

Every section is optional; the shortcut only includes what changed.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class DailyActivityPayload(_CamelModel):
    date: date
    steps: Optional[int] = None
    active_calories: Optional[int] = Field(default=None, alias="activeCalories")
    basal_calories: Optional[int] = Field(default=None, alias="basalCalories")
    exercise_minutes: Optional[int] = Field(default=None, alias="exerciseMinutes")
    stand_hours: Optional[int] = Field(default=None, alias="standHours")
    walk_distance_km: Optional[float] = Field(default=None, alias="walkDistanceKm")
    cycle_distance_km: Optional[float] = Field(default=None, alias="cycleDistanceKm")


class WorkoutPayload(_CamelModel):
    workout_type: str = Field(..., min_length=1, alias="workoutType")
    start_time: datetime = Field(..., alias="startTime")
    end_time: Optional[datetime] = Field(default=None, alias="endTime")
    duration_seconds: Optional[int] = Field(default=None, alias="durationSeconds")
    distance_km: Optional[float] = Field(default=None, alias="distanceKm")
    active_calories: Optional[int] = Field(default=None, alias="activeCalories")
    avg_heart_rate: Optional[int] = Field(default=None, alias="avgHeartRate")
    max_heart_rate: Optional[int] = Field(default=None, alias="maxHeartRate")


class HeartRateDailyPayload(_CamelModel):
    date: date
    resting_hr: Optional[int] = Field(default=None, alias="restingHR")
    walking_hr_avg: Optional[int] = Field(default=None, alias="walkingHRAvg")
    hrv: Optional[float] = None


class VitalPayload(_CamelModel):
    type: Literal["vo2max", "respiratory_rate", "spo2"]
    date: date
    value: float


class SleepSessionPayload(_CamelModel):
    date: date
    bedtime: Optional[datetime] = None
    wake_time: Optional[datetime] = Field(default=None, alias="wakeTime")
    total_minutes: Optional[int] = Field(default=None, alias="totalMinutes")
    rem_minutes: Optional[int] = Field(default=None, alias="remMinutes")
    core_minutes: Optional[int] = Field(default=None, alias="coreMinutes")
    deep_minutes: Optional[int] = Field(default=None, alias="deepMinutes")
    awake_minutes: Optional[int] = Field(default=None, alias="awakeMinutes")


class BodyMeasurementPayload(_CamelModel):
    type: Literal["weight", "body_fat"]
    date: date
    value: float


class AppleHealthSyncPayload(_CamelModel):
    sync_timestamp: datetime = Field(..., alias="syncTimestamp")
    daily_activity: list[DailyActivityPayload] = Field(default_factory=list, alias="dailyActivity")
    workouts: list[WorkoutPayload] = Field(default_factory=list)
    heart_rate_daily: list[HeartRateDailyPayload] = Field(default_factory=list, alias="heartRateDaily")
    vitals: list[VitalPayload] = Field(default_factory=list)
    sleep_sessions: list[SleepSessionPayload] = Field(default_factory=list, alias="sleepSessions")
    body_measurements: list[BodyMeasurementPayload] = Field(default_factory=list, alias="bodyMeasurements")


class AppleHealthSyncResponse(BaseModel):
    """Rows written per section. Sections absent from the payload are omitted."""

    ok: bool = True
    result: dict[str, int]
    failed: int = 0
