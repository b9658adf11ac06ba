"""
Tidepool API Response Models
============================
Pydantic shapes for parsing raw Tidepool ``/data/{userId}`` JSON.
Used internally by the Tidepool fetcher before normalising into the
canonical health records. Not exposed as API responses.

Tidepool uses camelCase keys; aliases keep our attribute names snake_case.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


@dataclass(frozen=True)
class TidepoolSession:
    """Ephemeral login session. Never persisted."""

    token: str
    user_id: str


class TidepoolQuantity(BaseModel):
    """A value with its unit, e.g. ``{"value": 6.5, "units": "miles"}``."""

    value: float
    units: str = ""


class TidepoolCBG(BaseModel):
    """One continuous glucose reading (mmol/L)."""

    time: datetime
    value: float
    units: Optional[str] = None
    trend: Optional[str] = None


class TidepoolBolus(BaseModel):
    """One bolus event. ``normal`` and ``extended`` together make the dose."""

    model_config = {"populate_by_name": True}

    time: datetime
    sub_type: Optional[str] = Field(default=None, alias="subType")
    normal: Optional[float] = None
    extended: Optional[float] = None


class TidepoolBasal(BaseModel):
    """One basal segment. ``rate`` is units/hour, ``duration`` milliseconds."""

    model_config = {"populate_by_name": True}

    time: datetime
    delivery_type: Optional[str] = Field(default=None, alias="deliveryType")
    rate: Optional[float] = None
    duration: Optional[int] = None


class TidepoolPhysicalActivity(BaseModel):
    """A workout as exported by the phone/watch into Tidepool."""

    time: datetime
    name: str = ""
    distance: Optional[TidepoolQuantity] = None
    duration: Optional[TidepoolQuantity] = None
    energy: Optional[TidepoolQuantity] = None
