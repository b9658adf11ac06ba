"""
Strava API Response Models
==========================
Raw shapes returned by ``/oauth/token`` and ``/athlete/activities``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class StravaTokenResponse(BaseModel):
    """Response from the Strava OAuth token endpoint.

    Strava rotates ``refresh_token`` on use, so the caller must persist it.
    """

    access_token: str
    refresh_token: str
    expires_at: Optional[int] = None  # unix seconds
    token_type: Optional[str] = None


class StravaActivity(BaseModel):
    """One summary activity. ``distance`` is metres, times are seconds."""

    id: int
    type: str = ""
    start_date: datetime
    distance: float = 0.0
    moving_time: Optional[int] = None
    elapsed_time: Optional[int] = None
    average_heartrate: Optional[float] = None
    max_heartrate: Optional[float] = None
    total_elevation_gain: Optional[float] = None
