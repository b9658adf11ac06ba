"""
Unit & Schema Normaliser
========================
Pure functions turning each upstream's record shape into the canonical
records in ``app.models``. No network and no storage, so everything here is
deterministic and tested directly.

Rules that apply throughout:
- Distances end up in km, durations in seconds, energy in kcal.
- An absent upstream field stays ``None``. Missing is not zero: a run with
  no recorded distance is different from a run of 0 km.
- A record that cannot be normalised raises ValidationError;
  ``normalize_many`` drops and counts it so the rest of the batch survives.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, timedelta, timezone
from typing import Callable, Iterable, Optional, TypeVar

import pandas as pd

from app.models.claude_usage import ClaudeCodeDaily, ClaudeCodeModelDaily, ClaudeCodeRecord
from app.models.github import GitHubContribution, GitHubEvent, GitHubEventRow, GitHubRepo, GitHubRepoRow
from app.models.health import (
    ActivitySummary,
    GlucoseReading,
    HeartRateCandidate,
    InsulinDose,
    RunningSession,
)
from app.models.strava import StravaActivity
from app.models.tidepool import (
    TidepoolBasal,
    TidepoolBolus,
    TidepoolCBG,
    TidepoolPhysicalActivity,
    TidepoolQuantity,
)
from app.services.errors import ValidationError

logger = logging.getLogger(__name__)

R = TypeVar("R")
C = TypeVar("C")

KM_PER_MILE = 1.60934
KJ_PER_KCAL = 4.184


# ---------------------------------------------------------------------------
# Units
# ---------------------------------------------------------------------------

def convert_distance_km(value: float, units: str) -> float:
    units = (units or "").lower()
    if units in ("miles", "mile", "mi"):
        return value * KM_PER_MILE
    if units in ("meters", "metres", "m"):
        return value / 1000
    return value


def convert_duration_seconds(value: float, units: str) -> float:
    units = (units or "").lower()
    if units in ("hours", "hour", "h"):
        return value * 3600
    if units in ("minutes", "minute", "min"):
        return value * 60
    if units in ("milliseconds", "ms"):
        return value / 1000
    return value


def convert_energy_kcal(value: float, units: str) -> float:
    if (units or "").lower() in ("kilojoules", "kj"):
        return value / KJ_PER_KCAL
    return value


def extract_activity_type(name: str) -> str:
    """``"Outdoor Run - 6.50 miles"`` -> ``"Outdoor Run"``."""
    dash = name.find(" - ")
    return name[:dash] if dash > 0 else name


def compute_pace(duration_seconds: Optional[float], distance_km: Optional[float]) -> Optional[int]:
    """Seconds per km, or None unless both are known and distance > 0."""
    if not duration_seconds or distance_km is None or distance_km <= 0:
        return None
    return round(duration_seconds / distance_km)


# ---------------------------------------------------------------------------
# Tidepool
# ---------------------------------------------------------------------------

def normalize_cbg(item: TidepoolCBG) -> GlucoseReading:
    return GlucoseReading(
        timestamp=item.time,
        value=round(item.value, 1),
        trend=item.trend or None,
        source="tidepool",
    )


def normalize_bolus(item: TidepoolBolus) -> InsulinDose:
    if item.normal is None and item.extended is None:
        raise ValidationError("tidepool", f"bolus at {item.time.isoformat()} has no delivered amount")
    return InsulinDose(
        timestamp=item.time,
        type="bolus",
        units=(item.normal or 0.0) + (item.extended or 0.0),
        sub_type=item.sub_type,
        duration=None,
    )


def normalize_basal(item: TidepoolBasal) -> InsulinDose:
    rate = item.rate
    if rate is None:
        # A suspended pump delivers nothing; any other basal without a rate is broken
        if item.delivery_type != "suspend":
            raise ValidationError("tidepool", f"basal at {item.time.isoformat()} has no rate")
        rate = 0.0
    return InsulinDose(
        timestamp=item.time,
        type="basal",
        units=rate,
        sub_type=item.delivery_type,
        duration=item.duration,
    )


def _quantity(q: Optional[TidepoolQuantity], convert: Callable[[float, str], float]) -> Optional[float]:
    if q is None:
        return None
    return convert(q.value, q.units)


def normalize_physical_activity(item: TidepoolPhysicalActivity) -> RunningSession:
    duration = _quantity(item.duration, convert_duration_seconds)
    distance = _quantity(item.distance, convert_distance_km)
    energy = _quantity(item.energy, convert_energy_kcal)

    return RunningSession(
        start_time=item.time,
        end_time=item.time + timedelta(seconds=duration) if duration else None,
        distance_km=round(distance, 2) if distance is not None else None,
        duration_seconds=round(duration) if duration is not None else None,
        avg_pace_sec_per_km=compute_pace(duration, distance),
        activity_name=extract_activity_type(item.name),
        active_calories=round(energy) if energy is not None else None,
        source="tidepool",
    )


# ---------------------------------------------------------------------------
# Strava
# ---------------------------------------------------------------------------

def normalize_strava_activity(activity: StravaActivity) -> HeartRateCandidate:
    return HeartRateCandidate(
        activity_id=activity.id,
        start_time=activity.start_date,
        distance_km=activity.distance / 1000,
        avg_heart_rate=round(activity.average_heartrate) if activity.average_heartrate is not None else None,
        max_heart_rate=round(activity.max_heartrate) if activity.max_heartrate is not None else None,
    )


# ---------------------------------------------------------------------------
# Batches & rollups
# ---------------------------------------------------------------------------

def normalize_many(source: str, fn: Callable[[R], C], items: Iterable[R]) -> tuple[list[C], int]:
    """Apply ``fn`` to each item. Returns (normalised, rejected_count)."""
    out: list[C] = []
    rejected = 0
    for item in items:
        try:
            out.append(fn(item))
        except ValidationError as exc:
            rejected += 1
            logger.warning("%s", exc)
    if rejected:
        logger.warning("%s: %d of %d records rejected during normalisation", source, rejected, rejected + len(out))
    return out, rejected


def summarize_activity(sessions: Iterable[RunningSession]) -> list[ActivitySummary]:
    """Per-UTC-day totals of calories, exercise minutes and workout count.

    The caller must pass every session of each day it wants summarised:
    the result replaces the stored row, it is not added to it.
    """
    rows = [
        {
            "date": s.start_time.astimezone(timezone.utc).date() if s.start_time.tzinfo else s.start_time.date(),
            "calories": s.active_calories,
            "minutes": s.duration_seconds / 60 if s.duration_seconds is not None else None,
        }
        for s in sessions
    ]
    if not rows:
        return []

    frame = pd.DataFrame(rows)
    frame["calories"] = pd.to_numeric(frame["calories"], errors="coerce")
    frame["minutes"] = pd.to_numeric(frame["minutes"], errors="coerce")
    grouped = (
        frame.groupby("date")
        .agg(calories=("calories", "sum"), minutes=("minutes", "sum"), workouts=("date", "size"))
        .sort_index()
    )

    return [
        ActivitySummary(
            date=day,
            active_calories=int(round(row.calories)),
            exercise_minutes=int(round(row.minutes)),
            workouts=int(row.workouts),
        )
        for day, row in grouped.iterrows()
    ]


# ---------------------------------------------------------------------------
# Claude Code usage
# ---------------------------------------------------------------------------

def aggregate_claude_day(
    day: date, records: Iterable[ClaudeCodeRecord]
) -> tuple[ClaudeCodeDaily, list[ClaudeCodeModelDaily]]:
    """Sum every actor's record for ``day`` into a daily row and per-model rows."""
    daily = ClaudeCodeDaily(date=day)
    models: dict[str, ClaudeCodeModelDaily] = {}

    for r in records:
        core = r.core_metrics
        daily.sessions += core.num_sessions
        daily.lines_added += core.lines_of_code.added
        daily.lines_removed += core.lines_of_code.removed
        daily.commits += core.commits_by_claude_code
        daily.pull_requests += core.pull_requests_by_claude_code

        tools = r.tool_actions
        for edit in (tools.edit_tool, tools.multi_edit_tool):
            if edit is not None:
                daily.edit_accepted += edit.accepted
                daily.edit_rejected += edit.rejected
        if tools.write_tool is not None:
            daily.write_accepted += tools.write_tool.accepted
            daily.write_rejected += tools.write_tool.rejected

        for mb in r.model_breakdown:
            t = mb.tokens
            cost = mb.estimated_cost.amount
            daily.input_tokens += t.input
            daily.output_tokens += t.output
            daily.cache_read_tokens += t.cache_read
            daily.cache_creation_tokens += t.cache_creation
            daily.cost_cents += cost

            m = models.setdefault(mb.model, ClaudeCodeModelDaily(date=day, model=mb.model))
            m.input_tokens += t.input
            m.output_tokens += t.output
            m.cache_read_tokens += t.cache_read
            m.cache_creation_tokens += t.cache_creation
            m.cost_cents += cost

    return daily, list(models.values())


# ---------------------------------------------------------------------------
# GitHub
# ---------------------------------------------------------------------------

def repo_row(repo: GitHubRepo) -> GitHubRepoRow:
    return GitHubRepoRow(
        full_name=repo.full_name,
        name=repo.name,
        description=repo.description,
        url=repo.html_url,
        language=repo.language,
        stars=repo.stargazers_count,
        forks=repo.forks_count,
        is_archived=repo.archived,
        is_fork=repo.fork,
        updated_at=repo.updated_at,
        pushed_at=repo.pushed_at,
    )


def _title(payload: dict, key: str) -> str:
    section = payload.get(key) or {}
    return section.get("title") or ""


def parse_github_event(event: GitHubEvent) -> GitHubEventRow:
    """Collapse a public event into (type, message, ref) for the activity feed."""
    p = event.payload
    ref: Optional[str] = None
    message: Optional[str]

    if event.type == "PushEvent":
        kind = "push"
        commits = p.get("commits") or []
        first = commits[0].get("message") if commits else None
        message = first.split("\n", 1)[0] if first else None
        ref = p.get("ref")
    elif event.type == "PullRequestEvent":
        kind = "pr"
        message = f"{p.get('action')}: {_title(p, 'pull_request')}"
    elif event.type == "IssuesEvent":
        kind = "issue"
        message = f"{p.get('action')}: {_title(p, 'issue')}"
    elif event.type == "PullRequestReviewEvent":
        kind = "review"
        review = p.get("review") or {}
        message = f"{review.get('state')}: {_title(p, 'pull_request')}"
    elif event.type == "CreateEvent":
        kind = "create"
        message = f"Created {p.get('ref_type') or 'ref'}"
        ref = p.get("ref")
    elif event.type == "DeleteEvent":
        kind = "delete"
        message = f"Deleted {p.get('ref_type') or 'ref'}"
        ref = p.get("ref")
    else:
        kind = event.type.replace("Event", "").lower()
        message = None

    return GitHubEventRow(
        timestamp=event.created_at,
        type=kind,
        repo=event.repo.name,
        message=message,
        ref=ref,
    )


def contributions_from_events(events: Iterable[GitHubEvent]) -> list[GitHubContribution]:
    """Fallback contribution calendar: one contribution per public event."""
    by_date: dict[date, int] = defaultdict(int)
    for e in events:
        by_date[e.created_at.astimezone(timezone.utc).date()] += 1
    return [GitHubContribution(date=d, count=n) for d, n in sorted(by_date.items())]
