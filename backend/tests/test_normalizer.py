"""
Tests for the Unit & Schema Normaliser
======================================
Covers:
- Unit conversions: miles/metres → km, hours/minutes/ms → seconds, kJ → kcal
- Activity name trimming and pace computation
- Tidepool records → GlucoseReading / InsulinDose / RunningSession
- Strava activity → HeartRateCandidate
- Daily activity rollup (pandas)
- Claude Code daily aggregation and GitHub event mapping

Run: pytest tests/test_normalizer.py -v
"""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from app.models.claude_usage import ClaudeCodeRecord
from app.models.github import GitHubEvent
from app.models.health import RunningSession
from app.models.strava import StravaActivity
from app.models.tidepool import TidepoolBasal, TidepoolBolus, TidepoolCBG, TidepoolPhysicalActivity
from app.services.errors import ValidationError
from app.services.normalizer import (
    aggregate_claude_day,
    compute_pace,
    contributions_from_events,
    convert_distance_km,
    convert_duration_seconds,
    convert_energy_kcal,
    extract_activity_type,
    normalize_basal,
    normalize_bolus,
    normalize_cbg,
    normalize_many,
    normalize_physical_activity,
    normalize_strava_activity,
    parse_github_event,
    summarize_activity,
)

_T = datetime(2026, 3, 9, 7, 30, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Units
# ---------------------------------------------------------------------------

class TestUnits:

    def test_hours_to_seconds(self):
        assert convert_duration_seconds(1.5, "hours") == 5400

    def test_minutes_and_milliseconds(self):
        assert convert_duration_seconds(30, "minutes") == 1800
        assert convert_duration_seconds(90000, "milliseconds") == 90

    def test_seconds_unchanged(self):
        assert convert_duration_seconds(42, "seconds") == 42

    def test_miles_to_km(self):
        assert convert_distance_km(6.5, "miles") == pytest.approx(10.46, abs=0.01)

    def test_metres_to_km(self):
        assert convert_distance_km(5000, "meters") == 5.0

    def test_kilojoules_to_kcal(self):
        assert convert_energy_kcal(418.4, "kilojoules") == pytest.approx(100.0)
        assert convert_energy_kcal(300, "kilocalories") == 300

    def test_activity_type_is_text_before_dash(self):
        assert extract_activity_type("Outdoor Run - 6.50 miles") == "Outdoor Run"
        assert extract_activity_type("Yoga") == "Yoga"

    def test_pace_requires_positive_distance(self):
        assert compute_pace(3000, 10.0) == 300
        assert compute_pace(3000, 0) is None
        assert compute_pace(None, 10.0) is None
        assert compute_pace(3000, None) is None


# ---------------------------------------------------------------------------
# Tidepool
# ---------------------------------------------------------------------------

class TestTidepool:

    def test_cbg_rounds_to_one_decimal(self):
        reading = normalize_cbg(TidepoolCBG(time=_T, value=6.4821, units="mmol/L"))
        assert reading.value == 6.5
        assert reading.source == "tidepool"

    def test_bolus_units_are_normal_plus_extended(self):
        dose = normalize_bolus(TidepoolBolus.model_validate(
            {"time": _T.isoformat(), "subType": "dual/square", "normal": 2.0, "extended": 1.5}
        ))
        assert dose.type == "bolus"
        assert dose.units == 3.5
        assert dose.sub_type == "dual/square"

    def test_bolus_without_amount_is_rejected(self):
        with pytest.raises(ValidationError):
            normalize_bolus(TidepoolBolus(time=_T))

    def test_basal_units_are_rate(self):
        dose = normalize_basal(TidepoolBasal.model_validate(
            {"time": _T.isoformat(), "deliveryType": "scheduled", "rate": 0.85, "duration": 1800000}
        ))
        assert dose.type == "basal"
        assert dose.units == 0.85
        assert dose.sub_type == "scheduled"
        assert dose.duration == 1800000

    def test_suspended_basal_without_rate_is_zero(self):
        dose = normalize_basal(TidepoolBasal(time=_T, delivery_type="suspend"))
        assert dose.units == 0.0

    def test_scheduled_basal_without_rate_is_rejected(self):
        with pytest.raises(ValidationError):
            normalize_basal(TidepoolBasal(time=_T, delivery_type="scheduled"))

    def test_physical_activity_conversions(self):
        session = normalize_physical_activity(TidepoolPhysicalActivity.model_validate({
            "time": _T.isoformat(),
            "name": "Outdoor Run - 6.50 miles",
            "distance": {"value": 6.5, "units": "miles"},
            "duration": {"value": 1.0, "units": "hours"},
            "energy": {"value": 650.4, "units": "kilocalories"},
        }))
        assert session.activity_name == "Outdoor Run"
        assert session.distance_km == 10.46
        assert session.duration_seconds == 3600
        assert session.avg_pace_sec_per_km == round(3600 / (6.5 * 1.60934))
        assert session.active_calories == 650
        assert session.end_time == datetime(2026, 3, 9, 8, 30, tzinfo=timezone.utc)
        assert session.avg_heart_rate is None

    def test_physical_activity_without_distance_keeps_none(self):
        session = normalize_physical_activity(TidepoolPhysicalActivity(time=_T, name="Yoga"))
        assert session.distance_km is None
        assert session.duration_seconds is None
        assert session.avg_pace_sec_per_km is None
        assert session.end_time is None

    def test_normalize_many_counts_rejections(self):
        items = [
            TidepoolBolus(time=_T, normal=1.0),
            TidepoolBolus(time=_T),
        ]
        doses, rejected = normalize_many("tidepool", normalize_bolus, items)
        assert len(doses) == 1
        assert rejected == 1


# ---------------------------------------------------------------------------
# Strava
# ---------------------------------------------------------------------------

class TestStrava:

    def test_candidate_from_activity(self):
        candidate = normalize_strava_activity(StravaActivity(
            id=99, type="Run", start_date=_T, distance=10230.0,
            average_heartrate=149.6, max_heartrate=165.2,
        ))
        assert candidate.activity_id == 99
        assert candidate.distance_km == pytest.approx(10.23)
        assert candidate.avg_heart_rate == 150
        assert candidate.max_heart_rate == 165
        assert candidate.has_heart_rate

    def test_candidate_without_hr(self):
        candidate = normalize_strava_activity(StravaActivity(id=1, start_date=_T, distance=5000.0))
        assert not candidate.has_heart_rate


# ---------------------------------------------------------------------------
# Rollups
# ---------------------------------------------------------------------------

class TestSummaries:

    def test_groups_by_utc_day(self):
        sessions = [
            RunningSession(start_time=_T, duration_seconds=3600, active_calories=600),
            RunningSession(start_time=_T.replace(hour=18), duration_seconds=1800, active_calories=None),
            RunningSession(start_time=datetime(2026, 3, 10, 6, tzinfo=timezone.utc), duration_seconds=600, active_calories=80),
        ]
        summaries = summarize_activity(sessions)

        assert [s.date for s in summaries] == [date(2026, 3, 9), date(2026, 3, 10)]
        first = summaries[0]
        assert first.workouts == 2
        assert first.exercise_minutes == 90
        assert first.active_calories == 600
        assert summaries[1].workouts == 1

    def test_empty(self):
        assert summarize_activity([]) == []


class TestClaudeAggregation:

    def test_sums_records_and_models(self):
        day = date(2026, 3, 9)
        records = [
            ClaudeCodeRecord.model_validate({
                "date": "2026-03-09",
                "core_metrics": {
                    "num_sessions": 3,
                    "lines_of_code": {"added": 120, "removed": 30},
                    "commits_by_claude_code": 2,
                    "pull_requests_by_claude_code": 1,
                },
                "tool_actions": {
                    "edit_tool": {"accepted": 10, "rejected": 1},
                    "multi_edit_tool": {"accepted": 2, "rejected": 0},
                    "write_tool": {"accepted": 4, "rejected": 2},
                },
                "model_breakdown": [
                    {"model": "claude-sonnet", "tokens": {"input": 1000, "output": 200},
                     "estimated_cost": {"amount": 55.0}},
                ],
            }),
            ClaudeCodeRecord.model_validate({
                "date": "2026-03-09",
                "core_metrics": {"num_sessions": 1},
                "model_breakdown": [
                    {"model": "claude-sonnet", "tokens": {"input": 500, "cache_read": 800},
                     "estimated_cost": {"amount": 12.5}},
                    {"model": "claude-haiku", "tokens": {"output": 50}},
                ],
            }),
        ]

        daily, models = aggregate_claude_day(day, records)

        assert daily.sessions == 4
        assert daily.lines_added == 120
        assert daily.edit_accepted == 12
        assert daily.write_rejected == 2
        assert daily.input_tokens == 1500
        assert daily.cache_read_tokens == 800
        assert daily.cost_cents == pytest.approx(67.5)
        by_model = {m.model: m for m in models}
        assert by_model["claude-sonnet"].input_tokens == 1500
        assert by_model["claude-haiku"].output_tokens == 50


class TestGitHubEvents:

    def _event(self, type_: str, payload: dict) -> GitHubEvent:
        return GitHubEvent.model_validate({
            "type": type_,
            "repo": {"name": "octo/dash"},
            "payload": payload,
            "created_at": "2026-03-09T10:00:00Z",
        })

    def test_push_takes_first_commit_line(self):
        row = parse_github_event(self._event(
            "PushEvent",
            {"ref": "refs/heads/main", "commits": [{"message": "Fix sync\n\nlonger body"}]},
        ))
        assert row.type == "push"
        assert row.message == "Fix sync"
        assert row.ref == "refs/heads/main"

    def test_pull_request(self):
        row = parse_github_event(self._event(
            "PullRequestEvent", {"action": "opened", "pull_request": {"title": "Add HR"}}
        ))
        assert row.type == "pr"
        assert row.message == "opened: Add HR"

    def test_unknown_event_type(self):
        row = parse_github_event(self._event("WatchEvent", {"action": "started"}))
        assert row.type == "watch"
        assert row.message is None

    def test_contributions_from_events_counts_per_day(self):
        events = [self._event("PushEvent", {}), self._event("WatchEvent", {})]
        contributions = contributions_from_events(events)
        assert len(contributions) == 1
        assert contributions[0].count == 2
