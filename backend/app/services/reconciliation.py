"""
Running Session Reconciliation
==============================
Fills heart rate on stored running sessions (recorded via Tidepool, which
carries no HR) from Strava activities describing the same run.

Two records are "the same run" when:
- their start times are at most 5 minutes apart, and
- either side has no usable distance (the stored session has none, or the
  Strava distance is 0), or the Strava distance is within 20% of the
  stored session's distance. GPS and footpod distances drift; 20% absorbs
  that.

The default matcher is greedy: candidates are taken in order and each one
claims the first session satisfying the predicate. A session that was
already claimed stays eligible, so two candidates can both land on it and
the later one wins. That mirrors how the dashboard has always behaved; the
double claims are counted in ``reclaimed`` and logged so they can be
reviewed before anyone changes the semantics.

Matching is behind ``SessionMatcher`` so an assignment that minimises the
start-time gap (``ClosestStartMatch``) can be dropped in by callers.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional, Sequence

from app.models.health import HeartRateCandidate, HeartRateUpdate, RunningSession

logger = logging.getLogger(__name__)

TIME_TOLERANCE = timedelta(minutes=5)
DISTANCE_TOLERANCE = 0.20


def is_same_run(
    session: RunningSession,
    candidate: HeartRateCandidate,
    time_tolerance: timedelta = TIME_TOLERANCE,
    distance_tolerance: float = DISTANCE_TOLERANCE,
) -> bool:
    if abs(session.start_time - candidate.start_time) > time_tolerance:
        return False

    if not session.distance_km or candidate.distance_km == 0:
        return True

    # Relative to the stored session: 10.0 vs 11.9 km is 19%, 10.0 vs 12.1 km is 21%
    return abs(session.distance_km - candidate.distance_km) / session.distance_km <= distance_tolerance


class SessionMatcher(ABC):
    """Picks the stored session a candidate describes, if any."""

    @abstractmethod
    def match(
        self,
        candidate: HeartRateCandidate,
        sessions: Sequence[RunningSession],
        claimed: set[int],
    ) -> Optional[RunningSession]:
        """``claimed`` holds ids already matched earlier in this run."""


class GreedyFirstMatch(SessionMatcher):
    """First session in order that satisfies the predicate. Ignores ``claimed``."""

    def match(self, candidate, sessions, claimed):
        for session in sessions:
            if is_same_run(session, candidate):
                return session
        return None


class ClosestStartMatch(SessionMatcher):
    """Unclaimed session with the smallest start-time gap."""

    def match(self, candidate, sessions, claimed):
        eligible = [
            s for s in sessions
            if s.id not in claimed and is_same_run(s, candidate)
        ]
        if not eligible:
            return None
        return min(eligible, key=lambda s: abs(s.start_time - candidate.start_time))


@dataclass
class ReconciliationResult:
    updates: list[HeartRateUpdate] = field(default_factory=list)
    matched: int = 0
    unmatched: int = 0
    reclaimed: int = 0


def reconcile(
    sessions: Sequence[RunningSession],
    candidates: Sequence[HeartRateCandidate],
    matcher: Optional[SessionMatcher] = None,
) -> ReconciliationResult:
    """Propose heart-rate updates for ``sessions`` from ``candidates``.

    Candidates without both average and max heart rate are ignored (neither
    matched nor unmatched). Only sessions that have a storage id can be
    updated. Nothing is written here.
    """
    matcher = matcher or GreedyFirstMatch()
    stored = [s for s in sessions if s.id is not None]
    result = ReconciliationResult()
    claimed: set[int] = set()

    for candidate in candidates:
        if not candidate.has_heart_rate:
            continue

        session = matcher.match(candidate, stored, claimed)
        if session is None:
            result.unmatched += 1
            continue

        if session.id in claimed:
            result.reclaimed += 1
            logger.warning(
                "Session %d (%s) matched again by Strava activity %d; later match wins",
                session.id, session.start_time.isoformat(), candidate.activity_id,
            )
        claimed.add(session.id)
        result.matched += 1
        result.updates.append(
            HeartRateUpdate(
                session_id=session.id,
                avg_heart_rate=candidate.avg_heart_rate,
                max_heart_rate=candidate.max_heart_rate,
                activity_id=candidate.activity_id,
            )
        )

    return result
