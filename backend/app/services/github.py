"""
GitHub Sync
===========
Contribution calendar, repositories, per-repo language bytes and recent
public events for the code dashboard.

Contributions come from GraphQL, which needs a classic PAT with
``read:user``. When GraphQL is unavailable the calendar is approximated
from public events (one contribution per event, ~90 days of history).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from app.models.github import (
    ContributionDay,
    GitHubContribution,
    GitHubEvent,
    GitHubLanguageRow,
    GitHubRepo,
)
from app.models.sync import GitHubSyncResult, SyncStage
from app.services.errors import SyncError, ValidationError
from app.services.http import ArrayPage, FetchResult, paginate, parse_items, parse_page, request_json
from app.services.normalizer import contributions_from_events, parse_github_event, repo_row
from app.services.persistence import ConflictPolicy, SupabaseRepository

logger = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"
SOURCE = "github"
REPOS_PER_PAGE = 100

_CONTRIBUTIONS_QUERY = """
query($login: String!) {
  user(login: $login) {
    contributionsCollection {
      contributionCalendar {
        weeks {
          contributionDays {
            date
            contributionCount
          }
        }
      }
    }
  }
}
"""


class GitHubClient:
    """Token-authenticated reads from the GitHub REST and GraphQL APIs."""

    def __init__(self, http: httpx.AsyncClient, token: str, page_delay_seconds: float = 0.0) -> None:
        self._http = http
        self._token = token
        self._page_delay = page_delay_seconds

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"token {self._token}",
            "Accept": "application/vnd.github.v3+json",
        }

    async def fetch_contributions(self, username: str) -> list[GitHubContribution]:
        try:
            days = await self._fetch_contribution_calendar(username)
        except (SyncError, PydanticValidationError) as exc:
            logger.info("GitHub GraphQL unavailable (%s); deriving contributions from events", exc)
            days = []
        if days:
            return [GitHubContribution(date=d.date, count=d.contribution_count) for d in days]

        events = await self.fetch_events(username)
        return contributions_from_events(events)

    async def _fetch_contribution_calendar(self, username: str) -> list[ContributionDay]:
        payload = await request_json(
            self._http,
            SOURCE,
            "POST",
            f"{GITHUB_API}/graphql",
            json={"query": _CONTRIBUTIONS_QUERY, "variables": {"login": username}},
            headers={"Authorization": f"bearer {self._token}"},
        )
        weeks = (
            ((((payload or {}).get("data") or {}).get("user") or {})
             .get("contributionsCollection") or {})
            .get("contributionCalendar") or {}
        ).get("weeks") or []
        return [
            ContributionDay.model_validate(day)
            for week in weeks
            for day in week.get("contributionDays", [])
        ]

    async def fetch_repos(self, username: str) -> FetchResult[GitHubRepo]:
        """Every public repo, newest push first. Stops after a short page."""

        async def fetch_page(page: int) -> tuple[list, Optional[int]]:
            payload = await request_json(
                self._http,
                SOURCE,
                "GET",
                f"{GITHUB_API}/users/{username}/repos",
                params={"sort": "pushed", "per_page": REPOS_PER_PAGE, "page": page},
                headers=self._headers,
            )
            parsed = parse_page(SOURCE, payload)
            if not isinstance(parsed, ArrayPage):
                raise ValidationError(SOURCE, "repos response is not a JSON array")
            more = len(parsed.items) >= REPOS_PER_PAGE
            return parsed.items, (page + 1 if more else None)

        raw = await paginate(SOURCE, fetch_page, 1, delay_seconds=self._page_delay)
        repos, rejected = parse_items(SOURCE, GitHubRepo, raw.records)
        return FetchResult(records=repos, error=raw.error, pages=raw.pages, rejected=rejected)

    async def fetch_languages(self, owner: str, repo: str) -> dict[str, int]:
        """Language → bytes. A failure only loses this repo's breakdown."""
        try:
            payload = await request_json(
                self._http, SOURCE, "GET", f"{GITHUB_API}/repos/{owner}/{repo}/languages",
                headers=self._headers,
            )
        except SyncError as exc:
            logger.warning("GitHub languages for %s/%s unavailable: %s", owner, repo, exc)
            return {}
        if not isinstance(payload, dict):
            return {}
        return {lang: int(n) for lang, n in payload.items() if isinstance(n, (int, float))}

    async def fetch_events(self, username: str) -> list[GitHubEvent]:
        payload = await request_json(
            self._http,
            SOURCE,
            "GET",
            f"{GITHUB_API}/users/{username}/events",
            params={"per_page": 100},
            headers=self._headers,
        )
        parsed = parse_page(SOURCE, payload)
        events, _ = parse_items(SOURCE, GitHubEvent, parsed.items)
        return events


async def sync_github(
    repository: SupabaseRepository,
    client: GitHubClient,
    username: str,
    result: GitHubSyncResult,
) -> GitHubSyncResult:
    """Contributions → repos → languages → events, in that order.

    Counts accumulate on ``result`` as each step lands, so a failure part
    way through still reports what was written.
    """
    problems: list[str] = []

    result.stage = SyncStage.FETCHING
    contributions = await client.fetch_contributions(username)
    result.stage = SyncStage.PERSISTING
    written = repository.upsert_records(
        "github_contributions", contributions, "date", ConflictPolicy.OVERWRITE
    )
    result.contributions = written.inserted
    problems += [str(e) for e in written.errors]

    result.stage = SyncStage.FETCHING
    fetched = await client.fetch_repos(username)
    if fetched.error:
        if not fetched.records:
            raise fetched.error
        problems.append(str(fetched.error))
    repos = fetched.records
    result.rejected += fetched.rejected

    result.stage = SyncStage.PERSISTING
    written = repository.upsert_records(
        "github_repos", [repo_row(r) for r in repos], "full_name", ConflictPolicy.OVERWRITE
    )
    result.repos = written.inserted
    problems += [str(e) for e in written.errors]

    result.stage = SyncStage.FETCHING
    active = [r for r in repos if not r.fork and not r.archived]
    breakdowns = await asyncio.gather(*(client.fetch_languages(r.owner, r.name) for r in active))
    languages = [
        GitHubLanguageRow(repo_name=repo.full_name, language=lang, bytes=n)
        for repo, breakdown in zip(active, breakdowns)
        for lang, n in breakdown.items()
    ]
    result.stage = SyncStage.PERSISTING
    written = repository.upsert_records(
        "github_languages", languages, "repo_name,language", ConflictPolicy.OVERWRITE
    )
    result.languages = written.inserted
    problems += [str(e) for e in written.errors]

    result.stage = SyncStage.FETCHING
    events = await client.fetch_events(username)
    result.stage = SyncStage.NORMALIZING
    rows = [parse_github_event(e) for e in events]
    result.stage = SyncStage.PERSISTING
    written = repository.upsert_records(
        "github_events", rows, "timestamp,type,repo", ConflictPolicy.IGNORE
    )
    result.events = written.inserted
    problems += [str(e) for e in written.errors]

    result.processed = len(contributions) + len(repos) + len(languages) + len(rows)
    logger.info(
        "GitHub sync: contributions=%d repos=%d languages=%d events=%d",
        result.contributions, result.repos, result.languages, result.events,
    )
    result.complete(problems)
    return result
