"""
GitHub Schemas
==============
Raw REST/GraphQL shapes from api.github.com and the rows we store for the
code dashboard.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field

from app.models.health import utc_iso


# ---------------------------------------------------------------------------
# Upstream
# ---------------------------------------------------------------------------

class ContributionDay(BaseModel):
    model_config = {"populate_by_name": True}

    date: date
    contribution_count: int = Field(alias="contributionCount")


class GitHubRepo(BaseModel):
    name: str
    full_name: str
    description: Optional[str] = None
    html_url: str = ""
    language: Optional[str] = None
    stargazers_count: int = 0
    forks_count: int = 0
    archived: bool = False
    fork: bool = False
    updated_at: Optional[datetime] = None
    pushed_at: Optional[datetime] = None

    @property
    def owner(self) -> str:
        return self.full_name.split("/", 1)[0]


class GitHubEventRepo(BaseModel):
    name: str


class GitHubEvent(BaseModel):
    type: str
    repo: GitHubEventRepo
    payload: dict = Field(default_factory=dict)
    created_at: datetime


# ---------------------------------------------------------------------------
# Stored rows
# ---------------------------------------------------------------------------

class GitHubContribution(BaseModel):
    """Contribution count for one day. Overwritten on every sync."""

    date: date
    count: int

    def to_row(self) -> dict:
        return {"date": self.date.isoformat(), "count": self.count}


class GitHubRepoRow(BaseModel):
    full_name: str
    name: str
    description: Optional[str] = None
    url: str = ""
    language: Optional[str] = None
    stars: int = 0
    forks: int = 0
    is_archived: bool = False
    is_fork: bool = False
    updated_at: Optional[datetime] = None
    pushed_at: Optional[datetime] = None

    def to_row(self) -> dict:
        return {
            "full_name": self.full_name,
            "name": self.name,
            "description": self.description,
            "url": self.url,
            "language": self.language,
            "stars": self.stars,
            "forks": self.forks,
            "is_archived": self.is_archived,
            "is_fork": self.is_fork,
            "updated_at": utc_iso(self.updated_at) if self.updated_at else None,
            "pushed_at": utc_iso(self.pushed_at) if self.pushed_at else None,
        }


class GitHubLanguageRow(BaseModel):
    repo_name: str
    language: str
    bytes: int

    def to_row(self) -> dict:
        return {"repo_name": self.repo_name, "language": self.language, "bytes": self.bytes}


class GitHubEventRow(BaseModel):
    """A simplified public event. Unique on ``(timestamp, type, repo)``."""

    timestamp: datetime
    type: str
    repo: str
    message: Optional[str] = None
    ref: Optional[str] = None

    def to_row(self) -> dict:
        return {
            "timestamp": utc_iso(self.timestamp),
            "type": self.type,
            "repo": self.repo,
            "message": self.message,
            "ref": self.ref,
        }
