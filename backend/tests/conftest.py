"""
Shared fixtures
===============
``FakeSupabase`` is a small in-memory stand-in for the supabase-py query
builder, covering the calls SupabaseRepository makes:

- table().upsert(rows, on_conflict=..., ignore_duplicates=...).execute()
- table().update(values).eq(col, val).execute()
- table().select(...).eq()/gte()/lte()/is_()/order()/maybe_single().execute()

Upsert semantics follow PostgREST: with ignore_duplicates only the newly
inserted rows come back in ``data``; otherwise every written row does.
"""

from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any, Optional

import pytest

from app.config import Settings
from app.services.persistence import SupabaseRepository


class FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str) -> None:
        self._db = db
        self._table = table
        self._op: Optional[str] = None
        self._payload: Any = None
        self._on_conflict: Optional[str] = None
        self._ignore = False
        self._filters: list = []
        self._order: Optional[str] = None
        self._single = False

    # ---- Builders ----

    def upsert(self, rows, on_conflict: str = "", ignore_duplicates: bool = False):
        self._op = "upsert"
        self._payload = rows if isinstance(rows, list) else [rows]
        self._on_conflict = on_conflict
        self._ignore = ignore_duplicates
        return self

    def update(self, values: dict):
        self._op = "update"
        self._payload = values
        return self

    def select(self, *_columns):
        self._op = "select"
        return self

    def eq(self, column, value):
        self._filters.append(lambda r: r.get(column) == value)
        return self

    def gte(self, column, value):
        self._filters.append(lambda r: r.get(column) is not None and r[column] >= value)
        return self

    def lte(self, column, value):
        self._filters.append(lambda r: r.get(column) is not None and r[column] <= value)
        return self

    def is_(self, column, value):
        assert value == "null"
        self._filters.append(lambda r: r.get(column) is None)
        return self

    def order(self, column):
        self._order = column
        return self

    def maybe_single(self):
        self._single = True
        return self

    # ---- Execution ----

    def execute(self):
        self._db.calls.append((self._table, self._op))
        if self._table in self._db.fail_tables:
            raise RuntimeError(f"simulated failure writing {self._table}")
        rows = self._db.tables.setdefault(self._table, [])

        if self._op == "upsert":
            return SimpleNamespace(data=self._upsert(rows))
        if self._op == "update":
            matched = [r for r in rows if all(f(r) for f in self._filters)]
            for r in matched:
                r.update(self._payload)
            return SimpleNamespace(data=[dict(r) for r in matched])

        matched = [dict(r) for r in rows if all(f(r) for f in self._filters)]
        if self._order:
            matched.sort(key=lambda r: r[self._order])
        if self._single:
            # supabase-py returns no response object when nothing matched
            return SimpleNamespace(data=matched[0]) if matched else None
        return SimpleNamespace(data=matched)

    def _upsert(self, rows: list) -> list:
        keys = [k.strip() for k in self._on_conflict.split(",")]
        written = []
        for new in self._payload:
            existing = next(
                (r for r in rows if all(r.get(k) == new.get(k) for k in keys)), None
            )
            if existing is not None:
                if self._ignore:
                    continue
                existing.update(new)
                written.append(dict(existing))
                continue
            row = {"id": self._db.next_id(), **new}
            rows.append(row)
            written.append(dict(row))
        return written


class FakeSupabase:
    def __init__(self) -> None:
        self.tables: dict[str, list[dict]] = {}
        self.calls: list[tuple[str, Optional[str]]] = []
        self.fail_tables: set[str] = set()
        self._ids = 0

    def next_id(self) -> int:
        self._ids += 1
        return self._ids

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rows(self, name: str) -> list[dict]:
        return self.tables.get(name, [])


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def fake_db() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def repository(fake_db: FakeSupabase) -> SupabaseRepository:
    return SupabaseRepository(fake_db, param_limit=100)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        supabase_url="",
        supabase_service_key="",
        tidepool_email="me@example.com",
        tidepool_password="pw",
        strava_client_id="123",
        strava_client_secret="shh",
        github_token="ghp_test",
        github_username="octo",
        anthropic_admin_key="sk-ant-admin-test",
        apple_health_sync_secret="phone-secret",
        page_delay_seconds=0.0,
        sync_timeout_seconds=5.0,
        claude_lookback_days=2,
    )
