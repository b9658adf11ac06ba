"""
Tests for the upstream HTTP helpers
===================================
Covers:
- parse_page(): bare array vs envelope, bad ``data`` type, scalar body
- request_json(): non-2xx → FetchError with truncated body, non-JSON 2xx
- paginate(): stops on a None cursor, keeps pages 1..N-1 when page N fails
- parse_items(): malformed items are dropped and counted

Run: pytest tests/test_http.py -v
"""

from __future__ import annotations

import httpx
import pytest
import respx
from httpx import Response

from app.models.strava import StravaActivity
from app.services.errors import FetchError, ValidationError
from app.services.http import ArrayPage, EnvelopePage, paginate, parse_items, parse_page, request_json


class TestParsePage:

    def test_bare_array(self):
        page = parse_page("strava", [{"id": 1}])
        assert isinstance(page, ArrayPage)
        assert page.items == [{"id": 1}]

    def test_envelope_with_more(self):
        page = parse_page("claude", {"data": [1, 2], "has_more": True, "next_page": "cur-2"})
        assert isinstance(page, EnvelopePage)
        assert page.has_more
        assert page.next_page == "cur-2"

    def test_has_more_without_cursor_is_final(self):
        page = parse_page("claude", {"data": [], "has_more": True, "next_page": None})
        assert not page.has_more

    def test_data_not_a_list(self):
        with pytest.raises(ValidationError):
            parse_page("claude", {"data": {"oops": 1}})

    def test_scalar_body(self):
        with pytest.raises(ValidationError):
            parse_page("strava", "rate limited")


class TestRequestJson:

    @pytest.mark.asyncio
    @respx.mock
    async def test_non_2xx_raises_fetch_error(self):
        respx.get("https://api.example.test/items").mock(return_value=Response(503, text="x" * 500))

        async with httpx.AsyncClient() as http:
            with pytest.raises(FetchError) as exc_info:
                await request_json(http, "example", "GET", "https://api.example.test/items")

        assert exc_info.value.status_code == 503
        assert len(exc_info.value.body) <= 203

    @pytest.mark.asyncio
    @respx.mock
    async def test_non_json_body(self):
        respx.get("https://api.example.test/items").mock(return_value=Response(200, text="<html>"))

        async with httpx.AsyncClient() as http:
            with pytest.raises(ValidationError):
                await request_json(http, "example", "GET", "https://api.example.test/items")


class TestPaginate:

    @pytest.mark.asyncio
    async def test_walks_until_cursor_is_none(self):
        pages = {1: ([1, 2], 2), 2: ([3], 3), 3: ([], None)}

        async def fetch_page(cursor):
            return pages[cursor]

        result = await paginate("example", fetch_page, 1)

        assert result.records == [1, 2, 3]
        assert result.pages == 3
        assert result.ok

    @pytest.mark.asyncio
    async def test_failure_keeps_earlier_pages(self):
        async def fetch_page(cursor):
            if cursor == 3:
                raise FetchError("example", 429, "Rate Limit Exceeded")
            return [cursor * 10], cursor + 1

        result = await paginate("example", fetch_page, 1)

        assert result.records == [10, 20]
        assert result.pages == 2
        assert isinstance(result.error, FetchError)
        assert not result.ok


class TestParseItems:

    def test_malformed_items_are_counted(self):
        items = [
            {"id": 1, "start_date": "2026-03-09T07:00:00Z", "distance": 5000},
            {"id": "not-a-number", "start_date": "2026-03-09T07:00:00Z"},
            {"start_date": "2026-03-09T07:00:00Z"},
        ]
        parsed, rejected = parse_items("strava", StravaActivity, items)

        assert len(parsed) == 1
        assert rejected == 2
