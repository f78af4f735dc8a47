"""Tests for the Outlook calendar client."""

from datetime import UTC, datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from lms_o365.core.o365.calendar import UTC_PREFER_HEADER, CalendarClient


@pytest.fixture
def client():
    return CalendarClient(MagicMock())


class TestGetCalendars:
    @pytest.mark.asyncio
    async def test_default_calendar_first(self, client):
        client._paginate = AsyncMock(
            return_value=[
                {"id": "b", "name": "Birthdays", "isDefaultCalendar": False},
                {"id": "a", "name": "Calendar", "isDefaultCalendar": True},
            ]
        )

        calendars = await client.get_calendars()

        assert [c["id"] for c in calendars] == ["a", "b"]


class TestGetEvents:
    @pytest.mark.asyncio
    async def test_requests_utc_times(self, client):
        client._paginate = AsyncMock(return_value=[{"id": "e1"}])

        result = await client.get_events("cal1")

        assert result == {"value": [{"id": "e1"}]}
        kwargs = client._paginate.call_args.kwargs
        assert kwargs["headers"] == UTC_PREFER_HEADER
        assert "$filter" not in kwargs["params"]

    @pytest.mark.asyncio
    async def test_since_filter_uses_utc(self, client):
        client._paginate = AsyncMock(return_value=[])
        since = datetime(2026, 3, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))

        await client.get_events("cal1", since=since)

        params = client._paginate.call_args.kwargs["params"]
        assert params["$filter"] == "createdDateTime ge 2026-03-01T10:00:00Z"

    @pytest.mark.asyncio
    async def test_naive_since_treated_as_utc(self, client):
        client._paginate = AsyncMock(return_value=[])

        await client.get_events("cal1", since=datetime(2026, 3, 1, 8, 30))

        params = client._paginate.call_args.kwargs["params"]
        assert params["$filter"] == "createdDateTime ge 2026-03-01T08:30:00Z"
        assert client._paginate.call_args.args[0] == "/me/calendars/cal1/events"

    @pytest.mark.asyncio
    async def test_aware_since_unchanged(self, client):
        client._paginate = AsyncMock(return_value=[])

        await client.get_events("cal1", since=datetime(2026, 3, 1, tzinfo=UTC))

        params = client._paginate.call_args.kwargs["params"]
        assert params["$filter"].endswith("2026-03-01T00:00:00Z")


class TestGetCalendarGroups:
    @pytest.mark.asyncio
    async def test_only_unified_groups(self, client):
        client._paginate = AsyncMock(
            return_value=[
                {"id": "g1", "mail": "course@contoso.com", "groupTypes": ["Unified"]},
                {"id": "g2", "mail": "sec@contoso.com", "groupTypes": []},
                {"id": "g3", "mail": "x@contoso.com", "groupTypes": None},
            ]
        )

        groups = await client.get_calendar_groups()

        assert [g["id"] for g in groups] == ["g1"]
