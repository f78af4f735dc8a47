"""Outlook calendar operations via Microsoft Graph."""

from datetime import UTC, datetime
from typing import Any

from lms_o365.core.logging import get_logger
from lms_o365.core.o365.client import O365ApiClient

logger = get_logger(__name__)

# Ask Graph to express event start/end in UTC
UTC_PREFER_HEADER = {"Prefer": 'outlook.timezone="UTC"'}


class CalendarClient(O365ApiClient):
    """Read the signed-in user's Outlook calendars and events."""

    async def get_calendars(self) -> list[dict[str, Any]]:
        """List the user's calendars. The default calendar comes first."""
        calendars = await self._paginate(
            "/me/calendars",
            params={"$select": "id,name,isDefaultCalendar"},
        )
        calendars.sort(key=lambda c: not c.get("isDefaultCalendar", False))
        return calendars

    async def get_events(
        self,
        calendar_id: str,
        since: datetime | None = None,
    ) -> dict[str, Any]:
        """Get events from a calendar, optionally only those created since a time.

        Args:
            calendar_id: Remote calendar id
            since: Only return events created at or after this time

        Returns:
            ``{"value": [...]}`` with every page of events collected
        """
        params: dict[str, Any] = {"$top": 50}
        if since is not None:
            if since.tzinfo is None:
                since = since.replace(tzinfo=UTC)
            stamp = since.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
            params["$filter"] = f"createdDateTime ge {stamp}"

        events = await self._paginate(
            f"/me/calendars/{calendar_id}/events",
            params=params,
            headers=UTC_PREFER_HEADER,
        )
        logger.debug(
            "calendar_events_fetched",
            calendar_id=calendar_id[:16],
            count=len(events),
        )
        return {"value": events}

    async def get_calendar_groups(self) -> list[dict[str, Any]]:
        """List the Office 365 (Unified) groups the user belongs to.

        Each group carries id, displayName, mail and visibility, which is
        enough to offer the group calendar as a sync target.
        """
        groups = await self._paginate(
            "/me/memberOf/microsoft.graph.group",
            params={"$select": "id,displayName,mail,visibility,groupTypes"},
        )
        return [g for g in groups if "Unified" in (g.get("groupTypes") or [])]
