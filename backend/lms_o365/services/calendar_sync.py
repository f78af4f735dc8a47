"""Outlook calendar sync.

Users subscribe LMS calendars (site, personal, course) to Outlook
calendars. The ``import_from_outlook`` cron job brings Outlook events
created since its last run into the subscribed LMS calendars, using the
id map to avoid importing an event twice.

Group calendars are addressed through the user's primary calendar; events
belong to the group when the group's mail address organized them.
"""

import re
import time
from datetime import UTC, datetime
from typing import Any

from pydantic import EmailStr, TypeAdapter, ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lms_o365.config import get_settings
from lms_o365.core.exceptions import NotConnectedError
from lms_o365.core.logging import get_logger, o365_debug
from lms_o365.core.o365.calendar import CalendarClient
from lms_o365.core.o365.tokens import TokenManager, TokenSource
from lms_o365.database import async_session_maker
from lms_o365.models.calendar import (
    CalendarEvent,
    CalendarIdMap,
    CalendarSubscription,
    CalendarType,
    EventOrigin,
    SyncBehaviour,
)
from lms_o365.schemas.calendar import CalendarChoice, CalendarSubscriptionsForm
from lms_o365.services.config_service import ConfigService

logger = get_logger(__name__)

CALLER = "import_from_outlook"
SYNC_IN = (SyncBehaviour.IN, SyncBehaviour.BOTH)

_EMAIL_ADAPTER = TypeAdapter(EmailStr)
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def is_valid_email(value: str | None) -> bool:
    if not value:
        return False
    try:
        _EMAIL_ADAPTER.validate_python(value)
    except ValidationError:
        return False
    return True


def parse_graph_datetime(value: Any) -> datetime:
    """Parse a Graph dateTimeTimeZone (or ISO string) into an aware datetime.

    Graph returns up to seven fractional digits and, with the UTC Prefer
    header, no offset; naive values are taken as UTC.
    """
    if isinstance(value, dict):
        value = value.get("dateTime", "")
    text = _FRACTION_RE.sub(r"\1", str(value).strip()).replace("Z", "+00:00")
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class CalendarSyncService:
    """Calendar reads and subscription management for a user."""

    def __init__(self, db: AsyncSession, token_manager: TokenManager | None = None):
        self.db = db
        self.tokens = token_manager or TokenManager(db)
        self.settings = get_settings()

    async def _client(self, user_id: int) -> CalendarClient:
        resource = self.settings.graph_resource
        if await self.tokens.get_user_token(user_id, resource) is None:
            raise NotConnectedError()
        return CalendarClient(
            TokenSource(self.tokens, resource, user_id=user_id),
            base_url=self.settings.graph_base_url,
        )

    async def get_calendars(self, user_id: int) -> list[dict[str, Any]]:
        """List the user's Outlook calendars, primary first."""
        async with await self._client(user_id) as client:
            return await client.get_calendars()

    async def get_events(
        self,
        user_id: int,
        calendar_id: str,
        since: datetime | None = None,
    ) -> dict[str, Any]:
        async with await self._client(user_id) as client:
            return await client.get_events(calendar_id, since)

    async def get_calendar_groups(self, user_id: int) -> list[dict[str, Any]]:
        async with await self._client(user_id) as client:
            return await client.get_calendar_groups()

    async def get_subscriptions(self, user_id: int) -> list[CalendarSubscription]:
        result = await self.db.execute(
            select(CalendarSubscription).where(CalendarSubscription.user_id == user_id)
        )
        return list(result.scalars().all())

    async def _find_subscription(
        self,
        user_id: int,
        caltype: CalendarType,
        caltypeid: int,
    ) -> CalendarSubscription | None:
        result = await self.db.execute(
            select(CalendarSubscription).where(
                CalendarSubscription.user_id == user_id,
                CalendarSubscription.caltype == caltype,
                CalendarSubscription.caltypeid == caltypeid,
            )
        )
        return result.scalars().first()

    async def _apply_choice(
        self,
        user_id: int,
        caltype: CalendarType,
        caltypeid: int,
        choice: CalendarChoice,
        primary_calid: str,
        can_sync_in: bool,
        groups: dict[str, dict[str, Any]],
    ) -> None:
        existing = await self._find_subscription(user_id, caltype, caltypeid)
        if not choice.checked:
            if existing is not None:
                await self.db.delete(existing)
                logger.info(
                    "calendar_subscription_removed",
                    user_id=user_id,
                    caltype=caltype.value,
                    caltypeid=caltypeid,
                )
            return

        syncbehav = choice.syncbehav
        if syncbehav in SYNC_IN and not can_sync_in:
            syncbehav = SyncBehaviour.OUT

        o365calid = choice.syncwith or primary_calid
        o365calemail = None
        if choice.syncwith in groups:
            o365calemail = groups[choice.syncwith]["mail"]
            o365calid = primary_calid

        if existing is None:
            existing = CalendarSubscription(
                user_id=user_id,
                caltype=caltype,
                caltypeid=caltypeid,
                timecreated=datetime.now(UTC),
            )
            self.db.add(existing)

        existing.o365calid = o365calid
        existing.o365calemail = o365calemail
        existing.syncbehav = syncbehav
        existing.isprimary = o365calid == primary_calid
        logger.info(
            "calendar_subscription_saved",
            user_id=user_id,
            caltype=caltype.value,
            caltypeid=caltypeid,
            syncbehav=syncbehav.value,
        )

    async def update_subscriptions(
        self,
        user_id: int,
        form: CalendarSubscriptionsForm,
        primary_calid: str,
        can_create_site_events: bool,
        can_create_course_events: dict[int, bool],
        groups: dict[str, dict[str, Any]] | None = None,
    ) -> None:
        """Create, update or remove the user's calendar subscriptions.

        Syncing into a calendar the user cannot create events in is
        downgraded to outbound sync.

        Args:
            user_id: Subscribing user
            form: Submitted settings
            primary_calid: Id of the user's primary Outlook calendar
            can_create_site_events: Whether the user manages site events
            can_create_course_events: Per-course event permission
            groups: Public course group calendars keyed by mail
        """
        groups = groups or {}
        await self._apply_choice(
            user_id,
            CalendarType.SITE,
            0,
            form.sitecal,
            primary_calid,
            can_create_site_events,
            groups,
        )
        await self._apply_choice(
            user_id,
            CalendarType.USER,
            user_id,
            form.usercal,
            primary_calid,
            True,
            groups,
        )
        for course_id, can_create in can_create_course_events.items():
            choice = form.coursecal.get(course_id, CalendarChoice())
            await self._apply_choice(
                user_id,
                CalendarType.COURSE,
                course_id,
                choice,
                primary_calid,
                can_create,
                groups,
            )
        await self.db.flush()


async def _event_is_mapped(db: AsyncSession, outlook_event_id: str) -> bool:
    result = await db.execute(
        select(CalendarIdMap.id).where(CalendarIdMap.outlookeventid == outlook_event_id)
    )
    return result.first() is not None


def _organizer_address(event: dict[str, Any]) -> str | None:
    organizer = event.get("organizer") or {}
    return (organizer.get("emailAddress") or {}).get("address")


async def import_event(
    db: AsyncSession,
    calsub: CalendarSubscription,
    event: dict[str, Any],
) -> CalendarEvent:
    """Create the LMS event and id map row for one Outlook event."""
    timestart = parse_graph_datetime(event.get("start"))
    timeend = parse_graph_datetime(event.get("end"))
    caltype = CalendarType(calsub.caltype)

    record = CalendarEvent(
        name=event.get("subject") or "",
        description=(event.get("body") or {}).get("content") or "",
        eventtype=caltype,
        timestart=timestart,
        timeduration=int((timeend - timestart).total_seconds()),
        userid=calsub.caltypeid if caltype == CalendarType.USER else calsub.user_id,
        courseid=calsub.caltypeid if caltype == CalendarType.COURSE else 0,
        visible=True,
    )
    db.add(record)
    await db.flush()

    db.add(
        CalendarIdMap(
            eventid=record.id,
            outlookeventid=event["id"],
            origin=EventOrigin.O365,
            userid=calsub.user_id,
        )
    )
    await db.flush()
    return record


async def import_from_outlook() -> dict:
    """Import new Outlook events into subscribed LMS calendars.

    This function is designed to be called from a cron endpoint.
    It creates its own database session.

    Returns:
        Dict with processing results
    """
    results: dict[str, Any] = {
        "status": "success",
        "subscriptions_processed": 0,
        "events_received": 0,
        "events_created": 0,
        "events_skipped": 0,
        "errors": [],
        "timestamp": datetime.now(UTC).isoformat(),
    }

    if not get_settings().is_o365_configured:
        logger.info("calendar_import_skipped", reason="not_configured")
        results["status"] = "skipped"
        return results

    starttime = int(time.time())
    logger.info("calendar_import_started")

    async with async_session_maker() as db:
        config = ConfigService(db)
        laststart = int(await config.get("calsyncinlastrun", default="0") or 0)
        since = datetime.fromtimestamp(laststart, UTC) if laststart else None

        service = CalendarSyncService(db)
        query = select(CalendarSubscription).where(
            CalendarSubscription.syncbehav.in_(SYNC_IN)
        )
        calsubs = list((await db.execute(query)).scalars().all())

        for calsub in calsubs:
            user_id = calsub.user_id
            results["subscriptions_processed"] += 1
            logger.info("calendar_import_user", user_id=user_id)
            try:
                await _import_subscription(db, service, calsub, since, results)
            except Exception as e:
                o365_debug(f"Error syncing events: {e}", CALLER, e)
                results["errors"].append(f"User {user_id}: {str(e)[:100]}")

        await config.set("calsyncinlastrun", str(starttime))
        await db.commit()

    if results["errors"]:
        results["status"] = "partial" if results["events_created"] else "error"

    logger.info(
        "calendar_import_completed",
        subscriptions=results["subscriptions_processed"],
        created=results["events_created"],
        skipped=results["events_skipped"],
        errors=len(results["errors"]),
    )
    return results


async def _import_subscription(
    db: AsyncSession,
    service: CalendarSyncService,
    calsub: CalendarSubscription,
    since: datetime | None,
    results: dict[str, Any],
) -> None:
    events = await service.get_events(calsub.user_id, calsub.o365calid or "", since)
    if not isinstance(events, dict) or not isinstance(events.get("value"), list):
        o365_debug("Bad response received when fetching events.", CALLER, events)
        return

    if not events["value"]:
        logger.info("calendar_import_no_events", message="No new events to sync in.")
        return

    group_mail = calsub.o365calemail if is_valid_email(calsub.o365calemail) else None
    for event in events["value"]:
        results["events_received"] += 1
        if not isinstance(event, dict) or "id" not in event:
            o365_debug("Skipped an event because of malformed data.", CALLER, event)
            results["events_skipped"] += 1
            continue

        if group_mail is not None and _organizer_address(event) != group_mail:
            # Not organized by the subscribed group
            exists = True
        else:
            exists = await _event_is_mapped(db, event["id"])

        if exists:
            results["events_skipped"] += 1
            continue

        # One savepoint per event keeps earlier imports when a later one fails
        try:
            async with db.begin_nested():
                record = await import_event(db, calsub, event)
        except (KeyError, TypeError, ValueError) as e:
            o365_debug(
                "Skipped an event because of malformed data.",
                CALLER,
                {"event": event, "message": str(e)},
            )
            results["events_skipped"] += 1
            continue

        results["events_created"] += 1
        logger.info("calendar_event_imported", event_id=record.id, user_id=calsub.user_id)
