"""Cron job endpoints for background processing.

Protected by CRON_SECRET bearer token authentication.
These endpoints should be called by an external scheduler.
"""

from datetime import UTC, datetime

from fastapi import APIRouter

from lms_o365.api.deps import CronAuth
from lms_o365.config import get_settings
from lms_o365.core.logging import get_logger
from lms_o365.schemas.cron import (
    CalendarImportResult,
    CourseGroupsResult,
    MatchQueueProcessResult,
    SystemTokenRefreshResult,
)
from lms_o365.services.calendar_sync import import_from_outlook
from lms_o365.services.match_queue_service import process_match_queue
from lms_o365.services.system_token import refresh_system_refresh_token
from lms_o365.services.usergroups import create_course_groups

logger = get_logger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"], dependencies=[CronAuth])


def _now() -> str:
    return datetime.now(UTC).isoformat()


@router.get("/calendar-import", response_model=CalendarImportResult)
async def calendar_import_endpoint() -> CalendarImportResult:
    """Import new Outlook events into subscribed LMS calendars.

    Should be called every few minutes. Only events created since the
    previous run are fetched.
    """
    logger.info("cron_calendar_import_triggered")

    try:
        result = await import_from_outlook()
        return CalendarImportResult(**result)
    except Exception as e:
        logger.exception("cron_calendar_import_error", error=str(e))
        return CalendarImportResult(
            status="error",
            subscriptions_processed=0,
            events_received=0,
            events_created=0,
            events_skipped=0,
            errors=[str(e)],
            timestamp=_now(),
        )


@router.get("/refresh-system-token", response_model=SystemTokenRefreshResult)
async def refresh_system_token_endpoint() -> SystemTokenRefreshResult:
    """Keep the system API user's refresh token alive.

    Refresh tokens expire when unused, so this should run at least daily.
    """
    logger.info("cron_system_token_triggered")

    try:
        result = await refresh_system_refresh_token()
        return SystemTokenRefreshResult(**result)
    except Exception as e:
        logger.exception("cron_system_token_error", error=str(e))
        return SystemTokenRefreshResult(
            status="error",
            resource=get_settings().graph_resource,
            errors=[str(e)],
            timestamp=_now(),
        )


@router.get("/match-queue", response_model=MatchQueueProcessResult)
async def match_queue_endpoint() -> MatchQueueProcessResult:
    """Link queued LMS users to their Office 365 accounts."""
    logger.info("cron_match_queue_triggered")

    try:
        result = await process_match_queue()
        return MatchQueueProcessResult(**result)
    except Exception as e:
        logger.exception("cron_match_queue_error", error=str(e))
        return MatchQueueProcessResult(
            status="error",
            items_processed=0,
            items_matched=0,
            items_rejected=0,
            items_failed=0,
            errors=[str(e)],
            timestamp=_now(),
        )


@router.get("/course-groups", response_model=CourseGroupsResult)
async def course_groups_endpoint() -> CourseGroupsResult:
    """Create Office 365 groups for group-enabled courses that lack one."""
    logger.info("cron_course_groups_triggered")

    try:
        result = await create_course_groups()
        return CourseGroupsResult(**result)
    except Exception as e:
        logger.exception("cron_course_groups_error", error=str(e))
        return CourseGroupsResult(
            status="error",
            courses_checked=0,
            groups_created=0,
            groups_failed=0,
            errors=[str(e)],
            timestamp=_now(),
        )
