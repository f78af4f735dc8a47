"""Office 365 groups for courses.

Feature flags (config store, plugin ``local_o365``):
- ``creategroups``: ``onall`` (every course), ``oncustom`` (courses in
  ``usergroupcustom``) or off
- ``usergroupcustom``: JSON ``{courseid: true}``
- ``usergroupcustomfeatures``: JSON ``{courseid: {feature: true}}`` where
  feature is e.g. ``onedrive`` or ``calendar``

The ``create_course_groups`` cron job provisions a Unified group for every
enabled course that does not have one yet.
"""

import re
from datetime import UTC, datetime
from typing import Any

from msgraph.generated.models.group import Group
from msgraph.generated.models.o_data_errors.o_data_error import ODataError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lms_o365.config import get_settings
from lms_o365.core.logging import get_logger
from lms_o365.core.o365.graph_app import call_with_retry, get_graph_app_client
from lms_o365.database import async_session_maker
from lms_o365.models.course import Course
from lms_o365.models.o365 import O365Object, ObjectSubtype, ObjectType
from lms_o365.services.config_service import ConfigService

logger = get_logger(__name__)


def _json_map(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def mail_nickname(course: Course) -> str:
    """Build a group mail alias from the course shortname and id."""
    base = re.sub(r"[^A-Za-z0-9]", "", course.shortname or "").lower()[:50]
    return f"{base or 'course'}{course.id}"


class UserGroupsService:
    """Course group feature flags backed by the config store."""

    def __init__(self, db: AsyncSession, config: ConfigService | None = None):
        self.db = db
        self.config = config or ConfigService(db)

    async def is_enabled(self) -> bool:
        return await self.config.get("creategroups") in ("oncustom", "onall")

    async def get_enabled_courses(self) -> bool | list[int]:
        """Get the group-enabled courses.

        Returns:
            True when every course is enabled, otherwise a list of course ids
        """
        creategroups = await self.config.get("creategroups")
        if creategroups == "onall":
            return True
        if creategroups == "oncustom":
            enabled = _json_map(await self.config.get_json("usergroupcustom", {}))
            return [
                int(course_id)
                for course_id, on in enabled.items()
                if on and course_id.isdigit()
            ]
        return []

    async def course_is_group_enabled(self, course_id: int) -> bool:
        enabled = await self.get_enabled_courses()
        if enabled is True:
            return True
        return course_id in enabled

    async def course_is_group_feature_enabled(self, course_id: int, feature: str) -> bool:
        features = _json_map(await self.config.get_json("usergroupcustomfeatures", {}))
        return bool(_json_map(features.get(str(course_id))).get(feature))

    async def set_course_group_feature_enabled(
        self,
        course_id: int,
        features: list[str],
        enabled: bool = True,
    ) -> None:
        """Switch features on or off for one course."""
        config = _json_map(await self.config.get_json("usergroupcustomfeatures", {}))
        course_features = _json_map(config.get(str(course_id)))
        for feature in features:
            if enabled:
                course_features[feature] = True
            else:
                course_features.pop(feature, None)
        config[str(course_id)] = course_features
        await self.config.set_json("usergroupcustomfeatures", config)

    async def bulk_set_group_feature_enabled(self, feature: str, enabled: bool) -> None:
        """Switch a feature on or off for every group-enabled course."""
        config = _json_map(await self.config.get_json("usergroupcustomfeatures", {}))
        if enabled:
            course_ids = await self.get_enabled_courses()
            if course_ids is True:
                result = await self.db.execute(select(Course.id))
                course_ids = list(result.scalars().all())
            for course_id in course_ids:
                course_features = _json_map(config.get(str(course_id)))
                course_features[feature] = True
                config[str(course_id)] = course_features
        else:
            if not config:
                return
            for course_features in config.values():
                if isinstance(course_features, dict):
                    course_features.pop(feature, None)
        await self.config.set_json("usergroupcustomfeatures", config)
        logger.info("group_feature_bulk_set", feature=feature, enabled=enabled)

    async def get_enabled_courses_with_feature(self, feature: str) -> list[int]:
        """Get the group-enabled courses that also have a feature switched on."""
        enabled = await self.get_enabled_courses()
        features = _json_map(await self.config.get_json("usergroupcustomfeatures", {}))
        with_feature = [
            int(course_id)
            for course_id, course_features in features.items()
            if course_id.isdigit() and _json_map(course_features).get(feature)
        ]
        if enabled is True:
            return with_feature
        return [course_id for course_id in with_feature if course_id in enabled]

    async def get_course_group_object(self, course_id: int) -> O365Object | None:
        """Get the object cache row for a course's Office 365 group."""
        result = await self.db.execute(
            select(O365Object).where(
                O365Object.type == ObjectType.GROUP.value,
                O365Object.subtype == ObjectSubtype.COURSE.value,
                O365Object.moodleid == course_id,
            )
        )
        return result.scalars().first()

    async def get_courses_without_group(self, limit: int) -> list[Course]:
        """Get enabled courses that have no group object yet."""
        enabled = await self.get_enabled_courses()
        if enabled == []:
            return []

        has_group = (
            select(O365Object.moodleid)
            .where(
                O365Object.type == ObjectType.GROUP.value,
                O365Object.subtype == ObjectSubtype.COURSE.value,
            )
            .scalar_subquery()
        )
        query = select(Course).where(Course.id.not_in(has_group))
        if enabled is not True:
            query = query.where(Course.id.in_(enabled))
        result = await self.db.execute(query.order_by(Course.id).limit(limit))
        return list(result.scalars().all())

    async def create_group_for_course(self, course: Course) -> O365Object:
        """Create the Unified group for a course and record it.

        Raises:
            ODataError: If Graph refuses the group
            RuntimeError: If Graph is not configured
        """
        client = get_graph_app_client()
        if client is None:
            raise RuntimeError("Microsoft Graph is not configured")

        request = Group(
            display_name=course.fullname,
            description=course.shortname,
            mail_nickname=mail_nickname(course),
            mail_enabled=True,
            security_enabled=False,
            group_types=["Unified"],
            visibility="Private",
        )
        created = await call_with_retry(
            lambda: client.groups.post(request),
            context="course_group_create",
        )

        now = datetime.now(UTC)
        record = O365Object(
            type=ObjectType.GROUP.value,
            subtype=ObjectSubtype.COURSE.value,
            objectid=created.id,
            moodleid=course.id,
            o365name=created.display_name or course.fullname,
            timecreated=now,
            timemodified=now,
        )
        self.db.add(record)
        await self.db.flush()
        logger.info(
            "course_group_created",
            course_id=course.id,
            group_id=created.id,
        )
        return record


async def create_course_groups() -> dict:
    """Create Office 365 groups for enabled courses.

    This function is designed to be called from a cron endpoint.
    It creates its own database session.

    Returns:
        Dict with processing results
    """
    results: dict[str, Any] = {
        "status": "success",
        "courses_checked": 0,
        "groups_created": 0,
        "groups_failed": 0,
        "errors": [],
        "timestamp": datetime.now(UTC).isoformat(),
    }

    settings = get_settings()
    if not settings.is_unified_configured:
        logger.info("course_groups_skipped", reason="graph_not_configured")
        results["status"] = "skipped"
        return results

    logger.info("course_groups_started")

    async with async_session_maker() as db:
        service = UserGroupsService(db)
        if not await service.is_enabled():
            logger.info("course_groups_skipped", reason="disabled")
            results["status"] = "skipped"
            return results

        courses = await service.get_courses_without_group(settings.course_group_batch_size)
        for course in courses:
            course_id = course.id
            results["courses_checked"] += 1
            try:
                async with db.begin_nested():
                    await service.create_group_for_course(course)
                results["groups_created"] += 1
            except (ODataError, RuntimeError) as e:
                results["groups_failed"] += 1
                message = getattr(getattr(e, "error", None), "message", None) or str(e)
                results["errors"].append(f"Course {course_id}: {message[:100]}")
                logger.exception(
                    "course_group_create_error",
                    course_id=course_id,
                    error=message,
                )
        await db.commit()

    if results["groups_failed"] and results["groups_created"]:
        results["status"] = "partial"
    elif results["groups_failed"]:
        results["status"] = "error"

    logger.info(
        "course_groups_completed",
        checked=results["courses_checked"],
        created=results["groups_created"],
        failed=results["groups_failed"],
    )
    return results
