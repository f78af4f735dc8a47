"""Per-course SharePoint subsite feature flags.

Administrators choose which courses get a SharePoint subsite:
- ``sharepointcourseselect`` is ``off`` (every course), ``oncustom``
  (courses listed in ``sharepointsubsitescustom``) or anything else (none)
- ``sharepointsubsitescustom`` is a JSON object ``{courseid: true}``
"""

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lms_o365.config import get_settings
from lms_o365.core.logging import get_logger
from lms_o365.models.course import Course
from lms_o365.models.o365 import CourseSharePointSite
from lms_o365.services.config_service import ConfigService

logger = get_logger(__name__)


def _json_map(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


class SharePointCustomService:
    """Course subsite selection backed by the config store."""

    def __init__(self, db: AsyncSession, config: ConfigService | None = None):
        self.db = db
        self.config = config or ConfigService(db)

    async def is_enabled(self) -> bool:
        """Check whether course group creation is switched on."""
        creategroups = await self.config.get("creategroups")
        return creategroups in ("oncustom", "onall")

    async def get_enabled_courses(self) -> bool | list[int]:
        """Get the courses with group creation enabled.

        Returns:
            True when every course is enabled, otherwise a list of course ids
        """
        creategroups = await self.config.get("creategroups")
        if creategroups == "onall":
            return True
        if creategroups == "oncustom":
            enabled = _json_map(await self.config.get_json("usergroupcustom", {}))
            return [int(course_id) for course_id in enabled if course_id.isdigit()]
        return []

    async def set_course_subsite_enabled(self, course_id: int, enabled: bool = True) -> None:
        """Add or remove a course from the custom subsite list.

        Only has an effect when subsites are chosen per course.
        """
        if await self.config.get("sharepointcourseselect") != "oncustom":
            return

        subsites = _json_map(await self.config.get_json("sharepointsubsitescustom", {}))
        key = str(course_id)
        if enabled:
            subsites[key] = True
        else:
            subsites.pop(key, None)
        await self.config.set_json("sharepointsubsitescustom", subsites)
        logger.info("sharepoint_subsite_toggled", course_id=course_id, enabled=enabled)

    async def course_is_sharepoint_enabled(self, course_id: int) -> bool:
        select_mode = await self.config.get("sharepointcourseselect")
        if select_mode == "off":
            return True
        if select_mode == "oncustom":
            subsites = _json_map(await self.config.get_json("sharepointsubsitescustom", {}))
            return str(course_id) in subsites
        return False

    async def course_subsite_enabled(self, course_id: int) -> bool:
        """Check whether a subsite may be created for a course.

        Unlike course_is_sharepoint_enabled, a listed course only counts
        when its entry is truthy.
        """
        select_mode = await self.config.get("sharepointcourseselect")
        if select_mode == "off":
            return True
        if select_mode != "oncustom":
            return False
        subsites = _json_map(await self.config.get_json("sharepointsubsitescustom", {}))
        return bool(subsites.get(str(course_id)))

    async def get_course_subsite_uri(self, course_id: int) -> str:
        """Get a course's subsite path relative to the SharePoint tenant root.

        Uses the recorded subsite when the course has one, otherwise the
        parent site path followed by the course shortname.
        """
        result = await self.db.execute(
            select(CourseSharePointSite).where(CourseSharePointSite.courseid == course_id)
        )
        site = result.scalar_one_or_none()
        if site is not None:
            return site.siteurl.strip("/")

        course = await self.db.get(Course, course_id)
        parent = get_settings().sharepoint_link
        parent_path = parent.split("://", 1)[-1].partition("/")[2].strip("/") if parent else ""
        shortname = course.shortname if course is not None else str(course_id)
        return "/".join(part for part in (parent_path, shortname) if part)
