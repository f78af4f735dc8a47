"""Capability checks for Office 365 features.

The LMS permission model collapses to a small policy:
- site administrators manage site calendar events
- teachers manage their course's calendar events
- connecting and disconnecting Office 365 accounts is governed by the
  USERS_CAN_CONNECT / USERS_CAN_DISCONNECT settings

Example usage:
    @router.get("/connectlogin")
    async def connect_login(
        user: User = Depends(require_connection_capability("connect")),
    ):
        ...
"""

from typing import Literal

from fastapi import Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lms_o365.config import get_settings
from lms_o365.core.auth import get_current_active_user
from lms_o365.models.course import Course, CourseEnrolment, EnrolmentRole
from lms_o365.models.user import User

__all__ = [
    "ConnectionMode",
    "can_manage_site_events",
    "connection_capability",
    "course_event_permissions",
    "get_user_courses",
    "require_connection_capability",
]

ConnectionMode = Literal["connect", "disconnect", "both"]


def can_manage_site_events(user: User) -> bool:
    """Check whether a user may create site calendar events."""
    return user.is_admin


async def get_user_courses(db: AsyncSession, user_id: int) -> dict[int, Course]:
    """Get the courses a user is enrolled in, keyed by course id."""
    result = await db.execute(
        select(Course)
        .join(CourseEnrolment, CourseEnrolment.course_id == Course.id)
        .where(CourseEnrolment.user_id == user_id)
        .order_by(Course.id)
    )
    return {course.id: course for course in result.scalars().all()}


async def course_event_permissions(db: AsyncSession, user: User) -> dict[int, bool]:
    """Map each of a user's courses to whether they may manage its events."""
    result = await db.execute(
        select(CourseEnrolment.course_id, CourseEnrolment.role).where(
            CourseEnrolment.user_id == user.id
        )
    )
    return {
        course_id: user.is_admin or role == EnrolmentRole.TEACHER
        for course_id, role in result.all()
    }


def connection_capability(
    user: User,
    mode: ConnectionMode = "connect",
    require: bool = False,
) -> bool:
    """Check whether a user may connect and/or disconnect Office 365.

    Args:
        user: The LMS user
        mode: "connect", "disconnect" or "both"
        require: Raise 403 instead of returning False

    Raises:
        HTTPException 403: If require is set and the check fails
    """
    settings = get_settings()
    can_connect = user.is_admin or settings.users_can_connect
    can_disconnect = user.is_admin or settings.users_can_disconnect

    if mode == "connect":
        allowed = can_connect
    elif mode == "disconnect":
        allowed = can_disconnect
    else:
        allowed = can_connect and can_disconnect

    if require and not allowed:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Insufficient permissions to {mode} Office 365 accounts.",
        )
    return allowed


def require_connection_capability(mode: ConnectionMode):
    """Factory for dependencies enforcing connection_capability."""

    async def dependency(
        current_user: User = Depends(get_current_active_user),
    ) -> User:
        connection_capability(current_user, mode, require=True)
        return current_user

    return dependency
