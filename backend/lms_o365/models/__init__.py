"""SQLAlchemy models."""

from lms_o365.models.calendar import (
    CalendarEvent,
    CalendarIdMap,
    CalendarSubscription,
    CalendarType,
    EventOrigin,
    SyncBehaviour,
)
from lms_o365.models.config import PluginConfig
from lms_o365.models.course import (
    Course,
    CourseEnrolment,
    CourseGroup,
    CourseGroupMember,
    EnrolmentRole,
    GroupMode,
)
from lms_o365.models.o365 import (
    CourseSharePointSite,
    MatchQueueItem,
    O365Connection,
    O365Object,
    O365Token,
    ObjectSubtype,
    ObjectType,
)
from lms_o365.models.user import AuthMethod, User, UserPreference, UserRole

__all__ = [
    "AuthMethod",
    "User",
    "UserPreference",
    "UserRole",
    "Course",
    "CourseEnrolment",
    "CourseGroup",
    "CourseGroupMember",
    "EnrolmentRole",
    "GroupMode",
    "CalendarEvent",
    "CalendarIdMap",
    "CalendarSubscription",
    "CalendarType",
    "EventOrigin",
    "SyncBehaviour",
    "CourseSharePointSite",
    "MatchQueueItem",
    "O365Connection",
    "O365Object",
    "O365Token",
    "ObjectSubtype",
    "ObjectType",
    "PluginConfig",
]
