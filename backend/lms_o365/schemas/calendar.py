"""Calendar sync schemas."""

from pydantic import BaseModel, Field

from lms_o365.models.calendar import SyncBehaviour


class CalendarChoice(BaseModel):
    """One LMS calendar's sync setting."""

    checked: bool = False
    syncwith: str = ""  # Outlook calendar id, or a group calendar's mail
    syncbehav: SyncBehaviour = SyncBehaviour.OUT


class CalendarSubscriptionsForm(BaseModel):
    """Calendar sync settings submitted from the control panel."""

    sitecal: CalendarChoice = Field(default_factory=CalendarChoice)
    usercal: CalendarChoice = Field(default_factory=CalendarChoice)
    coursecal: dict[int, CalendarChoice] = Field(default_factory=dict)


class OutlookCalendar(BaseModel):
    """An Outlook calendar the user can sync with."""

    id: str
    name: str
    mail: str | None = None  # Set for group calendars


class CourseSummary(BaseModel):
    id: int
    fullname: str


class CalendarPageResponse(BaseModel):
    """Data for the calendar sync settings page."""

    o365calendars: list[OutlookCalendar]
    usercourses: list[CourseSummary]
    cancreatesiteevents: bool
    cancreatecourseevents: dict[int, bool]
    defaults: CalendarSubscriptionsForm
