"""Calendar event, subscription and id-map models."""

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from lms_o365.database import Base


class CalendarType(str, Enum):
    """Which LMS calendar an event or subscription belongs to."""

    SITE = "site"
    USER = "user"
    COURSE = "course"


class SyncBehaviour(str, Enum):
    """Direction of calendar sync."""

    IN = "in"
    OUT = "out"
    BOTH = "both"


class EventOrigin(str, Enum):
    """Where an id-mapped event was first created."""

    MOODLE = "moodle"
    O365 = "o365"


def _enum_values(enum_cls: type[Enum]) -> list[str]:
    return [e.value for e in enum_cls]


class CalendarEvent(Base):
    """LMS calendar event."""

    __tablename__ = "calendar_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    eventtype: Mapped[CalendarType] = mapped_column(
        SAEnum(CalendarType, native_enum=False, values_callable=_enum_values),
        nullable=False,
    )
    courseid: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    userid: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    timestart: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    timeduration: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    visible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<CalendarEvent {self.id} {self.name!r}>"


class CalendarSubscription(Base):
    """A user's subscription linking an LMS calendar to an Outlook calendar."""

    __tablename__ = "o365_calendar_subscriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    caltype: Mapped[CalendarType] = mapped_column(
        SAEnum(CalendarType, native_enum=False, values_callable=_enum_values),
        nullable=False,
    )
    caltypeid: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    o365calid: Mapped[str | None] = mapped_column(Text, nullable=True)
    o365calemail: Mapped[str | None] = mapped_column(String(255), nullable=True)
    syncbehav: Mapped[SyncBehaviour] = mapped_column(
        SAEnum(SyncBehaviour, native_enum=False, values_callable=_enum_values),
        nullable=False,
        default=SyncBehaviour.OUT,
    )
    isprimary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    timecreated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return (
            f"<CalendarSubscription user={self.user_id} "
            f"{self.caltype}:{self.caltypeid} {self.syncbehav}>"
        )


class CalendarIdMap(Base):
    """Maps an LMS calendar event to its Outlook event id."""

    __tablename__ = "o365_calendar_idmap"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    eventid: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("calendar_events.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    outlookeventid: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
    )
    origin: Mapped[EventOrigin] = mapped_column(
        SAEnum(EventOrigin, native_enum=False, values_callable=_enum_values),
        nullable=False,
        default=EventOrigin.MOODLE,
    )
    userid: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<CalendarIdMap {self.eventid} -> {self.outlookeventid}>"
