"""Office 365 integration models: tokens, connections, object cache."""

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from lms_o365.database import Base


class ObjectType(str, Enum):
    """Kinds of remote objects tracked in the object cache."""

    USER = "user"
    GROUP = "group"
    SHAREPOINT_SITE = "sharepointsite"


class ObjectSubtype(str, Enum):
    """Subtypes for group objects."""

    NONE = ""
    COURSE = "course"
    USERGROUP = "usergroup"


class O365Token(Base):
    """Stored OAuth token for a user (or the system user) and resource.

    A NULL user_id marks the system API user's token.
    """

    __tablename__ = "o365_tokens"
    __table_args__ = (
        Index("ix_o365_tokens_user_resource", "user_id", "resource", unique=True),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=True,
    )
    resource: Mapped[str] = mapped_column(String(255), nullable=False)
    scope: Mapped[str] = mapped_column(Text, nullable=False, default="")
    token: Mapped[str] = mapped_column(Text, nullable=False)
    refreshtoken: Mapped[str] = mapped_column(Text, nullable=False, default="")
    expiry: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    @property
    def is_system(self) -> bool:
        return self.user_id is None

    def __repr__(self) -> str:
        owner = "system" if self.user_id is None else self.user_id
        return f"<O365Token {owner} {self.resource}>"


class O365Connection(Base):
    """Match between an LMS user and an Azure AD user principal name."""

    __tablename__ = "o365_connections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    muserid: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    aadupn: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    uselogin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<O365Connection {self.muserid} -> {self.aadupn}>"


class O365Object(Base):
    """Generic mapping between a remote Office 365 object and a local id."""

    __tablename__ = "o365_objects"
    __table_args__ = (
        UniqueConstraint("type", "subtype", "objectid", name="uq_o365_objects"),
        Index("ix_o365_objects_type_moodleid", "type", "moodleid"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    subtype: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    objectid: Mapped[str] = mapped_column(String(255), nullable=False)
    moodleid: Mapped[int] = mapped_column(Integer, nullable=False)
    o365name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    timecreated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    timemodified: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return f"<O365Object {self.type}/{self.subtype} {self.objectid}>"


class MatchQueueItem(Base):
    """Pending manual match between an LMS username and an Office 365 user."""

    __tablename__ = "o365_match_queue"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    musername: Mapped[str] = mapped_column(String(100), nullable=False)
    o365username: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
    )
    openidconnect: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )
    completed: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        index=True,
    )
    errormessage: Mapped[str] = mapped_column(Text, nullable=False, default="")

    def __repr__(self) -> str:
        return f"<MatchQueueItem {self.musername} -> {self.o365username}>"


class CourseSharePointSite(Base):
    """SharePoint subsite created for a course."""

    __tablename__ = "o365_course_sp_sites"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    courseid: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    siteid: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    siteurl: Mapped[str] = mapped_column(String(255), nullable=False)
    timecreated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    timemodified: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return f"<CourseSharePointSite {self.courseid} {self.siteurl}>"
