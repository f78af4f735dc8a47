"""Course, enrolment and course group models."""

import enum
from datetime import datetime

from sqlalchemy import (
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from lms_o365.database import Base


class GroupMode(int, enum.Enum):
    """Course group mode."""

    NOGROUPS = 0
    SEPARATEGROUPS = 1
    VISIBLEGROUPS = 2


class EnrolmentRole(str, enum.Enum):
    """Role of a user within a course."""

    STUDENT = "student"
    TEACHER = "teacher"


class Course(Base):
    """LMS course."""

    __tablename__ = "courses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    shortname: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    fullname: Mapped[str] = mapped_column(String(255), nullable=False)
    groupmode: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=GroupMode.NOGROUPS.value,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<Course {self.shortname}>"


class CourseEnrolment(Base):
    """A user's enrolment in a course."""

    __tablename__ = "course_enrolments"
    __table_args__ = (
        UniqueConstraint("course_id", "user_id", name="uq_course_enrolments"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    course_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role: Mapped[EnrolmentRole] = mapped_column(
        Enum(
            EnrolmentRole,
            native_enum=False,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        default=EnrolmentRole.STUDENT,
    )

    def __repr__(self) -> str:
        return f"<CourseEnrolment course={self.course_id} user={self.user_id}>"


class CourseGroup(Base):
    """Group of users within a course."""

    __tablename__ = "course_groups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    course_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    def __repr__(self) -> str:
        return f"<CourseGroup {self.name}>"


class CourseGroupMember(Base):
    """Membership of a user in a course group."""

    __tablename__ = "course_group_members"
    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="uq_course_group_members"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    group_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("course_groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
