"""Create courses, enrolments and course groups.

Revision ID: 002
Revises: 001
Create Date: 2026-09-14

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: str | None = "001"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "courses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("shortname", sa.String(255), nullable=False),
        sa.Column("fullname", sa.String(255), nullable=False),
        sa.Column("groupmode", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_courses_shortname", "courses", ["shortname"])

    op.create_table(
        "course_enrolments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("course_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("role", sa.String(10), nullable=False, server_default="student"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["course_id"], ["courses.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("course_id", "user_id", name="uq_course_enrolments"),
    )
    op.create_index("ix_course_enrolments_course_id", "course_enrolments", ["course_id"])
    op.create_index("ix_course_enrolments_user_id", "course_enrolments", ["user_id"])

    op.create_table(
        "course_groups",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("course_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["course_id"], ["courses.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_course_groups_course_id", "course_groups", ["course_id"])

    op.create_table(
        "course_group_members",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("group_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["group_id"], ["course_groups.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("group_id", "user_id", name="uq_course_group_members"),
    )
    op.create_index("ix_course_group_members_group_id", "course_group_members", ["group_id"])
    op.create_index("ix_course_group_members_user_id", "course_group_members", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_course_group_members_user_id", table_name="course_group_members")
    op.drop_index("ix_course_group_members_group_id", table_name="course_group_members")
    op.drop_table("course_group_members")
    op.drop_index("ix_course_groups_course_id", table_name="course_groups")
    op.drop_table("course_groups")
    op.drop_index("ix_course_enrolments_user_id", table_name="course_enrolments")
    op.drop_index("ix_course_enrolments_course_id", table_name="course_enrolments")
    op.drop_table("course_enrolments")
    op.drop_index("ix_courses_shortname", table_name="courses")
    op.drop_table("courses")
