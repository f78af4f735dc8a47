"""Create course SharePoint site table.

Revision ID: 006
Revises: 005
Create Date: 2026-09-18

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "006"
down_revision: str | None = "005"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "o365_course_sp_sites",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("courseid", sa.Integer(), nullable=False),
        sa.Column("siteid", sa.String(255), nullable=False, server_default=""),
        sa.Column("siteurl", sa.String(255), nullable=False),
        sa.Column(
            "timecreated",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "timemodified",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["courseid"], ["courses.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("courseid"),
    )


def downgrade() -> None:
    op.drop_table("o365_course_sp_sites")
