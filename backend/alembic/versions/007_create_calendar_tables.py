"""Create calendar event, subscription and id-map tables.

Revision ID: 007
Revises: 006
Create Date: 2026-09-21

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "007"
down_revision: str | None = "006"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create calendar tables."""
    op.create_table(
        "calendar_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("eventtype", sa.String(10), nullable=False),
        sa.Column("courseid", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("userid", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("timestart", sa.DateTime(timezone=True), nullable=False),
        sa.Column("timeduration", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("visible", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "o365_calendar_subscriptions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("caltype", sa.String(10), nullable=False),
        sa.Column("caltypeid", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("o365calid", sa.Text(), nullable=True),
        sa.Column("o365calemail", sa.String(255), nullable=True),
        sa.Column("syncbehav", sa.String(10), nullable=False, server_default="out"),
        sa.Column("isprimary", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column(
            "timecreated",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index(
        "ix_o365_calendar_subscriptions_user_id",
        "o365_calendar_subscriptions",
        ["user_id"],
    )
    op.create_index(
        "ix_o365_calendar_subscriptions_syncbehav",
        "o365_calendar_subscriptions",
        ["syncbehav"],
    )

    op.create_table(
        "o365_calendar_idmap",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("eventid", sa.Integer(), nullable=False),
        sa.Column("outlookeventid", sa.String(255), nullable=False),
        sa.Column("origin", sa.String(10), nullable=False, server_default="moodle"),
        sa.Column("userid", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["eventid"], ["calendar_events.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("eventid"),
    )
    op.create_index(
        "ix_o365_calendar_idmap_outlookeventid",
        "o365_calendar_idmap",
        ["outlookeventid"],
    )


def downgrade() -> None:
    op.drop_index("ix_o365_calendar_idmap_outlookeventid", table_name="o365_calendar_idmap")
    op.drop_table("o365_calendar_idmap")
    op.drop_index(
        "ix_o365_calendar_subscriptions_syncbehav",
        table_name="o365_calendar_subscriptions",
    )
    op.drop_index(
        "ix_o365_calendar_subscriptions_user_id",
        table_name="o365_calendar_subscriptions",
    )
    op.drop_table("o365_calendar_subscriptions")
    op.drop_table("calendar_events")
