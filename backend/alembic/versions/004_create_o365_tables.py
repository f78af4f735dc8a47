"""Create Office 365 token, connection and object tables.

Revision ID: 004
Revises: 003
Create Date: 2026-09-15

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "004"
down_revision: str | None = "003"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # NULL user_id is the system API user's token
    op.create_table(
        "o365_tokens",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("resource", sa.String(255), nullable=False),
        sa.Column("scope", sa.Text(), nullable=False, server_default=""),
        sa.Column("token", sa.Text(), nullable=False),
        sa.Column("refreshtoken", sa.Text(), nullable=False, server_default=""),
        sa.Column("expiry", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index(
        "ix_o365_tokens_user_resource",
        "o365_tokens",
        ["user_id", "resource"],
        unique=True,
    )

    op.create_table(
        "o365_connections",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("muserid", sa.Integer(), nullable=False),
        sa.Column("aadupn", sa.String(255), nullable=False),
        sa.Column("uselogin", sa.Boolean(), nullable=False, server_default="false"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["muserid"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("muserid"),
        sa.UniqueConstraint("aadupn"),
    )

    op.create_table(
        "o365_objects",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("subtype", sa.String(50), nullable=False, server_default=""),
        sa.Column("objectid", sa.String(255), nullable=False),
        sa.Column("moodleid", sa.Integer(), nullable=False),
        sa.Column("o365name", sa.String(255), nullable=False, server_default=""),
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
        sa.UniqueConstraint("type", "subtype", "objectid", name="uq_o365_objects"),
    )
    op.create_index("ix_o365_objects_type_moodleid", "o365_objects", ["type", "moodleid"])


def downgrade() -> None:
    op.drop_index("ix_o365_objects_type_moodleid", table_name="o365_objects")
    op.drop_table("o365_objects")
    op.drop_table("o365_connections")
    op.drop_index("ix_o365_tokens_user_resource", table_name="o365_tokens")
    op.drop_table("o365_tokens")
