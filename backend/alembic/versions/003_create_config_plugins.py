"""Create plugin configuration table.

Revision ID: 003
Revises: 002
Create Date: 2026-09-15

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "003"
down_revision: str | None = "002"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "config_plugins",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("plugin", sa.String(100), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("value", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("plugin", "name", name="uq_config_plugins"),
    )
    op.create_index("ix_config_plugins_plugin", "config_plugins", ["plugin"])


def downgrade() -> None:
    op.drop_index("ix_config_plugins_plugin", table_name="config_plugins")
    op.drop_table("config_plugins")
