"""Create user match queue table.

Revision ID: 005
Revises: 004
Create Date: 2026-09-16

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "005"
down_revision: str | None = "004"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "o365_match_queue",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("musername", sa.String(100), nullable=False),
        sa.Column("o365username", sa.String(255), nullable=False),
        sa.Column("openidconnect", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("errormessage", sa.Text(), nullable=False, server_default=""),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_o365_match_queue_o365username", "o365_match_queue", ["o365username"])
    op.create_index("ix_o365_match_queue_completed", "o365_match_queue", ["completed"])


def downgrade() -> None:
    op.drop_index("ix_o365_match_queue_completed", table_name="o365_match_queue")
    op.drop_index("ix_o365_match_queue_o365username", table_name="o365_match_queue")
    op.drop_table("o365_match_queue")
