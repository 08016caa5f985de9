"""
Initial schema: device, usage and active_device tables.

Enables the citext and btree_gist extensions, creates the three tables
with their unique, foreign-key and check constraints, and adds a GiST
index over (user_email, tstzrange(start_date, end_date)) for per-user
time-range lookups.

Revision ID: 001
Revises: None
Create Date: 2026-09-27

CHANGELOG:
- 2026-09-27: Initial creation (STORY-102)

TODO:
- None
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# Revision identifiers used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create extensions, tables and the usage time-range index."""
    op.execute("CREATE EXTENSION IF NOT EXISTS citext")
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")

    op.create_table(
        "device",
        sa.Column("id", sa.String(255), primary_key=True),
        sa.Column("mac_address", sa.String(17), nullable=False, unique=True),
        sa.Column("ip_address", sa.String(45), nullable=False, unique=True),
        sa.Column("alias", sa.String(60), nullable=False, unique=True),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("previous_aliases", postgresql.ARRAY(sa.String(60)), nullable=True),
    )

    op.create_table(
        "usage",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_email", postgresql.CITEXT(), nullable=False),
        sa.Column(
            "start_date",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "end_date",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("estimated_use_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("consumption", sa.Numeric(10, 2), nullable=False, server_default="0.00"),
        sa.Column("charge", sa.Numeric(10, 2), nullable=False, server_default="0.00"),
        sa.Column("device_id", sa.String(255), nullable=False),
        sa.ForeignKeyConstraint(
            ["device_id"], ["device.id"], name="fk_usage_device", ondelete="RESTRICT",
        ),
        sa.CheckConstraint("end_date >= start_date", name="check_end_date_after_start_date"),
    )

    op.create_table(
        "active_device",
        sa.Column("device_id", sa.String(255), primary_key=True),
        sa.Column("usage_record_id", sa.BigInteger(), nullable=False, unique=True),
        sa.ForeignKeyConstraint(
            ["device_id"], ["device.id"],
            name="fk_active_device_device", ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["usage_record_id"], ["usage.id"],
            name="fk_active_device_usage", ondelete="RESTRICT",
        ),
    )

    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_usage_user_timerange ON usage "
        "USING GIST (user_email, tstzrange(start_date, end_date))"
    )


def downgrade() -> None:
    """Drop the tables in dependency order.

    Note: Does not drop the extensions as other schemas may use them.
    """
    op.execute("DROP INDEX IF EXISTS idx_usage_user_timerange")
    op.drop_table("active_device")
    op.drop_table("usage")
    op.drop_table("device")
