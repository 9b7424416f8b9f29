"""
Initial schema: samples, energy roll-ups, polling state and runtime config.

Revision ID: 001
Revises: None
Create Date: 2026-10-07

CHANGELOG:
- 2026-10-08: Add polling_state and runtime_config (STORY-010)
- 2026-10-07: Initial creation (STORY-008)

TODO:
- None
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# Revision identifiers used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create all PLC monitor tables and the sample indexes."""
    op.create_table(
        "samples",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("address", sa.Text(), nullable=False),
        sa.Column("ts", sa.BigInteger(), nullable=False),
        sa.Column("value", sa.Float(), nullable=True),
    )
    op.create_index("ix_samples_ts", "samples", ["ts"])
    op.create_index("ix_samples_address_ts", "samples", ["address", "ts", "id"])

    op.create_table(
        "hourly_energy",
        sa.Column("date", sa.Text(), nullable=False),
        sa.Column("hour", sa.Integer(), nullable=False),
        sa.Column("start_value", sa.Float(), nullable=False),
        sa.Column("end_value", sa.Float(), nullable=False),
        sa.Column("delta", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_update", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("date", "hour"),
    )

    op.create_table(
        "daily_energy",
        sa.Column("date", sa.Text(), primary_key=True),
        sa.Column("total", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_update", sa.BigInteger(), nullable=False),
    )

    op.create_table(
        "polling_state",
        sa.Column("service_name", sa.Text(), primary_key=True),
        sa.Column("is_polling", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("started_at", sa.BigInteger(), nullable=True),
        sa.Column("updated_at", sa.BigInteger(), nullable=False),
        sa.Column("config_json", sa.Text(), nullable=True),
        sa.Column("owner", sa.Text(), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column(
            "consecutive_failures",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("0"),
        ),
        sa.Column("last_cycle_at", sa.BigInteger(), nullable=True),
    )

    op.create_table(
        "runtime_config",
        sa.Column("key", sa.Text(), primary_key=True),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column("updated_at", sa.BigInteger(), nullable=False),
    )


def downgrade() -> None:
    """Drop every table created by :func:`upgrade`."""
    op.drop_table("runtime_config")
    op.drop_table("polling_state")
    op.drop_table("daily_energy")
    op.drop_table("hourly_energy")
    op.drop_index("ix_samples_address_ts", table_name="samples")
    op.drop_index("ix_samples_ts", table_name="samples")
    op.drop_table("samples")
