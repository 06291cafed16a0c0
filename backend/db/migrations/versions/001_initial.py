"""001 create analytics tables

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # event_aggregates - daily counts per category and path
    op.create_table(
        "event_aggregates",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("event_date", sa.Date(), nullable=False, index=True),
        sa.Column("category", sa.String(50), nullable=False, index=True),
        sa.Column("path", sa.String(500), nullable=False),
        sa.Column("consent_level", sa.String(20), nullable=False),
        sa.Column("count", sa.Integer(), server_default="1"),
        sa.UniqueConstraint("event_date", "category", "path", name="uq_event_aggregates_day"),
    )

    # consent_audit - one row per consent record version
    op.create_table(
        "consent_audit",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("consent_id", sa.String(64), nullable=False, index=True),
        sa.Column("level", sa.String(20), nullable=False),
        sa.Column("method", sa.String(30), nullable=False),
        sa.Column("version", sa.String(20), nullable=False),
        sa.Column("recorded_at_ms", sa.BigInteger(), nullable=False),
        sa.Column("withdrawn", sa.Boolean(), server_default="false"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("consent_audit")
    op.drop_table("event_aggregates")
