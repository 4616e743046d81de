"""create_bidding_tables

Revision ID: create_bidding_tables
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "create_bidding_tables"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "crop_lots",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("owner_id", sa.String(64), nullable=False, index=True),
        sa.Column("owner_name", sa.String(100), nullable=False),
        sa.Column("crop_type", sa.String(100), nullable=False),
        sa.Column("variety", sa.String(100), nullable=True),
        sa.Column("state", sa.String(100), nullable=False),
        sa.Column("district", sa.String(100), nullable=False),
        sa.Column("village", sa.String(100), nullable=False),
        sa.Column("area_acres", sa.Float(), nullable=False),
        sa.Column("sown_month", sa.String(7), nullable=False),
        sa.Column("harvest_month", sa.String(7), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )

    op.create_table(
        "bidding_sessions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("subject_ref", sa.String(64), nullable=False, index=True),
        sa.Column("owner_id", sa.String(64), nullable=True),
        sa.Column("minimum_bid", sa.Float(), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column("status", sa.String(16), nullable=False, index=True),
        sa.Column("bids", sa.JSON(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )

    # At most one ongoing session per crop lot
    op.create_index(
        "uq_bidding_sessions_ongoing_subject",
        "bidding_sessions",
        ["subject_ref"],
        unique=True,
        postgresql_where=sa.text("status = 'ongoing'"),
        sqlite_where=sa.text("status = 'ongoing'"),
    )


def downgrade() -> None:
    op.drop_index("uq_bidding_sessions_ongoing_subject", table_name="bidding_sessions")
    op.drop_table("bidding_sessions")
    op.drop_table("crop_lots")
