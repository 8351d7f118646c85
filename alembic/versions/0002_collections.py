"""Collection rounds: collector groups, daily collections and payouts.

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-19
"""

revision = "0002"
down_revision = "0001"
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


def upgrade() -> None:
    op.create_table(
        "collector_groups",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "daily_collections",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("group_id", sa.String(36), sa.ForeignKey("collector_groups.id"), nullable=False, index=True),
        sa.Column("collection_date", sa.DateTime(), nullable=False, index=True),
        sa.Column("location", sa.String(255), nullable=False),
        sa.Column("client_name", sa.String(255), nullable=False),
        sa.Column("chakra_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("galba_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("nchira_chakra_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("nchira_galba_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_chakra", sa.Numeric(12, 3), nullable=False),
        sa.Column("price_per_chakra", sa.Numeric(12, 3), nullable=False, server_default="0"),
        sa.Column("total_amount", sa.Numeric(12, 3), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint(
            "chakra_count >= 0 AND galba_count >= 0 "
            "AND nchira_chakra_count >= 0 AND nchira_galba_count >= 0",
            name="ck_daily_collections_counts_non_negative",
        ),
    )

    op.create_table(
        "collector_payments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("group_id", sa.String(36), sa.ForeignKey("collector_groups.id"), nullable=False, index=True),
        sa.Column("amount", sa.Numeric(12, 3), nullable=False),
        sa.Column("payment_date", sa.DateTime(), server_default=sa.func.now(), index=True),
        sa.Column("notes", sa.Text()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )


def downgrade() -> None:
    for table in ("collector_payments", "daily_collections", "collector_groups"):
        op.drop_table(table)
