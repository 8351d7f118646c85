"""Initial schema: box inventory, sessions, ledgers and oil stock.

Revision ID: 0001
Revises: (none)
Create Date: 2026-10-19

Run with:
    alembic upgrade head
    python -m oliveflow.cli seed-boxes
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


def upgrade() -> None:
    # ── Farmers & boxes ──────────────────────────────────────

    op.create_table(
        "farmers",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, index=True),
        sa.Column("nickname", sa.String(100)),
        sa.Column("phone", sa.String(50)),
        sa.Column("type", sa.String(20), nullable=False, server_default="small"),
        sa.Column("total_amount_due", sa.Numeric(12, 3), nullable=False, server_default="0"),
        sa.Column("total_amount_paid", sa.Numeric(12, 3), nullable=False, server_default="0"),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default="pending", index=True),
        sa.Column("last_processing_date", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "boxes",
        sa.Column("id", sa.String(50), primary_key=True),
        sa.Column("type", sa.String(20), nullable=False, server_default="normal"),
        sa.Column("status", sa.String(20), nullable=False, server_default="available", index=True),
        sa.Column("current_holder_id", sa.String(36), sa.ForeignKey("farmers.id"), index=True),
        sa.Column("current_weight", sa.Numeric(12, 3)),
        sa.Column("assigned_at", sa.DateTime()),
        sa.Column("is_selected", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint(
            "(status = 'in_use' AND current_holder_id IS NOT NULL) OR "
            "(status = 'available' AND current_holder_id IS NULL)",
            name="ck_boxes_holder_matches_status",
        ),
    )

    # ── Sessions ─────────────────────────────────────────────

    op.create_table(
        "processing_sessions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("session_number", sa.String(100), nullable=False, unique=True, index=True),
        sa.Column("farmer_id", sa.String(36), sa.ForeignKey("farmers.id"), nullable=False, index=True),
        sa.Column("box_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_box_weight", sa.Numeric(12, 3), nullable=False, server_default="0"),
        sa.Column("processing_status", sa.String(20), nullable=False, server_default="pending", index=True),
        sa.Column("oil_weight", sa.Numeric(12, 3)),
        sa.Column("processing_date", sa.DateTime()),
        sa.Column("price_per_kg", sa.Numeric(12, 3)),
        sa.Column("total_price", sa.Numeric(12, 3)),
        sa.Column("amount_paid", sa.Numeric(12, 3), nullable=False, server_default="0"),
        sa.Column("remaining_amount", sa.Numeric(12, 3), nullable=False, server_default="0"),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default="unpaid", index=True),
        sa.Column("payment_date", sa.DateTime()),
        sa.Column("notes", sa.Text()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), index=True),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "session_boxes",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "session_id", sa.String(36),
            sa.ForeignKey("processing_sessions.id", ondelete="CASCADE"),
            nullable=False, index=True,
        ),
        sa.Column("box_id", sa.String(50), nullable=False, index=True),
        sa.Column("box_weight", sa.Numeric(12, 3), nullable=False),
        sa.Column("box_type", sa.String(20), nullable=False),
        sa.Column("farmer_id", sa.String(36), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "payment_transactions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "session_id", sa.String(36),
            sa.ForeignKey("processing_sessions.id", ondelete="CASCADE"),
            nullable=False, index=True,
        ),
        sa.Column("farmer_id", sa.String(36), nullable=False, index=True),
        sa.Column("amount", sa.Numeric(12, 3), nullable=False),
        sa.Column("payment_method", sa.String(100)),
        sa.Column("notes", sa.Text()),
        sa.Column("payment_date", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "sequence_counters",
        sa.Column("name", sa.String(50), primary_key=True),
        sa.Column("value", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )

    # ── Cash ledger ──────────────────────────────────────────

    op.create_table(
        "transactions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("type", sa.String(30), nullable=False, index=True),
        sa.Column("amount", sa.Numeric(12, 3), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("session_id", sa.String(36), index=True),
        sa.Column("farmer_id", sa.String(36), index=True),
        sa.Column("transaction_date", sa.DateTime(), server_default=sa.func.now(), index=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )

    # ── Oil stock ────────────────────────────────────────────

    op.create_table(
        "oil_safes",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("capacity", sa.Numeric(12, 3), nullable=False),
        sa.Column("current_stock", sa.Numeric(12, 3), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint(
            "current_stock >= 0 AND current_stock <= capacity",
            name="ck_oil_safes_stock_within_capacity",
        ),
    )

    op.create_table(
        "olive_purchases",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("safe_id", sa.String(36), sa.ForeignKey("oil_safes.id"), nullable=False, index=True),
        sa.Column("supplier_name", sa.String(255), nullable=False),
        sa.Column("supplier_phone", sa.String(50)),
        sa.Column("olive_weight", sa.Numeric(12, 3)),
        sa.Column("oil_produced", sa.Numeric(12, 3)),
        sa.Column("yield_percentage", sa.Numeric(12, 3)),
        sa.Column("price_per_kg", sa.Numeric(12, 3), nullable=False),
        sa.Column("total_cost", sa.Numeric(12, 3), nullable=False),
        sa.Column("is_base_purchase", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("notes", sa.Text()),
        sa.Column("purchase_date", sa.DateTime(), server_default=sa.func.now(), index=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )

    # ── Audit ────────────────────────────────────────────────

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("action", sa.String(50), nullable=False, index=True),
        sa.Column("entity_type", sa.String(50), nullable=False, index=True),
        sa.Column("entity_id", sa.String(100)),
        sa.Column("summary", sa.Text()),
        sa.Column("details", sa.JSON()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now(), index=True),
    )


def downgrade() -> None:
    for table in (
        "activity_logs",
        "olive_purchases",
        "oil_safes",
        "transactions",
        "sequence_counters",
        "payment_transactions",
        "session_boxes",
        "processing_sessions",
        "boxes",
        "farmers",
    ):
        op.drop_table(table)
