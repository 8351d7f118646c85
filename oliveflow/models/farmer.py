"""Farmer: an olive supplier.

The ledger columns (total_amount_due, total_amount_paid, payment_status)
are written only by services.ledger.recompute_farmer_ledger().
"""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from oliveflow.database import Base


class Farmer(Base):
    __tablename__ = "farmers"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    nickname: Mapped[str | None] = mapped_column(String(100))
    phone: Mapped[str | None] = mapped_column(String(50))

    # small | large (informational only)
    type: Mapped[str] = mapped_column(String(20), default="small", nullable=False)

    # ── Ledger (derived) ─────────────────────────────────────
    total_amount_due: Mapped[Decimal] = mapped_column(
        Numeric(12, 3), default=Decimal("0"), nullable=False
    )
    total_amount_paid: Mapped[Decimal] = mapped_column(
        Numeric(12, 3), default=Decimal("0"), nullable=False
    )
    # pending | paid
    payment_status: Mapped[str] = mapped_column(
        String(20), default="pending", nullable=False, index=True
    )
    last_processing_date: Mapped[datetime | None] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
