"""Oil stock: storage safes and the purchases that fill them.

OilSafe.current_stock is kept between 0 and capacity by the stock service;
every purchase that has produced oil contributes its oil_produced to the
safe it sits in.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean, CheckConstraint, DateTime, ForeignKey, Numeric, String, Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from oliveflow.database import Base


class OilSafe(Base):
    """Storage vessel with a bounded capacity (kg)."""
    __tablename__ = "oil_safes"
    __table_args__ = (
        CheckConstraint(
            "current_stock >= 0 AND current_stock <= capacity",
            name="ck_oil_safes_stock_within_capacity",
        ),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    capacity: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    current_stock: Mapped[Decimal] = mapped_column(
        Numeric(12, 3), default=Decimal("0"), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class OlivePurchase(Base):
    """Olives (or oil) bought from an outside supplier."""
    __tablename__ = "olive_purchases"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    safe_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("oil_safes.id"), nullable=False, index=True
    )

    # ── Supplier ─────────────────────────────────────────────
    supplier_name: Mapped[str] = mapped_column(String(255), nullable=False)
    supplier_phone: Mapped[str | None] = mapped_column(String(50))

    # ── Quantities ───────────────────────────────────────────
    # Absent for a direct oil purchase
    olive_weight: Mapped[Decimal | None] = mapped_column(Numeric(12, 3))
    # Null while the oil is still pending
    oil_produced: Mapped[Decimal | None] = mapped_column(Numeric(12, 3))
    yield_percentage: Mapped[Decimal | None] = mapped_column(Numeric(12, 3))

    # ── Cost ─────────────────────────────────────────────────
    price_per_kg: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    # Base purchases are priced per kg of oil rather than per kg of olives
    is_base_purchase: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    notes: Mapped[str | None] = mapped_column(Text)
    purchase_date: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
