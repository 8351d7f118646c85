"""Olive collection rounds: collector groups, their daily pickups and payouts.

Quantities are counted in chakra (sacks) and galba (baskets, five to a
sack).  Regular and nchira olives are counted separately; total_chakra
covers both.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean, CheckConstraint, DateTime, ForeignKey, Integer, Numeric, String, Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from oliveflow.database import Base


class CollectorGroup(Base):
    """A team that collects olives from clients on the mill's behalf."""
    __tablename__ = "collector_groups"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    collections = relationship("DailyCollection", back_populates="group")
    payments = relationship("CollectorPayment", back_populates="group")


class DailyCollection(Base):
    __tablename__ = "daily_collections"
    __table_args__ = (
        CheckConstraint(
            "chakra_count >= 0 AND galba_count >= 0 "
            "AND nchira_chakra_count >= 0 AND nchira_galba_count >= 0",
            name="ck_daily_collections_counts_non_negative",
        ),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    group_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("collector_groups.id"), nullable=False, index=True
    )
    collection_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    location: Mapped[str] = mapped_column(String(255), nullable=False)
    client_name: Mapped[str] = mapped_column(String(255), nullable=False)

    # ── Counts ───────────────────────────────────────────────
    chakra_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    galba_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    nchira_chakra_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    nchira_galba_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_chakra: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)

    # ── Pricing ──────────────────────────────────────────────
    price_per_chakra: Mapped[Decimal] = mapped_column(
        Numeric(12, 3), default=Decimal("0"), nullable=False
    )
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 3), default=Decimal("0"), nullable=False
    )

    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    group = relationship("CollectorGroup", back_populates="collections", lazy="selectin")


class CollectorPayment(Base):
    """Money paid out to a collector group."""
    __tablename__ = "collector_payments"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    group_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("collector_groups.id"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    payment_date: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, index=True
    )
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    group = relationship("CollectorGroup", back_populates="payments", lazy="selectin")
