"""ProcessingSession: one intake-to-settlement record for a farmer.

SessionBox rows are frozen snapshots of the boxes that entered the
session; the boxes themselves go back into circulation as soon as the
session is opened.  PaymentTransaction rows record each settlement.

Lifecycle:  pending → processed;  payment: unpaid → partial → paid
"""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from oliveflow.database import Base


class ProcessingSession(Base):
    __tablename__ = "processing_sessions"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    # S#<n>, S#<n>-<timestamp> or "<S#n> (Groupé)"
    session_number: Mapped[str] = mapped_column(
        String(100), unique=True, nullable=False, index=True
    )
    farmer_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("farmers.id"), nullable=False, index=True
    )

    # ── Intake ───────────────────────────────────────────────
    box_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_box_weight: Mapped[Decimal] = mapped_column(
        Numeric(12, 3), default=Decimal("0"), nullable=False
    )

    # ── Processing ───────────────────────────────────────────
    # pending | processed
    processing_status: Mapped[str] = mapped_column(
        String(20), default="pending", nullable=False, index=True
    )
    oil_weight: Mapped[Decimal | None] = mapped_column(Numeric(12, 3))
    processing_date: Mapped[datetime | None] = mapped_column(DateTime)

    # ── Settlement ───────────────────────────────────────────
    price_per_kg: Mapped[Decimal | None] = mapped_column(Numeric(12, 3))
    total_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 3))
    amount_paid: Mapped[Decimal] = mapped_column(
        Numeric(12, 3), default=Decimal("0"), nullable=False
    )
    remaining_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 3), default=Decimal("0"), nullable=False
    )
    # unpaid | partial | paid
    payment_status: Mapped[str] = mapped_column(
        String(20), default="unpaid", nullable=False, index=True
    )
    payment_date: Mapped[datetime | None] = mapped_column(DateTime)

    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # ── Relationships ────────────────────────────────────────
    session_boxes: Mapped[list["SessionBox"]] = relationship(
        back_populates="session", lazy="selectin",
        cascade="all, delete-orphan", order_by="SessionBox.created_at",
    )
    payment_transactions: Mapped[list["PaymentTransaction"]] = relationship(
        back_populates="session", lazy="selectin",
        cascade="all, delete-orphan", order_by="PaymentTransaction.created_at",
    )


class SessionBox(Base):
    """Frozen copy of a box's weight and type at intake."""
    __tablename__ = "session_boxes"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    session_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("processing_sessions.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    # No FK: the box may be renamed or released after the snapshot
    box_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    box_weight: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    box_type: Mapped[str] = mapped_column(String(20), nullable=False)
    farmer_id: Mapped[str] = mapped_column(String(36), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    session: Mapped["ProcessingSession"] = relationship(back_populates="session_boxes")


class PaymentTransaction(Base):
    """One settlement amount recorded against a session."""
    __tablename__ = "payment_transactions"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    session_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("processing_sessions.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    farmer_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    payment_method: Mapped[str | None] = mapped_column(String(100))
    notes: Mapped[str | None] = mapped_column(Text)
    payment_date: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    session: Mapped["ProcessingSession"] = relationship(
        back_populates="payment_transactions"
    )
