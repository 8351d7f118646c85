"""Box: one physical olive container.

Two identity namespaces share the table: the factory pool ("1".."600"),
seeded once and never deleted, and the auxiliary "Chkara<N>" pool, created
on first use.

Lifecycle:  available → in_use → available
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean, CheckConstraint, DateTime, ForeignKey, Numeric, String,
)
from sqlalchemy.orm import Mapped, mapped_column

from oliveflow.database import Base


class Box(Base):
    __tablename__ = "boxes"
    __table_args__ = (
        CheckConstraint(
            "(status = 'in_use' AND current_holder_id IS NOT NULL) OR "
            "(status = 'available' AND current_holder_id IS NULL)",
            name="ck_boxes_holder_matches_status",
        ),
    )

    # "1".."600" or "Chkara<N>"
    id: Mapped[str] = mapped_column(String(50), primary_key=True)

    # normal | nchira | chkara
    type: Mapped[str] = mapped_column(String(20), default="normal", nullable=False)

    # ── Holder ───────────────────────────────────────────────
    # available | in_use
    status: Mapped[str] = mapped_column(
        String(20), default="available", nullable=False, index=True
    )
    current_holder_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("farmers.id"), index=True
    )
    current_weight: Mapped[Decimal | None] = mapped_column(Numeric(12, 3))
    assigned_at: Mapped[datetime | None] = mapped_column(DateTime)

    # UI multi-select flag
    is_selected: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
