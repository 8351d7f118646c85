"""Transaction: the cash ledger.

FARMER_PAYMENT rows are generated by session settlement and carry the
session id; DEBIT and CREDIT rows are entered by hand.  Credits are
stored with a negative amount.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from oliveflow.database import Base


class Transaction(Base):
    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    # FARMER_PAYMENT | DEBIT | CREDIT
    type: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)

    # Set for FARMER_PAYMENT only.  Not a FK: orphaned rows are kept
    # until someone deletes them by hand.
    session_id: Mapped[str | None] = mapped_column(String(36), index=True)
    farmer_id: Mapped[str | None] = mapped_column(String(36), index=True)

    transaction_date: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
