"""Pydantic schemas for the cash ledger."""

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

from oliveflow.schemas.common import Money


class TransactionOut(BaseModel):
    id: str
    type: str
    amount: Money
    description: str
    session_id: str | None = None
    farmer_id: str | None = None
    transaction_date: datetime
    created_at: datetime

    model_config = {"from_attributes": True}


class TransactionCreate(BaseModel):
    """Manual entry.  Always send a positive amount."""
    type: Literal["DEBIT", "CREDIT"]
    amount: Decimal = Field(..., gt=0)
    description: str = Field(..., min_length=1)
    transaction_date: datetime | None = None


class LedgerTotals(BaseModel):
    farmer_payments: Money
    debits: Money
    credits: Money
    net_revenue: Money


class TransactionList(BaseModel):
    items: list[TransactionOut]
    total: int
    limit: int
    offset: int
    totals: LedgerTotals
