"""Pydantic schemas for processing sessions."""

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

from oliveflow.schemas.common import Money


# ── Read ────────────────────────────────────────────────────

class SessionBoxOut(BaseModel):
    id: str
    box_id: str
    box_weight: Money
    box_type: str
    farmer_id: str

    model_config = {"from_attributes": True}


class PaymentTransactionOut(BaseModel):
    id: str
    amount: Money
    payment_method: str | None = None
    notes: str | None = None
    payment_date: datetime
    created_at: datetime

    model_config = {"from_attributes": True}


class SessionOut(BaseModel):
    id: str
    session_number: str
    farmer_id: str
    box_count: int
    total_box_weight: Money
    oil_weight: Money | None = None
    processing_status: str
    processing_date: datetime | None = None
    price_per_kg: Money | None = None
    total_price: Money | None = None
    amount_paid: Money
    remaining_amount: Money
    payment_status: str
    payment_date: datetime | None = None
    notes: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class SessionDetail(SessionOut):
    session_boxes: list[SessionBoxOut] = []
    payment_transactions: list[PaymentTransactionOut] = []


# ── Write ───────────────────────────────────────────────────

class SessionCreate(BaseModel):
    farmer_id: str
    box_ids: list[str] = Field(..., min_length=1)
    notes: str | None = None


class SessionUpdate(BaseModel):
    notes: str | None = None
    oil_weight: Decimal | None = Field(None, ge=0)
    processing_date: datetime | None = None


class SessionComplete(BaseModel):
    oil_weight: Decimal = Field(..., gt=0)
    processing_date: datetime | None = None
    payment_date: datetime | None = None


class PaymentToggle(BaseModel):
    status: Literal["paid", "unpaid"]


class PaymentSettle(BaseModel):
    price_per_kg: Decimal = Field(..., gt=0)
    amount_paid: Decimal = Field(..., ge=0)
    payment_method: str | None = None
    notes: str | None = None
    payment_date: datetime | None = None


class SessionMerge(BaseModel):
    farmer_id: str
    session_ids: list[str] = Field(..., min_length=1)
    price_per_kg: Decimal = Field(..., gt=0)
    amount_paid: Decimal = Field(..., ge=0)
    # Defaults to the sum of the merged sessions' oil
    oil_weight: Decimal | None = Field(None, ge=0)
    payment_date: datetime | None = None


class SessionDeleteResult(BaseModel):
    session_number: str
    refunded_amount: Money
    restored_box_ids: list[str]
