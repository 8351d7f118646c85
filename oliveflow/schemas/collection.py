"""Pydantic schemas for collector groups, collections and payouts."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from oliveflow.schemas.common import Money


# ── Groups ──────────────────────────────────────────────────

class GroupCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class GroupUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    is_active: bool | None = None


class GroupOut(BaseModel):
    id: str
    name: str
    is_active: bool
    collection_count: int
    # Raw counts normalised so galba < 5
    chakra: int
    galba: int
    total_chakra: Money
    total_amount: Money
    total_paid: Money
    balance: Money
    created_at: datetime
    updated_at: datetime


# ── Daily collections ───────────────────────────────────────

class CollectionCreate(BaseModel):
    group_id: str
    collection_date: datetime
    location: str = Field(..., min_length=1, max_length=255)
    client_name: str = Field(..., min_length=1, max_length=255)
    chakra_count: int = Field(..., ge=0)
    galba_count: int = Field(..., ge=0)
    nchira_chakra_count: int = Field(0, ge=0)
    nchira_galba_count: int = Field(0, ge=0)
    price_per_chakra: Decimal | None = Field(None, ge=0)
    notes: str | None = None


class CollectionUpdate(BaseModel):
    collection_date: datetime | None = None
    location: str | None = Field(None, min_length=1, max_length=255)
    client_name: str | None = Field(None, min_length=1, max_length=255)
    chakra_count: int | None = Field(None, ge=0)
    galba_count: int | None = Field(None, ge=0)
    nchira_chakra_count: int | None = Field(None, ge=0)
    nchira_galba_count: int | None = Field(None, ge=0)
    price_per_chakra: Decimal | None = Field(None, ge=0)
    notes: str | None = None


class CollectionOut(BaseModel):
    id: str
    group_id: str
    collection_date: datetime
    location: str
    client_name: str
    chakra_count: int
    galba_count: int
    nchira_chakra_count: int
    nchira_galba_count: int
    total_chakra: Money
    price_per_chakra: Money
    total_amount: Money
    notes: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# ── Payouts ─────────────────────────────────────────────────

class CollectorPaymentCreate(BaseModel):
    group_id: str
    amount: Decimal = Field(..., gt=0)
    notes: str | None = None
    payment_date: datetime | None = None


class CollectorPaymentOut(BaseModel):
    id: str
    group_id: str
    amount: Money
    payment_date: datetime
    notes: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}
