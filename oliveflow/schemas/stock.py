"""Pydantic schemas for oil safes and purchases."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from oliveflow.schemas.common import Money


# ── Purchases ───────────────────────────────────────────────

class PurchaseOut(BaseModel):
    id: str
    safe_id: str
    supplier_name: str
    supplier_phone: str | None = None
    olive_weight: Money | None = None
    oil_produced: Money | None = None
    yield_percentage: Money | None = None
    price_per_kg: Money
    total_cost: Money
    is_base_purchase: bool
    notes: str | None = None
    purchase_date: datetime
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class PurchaseCreate(BaseModel):
    safe_id: str
    supplier_name: str = Field(..., min_length=1, max_length=255)
    supplier_phone: str | None = Field(None, max_length=50)
    olive_weight: Decimal | None = Field(None, gt=0)
    oil_produced: Decimal | None = Field(None, gt=0)
    price_per_kg: Decimal = Field(..., gt=0)
    is_base_purchase: bool = False
    notes: str | None = None
    purchase_date: datetime | None = None


class PurchaseUpdate(BaseModel):
    supplier_name: str | None = Field(None, min_length=1, max_length=255)
    supplier_phone: str | None = Field(None, max_length=50)
    olive_weight: Decimal | None = Field(None, gt=0)
    oil_produced: Decimal | None = Field(None, gt=0)
    price_per_kg: Decimal | None = Field(None, gt=0)
    is_base_purchase: bool | None = None
    notes: str | None = None
    purchase_date: datetime | None = None


class PurchaseMove(BaseModel):
    safe_id: str


# ── Safes ───────────────────────────────────────────────────

class SafeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    capacity: Decimal = Field(..., gt=0)


class SafeUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    capacity: Decimal | None = Field(None, gt=0)


class SafeOut(BaseModel):
    id: str
    name: str
    capacity: Money
    current_stock: Money
    available_capacity: Money
    utilization_percentage: Money
    purchase_count: int
    pending_oil_count: int
    created_at: datetime
    updated_at: datetime


class SafeDetail(SafeOut):
    purchases: list[PurchaseOut] = []
