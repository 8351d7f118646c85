"""Pydantic schemas for the box inventory."""

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

from oliveflow.schemas.common import Money

BoxTypeLiteral = Literal["normal", "nchira", "chkara"]


class BoxOut(BaseModel):
    id: str
    type: str
    status: str
    current_holder_id: str | None = None
    current_weight: Money | None = None
    assigned_at: datetime | None = None
    is_selected: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# ── Assignment ──────────────────────────────────────────────

class BoxAssignRequest(BaseModel):
    farmer_id: str
    # Optional for chkara boxes: the next free Chkara<N> is used
    box_id: str | None = None
    box_type: BoxTypeLiteral = "normal"
    weight: Decimal = Field(..., gt=0)


class BulkAssignItem(BaseModel):
    box_id: str | None = None
    box_type: BoxTypeLiteral = "normal"
    weight: Decimal = Field(..., gt=0)


class BulkAssignRequest(BaseModel):
    boxes: list[BulkAssignItem] = Field(..., min_length=1)


class BulkAssignError(BaseModel):
    box_id: str | None = None
    message: str


class BulkAssignResult(BaseModel):
    created: list[BoxOut]
    errors: list[BulkAssignError]


# ── Updates ─────────────────────────────────────────────────

class BoxUpdate(BaseModel):
    """Edit an in-use box.  A different ``id`` renames it."""
    id: str | None = None
    type: BoxTypeLiteral | None = None
    weight: Decimal | None = Field(None, gt=0)


class BulkBoxAction(BaseModel):
    action: Literal["select", "unselect", "release"]
    box_ids: list[str] = Field(..., min_length=1)


class BulkBoxActionResult(BaseModel):
    action: str
    affected: int


class ReleaseRequest(BaseModel):
    box_ids: list[str] = Field(..., min_length=1)


class PoolResetResult(BaseModel):
    released: int


class SeedResult(BaseModel):
    created: int


# ── Validation ──────────────────────────────────────────────

class BoxValidationOut(BaseModel):
    is_valid: bool
    box_id: str | None = None
    suggested_id: str | None = None
    available: bool
    message: str
