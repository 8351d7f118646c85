"""Pydantic schemas for farmers."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from oliveflow.schemas.box import BoxOut
from oliveflow.schemas.common import Money


def _full_name(v: str) -> str:
    v = " ".join(v.split())
    if len(v.split(" ")) < 2:
        raise ValueError("Name must include a first and last name")
    return v


class FarmerCreate(BaseModel):
    name: str = Field(..., max_length=255)
    nickname: str | None = Field(None, max_length=100)
    phone: str | None = Field(None, max_length=50)
    type: Literal["small", "large"] = "small"

    @field_validator("name")
    @classmethod
    def full_name(cls, v: str) -> str:
        return _full_name(v)


class FarmerUpdate(BaseModel):
    """Ledger totals are derived and cannot be set here."""
    name: str | None = Field(None, max_length=255)
    nickname: str | None = Field(None, max_length=100)
    phone: str | None = Field(None, max_length=50)
    type: Literal["small", "large"] | None = None

    @field_validator("name")
    @classmethod
    def full_name(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return _full_name(v)


class FarmerOut(BaseModel):
    id: str
    name: str
    nickname: str | None = None
    phone: str | None = None
    type: str
    total_amount_due: Money
    total_amount_paid: Money
    payment_status: str
    last_processing_date: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class FarmerDetail(FarmerOut):
    boxes: list[BoxOut] = []


class FarmerDeleteResult(BaseModel):
    released_box_ids: list[str]
    deleted_sessions: int
