"""Farmer router.

Endpoints:
    GET    /api/farmers                     List (search, filters, sort)
    POST   /api/farmers                     Create
    GET    /api/farmers/{id}                Detail with held boxes
    PUT    /api/farmers/{id}                Update identity fields
    DELETE /api/farmers/{id}                Delete (frees boxes)
    GET    /api/farmers/{id}/boxes          Boxes currently held
    POST   /api/farmers/{id}/boxes          Bulk assign boxes
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from oliveflow.database import get_db
from oliveflow.schemas.box import BoxOut, BulkAssignRequest, BulkAssignResult
from oliveflow.schemas.common import PaginatedResponse
from oliveflow.schemas.farmer import (
    FarmerCreate,
    FarmerDeleteResult,
    FarmerDetail,
    FarmerOut,
    FarmerUpdate,
)
from oliveflow.services import box_allocation, box_registry, farmers
from oliveflow.utils.cache import notify_after_commit

router = APIRouter()


@router.get("/", response_model=PaginatedResponse[FarmerOut])
async def list_farmers(
    search: str | None = Query(None),
    farmer_type: str | None = Query(None, alias="type"),
    payment_status: str | None = Query(None),
    sort_by: str = Query("name"),
    sort_order: str = Query("asc", pattern="^(asc|desc)$"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    items, total = await farmers.list_farmers(
        db,
        search=search,
        farmer_type=farmer_type,
        payment_status=payment_status,
        sort_by=sort_by,
        sort_order=sort_order,
        limit=limit,
        offset=offset,
    )
    return PaginatedResponse(
        items=[FarmerOut.model_validate(f) for f in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("/", response_model=FarmerOut, status_code=status.HTTP_201_CREATED)
async def create_farmer(body: FarmerCreate, db: AsyncSession = Depends(get_db)):
    farmer = await farmers.create_farmer(db, body.model_dump())
    notify_after_commit(db, "farmer_created")
    return FarmerOut.model_validate(farmer)


@router.get("/{farmer_id}", response_model=FarmerDetail)
async def get_farmer(farmer_id: str, db: AsyncSession = Depends(get_db)):
    farmer = await farmers.get_farmer(db, farmer_id)
    boxes = await box_registry.list_farmer_boxes(db, farmer_id)
    out = FarmerDetail.model_validate(farmer)
    out.boxes = [BoxOut.model_validate(b) for b in boxes]
    return out


@router.put("/{farmer_id}", response_model=FarmerOut)
async def update_farmer(
    farmer_id: str, body: FarmerUpdate, db: AsyncSession = Depends(get_db)
):
    farmer = await farmers.update_farmer(
        db, farmer_id, body.model_dump(exclude_unset=True)
    )
    return FarmerOut.model_validate(farmer)


@router.delete("/{farmer_id}", response_model=FarmerDeleteResult)
async def delete_farmer(farmer_id: str, db: AsyncSession = Depends(get_db)):
    result = await farmers.delete_farmer(db, farmer_id)
    notify_after_commit(db, "farmer_deleted")
    return result


# ── Boxes held by a farmer ──────────────────────────────────

@router.get("/{farmer_id}/boxes", response_model=list[BoxOut])
async def list_farmer_boxes(farmer_id: str, db: AsyncSession = Depends(get_db)):
    await farmers.get_farmer(db, farmer_id)
    boxes = await box_registry.list_farmer_boxes(db, farmer_id)
    return [BoxOut.model_validate(b) for b in boxes]


@router.post(
    "/{farmer_id}/boxes",
    response_model=BulkAssignResult,
    status_code=status.HTTP_201_CREATED,
)
async def bulk_assign_boxes(
    farmer_id: str, body: BulkAssignRequest, db: AsyncSession = Depends(get_db)
):
    result = await box_allocation.bulk_assign(
        db, farmer_id, [item.model_dump() for item in body.boxes]
    )
    notify_after_commit(db, "boxes_assigned")
    return BulkAssignResult(
        created=[BoxOut.model_validate(b) for b in result["created"]],
        errors=result["errors"],
    )
