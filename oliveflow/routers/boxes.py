"""Box inventory router.

Endpoints:
    GET    /api/boxes                  List boxes (filters, numeric order)
    POST   /api/boxes                  Assign one box to a farmer
    GET    /api/boxes/available        Available boxes
    GET    /api/boxes/validate         Check an id / suggest next Chkara<N>
    POST   /api/boxes/bulk             Bulk select / unselect / release
    POST   /api/boxes/release          Release boxes (idempotent)
    POST   /api/boxes/reset            Release every in-use factory box
    POST   /api/boxes/seed             Create missing factory boxes
    GET    /api/boxes/{id}             One box
    PUT    /api/boxes/{id}             Edit (or rename) an in-use box
    POST   /api/boxes/{id}/release     Release one box
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from oliveflow.database import get_db
from oliveflow.schemas.box import (
    BoxAssignRequest,
    BoxOut,
    BoxUpdate,
    BoxValidationOut,
    BulkBoxAction,
    BulkBoxActionResult,
    PoolResetResult,
    ReleaseRequest,
    SeedResult,
)
from oliveflow.schemas.common import PaginatedResponse
from oliveflow.services import box_allocation, box_registry
from oliveflow.utils.cache import notify_after_commit

router = APIRouter()


@router.get("/", response_model=PaginatedResponse[BoxOut])
async def list_boxes(
    holder_id: str | None = Query(None),
    box_type: str | None = Query(None, alias="type"),
    box_status: str | None = Query(None, alias="status"),
    selected: bool | None = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    items, total = await box_registry.list_boxes(
        db,
        holder_id=holder_id,
        box_type=box_type,
        status=box_status,
        selected=selected,
        limit=limit,
        offset=offset,
    )
    return PaginatedResponse(
        items=[BoxOut.model_validate(b) for b in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("/", response_model=BoxOut, status_code=status.HTTP_201_CREATED)
async def assign_box(body: BoxAssignRequest, db: AsyncSession = Depends(get_db)):
    box = await box_allocation.assign(
        db, body.farmer_id, body.box_id, body.box_type, body.weight
    )
    notify_after_commit(db, "box_assigned")
    return BoxOut.model_validate(box)


@router.get("/available", response_model=PaginatedResponse[BoxOut])
async def list_available_boxes(
    box_type: str | None = Query(None, alias="type"),
    include_chkara: bool = Query(False),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    items, total = await box_registry.list_available(
        db,
        box_type=box_type,
        include_auxiliary=include_chkara,
        limit=limit,
        offset=offset,
    )
    return PaginatedResponse(
        items=[BoxOut.model_validate(b) for b in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/validate", response_model=BoxValidationOut)
async def validate_box_id(
    box_id: str | None = Query(None, alias="id"),
    box_type: str = Query("normal", alias="type"),
    db: AsyncSession = Depends(get_db),
):
    return await box_allocation.validate_identity(db, box_id, box_type)


@router.post("/bulk", response_model=BulkBoxActionResult)
async def bulk_box_action(body: BulkBoxAction, db: AsyncSession = Depends(get_db)):
    if body.action == "release":
        affected = await box_allocation.bulk_release(db, body.box_ids)
        notify_after_commit(db, "boxes_released")
    else:
        affected = await box_allocation.bulk_set_selection(
            db, body.box_ids, body.action == "select"
        )
    return BulkBoxActionResult(action=body.action, affected=affected)


@router.post("/release", response_model=list[BoxOut])
async def release_boxes(body: ReleaseRequest, db: AsyncSession = Depends(get_db)):
    boxes = await box_registry.release(db, body.box_ids)
    notify_after_commit(db, "boxes_released")
    return [BoxOut.model_validate(b) for b in boxes]


@router.post("/reset", response_model=PoolResetResult)
async def reset_factory_pool(db: AsyncSession = Depends(get_db)):
    released = await box_registry.reset_factory_pool(db)
    notify_after_commit(db, "pool_reset")
    return PoolResetResult(released=released)


@router.post("/seed", response_model=SeedResult)
async def seed_factory_pool(db: AsyncSession = Depends(get_db)):
    created = await box_registry.seed_factory_pool(db)
    return SeedResult(created=created)


@router.get("/{box_id}", response_model=BoxOut)
async def get_box(box_id: str, db: AsyncSession = Depends(get_db)):
    return BoxOut.model_validate(await box_registry.get_box(db, box_id))


@router.put("/{box_id}", response_model=BoxOut)
async def update_box(box_id: str, body: BoxUpdate, db: AsyncSession = Depends(get_db)):
    box = await box_registry.update_box(
        db, box_id, new_id=body.id, box_type=body.type, weight=body.weight
    )
    notify_after_commit(db, "box_updated")
    return BoxOut.model_validate(box)


@router.post("/{box_id}/release", response_model=BoxOut)
async def release_box(box_id: str, db: AsyncSession = Depends(get_db)):
    boxes = await box_registry.release(db, [box_id])
    notify_after_commit(db, "box_released")
    return BoxOut.model_validate(boxes[0])
