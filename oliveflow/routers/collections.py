"""Collection rounds router.

Endpoints:
    GET    /api/collectors/groups               Groups with totals and balance
    POST   /api/collectors/groups               Create a group
    GET    /api/collectors/groups/{id}          One group with totals
    PUT    /api/collectors/groups/{id}          Rename / (de)activate
    DELETE /api/collectors/groups/{id}          Delete a group with no history
    GET    /api/collectors/collections          Collections (group, date range)
    POST   /api/collectors/collections          Record a collection
    GET    /api/collectors/collections/{id}     One collection
    PUT    /api/collectors/collections/{id}     Edit a collection
    DELETE /api/collectors/collections/{id}     Delete a collection
    GET    /api/collectors/payments             Payouts (optionally by group)
    POST   /api/collectors/payments             Pay a group
    DELETE /api/collectors/payments/{id}        Delete a payout
"""

from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from oliveflow.database import get_db
from oliveflow.schemas.collection import (
    CollectionCreate,
    CollectionOut,
    CollectionUpdate,
    CollectorPaymentCreate,
    CollectorPaymentOut,
    GroupCreate,
    GroupOut,
    GroupUpdate,
)
from oliveflow.services import collections
from oliveflow.utils.cache import notify_after_commit

router = APIRouter()


# ── Groups ───────────────────────────────────────────────────

@router.get("/groups", response_model=list[GroupOut])
async def list_groups(db: AsyncSession = Depends(get_db)):
    return await collections.group_summaries(db)


@router.post("/groups", response_model=GroupOut, status_code=status.HTTP_201_CREATED)
async def create_group(body: GroupCreate, db: AsyncSession = Depends(get_db)):
    group = await collections.create_group(db, body.name)
    return await collections.get_group_summary(db, group.id)


@router.get("/groups/{group_id}", response_model=GroupOut)
async def get_group(group_id: str, db: AsyncSession = Depends(get_db)):
    return await collections.get_group_summary(db, group_id)


@router.put("/groups/{group_id}", response_model=GroupOut)
async def update_group(group_id: str, body: GroupUpdate, db: AsyncSession = Depends(get_db)):
    await collections.update_group(db, group_id, name=body.name, is_active=body.is_active)
    return await collections.get_group_summary(db, group_id)


@router.delete("/groups/{group_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_group(group_id: str, db: AsyncSession = Depends(get_db)):
    await collections.delete_group(db, group_id)


# ── Daily collections ────────────────────────────────────────

@router.get("/collections", response_model=list[CollectionOut])
async def list_collections(
    group_id: str | None = Query(None),
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    items = await collections.list_collections(
        db, group_id=group_id, date_from=date_from, date_to=date_to
    )
    return [CollectionOut.model_validate(c) for c in items]


@router.post("/collections", response_model=CollectionOut, status_code=status.HTTP_201_CREATED)
async def record_collection(body: CollectionCreate, db: AsyncSession = Depends(get_db)):
    collection = await collections.record_collection(db, **body.model_dump())
    notify_after_commit(db, "collection_recorded")
    return CollectionOut.model_validate(collection)


@router.get("/collections/{collection_id}", response_model=CollectionOut)
async def get_collection(collection_id: str, db: AsyncSession = Depends(get_db)):
    return CollectionOut.model_validate(await collections.get_collection(db, collection_id))


@router.put("/collections/{collection_id}", response_model=CollectionOut)
async def update_collection(
    collection_id: str, body: CollectionUpdate, db: AsyncSession = Depends(get_db)
):
    collection = await collections.update_collection(
        db, collection_id, body.model_dump(exclude_unset=True)
    )
    notify_after_commit(db, "collection_updated")
    return CollectionOut.model_validate(collection)


@router.delete("/collections/{collection_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_collection(collection_id: str, db: AsyncSession = Depends(get_db)):
    await collections.delete_collection(db, collection_id)
    notify_after_commit(db, "collection_deleted")


# ── Payouts ──────────────────────────────────────────────────

@router.get("/payments", response_model=list[CollectorPaymentOut])
async def list_payments(
    group_id: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    payments = await collections.list_payments(db, group_id=group_id)
    return [CollectorPaymentOut.model_validate(p) for p in payments]


@router.post("/payments", response_model=CollectorPaymentOut, status_code=status.HTTP_201_CREATED)
async def record_payment(body: CollectorPaymentCreate, db: AsyncSession = Depends(get_db)):
    payment = await collections.record_payment(
        db, body.group_id, body.amount, notes=body.notes, payment_date=body.payment_date
    )
    notify_after_commit(db, "collector_paid")
    return CollectorPaymentOut.model_validate(payment)


@router.delete("/payments/{payment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_payment(payment_id: str, db: AsyncSession = Depends(get_db)):
    await collections.delete_payment(db, payment_id)
    notify_after_commit(db, "collector_payment_deleted")
