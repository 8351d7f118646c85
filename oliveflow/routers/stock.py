"""Oil stock router.

Endpoints:
    GET    /api/stock/safes                     Safes with usage
    POST   /api/stock/safes                     Create a safe
    GET    /api/stock/safes/{id}                Safe with its purchases
    PUT    /api/stock/safes/{id}                Rename / resize
    DELETE /api/stock/safes/{id}                Delete an empty safe
    GET    /api/stock/purchases                 Purchases (optionally by safe)
    POST   /api/stock/purchases                 Record a purchase
    GET    /api/stock/purchases/{id}            One purchase
    PUT    /api/stock/purchases/{id}            Edit a purchase
    DELETE /api/stock/purchases/{id}            Delete a purchase
    POST   /api/stock/purchases/{id}/move       Move to another safe
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from oliveflow.database import get_db
from oliveflow.schemas.stock import (
    PurchaseCreate,
    PurchaseMove,
    PurchaseOut,
    PurchaseUpdate,
    SafeCreate,
    SafeDetail,
    SafeOut,
    SafeUpdate,
)
from oliveflow.services import stock
from oliveflow.utils.cache import notify_after_commit

router = APIRouter()


# ── Safes ────────────────────────────────────────────────────

@router.get("/safes", response_model=list[SafeOut])
async def list_safes(db: AsyncSession = Depends(get_db)):
    return await stock.list_safes(db)


@router.post("/safes", response_model=SafeOut, status_code=status.HTTP_201_CREATED)
async def create_safe(body: SafeCreate, db: AsyncSession = Depends(get_db)):
    safe = await stock.create_safe(db, body.name, body.capacity)
    notify_after_commit(db, "safe_created")
    return stock.summarize_safe(safe, 0, 0)


@router.get("/safes/{safe_id}", response_model=SafeDetail)
async def get_safe(safe_id: str, db: AsyncSession = Depends(get_db)):
    summary = await stock.get_safe(db, safe_id)
    summary["purchases"] = [PurchaseOut.model_validate(p) for p in summary["purchases"]]
    return summary


@router.put("/safes/{safe_id}", response_model=SafeDetail)
async def update_safe(safe_id: str, body: SafeUpdate, db: AsyncSession = Depends(get_db)):
    await stock.update_safe(db, safe_id, name=body.name, capacity=body.capacity)
    notify_after_commit(db, "safe_updated")
    return await get_safe(safe_id, db)


@router.delete("/safes/{safe_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_safe(safe_id: str, db: AsyncSession = Depends(get_db)):
    await stock.delete_safe(db, safe_id)
    notify_after_commit(db, "safe_deleted")


# ── Purchases ────────────────────────────────────────────────

@router.get("/purchases", response_model=list[PurchaseOut])
async def list_purchases(
    safe_id: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    purchases = await stock.list_purchases(db, safe_id=safe_id)
    return [PurchaseOut.model_validate(p) for p in purchases]


@router.post("/purchases", response_model=PurchaseOut, status_code=status.HTTP_201_CREATED)
async def record_purchase(body: PurchaseCreate, db: AsyncSession = Depends(get_db)):
    purchase = await stock.record_purchase(db, **body.model_dump())
    notify_after_commit(db, "purchase_recorded")
    return PurchaseOut.model_validate(purchase)


@router.get("/purchases/{purchase_id}", response_model=PurchaseOut)
async def get_purchase(purchase_id: str, db: AsyncSession = Depends(get_db)):
    return PurchaseOut.model_validate(await stock.get_purchase(db, purchase_id))


@router.put("/purchases/{purchase_id}", response_model=PurchaseOut)
async def update_purchase(
    purchase_id: str, body: PurchaseUpdate, db: AsyncSession = Depends(get_db)
):
    purchase = await stock.update_purchase(
        db, purchase_id, body.model_dump(exclude_unset=True)
    )
    notify_after_commit(db, "purchase_updated")
    return PurchaseOut.model_validate(purchase)


@router.delete("/purchases/{purchase_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_purchase(purchase_id: str, db: AsyncSession = Depends(get_db)):
    await stock.delete_purchase(db, purchase_id)
    notify_after_commit(db, "purchase_deleted")


@router.post("/purchases/{purchase_id}/move", response_model=PurchaseOut)
async def move_purchase(
    purchase_id: str, body: PurchaseMove, db: AsyncSession = Depends(get_db)
):
    purchase = await stock.move_purchase(db, purchase_id, body.safe_id)
    notify_after_commit(db, "purchase_moved")
    return PurchaseOut.model_validate(purchase)
