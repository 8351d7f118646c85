"""Farmer records.

Ledger fields are never written here; they belong to
services.ledger.recompute_farmer_ledger().
"""

import logging

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from oliveflow.middleware.exceptions import (
    ConflictError,
    InputValidationError,
    ResourceNotFoundError,
)
from oliveflow.models.box import Box
from oliveflow.models.farmer import Farmer
from oliveflow.models.session import ProcessingSession
from oliveflow.models.transaction import Transaction
from oliveflow.services.box_registry import release_box
from oliveflow.services.session_state import (
    FarmerPaymentStatus,
    PaymentStatus,
    TransactionType,
)
from oliveflow.utils.box_ids import box_sort_key
from oliveflow.utils.money import ZERO

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("name", "nickname", "phone", "type")

SORT_COLUMNS = {
    "name": Farmer.name,
    "created_at": Farmer.created_at,
    "total_amount_due": Farmer.total_amount_due,
    "last_processing_date": Farmer.last_processing_date,
}


async def get_farmer(db: AsyncSession, farmer_id: str, *, lock: bool = False) -> Farmer:
    stmt = select(Farmer).where(Farmer.id == farmer_id)
    if lock:
        stmt = stmt.with_for_update()
    farmer = (await db.execute(stmt)).scalar_one_or_none()
    if not farmer:
        raise ResourceNotFoundError("Farmer", farmer_id)
    return farmer


async def list_farmers(
    db: AsyncSession,
    *,
    search: str | None = None,
    farmer_type: str | None = None,
    payment_status: str | None = None,
    sort_by: str = "name",
    sort_order: str = "asc",
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Farmer], int]:
    filters = []
    if search:
        pattern = f"%{search.strip()}%"
        filters.append(or_(Farmer.name.ilike(pattern), Farmer.nickname.ilike(pattern)))
    if farmer_type:
        filters.append(Farmer.type == farmer_type)
    if payment_status:
        filters.append(Farmer.payment_status == payment_status)

    column = SORT_COLUMNS.get(sort_by)
    if column is None:
        raise InputValidationError(
            f"Cannot sort farmers by {sort_by}; use one of {', '.join(SORT_COLUMNS)}"
        )
    order = column.desc() if sort_order == "desc" else column.asc()

    total = await db.scalar(select(func.count()).select_from(Farmer).where(*filters))
    result = await db.execute(
        select(Farmer).where(*filters).order_by(order, Farmer.id).limit(limit).offset(offset)
    )
    return list(result.scalars().all()), total or 0


async def create_farmer(db: AsyncSession, data: dict) -> Farmer:
    farmer = Farmer(
        name=data["name"],
        nickname=data.get("nickname"),
        phone=data.get("phone"),
        type=data.get("type") or "small",
        total_amount_due=ZERO,
        total_amount_paid=ZERO,
        # No sessions yet, so nothing is owed
        payment_status=FarmerPaymentStatus.PAID.value,
    )
    db.add(farmer)
    await db.flush()
    logger.info(f"Farmer {farmer.name} created ({farmer.id})")
    return farmer


async def update_farmer(db: AsyncSession, farmer_id: str, changes: dict) -> Farmer:
    farmer = await get_farmer(db, farmer_id, lock=True)
    for field in EDITABLE_FIELDS:
        if field in changes and changes[field] is not None:
            setattr(farmer, field, changes[field])
    await db.flush()
    return farmer


async def delete_farmer(db: AsyncSession, farmer_id: str) -> dict:
    """Delete a farmer, their unpaid sessions, and free their boxes.

    Refused while any session has money recorded against it.
    """
    farmer = await get_farmer(db, farmer_id, lock=True)

    sessions = list((
        await db.execute(
            select(ProcessingSession).where(ProcessingSession.farmer_id == farmer_id)
        )
    ).scalars().all())
    settled = [
        s.session_number for s in sessions
        if s.payment_status != PaymentStatus.UNPAID.value
    ]
    if settled:
        raise ConflictError(
            f"Farmer {farmer.name} has paid or partially paid sessions: "
            f"{', '.join(settled)}",
            error_code="FARMER_HAS_PAYMENTS",
            details={"sessions": settled},
        )

    boxes = (
        await db.execute(
            select(Box).where(Box.current_holder_id == farmer_id).with_for_update()
        )
    ).scalars().all()
    for box in boxes:
        release_box(box)

    if sessions:
        await db.execute(
            delete(Transaction).where(
                Transaction.type == TransactionType.FARMER_PAYMENT.value,
                Transaction.session_id.in_([s.id for s in sessions]),
            )
        )
    for session in sessions:
        await db.delete(session)
    await db.flush()

    await db.delete(farmer)
    await db.flush()
    logger.info(
        f"Farmer {farmer.name} deleted: {len(boxes)} box(es) released, "
        f"{len(sessions)} session(s) removed"
    )
    return {
        "released_box_ids": sorted((b.id for b in boxes), key=box_sort_key),
        "deleted_sessions": len(sessions),
    }
