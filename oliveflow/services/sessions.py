"""Processing session lifecycle.

Handles:
  - Opening a session from the boxes a farmer currently holds.  The boxes
    are snapshotted into SessionBox rows and released in the same
    transaction, so they can serve another farmer straight away.
  - Completion (oil weight recorded), payment toggle, flexible settlement
    and payment reversal.
  - Merging several sessions of one farmer into a single settled session.
  - Deletion and the administrative processing reset.

Every operation ends with a full recompute of the farmer ledger.  Allowed
transitions are checked through services.session_state.
"""

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from oliveflow.middleware.exceptions import (
    BoxNotAvailableError,
    ConflictError,
    InputValidationError,
    ResourceNotFoundError,
    SessionLockedError,
)
from oliveflow.models.box import Box
from oliveflow.models.farmer import Farmer
from oliveflow.models.session import PaymentTransaction, ProcessingSession, SessionBox
from oliveflow.models.transaction import Transaction
from oliveflow.services.box_registry import release_box
from oliveflow.services.ledger import recompute_farmer_ledger
from oliveflow.services.session_state import (
    BoxStatus,
    PaymentStatus,
    ProcessingStatus,
    SessionAction,
    TransactionType,
    check_transition,
    payment_status_for,
)
from oliveflow.utils.activity import log_activity
from oliveflow.utils.box_ids import box_sort_key
from oliveflow.utils.money import ZERO, quantize
from oliveflow.utils.numbering import ensure_unique_number, next_session_number

logger = logging.getLogger(__name__)

MERGE_PAYMENT_METHOD = "Paiement groupé"

SORT_COLUMNS = {
    "created_at": ProcessingSession.created_at,
    "processing_date": ProcessingSession.processing_date,
    "total_price": ProcessingSession.total_price,
    "session_number": ProcessingSession.session_number,
}


# ── Lookups ──────────────────────────────────────────────────

async def get_session(
    db: AsyncSession, session_id: str, *, lock: bool = False
) -> ProcessingSession:
    stmt = select(ProcessingSession).where(ProcessingSession.id == session_id)
    if lock:
        stmt = stmt.with_for_update()
    session = (await db.execute(stmt)).scalar_one_or_none()
    if not session:
        raise ResourceNotFoundError("Session", session_id)
    return session


async def list_sessions(
    db: AsyncSession,
    *,
    farmer_id: str | None = None,
    processing_status: str | None = None,
    payment_status: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[ProcessingSession], int]:
    filters = []
    if farmer_id:
        filters.append(ProcessingSession.farmer_id == farmer_id)
    if processing_status:
        filters.append(ProcessingSession.processing_status == processing_status)
    if payment_status:
        filters.append(ProcessingSession.payment_status == payment_status)
    if date_from:
        filters.append(ProcessingSession.created_at >= date_from)
    if date_to:
        filters.append(ProcessingSession.created_at <= date_to)

    column = SORT_COLUMNS.get(sort_by)
    if column is None:
        raise InputValidationError(
            f"Cannot sort sessions by {sort_by}; "
            f"use one of {', '.join(SORT_COLUMNS)}"
        )
    order = column.asc() if sort_order == "asc" else column.desc()

    total = await db.scalar(
        select(func.count()).select_from(ProcessingSession).where(*filters)
    )
    result = await db.execute(
        select(ProcessingSession)
        .where(*filters)
        .order_by(order, ProcessingSession.id)
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), total or 0


async def _get_farmer(db: AsyncSession, farmer_id: str) -> Farmer:
    farmer = await db.get(Farmer, farmer_id)
    if not farmer:
        raise ResourceNotFoundError("Farmer", farmer_id)
    return farmer


async def _delete_payment_ledger_rows(db: AsyncSession, session_ids: list[str]) -> None:
    await db.execute(
        delete(Transaction).where(
            Transaction.type == TransactionType.FARMER_PAYMENT.value,
            Transaction.session_id.in_(session_ids),
        )
    )


def _record_payment(
    db: AsyncSession,
    session: ProcessingSession,
    farmer: Farmer,
    amount: Decimal,
    *,
    method: str | None,
    notes: str | None,
    paid_at: datetime,
    description: str,
) -> None:
    session.payment_transactions.append(PaymentTransaction(
        farmer_id=session.farmer_id,
        amount=amount,
        payment_method=method,
        notes=notes,
        payment_date=paid_at,
    ))
    db.add(Transaction(
        type=TransactionType.FARMER_PAYMENT.value,
        amount=amount,
        description=description,
        session_id=session.id,
        farmer_id=farmer.id,
        transaction_date=paid_at,
    ))


# ── Create ───────────────────────────────────────────────────

async def create_session(
    db: AsyncSession,
    farmer_id: str,
    box_ids: list[str],
    notes: str | None = None,
) -> ProcessingSession:
    """Open a session from boxes the farmer holds, then release them."""
    farmer = await _get_farmer(db, farmer_id)
    box_ids = list(dict.fromkeys(b.strip() for b in box_ids if b and b.strip()))
    if not box_ids:
        raise InputValidationError("At least one box is required")

    result = await db.execute(
        select(Box).where(Box.id.in_(box_ids)).with_for_update()
    )
    boxes = {box.id: box for box in result.scalars().all()}

    invalid = [
        box_id for box_id in box_ids
        if box_id not in boxes
        or boxes[box_id].status != BoxStatus.IN_USE.value
        or boxes[box_id].current_holder_id != farmer_id
    ]
    if invalid:
        raise BoxNotAvailableError(
            sorted(invalid, key=box_sort_key),
            f"are not in use by farmer {farmer.name}",
        )

    ordered = sorted(boxes.values(), key=lambda b: box_sort_key(b.id))
    snapshots = [
        SessionBox(
            box_id=box.id,
            box_weight=box.current_weight or ZERO,
            box_type=box.type,
            farmer_id=farmer_id,
        )
        for box in ordered
    ]

    session = ProcessingSession(
        session_number=await next_session_number(db),
        farmer_id=farmer_id,
        box_count=len(snapshots),
        total_box_weight=quantize(sum((s.box_weight for s in snapshots), ZERO)),
        processing_status=ProcessingStatus.PENDING.value,
        payment_status=PaymentStatus.UNPAID.value,
        amount_paid=ZERO,
        remaining_amount=ZERO,
        notes=notes,
        session_boxes=snapshots,
        payment_transactions=[],
    )
    db.add(session)

    # Boxes go back into circulation as soon as the session exists
    for box in ordered:
        release_box(box)

    farmer.last_processing_date = datetime.utcnow()
    await db.flush()
    await recompute_farmer_ledger(db, farmer_id)

    logger.info(
        f"Session {session.session_number} created for farmer {farmer_id} "
        f"with {session.box_count} box(es), {session.total_box_weight} kg"
    )
    return session


# ── Processing ───────────────────────────────────────────────

async def complete_session(
    db: AsyncSession,
    session_id: str,
    oil_weight: Decimal,
    processing_date: datetime | None = None,
    payment_date: datetime | None = None,
) -> ProcessingSession:
    """Record the oil weight and mark the session processed."""
    session = await get_session(db, session_id, lock=True)
    check_transition(session, SessionAction.COMPLETE)

    session.oil_weight = oil_weight
    session.processing_status = ProcessingStatus.PROCESSED.value
    session.processing_date = processing_date or datetime.utcnow()
    if payment_date is not None:
        session.payment_status = PaymentStatus.PAID.value
        session.payment_date = payment_date

    await db.flush()
    await recompute_farmer_ledger(db, session.farmer_id)
    logger.info(f"Session {session.session_number} processed: {oil_weight} kg oil")
    return session


async def update_session(
    db: AsyncSession, session_id: str, changes: dict
) -> ProcessingSession:
    """Edit notes, oil weight or processing date of an unpaid session."""
    session = await get_session(db, session_id, lock=True)
    check_transition(session, SessionAction.UPDATE)

    for field in ("notes", "oil_weight", "processing_date"):
        if field in changes:
            setattr(session, field, changes[field])

    await db.flush()
    await recompute_farmer_ledger(db, session.farmer_id)
    return session


async def reset_session(db: AsyncSession, session_id: str) -> ProcessingSession:
    """Put a session back to pending.  Payment fields are left alone."""
    session = await get_session(db, session_id, lock=True)
    check_transition(session, SessionAction.RESET)

    session.processing_status = ProcessingStatus.PENDING.value
    session.oil_weight = ZERO
    session.processing_date = None

    await db.flush()
    await recompute_farmer_ledger(db, session.farmer_id)
    logger.info(f"Session {session.session_number} reset to pending")
    return session


# ── Payment ──────────────────────────────────────────────────

async def toggle_payment(
    db: AsyncSession, session_id: str, status: str
) -> ProcessingSession:
    """Flip a session between paid and unpaid without recording money."""
    session = await get_session(db, session_id, lock=True)

    if status == PaymentStatus.PAID.value:
        check_transition(session, SessionAction.MARK_PAID)
        session.payment_status = PaymentStatus.PAID.value
        session.payment_date = datetime.utcnow()
    elif status == PaymentStatus.UNPAID.value:
        check_transition(session, SessionAction.MARK_UNPAID)
        session.payment_status = PaymentStatus.UNPAID.value
        session.payment_date = None
    else:
        raise InputValidationError(
            f"Payment status must be paid or unpaid, got {status}"
        )

    await db.flush()
    await recompute_farmer_ledger(db, session.farmer_id)
    logger.info(f"Session {session.session_number} marked {status}")
    return session


async def settle_payment(
    db: AsyncSession,
    session_id: str,
    price_per_kg: Decimal,
    amount_paid: Decimal,
    *,
    payment_method: str | None = None,
    notes: str | None = None,
    payment_date: datetime | None = None,
) -> ProcessingSession:
    """Price the session and record a payment against it.

    Amounts accumulate: *amount_paid* is added to what was already paid.
    The total may not exceed the session price.
    """
    if price_per_kg is None or price_per_kg <= 0:
        raise InputValidationError("Price per kg must be greater than 0")
    if amount_paid is None or amount_paid < 0:
        raise InputValidationError("Amount paid cannot be negative")

    session = await get_session(db, session_id, lock=True)
    check_transition(session, SessionAction.SETTLE)
    farmer = await _get_farmer(db, session.farmer_id)

    total_price = quantize(session.total_box_weight * price_per_kg)
    already_paid = session.amount_paid or ZERO
    cumulative = quantize(already_paid + amount_paid)
    if cumulative > total_price:
        raise ConflictError(
            f"Payment of {quantize(amount_paid)} would bring session "
            f"{session.session_number} to {cumulative}, above its total "
            f"price of {total_price} (already paid {quantize(already_paid)})",
            error_code="OVERPAYMENT",
        )

    status = payment_status_for(cumulative, total_price)
    paid_at = payment_date or datetime.utcnow()

    session.price_per_kg = price_per_kg
    session.total_price = total_price
    session.amount_paid = cumulative
    session.remaining_amount = max(ZERO, total_price - cumulative)
    session.payment_status = status.value
    session.payment_date = paid_at if status is PaymentStatus.PAID else None

    if amount_paid > 0:
        _record_payment(
            db, session, farmer, quantize(amount_paid),
            method=payment_method,
            notes=notes,
            paid_at=paid_at,
            description=f"Paiement session {session.session_number}",
        )

    await db.flush()
    await recompute_farmer_ledger(db, session.farmer_id)
    logger.info(
        f"Session {session.session_number} settled: total={total_price} "
        f"paid={cumulative} status={status.value}"
    )
    return session


async def unpay_session(db: AsyncSession, session_id: str) -> ProcessingSession:
    """Revert every payment recorded against a session."""
    session = await get_session(db, session_id, lock=True)
    check_transition(session, SessionAction.UNPAY)

    reverted = session.amount_paid
    count = len(session.payment_transactions)
    session.payment_transactions.clear()
    await _delete_payment_ledger_rows(db, [session.id])

    session.payment_status = PaymentStatus.UNPAID.value
    session.payment_date = None
    session.amount_paid = ZERO
    session.remaining_amount = ZERO
    session.price_per_kg = None
    session.total_price = None

    await log_activity(
        db,
        action="unpaid",
        entity_type="session",
        entity_id=session.id,
        summary=f"Payment of {reverted} reverted on session {session.session_number}",
        details={"amount": str(reverted), "transactions": count},
    )
    await db.flush()
    await recompute_farmer_ledger(db, session.farmer_id)
    logger.info(
        f"Session {session.session_number} unpaid: {count} transaction(s), "
        f"{reverted} reverted"
    )
    return session


# ── Merge ────────────────────────────────────────────────────

def _merge_boxes(sessions: list[ProcessingSession]) -> list[dict]:
    """One entry per box id; weights of repeated boxes are summed."""
    merged: dict[str, dict] = {}
    for session in sessions:
        for sb in session.session_boxes:
            entry = merged.get(sb.box_id)
            if entry is None:
                merged[sb.box_id] = {
                    "box_id": sb.box_id,
                    "box_weight": sb.box_weight,
                    "box_type": sb.box_type,
                    "farmer_id": sb.farmer_id,
                }
            else:
                entry["box_weight"] += sb.box_weight
    return sorted(merged.values(), key=lambda e: box_sort_key(e["box_id"]))


def _merge_notes(sessions: list[ProcessingSession]) -> str:
    with_notes = [s for s in sessions if s.notes and s.notes.strip()]
    if not with_notes:
        return f"Session groupée de {len(sessions)} sessions"
    return "\n\n".join(
        f"Note session {s.session_number}:\n{s.notes}" for s in with_notes
    )


async def merge_sessions(
    db: AsyncSession,
    farmer_id: str,
    session_ids: list[str],
    price_per_kg: Decimal,
    amount_paid: Decimal,
    *,
    oil_weight: Decimal | None = None,
    payment_date: datetime | None = None,
) -> ProcessingSession:
    """Combine several sessions of a farmer into one processed session."""
    if price_per_kg is None or price_per_kg <= 0:
        raise InputValidationError("Price per kg must be greater than 0")
    if amount_paid is None or amount_paid < 0:
        raise InputValidationError("Amount paid cannot be negative")
    session_ids = list(dict.fromkeys(session_ids))
    if not session_ids:
        raise InputValidationError("At least one session is required")

    farmer = await _get_farmer(db, farmer_id)
    sources = list((
        await db.execute(
            select(ProcessingSession)
            .where(
                ProcessingSession.id.in_(session_ids),
                ProcessingSession.farmer_id == farmer_id,
            )
            .order_by(ProcessingSession.created_at, ProcessingSession.session_number)
            .with_for_update()
        )
    ).scalars().all())

    found = {s.id for s in sources}
    missing = [sid for sid in session_ids if sid not in found]
    if missing:
        raise InputValidationError(
            f"Session(s) not found for farmer {farmer.name}: {', '.join(missing)}",
            error_code="UNKNOWN_SESSION",
            details={"session_ids": missing},
        )
    for source in sources:
        check_transition(source, SessionAction.MERGE)

    boxes = _merge_boxes(sources)
    total_weight = quantize(sum((s.total_box_weight for s in sources), ZERO))
    if oil_weight is None:
        oil_weight = quantize(sum((s.oil_weight or ZERO for s in sources), ZERO))
    total_price = quantize(total_weight * price_per_kg)
    amount_paid = quantize(amount_paid)
    if amount_paid > total_price:
        raise ConflictError(
            f"Amount paid {amount_paid} exceeds the merged total price "
            f"{total_price}",
            error_code="OVERPAYMENT",
        )
    status = payment_status_for(amount_paid, total_price)
    paid_at = payment_date or datetime.utcnow()
    notes = _merge_notes(sources)
    base_number = f"{sources[0].session_number.split(' ')[0]} (Groupé)"
    source_numbers = [s.session_number for s in sources]

    # Sources go first so the new number can't collide with one of them
    await _delete_payment_ledger_rows(db, [s.id for s in sources])
    for source in sources:
        await db.delete(source)
    await db.flush()

    merged = ProcessingSession(
        session_number=await ensure_unique_number(db, base_number),
        farmer_id=farmer_id,
        box_count=len(boxes),
        total_box_weight=total_weight,
        oil_weight=oil_weight,
        processing_status=ProcessingStatus.PROCESSED.value,
        processing_date=datetime.utcnow(),
        price_per_kg=price_per_kg,
        total_price=total_price,
        amount_paid=amount_paid,
        remaining_amount=max(ZERO, total_price - amount_paid),
        payment_status=status.value,
        payment_date=paid_at if status is PaymentStatus.PAID else None,
        notes=notes,
        session_boxes=[SessionBox(**entry) for entry in boxes],
        payment_transactions=[],
    )
    db.add(merged)
    await db.flush()

    if amount_paid > 0:
        _record_payment(
            db, merged, farmer, amount_paid,
            method=MERGE_PAYMENT_METHOD,
            notes=f"Paiement groupé pour {len(sources)} sessions",
            paid_at=paid_at,
            description=(
                f"Paiement groupé session {merged.session_number} "
                f"({len(sources)} sessions)"
            ),
        )

    await log_activity(
        db,
        action="merged",
        entity_type="session",
        entity_id=merged.id,
        summary=f"{len(sources)} sessions merged into {merged.session_number}",
        details={"sources": source_numbers},
    )
    await db.flush()
    await recompute_farmer_ledger(db, farmer_id)
    logger.info(
        f"Merged {', '.join(source_numbers)} into {merged.session_number}: "
        f"{merged.box_count} box(es), {total_weight} kg"
    )
    return merged


# ── Delete ───────────────────────────────────────────────────

async def delete_session(db: AsyncSession, session_id: str) -> dict:
    """Delete an unpaid or partially paid session.

    Boxes from the snapshot that the farmer still holds from before the
    session was opened are released too.
    """
    session = await get_session(db, session_id, lock=True)
    try:
        check_transition(session, SessionAction.DELETE)
    except SessionLockedError:
        logger.warning(f"Refused to delete paid session {session.session_number}")
        raise

    box_ids = [sb.box_id for sb in session.session_boxes]
    restored: list[str] = []
    if box_ids:
        held = (
            await db.execute(
                select(Box)
                .where(
                    Box.id.in_(box_ids),
                    Box.status == BoxStatus.IN_USE.value,
                    Box.current_holder_id == session.farmer_id,
                )
                .with_for_update()
            )
        ).scalars().all()
        for box in held:
            if box.assigned_at is None or box.assigned_at < session.created_at:
                release_box(box)
                restored.append(box.id)

    refunded = session.amount_paid or ZERO
    number = session.session_number
    farmer_id = session.farmer_id

    await _delete_payment_ledger_rows(db, [session.id])
    await db.delete(session)
    await db.flush()
    await recompute_farmer_ledger(db, farmer_id)

    logger.info(f"Session {number} deleted")
    return {
        "session_number": number,
        "refunded_amount": refunded,
        "restored_box_ids": sorted(restored, key=box_sort_key),
    }
