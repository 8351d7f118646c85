"""Processing session router.

Endpoints:
    GET    /api/sessions                    List (filters, sort, pagination)
    POST   /api/sessions                    Open a session from held boxes
    POST   /api/sessions/merge              Merge sessions into one
    GET    /api/sessions/{id}               Detail with boxes and payments
    PUT    /api/sessions/{id}               Edit notes / oil / date
    DELETE /api/sessions/{id}               Delete (not when paid)
    POST   /api/sessions/{id}/complete      Record oil weight
    POST   /api/sessions/{id}/toggle-payment  Mark paid / unpaid
    POST   /api/sessions/{id}/payment       Price and record a payment
    POST   /api/sessions/{id}/unpay         Revert all payments
    POST   /api/sessions/{id}/reset         Back to pending (admin)
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from oliveflow.database import get_db
from oliveflow.schemas.common import PaginatedResponse
from oliveflow.schemas.session import (
    PaymentSettle,
    PaymentToggle,
    SessionComplete,
    SessionCreate,
    SessionDeleteResult,
    SessionDetail,
    SessionMerge,
    SessionOut,
    SessionUpdate,
)
from oliveflow.services import sessions
from oliveflow.utils.cache import notify_after_commit

router = APIRouter()


@router.get("/", response_model=PaginatedResponse[SessionOut])
async def list_sessions(
    farmer_id: str | None = Query(None),
    processing_status: str | None = Query(None),
    payment_status: str | None = Query(None),
    date_from: datetime | None = Query(None),
    date_to: datetime | None = Query(None),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    items, total = await sessions.list_sessions(
        db,
        farmer_id=farmer_id,
        processing_status=processing_status,
        payment_status=payment_status,
        date_from=date_from,
        date_to=date_to,
        sort_by=sort_by,
        sort_order=sort_order,
        limit=limit,
        offset=offset,
    )
    return PaginatedResponse(
        items=[SessionOut.model_validate(s) for s in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("/", response_model=SessionDetail, status_code=status.HTTP_201_CREATED)
async def create_session(body: SessionCreate, db: AsyncSession = Depends(get_db)):
    session = await sessions.create_session(
        db, body.farmer_id, body.box_ids, notes=body.notes
    )
    notify_after_commit(db, "session_created")
    return SessionDetail.model_validate(session)


@router.post("/merge", response_model=SessionDetail, status_code=status.HTTP_201_CREATED)
async def merge_sessions(body: SessionMerge, db: AsyncSession = Depends(get_db)):
    session = await sessions.merge_sessions(
        db,
        body.farmer_id,
        body.session_ids,
        body.price_per_kg,
        body.amount_paid,
        oil_weight=body.oil_weight,
        payment_date=body.payment_date,
    )
    notify_after_commit(db, "sessions_merged")
    return SessionDetail.model_validate(session)


@router.get("/{session_id}", response_model=SessionDetail)
async def get_session(session_id: str, db: AsyncSession = Depends(get_db)):
    return SessionDetail.model_validate(await sessions.get_session(db, session_id))


@router.put("/{session_id}", response_model=SessionDetail)
async def update_session(
    session_id: str, body: SessionUpdate, db: AsyncSession = Depends(get_db)
):
    session = await sessions.update_session(
        db, session_id, body.model_dump(exclude_unset=True)
    )
    notify_after_commit(db, "session_updated")
    return SessionDetail.model_validate(session)


@router.delete("/{session_id}", response_model=SessionDeleteResult)
async def delete_session(session_id: str, db: AsyncSession = Depends(get_db)):
    result = await sessions.delete_session(db, session_id)
    notify_after_commit(db, "session_deleted")
    return result


@router.post("/{session_id}/complete", response_model=SessionDetail)
async def complete_session(
    session_id: str, body: SessionComplete, db: AsyncSession = Depends(get_db)
):
    session = await sessions.complete_session(
        db,
        session_id,
        body.oil_weight,
        processing_date=body.processing_date,
        payment_date=body.payment_date,
    )
    notify_after_commit(db, "session_completed")
    return SessionDetail.model_validate(session)


@router.post("/{session_id}/toggle-payment", response_model=SessionDetail)
async def toggle_payment(
    session_id: str, body: PaymentToggle, db: AsyncSession = Depends(get_db)
):
    session = await sessions.toggle_payment(db, session_id, body.status)
    notify_after_commit(db, "session_payment_toggled")
    return SessionDetail.model_validate(session)


@router.post("/{session_id}/payment", response_model=SessionDetail)
async def settle_payment(
    session_id: str, body: PaymentSettle, db: AsyncSession = Depends(get_db)
):
    session = await sessions.settle_payment(
        db,
        session_id,
        body.price_per_kg,
        body.amount_paid,
        payment_method=body.payment_method,
        notes=body.notes,
        payment_date=body.payment_date,
    )
    notify_after_commit(db, "session_settled")
    return SessionDetail.model_validate(session)


@router.post("/{session_id}/unpay", response_model=SessionDetail)
async def unpay_session(session_id: str, db: AsyncSession = Depends(get_db)):
    session = await sessions.unpay_session(db, session_id)
    notify_after_commit(db, "session_unpaid")
    return SessionDetail.model_validate(session)


@router.post("/{session_id}/reset", response_model=SessionDetail)
async def reset_session(session_id: str, db: AsyncSession = Depends(get_db)):
    session = await sessions.reset_session(db, session_id)
    notify_after_commit(db, "session_reset")
    return SessionDetail.model_validate(session)
