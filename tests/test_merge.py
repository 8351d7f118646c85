"""Tests for merging several sessions of a farmer into one."""

from decimal import Decimal

import pytest
from sqlalchemy import select

from oliveflow.middleware.exceptions import (
    ConflictError,
    InputValidationError,
    SessionLockedError,
)
from oliveflow.models.activity_log import ActivityLog
from oliveflow.models.session import ProcessingSession
from oliveflow.models.transaction import Transaction
from oliveflow.services import sessions
from oliveflow.services.sessions import MERGE_PAYMENT_METHOD


async def _processed(db, open_session, farmer_id, boxes, oil, notes=None):
    session = await open_session(farmer_id, boxes)
    if notes:
        await sessions.update_session(db, session.id, {"notes": notes})
    return await sessions.complete_session(db, session.id, Decimal(oil))


@pytest.mark.integration
@pytest.mark.asyncio
class TestMergeSessions:

    async def test_merge_two_sessions(self, db_session, farmer, open_session):
        first = await _processed(db_session, open_session, farmer.id, [("1", "100"), ("2", "50")], "20")
        second = await _processed(db_session, open_session, farmer.id, [("3", "80")], "10")
        source_ids = [first.id, second.id]

        merged = await sessions.merge_sessions(
            db_session, farmer.id, source_ids, Decimal("2"), Decimal("200")
        )

        assert merged.session_number == "S#1 (Groupé)"
        assert merged.box_count == 3
        assert merged.total_box_weight == Decimal("230")
        assert merged.oil_weight == Decimal("30")
        assert merged.processing_status == "processed"
        assert merged.total_price == Decimal("460")
        assert merged.amount_paid == Decimal("200")
        assert merged.remaining_amount == Decimal("260")
        assert merged.payment_status == "partial"
        assert [sb.box_id for sb in merged.session_boxes] == ["1", "2", "3"]
        assert merged.notes == "Session groupée de 2 sessions"

        remaining = (await db_session.execute(
            select(ProcessingSession.id).where(ProcessingSession.id.in_(source_ids))
        )).scalars().all()
        assert remaining == []

        payment = merged.payment_transactions[0]
        assert payment.amount == Decimal("200")
        assert payment.payment_method == MERGE_PAYMENT_METHOD

        rows = (await db_session.execute(
            select(Transaction).where(Transaction.session_id == merged.id)
        )).scalars().all()
        assert [r.amount for r in rows] == [Decimal("200")]

        assert farmer.total_amount_due == Decimal("460")
        assert farmer.total_amount_paid == Decimal("200")
        assert farmer.payment_status == "pending"

        log = (await db_session.execute(
            select(ActivityLog).where(ActivityLog.action == "merged")
        )).scalar_one()
        assert log.details == {"sources": ["S#1", "S#2"]}

    async def test_full_payment_marks_paid(self, db_session, farmer, open_session):
        first = await _processed(db_session, open_session, farmer.id, [("1", "100")], "20")
        second = await _processed(db_session, open_session, farmer.id, [("2", "100")], "20")

        merged = await sessions.merge_sessions(
            db_session, farmer.id, [first.id, second.id], Decimal("1.5"), Decimal("300")
        )

        assert merged.payment_status == "paid"
        assert merged.payment_date is not None
        assert farmer.payment_status == "paid"

    async def test_repeated_box_is_summed(self, db_session, farmer, open_session):
        first = await _processed(db_session, open_session, farmer.id, [("1", "100")], "20")
        second = await _processed(db_session, open_session, farmer.id, [("1", "60")], "12")

        merged = await sessions.merge_sessions(
            db_session, farmer.id, [first.id, second.id], Decimal("1"), Decimal("0")
        )

        assert merged.box_count == 1
        assert merged.session_boxes[0].box_weight == Decimal("160")
        assert merged.total_box_weight == Decimal("160")
        assert merged.payment_transactions == []

    async def test_oil_weight_override(self, db_session, farmer, open_session):
        first = await _processed(db_session, open_session, farmer.id, [("1", "100")], "20")
        merged = await sessions.merge_sessions(
            db_session, farmer.id, [first.id], Decimal("1"), Decimal("0"),
            oil_weight=Decimal("19.5"),
        )
        assert merged.oil_weight == Decimal("19.5")

    async def test_notes_are_combined(self, db_session, farmer, open_session):
        first = await _processed(db_session, open_session, farmer.id, [("1", "100")], "20", notes="Olives vertes")
        second = await _processed(db_session, open_session, farmer.id, [("2", "100")], "20")
        third = await _processed(db_session, open_session, farmer.id, [("3", "100")], "20", notes="Pluie")

        merged = await sessions.merge_sessions(
            db_session, farmer.id, [third.id, first.id, second.id], Decimal("1"), Decimal("0")
        )

        assert merged.session_number == "S#1 (Groupé)"
        assert merged.notes == "Note session S#1:\nOlives vertes\n\nNote session S#3:\nPluie"

    async def test_partial_source_payments_are_dropped(self, db_session, farmer, open_session):
        first = await _processed(db_session, open_session, farmer.id, [("1", "100")], "20")
        second = await _processed(db_session, open_session, farmer.id, [("2", "100")], "20")
        await sessions.settle_payment(db_session, first.id, Decimal("1"), Decimal("40"))
        first_id = first.id

        merged = await sessions.merge_sessions(
            db_session, farmer.id, [first_id, second.id], Decimal("1"), Decimal("0")
        )

        orphaned = (await db_session.execute(
            select(Transaction).where(Transaction.session_id == first_id)
        )).scalars().all()
        assert orphaned == []
        assert merged.amount_paid == Decimal("0")
        assert farmer.total_amount_paid == Decimal("0")

    async def test_paid_source_is_rejected(self, db_session, farmer, open_session):
        first = await _processed(db_session, open_session, farmer.id, [("1", "100")], "20")
        second = await _processed(db_session, open_session, farmer.id, [("2", "100")], "20")
        await sessions.settle_payment(db_session, first.id, Decimal("1"), Decimal("100"))

        with pytest.raises(SessionLockedError):
            await sessions.merge_sessions(
                db_session, farmer.id, [first.id, second.id], Decimal("1"), Decimal("0")
            )

    async def test_other_farmers_session_is_rejected(self, db_session, make_farmer, open_session):
        farmer = await make_farmer("Salah Ben Ali")
        other = await make_farmer("Mohamed Trabelsi")
        mine = await _processed(db_session, open_session, farmer.id, [("1", "100")], "20")
        theirs = await _processed(db_session, open_session, other.id, [("2", "100")], "20")

        with pytest.raises(InputValidationError) as exc_info:
            await sessions.merge_sessions(
                db_session, farmer.id, [mine.id, theirs.id], Decimal("1"), Decimal("0")
            )
        assert exc_info.value.error_code == "UNKNOWN_SESSION"
        assert exc_info.value.details == {"session_ids": [theirs.id]}

    async def test_overpayment_is_rejected(self, db_session, farmer, open_session):
        first = await _processed(db_session, open_session, farmer.id, [("1", "100")], "20")
        with pytest.raises(ConflictError) as exc_info:
            await sessions.merge_sessions(
                db_session, farmer.id, [first.id], Decimal("1"), Decimal("100.001")
            )
        assert exc_info.value.error_code == "OVERPAYMENT"
