"""Tests for the farmer ledger recompute."""

from decimal import Decimal

import pytest

from oliveflow.middleware.exceptions import InvariantViolation, ResourceNotFoundError
from oliveflow.services import sessions
from oliveflow.services.ledger import recompute_all_ledgers, recompute_farmer_ledger


@pytest.mark.integration
@pytest.mark.asyncio
class TestFarmerLedger:

    async def test_farmer_without_sessions_is_paid(self, db_session, farmer):
        farmer.payment_status = "pending"
        farmer = await recompute_farmer_ledger(db_session, farmer.id)
        assert farmer.total_amount_due == Decimal("0")
        assert farmer.total_amount_paid == Decimal("0")
        assert farmer.payment_status == "paid"

    async def test_unpriced_session_keeps_farmer_pending(self, db_session, farmer, open_session):
        first = await open_session(farmer.id, [("1", "100")])
        await open_session(farmer.id, [("2", "100")])
        await sessions.complete_session(db_session, first.id, Decimal("10"))
        await sessions.settle_payment(db_session, first.id, Decimal("2"), Decimal("200"))

        assert farmer.total_amount_due == Decimal("200")
        assert farmer.total_amount_paid == Decimal("200")
        assert farmer.payment_status == "pending"

    async def test_totals_are_sums_over_all_sessions(self, db_session, farmer, open_session):
        first = await open_session(farmer.id, [("1", "100")])
        second = await open_session(farmer.id, [("2", "50")])
        for session in (first, second):
            await sessions.complete_session(db_session, session.id, Decimal("10"))
        await sessions.settle_payment(db_session, first.id, Decimal("2"), Decimal("200"))
        await sessions.settle_payment(db_session, second.id, Decimal("2"), Decimal("100"))

        assert farmer.total_amount_due == Decimal("300")
        assert farmer.total_amount_paid == Decimal("300")
        assert farmer.payment_status == "paid"

    async def test_recompute_is_idempotent(self, db_session, farmer, open_session):
        session = await open_session(farmer.id, [("1", "100")])
        await sessions.complete_session(db_session, session.id, Decimal("10"))
        await sessions.settle_payment(db_session, session.id, Decimal("2"), Decimal("50"))

        before = (farmer.total_amount_due, farmer.total_amount_paid, farmer.payment_status)
        await recompute_farmer_ledger(db_session, farmer.id)
        await recompute_farmer_ledger(db_session, farmer.id)
        assert (farmer.total_amount_due, farmer.total_amount_paid, farmer.payment_status) == before

    async def test_negative_amount_is_an_invariant_violation(self, db_session, farmer, open_session):
        session = await open_session(farmer.id, [("1", "100")])
        session.amount_paid = Decimal("-1")
        with pytest.raises(InvariantViolation):
            await recompute_farmer_ledger(db_session, farmer.id)

    async def test_unknown_farmer(self, db_session):
        with pytest.raises(ResourceNotFoundError):
            await recompute_farmer_ledger(db_session, "missing")

    async def test_recompute_all(self, db_session, make_farmer):
        await make_farmer()
        await make_farmer()
        assert await recompute_all_ledgers(db_session) == 2
