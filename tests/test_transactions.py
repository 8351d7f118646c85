"""Tests for the cash ledger."""

from datetime import datetime
from decimal import Decimal

import pytest

from oliveflow.middleware.exceptions import (
    ConflictError,
    InputValidationError,
    ResourceNotFoundError,
)
from oliveflow.services import sessions, transactions


@pytest.mark.integration
@pytest.mark.asyncio
class TestCashLedger:

    async def test_credit_is_stored_negative(self, db_session):
        credit = await transactions.create_manual_transaction(
            db_session, "CREDIT", Decimal("40"), "Achat sacs"
        )
        debit = await transactions.create_manual_transaction(
            db_session, "DEBIT", Decimal("15"), "  Vente grignons  "
        )
        assert credit.amount == Decimal("-40")
        assert debit.amount == Decimal("15")
        assert debit.description == "Vente grignons"

    async def test_manual_entry_validation(self, db_session):
        with pytest.raises(InputValidationError):
            await transactions.create_manual_transaction(
                db_session, "FARMER_PAYMENT", Decimal("10"), "x"
            )
        with pytest.raises(InputValidationError):
            await transactions.create_manual_transaction(
                db_session, "DEBIT", Decimal("0"), "x"
            )
        with pytest.raises(InputValidationError):
            await transactions.create_manual_transaction(
                db_session, "DEBIT", Decimal("5"), "   "
            )

    async def test_totals(self, db_session, farmer, open_session):
        session = await open_session(farmer.id, [("1", "100")])
        await sessions.complete_session(db_session, session.id, Decimal("10"))
        await sessions.settle_payment(db_session, session.id, Decimal("2"), Decimal("120"))
        await transactions.create_manual_transaction(db_session, "DEBIT", Decimal("30"), "Vente")
        await transactions.create_manual_transaction(db_session, "CREDIT", Decimal("50"), "Achat")

        result = await transactions.list_transactions(db_session)

        assert result["total"] == 3
        assert result["totals"] == {
            "farmer_payments": Decimal("120"),
            "debits": Decimal("30"),
            "credits": Decimal("50"),
            "net_revenue": Decimal("100"),
        }

    async def test_date_filter(self, db_session):
        await transactions.create_manual_transaction(
            db_session, "DEBIT", Decimal("30"), "Janvier",
            transaction_date=datetime(2026, 1, 10),
        )
        await transactions.create_manual_transaction(
            db_session, "DEBIT", Decimal("20"), "Mars",
            transaction_date=datetime(2026, 3, 10),
        )

        result = await transactions.list_transactions(
            db_session, date_from=datetime(2026, 2, 1)
        )

        assert [t.description for t in result["items"]] == ["Mars"]
        assert result["totals"]["debits"] == Decimal("20")

    async def test_delete_manual_entry(self, db_session):
        debit = await transactions.create_manual_transaction(
            db_session, "DEBIT", Decimal("30"), "Vente"
        )
        await transactions.delete_transaction(db_session, debit.id)
        with pytest.raises(ResourceNotFoundError):
            await transactions.delete_transaction(db_session, debit.id)

    async def test_linked_payment_cannot_be_deleted(self, db_session, farmer, open_session):
        session = await open_session(farmer.id, [("1", "100")])
        await sessions.complete_session(db_session, session.id, Decimal("10"))
        await sessions.settle_payment(db_session, session.id, Decimal("2"), Decimal("120"))
        payment = (await transactions.list_transactions(db_session))["items"][0]

        with pytest.raises(ConflictError) as exc_info:
            await transactions.delete_transaction(db_session, payment.id)
        assert exc_info.value.error_code == "TRANSACTION_LINKED"

    async def test_orphaned_payment_can_be_deleted(self, db_session):
        from oliveflow.models.transaction import Transaction

        orphan = Transaction(
            type="FARMER_PAYMENT",
            amount=Decimal("75"),
            description="Paiement session S#99",
            session_id="gone",
            transaction_date=datetime(2026, 1, 1),
        )
        db_session.add(orphan)
        await db_session.flush()

        await transactions.delete_transaction(db_session, orphan.id)
        assert (await transactions.list_transactions(db_session))["total"] == 0
