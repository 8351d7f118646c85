"""Cash ledger: manual debits/credits and settlement-generated payments."""

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from oliveflow.middleware.exceptions import (
    ConflictError,
    InputValidationError,
    ResourceNotFoundError,
)
from oliveflow.models.session import ProcessingSession
from oliveflow.models.transaction import Transaction
from oliveflow.services.session_state import TransactionType
from oliveflow.utils.money import ZERO, quantize

logger = logging.getLogger(__name__)

MANUAL_TYPES = (TransactionType.DEBIT.value, TransactionType.CREDIT.value)


def _filters(
    date_from: datetime | None,
    date_to: datetime | None,
    transaction_type: str | None,
) -> list:
    filters = []
    if date_from:
        filters.append(Transaction.transaction_date >= date_from)
    if date_to:
        filters.append(Transaction.transaction_date <= date_to)
    if transaction_type:
        filters.append(Transaction.type == transaction_type)
    return filters


async def ledger_totals(db: AsyncSession, filters: list) -> dict:
    """Totals per type.  Credits are reported as a positive amount."""
    result = await db.execute(
        select(Transaction.type, func.coalesce(func.sum(Transaction.amount), 0))
        .where(*filters)
        .group_by(Transaction.type)
    )
    sums = {row[0]: Decimal(str(row[1])) for row in result}

    farmer_payments = quantize(sums.get(TransactionType.FARMER_PAYMENT.value, ZERO))
    debits = quantize(sums.get(TransactionType.DEBIT.value, ZERO))
    credits = quantize(abs(sums.get(TransactionType.CREDIT.value, ZERO)))
    return {
        "farmer_payments": farmer_payments,
        "debits": debits,
        "credits": credits,
        "net_revenue": farmer_payments + debits - credits,
    }


async def list_transactions(
    db: AsyncSession,
    *,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    transaction_type: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> dict:
    filters = _filters(date_from, date_to, transaction_type)
    total = await db.scalar(
        select(func.count()).select_from(Transaction).where(*filters)
    )
    result = await db.execute(
        select(Transaction)
        .where(*filters)
        .order_by(Transaction.transaction_date.desc(), Transaction.id)
        .limit(limit)
        .offset(offset)
    )
    return {
        "items": list(result.scalars().all()),
        "total": total or 0,
        "limit": limit,
        "offset": offset,
        "totals": await ledger_totals(db, filters),
    }


async def create_manual_transaction(
    db: AsyncSession,
    transaction_type: str,
    amount: Decimal,
    description: str,
    transaction_date: datetime | None = None,
) -> Transaction:
    """Record a DEBIT or CREDIT.  Credits are stored negative."""
    if transaction_type not in MANUAL_TYPES:
        raise InputValidationError(
            f"Only {' and '.join(MANUAL_TYPES)} can be entered by hand, "
            f"got {transaction_type}"
        )
    if amount is None or amount <= 0:
        raise InputValidationError("Amount must be greater than 0")
    if not description or not description.strip():
        raise InputValidationError("A description is required")

    signed = quantize(amount)
    if transaction_type == TransactionType.CREDIT.value:
        signed = -signed

    transaction = Transaction(
        type=transaction_type,
        amount=signed,
        description=description.strip(),
        transaction_date=transaction_date or datetime.utcnow(),
    )
    db.add(transaction)
    await db.flush()
    logger.info(f"{transaction_type} of {quantize(amount)} recorded")
    return transaction


async def delete_transaction(db: AsyncSession, transaction_id: str) -> None:
    """Delete a manual entry, or a payment whose session no longer exists."""
    transaction = await db.get(Transaction, transaction_id)
    if not transaction:
        raise ResourceNotFoundError("Transaction", transaction_id)

    if transaction.type == TransactionType.FARMER_PAYMENT.value:
        session_exists = False
        if transaction.session_id:
            session_exists = bool(await db.scalar(
                select(func.count())
                .select_from(ProcessingSession)
                .where(ProcessingSession.id == transaction.session_id)
            ))
        if session_exists:
            raise ConflictError(
                "Farmer payments are managed through their session; "
                "unpay the session instead",
                error_code="TRANSACTION_LINKED",
            )

    await db.delete(transaction)
    await db.flush()
    logger.info(f"Transaction {transaction_id} ({transaction.type}) deleted")
