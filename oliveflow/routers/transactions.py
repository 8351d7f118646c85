"""Cash ledger router.

Endpoints:
    GET    /api/transactions          List with totals
    POST   /api/transactions          Manual DEBIT / CREDIT
    DELETE /api/transactions/{id}     Delete manual or orphaned entry
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from oliveflow.database import get_db
from oliveflow.schemas.transaction import (
    TransactionCreate,
    TransactionList,
    TransactionOut,
)
from oliveflow.services import transactions
from oliveflow.utils.cache import notify_after_commit

router = APIRouter()


@router.get("/", response_model=TransactionList)
async def list_transactions(
    date_from: datetime | None = Query(None),
    date_to: datetime | None = Query(None),
    transaction_type: str | None = Query(None, alias="type"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    result = await transactions.list_transactions(
        db,
        date_from=date_from,
        date_to=date_to,
        transaction_type=transaction_type,
        limit=limit,
        offset=offset,
    )
    result["items"] = [TransactionOut.model_validate(t) for t in result["items"]]
    return result


@router.post("/", response_model=TransactionOut, status_code=status.HTTP_201_CREATED)
async def create_transaction(body: TransactionCreate, db: AsyncSession = Depends(get_db)):
    transaction = await transactions.create_manual_transaction(
        db, body.type, body.amount, body.description,
        transaction_date=body.transaction_date,
    )
    notify_after_commit(db, "transaction_created")
    return TransactionOut.model_validate(transaction)


@router.delete("/{transaction_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_transaction(transaction_id: str, db: AsyncSession = Depends(get_db)):
    await transactions.delete_transaction(db, transaction_id)
    notify_after_commit(db, "transaction_deleted")
