"""Collection rounds: collector groups, daily collections and payouts.

A collection's total_chakra is chakra + galba / 5 for the regular olives
plus the same for the nchira olives, in exact Decimal arithmetic.
total_amount is total_chakra x price_per_chakra.  A group's balance is
what its collections are worth minus what it has been paid.
"""

import logging
from datetime import date, datetime, time, timedelta
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from oliveflow.middleware.exceptions import (
    ConflictError,
    InputValidationError,
    ResourceNotFoundError,
)
from oliveflow.models.collection import CollectorGroup, CollectorPayment, DailyCollection
from oliveflow.utils.money import ZERO, normalize_units, quantize, to_chakra

logger = logging.getLogger(__name__)

COUNT_FIELDS = ("chakra_count", "galba_count", "nchira_chakra_count", "nchira_galba_count")


# ── Helpers ──────────────────────────────────────────────────

async def _get_group(db: AsyncSession, group_id: str) -> CollectorGroup:
    group = await db.get(CollectorGroup, group_id)
    if not group:
        raise ResourceNotFoundError("Collector group", group_id)
    return group


async def _check_name_free(db: AsyncSession, name: str, exclude_id: str | None = None) -> str:
    name = (name or "").strip()
    if not name:
        raise InputValidationError("A group name is required")
    stmt = select(CollectorGroup.id).where(CollectorGroup.name == name)
    if exclude_id:
        stmt = stmt.where(CollectorGroup.id != exclude_id)
    if await db.scalar(stmt):
        raise ConflictError(
            f"A collector group named {name} already exists",
            error_code="DUPLICATE_GROUP",
        )
    return name


def _apply_totals(collection: DailyCollection) -> None:
    for field in COUNT_FIELDS:
        if getattr(collection, field) < 0:
            raise InputValidationError(f"{field} cannot be negative")
    if collection.price_per_chakra < 0:
        raise InputValidationError("Price per chakra cannot be negative")

    collection.total_chakra = quantize(
        to_chakra(collection.chakra_count, collection.galba_count)
        + to_chakra(collection.nchira_chakra_count, collection.nchira_galba_count)
    )
    collection.total_amount = quantize(collection.total_chakra * collection.price_per_chakra)


# ── Groups ───────────────────────────────────────────────────

async def create_group(db: AsyncSession, name: str) -> CollectorGroup:
    group = CollectorGroup(name=await _check_name_free(db, name), is_active=True)
    db.add(group)
    await db.flush()
    logger.info(f"Collector group {group.name} created")
    return group


async def update_group(
    db: AsyncSession,
    group_id: str,
    *,
    name: str | None = None,
    is_active: bool | None = None,
) -> CollectorGroup:
    group = await _get_group(db, group_id)
    if name is not None:
        group.name = await _check_name_free(db, name, exclude_id=group_id)
    if is_active is not None:
        group.is_active = is_active
    await db.flush()
    return group


async def delete_group(db: AsyncSession, group_id: str) -> None:
    """Delete a group with no collections or payments; deactivate it otherwise."""
    group = await _get_group(db, group_id)
    collections = await db.scalar(
        select(func.count()).select_from(DailyCollection)
        .where(DailyCollection.group_id == group_id)
    )
    payments = await db.scalar(
        select(func.count()).select_from(CollectorPayment)
        .where(CollectorPayment.group_id == group_id)
    )
    if collections or payments:
        raise ConflictError(
            f"Collector group {group.name} has {collections} collection(s) and "
            f"{payments} payment(s) on record; deactivate it instead",
            error_code="GROUP_HAS_HISTORY",
        )
    await db.delete(group)
    await db.flush()
    logger.info(f"Collector group {group.name} deleted")


async def group_summaries(db: AsyncSession, group_ids: list[str] | None = None) -> list[dict]:
    """Groups with collection totals, payouts and balance, by name."""
    collected = (
        select(
            DailyCollection.group_id,
            func.count(DailyCollection.id).label("collection_count"),
            func.sum(DailyCollection.chakra_count + DailyCollection.nchira_chakra_count)
            .label("chakra"),
            func.sum(DailyCollection.galba_count + DailyCollection.nchira_galba_count)
            .label("galba"),
            func.sum(DailyCollection.total_chakra).label("total_chakra"),
            func.sum(DailyCollection.total_amount).label("total_amount"),
        )
        .group_by(DailyCollection.group_id)
        .subquery()
    )
    paid = (
        select(
            CollectorPayment.group_id,
            func.sum(CollectorPayment.amount).label("total_paid"),
        )
        .group_by(CollectorPayment.group_id)
        .subquery()
    )
    stmt = (
        select(
            CollectorGroup,
            collected.c.collection_count,
            collected.c.chakra,
            collected.c.galba,
            collected.c.total_chakra,
            collected.c.total_amount,
            paid.c.total_paid,
        )
        .outerjoin(collected, collected.c.group_id == CollectorGroup.id)
        .outerjoin(paid, paid.c.group_id == CollectorGroup.id)
        .order_by(CollectorGroup.name)
    )
    if group_ids is not None:
        stmt = stmt.where(CollectorGroup.id.in_(group_ids))

    summaries = []
    for group, count, chakra, galba, total_chakra, total_amount, total_paid in await db.execute(stmt):
        chakra_units, galba_units = normalize_units(int(chakra or 0), int(galba or 0))
        total_amount = quantize(total_amount or ZERO)
        total_paid = quantize(total_paid or ZERO)
        summaries.append({
            "id": group.id,
            "name": group.name,
            "is_active": group.is_active,
            "collection_count": count or 0,
            "chakra": chakra_units,
            "galba": galba_units,
            "total_chakra": quantize(total_chakra or ZERO),
            "total_amount": total_amount,
            "total_paid": total_paid,
            "balance": total_amount - total_paid,
            "created_at": group.created_at,
            "updated_at": group.updated_at,
        })
    return summaries


async def get_group_summary(db: AsyncSession, group_id: str) -> dict:
    await _get_group(db, group_id)
    return (await group_summaries(db, [group_id]))[0]


# ── Daily collections ────────────────────────────────────────

async def get_collection(db: AsyncSession, collection_id: str) -> DailyCollection:
    collection = await db.get(DailyCollection, collection_id)
    if not collection:
        raise ResourceNotFoundError("Collection", collection_id)
    return collection


async def list_collections(
    db: AsyncSession,
    *,
    group_id: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
) -> list[DailyCollection]:
    """Newest first.  Both date bounds are inclusive whole days."""
    stmt = select(DailyCollection).order_by(
        DailyCollection.collection_date.desc(), DailyCollection.created_at.desc()
    )
    if group_id:
        stmt = stmt.where(DailyCollection.group_id == group_id)
    if date_from:
        stmt = stmt.where(
            DailyCollection.collection_date >= datetime.combine(date_from, time.min)
        )
    if date_to:
        stmt = stmt.where(
            DailyCollection.collection_date
            < datetime.combine(date_to + timedelta(days=1), time.min)
        )
    return list((await db.execute(stmt)).scalars().all())


async def record_collection(
    db: AsyncSession,
    *,
    group_id: str,
    collection_date: datetime,
    location: str,
    client_name: str,
    chakra_count: int,
    galba_count: int,
    nchira_chakra_count: int = 0,
    nchira_galba_count: int = 0,
    price_per_chakra: Decimal | None = None,
    notes: str | None = None,
) -> DailyCollection:
    await _get_group(db, group_id)
    if not location or not location.strip() or not client_name or not client_name.strip():
        raise InputValidationError("Location and client are required")

    collection = DailyCollection(
        group_id=group_id,
        collection_date=collection_date,
        location=location.strip(),
        client_name=client_name.strip(),
        chakra_count=chakra_count,
        galba_count=galba_count,
        nchira_chakra_count=nchira_chakra_count or 0,
        nchira_galba_count=nchira_galba_count or 0,
        price_per_chakra=price_per_chakra or ZERO,
        notes=(notes or "").strip() or None,
    )
    _apply_totals(collection)
    db.add(collection)
    await db.flush()
    logger.info(
        f"Collection for {collection.client_name} recorded: "
        f"{collection.total_chakra} chakra, {collection.total_amount}"
    )
    return collection


async def update_collection(
    db: AsyncSession, collection_id: str, changes: dict
) -> DailyCollection:
    """Apply edits and recompute total_chakra / total_amount."""
    collection = await get_collection(db, collection_id)

    for field in ("location", "client_name"):
        if field in changes:
            value = (changes[field] or "").strip()
            if not value:
                raise InputValidationError(f"{field} cannot be empty")
            setattr(collection, field, value)
    for field in COUNT_FIELDS:
        if changes.get(field) is not None:
            setattr(collection, field, changes[field])
    if "price_per_chakra" in changes:
        collection.price_per_chakra = changes["price_per_chakra"] or ZERO
    if changes.get("collection_date") is not None:
        collection.collection_date = changes["collection_date"]
    if "notes" in changes:
        collection.notes = (changes["notes"] or "").strip() or None

    _apply_totals(collection)
    await db.flush()
    return collection


async def delete_collection(db: AsyncSession, collection_id: str) -> None:
    collection = await get_collection(db, collection_id)
    await db.delete(collection)
    await db.flush()
    logger.info(f"Collection {collection_id} deleted")


# ── Payouts ──────────────────────────────────────────────────

async def list_payments(db: AsyncSession, group_id: str | None = None) -> list[CollectorPayment]:
    stmt = select(CollectorPayment).order_by(CollectorPayment.payment_date.desc())
    if group_id:
        stmt = stmt.where(CollectorPayment.group_id == group_id)
    return list((await db.execute(stmt)).scalars().all())


async def record_payment(
    db: AsyncSession,
    group_id: str,
    amount: Decimal,
    notes: str | None = None,
    payment_date: datetime | None = None,
) -> CollectorPayment:
    group = await _get_group(db, group_id)
    if amount is None or amount <= 0:
        raise InputValidationError("Amount must be greater than 0")

    payment = CollectorPayment(
        group_id=group_id,
        amount=quantize(amount),
        notes=(notes or "").strip() or None,
        payment_date=payment_date or datetime.utcnow(),
    )
    db.add(payment)
    await db.flush()
    logger.info(f"Paid {payment.amount} to collector group {group.name}")
    return payment


async def delete_payment(db: AsyncSession, payment_id: str) -> None:
    payment = await db.get(CollectorPayment, payment_id)
    if not payment:
        raise ResourceNotFoundError("Collector payment", payment_id)
    await db.delete(payment)
    await db.flush()
    logger.info(f"Collector payment {payment_id} deleted")
