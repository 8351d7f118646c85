"""Oil stock ledger: safes and the purchases stored in them.

Invariant: 0 <= safe.current_stock <= safe.capacity after every
operation.  Edits to a purchase's oil apply the difference to the safe
rather than overwriting its stock; increases are checked against the
free capacity first.
"""

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from oliveflow.middleware.exceptions import (
    ConflictError,
    InputValidationError,
    InsufficientCapacityError,
    InvariantViolation,
    ResourceNotFoundError,
)
from oliveflow.models.stock import OilSafe, OlivePurchase
from oliveflow.utils.money import ZERO, quantize

logger = logging.getLogger(__name__)


# ── Helpers ──────────────────────────────────────────────────

async def _get_safe(db: AsyncSession, safe_id: str, *, lock: bool = False) -> OilSafe:
    stmt = select(OilSafe).where(OilSafe.id == safe_id)
    if lock:
        stmt = stmt.with_for_update()
    safe = (await db.execute(stmt)).scalar_one_or_none()
    if not safe:
        raise ResourceNotFoundError("Safe", safe_id)
    return safe


async def get_purchase(
    db: AsyncSession, purchase_id: str, *, lock: bool = False
) -> OlivePurchase:
    stmt = select(OlivePurchase).where(OlivePurchase.id == purchase_id)
    if lock:
        stmt = stmt.with_for_update()
    purchase = (await db.execute(stmt)).scalar_one_or_none()
    if not purchase:
        raise ResourceNotFoundError("Purchase", purchase_id)
    return purchase


def available_capacity(safe: OilSafe) -> Decimal:
    return safe.capacity - safe.current_stock


def _add_stock(safe: OilSafe, quantity: Decimal) -> None:
    """Apply a signed stock change, enforcing 0 <= stock <= capacity."""
    if quantity > 0 and quantity > available_capacity(safe):
        raise InsufficientCapacityError(
            safe.name, available_capacity(safe), quantity
        )
    new_stock = safe.current_stock + quantity
    if new_stock < 0:
        raise InvariantViolation(
            f"Safe {safe.name} would hold {new_stock} kg "
            f"(stock {safe.current_stock}, change {quantity})"
        )
    safe.current_stock = quantize(new_stock)


def _pricing(
    olive_weight: Decimal | None,
    oil_produced: Decimal | None,
    price_per_kg: Decimal,
    is_base_purchase: bool,
) -> tuple[Decimal, Decimal | None]:
    """Return (total_cost, yield_percentage)."""
    if is_base_purchase:
        if not oil_produced:
            raise InputValidationError(
                "A base purchase is priced on oil weight; oil produced is required"
            )
        total_cost = oil_produced * price_per_kg
    elif olive_weight:
        total_cost = olive_weight * price_per_kg
    elif oil_produced:
        # Direct oil purchase
        total_cost = oil_produced * price_per_kg
    else:
        raise InputValidationError(
            "Either olive weight or oil produced is required"
        )

    yield_percentage = None
    if olive_weight and oil_produced:
        yield_percentage = quantize(oil_produced / olive_weight * 100)
    return quantize(total_cost), yield_percentage


# ── Safes ────────────────────────────────────────────────────

async def create_safe(db: AsyncSession, name: str, capacity: Decimal) -> OilSafe:
    name = name.strip()
    existing = await db.scalar(select(OilSafe.id).where(OilSafe.name == name))
    if existing:
        raise ConflictError(
            f"A safe named {name} already exists", error_code="DUPLICATE_SAFE"
        )
    safe = OilSafe(name=name, capacity=capacity, current_stock=ZERO)
    db.add(safe)
    await db.flush()
    logger.info(f"Safe {name} created with capacity {capacity} kg")
    return safe


async def list_safes(db: AsyncSession) -> list[dict]:
    """Safes with capacity usage and purchase counts."""
    counts = (
        select(
            OlivePurchase.safe_id,
            func.count(OlivePurchase.id).label("purchase_count"),
            func.sum(
                case((OlivePurchase.oil_produced.is_(None), 1), else_=0)
            ).label("pending_oil_count"),
        )
        .group_by(OlivePurchase.safe_id)
        .subquery()
    )
    result = await db.execute(
        select(OilSafe, counts.c.purchase_count, counts.c.pending_oil_count)
        .outerjoin(counts, counts.c.safe_id == OilSafe.id)
        .order_by(OilSafe.name)
    )

    safes = []
    for safe, purchase_count, pending_oil_count in result:
        safes.append(summarize_safe(safe, purchase_count or 0, pending_oil_count or 0))
    return safes


def summarize_safe(safe: OilSafe, purchase_count: int, pending_oil_count: int) -> dict:
    utilization = (
        quantize(safe.current_stock / safe.capacity * 100) if safe.capacity else ZERO
    )
    return {
        "id": safe.id,
        "name": safe.name,
        "capacity": safe.capacity,
        "current_stock": safe.current_stock,
        "available_capacity": available_capacity(safe),
        "utilization_percentage": utilization,
        "purchase_count": purchase_count,
        "pending_oil_count": pending_oil_count,
        "created_at": safe.created_at,
        "updated_at": safe.updated_at,
    }


async def get_safe(db: AsyncSession, safe_id: str) -> dict:
    safe = await _get_safe(db, safe_id)
    purchases = await list_purchases(db, safe_id=safe_id)
    summary = summarize_safe(
        safe,
        len(purchases),
        sum(1 for p in purchases if p.oil_produced is None),
    )
    summary["purchases"] = purchases
    return summary


async def update_safe(
    db: AsyncSession,
    safe_id: str,
    *,
    name: str | None = None,
    capacity: Decimal | None = None,
) -> OilSafe:
    safe = await _get_safe(db, safe_id, lock=True)
    if name is not None and name.strip() != safe.name:
        clash = await db.scalar(
            select(OilSafe.id).where(OilSafe.name == name.strip(), OilSafe.id != safe_id)
        )
        if clash:
            raise ConflictError(
                f"A safe named {name.strip()} already exists",
                error_code="DUPLICATE_SAFE",
            )
        safe.name = name.strip()
    if capacity is not None:
        if capacity < safe.current_stock:
            raise ConflictError(
                f"Capacity {capacity} kg is below the current stock of "
                f"safe {safe.name} ({safe.current_stock} kg)",
                error_code="CAPACITY_BELOW_STOCK",
            )
        safe.capacity = capacity
    await db.flush()
    return safe


async def delete_safe(db: AsyncSession, safe_id: str) -> None:
    safe = await _get_safe(db, safe_id, lock=True)
    if safe.current_stock > 0:
        raise ConflictError(
            f"Safe {safe.name} still holds {safe.current_stock} kg of oil",
            error_code="SAFE_NOT_EMPTY",
        )
    purchase_count = await db.scalar(
        select(func.count()).select_from(OlivePurchase)
        .where(OlivePurchase.safe_id == safe_id)
    )
    if purchase_count:
        raise ConflictError(
            f"Safe {safe.name} has {purchase_count} purchase(s) on record",
            error_code="SAFE_HAS_PURCHASES",
        )
    await db.delete(safe)
    await db.flush()
    logger.info(f"Safe {safe.name} deleted")


# ── Purchases ────────────────────────────────────────────────

async def list_purchases(
    db: AsyncSession, safe_id: str | None = None
) -> list[OlivePurchase]:
    stmt = select(OlivePurchase).order_by(OlivePurchase.purchase_date.desc())
    if safe_id:
        stmt = stmt.where(OlivePurchase.safe_id == safe_id)
    return list((await db.execute(stmt)).scalars().all())


async def record_purchase(
    db: AsyncSession,
    *,
    safe_id: str,
    supplier_name: str,
    price_per_kg: Decimal,
    olive_weight: Decimal | None = None,
    oil_produced: Decimal | None = None,
    is_base_purchase: bool = False,
    supplier_phone: str | None = None,
    notes: str | None = None,
    purchase_date: datetime | None = None,
) -> OlivePurchase:
    """Record a purchase; any oil produced goes straight into the safe."""
    safe = await _get_safe(db, safe_id, lock=True)
    total_cost, yield_percentage = _pricing(
        olive_weight, oil_produced, price_per_kg, is_base_purchase
    )
    if oil_produced:
        _add_stock(safe, oil_produced)

    purchase = OlivePurchase(
        safe_id=safe_id,
        supplier_name=supplier_name.strip(),
        supplier_phone=supplier_phone,
        olive_weight=olive_weight,
        oil_produced=oil_produced,
        yield_percentage=yield_percentage,
        price_per_kg=price_per_kg,
        total_cost=total_cost,
        is_base_purchase=is_base_purchase,
        notes=notes,
        purchase_date=purchase_date or datetime.utcnow(),
    )
    db.add(purchase)
    await db.flush()
    logger.info(
        f"Purchase from {purchase.supplier_name} recorded in safe {safe.name}: "
        f"oil={oil_produced} cost={total_cost}"
    )
    return purchase


async def update_purchase(
    db: AsyncSession, purchase_id: str, changes: dict
) -> OlivePurchase:
    """Apply edits; a change of oil_produced moves only the difference."""
    purchase = await get_purchase(db, purchase_id, lock=True)
    safe = await _get_safe(db, purchase.safe_id, lock=True)

    for field in ("supplier_name", "supplier_phone", "notes", "purchase_date"):
        if field in changes:
            setattr(purchase, field, changes[field])

    repriced = any(
        field in changes
        for field in ("olive_weight", "price_per_kg", "oil_produced", "is_base_purchase")
    )
    if repriced:
        olive_weight = changes.get("olive_weight", purchase.olive_weight)
        oil_produced = changes.get("oil_produced", purchase.oil_produced)
        price_per_kg = changes.get("price_per_kg", purchase.price_per_kg)
        is_base = changes.get("is_base_purchase", purchase.is_base_purchase)

        total_cost, yield_percentage = _pricing(
            olive_weight, oil_produced, price_per_kg, is_base
        )
        difference = (oil_produced or ZERO) - (purchase.oil_produced or ZERO)
        if difference:
            _add_stock(safe, difference)

        purchase.olive_weight = olive_weight
        purchase.oil_produced = oil_produced
        purchase.price_per_kg = price_per_kg
        purchase.is_base_purchase = is_base
        purchase.total_cost = total_cost
        purchase.yield_percentage = yield_percentage

    await db.flush()
    return purchase


async def delete_purchase(db: AsyncSession, purchase_id: str) -> None:
    """Delete a purchase and take its oil out of the safe."""
    purchase = await get_purchase(db, purchase_id, lock=True)
    safe = await _get_safe(db, purchase.safe_id, lock=True)
    if purchase.oil_produced:
        _add_stock(safe, -purchase.oil_produced)
    await db.delete(purchase)
    await db.flush()
    logger.info(f"Purchase {purchase_id} deleted from safe {safe.name}")


async def move_purchase(
    db: AsyncSession, purchase_id: str, new_safe_id: str
) -> OlivePurchase:
    """Move a purchase (and its oil) to another safe."""
    purchase = await get_purchase(db, purchase_id, lock=True)
    if purchase.safe_id == new_safe_id:
        raise InputValidationError("The purchase is already in this safe")

    # Lock both safes in a fixed order so two opposite moves can't deadlock
    safes = {}
    for safe_id in sorted([purchase.safe_id, new_safe_id]):
        safes[safe_id] = await _get_safe(db, safe_id, lock=True)
    source, destination = safes[purchase.safe_id], safes[new_safe_id]

    oil = purchase.oil_produced or ZERO
    if oil:
        _add_stock(destination, oil)
        _add_stock(source, -oil)
    purchase.safe_id = new_safe_id

    await db.flush()
    logger.info(
        f"Purchase {purchase_id} moved from {source.name} to {destination.name} "
        f"({oil} kg)"
    )
    return purchase
