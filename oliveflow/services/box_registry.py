"""Box registry: lookups, release, identity reassignment, pool reset.

All check-then-act reads lock the box rows (SELECT ... FOR UPDATE) so two
requests racing for the same box serialise on the row.
"""

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from oliveflow.middleware.exceptions import (
    BoxNotAvailableError,
    ConflictError,
    InputValidationError,
    ResourceNotFoundError,
)
from oliveflow.models.box import Box
from oliveflow.services.session_state import BoxStatus, BoxType
from oliveflow.utils.activity import log_activity
from oliveflow.utils.box_ids import (
    AUXILIARY,
    box_sort_key,
    factory_ids,
    is_factory,
    parse_box_id,
)

logger = logging.getLogger(__name__)


# ── Lookups ──────────────────────────────────────────────────

async def find_box(
    db: AsyncSession, box_id: str, *, lock: bool = False
) -> Box | None:
    stmt = select(Box).where(Box.id == box_id)
    if lock:
        stmt = stmt.with_for_update()
    return (await db.execute(stmt)).scalar_one_or_none()


async def get_box(db: AsyncSession, box_id: str, *, lock: bool = False) -> Box:
    box = await find_box(db, box_id, lock=lock)
    if not box:
        raise ResourceNotFoundError("Box", box_id)
    return box


async def load_boxes(
    db: AsyncSession, box_ids: list[str], *, lock: bool = False
) -> dict[str, Box]:
    """Fetch boxes by id.  Missing ids raise InputValidationError."""
    wanted = list(dict.fromkeys(box_ids))
    stmt = select(Box).where(Box.id.in_(wanted))
    if lock:
        stmt = stmt.with_for_update()
    boxes = {b.id: b for b in (await db.execute(stmt)).scalars().all()}

    missing = [box_id for box_id in wanted if box_id not in boxes]
    if missing:
        raise InputValidationError(
            f"Unknown box id(s): {', '.join(missing)}",
            error_code="UNKNOWN_BOX",
            details={"box_ids": missing},
        )
    return boxes


def sort_boxes(boxes: list[Box]) -> list[Box]:
    return sorted(boxes, key=lambda b: box_sort_key(b.id))


async def list_boxes(
    db: AsyncSession,
    *,
    holder_id: str | None = None,
    box_type: str | None = None,
    status: str | None = None,
    selected: bool | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Box], int]:
    """Filtered box listing in numeric identity order."""
    stmt = select(Box)
    if holder_id:
        stmt = stmt.where(Box.current_holder_id == holder_id)
    if box_type:
        stmt = stmt.where(Box.type == box_type)
    if status:
        stmt = stmt.where(Box.status == status)
    if selected is not None:
        stmt = stmt.where(Box.is_selected == selected)

    # Ordering is by parsed identity, which SQL can't express portably
    boxes = sort_boxes(list((await db.execute(stmt)).scalars().all()))
    return boxes[offset:offset + limit], len(boxes)


async def list_available(
    db: AsyncSession,
    *,
    box_type: str | None = None,
    include_auxiliary: bool = False,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Box], int]:
    """Available boxes; auxiliary boxes only when asked for."""
    stmt = select(Box).where(Box.status == BoxStatus.AVAILABLE.value)
    if box_type:
        stmt = stmt.where(Box.type == box_type)
    if box_type != BoxType.CHKARA.value and not include_auxiliary:
        stmt = stmt.where(Box.type != BoxType.CHKARA.value)

    boxes = sort_boxes(list((await db.execute(stmt)).scalars().all()))
    return boxes[offset:offset + limit], len(boxes)


async def list_farmer_boxes(db: AsyncSession, farmer_id: str) -> list[Box]:
    result = await db.execute(
        select(Box).where(Box.current_holder_id == farmer_id)
    )
    return sort_boxes(list(result.scalars().all()))


# ── Release ──────────────────────────────────────────────────

def release_box(box: Box) -> bool:
    """Put *box* back in the available pool.  Returns False if it already was."""
    changed = box.status != BoxStatus.AVAILABLE.value or box.is_selected
    box.status = BoxStatus.AVAILABLE.value
    box.current_holder_id = None
    box.current_weight = None
    box.assigned_at = None
    box.is_selected = False
    return changed


async def release(db: AsyncSession, box_ids: list[str]) -> list[Box]:
    """Release boxes.  Already-available boxes are left as they are."""
    boxes = await load_boxes(db, box_ids, lock=True)
    released = [b.id for b in boxes.values() if release_box(b)]
    await db.flush()
    if released:
        logger.info(f"Released boxes {', '.join(released)}")
    return sort_boxes(list(boxes.values()))


async def reset_factory_pool(db: AsyncSession) -> int:
    """Release every in-use factory box.  Auxiliary boxes are untouched."""
    result = await db.execute(
        select(Box)
        .where(
            Box.status == BoxStatus.IN_USE.value,
            Box.id.in_(factory_ids()),
        )
        .with_for_update()
    )
    boxes = result.scalars().all()
    for box in boxes:
        release_box(box)

    if boxes:
        await log_activity(
            db,
            action="pool_reset",
            entity_type="box",
            summary=f"Factory pool reset: {len(boxes)} box(es) released",
            details={"box_ids": [b.id for b in sort_boxes(list(boxes))]},
        )
    await db.flush()
    logger.info(f"Factory pool reset released {len(boxes)} box(es)")
    return len(boxes)


async def seed_factory_pool(db: AsyncSession) -> int:
    """Create any missing factory boxes.  Returns how many were created."""
    existing = set(
        (await db.execute(select(Box.id).where(Box.id.in_(factory_ids()))))
        .scalars().all()
    )
    created = 0
    for box_id in factory_ids():
        if box_id in existing:
            continue
        db.add(Box(
            id=box_id,
            type=BoxType.NORMAL.value,
            status=BoxStatus.AVAILABLE.value,
            is_selected=False,
        ))
        created += 1
    await db.flush()
    logger.info(f"Seeded {created} factory box(es)")
    return created


# ── Update & identity reassignment ───────────────────────────

def _type_for_namespace(namespace: str, requested: str) -> str:
    if namespace == AUXILIARY:
        return BoxType.CHKARA.value
    if requested == BoxType.CHKARA.value:
        raise InputValidationError(
            "Factory boxes cannot have type chkara",
            error_code="INVALID_BOX_TYPE",
        )
    return requested


async def reassign_identity(
    db: AsyncSession,
    old_id: str,
    new_id: str,
    *,
    box_type: str | None = None,
    weight: Decimal | None = None,
) -> Box:
    """Move an in-use box to a new identity, keeping its holder and weight.

    An available box already sitting at *new_id* is dropped first; an
    in-use one blocks the rename.
    """
    box = await get_box(db, old_id, lock=True)
    if box.status != BoxStatus.IN_USE.value:
        raise ConflictError(
            f"Box {old_id} is not in use; only boxes in use can be renamed",
            error_code="BOX_NOT_IN_USE",
        )

    identity = parse_box_id(new_id)
    new_id = identity.box_id
    if new_id == old_id:
        raise InputValidationError(f"Box {old_id} already has this id")

    if box_type is None and box.type == BoxType.CHKARA.value:
        box_type = BoxType.NORMAL.value
    new_type = _type_for_namespace(identity.namespace, box_type or box.type)

    target = await find_box(db, new_id, lock=True)
    if target is not None:
        if target.status == BoxStatus.IN_USE.value:
            raise BoxNotAvailableError(
                [new_id], "is already in use and cannot be replaced"
            )
        await db.delete(target)
        await db.flush()

    renamed = Box(
        id=new_id,
        type=new_type,
        status=BoxStatus.IN_USE.value,
        current_holder_id=box.current_holder_id,
        current_weight=weight if weight is not None else box.current_weight,
        assigned_at=box.assigned_at,
        is_selected=box.is_selected,
    )
    holder_id = box.current_holder_id
    await db.delete(box)
    await db.flush()
    db.add(renamed)

    # The factory pool keeps all of its identities
    if is_factory(old_id):
        db.add(Box(
            id=old_id,
            type=BoxType.NORMAL.value,
            status=BoxStatus.AVAILABLE.value,
            is_selected=False,
        ))

    await log_activity(
        db,
        action="reassigned",
        entity_type="box",
        entity_id=new_id,
        summary=f"Box {old_id} renamed to {new_id}",
        details={
            "old_id": old_id,
            "new_id": new_id,
            "holder_id": holder_id,
            "replaced_available_box": target is not None,
        },
    )
    await db.flush()
    logger.info(f"Box {old_id} reassigned to {new_id}")
    return renamed


async def update_box(
    db: AsyncSession,
    box_id: str,
    *,
    new_id: str | None = None,
    box_type: str | None = None,
    weight: Decimal | None = None,
) -> Box:
    """Edit the weight/type of an in-use box, optionally renaming it."""
    if new_id and new_id.strip() != box_id:
        return await reassign_identity(
            db, box_id, new_id.strip(), box_type=box_type, weight=weight
        )

    box = await get_box(db, box_id, lock=True)
    if box.status != BoxStatus.IN_USE.value:
        raise ConflictError(
            f"Box {box_id} is not in use and cannot be edited",
            error_code="BOX_NOT_IN_USE",
        )
    if box_type is not None:
        box.type = _type_for_namespace(parse_box_id(box.id).namespace, box_type)
    if weight is not None:
        box.current_weight = weight
    box.updated_at = datetime.utcnow()
    await db.flush()
    return box
