"""Box allocation: handing boxes to farmers.

assign() is check-then-act inside one transaction with the box row
locked, so of two concurrent assignments of the same box exactly one
wins and the other gets BoxNotAvailableError.
"""

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from oliveflow.config import settings
from oliveflow.middleware.exceptions import (
    BoxNotAvailableError,
    InputValidationError,
    OliveFlowException,
    ResourceNotFoundError,
)
from oliveflow.models.box import Box
from oliveflow.models.farmer import Farmer
from oliveflow.services.box_registry import find_box, load_boxes, release_box
from oliveflow.services.session_state import BoxStatus, BoxType
from oliveflow.utils.box_ids import (
    AUXILIARY,
    FACTORY,
    next_auxiliary_id,
    parse_box_id,
)

logger = logging.getLogger(__name__)


# ── Helpers ──────────────────────────────────────────────────

async def _suggest_auxiliary_id(db: AsyncSession) -> str:
    result = await db.execute(
        select(Box.id).where(Box.id.like(f"{settings.auxiliary_prefix}%"))
    )
    return next_auxiliary_id(list(result.scalars().all()))


async def _get_farmer(db: AsyncSession, farmer_id: str) -> Farmer:
    farmer = await db.get(Farmer, farmer_id)
    if not farmer:
        raise ResourceNotFoundError("Farmer", farmer_id)
    return farmer


def _stamp(box: Box, farmer_id: str, box_type: str, weight: Decimal) -> None:
    box.type = box_type
    box.status = BoxStatus.IN_USE.value
    box.current_holder_id = farmer_id
    box.current_weight = weight
    box.assigned_at = datetime.utcnow()
    box.is_selected = False


# ── Identity validation ──────────────────────────────────────

async def validate_identity(
    db: AsyncSession, box_id: str | None, box_type: str
) -> dict:
    """Check an id against its pool and report availability.

    For the auxiliary pool the next free Chkara<N> is always suggested.
    """
    suggested_id = None
    if box_type == BoxType.CHKARA.value:
        suggested_id = await _suggest_auxiliary_id(db)

    if not box_id:
        return {
            "is_valid": False,
            "box_id": None,
            "suggested_id": suggested_id,
            "available": False,
            "message": "No box id given",
        }

    try:
        identity = parse_box_id(box_id)
    except InputValidationError as e:
        return {
            "is_valid": False,
            "box_id": box_id,
            "suggested_id": suggested_id,
            "available": False,
            "message": e.message,
        }

    expected = AUXILIARY if box_type == BoxType.CHKARA.value else FACTORY
    if identity.namespace != expected:
        return {
            "is_valid": False,
            "box_id": identity.box_id,
            "suggested_id": suggested_id,
            "available": False,
            "message": f"Box id {identity.box_id} does not match type {box_type}",
        }

    box = await find_box(db, identity.box_id)
    if box is None:
        # Auxiliary boxes are created on first use
        available = identity.namespace == AUXILIARY
        message = "Box will be created" if available else "Box does not exist"
    else:
        available = box.status == BoxStatus.AVAILABLE.value
        message = "Box is available" if available else "Box is already in use"

    return {
        "is_valid": True,
        "box_id": identity.box_id,
        "suggested_id": suggested_id,
        "available": available,
        "message": message,
    }


# ── Assignment ───────────────────────────────────────────────

async def assign(
    db: AsyncSession,
    farmer_id: str,
    box_id: str | None,
    box_type: str,
    weight: Decimal,
) -> Box:
    """Give one box to a farmer.

    Factory boxes must exist and be available.  Auxiliary boxes are
    created when missing; without an id the first free Chkara<N> is used.
    """
    if weight is None or weight <= 0:
        raise InputValidationError(
            f"Weight for box {box_id or '(new)'} must be greater than 0"
        )
    await _get_farmer(db, farmer_id)

    if box_type == BoxType.CHKARA.value:
        if not box_id:
            box_id = await _suggest_auxiliary_id(db)
        identity = parse_box_id(box_id)
        if identity.namespace != AUXILIARY:
            raise InputValidationError(
                f"Chkara boxes need an id like {settings.auxiliary_prefix}<N>, "
                f"got {box_id}",
                error_code="INVALID_BOX_ID",
            )
        box = await find_box(db, identity.box_id, lock=True)
        if box is None:
            box = Box(id=identity.box_id, is_selected=False)
            _stamp(box, farmer_id, box_type, weight)
            db.add(box)
            await db.flush()
            logger.info(f"Created auxiliary box {box.id} for farmer {farmer_id}")
            return box
    else:
        if box_type not in (BoxType.NORMAL.value, BoxType.NCHIRA.value):
            raise InputValidationError(
                f"Unknown box type {box_type}", error_code="INVALID_BOX_TYPE"
            )
        if not box_id:
            raise InputValidationError("A box id is required")
        identity = parse_box_id(box_id)
        if identity.namespace != FACTORY:
            raise InputValidationError(
                f"Box {box_id} is a {settings.auxiliary_prefix} box; "
                "assign it with type chkara",
                error_code="INVALID_BOX_TYPE",
            )
        box = await find_box(db, identity.box_id, lock=True)
        if box is None:
            raise InputValidationError(
                f"Box {identity.box_id} does not exist",
                error_code="UNKNOWN_BOX",
            )

    if box.status != BoxStatus.AVAILABLE.value:
        raise BoxNotAvailableError([box.id], "is already in use")

    _stamp(box, farmer_id, box_type, weight)
    await db.flush()
    logger.info(f"Assigned box {box.id} to farmer {farmer_id}")
    return box


async def bulk_assign(
    db: AsyncSession, farmer_id: str, items: list[dict]
) -> dict:
    """Assign several boxes; each item succeeds or fails on its own.

    Returns {"created": [Box, ...], "errors": [{"box_id", "message"}, ...]}.
    Raises only when nothing at all could be assigned.
    """
    if not items:
        raise InputValidationError("No boxes to assign")
    if len(items) > settings.bulk_assign_max_items:
        raise InputValidationError(
            f"At most {settings.bulk_assign_max_items} boxes can be assigned "
            f"at once, got {len(items)}"
        )
    await _get_farmer(db, farmer_id)

    created: list[Box] = []
    errors: list[dict] = []
    for item in items:
        # assign() validates before it touches anything, so a failed item
        # leaves no partial state behind
        try:
            box = await assign(
                db, farmer_id, item.get("box_id"), item["box_type"], item["weight"]
            )
        except OliveFlowException as e:
            errors.append({"box_id": item.get("box_id"), "message": e.message})
            continue
        created.append(box)

    if not created:
        raise InputValidationError(
            "None of the boxes could be assigned",
            error_code="BULK_ASSIGN_FAILED",
            details={"errors": errors},
        )
    logger.info(
        f"Bulk assign for farmer {farmer_id}: "
        f"{len(created)} assigned, {len(errors)} failed"
    )
    return {"created": created, "errors": errors}


# ── Bulk toggles ─────────────────────────────────────────────

async def bulk_set_selection(
    db: AsyncSession, box_ids: list[str], selected: bool
) -> int:
    boxes = await load_boxes(db, box_ids, lock=True)
    for box in boxes.values():
        box.is_selected = selected
    await db.flush()
    return len(boxes)


async def bulk_release(db: AsyncSession, box_ids: list[str]) -> int:
    """Clear a batch of boxes.  Refused if any of them is in use."""
    boxes = await load_boxes(db, box_ids, lock=True)
    in_use = [b.id for b in boxes.values() if b.status == BoxStatus.IN_USE.value]
    if in_use:
        raise BoxNotAvailableError(
            in_use, "are in use; release them one at a time"
        )
    for box in boxes.values():
        release_box(box)
    await db.flush()
    return len(boxes)
