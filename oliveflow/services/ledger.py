"""Farmer ledger recompute.

A farmer's totals are a pure function of all of its sessions:

  total_amount_due   = Σ total_price   (sessions with a price)
  total_amount_paid  = Σ amount_paid   (all sessions)
  payment_status     = pending if any session is unpriced, not fully
                       paid, or has money remaining; otherwise paid

The recompute reads every session of the farmer (never a delta) and is
safe to call as often as needed.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from oliveflow.middleware.exceptions import InvariantViolation, ResourceNotFoundError
from oliveflow.models.farmer import Farmer
from oliveflow.models.session import ProcessingSession
from oliveflow.services.session_state import FarmerPaymentStatus, PaymentStatus
from oliveflow.utils.money import ZERO, quantize

logger = logging.getLogger(__name__)


def _has_unpaid(session: ProcessingSession) -> bool:
    return (
        session.total_price is None
        or session.payment_status != PaymentStatus.PAID.value
        or (session.remaining_amount or ZERO) > 0
    )


async def recompute_farmer_ledger(db: AsyncSession, farmer_id: str) -> Farmer:
    """Rebuild the farmer's due/paid/status from its sessions."""
    farmer = await db.get(Farmer, farmer_id, with_for_update=True)
    if not farmer:
        raise ResourceNotFoundError("Farmer", farmer_id)

    # Make sure pending changes to sessions are visible to the query
    await db.flush()
    sessions = (
        await db.execute(
            select(ProcessingSession).where(ProcessingSession.farmer_id == farmer_id)
        )
    ).scalars().all()

    total_due = ZERO
    total_paid = ZERO
    has_unpaid = False
    for session in sessions:
        if (session.amount_paid or ZERO) < 0 or (session.remaining_amount or ZERO) < 0:
            raise InvariantViolation(
                f"Session {session.session_number} has a negative amount "
                f"(paid={session.amount_paid}, remaining={session.remaining_amount})"
            )
        if session.total_price is not None:
            total_due += session.total_price
        total_paid += session.amount_paid or ZERO
        has_unpaid = has_unpaid or _has_unpaid(session)

    farmer.total_amount_due = quantize(total_due)
    farmer.total_amount_paid = quantize(total_paid)
    farmer.payment_status = (
        FarmerPaymentStatus.PENDING.value if has_unpaid
        else FarmerPaymentStatus.PAID.value
    )
    await db.flush()

    logger.debug(
        f"Ledger for farmer {farmer_id}: due={farmer.total_amount_due} "
        f"paid={farmer.total_amount_paid} status={farmer.payment_status}"
    )
    return farmer


async def recompute_all_ledgers(db: AsyncSession) -> int:
    farmer_ids = (await db.execute(select(Farmer.id))).scalars().all()
    for farmer_id in farmer_ids:
        await recompute_farmer_ledger(db, farmer_id)
    return len(farmer_ids)
