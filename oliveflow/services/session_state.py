"""Session state machine.

A session's state is the product of two orthogonal axes:

  processing:  pending → processed
  payment:     unpaid ⇄ partial ⇄ paid

Which actions a session accepts is decided here, from one table, rather
than by ad hoc checks in each operation.
"""

from decimal import Decimal
from enum import Enum

from oliveflow.middleware.exceptions import ConflictError, SessionLockedError
from oliveflow.models.session import ProcessingSession


class ProcessingStatus(str, Enum):
    PENDING = "pending"
    PROCESSED = "processed"


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"


class BoxStatus(str, Enum):
    AVAILABLE = "available"
    IN_USE = "in_use"


class BoxType(str, Enum):
    NORMAL = "normal"
    NCHIRA = "nchira"
    CHKARA = "chkara"


class FarmerPaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


class TransactionType(str, Enum):
    FARMER_PAYMENT = "FARMER_PAYMENT"
    DEBIT = "DEBIT"
    CREDIT = "CREDIT"


class SessionAction(str, Enum):
    COMPLETE = "complete"
    UPDATE = "update"
    MARK_PAID = "mark_paid"
    MARK_UNPAID = "mark_unpaid"
    SETTLE = "settle"
    UNPAY = "unpay"
    MERGE = "merge"
    DELETE = "delete"
    RESET = "reset"


# action → (refused while paid, needs oil, verb for messages)
TRANSITIONS: dict[SessionAction, tuple[bool, bool, str]] = {
    SessionAction.COMPLETE: (True, False, "completed"),
    SessionAction.UPDATE: (True, False, "edited"),
    SessionAction.MARK_PAID: (True, True, "marked as paid again"),
    SessionAction.MARK_UNPAID: (False, True, "marked as unpaid"),
    SessionAction.SETTLE: (True, True, "settled again"),
    SessionAction.UNPAY: (False, False, "unpaid"),
    SessionAction.MERGE: (True, False, "merged"),
    SessionAction.DELETE: (True, False, "deleted"),
    SessionAction.RESET: (False, False, "reset"),
}


def payment_status_for(amount_paid: Decimal, total_price: Decimal) -> PaymentStatus:
    if amount_paid >= total_price:
        return PaymentStatus.PAID
    if amount_paid > 0:
        return PaymentStatus.PARTIAL
    return PaymentStatus.UNPAID


def is_settleable(session: ProcessingSession) -> bool:
    # Pending sessions with an oil weight count as settleable
    return (
        session.processing_status == ProcessingStatus.PROCESSED.value
        or (session.oil_weight or 0) > 0
    )


def check_transition(session: ProcessingSession, action: SessionAction) -> None:
    """Raise if *session* may not take *action* in its current state."""
    locked_when_paid, needs_oil, verb = TRANSITIONS[action]

    if locked_when_paid and session.payment_status == PaymentStatus.PAID.value:
        raise SessionLockedError(session.session_number, verb)

    if needs_oil and not is_settleable(session):
        raise ConflictError(
            f"Session {session.session_number} must be processed "
            "(or have an oil weight) before payment",
            error_code="SESSION_NOT_PROCESSED",
        )

    if action is SessionAction.UNPAY:
        if session.payment_status == PaymentStatus.UNPAID.value:
            raise ConflictError(
                f"Session {session.session_number} is not paid",
                error_code="SESSION_NOT_PAID",
            )
        if not session.payment_transactions:
            raise ConflictError(
                f"Session {session.session_number} has no payment "
                "transactions to revert",
                error_code="NO_PAYMENT_TRANSACTIONS",
            )

    if action is SessionAction.MARK_UNPAID and session.payment_transactions:
        raise ConflictError(
            f"Session {session.session_number} has recorded payments; "
            "use unpay to revert them",
            error_code="SESSION_HAS_PAYMENTS",
        )
