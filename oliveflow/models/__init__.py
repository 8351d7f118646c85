"""Aggregate model imports for Alembic auto-detection."""

# Box inventory
from oliveflow.models.farmer import Farmer  # noqa: F401
from oliveflow.models.box import Box  # noqa: F401

# Sessions & settlement
from oliveflow.models.session import (  # noqa: F401
    PaymentTransaction,
    ProcessingSession,
    SessionBox,
)
from oliveflow.models.transaction import Transaction  # noqa: F401
from oliveflow.models.counter import SequenceCounter  # noqa: F401

# Oil stock
from oliveflow.models.stock import OilSafe, OlivePurchase  # noqa: F401

# Collection rounds
from oliveflow.models.collection import (  # noqa: F401
    CollectorGroup,
    CollectorPayment,
    DailyCollection,
)

# Audit
from oliveflow.models.activity_log import ActivityLog  # noqa: F401
