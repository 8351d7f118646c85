"""SequenceCounter: named monotonically increasing counters.

Incremented under a row lock so concurrent requests never hand out the
same value.
"""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from oliveflow.database import Base


class SequenceCounter(Base):
    __tablename__ = "sequence_counters"

    # e.g. "session"
    name: Mapped[str] = mapped_column(String(50), primary_key=True)
    value: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
