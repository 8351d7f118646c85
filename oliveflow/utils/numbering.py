"""Session number generation.

Numbers have the form ``S#<n>``.  The sequence lives in a counter row
that is incremented under ``SELECT ... FOR UPDATE``.  The row is created
with ``INSERT ... ON CONFLICT DO NOTHING``, seeded from the highest
``S#<n>`` already stored, so concurrent first calls all end up locking
the same row.  If the generated number is
somehow taken, a timestamp suffix is appended: ``S#<n>-YYYYMMDDHHMMSS``.
"""

import re
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from oliveflow.models.counter import SequenceCounter
from oliveflow.models.session import ProcessingSession

SESSION_COUNTER = "session"
SESSION_NUMBER_RE = re.compile(r"^S#(\d+)$")


async def _max_existing_session_number(db: AsyncSession) -> int:
    result = await db.execute(
        select(ProcessingSession.session_number)
        .where(ProcessingSession.session_number.like("S#%"))
    )
    highest = 0
    for (number,) in result:
        match = SESSION_NUMBER_RE.match(number)
        if match:
            highest = max(highest, int(match.group(1)))
    return highest


async def _number_taken(db: AsyncSession, number: str) -> bool:
    count = await db.scalar(
        select(func.count())
        .select_from(ProcessingSession)
        .where(ProcessingSession.session_number == number)
    )
    return bool(count)


async def ensure_unique_number(db: AsyncSession, candidate: str) -> str:
    """Return *candidate*, or candidate-<timestamp> if it is already used."""
    if not await _number_taken(db, candidate):
        return candidate
    return f"{candidate}-{datetime.utcnow().strftime('%Y%m%d%H%M%S')}"


async def ensure_counter(db: AsyncSession, name: str, seed: int = 0) -> None:
    """Create counter *name* at *seed* unless it already exists."""
    insert = sqlite_insert if db.bind.dialect.name == "sqlite" else pg_insert
    await db.execute(
        insert(SequenceCounter)
        .values(name=name, value=seed, updated_at=datetime.utcnow())
        .on_conflict_do_nothing(index_elements=["name"])
    )


async def next_session_number(db: AsyncSession) -> str:
    """Allocate the next S#<n>.  Must run inside the caller's transaction."""
    exists = await db.scalar(
        select(SequenceCounter.name).where(SequenceCounter.name == SESSION_COUNTER)
    )
    if exists is None:
        await ensure_counter(
            db, SESSION_COUNTER, await _max_existing_session_number(db)
        )

    counter = (
        await db.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == SESSION_COUNTER)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
    ).scalar_one()
    counter.value += 1
    await db.flush()

    return await ensure_unique_number(db, f"S#{counter.value}")
