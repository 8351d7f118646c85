"""Database engine, session factory, and declarative base.

One request maps to one transaction: `get_db()` commits when the handler
returns and rolls back on any exception.  Services only flush.  Dashboard
notifications queued during the request are sent after the commit and
dropped on rollback.
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy.orm import DeclarativeBase

from oliveflow.config import settings
from oliveflow.utils.cache import discard_pending_mutations, flush_pending_mutations

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_size=20,
    max_overflow=10,
)

async_session = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncSession:
    """Yield a session wrapped in a single transaction."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            discard_pending_mutations(session)
            raise
        await flush_pending_mutations(session)
