"""Pytest configuration and fixtures for OliveFlow tests.

Each test gets a fresh in-memory SQLite database built from the ORM
metadata.  Route tests share the test's session through an overridden
``get_db`` that commits or rolls back exactly like the real one.
"""

from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from oliveflow import models  # noqa: F401  (register all tables)
from oliveflow.config import settings
from oliveflow.database import Base, get_db
from oliveflow.main import app
from oliveflow.models.farmer import Farmer
from oliveflow.services import box_allocation, sessions
from oliveflow.services.box_registry import seed_factory_pool
from oliveflow.utils.cache import discard_pending_mutations, flush_pending_mutations


# ── Settings ─────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
def _disable_dashboard_cache(monkeypatch):
    """Keep Redis out of the tests; the sink becomes a no-op."""
    monkeypatch.setattr(settings, "dashboard_cache_enabled", False)


# ── Test Database Setup ──────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(db_session) -> AsyncGenerator[AsyncClient, None]:
    """Test client with the database dependency pointed at the test session."""

    async def override_get_db():
        try:
            yield db_session
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            discard_pending_mutations(db_session)
            raise
        await flush_pending_mutations(db_session)

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as client:
        yield client

    app.dependency_overrides.clear()


# ── Test Data Fixtures ───────────────────────────────────────────

@pytest_asyncio.fixture
async def factory_boxes(db_session: AsyncSession) -> int:
    """Seed the factory pool "1".."600"."""
    return await seed_factory_pool(db_session)


@pytest_asyncio.fixture
async def make_farmer(db_session: AsyncSession):
    counter = {"n": 0}

    async def _make(name: str | None = None) -> Farmer:
        counter["n"] += 1
        farmer = Farmer(
            name=name or f"Farmer Number{counter['n']}",
            type="small",
            total_amount_due=Decimal("0"),
            total_amount_paid=Decimal("0"),
            payment_status="paid",
        )
        db_session.add(farmer)
        await db_session.flush()
        return farmer

    return _make


@pytest_asyncio.fixture
async def farmer(make_farmer) -> Farmer:
    return await make_farmer("Ali Ben Salah")


@pytest_asyncio.fixture
async def open_session(db_session: AsyncSession, factory_boxes):
    """Assign the given (box_id, weight) pairs to a farmer and open a session."""

    async def _open(farmer_id: str, boxes: list[tuple[str, str]], box_type: str = "normal"):
        for box_id, weight in boxes:
            await box_allocation.assign(
                db_session, farmer_id, box_id, box_type, Decimal(weight)
            )
        return await sessions.create_session(
            db_session, farmer_id, [box_id for box_id, _ in boxes]
        )

    return _open
