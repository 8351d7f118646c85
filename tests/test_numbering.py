"""Tests for session number allocation."""

from decimal import Decimal

import pytest
from sqlalchemy import select

from oliveflow.models.counter import SequenceCounter
from oliveflow.models.session import ProcessingSession
from oliveflow.utils.numbering import ensure_counter, ensure_unique_number, next_session_number


def _session(farmer_id: str, number: str) -> ProcessingSession:
    return ProcessingSession(
        session_number=number,
        farmer_id=farmer_id,
        box_count=0,
        total_box_weight=Decimal("0"),
        processing_status="pending",
        payment_status="unpaid",
        amount_paid=Decimal("0"),
        remaining_amount=Decimal("0"),
    )


@pytest.mark.integration
@pytest.mark.asyncio
class TestSessionNumbering:

    async def test_first_number(self, db_session):
        assert await next_session_number(db_session) == "S#1"
        assert await next_session_number(db_session) == "S#2"

    async def test_counter_is_seeded_from_existing_numbers(self, db_session, farmer):
        db_session.add_all([
            _session(farmer.id, "S#7"),
            _session(farmer.id, "S#3"),
            _session(farmer.id, "S#12 (Groupé)"),
        ])
        await db_session.flush()

        assert await next_session_number(db_session) == "S#8"

    async def test_taken_number_gets_timestamp_suffix(self, db_session, farmer):
        db_session.add(SequenceCounter(name="session", value=3))
        db_session.add(_session(farmer.id, "S#4"))
        await db_session.flush()

        number = await next_session_number(db_session)

        assert number.startswith("S#4-")
        assert len(number) == len("S#4-") + 14

    async def test_ensure_unique_number(self, db_session, farmer):
        assert await ensure_unique_number(db_session, "S#1 (Groupé)") == "S#1 (Groupé)"
        db_session.add(_session(farmer.id, "S#1 (Groupé)"))
        await db_session.flush()
        assert (await ensure_unique_number(db_session, "S#1 (Groupé)")).startswith("S#1 (Groupé)-")

    async def test_creating_an_existing_counter_is_a_no_op(self, db_session):
        await ensure_counter(db_session, "session", 5)
        await ensure_counter(db_session, "session", 0)

        counters = (await db_session.execute(select(SequenceCounter))).scalars().all()
        assert [(c.name, c.value) for c in counters] == [("session", 5)]

    async def test_counter_created_elsewhere_is_reused(self, db_session, farmer):
        # Another request seeded the row before this one got to it
        await ensure_counter(db_session, "session", 9)
        db_session.add(_session(farmer.id, "S#2"))
        await db_session.flush()

        assert await next_session_number(db_session) == "S#10"
