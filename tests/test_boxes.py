"""Tests for the box registry and allocation services."""

from decimal import Decimal

import pytest
from sqlalchemy import func, select

from oliveflow.middleware.exceptions import (
    BoxNotAvailableError,
    ConflictError,
    InputValidationError,
)
from oliveflow.models.activity_log import ActivityLog
from oliveflow.models.box import Box
from oliveflow.services import box_allocation, box_registry
from oliveflow.utils.box_ids import is_factory


async def _count_factory_boxes(db) -> int:
    ids = (await db.execute(select(Box.id))).scalars().all()
    return sum(1 for box_id in ids if is_factory(box_id))


@pytest.mark.integration
@pytest.mark.asyncio
class TestSeeding:

    async def test_seed_creates_full_pool_once(self, db_session):
        assert await box_registry.seed_factory_pool(db_session) == 600
        assert await box_registry.seed_factory_pool(db_session) == 0
        assert await _count_factory_boxes(db_session) == 600

    async def test_seeded_boxes_are_available(self, db_session, factory_boxes):
        in_use = await db_session.scalar(
            select(func.count()).select_from(Box).where(Box.status != "available")
        )
        assert in_use == 0


@pytest.mark.integration
@pytest.mark.asyncio
class TestAssign:

    async def test_assign_factory_box(self, db_session, factory_boxes, farmer):
        box = await box_allocation.assign(db_session, farmer.id, "12", "normal", Decimal("25.5"))
        assert box.status == "in_use"
        assert box.current_holder_id == farmer.id
        assert box.current_weight == Decimal("25.5")
        assert box.assigned_at is not None

    async def test_assign_nchira_type(self, db_session, factory_boxes, farmer):
        box = await box_allocation.assign(db_session, farmer.id, "3", "nchira", Decimal("10"))
        assert box.type == "nchira"

    async def test_second_assignment_is_rejected(self, db_session, factory_boxes, make_farmer):
        first = await make_farmer("Salah Ben Ali")
        second = await make_farmer("Mohamed Trabelsi")
        await box_allocation.assign(db_session, first.id, "5", "normal", Decimal("20"))

        with pytest.raises(BoxNotAvailableError) as exc_info:
            await box_allocation.assign(db_session, second.id, "5", "normal", Decimal("20"))
        assert exc_info.value.box_ids == ["5"]
        assert "5" in exc_info.value.message

        box = await box_registry.get_box(db_session, "5")
        assert box.current_holder_id == first.id

    async def test_weight_must_be_positive(self, db_session, factory_boxes, farmer):
        with pytest.raises(InputValidationError):
            await box_allocation.assign(db_session, farmer.id, "1", "normal", Decimal("0"))

    async def test_out_of_range_factory_id(self, db_session, factory_boxes, farmer):
        with pytest.raises(InputValidationError) as exc_info:
            await box_allocation.assign(db_session, farmer.id, "601", "normal", Decimal("5"))
        assert exc_info.value.error_code == "INVALID_BOX_ID"

    async def test_factory_box_must_exist(self, db_session, farmer):
        with pytest.raises(InputValidationError) as exc_info:
            await box_allocation.assign(db_session, farmer.id, "8", "normal", Decimal("5"))
        assert exc_info.value.error_code == "UNKNOWN_BOX"

    async def test_chkara_id_with_normal_type_is_rejected(self, db_session, factory_boxes, farmer):
        with pytest.raises(InputValidationError) as exc_info:
            await box_allocation.assign(db_session, farmer.id, "Chkara1", "normal", Decimal("5"))
        assert exc_info.value.error_code == "INVALID_BOX_TYPE"

    async def test_chkara_box_is_created_on_first_use(self, db_session, farmer):
        box = await box_allocation.assign(db_session, farmer.id, "Chkara3", "chkara", Decimal("7"))
        assert box.id == "Chkara3"
        assert box.type == "chkara"
        assert box.status == "in_use"

    async def test_chkara_without_id_takes_first_free(self, db_session, farmer):
        await box_allocation.assign(db_session, farmer.id, "Chkara1", "chkara", Decimal("7"))
        await box_allocation.assign(db_session, farmer.id, "Chkara3", "chkara", Decimal("7"))
        box = await box_allocation.assign(db_session, farmer.id, None, "chkara", Decimal("7"))
        assert box.id == "Chkara2"

    async def test_released_chkara_box_can_be_reused(self, db_session, make_farmer):
        first = await make_farmer("Salah Ben Ali")
        second = await make_farmer("Mohamed Trabelsi")
        await box_allocation.assign(db_session, first.id, "Chkara1", "chkara", Decimal("7"))
        await box_registry.release(db_session, ["Chkara1"])

        box = await box_allocation.assign(db_session, second.id, "Chkara1", "chkara", Decimal("9"))
        assert box.current_holder_id == second.id
        assert box.current_weight == Decimal("9")


@pytest.mark.integration
@pytest.mark.asyncio
class TestBulkAssign:

    async def test_partial_success_reports_errors(self, db_session, factory_boxes, make_farmer):
        other = await make_farmer("Salah Ben Ali")
        farmer = await make_farmer("Mohamed Trabelsi")
        await box_allocation.assign(db_session, other.id, "2", "normal", Decimal("10"))

        result = await box_allocation.bulk_assign(db_session, farmer.id, [
            {"box_id": "1", "box_type": "normal", "weight": Decimal("10")},
            {"box_id": "2", "box_type": "normal", "weight": Decimal("10")},
            {"box_id": "999", "box_type": "normal", "weight": Decimal("10")},
            {"box_id": None, "box_type": "chkara", "weight": Decimal("4")},
        ])

        assert [b.id for b in result["created"]] == ["1", "Chkara1"]
        assert [e["box_id"] for e in result["errors"]] == ["2", "999"]

        box = await box_registry.get_box(db_session, "2")
        assert box.current_holder_id == other.id

    async def test_nothing_assigned_raises(self, db_session, factory_boxes, farmer):
        with pytest.raises(InputValidationError) as exc_info:
            await box_allocation.bulk_assign(db_session, farmer.id, [
                {"box_id": "0", "box_type": "normal", "weight": Decimal("10")},
            ])
        assert exc_info.value.error_code == "BULK_ASSIGN_FAILED"

    async def test_batch_size_is_capped(self, db_session, factory_boxes, farmer):
        items = [
            {"box_id": str(n), "box_type": "normal", "weight": Decimal("1")}
            for n in range(1, 52)
        ]
        with pytest.raises(InputValidationError):
            await box_allocation.bulk_assign(db_session, farmer.id, items)


@pytest.mark.integration
@pytest.mark.asyncio
class TestRelease:

    async def test_release_is_idempotent(self, db_session, factory_boxes, farmer):
        await box_allocation.assign(db_session, farmer.id, "4", "normal", Decimal("10"))

        first = await box_registry.release(db_session, ["4"])
        second = await box_registry.release(db_session, ["4"])

        for boxes in (first, second):
            box = boxes[0]
            assert box.status == "available"
            assert box.current_holder_id is None
            assert box.current_weight is None
            assert box.assigned_at is None

    async def test_unknown_box_is_reported(self, db_session, factory_boxes):
        with pytest.raises(InputValidationError) as exc_info:
            await box_registry.release(db_session, ["Chkara9"])
        assert exc_info.value.details == {"box_ids": ["Chkara9"]}

    async def test_pool_reset_leaves_chkara_boxes(self, db_session, factory_boxes, farmer):
        for box_id in ("1", "2", "3"):
            await box_allocation.assign(db_session, farmer.id, box_id, "normal", Decimal("10"))
        await box_allocation.assign(db_session, farmer.id, "Chkara1", "chkara", Decimal("5"))

        released = await box_registry.reset_factory_pool(db_session)

        assert released == 3
        held = await box_registry.list_farmer_boxes(db_session, farmer.id)
        assert [b.id for b in held] == ["Chkara1"]

        log = (await db_session.execute(
            select(ActivityLog).where(ActivityLog.action == "pool_reset")
        )).scalar_one()
        assert log.details == {"box_ids": ["1", "2", "3"]}

    async def test_bulk_release_refuses_boxes_in_use(self, db_session, factory_boxes, farmer):
        await box_allocation.assign(db_session, farmer.id, "6", "normal", Decimal("10"))
        with pytest.raises(BoxNotAvailableError):
            await box_allocation.bulk_release(db_session, ["5", "6"])

    async def test_bulk_selection(self, db_session, factory_boxes):
        assert await box_allocation.bulk_set_selection(db_session, ["1", "2"], True) == 2
        items, total = await box_registry.list_boxes(db_session, selected=True)
        assert total == 2
        assert [b.id for b in items] == ["1", "2"]


@pytest.mark.integration
@pytest.mark.asyncio
class TestListing:

    async def test_numeric_order_and_pagination(self, db_session, factory_boxes):
        items, total = await box_registry.list_boxes(db_session, limit=3, offset=8)
        assert total == 600
        assert [b.id for b in items] == ["9", "10", "11"]

    async def test_available_excludes_chkara_by_default(self, db_session, factory_boxes, farmer):
        await box_allocation.assign(db_session, farmer.id, "Chkara1", "chkara", Decimal("5"))
        await box_registry.release(db_session, ["Chkara1"])

        _, total = await box_registry.list_available(db_session)
        assert total == 600

        items, total = await box_registry.list_available(db_session, box_type="chkara")
        assert [b.id for b in items] == ["Chkara1"]

        _, total = await box_registry.list_available(db_session, include_auxiliary=True)
        assert total == 601


@pytest.mark.integration
@pytest.mark.asyncio
class TestValidateIdentity:

    async def test_available_factory_box(self, db_session, factory_boxes):
        result = await box_allocation.validate_identity(db_session, "15", "normal")
        assert result["is_valid"] is True
        assert result["available"] is True

    async def test_chkara_suggestion(self, db_session, farmer):
        await box_allocation.assign(db_session, farmer.id, "Chkara1", "chkara", Decimal("5"))
        result = await box_allocation.validate_identity(db_session, None, "chkara")
        assert result["suggested_id"] == "Chkara2"
        assert result["is_valid"] is False

    async def test_namespace_mismatch(self, db_session, factory_boxes):
        result = await box_allocation.validate_identity(db_session, "15", "chkara")
        assert result["is_valid"] is False

    async def test_box_in_use(self, db_session, factory_boxes, farmer):
        await box_allocation.assign(db_session, farmer.id, "15", "normal", Decimal("5"))
        result = await box_allocation.validate_identity(db_session, "15", "normal")
        assert result["is_valid"] is True
        assert result["available"] is False


@pytest.mark.integration
@pytest.mark.asyncio
class TestReassignIdentity:

    async def test_rename_keeps_holder_and_restores_old_id(self, db_session, factory_boxes, farmer):
        await box_allocation.assign(db_session, farmer.id, "10", "normal", Decimal("30"))

        renamed = await box_registry.reassign_identity(db_session, "10", "20")

        assert renamed.id == "20"
        assert renamed.current_holder_id == farmer.id
        assert renamed.current_weight == Decimal("30")
        old = await box_registry.get_box(db_session, "10")
        assert old.status == "available"
        assert await _count_factory_boxes(db_session) == 600

        log = (await db_session.execute(
            select(ActivityLog).where(ActivityLog.action == "reassigned")
        )).scalar_one()
        assert log.details["old_id"] == "10"
        assert log.details["new_id"] == "20"

    async def test_target_in_use_blocks_rename(self, db_session, factory_boxes, farmer):
        await box_allocation.assign(db_session, farmer.id, "10", "normal", Decimal("30"))
        await box_allocation.assign(db_session, farmer.id, "20", "normal", Decimal("30"))

        with pytest.raises(BoxNotAvailableError):
            await box_registry.reassign_identity(db_session, "10", "20")

    async def test_only_boxes_in_use_can_be_renamed(self, db_session, factory_boxes):
        with pytest.raises(ConflictError) as exc_info:
            await box_registry.reassign_identity(db_session, "10", "20")
        assert exc_info.value.error_code == "BOX_NOT_IN_USE"

    async def test_chkara_to_factory_defaults_to_normal(self, db_session, factory_boxes, farmer):
        await box_allocation.assign(db_session, farmer.id, "Chkara1", "chkara", Decimal("6"))

        renamed = await box_registry.reassign_identity(db_session, "Chkara1", "50")

        assert renamed.type == "normal"
        assert await box_registry.find_box(db_session, "Chkara1") is None

    async def test_update_weight_in_place(self, db_session, factory_boxes, farmer):
        await box_allocation.assign(db_session, farmer.id, "7", "normal", Decimal("30"))
        box = await box_registry.update_box(db_session, "7", weight=Decimal("31.5"))
        assert box.current_weight == Decimal("31.5")

    async def test_update_rejects_available_box(self, db_session, factory_boxes):
        with pytest.raises(ConflictError):
            await box_registry.update_box(db_session, "7", weight=Decimal("31.5"))
