"""Tests for stock movements and the quantity/ledger invariant."""

import random

import pytest
from sqlalchemy import case, func, select
from sqlalchemy.exc import OperationalError

from stock_service import models
from stock_service.errors import InvalidInput, NotFound, StorageFailure
from stock_service.stock import StockCoordinator


async def stored_quantity(session, item_id):
    return await session.scalar(select(models.Item.quantity).where(models.Item.id == item_id))


async def ledger_sum(session, item_id):
    signed = case(
        (models.StockTransaction.type == models.DIRECTION_IN, models.StockTransaction.quantity),
        else_=-models.StockTransaction.quantity,
    )
    total = await session.scalar(
        select(func.coalesce(func.sum(signed), 0)).where(models.StockTransaction.item_id == item_id)
    )
    return int(total)


async def ledger_count(session, item_id):
    return await session.scalar(
        select(func.count(models.StockTransaction.id)).where(models.StockTransaction.item_id == item_id)
    )


class TestRecord:

    @pytest.mark.asyncio
    async def test_stock_out_reduces_quantity(self, db, catalog, coordinator, alice_id):
        item_id = await catalog.create(alice_id, "Widget", "W1", quantity=10, min_stock=5)

        transaction_id = await coordinator.record(alice_id, item_id, "out", 6, "sold")

        assert transaction_id > 0
        assert await stored_quantity(db, item_id) == 4

    @pytest.mark.asyncio
    async def test_stock_in_increases_quantity(self, db, catalog, coordinator, alice_id):
        item_id = await catalog.create(alice_id, "Widget", "W1")

        await coordinator.record(alice_id, item_id, "in", 7)

        assert await stored_quantity(db, item_id) == 7

    @pytest.mark.asyncio
    async def test_quantity_may_go_negative(self, db, catalog, coordinator, alice_id):
        item_id = await catalog.create(alice_id, "Widget", "W1", quantity=2)

        await coordinator.record(alice_id, item_id, "out", 5)

        assert await stored_quantity(db, item_id) == -3

    @pytest.mark.asyncio
    @pytest.mark.parametrize("seed", [1, 7, 42])
    async def test_final_quantity_is_signed_sum_of_moves(self, db, catalog, coordinator, alice_id, seed):
        rng = random.Random(seed)
        item_id = await catalog.create(alice_id, "Widget", "W1")
        expected = 0
        for _ in range(25):
            direction = rng.choice(["in", "out"])
            amount = rng.randint(1, 20)
            await coordinator.record(alice_id, item_id, direction, amount)
            expected += amount if direction == "in" else -amount

        assert await stored_quantity(db, item_id) == expected
        assert await ledger_sum(db, item_id) == expected

    @pytest.mark.asyncio
    async def test_records_ledger_entry_with_notes_and_actor(self, catalog, coordinator, ledger, alice_id):
        item_id = await catalog.create(alice_id, "Widget", "W1")

        transaction_id = await coordinator.record(alice_id, item_id, "in", 3, "restock")

        entries = await ledger.list(alice_id, item_id)
        assert entries[0]["id"] == transaction_id
        assert entries[0]["type"] == "in"
        assert entries[0]["quantity"] == 3
        assert entries[0]["notes"] == "restock"
        assert entries[0]["user_id"] == alice_id


class TestRecordValidation:

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "item_id, direction, quantity",
        [
            (None, "in", 1),
            (1, None, 1),
            (1, "in", None),
            (1, "sideways", 1),
            (1, "in", 0),
            (1, "out", -4),
            (1, "in", 2.5),
            (1, "in", True),
            (2**63, "in", 1),
            (1, "in", models.INT_MAX + 1),
        ],
    )
    async def test_rejects_invalid_input(self, coordinator, alice_id, item_id, direction, quantity):
        with pytest.raises(InvalidInput):
            await coordinator.record(alice_id, item_id, direction, quantity)

    @pytest.mark.asyncio
    async def test_resulting_quantity_must_fit_column(self, db, catalog, coordinator, alice_id):
        item_id = await catalog.create(alice_id, "Widget", "W1", quantity=models.INT_MAX)

        with pytest.raises(InvalidInput):
            await coordinator.record(alice_id, item_id, "in", 1)

        assert await stored_quantity(db, item_id) == models.INT_MAX
        assert await ledger_count(db, item_id) == 1

    @pytest.mark.asyncio
    async def test_unknown_item_is_not_found(self, coordinator, alice_id):
        with pytest.raises(NotFound):
            await coordinator.record(alice_id, 999, "in", 1)

    @pytest.mark.asyncio
    async def test_cannot_move_stock_of_another_users_item(self, db, catalog, coordinator, alice_id, bob_id):
        item_id = await catalog.create(alice_id, "Widget", "W1", quantity=5)

        with pytest.raises(NotFound):
            await coordinator.record(bob_id, item_id, "out", 5)

        assert await stored_quantity(db, item_id) == 5
        assert await ledger_count(db, item_id) == 1  # opening balance only

    @pytest.mark.asyncio
    async def test_deleted_item_cannot_be_moved(self, catalog, coordinator, alice_id):
        item_id = await catalog.create(alice_id, "Widget", "W1")
        await catalog.delete(alice_id, item_id)

        with pytest.raises(NotFound):
            await coordinator.record(alice_id, item_id, "in", 1)


class TestAtomicity:

    @pytest.mark.asyncio
    async def test_failed_quantity_update_leaves_no_ledger_row(
        self, session_factory, catalog, coordinator, alice_id, monkeypatch
    ):
        item_id = await catalog.create(alice_id, "Widget", "W1")

        async def broken_apply_delta(self, item_id, delta):
            raise OperationalError("UPDATE items", {}, Exception("disk I/O error"))

        monkeypatch.setattr(StockCoordinator, "_apply_delta", broken_apply_delta)

        with pytest.raises(StorageFailure):
            await coordinator.record(alice_id, item_id, "in", 5)

        async with session_factory() as fresh:
            assert await ledger_count(fresh, item_id) == 0
            assert await stored_quantity(fresh, item_id) == 0

    @pytest.mark.asyncio
    async def test_coordinator_usable_after_rollback(self, db, catalog, coordinator, alice_id, monkeypatch):
        item_id = await catalog.create(alice_id, "Widget", "W1")
        original = StockCoordinator._apply_delta

        async def fail_once(self, item_id, delta):
            monkeypatch.setattr(StockCoordinator, "_apply_delta", original)
            raise OperationalError("UPDATE items", {}, Exception("database is locked"))

        monkeypatch.setattr(StockCoordinator, "_apply_delta", fail_once)

        with pytest.raises(StorageFailure):
            await coordinator.record(alice_id, item_id, "in", 5)
        await coordinator.record(alice_id, item_id, "in", 2)

        assert await stored_quantity(db, item_id) == 2
        assert await ledger_count(db, item_id) == 1


class TestLedgerInvariant:

    @pytest.mark.asyncio
    async def test_quantity_matches_ledger_after_create_update_and_moves(self, db, catalog, coordinator, alice_id):
        item_id = await catalog.create(alice_id, "Widget", "W1", quantity=10)
        await coordinator.record(alice_id, item_id, "out", 3)
        await catalog.update(alice_id, item_id, name="Widget", sku="W1", quantity=20)
        await coordinator.record(alice_id, item_id, "in", 4)
        await catalog.update(alice_id, item_id, name="Widget v2", sku="W1", quantity=-1)

        assert await stored_quantity(db, item_id) == -1
        assert await ledger_sum(db, item_id) == -1
