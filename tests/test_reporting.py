import pytest


@pytest.mark.asyncio
async def test_stats_for_user_without_items(reporter, alice_id):
    assert await reporter.stats(alice_id) == {
        "total_items": 0,
        "total_quantity": 0,
        "total_value": 0.0,
        "low_stock": 0,
    }


@pytest.mark.asyncio
async def test_stats_aggregate_owned_live_items(reporter, catalog, coordinator, alice_id, bob_id):
    widget = await catalog.create(alice_id, "Widget", "W1", quantity=10, min_stock=5, price=2.5)
    await catalog.create(alice_id, "Gadget", "G1", quantity=3, min_stock=3, price=10.0)
    gone = await catalog.create(alice_id, "Gone", "X1", quantity=100, price=1.0)
    await catalog.delete(alice_id, gone)
    await catalog.create(bob_id, "Bob's", "B1", quantity=50, price=1.0)
    await coordinator.record(alice_id, widget, "out", 6)

    stats = await reporter.stats(alice_id)

    assert stats["total_items"] == 2
    assert stats["total_quantity"] == 7
    assert stats["total_value"] == pytest.approx(4 * 2.5 + 3 * 10.0)
    assert stats["low_stock"] == 2
