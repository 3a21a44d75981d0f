"""Test the pickup engine against an in-memory database."""
from datetime import timedelta

import pytest
from conftest import NOW, FailingSink, Line, fixed_clock

from patterns.rules_engine import Severity
from verticals.rental import codes
from verticals.rental.models.db_models import RentalItem, RentalTransaction
from verticals.rental.models.schemas import PickupRequest
from verticals.rental.outcome import FailureKind
from verticals.rental.pickup import PickupEngine


def pickup(transaction_id, *lines, observed_at=None):
    return PickupRequest(
        transaction_id=transaction_id,
        items=[{"item_id": item_id, "quantity": quantity} for item_id, quantity in lines],
        observed_at=observed_at,
    )


class FrozenSnapshotStore:
    """Serves a snapshot captured earlier, as if read before a concurrent write."""

    def __init__(self, store, snapshot):
        self.store = store
        self.snapshot = snapshot

    async def read_snapshot(self, transaction_id):
        return self.snapshot

    async def commit(self, transaction_id, mutation):
        return await self.store.commit(transaction_id, mutation)


@pytest.mark.asyncio
async def test_full_pickup_succeeds_without_warnings(seed, fetch, pickup_engine, audit_log):
    seeded = await seed(Line(ordered=5))
    item_id = seeded.item_ids[0]

    outcome = await pickup_engine.process_pickup(pickup(seeded.transaction_id, (item_id, 5)))

    assert outcome.success
    assert [f for f in outcome.findings if f.severity == Severity.WARNING] == []
    item = await fetch(RentalItem, item_id)
    assert item.picked_up_quantity == 5
    summary = outcome.result["pickup_summary"]
    assert summary["pickup_percentage"] == 100
    assert summary["items"][0]["pickup_state"] == "complete"
    assert audit_log.types == ["pickup.completed"]


@pytest.mark.asyncio
async def test_fully_picked_up_item_rejected(seed, fetch, pickup_engine, audit_log):
    seeded = await seed(Line(ordered=5, picked_up=5))
    item_id = seeded.item_ids[0]

    outcome = await pickup_engine.process_pickup(pickup(seeded.transaction_id, (item_id, 1)))

    assert not outcome.success
    assert outcome.failure == FailureKind.VALIDATION
    assert codes.ITEM_ALREADY_FULLY_PICKED_UP in outcome.codes
    assert (await fetch(RentalItem, item_id)).picked_up_quantity == 5
    assert audit_log.types == ["pickup.rejected"]


@pytest.mark.asyncio
async def test_batch_of_51_items_commits_nothing(seed, fetch, pickup_engine):
    seeded = await seed(*[Line(ordered=1) for _ in range(51)])

    outcome = await pickup_engine.process_pickup(
        pickup(seeded.transaction_id, *[(item_id, 1) for item_id in seeded.item_ids])
    )

    assert not outcome.success
    assert [f.code for f in outcome.errors] == [codes.BATCH_ITEM_LIMIT_EXCEEDED]
    for item_id in seeded.item_ids:
        assert (await fetch(RentalItem, item_id)).picked_up_quantity == 0


@pytest.mark.asyncio
async def test_picked_up_quantity_never_decreases(seed, fetch, pickup_engine):
    seeded = await seed(Line(ordered=5))
    item_id = seeded.item_ids[0]
    history = []

    for quantity in (2, 3, 1, 0, 2):
        await pickup_engine.process_pickup(pickup(seeded.transaction_id, (item_id, quantity)))
        history.append((await fetch(RentalItem, item_id)).picked_up_quantity)

    assert history == [2, 5, 5, 5, 5]
    assert history == sorted(history)


@pytest.mark.asyncio
async def test_pickup_does_not_touch_transaction_status(seed, fetch, pickup_engine):
    seeded = await seed(Line(ordered=2))
    await pickup_engine.process_pickup(pickup(seeded.transaction_id, (seeded.item_ids[0], 2)))
    txn = await fetch(RentalTransaction, seeded.transaction_id)
    assert txn.status == "active"


@pytest.mark.asyncio
async def test_unknown_transaction(pickup_engine):
    outcome = await pickup_engine.process_pickup(pickup("missing", ("x", 1)))
    assert outcome.failure == FailureKind.NOT_FOUND
    assert outcome.codes == [codes.TRANSACTION_NOT_FOUND]


@pytest.mark.asyncio
async def test_inactive_transaction_rejected(seed, pickup_engine):
    seeded = await seed(Line(ordered=2), status="cancelled")
    outcome = await pickup_engine.process_pickup(pickup(seeded.transaction_id, (seeded.item_ids[0], 1)))
    assert codes.INVALID_TRANSACTION_STATUS in [f.code for f in outcome.errors]


@pytest.mark.asyncio
async def test_stale_request_is_a_conflict(seed, fetch, pickup_engine):
    seeded = await seed(Line(ordered=5, picked_up=3))
    item_id = seeded.item_ids[0]

    outcome = await pickup_engine.process_pickup(
        pickup(seeded.transaction_id, (item_id, 4), observed_at=NOW - timedelta(hours=2))
    )

    assert outcome.failure == FailureKind.CONFLICT
    assert [f.code for f in outcome.errors] == [codes.CONCURRENT_PICKUP_DETECTED]
    assert (await fetch(RentalItem, item_id)).picked_up_quantity == 3


@pytest.mark.asyncio
async def test_lost_race_at_commit_is_a_conflict(seed, fetch, store, pickup_engine):
    seeded = await seed(Line(ordered=5))
    item_id = seeded.item_ids[0]
    before = await store.read_snapshot(seeded.transaction_id)

    # Another counter takes 4 units after our snapshot was read.
    await pickup_engine.process_pickup(pickup(seeded.transaction_id, (item_id, 4)))

    late = PickupEngine(FrozenSnapshotStore(store, before), clock=fixed_clock)
    outcome = await late.process_pickup(pickup(seeded.transaction_id, (item_id, 3)))

    assert not outcome.success
    assert outcome.failure == FailureKind.CONFLICT
    assert outcome.codes == [codes.CONCURRENT_PICKUP_DETECTED]
    assert (await fetch(RentalItem, item_id)).picked_up_quantity == 4


@pytest.mark.asyncio
async def test_validate_is_a_dry_run(seed, fetch, pickup_engine):
    seeded = await seed(Line(ordered=5))
    item_id = seeded.item_ids[0]

    outcome = await pickup_engine.validate(pickup(seeded.transaction_id, (item_id, 2)))

    assert outcome.success
    assert outcome.result["valid"] is True
    assert "PARTIAL_PICKUP_WARNING" in outcome.result["report"]
    assert (await fetch(RentalItem, item_id)).picked_up_quantity == 0


@pytest.mark.asyncio
async def test_audit_failure_does_not_fail_pickup(seed, fetch, store):
    seeded = await seed(Line(ordered=2))
    sink = FailingSink()
    engine = PickupEngine(store, audit=sink, clock=fixed_clock)

    outcome = await engine.process_pickup(pickup(seeded.transaction_id, (seeded.item_ids[0], 2)))

    assert outcome.success
    assert sink.calls == 1
    assert len(engine.audit.dead_letters) == 1
    assert (await fetch(RentalItem, seeded.item_ids[0])).picked_up_quantity == 2


@pytest.mark.asyncio
async def test_pickup_summary(seed, pickup_engine):
    seeded = await seed(Line(ordered=4, picked_up=1), Line(ordered=6))
    summary = await pickup_engine.pickup_summary(seeded.transaction_id)
    assert summary["total_quantity"] == 10
    assert summary["picked_up_quantity"] == 1
    assert summary["pickup_percentage"] == 10
    assert [i["pickup_state"] for i in summary["items"]] == ["partial", "not_picked_up"]
    assert await pickup_engine.pickup_summary("missing") is None
