"""Test audit sinks and the dead-letter queue."""
import logging

import pytest
from conftest import FailingSink, RecordingSink
from sqlalchemy import select

from core.resilience import DeadLetterQueue, DLQStatus
from verticals.rental.audit import (
    ActivityLogAuditSink,
    AuditEvent,
    LoggingAuditSink,
    SafeAuditSink,
)
from verticals.rental.models.db_models import ActivityLog


def event(event_type="pickup.completed"):
    return AuditEvent(
        event_type=event_type,
        transaction_id="t1",
        description="Picked up 2 units",
        actor="cashier-1",
        data={"quantity": 2},
    )


@pytest.mark.asyncio
async def test_safe_sink_swallows_and_parks_failures():
    sink = SafeAuditSink(FailingSink())

    await sink.record(event())

    (letter,) = sink.dead_letters.list_pending()
    assert letter.event_type == "pickup.completed"
    assert "audit backend down" in letter.error


@pytest.mark.asyncio
async def test_parked_events_replay_into_recovered_sink():
    failing = FailingSink()
    sink = SafeAuditSink(failing)
    await sink.record(event("pickup.completed"))
    await sink.record(event("return.completed"))

    recovered = RecordingSink()
    sink.sink = recovered
    delivered = await sink.replay()

    assert delivered == 2
    assert recovered.types == ["pickup.completed", "return.completed"]
    assert sink.dead_letters.get_stats().resolved == 2
    assert sink.dead_letters.purge_resolved() == 2


@pytest.mark.asyncio
async def test_replay_discards_after_retry_budget():
    queue = DeadLetterQueue(max_retries=2)
    letter = queue.enqueue("pickup.completed", event(), "down")

    async def still_down(payload):
        raise ConnectionError("still down")

    assert await queue.replay(still_down) == 0
    assert letter.status == DLQStatus.RETRYING
    assert await queue.replay(still_down) == 0
    assert letter.status == DLQStatus.DISCARDED
    assert queue.list_pending() == []


@pytest.mark.asyncio
async def test_activity_log_sink_writes_row(session_factory):
    await ActivityLogAuditSink(session_factory).record(event())

    async with session_factory() as session:
        rows = (await session.execute(select(ActivityLog))).scalars().all()

    assert len(rows) == 1
    assert rows[0].actor == "cashier-1"
    assert rows[0].data == {"quantity": 2}


@pytest.mark.asyncio
async def test_logging_sink(caplog):
    with caplog.at_level(logging.INFO, logger="rental.audit"):
        await LoggingAuditSink().record(event())
    assert "Picked up 2 units" in caplog.text


def test_event_to_dict():
    data = event().to_dict()
    assert data["event_type"] == "pickup.completed"
    assert data["data"] == {"quantity": 2}
