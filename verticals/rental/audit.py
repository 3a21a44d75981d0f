"""Audit sink port and implementations.

Engines report what happened through an injected AuditSink at fixed
points (pickup completed/rejected, return completed/rejected). Audit is
fire-and-forget: wrap any sink in SafeAuditSink and a failing sink can
never fail the operation that produced the event.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.models.base import utcnow
from core.resilience import DeadLetterQueue
from verticals.rental.models.db_models import ActivityLog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditEvent:
    event_type: str
    transaction_id: str
    description: str
    actor: str = "system"
    data: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_type": self.event_type,
            "transaction_id": self.transaction_id,
            "description": self.description,
            "actor": self.actor,
            "data": self.data,
            "occurred_at": self.occurred_at.isoformat(),
        }


class AuditSink(Protocol):
    async def record(self, event: AuditEvent) -> None: ...


class LoggingAuditSink:
    """Writes one log line per event."""

    def __init__(self, logger_name: str = "rental.audit"):
        self.logger = logging.getLogger(logger_name)

    async def record(self, event: AuditEvent) -> None:
        self.logger.info(
            event.description,
            extra={
                "event_type": event.event_type,
                "transaction_id": event.transaction_id,
                "actor": event.actor,
            },
        )


class ActivityLogAuditSink:
    """Persists events as rental_activity rows.

    Uses its own session, so a recorded event is independent of (and
    committed after) the engine's unit of work.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def record(self, event: AuditEvent) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                session.add(ActivityLog(
                    transaction_id=event.transaction_id,
                    event_type=event.event_type,
                    description=event.description,
                    data=event.data,
                    actor=event.actor,
                    created_at=event.occurred_at,
                ))


class AuditDeadLetterQueue(DeadLetterQueue):
    """Dead-letter queue holding AuditEvents that no sink accepted."""

    def park(self, event: AuditEvent, exc: Exception):
        return self.enqueue(event.event_type, event, f"{type(exc).__name__}: {exc}")

    async def replay_into(self, sink: AuditSink) -> int:
        """Redeliver parked events to sink. Returns count delivered."""
        return await self.replay(sink.record)


class SafeAuditSink:
    """Never raises. Failed events are logged and parked for replay."""

    def __init__(self, sink: AuditSink, dead_letters: AuditDeadLetterQueue | None = None):
        self.sink = sink
        self.dead_letters = dead_letters if dead_letters is not None else AuditDeadLetterQueue()

    async def record(self, event: AuditEvent) -> None:
        try:
            await self.sink.record(event)
        except Exception as exc:
            logger.warning(
                "audit sink failed; event parked in dead-letter queue",
                extra={
                    "event_type": event.event_type,
                    "transaction_id": event.transaction_id,
                    "error": str(exc),
                },
            )
            self.dead_letters.park(event, exc)

    async def replay(self) -> int:
        return await self.dead_letters.replay_into(self.sink)
