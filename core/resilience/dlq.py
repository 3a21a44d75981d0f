"""
Dead Letter Queue: keep side-effect events that failed to deliver.

Audit delivery is fire-and-forget for the engines: when a sink raises,
the event is parked here with its error so it can be inspected,
replayed against a sink later, or discarded. Supports:
- Retry status tracking with a per-letter retry budget
- Async replay through any handler
- Statistics and purging of resolved entries
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable
import logging
import uuid


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DLQStatus(str, Enum):
    PENDING = "pending"
    RETRYING = "retrying"
    RESOLVED = "resolved"
    DISCARDED = "discarded"


@dataclass
class DeadLetter:
    """A failed event captured in the DLQ."""
    event_type: str
    payload: Any
    error: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    retry_count: int = 0
    max_retries: int = 3
    status: DLQStatus = DLQStatus.PENDING
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    resolved_at: datetime | None = None

    @property
    def can_retry(self) -> bool:
        return (
            self.status in (DLQStatus.PENDING, DLQStatus.RETRYING)
            and self.retry_count < self.max_retries
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "error": self.error,
            "retry_count": self.retry_count,
            "max_retries": self.max_retries,
            "status": self.status.value,
            "can_retry": self.can_retry,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class DLQStats:
    """Aggregate statistics for a DLQ."""
    total: int = 0
    pending: int = 0
    retrying: int = 0
    resolved: int = 0
    discarded: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "pending": self.pending,
            "retrying": self.retrying,
            "resolved": self.resolved,
            "discarded": self.discarded,
        }


class DeadLetterQueue:
    """In-memory DLQ. Replace backing store for production."""

    def __init__(self, max_retries: int = 3):
        self.max_retries = max_retries
        self._letters: dict[str, DeadLetter] = {}

    def __len__(self) -> int:
        return len(self._letters)

    def enqueue(self, event_type: str, payload: Any, error: str) -> DeadLetter:
        """Add a failed event to the DLQ."""
        letter = DeadLetter(
            event_type=event_type,
            payload=payload,
            error=error,
            max_retries=self.max_retries,
        )
        self._letters[letter.id] = letter
        return letter

    def get(self, letter_id: str) -> DeadLetter | None:
        return self._letters.get(letter_id)

    def list_pending(self, limit: int = 50) -> list[DeadLetter]:
        """List letters still eligible for delivery, oldest first."""
        results = [
            dl for dl in self._letters.values()
            if dl.status in (DLQStatus.PENDING, DLQStatus.RETRYING)
        ]
        results.sort(key=lambda dl: dl.created_at)
        return results[:limit]

    def mark_resolved(self, letter_id: str) -> bool:
        letter = self._letters.get(letter_id)
        if not letter:
            return False
        letter.status = DLQStatus.RESOLVED
        letter.resolved_at = _utcnow()
        letter.updated_at = letter.resolved_at
        return True

    def mark_discarded(self, letter_id: str, reason: str = "") -> bool:
        letter = self._letters.get(letter_id)
        if not letter:
            return False
        letter.status = DLQStatus.DISCARDED
        letter.error = f"{letter.error} | Discarded: {reason}" if reason else letter.error
        letter.updated_at = _utcnow()
        return True

    async def replay(self, handler: Callable[[Any], Awaitable[None]]) -> int:
        """Redeliver pending letters through handler. Returns count resolved.

        A letter that fails again stays pending until its retry budget is
        spent, then it is discarded.
        """
        resolved = 0
        for letter in self.list_pending(limit=len(self._letters)):
            if not letter.can_retry:
                self.mark_discarded(letter.id, "retry budget exhausted")
                continue
            letter.status = DLQStatus.RETRYING
            letter.retry_count += 1
            letter.updated_at = _utcnow()
            try:
                await handler(letter.payload)
            except Exception as exc:
                letter.error = str(exc)
                logger.warning(
                    "dead letter redelivery failed",
                    extra={"letter_id": letter.id, "retry_count": letter.retry_count},
                )
                if not letter.can_retry:
                    self.mark_discarded(letter.id, "retry budget exhausted")
                continue
            self.mark_resolved(letter.id)
            resolved += 1
        return resolved

    def get_stats(self) -> DLQStats:
        letters = list(self._letters.values())
        return DLQStats(
            total=len(letters),
            pending=sum(1 for dl in letters if dl.status == DLQStatus.PENDING),
            retrying=sum(1 for dl in letters if dl.status == DLQStatus.RETRYING),
            resolved=sum(1 for dl in letters if dl.status == DLQStatus.RESOLVED),
            discarded=sum(1 for dl in letters if dl.status == DLQStatus.DISCARDED),
        )

    def purge_resolved(self) -> int:
        """Remove resolved entries. Returns count removed."""
        to_remove = [
            dl_id for dl_id, dl in self._letters.items()
            if dl.status == DLQStatus.RESOLVED
        ]
        for dl_id in to_remove:
            del self._letters[dl_id]
        return len(to_remove)
