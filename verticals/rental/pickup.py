"""Pickup engine.

Validates a pickup request against a fresh snapshot and, when valid,
increments every listed item's picked-up counter in one atomic commit.
Pickups never change the transaction status, payments or inventory.
"""

import logging
from datetime import datetime
from typing import Callable

from opentelemetry import trace

from core.models.base import utcnow
from core.observability.otel_setup import engine_span_attributes
from patterns.rules_engine import Severity, ValidationReport, Validator
from verticals.rental import codes
from verticals.rental.audit import AuditEvent, AuditSink, LoggingAuditSink, SafeAuditSink
from verticals.rental.config import RentalConfig
from verticals.rental.errors import ConflictError, TransactionNotFoundError
from verticals.rental.models.schemas import PickupRequest
from verticals.rental.outcome import EngineOutcome
from verticals.rental.rules import PICKUP_RULES, PickupContext
from verticals.rental.snapshot import TransactionSnapshot
from verticals.rental.store import TransactionStore, TransactionWriter

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class PickupEngine:
    """Validate-then-commit pickups.

    Usage::

        engine = PickupEngine(store, audit=SafeAuditSink(ActivityLogAuditSink(factory)))
        outcome = await engine.process_pickup(request, actor="cashier-1")
    """

    def __init__(
        self,
        store: TransactionStore,
        audit: AuditSink | None = None,
        config: RentalConfig | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.audit = audit if isinstance(audit, SafeAuditSink) else SafeAuditSink(audit or LoggingAuditSink())
        self.config = config or RentalConfig.default()
        self.clock = clock
        self.validator = Validator(PICKUP_RULES)

    def check(self, snapshot: TransactionSnapshot, request: PickupRequest) -> ValidationReport:
        context = PickupContext(snapshot=snapshot, request=request, now=self.clock(), config=self.config)
        return self.validator.validate(context, request.items)

    async def validate(self, request: PickupRequest) -> EngineOutcome:
        """Dry run: report findings without committing anything."""
        try:
            snapshot = await self.store.read_snapshot(request.transaction_id)
        except TransactionNotFoundError:
            return EngineOutcome.not_found(request.transaction_id)

        report = self.check(snapshot, request)
        result = {"valid": report.valid, "report": report.render("PICKUP VALIDATION")}
        if not report.valid:
            return EngineOutcome.rejected(report, result)
        return EngineOutcome.ok(report, result)

    async def process_pickup(self, request: PickupRequest, actor: str = "system") -> EngineOutcome:
        attributes = engine_span_attributes("pickup", request.transaction_id, len(request.items))
        with tracer.start_as_current_span("rental.process_pickup", attributes=attributes) as span:
            outcome = await self._process(request, actor)
            span.set_attribute("rental.success", outcome.success)
            return outcome

    async def _process(self, request: PickupRequest, actor: str) -> EngineOutcome:
        try:
            snapshot = await self.store.read_snapshot(request.transaction_id)
        except TransactionNotFoundError:
            logger.info("pickup for unknown transaction", extra={"transaction_id": request.transaction_id})
            return EngineOutcome.not_found(request.transaction_id)

        report = self.check(snapshot, request)
        if not report.valid:
            logger.info(
                "pickup rejected",
                extra={"transaction_id": snapshot.id, "codes": report.codes(Severity.ERROR)},
            )
            await self.audit.record(AuditEvent(
                event_type="pickup.rejected",
                transaction_id=snapshot.id,
                description=f"Pickup rejected for {snapshot.code}: {', '.join(report.codes(Severity.ERROR))}",
                actor=actor,
                data={"errors": [f.to_dict() for f in report.errors]},
                occurred_at=self.clock(),
            ))
            return EngineOutcome.rejected(report)

        async def apply(writer: TransactionWriter) -> TransactionSnapshot:
            await writer.lock_active_transaction(codes.INVALID_TRANSACTION_STATUS)
            for line in request.items:
                await writer.increment_picked_up(line.item_id, line.quantity)
            return await writer.view()

        try:
            updated = await self.store.commit(snapshot.id, apply)
        except ConflictError as exc:
            logger.warning(
                "pickup lost a race at commit",
                extra={"transaction_id": snapshot.id, "code": exc.code, "item_id": exc.item_id},
            )
            return EngineOutcome.conflict(exc.code, str(exc), item_id=exc.item_id)

        total = request.total_quantity
        logger.info(
            "pickup committed",
            extra={"transaction_id": snapshot.id, "items": len(request.items), "quantity": total},
        )
        await self.audit.record(AuditEvent(
            event_type="pickup.completed",
            transaction_id=snapshot.id,
            description=f"Picked up {total} units across {len(request.items)} items for {snapshot.code}",
            actor=actor,
            data={"items": [{"item_id": line.item_id, "quantity": line.quantity} for line in request.items]},
            occurred_at=self.clock(),
        ))
        return EngineOutcome.ok(report, {
            "transaction": updated.to_dict(),
            "pickup_summary": updated.pickup_summary(),
        })

    async def pickup_summary(self, transaction_id: str) -> dict | None:
        """Pickup progress for a transaction, or None if it does not exist."""
        try:
            snapshot = await self.store.read_snapshot(transaction_id)
        except TransactionNotFoundError:
            return None
        return snapshot.pickup_summary()
