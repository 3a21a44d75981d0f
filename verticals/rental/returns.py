"""Return engine.

A return names one or more items, each with one or more condition
splits. The whole call reconciles or fails as a unit:

1. a transaction that is already returned (or otherwise not active) is
   rejected before anything else is looked at
2. every line and split is validated and penalties are computed from
   the same snapshot
3. on success one commit updates the transaction ledger and status,
   appends condition records, completes items and releases inventory
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from opentelemetry import trace

from core.models.base import ensure_utc, utcnow
from core.observability.otel_setup import engine_span_attributes
from patterns.rules_engine import Severity, ValidationReport, Validator, evaluate_rules
from verticals.rental import codes
from verticals.rental.audit import AuditEvent, AuditSink, LoggingAuditSink, SafeAuditSink
from verticals.rental.config import RentalConfig
from verticals.rental.errors import ConflictError, TransactionNotFoundError
from verticals.rental.models.schemas import ReturnRequest
from verticals.rental.outcome import EngineOutcome
from verticals.rental.penalty import (
    PenaltyCalculator,
    PenaltyInput,
    PenaltySummary,
    SplitInput,
    format_rupiah,
)
from verticals.rental.rules import RETURN_RULES, ReturnContext, check_returnable_status
from verticals.rental.snapshot import TransactionSnapshot
from verticals.rental.store import TransactionStore, TransactionWriter

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass(frozen=True)
class ReturnAssessment:
    """Validation findings plus, when valid, the penalties to charge."""

    report: ValidationReport
    return_time: datetime
    penalties: PenaltySummary | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.report.valid,
            "return_time": self.return_time.isoformat(),
            "penalties": self.penalties.to_dict() if self.penalties else None,
            "report": self.report.render("RETURN VALIDATION"),
        }


class ReturnEngine:
    """Validate, price and atomically apply returns."""

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
        self.validator = Validator(RETURN_RULES)
        self.calculator = PenaltyCalculator(self.config.penalty)

    # -- Validation & pricing --

    def penalty_inputs(
        self, snapshot: TransactionSnapshot, request: ReturnRequest, return_time: datetime
    ) -> list[PenaltyInput]:
        inputs = []
        for line in request.items:
            item = snapshot.item(line.item_id)
            inputs.append(PenaltyInput(
                item_id=item.id,
                expected_end=snapshot.rental_end,
                actual_return=return_time,
                splits=tuple(
                    SplitInput(split.description, split.condition, split.quantity)
                    for split in line.conditions
                ),
                replacement_cost=item.replacement_cost,
            ))
        return inputs

    def assess(self, snapshot: TransactionSnapshot, request: ReturnRequest) -> ReturnAssessment:
        now = self.clock()
        return_time = ensure_utc(request.actual_return_time) or now
        context = ReturnContext(
            snapshot=snapshot,
            request=request,
            now=now,
            return_time=return_time,
            config=self.config,
        )
        report = self.validator.validate(context, request.items)
        penalties = None
        if report.valid:
            penalties = self.calculator.calculate_many(self.penalty_inputs(snapshot, request, return_time))
        return ReturnAssessment(report=report, return_time=return_time, penalties=penalties)

    async def preview(self, request: ReturnRequest) -> EngineOutcome:
        """Validate and price a return without committing it."""
        try:
            snapshot = await self.store.read_snapshot(request.transaction_id)
        except TransactionNotFoundError:
            return EngineOutcome.not_found(request.transaction_id)

        assessment = self.assess(snapshot, request)
        if not assessment.report.valid:
            return EngineOutcome.rejected(assessment.report, assessment.to_dict(), codes.RETURN_CONFLICT_CODES)
        return EngineOutcome.ok(assessment.report, assessment.to_dict())

    # -- Processing --

    async def process_return(self, request: ReturnRequest, actor: str = "system") -> EngineOutcome:
        attributes = engine_span_attributes("return", request.transaction_id, len(request.items))
        with tracer.start_as_current_span("rental.process_return", attributes=attributes) as span:
            outcome = await self._process(request, actor)
            span.set_attribute("rental.success", outcome.success)
            return outcome

    async def _process(self, request: ReturnRequest, actor: str) -> EngineOutcome:
        try:
            snapshot = await self.store.read_snapshot(request.transaction_id)
        except TransactionNotFoundError:
            logger.info("return for unknown transaction", extra={"transaction_id": request.transaction_id})
            return EngineOutcome.not_found(request.transaction_id)

        status = check_returnable_status(snapshot)
        if status.is_error:
            logger.info("return refused", extra={"transaction_id": snapshot.id, "code": status.code})
            return EngineOutcome.rejected(evaluate_rules(status), conflict_codes=codes.RETURN_CONFLICT_CODES)

        assessment = self.assess(snapshot, request)
        if not assessment.report.valid:
            await self._record_rejection(snapshot, assessment.report, actor)
            return EngineOutcome.rejected(assessment.report, conflict_codes=codes.RETURN_CONFLICT_CODES)

        penalties = assessment.penalties
        return_time = assessment.return_time
        returning_ids = [line.item_id for line in request.items]

        async def apply(writer: TransactionWriter) -> tuple[bool, TransactionSnapshot]:
            # Transaction status and penalty ledger
            await writer.lock_active_transaction(codes.ALREADY_RETURNED)
            closed = await writer.close_if_settled(return_time, returning_ids)
            await writer.add_penalty(penalties.total_penalty)

            # Condition records and item completion
            for line, breakdown in zip(request.items, penalties.items):
                for split in breakdown.splits:
                    await writer.add_condition_record(line.item_id, split, recorded_by=actor)
                await writer.complete_item(
                    line.item_id,
                    penalty=breakdown.total,
                    condition_count=len({split.description for split in breakdown.splits}),
                    declared_quantity=line.declared_quantity,
                )

            # Inventory
            for line in request.items:
                item = snapshot.item(line.item_id)
                await writer.release_inventory(item.product_id, line.physically_returned)

            return closed, await writer.view()

        try:
            closed, updated = await self.store.commit(snapshot.id, apply)
        except ConflictError as exc:
            logger.warning(
                "return lost a race at commit",
                extra={"transaction_id": snapshot.id, "code": exc.code, "item_id": exc.item_id},
            )
            return EngineOutcome.conflict(exc.code, str(exc), item_id=exc.item_id)

        logger.info(
            "return committed",
            extra={
                "transaction_id": snapshot.id,
                "items": len(request.items),
                "penalty": str(penalties.total_penalty),
                "closed": closed,
            },
        )
        await self.audit.record(AuditEvent(
            event_type="return.completed",
            transaction_id=snapshot.id,
            description=(
                f"Returned {len(request.items)} items for {snapshot.code}; "
                f"penalty {format_rupiah(penalties.total_penalty)}"
            ),
            actor=actor,
            data={
                "closed": closed,
                "total_penalty": str(penalties.total_penalty),
                "counts": penalties.counts,
                "notes": request.notes,
            },
            occurred_at=self.clock(),
        ))
        return EngineOutcome.ok(assessment.report, {
            "closed": closed,
            "return_time": return_time.isoformat(),
            "penalties": penalties.to_dict(),
            "transaction": updated.to_dict(),
        })

    async def _record_rejection(self, snapshot: TransactionSnapshot, report: ValidationReport, actor: str) -> None:
        logger.info("return rejected", extra={"transaction_id": snapshot.id, "codes": report.codes(Severity.ERROR)})
        await self.audit.record(AuditEvent(
            event_type="return.rejected",
            transaction_id=snapshot.id,
            description=f"Return rejected for {snapshot.code}: {', '.join(report.codes(Severity.ERROR))}",
            actor=actor,
            data={"errors": [f.to_dict() for f in report.errors]},
            occurred_at=self.clock(),
        ))
