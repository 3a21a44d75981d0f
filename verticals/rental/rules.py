"""Pickup and return business rules.

Each rule is a pure function of a context (snapshot + request + clock
reading + config) and, for line-scoped rules, one request line. Rules
return findings; they never raise and never touch the store.
"""

from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable
from zoneinfo import ZoneInfo

from core.models.base import ensure_utc
from patterns.rules_engine import Finding, RuleOutput, RuleSet, error, info, warning
from verticals.rental import codes
from verticals.rental.config import RentalConfig
from verticals.rental.models.schemas import PickupLine, PickupRequest, ReturnLine, ReturnRequest
from verticals.rental.snapshot import ItemSnapshot, TransactionSnapshot
from verticals.rental.states import ReturnState, TransactionStatus


# ---------------------------------------------------------------------------
# Contexts
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PickupContext:
    snapshot: TransactionSnapshot
    request: PickupRequest
    now: datetime
    config: RentalConfig

    def item(self, line: PickupLine) -> ItemSnapshot | None:
        return self.snapshot.item(line.item_id)

    @property
    def is_stale(self) -> bool:
        """Whether the caller's view may predate concurrent changes."""
        observed = ensure_utc(self.request.observed_at)
        if observed is None:
            return False
        if observed < self.snapshot.last_modified_at:
            return True
        return self.now - observed > self.config.concurrency.staleness_window


@dataclass(frozen=True)
class ReturnContext:
    snapshot: TransactionSnapshot
    request: ReturnRequest
    now: datetime
    return_time: datetime
    config: RentalConfig

    def item(self, line: ReturnLine) -> ItemSnapshot | None:
        return self.snapshot.item(line.item_id)


# ---------------------------------------------------------------------------
# Shared rules
# ---------------------------------------------------------------------------

def check_transaction_status(snapshot: TransactionSnapshot) -> Finding:
    if snapshot.status == TransactionStatus.ACTIVE:
        return info(codes.TRANSACTION_STATUS_VALID, "Transaction is active")
    return error(
        codes.INVALID_TRANSACTION_STATUS,
        f"Transaction {snapshot.code} is {snapshot.status.value}; only active transactions can be processed",
        status=snapshot.status.value,
    )


def check_returnable_status(snapshot: TransactionSnapshot) -> Finding:
    """Like check_transaction_status, but a repeated return gets its own code."""
    if snapshot.status == TransactionStatus.RETURNED:
        return error(
            codes.ALREADY_RETURNED,
            f"Transaction {snapshot.code} has already been returned",
            returned_at=snapshot.actual_return_at.isoformat() if snapshot.actual_return_at else None,
        )
    return check_transaction_status(snapshot)


def check_duplicates(item_ids: Iterable[str]) -> Finding:
    counts = Counter(item_ids)
    duplicates = sorted(item_id for item_id, count in counts.items() if count > 1)
    if duplicates:
        return error(
            codes.DUPLICATE_ITEMS_IN_BATCH,
            f"Items listed more than once: {', '.join(duplicates)}",
            duplicates=duplicates,
        )
    return info(codes.NO_DUPLICATE_ITEMS, "No duplicate items")


def guard_item_exists(ctx: PickupContext | ReturnContext, line: PickupLine | ReturnLine) -> RuleOutput:
    if ctx.item(line) is None:
        return error(
            codes.ITEM_NOT_FOUND,
            f"Item {line.item_id} is not part of transaction {ctx.snapshot.code}",
            item_id=line.item_id,
        )
    return None


def guard_item_not_returned(ctx: PickupContext | ReturnContext, line: PickupLine | ReturnLine) -> RuleOutput:
    item = ctx.item(line)
    if item.return_state == ReturnState.COMPLETE:
        return error(
            codes.ITEM_ALREADY_RETURNED,
            f"{item.product_name} has already been returned",
            item_id=item.id,
        )
    return None


# ---------------------------------------------------------------------------
# Pickup rules
# ---------------------------------------------------------------------------

def pickup_status_rule(ctx: PickupContext) -> RuleOutput:
    return check_transaction_status(ctx.snapshot)


def pickup_batch_rule(ctx: PickupContext) -> RuleOutput:
    limits = ctx.config.batch
    item_count = len(ctx.request.items)
    total = ctx.request.total_quantity

    findings = []
    if item_count > limits.max_items:
        findings.append(error(
            codes.BATCH_ITEM_LIMIT_EXCEEDED,
            f"Batch has {item_count} items; the maximum is {limits.max_items}",
            item_count=item_count,
            limit=limits.max_items,
        ))
    if total > limits.max_total_quantity:
        findings.append(error(
            codes.BATCH_QUANTITY_LIMIT_EXCEEDED,
            f"Batch quantity {total} exceeds the maximum of {limits.max_total_quantity}",
            total_quantity=total,
            limit=limits.max_total_quantity,
        ))
    elif total > limits.large_batch_warning:
        findings.append(warning(
            codes.LARGE_BATCH_WARNING,
            f"Large batch of {total} units; double-check before handing over",
            total_quantity=total,
        ))
    if not findings:
        findings.append(info(codes.BATCH_SIZE_VALID, f"Batch of {item_count} items, {total} units"))
    return findings


def pickup_duplicate_rule(ctx: PickupContext) -> RuleOutput:
    return check_duplicates(line.item_id for line in ctx.request.items)


def pickup_timing_rule(ctx: PickupContext) -> RuleOutput:
    """Operating-hours check. Warns only; never blocks a pickup."""
    hours = ctx.config.hours
    local = ctx.now.astimezone(ZoneInfo(hours.timezone))

    findings = []
    if local.weekday() in hours.closed_weekdays:
        findings.append(warning(
            codes.WEEKEND_PICKUP_WARNING,
            f"Pickup on a non-operating day ({local:%A})",
            local_time=local.isoformat(),
        ))
    if not hours.opens_at <= local.hour < hours.closes_at:
        findings.append(warning(
            codes.OUTSIDE_BUSINESS_HOURS_WARNING,
            f"Pickup at {local:%H:%M} is outside business hours "
            f"({hours.opens_at:02d}:00-{hours.closes_at:02d}:00)",
            local_time=local.isoformat(),
        ))
    if not findings:
        findings.append(info(codes.BUSINESS_HOURS_VALID, "Pickup within business hours"))
    return findings


def guard_not_fully_picked_up(ctx: PickupContext, line: PickupLine) -> RuleOutput:
    item = ctx.item(line)
    if item.picked_up_quantity >= item.ordered_quantity:
        return error(
            codes.ITEM_ALREADY_FULLY_PICKED_UP,
            f"All {item.ordered_quantity} units of {item.product_name} have already been picked up",
            item_id=item.id,
        )
    return info(codes.ITEM_AVAILABLE_FOR_PICKUP, f"{item.remaining_quantity} units available", item_id=item.id)


def guard_concurrent_pickup(ctx: PickupContext, line: PickupLine) -> RuleOutput:
    item = ctx.item(line)
    if ctx.is_stale and line.quantity > item.remaining_quantity:
        return error(
            codes.CONCURRENT_PICKUP_DETECTED,
            f"{item.product_name} changed since it was displayed: only "
            f"{item.remaining_quantity} units remain. Reload and try again.",
            item_id=item.id,
            remaining=item.remaining_quantity,
            requested=line.quantity,
        )
    return None


def pickup_quantity_rule(ctx: PickupContext, line: PickupLine) -> RuleOutput:
    item = ctx.item(line)
    remaining = item.remaining_quantity

    if line.quantity <= 0:
        return error(
            codes.INVALID_PICKUP_QUANTITY,
            f"Pickup quantity must be greater than 0, got {line.quantity}",
            item_id=item.id,
        )
    if line.quantity > remaining:
        return error(
            codes.PICKUP_QUANTITY_EXCEEDED,
            f"Requested {line.quantity} units of {item.product_name} but only {remaining} remain "
            f"(short by {line.quantity - remaining})",
            item_id=item.id,
            requested=line.quantity,
            remaining=remaining,
            shortage=line.quantity - remaining,
        )
    if line.quantity < remaining:
        return warning(
            codes.PARTIAL_PICKUP_WARNING,
            f"Partial pickup of {item.product_name}: {line.quantity} of {remaining} remaining units",
            item_id=item.id,
            requested=line.quantity,
            remaining=remaining,
        )
    return info(
        codes.PICKUP_QUANTITY_VALID,
        f"Picking up all {remaining} remaining units of {item.product_name}",
        item_id=item.id,
    )


PICKUP_RULES: RuleSet[PickupContext, PickupLine] = RuleSet(
    name="pickup",
    request_rules=(
        pickup_status_rule,
        pickup_batch_rule,
        pickup_duplicate_rule,
        pickup_timing_rule,
    ),
    line_guards=(
        guard_item_exists,
        guard_item_not_returned,
        guard_not_fully_picked_up,
        guard_concurrent_pickup,
    ),
    line_rules=(pickup_quantity_rule,),
)


# ---------------------------------------------------------------------------
# Return rules
# ---------------------------------------------------------------------------

def return_status_rule(ctx: ReturnContext) -> RuleOutput:
    return check_returnable_status(ctx.snapshot)


def return_batch_rule(ctx: ReturnContext) -> RuleOutput:
    limit = ctx.config.batch.max_return_items
    count = len(ctx.request.items)
    if count > limit:
        return error(
            codes.BATCH_ITEM_LIMIT_EXCEEDED,
            f"Return has {count} items; the maximum is {limit}",
            item_count=count,
            limit=limit,
        )
    return None


def return_duplicate_rule(ctx: ReturnContext) -> RuleOutput:
    return check_duplicates(line.item_id for line in ctx.request.items)


def return_time_rule(ctx: ReturnContext) -> RuleOutput:
    latest = ctx.now + ctx.config.concurrency.max_future_return
    if ctx.return_time > latest:
        return error(
            codes.INVALID_RETURN_TIME,
            "Return time cannot be more than "
            f"{ctx.config.concurrency.max_future_return} in the future",
            return_time=ctx.return_time.isoformat(),
        )
    if ctx.return_time < ctx.snapshot.rental_start:
        return error(
            codes.INVALID_RETURN_TIME,
            "Return time cannot be before the rental start",
            return_time=ctx.return_time.isoformat(),
        )
    return None


def guard_item_picked_up(ctx: ReturnContext, line: ReturnLine) -> RuleOutput:
    item = ctx.item(line)
    if item.picked_up_quantity <= 0:
        return error(
            codes.ITEM_NOT_PICKED_UP,
            f"{item.product_name} was never picked up and cannot be returned",
            item_id=item.id,
        )
    return None


def split_quantity_rule(ctx: ReturnContext, line: ReturnLine) -> RuleOutput:
    findings = []
    for index, split in enumerate(line.conditions):
        if split.condition.is_lost and split.quantity != 0:
            findings.append(error(
                codes.LOST_ITEM_INVALID_QUANTITY,
                f"Lost condition '{split.description}' must have quantity 0, got {split.quantity}",
                item_id=line.item_id,
                condition_index=index,
            ))
        elif not split.condition.is_lost and split.quantity < 1:
            findings.append(error(
                codes.RETURNED_ITEM_INVALID_QUANTITY,
                f"Returned condition '{split.description}' needs a quantity of at least 1",
                item_id=line.item_id,
                condition_index=index,
            ))
    return findings


def total_quantity_rule(ctx: ReturnContext, line: ReturnLine) -> RuleOutput:
    item = ctx.item(line)
    declared = line.declared_quantity
    picked_up = item.picked_up_quantity

    if declared > picked_up:
        return error(
            codes.EXCESS_TOTAL_QUANTITY,
            f"{item.product_name}: {declared} units declared but only {picked_up} were picked up",
            item_id=item.id,
            declared=declared,
            picked_up=picked_up,
            excess=declared - picked_up,
        )
    has_lost = any(split.condition.is_lost for split in line.conditions)
    if declared < picked_up and not has_lost:
        return warning(
            codes.PARTIAL_RETURN_QUANTITY,
            f"{item.product_name}: {declared} of {picked_up} picked-up units accounted for",
            item_id=item.id,
            declared=declared,
            picked_up=picked_up,
        )
    return info(codes.RETURN_QUANTITY_VALID, f"{item.product_name}: quantities reconcile", item_id=item.id)


def replacement_cost_rule(ctx: ReturnContext, line: ReturnLine) -> RuleOutput:
    item = ctx.item(line)
    if not any(split.condition.is_lost for split in line.conditions):
        return None
    if item.replacement_cost is None and ctx.config.penalty.lost_item_fallback_cost is None:
        return error(
            codes.REPLACEMENT_COST_UNAVAILABLE,
            f"{item.product_name} has no acquisition cost to charge for a lost unit",
            item_id=item.id,
            product_id=item.product_id,
        )
    return None


RETURN_RULES: RuleSet[ReturnContext, ReturnLine] = RuleSet(
    name="return",
    request_rules=(
        return_status_rule,
        return_batch_rule,
        return_duplicate_rule,
        return_time_rule,
    ),
    line_guards=(
        guard_item_exists,
        guard_item_not_returned,
        guard_item_picked_up,
    ),
    line_rules=(
        split_quantity_rule,
        total_quantity_rule,
        replacement_cost_rule,
    ),
)
