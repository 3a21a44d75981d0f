"""Penalty calculator: pure functions, no I/O, no clock.

Given an item's rental window, the actual return time, its classified
condition splits and its replacement-cost basis, produce a penalty
breakdown:

- late fee: late_days * daily rate, once per item, late_days rounded up
  to whole days, floored at 0 and capped at max_late_days
- damage: grade multiplier * daily rate * units in the split
- lost: one replacement-cost basis per lost split

Identical inputs always produce equal (and identically serialised) output,
so the calculator is safe to call for previews before a commit.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Sequence

from verticals.rental.conditions import ConditionKind, DamageGrade, ItemCondition
from verticals.rental.config import PenaltyConfig

ZERO = Decimal("0")
CENTS = Decimal("0.01")
ONE_DAY = timedelta(days=1)


class PenaltyReason(str, Enum):
    ON_TIME = "on_time"
    LATE = "late"
    DAMAGED = "damaged"
    LOST = "lost"


class CalculationMethod(str, Enum):
    NONE = "none"
    DAMAGE_GRADE = "damage_grade"
    REPLACEMENT_COST = "replacement_cost"


# ---------------------------------------------------------------------------
# Inputs / outputs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SplitInput:
    description: str
    condition: ItemCondition
    quantity: int


@dataclass(frozen=True)
class PenaltyInput:
    item_id: str
    expected_end: datetime
    actual_return: datetime
    splits: tuple[SplitInput, ...]
    replacement_cost: Decimal | None = None


@dataclass(frozen=True)
class SplitPenalty:
    description: str
    condition: ItemCondition
    quantity: int
    unit_penalty: Decimal
    amount: Decimal
    method: CalculationMethod
    replacement_cost_basis: Decimal | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "description": self.description,
            "condition": self.condition.label,
            "quantity": self.quantity,
            "unit_penalty": str(self.unit_penalty),
            "amount": str(self.amount),
            "method": self.method.value,
            "replacement_cost_basis": (
                str(self.replacement_cost_basis) if self.replacement_cost_basis is not None else None
            ),
        }


@dataclass(frozen=True)
class PenaltyBreakdown:
    item_id: str
    late_days: int
    daily_rate: Decimal
    late_fee: Decimal
    splits: tuple[SplitPenalty, ...]
    condition_penalty: Decimal
    total: Decimal
    reason: PenaltyReason

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "late_days": self.late_days,
            "daily_rate": str(self.daily_rate),
            "late_fee": str(self.late_fee),
            "condition_penalty": str(self.condition_penalty),
            "total": str(self.total),
            "reason": self.reason.value,
            "conditions": [split.to_dict() for split in self.splits],
        }


@dataclass(frozen=True)
class PenaltySummary:
    total_penalty: Decimal
    total_late_days: int
    items: tuple[PenaltyBreakdown, ...]
    counts: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_penalty": str(self.total_penalty),
            "total_late_days": self.total_late_days,
            "counts": dict(self.counts),
            "items": [item.to_dict() for item in self.items],
        }


class MissingReplacementCostError(ValueError):
    """A lost split needs a replacement-cost basis and none is available."""

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"No replacement-cost basis for lost item {item_id}")


# ---------------------------------------------------------------------------
# Calculator
# ---------------------------------------------------------------------------

def _money(value: Decimal) -> Decimal:
    return value.quantize(CENTS)


class PenaltyCalculator:
    """Computes penalties from a PenaltyConfig.

    Usage::

        calculator = PenaltyCalculator(config.penalty)
        breakdown = calculator.calculate(penalty_input)
    """

    def __init__(self, config: PenaltyConfig | None = None):
        self.config = config or PenaltyConfig()

    # -- Late fee --

    def late_days(self, expected_end: datetime, actual_return: datetime) -> int:
        overdue = actual_return - expected_end
        if overdue <= timedelta(0):
            return 0
        days = math.ceil(overdue / ONE_DAY)
        return min(days, self.config.max_late_days)

    def late_fee(self, expected_end: datetime, actual_return: datetime) -> Decimal:
        days = self.late_days(expected_end, actual_return)
        return _money(self.config.late_fee_daily_rate * days)

    # -- Condition penalty --

    def grade_multiplier(self, grade: DamageGrade) -> int:
        return {
            DamageGrade.MINOR: self.config.minor_damage_multiplier,
            DamageGrade.MODERATE: self.config.moderate_damage_multiplier,
            DamageGrade.SEVERE: self.config.severe_damage_multiplier,
        }[grade]

    def replacement_basis(self, replacement_cost: Decimal | None) -> Decimal | None:
        if replacement_cost is not None:
            return replacement_cost
        return self.config.lost_item_fallback_cost

    def split_penalty(
        self, item_id: str, split: SplitInput, replacement_cost: Decimal | None
    ) -> SplitPenalty:
        condition = split.condition
        if condition.kind == ConditionKind.LOST:
            basis = self.replacement_basis(replacement_cost)
            if basis is None:
                raise MissingReplacementCostError(item_id)
            basis = _money(basis)
            return SplitPenalty(
                description=split.description,
                condition=condition,
                quantity=0,
                unit_penalty=basis,
                amount=basis,
                method=CalculationMethod.REPLACEMENT_COST,
                replacement_cost_basis=basis,
            )

        if condition.kind == ConditionKind.DAMAGED:
            unit = _money(self.config.late_fee_daily_rate * self.grade_multiplier(condition.grade))
            return SplitPenalty(
                description=split.description,
                condition=condition,
                quantity=split.quantity,
                unit_penalty=unit,
                amount=_money(unit * split.quantity),
                method=CalculationMethod.DAMAGE_GRADE,
            )

        return SplitPenalty(
            description=split.description,
            condition=condition,
            quantity=split.quantity,
            unit_penalty=_money(ZERO),
            amount=_money(ZERO),
            method=CalculationMethod.NONE,
        )

    # -- Item / transaction --

    def calculate(self, item: PenaltyInput) -> PenaltyBreakdown:
        """Penalty breakdown for one item."""
        late_days = self.late_days(item.expected_end, item.actual_return)
        late_fee = _money(self.config.late_fee_daily_rate * late_days)
        splits = tuple(
            self.split_penalty(item.item_id, split, item.replacement_cost)
            for split in item.splits
        )
        condition_penalty = _money(sum((s.amount for s in splits), ZERO))

        return PenaltyBreakdown(
            item_id=item.item_id,
            late_days=late_days,
            daily_rate=_money(self.config.late_fee_daily_rate),
            late_fee=late_fee,
            splits=splits,
            condition_penalty=condition_penalty,
            total=_money(late_fee + condition_penalty),
            reason=_reason(late_days, splits),
        )

    def calculate_many(self, items: Iterable[PenaltyInput]) -> PenaltySummary:
        breakdowns = tuple(self.calculate(item) for item in items)
        return summarize(breakdowns)


def _reason(late_days: int, splits: Sequence[SplitPenalty]) -> PenaltyReason:
    # lost > damaged > late > on_time
    kinds = {split.condition.kind for split in splits}
    if ConditionKind.LOST in kinds:
        return PenaltyReason.LOST
    if ConditionKind.DAMAGED in kinds:
        return PenaltyReason.DAMAGED
    if late_days > 0:
        return PenaltyReason.LATE
    return PenaltyReason.ON_TIME


def summarize(breakdowns: Sequence[PenaltyBreakdown]) -> PenaltySummary:
    counts = {reason.value: 0 for reason in PenaltyReason}
    for breakdown in breakdowns:
        counts[breakdown.reason.value] += 1
    return PenaltySummary(
        total_penalty=_money(sum((b.total for b in breakdowns), ZERO)),
        total_late_days=sum(b.late_days for b in breakdowns),
        items=tuple(breakdowns),
        counts=counts,
    )


def format_rupiah(amount: Decimal) -> str:
    """Format an amount as Indonesian Rupiah, e.g. Rp 150.000."""
    whole = int(amount.quantize(Decimal("1")))
    return "Rp " + f"{whole:,}".replace(",", ".")
