"""Read-only snapshots of a rental transaction.

The store hands engines immutable copies of the rows they need. Rules and
the penalty calculator only ever see these, so they stay pure.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from verticals.rental.states import PickupState, ReturnState, TransactionStatus, pickup_state


@dataclass(frozen=True)
class ItemSnapshot:
    """One product line of a transaction."""

    id: str
    product_id: str
    product_code: str
    product_name: str
    ordered_quantity: int
    picked_up_quantity: int
    return_state: ReturnState
    unit_rate: Decimal
    duration_days: int
    penalty_total: Decimal
    condition_count: int
    replacement_cost: Decimal | None
    updated_at: datetime

    @property
    def remaining_quantity(self) -> int:
        return max(0, self.ordered_quantity - self.picked_up_quantity)

    @property
    def pickup_state(self) -> PickupState:
        return pickup_state(self.ordered_quantity, self.picked_up_quantity)

    @property
    def is_returned(self) -> bool:
        return self.return_state == ReturnState.COMPLETE

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_code": self.product_code,
            "product_name": self.product_name,
            "ordered_quantity": self.ordered_quantity,
            "picked_up_quantity": self.picked_up_quantity,
            "remaining_quantity": self.remaining_quantity,
            "pickup_state": self.pickup_state.value,
            "return_state": self.return_state.value,
            "unit_rate": str(self.unit_rate),
            "duration_days": self.duration_days,
            "penalty_total": str(self.penalty_total),
            "condition_count": self.condition_count,
        }


@dataclass(frozen=True)
class TransactionSnapshot:
    """A transaction and its items as read at read_at."""

    id: str
    code: str
    status: TransactionStatus
    rental_start: datetime
    rental_end: datetime
    actual_return_at: datetime | None
    total_price: Decimal
    amount_paid: Decimal
    amount_outstanding: Decimal
    penalty_total: Decimal
    items: tuple[ItemSnapshot, ...]
    updated_at: datetime
    read_at: datetime

    def item(self, item_id: str) -> ItemSnapshot | None:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    @property
    def last_modified_at(self) -> datetime:
        """Latest change to the transaction or any of its items."""
        return max([self.updated_at, *(item.updated_at for item in self.items)])

    def pickup_summary(self) -> dict[str, Any]:
        total = sum(item.ordered_quantity for item in self.items)
        picked = sum(item.picked_up_quantity for item in self.items)
        return {
            "transaction_id": self.id,
            "total_items": len(self.items),
            "total_quantity": total,
            "picked_up_quantity": picked,
            "remaining_quantity": total - picked,
            "pickup_percentage": round(picked / total * 100) if total else 0,
            "items": [
                {
                    "id": item.id,
                    "product_name": item.product_name,
                    "product_code": item.product_code,
                    "total_quantity": item.ordered_quantity,
                    "picked_up_quantity": item.picked_up_quantity,
                    "remaining_quantity": item.remaining_quantity,
                    "pickup_state": item.pickup_state.value,
                }
                for item in self.items
            ],
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "code": self.code,
            "status": self.status.value,
            "rental_start": self.rental_start.isoformat(),
            "rental_end": self.rental_end.isoformat(),
            "actual_return_at": self.actual_return_at.isoformat() if self.actual_return_at else None,
            "total_price": str(self.total_price),
            "amount_paid": str(self.amount_paid),
            "amount_outstanding": str(self.amount_outstanding),
            "penalty_total": str(self.penalty_total),
            "items": [item.to_dict() for item in self.items],
        }
