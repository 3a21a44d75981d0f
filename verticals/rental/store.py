"""Transactional store for rental transactions.

The engines see the database through two calls:

- read_snapshot(transaction_id) returns an immutable TransactionSnapshot
- commit(transaction_id, mutation) runs mutation(writer) inside a single
  database transaction and returns its result

Writers change counters with guarded conditional UPDATEs
(``SET x = x + n WHERE <precondition>``). When a guard matches no row the
writer raises ConflictError, which rolls back everything the mutation
has done so far. The engine never takes manual locks.
"""

import asyncio
import logging
from datetime import datetime
from decimal import Decimal
from typing import Awaitable, Callable, Protocol, TypeVar

from sqlalchemy import exists, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from core.models.base import ensure_utc, utcnow
from verticals.rental import codes
from verticals.rental.errors import (
    ConflictError,
    StoreTimeoutError,
    StoreUnavailableError,
    TransactionNotFoundError,
)
from verticals.rental.models.db_models import ConditionRecord, Product, RentalItem, RentalTransaction
from verticals.rental.penalty import SplitPenalty
from verticals.rental.snapshot import ItemSnapshot, TransactionSnapshot
from verticals.rental.states import RETURN_FLOW, TRANSACTION_FLOW, ReturnState, TransactionStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Ports
# ---------------------------------------------------------------------------

class TransactionWriter(Protocol):
    async def lock_active_transaction(self, conflict_code: str) -> None: ...

    async def increment_picked_up(self, item_id: str, quantity: int) -> None: ...

    async def close_if_settled(self, return_time: datetime, returning_item_ids: list[str]) -> bool: ...

    async def add_penalty(self, amount: Decimal) -> None: ...

    async def add_condition_record(self, item_id: str, split: SplitPenalty, recorded_by: str) -> None: ...

    async def complete_item(
        self, item_id: str, penalty: Decimal, condition_count: int, declared_quantity: int
    ) -> None: ...

    async def release_inventory(self, product_id: str, quantity: int) -> None: ...

    async def view(self) -> TransactionSnapshot: ...


class TransactionStore(Protocol):
    async def read_snapshot(self, transaction_id: str) -> TransactionSnapshot: ...

    async def commit(
        self,
        transaction_id: str,
        mutation: Callable[[TransactionWriter], Awaitable[T]],
    ) -> T: ...


# ---------------------------------------------------------------------------
# Snapshot conversion
# ---------------------------------------------------------------------------

def _load_statement(transaction_id: str):
    return (
        select(RentalTransaction)
        .where(RentalTransaction.id == transaction_id)
        .options(selectinload(RentalTransaction.items).selectinload(RentalItem.product))
    )


def to_snapshot(txn: RentalTransaction, read_at: datetime) -> TransactionSnapshot:
    items = tuple(
        ItemSnapshot(
            id=item.id,
            product_id=item.product_id,
            product_code=item.product.code,
            product_name=item.product.name,
            ordered_quantity=item.ordered_quantity,
            picked_up_quantity=item.picked_up_quantity,
            return_state=ReturnState(item.return_state),
            unit_rate=item.unit_rate,
            duration_days=item.duration_days,
            penalty_total=item.penalty_total,
            condition_count=item.condition_count,
            replacement_cost=item.product.acquisition_cost,
            updated_at=ensure_utc(item.updated_at),
        )
        for item in txn.items
    )
    return TransactionSnapshot(
        id=txn.id,
        code=txn.code,
        status=TransactionStatus(txn.status),
        rental_start=ensure_utc(txn.rental_start),
        rental_end=ensure_utc(txn.rental_end),
        actual_return_at=ensure_utc(txn.actual_return_at),
        total_price=txn.total_price,
        amount_paid=txn.amount_paid,
        amount_outstanding=txn.amount_outstanding,
        penalty_total=txn.penalty_total,
        items=items,
        updated_at=ensure_utc(txn.updated_at),
        read_at=read_at,
    )


# ---------------------------------------------------------------------------
# SQLAlchemy implementation
# ---------------------------------------------------------------------------

class SqlAlchemyWriter:
    """Session-bound writer handed to a mutation inside commit()."""

    def __init__(self, session: AsyncSession, transaction_id: str, clock: Callable[[], datetime] = utcnow):
        self.session = session
        self.transaction_id = transaction_id
        self.clock = clock

    async def _guarded(self, stmt, code: str, message: str, item_id: str | None = None) -> None:
        result = await self.session.execute(stmt.execution_options(synchronize_session=False))
        if result.rowcount != 1:
            raise ConflictError(code, message, item_id=item_id)

    async def lock_active_transaction(self, conflict_code: str) -> None:
        """Touch the transaction row, requiring it to still be active."""
        stmt = (
            update(RentalTransaction)
            .where(
                RentalTransaction.id == self.transaction_id,
                RentalTransaction.status == TransactionStatus.ACTIVE.value,
            )
            .values(updated_at=self.clock())
        )
        await self._guarded(stmt, conflict_code, f"Transaction {self.transaction_id} is no longer active")

    async def increment_picked_up(self, item_id: str, quantity: int) -> None:
        if quantity <= 0:
            raise ValueError(f"pickup quantity must be positive, got {quantity}")
        stmt = (
            update(RentalItem)
            .where(
                RentalItem.id == item_id,
                RentalItem.transaction_id == self.transaction_id,
                RentalItem.return_state != ReturnState.COMPLETE.value,
                RentalItem.picked_up_quantity + quantity <= RentalItem.ordered_quantity,
            )
            .values(
                picked_up_quantity=RentalItem.picked_up_quantity + quantity,
                updated_at=self.clock(),
            )
        )
        await self._guarded(
            stmt,
            codes.CONCURRENT_PICKUP_DETECTED,
            f"Item {item_id} changed during pickup; {quantity} more units no longer fit",
            item_id=item_id,
        )

    async def close_if_settled(self, return_time: datetime, returning_item_ids: list[str]) -> bool:
        """Mark the transaction returned if no other picked-up item is still out.

        Returns whether the transaction was closed.
        """
        TRANSACTION_FLOW.require(TransactionStatus.ACTIVE, TransactionStatus.RETURNED)
        still_out = exists().where(
            RentalItem.transaction_id == self.transaction_id,
            RentalItem.return_state != ReturnState.COMPLETE.value,
            RentalItem.picked_up_quantity > 0,
            RentalItem.id.not_in(returning_item_ids),
        )
        stmt = (
            update(RentalTransaction)
            .where(
                RentalTransaction.id == self.transaction_id,
                RentalTransaction.status == TransactionStatus.ACTIVE.value,
                ~still_out,
            )
            .values(
                status=TransactionStatus.RETURNED.value,
                actual_return_at=return_time,
                updated_at=self.clock(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def add_penalty(self, amount: Decimal) -> None:
        if amount == 0:
            return
        stmt = (
            update(RentalTransaction)
            .where(RentalTransaction.id == self.transaction_id)
            .values(
                penalty_total=RentalTransaction.penalty_total + amount,
                amount_outstanding=RentalTransaction.amount_outstanding + amount,
                updated_at=self.clock(),
            )
        )
        await self._guarded(stmt, codes.TRANSACTION_NOT_FOUND, f"Transaction {self.transaction_id} not found")

    async def add_condition_record(self, item_id: str, split: SplitPenalty, recorded_by: str) -> None:
        self.session.add(ConditionRecord(
            item_id=item_id,
            description=split.description,
            kind=split.condition.kind.value,
            grade=split.condition.grade.value if split.condition.grade else None,
            quantity=split.quantity,
            penalty_amount=split.amount,
            replacement_cost_basis=split.replacement_cost_basis,
            recorded_by=recorded_by,
            created_at=self.clock(),
            updated_at=self.clock(),
        ))

    async def complete_item(
        self, item_id: str, penalty: Decimal, condition_count: int, declared_quantity: int
    ) -> None:
        RETURN_FLOW.require(ReturnState.NONE, ReturnState.COMPLETE)
        stmt = (
            update(RentalItem)
            .where(
                RentalItem.id == item_id,
                RentalItem.transaction_id == self.transaction_id,
                RentalItem.return_state != ReturnState.COMPLETE.value,
                RentalItem.picked_up_quantity >= declared_quantity,
            )
            .values(
                return_state=ReturnState.COMPLETE.value,
                penalty_total=RentalItem.penalty_total + penalty,
                condition_count=RentalItem.condition_count + condition_count,
                updated_at=self.clock(),
            )
        )
        await self._guarded(
            stmt,
            codes.ITEM_ALREADY_RETURNED,
            f"Item {item_id} was returned or changed by another request",
            item_id=item_id,
        )

    async def release_inventory(self, product_id: str, quantity: int) -> None:
        if quantity <= 0:
            return
        stmt = (
            update(Product)
            .where(Product.id == product_id)
            .values(
                available_quantity=Product.available_quantity + quantity,
                updated_at=self.clock(),
            )
        )
        await self._guarded(stmt, codes.ITEM_NOT_FOUND, f"Product {product_id} not found")

    async def view(self) -> TransactionSnapshot:
        """Re-read the transaction as this unit of work sees it."""
        await self.session.flush()
        result = await self.session.execute(
            _load_statement(self.transaction_id).execution_options(populate_existing=True)
        )
        txn = result.scalar_one()
        return to_snapshot(txn, read_at=self.clock())


class SqlAlchemyTransactionStore:
    """TransactionStore backed by an async SQLAlchemy session factory.

    Usage::

        store = SqlAlchemyTransactionStore(get_session_factory(), commit_timeout=10)
        snapshot = await store.read_snapshot(transaction_id)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        commit_timeout: float = 10.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.commit_timeout = commit_timeout
        self.clock = clock

    async def read_snapshot(self, transaction_id: str) -> TransactionSnapshot:
        try:
            async with self.session_factory() as session:
                result = await session.execute(_load_statement(transaction_id))
                txn = result.scalar_one_or_none()
                if txn is None:
                    raise TransactionNotFoundError(transaction_id)
                return to_snapshot(txn, read_at=self.clock())
        except SQLAlchemyError as exc:
            logger.error("snapshot read failed", extra={"transaction_id": transaction_id})
            raise StoreUnavailableError(f"Could not read transaction {transaction_id}", exc) from exc

    async def commit(
        self,
        transaction_id: str,
        mutation: Callable[[TransactionWriter], Awaitable[T]],
    ) -> T:
        try:
            return await asyncio.wait_for(
                self._run(transaction_id, mutation),
                timeout=self.commit_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "commit timed out and was rolled back",
                extra={"transaction_id": transaction_id, "timeout_seconds": self.commit_timeout},
            )
            raise StoreTimeoutError(transaction_id, self.commit_timeout) from None
        except SQLAlchemyError as exc:
            logger.error("commit failed", extra={"transaction_id": transaction_id})
            raise StoreUnavailableError(f"Could not commit transaction {transaction_id}", exc) from exc

    async def _run(
        self,
        transaction_id: str,
        mutation: Callable[[TransactionWriter], Awaitable[T]],
    ) -> T:
        async with self.session_factory() as session:
            async with session.begin():
                writer = SqlAlchemyWriter(session, transaction_id, self.clock)
                return await mutation(writer)
