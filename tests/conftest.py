"""Shared fixtures: in-memory SQLite store, seed helpers and a fixed clock."""
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from core.database import build_session_factory
from core.models.base import Base
from verticals.rental.audit import AuditEvent
from verticals.rental.config import RentalConfig
from verticals.rental.models.db_models import ConditionRecord, Product, RentalItem, RentalTransaction
from verticals.rental.pickup import PickupEngine
from verticals.rental.returns import ReturnEngine
from verticals.rental.store import SqlAlchemyTransactionStore

# Monday 2024-06-03, 10:00 in Asia/Jakarta
NOW = datetime(2024, 6, 3, 3, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return NOW


@dataclass
class Line:
    ordered: int
    picked_up: int = 0
    acquisition_cost: Decimal | None = Decimal("250000")
    available: int = 10
    return_state: str = "none"


@dataclass
class Seeded:
    transaction_id: str
    item_ids: list[str] = field(default_factory=list)
    product_ids: list[str] = field(default_factory=list)


class RecordingSink:
    def __init__(self):
        self.events: list[AuditEvent] = []

    async def record(self, event: AuditEvent) -> None:
        self.events.append(event)

    @property
    def types(self) -> list[str]:
        return [e.event_type for e in self.events]


class FailingSink:
    def __init__(self):
        self.calls = 0

    async def record(self, event: AuditEvent) -> None:
        self.calls += 1
        raise ConnectionError("audit backend down")


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield build_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def store(session_factory):
    return SqlAlchemyTransactionStore(session_factory, commit_timeout=5, clock=fixed_clock)


@pytest.fixture
def audit_log():
    return RecordingSink()


@pytest.fixture
def config():
    return RentalConfig.default()


@pytest.fixture
def pickup_engine(store, audit_log, config):
    return PickupEngine(store, audit=audit_log, config=config, clock=fixed_clock)


@pytest.fixture
def return_engine(store, audit_log, config):
    return ReturnEngine(store, audit=audit_log, config=config, clock=fixed_clock)


async def seed_transaction(
    session_factory,
    lines: list[Line],
    *,
    status: str = "active",
    rental_start: datetime = NOW - timedelta(days=3),
    rental_end: datetime = NOW + timedelta(days=2),
    total_price: Decimal = Decimal("300000"),
    amount_paid: Decimal = Decimal("300000"),
    code: str = "TXR-240601-001",
) -> Seeded:
    last_change = NOW - timedelta(hours=1)
    txn = RentalTransaction(
        code=code,
        status=status,
        rental_start=rental_start,
        rental_end=rental_end,
        total_price=total_price,
        amount_paid=amount_paid,
        amount_outstanding=total_price - amount_paid,
        penalty_total=Decimal("0"),
        created_at=last_change,
        updated_at=last_change,
    )
    async with session_factory() as session:
        async with session.begin():
            session.add(txn)
            await session.flush()
            seeded = Seeded(transaction_id=txn.id)
            for index, line in enumerate(lines):
                product = Product(
                    code=f"{code}-P{index:03d}",
                    name=f"Kebaya {index + 1}",
                    available_quantity=line.available,
                    acquisition_cost=line.acquisition_cost,
                )
                session.add(product)
                await session.flush()
                item = RentalItem(
                    transaction_id=txn.id,
                    product_id=product.id,
                    ordered_quantity=line.ordered,
                    picked_up_quantity=line.picked_up,
                    return_state=line.return_state,
                    unit_rate=Decimal("50000"),
                    duration_days=3,
                    created_at=last_change + timedelta(microseconds=index),
                    updated_at=last_change,
                )
                session.add(item)
                await session.flush()
                seeded.item_ids.append(item.id)
                seeded.product_ids.append(product.id)
    return seeded


@pytest.fixture
def seed(session_factory):
    async def _seed(*lines: Line, **kwargs) -> Seeded:
        return await seed_transaction(session_factory, list(lines), **kwargs)
    return _seed


@pytest.fixture
def fetch(session_factory):
    """Load a fresh row by primary key."""
    async def _fetch(model, row_id):
        async with session_factory() as session:
            return await session.get(model, row_id)
    return _fetch


@pytest.fixture
def condition_records(session_factory):
    async def _records(item_id: str) -> list[ConditionRecord]:
        async with session_factory() as session:
            result = await session.execute(
                select(ConditionRecord).where(ConditionRecord.item_id == item_id)
            )
            return list(result.scalars().all())
    return _records
