"""SQLAlchemy models for the rental vertical.

Each model inherits from Base and uses RecordMixin for ids and audit
timestamps. Money columns are Numeric and surface as Decimal.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.models.base import Base, RecordMixin, utcnow

MONEY = Numeric(14, 2)


class Product(RecordMixin, Base):
    """A rentable product with its shared stock counter."""

    __tablename__ = "products"

    code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    available_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Replacement-cost basis for lost items
    acquisition_cost: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)


class RentalTransaction(RecordMixin, Base):
    """A booked rental: one customer, one rental window, many items."""

    __tablename__ = "rental_transactions"

    code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active", index=True)
    rental_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    rental_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    actual_return_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    total_price: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    amount_paid: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    amount_outstanding: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    penalty_total: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))

    items: Mapped[list["RentalItem"]] = relationship(
        back_populates="transaction", cascade="all, delete-orphan", order_by="RentalItem.created_at"
    )


class RentalItem(RecordMixin, Base):
    """One product line within a transaction."""

    __tablename__ = "rental_items"

    transaction_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("rental_transactions.id"), nullable=False, index=True
    )
    product_id: Mapped[str] = mapped_column(String(36), ForeignKey("products.id"), nullable=False)
    ordered_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    picked_up_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    return_state: Mapped[str] = mapped_column(String(20), nullable=False, default="none")
    unit_rate: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    duration_days: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    penalty_total: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    condition_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    transaction: Mapped["RentalTransaction"] = relationship(back_populates="items")
    product: Mapped["Product"] = relationship()
    condition_records: Mapped[list["ConditionRecord"]] = relationship(
        back_populates="item", cascade="all, delete-orphan", order_by="ConditionRecord.created_at"
    )


class ConditionRecord(RecordMixin, Base):
    """Append-only record of one condition split from a return."""

    __tablename__ = "condition_records"

    item_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("rental_items.id"), nullable=False, index=True
    )
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    grade: Mapped[str | None] = mapped_column(String(20), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    penalty_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    replacement_cost_basis: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    recorded_by: Mapped[str] = mapped_column(String(64), nullable=False, default="system")

    item: Mapped["RentalItem"] = relationship(back_populates="condition_records")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "description": self.description,
            "kind": self.kind,
            "grade": self.grade,
            "quantity": self.quantity,
            "penalty_amount": str(self.penalty_amount),
            "replacement_cost_basis": (
                str(self.replacement_cost_basis) if self.replacement_cost_basis is not None else None
            ),
            "recorded_by": self.recorded_by,
        }


class ActivityLog(Base):
    """Audit trail row written by ActivityLogAuditSink."""

    __tablename__ = "rental_activity"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    transaction_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    actor: Mapped[str] = mapped_column(String(64), nullable=False, default="system")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
