"""Pydantic schemas for engine requests and API responses."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator

from verticals.rental.conditions import (
    ConditionKind,
    DamageGrade,
    ItemCondition,
    classify_condition,
    is_lost_description,
)


# ---------------------------------------------------------------------------
# Pickup
# ---------------------------------------------------------------------------

class PickupLine(BaseModel):
    item_id: str = Field(..., min_length=1)
    # Bounds are business rules and are reported as findings, not schema errors.
    quantity: int


class PickupRequest(BaseModel):
    transaction_id: str = Field(..., min_length=1)
    items: list[PickupLine] = Field(..., min_length=1)
    observed_at: Optional[datetime] = Field(
        None, description="When the caller read the data this request is based on"
    )

    @property
    def total_quantity(self) -> int:
        return sum(line.quantity for line in self.items)


# ---------------------------------------------------------------------------
# Return
# ---------------------------------------------------------------------------

class ConditionSplit(BaseModel):
    description: str = Field(..., min_length=5, max_length=500)
    quantity: int = Field(..., ge=0)
    kind: Optional[ConditionKind] = None
    grade: Optional[DamageGrade] = None

    @model_validator(mode="after")
    def _tag_condition(self) -> "ConditionSplit":
        # A lost description is always tagged lost, whatever kind was sent.
        if self.kind is None or is_lost_description(self.description):
            classified = classify_condition(self.description)
            self.kind = classified.kind
            self.grade = classified.grade
        elif self.kind == ConditionKind.DAMAGED and self.grade is None:
            self.grade = DamageGrade.MODERATE
        elif self.kind != ConditionKind.DAMAGED:
            self.grade = None
        return self

    @property
    def condition(self) -> ItemCondition:
        return ItemCondition(self.kind, self.grade)


class ReturnLine(BaseModel):
    item_id: str = Field(..., min_length=1)
    conditions: list[ConditionSplit] = Field(..., min_length=1)

    @property
    def declared_quantity(self) -> int:
        return sum(split.quantity for split in self.conditions)

    @property
    def physically_returned(self) -> int:
        return sum(
            split.quantity for split in self.conditions
            if split.condition.physically_returned
        )


class ReturnRequest(BaseModel):
    transaction_id: str = Field(..., min_length=1)
    items: list[ReturnLine] = Field(..., min_length=1)
    actual_return_time: Optional[datetime] = None
    notes: Optional[str] = Field(None, max_length=1000)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------

class FindingResponse(BaseModel):
    severity: str
    code: str
    message: str
    item_id: Optional[str] = None
    details: dict[str, Any] = Field(default_factory=dict)


class OutcomeResponse(BaseModel):
    success: bool
    failure: Optional[str] = None
    findings: list[FindingResponse] = Field(default_factory=list)
    result: Optional[dict[str, Any]] = None
