"""Engine results returned to callers as data."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from patterns.rules_engine import Finding, ValidationReport, error
from verticals.rental import codes
from verticals.rental.codes import CONFLICT_CODES


class FailureKind(str, Enum):
    VALIDATION = "validation"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"


@dataclass
class EngineOutcome:
    success: bool
    findings: list[Finding] = field(default_factory=list)
    result: dict[str, Any] | None = None
    failure: FailureKind | None = None

    @classmethod
    def ok(cls, report: ValidationReport, result: dict[str, Any]) -> "EngineOutcome":
        return cls(success=True, findings=list(report.findings), result=result)

    @classmethod
    def rejected(
        cls,
        report: ValidationReport,
        result: dict[str, Any] | None = None,
        conflict_codes: frozenset[str] = CONFLICT_CODES,
    ) -> "EngineOutcome":
        """Failed validation. Races and repeats are classed as conflicts."""
        conflict = any(f.code in conflict_codes for f in report.errors)
        return cls(
            success=False,
            findings=list(report.findings),
            result=result,
            failure=FailureKind.CONFLICT if conflict else FailureKind.VALIDATION,
        )

    @classmethod
    def conflict(cls, code: str, message: str, item_id: str | None = None) -> "EngineOutcome":
        return cls(
            success=False,
            findings=[error(code, message, item_id=item_id)],
            failure=FailureKind.CONFLICT,
        )

    @classmethod
    def not_found(cls, transaction_id: str) -> "EngineOutcome":
        return cls(
            success=False,
            findings=[error(codes.TRANSACTION_NOT_FOUND, f"Transaction {transaction_id} not found")],
            failure=FailureKind.NOT_FOUND,
        )

    @property
    def codes(self) -> list[str]:
        return [f.code for f in self.findings]

    @property
    def errors(self) -> list[Finding]:
        return [f for f in self.findings if f.is_error]

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "failure": self.failure.value if self.failure else None,
            "findings": [f.to_dict() for f in self.findings],
            "result": self.result,
        }
