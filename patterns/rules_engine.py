"""Pure-function rules engine pattern.

Rules are stateless functions: (context) -> Finding or (context, line) -> Finding.
No database, no side effects, no clock reads. This makes them:
- Trivially testable (pure input/output)
- Composable (a RuleSet is just two lists of functions)
- Auditable (deterministic, explainable)

The Validator runs a RuleSet over a request and partitions the findings
into errors, warnings and info. A request is valid when it has no errors.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Generic, Iterable, Sequence, TypeVar


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class Finding:
    """Outcome of a single rule evaluation."""

    severity: Severity
    code: str
    message: str
    item_id: str | None = None
    details: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def is_error(self) -> bool:
        return self.severity == Severity.ERROR

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "severity": self.severity.value,
            "code": self.code,
            "message": self.message,
        }
        if self.item_id is not None:
            data["item_id"] = self.item_id
        if self.details:
            data["details"] = self.details
        return data


def error(code: str, message: str, item_id: str | None = None, **details: Any) -> Finding:
    return Finding(Severity.ERROR, code, message, item_id, details)


def warning(code: str, message: str, item_id: str | None = None, **details: Any) -> Finding:
    return Finding(Severity.WARNING, code, message, item_id, details)


def info(code: str, message: str, item_id: str | None = None, **details: Any) -> Finding:
    return Finding(Severity.INFO, code, message, item_id, details)


@dataclass
class ValidationReport:
    """Aggregate outcome of a rule set, partitioned by severity."""

    findings: list[Finding]
    errors: list[Finding] = field(default_factory=list)
    warnings: list[Finding] = field(default_factory=list)
    info: list[Finding] = field(default_factory=list)

    def __post_init__(self):
        self.errors = [f for f in self.findings if f.severity == Severity.ERROR]
        self.warnings = [f for f in self.findings if f.severity == Severity.WARNING]
        self.info = [f for f in self.findings if f.severity == Severity.INFO]

    @property
    def valid(self) -> bool:
        return len(self.errors) == 0

    def codes(self, severity: Severity | None = None) -> list[str]:
        """Rule codes in evaluation order, optionally filtered by severity."""
        return [
            f.code for f in self.findings
            if severity is None or f.severity == severity
        ]

    def has(self, code: str) -> bool:
        return any(f.code == code for f in self.findings)

    def merge(self, *others: "ValidationReport") -> "ValidationReport":
        findings = list(self.findings)
        for other in others:
            findings.extend(other.findings)
        return ValidationReport(findings=findings)

    def render(self, title: str = "VALIDATION REPORT") -> str:
        """Human-readable report, one numbered line per finding."""
        lines = [f"=== {title} ===", f"Status: {'VALID' if self.valid else 'INVALID'}", ""]
        for heading, group in (
            ("ERRORS", self.errors),
            ("WARNINGS", self.warnings),
            ("INFO", self.info),
        ):
            if not group:
                continue
            lines.append(f"{heading}:")
            for index, finding in enumerate(group, start=1):
                lines.append(f"{index}. [{finding.code}] {finding.message}")
            lines.append("")
        return "\n".join(lines).rstrip()

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": [f.to_dict() for f in self.errors],
            "warnings": [f.to_dict() for f in self.warnings],
            "info": [f.to_dict() for f in self.info],
        }


# ---------------------------------------------------------------------------
# Rule composition
# ---------------------------------------------------------------------------

CtxT = TypeVar("CtxT")
LineT = TypeVar("LineT")

RuleOutput = Finding | Iterable[Finding] | None


def _collect(output: RuleOutput) -> list[Finding]:
    if output is None:
        return []
    if isinstance(output, Finding):
        return [output]
    return list(output)


@dataclass
class RuleSet(Generic[CtxT, LineT]):
    """A named collection of request-scoped and line-scoped rules.

    - request_rules run once per request
    - line_guards run first for each line; an error from a guard skips the
      remaining rules for that line (e.g. an unknown item id)
    - line_rules run once per line that passed its guards
    """

    name: str
    request_rules: Sequence[Callable[[CtxT], RuleOutput]] = ()
    line_guards: Sequence[Callable[[CtxT, LineT], RuleOutput]] = ()
    line_rules: Sequence[Callable[[CtxT, LineT], RuleOutput]] = ()


class Validator(Generic[CtxT, LineT]):
    """Runs a RuleSet and returns a single pass/fail verdict.

    Usage::

        validator = Validator(PICKUP_RULES)
        report = validator.validate(context, request.items)
        if not report.valid:
            return failure(report.errors)
    """

    def __init__(self, rule_set: RuleSet[CtxT, LineT]):
        self.rule_set = rule_set

    def validate(self, context: CtxT, lines: Iterable[LineT]) -> ValidationReport:
        findings: list[Finding] = []

        for rule in self.rule_set.request_rules:
            findings.extend(_collect(rule(context)))

        for line in lines:
            blocked = False
            for guard in self.rule_set.line_guards:
                guard_findings = _collect(guard(context, line))
                findings.extend(guard_findings)
                if any(f.is_error for f in guard_findings):
                    blocked = True
                    break
            if blocked:
                continue
            for rule in self.rule_set.line_rules:
                findings.extend(_collect(rule(context, line)))

        return ValidationReport(findings=findings)


def evaluate_rules(*findings: Finding) -> ValidationReport:
    """Compose already-evaluated findings into a single report.

    Example::

        report = evaluate_rules(
            check_batch_limits(ctx),
            check_duplicates(ctx),
        )
    """
    return ValidationReport(findings=list(findings))
