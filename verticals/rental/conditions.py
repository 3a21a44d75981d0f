"""End-condition classification.

A returned unit's condition is a tagged value decided once, when the
request enters the engine: Good, Damaged(grade) or Lost. Penalty and
inventory logic only ever look at the tag, never at the free text.
"""

from dataclasses import dataclass
from enum import Enum


class ConditionKind(str, Enum):
    GOOD = "good"
    DAMAGED = "damaged"
    LOST = "lost"


class DamageGrade(str, Enum):
    MINOR = "minor"
    MODERATE = "moderate"
    SEVERE = "severe"


@dataclass(frozen=True)
class ItemCondition:
    """Classified end-condition of a condition split."""

    kind: ConditionKind
    grade: DamageGrade | None = None

    def __post_init__(self):
        if self.kind == ConditionKind.DAMAGED and self.grade is None:
            raise ValueError("damaged condition requires a grade")
        if self.kind != ConditionKind.DAMAGED and self.grade is not None:
            raise ValueError(f"{self.kind.value} condition cannot carry a grade")

    @property
    def is_lost(self) -> bool:
        return self.kind == ConditionKind.LOST

    @property
    def physically_returned(self) -> bool:
        return self.kind != ConditionKind.LOST

    @property
    def label(self) -> str:
        if self.grade is not None:
            return f"{self.kind.value}:{self.grade.value}"
        return self.kind.value

    @classmethod
    def good(cls) -> "ItemCondition":
        return cls(ConditionKind.GOOD)

    @classmethod
    def lost(cls) -> "ItemCondition":
        return cls(ConditionKind.LOST)

    @classmethod
    def damaged(cls, grade: DamageGrade) -> "ItemCondition":
        return cls(ConditionKind.DAMAGED, grade)


LOST_KEYWORDS = ("tidak dikembalikan", "hilang", "lost")

# Most specific keyword first; the first match wins.
_KEYWORDS: tuple[tuple[str, ItemCondition], ...] = (
    ("baik - tidak ada kerusakan", ItemCondition.good()),
    ("buruk - ada kerusakan besar", ItemCondition.damaged(DamageGrade.SEVERE)),
    ("cukup - ada noda ringan", ItemCondition.damaged(DamageGrade.MINOR)),
    ("cukup - ada kerusakan", ItemCondition.damaged(DamageGrade.MODERATE)),
    ("buruk - ada noda", ItemCondition.damaged(DamageGrade.MODERATE)),
    ("baik - sedikit", ItemCondition.damaged(DamageGrade.MINOR)),
    ("severe", ItemCondition.damaged(DamageGrade.SEVERE)),
    ("moderate", ItemCondition.damaged(DamageGrade.MODERATE)),
    ("minor", ItemCondition.damaged(DamageGrade.MINOR)),
    ("good", ItemCondition.good()),
)


def is_lost_description(description: str) -> bool:
    normalized = description.lower()
    return any(keyword in normalized for keyword in LOST_KEYWORDS)


def classify_condition(description: str) -> ItemCondition:
    """Classify a free-text end-condition.

    Unrecognised descriptions are treated as moderate damage.
    """
    if is_lost_description(description):
        return ItemCondition.lost()

    normalized = description.lower()
    for keyword, condition in _KEYWORDS:
        if keyword in normalized:
            return condition
    return ItemCondition.damaged(DamageGrade.MODERATE)
