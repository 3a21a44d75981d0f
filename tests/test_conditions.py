"""Test end-condition classification and the condition split schema."""
import pytest
from pydantic import ValidationError

from verticals.rental.conditions import (
    ConditionKind,
    DamageGrade,
    ItemCondition,
    classify_condition,
    is_lost_description,
)
from verticals.rental.models.schemas import ConditionSplit, ReturnLine


@pytest.mark.parametrize("description,expected", [
    ("Baik - tidak ada kerusakan", ItemCondition.good()),
    ("Baik - sedikit kotor/kusut", ItemCondition.damaged(DamageGrade.MINOR)),
    ("Cukup - ada noda ringan", ItemCondition.damaged(DamageGrade.MINOR)),
    ("Cukup - ada kerusakan kecil", ItemCondition.damaged(DamageGrade.MODERATE)),
    ("Buruk - ada noda berat", ItemCondition.damaged(DamageGrade.MODERATE)),
    ("Buruk - ada kerusakan besar", ItemCondition.damaged(DamageGrade.SEVERE)),
    ("Hilang/tidak dikembalikan", ItemCondition.lost()),
])
def test_store_condition_labels(description, expected):
    assert classify_condition(description) == expected


def test_lost_keywords_case_insensitive():
    assert is_lost_description("BARANG HILANG")
    assert is_lost_description("Tidak Dikembalikan oleh pelanggan")
    assert not is_lost_description("Baik - tidak ada kerusakan")


def test_unknown_description_is_moderate_damage():
    assert classify_condition("sobek di bagian lengan") == ItemCondition.damaged(DamageGrade.MODERATE)


def test_damaged_requires_grade():
    with pytest.raises(ValueError):
        ItemCondition(ConditionKind.DAMAGED)
    with pytest.raises(ValueError):
        ItemCondition(ConditionKind.GOOD, DamageGrade.MINOR)


def test_split_is_tagged_at_the_boundary():
    split = ConditionSplit(description="Hilang/tidak dikembalikan", quantity=0)
    assert split.kind == ConditionKind.LOST
    assert split.condition.is_lost


def test_explicit_tag_wins_over_text():
    split = ConditionSplit(description="whatever it says", quantity=1, kind="damaged", grade="severe")
    assert split.condition == ItemCondition.damaged(DamageGrade.SEVERE)

    defaulted = ConditionSplit(description="noted at counter", quantity=1, kind="damaged")
    assert defaulted.grade == DamageGrade.MODERATE


def test_lost_text_cannot_be_tagged_otherwise():
    split = ConditionSplit(description="Hilang/tidak dikembalikan", quantity=2, kind="good")
    assert split.kind == ConditionKind.LOST
    assert split.condition.is_lost

    damaged = ConditionSplit(description="Barang hilang", quantity=0, kind="damaged", grade="severe")
    assert damaged.condition == ItemCondition.lost()


def test_split_description_length_enforced():
    with pytest.raises(ValidationError):
        ConditionSplit(description="ok", quantity=1)


def test_negative_split_quantity_rejected():
    with pytest.raises(ValidationError):
        ConditionSplit(description="Baik - tidak ada kerusakan", quantity=-1)


def test_return_line_quantities():
    line = ReturnLine(item_id="i1", conditions=[
        {"description": "Baik - tidak ada kerusakan", "quantity": 2},
        {"description": "Cukup - ada noda ringan", "quantity": 1},
        {"description": "Hilang/tidak dikembalikan", "quantity": 0},
    ])
    assert line.declared_quantity == 3
    assert line.physically_returned == 3
