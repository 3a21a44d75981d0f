"""Test the rules engine primitives."""
from dataclasses import dataclass

from patterns.rules_engine import (
    RuleSet,
    Severity,
    ValidationReport,
    Validator,
    error,
    evaluate_rules,
    info,
    warning,
)


@dataclass
class Ctx:
    known: set


def known_guard(ctx, line):
    if line not in ctx.known:
        return error("UNKNOWN", f"{line} unknown", item_id=line)
    return None


def line_info(ctx, line):
    return info("LINE_OK", f"{line} ok", item_id=line)


def request_rule(ctx):
    return [warning("REQ_WARN", "heads up"), info("REQ_INFO", "fine")]


RULES = RuleSet(
    name="demo",
    request_rules=(request_rule,),
    line_guards=(known_guard,),
    line_rules=(line_info,),
)


def test_report_partitions_by_severity():
    report = evaluate_rules(
        error("E1", "bad"),
        warning("W1", "hmm"),
        info("I1", "ok"),
        info("I2", "ok"),
    )
    assert [f.code for f in report.errors] == ["E1"]
    assert [f.code for f in report.warnings] == ["W1"]
    assert [f.code for f in report.info] == ["I1", "I2"]
    assert not report.valid


def test_report_valid_without_errors():
    report = evaluate_rules(warning("W1", "hmm"))
    assert report.valid
    assert report.has("W1")
    assert report.codes(Severity.ERROR) == []


def test_guard_error_skips_line_rules():
    report = Validator(RULES).validate(Ctx(known={"a"}), ["a", "b"])
    assert report.codes() == ["REQ_WARN", "REQ_INFO", "LINE_OK", "UNKNOWN"]
    assert report.errors[0].item_id == "b"


def test_merge_keeps_order():
    first = evaluate_rules(info("A", "a"))
    second = evaluate_rules(error("B", "b"))
    merged = first.merge(second)
    assert merged.codes() == ["A", "B"]
    assert not merged.valid


def test_render_groups_findings():
    report = evaluate_rules(error("E1", "broken"), warning("W1", "careful"))
    text = report.render("PICKUP VALIDATION")
    assert text.startswith("=== PICKUP VALIDATION ===")
    assert "Status: INVALID" in text
    assert "ERRORS:\n1. [E1] broken" in text
    assert "WARNINGS:\n1. [W1] careful" in text
    assert "INFO:" not in text


def test_finding_to_dict_omits_empty_fields():
    assert error("E1", "bad").to_dict() == {"severity": "error", "code": "E1", "message": "bad"}
    data = error("E1", "bad", item_id="x", shortage=2).to_dict()
    assert data["item_id"] == "x"
    assert data["details"] == {"shortage": 2}


def test_report_to_dict():
    data = ValidationReport(findings=[info("I1", "ok")]).to_dict()
    assert data["valid"] is True
    assert data["info"][0]["code"] == "I1"
