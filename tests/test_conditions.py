"""Tests for condition evaluation and dot-path field resolution."""

from typing import Any

import pytest

from aumos_compliance_engine.core.conditions import evaluate_condition, resolve_field
from aumos_compliance_engine.core.models import Action, ComplianceCondition


def _action(**data: Any) -> Action:
    return Action(type="data.read", user_id="u1", resource="customers", data=data)


def _cond(operator: str, value: Any, field: str = "data.x") -> ComplianceCondition:
    return ComplianceCondition(type="custom", field=field, operator=operator, value=value)


# ---------------------------------------------------------------------------
# resolve_field
# ---------------------------------------------------------------------------


def test_resolve_field_walks_nested_mappings() -> None:
    action = _action(employee={"profile": {"level": "senior"}})
    assert resolve_field(action, "data.employee.profile.level") == "senior"


def test_resolve_field_indexes_sequences() -> None:
    action = _action(items=["a", "b"])
    assert resolve_field(action, "data.items.1") == "b"
    assert resolve_field(action, "data.items.5") is None


def test_resolve_field_reads_top_level_and_extra_fields() -> None:
    action = Action(type="t", user_id="u1", resource="r", access_level="admin")
    assert resolve_field(action, "user_id") == "u1"
    assert resolve_field(action, "access_level") == "admin"


def test_resolve_field_missing_segment_is_none() -> None:
    assert resolve_field(_action(), "data.missing.deeper") is None


# ---------------------------------------------------------------------------
# Operators
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("operator", "value", "field_value", "expected"),
    [
        ("equals", "restricted", "restricted", True),
        ("equals", "restricted", "public", False),
        ("equals", 1, "1", False),
        ("equals", 1, 1.0, True),
        ("equals", True, 1, False),
        ("not_equals", "unauthorized", "authorized", True),
        ("not_equals", "unauthorized", "unauthorized", False),
        ("contains", "ssn", "contains ssn field", True),
        ("contains", "ssn", "email only", False),
        ("greater_than", 10, 11, True),
        ("greater_than", 10, 10, False),
        ("less_than", 10, 9, True),
        ("greater_than", 10, "eleven", False),
        ("in", ["a", "b"], "a", True),
        ("in", ["a", "b"], "c", False),
        ("not_in", ["a", "b"], "c", True),
        ("not_in", ["a", "b"], "a", False),
        ("in", "ab", "a", False),
        ("not_in", "ab", "c", False),
    ],
)
def test_operator_semantics(operator: str, value: Any, field_value: Any, expected: bool) -> None:
    assert evaluate_condition(_cond(operator, value), _action(x=field_value)) is expected


def test_absent_field_not_equals_matches() -> None:
    assert evaluate_condition(_cond("not_equals", "unauthorized"), _action()) is True


def test_absent_field_ordinal_comparisons_do_not_match() -> None:
    assert evaluate_condition(_cond("greater_than", 0), _action()) is False
    assert evaluate_condition(_cond("less_than", 0), _action()) is False


def test_absent_field_contains_uses_empty_string() -> None:
    assert evaluate_condition(_cond("contains", ""), _action()) is True
    assert evaluate_condition(_cond("contains", "x"), _action()) is False


def test_unknown_operator_is_treated_as_match() -> None:
    condition = ComplianceCondition(type="custom", field="data.x", operator="matches_regex", value=".*")  # type: ignore[arg-type]
    assert evaluate_condition(condition, _action(x="anything")) is True


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------


def test_predicate_overrides_operator() -> None:
    condition = ComplianceCondition(
        type="custom",
        field="data.x",
        operator="equals",
        value="never",
        predicate=lambda action: action.user_id == "u1",
    )
    assert evaluate_condition(condition, _action(x="other")) is True


def test_predicate_exceptions_propagate() -> None:
    def explode(action: Action) -> bool:
        raise RuntimeError("boom")

    condition = ComplianceCondition(type="custom", field="data.x", operator="equals", predicate=explode)
    with pytest.raises(RuntimeError, match="boom"):
        evaluate_condition(condition, _action())


def test_evaluation_does_not_mutate_action() -> None:
    action = _action(x={"nested": [1, 2]})
    before = action.model_dump()
    evaluate_condition(_cond("contains", "1", field="data.x.nested"), action)
    assert action.model_dump() == before
