"""Condition evaluator - decides whether a single condition matches an action.

evaluate_condition() is a pure function: it reads the action, never mutates
it, and holds no state. A condition that evaluates to False is a violation
trigger for its rule.

Absent fields: a dot path that cannot be resolved yields None and the
comparison still proceeds. ``not_equals`` against an absent field therefore
matches, and ordinal comparisons against an absent field do not. Rules that
must fail closed on missing data should test presence explicitly (for
example ``not_in [None]``) or use a predicate.
"""

from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import BaseModel

from aumos_compliance_engine.core.models import Action, ComplianceCondition
from aumos_compliance_engine.observability import get_logger

logger = get_logger(__name__)

_SET_TYPES = (list, tuple, set, frozenset)


def resolve_field(subject: Any, path: str) -> Any:
    """Walk a dot path through models, mappings, sequences and attributes.

    Args:
        subject: The root object, normally an Action.
        path: Dot-separated path such as ``data.employee.level`` or ``data.items.0``.

    Returns:
        The resolved value, or None when any segment is missing.
    """
    value: Any = subject
    for segment in path.split("."):
        if value is None:
            return None
        value = _step(value, segment)
    return value


def _step(value: Any, segment: str) -> Any:
    if isinstance(value, BaseModel):
        if segment in type(value).model_fields:
            return getattr(value, segment)
        extra = value.model_extra or {}
        return extra.get(segment)
    if isinstance(value, Mapping):
        return value.get(segment)
    if isinstance(value, Sequence) and not isinstance(value, str | bytes):
        try:
            return value[int(segment)]
        except (ValueError, IndexError):
            return None
    return getattr(value, segment, None)


def _stringify(value: Any) -> str:
    return "" if value is None else str(value)


def evaluate_condition(condition: ComplianceCondition, action: Action) -> bool:
    """Evaluate one condition against an action.

    Args:
        condition: The condition to evaluate.
        action: The action under evaluation.

    Returns:
        True when the condition matches (rule passes for this condition),
        False when it does not (a violation trigger).

    Raises:
        Exception: Whatever a custom predicate raises. The rule evaluation
            loop catches it and flags the rule.
    """
    if condition.predicate is not None:
        return bool(condition.predicate(action))

    field_value = resolve_field(action, condition.field)
    expected = condition.value
    operator = condition.operator

    if operator == "equals":
        return _strict_equals(field_value, expected)
    if operator == "not_equals":
        return not _strict_equals(field_value, expected)
    if operator == "contains":
        return _stringify(expected) in _stringify(field_value)
    if operator == "greater_than":
        return _ordinal(field_value, expected, greater=True)
    if operator == "less_than":
        return _ordinal(field_value, expected, greater=False)
    if operator == "in":
        return isinstance(expected, _SET_TYPES) and _member(field_value, expected)
    if operator == "not_in":
        return isinstance(expected, _SET_TYPES) and not _member(field_value, expected)

    logger.warning(
        "Unknown condition operator - treating as match",
        operator=operator,
        field=condition.field,
    )
    return True


def _strict_equals(left: Any, right: Any) -> bool:
    # bool is an int subclass; keep True distinct from 1
    if isinstance(left, bool) or isinstance(right, bool):
        return type(left) is type(right) and left == right
    if isinstance(left, int | float) and isinstance(right, int | float):
        return left == right
    return type(left) is type(right) and left == right


def _member(value: Any, candidates: Any) -> bool:
    return any(_strict_equals(value, candidate) for candidate in candidates)


def _ordinal(left: Any, right: Any, greater: bool) -> bool:
    if left is None or right is None:
        return False
    try:
        return bool(left > right) if greater else bool(left < right)
    except TypeError:
        return False
