"""Structural validation of rules, actions and retention policies.

All validators return a boolean and never raise: they are safe to call on
untrusted definitions before insertion. Insertion-time enforcement (raising
RuleValidationError / RetentionPolicyValidationError) is layered on top by
the registry and the retention engine.

Per-action-type payload schemas: callers may register a pydantic model for an
action type. validate_action() then checks the action's ``data`` against it,
which catches payloads whose field paths would otherwise resolve to nothing.
Unregistered action types fall back to accepting any mapping.
"""

from pydantic import BaseModel, ValidationError

from aumos_compliance_engine.core.models import (
    COMPLIANCE_TYPES,
    Action,
    ComplianceRule,
    RetentionPolicy,
)
from aumos_compliance_engine.observability import get_logger

logger = get_logger(__name__)


def validate_rule(rule: ComplianceRule) -> bool:
    """Return False if id, name or type is empty, or conditions/actions is empty.

    Args:
        rule: The rule to check.

    Returns:
        True when the rule is structurally sound.
    """
    if not rule.id or not rule.name or not rule.type:
        return False
    if not rule.conditions:
        return False
    if not rule.actions:
        return False
    return True


def validate_retention_policy(policy: RetentionPolicy) -> bool:
    """Return True when the retention policy is structurally sound.

    A policy is rejected when id, name or description is empty, the retention
    period is not positive, it governs no data types, it would delete data
    before archiving it (``archive_after > delete_after``), or one of its
    exceptions carries a non-positive retention period.

    Args:
        policy: The policy to check.

    Returns:
        True when valid.
    """
    if not policy.id or not policy.name or not policy.description:
        return False
    if policy.retention_period <= 0:
        return False
    if not policy.data_types:
        return False
    if policy.archive_after < 0 or policy.archive_after > policy.delete_after:
        return False
    return all(exc.condition and exc.retention_period > 0 for exc in policy.exceptions)


class PayloadSchemaRegistry:
    """Maps action types to pydantic models describing their ``data`` payload."""

    def __init__(self) -> None:
        self._schemas: dict[str, type[BaseModel]] = {}

    def register(self, action_type: str, schema: type[BaseModel]) -> None:
        """Register (or replace) the payload schema for an action type."""
        self._schemas[action_type] = schema
        logger.info(
            "Action payload schema registered",
            action_type=action_type,
            schema=schema.__name__,
        )

    def validate_action(self, action: Action) -> bool:
        """Return True when the action is structurally valid.

        Requires non-empty type, user_id and resource, and, when a payload
        schema is registered for the action type, a ``data`` payload that
        validates against it.

        Args:
            action: The action to check.

        Returns:
            True when valid.
        """
        if not action.type or not action.user_id or not action.resource:
            return False

        schema = self._schemas.get(action.type)
        if schema is None:
            return True

        try:
            schema.model_validate(action.data)
        except ValidationError as exc:
            logger.info(
                "Action payload failed schema validation",
                action_type=action.type,
                schema=schema.__name__,
                error_count=exc.error_count(),
            )
            return False
        return True


def is_known_compliance_type(value: str) -> bool:
    """Return True when ``value`` is one of the supported compliance types."""
    return value in COMPLIANCE_TYPES
