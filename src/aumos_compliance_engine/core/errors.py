"""Exceptions raised by the compliance engine.

Evaluation never raises these: rule, response, retention and persistence
failures are recorded and logged instead. They surface only on explicit
mutation (insertion of an invalid definition) and lookups from the API layer.
"""


class ComplianceEngineError(Exception):
    """Base class for all compliance engine errors."""


class NotFoundError(ComplianceEngineError):
    """A referenced resource does not exist.

    Args:
        resource: Resource kind, e.g. "ComplianceRule".
        resource_id: Identifier that was looked up.
    """

    def __init__(self, resource: str, resource_id: str) -> None:
        super().__init__(f"{resource} '{resource_id}' not found")
        self.resource = resource
        self.resource_id = resource_id


class ValidationError(ComplianceEngineError):
    """A definition failed structural validation."""


class RuleValidationError(ValidationError):
    """A compliance rule is missing an id, name, type, conditions or actions."""

    def __init__(self, rule_id: str) -> None:
        super().__init__(f"Compliance rule '{rule_id}' failed structural validation")
        self.rule_id = rule_id


class RetentionPolicyValidationError(ValidationError):
    """A retention policy is structurally invalid."""

    def __init__(self, policy_id: str) -> None:
        super().__init__(f"Retention policy '{policy_id}' failed structural validation")
        self.policy_id = policy_id
