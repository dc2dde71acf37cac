"""Domain models for the compliance engine.

Rules, violations, audit entries, retention policies and reports are plain
dataclasses owned by the in-process components. The Action submitted by
callers is a pydantic model so that its shape is validated at the boundary
and per-type payload schemas can be layered on top (see validation.py).

Ownership:
- ComplianceRule          - Rule Registry only (counters mutated in place)
- ComplianceViolation     - Violation Store; resolution fields are the only mutable ones
- AuditTrailEntry         - Audit Trail Log; immutable once appended
- RetentionPolicy         - Retention Policy Engine; never mutated by a sweep
- ComplianceReport        - immutable point-in-time snapshot
"""

import uuid
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal, get_args

from pydantic import BaseModel, ConfigDict, Field

ComplianceType = Literal[
    "gdpr",
    "soc2",
    "hipaa",
    "pci_dss",
    "iso_27001",
    "ccpa",
    "lgpd",
    "custom",
]

ComplianceCategory = Literal[
    "data_protection",
    "access_control",
    "audit_logging",
    "data_retention",
    "encryption",
    "consent_management",
    "breach_notification",
    "custom",
]

ComplianceSeverity = Literal["low", "medium", "high", "critical"]

ConditionType = Literal[
    "data_access",
    "data_retention",
    "user_consent",
    "data_export",
    "data_deletion",
    "audit_log",
    "custom",
]

ConditionOperator = Literal[
    "equals",
    "not_equals",
    "contains",
    "greater_than",
    "less_than",
    "in",
    "not_in",
]

ResponseType = Literal[
    "log",
    "alert",
    "block",
    "encrypt",
    "anonymize",
    "delete",
    "notify",
    "custom",
]

COMPLIANCE_TYPES: frozenset[str] = frozenset(get_args(ComplianceType))
COMPLIANCE_CATEGORIES: frozenset[str] = frozenset(get_args(ComplianceCategory))
CONDITION_OPERATORS: frozenset[str] = frozenset(get_args(ConditionOperator))
RESPONSE_TYPES: frozenset[str] = frozenset(get_args(ResponseType))

# Total order over severities: critical > high > medium > low
SEVERITY_RANK: dict[str, int] = {"low": 0, "medium": 1, "high": 2, "critical": 3}

# Identifier used for the aggregate result of check_compliance
AGGREGATE_RULE_ID = "comprehensive"
AGGREGATE_RULE_NAME = "Comprehensive Compliance Check"


def utc_now() -> datetime:
    """Return the current timestamp in UTC."""
    return datetime.now(UTC)


def new_id(prefix: str) -> str:
    """Generate a prefixed unique identifier, e.g. ``violation_3f2a...``."""
    return f"{prefix}_{uuid.uuid4().hex}"


# ---------------------------------------------------------------------------
# Action - the compliance subject
# ---------------------------------------------------------------------------


class DataClassification(BaseModel):
    """Classification hint a caller may attach to an Action."""

    model_config = ConfigDict(frozen=True)

    level: Literal["public", "internal", "confidential", "restricted"]
    category: list[str] = Field(default_factory=list)
    sensitivity: ComplianceSeverity = "low"
    retention_period: int = Field(default=365, description="Retention period in days")
    encryption_required: bool = False
    access_controls: list[str] = Field(default_factory=list)


class Action(BaseModel):
    """A business operation submitted for compliance evaluation.

    Extra top-level fields are accepted and visible to condition field paths,
    so a rule can test either ``data.level`` or a top-level ``access_level``.

    Attributes:
        type: Action type name, e.g. ``employee.export``.
        user_id: Identifier of the acting user.
        tenant_id: Optional owning tenant.
        resource: Resource the action targets.
        data: Structured payload inspected by rule conditions.
        ip_address: Optional network context.
        user_agent: Optional client context.
        session_id: Optional session context.
        data_classification: Optional classification hint.
        retention_policy: Optional retention policy id hint.
    """

    model_config = ConfigDict(extra="allow")

    type: str
    user_id: str
    tenant_id: str | None = None
    resource: str
    data: dict[str, Any] = Field(default_factory=dict)
    ip_address: str | None = None
    user_agent: str | None = None
    session_id: str | None = None
    data_classification: DataClassification | None = None
    retention_policy: str | None = None


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


ConditionPredicate = Callable[[Action], bool]
ResponseCallback = Callable[["ComplianceViolation"], Awaitable[None] | None]


@dataclass(frozen=True)
class ComplianceCondition:
    """A single fact check attached to a rule.

    Attributes:
        type: Category of fact being checked.
        field: Dot path into the Action, e.g. ``data.level``.
        operator: Comparison operator.
        value: Comparison operand.
        predicate: Optional callable that fully replaces the operator logic.
    """

    type: ConditionType
    field: str
    operator: ConditionOperator
    value: Any = None
    predicate: ConditionPredicate | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return a serializable snapshot (the predicate is reported by name only)."""
        return {
            "type": self.type,
            "field": self.field,
            "operator": self.operator,
            "value": self.value,
            "predicate": getattr(self.predicate, "__name__", None) if self.predicate else None,
        }


@dataclass(frozen=True)
class ComplianceResponse:
    """A side-effecting response executed when a rule is violated.

    Attributes:
        type: Response kind.
        parameters: Free-form parameters, e.g. ``{"severity": "high"}`` for alerts.
        callback: Optional callable for ``custom`` responses; may be sync or async.
    """

    type: ResponseType
    parameters: Mapping[str, Any] = field(default_factory=dict)
    callback: ResponseCallback | None = None


@dataclass
class RuleMetadata:
    """Authoring metadata and running counters for a rule."""

    created_by: str = "system"
    created_at: datetime = field(default_factory=utc_now)
    updated_by: str = "system"
    updated_at: datetime = field(default_factory=utc_now)
    version: str = "1.0.0"
    tags: list[str] = field(default_factory=list)
    references: list[str] = field(default_factory=list)
    last_evaluated: datetime | None = None
    evaluation_count: int = 0
    violation_count: int = 0


@dataclass
class ComplianceRule:
    """A declarative compliance rule.

    A rule passes for an action when every one of its conditions matches.
    Each condition that does not match produces one violation.
    """

    id: str
    name: str
    type: ComplianceType
    category: ComplianceCategory
    severity: ComplianceSeverity
    conditions: list[ComplianceCondition]
    actions: list[ComplianceResponse]
    description: str = ""
    enabled: bool = True
    metadata: RuleMetadata = field(default_factory=RuleMetadata)


# ---------------------------------------------------------------------------
# Violations and results
# ---------------------------------------------------------------------------


@dataclass
class ComplianceViolation:
    """A recorded failure of one rule condition for one action."""

    id: str
    rule_id: str
    type: ComplianceType
    severity: ComplianceSeverity
    description: str
    data: dict[str, Any]
    timestamp: datetime = field(default_factory=utc_now)
    resolved: bool = False
    resolution_notes: str | None = None
    resolved_by: str | None = None
    resolved_at: datetime | None = None

    @property
    def tenant_id(self) -> str | None:
        """Tenant the violating action was checked for, if any."""
        return self.data.get("tenant_id")


@dataclass(frozen=True)
class ComplianceResult:
    """Outcome of a compliance check (per rule or aggregated).

    Attributes:
        compliant: True when no violation was produced.
        rule_id: Rule id, or ``comprehensive`` for the aggregate.
        rule_name: Rule name, or the aggregate name.
        severity: Highest severity among violations (``low`` when none).
        violations: Violations produced by this check.
        recommendations: Deduplicated remediation hints.
        audit_required: True when severity is high or critical.
        timestamp: When the check completed.
        rule_errors: Ids of rules whose evaluation raised and contributed nothing.
    """

    compliant: bool
    rule_id: str
    rule_name: str
    severity: ComplianceSeverity
    violations: list[ComplianceViolation]
    recommendations: list[str]
    audit_required: bool
    timestamp: datetime = field(default_factory=utc_now)
    rule_errors: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Audit trail
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ComplianceContext:
    """Compliance outcome attached to an audit entry."""

    rule_id: str | None = None
    compliance_type: ComplianceType | None = None
    severity: ComplianceSeverity | None = None
    data_classification: dict[str, Any] | None = None
    retention_policy: str | None = None


@dataclass(frozen=True)
class AuditTrailEntry:
    """One checked action and its compliance outcome."""

    id: str
    action: str
    user_id: str
    resource: str
    data: dict[str, Any]
    timestamp: datetime
    tenant_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    session_id: str | None = None
    compliance_context: ComplianceContext | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return a plain dict with ISO-formatted timestamps."""
        payload = asdict(self)
        payload["timestamp"] = self.timestamp.isoformat()
        return payload


# ---------------------------------------------------------------------------
# Retention
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RetentionException:
    """Overrides the delete window for records whose attributes satisfy ``condition``.

    Attributes:
        condition: Attribute name that must be truthy on the record, or
            ``name=value`` for an exact attribute match.
        retention_period: Replacement delete window in days.
        reason: Human-readable justification, e.g. "Legal hold requirement".
    """

    condition: str
    retention_period: int
    reason: str = ""


@dataclass(frozen=True)
class RetentionPolicy:
    """How long a class of data is kept, archived or deleted (all periods in days)."""

    id: str
    name: str
    description: str
    data_types: list[str]
    retention_period: int
    archive_after: int
    delete_after: int
    exceptions: list[RetentionException] = field(default_factory=list)
    enabled: bool = True


@dataclass
class RetentionRecord:
    """A unit of data governed by retention policies.

    Attributes:
        id: Record identifier in the owning data source.
        data_type: Tag matched against ``RetentionPolicy.data_types``.
        created_at: Age reference for archive/delete windows.
        tenant_id: Owning tenant, if any.
        archived: True once the record has been archived.
        attributes: Flags tested by retention exceptions (e.g. ``legal_hold``).
    """

    id: str
    data_type: str
    created_at: datetime
    tenant_id: str | None = None
    archived: bool = False
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RetentionReport:
    """Execution report of one retention policy (or the aggregate)."""

    policy_id: str
    policy_name: str
    execution_date: datetime
    data_processed: int
    data_deleted: int
    data_archived: int
    errors: list[str]
    duration_ms: float


@dataclass(frozen=True)
class RetentionResult:
    """Counts and errors of a retention run."""

    success: bool
    processed_count: int
    deleted_count: int
    archived_count: int
    errors: list[str]
    report: RetentionReport


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReportPeriod:
    """Inclusive time window of a compliance report."""

    start: datetime
    end: datetime


@dataclass(frozen=True)
class ComplianceRuleSummary:
    rule_id: str
    rule_name: str
    evaluations: int
    violations: int
    compliance_rate: float


@dataclass(frozen=True)
class ComplianceViolationSummary:
    rule_id: str
    rule_name: str
    count: int
    severity: ComplianceSeverity
    most_common_issue: str


@dataclass(frozen=True)
class ReportSummary:
    total_actions: int
    compliant_actions: int
    violations: int
    compliance_rate: float


@dataclass(frozen=True)
class ReportDetails:
    rules: tuple[ComplianceRuleSummary, ...]
    violations: tuple[ComplianceViolationSummary, ...]
    recommendations: tuple[str, ...]


@dataclass(frozen=True)
class ComplianceReport:
    """Point-in-time compliance report for one compliance type."""

    id: str
    type: ComplianceType
    period: ReportPeriod
    summary: ReportSummary
    details: ReportDetails
    generated_at: datetime
    generated_by: str = "system"
    tenant_id: str | None = None
