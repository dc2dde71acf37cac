"""Pydantic request and response schemas for the compliance engine API.

All API inputs and outputs use Pydantic models, never raw dicts. Request
models convert to core domain objects with ``to_domain()``; response models
are built from domain objects with ``from_domain()``.

Resources:
- Action / ComplianceResult    - compliance checks
- ComplianceRule               - rule CRUD and validation
- ComplianceViolation          - listing and resolution
- AuditTrailEntry              - audit trail query
- RetentionPolicy              - retention policy CRUD and enforcement
- ComplianceReport             - period reports
"""

from dataclasses import asdict
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from aumos_compliance_engine.core.models import (
    Action,
    AuditTrailEntry,
    ComplianceCategory,
    ComplianceCondition,
    ComplianceReport,
    ComplianceResponse,
    ComplianceResult,
    ComplianceRule,
    ComplianceSeverity,
    ComplianceType,
    ComplianceViolation,
    ConditionOperator,
    ConditionType,
    ResponseType,
    RetentionException,
    RetentionPolicy,
    RetentionResult,
    RuleMetadata,
)


# ---------------------------------------------------------------------------
# Compliance check schemas
# ---------------------------------------------------------------------------


class ComplianceCheckRequest(BaseModel):
    """Request body for checking an action."""

    action: Action = Field(description="The business action to evaluate")
    tenant_id: str | None = Field(
        default=None,
        description="Tenant the check is performed for; defaults to action.tenant_id",
    )


class ViolationResponse(BaseModel):
    """Response schema for a compliance violation."""

    id: str
    rule_id: str
    type: ComplianceType
    severity: ComplianceSeverity
    description: str
    data: dict[str, Any]
    timestamp: datetime
    resolved: bool
    resolution_notes: str | None = None
    resolved_by: str | None = None
    resolved_at: datetime | None = None

    @classmethod
    def from_domain(cls, violation: ComplianceViolation) -> "ViolationResponse":
        return cls.model_validate(asdict(violation))


class ComplianceResultResponse(BaseModel):
    """Aggregate outcome of a compliance check."""

    compliant: bool
    rule_id: str
    rule_name: str
    severity: ComplianceSeverity
    violations: list[ViolationResponse]
    recommendations: list[str]
    audit_required: bool
    timestamp: datetime
    rule_errors: list[str] = Field(
        default_factory=list,
        description="Ids of rules whose evaluation raised and contributed no violations",
    )

    @classmethod
    def from_domain(cls, result: ComplianceResult) -> "ComplianceResultResponse":
        return cls(
            compliant=result.compliant,
            rule_id=result.rule_id,
            rule_name=result.rule_name,
            severity=result.severity,
            violations=[ViolationResponse.from_domain(v) for v in result.violations],
            recommendations=list(result.recommendations),
            audit_required=result.audit_required,
            timestamp=result.timestamp,
            rule_errors=list(result.rule_errors),
        )


class ActionValidationResponse(BaseModel):
    valid: bool


# ---------------------------------------------------------------------------
# Rule schemas
# ---------------------------------------------------------------------------


class ConditionSchema(BaseModel):
    """A declarative rule condition (predicates cannot be submitted over the API)."""

    type: ConditionType = "custom"
    field: str = Field(description="Dot path into the action, e.g. data.access_level")
    operator: ConditionOperator
    value: Any = None


class ResponseSchema(BaseModel):
    """A declarative rule response (callbacks cannot be submitted over the API)."""

    type: ResponseType
    parameters: dict[str, Any] = Field(default_factory=dict)


class RuleCreateRequest(BaseModel):
    """Request body for adding or validating a compliance rule.

    Conditions and actions may be empty here so that validation reports the
    problem instead of the request being rejected at parse time.
    """

    id: str
    name: str
    description: str = ""
    type: ComplianceType
    category: ComplianceCategory = "custom"
    severity: ComplianceSeverity = "medium"
    enabled: bool = True
    conditions: list[ConditionSchema] = Field(default_factory=list)
    actions: list[ResponseSchema] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    references: list[str] = Field(default_factory=list)
    created_by: str = "system"

    def to_domain(self) -> ComplianceRule:
        return ComplianceRule(
            id=self.id,
            name=self.name,
            description=self.description,
            type=self.type,
            category=self.category,
            severity=self.severity,
            enabled=self.enabled,
            conditions=[
                ComplianceCondition(type=c.type, field=c.field, operator=c.operator, value=c.value)
                for c in self.conditions
            ],
            actions=[ComplianceResponse(type=a.type, parameters=dict(a.parameters)) for a in self.actions],
            metadata=RuleMetadata(
                created_by=self.created_by,
                updated_by=self.created_by,
                tags=list(self.tags),
                references=list(self.references),
            ),
        )


class RuleUpdateRequest(BaseModel):
    """Partial update of a rule. Only provided fields are changed."""

    name: str | None = None
    description: str | None = None
    category: ComplianceCategory | None = None
    severity: ComplianceSeverity | None = None
    enabled: bool | None = None
    conditions: list[ConditionSchema] | None = None
    actions: list[ResponseSchema] | None = None
    updated_by: str = "system"

    def to_changes(self) -> dict[str, Any]:
        changes: dict[str, Any] = self.model_dump(
            exclude_none=True,
            exclude={"conditions", "actions", "updated_by"},
        )
        if self.conditions is not None:
            changes["conditions"] = [
                ComplianceCondition(type=c.type, field=c.field, operator=c.operator, value=c.value)
                for c in self.conditions
            ]
        if self.actions is not None:
            changes["actions"] = [ComplianceResponse(type=a.type, parameters=dict(a.parameters)) for a in self.actions]
        return changes


class RuleMetadataResponse(BaseModel):
    created_by: str
    created_at: datetime
    updated_by: str
    updated_at: datetime
    version: str
    tags: list[str]
    references: list[str]
    last_evaluated: datetime | None
    evaluation_count: int
    violation_count: int


class RuleResponse(BaseModel):
    """Response schema for a compliance rule and its counters."""

    id: str
    name: str
    description: str
    type: ComplianceType
    category: ComplianceCategory
    severity: ComplianceSeverity
    enabled: bool
    conditions: list[ConditionSchema]
    actions: list[ResponseSchema]
    metadata: RuleMetadataResponse

    @classmethod
    def from_domain(cls, rule: ComplianceRule) -> "RuleResponse":
        return cls(
            id=rule.id,
            name=rule.name,
            description=rule.description,
            type=rule.type,
            category=rule.category,
            severity=rule.severity,
            enabled=rule.enabled,
            conditions=[
                ConditionSchema(type=c.type, field=c.field, operator=c.operator, value=c.value)
                for c in rule.conditions
            ],
            actions=[ResponseSchema(type=a.type, parameters=dict(a.parameters)) for a in rule.actions],
            metadata=RuleMetadataResponse.model_validate(asdict(rule.metadata)),
        )


class RuleValidationResponse(BaseModel):
    valid: bool


# ---------------------------------------------------------------------------
# Violation schemas
# ---------------------------------------------------------------------------


class ViolationResolveRequest(BaseModel):
    """Request body for resolving a violation."""

    resolved_by: str = Field(min_length=1, description="Actor resolving the violation")
    notes: str | None = Field(default=None, description="Resolution notes")


# ---------------------------------------------------------------------------
# Audit trail schemas
# ---------------------------------------------------------------------------


class AuditTrailEntryResponse(BaseModel):
    """Response schema for an audit trail entry."""

    id: str
    action: str
    user_id: str
    resource: str
    data: dict[str, Any]
    timestamp: datetime
    tenant_id: str | None
    ip_address: str | None
    user_agent: str | None
    session_id: str | None
    compliance_context: dict[str, Any] | None

    @classmethod
    def from_domain(cls, entry: AuditTrailEntry) -> "AuditTrailEntryResponse":
        return cls.model_validate(asdict(entry))


# ---------------------------------------------------------------------------
# Retention schemas
# ---------------------------------------------------------------------------


class RetentionExceptionSchema(BaseModel):
    condition: str = Field(description="Record attribute flag, or name=value")
    retention_period: int = Field(description="Delete window in days while the condition holds")
    reason: str = ""


class RetentionPolicyRequest(BaseModel):
    """Request body for adding a retention policy (all periods in days)."""

    id: str
    name: str
    description: str
    data_types: list[str]
    retention_period: int
    archive_after: int
    delete_after: int
    exceptions: list[RetentionExceptionSchema] = Field(default_factory=list)
    enabled: bool = True

    def to_domain(self) -> RetentionPolicy:
        return RetentionPolicy(
            id=self.id,
            name=self.name,
            description=self.description,
            data_types=list(self.data_types),
            retention_period=self.retention_period,
            archive_after=self.archive_after,
            delete_after=self.delete_after,
            exceptions=[
                RetentionException(condition=e.condition, retention_period=e.retention_period, reason=e.reason)
                for e in self.exceptions
            ],
            enabled=self.enabled,
        )


class RetentionPolicyResponse(RetentionPolicyRequest):
    @classmethod
    def from_domain(cls, policy: RetentionPolicy) -> "RetentionPolicyResponse":
        return cls.model_validate(asdict(policy))


class RetentionEnforceRequest(BaseModel):
    tenant_id: str | None = Field(default=None, description="Restrict the sweep to one tenant")


class RetentionReportResponse(BaseModel):
    policy_id: str
    policy_name: str
    execution_date: datetime
    data_processed: int
    data_deleted: int
    data_archived: int
    errors: list[str]
    duration_ms: float


class RetentionResultResponse(BaseModel):
    """Aggregate outcome of a retention sweep."""

    success: bool
    processed_count: int
    deleted_count: int
    archived_count: int
    errors: list[str]
    report: RetentionReportResponse

    @classmethod
    def from_domain(cls, result: RetentionResult) -> "RetentionResultResponse":
        return cls.model_validate(asdict(result))


# ---------------------------------------------------------------------------
# Report and metrics schemas
# ---------------------------------------------------------------------------


class ReportRequest(BaseModel):
    """Request body for generating a compliance report."""

    type: ComplianceType
    start: datetime
    end: datetime
    tenant_id: str | None = None
    generated_by: str = "system"


class ReportResponse(BaseModel):
    """Response schema for a compliance report."""

    id: str
    type: ComplianceType
    period: dict[str, datetime]
    summary: dict[str, Any]
    details: dict[str, Any]
    generated_at: datetime
    generated_by: str
    tenant_id: str | None

    @classmethod
    def from_domain(cls, report: ComplianceReport) -> "ReportResponse":
        return cls.model_validate(asdict(report))


class MetricsResponse(BaseModel):
    """Engine-wide compliance counters."""

    rules_evaluated: int
    violations_detected: int
    unresolved_violations: int
    compliance_rate: float
    audit_trail_size: int
    audit_persist_failures: int
    retention_policies_count: int
    rules_count: int
