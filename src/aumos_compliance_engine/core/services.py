"""ComplianceService - the compliance engine's single entry point.

The service is an explicit object constructed once at process start and
passed to every caller (API routes, the maintenance scheduler, tests). It
wires together:

- RuleRegistry            - rules and their counters
- condition evaluator     - pure condition matching
- ActionExecutor          - responses for violations
- IViolationRepository    - detected violations and their resolution
- AuditTrailLog           - bounded audit log with durable persistence
- RetentionPolicyEngine   - retention policies and sweeps
- ReportGenerator         - period reports

check_compliance() never raises for rule-level problems: a rule whose
evaluation raises contributes no violations, is logged, and is listed in the
result's ``rule_errors``. Every check is appended to the audit trail and
emitted as a ``compliance_checked`` event, whatever its outcome.
"""

from pathlib import Path
from typing import Any

from aumos_compliance_engine.core.action_executor import ActionExecutor
from aumos_compliance_engine.core.audit_trail import AuditTrailLog
from aumos_compliance_engine.core.conditions import evaluate_condition
from aumos_compliance_engine.core.interfaces import (
    EVENT_COMPLIANCE_CHECKED,
    IEventSink,
    IRetentionDataSource,
    IStateStore,
    IViolationRepository,
)
from aumos_compliance_engine.core.models import (
    AGGREGATE_RULE_ID,
    AGGREGATE_RULE_NAME,
    Action,
    AuditTrailEntry,
    ComplianceReport,
    ComplianceResult,
    ComplianceRule,
    ComplianceType,
    ComplianceViolation,
    ReportPeriod,
    RetentionPolicy,
    RetentionResult,
    new_id,
    utc_now,
)
from aumos_compliance_engine.core.reporting import (
    ReportGenerator,
    compliance_rate,
    generate_recommendations,
    highest_severity,
    is_audit_required,
)
from aumos_compliance_engine.core.retention import RetentionPolicyEngine
from aumos_compliance_engine.core.rule_loader import (
    load_retention_policies_from_yaml,
    load_rules_from_yaml,
)
from aumos_compliance_engine.core.rule_registry import RuleRegistry
from aumos_compliance_engine.core.validation import (
    PayloadSchemaRegistry,
    validate_retention_policy,
    validate_rule,
)
from aumos_compliance_engine.core.violation_store import InMemoryViolationRepository
from aumos_compliance_engine.observability import get_logger

logger = get_logger(__name__)


class ComplianceService:
    """Compliance rule evaluation, audit, retention and reporting.

    Args:
        event_sink: Receiver of compliance_checked / alert / block signals.
        retention_data_source: Data scope of retention sweeps.
        state_store: Durable store for audit entries (None keeps them in memory only).
        violation_repo: Violation storage; defaults to a bounded in-memory repository.
        audit_max_entries: Size of the in-memory audit window.
        audit_ttl_days: TTL hint for persisted audit entries.
        max_violations: Bound for the default violation repository.
        enforce_rule_validation: Reject invalid rules on insertion.
        enforce_policy_validation: Reject invalid retention policies on insertion.
        defaults_path: YAML definitions loaded by initialize(), or None for none.
    """

    def __init__(
        self,
        event_sink: IEventSink,
        retention_data_source: IRetentionDataSource,
        state_store: IStateStore | None = None,
        violation_repo: IViolationRepository | None = None,
        audit_max_entries: int = 10_000,
        audit_ttl_days: int = 365,
        max_violations: int = 100_000,
        enforce_rule_validation: bool = True,
        enforce_policy_validation: bool = True,
        defaults_path: Path | None = None,
    ) -> None:
        self._event_sink = event_sink
        self._rules = RuleRegistry(enforce_validation=enforce_rule_validation)
        self._violations: IViolationRepository = (
            violation_repo if violation_repo is not None else InMemoryViolationRepository(max_violations=max_violations)
        )
        self._executor = ActionExecutor(event_sink)
        self._audit = AuditTrailLog(
            state_store=state_store,
            max_entries=audit_max_entries,
            ttl_days=audit_ttl_days,
        )
        self._retention = RetentionPolicyEngine(
            data_source=retention_data_source,
            enforce_validation=enforce_policy_validation,
        )
        self._reports = ReportGenerator(self._rules, self._violations)
        self._payload_schemas = PayloadSchemaRegistry()
        self._defaults_path = defaults_path
        self._initialized = False

    @property
    def payload_schemas(self) -> PayloadSchemaRegistry:
        """Registry of per-action-type payload schemas used by validate_action()."""
        return self._payload_schemas

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def initialize(self) -> None:
        """Load default rules and retention policies. Safe to call more than once."""
        if self._initialized:
            return

        if self._defaults_path is not None:
            for rule in load_rules_from_yaml(self._defaults_path):
                self._rules.add_rule(rule)
            for policy in load_retention_policies_from_yaml(self._defaults_path):
                self._retention.add_retention_policy(policy)

        self._initialized = True
        logger.info(
            "Compliance service initialized",
            rules_count=len(self._rules),
            policies_count=len(self._retention.get_retention_policies()),
        )

    async def shutdown(self) -> None:
        """Wait for outstanding audit persistence writes."""
        await self._audit.flush()
        logger.info("Compliance service shut down", audit_trail_size=self._audit.size)

    # -------------------------------------------------------------------------
    # Compliance checking
    # -------------------------------------------------------------------------

    async def check_compliance(self, action: Action, tenant_id: str | None = None) -> ComplianceResult:
        """Evaluate every enabled rule against an action.

        Args:
            action: The business action under evaluation.
            tenant_id: Tenant the check is performed for (defaults to the action's tenant).

        Returns:
            The aggregate ComplianceResult. It has already been appended to
            the audit trail when returned.
        """
        if not self._initialized:
            self.initialize()

        effective_tenant = tenant_id if tenant_id is not None else action.tenant_id
        violations: list[ComplianceViolation] = []
        rule_errors: list[str] = []

        for rule in self._rules.get_enabled_rules():
            try:
                rule_result = await self._evaluate_rule(rule, action, effective_tenant)
            except Exception as exc:
                rule_errors.append(rule.id)
                self._rules.record_evaluation(rule.id, 0)
                logger.error(
                    "Compliance rule evaluation failed",
                    rule_id=rule.id,
                    action_type=action.type,
                    error=str(exc),
                )
                continue
            violations.extend(rule_result.violations)

        severity = highest_severity(violations)
        result = ComplianceResult(
            compliant=not violations,
            rule_id=AGGREGATE_RULE_ID,
            rule_name=AGGREGATE_RULE_NAME,
            severity=severity,
            violations=violations,
            recommendations=generate_recommendations(violations),
            audit_required=is_audit_required(severity),
            timestamp=utc_now(),
            rule_errors=rule_errors,
        )

        await self._audit.log_audit_trail(action, result)

        self._event_sink.emit(
            EVENT_COMPLIANCE_CHECKED,
            {"action": action, "result": result, "tenant_id": effective_tenant},
        )

        logger.info(
            "Compliance check complete",
            action_type=action.type,
            user_id=action.user_id,
            tenant_id=effective_tenant,
            compliant=result.compliant,
            violation_count=len(violations),
            severity=severity,
            rule_errors=rule_errors or None,
        )
        return result

    async def _evaluate_rule(
        self,
        rule: ComplianceRule,
        action: Action,
        tenant_id: str | None,
    ) -> ComplianceResult:
        # Conditions are all evaluated before any violation is stored, so a
        # raising predicate leaves no partial violations behind.
        failed = [c for c in rule.conditions if not evaluate_condition(c, action)]

        action_snapshot = action.model_dump()
        violations: list[ComplianceViolation] = []
        for condition in failed:
            violation = ComplianceViolation(
                id=new_id("violation"),
                rule_id=rule.id,
                type=rule.type,
                severity=rule.severity,
                description=(
                    f"Rule violation: {rule.name} "
                    f"({condition.field} {condition.operator} {condition.value!r})"
                ),
                data={
                    "condition": condition.to_dict(),
                    "action": action_snapshot,
                    "tenant_id": tenant_id,
                },
                timestamp=utc_now(),
            )
            violations.append(violation)
            self._violations.add(violation)
            await self._executor.execute(rule.actions, violation)

        self._rules.record_evaluation(rule.id, len(violations))

        severity = rule.severity
        return ComplianceResult(
            compliant=not violations,
            rule_id=rule.id,
            rule_name=rule.name,
            severity=severity,
            violations=violations,
            recommendations=[f"Review {rule.name} compliance"] if violations else [],
            audit_required=is_audit_required(severity),
            timestamp=utc_now(),
        )

    def validate_action(self, action: Action) -> bool:
        """Structural validation of an action (see PayloadSchemaRegistry.validate_action)."""
        return self._payload_schemas.validate_action(action)

    # -------------------------------------------------------------------------
    # Rules
    # -------------------------------------------------------------------------

    def add_rule(self, rule: ComplianceRule) -> None:
        self._rules.add_rule(rule)

    def remove_rule(self, rule_id: str) -> bool:
        return self._rules.remove_rule(rule_id)

    def update_rule(self, rule_id: str, updated_by: str = "system", **changes: Any) -> bool:
        return self._rules.update_rule(rule_id, updated_by=updated_by, **changes)

    def get_rules(self) -> list[ComplianceRule]:
        return self._rules.get_rules()

    def get_rule(self, rule_id: str) -> ComplianceRule | None:
        return self._rules.get_rule(rule_id)

    def validate_rule(self, rule: ComplianceRule) -> bool:
        return validate_rule(rule)

    # -------------------------------------------------------------------------
    # Violations
    # -------------------------------------------------------------------------

    def get_violations(
        self,
        resolved: bool | None = None,
        rule_id: str | None = None,
    ) -> list[ComplianceViolation]:
        return self._violations.list_all(resolved=resolved, rule_id=rule_id)

    def resolve_violation(self, violation_id: str, resolved_by: str, notes: str | None = None) -> bool:
        """Mark a violation resolved. A repeated call overwrites resolver and notes."""
        return self._violations.resolve(violation_id, resolved_by, notes)

    # -------------------------------------------------------------------------
    # Audit trail
    # -------------------------------------------------------------------------

    async def log_audit_trail(
        self,
        action: Action,
        compliance_result: ComplianceResult | None = None,
    ) -> AuditTrailEntry:
        return await self._audit.log_audit_trail(action, compliance_result)

    def get_audit_trail(self, **filters: Any) -> list[AuditTrailEntry]:
        """Query the audit trail; accepts the filters of AuditTrailLog.get_audit_trail()."""
        return self._audit.get_audit_trail(**filters)

    # -------------------------------------------------------------------------
    # Retention
    # -------------------------------------------------------------------------

    def add_retention_policy(self, policy: RetentionPolicy) -> None:
        self._retention.add_retention_policy(policy)

    def remove_retention_policy(self, policy_id: str) -> bool:
        return self._retention.remove_retention_policy(policy_id)

    def get_retention_policies(self) -> list[RetentionPolicy]:
        return self._retention.get_retention_policies()

    def validate_retention_policy(self, policy: RetentionPolicy) -> bool:
        return validate_retention_policy(policy)

    async def enforce_data_retention(self, tenant_id: str | None = None) -> RetentionResult:
        return await self._retention.enforce_data_retention(tenant_id)

    # -------------------------------------------------------------------------
    # Reporting and metrics
    # -------------------------------------------------------------------------

    def generate_compliance_report(
        self,
        compliance_type: ComplianceType,
        period: ReportPeriod,
        tenant_id: str | None = None,
        generated_by: str = "system",
    ) -> ComplianceReport:
        return self._reports.generate_compliance_report(
            compliance_type, period, tenant_id=tenant_id, generated_by=generated_by
        )

    def get_metrics(self) -> dict[str, Any]:
        """Return engine-wide counters.

        ``rules_evaluated`` counts rule evaluations (one per enabled rule per
        check). ``compliance_rate`` divides the rules' lifetime violation
        counters by it, so evicting stored violations does not raise the rate.
        """
        stats = self._rules.get_stats()
        violations_detected = self._violations.count()
        unresolved = self._violations.count_unresolved()
        return {
            "rules_evaluated": stats["total_evaluations"],
            "violations_detected": violations_detected,
            "unresolved_violations": unresolved,
            "compliance_rate": compliance_rate(stats["total_evaluations"], stats["total_violations"]),
            "audit_trail_size": self._audit.size,
            "audit_persist_failures": self._audit.persist_failures,
            "retention_policies_count": len(self._retention.get_retention_policies()),
            "rules_count": stats["total_rules"],
        }
