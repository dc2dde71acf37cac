"""Compliance scoring, recommendations and period reports.

The helpers here are shared by the rule evaluation loop (aggregate results)
and the report generator, so a check result and a report derive severity
and recommendations the same way.

Compliance rate: ``(evaluations - violations) / evaluations * 100``; exactly
100 when there were no evaluations, and floored at 0 because a rule with
several failing conditions can produce more violations than evaluations.
"""

from collections import Counter
from collections.abc import Iterable

from aumos_compliance_engine.core.interfaces import IViolationRepository
from aumos_compliance_engine.core.models import (
    SEVERITY_RANK,
    ComplianceReport,
    ComplianceRuleSummary,
    ComplianceSeverity,
    ComplianceType,
    ComplianceViolation,
    ComplianceViolationSummary,
    ReportDetails,
    ReportPeriod,
    ReportSummary,
    new_id,
    utc_now,
)
from aumos_compliance_engine.core.rule_registry import RuleRegistry
from aumos_compliance_engine.observability import get_logger

logger = get_logger(__name__)

NO_VIOLATIONS_ISSUE = "No violations"

# Recommendation emitted when any violation of the given compliance type exists
_TYPE_RECOMMENDATIONS: dict[str, str] = {
    "gdpr": "Review GDPR compliance and data processing practices",
    "soc2": "Strengthen access controls and security measures",
    "hipaa": "Review HIPAA safeguards for protected health information",
    "pci_dss": "Review cardholder data handling against PCI DSS requirements",
}
CRITICAL_RECOMMENDATION = "Address critical compliance violations immediately"


def highest_severity(violations: Iterable[ComplianceViolation]) -> ComplianceSeverity:
    """Return the maximum severity under critical > high > medium > low.

    An empty set yields ``low``.
    """
    return max(
        (v.severity for v in violations),
        key=SEVERITY_RANK.__getitem__,
        default="low",
    )


def is_audit_required(severity: ComplianceSeverity) -> bool:
    return severity in ("high", "critical")


def generate_recommendations(violations: Iterable[ComplianceViolation]) -> list[str]:
    """Derive a deduplicated recommendation list from violation types and severities."""
    violations = list(violations)
    present_types = {v.type for v in violations}

    recommendations = [
        message
        for compliance_type, message in _TYPE_RECOMMENDATIONS.items()
        if compliance_type in present_types
    ]
    if any(v.severity == "critical" for v in violations):
        recommendations.append(CRITICAL_RECOMMENDATION)
    return recommendations


def compliance_rate(evaluations: int, violations: int) -> float:
    """Percentage of evaluations that produced no violation."""
    if evaluations <= 0:
        return 100.0
    return max(0.0, (evaluations - violations) / evaluations * 100)


def most_common_issue(violations: Iterable[ComplianceViolation]) -> str:
    """Return the most frequent violation description (ties: first seen)."""
    counts = Counter(v.description for v in violations)
    if not counts:
        return NO_VIOLATIONS_ISSUE
    # Counter preserves insertion order and most_common() sorts stably
    return counts.most_common(1)[0][0]


class ReportGenerator:
    """Builds period-based compliance reports from rule counters and violations.

    Args:
        rule_registry: Source of rules and their evaluation counters.
        violation_repo: Source of detected violations.
    """

    def __init__(self, rule_registry: RuleRegistry, violation_repo: IViolationRepository) -> None:
        self._rules = rule_registry
        self._violations = violation_repo

    def generate_compliance_report(
        self,
        compliance_type: ComplianceType,
        period: ReportPeriod,
        tenant_id: str | None = None,
        generated_by: str = "system",
    ) -> ComplianceReport:
        """Generate a compliance report for one compliance type over a period.

        Args:
            compliance_type: Compliance regime to report on.
            period: Inclusive time window for violations.
            tenant_id: Restrict violations to those detected for this tenant.
            generated_by: Actor recorded on the report.

        Returns:
            An immutable ComplianceReport.
        """
        violations = [
            v
            for v in self._violations.list_all()
            if v.type == compliance_type
            and period.start <= v.timestamp <= period.end
            and (tenant_id is None or v.tenant_id == tenant_id)
        ]
        rules = [rule for rule in self._rules.get_rules() if rule.type == compliance_type]

        by_rule: dict[str, list[ComplianceViolation]] = {rule.id: [] for rule in rules}
        for violation in violations:
            if violation.rule_id in by_rule:
                by_rule[violation.rule_id].append(violation)

        rule_summaries: list[ComplianceRuleSummary] = []
        violation_summaries: list[ComplianceViolationSummary] = []
        for rule in rules:
            rule_violations = by_rule[rule.id]
            evaluations = rule.metadata.evaluation_count
            rule_summaries.append(
                ComplianceRuleSummary(
                    rule_id=rule.id,
                    rule_name=rule.name,
                    evaluations=evaluations,
                    violations=len(rule_violations),
                    compliance_rate=compliance_rate(evaluations, len(rule_violations)),
                )
            )
            violation_summaries.append(
                ComplianceViolationSummary(
                    rule_id=rule.id,
                    rule_name=rule.name,
                    count=len(rule_violations),
                    severity=rule.severity,
                    most_common_issue=most_common_issue(rule_violations),
                )
            )

        total_actions = sum(rule.metadata.evaluation_count for rule in rules)
        violation_count = len(violations)

        report = ComplianceReport(
            id=new_id("report"),
            type=compliance_type,
            period=period,
            summary=ReportSummary(
                total_actions=total_actions,
                compliant_actions=max(0, total_actions - violation_count),
                violations=violation_count,
                compliance_rate=compliance_rate(total_actions, violation_count),
            ),
            details=ReportDetails(
                rules=tuple(rule_summaries),
                violations=tuple(violation_summaries),
                recommendations=tuple(generate_recommendations(violations)),
            ),
            generated_at=utc_now(),
            generated_by=generated_by,
            tenant_id=tenant_id,
        )

        logger.info(
            "Compliance report generated",
            report_id=report.id,
            type=compliance_type,
            compliance_rate=report.summary.compliance_rate,
            violations=violation_count,
            tenant_id=tenant_id,
        )
        return report
