"""Tests for compliance scoring helpers and ReportGenerator."""

from collections.abc import Callable
from datetime import timedelta

import pytest

from aumos_compliance_engine.core.models import (
    Action,
    ComplianceRule,
    ComplianceViolation,
    ReportPeriod,
    new_id,
    utc_now,
)
from aumos_compliance_engine.core.reporting import (
    NO_VIOLATIONS_ISSUE,
    compliance_rate,
    generate_recommendations,
    highest_severity,
    is_audit_required,
    most_common_issue,
)
from aumos_compliance_engine.core.services import ComplianceService


def _violation(severity: str = "high", compliance_type: str = "gdpr", description: str = "d") -> ComplianceViolation:
    return ComplianceViolation(
        id=new_id("violation"),
        rule_id="r1",
        type=compliance_type,  # type: ignore[arg-type]
        severity=severity,  # type: ignore[arg-type]
        description=description,
        data={},
    )


def _period(hours: int = 1) -> ReportPeriod:
    now = utc_now()
    return ReportPeriod(start=now - timedelta(hours=hours), end=now + timedelta(hours=hours))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def test_highest_severity() -> None:
    assert highest_severity([]) == "low"
    assert highest_severity([_violation("medium"), _violation("critical"), _violation("high")]) == "critical"


def test_audit_required_for_high_and_critical_only() -> None:
    assert [is_audit_required(s) for s in ("low", "medium", "high", "critical")] == [False, False, True, True]  # type: ignore[arg-type]


def test_recommendations_are_deduplicated() -> None:
    recommendations = generate_recommendations(
        [_violation(compliance_type="gdpr"), _violation(compliance_type="gdpr"), _violation("critical", "soc2")]
    )
    assert recommendations == [
        "Review GDPR compliance and data processing practices",
        "Strengthen access controls and security measures",
        "Address critical compliance violations immediately",
    ]


def test_compliance_rate() -> None:
    assert compliance_rate(0, 0) == 100.0
    assert compliance_rate(4, 1) == 75.0
    assert compliance_rate(1, 3) == 0.0


def test_most_common_issue() -> None:
    assert most_common_issue([]) == NO_VIOLATIONS_ISSUE
    violations = [_violation(description="a"), _violation(description="b"), _violation(description="b")]
    assert most_common_issue(violations) == "b"


def test_most_common_issue_tie_keeps_first_seen() -> None:
    assert most_common_issue([_violation(description="x"), _violation(description="y")]) == "x"


# ---------------------------------------------------------------------------
# generate_compliance_report
# ---------------------------------------------------------------------------


class TestComplianceReport:
    def test_zero_violations_rates_are_100(
        self,
        service: ComplianceService,
        make_rule: Callable[..., ComplianceRule],
    ) -> None:
        service.add_rule(make_rule("r1"))
        service.add_rule(make_rule("r2"))

        report = service.generate_compliance_report("gdpr", _period())

        assert report.summary.compliance_rate == 100.0
        assert report.summary.violations == 0
        assert [r.compliance_rate for r in report.details.rules] == [100.0, 100.0]
        assert [v.most_common_issue for v in report.details.violations] == [NO_VIOLATIONS_ISSUE] * 2
        assert report.details.recommendations == ()

    @pytest.mark.asyncio()
    async def test_report_counts_evaluations_and_violations(
        self,
        service: ComplianceService,
        make_rule: Callable[..., ComplianceRule],
        make_action: Callable[..., Action],
    ) -> None:
        service.add_rule(make_rule("r1"))
        service.add_rule(make_rule("soc", compliance_type="soc2"))
        for level in ("restricted", "restricted", "restricted", "public"):
            await service.check_compliance(make_action(data={"level": level}))

        report = service.generate_compliance_report("gdpr", _period(), generated_by="auditor")

        assert report.type == "gdpr"
        assert report.generated_by == "auditor"
        assert report.summary.total_actions == 4
        assert report.summary.violations == 1
        assert report.summary.compliant_actions == 3
        assert report.summary.compliance_rate == 75.0
        assert [r.rule_id for r in report.details.rules] == ["r1"]
        assert report.details.violations[0].count == 1
        assert report.details.violations[0].most_common_issue.startswith("Rule violation: Rule r1")

    @pytest.mark.asyncio()
    async def test_report_filters_by_period_and_tenant(
        self,
        service: ComplianceService,
        make_rule: Callable[..., ComplianceRule],
        make_action: Callable[..., Action],
    ) -> None:
        service.add_rule(make_rule("r1"))
        await service.check_compliance(make_action(data={"level": "public"}), tenant_id="t1")
        await service.check_compliance(make_action(data={"level": "public"}), tenant_id="t2")

        assert service.generate_compliance_report("gdpr", _period(), tenant_id="t1").summary.violations == 1

        past = ReportPeriod(start=utc_now() - timedelta(days=2), end=utc_now() - timedelta(days=1))
        assert service.generate_compliance_report("gdpr", past).summary.violations == 0
