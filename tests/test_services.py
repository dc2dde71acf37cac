"""Tests for ComplianceService - the compliance engine facade.

Covers check_compliance aggregation and side effects (violations, responses,
audit trail, events, counters), rule-level failure isolation, violation
resolution, metrics, default rule loading, and audit persistence failures.
"""

import asyncio
from collections.abc import Callable
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from pydantic import BaseModel

from aumos_compliance_engine.adapters.events import ComplianceEventBus
from aumos_compliance_engine.adapters.retention_store import InMemoryRetentionDataSource
from aumos_compliance_engine.adapters.state_store import InMemoryStateStore
from aumos_compliance_engine.core.errors import RuleValidationError
from aumos_compliance_engine.core.interfaces import (
    EVENT_COMPLIANCE_ALERT,
    EVENT_COMPLIANCE_BLOCK,
    EVENT_COMPLIANCE_CHECKED,
)
from aumos_compliance_engine.core.models import (
    AGGREGATE_RULE_ID,
    Action,
    ComplianceCondition,
    ComplianceResponse,
    ComplianceRule,
    ComplianceViolation,
)
from aumos_compliance_engine.core.services import ComplianceService
from aumos_compliance_engine.settings import Settings


# ---------------------------------------------------------------------------
# check_compliance
# ---------------------------------------------------------------------------


class TestCheckCompliance:
    """Aggregate results and side effects of a compliance check."""

    @pytest.mark.asyncio()
    async def test_non_matching_condition_is_a_violation(
        self,
        service: ComplianceService,
        make_rule: Callable[..., ComplianceRule],
        make_action: Callable[..., Action],
    ) -> None:
        service.add_rule(make_rule("r1", severity="high"))

        result = await service.check_compliance(make_action(data={"level": "public"}))

        assert result.compliant is False
        assert len(result.violations) == 1
        assert result.severity == "high"
        assert result.audit_required is True
        assert result.rule_id == AGGREGATE_RULE_ID
        assert result.violations[0].rule_id == "r1"

    @pytest.mark.asyncio()
    async def test_matching_condition_is_compliant(
        self,
        service: ComplianceService,
        make_rule: Callable[..., ComplianceRule],
        make_action: Callable[..., Action],
    ) -> None:
        service.add_rule(make_rule("r1"))

        result = await service.check_compliance(make_action(data={"level": "restricted"}))

        assert result.compliant is True
        assert result.violations == []
        assert result.severity == "low"
        assert result.audit_required is False

    @pytest.mark.asyncio()
    async def test_no_rules_is_compliant(
        self,
        service: ComplianceService,
        make_action: Callable[..., Action],
    ) -> None:
        result = await service.check_compliance(make_action())
        assert result.compliant is True
        assert result.recommendations == []

    @pytest.mark.asyncio()
    async def test_each_failing_condition_is_one_violation(
        self,
        service: ComplianceService,
        make_rule: Callable[..., ComplianceRule],
        make_action: Callable[..., Action],
    ) -> None:
        conditions = [
            ComplianceCondition(type="data_access", field="data.level", operator="equals", value="restricted"),
            ComplianceCondition(type="data_access", field="data.region", operator="in", value=["eu"]),
            ComplianceCondition(type="data_access", field="data.count", operator="less_than", value=100),
        ]
        service.add_rule(make_rule("r1", conditions=conditions))

        result = await service.check_compliance(make_action(data={"level": "public", "region": "us", "count": 5}))

        assert len(result.violations) == 2
        descriptions = [v.description for v in result.violations]
        assert descriptions[0] == "Rule violation: Rule r1 (data.level equals 'restricted')"
        assert descriptions[1] == "Rule violation: Rule r1 (data.region in ['eu'])"

    @pytest.mark.asyncio()
    async def test_disabled_rules_are_skipped(
        self,
        service: ComplianceService,
        make_rule: Callable[..., ComplianceRule],
        make_action: Callable[..., Action],
    ) -> None:
        service.add_rule(make_rule("r1", enabled=False))

        result = await service.check_compliance(make_action(data={"level": "public"}))

        assert result.compliant is True
        assert service.get_rule("r1").metadata.evaluation_count == 0  # type: ignore[union-attr]

    @pytest.mark.asyncio()
    async def test_severity_is_maximum_across_rules(
        self,
        service: ComplianceService,
        make_rule: Callable[..., ComplianceRule],
        make_action: Callable[..., Action],
    ) -> None:
        service.add_rule(make_rule("r1", severity="medium"))
        service.add_rule(make_rule("r2", severity="critical", compliance_type="soc2"))

        result = await service.check_compliance(make_action(data={"level": "public"}))

        assert result.severity == "critical"
        assert "Address critical compliance violations immediately" in result.recommendations
        assert "Review GDPR compliance and data processing practices" in result.recommendations
        assert "Strengthen access controls and security measures" in result.recommendations

    @pytest.mark.asyncio()
    async def test_violation_records_condition_and_action_snapshot(
        self,
        service: ComplianceService,
        make_rule: Callable[..., ComplianceRule],
        make_action: Callable[..., Action],
    ) -> None:
        service.add_rule(make_rule("r1"))

        result = await service.check_compliance(make_action(data={"level": "public"}), tenant_id="t1")

        violation = result.violations[0]
        assert violation.data["condition"]["field"] == "data.level"
        assert violation.data["action"]["data"] == {"level": "public"}
        assert violation.tenant_id == "t1"
        assert service.get_violations() == [violation]

    @pytest.mark.asyncio()
    async def test_counters_update_for_every_evaluation(
        self,
        service: ComplianceService,
        make_rule: Callable[..., ComplianceRule],
        make_action: Callable[..., Action],
    ) -> None:
        service.add_rule(make_rule("r1"))

        await service.check_compliance(make_action(data={"level": "restricted"}))
        await service.check_compliance(make_action(data={"level": "public"}))

        metadata = service.get_rule("r1").metadata  # type: ignore[union-attr]
        assert metadata.evaluation_count == 2
        assert metadata.violation_count == 1
        assert metadata.last_evaluated is not None

    @pytest.mark.asyncio()
    async def test_check_appends_audit_entry_and_emits_event(
        self,
        service: ComplianceService,
        event_bus: ComplianceEventBus,
        make_rule: Callable[..., ComplianceRule],
        make_action: Callable[..., Action],
    ) -> None:
        service.add_rule(make_rule("r1"))

        result = await service.check_compliance(make_action(data={"level": "public"}, tenant_id="t1"))

        entries = service.get_audit_trail()
        assert len(entries) == 1
        assert entries[0].tenant_id == "t1"
        assert entries[0].compliance_context is not None
        assert entries[0].compliance_context.compliance_type == "gdpr"
        assert entries[0].compliance_context.severity == "high"

        checked = event_bus.history(EVENT_COMPLIANCE_CHECKED)
        assert len(checked) == 1
        assert checked[0].payload["result"] is result

    @pytest.mark.asyncio()
    async def test_block_and_alert_responses_emit_events(
        self,
        service: ComplianceService,
        event_bus: ComplianceEventBus,
        make_rule: Callable[..., ComplianceRule],
        make_action: Callable[..., Action],
    ) -> None:
        service.add_rule(
            make_rule(
                "r1",
                actions=[
                    ComplianceResponse(type="block", parameters={"reason": "Unauthorized access attempt"}),
                    ComplianceResponse(type="alert", parameters={"severity": "high"}),
                ],
            )
        )

        await service.check_compliance(make_action(data={"level": "public"}))

        blocks = event_bus.history(EVENT_COMPLIANCE_BLOCK)
        alerts = event_bus.history(EVENT_COMPLIANCE_ALERT)
        assert blocks[0].payload["reason"] == "Unauthorized access attempt"
        assert alerts[0].payload["severity"] == "high"

    @pytest.mark.asyncio()
    async def test_failing_response_does_not_stop_other_responses(
        self,
        service: ComplianceService,
        event_bus: ComplianceEventBus,
        make_rule: Callable[..., ComplianceRule],
        make_action: Callable[..., Action],
    ) -> None:
        def broken(violation: ComplianceViolation) -> None:
            raise RuntimeError("callback failed")

        service.add_rule(
            make_rule(
                "r1",
                actions=[
                    ComplianceResponse(type="custom", callback=broken),
                    ComplianceResponse(type="alert"),
                ],
            )
        )

        result = await service.check_compliance(make_action(data={"level": "public"}))

        assert result.compliant is False
        assert len(event_bus.history(EVENT_COMPLIANCE_ALERT)) == 1


# ---------------------------------------------------------------------------
# Rule-level failure isolation
# ---------------------------------------------------------------------------


class TestRuleErrors:
    @pytest.mark.asyncio()
    async def test_raising_rule_contributes_no_violations(
        self,
        service: ComplianceService,
        make_rule: Callable[..., ComplianceRule],
        make_action: Callable[..., Action],
    ) -> None:
        def explode(action: Action) -> bool:
            raise RuntimeError("predicate failed")

        service.add_rule(
            make_rule(
                "broken",
                conditions=[
                    ComplianceCondition(type="custom", field="data.level", operator="equals", value="x"),
                    ComplianceCondition(type="custom", field="data.level", operator="equals", predicate=explode),
                ],
            )
        )
        service.add_rule(make_rule("r2"))

        result = await service.check_compliance(make_action(data={"level": "public"}))

        assert result.rule_errors == ["broken"]
        assert [v.rule_id for v in result.violations] == ["r2"]
        assert service.get_violations(rule_id="broken") == []
        assert service.get_rule("broken").metadata.evaluation_count == 1  # type: ignore[union-attr]


# ---------------------------------------------------------------------------
# Rules, violations and metrics
# ---------------------------------------------------------------------------


class TestRuleManagement:
    def test_add_invalid_rule_raises(
        self,
        service: ComplianceService,
        make_rule: Callable[..., ComplianceRule],
    ) -> None:
        with pytest.raises(RuleValidationError):
            service.add_rule(make_rule(actions=[]))

    def test_validate_rule_does_not_insert(
        self,
        service: ComplianceService,
        make_rule: Callable[..., ComplianceRule],
    ) -> None:
        assert service.validate_rule(make_rule(actions=[])) is False
        assert service.get_rules() == []

    def test_update_and_remove(
        self,
        service: ComplianceService,
        make_rule: Callable[..., ComplianceRule],
    ) -> None:
        service.add_rule(make_rule("r1"))
        assert service.update_rule("r1", updated_by="alice", name="Renamed") is True
        assert service.get_rule("r1").name == "Renamed"  # type: ignore[union-attr]
        assert service.remove_rule("r1") is True
        assert service.get_rule("r1") is None

    @pytest.mark.asyncio()
    async def test_invalid_update_keeps_rule_enforcing(
        self,
        service: ComplianceService,
        make_rule: Callable[..., ComplianceRule],
        make_action: Callable[..., Action],
    ) -> None:
        service.add_rule(make_rule("r1"))

        with pytest.raises(RuleValidationError):
            service.update_rule("r1", conditions=[], name="")

        result = await service.check_compliance(make_action(data={"level": "public"}))
        assert result.compliant is False


class TestViolationsAndMetrics:
    @pytest.mark.asyncio()
    async def test_resolve_violation_last_write_wins(
        self,
        service: ComplianceService,
        make_rule: Callable[..., ComplianceRule],
        make_action: Callable[..., Action],
    ) -> None:
        service.add_rule(make_rule("r1"))
        result = await service.check_compliance(make_action(data={"level": "public"}))
        violation_id = result.violations[0].id

        assert service.resolve_violation(violation_id, "alice", "first") is True
        assert service.resolve_violation(violation_id, "bob", "second") is True
        assert service.resolve_violation("unknown", "bob") is False

        resolved = service.get_violations(resolved=True)
        assert len(resolved) == 1
        assert resolved[0].resolved_by == "bob"
        assert resolved[0].resolution_notes == "second"

    @pytest.mark.asyncio()
    async def test_metrics(
        self,
        service: ComplianceService,
        make_rule: Callable[..., ComplianceRule],
        make_action: Callable[..., Action],
    ) -> None:
        service.add_rule(make_rule("r1"))
        await service.check_compliance(make_action(data={"level": "restricted"}))
        await service.check_compliance(make_action(data={"level": "public"}))

        metrics = service.get_metrics()
        assert metrics["rules_evaluated"] == 2
        assert metrics["violations_detected"] == 1
        assert metrics["unresolved_violations"] == 1
        assert metrics["compliance_rate"] == 50.0
        assert metrics["audit_trail_size"] == 2
        assert metrics["rules_count"] == 1

    def test_metrics_without_evaluations(self, service: ComplianceService) -> None:
        assert service.get_metrics()["compliance_rate"] == 100.0

    @pytest.mark.asyncio()
    async def test_compliance_rate_unaffected_by_violation_eviction(
        self,
        event_bus: ComplianceEventBus,
        make_rule: Callable[..., ComplianceRule],
        make_action: Callable[..., Action],
    ) -> None:
        svc = ComplianceService(
            event_sink=event_bus,
            retention_data_source=InMemoryRetentionDataSource(),
            max_violations=1,
        )
        svc.add_rule(make_rule("r1"))
        for level in ("public", "public", "restricted", "restricted"):
            await svc.check_compliance(make_action(data={"level": level}))

        metrics = svc.get_metrics()
        assert metrics["violations_detected"] == 1
        assert metrics["rules_evaluated"] == 4
        assert metrics["compliance_rate"] == 50.0


# ---------------------------------------------------------------------------
# Action validation
# ---------------------------------------------------------------------------


class _ExportPayload(BaseModel):
    record_count: int
    destination: str


class TestValidateAction:
    def test_missing_required_fields_invalid(
        self,
        service: ComplianceService,
        make_action: Callable[..., Action],
    ) -> None:
        assert service.validate_action(make_action(user_id="")) is False

    def test_registered_payload_schema_is_enforced(
        self,
        service: ComplianceService,
        make_action: Callable[..., Action],
    ) -> None:
        service.payload_schemas.register("data.export", _ExportPayload)

        valid = make_action(type="data.export", data={"record_count": 5, "destination": "s3"})
        invalid = make_action(type="data.export", data={"record_count": "many"})

        assert service.validate_action(valid) is True
        assert service.validate_action(invalid) is False
        assert service.validate_action(make_action(type="data.read", data={"anything": 1})) is True


# ---------------------------------------------------------------------------
# Initialization and persistence
# ---------------------------------------------------------------------------


class TestInitialization:
    @pytest.mark.asyncio()
    async def test_defaults_loaded_once(self, make_action: Callable[..., Action]) -> None:
        svc = ComplianceService(
            event_sink=ComplianceEventBus(),
            retention_data_source=InMemoryRetentionDataSource(),
            defaults_path=Settings().defaults_path,
        )
        svc.initialize()
        svc.initialize()

        assert {r.id for r in svc.get_rules()} == {"gdpr_data_minimization", "soc2_access_control"}
        assert [p.id for p in svc.get_retention_policies()] == ["default_retention"]

        # Actions without the inspected fields pass the default rules
        result = await svc.check_compliance(make_action(data={}))
        assert result.compliant is True

    @pytest.mark.asyncio()
    async def test_default_soc2_rule_blocks_unauthorized_access(self, make_action: Callable[..., Action]) -> None:
        bus = ComplianceEventBus()
        svc = ComplianceService(
            event_sink=bus,
            retention_data_source=InMemoryRetentionDataSource(),
            defaults_path=Settings().defaults_path,
        )

        result = await svc.check_compliance(make_action(data={"access_level": "unauthorized"}))

        assert result.compliant is False
        assert [v.rule_id for v in result.violations] == ["soc2_access_control"]
        assert bus.history(EVENT_COMPLIANCE_BLOCK)[0].payload["reason"] == "Unauthorized access attempt"

    def test_missing_defaults_file_loads_nothing(self, tmp_path: Path) -> None:
        svc = ComplianceService(
            event_sink=ComplianceEventBus(),
            retention_data_source=InMemoryRetentionDataSource(),
            defaults_path=tmp_path / "missing.yaml",
        )
        svc.initialize()
        assert svc.get_rules() == []


class TestAuditPersistence:
    @pytest.mark.asyncio()
    async def test_entries_persisted_to_state_store(
        self,
        service: ComplianceService,
        state_store: InMemoryStateStore,
        make_action: Callable[..., Action],
    ) -> None:
        await service.check_compliance(make_action())
        await service.shutdown()

        entry = service.get_audit_trail()[0]
        stored = await state_store.get_state(f"audit:{entry.id}")
        assert stored is not None
        assert stored["user_id"] == "user-1"

    @pytest.mark.asyncio()
    async def test_state_store_failure_does_not_fail_check(
        self,
        make_rule: Callable[..., ComplianceRule],
        make_action: Callable[..., Action],
    ) -> None:
        failing_store = AsyncMock()
        failing_store.set_state.side_effect = ConnectionError("store down")
        svc = ComplianceService(
            event_sink=ComplianceEventBus(),
            retention_data_source=InMemoryRetentionDataSource(),
            state_store=failing_store,
        )
        svc.add_rule(make_rule("r1"))

        result = await svc.check_compliance(make_action(data={"level": "public"}))
        await svc.shutdown()

        assert result.compliant is False
        assert len(svc.get_audit_trail()) == 1
        assert svc.get_metrics()["audit_persist_failures"] == 1

        key, value, metadata = failing_store.set_state.call_args.args
        assert key.startswith("audit:")
        assert metadata["persistent"] is True
        assert metadata["read_only"] is True
        assert metadata["ttl_seconds"] == 365 * 24 * 60 * 60

# ---------------------------------------------------------------------------
# Concurrent checks
# ---------------------------------------------------------------------------


class TestConcurrentChecks:
    @pytest.mark.asyncio()
    async def test_concurrent_checks_keep_counters_and_audit_bound_exact(
        self,
        event_bus: ComplianceEventBus,
        make_rule: Callable[..., ComplianceRule],
        make_action: Callable[..., Action],
    ) -> None:
        svc = ComplianceService(
            event_sink=event_bus,
            retention_data_source=InMemoryRetentionDataSource(),
            audit_max_entries=5,
        )
        svc.add_rule(make_rule("r1"))
        actions = [
            make_action(user_id=f"user-{i}", data={"level": "public" if i % 2 else "restricted"}) for i in range(40)
        ]

        results = await asyncio.gather(*(svc.check_compliance(a) for a in actions))

        metadata = svc.get_rule("r1").metadata  # type: ignore[union-attr]
        assert metadata.evaluation_count == 40
        assert metadata.violation_count == 20
        assert sum(len(r.violations) for r in results) == 20
        assert len(svc.get_violations()) == 20

        audit = svc.get_audit_trail()
        assert len(audit) == 5
        checked_users = [e.payload["action"].user_id for e in event_bus.history(EVENT_COMPLIANCE_CHECKED)]
        assert [entry.user_id for entry in audit] == checked_users[-5:]
