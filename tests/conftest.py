"""Test fixtures for aumos-compliance-engine.

Provides:
- make_action: Factory for Action objects with sensible defaults
- make_rule: Factory for ComplianceRule objects with a single condition
- make_policy: Factory for RetentionPolicy objects
- event_bus: A fresh ComplianceEventBus that records emitted events
- state_store: A fresh InMemoryStateStore
- data_source: A fresh InMemoryRetentionDataSource
- service: A ComplianceService without default rules, wired to the above
"""

from collections.abc import Callable
from typing import Any

import pytest

from aumos_compliance_engine.adapters.events import ComplianceEventBus
from aumos_compliance_engine.adapters.retention_store import InMemoryRetentionDataSource
from aumos_compliance_engine.adapters.state_store import InMemoryStateStore
from aumos_compliance_engine.core.models import (
    Action,
    ComplianceCondition,
    ComplianceResponse,
    ComplianceRule,
    RetentionException,
    RetentionPolicy,
)
from aumos_compliance_engine.core.services import ComplianceService


def _build_action(**overrides: Any) -> Action:
    fields: dict[str, Any] = {
        "type": "data.read",
        "user_id": "user-1",
        "resource": "customers",
        "data": {},
    }
    fields.update(overrides)
    return Action(**fields)


def _build_rule(
    rule_id: str = "r1",
    severity: str = "high",
    compliance_type: str = "gdpr",
    field: str = "data.level",
    operator: str = "equals",
    value: Any = "restricted",
    actions: list[ComplianceResponse] | None = None,
    conditions: list[ComplianceCondition] | None = None,
    **overrides: Any,
) -> ComplianceRule:
    return ComplianceRule(
        id=rule_id,
        name=overrides.pop("name", f"Rule {rule_id}"),
        type=compliance_type,
        category=overrides.pop("category", "data_protection"),
        severity=severity,
        conditions=conditions
        if conditions is not None
        else [ComplianceCondition(type="data_access", field=field, operator=operator, value=value)],
        actions=actions if actions is not None else [ComplianceResponse(type="block")],
        **overrides,
    )


def _build_policy(**overrides: Any) -> RetentionPolicy:
    fields: dict[str, Any] = {
        "id": "p1",
        "name": "Default retention",
        "description": "Keeps user data for seven years",
        "data_types": ["user_data"],
        "retention_period": 365,
        "archive_after": 90,
        "delete_after": 2555,
        "exceptions": [RetentionException(condition="legal_hold", retention_period=3650, reason="Legal hold")],
    }
    fields.update(overrides)
    return RetentionPolicy(**fields)


@pytest.fixture()
def make_action() -> Callable[..., Action]:
    """Return a factory that builds Action objects.

    Returns:
        Callable accepting Action field overrides.
    """
    return _build_action


@pytest.fixture()
def make_rule() -> Callable[..., ComplianceRule]:
    """Return a factory that builds single-condition ComplianceRule objects.

    Returns:
        Callable accepting rule id, severity, condition parts and overrides.
    """
    return _build_rule


@pytest.fixture()
def make_policy() -> Callable[..., RetentionPolicy]:
    """Return a factory that builds RetentionPolicy objects.

    Returns:
        Callable accepting RetentionPolicy field overrides.
    """
    return _build_policy


@pytest.fixture()
def event_bus() -> ComplianceEventBus:
    return ComplianceEventBus()


@pytest.fixture()
def state_store() -> InMemoryStateStore:
    return InMemoryStateStore()


@pytest.fixture()
def data_source() -> InMemoryRetentionDataSource:
    return InMemoryRetentionDataSource()


@pytest.fixture()
def service(
    event_bus: ComplianceEventBus,
    state_store: InMemoryStateStore,
    data_source: InMemoryRetentionDataSource,
) -> ComplianceService:
    """Create a ComplianceService with no default rules.

    Args:
        event_bus: Injected event bus fixture.
        state_store: Injected state store fixture.
        data_source: Injected retention data source fixture.

    Returns:
        An initialized ComplianceService.
    """
    svc = ComplianceService(
        event_sink=event_bus,
        retention_data_source=data_source,
        state_store=state_store,
        defaults_path=None,
    )
    svc.initialize()
    return svc
