"""Abstract interfaces (Protocol classes) for the compliance engine.

Defines the contracts between the engine and its external collaborators
using typing.Protocol. Core components depend on these protocols, never on
concrete adapters, so tests can inject in-memory implementations or mocks.

Protocols defined:
- IStateStore            - durable persistence of audit entries
- IEventSink             - receiver of compliance signals
- IRetentionDataSource   - data governed by retention policies
- IViolationRepository   - storage of detected violations
"""

from collections.abc import Iterable
from typing import Any, Protocol, TypedDict

from aumos_compliance_engine.core.models import ComplianceViolation, RetentionRecord

# Event names delivered to IEventSink.emit
EVENT_COMPLIANCE_CHECKED = "compliance_checked"
EVENT_COMPLIANCE_ALERT = "compliance_alert"
EVENT_COMPLIANCE_BLOCK = "compliance_block"


class StateMetadata(TypedDict, total=False):
    """Persistence hints passed with every state-store write.

    Keys:
        persistent: The value must survive process restarts.
        read_only: The value must not be overwritten.
        ttl_seconds: Time-to-live hint; None means no expiry.
        modified_by: Actor performing the write.
    """

    persistent: bool
    read_only: bool
    ttl_seconds: int | None
    modified_by: str


class IStateStore(Protocol):
    """Narrow persistence interface used for durable audit entries."""

    async def set_state(self, key: str, value: dict[str, Any], metadata: StateMetadata) -> None:
        """Persist a value under a key.

        Args:
            key: Storage key, e.g. ``audit:<entry id>``.
            value: JSON-compatible payload.
            metadata: Persistence hints.

        Raises:
            Exception: Any storage failure. Callers in the engine catch and
                log it; a failed write never fails a compliance check.
        """
        ...


class IEventSink(Protocol):
    """Receiver of named compliance signals (UI, notification systems, buses)."""

    def emit(self, event_name: str, payload: dict[str, Any]) -> None:
        """Deliver a signal.

        Args:
            event_name: One of the EVENT_* names.
            payload: Event body; carries domain objects, not serialized data.
        """
        ...


class IRetentionDataSource(Protocol):
    """Data scope a retention sweep operates on."""

    async def list_records(
        self,
        data_types: Iterable[str],
        tenant_id: str | None = None,
    ) -> list[RetentionRecord]:
        """Return the records of the given data types, optionally tenant scoped."""
        ...

    async def archive(self, record_ids: Iterable[str]) -> int:
        """Archive records and return how many were newly archived."""
        ...

    async def delete(self, record_ids: Iterable[str]) -> int:
        """Delete records and return how many existed and were removed."""
        ...


class IViolationRepository(Protocol):
    """Storage of detected violations. Resolution is the only permitted mutation."""

    def add(self, violation: ComplianceViolation) -> None:
        """Store a newly detected violation."""
        ...

    def get(self, violation_id: str) -> ComplianceViolation | None:
        """Return a violation by id, or None."""
        ...

    def list_all(
        self,
        resolved: bool | None = None,
        rule_id: str | None = None,
    ) -> list[ComplianceViolation]:
        """Return violations in detection order, optionally filtered."""
        ...

    def resolve(self, violation_id: str, resolved_by: str, notes: str | None = None) -> bool:
        """Mark a violation resolved; False when the id is unknown."""
        ...

    def count(self) -> int:
        """Return the number of stored violations."""
        ...

    def count_unresolved(self) -> int:
        """Return the number of stored violations not yet resolved."""
        ...
