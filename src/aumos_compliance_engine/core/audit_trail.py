"""Audit trail log - bounded, append-only record of every checked action.

The in-memory log is a sliding window over the most recent entries (10,000 by
default). Appends go through a deque with a fixed maxlen under a lock, so the
bound holds after every append and eviction is exactly FIFO in append order.

Every entry is also handed to the external state store under
``audit:<entry id>`` with a persistence hint and a one-year TTL. That write is
fire-and-forget: it runs as a background task, its failure is logged and
never propagates, and the caller does not wait for it. flush() awaits all
outstanding writes (used at shutdown and in tests).
"""

import asyncio
import threading
from collections import deque
from datetime import datetime

from aumos_compliance_engine.core.interfaces import IStateStore, StateMetadata
from aumos_compliance_engine.core.models import (
    Action,
    AuditTrailEntry,
    ComplianceContext,
    ComplianceResult,
    new_id,
    utc_now,
)
from aumos_compliance_engine.observability import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_ENTRIES = 10_000
_SECONDS_PER_DAY = 24 * 60 * 60


class AuditTrailLog:
    """Bounded in-memory audit log with best-effort durable persistence.

    Args:
        state_store: Durable store receiving every entry, or None to keep
            entries in memory only.
        max_entries: Size of the sliding window.
        ttl_days: Time-to-live hint passed with each persisted entry.
    """

    def __init__(
        self,
        state_store: IStateStore | None = None,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        ttl_days: int = 365,
    ) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self._entries: deque[AuditTrailEntry] = deque(maxlen=max_entries)
        self._lock = threading.Lock()
        self._state_store = state_store
        self._ttl_seconds = ttl_days * _SECONDS_PER_DAY
        self._pending: set[asyncio.Task[None]] = set()
        self._persist_failures = 0

    @property
    def max_entries(self) -> int:
        return self._entries.maxlen or DEFAULT_MAX_ENTRIES

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def persist_failures(self) -> int:
        """Number of state-store writes that failed since startup."""
        return self._persist_failures

    async def log_audit_trail(
        self,
        action: Action,
        compliance_result: ComplianceResult | None = None,
    ) -> AuditTrailEntry:
        """Build an audit entry for an action and append it.

        Args:
            action: The checked action.
            compliance_result: The outcome of the check, if any.

        Returns:
            The appended entry.
        """
        entry = self._build_entry(action, compliance_result)

        with self._lock:
            self._entries.append(entry)

        if self._state_store is not None:
            task = asyncio.get_running_loop().create_task(self._persist(entry))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

        return entry

    def _build_entry(
        self,
        action: Action,
        compliance_result: ComplianceResult | None,
    ) -> AuditTrailEntry:
        context: ComplianceContext | None = None
        if compliance_result is not None:
            first_violation = compliance_result.violations[0] if compliance_result.violations else None
            context = ComplianceContext(
                rule_id=compliance_result.rule_id,
                compliance_type=first_violation.type if first_violation else None,
                severity=compliance_result.severity,
                data_classification=(
                    action.data_classification.model_dump()
                    if action.data_classification is not None
                    else None
                ),
                retention_policy=action.retention_policy,
            )

        return AuditTrailEntry(
            id=new_id("audit"),
            action=action.type,
            user_id=action.user_id,
            tenant_id=action.tenant_id,
            resource=action.resource,
            data=dict(action.data),
            timestamp=utc_now(),
            ip_address=action.ip_address,
            user_agent=action.user_agent,
            session_id=action.session_id,
            compliance_context=context,
        )

    async def _persist(self, entry: AuditTrailEntry) -> None:
        metadata: StateMetadata = {
            "persistent": True,
            "read_only": True,
            "ttl_seconds": self._ttl_seconds,
            "modified_by": "system",
        }
        try:
            await self._state_store.set_state(f"audit:{entry.id}", entry.to_dict(), metadata)  # type: ignore[union-attr]
        except Exception as exc:
            self._persist_failures += 1
            logger.error(
                "Failed to persist audit trail entry",
                entry_id=entry.id,
                error=str(exc),
            )

    async def flush(self) -> None:
        """Wait for every outstanding state-store write to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def get_audit_trail(
        self,
        user_id: str | None = None,
        tenant_id: str | None = None,
        action: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        limit: int | None = None,
    ) -> list[AuditTrailEntry]:
        """Return audit entries in append order, filtered.

        Args:
            user_id: Keep entries of this user.
            tenant_id: Keep entries of this tenant.
            action: Keep entries of this action type.
            start_date: Keep entries at or after this time.
            end_date: Keep entries at or before this time.
            limit: Keep only the most recent N entries after filtering.

        Returns:
            Snapshot list of matching entries, oldest first.
        """
        with self._lock:
            entries = list(self._entries)

        if user_id:
            entries = [e for e in entries if e.user_id == user_id]
        if tenant_id:
            entries = [e for e in entries if e.tenant_id == tenant_id]
        if action:
            entries = [e for e in entries if e.action == action]
        if start_date:
            entries = [e for e in entries if e.timestamp >= start_date]
        if end_date:
            entries = [e for e in entries if e.timestamp <= end_date]
        if limit:
            entries = entries[-limit:]
        return entries
