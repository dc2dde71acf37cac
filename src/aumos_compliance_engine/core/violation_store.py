"""Violation store - id-indexed, bounded storage of detected violations.

Violations are append-only apart from the resolution workflow: resolve() is
the only operation that mutates a stored violation, and it only touches the
resolution fields. Resolving twice keeps ``resolved`` True and overwrites
``resolved_by`` / ``resolution_notes`` / ``resolved_at`` (last write wins).

The store is bounded. When ``max_violations`` is exceeded the earliest resolved
violation is evicted first; if none is resolved, the oldest violation is. Resolved
ids are tracked in their own ordered index, so eviction never scans the store.
"""

import threading
from collections import OrderedDict

from aumos_compliance_engine.core.models import ComplianceViolation, utc_now
from aumos_compliance_engine.observability import get_logger

logger = get_logger(__name__)


class InMemoryViolationRepository:
    """Thread-safe in-memory implementation of IViolationRepository.

    Args:
        max_violations: Upper bound on stored violations.
    """

    def __init__(self, max_violations: int = 100_000) -> None:
        if max_violations <= 0:
            raise ValueError("max_violations must be positive")
        self._violations: OrderedDict[str, ComplianceViolation] = OrderedDict()
        # Resolved ids in resolution order
        self._resolved_ids: OrderedDict[str, None] = OrderedDict()
        self._max_violations = max_violations
        self._lock = threading.Lock()

    def add(self, violation: ComplianceViolation) -> None:
        """Store a newly detected violation, evicting if the bound is exceeded."""
        with self._lock:
            self._violations[violation.id] = violation
            if violation.resolved:
                self._resolved_ids[violation.id] = None
            else:
                self._resolved_ids.pop(violation.id, None)
            evicted = self._evict_over_bound()

        if evicted:
            logger.warning(
                "Violation store bound exceeded - evicted oldest violations",
                evicted_ids=evicted,
                max_violations=self._max_violations,
            )

    def _evict_over_bound(self) -> list[str]:
        evicted: list[str] = []
        while len(self._violations) > self._max_violations:
            if self._resolved_ids:
                victim, _ = self._resolved_ids.popitem(last=False)
            else:
                victim = next(iter(self._violations))
            del self._violations[victim]
            evicted.append(victim)
        return evicted

    def get(self, violation_id: str) -> ComplianceViolation | None:
        with self._lock:
            return self._violations.get(violation_id)

    def list_all(
        self,
        resolved: bool | None = None,
        rule_id: str | None = None,
    ) -> list[ComplianceViolation]:
        """Return violations in detection order.

        Args:
            resolved: Keep only resolved (True) or unresolved (False) violations.
            rule_id: Keep only violations of this rule.

        Returns:
            Snapshot list of matching violations.
        """
        with self._lock:
            violations = list(self._violations.values())

        if resolved is not None:
            violations = [v for v in violations if v.resolved == resolved]
        if rule_id is not None:
            violations = [v for v in violations if v.rule_id == rule_id]
        return violations

    def resolve(self, violation_id: str, resolved_by: str, notes: str | None = None) -> bool:
        """Mark a violation resolved.

        Args:
            violation_id: Id of the violation.
            resolved_by: Actor resolving it.
            notes: Optional resolution notes.

        Returns:
            False when the id is unknown, True otherwise.
        """
        with self._lock:
            violation = self._violations.get(violation_id)
            if violation is None:
                return False
            violation.resolved = True
            self._resolved_ids.setdefault(violation_id, None)
            violation.resolution_notes = notes
            violation.resolved_by = resolved_by
            violation.resolved_at = utc_now()

        logger.info(
            "Violation resolved",
            violation_id=violation_id,
            resolved_by=resolved_by,
            rule_id=violation.rule_id,
        )
        return True

    def count(self) -> int:
        with self._lock:
            return len(self._violations)

    def count_unresolved(self) -> int:
        with self._lock:
            return len(self._violations) - len(self._resolved_ids)
