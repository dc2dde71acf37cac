"""Rule registry - owns compliance rules and their running counters.

The RuleRegistry keeps an in-memory map of rules keyed by rule id. It is the
only component that mutates a rule: explicit updates go through
update_rule(), and evaluation counters go through record_evaluation().

Locking:
- A registry-wide lock guards the id → rule map (insert, remove, snapshot).
- Each rule has its own lock guarding its fields and counters, so updates
  and counter increments for one rule are serialized while evaluations of
  different rules never contend.
Locks are threading locks held only for short in-memory sections and never
across an await, so the registry is safe for both threads and asyncio tasks.
"""

import dataclasses
import threading
from typing import Any

from aumos_compliance_engine.core.errors import RuleValidationError
from aumos_compliance_engine.core.models import ComplianceRule, utc_now
from aumos_compliance_engine.core.validation import validate_rule
from aumos_compliance_engine.observability import get_logger

logger = get_logger(__name__)

# Fields update_rule() may not touch: identity and the counters it owns
_IMMUTABLE_FIELDS = frozenset({"id", "metadata"})
_UPDATABLE_FIELDS = frozenset(f.name for f in dataclasses.fields(ComplianceRule)) - _IMMUTABLE_FIELDS


class RuleRegistry:
    """In-memory registry for compliance rules.

    Adding a rule whose id already exists replaces the earlier rule
    (last-write-wins, no version conflict error).

    Args:
        enforce_validation: Reject structurally invalid rules in add_rule()
            with RuleValidationError instead of accepting them silently.
    """

    def __init__(self, enforce_validation: bool = True) -> None:
        self._rules: dict[str, ComplianceRule] = {}
        self._rule_locks: dict[str, threading.Lock] = {}
        self._lock = threading.Lock()
        self._enforce_validation = enforce_validation

    def _lock_for(self, rule_id: str) -> threading.Lock:
        with self._lock:
            lock = self._rule_locks.get(rule_id)
            if lock is None:
                lock = threading.Lock()
                self._rule_locks[rule_id] = lock
            return lock

    def add_rule(self, rule: ComplianceRule) -> None:
        """Insert or overwrite a rule by id.

        Args:
            rule: The rule to register. The registry takes ownership of it.

        Raises:
            RuleValidationError: If validation is enforced and the rule fails
                validate_rule().
        """
        if self._enforce_validation and not validate_rule(rule):
            logger.warning("Rejected invalid compliance rule", rule_id=rule.id, rule_name=rule.name)
            raise RuleValidationError(rule.id)

        rule_lock = self._lock_for(rule.id)
        with rule_lock, self._lock:
            replaced = rule.id in self._rules
            self._rules[rule.id] = rule

        logger.info(
            "Compliance rule added",
            rule_id=rule.id,
            rule_name=rule.name,
            type=rule.type,
            severity=rule.severity,
            replaced=replaced,
        )

    def remove_rule(self, rule_id: str) -> bool:
        """Delete a rule.

        Args:
            rule_id: Id of the rule to remove.

        Returns:
            True if the rule existed and was removed, False otherwise.
        """
        rule_lock = self._lock_for(rule_id)
        with rule_lock, self._lock:
            # The lock entry stays so a re-added rule shares it with in-flight callers
            removed = self._rules.pop(rule_id, None) is not None

        if removed:
            logger.info("Compliance rule removed", rule_id=rule_id)
        return removed

    def update_rule(self, rule_id: str, updated_by: str = "system", **changes: Any) -> bool:
        """Merge field changes into an existing rule.

        Args:
            rule_id: Id of the rule to update.
            updated_by: Actor recorded in the rule metadata.
            **changes: Rule fields to replace (name, severity, conditions, ...).

        Returns:
            False if the rule id is unknown, True once the update is applied.

        Raises:
            ValueError: If a change names an unknown or immutable field.
            RuleValidationError: If validation is enforced and the merged rule
                fails validate_rule(). The stored rule is left unchanged.
        """
        invalid = set(changes) - _UPDATABLE_FIELDS
        if invalid:
            raise ValueError(f"Cannot update rule fields: {sorted(invalid)}")

        rule_lock = self._lock_for(rule_id)
        with rule_lock:
            rule = self._rules.get(rule_id)
            if rule is None:
                return False

            if self._enforce_validation and not validate_rule(dataclasses.replace(rule, **changes)):
                logger.warning("Rejected invalid compliance rule update", rule_id=rule_id, fields=sorted(changes))
                raise RuleValidationError(rule_id)

            for name, value in changes.items():
                setattr(rule, name, value)
            rule.metadata.updated_by = updated_by
            rule.metadata.updated_at = utc_now()

        logger.info(
            "Compliance rule updated",
            rule_id=rule_id,
            rule_name=rule.name,
            fields=sorted(changes),
            updated_by=updated_by,
        )
        return True

    def record_evaluation(self, rule_id: str, violation_count: int) -> None:
        """Record one evaluation of a rule and the violations it produced.

        Counters update on every evaluation, compliant or not.

        Args:
            rule_id: Id of the evaluated rule.
            violation_count: Number of violations this evaluation produced.
        """
        rule_lock = self._lock_for(rule_id)
        with rule_lock:
            rule = self._rules.get(rule_id)
            if rule is None:
                # Removed while it was being evaluated
                return
            rule.metadata.evaluation_count += 1
            rule.metadata.violation_count += violation_count
            rule.metadata.last_evaluated = utc_now()

    def get_rule(self, rule_id: str) -> ComplianceRule | None:
        with self._lock:
            return self._rules.get(rule_id)

    def get_rules(self) -> list[ComplianceRule]:
        """Return a snapshot list of all rules in insertion order."""
        with self._lock:
            return list(self._rules.values())

    def get_enabled_rules(self) -> list[ComplianceRule]:
        return [rule for rule in self.get_rules() if rule.enabled]

    def validate_rule(self, rule: ComplianceRule) -> bool:
        return validate_rule(rule)

    def __len__(self) -> int:
        with self._lock:
            return len(self._rules)

    def get_stats(self) -> dict[str, Any]:
        """Return registry statistics.

        Returns:
            Dictionary with rule counts by type and total evaluation/violation counters.
        """
        rules = self.get_rules()
        by_type: dict[str, int] = {}
        for rule in rules:
            by_type[rule.type] = by_type.get(rule.type, 0) + 1

        return {
            "total_rules": len(rules),
            "enabled_rules": sum(1 for rule in rules if rule.enabled),
            "by_type": by_type,
            "total_evaluations": sum(rule.metadata.evaluation_count for rule in rules),
            "total_violations": sum(rule.metadata.violation_count for rule in rules),
        }
