"""Retention policy engine - owns retention policies and runs retention sweeps.

A sweep (enforce_data_retention) executes every enabled policy independently
against the retention data source:

1. List the records of the policy's data types (tenant scoped when given).
2. Compute each record's delete window: ``delete_after`` days, overridden by
   the retention period of the first exception whose condition holds on the
   record's attributes.
3. Delete records older than their delete window.
4. Archive the remaining active records older than ``archive_after``.

Deleted records disappear from the source and archived records are not
archived again, so re-running a sweep over already-processed data never
deletes or archives the same record twice.

A policy that fails records the error in its own RetentionResult; the other
policies still run. Per-policy results are summed into an aggregate result.
"""

import threading
import time
from datetime import datetime, timedelta

from aumos_compliance_engine.core.errors import RetentionPolicyValidationError
from aumos_compliance_engine.core.interfaces import IRetentionDataSource
from aumos_compliance_engine.core.models import (
    RetentionException,
    RetentionPolicy,
    RetentionRecord,
    RetentionReport,
    RetentionResult,
    utc_now,
)
from aumos_compliance_engine.core.validation import validate_retention_policy
from aumos_compliance_engine.observability import get_logger

logger = get_logger(__name__)

AGGREGATE_POLICY_ID = "aggregated"
AGGREGATE_POLICY_NAME = "Aggregated Retention Report"


def exception_applies(exception: RetentionException, record: RetentionRecord) -> bool:
    """Return True when a retention exception's condition holds for a record.

    ``legal_hold`` holds when the record attribute ``legal_hold`` is truthy;
    ``status=litigation`` holds when the attribute ``status`` equals ``litigation``.
    """
    name, sep, expected = exception.condition.partition("=")
    name = name.strip()
    if sep:
        value = record.attributes.get(name)
        return value is not None and str(value) == expected.strip()
    return bool(record.attributes.get(name))


def effective_delete_after(policy: RetentionPolicy, record: RetentionRecord) -> int:
    """Return the delete window in days for a record under a policy."""
    for exception in policy.exceptions:
        if exception_applies(exception, record):
            return exception.retention_period
    return policy.delete_after


class RetentionPolicyEngine:
    """Registry of retention policies and executor of retention sweeps.

    Args:
        data_source: The data scope the sweeps operate on.
        enforce_validation: Reject invalid policies in add_retention_policy().
    """

    def __init__(
        self,
        data_source: IRetentionDataSource,
        enforce_validation: bool = True,
    ) -> None:
        self._data_source = data_source
        self._enforce_validation = enforce_validation
        self._policies: dict[str, RetentionPolicy] = {}
        self._lock = threading.Lock()

    def add_retention_policy(self, policy: RetentionPolicy) -> None:
        """Insert or replace a retention policy by id.

        Raises:
            RetentionPolicyValidationError: If validation is enforced and the
                policy fails validate_retention_policy().
        """
        if self._enforce_validation and not validate_retention_policy(policy):
            logger.warning("Rejected invalid retention policy", policy_id=policy.id)
            raise RetentionPolicyValidationError(policy.id)

        with self._lock:
            self._policies[policy.id] = policy

        logger.info(
            "Retention policy added",
            policy_id=policy.id,
            policy_name=policy.name,
            retention_period=policy.retention_period,
        )

    def remove_retention_policy(self, policy_id: str) -> bool:
        with self._lock:
            removed = self._policies.pop(policy_id, None) is not None
        if removed:
            logger.info("Retention policy removed", policy_id=policy_id)
        return removed

    def get_retention_policies(self) -> list[RetentionPolicy]:
        with self._lock:
            return list(self._policies.values())

    def get_retention_policy(self, policy_id: str) -> RetentionPolicy | None:
        with self._lock:
            return self._policies.get(policy_id)

    async def enforce_data_retention(self, tenant_id: str | None = None) -> RetentionResult:
        """Run every enabled retention policy and aggregate the results.

        Args:
            tenant_id: Restrict the sweep to one tenant's records.

        Returns:
            The aggregate RetentionResult; ``success`` is False if any policy failed.
        """
        results = [
            await self.execute_policy(policy, tenant_id)
            for policy in self.get_retention_policies()
            if policy.enabled
        ]

        errors = [error for result in results for error in result.errors]
        processed = sum(r.processed_count for r in results)
        deleted = sum(r.deleted_count for r in results)
        archived = sum(r.archived_count for r in results)

        aggregate = RetentionResult(
            success=all(r.success for r in results),
            processed_count=processed,
            deleted_count=deleted,
            archived_count=archived,
            errors=errors,
            report=RetentionReport(
                policy_id=AGGREGATE_POLICY_ID,
                policy_name=AGGREGATE_POLICY_NAME,
                execution_date=utc_now(),
                data_processed=processed,
                data_deleted=deleted,
                data_archived=archived,
                errors=errors,
                duration_ms=round(sum(r.report.duration_ms for r in results), 2),
            ),
        )

        logger.info(
            "Data retention enforcement completed",
            policies_processed=len(results),
            total_processed=processed,
            total_deleted=deleted,
            total_archived=archived,
            error_count=len(errors),
            tenant_id=tenant_id,
        )
        return aggregate

    async def execute_policy(
        self,
        policy: RetentionPolicy,
        tenant_id: str | None = None,
        now: datetime | None = None,
    ) -> RetentionResult:
        """Execute a single retention policy.

        Args:
            policy: The policy to execute.
            tenant_id: Restrict to one tenant's records.
            now: Reference time for record ages (defaults to the current time).

        Returns:
            The policy's RetentionResult. Failures are captured in ``errors``.
        """
        start_time = time.monotonic()
        reference = now or utc_now()
        errors: list[str] = []
        processed_count = 0
        deleted_count = 0
        archived_count = 0

        logger.info(
            "Executing retention policy",
            policy_id=policy.id,
            policy_name=policy.name,
            tenant_id=tenant_id,
        )

        try:
            records = await self._data_source.list_records(policy.data_types, tenant_id)
            processed_count = len(records)

            to_delete: list[str] = []
            to_archive: list[str] = []
            archive_cutoff = reference - timedelta(days=policy.archive_after)
            for record in records:
                delete_cutoff = reference - timedelta(days=effective_delete_after(policy, record))
                if record.created_at < delete_cutoff:
                    to_delete.append(record.id)
                elif not record.archived and record.created_at < archive_cutoff:
                    to_archive.append(record.id)

            if to_delete:
                deleted_count = await self._data_source.delete(to_delete)
            if to_archive:
                archived_count = await self._data_source.archive(to_archive)
        except Exception as exc:
            errors.append(f"{policy.id}: {exc}")
            logger.error(
                "Retention policy execution failed",
                error=str(exc),
                policy_id=policy.id,
            )

        duration_ms = round((time.monotonic() - start_time) * 1000, 2)
        return RetentionResult(
            success=not errors,
            processed_count=processed_count,
            deleted_count=deleted_count,
            archived_count=archived_count,
            errors=errors,
            report=RetentionReport(
                policy_id=policy.id,
                policy_name=policy.name,
                execution_date=utc_now(),
                data_processed=processed_count,
                data_deleted=deleted_count,
                data_archived=archived_count,
                errors=errors,
                duration_ms=duration_ms,
            ),
        )
