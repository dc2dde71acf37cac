"""In-memory retention data source.

Holds RetentionRecord descriptors for data governed by retention policies.
Applications register their records (or mirror them from their own stores)
and the retention engine archives and deletes them during sweeps.
"""

import threading
from collections.abc import Iterable
from dataclasses import replace

from aumos_compliance_engine.core.models import RetentionRecord
from aumos_compliance_engine.observability import get_logger

logger = get_logger(__name__)


class InMemoryRetentionDataSource:
    """Process-local IRetentionDataSource."""

    def __init__(self, records: Iterable[RetentionRecord] = ()) -> None:
        self._records: dict[str, RetentionRecord] = {}
        self._lock = threading.Lock()
        for record in records:
            self.add_record(record)

    def add_record(self, record: RetentionRecord) -> None:
        with self._lock:
            self._records[record.id] = record

    def get_record(self, record_id: str) -> RetentionRecord | None:
        with self._lock:
            return self._records.get(record_id)

    async def list_records(
        self,
        data_types: Iterable[str],
        tenant_id: str | None = None,
    ) -> list[RetentionRecord]:
        wanted = set(data_types)
        with self._lock:
            return [
                record
                for record in self._records.values()
                if record.data_type in wanted and (tenant_id is None or record.tenant_id == tenant_id)
            ]

    async def archive(self, record_ids: Iterable[str]) -> int:
        archived = 0
        with self._lock:
            for record_id in record_ids:
                record = self._records.get(record_id)
                if record is None or record.archived:
                    continue
                self._records[record_id] = replace(record, archived=True)
                archived += 1
        if archived:
            logger.info("Retention records archived", count=archived)
        return archived

    async def delete(self, record_ids: Iterable[str]) -> int:
        deleted = 0
        with self._lock:
            for record_id in record_ids:
                if self._records.pop(record_id, None) is not None:
                    deleted += 1
        if deleted:
            logger.info("Retention records deleted", count=deleted)
        return deleted

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
