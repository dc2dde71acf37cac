"""State store adapters - durable persistence for audit trail entries.

The compliance engine writes every audit entry under ``audit:<entry id>``
with ``read_only`` set. Both adapters honour that flag: a read-only key is
written once and never overwritten, so the persisted audit trail is
append-only like the in-memory one.

Key exports:
- InMemoryStateStore       - process-local store with TTL expiry (default)
- SqlAlchemyStateStore     - async SQLAlchemy store on cmp_state_entries
- init_state_store(...)    - build the store configured in Settings
"""

import json
import threading
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, String, delete, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from aumos_compliance_engine.core.interfaces import StateMetadata
from aumos_compliance_engine.core.models import utc_now
from aumos_compliance_engine.observability import get_logger

logger = get_logger(__name__)


def _expires_at(metadata: StateMetadata, now: datetime) -> datetime | None:
    ttl = metadata.get("ttl_seconds")
    if ttl is None:
        return None
    return now + timedelta(seconds=ttl)


class InMemoryStateStore:
    """Process-local IStateStore. Values are lost on restart.

    Used when no state store URL is configured and throughout the tests.
    """

    def __init__(self) -> None:
        self._values: dict[str, dict[str, Any]] = {}
        self._expiry: dict[str, datetime | None] = {}
        self._read_only: set[str] = set()
        self._lock = threading.Lock()

    async def set_state(self, key: str, value: dict[str, Any], metadata: StateMetadata) -> None:
        now = utc_now()
        with self._lock:
            if key in self._read_only and not self._is_expired(key, now):
                logger.warning("Refusing to overwrite read-only state entry", key=key)
                return
            self._values[key] = value
            self._expiry[key] = _expires_at(metadata, now)
            if metadata.get("read_only"):
                self._read_only.add(key)

    async def get_state(self, key: str) -> dict[str, Any] | None:
        with self._lock:
            if key not in self._values or self._is_expired(key, utc_now()):
                return None
            return self._values[key]

    def _is_expired(self, key: str, now: datetime) -> bool:
        expires_at = self._expiry.get(key)
        return expires_at is not None and expires_at <= now

    def clear_expired(self) -> int:
        """Drop expired entries and return how many were removed."""
        now = utc_now()
        with self._lock:
            expired = [key for key in self._values if self._is_expired(key, now)]
            for key in expired:
                self._values.pop(key, None)
                self._expiry.pop(key, None)
                self._read_only.discard(key)
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)


# ---------------------------------------------------------------------------
# SQLAlchemy-backed store
# ---------------------------------------------------------------------------


class Base(DeclarativeBase):
    """Declarative base for compliance engine tables (``cmp_`` prefix)."""


class StateEntry(Base):
    """One persisted state value.

    Attributes:
        key: Storage key, e.g. ``audit:audit_<hex>``.
        value: JSON payload.
        read_only: Set for entries that must never be overwritten.
        modified_by: Actor that wrote the entry.
        created_at: Insert time.
        expires_at: TTL expiry; NULL means no expiry.
    """

    __tablename__ = "cmp_state_entries"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    read_only: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    modified_by: Mapped[str] = mapped_column(String(100), nullable=False, default="system")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        index=True,
    )


class SqlAlchemyStateStore:
    """IStateStore backed by an async SQLAlchemy session factory.

    Args:
        session_factory: Factory producing AsyncSession objects.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def set_state(self, key: str, value: dict[str, Any], metadata: StateMetadata) -> None:
        """Insert or update a state entry. Read-only entries are never overwritten.

        Raises:
            sqlalchemy.exc.SQLAlchemyError: On database failure.
        """
        now = utc_now()
        # Round-trip through JSON so datetimes and other non-JSON types are
        # stored as strings regardless of the dialect's JSON serializer.
        payload = json.loads(json.dumps(value, default=str))

        async with self._session_factory() as session:
            existing = await session.get(StateEntry, key)
            if existing is not None and existing.read_only:
                logger.warning("Refusing to overwrite read-only state entry", key=key)
                return
            if existing is None:
                session.add(
                    StateEntry(
                        key=key,
                        value=payload,
                        read_only=bool(metadata.get("read_only", False)),
                        modified_by=metadata.get("modified_by", "system"),
                        created_at=now,
                        expires_at=_expires_at(metadata, now),
                    )
                )
            else:
                existing.value = payload
                existing.read_only = bool(metadata.get("read_only", False))
                existing.modified_by = metadata.get("modified_by", "system")
                existing.expires_at = _expires_at(metadata, now)
            await session.commit()

    async def get_state(self, key: str) -> dict[str, Any] | None:
        async with self._session_factory() as session:
            result = await session.execute(select(StateEntry).where(StateEntry.key == key))
            entry = result.scalar_one_or_none()
        if entry is None:
            return None
        expires_at = entry.expires_at
        if expires_at is not None:
            # SQLite drops tzinfo on read; stored values are always UTC
            if expires_at.tzinfo is None:
                expires_at = expires_at.replace(tzinfo=UTC)
            if expires_at <= utc_now():
                return None
        return entry.value

    async def clear_expired(self) -> int:
        """Delete expired entries and return the number of rows removed."""
        async with self._session_factory() as session:
            result = await session.execute(
                delete(StateEntry).where(
                    StateEntry.expires_at.is_not(None),
                    StateEntry.expires_at <= utc_now(),
                )
            )
            await session.commit()
        removed = result.rowcount or 0
        if removed:
            logger.info("Expired state entries removed", count=removed)
        return removed


# Module-level engine - initialized by init_state_store(), disposed by close_state_store()
_state_engine: AsyncEngine | None = None


async def init_state_store(
    state_store_url: str,
    pool_size: int = 5,
) -> InMemoryStateStore | SqlAlchemyStateStore:
    """Build the configured state store.

    An empty URL selects the in-memory store. Otherwise an async engine is
    created and the ``cmp_state_entries`` table is created if missing.

    Args:
        state_store_url: SQLAlchemy async URL, or "" for in-memory.
        pool_size: Connection pool size for non-SQLite URLs.

    Returns:
        The ready-to-use state store.
    """
    global _state_engine  # noqa: PLW0603

    if not state_store_url:
        logger.info("Using in-memory state store")
        return InMemoryStateStore()

    engine_kwargs: dict[str, Any] = {"echo": False, "pool_pre_ping": True}
    if not state_store_url.startswith("sqlite"):
        engine_kwargs["pool_size"] = pool_size

    logger.info("Initializing state store engine", pool_size=pool_size)
    _state_engine = create_async_engine(state_store_url, **engine_kwargs)

    async with _state_engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        bind=_state_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    logger.info("State store engine initialized")
    return SqlAlchemyStateStore(session_factory)


async def close_state_store() -> None:
    """Dispose the state store engine, if one was created."""
    global _state_engine  # noqa: PLW0603

    if _state_engine is not None:
        logger.info("Disposing state store engine")
        await _state_engine.dispose()
        _state_engine = None
