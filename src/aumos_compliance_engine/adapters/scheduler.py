"""Maintenance scheduler - periodic retention sweeps and state-store cleanup.

Runs as a single asyncio task started in the application lifespan. Each
cycle enforces every enabled retention policy and drops expired state-store
entries. A failing cycle is logged and the loop keeps its cadence.
"""

import asyncio
import contextlib
import inspect
from typing import Any

from aumos_compliance_engine.core.models import RetentionResult
from aumos_compliance_engine.core.services import ComplianceService
from aumos_compliance_engine.observability import get_logger

logger = get_logger(__name__)


class MaintenanceScheduler:
    """Periodic maintenance loop for the compliance engine.

    Args:
        service: The compliance service whose retention policies are enforced.
        interval_seconds: Delay between cycles.
        state_store: Optional store exposing ``clear_expired()`` (sync or async).
    """

    def __init__(
        self,
        service: ComplianceService,
        interval_seconds: float = 300.0,
        state_store: Any | None = None,
    ) -> None:
        self._service = service
        self._interval_seconds = interval_seconds
        self._state_store = state_store
        self._task: asyncio.Task[None] | None = None
        self._is_running = False
        self._cycles = 0

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def cycles(self) -> int:
        """Number of completed maintenance cycles."""
        return self._cycles

    async def start(self) -> None:
        """Start the background loop. A second call is a no-op."""
        if self._is_running:
            return
        self._is_running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("Maintenance scheduler started", interval_seconds=self._interval_seconds)

    async def stop(self) -> None:
        """Cancel the background loop and wait for it to exit."""
        self._is_running = False
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        logger.info("Maintenance scheduler stopped", cycles=self._cycles)

    async def run_once(self) -> RetentionResult:
        """Run one maintenance cycle immediately.

        Returns:
            The aggregate retention result of the cycle.
        """
        result = await self._service.enforce_data_retention()

        if self._state_store is not None and hasattr(self._state_store, "clear_expired"):
            removed = self._state_store.clear_expired()
            if inspect.isawaitable(removed):
                removed = await removed
            logger.debug("Expired state entries cleared", count=removed)

        self._cycles += 1
        return result

    async def _loop(self) -> None:
        while self._is_running:
            try:
                await self.run_once()
            except Exception as exc:
                logger.error("Maintenance cycle failed", error=str(exc))
            await asyncio.sleep(self._interval_seconds)
