"""Claim sync background worker.

asyncio background task that runs a sync pass on a configurable interval
(default 15 min). Each pass gets a fresh orchestrator from the factory, so no
state (access tokens, sheet row maps) carries over between passes.
"""

import asyncio
import contextlib
import logging
from collections.abc import Callable
from datetime import datetime

from registry.services.sync_service import SyncOrchestrator, SyncPassResult

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 15 * 60


class ClaimSyncWorker:
    """Background worker that periodically reconciles claims.

    Lifecycle:
    - start() creates an asyncio task that runs the sync loop.
    - stop() cancels the task and waits for graceful shutdown.
    - run_once() executes a single pass (for testing and one-shot runs).

    Args:
        orchestrator_factory: Builds the orchestrator for one pass.
        interval_seconds: Seconds between passes.
    """

    def __init__(
        self,
        orchestrator_factory: Callable[[], SyncOrchestrator],
        *,
        interval_seconds: int = DEFAULT_INTERVAL_SECONDS,
    ) -> None:
        self._orchestrator_factory = orchestrator_factory
        self._interval_seconds = interval_seconds
        self._task: asyncio.Task[None] | None = None
        self._last_result: SyncPassResult | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        """Whether the background task is currently active."""
        return self._running and self._task is not None and not self._task.done()

    @property
    def last_run_at(self) -> datetime | None:
        """Finish time of the most recent pass."""
        return self._last_result.finished_at if self._last_result else None

    @property
    def last_result(self) -> SyncPassResult | None:
        """Result of the most recent pass."""
        return self._last_result

    def start(self) -> None:
        """Start the background sync loop.

        Creates an asyncio task. No-op if already running.
        Must be called from an async context (running event loop).
        """
        if self.is_running:
            logger.warning("Claim sync worker already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("Claim sync worker started (interval=%ds)", self._interval_seconds)

    async def stop(self) -> None:
        """Stop the background sync loop.

        Cancels the task and waits for it to finish.
        """
        self._running = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._task = None
        logger.info("Claim sync worker stopped")

    async def run_once(self) -> SyncPassResult:
        """Execute a single sync pass.

        Returns:
            SyncPassResult with statistics from the pass.
        """
        orchestrator = self._orchestrator_factory()
        result = await orchestrator.run_pass()
        self._last_result = result
        return result

    async def _run_loop(self) -> None:
        """Background loop: run_once -> sleep -> repeat."""
        try:
            while self._running:
                try:
                    result = await self.run_once()
                    if result.skipped:
                        logger.info("Sync pass skipped (lease held elsewhere)")
                    else:
                        logger.info(
                            "Sync pass %s in %dms: %d to KV, %d to sheet",
                            "succeeded" if result.success else "failed",
                            result.duration_ms,
                            result.stats.updated_in_kv,
                            result.stats.updated_in_sheet,
                        )
                except Exception:  # noqa: BLE001
                    logger.exception("Error in sync pass")
                await asyncio.sleep(self._interval_seconds)
        except asyncio.CancelledError:
            logger.debug("Sync loop cancelled")
            raise
