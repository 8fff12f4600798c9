"""Claim sync pass between the KV store and the Google Sheet.

Flow per pass:
1. FETCHING: read KV and sheet claims concurrently. Either failing aborts
   the pass (the sibling read is cancelled) and jumps to LOGGING.
2. RECONCILING: pure last-writer-wins diff (see reconciler.py).
3. APPLYING: write both sides concurrently, best effort. Per-item failures
   are counted by the repositories; anything they raise fails the pass but
   does not stop the other side.
4. LOGGING: always append one audit row to the Logs tab. Failures here are
   swallowed and never change the pass result.

No exception escapes ``SyncOrchestrator.run_pass``; the returned
SyncPassResult is the single source of truth for callers.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import httpx
import structlog

from registry.adapters.google_auth import GoogleAccessTokenProvider
from registry.adapters.kv.cloudflare import CloudflareKVStore
from registry.adapters.retry import RetryPolicy
from registry.adapters.sheets import SheetsClient
from registry.core.config import Settings
from registry.repositories.kv_claim_repository import KVClaimRepository
from registry.repositories.sheet_claim_repository import (
    SheetClaimRepository,
    SyncLogEntry,
)
from registry.services.claim_normalizer import now_ms
from registry.services.reconciler import reconcile
from registry.services.sync_lease import SyncLease

logger = logging.getLogger(__name__)
events = structlog.get_logger()

DEFAULT_PHASE_TIMEOUT_SECONDS = 120.0


class SyncState(str, Enum):
    """Where a pass is, or where it ended."""

    FETCHING = "fetching"
    RECONCILING = "reconciling"
    APPLYING = "applying"
    LOGGING = "logging"
    DONE = "done"
    FAILED = "failed"


class PhaseTimeoutError(Exception):
    """An I/O phase did not finish within the phase timeout."""

    pass


@dataclass
class SyncStats:
    """Counters reported by a pass.

    Attributes:
        kv_total: Claims read from KV.
        sheet_total: Claims read from the sheet.
        updated_in_kv: Records written to KV.
        updated_in_sheet: Records written to the sheet.
    """

    kv_total: int = 0
    sheet_total: int = 0
    updated_in_kv: int = 0
    updated_in_sheet: int = 0

    def to_dict(self) -> dict[str, int]:
        """Render with the camelCase keys used by the audit log consumers."""
        return {
            "kvTotal": self.kv_total,
            "sheetTotal": self.sheet_total,
            "updatedInKV": self.updated_in_kv,
            "updatedInSheet": self.updated_in_sheet,
        }


@dataclass(frozen=True)
class SyncPassResult:
    """Result of a single sync pass.

    Attributes:
        success: False if any fetch failed or any write side raised.
        duration_ms: Wall time from pass start to the end of APPLYING.
        stats: Pass counters.
        state: Terminal state (DONE or FAILED).
        started_at: When the pass started.
        finished_at: When the pass finished, audit row included.
        error: Captured error message, None on success.
        skipped: True when another holder had the sync lease.
    """

    success: bool
    duration_ms: int
    stats: SyncStats = field(default_factory=SyncStats)
    state: SyncState = SyncState.DONE
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    error: str | None = None
    skipped: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Render as ``{success, duration, error?, stats}``."""
        result: dict[str, Any] = {
            "success": self.success,
            "duration": self.duration_ms,
            "stats": self.stats.to_dict(),
        }
        if self.error:
            result["error"] = self.error
        if self.skipped:
            result["skipped"] = True
        return result


def _error_message(error: BaseException) -> str:
    return str(error) or type(error).__name__


class SyncOrchestrator:
    """Runs fetch -> reconcile -> apply -> log passes.

    Args:
        kv_repository: Claims in the KV namespace.
        sheet_repository: Claims and audit rows in the spreadsheet.
        lease: Optional overlap guard; passes that cannot take it are skipped.
        phase_timeout_seconds: Upper bound for each I/O phase.
        shared_read_clock: Default missing timestamps on both reads to the
            same pass-start instant. Off by default, so each read uses its
            own clock.
        clock: Epoch-millis clock (injectable for tests).
    """

    def __init__(
        self,
        kv_repository: KVClaimRepository,
        sheet_repository: SheetClaimRepository,
        *,
        lease: SyncLease | None = None,
        phase_timeout_seconds: float = DEFAULT_PHASE_TIMEOUT_SECONDS,
        shared_read_clock: bool = False,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._kv = kv_repository
        self._sheet = sheet_repository
        self._lease = lease
        self._phase_timeout = phase_timeout_seconds
        self._shared_read_clock = shared_read_clock
        self._clock = clock
        self._state = SyncState.DONE

    @property
    def state(self) -> SyncState:
        """State of the current or most recent pass."""
        return self._state

    async def run_pass(self) -> SyncPassResult:
        """Execute one sync pass. Never raises.

        Returns:
            SyncPassResult with counters and the captured error, if any.
        """
        started_at = datetime.now(UTC)
        start = time.monotonic()
        stats = SyncStats()
        errors: list[str] = []
        lease_held = False

        self._state = SyncState.FETCHING
        try:
            if self._lease is not None:
                lease_held = await self._lease.acquire()
                if not lease_held:
                    logger.info("Skipping sync pass: another pass holds the lease")
                    self._state = SyncState.DONE
                    return SyncPassResult(
                        success=True,
                        duration_ms=int((time.monotonic() - start) * 1000),
                        stats=stats,
                        state=SyncState.DONE,
                        started_at=started_at,
                        finished_at=datetime.now(UTC),
                        skipped=True,
                    )

            read_at = self._clock() if self._shared_read_clock else None
            logger.info("Fetching KV and sheet claims")
            kv_claims, sheet_claims = await self._run_all_or_nothing(
                lambda: self._kv.list_all(now=read_at),
                lambda: self._sheet.read_claims(now=read_at),
            )
            stats.kv_total = len(kv_claims)
            stats.sheet_total = len(sheet_claims)

            self._state = SyncState.RECONCILING
            plan = reconcile(kv_claims, sheet_claims)
            logger.info(
                "Reconciled %d KV / %d sheet claims: %d to KV, %d to sheet, %d in sync",
                stats.kv_total,
                stats.sheet_total,
                len(plan.to_update_in_kv),
                len(plan.to_update_in_sheet),
                plan.in_sync,
            )

            self._state = SyncState.APPLYING
            kv_outcome, sheet_outcome = await self._run_best_effort(
                lambda: self._kv.write_batch(plan.to_update_in_kv),
                lambda: self._sheet.write_claims(plan.to_update_in_sheet),
            )
            if isinstance(kv_outcome, BaseException):
                errors.append(f"KV update failed: {_error_message(kv_outcome)}")
            else:
                stats.updated_in_kv = kv_outcome
            if isinstance(sheet_outcome, BaseException):
                errors.append(f"Sheet update failed: {_error_message(sheet_outcome)}")
            else:
                stats.updated_in_sheet = sheet_outcome
        except Exception as e:  # noqa: BLE001
            logger.exception("Sync pass failed during %s", self._state.value)
            errors.append(_error_message(e))
        finally:
            if lease_held:
                await self._release_lease()

        duration_ms = int((time.monotonic() - start) * 1000)
        success = not errors
        error_message = "; ".join(errors)

        self._state = SyncState.LOGGING
        await self._write_audit_row(
            SyncLogEntry(
                timestamp=datetime.now(UTC),
                success=success,
                kv_total=stats.kv_total,
                sheet_total=stats.sheet_total,
                updated_in_kv=stats.updated_in_kv,
                updated_in_sheet=stats.updated_in_sheet,
                duration_ms=duration_ms,
                error_message=error_message,
            )
        )

        self._state = SyncState.DONE if success else SyncState.FAILED
        events.info(
            "sync_pass_complete",
            success=success,
            duration_ms=duration_ms,
            error=error_message or None,
            **stats.to_dict(),
        )
        return SyncPassResult(
            success=success,
            duration_ms=duration_ms,
            stats=stats,
            state=self._state,
            started_at=started_at,
            finished_at=datetime.now(UTC),
            error=error_message or None,
        )

    async def _run_all_or_nothing(
        self, *operations: Callable[[], Awaitable[Any]]
    ) -> list[Any]:
        """Run operations concurrently; the first failure cancels the rest.

        Raises:
            Exception: The first operation failure.
            PhaseTimeoutError: If the phase outlives the phase timeout.
        """
        tasks = [asyncio.ensure_future(operation()) for operation in operations]
        try:
            done, pending = await asyncio.wait(
                tasks,
                timeout=self._phase_timeout,
                return_when=asyncio.FIRST_EXCEPTION,
            )
        except asyncio.CancelledError:
            await self._cancel(tasks)
            raise

        if pending:
            await self._cancel(pending)
        for task in tasks:
            if task in done and task.exception() is not None:
                raise task.exception()  # type: ignore[misc]
        if pending:
            raise PhaseTimeoutError(
                f"Fetch phase exceeded {self._phase_timeout:.0f}s timeout"
            )
        return [task.result() for task in tasks]

    async def _run_best_effort(
        self, *operations: Callable[[], Awaitable[Any]]
    ) -> list[Any]:
        """Run operations concurrently and collect each result or exception.

        Operations still running at the phase timeout are cancelled and
        reported as PhaseTimeoutError.
        """
        tasks = [asyncio.ensure_future(operation()) for operation in operations]
        try:
            _done, pending = await asyncio.wait(tasks, timeout=self._phase_timeout)
        except asyncio.CancelledError:
            await self._cancel(tasks)
            raise

        if pending:
            await self._cancel(pending)

        outcomes: list[Any] = []
        for task in tasks:
            if task in pending:
                outcomes.append(
                    PhaseTimeoutError(
                        f"Apply phase exceeded {self._phase_timeout:.0f}s timeout"
                    )
                )
            elif task.exception() is not None:
                outcomes.append(task.exception())
            else:
                outcomes.append(task.result())
        return outcomes

    @staticmethod
    async def _cancel(tasks: Any) -> None:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _release_lease(self) -> None:
        assert self._lease is not None
        try:
            await self._lease.release()
        except Exception:  # noqa: BLE001
            logger.warning("Failed to release sync lease", exc_info=True)

    async def _write_audit_row(self, entry: SyncLogEntry) -> None:
        """Append the audit row; failures are logged and dropped."""
        try:
            await self._sheet.append_log_row(entry)
        except Exception:  # noqa: BLE001
            logger.warning("Failed to save sync log to sheet", exc_info=True)
        else:
            logger.info("Sync log saved to sheet")


def build_orchestrator(
    settings: Settings, client: httpx.AsyncClient
) -> SyncOrchestrator:
    """Wire the production adapters from settings.

    Args:
        settings: Loaded application settings.
        client: Shared httpx client, closed by the caller after the pass.

    Returns:
        SyncOrchestrator over Cloudflare KV and the Google Sheet.
    """
    retry_policy = RetryPolicy.from_settings(settings)
    claims_store = CloudflareKVStore(
        client,
        account_id=settings.cloudflare_account_id,
        namespace_id=settings.claims_namespace_id,
        api_token=settings.cloudflare_api_token.get_secret_value(),
        base_url=settings.cloudflare_api_base_url,
        retry_policy=retry_policy,
    )
    token_provider = GoogleAccessTokenProvider(
        client,
        settings.google_service_account_key.get_secret_value(),
        scope=settings.google_token_scope,
    )
    sheets = SheetsClient(
        client,
        token_provider,
        settings.google_sheet_id,
        retry_policy=retry_policy,
    )
    lease = (
        SyncLease(claims_store, ttl_seconds=settings.sync_lease_ttl_seconds)
        if settings.sync_lease_enabled
        else None
    )
    return SyncOrchestrator(
        KVClaimRepository(
            claims_store, reserved_prefixes=settings.kv_reserved_prefixes
        ),
        SheetClaimRepository(
            sheets,
            claims_range=settings.sheet_claims_range,
            append_range=settings.sheet_append_range,
            log_range=settings.sheet_log_range,
            catalog_range=settings.sheet_catalog_range,
        ),
        lease=lease,
        phase_timeout_seconds=settings.sync_phase_timeout_seconds,
        shared_read_clock=settings.sync_shared_read_clock,
    )


async def run_sync_pass(settings: Settings) -> SyncPassResult:
    """Run one pass against the configured stores with a fresh HTTP client.

    Args:
        settings: Loaded application settings.

    Returns:
        SyncPassResult for the pass.
    """
    async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as client:
        orchestrator = build_orchestrator(settings, client)
        return await orchestrator.run_pass()
