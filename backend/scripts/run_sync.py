"""Run the claim sync between Cloudflare KV and the registry spreadsheet.

Standalone entry point for the scheduled sync (cron or a long-running
container).

Usage:
    cd backend && python -m scripts.run_sync            # one pass
    cd backend && python -m scripts.run_sync --loop     # every 15 minutes
    cd backend && python -m scripts.run_sync --loop --interval 60

A single pass prints its JSON result ({success, duration, error?, stats})
and exits 0 on success, 1 on failure.
"""

import argparse
import asyncio
import json
import logging
import sys

import httpx

from registry.core.config import Settings, settings
from registry.core.logging import configure_logging
from registry.services.sync_service import build_orchestrator, run_sync_pass
from registry.services.sync_worker import ClaimSyncWorker

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line options."""
    parser = argparse.ArgumentParser(
        description="Reconcile registry claims between KV and the spreadsheet."
    )
    parser.add_argument(
        "--loop",
        action="store_true",
        help="Keep running, one pass per interval, until interrupted.",
    )
    parser.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Seconds between passes in --loop mode (default: SYNC_INTERVAL_SECONDS).",
    )
    args = parser.parse_args(argv)
    if args.interval is not None and args.interval <= 0:
        parser.error("--interval must be positive")
    return args


async def run_forever(config: Settings, interval_seconds: int) -> None:
    """Run the sync worker until cancelled."""
    async with httpx.AsyncClient(timeout=config.http_timeout_seconds) as client:
        worker = ClaimSyncWorker(
            lambda: build_orchestrator(config, client),
            interval_seconds=interval_seconds,
        )
        worker.start()
        try:
            # Park until Ctrl-C cancels the main task
            await asyncio.Event().wait()
        finally:
            await worker.stop()


async def main(argv: list[str] | None = None) -> int:
    """CLI entry point. Returns the process exit code."""
    args = parse_args(argv)
    configure_logging(settings.log_level)

    if args.loop:
        interval = args.interval or settings.sync_interval_seconds
        logger.info("Starting claim sync loop (interval=%ds)", interval)
        await run_forever(settings, interval)
        return 0

    result = await run_sync_pass(settings)
    print(json.dumps(result.to_dict()))
    return 0 if result.success else 1


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(130)
