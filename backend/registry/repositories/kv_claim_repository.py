"""Repository for claims held in the KV namespace.

Each key is an item id; each value is a legacy or structured stored claim.
Keys under reserved prefixes (rate-limit bookkeeping, the sync lease) share
the namespace and are never treated as claims.
"""

import asyncio
import logging
from collections.abc import Iterable, Sequence

from registry.adapters.errors import FetchError, StoreError, WriteError
from registry.adapters.kv.base import KeyValueStore
from registry.services.claim_normalizer import (
    claim_to_storage_json,
    normalize_claim,
    now_ms,
    parse_stored_claim,
)
from registry.services.claim_types import ClaimRecord, ClaimSource, StoredClaim

logger = logging.getLogger(__name__)

DEFAULT_RESERVED_PREFIXES: tuple[str, ...] = ("ratelimit:", "sync:")


def is_reserved_key(key: str, reserved_prefixes: Iterable[str]) -> bool:
    """Whether a key belongs to bookkeeping rather than to a claim."""
    return any(key.startswith(prefix) for prefix in reserved_prefixes)


class KVClaimRepository:
    """Reads and writes claims in a KV namespace.

    Args:
        store: The claims namespace.
        reserved_prefixes: Key prefixes excluded from listings.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        reserved_prefixes: Sequence[str] = DEFAULT_RESERVED_PREFIXES,
    ) -> None:
        self._store = store
        self._reserved_prefixes = tuple(reserved_prefixes)

    async def list_all(self, *, now: int | None = None) -> dict[str, ClaimRecord]:
        """Read every claim in the namespace.

        Walks the key listing page by page until the cursor is exhausted and
        fetches each page's values concurrently.

        Args:
            now: Epoch millis used for claims without a timestamp.
                Defaults to wall-clock now at read time.

        Returns:
            Item id -> ClaimRecord tagged with source "kv".

        Raises:
            FetchError: If listing or reading any key fails.
        """
        read_at = now if now is not None else now_ms()
        claims: dict[str, ClaimRecord] = {}
        cursor: str | None = None

        try:
            while True:
                page = await self._store.list_keys(cursor=cursor)
                keys = [
                    key
                    for key in page.keys
                    if not is_reserved_key(key, self._reserved_prefixes)
                ]
                values = await asyncio.gather(*(self._store.get(key) for key in keys))
                for key, raw in zip(keys, values, strict=True):
                    # Deleted between list and get
                    if raw is None:
                        continue
                    claims[key] = normalize_claim(
                        key, raw, now=read_at, source=ClaimSource.KV
                    )
                cursor = page.cursor
                if not cursor:
                    break
        except StoreError as e:
            raise FetchError(f"Failed to read claims from KV: {e}") from e

        logger.debug("Read %d claims from KV", len(claims))
        return claims

    async def get(self, item_id: str, *, now: int | None = None) -> ClaimRecord | None:
        """Read one claim, or None if the item is unclaimed."""
        raw = await self._store.get(item_id)
        if raw is None:
            return None
        return normalize_claim(item_id, raw, now=now, source=ClaimSource.KV)

    async def get_stored(self, item_id: str) -> StoredClaim | None:
        """Read one claim without normalizing, to tell legacy from structured."""
        raw = await self._store.get(item_id)
        if raw is None:
            return None
        return parse_stored_claim(raw)

    async def put(self, record: ClaimRecord) -> None:
        """Write one claim in the structured shape."""
        await self._store.put(record.item_id, claim_to_storage_json(record))

    async def write_batch(self, updates: Sequence[ClaimRecord]) -> int:
        """Write records independently; a failed key does not stop the rest.

        Args:
            updates: Records to store under their item ids.

        Returns:
            Number of records actually written.
        """
        if not updates:
            return 0

        async def _write(record: ClaimRecord) -> bool:
            try:
                await self.put(record)
            except StoreError as e:
                error = WriteError(str(e), item_id=record.item_id)
                logger.warning(
                    "Failed to update KV for item %s: %s", error.item_id, error
                )
                return False
            return True

        results = await asyncio.gather(*(_write(record) for record in updates))
        written = sum(results)
        logger.info("Wrote %d/%d claims to KV", written, len(updates))
        return written
