"""Overlap guard for sync passes.

A lease record in the claims namespace (``sync:lease``) names the pass that
currently owns the sync. The record carries its own expiry and a KV TTL, so a
crashed pass frees the lease without intervention.

KV writes are eventually consistent, so two passes starting within the
propagation window can both acquire the lease. The guard narrows the window;
the reconciler's timestamp comparison still resolves whatever slips through.
"""

import json
import logging
import uuid

from registry.adapters.kv.base import KeyValueStore
from registry.services.claim_normalizer import now_ms

logger = logging.getLogger(__name__)

LEASE_KEY = "sync:lease"
DEFAULT_LEASE_TTL_SECONDS = 300


class SyncLease:
    """TTL lease over the sync pass.

    Args:
        store: Namespace holding the lease record.
        ttl_seconds: Lease lifetime; must cover the longest expected pass.
        owner: Identifier of this holder. Defaults to a random UUID.
        key: Lease record key.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        ttl_seconds: int = DEFAULT_LEASE_TTL_SECONDS,
        owner: str | None = None,
        key: str = LEASE_KEY,
    ) -> None:
        self._store = store
        self._ttl_seconds = ttl_seconds
        self._owner = owner or uuid.uuid4().hex
        self._key = key

    @property
    def owner(self) -> str:
        """Identifier written into the lease record."""
        return self._owner

    async def acquire(self) -> bool:
        """Take the lease unless another live holder has it.

        Returns:
            True if this holder now owns the lease.

        Raises:
            StoreError: If the lease record cannot be read or written.
        """
        current = await self._read()
        now = now_ms()
        if current is not None:
            holder, expires_at = current
            if holder != self._owner and expires_at > now:
                logger.info(
                    "Sync lease held by %s for another %dms", holder, expires_at - now
                )
                return False

        record = {"owner": self._owner, "expiresAt": now + self._ttl_seconds * 1000}
        await self._store.put(self._key, json.dumps(record), ttl_seconds=self._ttl_seconds)

        # Re-read to lose gracefully against a writer that raced us
        confirmed = await self._read()
        return confirmed is not None and confirmed[0] == self._owner

    async def release(self) -> None:
        """Drop the lease if this holder still owns it.

        Raises:
            StoreError: If the lease record cannot be read or deleted.
        """
        current = await self._read()
        if current is not None and current[0] == self._owner:
            await self._store.delete(self._key)

    async def _read(self) -> tuple[str, int] | None:
        raw = await self._store.get(self._key)
        if raw is None:
            return None
        try:
            record = json.loads(raw)
            return str(record["owner"]), int(record["expiresAt"])
        except (json.JSONDecodeError, KeyError, TypeError, ValueError, OverflowError):
            logger.warning("Ignoring malformed sync lease record: %r", raw)
            return None
