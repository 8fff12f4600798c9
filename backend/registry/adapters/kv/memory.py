"""In-memory key-value store.

Backs local development and tests. Honors TTLs and paginates listings with a
numeric cursor so callers exercise the same cursor loop as against Cloudflare.

Note: safe for async/await usage (single-threaded event loop) but not for
multi-threaded access.
"""

import time
from dataclasses import dataclass

from registry.adapters.kv.base import KeyPage, KeyValueStore

DEFAULT_PAGE_SIZE = 1000


@dataclass
class _Entry:
    value: str
    expires_at: float | None = None


class InMemoryKeyValueStore(KeyValueStore):
    """Dict-backed KV namespace with TTL support."""

    def __init__(self, *, page_size: int = DEFAULT_PAGE_SIZE) -> None:
        """Initialize the store.

        Args:
            page_size: Maximum keys returned per list_keys page.
        """
        if page_size <= 0:
            raise ValueError(f"page_size must be positive, got {page_size}")
        self._data: dict[str, _Entry] = {}
        self._page_size = page_size

    async def list_keys(
        self, *, prefix: str | None = None, cursor: str | None = None
    ) -> KeyPage:
        """List keys in sorted order, one page at a time."""
        self._purge_expired()
        names = sorted(
            key for key in self._data if prefix is None or key.startswith(prefix)
        )
        start = int(cursor) if cursor else 0
        end = start + self._page_size
        next_cursor = str(end) if end < len(names) else None
        return KeyPage(keys=names[start:end], cursor=next_cursor)

    async def get(self, key: str) -> str | None:
        """Return the value if present and not expired."""
        entry = self._data.get(key)
        if entry is None:
            return None
        if self._is_expired(entry):
            del self._data[key]
            return None
        return entry.value

    async def put(self, key: str, value: str, *, ttl_seconds: int | None = None) -> None:
        """Store a value with an optional TTL."""
        expires_at = time.monotonic() + ttl_seconds if ttl_seconds else None
        self._data[key] = _Entry(value=value, expires_at=expires_at)

    async def delete(self, key: str) -> None:
        """Remove a key if present."""
        self._data.pop(key, None)

    def clear(self) -> None:
        """Clear all keys (for testing)."""
        self._data.clear()

    def __len__(self) -> int:
        self._purge_expired()
        return len(self._data)

    @staticmethod
    def _is_expired(entry: _Entry) -> bool:
        return entry.expires_at is not None and time.monotonic() >= entry.expires_at

    def _purge_expired(self) -> None:
        expired = [key for key, entry in self._data.items() if self._is_expired(entry)]
        for key in expired:
            del self._data[key]
