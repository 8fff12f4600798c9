"""Abstract base class and types for key-value store backends.

A namespaced key -> string store with list/get/put/delete semantics and no
transactions across keys.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class KeyPage:
    """One page of a key listing.

    Attributes:
        keys: Key names on this page.
        cursor: Opaque cursor for the next page, None when exhausted.
    """

    keys: list[str] = field(default_factory=list)
    cursor: str | None = None


class KeyValueStore(ABC):
    """Abstract base class for KV namespaces.

    Implementations raise StoreError subclasses (see registry.adapters.errors)
    on backend failures. A missing key is not a failure: ``get`` returns None
    and ``delete`` is a no-op.
    """

    @abstractmethod
    async def list_keys(
        self, *, prefix: str | None = None, cursor: str | None = None
    ) -> KeyPage:
        """List one page of keys.

        Args:
            prefix: Only return keys starting with this prefix.
            cursor: Cursor from the previous page, None for the first page.

        Returns:
            KeyPage with the key names and the next cursor.
        """
        ...

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the stored value, or None if the key does not exist."""
        ...

    @abstractmethod
    async def put(self, key: str, value: str, *, ttl_seconds: int | None = None) -> None:
        """Store a value, optionally expiring after ttl_seconds."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove a key. No-op if it does not exist."""
        ...
