"""Key-value store backends.

This module provides:
- KeyValueStore base class and KeyPage
- CloudflareKVStore (REST) and InMemoryKeyValueStore (local/tests)
"""

from registry.adapters.kv.base import KeyPage, KeyValueStore
from registry.adapters.kv.cloudflare import CloudflareKVStore
from registry.adapters.kv.memory import InMemoryKeyValueStore

__all__ = [
    "CloudflareKVStore",
    "InMemoryKeyValueStore",
    "KeyPage",
    "KeyValueStore",
]
