"""Cloudflare Workers KV adapter over the REST API.

Endpoints (per namespace):
- GET    .../keys?cursor=&limit=&prefix=   list one page of keys
- GET    .../values/{key}                  read a value (404 when missing)
- PUT    .../values/{key}?expiration_ttl=  write a value
- DELETE .../values/{key}                  remove a key (404 tolerated)
"""

from typing import Any
from urllib.parse import quote

import httpx
import structlog

from registry.adapters.errors import StoreError, classify_http_error
from registry.adapters.kv.base import KeyPage, KeyValueStore
from registry.adapters.retry import RetryPolicy, with_retries

logger = structlog.get_logger()

_LIST_PAGE_LIMIT = 1000


class CloudflareKVStore(KeyValueStore):
    """KV namespace backed by Cloudflare's REST API.

    Args:
        client: Shared httpx client (owned by the caller).
        account_id: Cloudflare account identifier.
        namespace_id: KV namespace identifier.
        api_token: API token with Workers KV read/write permission.
        base_url: API root, overridable for tests.
        retry_policy: Backoff settings for transient failures.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        account_id: str,
        namespace_id: str,
        api_token: str,
        base_url: str = "https://api.cloudflare.com/client/v4",
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self._client = client
        self._namespace_url = (
            f"{base_url.rstrip('/')}/accounts/{account_id}"
            f"/storage/kv/namespaces/{namespace_id}"
        )
        self._headers = {"Authorization": f"Bearer {api_token}"}
        self._retry_policy = retry_policy or RetryPolicy()
        self._namespace_id = namespace_id

    async def list_keys(
        self, *, prefix: str | None = None, cursor: str | None = None
    ) -> KeyPage:
        """List one page of keys in the namespace."""
        params: dict[str, Any] = {"limit": _LIST_PAGE_LIMIT}
        if cursor:
            params["cursor"] = cursor
        if prefix:
            params["prefix"] = prefix

        response = await self._request(
            "GET", f"{self._namespace_url}/keys", params=params
        )
        payload = response.json()
        if not payload.get("success", True):
            raise StoreError(f"KV list failed: {payload.get('errors')}")

        keys = [entry["name"] for entry in payload.get("result") or []]
        next_cursor = (payload.get("result_info") or {}).get("cursor") or None
        return KeyPage(keys=keys, cursor=next_cursor)

    async def get(self, key: str) -> str | None:
        """Read a raw value; None when the key does not exist."""
        response = await self._request(
            "GET", self._value_url(key), allowed_statuses=(404,)
        )
        if response.status_code == 404:
            return None
        return response.text

    async def put(self, key: str, value: str, *, ttl_seconds: int | None = None) -> None:
        """Write a raw value with an optional expiration TTL."""
        params = {"expiration_ttl": ttl_seconds} if ttl_seconds else None
        await self._request(
            "PUT",
            self._value_url(key),
            params=params,
            content=value.encode("utf-8"),
            headers={"Content-Type": "text/plain; charset=utf-8"},
        )

    async def delete(self, key: str) -> None:
        """Delete a key; a missing key is not an error."""
        await self._request("DELETE", self._value_url(key), allowed_statuses=(404,))

    def _value_url(self, key: str) -> str:
        return f"{self._namespace_url}/values/{quote(key, safe='')}"

    async def _request(
        self,
        method: str,
        url: str,
        *,
        allowed_statuses: tuple[int, ...] = (),
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Issue a request with retries, mapping failures to StoreError."""

        async def _send() -> httpx.Response:
            try:
                response = await self._client.request(
                    method,
                    url,
                    headers={**self._headers, **(headers or {})},
                    **kwargs,
                )
                if response.status_code not in allowed_statuses:
                    response.raise_for_status()
            except httpx.HTTPError as e:
                logger.warning(
                    "kv_request_failed",
                    namespace=self._namespace_id,
                    method=method,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise classify_http_error(e) from e
            return response

        return await with_retries(_send, self._retry_policy)
