"""Tests for CloudflareKVStore against a mocked REST API."""

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from registry.adapters.errors import (
    AuthError,
    RateLimitedError,
    StoreError,
    TransientStoreError,
)
from registry.adapters.kv.cloudflare import CloudflareKVStore
from registry.adapters.retry import RetryPolicy

_NAMESPACE_PATH = "/client/v4/accounts/acct-1/storage/kv/namespaces/ns-claims"
_PATCH_SLEEP = "registry.adapters.retry.asyncio.sleep"


def _make_store(
    handler, *, retry_policy: RetryPolicy | None = None
) -> CloudflareKVStore:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return CloudflareKVStore(
        client,
        account_id="acct-1",
        namespace_id="ns-claims",
        api_token="cf-token",
        retry_policy=retry_policy or RetryPolicy(max_retries=0),
    )


class TestListKeys:
    """Tests for key listing."""

    async def test_parses_names_and_cursor(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(
                200,
                json={
                    "success": True,
                    "result": [{"name": "crib"}, {"name": "stroller"}],
                    "result_info": {"cursor": "next-page"},
                },
            )

        store = _make_store(handler)
        page = await store.list_keys(cursor="abc")

        assert page.keys == ["crib", "stroller"]
        assert page.cursor == "next-page"
        request = requests[0]
        assert request.url.path == f"{_NAMESPACE_PATH}/keys"
        assert request.url.params["cursor"] == "abc"
        assert request.url.params["limit"] == "1000"
        assert request.headers["Authorization"] == "Bearer cf-token"

    async def test_empty_cursor_means_last_page(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={"success": True, "result": [], "result_info": {"cursor": ""}},
            )

        page = await _make_store(handler).list_keys()

        assert page.keys == []
        assert page.cursor is None

    async def test_unsuccessful_payload_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, json={"success": False, "errors": [{"code": 10000}]}
            )

        with pytest.raises(StoreError, match="KV list failed"):
            await _make_store(handler).list_keys()


class TestValues:
    """Tests for value reads and writes."""

    async def test_get_returns_raw_text(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.raw_path.decode().endswith("/values/baby%20monitor")
            return httpx.Response(200, text='{"claimer": "Bob"}')

        value = await _make_store(handler).get("baby monitor")

        assert value == '{"claimer": "Bob"}'

    async def test_get_missing_returns_none(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"success": False})

        assert await _make_store(handler).get("crib") is None

    async def test_put_sends_ttl_and_body(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"success": True})

        await _make_store(handler).put("token-1", "payload", ttl_seconds=86400)

        request = requests[0]
        assert request.method == "PUT"
        assert request.url.params["expiration_ttl"] == "86400"
        assert request.content == b"payload"

    async def test_delete_tolerates_missing_key(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "DELETE"
            return httpx.Response(404)

        await _make_store(handler).delete("crib")


class TestErrorMapping:
    """Tests for HTTP failure classification and retries."""

    async def test_forbidden_is_auth_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(403, text="forbidden")

        with pytest.raises(AuthError, match="HTTP 403"):
            await _make_store(handler).get("crib")

    async def test_server_error_is_transient(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="unavailable")

        with pytest.raises(TransientStoreError):
            await _make_store(handler).get("crib")

    async def test_retries_transient_then_succeeds(self) -> None:
        responses = iter(
            [
                httpx.Response(429, headers={"Retry-After": "2"}),
                httpx.Response(200, text="Alice"),
            ]
        )

        def handler(request: httpx.Request) -> httpx.Response:
            return next(responses)

        store = _make_store(handler, retry_policy=RetryPolicy(max_retries=2))
        with patch(_PATCH_SLEEP, new_callable=AsyncMock) as mock_sleep:
            value = await store.get("crib")

        assert value == "Alice"
        mock_sleep.assert_called_once_with(2.0)

    async def test_rate_limit_exhausts_retries(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, text=json.dumps({"errors": ["slow down"]}))

        store = _make_store(handler, retry_policy=RetryPolicy(max_retries=1))
        with (
            patch(_PATCH_SLEEP, new_callable=AsyncMock),
            pytest.raises(RateLimitedError),
        ):
            await store.get("crib")
