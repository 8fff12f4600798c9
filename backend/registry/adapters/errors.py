"""Store error taxonomy.

Error classes for the KV and spreadsheet adapters. Adapters map transport
failures onto these so the sync orchestrator can tell fatal, per-item and
best-effort failures apart without knowing which backend raised them.
"""

import contextlib

import httpx

__all__ = [
    "StoreError",
    "AuthError",
    "FetchError",
    "WriteError",
    "LogError",
    "TransientStoreError",
    "RateLimitedError",
    "classify_http_error",
]


class StoreError(Exception):
    """Base class for all store errors.

    Catching StoreError catches every expected adapter failure.
    """

    pass


class AuthError(StoreError):
    """Access token could not be obtained.

    Raised when the service-account assertion cannot be signed or the token
    endpoint rejects the exchange. Not retryable: the credentials need fixing.
    """

    pass


class FetchError(StoreError):
    """Reading claims from a store failed.

    Fatal to a sync pass: reconciling against a missing side would propagate
    a partial view.
    """

    pass


class WriteError(StoreError):
    """A single item could not be written.

    Non-fatal: the item is skipped and counted as not updated.
    """

    def __init__(self, message: str, item_id: str | None = None):
        """Initialize WriteError.

        Args:
            message: Error description.
            item_id: The item whose write failed, when known.
        """
        super().__init__(message)
        self.item_id = item_id


class LogError(StoreError):
    """Writing the audit log row failed. Always swallowed by the caller."""

    pass


class TransientStoreError(StoreError):
    """Temporary failure (network, timeout, 5xx). Safe to retry."""

    pass


class RateLimitedError(TransientStoreError):
    """Backend answered 429.

    May carry a retry_after_seconds hint from the Retry-After header.
    """

    def __init__(self, message: str, retry_after_seconds: float | None = None):
        """Initialize RateLimitedError.

        Args:
            message: Error description from the backend.
            retry_after_seconds: Optional hint on when to retry.
        """
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds


def classify_http_error(error: Exception) -> StoreError:
    """Map httpx exceptions to the store error taxonomy.

    Returns a StoreError subclass instance (does not raise).
    The caller is responsible for raising via ``raise classify_http_error(e) from e``.

    Args:
        error: Exception raised by httpx or by ``raise_for_status()``.

    Returns:
        RateLimitedError for 429, TransientStoreError for 5xx and transport
        failures, AuthError for 401/403, plain StoreError otherwise.
    """
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        body = error.response.text
        message = f"HTTP {status}: {body}" if body else f"HTTP {status}"
        if status == 429:
            retry_after = None
            retry_header = error.response.headers.get("retry-after")
            if retry_header is not None:
                with contextlib.suppress(ValueError):
                    retry_after = float(retry_header)
            return RateLimitedError(message, retry_after_seconds=retry_after)
        if status >= 500:
            return TransientStoreError(message)
        if status in (401, 403):
            return AuthError(message)
        return StoreError(message)

    if isinstance(error, httpx.TransportError):
        return TransientStoreError(str(error) or type(error).__name__)

    return StoreError(str(error))
