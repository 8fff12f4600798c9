"""Retry strategy for store operations.

Exponential backoff with jitter for transient KV and Sheets failures.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

from registry.adapters.errors import RateLimitedError, TransientStoreError

__all__ = ["RetryPolicy", "with_retries"]

if TYPE_CHECKING:
    from registry.core.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry settings for outbound store calls.

    Attributes:
        max_retries: Max retry attempts after the first call.
        retry_base_delay_ms: Base delay for exponential backoff.
        retry_max_delay_ms: Max delay cap for exponential backoff.
    """

    max_retries: int = 3
    retry_base_delay_ms: int = 500
    retry_max_delay_ms: int = 10000

    @classmethod
    def from_settings(cls, settings: "Settings") -> "RetryPolicy":
        """Build a policy from application settings.

        Args:
            settings: Loaded application settings.

        Returns:
            RetryPolicy mirroring the retry fields of settings.
        """
        return cls(
            max_retries=settings.max_retries,
            retry_base_delay_ms=settings.retry_base_delay_ms,
            retry_max_delay_ms=settings.retry_max_delay_ms,
        )


async def with_retries(
    func: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    retryable_errors: tuple[type[Exception], ...] = (TransientStoreError,),
) -> T:
    """Execute function with exponential backoff retry.

    Args:
        func: Async function to execute (no arguments).
        policy: Retry settings.
        retryable_errors: Tuple of error types that should trigger retry.

    Returns:
        Result from successful function execution.

    Raises:
        TransientStoreError: If all retries exhausted due to transient failures.
        RateLimitedError: If all retries exhausted due to rate limiting.
        RuntimeError: If retry loop exits unexpectedly without error or result.

    Note:
        If the error is a RateLimitedError with retry_after_seconds set,
        that value is used instead of exponential backoff.
    """
    last_error: Exception | None = None

    for attempt in range(policy.max_retries + 1):
        try:
            return await func()
        except retryable_errors as e:
            last_error = e

            if attempt == policy.max_retries:
                break

            if isinstance(e, RateLimitedError) and e.retry_after_seconds:
                delay = e.retry_after_seconds
            else:
                base_delay = policy.retry_base_delay_ms * (2**attempt)
                jitter = random.uniform(0, base_delay * 0.1)
                delay = min(base_delay + jitter, policy.retry_max_delay_ms) / 1000

            logger.warning(
                "Store error (attempt %d/%d): %s. Retrying in %.2fs",
                attempt + 1,
                policy.max_retries + 1,
                e,
                delay,
            )

            await asyncio.sleep(delay)

    if last_error is not None:
        raise last_error
    raise RuntimeError("Retry loop exited without error or result")
