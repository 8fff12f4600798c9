"""Repository for claim verification tokens.

Single-use tokens stored in their own KV namespace with a 24-hour TTL. The
record also carries its own expiry so a token read before the KV TTL has
removed it is still rejected once stale.
"""

import json
import logging
import uuid
from dataclasses import dataclass

from registry.adapters.kv.base import KeyValueStore
from registry.services.claim_normalizer import now_ms

logger = logging.getLogger(__name__)

TOKEN_TTL_SECONDS = 24 * 60 * 60


@dataclass(frozen=True)
class VerificationToken:
    """A pending claim verification.

    Attributes:
        token: Opaque random identifier sent in the email link.
        item_id: Claimed item.
        email: Address the token was sent to.
        expires_at: Epoch millis after which the token is invalid.
    """

    token: str
    item_id: str
    email: str
    expires_at: int

    def is_expired(self, now: int | None = None) -> bool:
        """Whether the token is past its expiry."""
        return (now if now is not None else now_ms()) > self.expires_at


class VerificationTokenRepository:
    """Create, read and consume verification tokens.

    Args:
        store: The verification-token namespace.
        ttl_seconds: Token lifetime.
    """

    def __init__(
        self, store: KeyValueStore, *, ttl_seconds: int = TOKEN_TTL_SECONDS
    ) -> None:
        self._store = store
        self._ttl_seconds = ttl_seconds

    async def create(self, *, item_id: str, email: str) -> VerificationToken:
        """Issue and store a new token.

        Args:
            item_id: Claimed item.
            email: Claimer address.

        Returns:
            The stored VerificationToken.
        """
        token = VerificationToken(
            token=str(uuid.uuid4()),
            item_id=item_id,
            email=email,
            expires_at=now_ms() + self._ttl_seconds * 1000,
        )
        await self._store.put(
            token.token,
            json.dumps(
                {
                    "itemId": token.item_id,
                    "email": token.email,
                    "expiresAt": token.expires_at,
                }
            ),
            ttl_seconds=self._ttl_seconds,
        )
        return token

    async def get(self, token: str) -> VerificationToken | None:
        """Look up a token; None if unknown or unreadable."""
        raw = await self._store.get(token)
        if raw is None:
            return None
        try:
            record = json.loads(raw)
            return VerificationToken(
                token=token,
                item_id=str(record["itemId"]),
                email=str(record["email"]),
                expires_at=int(record["expiresAt"]),
            )
        except (json.JSONDecodeError, KeyError, TypeError, ValueError, OverflowError):
            logger.warning("Discarding malformed verification token record")
            return None

    async def delete(self, token: str) -> None:
        """Remove a token (consumed or expired)."""
        await self._store.delete(token)
