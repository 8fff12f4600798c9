"""Google service-account token exchange.

Signs an RS256 JWT assertion with the service account's private key and
exchanges it at the OAuth token endpoint (JWT-bearer grant) for a short-lived
access token.
"""

import asyncio
import time
from datetime import UTC, datetime, timedelta

import httpx
import jwt
import pydantic
import structlog
from pydantic import BaseModel, ConfigDict

from registry.adapters.errors import AuthError

logger = structlog.get_logger()

_DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"
_JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"

# Assertion lifetime; Google caps it at one hour
_ASSERTION_LIFETIME = timedelta(hours=1)

# Refresh a cached token this long before it expires
_EXPIRY_MARGIN_SECONDS = 60.0


class ServiceAccountCredentials(BaseModel):
    """The fields of a Google service-account key file used for signing.

    Attributes:
        client_email: Service account identity (JWT issuer).
        private_key: PEM-encoded PKCS#8 RSA private key.
        private_key_id: Key identifier placed in the JWT header.
        token_uri: OAuth token endpoint.
    """

    model_config = ConfigDict(extra="ignore")

    client_email: str
    private_key: str
    private_key_id: str = ""
    token_uri: str = _DEFAULT_TOKEN_URI

    @classmethod
    def from_json(cls, raw: str) -> "ServiceAccountCredentials":
        """Parse a service-account JSON document.

        Args:
            raw: Key file contents.

        Returns:
            Parsed credentials.

        Raises:
            AuthError: If the document is not valid JSON or lacks fields.
        """
        try:
            return cls.model_validate_json(raw)
        except pydantic.ValidationError as e:
            raise AuthError(f"Invalid service account key: {e.error_count()} error(s)") from e


def build_assertion(
    credentials: ServiceAccountCredentials,
    *,
    scope: str,
    now: datetime | None = None,
) -> str:
    """Create the signed JWT assertion for the token exchange.

    Args:
        credentials: Service account signing material.
        scope: Space-separated OAuth scopes.
        now: Issued-at time. Defaults to now.

    Returns:
        Encoded RS256 JWT string.

    Raises:
        AuthError: If the private key cannot be loaded or used for signing.
    """
    issued_at = now or datetime.now(UTC)
    payload = {
        "iss": credentials.client_email,
        "scope": scope,
        "aud": credentials.token_uri,
        "iat": issued_at,
        "exp": issued_at + _ASSERTION_LIFETIME,
    }
    headers = {"kid": credentials.private_key_id} if credentials.private_key_id else None
    try:
        return jwt.encode(
            payload, credentials.private_key, algorithm="RS256", headers=headers
        )
    except (ValueError, TypeError, jwt.PyJWTError) as e:
        raise AuthError(f"Failed to sign service account assertion: {e}") from e


class GoogleAccessTokenProvider:
    """Obtains bearer tokens for one service account.

    A token is reused for the lifetime of this instance until it nears
    expiry. The sync orchestrator builds a new provider per pass, so tokens
    never outlive a pass.

    Args:
        client: Shared httpx client (owned by the caller).
        credentials: Parsed credentials, or the raw key file JSON. Raw JSON
            is parsed on first use so a malformed key surfaces as AuthError
            from get_access_token rather than at construction.
        scope: OAuth scope to request.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        credentials: ServiceAccountCredentials | str,
        *,
        scope: str,
    ) -> None:
        self._client = client
        self._raw_credentials = credentials
        self._scope = scope
        self._token: str | None = None
        self._expires_at = 0.0
        self._lock = asyncio.Lock()

    async def get_access_token(self) -> str:
        """Return a valid access token, exchanging a new assertion if needed.

        Returns:
            OAuth2 bearer token.

        Raises:
            AuthError: If signing fails or the exchange is rejected.
        """
        async with self._lock:
            if self._token is not None and time.monotonic() < self._expires_at:
                return self._token

            credentials = self._credentials()
            assertion = build_assertion(credentials, scope=self._scope)
            try:
                response = await self._client.post(
                    credentials.token_uri,
                    data={"grant_type": _JWT_BEARER_GRANT, "assertion": assertion},
                )
            except httpx.HTTPError as e:
                logger.error(
                    "google_token_exchange_failed",
                    client_email=credentials.client_email,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise AuthError(f"Token exchange request failed: {e}") from e

            if not response.is_success:
                logger.error(
                    "google_token_exchange_rejected",
                    client_email=credentials.client_email,
                    status_code=response.status_code,
                )
                raise AuthError(
                    f"Failed to get access token: HTTP {response.status_code} {response.text}"
                )

            body = response.json()
            token = body.get("access_token")
            if not token:
                raise AuthError("Token endpoint response has no access_token")

            expires_in = float(body.get("expires_in", 3600))
            self._token = token
            self._expires_at = time.monotonic() + max(
                expires_in - _EXPIRY_MARGIN_SECONDS, 0.0
            )
            logger.info(
                "google_token_exchanged",
                client_email=credentials.client_email,
                expires_in=expires_in,
            )
            return token

    def _credentials(self) -> ServiceAccountCredentials:
        if isinstance(self._raw_credentials, str):
            self._raw_credentials = ServiceAccountCredentials.from_json(
                self._raw_credentials
            )
        return self._raw_credentials
