"""Claim email verification.

Flow:
1. create_verification: issue a 24-hour token for an unverified structured
   claim and email the claimer a link ``{origin}/verify?token=...``.
2. verify_token: check the token, mark the claim verified with a fresh
   ``lastModified`` (so the next sync pass pushes it to the sheet), consume
   the token and send a confirmation email.
3. resend_verification: issue a new token for the claim's own address.

Emails are best effort. A failed verification email is reported to the
caller, but the claim and token stay in place; a failed confirmation email
is only logged.
"""

import logging
from dataclasses import replace

import httpx

from registry.adapters.kv.cloudflare import CloudflareKVStore
from registry.adapters.retry import RetryPolicy
from registry.core.config import Settings, settings
from registry.core.email import send_claim_confirmation_email, send_verification_email
from registry.core.errors import (
    ConflictError,
    EmailDeliveryError,
    NotFoundError,
    ValidationError,
)
from registry.repositories.kv_claim_repository import KVClaimRepository
from registry.repositories.verification_token_repository import (
    VerificationToken,
    VerificationTokenRepository,
)
from registry.services.claim_normalizer import now_ms
from registry.services.claim_types import ClaimRecord, LegacyClaim

logger = logging.getLogger(__name__)

DEFAULT_ITEM_NAME = "Baby Registry Item"


def build_verification_repositories(
    config: Settings, client: httpx.AsyncClient
) -> tuple[KVClaimRepository, VerificationTokenRepository]:
    """Wire the claims and verification-token namespaces from settings.

    Args:
        config: Loaded application settings.
        client: Shared httpx client, owned by the caller.

    Returns:
        (claims repository, token repository) over Cloudflare KV.
    """
    retry_policy = RetryPolicy.from_settings(config)

    def _store(namespace_id: str) -> CloudflareKVStore:
        return CloudflareKVStore(
            client,
            account_id=config.cloudflare_account_id,
            namespace_id=namespace_id,
            api_token=config.cloudflare_api_token.get_secret_value(),
            base_url=config.cloudflare_api_base_url,
            retry_policy=retry_policy,
        )

    return (
        KVClaimRepository(
            _store(config.claims_namespace_id),
            reserved_prefixes=config.kv_reserved_prefixes,
        ),
        VerificationTokenRepository(_store(config.verification_tokens_namespace_id)),
    )


def build_verification_link(origin: str | None, token: str) -> str:
    """Build the link the claimer clicks to verify."""
    base = (origin or settings.base_url).rstrip("/")
    return f"{base}/verify?token={token}"


async def _issue_and_send(
    tokens: VerificationTokenRepository,
    *,
    item_id: str,
    email: str,
    item_name: str,
    origin: str | None,
) -> VerificationToken:
    token = await tokens.create(item_id=item_id, email=email)
    result = await send_verification_email(
        to_email=email,
        item_name=item_name,
        verification_link=build_verification_link(origin, token.token),
    )
    if not result.success:
        logger.warning(
            "Verification email for item %s not delivered: %s", item_id, result.error
        )
        raise EmailDeliveryError(f"Failed to send verification email: {result.error}")
    return token


async def create_verification(
    claims: KVClaimRepository,
    tokens: VerificationTokenRepository,
    *,
    item_id: str,
    email: str,
    item_name: str | None = None,
    origin: str | None = None,
) -> VerificationToken:
    """Start verification of a claim.

    Args:
        claims: Claims namespace.
        tokens: Verification-token namespace.
        item_id: Claimed item.
        email: Address to verify (must match the claim).
        item_name: Product name for the email; falls back to the claim's.
        origin: Site origin for the link; falls back to settings.base_url.

    Returns:
        The issued token.

    Raises:
        ValidationError: If item_id or email is blank, the claim has no
            email, or email does not match the claim.
        NotFoundError: If the item has no claim.
        ConflictError: If the claim is a legacy claim or already verified.
        EmailDeliveryError: If the email could not be sent.
    """
    if not item_id or not email:
        raise ValidationError("Missing required fields: email and itemId")

    stored = await claims.get_stored(item_id)
    if stored is None:
        raise NotFoundError("Claim", item_id)
    if isinstance(stored, LegacyClaim):
        raise ConflictError(
            code="LEGACY_CLAIM",
            message="Cannot verify claims stored in the old format",
        )
    if stored.verified:
        raise ConflictError(
            code="ALREADY_VERIFIED", message="Claim is already verified"
        )
    if not stored.email:
        raise ValidationError("Claim has no email address to verify")
    if stored.email != email:
        raise ValidationError("Email does not match claim")

    return await _issue_and_send(
        tokens,
        item_id=item_id,
        email=email,
        item_name=item_name or stored.product or DEFAULT_ITEM_NAME,
        origin=origin,
    )


async def verify_token(
    claims: KVClaimRepository,
    tokens: VerificationTokenRepository,
    *,
    token: str,
) -> ClaimRecord:
    """Consume a token and mark its claim verified.

    Args:
        claims: Claims namespace.
        tokens: Verification-token namespace.
        token: Token from the email link.

    Returns:
        The verified claim as stored.

    Raises:
        ValidationError: If the token is blank, unknown, expired, or its
            email no longer matches the claim.
        NotFoundError: If the claim has disappeared.
    """
    if not token:
        raise ValidationError("Token is required")

    pending = await tokens.get(token)
    if pending is None:
        raise ValidationError("Invalid or expired token")
    if pending.is_expired():
        await tokens.delete(token)
        raise ValidationError("Token has expired")

    claim = await claims.get(pending.item_id)
    if claim is None:
        raise NotFoundError("Claim", pending.item_id)
    if claim.email != pending.email:
        logger.info("Token email does not match claim for item %s", pending.item_id)
        raise ValidationError("Email does not match claim")

    verified = replace(claim, verified=True, last_modified=now_ms(), source=None)
    await claims.put(verified)
    await tokens.delete(token)
    logger.info("Verified claim for item %s", pending.item_id)

    result = await send_claim_confirmation_email(
        to_email=pending.email,
        item_name=claim.product or DEFAULT_ITEM_NAME,
    )
    if not result.success:
        logger.warning(
            "Confirmation email for item %s not delivered: %s",
            pending.item_id,
            result.error,
        )
    return verified


async def resend_verification(
    claims: KVClaimRepository,
    tokens: VerificationTokenRepository,
    *,
    item_id: str,
    origin: str | None = None,
) -> VerificationToken:
    """Issue a new token for an existing structured claim.

    Raises:
        ValidationError: If item_id is blank or the claim has no email.
        NotFoundError: If the item has no claim.
        ConflictError: If the claim is a legacy claim or already verified.
        EmailDeliveryError: If the email could not be sent.
    """
    if not item_id:
        raise ValidationError("Item ID is required")

    stored = await claims.get_stored(item_id)
    if stored is None:
        raise NotFoundError("Claim", item_id)
    if isinstance(stored, LegacyClaim):
        raise ConflictError(
            code="LEGACY_CLAIM",
            message="Cannot resend verification for old format claims",
        )
    if stored.verified:
        raise ConflictError(
            code="ALREADY_VERIFIED", message="Claim is already verified"
        )
    if not stored.email:
        raise ValidationError("Claim has no email address to verify")

    return await _issue_and_send(
        tokens,
        item_id=item_id,
        email=stored.email,
        item_name=stored.product or DEFAULT_ITEM_NAME,
        origin=origin,
    )
