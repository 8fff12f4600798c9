"""Claim listing and claiming.

Reads go through the same normalizer as the sync worker, so a stored claim
looks the same to visitors as it does to reconciliation. Emails are masked
before anything leaves this module.
"""

import logging
from typing import Any

from registry.core.errors import ConflictError, ValidationError
from registry.repositories.kv_claim_repository import KVClaimRepository
from registry.services.claim_normalizer import now_ms
from registry.services.claim_types import ClaimRecord

logger = logging.getLogger(__name__)


def mask_email(email: str) -> str:
    """Mask the local part of an address, keeping its first two characters.

    "jane.doe@example.com" -> "ja******@example.com". Local parts of two
    characters or fewer are left as is; strings without "@" are returned
    unchanged.
    """
    if not email:
        return ""
    local_part, sep, domain = email.partition("@")
    if not sep or not domain:
        return email
    if len(local_part) > 2:
        local_part = local_part[:2] + "*" * (len(local_part) - 2)
    return f"{local_part}@{domain}"


def public_claim_view(record: ClaimRecord) -> dict[str, Any]:
    """Render a claim for untrusted clients (email masked, no provenance)."""
    view = record.to_storage_dict()
    view["email"] = mask_email(record.email)
    return view


async def list_claims(
    repository: KVClaimRepository, *, now: int | None = None
) -> dict[str, dict[str, Any]]:
    """Return every claim keyed by item id, with masked emails.

    Args:
        repository: Claims namespace.
        now: Epoch millis reported for claims without a timestamp.

    Raises:
        FetchError: If the KV namespace cannot be read.
    """
    claims = await repository.list_all(now=now)
    return {item_id: public_claim_view(record) for item_id, record in claims.items()}


async def claim_item(
    repository: KVClaimRepository,
    *,
    item_id: str,
    claimer: str,
    email: str,
    product: str = "",
) -> dict[str, Any]:
    """Record an unverified claim on an item.

    An existing unverified claim is replaced (the newer claimer must verify
    their email); a verified claim is final.

    Args:
        repository: Claims namespace.
        item_id: Item being claimed.
        claimer: Display name.
        email: Contact address to verify.
        product: Optional product name for emails.

    Returns:
        Masked view of the stored claim, with ``item`` set to the item id.

    Raises:
        ValidationError: If item_id, claimer or email is blank.
        ConflictError: If the item already holds a verified claim.
    """
    item_id = item_id.strip()
    claimer = claimer.strip()
    email = email.strip()
    missing = [
        name
        for name, value in (("item", item_id), ("claimer", claimer), ("email", email))
        if not value
    ]
    if missing:
        raise ValidationError(
            "Missing required fields: item, claimer, and email",
            details=[{"field": name, "msg": "required"} for name in missing],
        )

    existing = await repository.get(item_id)
    if existing is not None and existing.verified:
        raise ConflictError(
            code="ALREADY_CLAIMED",
            message=f"Item '{item_id}' has already been claimed",
        )

    record = ClaimRecord(
        item_id=item_id,
        claimer=claimer,
        email=email,
        verified=False,
        product=product,
        last_modified=now_ms(),
    )
    await repository.put(record)
    logger.info("Stored claim for item %s", item_id)

    return {"item": item_id, **public_claim_view(record)}
