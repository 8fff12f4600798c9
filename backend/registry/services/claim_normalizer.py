"""Claim normalizer.

Interprets the raw bytes stored under a claim key. Every code path that reads
claims from the KV namespace (claim listing, verification, sync) goes through
``normalize_claim`` so the same stored value always means the same thing.

Rules:
- JSON object: known fields mapped; missing ``verified`` -> False, missing
  ``product`` -> "", missing ``lastModified``/``timestamp`` -> now.
- JSON string: legacy claim whose claimer is the decoded string.
- Anything else (plain text, numbers, arrays): legacy claim whose claimer is
  the raw text.
"""

import json
import math
import time
from typing import Any

from registry.services.claim_types import (
    ClaimRecord,
    ClaimSource,
    LegacyClaim,
    StoredClaim,
    StructuredClaim,
)

# Field names accepted for the modification timestamp, in priority order.
# "timestamp" is what claims written before the sync worker carried.
_TIMESTAMP_FIELDS = ("lastModified", "timestamp")


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def _coerce_timestamp(value: Any) -> int | None:
    """Return a positive epoch-millis int, or None if value is not one.

    Infinity and NaN (which JSON decoding produces for "Infinity", "NaN" or
    overflowing literals like 1e400) count as missing.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, int | float):
        return int(value) if value > 0 else None
    return None


def _coerce_verified(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().upper() == "TRUE"
    return bool(value)


def parse_stored_claim(raw: str) -> StoredClaim:
    """Classify a raw stored value as a legacy or structured claim.

    Args:
        raw: Value text as read from the KV store.

    Returns:
        LegacyClaim or StructuredClaim.
    """
    try:
        decoded = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return LegacyClaim(claimer=raw)

    if isinstance(decoded, str):
        return LegacyClaim(claimer=decoded)
    if not isinstance(decoded, dict):
        return LegacyClaim(claimer=raw)

    last_modified = None
    for name in _TIMESTAMP_FIELDS:
        last_modified = _coerce_timestamp(decoded.get(name))
        if last_modified is not None:
            break

    return StructuredClaim(
        claimer=str(decoded.get("claimer") or ""),
        email=str(decoded.get("email") or ""),
        verified=_coerce_verified(decoded.get("verified", False)),
        product=str(decoded.get("product") or ""),
        last_modified=last_modified,
    )


def to_claim_record(
    item_id: str,
    claim: StoredClaim,
    *,
    now: int,
    source: ClaimSource | None = None,
) -> ClaimRecord:
    """Convert a parsed stored claim into the canonical record.

    Args:
        item_id: Key the claim was stored under.
        claim: Parsed legacy or structured claim.
        now: Epoch millis used when the claim carries no timestamp.
        source: Provenance tag.

    Returns:
        ClaimRecord with every field populated.
    """
    if isinstance(claim, LegacyClaim):
        return ClaimRecord(
            item_id=item_id,
            claimer=claim.claimer,
            email="",
            verified=False,
            product="",
            last_modified=now,
            source=source,
        )
    return ClaimRecord(
        item_id=item_id,
        claimer=claim.claimer,
        email=claim.email,
        verified=claim.verified,
        product=claim.product,
        last_modified=claim.last_modified if claim.last_modified is not None else now,
        source=source,
    )


def normalize_claim(
    item_id: str,
    raw: str,
    *,
    now: int | None = None,
    source: ClaimSource | None = None,
) -> ClaimRecord:
    """Parse and normalize a raw stored value in one step.

    Args:
        item_id: Key the value was stored under.
        raw: Value text as read from the KV store.
        now: Epoch millis for missing timestamps. Defaults to wall-clock now.
        source: Provenance tag.

    Returns:
        Canonical ClaimRecord.
    """
    return to_claim_record(
        item_id,
        parse_stored_claim(raw),
        now=now if now is not None else now_ms(),
        source=source,
    )


def claim_to_storage_json(record: ClaimRecord) -> str:
    """Serialize a record to the JSON text stored in the KV namespace."""
    return json.dumps(record.to_storage_dict())
