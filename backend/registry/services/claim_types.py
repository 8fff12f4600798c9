"""Claim type definitions.

A claim records that a registry item has been reserved by a named person.
Two stored shapes exist side by side in the KV namespace:

1. **Legacy claims**: the bare claimer name, written before claims carried
   contact details.
2. **Structured claims**: a JSON object with claimer, email, verified flag,
   product name and a modification timestamp.

Both normalize to one canonical ClaimRecord. The ``source`` tag is transient
provenance added while reconciling and is never persisted.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ClaimSource(str, Enum):
    """Store a ClaimRecord was read from."""

    KV = "kv"
    SHEET = "sheet"


@dataclass(frozen=True)
class LegacyClaim:
    """A claim stored as a bare claimer name."""

    claimer: str


@dataclass(frozen=True)
class StructuredClaim:
    """A claim stored as a JSON object.

    Attributes:
        claimer: Display name of the person claiming the item.
        email: Claimer's contact email.
        verified: Whether email ownership has been confirmed.
        product: Human-readable product name ("" when absent).
        last_modified: Epoch millis, None when the stored value had none.
    """

    claimer: str
    email: str = ""
    verified: bool = False
    product: str = ""
    last_modified: int | None = None


StoredClaim = LegacyClaim | StructuredClaim


@dataclass(frozen=True)
class ClaimRecord:
    """Canonical claim, identical in shape for both stores.

    Attributes:
        item_id: Registry item identifier (key in both stores).
        claimer: Display name of the person claiming the item.
        email: Claimer's contact email (mask before exposing).
        verified: Whether email ownership has been confirmed.
        product: Human-readable product name, may be "".
        last_modified: Epoch millis; the authority for conflict resolution.
        source: Provenance tag set by readers, never persisted.
    """

    item_id: str
    claimer: str
    email: str = ""
    verified: bool = False
    product: str = ""
    last_modified: int = 0
    source: ClaimSource | None = None

    def to_storage_dict(self) -> dict[str, Any]:
        """Return the persisted JSON shape (camelCase keys, no source tag)."""
        return {
            "claimer": self.claimer,
            "email": self.email,
            "verified": self.verified,
            "product": self.product,
            "lastModified": self.last_modified,
        }
