"""Public registry catalog.

The catalog lives in the spreadsheet; this only reads it. Claim state shown
here is whatever the sheet holds, which the sync worker keeps current.
"""

from dataclasses import replace

from registry.repositories.sheet_claim_repository import (
    RegistryItem,
    SheetClaimRepository,
)
from registry.services.claim_service import mask_email


async def list_catalog(repository: SheetClaimRepository) -> list[RegistryItem]:
    """Return catalog items with claimer emails masked.

    Raises:
        AuthError: If the spreadsheet cannot be authenticated against.
        FetchError: If the catalog cannot be read.
    """
    items = await repository.read_catalog()
    return [
        replace(item, claimer_email=mask_email(item.claimer_email)) for item in items
    ]
