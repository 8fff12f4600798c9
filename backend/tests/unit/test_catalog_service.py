"""Tests for the public catalog."""

import pytest

from registry.adapters.errors import FetchError, StoreError
from registry.repositories.sheet_claim_repository import SheetClaimRepository
from registry.services.catalog_service import list_catalog
from tests.conftest import FakeSheetsClient, sheet_row


class TestListCatalog:
    """Tests for list_catalog."""

    async def test_masks_claimer_emails(
        self, sheets_client: FakeSheetsClient, sheet_repository: SheetClaimRepository
    ) -> None:
        sheets_client.rows = [
            sheet_row("crib", product="Crib", claimer="Jane", email="jane@example.com"),
            sheet_row("pram", product="Pram"),
        ]

        items = await list_catalog(sheet_repository)

        assert [item.id for item in items] == ["crib", "pram"]
        assert items[0].claimed_by == "Jane"
        assert items[0].claimer_email == "ja**@example.com"
        assert items[1].claimer_email == ""

    async def test_read_failure(
        self, sheets_client: FakeSheetsClient, sheet_repository: SheetClaimRepository
    ) -> None:
        sheets_client.read_error = StoreError("HTTP 500")

        with pytest.raises(FetchError):
            await list_catalog(sheet_repository)
