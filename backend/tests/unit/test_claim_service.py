"""Tests for claim listing and claiming."""

import json

import pytest

from registry.adapters.kv.memory import InMemoryKeyValueStore
from registry.core.errors import ConflictError, ValidationError
from registry.repositories.kv_claim_repository import KVClaimRepository
from registry.services.claim_service import (
    claim_item,
    list_claims,
    mask_email,
    public_claim_view,
)
from registry.services.claim_types import ClaimRecord, ClaimSource
from tests.conftest import stored_claim

NOW = 1_700_000_000_000


class TestMaskEmail:
    """Tests for email masking."""

    @pytest.mark.parametrize(
        ("email", "expected"),
        [
            ("jane.doe@example.com", "ja******@example.com"),
            ("abc@x.io", "ab*@x.io"),
            ("ab@x.io", "ab@x.io"),
            ("a@x.io", "a@x.io"),
            ("", ""),
            ("not-an-email", "not-an-email"),
        ],
    )
    def test_mask(self, email: str, expected: str) -> None:
        assert mask_email(email) == expected

    def test_public_view_masks_and_drops_source(self) -> None:
        record = ClaimRecord(
            item_id="crib",
            claimer="Jane",
            email="jane@example.com",
            last_modified=1,
            source=ClaimSource.KV,
        )

        view = public_claim_view(record)

        assert view["email"] == "ja**@example.com"
        assert "source" not in view


class TestListClaims:
    """Tests for listing claims."""

    async def test_lists_masked_claims(
        self, kv_store: InMemoryKeyValueStore, kv_repository: KVClaimRepository
    ) -> None:
        await kv_store.put("crib", "Alice")
        await kv_store.put(
            "pram", stored_claim(claimer="Bob", email="bob@example.com", lastModified=9)
        )
        await kv_store.put("ratelimit:10.0.0.1", "4")

        claims = await list_claims(kv_repository, now=NOW)

        assert claims == {
            "crib": {
                "claimer": "Alice",
                "email": "",
                "verified": False,
                "product": "",
                "lastModified": NOW,
            },
            "pram": {
                "claimer": "Bob",
                "email": "bo*@example.com",
                "verified": False,
                "product": "",
                "lastModified": 9,
            },
        }


class TestClaimItem:
    """Tests for recording claims."""

    async def test_stores_unverified_claim(
        self, kv_store: InMemoryKeyValueStore, kv_repository: KVClaimRepository
    ) -> None:
        result = await claim_item(
            kv_repository,
            item_id=" crib ",
            claimer=" Jane ",
            email="jane@example.com",
            product="Wood Crib",
        )

        assert result["item"] == "crib"
        assert result["email"] == "ja**@example.com"
        stored = json.loads(await kv_store.get("crib"))
        assert stored["claimer"] == "Jane"
        assert stored["email"] == "jane@example.com"
        assert stored["verified"] is False
        assert stored["product"] == "Wood Crib"
        assert stored["lastModified"] > NOW

    async def test_missing_fields(self, kv_repository: KVClaimRepository) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await claim_item(kv_repository, item_id="crib", claimer=" ", email="")

        assert exc_info.value.status_code == 400
        assert {detail["field"] for detail in exc_info.value.details} == {
            "claimer",
            "email",
        }

    async def test_unverified_claim_can_be_replaced(
        self, kv_store: InMemoryKeyValueStore, kv_repository: KVClaimRepository
    ) -> None:
        await kv_store.put("crib", stored_claim(claimer="Old", verified=False))

        await claim_item(
            kv_repository, item_id="crib", claimer="New", email="new@example.com"
        )

        assert json.loads(await kv_store.get("crib"))["claimer"] == "New"

    async def test_verified_claim_is_final(
        self, kv_store: InMemoryKeyValueStore, kv_repository: KVClaimRepository
    ) -> None:
        await kv_store.put("crib", stored_claim(claimer="Old", verified=True))

        with pytest.raises(ConflictError) as exc_info:
            await claim_item(
                kv_repository, item_id="crib", claimer="New", email="new@example.com"
            )

        assert exc_info.value.code == "ALREADY_CLAIMED"
        assert exc_info.value.status_code == 409
