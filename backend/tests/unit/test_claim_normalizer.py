"""Tests for the claim normalizer.

Stored values come in two shapes (bare claimer name, JSON object) and must
normalize the same way for every reader.
"""

import json

import pytest

from registry.services.claim_normalizer import (
    claim_to_storage_json,
    normalize_claim,
    parse_stored_claim,
    to_claim_record,
)
from registry.services.claim_types import (
    ClaimRecord,
    ClaimSource,
    LegacyClaim,
    StructuredClaim,
)

NOW = 1_700_000_000_000


class TestParseStoredClaim:
    """Tests for classifying raw stored values."""

    def test_plain_text_is_legacy(self) -> None:
        assert parse_stored_claim("Alice") == LegacyClaim(claimer="Alice")

    def test_json_string_is_legacy_with_decoded_name(self) -> None:
        assert parse_stored_claim('"Alice"') == LegacyClaim(claimer="Alice")

    @pytest.mark.parametrize("raw", ["42", "[1, 2]", "true", "null"])
    def test_non_object_json_is_legacy_with_raw_text(self, raw: str) -> None:
        assert parse_stored_claim(raw) == LegacyClaim(claimer=raw)

    def test_object_maps_known_fields(self) -> None:
        raw = json.dumps(
            {
                "claimer": "Bob",
                "email": "bob@example.com",
                "verified": True,
                "product": "Crib",
                "lastModified": 1234,
            }
        )

        assert parse_stored_claim(raw) == StructuredClaim(
            claimer="Bob",
            email="bob@example.com",
            verified=True,
            product="Crib",
            last_modified=1234,
        )

    def test_object_defaults_missing_fields(self) -> None:
        claim = parse_stored_claim('{"claimer": "Bob"}')

        assert claim == StructuredClaim(claimer="Bob")
        assert claim.last_modified is None

    def test_accepts_legacy_timestamp_field(self) -> None:
        claim = parse_stored_claim('{"claimer": "Bob", "timestamp": 555}')

        assert isinstance(claim, StructuredClaim)
        assert claim.last_modified == 555

    def test_last_modified_wins_over_timestamp(self) -> None:
        claim = parse_stored_claim(
            '{"claimer": "Bob", "lastModified": 900, "timestamp": 555}'
        )

        assert claim.last_modified == 900

    @pytest.mark.parametrize(
        "value", [0, -5, "soon", None, True, float("inf"), "inf", "-Infinity"]
    )
    def test_unusable_timestamp_is_dropped(self, value: object) -> None:
        claim = parse_stored_claim(json.dumps({"claimer": "Bob", "lastModified": value}))

        assert claim.last_modified is None

    @pytest.mark.parametrize(
        "raw",
        [
            '{"claimer": "Bob", "lastModified": Infinity}',
            '{"claimer": "Bob", "lastModified": 1e400}',
            '{"claimer": "Bob", "lastModified": NaN}',
        ],
    )
    def test_non_finite_json_timestamp_is_dropped(self, raw: str) -> None:
        claim = parse_stored_claim(raw)

        assert isinstance(claim, StructuredClaim)
        assert claim.claimer == "Bob"
        assert claim.last_modified is None

    def test_non_finite_timestamp_defaults_to_now(self) -> None:
        record = normalize_claim(
            "crib", '{"claimer": "Bob", "lastModified": 1e400}', now=NOW
        )

        assert record.last_modified == NOW

    def test_numeric_string_timestamp_is_accepted(self) -> None:
        claim = parse_stored_claim('{"claimer": "Bob", "lastModified": "1234"}')

        assert claim.last_modified == 1234

    def test_string_verified_flag(self) -> None:
        claim = parse_stored_claim('{"claimer": "Bob", "verified": "TRUE"}')

        assert claim.verified is True


class TestNormalizeClaim:
    """Tests for normalizing raw values into ClaimRecords."""

    def test_legacy_claim_gets_defaults(self) -> None:
        record = normalize_claim("crib", "Alice", now=NOW)

        assert record == ClaimRecord(
            item_id="crib",
            claimer="Alice",
            email="",
            verified=False,
            product="",
            last_modified=NOW,
        )

    def test_structured_claim_missing_timestamp_uses_now(self) -> None:
        record = normalize_claim("crib", '{"claimer": "Bob"}', now=NOW)

        assert record.last_modified == NOW

    def test_structured_claim_keeps_its_timestamp(self) -> None:
        record = normalize_claim(
            "crib", '{"claimer": "Bob", "lastModified": 42}', now=NOW
        )

        assert record.last_modified == 42

    def test_source_tag_is_applied(self) -> None:
        record = normalize_claim("crib", "Alice", now=NOW, source=ClaimSource.KV)

        assert record.source is ClaimSource.KV

    def test_defaults_now_to_wall_clock(self) -> None:
        record = normalize_claim("crib", "Alice")

        assert record.last_modified > NOW

    def test_to_claim_record_from_structured(self) -> None:
        claim = StructuredClaim(claimer="Bob", email="b@x.io", last_modified=7)

        record = to_claim_record("crib", claim, now=NOW, source=ClaimSource.SHEET)

        assert record.email == "b@x.io"
        assert record.last_modified == 7
        assert record.source is ClaimSource.SHEET


class TestClaimRecord:
    """Tests for the canonical record helpers."""

    def test_storage_json_omits_source(self) -> None:
        record = ClaimRecord(
            item_id="crib",
            claimer="Bob",
            email="bob@example.com",
            verified=True,
            product="Crib",
            last_modified=99,
            source=ClaimSource.SHEET,
        )

        assert json.loads(claim_to_storage_json(record)) == {
            "claimer": "Bob",
            "email": "bob@example.com",
            "verified": True,
            "product": "Crib",
            "lastModified": 99,
        }

    def test_stored_record_normalizes_back_to_itself(self) -> None:
        record = ClaimRecord(
            item_id="crib",
            claimer="Bob",
            email="bob@example.com",
            verified=True,
            product="Crib",
            last_modified=99,
        )

        assert normalize_claim("crib", claim_to_storage_json(record), now=NOW) == record
