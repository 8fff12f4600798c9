import json
import re
from typing import Any

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from registry.adapters.errors import StoreError
from registry.adapters.kv.memory import InMemoryKeyValueStore
from registry.repositories.kv_claim_repository import KVClaimRepository
from registry.repositories.sheet_claim_repository import SheetClaimRepository
from registry.repositories.verification_token_repository import (
    VerificationTokenRepository,
)

SHEET_HEADER = [
    "ID",
    "Product",
    "ProductZH",
    "Category",
    "Subcategory",
    "Price",
    "ImageURL",
    "URL",
    "ClaimedBy",
    "ClaimerEmail",
    "Verified",
    "LastModified",
]

_ROW_RANGE_RE = re.compile(r"^API!A(\d+):L\1$")


class FakeSheetsClient:
    """In-memory stand-in for SheetsClient over an "API" and a "Logs" tab.

    ``rows`` holds the claims tab below the header, so rows[0] is sheet row 2.
    Failure hooks raise the configured error from the matching call.
    """

    def __init__(self, rows: list[list[str]] | None = None) -> None:
        self.rows: list[list[str]] = [list(row) for row in rows or []]
        self.log_rows: list[list[Any]] = []
        self.read_calls: list[str] = []
        self.update_calls: list[tuple[str, list[list[Any]]]] = []
        self.append_calls: list[tuple[str, list[list[Any]]]] = []
        self.auth_error: Exception | None = None
        self.read_error: Exception | None = None
        self.append_error: Exception | None = None
        self.log_error: Exception | None = None
        self.failing_rows: set[int] = set()

    async def authenticate(self) -> str:
        if self.auth_error is not None:
            raise self.auth_error
        return "fake-token"

    async def read_range(self, cell_range: str) -> list[list[str]]:
        await self.authenticate()
        self.read_calls.append(cell_range)
        if self.read_error is not None:
            raise self.read_error
        rows = [list(row) for row in self.rows]
        if cell_range == "API!A1:L":
            return [list(SHEET_HEADER), *rows]
        return rows

    async def update_range(self, cell_range: str, rows: list[list[Any]]) -> None:
        await self.authenticate()
        self.update_calls.append((cell_range, rows))
        match = _ROW_RANGE_RE.match(cell_range)
        assert match is not None, cell_range
        row_number = int(match.group(1))
        if row_number in self.failing_rows:
            raise StoreError(f"HTTP 500: row {row_number}")
        self.rows[row_number - 2] = [str(cell) for cell in rows[0]]

    async def append_rows(self, cell_range: str, rows: list[list[Any]]) -> None:
        await self.authenticate()
        self.append_calls.append((cell_range, rows))
        if cell_range.startswith("Logs!"):
            if self.log_error is not None:
                raise self.log_error
            self.log_rows.extend(rows)
            return
        if self.append_error is not None:
            raise self.append_error
        self.rows.extend([str(cell) for cell in row] for row in rows)


def sheet_row(
    item_id: str,
    *,
    product: str = "",
    claimer: str = "",
    email: str = "",
    verified: str = "FALSE",
    last_modified: str = "",
) -> list[str]:
    """Build a 12-column claims row."""
    return [
        item_id,
        product,
        "",
        "Nursery",
        "",
        "$10",
        "",
        "",
        claimer,
        email,
        verified,
        last_modified,
    ]


def stored_claim(**fields: Any) -> str:
    """Serialize a structured claim the way the KV store holds it."""
    return json.dumps(fields)


@pytest.fixture
def kv_store() -> InMemoryKeyValueStore:
    """Empty claims namespace."""
    return InMemoryKeyValueStore()


@pytest.fixture
def token_store() -> InMemoryKeyValueStore:
    """Empty verification-token namespace."""
    return InMemoryKeyValueStore()


@pytest.fixture
def kv_repository(kv_store: InMemoryKeyValueStore) -> KVClaimRepository:
    return KVClaimRepository(kv_store)


@pytest.fixture
def token_repository(
    token_store: InMemoryKeyValueStore,
) -> VerificationTokenRepository:
    return VerificationTokenRepository(token_store)


@pytest.fixture
def sheets_client() -> FakeSheetsClient:
    """Empty spreadsheet."""
    return FakeSheetsClient()


@pytest.fixture
def sheet_repository(sheets_client: FakeSheetsClient) -> SheetClaimRepository:
    return SheetClaimRepository(sheets_client)  # type: ignore[arg-type]


@pytest.fixture(scope="session")
def rsa_private_key() -> rsa.RSAPrivateKey:
    """RSA key for signing service-account assertions in tests."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def rsa_private_key_pem(rsa_private_key: rsa.RSAPrivateKey) -> str:
    return rsa_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


@pytest.fixture(scope="session")
def rsa_public_key_pem(rsa_private_key: rsa.RSAPrivateKey) -> str:
    return (
        rsa_private_key.public_key()
        .public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        .decode()
    )


@pytest.fixture
def service_account_json(rsa_private_key_pem: str) -> str:
    """Service-account key file contents for a test account."""
    return json.dumps(
        {
            "type": "service_account",
            "project_id": "registry-test",
            "private_key_id": "key-1",
            "private_key": rsa_private_key_pem,
            "client_email": "sync@registry-test.iam.gserviceaccount.com",
            "token_uri": "https://oauth2.googleapis.com/token",
        }
    )
