"""Repository for claims and audit rows held in the Google Sheet.

Claims tab layout (one row per item, columns A-L):

    0: item id | 1-7: product metadata | 8: claimer | 9: email |
    10: verified ("TRUE"/other) | 11: last modified (epoch millis)

Columns 1-7 belong to whoever curates the catalog; claim writes carry them
over unchanged from a fresh read of the row.

Logs tab layout (columns A-H): timestamp, status, kv total, sheet total,
updated in KV, updated in sheet, duration ("<n>ms"), error message.
"""

import asyncio
import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from registry.adapters.errors import AuthError, FetchError, LogError, StoreError, WriteError
from registry.adapters.sheets import SheetsClient
from registry.services.claim_normalizer import now_ms
from registry.services.claim_types import ClaimRecord, ClaimSource

logger = logging.getLogger(__name__)

COL_ITEM_ID = 0
COL_PRODUCT = 1
COL_CLAIMER = 8
COL_EMAIL = 9
COL_VERIFIED = 10
COL_LAST_MODIFIED = 11
ROW_WIDTH = 12

_LAST_COLUMN = "L"
_RANGE_START_RE = re.compile(r"^(?:(?P<sheet>[^!]+)!)?[A-Z]+(?P<row>\d+)?")
_LEADING_INT_RE = re.compile(r"^\s*(-?\d+)")


@dataclass(frozen=True)
class SyncLogEntry:
    """One audit row for the Logs tab.

    Attributes:
        timestamp: When the pass finished.
        success: Overall pass outcome.
        kv_total: Claims read from KV.
        sheet_total: Claims read from the sheet.
        updated_in_kv: Records written to KV.
        updated_in_sheet: Records written to the sheet.
        duration_ms: Pass duration in milliseconds.
        error_message: Captured error, "" when none.
    """

    timestamp: datetime
    success: bool
    kv_total: int
    sheet_total: int
    updated_in_kv: int
    updated_in_sheet: int
    duration_ms: int
    error_message: str = ""

    def to_row(self) -> list[str | int]:
        """Render the entry as the eight Logs columns."""
        iso = self.timestamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")
        return [
            iso,
            "SUCCESS" if self.success else "FAILURE",
            self.kv_total,
            self.sheet_total,
            self.updated_in_kv,
            self.updated_in_sheet,
            f"{self.duration_ms}ms",
            self.error_message or "",
        ]


@dataclass(frozen=True)
class RegistryItem:
    """A catalog row as shown to registry visitors.

    Attributes:
        id: Item id (column A, or a slug of the product name).
        product: Product name.
        product_zh: Product name in Chinese.
        category: Catalog category.
        subcategory: Catalog subcategory.
        price: Display price as entered.
        image_url: Product image.
        url: Product page.
        claimed_by: Claimer name, "" when unclaimed.
        claimer_email: Claimer email (unmasked at this layer).
    """

    id: str
    product: str = ""
    product_zh: str = ""
    category: str = ""
    subcategory: str = ""
    price: str = ""
    image_url: str = ""
    url: str = ""
    claimed_by: str = ""
    claimer_email: str = ""


def generate_id(product_name: str) -> str:
    """Slugify a product name into an item id ("Baby Monitor!" -> "baby-monitor")."""
    slug = re.sub(r"[^a-z0-9]", "-", product_name.lower())
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def parse_last_modified(value: str, default: int) -> int:
    """Read the leading integer of a cell; default when absent, zero or invalid."""
    match = _LEADING_INT_RE.match(value or "")
    if match is None:
        return default
    parsed = int(match.group(1))
    return parsed if parsed > 0 else default


def _cell(row: Sequence[str], index: int) -> str:
    return row[index] if index < len(row) else ""


def _parse_range_start(cell_range: str) -> tuple[str, int]:
    """Return (sheet name, first row number) of an A1 range like "API!A2:L"."""
    match = _RANGE_START_RE.match(cell_range)
    if match is None:
        raise ValueError(f"Unsupported A1 range: {cell_range!r}")
    sheet = match.group("sheet") or ""
    row = int(match.group("row")) if match.group("row") else 1
    return sheet, row


class SheetClaimRepository:
    """Reads and writes claim columns and audit rows in the spreadsheet.

    Args:
        client: Sheets client bound to the registry spreadsheet.
        claims_range: Data rows of the claims tab (no header), e.g. "API!A2:L".
        append_range: Table range used for appends, e.g. "API!A:L".
        log_range: Table range of the audit tab, e.g. "Logs!A:H".
        catalog_range: Claims tab including its header row, e.g. "API!A1:L".
    """

    def __init__(
        self,
        client: SheetsClient,
        *,
        claims_range: str = "API!A2:L",
        append_range: str = "API!A:L",
        log_range: str = "Logs!A:H",
        catalog_range: str = "API!A1:L",
    ) -> None:
        self._client = client
        self._claims_range = claims_range
        self._append_range = append_range
        self._log_range = log_range
        self._catalog_range = catalog_range
        self._sheet_name, self._first_row = _parse_range_start(claims_range)

    async def authenticate(self) -> str:
        """Obtain a bearer token for the spreadsheet.

        Raises:
            AuthError: If the assertion cannot be signed or is rejected.
        """
        return await self._client.authenticate()

    async def read_claims(self, *, now: int | None = None) -> dict[str, ClaimRecord]:
        """Read the claim columns of every item row.

        Args:
            now: Epoch millis for rows without a usable timestamp.
                Defaults to wall-clock now at read time.

        Returns:
            Item id -> ClaimRecord tagged with source "sheet".

        Raises:
            AuthError: If no access token can be obtained.
            FetchError: If the range cannot be read.
        """
        read_at = now if now is not None else now_ms()
        rows = await self._read_rows()

        claims: dict[str, ClaimRecord] = {}
        for row in rows:
            item_id = _cell(row, COL_ITEM_ID).strip()
            if not item_id:
                continue
            claims[item_id] = ClaimRecord(
                item_id=item_id,
                claimer=_cell(row, COL_CLAIMER),
                email=_cell(row, COL_EMAIL),
                verified=_cell(row, COL_VERIFIED) == "TRUE",
                last_modified=parse_last_modified(
                    _cell(row, COL_LAST_MODIFIED), read_at
                ),
                source=ClaimSource.SHEET,
            )

        logger.debug("Read %d claims from sheet", len(claims))
        return claims

    async def write_claims(self, updates: Sequence[ClaimRecord]) -> int:
        """Write claim columns for the given records.

        Row numbers come from a read issued by this call, never from an
        earlier one. Existing rows are overwritten one range each; new items
        are appended in a single batch.

        Args:
            updates: Records to write.

        Returns:
            Number of rows actually written.

        Raises:
            AuthError: If no access token can be obtained.
            FetchError: If the row lookup read fails.
        """
        if not updates:
            return 0

        rows = await self._read_rows()
        existing_rows: dict[str, tuple[int, Sequence[str]]] = {}
        for index, row in enumerate(rows):
            item_id = _cell(row, COL_ITEM_ID).strip()
            if item_id:
                existing_rows[item_id] = (index + self._first_row, row)

        row_updates: list[tuple[ClaimRecord, int, list[str]]] = []
        appends: list[list[str]] = []
        for record in updates:
            existing = existing_rows.get(record.item_id)
            if existing is None:
                appends.append(self._build_row(record, None))
            else:
                row_number, current = existing
                row_updates.append(
                    (record, row_number, self._build_row(record, current))
                )

        results = await asyncio.gather(
            *(
                self._update_row(record, row_number, values)
                for record, row_number, values in row_updates
            )
        )
        written = sum(results)

        if appends:
            try:
                await self._client.append_rows(self._append_range, appends)
            except AuthError:
                raise
            except StoreError as e:
                logger.warning("Failed to append %d rows to sheet: %s", len(appends), e)
            else:
                written += len(appends)

        logger.info(
            "Wrote %d/%d claims to sheet (%d updates, %d appends)",
            written,
            len(updates),
            len(row_updates),
            len(appends),
        )
        return written

    async def append_log_row(self, entry: SyncLogEntry) -> None:
        """Append one audit row to the Logs tab.

        Raises:
            LogError: On any failure, including authentication.
        """
        try:
            await self._client.append_rows(self._log_range, [entry.to_row()])
        except StoreError as e:
            raise LogError(f"Failed to append sync log row: {e}") from e

    async def read_catalog(self) -> list[RegistryItem]:
        """Read the catalog, skipping the header row.

        Rows with neither an id nor a product name are ignored; a missing id
        is derived from the product name.

        Raises:
            AuthError: If no access token can be obtained.
            FetchError: If the range cannot be read.
        """
        try:
            rows = await self._client.read_range(self._catalog_range)
        except AuthError:
            raise
        except StoreError as e:
            raise FetchError(f"Failed to read catalog from sheet: {e}") from e

        items: list[RegistryItem] = []
        for row in rows[1:]:
            product = _cell(row, COL_PRODUCT)
            item_id = _cell(row, COL_ITEM_ID).strip() or generate_id(product)
            if not item_id:
                continue
            items.append(
                RegistryItem(
                    id=item_id,
                    product=product,
                    product_zh=_cell(row, 2),
                    category=_cell(row, 3),
                    subcategory=_cell(row, 4),
                    price=_cell(row, 5),
                    image_url=_cell(row, 6),
                    url=_cell(row, 7),
                    claimed_by=_cell(row, COL_CLAIMER),
                    claimer_email=_cell(row, COL_EMAIL),
                )
            )
        return items

    async def _read_rows(self) -> list[list[str]]:
        try:
            return await self._client.read_range(self._claims_range)
        except AuthError:
            raise
        except StoreError as e:
            raise FetchError(f"Failed to read claims from sheet: {e}") from e

    async def _update_row(
        self, record: ClaimRecord, row_number: int, values: list[str]
    ) -> bool:
        cell_range = f"A{row_number}:{_LAST_COLUMN}{row_number}"
        if self._sheet_name:
            cell_range = f"{self._sheet_name}!{cell_range}"
        try:
            await self._client.update_range(cell_range, [values])
        except AuthError:
            raise
        except StoreError as e:
            error = WriteError(str(e), item_id=record.item_id)
            logger.warning(
                "Failed to update sheet row %d for item %s: %s",
                row_number,
                error.item_id,
                error,
            )
            return False
        return True

    @staticmethod
    def _build_row(record: ClaimRecord, current: Sequence[str] | None) -> list[str]:
        """Build all twelve columns, keeping metadata columns of an existing row."""
        row = [""] * ROW_WIDTH
        if current is not None:
            for index in range(COL_PRODUCT, COL_CLAIMER):
                row[index] = _cell(current, index)
        row[COL_ITEM_ID] = record.item_id
        row[COL_CLAIMER] = record.claimer
        row[COL_EMAIL] = record.email
        row[COL_VERIFIED] = "TRUE" if record.verified else "FALSE"
        row[COL_LAST_MODIFIED] = str(record.last_modified)
        return row
