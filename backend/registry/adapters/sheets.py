"""Google Sheets v4 values API client.

Thin async wrapper over the three calls the registry needs: read a range,
overwrite a range, append rows below a table.
"""

import time
from typing import Any, Protocol
from urllib.parse import quote

import httpx
import structlog

from registry.adapters.errors import classify_http_error
from registry.adapters.retry import RetryPolicy, with_retries

logger = structlog.get_logger()

_SHEETS_API_URL = "https://sheets.googleapis.com/v4/spreadsheets"

# Values are parsed as if typed into the UI (so "TRUE" becomes a boolean cell)
_VALUE_INPUT_OPTION = "USER_ENTERED"


class AccessTokenProvider(Protocol):
    """Anything that can hand out a bearer token for the Sheets API."""

    async def get_access_token(self) -> str: ...


class SheetsClient:
    """Values API client bound to one spreadsheet.

    Args:
        client: Shared httpx client (owned by the caller).
        token_provider: Source of bearer tokens.
        spreadsheet_id: Target spreadsheet.
        base_url: API root, overridable for tests.
        retry_policy: Backoff settings for transient failures.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        token_provider: AccessTokenProvider,
        spreadsheet_id: str,
        *,
        base_url: str = _SHEETS_API_URL,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self._client = client
        self._token_provider = token_provider
        self._spreadsheet_id = spreadsheet_id
        self._spreadsheet_url = f"{base_url.rstrip('/')}/{spreadsheet_id}"
        self._retry_policy = retry_policy or RetryPolicy()

    async def authenticate(self) -> str:
        """Return a bearer token for this spreadsheet.

        Raises:
            AuthError: If the token provider cannot obtain a token.
        """
        return await self._token_provider.get_access_token()

    async def read_range(self, cell_range: str) -> list[list[str]]:
        """Read a rectangular range as rows of strings.

        Trailing empty cells are omitted by the API, so rows may be ragged.

        Args:
            cell_range: A1 notation range (e.g., "API!A2:L").

        Returns:
            Rows of cell values; empty list when the range holds no data.
        """
        response = await self._request(
            "GET", self._values_url(cell_range), operation="read"
        )
        rows = response.json().get("values") or []
        return [[str(cell) for cell in row] for row in rows]

    async def update_range(self, cell_range: str, rows: list[list[Any]]) -> None:
        """Overwrite a range with the given rows.

        Args:
            cell_range: A1 notation range (e.g., "API!A5:L5").
            rows: Row values to write.
        """
        await self._request(
            "PUT",
            self._values_url(cell_range),
            operation="update",
            params={"valueInputOption": _VALUE_INPUT_OPTION},
            json={"values": rows},
        )

    async def append_rows(self, cell_range: str, rows: list[list[Any]]) -> None:
        """Append rows after the last row of the table in range.

        Args:
            cell_range: A1 notation table range (e.g., "API!A:L").
            rows: Row values to append.
        """
        await self._request(
            "POST",
            f"{self._values_url(cell_range)}:append",
            operation="append",
            params={"valueInputOption": _VALUE_INPUT_OPTION},
            json={"values": rows},
        )

    def _values_url(self, cell_range: str) -> str:
        return f"{self._spreadsheet_url}/values/{quote(cell_range, safe='!:')}"

    async def _request(
        self, method: str, url: str, *, operation: str, **kwargs: Any
    ) -> httpx.Response:
        """Send an authorized request with retries.

        Raises:
            AuthError: If no access token can be obtained.
            StoreError: Subclass matching the HTTP failure.
        """
        token = await self.authenticate()

        async def _send() -> httpx.Response:
            start_time = time.monotonic()
            try:
                response = await self._client.request(
                    method,
                    url,
                    headers={"Authorization": f"Bearer {token}"},
                    **kwargs,
                )
                response.raise_for_status()
            except httpx.HTTPError as e:
                logger.warning(
                    "sheets_request_failed",
                    spreadsheet_id=self._spreadsheet_id,
                    operation=operation,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise classify_http_error(e) from e
            logger.debug(
                "sheets_request_complete",
                spreadsheet_id=self._spreadsheet_id,
                operation=operation,
                latency_ms=(time.monotonic() - start_time) * 1000,
            )
            return response

        return await with_retries(_send, self._retry_policy)
