from __future__ import annotations

from typing import Callable, Dict, List, Sequence, Tuple

import json
import logging
import ssl
import threading
import time

from google.auth.exceptions import GoogleAuthError, TransportError
from google.oauth2.service_account import Credentials
from googleapiclient.discovery import Resource
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import HttpRequest
from httplib2 import HttpLib2Error

from .config import ColumnsConfig, SheetsConfig
from .errors import ProtectedCellError, SourceUnavailableError
from .models import CellWrite

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]

LOGGER = logging.getLogger(__name__)

_RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
_SOURCE_FAILURE_STATUS_CODES = {401, 403, 404}
_MAX_RETRY_ATTEMPTS = 4
_INITIAL_BACKOFF_SECONDS = 1.0
_MAX_BACKOFF_SECONDS = 8.0
_RETRYABLE_EXCEPTIONS = (ssl.SSLEOFError, HttpLib2Error, TransportError)


def _quote_tab(tab_name: str) -> str:
    escaped = tab_name.replace("'", "''")
    return f"'{escaped}'"


def is_protection_error(exc: BaseException) -> bool:
    """Heuristic to detect when Sheets refused a write to protected cells."""

    message = str(exc).lower()
    reason = str(getattr(exc, "reason", "") or "").lower()
    return "protected" in message or "protected" in reason


class GoogleSheetsClient:
    """Sheets API access for the weekly job-link tabs of one spreadsheet."""

    def __init__(self, conf: SheetsConfig, columns: ColumnsConfig | None = None) -> None:
        self._conf = conf
        self._columns = columns or ColumnsConfig()
        # googleapiclient services are not safe to share between threads.
        self._local = threading.local()

    @property
    def spreadsheet_id(self) -> str:
        return self._conf.spreadsheet_id

    def _credentials(self) -> Credentials:
        inline = self._conf.credentials_json()
        if inline:
            try:
                info = json.loads(inline)
            except json.JSONDecodeError as exc:
                raise SourceUnavailableError(
                    f"Environment variable {self._conf.credentials_json_env} "
                    "does not hold valid service account JSON"
                ) from exc
            try:
                return Credentials.from_service_account_info(info, scopes=SCOPES)
            except ValueError as exc:
                raise SourceUnavailableError(
                    f"Invalid service account JSON in {self._conf.credentials_json_env}: {exc}"
                ) from exc
        if self._conf.credentials_file is None:
            raise SourceUnavailableError(
                f"Environment variable {self._conf.credentials_json_env} is not set "
                "and no credentials file is configured"
            )
        if not self._conf.credentials_file.exists():
            raise SourceUnavailableError(
                f"Credentials file not found: {self._conf.credentials_file}"
            )
        try:
            return Credentials.from_service_account_file(
                str(self._conf.credentials_file), scopes=SCOPES
            )
        except ValueError as exc:
            raise SourceUnavailableError(
                f"Invalid service account file {self._conf.credentials_file}: {exc}"
            ) from exc

    def _service_client(self) -> Resource:
        service = getattr(self._local, "service", None)
        if service is None:
            service = build(
                "sheets", "v4", credentials=self._credentials(), cache_discovery=False
            )
            self._local.service = service
        return service

    # Reading -----------------------------------------------------------------
    def _sheet_properties(self) -> List[dict]:
        def _build_request() -> HttpRequest:
            service = self._service_client()
            return service.spreadsheets().get(
                spreadsheetId=self.spreadsheet_id,
                fields="sheets.properties(title,sheetId)",
            )

        try:
            result = self._execute_with_retry(_build_request, operation="list tabs")
        except HttpError as exc:
            self._raise_if_unavailable(exc)
            raise
        return [sheet.get("properties", {}) for sheet in result.get("sheets", [])]

    def list_partitions(self) -> List[str]:
        """Return tab titles in spreadsheet order."""

        return [props.get("title", "") for props in self._sheet_properties()]

    def partition_ids(self) -> Dict[str, int]:
        """Map each tab title to its sheet id (the ``gid`` of row links)."""

        return {
            props.get("title", ""): props["sheetId"]
            for props in self._sheet_properties()
            if "sheetId" in props
        }

    def read_rows(self, partition_name: str) -> List[List[str]]:
        """Load columns A through the last configured column of one tab."""

        target_range = f"{_quote_tab(partition_name)}!A:{self._columns.last}"

        def _build_request() -> HttpRequest:
            service = self._service_client()
            return (
                service.spreadsheets()
                .values()
                .get(spreadsheetId=self.spreadsheet_id, range=target_range)
            )

        result = self._execute_with_retry(
            _build_request, operation=f"read tab {partition_name}"
        )
        return result.get("values", [])

    def read_feedback(self, partition_name: str, first_row: int, last_row: int) -> List[str]:
        """Return feedback cells for rows ``first_row..last_row`` (index 0 = first_row)."""

        if first_row < 1 or last_row < first_row:
            msg = f"Invalid row range {first_row}-{last_row}"
            raise ValueError(msg)
        column = self._columns.feedback
        target_range = (
            f"{_quote_tab(partition_name)}!{column}{first_row}:{column}{last_row}"
        )

        def _build_request() -> HttpRequest:
            service = self._service_client()
            return (
                service.spreadsheets()
                .values()
                .get(spreadsheetId=self.spreadsheet_id, range=target_range)
            )

        result = self._execute_with_retry(
            _build_request, operation=f"read feedback in {partition_name}"
        )
        values = result.get("values", [])
        cells = [row[0] if row else "" for row in values]
        expected = last_row - first_row + 1
        # Sheets omits trailing empty rows from the response.
        cells.extend([""] * (expected - len(cells)))
        return cells

    # Writing -----------------------------------------------------------------
    def write_cells(self, writes: Sequence[CellWrite]) -> None:
        """Write all cells in one batch; raises ProtectedCellError on protection."""

        if not writes:
            return

        data = [
            {"range": write.range_ref, "values": [[write.value]]}
            for write in writes
        ]

        def _batch_update_request() -> HttpRequest:
            service = self._service_client()
            return (
                service.spreadsheets()
                .values()
                .batchUpdate(
                    spreadsheetId=self.spreadsheet_id,
                    body={
                        "valueInputOption": "USER_ENTERED",
                        "data": data,
                    },
                )
            )

        try:
            self._execute_with_retry(_batch_update_request, operation="write cells")
        except HttpError as exc:
            if is_protection_error(exc):
                cell_ref = writes[0].range_ref if len(writes) == 1 else None
                raise ProtectedCellError(str(exc), cell_ref=cell_ref) from exc
            self._raise_if_unavailable(exc)
            raise

    def append_job_links(self, partition_name: str, links: Sequence[Tuple[str, str]]) -> int:
        """Write ``(date, url)`` pairs into the first free rows of a tab.

        The first data row with an empty date cell starts the block; when
        there is none the block goes after the last row. Returns the first
        row written.
        """

        if not links:
            raise ValueError("At least one link is required")

        values = self.read_rows(partition_name)
        start_row = len(values) + 1
        for idx in range(1, len(values)):
            row = values[idx]
            if not row or not str(row[0]).strip():
                start_row = idx + 1
                break

        date_idx = self._columns.index("date")
        url_idx = self._columns.index("job_url")
        width = max(date_idx, url_idx) + 1
        rows = []
        for day, url in links:
            row = [""] * width
            row[date_idx] = day
            row[url_idx] = url
            rows.append(row)

        end_row = start_row + len(rows) - 1
        target_range = f"{_quote_tab(partition_name)}!A{start_row}:{self._column_letter(width - 1)}{end_row}"

        def _update_request() -> HttpRequest:
            service = self._service_client()
            return (
                service.spreadsheets()
                .values()
                .update(
                    spreadsheetId=self.spreadsheet_id,
                    range=target_range,
                    valueInputOption="USER_ENTERED",
                    body={"values": rows},
                )
            )

        try:
            self._execute_with_retry(_update_request, operation=f"append links to {partition_name}")
        except HttpError as exc:
            if is_protection_error(exc):
                raise ProtectedCellError(str(exc), cell_ref=target_range) from exc
            self._raise_if_unavailable(exc)
            raise
        LOGGER.info("Appended %s links to %s starting at row %s", len(rows), partition_name, start_row)
        return start_row

    # Helpers -----------------------------------------------------------------
    def build_row_url(self, row_number: int, gid: int | None = None) -> str:
        """Create a direct Google Sheets URL pointing to a row of tab ``gid``."""

        fragment = f"range={row_number}:{row_number}"
        if gid is not None:
            fragment = f"gid={gid}&{fragment}"
        return f"https://docs.google.com/spreadsheets/d/{self.spreadsheet_id}/edit#{fragment}"

    @staticmethod
    def _column_letter(index: int) -> str:
        letters = ""
        index += 1
        while index:
            index, remainder = divmod(index - 1, 26)
            letters = chr(ord("A") + remainder) + letters
        return letters

    # Internal ----------------------------------------------------------------
    def _raise_if_unavailable(self, exc: HttpError) -> None:
        status = getattr(exc.resp, "status", None)
        if status in _SOURCE_FAILURE_STATUS_CODES:
            raise SourceUnavailableError(
                f"Cannot access spreadsheet '{self.spreadsheet_id}' (HTTP {status}). "
                "Check the spreadsheet ID and that it is shared with the service account."
            ) from exc

    def _reset_service(self) -> None:
        self._local.service = None

    def _execute_with_retry(
        self,
        request_builder: Callable[[], HttpRequest],
        *,
        operation: str,
    ) -> dict:
        """Execute a Sheets API request with retries for transient failures."""

        backoff = _INITIAL_BACKOFF_SECONDS
        last_exc: Exception | None = None

        for attempt in range(1, _MAX_RETRY_ATTEMPTS + 1):
            try:
                return request_builder().execute()
            except _RETRYABLE_EXCEPTIONS as exc:
                last_exc = exc
            except GoogleAuthError as exc:
                raise SourceUnavailableError(
                    f"Google authentication failed during {operation}: {exc}"
                ) from exc
            except HttpError as exc:
                status = getattr(exc.resp, "status", None)
                if status not in _RETRYABLE_STATUS_CODES:
                    raise
                last_exc = exc

            if attempt == _MAX_RETRY_ATTEMPTS:
                raise last_exc

            wait_time = min(backoff, _MAX_BACKOFF_SECONDS)
            LOGGER.warning(
                "Sheets API %s failed on attempt %s/%s (%s); retrying in %.1f seconds",
                operation,
                attempt,
                _MAX_RETRY_ATTEMPTS,
                last_exc,
                wait_time,
            )
            self._reset_service()
            time.sleep(wait_time)
            backoff *= 2

        # If the loop exits without returning, re-raise the last exception.
        if last_exc is not None:  # pragma: no cover - belt and suspenders.
            raise last_exc
        raise RuntimeError("Sheets API request failed without capturing an exception")
