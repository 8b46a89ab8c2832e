"""
Google Sheets Document Store

DESIGN DECISION: Google Sheets is offered as a persistent backend because:
1. Tenants' owners can inspect their ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume ledgers
- Limited query capabilities (we filter in Python)
- Version preconditions are checked against a fresh read just before the
  write, so they only guard against writers inside this process window

Each collection is one worksheet with the columns
    id | tenant_id | version | document_json
All writes of a batch are sent in a single values_batch_update call, so a
batch either lands completely or not at all.
"""

import asyncio
import json
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, Optional

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from tenant_ledger.config import GoogleSheetsSettings, get_settings
from tenant_ledger.services.storage.interface import (
    ConnectionError,
    DocumentStore,
    FieldFilter,
    MonotonicClock,
    OrderBy,
    StorageError,
    WriteBatch,
    apply_batch,
    select_documents,
)


DOCUMENT_COLUMNS = ["id", "tenant_id", "version", "document_json"]

_DATETIME_TAG = "__datetime__"
_DECIMAL_TAG = "__decimal__"


def _encode_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return {_DATETIME_TAG: value.isoformat()}
    if isinstance(value, Decimal):
        return {_DECIMAL_TAG: str(value)}
    raise TypeError(f"Cannot store value of type {type(value).__name__}")


def _decode_object(obj: dict) -> Any:
    if len(obj) == 1:
        if _DATETIME_TAG in obj:
            return datetime.fromisoformat(obj[_DATETIME_TAG])
        if _DECIMAL_TAG in obj:
            return Decimal(obj[_DECIMAL_TAG])
    return obj


def document_to_row(document: dict) -> list[str]:
    """Convert a document to a worksheet row."""
    body = {k: v for k, v in document.items() if k not in ("id", "version")}
    return [
        document["id"],
        document.get("tenant_id") or "",
        str(document.get("version", 0)),
        json.dumps(body, default=_encode_value, sort_keys=True),
    ]


def row_to_document(row: list) -> dict:
    """Convert a worksheet row back to a document."""
    def safe_get(index: int, default: str = "") -> str:
        try:
            return row[index] if row[index] else default
        except IndexError:
            return default

    document = json.loads(safe_get(3, "{}"), object_hook=_decode_object)
    document["id"] = safe_get(0)
    document["version"] = int(safe_get(2, "0"))
    return document


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication, worksheet creation and retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._worksheets: dict[str, gspread.Worksheet] = {}
        self._settings = settings or get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_collection_sheet(self, collection: str) -> gspread.Worksheet:
        """Get or create the worksheet holding a collection."""
        if collection not in self._worksheets:
            spreadsheet = self.get_spreadsheet()
            title = f"{self._settings.worksheet_prefix}{collection}"
            try:
                sheet = spreadsheet.worksheet(title)
            except gspread.WorksheetNotFound:
                # Create the sheet with headers
                sheet = spreadsheet.add_worksheet(
                    title=title,
                    rows=self._settings.worksheet_rows,
                    cols=len(DOCUMENT_COLUMNS),
                )
                sheet.append_row(DOCUMENT_COLUMNS)
            self._worksheets[collection] = sheet
        return self._worksheets[collection]


class GoogleSheetsDocumentStore(DocumentStore):
    """
    Google Sheets implementation of the document store.

    Documents are stored as rows, one worksheet per collection.
    The document body is JSON with tagged Decimal and datetime values.
    """

    def __init__(
        self,
        client: Optional[GoogleSheetsClient] = None,
        max_batch_size: int = 500,
    ):
        super().__init__(max_batch_size)
        self._client = client or GoogleSheetsClient()
        self._clock = MonotonicClock()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _load_collection(self, collection: str) -> dict[str, dict]:
        """Read every document of a collection, keyed by id, in row order."""
        sheet = self._client.get_collection_sheet(collection)
        documents = {}
        for row in sheet.get_all_values()[1:]:  # Skip header
            if not row or not row[0]:  # Skip empty rows
                continue
            document = row_to_document(row)
            documents[document["id"]] = document
        return documents

    async def get(self, collection: str, doc_id: str) -> Optional[dict]:
        try:
            documents = await asyncio.to_thread(self._load_collection, collection)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read {collection}: {e}")
        return documents.get(doc_id)

    async def query(
        self,
        collection: str,
        filters: Iterable[FieldFilter] = (),
        order_by: Iterable[OrderBy] = (),
        limit: Optional[int] = None,
    ) -> list[dict]:
        try:
            documents = await asyncio.to_thread(self._load_collection, collection)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to query {collection}: {e}")
        return select_documents(documents.values(), filters, order_by, limit)

    def _write_batch(self, batch: WriteBatch) -> None:
        touched = list(dict.fromkeys(op.collection for op in batch.operations))
        snapshot = {name: self._load_collection(name) for name in touched}
        previous_sizes = {name: len(snapshot[name]) for name in touched}

        # Raises before anything is written if a precondition fails
        apply_batch(snapshot, batch, self._clock.now())

        data = []
        for name in touched:
            sheet = self._client.get_collection_sheet(name)
            rows = [DOCUMENT_COLUMNS] + [
                document_to_row(document) for document in snapshot[name].values()
            ]
            # Blank out rows left over from deleted documents
            while len(rows) < previous_sizes[name] + 1:
                rows.append([""] * len(DOCUMENT_COLUMNS))
            if sheet.row_count < len(rows):
                sheet.add_rows(len(rows) - sheet.row_count)
            data.append({
                "range": f"'{sheet.title}'!A1:D{len(rows)}",
                "values": rows,
            })

        self._client.get_spreadsheet().values_batch_update(
            {"valueInputOption": "RAW", "data": data}
        )

    async def commit(self, batch: WriteBatch) -> None:
        if not len(batch):
            return
        try:
            await asyncio.to_thread(self._write_batch, batch)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to commit batch: {e}")
