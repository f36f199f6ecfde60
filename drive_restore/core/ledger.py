"""
Completion tracking in a Google Sheets ledger.

The ledger holds one row per grouping key (the Drive folder an archive was
uploaded to) with the creation time of the most recently processed archive.
"""

import logging
from datetime import datetime, tzinfo
from typing import Any, List, Optional, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from googleapiclient.discovery import build

from ..exceptions import LedgerError, RemoteStoreError
from .drive import TRANSPORT_ERRORS, RemoteFileStore
from .models import CandidateFile, LedgerRow

logger = logging.getLogger(__name__)

LEDGER_RANGE = "A:B"


class LedgerClient(Protocol):
    """Tabular store used to record completed files."""

    def read_range(self, range_name: str) -> List[List[Any]]:
        ...

    def update_cell(self, range_name: str, value: str) -> None:
        ...

    def append_row(self, range_name: str, values: List[str]) -> None:
        ...


class GoogleSheetsLedger:
    """Ledger backed by the Google Sheets v4 values API."""

    def __init__(self, service, spreadsheet_id: str, sheet_name: Optional[str] = None):
        self.service = service
        self.spreadsheet_id = spreadsheet_id
        self.sheet_name = sheet_name

    @classmethod
    def from_credentials(cls, credentials, spreadsheet_id: str, sheet_name: Optional[str] = None):
        service = build("sheets", "v4", credentials=credentials, cache_discovery=False)
        return cls(service, spreadsheet_id, sheet_name)

    def _qualify(self, range_name: str) -> str:
        if self.sheet_name:
            sheet = self.sheet_name.replace("'", "''")
            return f"'{sheet}'!{range_name}"
        return range_name

    def read_range(self, range_name: str) -> List[List[Any]]:
        try:
            response = (
                self.service.spreadsheets()
                .values()
                .get(spreadsheetId=self.spreadsheet_id, range=self._qualify(range_name))
                .execute()
            )
        except TRANSPORT_ERRORS as e:
            raise LedgerError(f"Failed to read spreadsheet: {e}") from e
        return response.get("values", [])

    def update_cell(self, range_name: str, value: str) -> None:
        qualified = self._qualify(range_name)
        try:
            (
                self.service.spreadsheets()
                .values()
                .update(
                    spreadsheetId=self.spreadsheet_id,
                    range=qualified,
                    valueInputOption="USER_ENTERED",
                    body={"range": qualified, "values": [[value]]},
                )
                .execute()
            )
        except TRANSPORT_ERRORS as e:
            raise LedgerError(f"Failed to update spreadsheet cell {range_name}: {e}") from e

    def append_row(self, range_name: str, values: List[str]) -> None:
        try:
            (
                self.service.spreadsheets()
                .values()
                .append(
                    spreadsheetId=self.spreadsheet_id,
                    range=self._qualify(range_name),
                    valueInputOption="USER_ENTERED",
                    insertDataOption="INSERT_ROWS",
                    body={"values": [values]},
                )
                .execute()
            )
        except TRANSPORT_ERRORS as e:
            raise LedgerError(f"Failed to append row to spreadsheet: {e}") from e


class CompletionTracker:
    """Upserts one row per grouping key into the ledger.

    The read-then-write sequence is not atomic; concurrent runs against the
    same ledger may create duplicate rows.
    """

    def __init__(self, ledger: LedgerClient, range_name: str = LEDGER_RANGE):
        self.ledger = ledger
        self.range_name = range_name

    def find_row(self, key: str) -> Optional[int]:
        """Return the 1-based row number holding key in column A."""
        wanted = key.strip()
        rows = self.ledger.read_range(self.range_name)
        logger.info(f"Spreadsheet returned {len(rows)} rows")
        for index, row in enumerate(rows):
            if row and isinstance(row[0], str) and row[0].strip() == wanted:
                return index + 1
        return None

    def upsert(self, key: str, timestamp_text: str) -> LedgerRow:
        """
        Record timestamp_text for key, updating the existing row if any.

        Raises:
            LedgerError: If the ledger cannot be read or written
        """
        row_number = self.find_row(key)
        if row_number is not None:
            self.ledger.update_cell(f"B{row_number}", timestamp_text)
            logger.info(f"Updated ledger row {row_number} for {key}")
        else:
            self.ledger.append_row(self.range_name, [key, timestamp_text])
            logger.info(f"Appended ledger row for {key}")
        return LedgerRow(key=key, timestamp=timestamp_text)


def resolve_group_key(store: RemoteFileStore, file: CandidateFile) -> str:
    """
    Name of the folder the file was uploaded to, or an empty string.

    Raises:
        RemoteStoreError: If a metadata lookup fails
    """
    parent_id = file.parent_id
    if parent_id is None:
        # Listing may omit parents; ask for them explicitly
        parents = store.get_metadata(file.id, "parents").get("parents") or []
        if not parents:
            return ""
        parent_id = parents[0]
    return store.get_metadata(parent_id, "id, name").get("name", "")


def resolve_timezone(tz_name: Optional[str]) -> Optional[tzinfo]:
    """Return the named timezone, or None for the local timezone."""
    if not tz_name or tz_name.strip().lower() == "local":
        return None
    try:
        return ZoneInfo(tz_name.strip())
    except (ZoneInfoNotFoundError, ValueError) as e:
        logger.warning(f"Unable to load timezone {tz_name}: {e}, using local time")
        return None


def format_timestamp(moment: datetime, tz_name: Optional[str] = None) -> str:
    """Format a moment as ``M/D/YYYY HH:MM:SS`` in the display timezone."""
    local = moment.astimezone(resolve_timezone(tz_name))
    return f"{local.month}/{local.day}/{local.year} {local:%H:%M:%S}"


def record_completion(
    tracker: CompletionTracker,
    store: RemoteFileStore,
    file: CandidateFile,
    tz_name: Optional[str] = None,
) -> Optional[LedgerRow]:
    """
    Record a finished file in the ledger.

    Best effort: failures are logged and None is returned.
    """
    try:
        key = resolve_group_key(store, file)
    except RemoteStoreError as e:
        logger.warning(f"Failed to get parent folder name for {file.name}: {e}")
        return None
    logger.info(f"Parent folder name: {key}")
    if not key:
        logger.warning(f"File {file.name} has no parent folder, skipping ledger update")
        return None

    timestamp_text = format_timestamp(file.created_at or datetime.now().astimezone(), tz_name)
    try:
        row = tracker.upsert(key, timestamp_text)
    except LedgerError as e:
        logger.warning(f"Failed to update spreadsheet: {e}")
        return None
    logger.info(f"Spreadsheet updated for {key} with {timestamp_text}")
    return row
