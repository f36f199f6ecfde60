"""Shared fixtures and in-memory collaborators for the drive_restore tests."""

import os
import re
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from drive_restore.config import (
    AppSettings,
    ArchiveSettings,
    DatabaseSettings,
    GoogleSettings,
    LoggingSettings,
    ProcessingSettings,
)
from drive_restore.core.ledger import CompletionTracker
from drive_restore.core.models import CandidateFile
from drive_restore.core.processor import FileProcessor
from drive_restore.core.restorer import DatabaseRestorer
from drive_restore.exceptions import CommandError, ExtractError, LedgerError, RemoteStoreError


class FakeStore:
    """Remote file store keeping files and folders in memory."""

    def __init__(self, events: List[str]):
        self.events = events
        self.files: List[CandidateFile] = []
        self.metadata: Dict[str, Dict] = {}
        self.deleted: List[str] = []
        self.downloaded: List[str] = []
        self.fail_list = False
        self.fail_delete = False
        self.fail_download = False

    def list_files(self, name_marker: str) -> List[CandidateFile]:
        if self.fail_list:
            raise RemoteStoreError("listing failed")
        return [f for f in self.files if name_marker in f.name]

    def download(self, file_id: str, dest_path: str) -> None:
        self.events.append(f"download:{file_id}")
        if self.fail_download:
            raise RemoteStoreError("download failed")
        self.downloaded.append(file_id)
        with open(dest_path, "wb") as fh:
            fh.write(b"7z archive")

    def delete(self, file_id: str) -> None:
        self.events.append(f"delete:{file_id}")
        if self.fail_delete:
            raise RemoteStoreError("delete failed")
        self.deleted.append(file_id)

    def get_metadata(self, file_id: str, fields: str) -> Dict:
        if file_id not in self.metadata:
            raise RemoteStoreError(f"{file_id} not found")
        return self.metadata[file_id]


class FakeLedger:
    """Two-column ledger held as a list of rows."""

    def __init__(self, events: List[str], rows: Optional[List[List[str]]] = None):
        self.events = events
        self.rows = rows if rows is not None else []
        self.fail = False

    def read_range(self, range_name: str) -> List[List[str]]:
        if self.fail:
            raise LedgerError("sheet unavailable")
        return [list(row) for row in self.rows]

    def update_cell(self, range_name: str, value: str) -> None:
        self.events.append(f"ledger:update:{range_name}")
        row_number = int(re.fullmatch(r"B(\d+)", range_name).group(1))
        row = self.rows[row_number - 1]
        if len(row) < 2:
            row.append(value)
        else:
            row[1] = value

    def append_row(self, range_name: str, values: List[str]) -> None:
        self.events.append(f"ledger:append:{values[0]}")
        self.rows.append(list(values))


class FakeRunner:
    """Database command runner with scripted results.

    ``results`` maps a statement substring to query rows; ``failures`` holds
    statement substrings that fail.
    """

    def __init__(self, events: List[str]):
        self.events = events
        self.statements: List[tuple] = []
        self.results: Dict[str, List[List[str]]] = {}
        self.failures: Dict[str, str] = {}

    def _record(self, statement: str, database: str) -> None:
        self.statements.append((statement, database))
        self.events.append(f"sql:{statement.split()[0]}")
        for fragment, output in self.failures.items():
            if fragment in statement:
                raise CommandError("command failed", output)

    def execute(self, statement: str, database: str = "master") -> str:
        self._record(statement, database)
        return ""

    def query(self, statement: str, database: str = "master") -> List[List[str]]:
        self._record(statement, database)
        for fragment, rows in self.results.items():
            if fragment in statement:
                return rows
        return []

    def ran(self, fragment: str) -> bool:
        return any(fragment in statement for statement, _ in self.statements)


class FakeExtractor:
    """Extractor that writes a fixed set of files, or fails."""

    def __init__(self, events: List[str], members: Optional[Dict[str, bytes]] = None):
        self.events = events
        self.members = members if members is not None else {"backup/db.bak": b"backup"}
        self.error: Optional[Exception] = None
        self.passwords: List[str] = []

    def extract(self, archive_path: str, dest_dir: str, password: str) -> None:
        self.events.append("extract")
        self.passwords.append(password)
        if self.error is not None:
            raise self.error
        if not os.path.exists(archive_path):
            raise ExtractError(f"{archive_path} missing")
        for name, content in self.members.items():
            path = os.path.join(dest_dir, name)
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "wb") as fh:
                fh.write(content)


def make_file(
    file_id: str = "file-1",
    name: str = "Susenas2025M_3201.7z",
    size: int = 50 * 1024,
    age: timedelta = timedelta(hours=1),
    parents: Optional[List[str]] = None,
) -> CandidateFile:
    """Build a candidate file the way the Drive listing returns it."""
    created = datetime.now(timezone.utc) - age
    return CandidateFile.model_validate(
        {
            "id": file_id,
            "name": name,
            "createdTime": created.isoformat().replace("+00:00", "Z"),
            "size": str(size),
            "parents": ["folder-1"] if parents is None else parents,
        }
    )


@pytest.fixture
def events() -> List[str]:
    return []


@pytest.fixture
def settings(tmp_path) -> AppSettings:
    scratch = tmp_path / "scratch"
    scratch.mkdir()
    return AppSettings(
        database=DatabaseSettings(
            host="dbhost",
            name="Susenas",
            correction_query="UPDATE dbo.Kab SET Flag = 1",
        ),
        archive=ArchiveSettings(password="secret"),
        google=GoogleSettings(
            service_account_file=str(tmp_path / "sa.json"),
            spreadsheet_id="sheet-1",
            spreadsheet_timezone="UTC",
        ),
        processing=ProcessingSettings(grant_permissions=False, scratch_dir=str(scratch)),
        logging=LoggingSettings(directory=str(tmp_path / "logs")),
    )


@pytest.fixture
def store(events) -> FakeStore:
    fake = FakeStore(events)
    fake.metadata["folder-1"] = {"id": "folder-1", "name": "3201"}
    return fake


@pytest.fixture
def ledger(events) -> FakeLedger:
    return FakeLedger(events)


@pytest.fixture
def runner(events) -> FakeRunner:
    return FakeRunner(events)


@pytest.fixture
def extractor(events) -> FakeExtractor:
    return FakeExtractor(events)


@pytest.fixture
def processor(settings, store, extractor, runner, ledger) -> FileProcessor:
    return FileProcessor(
        settings=settings,
        store=store,
        extractor=extractor,
        restorer=DatabaseRestorer(runner, settings.database.name),
        tracker=CompletionTracker(ledger),
    )
