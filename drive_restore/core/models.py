"""
Data model for the restore pipeline.

All records are scoped to a single batch run; none of them outlive the
processing of the file they describe.
"""

import ntpath
import posixpath
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class CandidateFile(BaseModel):
    """A remote store entry eligible for processing.

    Built from a Google Drive ``files`` resource; ``createdTime`` is parsed
    from RFC 3339 and ``size`` from its string form.
    """

    id: str
    name: str
    created_at: Optional[datetime] = Field(default=None, alias="createdTime")
    size_bytes: int = Field(default=0, alias="size")
    parents: List[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    @property
    def parent_id(self) -> Optional[str]:
        """First parent container of the file, if listed."""
        return self.parents[0] if self.parents else None

    def age_seconds(self, now: Optional[datetime] = None) -> Optional[float]:
        """Seconds elapsed since the file was created, None if unknown."""
        if self.created_at is None:
            return None
        created = self.created_at
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        now = now or datetime.now(timezone.utc)
        return (now - created).total_seconds()


class ProcessingOutcome(str, Enum):
    """Result of processing one candidate file."""

    PROCESSED = "processed"
    SKIPPED_TOO_SMALL = "skipped_too_small"
    FAILED_TRANSIENT = "failed_transient"
    FAILED_PERMANENT = "failed_permanent"


class FileKind(str, Enum):
    DATA = "data"
    LOG = "log"

    @classmethod
    def from_type_code(cls, type_code: str) -> "FileKind":
        """Map a RESTORE FILELISTONLY type code to a file kind."""
        return cls.LOG if type_code.strip().upper().startswith("L") else cls.DATA


@dataclass
class BackupFileSet:
    """Logical files listed in a backup's manifest, in manifest order."""

    entries: List[Tuple[str, FileKind]] = field(default_factory=list)

    def _last_of(self, kind: FileKind) -> Optional[str]:
        names = [name for name, entry_kind in self.entries if entry_kind is kind]
        return names[-1] if names else None

    @property
    def data_name(self) -> Optional[str]:
        return self._last_of(FileKind.DATA)

    @property
    def log_name(self) -> Optional[str]:
        return self._last_of(FileKind.LOG)

    def logical_names(self, db_name: str) -> Tuple[str, str]:
        """Data and log logical names, defaulting to the database naming convention."""
        return self.data_name or db_name, self.log_name or f"{db_name}_log"


def join_server_path(directory: str, name: str) -> str:
    """Join a path as seen by the database server.

    Windows separators are used when the directory contains a backslash.
    """
    if "\\" in directory:
        return ntpath.join(directory, name)
    return posixpath.join(directory, name)


@dataclass(frozen=True)
class RestoreTarget:
    """Physical destination of the restored database files."""

    data_path: str
    data_file: str
    log_file: str

    @classmethod
    def for_database(cls, data_path: str, db_name: str) -> "RestoreTarget":
        return cls(
            data_path=data_path,
            data_file=join_server_path(data_path, f"{db_name}.mdf"),
            log_file=join_server_path(data_path, f"{db_name}_log.ldf"),
        )


@dataclass(frozen=True)
class RestoreResult:
    """Summary of a completed restore."""

    database: str
    backup_path: str
    file_set: BackupFileSet
    target: RestoreTarget
    multi_user_restored: bool


@dataclass(frozen=True)
class LedgerRow:
    key: str
    timestamp: str


@dataclass
class BatchReport:
    """Outcome counts of one batch run."""

    total: int = 0
    outcomes: Counter = field(default_factory=Counter)
    failures: Dict[str, str] = field(default_factory=dict)

    def record(self, file: CandidateFile, outcome: ProcessingOutcome, error: Optional[str] = None) -> None:
        self.outcomes[outcome] += 1
        if error is not None:
            self.failures[file.name] = error

    def count(self, outcome: ProcessingOutcome) -> int:
        return self.outcomes[outcome]

    def summary(self) -> str:
        parts = [f"{outcome.value}={self.outcomes[outcome]}" for outcome in ProcessingOutcome]
        return f"{self.total} files: " + ", ".join(parts)
