"""
Database restorer.

Restores a SQL Server backup file over the target database. The backup's
logical file names and the instance's default data directory are discovered
at restore time so backups taken on differently configured servers can be
relocated onto this instance.
"""

import logging
import os
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..exceptions import (
    CommandError,
    CorrectionQueryError,
    ManifestError,
    RestoreCommandError,
    SingleUserModeError,
)
from .models import BackupFileSet, FileKind, RestoreResult, RestoreTarget
from .sqlcmd import DatabaseCommandRunner

logger = logging.getLogger(__name__)


def quote_identifier(name: str) -> str:
    """Bracket-quote a SQL Server identifier."""
    return "[" + name.replace("]", "]]") + "]"


def quote_string(value: str) -> str:
    """Quote a Unicode SQL Server string literal."""
    return "N'" + value.replace("'", "''") + "'"


def parse_file_list(rows: Iterable[List[str]]) -> BackupFileSet:
    """
    Build a BackupFileSet from RESTORE FILELISTONLY rows.

    The first column is the logical name and the third the type code; a code
    starting with ``L`` marks the log file, anything else is treated as data.
    Rows with fewer than three columns are skipped.
    """
    file_set = BackupFileSet()
    for row in rows:
        cols = [col.strip() for col in row]
        if len(cols) < 3 or not cols[0]:
            continue
        file_set.entries.append((cols[0], FileKind.from_type_code(cols[2])))
    return file_set


class DatabaseRestorer:
    """Restores backup files into a single target database."""

    def __init__(
        self,
        runner: DatabaseCommandRunner,
        db_name: str,
        progress_callback: Optional[Callable[[str, str, Dict[str, Any]], None]] = None,
    ):
        """
        Initialize the restorer.

        Args:
            runner: Command interface to the SQL Server instance
            db_name: Name of the database to restore over
            progress_callback: Callback for progress updates
        """
        self.runner = runner
        self.db_name = db_name
        self.progress_callback = progress_callback or (lambda *args: None)

    def restore(self, backup_path: str) -> RestoreResult:
        """
        Restore a backup file over the target database.

        Args:
            backup_path: Path of the backup file as seen by the server

        Returns:
            RestoreResult: Logical files, target paths and access mode state

        Raises:
            ManifestError: If the backup file list cannot be read
            SingleUserModeError: If exclusive access cannot be obtained
            RestoreCommandError: If the restore itself fails
        """
        file_set = self.discover_file_set(backup_path)
        data_path = self.discover_data_path(backup_path)
        target = RestoreTarget.for_database(data_path, self.db_name)

        self.set_single_user()
        self.restore_database(backup_path, file_set, target)
        multi_user = self.set_multi_user()

        return RestoreResult(
            database=self.db_name,
            backup_path=backup_path,
            file_set=file_set,
            target=target,
            multi_user_restored=multi_user,
        )

    def discover_file_set(self, backup_path: str) -> BackupFileSet:
        """Read the logical file names stored in the backup."""
        self.progress_callback(
            "processing", "Reading backup file list", {"step": "file_list"}
        )
        try:
            rows = self.runner.query(
                f"RESTORE FILELISTONLY FROM DISK = {quote_string(backup_path)}"
            )
        except CommandError as e:
            raise ManifestError(f"Failed to run RESTORE FILELISTONLY: {e}", e.output) from e

        file_set = parse_file_list(rows)
        logger.info(
            f"Backup logical files: data={file_set.data_name!r}, log={file_set.log_name!r}"
        )
        return file_set

    def discover_data_path(self, backup_path: str) -> str:
        """
        Resolve the directory the database files are restored into.

        Uses the instance default data path, falling back to the backup's own
        directory when the property is unavailable.
        """
        value = ""
        try:
            rows = self.runner.query("SELECT SERVERPROPERTY('InstanceDefaultDataPath')")
            if rows and rows[0]:
                value = rows[0][0].strip()
        except CommandError as e:
            logger.warning(f"Failed to get instance data path: {e}")

        if not value or value.upper() == "NULL":
            data_path = os.path.dirname(backup_path)
            logger.info(f"Data path empty or NULL, falling back to backup directory: {data_path}")
            return data_path

        logger.info(f"Data path: {value}")
        return value

    def set_single_user(self) -> None:
        """Disconnect other sessions, rolling back their work."""
        logger.info("Setting database to single user mode...")
        statement = (
            f"IF DB_ID({quote_string(self.db_name)}) IS NOT NULL "
            f"ALTER DATABASE {quote_identifier(self.db_name)} "
            f"SET SINGLE_USER WITH ROLLBACK IMMEDIATE;"
        )
        try:
            self.runner.execute(statement)
        except CommandError as e:
            raise SingleUserModeError(
                f"Failed to set database {self.db_name} to single user: {e}", e.output
            ) from e
        logger.info("Database set to single user mode")

    def restore_database(
        self, backup_path: str, file_set: BackupFileSet, target: RestoreTarget
    ) -> None:
        """Run RESTORE DATABASE with explicit file relocation."""
        data_logical, log_logical = file_set.logical_names(self.db_name)
        statement = (
            f"RESTORE DATABASE {quote_identifier(self.db_name)} "
            f"FROM DISK = {quote_string(backup_path)} "
            f"WITH REPLACE, RECOVERY, STATS = 10, "
            f"MOVE {quote_string(data_logical)} TO {quote_string(target.data_file)}, "
            f"MOVE {quote_string(log_logical)} TO {quote_string(target.log_file)}"
        )

        self.progress_callback(
            "processing",
            "Executing SQL restore command",
            {"step": "sql_restore", "database": self.db_name, "data_path": target.data_path},
        )
        try:
            output = self.runner.execute(statement)
        except CommandError as e:
            logger.error(f"Restore output: {e.output}")
            raise RestoreCommandError(f"Restore of {self.db_name} failed: {e}", e.output) from e
        if output.strip():
            logger.info(f"Restore output: {output.strip()}")
        logger.info("Database restore completed")

    def set_multi_user(self) -> bool:
        """Return the database to multi user mode; failures are only logged."""
        logger.info("Setting database back to multi user mode...")
        try:
            self.runner.execute(
                f"ALTER DATABASE {quote_identifier(self.db_name)} SET MULTI_USER;"
            )
        except CommandError as e:
            logger.warning(f"Failed to set database back to multi user: {e}")
            return False
        logger.info("Database set back to multi user mode")
        return True

    def run_correction_query(self, query: str) -> None:
        """Run the post-restore correction query against the restored database."""
        self.progress_callback(
            "processing", "Running correction query", {"step": "correction_query"}
        )
        try:
            self.runner.execute(query, database=self.db_name)
        except CommandError as e:
            logger.error(f"Correction query output: {e.output}")
            raise CorrectionQueryError(f"Correction query failed: {e}", e.output) from e
        logger.info("Correction query completed")
