"""
Exception hierarchy for the Drive backup restore service.

Process-level errors (configuration, discovery) abort a run. Per-file errors
are caught by the batch driver and never stop the batch.
"""

from typing import List, Optional

from .core.models import ProcessingOutcome


class DriveRestoreError(Exception):
    """Base class for all service errors."""


class ConfigurationError(DriveRestoreError):
    """Configuration is missing or invalid; raised before any file is touched."""


class DiscoveryError(DriveRestoreError):
    """Candidate files could not be listed from the remote store."""


class RemoteStoreError(DriveRestoreError):
    """A remote file store operation failed."""


class ExtractError(DriveRestoreError):
    """The archive could not be extracted."""


class LocateError(DriveRestoreError):
    """The backup file could not be located in the extracted tree."""


class BackupNotFoundError(LocateError):
    """No backup file was found in the extracted tree."""


class MultipleBackupFilesError(LocateError):
    """More than one backup file was found in the extracted tree."""

    def __init__(self, matches: List[str]):
        self.matches = matches
        super().__init__(
            f"Expected exactly one backup file, found {len(matches)}: {', '.join(matches)}"
        )


class CommandError(DriveRestoreError):
    """An external command failed, timed out or could not be started.

    Attributes:
        output: Combined diagnostic output of the command, if any
    """

    def __init__(self, message: str, output: str = ""):
        self.output = output
        super().__init__(message)


class RestoreError(DriveRestoreError):
    """A database restore step failed.

    Attributes:
        output: Diagnostic output of the failing command, if any
    """

    def __init__(self, message: str, output: str = ""):
        self.output = output
        super().__init__(message)


class ManifestError(RestoreError):
    """The backup file list could not be read."""


class SingleUserModeError(RestoreError):
    """Exclusive access to the target database could not be obtained."""


class RestoreCommandError(RestoreError):
    """The RESTORE DATABASE command failed."""

    def __str__(self) -> str:
        message = super().__str__()
        if self.output:
            return f"{message}\n{self.output}"
        return message


class CorrectionQueryError(RestoreError):
    """The post-restore correction query failed."""


class LedgerError(DriveRestoreError):
    """The tracking ledger could not be read or written."""


class FileProcessingError(DriveRestoreError):
    """Processing of a single candidate file failed.

    Attributes:
        outcome: Processing outcome recorded for the file
        file_name: Name of the file that failed
    """

    outcome = ProcessingOutcome.FAILED_TRANSIENT

    def __init__(self, file_name: str, message: str, cause: Optional[BaseException] = None):
        self.file_name = file_name
        self.cause = cause
        super().__init__(f"{file_name}: {message}")


class TransientFileError(FileProcessingError):
    """The file failed but is left in place to be retried on the next run."""


class PermanentFileError(FileProcessingError):
    """The archive was judged unrecoverable and has been discarded."""

    outcome = ProcessingOutcome.FAILED_PERMANENT
