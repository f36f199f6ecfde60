"""
File processor for Drive backup archives.

Downloads, extracts and restores one archive, then deletes it from Drive
and records it in the ledger.
"""

import logging
import os
import shutil
import tempfile
from typing import Any, Callable, Dict, Optional

from ..config import AppSettings
from ..exceptions import (
    ExtractError,
    FileProcessingError,
    LocateError,
    PermanentFileError,
    RemoteStoreError,
    RestoreError,
    TransientFileError,
)
from .drive import RemoteFileStore
from .extractor import ArchiveExtractor
from .ledger import CompletionTracker, record_completion
from .locator import find_backup_file
from .models import CandidateFile, ProcessingOutcome
from .permissions import grant_service_permissions
from .restorer import DatabaseRestorer

logger = logging.getLogger(__name__)


class FileProcessor:
    """
    Processes a single candidate archive.

    Archives below the minimum size are deleted unprocessed. Archives that
    cannot be extracted are discarded once they are old enough that the
    upload cannot still be in progress; younger ones are left for the next
    run. Restore failures always leave the archive in place for a retry.
    """

    def __init__(
        self,
        settings: AppSettings,
        store: RemoteFileStore,
        extractor: ArchiveExtractor,
        restorer: DatabaseRestorer,
        tracker: CompletionTracker,
        progress_callback: Optional[Callable[[str, str, Dict[str, Any]], None]] = None,
        grant_permissions: Optional[Callable[[str, str], Any]] = None,
    ):
        """
        Initialize processor with its collaborators.

        Args:
            settings: Application settings
            store: Remote file store holding the archives
            extractor: Archive extractor
            restorer: Restorer for the target database
            tracker: Ledger completion tracker
            progress_callback: Callback for progress updates
            grant_permissions: Permission grant step, defaults to icacls
        """
        self.settings = settings
        self.store = store
        self.extractor = extractor
        self.restorer = restorer
        self.tracker = tracker
        self.progress_callback = progress_callback or (lambda *args: None)
        self.grant_permissions = grant_permissions or grant_service_permissions

    def process(self, file: CandidateFile) -> ProcessingOutcome:
        """
        Process a candidate file.

        Args:
            file: File to process

        Returns:
            ProcessingOutcome: PROCESSED or SKIPPED_TOO_SMALL

        Raises:
            TransientFileError: If the file failed and was left in place
            PermanentFileError: If the archive was discarded as unrecoverable
        """
        logger.info(f"Starting processing for file: {file.name}")
        self.progress_callback(
            "processing",
            f"Processing {file.name}",
            {"file_name": file.name, "file_id": file.id, "file_size": file.size_bytes},
        )

        if file.size_bytes < self.settings.processing.min_file_size:
            return self._skip_small_file(file)

        scratch_dir = tempfile.mkdtemp(prefix="backup-", dir=self.settings.processing.scratch_dir)
        logger.info(f"Temporary directory created: {scratch_dir}")
        try:
            return self._process_in(file, scratch_dir)
        finally:
            try:
                shutil.rmtree(scratch_dir)
                logger.info(f"Cleaned up temporary directory: {scratch_dir}")
            except OSError as e:
                logger.error(f"Error cleaning up temporary directory: {str(e)}")

    def _skip_small_file(self, file: CandidateFile) -> ProcessingOutcome:
        logger.info(
            f"File {file.name} is smaller than {self.settings.processing.min_file_size} bytes "
            f"({file.size_bytes} bytes), deleting from Drive"
        )
        try:
            self.store.delete(file.id)
        except RemoteStoreError as e:
            raise TransientFileError(file.name, f"failed to delete small file: {e}", e) from e
        logger.info("Small file deleted from Google Drive")
        return ProcessingOutcome.SKIPPED_TOO_SMALL

    def _process_in(self, file: CandidateFile, scratch_dir: str) -> ProcessingOutcome:
        archive_path = os.path.join(scratch_dir, os.path.basename(file.name) or file.id)
        self.progress_callback("processing", "Downloading archive", {"step": "downloading"})
        try:
            self.store.download(file.id, archive_path)
        except RemoteStoreError as e:
            raise TransientFileError(file.name, f"failed to download file: {e}", e) from e
        logger.info(f"File downloaded to {archive_path}")

        self.progress_callback("processing", "Extracting archive", {"step": "extracting"})
        try:
            extract_dir = os.path.join(scratch_dir, "extracted")
            self.extractor.extract(
                archive_path, extract_dir, self.settings.archive.password.get_secret_value()
            )
            backup_file = find_backup_file(extract_dir, self.settings.archive.backup_suffix)
        except (ExtractError, LocateError) as e:
            raise self._unextractable_error(file, e) from e

        if self.settings.processing.grant_permissions:
            self.grant_permissions(backup_file, self.settings.database.host)

        self.progress_callback(
            "processing",
            "Restoring database backup",
            {"step": "restoring", "backup_file": os.path.basename(backup_file)},
        )
        try:
            self.restorer.restore(backup_file)
            self.restorer.run_correction_query(self.settings.database.correction_query)
        except RestoreError as e:
            raise TransientFileError(file.name, str(e), e) from e

        try:
            self._delete_source(file)
        except RemoteStoreError as e:
            raise TransientFileError(file.name, str(e), e) from e
        self._record(file)

        logger.info(f"Processing completed for file: {file.name}")
        return ProcessingOutcome.PROCESSED

    def _unextractable_error(self, file: CandidateFile, error: Exception) -> FileProcessingError:
        """Discard the archive if it is old enough; return the error to raise."""
        age = file.age_seconds()
        if age is None or age < self.settings.processing.max_age_for_deletion:
            logger.info(
                f"File {file.name} is less than "
                f"{int(self.settings.processing.max_age_for_deletion // 60)} minutes old, "
                f"skipping deletion"
            )
            return TransientFileError(file.name, str(error), error)

        logger.warning(f"Discarding unextractable archive {file.name}: {error}")
        try:
            self._delete_source(file)
        except RemoteStoreError as e:
            return TransientFileError(file.name, f"{error}; {e}", e)
        self._record(file)
        return PermanentFileError(file.name, str(error), error)

    def _delete_source(self, file: CandidateFile) -> None:
        logger.info(f"Deleting file from Google Drive: {file.id}")
        self.store.delete(file.id)
        logger.info("File deleted from Google Drive")

    def _record(self, file: CandidateFile) -> None:
        record_completion(
            self.tracker, self.store, file, self.settings.google.spreadsheet_timezone
        )
