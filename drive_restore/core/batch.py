"""
Batch driver.

Runs one pass over every candidate archive on Drive. Files are processed
one at a time in creation order; a failing file never stops the batch.
"""

import logging

from ..config import AppSettings
from ..exceptions import DiscoveryError, FileProcessingError, RemoteStoreError
from .drive import RemoteFileStore
from .models import BatchReport, ProcessingOutcome
from .processor import FileProcessor

logger = logging.getLogger(__name__)


class BatchDriver:
    """Processes all candidate files found in the remote store."""

    def __init__(self, settings: AppSettings, store: RemoteFileStore, processor: FileProcessor):
        self.settings = settings
        self.store = store
        self.processor = processor

    def run(self) -> BatchReport:
        """
        Run a single batch pass.

        Returns:
            BatchReport: Outcome counts for the pass

        Raises:
            DiscoveryError: If the candidate files cannot be listed
        """
        logger.info("Retrieving files from Google Drive...")
        try:
            files = self.store.list_files(self.settings.google.name_marker)
        except RemoteStoreError as e:
            raise DiscoveryError(f"Unable to get files: {e}") from e
        logger.info(f"Found {len(files)} files to process")

        report = BatchReport(total=len(files))
        for i, file in enumerate(files, start=1):
            logger.info(f"Processing file {i}/{len(files)}: {file.name} (ID: {file.id})")
            try:
                outcome = self.processor.process(file)
            except FileProcessingError as e:
                logger.error(f"Error processing file {file.name}: {e.cause or e}")
                report.record(file, e.outcome, str(e))
                continue
            except Exception as e:
                logger.exception(f"Unexpected error processing file {file.name}")
                report.record(file, ProcessingOutcome.FAILED_TRANSIENT, str(e))
                continue

            report.record(file, outcome)
            if outcome is ProcessingOutcome.SKIPPED_TOO_SMALL:
                logger.info(f"Skipped file {file.name}: below minimum size")
            else:
                logger.info(f"Successfully processed file {file.name}")

        logger.info(f"Batch run completed: {report.summary()}")
        return report
