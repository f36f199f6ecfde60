"""
Main entry point for the Drive backup restore service.

This module loads and validates configuration, initializes logging,
checks the external tools and runs one batch pass.
"""

import logging
import logging.config
import shutil
import sys
from pathlib import Path
from typing import Any, Dict

from drive_restore import __version__
from drive_restore.config import AppSettings, load_settings, mask_secret
from drive_restore.core.batch import BatchDriver
from drive_restore.core.drive import GoogleDriveStore, candidate_query, load_credentials
from drive_restore.core.extractor import PatoolExtractor
from drive_restore.core.ledger import CompletionTracker, GoogleSheetsLedger
from drive_restore.core.processor import FileProcessor
from drive_restore.core.restorer import DatabaseRestorer
from drive_restore.core.sqlcmd import create_runner
from drive_restore.exceptions import ConfigurationError, DiscoveryError

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_DISCOVERY_FAILED = 1
EXIT_CONFIGURATION_FAILED = 2
EXIT_INTERRUPTED = 130


def setup_directories(settings: AppSettings) -> None:
    """Create required directories for the application."""
    Path(settings.logging.directory).mkdir(parents=True, exist_ok=True)
    if settings.processing.scratch_dir:
        Path(settings.processing.scratch_dir).mkdir(parents=True, exist_ok=True)


def log_startup_info(settings: AppSettings) -> None:
    """Log startup information and configuration details."""
    logger.info("-" * 50)
    logger.info("Drive Restore Service Starting")
    logger.info("-" * 50)

    logger.info(f"Version: {__version__}")
    logger.info(f"Python version: {sys.version}")
    logger.info(f"DB_HOST: {settings.database.host}")
    db_user = "(integrated authentication)" if settings.database.integrated_auth else settings.database.user
    logger.info(f"DB_USER: {db_user}")
    logger.info(f"DB_PASS: {mask_secret(settings.database.password)}")
    logger.info(f"DB_NAME: {settings.database.name}")
    logger.info(f"DB_DRIVER: {settings.database.driver}")
    logger.info(f"SEVENZ_PASSWORD: {mask_secret(settings.archive.password)}")
    logger.info(f"SERVICE_ACCOUNT_FILE: {settings.google.service_account_file}")
    logger.info(f"SPREADSHEET_ID: {settings.google.spreadsheet_id}")
    logger.info(f"SPREADSHEET_TIMEZONE: {settings.google.spreadsheet_timezone or 'Local'}")
    logger.info(f"Drive query: {candidate_query(settings.google.name_marker)}")


def check_external_tools(settings: AppSettings) -> None:
    """
    Ensure the external programs are available in PATH.

    Raises:
        ConfigurationError: If a required program is missing
    """
    required = {settings.archive.program: "Please install 7-Zip and ensure it is available in PATH."}
    if settings.database.driver == "sqlcmd":
        required["sqlcmd"] = (
            "Please install SQL Server Command Line Utilities (sqlcmd) "
            "and ensure it is available in PATH."
        )
    for program, hint in required.items():
        if shutil.which(program) is None:
            raise ConfigurationError(f"{program} not found in PATH. {hint}")


def _progress_callback(status: str, message: str, data: Dict[str, Any]) -> None:
    """Callback for processing progress updates."""
    logger.debug(f"Processing update [{status}]: {message} {data}")


def build_driver(settings: AppSettings) -> BatchDriver:
    """
    Wire the pipeline components from settings.

    Raises:
        ConfigurationError: If the Google credentials cannot be loaded
    """
    logger.info("Authenticating with Google Drive and Sheets...")
    try:
        credentials = load_credentials(settings.google.service_account_file)
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"Unable to load service account credentials: {e}") from e

    store = GoogleDriveStore.from_credentials(
        credentials,
        retry_attempts=settings.processing.retry_attempts,
        retry_delay=settings.processing.retry_delay,
    )
    ledger = GoogleSheetsLedger.from_credentials(
        credentials, settings.google.spreadsheet_id, settings.google.sheet_name
    )
    logger.info("Google Drive and Sheets authentication successful")

    runner = create_runner(
        settings.database,
        retry_attempts=settings.processing.retry_attempts,
        retry_delay=settings.processing.retry_delay,
    )
    processor = FileProcessor(
        settings=settings,
        store=store,
        extractor=PatoolExtractor(settings.archive.program),
        restorer=DatabaseRestorer(runner, settings.database.name, _progress_callback),
        tracker=CompletionTracker(ledger),
        progress_callback=_progress_callback,
    )
    return BatchDriver(settings, store, processor)


def main() -> int:
    """Main entry point for the restore service."""
    try:
        settings = load_settings()
    except ConfigurationError as e:
        logging.basicConfig(
            level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
        )
        logger.error(str(e))
        return EXIT_CONFIGURATION_FAILED

    setup_directories(settings)
    logging.config.dictConfig(settings.get_logging_config())
    log_startup_info(settings)

    try:
        check_external_tools(settings)
        driver = build_driver(settings)
        report = driver.run()
    except ConfigurationError as e:
        logger.error(str(e))
        return EXIT_CONFIGURATION_FAILED
    except DiscoveryError as e:
        logger.error(str(e))
        return EXIT_DISCOVERY_FAILED
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received, stopping batch")
        return EXIT_INTERRUPTED

    logger.info(f"Drive restore run completed ({report.summary()})")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
