"""
Configuration settings for the Drive backup restore service.

This module defines all configuration settings using Pydantic classes.
It handles environment variable loading and validation.
"""

import os
from typing import Any, Dict, Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError

# Load environment variables
load_dotenv()


class DatabaseSettings(BaseSettings):
    """SQL Server connection settings.

    Attributes:
        host: SQL Server host, optionally ``server\\instance``
        user: SQL Server login; empty together with password for integrated auth
        password: SQL Server password
        name: Name of the database to restore
        driver: Command interface used to talk to the server
        port: SQL Server port (pymssql driver only)
        command_timeout: Timeout for a single command in seconds, 0 disables it
        correction_query: Query run against the database after each restore
    """

    host: str = Field(..., validation_alias="DB_HOST", description="SQL Server host")
    user: str = Field(default="", validation_alias="DB_USER", description="SQL Server login")
    password: SecretStr = Field(
        default=SecretStr(""), validation_alias="DB_PASS", description="SQL Server password"
    )
    name: str = Field(..., validation_alias="DB_NAME", description="Target database name")
    driver: Literal["sqlcmd", "pymssql"] = Field(
        default="sqlcmd", validation_alias="DB_DRIVER", description="Database command driver"
    )
    port: str = Field(default="1433", validation_alias="DB_PORT", description="SQL Server port")
    command_timeout: int = Field(
        default=3600,
        validation_alias="DB_COMMAND_TIMEOUT",
        description="Timeout for a single database command in seconds",
    )
    correction_query: str = Field(
        ..., validation_alias="UPDATE_QUERY", description="Query run after each restore"
    )

    model_config = SettingsConfigDict(
        extra="ignore", env_file=".env", populate_by_name=True
    )

    @property
    def integrated_auth(self) -> bool:
        """Whether to authenticate with the service's own Windows identity."""
        return not self.user and not self.password.get_secret_value()


class ArchiveSettings(BaseSettings):
    """Backup archive settings.

    Attributes:
        password: Password protecting the backup archives
        program: Extraction program used by patool
        backup_suffix: Suffix of the backup file inside the archive
    """

    password: SecretStr = Field(
        ..., validation_alias="SEVENZ_PASSWORD", description="Archive password"
    )
    program: str = Field(
        default="7z", validation_alias="ARCHIVE_PROGRAM", description="Extraction program"
    )
    backup_suffix: str = Field(
        default=".bak",
        validation_alias="ARCHIVE_BACKUP_SUFFIX",
        description="Suffix of the backup file inside the archive",
    )

    model_config = SettingsConfigDict(
        extra="ignore", env_file=".env", populate_by_name=True
    )


class GoogleSettings(BaseSettings):
    """Google Drive and Sheets settings.

    Attributes:
        service_account_file: Path to the service account JSON key
        spreadsheet_id: Identifier of the tracking spreadsheet
        spreadsheet_timezone: IANA timezone used for ledger timestamps
        sheet_name: Sheet holding the ledger, first sheet when empty
        name_marker: Substring a Drive file name must contain to be processed
    """

    service_account_file: str = Field(
        ..., validation_alias="SERVICE_ACCOUNT_FILE", description="Service account key file"
    )
    spreadsheet_id: str = Field(
        ..., validation_alias="SPREADSHEET_ID", description="Tracking spreadsheet ID"
    )
    spreadsheet_timezone: Optional[str] = Field(
        default=None,
        validation_alias="SPREADSHEET_TIMEZONE",
        description="Timezone for ledger timestamps",
    )
    sheet_name: Optional[str] = Field(
        default=None, validation_alias="SPREADSHEET_SHEET", description="Ledger sheet name"
    )
    name_marker: str = Field(
        default="Susenas2025M",
        validation_alias="DRIVE_NAME_MARKER",
        description="Substring identifying backup archives on Drive",
    )

    model_config = SettingsConfigDict(
        extra="ignore", env_file=".env", populate_by_name=True
    )


class ProcessingSettings(BaseSettings):
    """Per-file processing settings.

    Attributes:
        min_file_size: Files below this size in bytes are deleted unprocessed
        max_age_for_deletion: Age in seconds after which an unextractable
            archive is considered permanently broken
        grant_permissions: Grant the SQL Server service account access to
            the extracted backup before restoring
        scratch_dir: Parent directory for per-file scratch directories
        retry_attempts: Number of attempts for retryable remote operations
        retry_delay: Delay between attempts in seconds
    """

    min_file_size: int = Field(default=10 * 1024, description="Minimum archive size in bytes")
    max_age_for_deletion: float = Field(
        default=10 * 60, description="Age in seconds before a broken archive is discarded"
    )
    grant_permissions: bool = Field(
        default_factory=lambda: os.name == "nt",
        description="Grant SQL Server service account access to the backup",
    )
    scratch_dir: Optional[str] = Field(default=None, description="Scratch directory parent")
    retry_attempts: int = Field(default=3, description="Number of retry attempts")
    retry_delay: int = Field(default=5, description="Delay between retry attempts in seconds")

    model_config = SettingsConfigDict(
        env_prefix="PROCESSING_", extra="ignore", env_file=".env"
    )


class LoggingSettings(BaseSettings):
    """Logging configuration settings.

    Attributes:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        directory: Directory to store log files
        max_size_mb: Maximum size of log file before rotation
        backup_count: Number of rotated log files to keep
        json_format: Whether to use JSON formatted logs
    """

    level: str = Field(default="INFO", description="Logging level")
    directory: str = Field(default="logs", description="Log directory")
    max_size_mb: int = Field(default=10, description="Max log file size in MB")
    backup_count: int = Field(default=5, description="Number of log backups to keep")
    json_format: bool = Field(default=True, description="Use JSON formatted logs")

    model_config = SettingsConfigDict(
        env_prefix="LOG_", extra="ignore", env_file=".env"
    )

    @field_validator("level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that the log level is one of the supported values."""
        allowed_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed_levels:
            raise ValueError(f"Log level must be one of: {', '.join(allowed_levels)}")
        return v.upper()


class AppSettings(BaseSettings):
    """Application settings.

    Attributes:
        database: SQL Server connection settings
        archive: Backup archive settings
        google: Google Drive and Sheets settings
        processing: Per-file processing settings
        logging: Logging configuration settings
    """

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    archive: ArchiveSettings = Field(default_factory=ArchiveSettings)
    google: GoogleSettings = Field(default_factory=GoogleSettings)
    processing: ProcessingSettings = Field(default_factory=ProcessingSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    def get_logging_config(self) -> Dict[str, Any]:
        """Get logging configuration dictionary."""
        level = self.logging.level
        return {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "standard": {
                    "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
                },
                "json": {
                    "()": "pythonjsonlogger.json.JsonFormatter",
                    "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "standard",
                    "level": level,
                },
                "file": {
                    "class": "logging.handlers.RotatingFileHandler",
                    "filename": os.path.join(self.logging.directory, "drive_restore.log"),
                    "maxBytes": self.logging.max_size_mb * 1024 * 1024,
                    "backupCount": self.logging.backup_count,
                    "formatter": "json" if self.logging.json_format else "standard",
                    "level": level,
                },
            },
            "loggers": {"": {"handlers": ["console", "file"], "level": level}},
        }


def mask_secret(secret: SecretStr) -> str:
    """Render a secret as asterisks of the same length."""
    return "*" * len(secret.get_secret_value())


def load_settings(**overrides: Any) -> AppSettings:
    """Load application settings, refusing to start on invalid configuration.

    Args:
        overrides: Explicit values taking precedence over the environment

    Returns:
        AppSettings: Validated settings

    Raises:
        ConfigurationError: If a required option is missing or invalid
    """
    try:
        return AppSettings(**overrides)
    except ValidationError as e:
        problems = []
        for error in e.errors():
            location = ".".join(str(part) for part in error["loc"])
            problems.append(f"{location or e.title}: {error['msg']}")
        raise ConfigurationError(
            f"Invalid configuration ({e.title}): " + "; ".join(problems)
        ) from e
