"""
Archive extraction for downloaded backup archives.

The archive is handed to an external decompression program through patool,
with the password passed on the command line so the program never prompts.
"""

import logging
import os
from typing import Protocol

import patoolib
from patoolib.util import PatoolError

from ..exceptions import ExtractError

logger = logging.getLogger(__name__)


class ArchiveExtractor(Protocol):
    """Extracts a password-protected archive into a directory."""

    def extract(self, archive_path: str, dest_dir: str, password: str) -> None:
        ...


class PatoolExtractor:
    """Extracts archives by running an external program through patool."""

    def __init__(self, program: str = "7z"):
        self.program = program

    def extract(self, archive_path: str, dest_dir: str, password: str) -> None:
        """
        Extract an archive.

        Args:
            archive_path: Path to the archive file
            dest_dir: Directory to extract into; created if missing
            password: Archive password

        Raises:
            ExtractError: If the program fails (wrong password, corrupt
                archive, program not installed). The contents of dest_dir
                are undefined afterwards.
        """
        logger.info(f"Extracting {os.path.basename(archive_path)} to {dest_dir}")
        try:
            os.makedirs(dest_dir, exist_ok=True)
            patoolib.extract_archive(
                archive_path,
                outdir=dest_dir,
                program=self.program,
                interactive=False,
                password=password,
                verbosity=-1,
            )
        except (PatoolError, OSError) as e:
            raise ExtractError(f"Failed to extract {archive_path}: {e}") from e
        logger.info("Archive extraction completed")
