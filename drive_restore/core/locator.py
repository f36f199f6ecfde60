"""Locates the backup file inside an extracted archive."""

import logging
import os
from typing import List

from ..exceptions import BackupNotFoundError, MultipleBackupFilesError

logger = logging.getLogger(__name__)


def find_backup_files(root_dir: str, suffix: str = ".bak") -> List[str]:
    """
    List files under root_dir whose name ends with suffix.

    Directories and file names are visited in sorted order so the result
    does not depend on the platform's directory listing order.
    """
    matches = []
    for root, dirs, files in os.walk(root_dir):
        dirs.sort()
        for name in sorted(files):
            if name.lower().endswith(suffix.lower()):
                matches.append(os.path.join(root, name))
    return matches


def find_backup_file(root_dir: str, suffix: str = ".bak") -> str:
    """
    Find the single backup file in an extracted directory tree.

    Args:
        root_dir: Root of the extracted tree
        suffix: Backup file suffix

    Returns:
        str: Path to the backup file

    Raises:
        BackupNotFoundError: If no file matches
        MultipleBackupFilesError: If more than one file matches
    """
    matches = find_backup_files(root_dir, suffix)
    if not matches:
        raise BackupNotFoundError(f"No {suffix} file found in {root_dir}")
    if len(matches) > 1:
        raise MultipleBackupFilesError(matches)
    logger.info(f"Found backup file: {matches[0]}")
    return matches[0]
