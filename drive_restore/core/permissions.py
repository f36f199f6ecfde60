"""
Filesystem permission grant for Windows-hosted SQL Server instances.

SQL Server reads backup files with its own service identity, which often
cannot see files extracted into a user's temporary directory.
"""

import logging
import os
import subprocess
from dataclasses import dataclass, field
from typing import List

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_ACCOUNT = "NT SERVICE\\MSSQLSERVER"


@dataclass
class PermissionGrantResult:
    account: str
    failures: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def service_account_for_host(host: str) -> str:
    """
    Derive the SQL Server service account from the configured host.

    ``server\\INSTANCE`` maps to ``NT SERVICE\\MSSQL$INSTANCE``; any other
    host maps to the default instance account.
    """
    if "\\" in host:
        instance = host.split("\\", 1)[1]
        return f"NT SERVICE\\MSSQL${instance}"
    return DEFAULT_SERVICE_ACCOUNT


def _icacls(args: List[str]) -> None:
    subprocess.run(
        ["icacls", *args],
        check=True,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
    )


def grant_service_permissions(backup_file: str, host: str) -> PermissionGrantResult:
    """
    Grant the SQL Server service account full control of the backup file
    and its folder.

    Never raises; failures are logged and returned.
    """
    account = service_account_for_host(host)
    result = PermissionGrantResult(account=account)
    logger.info(f"Granting {account} access to {backup_file} and its folder")

    targets = [
        (backup_file, [backup_file, "/grant", f"{account}:F"]),
        (os.path.dirname(backup_file), [os.path.dirname(backup_file), "/grant", f"{account}:F", "/T"]),
    ]
    for path, args in targets:
        try:
            _icacls(args)
        except (subprocess.CalledProcessError, OSError) as e:
            logger.warning(f"Failed to grant permissions on {path}: {e}")
            result.failures.append(path)

    return result
