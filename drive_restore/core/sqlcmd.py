"""
Database command interface.

Statements are sent to SQL Server either through the ``sqlcmd`` command-line
utility or through a pymssql connection. Both runners expose the same two
operations so the restorer does not depend on the transport.
"""

import logging
import subprocess
import time
from typing import List, Optional, Protocol

import pymssql

from ..config import DatabaseSettings
from ..exceptions import CommandError

logger = logging.getLogger(__name__)


class DatabaseCommandRunner(Protocol):
    """Executes administrative statements and queries against SQL Server."""

    def execute(self, statement: str, database: str = "master") -> str:
        """Run a statement, returning its diagnostic output."""
        ...

    def query(self, statement: str, database: str = "master") -> List[List[str]]:
        """Run a query, returning its rows without headers or row counts."""
        ...


def parse_delimited_output(output: str, separator: str = "|") -> List[List[str]]:
    """
    Parse headerless delimited query output into rows of trimmed cells.

    Blank lines are skipped.
    """
    rows = []
    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue
        rows.append([cell.strip() for cell in line.split(separator)])
    return rows


class SqlcmdRunner:
    """Runs statements with the sqlcmd command-line utility."""

    def __init__(
        self,
        host: str,
        user: str = "",
        password: str = "",
        timeout: Optional[float] = None,
        executable: str = "sqlcmd",
        integrated_auth: bool = True,
    ):
        """
        Initialize the runner.

        Args:
            host: Server name, optionally ``server\\instance``
            user: Login used when integrated_auth is off
            password: Password for the login
            timeout: Seconds before a command is killed, None to wait forever
            executable: Name or path of the sqlcmd binary
            integrated_auth: Connect with the Windows identity of the process
        """
        self.host = host
        self.user = user
        self.password = password
        self.timeout = timeout
        self.executable = executable
        self.integrated_auth = integrated_auth

    @classmethod
    def from_settings(cls, settings: DatabaseSettings) -> "SqlcmdRunner":
        return cls(
            host=settings.host,
            user=settings.user,
            password=settings.password.get_secret_value(),
            timeout=settings.command_timeout or None,
            integrated_auth=settings.integrated_auth,
        )

    def base_args(self, database: str) -> List[str]:
        """Connection arguments shared by every invocation."""
        args = [self.executable, "-S", self.host, "-d", database, "-b"]
        if self.integrated_auth:
            args.append("-E")
        else:
            args.extend(["-U", self.user, "-P", self.password])
        return args

    def _run(self, args: List[str], merge_stderr: bool) -> str:
        try:
            completed = subprocess.run(
                args,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT if merge_stderr else subprocess.PIPE,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            output = e.output or ""
            if isinstance(output, bytes):
                output = output.decode(errors="replace")
            raise CommandError(f"sqlcmd timed out after {self.timeout} seconds", output) from e
        except OSError as e:
            raise CommandError(f"Failed to start {self.executable}: {e}") from e

        output = completed.stdout or ""
        if completed.returncode != 0:
            diagnostics = output
            if not merge_stderr and completed.stderr:
                diagnostics = f"{output}{completed.stderr}"
            raise CommandError(
                f"sqlcmd exited with status {completed.returncode}", diagnostics
            )
        return output

    def execute(self, statement: str, database: str = "master") -> str:
        args = self.base_args(database) + ["-Q", statement]
        output = self._run(args, merge_stderr=True)
        if output.strip():
            logger.debug(f"sqlcmd output: {output.strip()}")
        return output

    def query(self, statement: str, database: str = "master") -> List[List[str]]:
        args = self.base_args(database) + [
            "-h", "-1", "-W", "-s", "|", "-Q", f"SET NOCOUNT ON; {statement}",
        ]
        return parse_delimited_output(self._run(args, merge_stderr=False))


class PymssqlRunner:
    """Runs statements over a pymssql connection."""

    def __init__(
        self,
        server: str,
        user: str,
        password: str,
        port: str = "1433",
        timeout: int = 0,
        retry_attempts: int = 3,
        retry_delay: int = 5,
    ):
        self.server = server
        self.user = user
        self.password = password
        self.port = port
        self.timeout = timeout
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay

    @classmethod
    def from_settings(
        cls, settings: DatabaseSettings, retry_attempts: int = 3, retry_delay: int = 5
    ) -> "PymssqlRunner":
        return cls(
            server=settings.host,
            user=settings.user,
            password=settings.password.get_secret_value(),
            port=settings.port,
            timeout=settings.command_timeout,
            retry_attempts=retry_attempts,
            retry_delay=retry_delay,
        )

    def _connect(self, database: str):
        attempt = 0
        while True:
            attempt += 1
            try:
                # RESTORE and ALTER DATABASE cannot run inside a transaction
                return pymssql.connect(
                    server=self.server,
                    user=self.user,
                    password=self.password,
                    database=database,
                    port=int(self.port),
                    autocommit=True,
                    timeout=self.timeout,
                )
            except pymssql.Error as e:
                logger.warning(f"Connection attempt {attempt} failed: {str(e)}")
                if attempt >= self.retry_attempts:
                    raise CommandError(
                        f"Failed to connect to SQL Server after {self.retry_attempts} attempts: {str(e)}"
                    ) from e
                time.sleep(self.retry_delay)

    def _run(self, statement: str, database: str, fetch: bool) -> List[List[str]]:
        conn = self._connect(database)
        cursor = None
        try:
            cursor = conn.cursor()
            cursor.execute(statement)
            rows: List[List[str]] = []
            if fetch:
                for row in cursor.fetchall():
                    rows.append(["NULL" if value is None else str(value).strip() for value in row])
            else:
                # Drain remaining result sets so errors in later batches surface
                while cursor.nextset():
                    pass
            return rows
        except pymssql.Error as e:
            raise CommandError(f"SQL Server error: {e}", str(e)) from e
        finally:
            if cursor:
                cursor.close()
            conn.close()

    def execute(self, statement: str, database: str = "master") -> str:
        self._run(statement, database, fetch=False)
        return ""

    def query(self, statement: str, database: str = "master") -> List[List[str]]:
        return self._run(statement, database, fetch=True)


def create_runner(
    settings: DatabaseSettings, retry_attempts: int = 3, retry_delay: int = 5
) -> DatabaseCommandRunner:
    """Build the command runner selected by the database settings."""
    if settings.driver == "pymssql":
        return PymssqlRunner.from_settings(settings, retry_attempts, retry_delay)
    return SqlcmdRunner.from_settings(settings)
