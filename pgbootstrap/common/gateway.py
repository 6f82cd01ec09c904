# pgbootstrap/common/gateway.py
# -*- coding: utf-8 -*-
"""
The SystemGateway is the only path by which provisioning code touches the host:
privileged commands, SQL against the local server, and file access. Every
convergence step receives one, so tests can hand in an in-memory double.
"""

import logging
import re
import subprocess
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from pgbootstrap.common.command_utils import run_command, run_elevated_command
from pgbootstrap.common.exceptions import ExternalToolError, FilesystemError
from pgbootstrap.common.sql_utils import connection_string_for_database
from pgbootstrap.setup.config_models import AppSettings

module_logger = logging.getLogger(__name__)


class SystemGateway(ABC):
    """Capability interface over the target machine."""

    @abstractmethod
    def run_privileged_command(
        self,
        command: List[str],
        check: bool = True,
        capture_output: bool = True,
        cmd_input: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> subprocess.CompletedProcess:
        """
        Runs a command as root.

        Raises:
            ExternalToolError: If ``check`` is True and the command fails or
                cannot be found.
        """

    @abstractmethod
    def query_database(
        self, sql: str, database: Optional[str] = None
    ) -> List[List[str]]:
        """
        Runs SQL as the server's built-in superuser and returns result rows,
        each row a list of column values. Statements without a result set
        return an empty list.

        Raises:
            ExternalToolError: If the client exits non-zero.
        """

    @abstractmethod
    def read_file(self, path: str) -> str:
        """
        Raises:
            FilesystemError: If the file does not exist or cannot be read.
        """

    @abstractmethod
    def append_file(self, path: str, content: str) -> None:
        """Appends content to the file, creating it if needed."""

    @abstractmethod
    def file_exists(self, path: str) -> bool:
        """True if ``path`` is a regular file."""

    @abstractmethod
    def remove_file(self, path: str) -> None:
        """Removes the file if it exists."""


# Unit separator; role and database names may contain "|".
FIELD_SEPARATOR = "\x1f"

_PSQL_MESSAGE_PREFIXES = ("ERROR:", "FATAL:", "psql:")
_QUOTED_LITERAL = re.compile(r"'(?:[^']|'')*'")


def parse_psql_rows(output: str) -> List[List[str]]:
    """Splits unaligned, tuples-only psql output into rows of columns."""
    return [
        line.split(FIELD_SEPARATOR) for line in output.splitlines() if line.strip()
    ]


def summarize_psql_error(stderr: Optional[str]) -> str:
    """
    Reduces psql's stderr to a single diagnostic line that is safe to log.

    The first ERROR/FATAL/psql line is kept (or the first non-empty line if
    there is none). The ``LINE n:`` context psql echoes after it is dropped,
    and any single-quoted literal left in the kept line is masked, since the
    failing statement may carry a password.
    """
    lines = [line.strip() for line in (stderr or "").splitlines() if line.strip()]
    if not lines:
        return "no error output"
    chosen = next(
        (line for line in lines if line.startswith(_PSQL_MESSAGE_PREFIXES)), lines[0]
    )
    return _QUOTED_LITERAL.sub("'***'", chosen)


class ShellSystemGateway(SystemGateway):
    """SystemGateway that shells out to sudo, psql, cat, tee, test and rm."""

    def __init__(
        self,
        app_settings: AppSettings,
        logger: Optional[logging.Logger] = None,
    ):
        self.app_settings = app_settings
        self.logger = logger or module_logger

    def run_privileged_command(
        self,
        command: List[str],
        check: bool = True,
        capture_output: bool = True,
        cmd_input: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> subprocess.CompletedProcess:
        try:
            return run_elevated_command(
                command,
                self.app_settings,
                check=check,
                capture_output=capture_output,
                cmd_input=cmd_input,
                current_logger=self.logger,
                env=env,
            )
        except subprocess.CalledProcessError as e:
            raise ExternalToolError(
                f"Command '{subprocess.list2cmdline(command)}' failed with exit code {e.returncode}",
                command=command,
                returncode=e.returncode,
                stderr=e.stderr,
            ) from e
        except FileNotFoundError as e:
            raise ExternalToolError(
                f"Command not found: {e.filename or command[0]}",
                command=command,
            ) from e

    def query_database(
        self, sql: str, database: Optional[str] = None
    ) -> List[List[str]]:
        # SQL goes over stdin so passwords never show up in the process table or logs.
        command = [
            "sudo",
            "-u",
            self.app_settings.pg.os_user,
            "psql",
            "-X",
            "-q",
            "-A",
            "-t",
            "-F",
            FIELD_SEPARATOR,
            "-v",
            "ON_ERROR_STOP=1",
        ]
        if database:
            command += ["-d", connection_string_for_database(database)]
        try:
            # psql may echo the failing statement on stderr; only a summary is reported.
            result = run_command(
                command,
                self.app_settings,
                check=False,
                capture_output=True,
                cmd_input=sql,
                current_logger=self.logger,
                log_output=False,
            )
        except FileNotFoundError as e:
            raise ExternalToolError(
                "psql (or sudo) not found. Is PostgreSQL installed?",
                command=command,
            ) from e
        if result.returncode != 0:
            summary = summarize_psql_error(result.stderr)
            raise ExternalToolError(
                f"psql failed with exit code {result.returncode}: {summary}",
                command=command,
                returncode=result.returncode,
                stderr=summary,
            )
        return parse_psql_rows(result.stdout or "")

    def read_file(self, path: str) -> str:
        try:
            result = self.run_privileged_command(["cat", path])
        except ExternalToolError as e:
            raise FilesystemError(f"Cannot read {path}: {e}", path=path) from e
        return result.stdout or ""

    def append_file(self, path: str, content: str) -> None:
        self.run_privileged_command(["tee", "-a", path], cmd_input=content)

    def file_exists(self, path: str) -> bool:
        result = self.run_privileged_command(["test", "-f", path], check=False)
        return result.returncode == 0

    def remove_file(self, path: str) -> None:
        self.run_privileged_command(["rm", "-f", path])
