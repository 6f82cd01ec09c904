# pgbootstrap/common/exceptions.py
# -*- coding: utf-8 -*-
"""
Exception types raised while provisioning the host.

Only ConfigurationError and ExternalToolError abort a run. DiscoveryDegradation
and FilesystemError are caught by the remote-access step and logged as warnings.
"""

from typing import List, Optional, Sequence, Union


class BootstrapError(Exception):
    """Base class for every error raised by pgbootstrap."""


class ConfigurationError(BootstrapError):
    """Required input is missing or invalid, or the process is not privileged."""


class ExternalToolError(BootstrapError):
    """An external tool (apt, psql, ufw, systemctl, ...) reported failure."""

    def __init__(
        self,
        message: str,
        command: Optional[Union[Sequence[str], str]] = None,
        returncode: Optional[int] = None,
        stderr: Optional[str] = None,
    ):
        super().__init__(message)
        self.command: Optional[List[str]] = (
            [command] if isinstance(command, str) else list(command or [])
        ) or None
        self.returncode = returncode
        self.stderr = stderr


class DiscoveryDegradation(BootstrapError):
    """The running server did not report its configuration file paths."""


class FilesystemError(BootstrapError):
    """An expected file is absent or cannot be read."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path
