# pgbootstrap/common/debian/apt_manager.py
# -*- coding: utf-8 -*-
"""
Package management for Debian/Ubuntu hosts.
"""

import logging
import os
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from pgbootstrap.common.gateway import SystemGateway

module_logger = logging.getLogger(__name__)


class PackageManager(ABC):
    """Refresh the package index and install packages non-interactively."""

    @abstractmethod
    def refresh_index(self) -> None:
        pass

    @abstractmethod
    def install(self, packages: Iterable[str]) -> None:
        pass


class AptManager(PackageManager):
    """
    PackageManager backed by apt-get. Failures surface as ExternalToolError
    from the gateway; nothing is retried.
    """

    def __init__(
        self, gateway: SystemGateway, logger: Optional[logging.Logger] = None
    ):
        self.gateway = gateway
        self.logger = logger or module_logger

    @staticmethod
    def _noninteractive_env() -> dict:
        env = dict(os.environ)
        env["DEBIAN_FRONTEND"] = "noninteractive"
        return env

    def refresh_index(self) -> None:
        self.logger.info("Updating apt package lists via 'apt-get update'...")
        self.gateway.run_privileged_command(
            ["apt-get", "update", "-yq"], env=self._noninteractive_env()
        )
        self.logger.info("Apt package lists updated successfully.")

    def install(self, packages: Iterable[str]) -> None:
        packages_to_install: List[str] = sorted(set(packages))
        if not packages_to_install:
            self.logger.info("No packages requested. Skipping installation.")
            return
        self.logger.info(
            f"Installing packages: {', '.join(packages_to_install)}"
        )
        self.gateway.run_privileged_command(
            ["apt-get", "install", "-yq"] + packages_to_install,
            env=self._noninteractive_env(),
        )
        self.logger.info("Packages installed successfully.")
