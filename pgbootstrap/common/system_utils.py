# pgbootstrap/common/system_utils.py
# -*- coding: utf-8 -*-
"""
Service management for the bootstrapper.

The ServiceManager interface covers the two operations provisioning needs
on named units; SystemdServiceManager implements them with systemctl.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from pgbootstrap.common.command_utils import log_bootstrap
from pgbootstrap.common.gateway import SystemGateway
from pgbootstrap.setup.config_models import AppSettings

module_logger = logging.getLogger(__name__)


class ServiceManager(ABC):
    """Enable, start or restart named service units."""

    @abstractmethod
    def enable_and_start(self, unit: str) -> None:
        pass

    @abstractmethod
    def restart(self, unit: str) -> None:
        pass


class SystemdServiceManager(ServiceManager):
    """ServiceManager backed by systemctl."""

    def __init__(
        self,
        gateway: SystemGateway,
        app_settings: AppSettings,
        logger: Optional[logging.Logger] = None,
    ):
        self.gateway = gateway
        self.app_settings = app_settings
        self.logger = logger or module_logger

    def enable_and_start(self, unit: str) -> None:
        symbols = self.app_settings.symbols
        log_bootstrap(
            f"{symbols.get('gear', '⚙️')} Enabling and starting {unit}...",
            "info",
            self.logger,
            self.app_settings,
        )
        self.gateway.run_privileged_command(["systemctl", "enable", "--now", unit])

    def restart(self, unit: str) -> None:
        symbols = self.app_settings.symbols
        log_bootstrap(
            f"{symbols.get('gear', '⚙️')} Restarting {unit}...",
            "info",
            self.logger,
            self.app_settings,
        )
        self.gateway.run_privileged_command(["systemctl", "restart", unit])
