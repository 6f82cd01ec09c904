# pgbootstrap/configure/ufw_configurator.py
# -*- coding: utf-8 -*-
"""
Handles configuration of UFW (Uncomplicated Firewall) rules and activation.

The rule table is reset and rebuilt from scratch on every run, so the end state
depends only on the configured rule set and never on what was there before.
"""
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from pgbootstrap.common.command_utils import log_bootstrap
from pgbootstrap.common.gateway import SystemGateway
from pgbootstrap.setup.config_models import (
    AppSettings,
    FirewallRule,
    FirewallRuleSet,
)

module_logger = logging.getLogger(__name__)


class FirewallManager(ABC):
    """The firewall operations needed for reset-then-rebuild convergence."""

    @abstractmethod
    def reset(self) -> None:
        pass

    @abstractmethod
    def set_default(self, direction: str, policy: str) -> None:
        pass

    @abstractmethod
    def allow(self, rule: FirewallRule) -> None:
        pass

    @abstractmethod
    def enable(self) -> None:
        pass

    @abstractmethod
    def status(self) -> str:
        pass


class UfwFirewallManager(FirewallManager):
    """FirewallManager backed by the ufw command."""

    def __init__(
        self,
        gateway: SystemGateway,
        app_settings: AppSettings,
        logger: Optional[logging.Logger] = None,
    ):
        self.gateway = gateway
        self.app_settings = app_settings
        self.logger = logger or module_logger

    def reset(self) -> None:
        result = self.gateway.run_privileged_command(
            ["ufw", "--force", "reset"], check=False
        )
        if result.returncode != 0:
            log_bootstrap(
                f"{self.app_settings.symbols.get('warning', '⚠️')} 'ufw --force reset' returned {result.returncode}; continuing with rebuild.",
                "warning",
                self.logger,
                self.app_settings,
            )

    def set_default(self, direction: str, policy: str) -> None:
        self.gateway.run_privileged_command(["ufw", "default", policy, direction])

    def allow(self, rule: FirewallRule) -> None:
        self.gateway.run_privileged_command(["ufw", "allow"] + rule.as_args())

    def enable(self) -> None:
        self.gateway.run_privileged_command(["ufw", "--force", "enable"])

    def status(self) -> str:
        result = self.gateway.run_privileged_command(["ufw", "status", "verbose"])
        return (result.stdout or "").strip()


def ensure_firewall(
        firewall_manager: FirewallManager,
        app_settings: AppSettings,
        rule_set: Optional[FirewallRuleSet] = None,
        current_logger: Optional[logging.Logger] = None,
) -> str:
    """
    Resets the firewall, applies the default policies and every allow rule in
    order, then enables enforcement.

    Args:
        firewall_manager: The firewall to converge.
        app_settings: Application settings; ``app_settings.firewall_rule_set()``
            is used when ``rule_set`` is not given.
        rule_set: The full desired rule set.
        current_logger: Optional logger instance.

    Returns:
        str: The firewall status after enabling.

    Raises:
        ExternalToolError: If any policy, rule or enable command fails.
    """
    logger_to_use = current_logger if current_logger else module_logger
    symbols = app_settings.symbols
    desired = rule_set if rule_set is not None else app_settings.firewall_rule_set()

    log_bootstrap(
        f"{symbols.get('step', '➡️')} Configuring uncomplicated firewall (UFW)...",
        "info",
        logger_to_use,
        app_settings,
    )
    firewall_manager.reset()

    for direction, policy in desired.default_policies:
        log_bootstrap(
            f"{symbols.get('info', 'ℹ️')} Default policy: {policy} {direction}",
            "info",
            logger_to_use,
            app_settings,
        )
        firewall_manager.set_default(direction, policy)

    for rule in desired.rules:
        log_bootstrap(
            f"{symbols.get('info', 'ℹ️')} Allowing {rule} via UFW...",
            "info",
            logger_to_use,
            app_settings,
        )
        firewall_manager.allow(rule)

    firewall_manager.enable()

    allowed: List[str] = [str(rule) for rule in desired.rules]
    log_bootstrap(
        f"{symbols.get('success', '✅')} UFW enabled: {', '.join(allowed)} allowed; all other incoming traffic denied.",
        "success",
        logger_to_use,
        app_settings,
    )
    return firewall_manager.status()
