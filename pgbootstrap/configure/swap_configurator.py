# pgbootstrap/configure/swap_configurator.py
# -*- coding: utf-8 -*-
"""
Guarantees the host has swap.

Existing swap is never touched. Only a host with no active swap gets a new
swap file of exactly the configured size, registered in /etc/fstab.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from pgbootstrap.common.command_utils import log_bootstrap
from pgbootstrap.common.exceptions import ExternalToolError, FilesystemError
from pgbootstrap.common.gateway import SystemGateway
from pgbootstrap.setup.config_models import MIB, AppSettings

module_logger = logging.getLogger(__name__)

SWAPON_SHOW_COMMAND = ["swapon", "--show=NAME,SIZE", "--noheadings", "--bytes"]


@dataclass(frozen=True)
class SwapState:
    """Active swap as reported by swapon."""

    exists: bool
    size_bytes: int
    devices: List[Tuple[str, int]] = field(default_factory=list)

    def describe(self) -> str:
        if not self.exists:
            return "no active swap"
        names = ", ".join(name for name, _ in self.devices)
        return f"{self.size_bytes // MIB} MiB active ({names})"


def observe_swap(
    gateway: SystemGateway,
    app_settings: AppSettings,
    current_logger: Optional[logging.Logger] = None,
) -> SwapState:
    """
    Reads the active swap devices. A failing swapon is treated as "no swap".
    """
    logger_to_use = current_logger if current_logger else module_logger
    result = gateway.run_privileged_command(SWAPON_SHOW_COMMAND, check=False)
    if result.returncode != 0:
        log_bootstrap(
            f"{app_settings.symbols.get('warning', '⚠️')} 'swapon --show' failed (rc {result.returncode}); assuming no active swap.",
            "warning",
            logger_to_use,
            app_settings,
        )
        return SwapState(exists=False, size_bytes=0)

    devices: List[Tuple[str, int]] = []
    for line in (result.stdout or "").splitlines():
        parts = line.split()
        if not parts:
            continue
        size = int(parts[1]) if len(parts) > 1 and parts[1].isdigit() else 0
        devices.append((parts[0], size))
    return SwapState(
        exists=bool(devices),
        size_bytes=sum(size for _, size in devices),
        devices=devices,
    )


def _fstab_has_entry(fstab_content: str, swap_path: str) -> bool:
    for line in fstab_content.splitlines():
        fields = line.split()
        if fields and not fields[0].startswith("#") and fields[0] == swap_path:
            return True
    return False


def ensure_fstab_entry(
    gateway: SystemGateway,
    app_settings: AppSettings,
    current_logger: Optional[logging.Logger] = None,
) -> bool:
    """
    Adds ``<swap path> none swap sw 0 0`` to the mount table unless an entry
    for that path already exists.

    Returns:
        bool: True if an entry was appended.
    """
    logger_to_use = current_logger if current_logger else module_logger
    swap = app_settings.swap
    try:
        fstab_content = gateway.read_file(swap.fstab_path)
    except FilesystemError as e:
        log_bootstrap(
            f"{app_settings.symbols.get('warning', '⚠️')} {e}; a new entry will be appended.",
            "warning",
            logger_to_use,
            app_settings,
        )
        fstab_content = ""

    if _fstab_has_entry(fstab_content, swap.file_path):
        log_bootstrap(
            f"{app_settings.symbols.get('info', 'ℹ️')} {swap.fstab_path} already has an entry for {swap.file_path}.",
            "info",
            logger_to_use,
            app_settings,
        )
        return False

    separator = "" if not fstab_content or fstab_content.endswith("\n") else "\n"
    gateway.append_file(
        swap.fstab_path, f"{separator}{swap.file_path} none swap sw 0 0\n"
    )
    return True


def _allocate_swap_file(
    gateway: SystemGateway,
    app_settings: AppSettings,
    logger_to_use: logging.Logger,
) -> None:
    swap = app_settings.swap
    result = gateway.run_privileged_command(
        ["fallocate", "-l", str(swap.target_bytes), swap.file_path], check=False
    )
    if result.returncode == 0:
        return

    log_bootstrap(
        f"{app_settings.symbols.get('warning', '⚠️')} fallocate unavailable; falling back to dd (this may take a bit).",
        "warning",
        logger_to_use,
        app_settings,
    )
    # A failed fallocate can leave a partial file behind.
    gateway.remove_file(swap.file_path)
    gateway.run_privileged_command(
        [
            "dd",
            "if=/dev/zero",
            f"of={swap.file_path}",
            "bs=1M",
            f"count={swap.target_bytes // MIB}",
        ]
    )


def ensure_swap(
    gateway: SystemGateway,
    app_settings: AppSettings,
    current_logger: Optional[logging.Logger] = None,
) -> SwapState:
    """
    Provisions a swap file if the host has no active swap at all.

    If any swap is active this is a no-op. Otherwise stale swap registrations
    are switched off, any old swap file at the configured path is removed, and
    a new file of exactly ``swap.target_bytes`` is allocated (fallocate, with a
    dd zero-fill fallback), locked down to owner read/write, formatted,
    activated and recorded in the mount table.

    Returns:
        SwapState: The swap state after convergence.

    Raises:
        ExternalToolError: If allocation, mkswap or swapon fails.
    """
    logger_to_use = current_logger if current_logger else module_logger
    symbols = app_settings.symbols
    swap = app_settings.swap

    current = observe_swap(gateway, app_settings, logger_to_use)
    if current.exists:
        log_bootstrap(
            f"{symbols.get('info', 'ℹ️')} Existing swap detected ({current.describe()}); skipping swapfile provisioning.",
            "info",
            logger_to_use,
            app_settings,
        )
        return current

    log_bootstrap(
        f"{symbols.get('gear', '⚙️')} Resetting swap configuration...",
        "info",
        logger_to_use,
        app_settings,
    )
    swapoff = gateway.run_privileged_command(["swapoff", "-a"], check=False)
    if swapoff.returncode != 0:
        log_bootstrap(
            f"{symbols.get('warning', '⚠️')} 'swapoff -a' returned {swapoff.returncode}; continuing.",
            "warning",
            logger_to_use,
            app_settings,
        )
    if gateway.file_exists(swap.file_path):
        gateway.remove_file(swap.file_path)

    log_bootstrap(
        f"{symbols.get('gear', '⚙️')} Allocating new swapfile at {swap.file_path} ({swap.target_bytes // MIB} MiB)...",
        "info",
        logger_to_use,
        app_settings,
    )
    _allocate_swap_file(gateway, app_settings, logger_to_use)
    gateway.run_privileged_command(["chmod", swap.file_mode, swap.file_path])
    gateway.run_privileged_command(["mkswap", swap.file_path])
    gateway.run_privileged_command(["swapon", swap.file_path])

    ensure_fstab_entry(gateway, app_settings, logger_to_use)

    final = observe_swap(gateway, app_settings, logger_to_use)
    if not final.exists:
        raise ExternalToolError(
            f"Swap file {swap.file_path} was activated but swapon reports no active swap",
            command=SWAPON_SHOW_COMMAND,
        )
    log_bootstrap(
        f"{symbols.get('success', '✅')} Swap setup complete. System now has swap at {swap.file_path}.",
        "success",
        logger_to_use,
        app_settings,
    )
    return final
