# pgbootstrap/common/file_utils.py
# -*- coding: utf-8 -*-
"""
File system utility functions, such as backing up files.
"""

import datetime
import logging
from typing import Optional

from pgbootstrap.common.command_utils import log_bootstrap
from pgbootstrap.common.exceptions import ExternalToolError
from pgbootstrap.common.gateway import SystemGateway
from pgbootstrap.setup.config_models import AppSettings

module_logger = logging.getLogger(__name__)


def backup_file(
    file_path: str,
    gateway: SystemGateway,
    app_settings: AppSettings,
    current_logger: Optional[logging.Logger] = None,
) -> bool:
    """
    Backup a specified file to a timestamped backup file next to it.

    Parameters:
        file_path (str): The path of the file to be backed up.
        gateway (SystemGateway): Used to check for and copy the file.
        app_settings (AppSettings): Application settings (logging symbols).
        current_logger (Optional[logging.Logger]): Logger instance to use.

    Returns:
        bool: True if the backup was made or no backup was needed (the file
            does not exist). False if copying failed.
    """
    logger_to_use = current_logger if current_logger else module_logger
    symbols = app_settings.symbols

    if not gateway.file_exists(file_path):
        log_bootstrap(
            f"{symbols.get('info', 'ℹ️')} File {file_path} does not exist or is not a regular file. No backup needed.",
            "info",
            logger_to_use,
            app_settings,
        )
        return True

    timestamp = datetime.datetime.now().strftime("%Y%m%d-%H%M%S")
    backup_path = f"{file_path}.bak.{timestamp}"
    try:
        gateway.run_privileged_command(["cp", "-a", file_path, backup_path])
    except ExternalToolError as e:
        log_bootstrap(
            f"{symbols.get('error', '❌')} Failed to backup {file_path} to {backup_path}: {e}",
            "error",
            logger_to_use,
            app_settings,
        )
        return False

    log_bootstrap(
        f"{symbols.get('success', '✅')} Backed up {file_path} to {backup_path}",
        "success",
        logger_to_use,
        app_settings,
    )
    return True
