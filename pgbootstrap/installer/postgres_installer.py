# pgbootstrap/installer/postgres_installer.py
# -*- coding: utf-8 -*-
"""
Installs the PostgreSQL/PostGIS packages and brings their services up.
"""

import logging
from typing import Iterable, Optional

from pgbootstrap.common.command_utils import log_bootstrap
from pgbootstrap.common.debian.apt_manager import PackageManager
from pgbootstrap.common.system_utils import ServiceManager
from pgbootstrap.setup.config_models import AppSettings

module_logger = logging.getLogger(__name__)


def ensure_packages_installed(
    package_manager: PackageManager,
    service_manager: ServiceManager,
    app_settings: AppSettings,
    packages: Optional[Iterable[str]] = None,
    services: Optional[Iterable[str]] = None,
    current_logger: Optional[logging.Logger] = None,
) -> None:
    """
    Refreshes the package index, installs the packages non-interactively and
    enables and starts the services they provide.

    Args:
        package_manager: Package manager used for the refresh and install.
        service_manager: Service manager used to enable/start the units.
        app_settings: Application settings; ``pg.packages`` and ``pg.services``
            are used when ``packages``/``services`` are not given.
        packages: Package names to install.
        services: Units to enable and start afterwards.
        current_logger: Optional logger instance.

    Raises:
        ExternalToolError: If the refresh, install or service start fails. There
            is no safe partial state, so the caller must abort.
    """
    logger_to_use = current_logger if current_logger else module_logger
    symbols = app_settings.symbols
    packages_to_install = list(packages if packages is not None else app_settings.pg.packages)
    units = list(services if services is not None else app_settings.pg.services)

    log_bootstrap(
        f"{symbols.get('package', '📦')} Refreshing package index and installing: {', '.join(packages_to_install)}",
        "info",
        logger_to_use,
        app_settings,
    )
    package_manager.refresh_index()
    package_manager.install(packages_to_install)

    for unit in units:
        service_manager.enable_and_start(unit)

    log_bootstrap(
        f"{symbols.get('success', '✅')} Packages installed; services running: {', '.join(units) or 'none'}.",
        "success",
        logger_to_use,
        app_settings,
    )
