# pgbootstrap/main_installer.py
# -*- coding: utf-8 -*-
"""
Main entry point for the PostgreSQL/PostGIS host bootstrapper.

Handles argument parsing, logging setup, validation, and runs the fixed
provisioning pipeline:

    install packages -> remote access -> role/database -> extensions
    -> swap -> firewall -> summary
"""

import argparse
import logging
import sys
from typing import Any, Dict, List, Optional

from pgbootstrap import __version__
from pgbootstrap.common.command_utils import is_running_as_root, log_bootstrap
from pgbootstrap.common.core_utils import setup_logging
from pgbootstrap.common.debian.apt_manager import AptManager, PackageManager
from pgbootstrap.common.exceptions import ConfigurationError
from pgbootstrap.common.gateway import ShellSystemGateway, SystemGateway
from pgbootstrap.common.orchestrator import Orchestrator
from pgbootstrap.common.system_utils import ServiceManager, SystemdServiceManager
from pgbootstrap.configure.postgres_configurator import (
    configure_remote_access,
    ensure_extensions,
    ensure_role_and_database,
)
from pgbootstrap.configure.swap_configurator import SwapState, ensure_swap
from pgbootstrap.configure.ufw_configurator import (
    FirewallManager,
    UfwFirewallManager,
    ensure_firewall,
)
from pgbootstrap.installer.postgres_installer import ensure_packages_installed
from pgbootstrap.setup.cli_handler import render_summary, view_configuration
from pgbootstrap.setup.config_loader import (
    build_provisioning_request,
    load_app_settings,
)
from pgbootstrap.setup.config_models import (
    CONFIG_FILE_DEFAULT,
    AppSettings,
    ProvisioningRequest,
)

logger = logging.getLogger("pgbootstrap")

STAGE_INSTALL = "Install packages"
STAGE_REMOTE_ACCESS = "Configure remote access"
STAGE_ROLE_AND_DATABASE = "Ensure role and database"
STAGE_EXTENSIONS = "Ensure extensions"
STAGE_SWAP = "Ensure swap"
STAGE_FIREWALL = "Configure firewall"
STAGE_SUMMARY = "Report summary"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pgbootstrap",
        description=(
            "Provision this host as a PostgreSQL/PostGIS server reachable from anywhere: "
            "install packages, open remote access, create a role and database, "
            "ensure swap and lock down UFW. Must run as root; safe to re-run."
        ),
        epilog="Example: sudo pgbootstrap -r app_user -p 'S3cureP@ss' -d app_db",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    required_group = parser.add_argument_group("Required parameters")
    required_group.add_argument("-r", "--role", help="PostgreSQL login role/user to create or update.")
    required_group.add_argument("-p", "--password",
                                help="Password for the role (will be set even if role exists).")
    required_group.add_argument("-d", "--database", help="Database name to create with PostGIS enabled.")

    config_group = parser.add_argument_group("Configuration Overrides")
    config_group.add_argument("--config-file", default=CONFIG_FILE_DEFAULT,
                              help="YAML configuration file (ignored if absent).")
    config_group.add_argument("--swap-mib", type=int, default=None,
                              help="Size in MiB of a newly provisioned swap file.")
    config_group.add_argument("--no-superuser", action="store_true",
                              help="Create/repair the role as NOSUPERUSER instead of SUPERUSER.")
    config_group.add_argument("-l", "--log-prefix", default=None, help="Prefix for log messages.")
    config_group.add_argument("--log-file", default=None, help="Also append log output to this file.")
    config_group.add_argument("-v", "--verbose", action="store_true", help="Enable debug output.")
    config_group.add_argument("--view-config", action="store_true",
                              help="Show the effective configuration and exit without changing anything.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def require_root() -> None:
    """
    Raises:
        ConfigurationError: If the process is not running as root.
    """
    if not is_running_as_root():
        raise ConfigurationError(
            "This command must run as root (use sudo)."
        )


# --- Pipeline stages (called by the Orchestrator with context/app_settings) ---


def _stage_install_packages(
    package_manager: PackageManager,
    service_manager: ServiceManager,
    context: Dict[str, Any],
    app_settings: AppSettings,
) -> None:
    ensure_packages_installed(package_manager, service_manager, app_settings, current_logger=logger)


def _stage_remote_access(
    gateway: SystemGateway,
    service_manager: ServiceManager,
    context: Dict[str, Any],
    app_settings: AppSettings,
):
    return configure_remote_access(gateway, service_manager, app_settings, logger)


def _stage_role_and_database(
    gateway: SystemGateway,
    request: ProvisioningRequest,
    context: Dict[str, Any],
    app_settings: AppSettings,
) -> Dict[str, Any]:
    return ensure_role_and_database(gateway, request, app_settings, logger)


def _stage_extensions(
    gateway: SystemGateway,
    request: ProvisioningRequest,
    context: Dict[str, Any],
    app_settings: AppSettings,
) -> List[str]:
    return ensure_extensions(gateway, request.database, app_settings, current_logger=logger)


def _stage_swap(
    gateway: SystemGateway,
    context: Dict[str, Any],
    app_settings: AppSettings,
) -> SwapState:
    return ensure_swap(gateway, app_settings, logger)


def _stage_firewall(
    firewall_manager: FirewallManager,
    context: Dict[str, Any],
    app_settings: AppSettings,
) -> str:
    return ensure_firewall(firewall_manager, app_settings, current_logger=logger)


def report_summary(
    request: ProvisioningRequest,
    context: Dict[str, Any],
    app_settings: AppSettings,
) -> str:
    """Prints the final summary built from the results of earlier stages."""
    role_and_db = context.get(f"{STAGE_ROLE_AND_DATABASE}_result") or {}
    swap_state: Optional[SwapState] = context.get(f"{STAGE_SWAP}_result")
    summary = render_summary(
        request,
        app_settings,
        role_outcome=role_and_db.get("role"),
        database_outcome=role_and_db.get("database"),
        extensions=context.get(f"{STAGE_EXTENSIONS}_result"),
        swap_description=swap_state.describe() if swap_state else None,
        remote_access_configured=context.get(f"{STAGE_REMOTE_ACCESS}_result") is not None,
        firewall_status=context.get(f"{STAGE_FIREWALL}_result"),
    )
    print(summary)
    return summary


def build_pipeline(
    request: ProvisioningRequest,
    app_settings: AppSettings,
    gateway: SystemGateway,
    package_manager: PackageManager,
    service_manager: ServiceManager,
    firewall_manager: FirewallManager,
) -> Orchestrator:
    """Assembles the fixed stage sequence."""
    orchestrator = Orchestrator(app_settings, logger)
    orchestrator.add_task(STAGE_INSTALL, _stage_install_packages, [package_manager, service_manager])
    orchestrator.add_task(STAGE_REMOTE_ACCESS, _stage_remote_access, [gateway, service_manager])
    orchestrator.add_task(STAGE_ROLE_AND_DATABASE, _stage_role_and_database, [gateway, request])
    orchestrator.add_task(STAGE_EXTENSIONS, _stage_extensions, [gateway, request])
    orchestrator.add_task(STAGE_SWAP, _stage_swap, [gateway])
    orchestrator.add_task(STAGE_FIREWALL, _stage_firewall, [firewall_manager])
    orchestrator.add_task(STAGE_SUMMARY, report_summary, [request])
    return orchestrator


def main_bootstrap_entry(
    args: Optional[List[str]] = None,
    gateway: Optional[SystemGateway] = None,
    package_manager: Optional[PackageManager] = None,
    service_manager: Optional[ServiceManager] = None,
    firewall_manager: Optional[FirewallManager] = None,
) -> int:
    """
    Runs the bootstrapper. The host-facing collaborators default to the real
    shell-backed implementations.

    Returns:
        int: 0 on success, 1 on a configuration error, 2 on a usage error. A
            failing stage exits the process with status 1.
    """
    parser = build_parser()
    try:
        parsed_args = parser.parse_args(args)
    except SystemExit as e:
        return e.code

    try:
        app_settings = load_app_settings(
            cli_args=parsed_args,
            config_file_path=parsed_args.config_file,
            current_logger=logger,
        )
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    log_level = logging.DEBUG if parsed_args.verbose else logging.INFO
    symbols = app_settings.symbols

    if parsed_args.view_config:
        # Console only: viewing the configuration must not create a log file.
        setup_logging(
            log_level=log_level,
            log_prefix=app_settings.log_prefix,
            symbols=symbols,
        )
        request = None
        if parsed_args.role and parsed_args.password and parsed_args.database:
            request = build_provisioning_request(parsed_args)
        view_configuration(app_settings, request, logger)
        return 0

    try:
        request = build_provisioning_request(parsed_args)
    except ConfigurationError as e:
        print(f"{e}\n", file=sys.stderr)
        parser.print_usage(sys.stderr)
        return 1

    # Before setup_logging, which may create the --log-file directory.
    try:
        require_root()
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    setup_logging(
        log_level=log_level,
        log_file=parsed_args.log_file,
        log_prefix=app_settings.log_prefix,
        symbols=symbols,
    )

    log_bootstrap(
        f"{symbols.get('sparkles', '✨')} Starting PostgreSQL/PostGIS bootstrap (version {__version__}) "
        f"for role '{request.role}' and database '{request.database}'...",
        "info",
        logger,
        app_settings,
    )

    gateway = gateway or ShellSystemGateway(app_settings, logger)
    package_manager = package_manager or AptManager(gateway, logger)
    service_manager = service_manager or SystemdServiceManager(gateway, app_settings, logger)
    firewall_manager = firewall_manager or UfwFirewallManager(gateway, app_settings, logger)

    build_pipeline(
        request,
        app_settings,
        gateway,
        package_manager,
        service_manager,
        firewall_manager,
    ).run()
    return 0


def main() -> None:
    sys.exit(main_bootstrap_entry())


if __name__ == "__main__":
    main()
