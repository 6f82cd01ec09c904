# pgbootstrap/configure/postgres_configurator.py
# -*- coding: utf-8 -*-
"""
Handles configuration of PostgreSQL: remote access (listen address and
pg_hba.conf), the login role, the database and its extensions.

All SQL is built from escaped fragments (see pgbootstrap.common.sql_utils) and
run through the SystemGateway as the server's built-in superuser.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pgbootstrap.common.command_utils import log_bootstrap
from pgbootstrap.common.exceptions import (
    DiscoveryDegradation,
    ExternalToolError,
    FilesystemError,
)
from pgbootstrap.common.file_utils import backup_file
from pgbootstrap.common.gateway import SystemGateway
from pgbootstrap.common.sql_utils import (
    alter_database_owner_statement,
    alter_role_statement,
    alter_system_statement,
    create_database_statement,
    create_extension_statement,
    create_role_statement,
    database_owned_by_query,
    escape_identifier,
    escape_literal,
    role_exists_query,
    show_setting_query,
)
from pgbootstrap.common.system_utils import ServiceManager
from pgbootstrap.setup.config_models import AppSettings, ProvisioningRequest

module_logger = logging.getLogger(__name__)

ROLE_CREATED = "created"
ROLE_UPDATED = "updated"
DATABASE_CREATED = "created"
DATABASE_OWNER_CHANGED = "owner changed"
DATABASE_UNCHANGED = "unchanged"


@dataclass(frozen=True)
class ServerPaths:
    """Configuration file locations reported by the running server."""

    config_file: str
    hba_file: str


def _show_setting(gateway: SystemGateway, name: str) -> str:
    try:
        rows = gateway.query_database(show_setting_query(escape_identifier(name)))
    except ExternalToolError as e:
        raise DiscoveryDegradation(f"SHOW {name} failed: {e}") from e
    value = rows[0][0].strip() if rows and rows[0] else ""
    if not value:
        raise DiscoveryDegradation(f"SHOW {name} returned no value")
    return value


def discover_server_paths(
        gateway: SystemGateway,
        app_settings: AppSettings,
        current_logger: Optional[logging.Logger] = None,
) -> ServerPaths:
    """
    Asks the running server where its postgresql.conf and pg_hba.conf live.

    Raises:
        DiscoveryDegradation: If either path cannot be determined.
    """
    logger_to_use = current_logger if current_logger else module_logger
    symbols = app_settings.symbols

    paths = ServerPaths(
        config_file=_show_setting(gateway, "config_file"),
        hba_file=_show_setting(gateway, "hba_file"),
    )
    log_bootstrap(
        f"{symbols.get('info', 'ℹ️')} PostgreSQL config_file reported as: {paths.config_file}",
        "info",
        logger_to_use,
        app_settings,
    )
    log_bootstrap(
        f"{symbols.get('info', 'ℹ️')} PostgreSQL hba_file reported as: {paths.hba_file}",
        "info",
        logger_to_use,
        app_settings,
    )
    return paths


def _hba_rule_present(hba_content: str, hba_match: str) -> bool:
    for line in hba_content.splitlines():
        stripped = line.strip()
        if stripped and not stripped.startswith("#") and hba_match in stripped:
            return True
    return False


def ensure_hba_rule(
        gateway: SystemGateway,
        hba_file: str,
        app_settings: AppSettings,
        current_logger: Optional[logging.Logger] = None,
) -> bool:
    """
    Appends the remote-access rule to pg_hba.conf unless an active line already
    contains ``pg.hba_match``.

    Returns:
        bool: True if the rule was appended, False if it was already present.

    Raises:
        FilesystemError: If pg_hba.conf is missing or unreadable.
    """
    logger_to_use = current_logger if current_logger else module_logger
    symbols = app_settings.symbols
    pg = app_settings.pg

    if not gateway.file_exists(hba_file):
        raise FilesystemError(f"hba_file not found at {hba_file}", path=hba_file)

    hba_content = gateway.read_file(hba_file)
    if _hba_rule_present(hba_content, pg.hba_match):
        log_bootstrap(
            f"{symbols.get('info', 'ℹ️')} pg_hba.conf already contains a rule for {pg.hba_match}; leaving as-is.",
            "info",
            logger_to_use,
            app_settings,
        )
        return False

    if pg.backup_hba_file:
        backup_file(hba_file, gateway, app_settings, logger_to_use)

    log_bootstrap(
        f"{symbols.get('gear', '⚙️')} Adding pg_hba.conf rule to allow IPv4 connections from anywhere (password auth)...",
        "info",
        logger_to_use,
        app_settings,
    )
    separator = "" if not hba_content or hba_content.endswith("\n") else "\n"
    gateway.append_file(hba_file, f"{separator}{pg.hba_rule}\n")
    return True


def configure_remote_access(
        gateway: SystemGateway,
        service_manager: ServiceManager,
        app_settings: AppSettings,
        current_logger: Optional[logging.Logger] = None,
) -> Optional[ServerPaths]:
    """
    Opens the server to remote connections.

    Discovers the configuration paths, sets listen_addresses via ALTER SYSTEM,
    appends the pg_hba.conf rule if missing and restarts the server. If the
    paths cannot be discovered the whole step is skipped with a warning and the
    server stays local-only. A missing pg_hba.conf only skips the append.

    Returns:
        Optional[ServerPaths]: The discovered paths, or None if discovery failed.

    Raises:
        ExternalToolError: If ALTER SYSTEM or the restart fails.
    """
    logger_to_use = current_logger if current_logger else module_logger
    symbols = app_settings.symbols
    pg = app_settings.pg

    log_bootstrap(
        f"{symbols.get('step', '➡️')} Configuring PostgreSQL for remote access...",
        "info",
        logger_to_use,
        app_settings,
    )
    try:
        paths = discover_server_paths(gateway, app_settings, logger_to_use)
    except DiscoveryDegradation as e:
        log_bootstrap(
            f"{symbols.get('warning', '⚠️')} WARNING: Could not determine config_file or hba_file ({e}); skipping remote config.",
            "warning",
            logger_to_use,
            app_settings,
        )
        return None

    log_bootstrap(
        f"{symbols.get('gear', '⚙️')} Setting listen_addresses = '{pg.listen_addresses}' via ALTER SYSTEM...",
        "info",
        logger_to_use,
        app_settings,
    )
    gateway.query_database(
        alter_system_statement(
            escape_identifier("listen_addresses"),
            escape_literal(pg.listen_addresses),
        )
    )

    try:
        ensure_hba_rule(gateway, paths.hba_file, app_settings, logger_to_use)
    except FilesystemError as e:
        log_bootstrap(
            f"{symbols.get('warning', '⚠️')} WARNING: {e}; cannot modify pg_hba.conf.",
            "warning",
            logger_to_use,
            app_settings,
        )

    # listen_addresses only takes effect on a full restart.
    service_manager.restart(pg.service_name)
    log_bootstrap(
        f"{symbols.get('success', '✅')} PostgreSQL restarted with remote access settings.",
        "success",
        logger_to_use,
        app_settings,
    )
    return paths


def ensure_role(
        gateway: SystemGateway,
        request: ProvisioningRequest,
        app_settings: AppSettings,
        current_logger: Optional[logging.Logger] = None,
) -> str:
    """
    Creates the login role, or resets its password and privilege level if it
    already exists. Existing roles are always rewritten so a rerun repairs drift.

    Returns:
        str: ROLE_CREATED or ROLE_UPDATED.
    """
    logger_to_use = current_logger if current_logger else module_logger
    symbols = app_settings.symbols
    superuser = app_settings.pg.grant_superuser
    privilege = "SUPERUSER" if superuser else "NOSUPERUSER"

    role_literal = escape_literal(request.role)
    role_ident = escape_identifier(request.role)
    password_literal = escape_literal(request.password)

    rows = gateway.query_database(role_exists_query(role_literal))
    if any(row and row[0].strip() == "1" for row in rows):
        log_bootstrap(
            f"{symbols.get('info', 'ℹ️')} Role '{request.role}' already exists; updating password and ensuring {privilege}...",
            "info",
            logger_to_use,
            app_settings,
        )
        gateway.query_database(
            alter_role_statement(role_ident, password_literal, superuser)
        )
        return ROLE_UPDATED

    log_bootstrap(
        f"{symbols.get('gear', '⚙️')} Creating {privilege} role '{request.role}'...",
        "info",
        logger_to_use,
        app_settings,
    )
    gateway.query_database(
        create_role_statement(role_ident, password_literal, superuser)
    )
    return ROLE_CREATED


def ensure_database(
        gateway: SystemGateway,
        request: ProvisioningRequest,
        app_settings: AppSettings,
        current_logger: Optional[logging.Logger] = None,
) -> str:
    """
    Creates the database owned by the role, or hands an existing database over
    to the role when it is owned by someone else.

    Returns:
        str: DATABASE_CREATED, DATABASE_OWNER_CHANGED or DATABASE_UNCHANGED.
    """
    logger_to_use = current_logger if current_logger else module_logger
    symbols = app_settings.symbols

    db_ident = escape_identifier(request.database)
    role_ident = escape_identifier(request.role)

    rows = gateway.query_database(
        database_owned_by_query(
            escape_literal(request.database), escape_literal(request.role)
        )
    )
    if rows:
        if rows[0][0].strip() == "t":
            log_bootstrap(
                f"{symbols.get('info', 'ℹ️')} Database '{request.database}' already exists and is owned by '{request.role}'.",
                "info",
                logger_to_use,
                app_settings,
            )
            return DATABASE_UNCHANGED
        log_bootstrap(
            f"{symbols.get('info', 'ℹ️')} Database '{request.database}' already exists and is owned by another role; updating owner...",
            "info",
            logger_to_use,
            app_settings,
        )
        gateway.query_database(alter_database_owner_statement(db_ident, role_ident))
        return DATABASE_OWNER_CHANGED

    log_bootstrap(
        f"{symbols.get('gear', '⚙️')} Creating database '{request.database}' owned by '{request.role}'...",
        "info",
        logger_to_use,
        app_settings,
    )
    gateway.query_database(
        create_database_statement(
            db_ident, role_ident, escape_literal(app_settings.pg.encoding)
        )
    )
    return DATABASE_CREATED


def ensure_extensions(
        gateway: SystemGateway,
        database: str,
        app_settings: AppSettings,
        extensions: Optional[List[str]] = None,
        current_logger: Optional[logging.Logger] = None,
) -> List[str]:
    """
    Creates each extension in ``database`` if it does not exist yet, in list
    order (postgis_topology needs postgis first).

    Returns:
        List[str]: The extensions ensured, in order.
    """
    logger_to_use = current_logger if current_logger else module_logger
    symbols = app_settings.symbols
    to_enable = list(extensions if extensions is not None else app_settings.pg.extensions)

    log_bootstrap(
        f"{symbols.get('gear', '⚙️')} Enabling extensions on database '{database}': {', '.join(to_enable)}",
        "info",
        logger_to_use,
        app_settings,
    )
    for ext in to_enable:
        gateway.query_database(
            create_extension_statement(escape_identifier(ext)), database=database
        )
        log_bootstrap(
            f"{symbols.get('success', '✅')} PostgreSQL extension '{ext}' ensured.",
            "success",
            logger_to_use,
            app_settings,
        )
    return to_enable


def ensure_role_and_database(
        gateway: SystemGateway,
        request: ProvisioningRequest,
        app_settings: AppSettings,
        current_logger: Optional[logging.Logger] = None,
) -> Dict[str, Any]:
    """Converges the role first, then the database it owns."""
    logger_to_use = current_logger if current_logger else module_logger
    symbols = app_settings.symbols
    log_bootstrap(
        f"{symbols.get('step', '➡️')} Ensuring role '{request.role}' and database '{request.database}' exist...",
        "info",
        logger_to_use,
        app_settings,
    )
    role_outcome = ensure_role(gateway, request, app_settings, logger_to_use)
    database_outcome = ensure_database(gateway, request, app_settings, logger_to_use)
    log_bootstrap(
        f"{symbols.get('success', '✅')} Role and database provisioning complete.",
        "success",
        logger_to_use,
        app_settings,
    )
    return {"role": role_outcome, "database": database_outcome}
