# pgbootstrap/setup/cli_handler.py
# -*- coding: utf-8 -*-
"""
Handles the text the bootstrapper shows on the console: the effective
configuration view and the final summary.
"""

import logging
from typing import List, Optional

from pgbootstrap.common.command_utils import log_bootstrap
from pgbootstrap.setup.config_models import (
    MIB,
    AppSettings,
    ProvisioningRequest,
)

module_logger = logging.getLogger(__name__)


def view_configuration(
    app_config: AppSettings,
    request: Optional[ProvisioningRequest] = None,
    current_logger: Optional[logging.Logger] = None,
) -> str:
    """
    Logs the current effective configuration values. The password is never
    shown.

    Parameters:
        app_config (AppSettings): The resolved configuration.
        request (Optional[ProvisioningRequest]): The requested role/database, if any.
        current_logger (Optional[logging.Logger]): Logger to use.

    Returns:
        str: The rendered configuration text.
    """
    logger_to_use = current_logger if current_logger else module_logger
    symbols = app_config.symbols
    pg = app_config.pg
    swap = app_config.swap

    config_text = f"{symbols.get('info', 'ℹ️')} Current effective configuration values (CLI > YAML > ENV > Defaults):\n\n"
    if request:
        config_text += f"  Role:                          {request.role}\n"
        config_text += "  Password:                      [SET - hidden]\n"
        config_text += f"  Database:                      {request.database}\n\n"

    config_text += "  PostgreSQL Settings (pg.*):\n"
    config_text += f"    Port:                        {pg.port}\n"
    config_text += f"    Admin OS user:               {pg.os_user}\n"
    config_text += f"    Service:                     {pg.service_name}\n"
    config_text += f"    Packages:                    {', '.join(pg.packages)}\n"
    config_text += f"    Extensions:                  {', '.join(pg.extensions)}\n"
    config_text += f"    Listen addresses:            {pg.listen_addresses}\n"
    config_text += f"    pg_hba.conf rule:            {pg.hba_rule}\n"
    config_text += f"    Grant SUPERUSER:             {pg.grant_superuser}\n\n"

    config_text += "  Swap Settings (swap.*):\n"
    config_text += f"    File:                        {swap.file_path}\n"
    config_text += f"    Target size:                 {swap.target_bytes // MIB} MiB\n"
    config_text += f"    Mount table:                 {swap.fstab_path}\n\n"

    rule_set = app_config.firewall_rule_set()
    config_text += "  Firewall Settings (firewall.*):\n"
    for direction, policy in rule_set.default_policies:
        config_text += f"    Default {direction + ':':<21}{policy}\n"
    for rule in rule_set.rules:
        config_text += f"    Allow:                       {rule}\n"

    log_bootstrap(
        "Displaying current configuration:", "info", logger_to_use, app_config
    )
    log_bootstrap(f"\n{config_text}", "info", logger_to_use, app_config)
    return config_text


def render_summary(
    request: ProvisioningRequest,
    app_settings: AppSettings,
    role_outcome: Optional[str] = None,
    database_outcome: Optional[str] = None,
    extensions: Optional[List[str]] = None,
    swap_description: Optional[str] = None,
    remote_access_configured: bool = True,
    firewall_status: Optional[str] = None,
) -> str:
    """
    Builds the plaintext summary printed after a successful run.

    ``firewall_status`` is the firewall state as reported by the host after the
    firewall stage, shown verbatim.
    """
    pg = app_settings.pg
    privilege = "SUPERUSER" if pg.grant_superuser else "login"
    lines = [
        "",
        "All done!",
        f"- PostgreSQL/PostGIS installed and running"
        + (" with remote access enabled" if remote_access_configured else " (remote access NOT configured, local only)"),
        f"- {privilege} role '{request.role}' ({role_outcome or 'ensured'}) "
        f"with dedicated database '{request.database}' ({database_outcome or 'ensured'}) ready",
    ]
    if extensions:
        lines.append(f"- Extensions enabled: {', '.join(extensions)}")
    lines.append(f"- Swap: {swap_description or 'ensured'}")
    if firewall_status and firewall_status.strip():
        lines.append("- UFW status:")
        lines += [f"    {line}" for line in firewall_status.strip().splitlines()]
    lines += [
        "",
        "Security note:",
    ]
    if pg.grant_superuser:
        lines.append(f"    * The role '{request.role}' is a PostgreSQL SUPERUSER.")
    lines += [
        f"    * pg_hba.conf allows connections from any IPv4 address ({pg.hba_match}) using password auth.",
        "      For anything beyond internal POC use, restrict allowed IPs and consider using a non-superuser.",
        "",
    ]
    return "\n".join(lines)
