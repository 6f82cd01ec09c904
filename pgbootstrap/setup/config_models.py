# pgbootstrap/setup/config_models.py
# -*- coding: utf-8 -*-
"""
Pydantic models for application configuration.

This module defines the structured settings for the bootstrapper,
including defaults, type annotations, and descriptions.
It utilizes Pydantic for data validation and settings management.
"""

from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Default Static Values (can be overridden by config file/env/cli) ---
LOG_PREFIX_DEFAULT: str = "[PG-BOOTSTRAP] "
CONFIG_FILE_DEFAULT: str = "pgbootstrap.yaml"

PGPORT_DEFAULT: int = 5432
PG_OS_USER_DEFAULT: str = "postgres"
PG_SERVICE_NAME_DEFAULT: str = "postgresql"
PG_PACKAGES_DEFAULT: List[str] = [
    "postgresql",
    "postgresql-contrib",
    "postgis",
    "ufw",
]
PG_EXTENSIONS_DEFAULT: List[str] = ["postgis", "postgis_topology"]
PG_HBA_RULE_DEFAULT: str = (
    "host    all             all             0.0.0.0/0               md5"
)
PG_HBA_MATCH_DEFAULT: str = "0.0.0.0/0"

MIB: int = 1024 * 1024
SWAP_FILE_PATH_DEFAULT: str = "/swapfile"
SWAP_TARGET_BYTES_DEFAULT: int = 2 * 1024 * MIB
FSTAB_PATH_DEFAULT: str = "/etc/fstab"

UFW_DEFAULT_POLICIES_DEFAULT: List[Tuple[str, str]] = [
    ("incoming", "deny"),
    ("outgoing", "allow"),
]
UFW_SSH_RULE_DEFAULT: str = "OpenSSH"

SYMBOLS_DEFAULT: Dict[str, str] = {
    "success": "✅",
    "error": "❌",
    "warning": "⚠️",
    "info": "ℹ️",
    "step": "➡️",
    "gear": "⚙️",
    "package": "📦",
    "rocket": "🚀",
    "sparkles": "✨",
    "critical": "🔥",
    "debug": "🐛",
    "lock": "🔒",
}


class ProvisioningRequest(BaseModel):
    """The role, password and database requested on the command line."""

    role: str = Field(min_length=1, description="Login role to create or repair.")
    password: str = Field(
        min_length=1,
        description="Password for the role, reset on every run.",
        exclude=True,
        repr=False,
    )
    database: str = Field(min_length=1, description="Database to create with PostGIS enabled.")


class PostgresSettings(BaseSettings):
    """PostgreSQL package, service and access settings."""
    model_config = SettingsConfigDict(
        env_prefix='PG_',
        extra='ignore'
    )

    port: int = Field(default=PGPORT_DEFAULT, description="PostgreSQL port opened in the firewall.")
    os_user: str = Field(default=PG_OS_USER_DEFAULT,
                         description="OS account of the built-in superuser used to run psql.")
    service_name: str = Field(default=PG_SERVICE_NAME_DEFAULT,
                              description="systemd unit restarted after remote-access changes.")
    packages: List[str] = Field(default_factory=lambda: list(PG_PACKAGES_DEFAULT),
                                description="apt packages installed in the first stage.")
    services: List[str] = Field(default_factory=lambda: [PG_SERVICE_NAME_DEFAULT],
                                description="Units enabled and started after installation.")
    extensions: List[str] = Field(default_factory=lambda: list(PG_EXTENSIONS_DEFAULT),
                                  description="Extensions created in order in the target database.")
    encoding: str = Field(default="UTF8", description="Encoding for newly created databases.")
    listen_addresses: str = Field(default="*", description="Value written via ALTER SYSTEM.")
    hba_rule: str = Field(default=PG_HBA_RULE_DEFAULT,
                          description="Rule appended to pg_hba.conf for remote password access.")
    hba_match: str = Field(default=PG_HBA_MATCH_DEFAULT,
                           description="Substring whose presence in pg_hba.conf means the rule exists.")
    grant_superuser: bool = Field(default=True,
                                  description="Create/repair the role as SUPERUSER (False: NOSUPERUSER).")
    backup_hba_file: bool = Field(default=True,
                                  description="Back up pg_hba.conf before appending to it.")


class SwapSettings(BaseSettings):
    """Swap file settings."""
    model_config = SettingsConfigDict(
        env_prefix='SWAP_',
        extra='ignore'
    )

    file_path: str = Field(default=SWAP_FILE_PATH_DEFAULT, description="Path of the swap file.")
    target_bytes: int = Field(default=SWAP_TARGET_BYTES_DEFAULT,
                              description="Size of a newly provisioned swap file in bytes.")
    fstab_path: str = Field(default=FSTAB_PATH_DEFAULT, description="Persistent mount table.")
    file_mode: str = Field(default="600", description="chmod mode for the swap file.")

    @field_validator("target_bytes")
    @classmethod
    def _whole_mebibytes(cls, value: int) -> int:
        if value <= 0 or value % MIB != 0:
            raise ValueError(
                f"swap target_bytes must be a positive multiple of {MIB} (1 MiB), got {value}"
            )
        return value


class FirewallRule(BaseModel):
    """A single ufw allow rule, e.g. 'OpenSSH' or '5432/tcp'."""

    target: str = Field(min_length=1, description="Application profile or port/proto.")
    comment: Optional[str] = Field(default=None, description="Rule comment shown by 'ufw status'.")

    def as_args(self) -> List[str]:
        args = [self.target]
        if self.comment:
            args += ["comment", self.comment]
        return args

    def __str__(self) -> str:
        return f"{self.target} ({self.comment})" if self.comment else self.target


class FirewallSettings(BaseSettings):
    """UFW policy and rule settings."""
    model_config = SettingsConfigDict(
        env_prefix='UFW_',
        extra='ignore'
    )

    default_policies: List[Tuple[str, str]] = Field(
        default_factory=lambda: list(UFW_DEFAULT_POLICIES_DEFAULT),
        description="Ordered (direction, policy) pairs applied after reset.",
    )
    ssh_rule: str = Field(default=UFW_SSH_RULE_DEFAULT,
                          description="Rule that keeps SSH reachable; always applied first.")
    extra_rules: List[FirewallRule] = Field(default_factory=list,
                                            description="Additional allow rules applied last.")


class FirewallRuleSet(BaseModel):
    """The complete desired firewall state, rebuilt from scratch on every run."""

    default_policies: List[Tuple[str, str]]
    rules: List[FirewallRule]


class AppSettings(BaseSettings):
    """Main application settings."""
    model_config = SettingsConfigDict(extra='ignore')

    log_prefix: str = Field(default=LOG_PREFIX_DEFAULT,
                            description="Prefix for log messages from the bootstrapper.")

    pg: PostgresSettings = Field(default_factory=PostgresSettings)
    swap: SwapSettings = Field(default_factory=SwapSettings)
    firewall: FirewallSettings = Field(default_factory=FirewallSettings)

    symbols: Dict[str, str] = Field(default_factory=lambda: dict(SYMBOLS_DEFAULT))

    def firewall_rule_set(self) -> FirewallRuleSet:
        """SSH first, then the database port, then any extra rules."""
        rules = [
            FirewallRule(target=self.firewall.ssh_rule),
            FirewallRule(target=f"{self.pg.port}/tcp", comment="PostgreSQL"),
        ]
        rules.extend(self.firewall.extra_rules)
        return FirewallRuleSet(
            default_policies=list(self.firewall.default_policies),
            rules=rules,
        )
