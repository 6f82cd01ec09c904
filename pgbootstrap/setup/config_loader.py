# pgbootstrap/setup/config_loader.py
# -*- coding: utf-8 -*-
"""
Configuration loader for the bootstrapper.

Handles loading settings from Pydantic model defaults, a YAML file,
environment variables, and command-line arguments, applying a specific
order of precedence:
1. Pydantic Model Defaults
2. Environment Variables (via Pydantic's BaseSettings initialization)
3. YAML Configuration File
4. Command-Line Arguments
"""

import argparse
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from pgbootstrap.common.exceptions import ConfigurationError
from pgbootstrap.setup.config_models import (
    CONFIG_FILE_DEFAULT,
    MIB,
    AppSettings,
    ProvisioningRequest,
)

module_logger = logging.getLogger(__name__)


def _deep_update(
    source: Dict[str, Any], overrides: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Recursively updates a dictionary `source` with values from another dictionary
    `overrides`. Nested dictionaries are merged key by key; any other value in
    `overrides` replaces the one in `source`. ``None`` values in `overrides` never
    replace an existing value.

    Parameters:
        source: Dict[str, Any]
            The dictionary to be updated. This dictionary gets modified in place.
        overrides: Dict[str, Any]
            The dictionary containing values to update or add to the `source`.

    Returns:
        Dict[str, Any]:
            The updated dictionary after applying all `overrides` to the input `source`.
    """
    for key, value in overrides.items():
        if (
            isinstance(value, dict)
            and key in source
            and isinstance(source[key], dict)
        ):
            source[key] = _deep_update(source[key], value)
        elif value is not None:
            source[key] = value
        elif key not in source:
            source[key] = value
    return source


def _read_yaml_config(
    yaml_config_path: Path, logger_to_use: logging.Logger
) -> Dict[str, Any]:
    if not yaml_config_path.is_file():
        logger_to_use.info(
            f"Configuration file '{yaml_config_path}' not found. Using defaults, environment variables, and CLI args."
        )
        return {}

    try:
        with open(yaml_config_path, "r", encoding="utf-8") as f:
            yaml_data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Could not parse YAML config file '{yaml_config_path}': {e}"
        ) from e
    except OSError as e:
        raise ConfigurationError(
            f"Could not read config file '{yaml_config_path}': {e}"
        ) from e

    if yaml_data is None:
        return {}
    if not isinstance(yaml_data, dict):
        raise ConfigurationError(
            f"Config file '{yaml_config_path}' does not contain a YAML mapping."
        )
    logger_to_use.info(f"Loaded configuration from {yaml_config_path}")
    return yaml_data


def load_app_settings(
    cli_args: Optional[argparse.Namespace] = None,
    config_file_path: str = CONFIG_FILE_DEFAULT,
    current_logger: Optional[logging.Logger] = None,
) -> AppSettings:
    """
    Loads application settings with the following precedence:
    1. Pydantic Model Defaults.
    2. Environment Variables (PG_*, SWAP_*, UFW_* loaded by BaseSettings).
    3. Values from the YAML configuration file, if it exists.
    4. Command-Line Arguments (highest precedence, overrides all else).

    Args:
        cli_args: Parsed command-line arguments (from argparse).
        config_file_path: Path to the YAML configuration file.
        current_logger: Optional logger to use instead of the module logger.

    Returns:
        An instance of AppSettings with the fully resolved configuration.

    Raises:
        ConfigurationError: If the YAML file is unreadable or the merged
            configuration fails validation.
    """
    logger_to_use = current_logger if current_logger else module_logger

    try:
        current_values_dict = AppSettings().model_dump(exclude_defaults=False)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid configuration in environment: {e}"
        ) from e

    yaml_data = _read_yaml_config(Path(config_file_path), logger_to_use)
    current_values_dict = _deep_update(current_values_dict, yaml_data)

    if cli_args:
        cli_arg_dict = vars(cli_args)
        mapped_cli_values: Dict[str, Any] = {}
        pg_cli_values: Dict[str, Any] = {}
        swap_cli_values: Dict[str, Any] = {}

        if cli_arg_dict.get("log_prefix") is not None:
            mapped_cli_values["log_prefix"] = cli_arg_dict["log_prefix"]
        if cli_arg_dict.get("swap_mib") is not None:
            swap_cli_values["target_bytes"] = int(cli_arg_dict["swap_mib"]) * MIB
        if cli_arg_dict.get("no_superuser"):
            pg_cli_values["grant_superuser"] = False

        if pg_cli_values:
            current_values_dict["pg"] = _deep_update(
                current_values_dict.get("pg") or {}, pg_cli_values
            )
        if swap_cli_values:
            current_values_dict["swap"] = _deep_update(
                current_values_dict.get("swap") or {}, swap_cli_values
            )
        current_values_dict = _deep_update(
            current_values_dict, mapped_cli_values
        )

    try:
        final_settings = AppSettings(**current_values_dict)
    except ValidationError as e:
        logger_to_use.error(f"Configuration validation failed: {e}")
        raise ConfigurationError(f"Configuration error: {e}") from e

    logger_to_use.debug(
        "Successfully loaded and validated application settings"
    )
    return final_settings


def build_provisioning_request(
    cli_args: argparse.Namespace,
) -> ProvisioningRequest:
    """
    Builds the ProvisioningRequest from the parsed command line.

    Raises:
        ConfigurationError: If role, password or database is missing or empty.
    """
    missing = [
        option
        for option, value in (
            ("--role", getattr(cli_args, "role", None)),
            ("--password", getattr(cli_args, "password", None)),
            ("--database", getattr(cli_args, "database", None)),
        )
        if not value
    ]
    if missing:
        raise ConfigurationError(
            f"Missing required parameters: {', '.join(missing)}"
        )
    try:
        return ProvisioningRequest(
            role=cli_args.role,
            password=cli_args.password,
            database=cli_args.database,
        )
    except ValidationError as e:
        raise ConfigurationError(f"Invalid provisioning request: {e}") from e
