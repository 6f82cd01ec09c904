# pgbootstrap/common/sql_utils.py
# -*- coding: utf-8 -*-
"""
Escaping helpers for building administrative SQL from untrusted input.

Role names, database names, passwords and extension names all come from the
command line or configuration. Every one of them goes through escape_literal()
or escape_identifier() before it reaches SQL text. The two results are distinct
types: a LiteralFragment is only valid where SQL expects a string constant and
an IdentifierFragment only where it expects a name. The statement builders at
the bottom of this module reject anything else.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class LiteralFragment:
    """A single-quoted SQL string constant, safe to splice as a value."""

    sql: str

    def __str__(self) -> str:
        return self.sql


@dataclass(frozen=True)
class IdentifierFragment:
    """A double-quoted SQL identifier, safe to splice as a name."""

    sql: str

    def __str__(self) -> str:
        return self.sql


def escape_literal(raw: str) -> LiteralFragment:
    """
    Escape a value for use as a single-quoted SQL literal.

    Every single quote is doubled and the result is wrapped in single quotes,
    so ``O'Reilly`` becomes ``'O''Reilly'`` and the empty string becomes ``''``.
    Nothing else is touched: multibyte text, backslashes and control characters
    pass through unchanged (standard_conforming_strings is on by default).

    Args:
        raw (str): Any string.

    Returns:
        LiteralFragment: The escaped literal.
    """
    return LiteralFragment("'" + raw.replace("'", "''") + "'")


def escape_identifier(raw: str) -> IdentifierFragment:
    """
    Escape a value for use as a double-quoted SQL identifier.

    Every double quote is doubled and the result is wrapped in double quotes,
    so ``my"user`` becomes ``"my""user"``. Length limits are left to the server.

    Args:
        raw (str): Any string.

    Returns:
        IdentifierFragment: The escaped identifier.
    """
    return IdentifierFragment('"' + raw.replace('"', '""') + '"')


def connection_string_for_database(raw: str) -> str:
    """
    Build a libpq connection string that selects the database ``raw``.

    psql reads a ``-d`` value containing ``=`` or starting with a
    ``postgres://`` URI prefix as a whole connection string, so a database name
    is never passed bare. The value is single-quoted with backslashes and
    single quotes backslash-escaped, so ``a'b`` becomes ``dbname='a\\'b'``.
    """
    escaped = raw.replace("\\", "\\\\").replace("'", "\\'")
    return f"dbname='{escaped}'"


def _require_literal(fragment: LiteralFragment) -> str:
    if not isinstance(fragment, LiteralFragment):
        raise TypeError(
            f"Expected LiteralFragment, got {type(fragment).__name__}"
        )
    return fragment.sql


def _require_identifier(fragment: IdentifierFragment) -> str:
    if not isinstance(fragment, IdentifierFragment):
        raise TypeError(
            f"Expected IdentifierFragment, got {type(fragment).__name__}"
        )
    return fragment.sql


# --- Statement builders ---


def role_exists_query(role: LiteralFragment) -> str:
    return f"SELECT 1 FROM pg_catalog.pg_roles WHERE rolname = {_require_literal(role)};"


def database_owned_by_query(database: LiteralFragment, owner: LiteralFragment) -> str:
    """One row, 't' or 'f', if the database exists; no rows otherwise."""
    return (
        f"SELECT pg_catalog.pg_get_userbyid(datdba) = {_require_literal(owner)} "
        f"FROM pg_catalog.pg_database WHERE datname = {_require_literal(database)};"
    )


def _role_options(password: LiteralFragment, superuser: bool) -> str:
    privilege = "SUPERUSER" if superuser else "NOSUPERUSER"
    return f"WITH LOGIN {privilege} PASSWORD {_require_literal(password)}"


def create_role_statement(
    role: IdentifierFragment, password: LiteralFragment, superuser: bool = True
) -> str:
    return f"CREATE ROLE {_require_identifier(role)} {_role_options(password, superuser)};"


def alter_role_statement(
    role: IdentifierFragment, password: LiteralFragment, superuser: bool = True
) -> str:
    return f"ALTER ROLE {_require_identifier(role)} {_role_options(password, superuser)};"


def create_database_statement(
    database: IdentifierFragment,
    owner: IdentifierFragment,
    encoding: LiteralFragment,
) -> str:
    return (
        f"CREATE DATABASE {_require_identifier(database)} "
        f"OWNER {_require_identifier(owner)} "
        f"ENCODING {_require_literal(encoding)};"
    )


def alter_database_owner_statement(
    database: IdentifierFragment, owner: IdentifierFragment
) -> str:
    return (
        f"ALTER DATABASE {_require_identifier(database)} "
        f"OWNER TO {_require_identifier(owner)};"
    )


def create_extension_statement(extension: IdentifierFragment) -> str:
    return f"CREATE EXTENSION IF NOT EXISTS {_require_identifier(extension)};"


def alter_system_statement(
    parameter: IdentifierFragment, value: LiteralFragment
) -> str:
    return f"ALTER SYSTEM SET {_require_identifier(parameter)} = {_require_literal(value)};"


def show_setting_query(parameter: IdentifierFragment) -> str:
    return f"SHOW {_require_identifier(parameter)};"
