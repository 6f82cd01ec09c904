# tests/conftest.py
# -*- coding: utf-8 -*-
"""
Shared fixtures and in-memory doubles for the host-facing interfaces.

FakeSystemGateway simulates just enough of a machine for the convergence
steps: a file table, swap devices, and a PostgreSQL catalogue that understands
the statements built by pgbootstrap.common.sql_utils.
"""

import re
import subprocess
from typing import Dict, List, Optional, Set, Tuple

import pytest

from pgbootstrap.common.debian.apt_manager import PackageManager
from pgbootstrap.common.exceptions import ExternalToolError, FilesystemError
from pgbootstrap.common.gateway import SystemGateway
from pgbootstrap.common.system_utils import ServiceManager
from pgbootstrap.configure.ufw_configurator import FirewallManager
from pgbootstrap.setup.config_models import (
    MIB,
    AppSettings,
    FirewallRule,
    ProvisioningRequest,
)

LIT = r"'(?:[^']|'')*'"
IDENT = r'"(?:[^"]|"")*"'


def unescape_literal(fragment: str) -> str:
    assert fragment[0] == "'" and fragment[-1] == "'"
    return fragment[1:-1].replace("''", "'")


def unescape_identifier(fragment: str) -> str:
    assert fragment[0] == '"' and fragment[-1] == '"'
    return fragment[1:-1].replace('""', '"')


class FakePostgres:
    """A tiny catalogue of roles, databases, extensions and settings."""

    def __init__(self):
        self.roles: Dict[str, Dict[str, object]] = {"postgres": {"superuser": True, "password": None}}
        self.databases: Dict[str, str] = {"postgres": "postgres"}
        self.extensions: Dict[str, List[str]] = {}
        self.settings: Dict[str, str] = {
            "config_file": "/etc/postgresql/16/main/postgresql.conf",
            "hba_file": "/etc/postgresql/16/main/pg_hba.conf",
        }
        self.auto_conf: Dict[str, str] = {}
        self.fail_show = False
        self.statements: List[Tuple[str, Optional[str]]] = []

    def _error(self, message: str):
        raise ExternalToolError(f"psql failed with exit code 3: ERROR:  {message}", returncode=3, stderr=message)

    def execute(self, sql: str, database: Optional[str]) -> List[List[str]]:
        self.statements.append((sql, database))
        sql = sql.strip()

        m = re.fullmatch(rf"SELECT 1 FROM pg_catalog\.pg_roles WHERE rolname = ({LIT});", sql, re.S)
        if m:
            return [["1"]] if unescape_literal(m.group(1)) in self.roles else []

        m = re.fullmatch(
            rf"SELECT pg_catalog\.pg_get_userbyid\(datdba\) = ({LIT}) "
            rf"FROM pg_catalog\.pg_database WHERE datname = ({LIT});",
            sql,
            re.S,
        )
        if m:
            owner, name = unescape_literal(m.group(1)), unescape_literal(m.group(2))
            if name not in self.databases:
                return []
            return [["t" if self.databases[name] == owner else "f"]]

        m = re.fullmatch(rf"(CREATE|ALTER) ROLE ({IDENT}) WITH LOGIN (SUPERUSER|NOSUPERUSER) PASSWORD ({LIT});", sql, re.S)
        if m:
            verb, role = m.group(1), unescape_identifier(m.group(2))
            if verb == "CREATE" and role in self.roles:
                self._error(f'role "{role}" already exists')
            if verb == "ALTER" and role not in self.roles:
                self._error(f'role "{role}" does not exist')
            self.roles[role] = {
                "superuser": m.group(3) == "SUPERUSER",
                "password": unescape_literal(m.group(4)),
            }
            return []

        m = re.fullmatch(rf"CREATE DATABASE ({IDENT}) OWNER ({IDENT}) ENCODING ({LIT});", sql, re.S)
        if m:
            name, owner = unescape_identifier(m.group(1)), unescape_identifier(m.group(2))
            if name in self.databases:
                self._error(f'database "{name}" already exists')
            if owner not in self.roles:
                self._error(f'role "{owner}" does not exist')
            self.databases[name] = owner
            return []

        m = re.fullmatch(rf"ALTER DATABASE ({IDENT}) OWNER TO ({IDENT});", sql, re.S)
        if m:
            name, owner = unescape_identifier(m.group(1)), unescape_identifier(m.group(2))
            if name not in self.databases:
                self._error(f'database "{name}" does not exist')
            self.databases[name] = owner
            return []

        m = re.fullmatch(rf"CREATE EXTENSION IF NOT EXISTS ({IDENT});", sql, re.S)
        if m:
            ext = unescape_identifier(m.group(1))
            if database not in self.databases:
                self._error(f'database "{database}" does not exist')
            installed = self.extensions.setdefault(database, [])
            if ext == "postgis_topology" and "postgis" not in installed:
                self._error('required extension "postgis" is not installed')
            if ext not in installed:
                installed.append(ext)
            return []

        m = re.fullmatch(rf"SHOW ({IDENT});", sql, re.S)
        if m:
            if self.fail_show:
                self._error("could not connect to server")
            return [[self.settings.get(unescape_identifier(m.group(1)), "")]]

        m = re.fullmatch(rf"ALTER SYSTEM SET ({IDENT}) = ({LIT});", sql, re.S)
        if m:
            self.auto_conf[unescape_identifier(m.group(1))] = unescape_literal(m.group(2))
            return []

        self._error(f"syntax error in: {sql}")
        return []


class FakeSystemGateway(SystemGateway):
    """In-memory machine: files, swap devices and a FakePostgres."""

    def __init__(self):
        self.files: Dict[str, str] = {}
        self.file_sizes: Dict[str, int] = {}
        self.file_modes: Dict[str, str] = {}
        self.formatted: Set[str] = set()
        self.active_swaps: Dict[str, int] = {}
        self.commands: List[List[str]] = []
        self.writes: List[Tuple[str, str]] = []
        self.fallocate_supported = True
        self.fail_on: List[List[str]] = []
        self.db = FakePostgres()

    # --- helpers for tests ---

    def mutations(self) -> List[List[str]]:
        """Commands other than read-only probes."""
        read_only = {("swapon", "--show=NAME,SIZE"), ("test", "-f")}
        return [c for c in self.commands if tuple(c[:2]) not in read_only]

    def _result(self, command, returncode=0, stdout="", stderr=""):
        return subprocess.CompletedProcess(command, returncode, stdout, stderr)

    def _simulate(self, command: List[str]) -> subprocess.CompletedProcess:
        for prefix in self.fail_on:
            if command[: len(prefix)] == prefix:
                return self._result(command, 1, "", f"{command[0]}: simulated failure")

        name = command[0]
        if name == "swapon" and command[1].startswith("--show"):
            stdout = "".join(f"{path} {size}\n" for path, size in self.active_swaps.items())
            return self._result(command, 0, stdout)
        if name == "swapon":
            path = command[1]
            if path not in self.formatted:
                return self._result(command, 255, "", f"swapon: {path}: read swap header failed")
            self.active_swaps[path] = self.file_sizes[path]
            return self._result(command)
        if name == "swapoff":
            self.active_swaps.clear()
            return self._result(command)
        if name == "fallocate":
            path = command[3]
            if not self.fallocate_supported:
                self.file_sizes[path] = 0
                return self._result(command, 1, "", "fallocate: fallocate failed: Operation not supported")
            self.file_sizes[path] = int(command[2])
            return self._result(command)
        if name == "dd":
            args = dict(part.split("=", 1) for part in command[1:])
            assert args["bs"] == "1M"
            self.file_sizes[args["of"]] = int(args["count"]) * MIB
            return self._result(command)
        if name == "chmod":
            self.file_modes[command[2]] = command[1]
            return self._result(command)
        if name == "mkswap":
            if command[1] not in self.file_sizes:
                return self._result(command, 1, "", "mkswap: cannot open")
            self.formatted.add(command[1])
            return self._result(command)
        if name == "rm":
            self._remove(command[-1])
            return self._result(command)
        if name == "test" and command[1] == "-f":
            return self._result(command, 0 if self.file_exists(command[2]) else 1)
        if name == "cp":
            src, dst = command[-2], command[-1]
            self.files[dst] = self.files[src]
            return self._result(command)
        if name == "ufw" and command[1:2] == ["status"]:
            return self._result(command, 0, "Status: active")
        return self._result(command)

    def _remove(self, path: str) -> None:
        self.files.pop(path, None)
        self.file_sizes.pop(path, None)
        self.file_modes.pop(path, None)
        self.formatted.discard(path)

    # --- SystemGateway ---

    def run_privileged_command(self, command, check=True, capture_output=True, cmd_input=None, env=None):
        self.commands.append(list(command))
        result = self._simulate(list(command))
        if check and result.returncode != 0:
            raise ExternalToolError(
                f"Command '{' '.join(command)}' failed with exit code {result.returncode}",
                command=command,
                returncode=result.returncode,
                stderr=result.stderr,
            )
        return result

    def query_database(self, sql, database=None):
        return self.db.execute(sql, database)

    def read_file(self, path):
        if path not in self.files:
            raise FilesystemError(f"Cannot read {path}: No such file or directory", path=path)
        return self.files[path]

    def append_file(self, path, content):
        self.writes.append((path, content))
        self.files[path] = self.files.get(path, "") + content

    def file_exists(self, path):
        return path in self.files or path in self.file_sizes

    def remove_file(self, path):
        self.commands.append(["rm", "-f", path])
        self._remove(path)


class FakeFirewallManager(FirewallManager):
    """Keeps the rule table in memory."""

    def __init__(self):
        self.defaults: Dict[str, str] = {}
        self.rules: List[Tuple[str, ...]] = []
        self.active = False
        self.calls: List[str] = []
        self.resets = 0

    def reset(self):
        self.calls.append("reset")
        self.resets += 1
        self.defaults.clear()
        self.rules.clear()
        self.active = False

    def set_default(self, direction, policy):
        self.calls.append(f"default {policy} {direction}")
        self.defaults[direction] = policy

    def allow(self, rule: FirewallRule):
        self.calls.append(f"allow {rule.target}")
        self.rules.append(tuple(rule.as_args()))

    def enable(self):
        self.calls.append("enable")
        self.active = True

    def status(self):
        lines = [f"Status: {'active' if self.active else 'inactive'}"]
        lines += [f"Default: {policy} ({direction})" for direction, policy in self.defaults.items()]
        lines += [" ".join(rule) + " ALLOW IN Anywhere" for rule in self.rules]
        return "\n".join(lines)

    def table(self):
        return (dict(self.defaults), list(self.rules), self.active)


class FakePackageManager(PackageManager):
    def __init__(self):
        self.refreshes = 0
        self.installed: List[str] = []
        self.fail_install = False

    def refresh_index(self):
        self.refreshes += 1

    def install(self, packages):
        if self.fail_install:
            raise ExternalToolError("apt-get install failed", command=["apt-get", "install"], returncode=100)
        self.installed.extend(packages)


class FakeServiceManager(ServiceManager):
    def __init__(self):
        self.started: List[str] = []
        self.restarted: List[str] = []

    def enable_and_start(self, unit):
        self.started.append(unit)

    def restart(self, unit):
        self.restarted.append(unit)


@pytest.fixture
def app_settings():
    """Default settings with the real defaults (2 GiB swap, port 5432)."""
    return AppSettings()


@pytest.fixture
def request_demo():
    return ProvisioningRequest(role="demo", password="p@ss", database="gis")


@pytest.fixture
def fake_gateway():
    gateway = FakeSystemGateway()
    gateway.files["/etc/fstab"] = "UUID=abcd / ext4 defaults 0 1\n"
    gateway.files["/etc/postgresql/16/main/pg_hba.conf"] = (
        "local   all             postgres                                peer\n"
        "host    all             all             127.0.0.1/32            scram-sha-256\n"
    )
    return gateway


@pytest.fixture
def fake_firewall():
    return FakeFirewallManager()


@pytest.fixture
def fake_packages():
    return FakePackageManager()


@pytest.fixture
def fake_services():
    return FakeServiceManager()
