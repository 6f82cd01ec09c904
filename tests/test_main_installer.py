# tests/test_main_installer.py
# -*- coding: utf-8 -*-
"""
End-to-end tests for the command-line entry point, with every host-facing
collaborator replaced by the in-memory doubles from conftest.py.
"""

import pytest
from pytest_mock import MockerFixture

from pgbootstrap.main_installer import (
    STAGE_EXTENSIONS,
    STAGE_FIREWALL,
    STAGE_INSTALL,
    STAGE_REMOTE_ACCESS,
    STAGE_ROLE_AND_DATABASE,
    STAGE_SUMMARY,
    STAGE_SWAP,
    build_pipeline,
    main_bootstrap_entry,
)
from pgbootstrap.setup.config_models import MIB, PG_HBA_RULE_DEFAULT, ProvisioningRequest

HBA = "/etc/postgresql/16/main/pg_hba.conf"


@pytest.fixture(autouse=True)
def no_logging_setup(mocker: MockerFixture):
    return mocker.patch("pgbootstrap.main_installer.setup_logging")


@pytest.fixture
def as_root(mocker: MockerFixture):
    return mocker.patch("pgbootstrap.main_installer.is_running_as_root", return_value=True)


@pytest.fixture
def base_args(tmp_path):
    return ["--config-file", str(tmp_path / "absent.yaml")]


@pytest.fixture
def run(fake_gateway, fake_packages, fake_services, fake_firewall):
    def _run(args):
        return main_bootstrap_entry(
            args,
            gateway=fake_gateway,
            package_manager=fake_packages,
            service_manager=fake_services,
            firewall_manager=fake_firewall,
        )

    return _run


def _nothing_touched(gateway, packages, services, firewall):
    return (
        gateway.commands == []
        and gateway.db.statements == []
        and packages.refreshes == 0
        and services.started == []
        and firewall.calls == []
    )


@pytest.mark.parametrize(
    "args",
    [
        [],
        ["-r", "demo", "-p", "p@ss"],
        ["-r", "demo", "-d", "gis"],
        ["-r", "", "-p", "p@ss", "-d", "gis"],
    ],
)
def test_missing_required_option(
    args, base_args, run, as_root, capsys, fake_gateway, fake_packages, fake_services, fake_firewall
):
    assert run(args + base_args) == 1

    assert "Missing required parameters" in capsys.readouterr().err
    assert _nothing_touched(fake_gateway, fake_packages, fake_services, fake_firewall)


def test_help_and_usage_errors(base_args, run, capsys):
    assert run(["--help"]) == 0
    assert "--role" in capsys.readouterr().out
    assert run(["--bogus"] + base_args) == 2


def test_not_root(
    mocker: MockerFixture, base_args, run, fake_gateway, fake_packages, fake_services, fake_firewall
):
    mocker.patch("pgbootstrap.main_installer.is_running_as_root", return_value=False)

    assert run(["-r", "demo", "-p", "p@ss", "-d", "gis"] + base_args) == 1
    assert _nothing_touched(fake_gateway, fake_packages, fake_services, fake_firewall)


def test_not_root_creates_no_log_file(
    mocker: MockerFixture, tmp_path, base_args, run, capsys, no_logging_setup
):
    mocker.patch("pgbootstrap.main_installer.is_running_as_root", return_value=False)
    log_file = tmp_path / "logs" / "bootstrap.log"

    args = ["-r", "demo", "-p", "p@ss", "-d", "gis", "--log-file", str(log_file)]
    assert run(args + base_args) == 1

    assert "must run as root" in capsys.readouterr().err
    no_logging_setup.assert_not_called()
    assert not (tmp_path / "logs").exists()


def test_view_config_changes_nothing(
    mocker: MockerFixture, base_args, run, fake_gateway, fake_packages, fake_services, fake_firewall
):
    mocker.patch("pgbootstrap.main_installer.is_running_as_root", return_value=False)

    assert run(["--view-config"] + base_args) == 0
    assert _nothing_touched(fake_gateway, fake_packages, fake_services, fake_firewall)


def test_invalid_config_file(tmp_path, run, as_root, capsys):
    config = tmp_path / "bad.yaml"
    config.write_text("swap:\n  target_bytes: 5\n", encoding="utf-8")

    assert run(["-r", "demo", "-p", "p@ss", "-d", "gis", "--config-file", str(config)]) == 1
    assert "Configuration error" in capsys.readouterr().err


def test_full_run_on_fresh_host(
    base_args, run, as_root, capsys, fake_gateway, fake_packages, fake_services, fake_firewall
):
    assert run(["-r", "demo", "-p", "p@ss", "-d", "gis"] + base_args) == 0

    assert fake_packages.installed == ["postgresql", "postgresql-contrib", "postgis", "ufw"]
    assert fake_services.started == ["postgresql"]
    assert fake_services.restarted == ["postgresql"]
    assert fake_gateway.db.auto_conf == {"listen_addresses": "*"}
    assert PG_HBA_RULE_DEFAULT in fake_gateway.files[HBA]
    assert fake_gateway.db.roles["demo"] == {"superuser": True, "password": "p@ss"}
    assert fake_gateway.db.databases["gis"] == "demo"
    assert fake_gateway.db.extensions["gis"] == ["postgis", "postgis_topology"]
    assert fake_gateway.active_swaps == {"/swapfile": 2048 * MIB}
    assert fake_firewall.rules == [("OpenSSH",), ("5432/tcp", "comment", "PostgreSQL")]
    assert fake_firewall.active is True

    out = capsys.readouterr().out
    assert "All done!" in out
    assert "p@ss" not in out


def test_rerun_converges_to_same_state(
    base_args, run, as_root, fake_gateway, fake_firewall
):
    args = ["-r", "demo", "-p", "p@ss", "-d", "gis"] + base_args
    assert run(args) == 0
    files = dict(fake_gateway.files)
    table = fake_firewall.table()

    assert run(args) == 0

    hba_and_fstab = {p: c for p, c in fake_gateway.files.items() if ".bak." not in p}
    assert hba_and_fstab == {p: c for p, c in files.items() if ".bak." not in p}
    assert fake_gateway.files["/etc/fstab"].count("/swapfile none swap sw 0 0") == 1
    assert fake_gateway.active_swaps == {"/swapfile": 2048 * MIB}
    assert fake_firewall.table() == table
    assert list(fake_gateway.db.databases) == ["postgres", "gis"]


def test_rerun_repairs_password_and_privilege(base_args, run, as_root, fake_gateway):
    fake_gateway.db.roles["demo"] = {"superuser": False, "password": "old"}
    fake_gateway.db.databases["gis"] = "postgres"

    assert run(["-r", "demo", "-p", "new", "-d", "gis"] + base_args) == 0

    assert fake_gateway.db.roles["demo"] == {"superuser": True, "password": "new"}
    assert fake_gateway.db.databases["gis"] == "demo"


def test_cli_overrides(base_args, run, as_root, fake_gateway):
    args = ["-r", "demo", "-p", "p@ss", "-d", "gis", "--swap-mib", "512", "--no-superuser"]

    assert run(args + base_args) == 0

    assert fake_gateway.active_swaps == {"/swapfile": 512 * MIB}
    assert fake_gateway.db.roles["demo"]["superuser"] is False


def test_remote_access_degradation_is_not_fatal(base_args, run, as_root, capsys, fake_gateway, fake_firewall):
    fake_gateway.db.fail_show = True

    assert run(["-r", "demo", "-p", "p@ss", "-d", "gis"] + base_args) == 0

    assert fake_gateway.db.auto_conf == {}
    assert fake_gateway.db.databases["gis"] == "demo"
    assert fake_firewall.active is True
    assert "remote access NOT configured" in capsys.readouterr().out


def test_fatal_stage_halts_pipeline(
    base_args, run, as_root, fake_gateway, fake_packages, fake_firewall
):
    fake_packages.fail_install = True

    with pytest.raises(SystemExit) as excinfo:
        run(["-r", "demo", "-p", "p@ss", "-d", "gis"] + base_args)

    assert excinfo.value.code == 1
    assert fake_gateway.db.statements == []
    assert fake_gateway.commands == []
    assert fake_firewall.calls == []


def test_sql_failure_halts_before_swap_and_firewall(
    mocker: MockerFixture, base_args, run, as_root, fake_gateway, fake_firewall
):
    mocker.patch(
        "pgbootstrap.configure.postgres_configurator.create_database_statement",
        return_value="CREATE DATABSE broken;",
    )

    with pytest.raises(SystemExit):
        run(["-r", "demo", "-p", "p@ss", "-d", "gis"] + base_args)

    assert "demo" in fake_gateway.db.roles
    assert fake_gateway.active_swaps == {}
    assert fake_firewall.calls == []


def test_build_pipeline_stage_order(
    app_settings, fake_gateway, fake_packages, fake_services, fake_firewall
):
    request = ProvisioningRequest(role="demo", password="p@ss", database="gis")

    orchestrator = build_pipeline(
        request, app_settings, fake_gateway, fake_packages, fake_services, fake_firewall
    )

    assert [t["name"] for t in orchestrator.tasks] == [
        STAGE_INSTALL,
        STAGE_REMOTE_ACCESS,
        STAGE_ROLE_AND_DATABASE,
        STAGE_EXTENSIONS,
        STAGE_SWAP,
        STAGE_FIREWALL,
        STAGE_SUMMARY,
    ]


def test_summary_shows_observed_firewall_status(
    base_args, run, as_root, capsys, fake_firewall
):
    assert run(["-r", "demo", "-p", "p@ss", "-d", "gis"] + base_args) == 0

    out = capsys.readouterr().out
    assert "- UFW status:" in out
    assert "    Status: active" in out
    assert "    5432/tcp comment PostgreSQL ALLOW IN Anywhere" in out
    assert "    Default: deny (incoming)" in out


def test_view_config_sets_up_console_logging_only(
    mocker: MockerFixture, tmp_path, base_args, run, no_logging_setup
):
    mocker.patch("pgbootstrap.main_installer.is_running_as_root", return_value=False)

    assert run(["--view-config", "--log-file", str(tmp_path / "x.log")] + base_args) == 0

    no_logging_setup.assert_called_once()
    assert "log_file" not in no_logging_setup.call_args.kwargs
