from __future__ import annotations

from datetime import datetime

import pytest
from typer.testing import CliRunner

from tenderfetch import __version__
from tenderfetch.cli import main as cli_main
from tenderfetch.core.config.loader import load_app_config
from tenderfetch.core.errors import ConnectivityError
from tenderfetch.core.orchestrator.runner import RunReport, RunStatus
from tenderfetch.persistence.ledger import RunLedger
from tenderfetch.persistence.models import LedgerRow

runner = CliRunner()


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(cli_main, "setup_logging", lambda **kwargs: None)
    return tmp_path


@pytest.fixture
def failures(monkeypatch):
    calls: list[tuple[str, BaseException]] = []

    async def record(config, title, error):
        calls.append((title, error))
        return True

    monkeypatch.setattr(cli_main, "notify_failure", record)
    return calls


def test_version():
    result = runner.invoke(cli_main.app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_init_writes_loadable_config(workdir):
    result = runner.invoke(cli_main.app, ["init"])

    assert result.exit_code == 0
    assert (workdir / "config.toml").exists()
    assert (workdir / "data").is_dir()
    assert (workdir / "logs").is_dir()
    assert load_app_config(workdir / "config.toml").name_filter == "設計"

    again = runner.invoke(cli_main.app, ["init"])
    assert again.exit_code == 1


def test_default_invocation_runs_sync(workdir, monkeypatch, failures):
    calls = []

    async def fake_run_sync(config):
        calls.append(config)
        return RunReport(status=RunStatus.NOTHING_NEW, finished_at=datetime.now())

    monkeypatch.setattr(cli_main, "run_sync", fake_run_sync)

    result = runner.invoke(cli_main.app, [])

    assert result.exit_code == 0
    assert len(calls) == 1
    assert failures == []


def test_fatal_error_notifies_and_exits_nonzero(workdir, monkeypatch, failures):
    async def fake_run_sync(config):
        raise ConnectivityError("Cannot reach portal", url="https://portal.example")

    monkeypatch.setattr(cli_main, "run_sync", fake_run_sync)

    result = runner.invoke(cli_main.app, ["run"])

    assert result.exit_code == 1
    assert [title for title, _ in failures] == ["Portal unreachable"]
    assert isinstance(failures[0][1], ConnectivityError)


def test_invalid_config_exits_nonzero(workdir):
    (workdir / "config.toml").write_text("page_size = [", encoding="utf-8")

    result = runner.invoke(cli_main.app, ["run"])

    assert result.exit_code == 1


def test_upload_requires_enabled_mirror(workdir, failures):
    result = runner.invoke(cli_main.app, ["upload"])

    assert result.exit_code == 1
    assert failures == []


def test_ledger_status_and_check(workdir):
    ledger = RunLedger(workdir / "downloadHistory.json")
    ledger.record(LedgerRow(entity_id="001", entity_name="道路設計", section_name="土木課", downloaded=["a.pdf"]))
    (workdir / "data" / "001_道路設計_土木課").mkdir(parents=True)

    status = runner.invoke(cli_main.app, ["ledger", "status"])
    assert status.exit_code == 0
    assert "001" in status.stdout

    check = runner.invoke(cli_main.app, ["ledger", "check"])
    assert check.exit_code == 1
    assert "a.pdf" in check.stdout
