"""Tests for console command dispatch and the status, logs and check-config commands."""

import json
import sys
from pathlib import Path

import pytest

import ecolaunch.main as console_main
from ecolaunch.local.console import dispatch_command, execute_command, process as console_process
from ecolaunch.local.console.handler import display_status, handle_logs_command, tail_file
from ecolaunch.local.supervisor import persistence
from ecolaunch.local.supervisor.config_utils import check_configuration

from conftest import SLEEP_CODE


class FakeManager:
    def __init__(self, result=True):
        self.calls = []
        self.result = result

    def start_all(self, path, verbose):
        self.calls.append(("start", path, verbose))
        return self.result

    def stop_all(self):
        self.calls.append(("stop",))

    def restart_all(self, path, verbose):
        self.calls.append(("restart", path, verbose))
        return self.result

    def get_pid_info(self):
        return None


def _write_ecosystem(tmp_path, apps):
    path = tmp_path / "ecosystem.config.json"
    path.write_text(json.dumps({"apps": apps}), encoding="utf-8")
    return path


# ── Dispatch ──────────────────────────────────────────────────


def test_exit_ends_the_console():
    assert execute_command("exit", [], FakeManager()) is True


@pytest.mark.parametrize("command, expected", [
    ("start", [("start", None, False)]),
    ("stop", [("stop",)]),
    ("shutdown", [("stop",)]),
    ("restart", [("restart", None, False)]),
])
def test_lifecycle_commands_reach_the_manager(command, expected):
    fake = FakeManager()
    assert execute_command(command, [], fake) is False
    assert fake.calls == expected


def test_start_passes_the_ecosystem_path(tmp_path):
    fake = FakeManager()
    execute_command("start", [str(tmp_path / "apps.yaml")], fake)
    assert fake.calls == [("start", tmp_path / "apps.yaml", False)]


def test_unknown_command_is_reported(caplog):
    fake = FakeManager()
    with caplog.at_level("INFO"):
        assert dispatch_command("frobnicate", [], fake) is False
    assert "Unknown command: 'frobnicate'" in caplog.text
    assert fake.calls == []


def test_help_lists_commands(capsys):
    execute_command("help", [], FakeManager())
    out = capsys.readouterr().out
    for command in ("start", "stop", "restart", "status", "logs", "check-config", "config"):
        assert command in out


def test_config_set_rejects_non_modifiable_key(capsys):
    execute_command("config", ["set", "PID_FILE_PATH", "/tmp/x"], FakeManager())
    assert "Error: Setting 'PID_FILE_PATH' is not modifiable." in capsys.readouterr().out


# ── Command results ───────────────────────────────────────


def test_dispatch_reports_handler_failures():
    assert dispatch_command("start", [], FakeManager(result=True)) is True
    assert dispatch_command("restart", [], FakeManager(result=False)) is False
    assert dispatch_command("stop", [], FakeManager()) is True
    assert dispatch_command("logs", [], FakeManager()) is False
    assert dispatch_command("config", ["nonsense"], FakeManager()) is False
    assert dispatch_command("config", ["set", "PID_FILE_PATH", "/tmp/x"], FakeManager()) is False


@pytest.fixture
def console_manager(monkeypatch):
    fake = FakeManager()
    monkeypatch.setattr(console_process, "process_manager", fake)
    return fake


def test_run_once_exit_codes(console_manager):
    assert console_main.run_once(["start", "apps.yaml"]) == 0
    assert console_manager.calls == [("start", Path("apps.yaml"), False)]

    console_manager.result = False
    assert console_main.run_once(["START"]) == 1
    assert console_main.run_once(["frobnicate"]) == 1


def test_main_exits_with_command_status(console_manager, monkeypatch):
    monkeypatch.setattr(console_main, "setup_logging", lambda *a, **kw: None)
    monkeypatch.setattr(sys, "argv", ["ecolaunch", "check-config", "missing.json"])
    monkeypatch.setattr(console_process, "check_configuration", lambda manager, path: False)

    with pytest.raises(SystemExit) as exc_info:
        console_main.main()

    assert exc_info.value.code == 1


# ── status ────────────────────────────────────────────────────


def test_status_without_pid_file(capsys):
    display_status(FakeManager())
    assert "STOPPED (No PID file found)" in capsys.readouterr().out


def test_status_lists_running_and_errored_apps(manager, make_spec, capsys):
    manager.launch([make_spec("api", SLEEP_CODE)])
    manager.errored.add("worker")
    persistence.write_pid_file(manager)

    display_status(manager)

    out = capsys.readouterr().out
    assert f"PID {manager.running_procs['api'].pid}" in out
    assert "worker" in out and "ERRORED" in out
    assert "stale PID file" not in out


# ── logs ──────────────────────────────────────────────────────


def test_tail_file(tmp_path):
    path = tmp_path / "out.log"
    path.write_text("".join(f"line {i}\n" for i in range(10)))

    assert tail_file(path, 3) == ["line 7", "line 8", "line 9"]
    assert tail_file(tmp_path / "missing.log", 3) == []


def test_logs_command_prints_both_streams(manager, tmp_path, capsys):
    _write_ecosystem(tmp_path, [{"name": "api", "script": sys.executable, "out_file": "api.out", "error_file": "api.err"}])
    (tmp_path / "api.out").write_text("hello\nworld\n")
    (tmp_path / "api.err").write_text("oops\n")

    handle_logs_command(manager, ["api", "1"])

    out = capsys.readouterr().out
    assert "world" in out and "hello" not in out
    assert "oops" in out


def test_logs_command_for_unknown_app(manager, tmp_path, capsys):
    _write_ecosystem(tmp_path, [{"name": "api", "script": sys.executable}])

    handle_logs_command(manager, ["nope"])

    assert "Unknown app: 'nope'." in capsys.readouterr().out


def test_logs_command_rejects_bad_line_count(manager, capsys):
    handle_logs_command(manager, ["api", "many"])
    assert "Invalid line count" in capsys.readouterr().out


# ── check-config ──────────────────────────────────────────────


def test_check_configuration_passes_for_launchable_apps(manager, tmp_path):
    path = _write_ecosystem(tmp_path, [{"name": "api", "script": sys.executable}])
    assert check_configuration(manager, path) is True


def test_check_configuration_reports_every_problem(manager, tmp_path, caplog):
    path = _write_ecosystem(tmp_path, [
        {"name": "nowhere", "script": sys.executable, "cwd": "/nonexistent"},
        {"name": "ghost", "script": "definitely-not-a-real-binary-xyz"},
    ])

    assert check_configuration(manager, path) is False
    assert "nowhere working directory '/nonexistent' does not exist" in caplog.text
    assert "definitely-not-a-real-binary-xyz" in caplog.text


def test_check_configuration_with_invalid_file(manager, tmp_path):
    path = tmp_path / "ecosystem.config.js"
    path.write_text("module.exports = { apps: [ { name: process.env.NAME } ] }")
    assert check_configuration(manager, path) is False
