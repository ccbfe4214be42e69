"""Shared fixtures: a ProcessManager whose state lives under tmp_path."""

import sys
import logging

import psutil
import pytest

from ecolaunch.local import effective_settings
from ecolaunch.local.ecosystem import ProcessSpec
from ecolaunch.local.supervisor import ProcessManager


@pytest.fixture(autouse=True)
def restore_root_logging():
    """setup_logging replaces the root handlers; put pytest's back afterwards."""
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        if handler not in saved_handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in saved_handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(saved_level)


@pytest.fixture
def settings(tmp_path):
    cfg = effective_settings.as_dict()
    state_dir = tmp_path / ".ecolaunch"
    logs_dir = tmp_path / "logs"
    cfg.update({
        "BASE_DIR": tmp_path,
        "STATE_DIR": state_dir,
        "LOGS_DIR": logs_dir,
        "PID_FILE_PATH": state_dir / "apps.pid",
        "SHUTDOWN_SIGNAL_PATH": state_dir / "shutdown.signal",
        "SUPERVISOR_LOG_PATH": logs_dir / "ecolaunch.log",
        "DEFAULT_ECOSYSTEM_PATH": tmp_path / "ecosystem.config.js",
        "GRACEFUL_SHUTDOWN_TIMEOUT": 5,
        "RESTART_COOLDOWN_PERIOD": 30,
        "MAX_RESTART_ATTEMPTS": 3,
        "MIN_UPTIME": 1,
    })
    return cfg


@pytest.fixture
def manager(settings):
    m = ProcessManager(settings)
    yield m
    for proc in list(m.running_procs.values()):
        try:
            proc.kill()
        except psutil.NoSuchProcess:
            pass
    for handle in m.child_handles.values():
        handle.wait(timeout=10)
    m.stop_watchers()


@pytest.fixture
def make_spec(tmp_path):
    """Builds a ProcessSpec that runs a Python one-liner in tmp_path."""
    def _factory(name: str, code: str = "pass", **overrides) -> ProcessSpec:
        fields = dict(
            name=name,
            command=sys.executable,
            arguments=("-c", code),
            working_directory=tmp_path,
            stdout_log_path=tmp_path / "logs" / f"{name}-out.log",
            stderr_log_path=tmp_path / "logs" / f"{name}-error.log",
        )
        fields.update(overrides)
        return ProcessSpec(**fields)
    return _factory


def wait_for_exit(manager: ProcessManager, name: str) -> int:
    """Blocks until a child spawned by the manager exits and returns its exit code."""
    return manager.child_handles[name].wait(timeout=10)


SLEEP_CODE = "import time; time.sleep(30)"
