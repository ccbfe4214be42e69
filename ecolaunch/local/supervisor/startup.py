import os
import time
import psutil
import logging
import subprocess
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional

from ecolaunch.log.setup import setup_logging
from ecolaunch.local.ecosystem import ProcessSpec, load_ecosystem, find_ecosystem_file
from ecolaunch.local.supervisor import persistence, process_utils

if TYPE_CHECKING:
    from .supervisor import ProcessManager

log = logging.getLogger(__name__)


def check_if_already_running(manager: "ProcessManager") -> bool:
    """
    Checks if the suite is already running based on the PID file.

    :param manager: The ProcessManager instance.
    :return: True if already running, False otherwise.
    """
    pid_info = persistence.get_pid_info(manager)
    if pid_info and any(process_utils.pid_exists(p) for p in persistence.all_recorded_pids(pid_info)):
        log.error("Apps appear to be running. Use 'stop' or 'restart'.")
        return True
    return False


def resolve_ecosystem_path(manager: "ProcessManager", ecosystem_path: Optional[Path] = None) -> Path:
    """
    Picks the ecosystem file: the explicit path, else the first known file
    name present in BASE_DIR, else DEFAULT_ECOSYSTEM_PATH.
    """
    if ecosystem_path:
        return Path(ecosystem_path).resolve()
    found = find_ecosystem_file(manager.config["BASE_DIR"], manager.config["ECOSYSTEM_FILE_NAMES"])
    return (found or manager.config["DEFAULT_ECOSYSTEM_PATH"]).resolve()


def load_specs(manager: "ProcessManager", ecosystem_path: Path) -> List[ProcessSpec]:
    """
    Loads the ecosystem file and installs its specs on the manager.

    :raises EcosystemConfigError: If the file is invalid.
    """
    specs = load_ecosystem(ecosystem_path, manager.config["LOGS_DIR"])
    manager.ecosystem_path = Path(ecosystem_path)
    manager.specs = {spec.name: spec for spec in specs}
    log.info(f"Loaded {len(specs)} app(s) from '{ecosystem_path}'.")
    return specs


def start_supervisor_process(manager: "ProcessManager") -> int:
    """
    Starts the detached supervisor process that watches over the apps.

    :param manager: The ProcessManager instance.
    :return: The supervisor's PID.
    """
    args = [manager.config["PYTHON_EXECUTABLE"], "-m", "ecolaunch.local.entry.supervisor"]
    env = {**os.environ, "ECOLAUNCH_HOME": str(manager.config["BASE_DIR"])}
    p = subprocess.Popen(
        args,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        stdin=subprocess.DEVNULL,
        cwd=str(manager.config["BASE_DIR"]),
        env=env,
        **process_utils._get_popen_creation_flags(),
    )
    manager.supervisor_pid = p.pid
    log.info(f"Supervisor started with PID: {p.pid}")
    return p.pid


def initialize_supervision(manager: "ProcessManager") -> None:
    """
    Initializes logging and state for the supervision loop.

    Re-attaches to the PIDs recorded by the launcher and reloads the specs
    from the recorded ecosystem file.

    :param manager: The ProcessManager instance.
    """
    setup_logging(log_file=manager.config["SUPERVISOR_LOG_PATH"])
    log.info("Supervisor started. Monitoring app processes.")
    manager.shutdown_signal_received.clear()
    manager.supervisor_pid = os.getpid()

    pid_info = persistence.get_pid_info(manager) or {}
    ecosystem = pid_info.get("ecosystem")
    if ecosystem:
        load_specs(manager, Path(ecosystem))
    manager.errored = set(pid_info.get("errored", []))

    manager.running_procs = {}
    for name, pid in pid_info.get("processes", {}).items():
        if name in manager.specs and process_utils.pid_exists(pid):
            proc = process_utils.get_process_from_pid(pid)
            manager.running_procs[name] = proc
            try:
                manager.started_at[name] = proc.create_time()
            except psutil.Error:
                manager.started_at[name] = time.time()

    missing = process_utils.pending_restarts(manager)
    if missing:
        log.warning(f"Apps not running at supervisor start: {', '.join(missing)}")
    persistence.write_pid_file(manager)
    manager.start_watchers()
