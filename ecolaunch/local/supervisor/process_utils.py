import os
import sys
import time
import shutil
import psutil
import logging
import subprocess
from pathlib import Path
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional

from ecolaunch.local.ecosystem import ProcessSpec

if TYPE_CHECKING:
    from .supervisor import ProcessManager

log = logging.getLogger(__name__)


class SpawnError(RuntimeError):
    """Raised when an app's OS process cannot be started."""

    def __init__(self, name: str, reason: str) -> None:
        super().__init__(f"Failed to spawn '{name}': {reason}")
        self.name = name
        self.reason = reason


@dataclass
class LaunchResult:
    """The outcome of one spawn attempt."""

    name: str
    pid: Optional[int] = None
    error: Optional[SpawnError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


#* --- Process Status & Monitoring ---
def pid_exists(pid: int) -> bool:
    """A wrapper for psutil.pid_exists for easy testing/mocking if needed."""
    return psutil.pid_exists(pid)

def get_process_from_pid(pid: int) -> psutil.Process:
    """A wrapper for psutil.Process for easy testing/mocking if needed."""
    return psutil.Process(pid)

def is_process_alive(proc: psutil.Process) -> bool:
    """True if the process exists and is not a zombie."""
    try:
        return proc.is_running() and proc.status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False

def _get_proc_status_string(proc: psutil.Process) -> str:
    """Gets a string representation of a process status."""
    try:
        if proc.status() == psutil.STATUS_ZOMBIE:
            return "zombie"
        return "running"
    except psutil.NoSuchProcess:
        return "stopped"
    except psutil.Error:
        return "unknown"

def _reap_child(manager: "ProcessManager", name: str) -> Optional[int]:
    """Collects the exit code of a child this process spawned itself."""
    handle = manager.child_handles.pop(name, None)
    if handle is None:
        return None
    return handle.poll()

def _handle_failed_process(manager: "ProcessManager", name: str, proc: psutil.Process) -> None:
    """
    Records a dead process and hands it to the manager's restart logic.

    A process that died before MIN_UPTIME counts as an unstable restart;
    one that ran longer resets its failure counter.
    """
    status = _get_proc_status_string(proc)
    exit_code = _reap_child(manager, name)
    log.warning(f"Detected {status} process: {name} (PID: {proc.pid}, exit code: {exit_code})")
    manager.running_procs.pop(name, None)

    started_at = manager.started_at.pop(name, None)
    uptime = time.time() - started_at if started_at else 0.0
    if uptime < manager.config.get("MIN_UPTIME", 1):
        manager.restart_failures[name] = manager.restart_failures.get(name, 0) + 1
        log.warning(f"Process '{name}' exited after {uptime:.1f}s. Counting it as an unstable restart.")
    else:
        manager.restart_failures.pop(name, None)

    spec = manager.specs.get(name)
    if spec is not None and spec.restart_delay > 0:
        # Not before this time; the loop retries it as a pending restart.
        manager.restart_cooldown_timers[name] = time.time() + spec.restart_delay / 1000

    manager._attempt_restart(name)

def pending_restarts(manager: "ProcessManager") -> List[str]:
    """Names of apps that are down but still eligible for an automatic restart."""
    return [
        name for name, spec in manager.specs.items()
        if spec.autorestart
        and name not in manager.running_procs
        and name not in manager.errored
    ]

def monitor_processes(manager: "ProcessManager") -> bool:
    """
    Checks every running process, restarts dead or changed ones and retries
    apps whose previous restart failed.

    :return: True when nothing is running and nothing is left to restart.
    """
    for name, proc in list(manager.running_procs.items()):
        if not is_process_alive(proc):
            _handle_failed_process(manager, name, proc)

    for name in manager.pop_watch_changes():
        if name in manager.running_procs:
            log.info(f"Change detected in watched paths of '{name}'. Restarting.")
            manager.restart_process(name)

    for name in pending_restarts(manager):
        manager._attempt_restart(name)

    return not manager.running_procs and not pending_restarts(manager)

#* --- Process Creation ---
def get_executable_path(base_path: Path) -> Path:
    """Returns the platform-specific full path for an executable."""
    return base_path.with_suffix(".exe") if sys.platform == "win32" and not base_path.suffix else base_path

def _get_popen_creation_flags() -> Dict[str, Any]:
    """Returns platform-specific creation flags for subprocess.Popen."""
    if sys.platform == "win32":
        return {"creationflags": subprocess.DETACHED_PROCESS | subprocess.CREATE_NO_WINDOW}
    return {"start_new_session": True}

def build_environment(spec: ProcessSpec) -> Dict[str, str]:
    """The parent environment with the app's own variables layered on top."""
    return {**os.environ, **spec.env}

def resolve_executable(spec: ProcessSpec) -> str:
    """
    Locates the executable for a spec.

    Commands containing a path separator resolve against the working
    directory; bare names are searched on the PATH.

    :raises SpawnError: If the executable is missing or not executable.
    """
    command = spec.command
    if os.sep in command or (os.altsep and os.altsep in command):
        candidate = Path(command).expanduser()
        if not candidate.is_absolute():
            candidate = spec.working_directory / candidate
        candidate = get_executable_path(candidate)
        if not candidate.is_file():
            raise SpawnError(spec.name, f"executable '{candidate}' not found")
        if not os.access(candidate, os.X_OK):
            raise SpawnError(spec.name, f"permission denied executing '{candidate}'")
        return str(candidate)

    search_path = build_environment(spec).get("PATH", os.defpath)
    found = shutil.which(command, path=search_path)
    if found is None:
        raise SpawnError(spec.name, f"executable '{command}' not found on PATH")
    return found

def _open_log(spec: ProcessSpec, path: Path):
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        return path.open("ab")
    except OSError as e:
        raise SpawnError(spec.name, f"cannot open log file '{path}': {e}") from e

def launch_process(manager: "ProcessManager", spec: ProcessSpec) -> psutil.Process:
    """
    Spawns one app and adds it to the manager's tracking dictionaries.

    The child's stdout and stderr are appended to the spec's log files and
    the child runs in its own session, so it outlives the launcher.

    :param manager: The ProcessManager instance.
    :param spec: The app to launch.
    :return: The psutil handle of the new process.
    :raises SpawnError: If the working directory or executable is missing,
        a log file cannot be opened, or the OS refuses to start the process.
    """
    log.info(f"Starting process: {spec.name}...")
    if not spec.working_directory.is_dir():
        raise SpawnError(spec.name, f"working directory '{spec.working_directory}' does not exist")

    executable = resolve_executable(spec)
    stdout_file = _open_log(spec, spec.stdout_log_path)
    try:
        stderr_file = _open_log(spec, spec.stderr_log_path)
    except SpawnError:
        stdout_file.close()
        raise

    try:
        p = subprocess.Popen(
            [executable, *spec.arguments],
            stdout=stdout_file,
            stderr=stderr_file,
            stdin=subprocess.DEVNULL,
            cwd=str(spec.working_directory),
            env=build_environment(spec),
            **_get_popen_creation_flags(),
        )
    except OSError as e:
        raise SpawnError(spec.name, e.strerror or str(e)) from e
    finally:
        # The child holds its own copies of the descriptors.
        stdout_file.close()
        stderr_file.close()

    proc = psutil.Process(p.pid)
    manager.child_handles[spec.name] = p
    manager.running_procs[spec.name] = proc
    manager.started_at[spec.name] = time.time()
    log.info(f"{spec.name} started successfully with PID: {p.pid}")
    return proc

def launch_all(manager: "ProcessManager", specs: Iterable[ProcessSpec]) -> List[LaunchResult]:
    """
    Attempts exactly one spawn per spec, in order.

    A failed spawn is logged and reported in its result; the remaining
    specs are still launched.

    :param manager: The ProcessManager instance.
    :param specs: The apps to launch.
    :return: One LaunchResult per spec, in the same order.
    """
    results: List[LaunchResult] = []
    for spec in specs:
        try:
            proc = launch_process(manager, spec)
            results.append(LaunchResult(spec.name, pid=proc.pid))
        except SpawnError as e:
            log.error(str(e))
            results.append(LaunchResult(spec.name, error=e))
    return results
