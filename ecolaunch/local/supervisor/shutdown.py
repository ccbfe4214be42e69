import os
import psutil
import logging
from typing import TYPE_CHECKING, Iterable, List, Set

from ecolaunch.local.supervisor import persistence

if TYPE_CHECKING:
    from .supervisor import ProcessManager

log = logging.getLogger(__name__)


def _with_children(parent_procs: Iterable[psutil.Process]) -> Set[psutil.Process]:
    """Returns the given processes plus all of their descendants."""
    all_procs: Set[psutil.Process] = set(parent_procs)
    for proc in list(all_procs):
        try:
            all_procs.update(proc.children(recursive=True))
        except psutil.NoSuchProcess:
            log.warning(f"Process {proc.pid} no longer exists, skipping children retrieval.")
            continue
    return all_procs


def identify_processes_to_stop(manager: "ProcessManager", is_cleanup_after_failure: bool) -> Set[psutil.Process]:
    """
    Identifies all app processes (and their children) that need to be stopped.

    The supervisor process is not included; see `identify_supervisor`.

    :param manager: The ProcessManager instance.
    :param is_cleanup_after_failure: If True, uses internal state instead of the PID file.
    :return: A set of psutil.Process objects to be stopped.
    """
    parent_procs: Set[psutil.Process] = set()
    if is_cleanup_after_failure:
        parent_procs = {p for p in manager.running_procs.values() if p.is_running()}
        log.warning("Cleaning up processes after a startup failure.")
    else:
        pid_info = persistence.get_pid_info(manager) or {}
        for pid in pid_info.get("processes", {}).values():
            try:
                parent_procs.add(psutil.Process(pid))
            except (psutil.NoSuchProcess, TypeError, ValueError):
                continue
        parent_procs.update(p for p in manager.running_procs.values() if p.is_running())

    return _with_children(parent_procs)


def identify_supervisor(manager: "ProcessManager") -> Set[psutil.Process]:
    """Returns the recorded supervisor process unless it is this process."""
    pid_info = persistence.get_pid_info(manager) or {}
    pid = pid_info.get("supervisor")
    if not isinstance(pid, int) or pid == os.getpid():
        return set()
    try:
        return {psutil.Process(pid)}
    except psutil.NoSuchProcess:
        return set()


def _terminate_processes(processes: Iterable[psutil.Process]) -> None:
    """Sends SIGTERM to all processes."""
    for proc in processes:
        try:
            log.debug(f"Sending SIGTERM to {proc.name()} (PID {proc.pid})")
            proc.terminate()
        except psutil.NoSuchProcess:
            log.warning(f"Process {proc.pid} no longer exists, skipping termination.")
            continue


def _forceful_kill(processes: List[psutil.Process]) -> None:
    """Forcefully kills processes that didn't terminate gracefully."""
    if not processes:
        return

    log.warning(f"{len(processes)} processes did not terminate gracefully. Forcing shutdown...")
    for proc in processes:
        try:
            log.warning(f"Killing stubborn process {proc.name()} (PID {proc.pid}).")
            proc.kill()
        except psutil.NoSuchProcess:
            log.warning(f"Process {proc.pid} no longer exists, skipping forceful kill.")
            continue


def graceful_shutdown_sequence(processes: Set[psutil.Process], timeout: float) -> None:
    """
    Terminates the given processes, waits up to `timeout` seconds and kills
    whatever is still alive.

    :param processes: A set of psutil.Process objects to shut down.
    :param timeout: Seconds to wait before force-killing.
    """
    if not processes:
        return
    _terminate_processes(processes)

    procs_list = list(processes)
    try:
        _, alive = psutil.wait_procs(procs_list, timeout=timeout)
    except psutil.TimeoutExpired:
        alive = procs_list
    except psutil.NoSuchProcess:
        alive = []

    _forceful_kill(alive)


def stop_process(manager: "ProcessManager", name: str) -> None:
    """
    Stops a single app and its children and removes it from tracking.

    :param manager: The ProcessManager instance.
    :param name: The app name.
    """
    proc = manager.running_procs.pop(name, None)
    manager.started_at.pop(name, None)
    if proc is None:
        return
    try:
        procs = _with_children([proc]) if proc.is_running() else set()
    except psutil.NoSuchProcess:
        procs = set()
    graceful_shutdown_sequence(procs, manager.config["GRACEFUL_SHUTDOWN_TIMEOUT"])
    handle = manager.child_handles.pop(name, None)
    if handle is not None:
        handle.poll()
    log.info(f"Process '{name}' stopped.")
