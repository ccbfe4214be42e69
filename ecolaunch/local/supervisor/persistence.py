import os
import json
import psutil
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional

if TYPE_CHECKING:
    from .supervisor import ProcessManager

log = logging.getLogger(__name__)


def get_pid_info(manager: "ProcessManager") -> Optional[Dict[str, Any]]:
    """
    Reads the PID state file from disk and returns its contents.

    The state is `{"ecosystem": path, "processes": {name: pid},
    "supervisor": pid, "errored": [names]}`. A malformed file is removed.

    :param manager: The ProcessManager instance.
    :return: The state dictionary if the file exists and is valid, else None.
    """
    pid_file: Path = manager.config["PID_FILE_PATH"]
    if not pid_file.exists():
        return None
    try:
        with pid_file.open("r") as f:
            state = json.load(f)
    except (json.JSONDecodeError, IOError):
        pid_file.unlink(missing_ok=True)
        return None
    if not isinstance(state, dict) or not isinstance(state.get("processes"), dict):
        pid_file.unlink(missing_ok=True)
        return None
    return state

def all_recorded_pids(pid_info: Optional[Dict[str, Any]]) -> List[int]:
    """Every PID in a state dictionary: the apps and the supervisor."""
    if not pid_info:
        return []
    pids = [pid for pid in pid_info.get("processes", {}).values() if isinstance(pid, int)]
    if isinstance(pid_info.get("supervisor"), int):
        pids.append(pid_info["supervisor"])
    return pids

def write_pid_file(manager: "ProcessManager") -> None:
    """
    Atomically writes the current state to the PID file.

    :param manager: The ProcessManager instance.
    """
    pid_file: Path = manager.config["PID_FILE_PATH"]
    state = {
        "ecosystem": str(manager.ecosystem_path) if manager.ecosystem_path else None,
        "processes": {
            name: proc.pid for name, proc in manager.running_procs.items()
            if psutil.pid_exists(proc.pid)
        },
        "supervisor": manager.supervisor_pid,
        "errored": sorted(manager.errored),
    }
    pid_file.parent.mkdir(parents=True, exist_ok=True)
    # The console and the supervisor both write this file; each uses its own temp file.
    temp_pid_path = pid_file.with_suffix(f".{os.getpid()}.tmp")
    try:
        with temp_pid_path.open("w") as f:
            json.dump(state, f, indent=4)
        temp_pid_path.replace(pid_file)
    except (IOError, OSError) as e:
        log.error(f"Failed to write PID file: {e}", exc_info=True)
    finally:
        temp_pid_path.unlink(missing_ok=True)

def signal_shutdown(manager: "ProcessManager") -> None:
    """Creates the shutdown signal file that stops the supervisor loop."""
    signal_path: Path = manager.config["SHUTDOWN_SIGNAL_PATH"]
    signal_path.parent.mkdir(parents=True, exist_ok=True)
    signal_path.touch()

def check_for_shutdown_signal(manager: "ProcessManager") -> bool:
    """Checks if the shutdown signal file exists."""
    if manager.config["SHUTDOWN_SIGNAL_PATH"].exists():
        log.info("Shutdown signal file detected. Exiting supervisor loop.")
        return True
    return False

def cleanup_state_files(manager: "ProcessManager") -> None:
    """Removes the PID file and the shutdown signal file."""
    manager.config["PID_FILE_PATH"].unlink(missing_ok=True)
    manager.config["SHUTDOWN_SIGNAL_PATH"].unlink(missing_ok=True)
    log.debug("Cleaned up PID and signal files.")
