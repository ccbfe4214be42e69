import psutil
import logging
from pathlib import Path
from collections import deque
from typing import TYPE_CHECKING, List, Optional

from ecolaunch.local import effective_settings
from ecolaunch.local.ecosystem import EcosystemConfigError, ProcessSpec
from ecolaunch.local.supervisor import startup

if TYPE_CHECKING:
    from ecolaunch.local.supervisor import ProcessManager

log = logging.getLogger(__name__)


def _config_show() -> None:
    """Displays the current values of all modifiable settings."""
    print("\n--- Current Supervisor Configuration ---")
    print(f"(Overrides file: {effective_settings.OVERRIDES_JSON_PATH})")
    for key in sorted(effective_settings.MODIFIABLE_SETTINGS):
        print(f"  {key} = {getattr(effective_settings, key, 'N/A')}")
    print("---")
    print("Use 'config set <KEY> <VALUE>' to change a setting.")
    print("A restart is required for changes to reach a running supervisor.")
    print("----------------------------------------\n")

def _config_set(args: List[str]) -> bool:
    """Sets a modifiable setting and persists it to the overrides file."""
    if len(args) < 2:
        print("Usage: config set <SETTING_NAME> <VALUE>")
        return False

    key, value_str = args[0].upper(), " ".join(args[1:])
    success, message = effective_settings.update_setting(key, value_str)
    print(message if success else f"Error: {message}")
    return success

def _config_help() -> None:
    """Displays help for the config command."""
    print("\nConfig Command Help:")
    print("  config show                - Display all modifiable settings.")
    print("  config set KEY VALUE       - Change a setting. Requires a restart to apply.")
    print("  config help                - Show this help message.")
    print("Use 'check-config' to validate the ecosystem file.")

def handle_config_command(args: List[str]) -> bool:
    """
    Handles all sub-commands for the 'config' command.

    :param args: A list of string arguments following the 'config' command.
    :return: False if the sub-command is unknown or failed.
    """
    sub_command = args[0].lower() if args else "show"

    if sub_command == "show":
        _config_show()
    elif sub_command == "set":
        return _config_set(args[1:])
    elif sub_command == "help":
        _config_help()
    else:
        print(f"Unknown config sub-command: '{sub_command}'. Type 'config help' for available commands.")
        return False
    return True

def _describe_process(label: str, pid: int) -> str:
    try:
        p = psutil.Process(pid)
        if p.status() == psutil.STATUS_ZOMBIE:
            return f"  - {label:<25} : PID {pid:<8} | Status: STOPPED (Zombie)"
        cpu = p.cpu_percent(interval=0.1)
        mem = p.memory_info().rss
        return (f"  - {label:<25} : PID {pid:<8} | Status: {p.status().upper()} "
                f"| CPU: {cpu:.1f}% | MEM: {mem/1024/1024:.1f} MB")
    except psutil.NoSuchProcess:
        return f"  - {label:<25} : PID {pid:<8} | Status: STOPPED (Stale PID)"
    except psutil.AccessDenied:
        return f"  - {label:<25} : PID {pid:<8} | Status: RUNNING (Access Denied)"

def display_status(manager: "ProcessManager") -> None:
    """Checks and displays the current status of all apps, including resource usage."""
    pid_info = manager.get_pid_info()
    if not pid_info:
        print("\nApps are STOPPED (No PID file found).\n")
        return

    print("\n--- App Status ---")
    print(f"Ecosystem: {pid_info.get('ecosystem') or 'unknown'}")
    any_alive = False
    for name, pid in sorted(pid_info.get("processes", {}).items()):
        line = _describe_process(name, pid)
        any_alive = any_alive or "STOPPED" not in line
        print(line)
    for name in pid_info.get("errored", []):
        print(f"  - {name:<25} : {'':<12} | Status: ERRORED (restart limit reached)")

    supervisor_pid = pid_info.get("supervisor")
    if isinstance(supervisor_pid, int):
        print(_describe_process("(supervisor)", supervisor_pid))

    if not any_alive:
        print("\nWARNING: All apps are stopped but a stale PID file exists.")
        print("You should run 'stop' to clean it up before starting again.")
    print("-" * 18 + "\n")

def tail_file(path: Path, lines: int) -> List[str]:
    """Returns the last `lines` lines of a text file, or an empty list if it is missing."""
    if not path.exists():
        return []
    with path.open("r", encoding="utf-8", errors="replace") as f:
        return [line.rstrip("\n") for line in deque(f, maxlen=lines)]

def _find_spec(manager: "ProcessManager", name: str) -> Optional[ProcessSpec]:
    pid_info = manager.get_pid_info() or {}
    recorded = pid_info.get("ecosystem")
    path = startup.resolve_ecosystem_path(manager, Path(recorded) if recorded else None)
    try:
        startup.load_specs(manager, path)
    except EcosystemConfigError as e:
        log.error(f"Cannot read ecosystem file: {e}")
        return None
    return manager.specs.get(name)

def handle_logs_command(manager: "ProcessManager", args: List[str]) -> bool:
    """
    Handles the 'logs' command: prints the last lines of an app's stdout and stderr files.

    :param manager: The ProcessManager instance.
    :param args: `<name> [lines]`.
    :return: False if the arguments or the app name are invalid.
    """
    if not args:
        print("Usage: logs <app_name> [lines]")
        return False

    name = args[0]
    try:
        lines = int(args[1]) if len(args) > 1 else effective_settings.LOG_TAIL_LINES
    except ValueError:
        print(f"Invalid line count: '{args[1]}'.")
        return False

    spec = _find_spec(manager, name)
    if spec is None:
        print(f"Unknown app: '{name}'.")
        return False

    for label, path in (("stdout", spec.stdout_log_path), ("stderr", spec.stderr_log_path)):
        print(f"\n--- {name} {label} ({path}), last {lines} lines ---")
        for line in tail_file(path, lines):
            print(line)
    print()
    return True

def toggle_verbose_logging() -> None:
    """Toggles verbose (DEBUG level) logging for the console handler."""
    effective_settings.VERBOSE_LOGGING = not effective_settings.VERBOSE_LOGGING
    new_level = logging.DEBUG if effective_settings.VERBOSE_LOGGING else logging.INFO

    # Reconfigure the console handler's level directly
    root_logger = logging.getLogger()
    found_handler = False
    for handler in root_logger.handlers:
        if type(handler) is logging.StreamHandler:
            handler.setLevel(new_level)
            found_handler = True
            break

    status = "ON" if effective_settings.VERBOSE_LOGGING else "OFF"
    if found_handler:
        print(f"Verbose console logging is now {status}.")
        log.debug("Debug logging test: This message should only appear when verbose is ON.")
    else:
        print("Could not find console handler to modify level.")

def print_help() -> None:
    """Prints the main help text for the console."""
    print("\nAvailable commands:")
    print("  start [file]           - Launch every app of the ecosystem file and supervise them.")
    print("  stop                   - Stop the supervisor and all apps gracefully.")
    print("  restart [file]         - Stop and then start all apps again.")
    print("  status                 - Show the current status of all apps.")
    print("  logs <app> [lines]     - Show the last lines of an app's stdout and stderr logs.")
    print("  check-config [file]    - Validate the ecosystem file without starting anything.")
    print("  config <cmd>           - Manage supervisor settings. Use 'config help' for details.")
    print("  verbose                - Toggle detailed DEBUG log output in the console.")
    print("  exit                   - Exit the management console.")
    print()
