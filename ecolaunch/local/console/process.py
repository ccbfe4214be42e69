import logging
from pathlib import Path
from typing import List, Optional

from ecolaunch.local import effective_settings
from ecolaunch.local.supervisor import ProcessManager
from ecolaunch.local.supervisor.config_utils import check_configuration
from ecolaunch.local.console.handler import (
    display_status, handle_config_command, handle_logs_command, toggle_verbose_logging, print_help
)

log = logging.getLogger(__name__)
process_manager = ProcessManager()


def _path_arg(args: List[str]) -> Optional[Path]:
    return Path(args[0]) if args else None


def dispatch_command(command: str, args: List[str], manager: Optional[ProcessManager] = None) -> bool:
    """
    Runs a single console command.

    :param command: The main command string (e.g., 'start', 'status').
    :param args: A list of arguments for the command.
    :param manager: The ProcessManager to act on; defaults to the console's own.
    :return: False if the command is unknown or reported a failure, True otherwise.
    """
    manager = manager or process_manager
    log.debug(f"Executing command: {command}, args: {args}")
    command_map = {
        "start": lambda: manager.start_all(_path_arg(args), effective_settings.VERBOSE_LOGGING),
        "stop": lambda: manager.stop_all(),
        "shutdown": lambda: manager.stop_all(), # Foolproof alias
        "restart": lambda: manager.restart_all(_path_arg(args), effective_settings.VERBOSE_LOGGING),
        "status": lambda: display_status(manager),
        "check-config": lambda: check_configuration(manager, _path_arg(args)),
        "config": lambda: handle_config_command(args),
        "logs": lambda: handle_logs_command(manager, args),
        "verbose": toggle_verbose_logging,
        "help": print_help,
    }

    if command not in command_map:
        log.info(f"Unknown command: '{command}'. Type 'help' for a list of commands.")
        return False
    # Handlers without a success flag return None.
    return command_map[command]() is not False


def execute_command(command: str, args: List[str], manager: Optional[ProcessManager] = None) -> bool:
    """
    Executes a command typed at the interactive prompt.

    :return bool: True if the console should exit, False otherwise.
    """
    if command == "exit":
        return True
    dispatch_command(command, args, manager)
    return False
