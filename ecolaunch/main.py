import sys
import logging
import threading
from typing import List

# Basic console logger for messages BEFORE full setup is complete.
# This logger will be replaced by the full setup later.
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)-8s - [console] - %(message)s',
    stream=sys.stdout
)
log = logging.getLogger("console")

import ecolaunch.local.console as console
from ecolaunch.log.setup import setup_logging
from ecolaunch.local.console.process import process_manager

CONSOLE_LOCK = threading.Lock()


def run_once(argv: List[str]) -> int:
    """
    Runs one command given on the command line, e.g. `ecolaunch start apps.yaml`.

    :param argv: The command followed by its arguments; `--verbose` may appear anywhere.
    :return: The process exit code: 0 on success, 1 if the command failed.
    """
    args = [a for a in argv[1:] if a != "--verbose"]
    if "--verbose" in argv[1:]:
        console.toggle_verbose_logging()
    return 0 if console.dispatch_command(argv[0].lower(), args) else 1


def interactive() -> None:
    """Reads commands from the prompt until 'exit', EOF or Ctrl+C."""
    print("--- ecolaunch Management Console ---")
    print("Type 'help' for a list of commands.")

    with CONSOLE_LOCK:
        status = "Running" if process_manager.get_pid_info() else "Stopped"
    print(f"Apps are currently {status}.")

    while True:
        try:
            # The prompt stays outside the lock so background threads can log.
            line = input("> ").strip().split()
            if not line:
                continue
            with CONSOLE_LOCK:
                command, args = line[0].lower(), line[1:]
                log.debug(f"Received command: {command}, args: {args}")
                if console.execute_command(command, args):
                    break

        except (KeyboardInterrupt, EOFError):
            with CONSOLE_LOCK:
                log.warning("\nExiting console.")
                break
        except Exception as e:
            with CONSOLE_LOCK:
                log.error(f"An unexpected error occurred in the console: {e}", exc_info=True)


def main() -> None:
    """The main entry point for the console application."""
    # 'start' calls this again with the chosen verbosity.
    setup_logging(logging.INFO)

    if len(sys.argv) > 1:
        sys.exit(run_once(sys.argv[1:]))
    interactive()


if __name__ == "__main__":
    main()
    print("Exiting console application.")
