"""
Entry point for the detached supervisor process.

Its sole responsibility is to name the process, instantiate the
ProcessManager and run the supervision loop.
"""
import setproctitle
from ecolaunch.local import effective_settings
from ecolaunch.local.supervisor import ProcessManager


def main() -> None:
    setproctitle.setproctitle(effective_settings.SUPERVISOR_PROCESS_TITLE)
    manager = ProcessManager()
    manager.supervision_loop()


if __name__ == "__main__":
    main()
