import logging
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from ecolaunch.local.ecosystem import EcosystemConfigError
from ecolaunch.local.supervisor import startup
from ecolaunch.local.supervisor.process_utils import SpawnError, resolve_executable

if TYPE_CHECKING:
    from .supervisor import ProcessManager

log = logging.getLogger(__name__)


def check_configuration(manager: "ProcessManager", ecosystem_path: Optional[Path] = None) -> bool:
    """
    Validates an ecosystem file without spawning anything.

    Checks that the file parses, that every working directory exists and
    that every executable can be located.

    :param manager: The ProcessManager instance.
    :param ecosystem_path: The ecosystem file; looked up in BASE_DIR if omitted.
    :return: True if every app would be launchable, otherwise False.
    """
    path = startup.resolve_ecosystem_path(manager, ecosystem_path)
    log.info(f"Performing configuration validation of '{path}'...")
    try:
        specs = startup.load_specs(manager, path)
    except EcosystemConfigError as e:
        log.error(f"CONFIG CHECK FAILED: {e}")
        return False

    all_ok = True
    for spec in specs:
        if not spec.working_directory.is_dir():
            log.error(f"CONFIG CHECK FAILED: {spec.name} working directory '{spec.working_directory}' does not exist")
            all_ok = False
            continue
        try:
            executable = resolve_executable(spec)
        except SpawnError as e:
            log.error(f"CONFIG CHECK FAILED: {e}")
            all_ok = False
        else:
            log.info(f"Config Check OK: {spec.name} -> '{executable}' in '{spec.working_directory}'")
    return all_ok
