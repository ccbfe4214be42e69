import time
import psutil
import logging
import threading
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from ecolaunch.log.setup import setup_logging
from ecolaunch.local.config import effective_settings
from ecolaunch.local.ecosystem import EcosystemConfigError, ProcessSpec
from ecolaunch.local.supervisor import persistence, process_utils, shutdown, startup, watcher
from ecolaunch.local.supervisor.process_utils import LaunchResult, SpawnError

log = logging.getLogger(__name__)


class ProcessManager:
    """
    Manages the lifecycle of the apps declared in an ecosystem file.

    The console uses it to launch and stop the suite; the detached
    supervisor process uses it to monitor and restart the apps.
    """

    def __init__(self, settings: Optional[Dict[str, Any]] = None) -> None:
        """Initializes the ProcessManager state."""
        self.config: Dict[str, Any] = dict(settings) if settings is not None else effective_settings.as_dict()

        self.ecosystem_path: Optional[Path] = None
        self.specs: Dict[str, ProcessSpec] = {}
        self.running_procs: Dict[str, psutil.Process] = {}
        self.child_handles: Dict[str, subprocess.Popen] = {}
        self.started_at: Dict[str, float] = {}
        self.supervisor_pid: Optional[int] = None
        self.restart_failures: Dict[str, int] = {}
        self.restart_cooldown_timers: Dict[str, float] = {}
        self.errored: Set[str] = set()

        self.watch_changes: Set[str] = set()
        self.watch_lock = threading.Lock()
        self.observer = None

        self.shutdown_signal_received = threading.Event()

    def launch(self, specs: List[ProcessSpec]) -> List[LaunchResult]:
        """
        Spawns one process per spec; a failure for one spec does not stop the others.

        :param specs: The apps to launch, in order.
        :return: One LaunchResult per spec.
        """
        for spec in specs:
            self.specs.setdefault(spec.name, spec)
        return process_utils.launch_all(self, specs)

    def _attempt_restart(self, process_name: str) -> bool:
        """
        Attempts to restart a single app with cooldown and restart limits.

        :param process_name: The app name.
        :return: True if the app was restarted, False otherwise.
        """
        spec = self.specs.get(process_name)
        if spec is None or not spec.autorestart or process_name in self.errored:
            return False
        if self.config["SHUTDOWN_SIGNAL_PATH"].exists():
            return False

        if self.restart_cooldown_timers.get(process_name, 0) > time.time():
            log.debug(f"Process '{process_name}' is in cooldown. Skipping restart.")
            return False

        max_attempts = spec.max_restarts if spec.max_restarts is not None else self.config["MAX_RESTART_ATTEMPTS"]
        current_failures = self.restart_failures.get(process_name, 0)
        if current_failures >= max_attempts:
            log.critical(
                f"Process '{process_name}' has failed {current_failures} times. "
                "Marking it as errored and halting restart attempts."
            )
            self.errored.add(process_name)
            persistence.write_pid_file(self)
            return False

        log.warning(f"Process '{process_name}' is down. Restart attempt #{current_failures + 1}...")
        try:
            process_utils.launch_process(self, spec)
        except SpawnError as e:
            self.restart_failures[process_name] = current_failures + 1
            cooldown_period = self.config["RESTART_COOLDOWN_PERIOD"]
            self.restart_cooldown_timers[process_name] = time.time() + cooldown_period
            log.error(f"{e}. Cooldown active for {cooldown_period}s.")
            return False

        log.info(f"Process '{process_name}' restarted successfully.")
        self.restart_cooldown_timers.pop(process_name, None)
        persistence.write_pid_file(self)
        return True

    def restart_process(self, process_name: str) -> bool:
        """Stops a running app and starts it again immediately."""
        spec = self.specs[process_name]
        shutdown.stop_process(self, process_name)
        try:
            process_utils.launch_process(self, spec)
        except SpawnError as e:
            log.error(str(e))
            return False
        finally:
            persistence.write_pid_file(self)
        return True

    def _record_watch_change(self, process_name: str) -> None:
        with self.watch_lock:
            self.watch_changes.add(process_name)

    def pop_watch_changes(self) -> List[str]:
        """Returns and clears the apps whose watched files changed."""
        with self.watch_lock:
            changed = sorted(self.watch_changes)
            self.watch_changes.clear()
        return changed

    def start_watchers(self) -> None:
        """Starts the file observer for apps that declare `watch`."""
        self.observer = watcher.start_observer(
            self.specs.values(),
            self._record_watch_change,
            self.config["WATCH_DEBOUNCE_SECONDS"],
            ignored_paths=[self.config["STATE_DIR"], self.config["LOGS_DIR"]],
        )

    def stop_watchers(self) -> None:
        if self.observer is not None:
            self.observer.stop()
            self.observer.join(timeout=5)
            self.observer = None

    def start_all(self, ecosystem_path: Optional[Path] = None, verbose: bool = False,
                  with_supervisor: bool = True) -> bool:
        """
        Launches every app of the ecosystem file and the supervisor process.

        :param ecosystem_path: The ecosystem file; looked up in BASE_DIR if omitted.
        :param verbose: If True, sets console logging to DEBUG level.
        :param with_supervisor: If False, the apps are launched but not supervised.
        :return: True if every app was launched, False otherwise.
        """
        if startup.check_if_already_running(self):
            return False

        console_level = logging.DEBUG if verbose else logging.INFO
        setup_logging(console_level, log_file=self.config["SUPERVISOR_LOG_PATH"])

        log.info("=" * 20 + " Launching Apps " + "=" * 20)
        self.running_procs.clear()
        self.errored.clear()
        start_time = time.time()

        try:
            specs = startup.load_specs(self, startup.resolve_ecosystem_path(self, ecosystem_path))
        except EcosystemConfigError as e:
            log.critical(f"Cannot start: {e}")
            return False

        self.config["SHUTDOWN_SIGNAL_PATH"].unlink(missing_ok=True)
        try:
            results = process_utils.launch_all(self, specs)
            # The supervisor reads the ecosystem path and PIDs from this file on startup.
            persistence.write_pid_file(self)
            if with_supervisor:
                startup.start_supervisor_process(self)
                persistence.write_pid_file(self)
        except Exception as e:
            log.critical(f"Startup failed due to an error: {e}", exc_info=True)
            self.stop_all(is_cleanup_after_failure=True)
            return False

        failed = [r.name for r in results if not r.ok]
        if failed:
            log.error(f"{len(failed)} of {len(results)} app(s) failed to start: {', '.join(failed)}")
            return False
        log.info(f"All {len(results)} app(s) started in {time.time() - start_time:.2f} seconds.")
        return True

    def stop_all(self, is_cleanup_after_failure: bool = False) -> None:
        """
        Stops the supervisor and every app gracefully.

        :param is_cleanup_after_failure: If True, uses internal state instead of the PID file.
        """
        self.shutdown_signal_received.set()
        self.stop_watchers()
        if not is_cleanup_after_failure:
            persistence.signal_shutdown(self)

        timeout = self.config["GRACEFUL_SHUTDOWN_TIMEOUT"]
        supervisor_procs = set() if is_cleanup_after_failure else shutdown.identify_supervisor(self)
        app_procs = shutdown.identify_processes_to_stop(self, is_cleanup_after_failure)

        if not supervisor_procs and not app_procs:
            log.info("No running app processes found to stop.")
            persistence.cleanup_state_files(self)
            return

        # The supervisor goes first so it cannot restart apps mid-shutdown.
        shutdown.graceful_shutdown_sequence(supervisor_procs, timeout)
        log.info(f"Initiating graceful shutdown for {len(app_procs)} app processes...")
        shutdown.graceful_shutdown_sequence(app_procs, timeout)

        for handle in self.child_handles.values():
            handle.poll()
        self.child_handles.clear()
        self.running_procs.clear()
        self.started_at.clear()
        persistence.cleanup_state_files(self)
        log.info("Stop sequence completed.")

    def restart_all(self, ecosystem_path: Optional[Path] = None, verbose: bool = False) -> bool:
        """Stops everything, then starts again from the given or the recorded ecosystem file."""
        pid_info = self.get_pid_info() or {}
        recorded = pid_info.get("ecosystem")
        self.stop_all()
        return self.start_all(ecosystem_path or (Path(recorded) if recorded else None), verbose)

    def get_pid_info(self) -> Optional[Dict[str, Any]]:
        """
        Retrieves the recorded state from the PID file.

        :return: The state dictionary, or None if no valid PID file exists.
        """
        return persistence.get_pid_info(self)

    def supervision_loop(self) -> None:
        """Main supervisor loop that monitors and restarts the apps."""
        startup.initialize_supervision(self)

        while not self.shutdown_signal_received.is_set():
            try:
                if persistence.check_for_shutdown_signal(self):
                    break

                if process_utils.monitor_processes(self):
                    log.info("No apps are running and none are eligible for restart. Supervisor exiting.")
                    persistence.write_pid_file(self)
                    break

                self.shutdown_signal_received.wait(self.config["SUPERVISOR_SLEEP_INTERVAL"])

            except KeyboardInterrupt:
                log.info("Supervisor loop interrupted by user.")
                break
            except Exception as e:
                log.critical(f"Critical error in supervisor loop: {e}", exc_info=True)
                self.stop_all()
                return

        self.stop_watchers()
