import time
import logging
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from watchdog.observers import Observer
from watchdog.events import FileSystemEventHandler

from ecolaunch.local.ecosystem import ProcessSpec

log = logging.getLogger(__name__)

IGNORED_DIR_NAMES = {"node_modules", ".git", "__pycache__"}


class AppChangeHandler(FileSystemEventHandler):
    """A watchdog event handler that flags an app for restart when its watched files change."""

    def __init__(self, spec: ProcessSpec, on_change: Callable[[str], None], debounce_interval: float,
                 ignored_paths: Iterable[Path] = ()):
        super().__init__()
        self.spec = spec
        self.on_change = on_change
        self.debounce_interval = debounce_interval
        self.last_trigger = 0.0
        self.ignored_paths = {
            Path(p).resolve() for p in (spec.stdout_log_path, spec.stderr_log_path, *ignored_paths)
        }

    def _is_ignored(self, path_str: str) -> bool:
        path = Path(path_str).resolve()
        if IGNORED_DIR_NAMES.intersection(path.parts):
            return True
        return any(path == ignored or ignored in path.parents for ignored in self.ignored_paths)

    def on_any_event(self, event) -> None:
        if event.event_type in ("opened", "closed", "closed_no_write"):
            return
        if self._is_ignored(event.src_path):
            return
        now = time.time()
        if now - self.last_trigger < self.debounce_interval:
            return
        self.last_trigger = now
        log.debug(f"Watchdog event for '{self.spec.name}': {event.event_type} on {event.src_path}")
        self.on_change(self.spec.name)


def start_observer(specs: Iterable[ProcessSpec], on_change: Callable[[str], None], debounce_interval: float,
                   ignored_paths: Iterable[Path] = ()) -> Optional[Observer]:
    """
    Starts one observer thread covering the watch paths of every spec that has any.

    :param specs: The apps to watch.
    :param on_change: Called with the app name when a watched path changes.
    :param debounce_interval: Minimum seconds between two triggers for one app.
    :param ignored_paths: Extra files or directories whose changes are ignored.
    :return: The running observer, or None if nothing is watched.
    """
    ignored_paths = list(ignored_paths)
    observer = Observer()
    scheduled: Dict[str, List[str]] = {}
    for spec in specs:
        if not spec.watch:
            continue
        handler = AppChangeHandler(spec, on_change, debounce_interval, ignored_paths)
        for path in spec.watch:
            if not path.exists():
                log.warning(f"Watch path '{path}' for '{spec.name}' does not exist. Skipping.")
                continue
            observer.schedule(handler, str(path), recursive=path.is_dir())
            scheduled.setdefault(spec.name, []).append(str(path))

    if not scheduled:
        return None
    observer.daemon = True
    observer.start()
    for name, paths in scheduled.items():
        log.info(f"Watching {', '.join(paths)} for '{name}'.")
    return observer
