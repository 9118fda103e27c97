"""Automatic sync triggers: a periodic timer and a file system watcher."""

import logging
import os
import threading
from pathlib import Path
from typing import Callable, Optional, Union

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from ..utils import DEFAULT_DEBOUNCE_DELAY, MIN_SYNC_INTERVAL_MINUTES
from .filter import SyncFileFilter
from .manager import SyncManager
from .paths import normalize_path

logger = logging.getLogger(__name__)


class AutoSyncScheduler:
    """Periodically asks the manager for a pass.

    The scheduler wakes up every ``check_period`` seconds and calls
    :meth:`SyncManager.sync_if_needed`, which runs a pass once the
    configured interval has elapsed. Ticks while a pass runs are skipped.
    """

    def __init__(
        self,
        manager: SyncManager,
        interval_minutes: Optional[int] = None,
        check_period: float = 60.0,
    ):
        """Initialize the scheduler.

        Args:
            manager: Sync manager running the passes
            interval_minutes: Sync interval; defaults to the manager's
                settings, 0 disables auto sync
            check_period: Seconds between checks
        """
        self.manager = manager
        self.check_period = check_period
        self.interval_minutes = 0
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        if interval_minutes is None:
            interval_minutes = manager.settings.sync_interval
        self._set_interval(interval_minutes)

    def _set_interval(self, interval_minutes: int) -> None:
        if 0 < interval_minutes < MIN_SYNC_INTERVAL_MINUTES:
            logger.warning(
                f"Sync interval {interval_minutes} min is below the minimum, "
                f"using {MIN_SYNC_INTERVAL_MINUTES} min"
            )
            interval_minutes = MIN_SYNC_INTERVAL_MINUTES
        self.interval_minutes = max(interval_minutes, 0)
        self.manager.settings.sync_interval = self.interval_minutes

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> bool:
        """Start the timer thread.

        Returns:
            False if auto sync is disabled or already running
        """
        if self.interval_minutes <= 0:
            logger.info("Auto sync is disabled")
            return False
        if self.is_running:
            return False
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name="pycloudsync-autosync", daemon=True
        )
        self._thread.start()
        logger.info(f"Auto sync every {self.interval_minutes} min")
        return True

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None

    def update(self, interval_minutes: int) -> None:
        """Change the interval, restarting the timer if needed."""
        self.stop()
        self._set_interval(interval_minutes)
        self.start()

    def _run(self) -> None:
        while not self._stop.wait(self.check_period):
            self.tick()

    def tick(self) -> bool:
        """Run one check; errors are logged and never propagate."""
        if self.manager.is_running:
            logger.debug("Sync in progress, skipping scheduled check")
            return False
        try:
            return self.manager.sync_if_needed()
        except Exception as e:
            logger.error(f"Scheduled sync failed: {e}")
            return False


class DebouncedTrigger:
    """Coalesces calls within ``delay`` seconds into one callback call."""

    def __init__(
        self, callback: Callable[[], object], delay: float = DEFAULT_DEBOUNCE_DELAY
    ):
        self.callback = callback
        self.delay = delay
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None

    def __call__(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.delay, self._fire)
            self._timer.daemon = True
            self._timer.start()

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _fire(self) -> None:
        with self._lock:
            self._timer = None
        try:
            self.callback()
        except Exception as e:
            logger.error(f"Change triggered sync failed: {e}")


class LocalChangeHandler(FileSystemEventHandler):
    """Feeds relevant local file changes into a trigger."""

    def __init__(
        self,
        root: Union[str, Path],
        trigger: Callable[[], None],
        file_filter: Optional[SyncFileFilter] = None,
    ):
        """Initialize event handler.

        Args:
            root: Watched sync root
            trigger: Called for every change that passes the filter
            file_filter: Filter for paths that do not take part in sync
        """
        super().__init__()
        self.root = Path(root).resolve()
        self.trigger = trigger
        self.file_filter = file_filter

    def _relative(self, path: Union[str, bytes]) -> Optional[str]:
        if isinstance(path, bytes):
            path = os.fsdecode(path)
        try:
            relative = Path(path).resolve().relative_to(self.root)
        except ValueError:
            return None
        return normalize_path(relative.as_posix()) or None

    def _handle(self, path: Union[str, bytes], is_directory: bool) -> bool:
        relative = self._relative(path)
        if relative is None:
            return False
        if self.file_filter is not None and self.file_filter.should_exclude(
            relative, is_directory
        ):
            return False
        logger.debug(f"Local change: {relative}")
        self.trigger()
        return True

    def on_created(self, event: FileSystemEvent) -> None:
        self._handle(event.src_path, event.is_directory)

    def on_modified(self, event: FileSystemEvent) -> None:
        # Folder mtimes change whenever their children do
        if not event.is_directory:
            self._handle(event.src_path, False)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._handle(event.src_path, event.is_directory)

    def on_moved(self, event: FileSystemEvent) -> None:
        if not self._handle(event.src_path, event.is_directory):
            self._handle(event.dest_path, event.is_directory)


def watch_local_tree(root: Union[str, Path], handler: FileSystemEventHandler):
    """Start a watchdog observer for the sync root.

    Returns:
        The started observer; call ``stop()`` and ``join()`` on it to end
        watching
    """
    observer = Observer()
    observer.schedule(handler, str(root), recursive=True)
    observer.start()
    logger.info(f"Watching {root} for changes")
    return observer
