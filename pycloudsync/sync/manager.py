"""Serializes sync passes and guards them with a watchdog timer."""

import logging
import threading
import time
from pathlib import Path
from typing import Any, Callable, Optional, Union

from ..exceptions import CloudSyncError, SyncTimeoutError
from ..output import OutputFormatter
from ..providers.base import StorageProvider
from ..settings import validate_and_fix
from ..utils import MAX_SYNC_DURATION
from .engine import SyncEngine
from .strategies import SyncStats

logger = logging.getLogger(__name__)

EngineFactory = Callable[[Any, OutputFormatter], SyncEngine]
ProviderFactory = Callable[[Any], dict[str, StorageProvider]]


def _enabled_providers(settings: Any) -> dict[str, StorageProvider]:
    from ..providers import create_enabled_providers

    return create_enabled_providers(settings)


def make_engine_factory(
    local_root: Union[str, Path],
    provider_factory: Optional[ProviderFactory] = None,
) -> EngineFactory:
    """Build an engine factory for a local root.

    Providers are created fresh for every pass from the then current
    settings.
    """
    create_providers = provider_factory or _enabled_providers

    def factory(settings: Any, output: OutputFormatter) -> SyncEngine:
        return SyncEngine(settings, local_root, create_providers(settings), output)

    return factory


class SyncManager:
    """Runs at most one sync pass at a time.

    A pass holds the sync lock from start to finish. A watchdog timer
    releases the lock if a pass runs longer than ``max_sync_duration``;
    such a pass is reported as timed out when it eventually returns.
    Calls made while a pass holds the lock are rejected, not queued.
    """

    def __init__(
        self,
        settings: Any,
        engine_factory: EngineFactory,
        output: Optional[OutputFormatter] = None,
        on_settings_changed: Optional[Callable[[Any], None]] = None,
        max_sync_duration: float = MAX_SYNC_DURATION,
        provider_factory: Optional[ProviderFactory] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize sync manager.

        Args:
            settings: Sync settings, repaired in place before every pass
            engine_factory: Creates the engine for a pass
            output: Output formatter for user notices
            on_settings_changed: Called with the settings after a repair,
                e.g. to save them
            max_sync_duration: Watchdog timeout in seconds
            provider_factory: Creates providers for connection tests
            clock: Time source, replaced in tests
        """
        self.settings = settings
        self.engine_factory = engine_factory
        self.output = output or OutputFormatter()
        self.on_settings_changed = on_settings_changed
        self.max_sync_duration = max_sync_duration
        self.provider_factory = provider_factory or _enabled_providers
        self._clock = clock

        self._lock = threading.Lock()
        self._running = False
        self._pass_id = 0
        self._timed_out_pass: Optional[int] = None
        self._watchdog: Optional[threading.Timer] = None

        self.last_sync_time: float = 0.0
        self.last_result: dict[str, SyncStats] = {}
        self.last_error: Optional[Exception] = None

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._running

    # =========================
    # Lock and watchdog
    # =========================

    def _acquire(self, show_notice: bool) -> Optional[int]:
        """Take the sync lock and start the watchdog in one step."""
        with self._lock:
            if self._running:
                return None
            self._running = True
            self._pass_id += 1
            pass_id = self._pass_id
            self._watchdog = threading.Timer(
                self.max_sync_duration, self._on_timeout, args=(pass_id, show_notice)
            )
            self._watchdog.daemon = True
            self._watchdog.start()
        return pass_id

    def _on_timeout(self, pass_id: int, show_notice: bool) -> None:
        with self._lock:
            if pass_id != self._pass_id or not self._running:
                return
            self._running = False
            self._timed_out_pass = pass_id
            self._watchdog = None
        logger.warning(
            f"Sync pass exceeded {self.max_sync_duration:.0f}s, releasing the lock"
        )
        if show_notice:
            self.output.error("Sync operation timed out and was released")

    def _release(self, pass_id: int) -> None:
        with self._lock:
            if pass_id != self._pass_id:
                return
            if self._watchdog is not None:
                self._watchdog.cancel()
                self._watchdog = None
            self._running = False

    # =========================
    # Passes
    # =========================

    def manual_sync(self, show_notice: bool = True, is_auto: bool = False) -> bool:
        """Run one sync pass unless another one is running.

        Args:
            show_notice: Report the outcome to the user
            is_auto: Run as an automatic pass (provider failures are logged
                and the remaining providers still sync)

        Returns:
            True if the pass completed, False if it was rejected or failed
        """
        pass_id = self._acquire(show_notice)
        if pass_id is None:
            logger.warning("A sync pass is already running, skipping this call")
            if show_notice:
                self.output.warning("Another sync is in progress, try again later")
            return False

        try:
            logger.info("Starting sync pass")
            self.validate_and_fix_settings()
            engine = self.engine_factory(self.settings, self.output)
            result = engine.perform_sync(is_auto=is_auto)
            if self._timed_out_pass == pass_id:
                raise SyncTimeoutError()
            self.last_result = result
            self.last_error = None
            self.last_sync_time = self._clock()
            if show_notice:
                self.output.success("Sync completed successfully")
            return True
        except CloudSyncError as e:
            self.last_error = e
            logger.error(f"Sync failed: {e}")
            if show_notice:
                self.output.error(f"Sync failed: {e}")
            return False
        finally:
            self._release(pass_id)

    def validate_and_fix_settings(self) -> bool:
        """Repair provider enablement and report whether settings changed."""
        changed = validate_and_fix(self.settings)
        if changed:
            logger.info("Settings were repaired")
            if self.on_settings_changed is not None:
                self.on_settings_changed(self.settings)
        return changed

    def sync_if_needed(self, force: bool = False) -> bool:
        """Run an automatic pass when the sync interval has elapsed.

        Args:
            force: Ignore the time since the last pass

        Returns:
            True if a pass ran and completed
        """
        interval = self.settings.sync_interval or 0
        if interval <= 0:
            logger.debug("Auto sync is disabled")
            return False
        if self.is_running:
            logger.debug("Sync already in progress, skipping")
            return False

        elapsed = self._clock() - self.last_sync_time
        if elapsed < interval * 60 and not force:
            logger.debug(f"Last sync was {elapsed:.0f}s ago, not syncing yet")
            return False

        self.validate_and_fix_settings()
        if not self.settings.enabled_providers:
            logger.debug("No storage providers enabled, skipping")
            return False
        return self.manual_sync(show_notice=False, is_auto=True)

    def test_all_enabled_providers(self) -> dict[str, bool]:
        """Test the connection of every enabled provider."""
        results = {}
        for provider_id, provider in self.provider_factory(self.settings).items():
            try:
                results[provider_id] = bool(provider.test_connection())
            except CloudSyncError as e:
                logger.warning(f"Connection test of {provider_id} failed: {e}")
                results[provider_id] = False
            finally:
                provider.disconnect()
            logger.info(
                f"Provider {provider_id}: "
                f"{'reachable' if results[provider_id] else 'unreachable'}"
            )
        return results
