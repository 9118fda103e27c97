"""Core sync engine running one pass over every enabled provider."""

import logging
import time
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional, Union

from rich.progress import Progress, SpinnerColumn, TextColumn

from ..exceptions import (
    AuthenticationError,
    NotFoundError,
    StorageProviderError,
    SyncError,
)
from ..output import OutputFormatter
from ..providers.base import RemoteEntry, StorageProvider
from ..utils import (
    DEFAULT_CONNECT_ATTEMPTS,
    DEFAULT_CONNECT_DELAY,
    MAX_RECURSION_DEPTH,
)
from .filter import SyncFileFilter
from .folders import FolderCreator
from .paths import map_remote_to_local, remote_base_path
from .scanner import LocalEntry, LocalTree
from .strategies import STRATEGIES, SyncStats
from .transform import ContentTransformer

logger = logging.getLogger(__name__)


class PassState(str, Enum):
    """Progress of one provider through a sync pass."""

    IDLE = "idle"
    CONNECTING = "connecting"
    LISTING_LOCAL = "listing_local"
    ENSURING_REMOTE_ROOT = "ensuring_remote_root"
    LISTING_REMOTE = "listing_remote"
    SYNCING = "syncing"
    DONE = "done"
    FAILED = "failed"


class SyncEngine:
    """Orchestrates a sync pass between the local tree and the providers."""

    def __init__(
        self,
        settings: Any,
        local_root: Union[str, Path],
        providers: dict[str, StorageProvider],
        output: Optional[OutputFormatter] = None,
        transformer: Optional[ContentTransformer] = None,
        connect_attempts: int = DEFAULT_CONNECT_ATTEMPTS,
        connect_delay: float = DEFAULT_CONNECT_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize sync engine.

        Args:
            settings: Sync settings
            local_root: Root folder of the local tree
            providers: Enabled providers keyed by provider id
            output: Output formatter for displaying progress/status
            transformer: Content transformer (built from settings if omitted)
            connect_attempts: Connection attempts per provider
            connect_delay: Delay between connection attempts in seconds
            sleep: Sleep function, replaced in tests
        """
        self.settings = settings
        self.local_tree = LocalTree(local_root)
        self.providers = providers
        self.output = output or OutputFormatter()
        self.transformer = transformer or ContentTransformer(settings)
        self.file_filter = SyncFileFilter(settings)
        self.connect_attempts = connect_attempts
        self.connect_delay = connect_delay
        self._sleep = sleep
        self.states: dict[str, PassState] = {}

    def perform_sync(self, is_auto: bool = False) -> dict[str, SyncStats]:
        """Sync the local tree with every provider.

        Args:
            is_auto: Automatic passes log provider failures and go on with
                the next provider instead of raising

        Returns:
            Statistics per provider id (failed providers are left out)

        Raises:
            SyncError: If no provider is enabled, or a provider fails during
                a manual pass

        Examples:
            >>> engine = SyncEngine(settings, "/notes", {"webdav": provider})
            >>> stats = engine.perform_sync()
            >>> print(f"Uploaded {stats['webdav'].uploads} files")
        """
        if not self.providers:
            raise SyncError("no storage providers enabled")
        if not self.local_tree.root.is_dir():
            raise SyncError(f"local folder does not exist: {self.local_tree.root}")

        direction = self.settings.sync_direction.value
        logger.info(
            f"Starting {'automatic' if is_auto else 'manual'} {direction} sync "
            f"with {len(self.providers)} provider(s)"
        )
        results: dict[str, SyncStats] = {}
        for provider_id, provider in self.providers.items():
            self.states[provider_id] = PassState.IDLE
            try:
                stats = self._sync_provider(provider_id, provider)
            except Exception as e:
                self.states[provider_id] = PassState.FAILED
                error = self._as_sync_error(provider_id, e)
                logger.error(f"Sync with {provider.get_name()} failed: {error}")
                if not is_auto:
                    if error is e:
                        raise
                    raise error from e
                continue
            finally:
                provider.disconnect()
            self.states[provider_id] = PassState.DONE
            results[provider_id] = stats
            if not self.output.quiet:
                self._display_summary(provider.get_name(), stats)
        return results

    def _sync_provider(self, provider_id: str, provider: StorageProvider) -> SyncStats:
        base_path = remote_base_path(self.settings, provider_id)

        self.states[provider_id] = PassState.CONNECTING
        self._connect(provider_id, provider)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True,
            disable=self.output.quiet or self.output.json_output,
        ) as progress:
            self.states[provider_id] = PassState.LISTING_LOCAL
            task = progress.add_task("Scanning local directory...", total=None)
            local_entries = self._scan_local()
            progress.update(
                task, description=f"Found {len(local_entries)} local entries"
            )

            self.states[provider_id] = PassState.ENSURING_REMOTE_ROOT
            self._ensure_remote_root(provider, base_path)

            self.states[provider_id] = PassState.LISTING_REMOTE
            task = progress.add_task("Scanning remote directory...", total=None)
            remote_entries = self._list_remote(provider_id, provider, base_path)
            progress.update(
                task, description=f"Found {len(remote_entries)} remote entries"
            )

        self.states[provider_id] = PassState.SYNCING
        strategy_class = STRATEGIES[self.settings.sync_direction]
        strategy = strategy_class(
            self.settings, self.local_tree, self.transformer, self.output
        )
        try:
            return strategy.sync(provider, local_entries, remote_entries)
        except AuthenticationError as e:
            raise self._auth_error(provider_id, provider, e) from e

    def _connect(self, provider_id: str, provider: StorageProvider) -> None:
        """Connect with a fixed number of attempts.

        Raises:
            SyncError: If every attempt fails
        """
        last_error: Optional[Exception] = None
        for attempt in range(1, self.connect_attempts + 1):
            try:
                if provider.connect():
                    logger.debug(f"Connected to {provider.get_name()}")
                    return
            except AuthenticationError as e:
                raise self._auth_error(provider_id, provider, e) from e
            except StorageProviderError as e:
                last_error = e
            logger.warning(
                f"Connection to {provider.get_name()} failed "
                f"(attempt {attempt}/{self.connect_attempts})"
            )
            if attempt < self.connect_attempts:
                self._sleep(self.connect_delay)

        raise SyncError(
            f"could not connect to {provider.get_name()} after "
            f"{self.connect_attempts} attempts",
            classification=getattr(last_error, "classification", "network"),
            provider_id=provider_id,
            original=last_error,
        )

    def _scan_local(self) -> list[LocalEntry]:
        return self.local_tree.scan(self.file_filter, max_depth=MAX_RECURSION_DEPTH)

    def _ensure_remote_root(self, provider: StorageProvider, base_path: str) -> None:
        if not base_path:
            return
        try:
            if not FolderCreator(provider).ensure_with_parents(base_path):
                logger.warning(f"Could not create remote base folder {base_path}")
        except AuthenticationError:
            if provider.supports_native_folders:
                raise
            logger.warning(
                f"{provider.get_name()} refused to create {base_path}, "
                "continuing with implicit folders"
            )

    def _list_remote(
        self, provider_id: str, provider: StorageProvider, base_path: str
    ) -> list[RemoteEntry]:
        """List and filter remote entries below the base path."""
        try:
            entries = provider.list_files(base_path, recursive=True)
        except NotFoundError:
            if provider.missing_directory_is_empty or not base_path:
                entries = []
            else:
                logger.info(f"Remote base folder {base_path} missing, creating it")
                FolderCreator(provider).ensure_with_parents(base_path)
                entries = provider.list_files(base_path, recursive=True)
        except AuthenticationError as e:
            raise self._auth_error(provider_id, provider, e) from e

        kept = []
        for entry in entries:
            local_path = map_remote_to_local(entry.path, base_path)
            if local_path and self.file_filter.should_exclude(
                local_path, entry.is_folder
            ):
                continue
            kept.append(entry)
        logger.debug(f"{len(kept)} of {len(entries)} remote entries take part")
        return kept

    @staticmethod
    def _auth_error(
        provider_id: str, provider: StorageProvider, error: Exception
    ) -> SyncError:
        return SyncError(
            f"authentication failed for {provider.get_name()}, "
            "check the username and password",
            classification="auth",
            provider_id=provider_id,
            original=error,
        )

    @staticmethod
    def _as_sync_error(provider_id: str, error: Exception) -> SyncError:
        if isinstance(error, SyncError):
            if error.provider_id is None:
                error.provider_id = provider_id
            return error
        if isinstance(error, StorageProviderError):
            return SyncError(
                f"sync operation failed: {error.user_message()}",
                classification=error.classification,
                provider_id=provider_id,
                original=error,
            )
        return SyncError(
            f"sync operation failed: {error}",
            provider_id=provider_id,
            original=error,
        )

    def _display_summary(self, provider_name: str, stats: SyncStats) -> None:
        """Display sync summary of one provider."""
        self.output.print("")
        if stats.errors:
            self.output.warning(
                f"Sync with {provider_name} finished with {stats.errors} error(s)"
            )
        else:
            self.output.success(f"Sync with {provider_name} complete!")

        total_actions = (
            stats.uploads + stats.downloads + stats.deletes_local + stats.deletes_remote
        )
        if total_actions > 0:
            self.output.info(f"Total actions: {total_actions}")
            if stats.uploads > 0:
                self.output.info(f"  Uploaded: {stats.uploads}")
            if stats.downloads > 0:
                self.output.info(f"  Downloaded: {stats.downloads}")
            if stats.deletes_local > 0:
                self.output.info(f"  Deleted locally: {stats.deletes_local}")
            if stats.deletes_remote > 0:
                self.output.info(f"  Deleted remotely: {stats.deletes_remote}")
        else:
            self.output.info("No changes needed - everything is in sync!")
