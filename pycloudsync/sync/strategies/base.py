"""Shared machinery of the sync strategies."""

import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from enum import Enum
from functools import partial
from typing import Any, Callable, Optional

from ...exceptions import AuthenticationError, StorageProviderError
from ...output import OutputFormatter
from ...providers.base import RemoteEntry, StorageProvider
from ..folders import FolderCreator, FolderStrategy
from ..paths import (
    is_under_base,
    join_remote_path,
    map_remote_to_local,
    normalize_path,
    parent_path,
    path_depth,
    remote_base_path,
)
from ..scanner import LocalEntry, LocalTree
from ..transform import ContentTransformer

logger = logging.getLogger(__name__)


class SyncAction(str, Enum):
    """What to do with a file that exists on at least one side."""

    UPLOAD = "upload"
    """Upload local file to remote"""

    DOWNLOAD = "download"
    """Download remote file to local"""

    SKIP = "skip"
    """Leave both sides as they are"""


@dataclass
class SyncStats:
    """Counters of one provider pass."""

    uploads: int = 0
    downloads: int = 0
    deletes_local: int = 0
    deletes_remote: int = 0
    skips: int = 0
    errors: int = 0
    folders_created: int = 0
    failed_paths: list[str] = field(default_factory=list)

    @property
    def transfers(self) -> int:
        return self.uploads + self.downloads

    def to_dict(self) -> dict:
        return asdict(self)


def deepest_first(paths) -> list[str]:
    return sorted(paths, key=lambda p: (-path_depth(p), p))


def shallowest_first(paths) -> list[str]:
    return sorted(paths, key=lambda p: (path_depth(p), p))


class SyncStrategy(ABC):
    """Base class of the three sync directions.

    A strategy works on one provider at a time. Local paths are relative to
    the local sync root; remote paths are built by joining the provider's
    base path with the local relative path.
    """

    def __init__(
        self,
        settings: Any,
        local_tree: LocalTree,
        transformer: Optional[ContentTransformer] = None,
        output: Optional[OutputFormatter] = None,
        folder_strategies: Optional[list[FolderStrategy]] = None,
    ):
        """Initialize sync strategy.

        Args:
            settings: Sync settings
            local_tree: Local file tree
            transformer: Content transformer for uploads and downloads
            output: Output formatter for error messages
            folder_strategies: Remote folder creation chain (default chain
                when omitted)
        """
        self.settings = settings
        self.local_tree = local_tree
        self.transformer = transformer or ContentTransformer(settings)
        self.output = output or OutputFormatter(quiet=True)
        self.folder_strategies = folder_strategies
        self.base_path = ""
        self.folders: Optional[FolderCreator] = None

    def sync(
        self,
        provider: StorageProvider,
        local_entries: list[LocalEntry],
        remote_entries: list[RemoteEntry],
    ) -> SyncStats:
        """Run the strategy against one provider.

        Raises:
            AuthenticationError: If the backend rejects the credentials
        """
        self.base_path = remote_base_path(self.settings, provider.provider_id)
        self.folders = FolderCreator(provider, self.folder_strategies)
        stats = SyncStats()
        local_map = self._local_map(local_entries)
        remote_map = self._remote_map(remote_entries)
        for path, entry in remote_map.items():
            if entry.is_folder:
                self.folders.mark_existing(self.remote_path(path))
        logger.debug(
            f"{type(self).__name__}: {len(local_map)} local, "
            f"{len(remote_map)} remote entries, base '{self.base_path}'"
        )
        self._run(provider, local_map, remote_map, stats)
        stats.folders_created = len(self.folders.created)
        return stats

    @abstractmethod
    def _run(
        self,
        provider: StorageProvider,
        local_map: dict[str, LocalEntry],
        remote_map: dict[str, RemoteEntry],
        stats: SyncStats,
    ) -> None:
        """Strategy specific part of a pass."""

    # -------------------------------------------------------------------------
    # Entry maps
    # -------------------------------------------------------------------------

    def _local_map(self, entries: list[LocalEntry]) -> dict[str, LocalEntry]:
        result = {}
        for entry in entries:
            path = normalize_path(entry.path)
            if path:
                result[path] = entry
        return result

    def _remote_map(self, entries: list[RemoteEntry]) -> dict[str, RemoteEntry]:
        """Key remote entries by local relative path, dropping the root."""
        result = {}
        for entry in entries:
            if not is_under_base(entry.path, self.base_path):
                logger.debug(f"Skipping remote entry outside base: {entry.path}")
                continue
            local_path = map_remote_to_local(entry.path, self.base_path)
            if local_path:
                result[local_path] = entry
        return result

    def remote_path(self, local_path: str) -> str:
        return join_remote_path(self.base_path, local_path)

    # -------------------------------------------------------------------------
    # Per-entry operations
    # -------------------------------------------------------------------------

    def _guarded(
        self,
        stats: SyncStats,
        path: str,
        operation: str,
        func: Callable[[], None],
    ) -> bool:
        """Run one entry operation, counting failures instead of raising.

        Authentication errors end the pass and are re-raised.
        """
        try:
            func()
            return True
        except AuthenticationError:
            raise
        except Exception as e:
            stats.errors += 1
            stats.failed_paths.append(path)
            if isinstance(e, StorageProviderError):
                message = e.user_message()
            else:
                message = str(e)
            logger.error(f"Failed to {operation} {path}: {message}")
            self.output.error(f"Failed to {operation} {path}: {message}")
            return False

    def _ensure_remote_parent(self, remote_path: str) -> None:
        parent = parent_path(remote_path)
        if parent and not self.folders.ensure_with_parents(parent):
            raise StorageProviderError(f"Could not create remote folder {parent}")

    def _upload_entry(
        self, provider: StorageProvider, entry: LocalEntry, stats: SyncStats
    ) -> bool:
        """Upload one local file and align its local mtime with the remote."""

        def upload() -> None:
            remote_path = self.remote_path(entry.path)
            self._ensure_remote_parent(remote_path)
            content = self.local_tree.read_bytes(entry.path)
            self.transformer.upload(
                provider,
                content,
                remote_path,
                is_binary=self.transformer.is_binary_path(entry.path),
                mtime=entry.mtime,
            )
            logger.debug(f"Uploaded {entry.path} -> {remote_path}")
            self._align_local_mtime(provider, entry.path, remote_path)

        if self._guarded(stats, entry.path, "upload", upload):
            stats.uploads += 1
            return True
        return False

    def _align_local_mtime(
        self, provider: StorageProvider, local_path: str, remote_path: str
    ) -> None:
        try:
            metadata = provider.get_file_metadata(remote_path)
        except AuthenticationError:
            raise
        except StorageProviderError as e:
            logger.debug(f"No metadata for {remote_path} after upload: {e}")
            return
        if metadata.mtime:
            self.local_tree.set_mtime(local_path, metadata.mtime)

    def _download_entry(
        self,
        provider: StorageProvider,
        local_path: str,
        entry: RemoteEntry,
        stats: SyncStats,
    ) -> bool:
        """Download one remote file and give it the remote mtime."""

        def download() -> None:
            remote_path = self.remote_path(local_path)
            content = self.transformer.download(
                provider,
                remote_path,
                is_binary=self.transformer.is_binary_path(local_path),
            )
            if self.local_tree.is_folder(local_path):
                raise IsADirectoryError(f"A local folder is in the way: {local_path}")
            self.local_tree.write_bytes(local_path, content)
            if entry.mtime:
                self.local_tree.set_mtime(local_path, entry.mtime)
            logger.debug(f"Downloaded {remote_path} -> {local_path}")

        if self._guarded(stats, local_path, "download", download):
            stats.downloads += 1
            return True
        return False

    # -------------------------------------------------------------------------
    # Folders
    # -------------------------------------------------------------------------

    def _create_remote_folders(
        self, stats: SyncStats, folders: list[str], limit: Optional[int] = None
    ) -> None:
        """Create local folders remotely, shallowest first."""
        ordered = shallowest_first(folders)
        if limit is not None and len(ordered) > limit:
            logger.warning(
                f"{len(ordered)} folders to create, only the first {limit} are handled"
            )
            ordered = ordered[:limit]
        remote_paths = [self.remote_path(path) for path in ordered]
        failed = self.folders.ensure_all(remote_paths)
        for remote_path in failed:
            stats.errors += 1
            stats.failed_paths.append(remote_path)
            self.output.error(f"Failed to create remote folder {remote_path}")

    def _create_local_folders(self, stats: SyncStats, folders: list[str]) -> None:
        """Create remote folders locally, shallowest first (never the root)."""
        for path in shallowest_first(folders):
            if not path or self.local_tree.is_folder(path):
                continue
            self._guarded(
                stats, path, "create local folder", partial(self.local_tree.mkdir, path)
            )

    # -------------------------------------------------------------------------
    # Extras and deletions
    # -------------------------------------------------------------------------

    @staticmethod
    def _extras(source: dict, other: dict) -> tuple[list[str], list[str]]:
        """Return (files, folders) of ``source`` that ``other`` lacks."""
        files, folders = [], []
        for path, entry in source.items():
            if path in other:
                continue
            (folders if entry.is_folder else files).append(path)
        return files, folders

    def _delete_remote_extras(
        self,
        provider: StorageProvider,
        files: list[str],
        folders: list[str],
        stats: SyncStats,
    ) -> None:
        """Delete remote files, then folders deepest first.

        The base path and the backend root are never deleted.
        """
        for path in sorted(files):
            remote_path = self.remote_path(path)
            if self._guarded(
                stats, path, "delete remote", partial(provider.delete_file, remote_path)
            ):
                stats.deletes_remote += 1
                logger.debug(f"Deleted remote file {remote_path}")

        for path in deepest_first(folders):
            remote_path = self.remote_path(path)
            if not remote_path or remote_path == self.base_path:
                continue
            if self._guarded(
                stats,
                path,
                "delete remote folder",
                partial(provider.delete_folder, remote_path),
            ):
                stats.deletes_remote += 1
                logger.debug(f"Deleted remote folder {remote_path}")

    def _delete_local_extras(
        self, files: list[str], folders: list[str], stats: SyncStats
    ) -> None:
        """Delete local files, then empty local folders deepest first."""
        for path in sorted(files):
            if self._guarded(
                stats, path, "delete local", partial(self.local_tree.remove_file, path)
            ):
                stats.deletes_local += 1
                logger.debug(f"Deleted local file {path}")

        for path in deepest_first(folders):
            if not path or not self.local_tree.is_empty_folder(path):
                continue
            if self._guarded(
                stats,
                path,
                "delete local folder",
                partial(self.local_tree.remove_folder, path),
            ):
                stats.deletes_local += 1
                logger.debug(f"Deleted local folder {path}")
