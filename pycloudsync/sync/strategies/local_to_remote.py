"""Upload-only sync: the local tree is the source of truth."""

import logging

from ...providers.base import RemoteEntry, StorageProvider
from ...settings import SyncMode
from ..scanner import LocalEntry
from .base import SyncStats, SyncStrategy

logger = logging.getLogger(__name__)


class LocalToRemoteSync(SyncStrategy):
    """Push new and changed local files to the provider.

    In full mode with ``delete_remote_extra_files`` set, remote entries
    that do not exist locally are deleted afterwards.
    """

    def _run(
        self,
        provider: StorageProvider,
        local_map: dict[str, LocalEntry],
        remote_map: dict[str, RemoteEntry],
        stats: SyncStats,
    ) -> None:
        if self.base_path and not self.folders.ensure_with_parents(self.base_path):
            logger.warning(f"Remote base path {self.base_path} could not be ensured")

        missing_folders = [
            path
            for path, entry in local_map.items()
            if entry.is_folder and path not in remote_map
        ]
        self._create_remote_folders(stats, missing_folders)

        for path, entry in sorted(local_map.items()):
            if entry.is_folder:
                continue
            remote = remote_map.get(path)
            if remote is not None and remote.is_folder:
                logger.warning(f"Remote folder in the way of file {path}, skipping")
                stats.skips += 1
            elif remote is None or entry.mtime > remote.mtime:
                self._upload_entry(provider, entry, stats)
            else:
                stats.skips += 1

        if (
            self.settings.sync_mode == SyncMode.FULL
            and self.settings.delete_remote_extra_files
        ):
            files, folders = self._extras(remote_map, local_map)
            logger.info(
                f"Deleting {len(files)} remote file(s) and {len(folders)} "
                "folder(s) missing locally"
            )
            self._delete_remote_extras(provider, files, folders, stats)
