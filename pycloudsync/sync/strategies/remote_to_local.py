"""Download-only sync: the provider is the source of truth."""

import logging

from ...providers.base import RemoteEntry, StorageProvider
from ...settings import SyncMode
from ..scanner import LocalEntry
from .base import SyncStats, SyncStrategy

logger = logging.getLogger(__name__)


class RemoteToLocalSync(SyncStrategy):
    """Pull new and changed remote files into the local tree.

    With ``delete_local_extra_files`` set, local files missing remotely are
    deleted, followed by local folders that are left empty.
    """

    def _changed_remote(
        self,
        local_map: dict[str, LocalEntry],
        remote_map: dict[str, RemoteEntry],
    ) -> dict[str, RemoteEntry]:
        """Remote folders plus the files that are new or newer than local."""
        changed = {}
        for path, entry in remote_map.items():
            local = local_map.get(path)
            if entry.is_folder or local is None or entry.mtime > local.mtime:
                changed[path] = entry
        return changed

    def _run(
        self,
        provider: StorageProvider,
        local_map: dict[str, LocalEntry],
        remote_map: dict[str, RemoteEntry],
        stats: SyncStats,
    ) -> None:
        candidates = remote_map
        if self.settings.sync_mode == SyncMode.INCREMENTAL:
            candidates = self._changed_remote(local_map, remote_map)
            stats.skips += len(remote_map) - len(candidates)
            logger.debug(
                f"Incremental pass: {len(candidates)} of {len(remote_map)} "
                "remote entries need attention"
            )

        self._create_local_folders(
            stats, [path for path, entry in candidates.items() if entry.is_folder]
        )

        for path, entry in sorted(candidates.items()):
            if entry.is_folder:
                continue
            local = local_map.get(path)
            if local is None or entry.mtime > local.mtime:
                self._download_entry(provider, path, entry, stats)
            else:
                stats.skips += 1

        if self.settings.delete_local_extra_files:
            # Compared against the full listing, not the incremental subset
            files, folders = self._extras(local_map, remote_map)
            logger.info(
                f"Deleting {len(files)} local file(s) and {len(folders)} "
                "folder(s) missing remotely"
            )
            self._delete_local_extras(files, folders, stats)
