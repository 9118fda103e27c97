"""Two-way sync with timestamp based conflict resolution."""

import logging

from ...providers.base import RemoteEntry, StorageProvider
from ...settings import ConflictPolicy
from ...utils import MAX_FOLDERS
from ..scanner import LocalEntry
from .base import SyncAction, SyncStats, SyncStrategy

logger = logging.getLogger(__name__)


def resolve_conflict(
    policy: ConflictPolicy, local_mtime: int, remote_mtime: int
) -> SyncAction:
    """Decide the direction for a file that exists on both sides.

    Equal modification times mean the file is in sync. ``merge`` cannot
    combine contents and keeps the newer file, the same as ``keep_local``
    and ``keep_remote`` together.

    Examples:
        >>> resolve_conflict(ConflictPolicy.MERGE, 2000, 1000)
        <SyncAction.UPLOAD: 'upload'>
        >>> resolve_conflict(ConflictPolicy.KEEP_LOCAL, 1000, 2000)
        <SyncAction.SKIP: 'skip'>
    """
    if local_mtime == remote_mtime:
        return SyncAction.SKIP
    local_newer = local_mtime > remote_mtime

    if policy == ConflictPolicy.OVERWRITE:
        return SyncAction.UPLOAD
    if policy == ConflictPolicy.KEEP_LOCAL:
        return SyncAction.UPLOAD if local_newer else SyncAction.SKIP
    if policy == ConflictPolicy.KEEP_REMOTE:
        return SyncAction.SKIP if local_newer else SyncAction.DOWNLOAD
    return SyncAction.UPLOAD if local_newer else SyncAction.DOWNLOAD


class BidirectionalSync(SyncStrategy):
    """Transfer in both directions, then apply the deletion flags.

    Extras on each side are marked before anything is transferred: when
    ``delete_local_extra_files`` is set, local entries missing remotely are
    not uploaded but deleted; when ``delete_remote_extra_files`` is set,
    remote entries missing locally are not downloaded but deleted.
    """

    def _run(
        self,
        provider: StorageProvider,
        local_map: dict[str, LocalEntry],
        remote_map: dict[str, RemoteEntry],
        stats: SyncStats,
    ) -> None:
        settings = self.settings

        local_extra_files: list[str] = []
        local_extra_folders: list[str] = []
        if settings.delete_local_extra_files:
            local_extra_files, local_extra_folders = self._extras(local_map, remote_map)
        remote_extra_files: list[str] = []
        remote_extra_folders: list[str] = []
        if settings.delete_remote_extra_files:
            remote_extra_files, remote_extra_folders = self._extras(
                remote_map, local_map
            )
        marked_local = set(local_extra_files) | set(local_extra_folders)
        marked_remote = set(remote_extra_files) | set(remote_extra_folders)
        if marked_local or marked_remote:
            logger.info(
                f"Marked {len(marked_local)} local and {len(marked_remote)} "
                "remote extra(s) for deletion"
            )

        if self.base_path and not self.folders.ensure_with_parents(self.base_path):
            logger.warning(f"Remote base path {self.base_path} could not be ensured")

        local_folders = [
            path
            for path, entry in local_map.items()
            if entry.is_folder and path not in remote_map
        ]
        self._create_remote_folders(
            stats,
            [path for path in local_folders if path not in marked_local],
            limit=MAX_FOLDERS,
        )
        remote_folders = [
            path
            for path, entry in remote_map.items()
            if entry.is_folder and path not in local_map
        ]
        self._create_local_folders(
            stats, [path for path in remote_folders if path not in marked_remote]
        )

        processed: set[str] = set()
        for path, entry in sorted(local_map.items()):
            if entry.is_folder or path in marked_local:
                continue
            processed.add(path)
            remote = remote_map.get(path)
            if remote is None:
                self._upload_entry(provider, entry, stats)
                continue
            if remote.is_folder:
                logger.warning(f"Remote folder in the way of file {path}, skipping")
                stats.skips += 1
                continue

            action = resolve_conflict(
                settings.conflict_policy, entry.mtime, remote.mtime
            )
            if action == SyncAction.UPLOAD:
                logger.debug(f"{path}: {settings.conflict_policy.value} -> upload")
                self._upload_entry(provider, entry, stats)
            elif action == SyncAction.DOWNLOAD:
                logger.debug(f"{path}: {settings.conflict_policy.value} -> download")
                self._download_entry(provider, path, remote, stats)
            else:
                stats.skips += 1

        for path, remote in sorted(remote_map.items()):
            if remote.is_folder or path in processed or path in marked_remote:
                continue
            self._download_entry(provider, path, remote, stats)

        if settings.delete_remote_extra_files:
            self._delete_remote_extras(
                provider, remote_extra_files, remote_extra_folders, stats
            )
        if settings.delete_local_extra_files:
            self._delete_local_extras(local_extra_files, local_extra_folders, stats)
