"""Local file tree access for sync operations."""

import logging
import os
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from ..utils import MAX_RECURSION_DEPTH
from .filter import SyncFileFilter
from .paths import normalize_path

logger = logging.getLogger(__name__)


@dataclass
class LocalEntry:
    """A local file or folder taking part in a pass."""

    path: str
    """Path relative to the sync root (forward slashes)"""

    mtime: int
    """Last modification time in epoch milliseconds"""

    size: int
    """File size in bytes (0 for folders)"""

    is_folder: bool = False
    """Whether the entry is a folder"""


class LocalTree:
    """Read, write and list files below a local sync root.

    All paths taken and returned are relative to ``root`` and use forward
    slashes. Paths that would escape the root are rejected.

    Examples:
        >>> tree = LocalTree(Path("/sync/folder"))
        >>> entries = tree.scan()
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def resolve(self, path: str) -> Path:
        """Return the absolute path of a relative path.

        Raises:
            ValueError: If the path points outside the root
        """
        normalized = normalize_path(path)
        target = self.root / normalized if normalized else self.root
        root = self.root.resolve()
        resolved = target.resolve()
        if resolved != root and root not in resolved.parents:
            raise ValueError(f"Path escapes sync root: {path}")
        return target

    def scan(
        self,
        file_filter: Optional[SyncFileFilter] = None,
        max_depth: int = MAX_RECURSION_DEPTH,
    ) -> list[LocalEntry]:
        """Recursively list files and folders below the root.

        Excluded folders are not descended into.

        Args:
            file_filter: Filter deciding which paths take part
            max_depth: Maximum folder depth to walk

        Returns:
            Entries sorted by path
        """
        entries: list[LocalEntry] = []
        if not self.root.is_dir():
            logger.warning(f"Sync root does not exist: {self.root}")
            return entries
        self._scan_dir(self.root, "", 0, file_filter, max_depth, entries)
        entries.sort(key=lambda e: e.path)
        logger.debug(f"Scanned {len(entries)} local entries under {self.root}")
        return entries

    def _scan_dir(
        self,
        directory: Path,
        prefix: str,
        depth: int,
        file_filter: Optional[SyncFileFilter],
        max_depth: int,
        entries: list[LocalEntry],
    ) -> None:
        if depth >= max_depth:
            logger.warning(f"Maximum depth {max_depth} reached at {directory}")
            return
        try:
            children = list(os.scandir(directory))
        except PermissionError as e:
            logger.warning(f"Permission denied: {e}")
            return

        for child in children:
            relative_path = f"{prefix}/{child.name}" if prefix else child.name
            is_folder = child.is_dir(follow_symlinks=False)
            if not is_folder and not child.is_file(follow_symlinks=False):
                continue
            if file_filter is not None and file_filter.should_exclude(
                relative_path, is_folder
            ):
                continue

            if is_folder:
                try:
                    mtime = child.stat().st_mtime_ns // 1_000_000
                except OSError:
                    mtime = int(time.time() * 1000)
                entries.append(LocalEntry(relative_path, mtime, 0, True))
                self._scan_dir(
                    Path(child.path),
                    relative_path,
                    depth + 1,
                    file_filter,
                    max_depth,
                    entries,
                )
            else:
                try:
                    stat = child.stat()
                except OSError as e:
                    logger.warning(f"Cannot stat {relative_path}: {e}")
                    continue
                mtime = stat.st_mtime_ns // 1_000_000
                entries.append(LocalEntry(relative_path, mtime, stat.st_size))

    def exists(self, path: str) -> bool:
        return self.resolve(path).exists()

    def is_folder(self, path: str) -> bool:
        return self.resolve(path).is_dir()

    def read_bytes(self, path: str) -> bytes:
        return self.resolve(path).read_bytes()

    def write_bytes(self, path: str, content: bytes) -> None:
        """Write a file, creating missing parent folders."""
        target = self.resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)

    def mkdir(self, path: str) -> None:
        self.resolve(path).mkdir(parents=True, exist_ok=True)

    def remove_file(self, path: str) -> None:
        """Remove a file; a missing file is ignored."""
        try:
            self.resolve(path).unlink()
        except FileNotFoundError:
            logger.debug(f"Local file already absent: {path}")

    def remove_folder(self, path: str, recursive: bool = False) -> None:
        """Remove a folder.

        Raises:
            OSError: If the folder is not empty and ``recursive`` is False
        """
        target = self.resolve(path)
        if target == self.root:
            raise ValueError("Refusing to remove the sync root")
        if recursive:
            shutil.rmtree(target)
        else:
            target.rmdir()

    def is_empty_folder(self, path: str) -> bool:
        target = self.resolve(path)
        return target.is_dir() and not any(target.iterdir())

    def rename(self, source: str, destination: str) -> None:
        dst = self.resolve(destination)
        dst.parent.mkdir(parents=True, exist_ok=True)
        self.resolve(source).replace(dst)

    def get_mtime(self, path: str) -> int:
        return self.resolve(path).stat().st_mtime_ns // 1_000_000

    def set_mtime(self, path: str, mtime: int) -> None:
        """Set the modification time (epoch milliseconds) of a file."""
        ns = int(mtime) * 1_000_000
        os.utime(self.resolve(path), ns=(ns, ns))
