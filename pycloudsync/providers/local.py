"""Storage provider backed by a plain directory (e.g. a mounted drive)."""

import logging
import mimetypes
import os
import shutil
from pathlib import Path
from typing import Optional, Union

from ..exceptions import ConflictError, NotFoundError, StorageProviderError
from ..sync.paths import normalize_path
from ..utils import from_epoch_ms
from .base import (
    ConnectionStatus,
    FileMetadata,
    QuotaInfo,
    RemoteEntry,
    StorageProvider,
)

logger = logging.getLogger(__name__)


class LocalFolderProvider(StorageProvider):
    """Keeps the "remote" copy in a directory on the local machine.

    Paths are relative to ``root``. Modification times passed to
    :meth:`upload_file` are applied to the written file.
    """

    provider_type = "local"

    def __init__(
        self,
        root: Union[str, Path],
        provider_id: str = "local",
        name: Optional[str] = None,
    ):
        super().__init__(provider_id, name or f"Local folder ({root})")
        self.root = Path(root)

    def _resolve(self, path: str) -> Path:
        normalized = normalize_path(path)
        target = (self.root / normalized) if normalized else self.root
        resolved = target.resolve()
        root = self.root.resolve()
        if resolved != root and root not in resolved.parents:
            raise StorageProviderError(f"Path escapes provider root: {path}")
        return target

    def _entry(self, target: Path) -> RemoteEntry:
        stat = target.stat()
        return RemoteEntry(
            path=target.relative_to(self.root).as_posix(),
            name=target.name,
            is_folder=target.is_dir(),
            size=0 if target.is_dir() else stat.st_size,
            modified_time=from_epoch_ms(stat.st_mtime_ns // 1_000_000),
        )

    def connect(self) -> bool:
        self.status = ConnectionStatus.CONNECTING
        if self.root.is_dir():
            self.status = ConnectionStatus.CONNECTED
            return True
        logger.error(f"Provider root does not exist: {self.root}")
        self.status = ConnectionStatus.ERROR
        return False

    def test_connection(self) -> bool:
        return self.root.is_dir() and os.access(self.root, os.R_OK | os.W_OK)

    def list_files(self, path: str = "", recursive: bool = True) -> list[RemoteEntry]:
        base = self._resolve(path)
        if not base.is_dir():
            raise NotFoundError(f"Folder not found: {path}")
        iterator = base.rglob("*") if recursive else base.iterdir()
        return [self._entry(item) for item in sorted(iterator)]

    def upload_file(
        self, path: str, content: bytes, mtime: Optional[int] = None
    ) -> None:
        target = self._resolve(path)
        if not target.parent.is_dir():
            raise ConflictError(
                f"Parent folder missing for {path}", parent_missing=True
            )
        target.write_bytes(content)
        if mtime:
            ns = int(mtime) * 1_000_000
            os.utime(target, ns=(ns, ns))

    def download_file_content(self, path: str) -> bytes:
        target = self._resolve(path)
        if not target.is_file():
            raise NotFoundError(f"File not found: {path}")
        return target.read_bytes()

    def delete_file(self, path: str) -> None:
        target = self._resolve(path)
        try:
            target.unlink()
        except FileNotFoundError:
            logger.debug(f"Delete skipped, file already absent: {path}")

    def delete_folder(self, path: str) -> None:
        target = self._resolve(path)
        if target.is_dir():
            shutil.rmtree(target)

    def create_folder(self, path: str) -> None:
        target = self._resolve(path)
        if target.is_dir():
            return
        try:
            target.mkdir()
        except FileNotFoundError as e:
            raise ConflictError(
                f"Parent folder missing for {path}", original=e, parent_missing=True
            ) from e
        except FileExistsError as e:
            raise ConflictError(
                f"A file is in the way of folder {path}", original=e
            ) from e

    def folder_exists(self, path: str) -> bool:
        return self._resolve(path).is_dir()

    def move_file(self, source: str, destination: str) -> None:
        src = self._resolve(source)
        if not src.exists():
            raise NotFoundError(f"Not found: {source}")
        dst = self._resolve(destination)
        dst.parent.mkdir(parents=True, exist_ok=True)
        src.replace(dst)

    def get_file_metadata(self, path: str) -> FileMetadata:
        target = self._resolve(path)
        if not target.exists():
            raise NotFoundError(f"Not found: {path}")
        entry = self._entry(target)
        content_type, _ = mimetypes.guess_type(target.name)
        return FileMetadata(
            path=entry.path,
            name=entry.name,
            is_folder=entry.is_folder,
            size=entry.size,
            modified_time=entry.modified_time,
            content_type=content_type,
        )

    def get_quota(self) -> QuotaInfo:
        usage = shutil.disk_usage(self.root)
        return QuotaInfo(used=usage.used, available=usage.free, total=usage.total)
