"""Storage provider capability contract.

The sync core only talks to backends through :class:`StorageProvider`.
Backend quirks stay inside the implementations. The core only reads the
class attributes declared here, e.g. whether a marker file may stand in
for a folder the backend refuses to create.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional

from ..exceptions import UnsupportedOperationError
from ..utils import to_epoch_ms

logger = logging.getLogger(__name__)

FOLDER_MARKER_NAME = ".folder"


class ConnectionStatus(str, Enum):
    """Connection state of a provider."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


@dataclass
class RemoteEntry:
    """A file or folder as listed by a provider."""

    path: str
    """Backend path, may include the base prefix"""

    name: str
    """Last path segment"""

    is_folder: bool
    """Whether the entry is a folder"""

    size: int = 0
    """Size in bytes (0 for folders)"""

    modified_time: Optional[datetime] = None
    """Last modification time reported by the backend"""

    etag: Optional[str] = None
    """Entity tag, if the backend provides one"""

    @property
    def mtime(self) -> int:
        """Modification time in epoch milliseconds (0 when unknown)."""
        return to_epoch_ms(self.modified_time)


@dataclass
class FileMetadata(RemoteEntry):
    """Detailed metadata of a single remote entry."""

    created_time: Optional[datetime] = None
    content_type: Optional[str] = None
    hash: Optional[str] = None


@dataclass
class QuotaInfo:
    """Storage usage of a backend; -1 means unknown."""

    used: int = -1
    available: int = -1
    total: int = -1


class StorageProvider(ABC):
    """Uniform capability interface of a remote storage backend.

    Contracts the sync core relies on:

    - ``list_files`` returns entries below a path, raising
      :class:`~pycloudsync.exceptions.NotFoundError` for a missing directory
      unless :attr:`missing_directory_is_empty` is set, in which case it
      returns an empty list
    - ``delete_file`` and ``delete_folder`` succeed when the target is absent
    - ``create_folder`` succeeds when the folder already exists and raises
      :class:`~pycloudsync.exceptions.ConflictError` with
      ``parent_missing=True`` when its parent does not exist
    - authentication failures raise
      :class:`~pycloudsync.exceptions.AuthenticationError`
    """

    provider_type = "generic"

    supports_native_folders = True
    """False when folders can only be created through a marker file"""

    missing_directory_is_empty = False
    """True when listing a missing directory should give an empty list"""

    folder_marker_fallback = False
    """True when a marker file may stand in for a folder the backend refused"""

    folder_marker_name = FOLDER_MARKER_NAME

    def __init__(self, provider_id: str, name: Optional[str] = None):
        self.provider_id = provider_id
        self.name = name or provider_id
        self.status = ConnectionStatus.DISCONNECTED

    def get_name(self) -> str:
        return self.name

    def get_type(self) -> str:
        return self.provider_type

    def get_status(self) -> ConnectionStatus:
        return self.status

    @abstractmethod
    def connect(self) -> bool:
        """Open the connection; return True on success."""

    def disconnect(self) -> None:
        """Close the connection."""
        self.status = ConnectionStatus.DISCONNECTED

    @abstractmethod
    def test_connection(self) -> bool:
        """Check that the backend is reachable with the configured credentials."""

    @abstractmethod
    def list_files(self, path: str = "", recursive: bool = True) -> list[RemoteEntry]:
        """List entries below ``path`` (not including ``path`` itself)."""

    @abstractmethod
    def upload_file(
        self, path: str, content: bytes, mtime: Optional[int] = None
    ) -> None:
        """Write content to a remote file.

        Args:
            path: Remote file path
            content: File content
            mtime: Source modification time in epoch milliseconds, kept by
                backends that support it
        """

    def supports_content_download(self) -> bool:
        """Whether :meth:`download_file_content` is available."""
        return (
            type(self).download_file_content
            is not StorageProvider.download_file_content
        )

    def download_file_content(self, path: str) -> bytes:
        """Return the content of a remote file."""
        raise UnsupportedOperationError(
            f"{self.get_name()} cannot download file content"
        )

    def download_file(self, remote_path: str, local_path: Path) -> Path:
        """Download a remote file to a local path."""
        local_path.parent.mkdir(parents=True, exist_ok=True)
        local_path.write_bytes(self.download_file_content(remote_path))
        return local_path

    @abstractmethod
    def delete_file(self, path: str) -> None:
        """Delete a remote file; an absent file is not an error."""

    @abstractmethod
    def delete_folder(self, path: str) -> None:
        """Delete a remote folder and its contents; absent is not an error."""

    @abstractmethod
    def create_folder(self, path: str) -> None:
        """Create a remote folder; an existing folder is not an error."""

    @abstractmethod
    def folder_exists(self, path: str) -> bool:
        """Check whether a remote folder exists."""

    @abstractmethod
    def move_file(self, source: str, destination: str) -> None:
        """Move or rename a remote entry."""

    @abstractmethod
    def get_file_metadata(self, path: str) -> FileMetadata:
        """Return metadata of a remote entry.

        Raises:
            NotFoundError: If the entry does not exist
        """

    def get_quota(self) -> QuotaInfo:
        """Return storage usage, unknown values as -1."""
        return QuotaInfo()
