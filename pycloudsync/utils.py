"""Utility functions and constants for pycloudsync."""

import base64
import binascii
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional

# =============================================================================
# Constants for sync passes
# =============================================================================

# Paths longer than this are never synced
MAX_PATH_LENGTH: int = 200

# Maximum folder depth walked when listing the local tree
MAX_RECURSION_DEPTH: int = 50

# Maximum number of local folders created remotely in one bidirectional pass
MAX_FOLDERS: int = 1000

# Connection attempts per provider before the pass fails
DEFAULT_CONNECT_ATTEMPTS: int = 3
DEFAULT_CONNECT_DELAY: float = 1.0  # seconds

# Retry configuration for transient backend errors
DEFAULT_MAX_RETRIES: int = 3
DEFAULT_RETRY_DELAY: float = 1.0  # seconds

# Watchdog ceiling for one sync pass
MAX_SYNC_DURATION: float = 5 * 60.0  # seconds

# File change events inside this window trigger a single pass
DEFAULT_DEBOUNCE_DELAY: float = 5.0  # seconds

# Shortest allowed auto sync interval
MIN_SYNC_INTERVAL_MINUTES: int = 3

# Text content shorter than this is never treated as already encrypted
MIN_ENCRYPTED_TEXT_LENGTH: int = 100


# =============================================================================
# File type detection
# =============================================================================

BINARY_EXTENSIONS = frozenset(
    {
        # images
        "jpg",
        "jpeg",
        "png",
        "gif",
        "bmp",
        "ico",
        "webp",
        "tiff",
        "tif",
        # documents
        "pdf",
        "doc",
        "docx",
        "ppt",
        "pptx",
        "xls",
        "xlsx",
        # archives
        "zip",
        "rar",
        "7z",
        "tar",
        "gz",
        "bz2",
        # audio
        "mp3",
        "wav",
        "ogg",
        "flac",
        "aac",
        "wma",
        # video
        "mp4",
        "avi",
        "mkv",
        "mov",
        "wmv",
        "flv",
        # executables and raw data
        "exe",
        "dll",
        "so",
        "bin",
        "dat",
    }
)


def get_extension(path: str) -> str:
    """Return the lower-case extension of the last path segment.

    Examples:
        >>> get_extension("notes/photo.JPG")
        'jpg'
        >>> get_extension("README")
        ''
    """
    name = path.replace("\\", "/").rsplit("/", 1)[-1]
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[-1].lower()


def is_binary_extension(path: str) -> bool:
    """Check whether a file should be handled as binary content."""
    return get_extension(path) in BINARY_EXTENSIONS


_BASE64_PATTERN = re.compile(
    r"^(?:[A-Za-z0-9+/]{4})*(?:[A-Za-z0-9+/]{3}=|[A-Za-z0-9+/]{2}==)?$"
)


def looks_like_base64(text: str) -> bool:
    """Check whether a string is strictly padded base64."""
    return bool(text) and bool(_BASE64_PATTERN.match(text.strip()))


def decode_base64(text: str) -> bytes:
    """Decode strict base64 text.

    Raises:
        ValueError: If the text is not valid base64
    """
    try:
        return base64.b64decode(text.strip(), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 content: {e}") from e


# =============================================================================
# Timestamp utilities
# =============================================================================


def parse_http_date(value: Optional[str]) -> Optional[datetime]:
    """Parse an RFC 1123 date as sent in WebDAV ``getlastmodified``.

    Args:
        value: Date string (e.g., "Wed, 15 Jan 2025 10:30:00 GMT")

    Returns:
        Timezone-aware datetime or None if parsing fails
    """
    if not value:
        return None
    try:
        dt = parsedate_to_datetime(value.strip())
    except (TypeError, ValueError, IndexError):
        return parse_iso_timestamp(value)
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def parse_iso_timestamp(timestamp_str: Optional[str]) -> Optional[datetime]:
    """Parse an ISO format timestamp into a timezone-aware datetime.

    Naive timestamps are assumed to be UTC.
    """
    if not timestamp_str:
        return None
    try:
        if timestamp_str.endswith("Z"):
            timestamp_str = timestamp_str[:-1] + "+00:00"
        dt = datetime.fromisoformat(timestamp_str)
    except (ValueError, AttributeError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def to_epoch_ms(dt: Optional[datetime]) -> int:
    """Convert a datetime to integer epoch milliseconds (0 for None)."""
    if dt is None:
        return 0
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return round(dt.timestamp() * 1000)


def from_epoch_ms(value: int) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime."""
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


# =============================================================================
# Size formatting utilities
# =============================================================================


def format_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MB", "256 B")
    """
    if size_bytes < 0:
        return "unknown"
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / 1024 / 1024:.1f} MB"
    else:
        return f"{size_bytes / 1024 / 1024 / 1024:.1f} GB"
