"""Decides which paths take part in a sync pass."""

import logging
import re
from dataclasses import dataclass
from typing import Any, Optional, Pattern

from ..utils import MAX_PATH_LENGTH
from .paths import normalize_path

logger = logging.getLogger(__name__)

# Host configuration, trash and system folders that never sync
RESERVED_DIRS = (
    ".obsidian",
    ".trash",
    "$RECYCLE.BIN",
    "System Volume Information",
    "我的坚果云",
)


@dataclass
class IgnorePattern:
    """A compiled user ignore pattern."""

    source: str
    """Pattern text as configured"""

    kind: str
    """One of 'regex', 'glob' or 'literal'"""

    regex: Optional[Pattern[str]]
    """Compiled expression, None when compilation failed"""

    def matches(self, name: str, path: str) -> bool:
        """Match against the bare name or the full relative path.

        A pattern that failed to compile matches everything.
        """
        if self.regex is None:
            return True
        if self.kind == "glob":
            return bool(self.regex.match(name) or self.regex.match(path))
        return bool(self.regex.search(name) or self.regex.search(path))


def compile_pattern(pattern: str) -> IgnorePattern:
    """Classify and compile an ignore pattern.

    ``/.../`` is a regular expression, a pattern containing ``*`` or ``?``
    is a glob (``*`` matches any run of characters, ``?`` one character,
    the whole name or path must match) and anything else is a literal
    searched for as a substring of the name or the path.

    Never raises; a malformed pattern is logged and matches everything.
    """
    text = pattern.strip()
    if len(text) >= 2 and text.startswith("/") and text.endswith("/"):
        kind = "regex"
        expression = text[1:-1]
    elif "*" in text or "?" in text:
        kind = "glob"
        expression = (
            "^"
            + "".join(
                ".*" if ch == "*" else "." if ch == "?" else re.escape(ch)
                for ch in text
            )
            + "$"
        )
    else:
        return IgnorePattern(
            source=text, kind="literal", regex=re.compile(re.escape(text))
        )

    try:
        compiled = re.compile(expression)
    except re.error as e:
        logger.warning(
            f"Invalid ignore pattern '{pattern}' ({e}), it will match every path"
        )
        return IgnorePattern(source=text, kind=kind, regex=None)
    return IgnorePattern(source=text, kind=kind, regex=compiled)


class SyncFileFilter:
    """Applies built-in exclusions and the user's ignore lists.

    Examples:
        >>> from pycloudsync.settings import SyncSettings
        >>> f = SyncFileFilter(SyncSettings(ignore_folders=["node_*"]))
        >>> f.should_exclude("node_modules/x.md")
        True
        >>> f.should_exclude("notes/node.md")
        False
    """

    def __init__(self, settings: Any):
        """Initialize the filter.

        Args:
            settings: Sync settings providing ignore_folders, ignore_files
                and ignore_extensions
        """
        self.folder_patterns = [
            compile_pattern(p) for p in settings.ignore_folders if p
        ]
        self.file_patterns = [compile_pattern(p) for p in settings.ignore_files if p]
        self.extensions = {
            e.strip().lstrip(".").lower() for e in settings.ignore_extensions if e
        }

    def should_exclude(self, path: str, is_folder: bool = False) -> bool:
        """Check whether a relative path is excluded from sync.

        Checks run in a fixed order and the first match wins: path length,
        hidden segments, reserved directories, ignore folders and files,
        ignore extensions.

        Args:
            path: Path relative to the sync root
            is_folder: Whether the path is a folder

        Returns:
            True if the path must not be synced
        """
        normalized = normalize_path(path)
        if not normalized:
            return False

        if len(normalized) > MAX_PATH_LENGTH:
            logger.debug(f"Excluding over-long path: {normalized[:60]}...")
            return True

        segments = normalized.split("/")
        if any(segment.startswith(".") for segment in segments):
            return True

        if any(segment in RESERVED_DIRS for segment in segments):
            return True

        if self._matches_folder(segments, is_folder):
            return True

        name = segments[-1]
        if not is_folder and any(
            p.matches(name, normalized) for p in self.file_patterns
        ):
            return True

        if not is_folder and self.extensions:
            extension = name.rsplit(".", 1)[-1].lower() if "." in name else ""
            if extension and extension in self.extensions:
                return True

        return False

    def _matches_folder(self, segments: list[str], is_folder: bool) -> bool:
        # Ancestor folders (and a folder entry itself) are tested by name and
        # by path prefix, so "node_*" hides everything under node_modules.
        depth = len(segments) if is_folder else len(segments) - 1
        for index in range(depth):
            folder_name = segments[index]
            folder_path = "/".join(segments[: index + 1])
            for pattern in self.folder_patterns:
                if pattern.matches(folder_name, folder_path):
                    return True
        return False


def should_exclude(entry: Any, settings: Any) -> bool:
    """Convenience wrapper taking an entry with ``path`` and ``is_folder``."""
    path = entry if isinstance(entry, str) else entry.path
    is_folder = not isinstance(entry, str) and getattr(entry, "is_folder", False)
    return SyncFileFilter(settings).should_exclude(path, is_folder)
