"""Translation between remote path space and local relative paths.

All functions are pure string operations. Remote paths may carry a base
prefix (the folder on the backend that holds all synced content); local
paths are always relative to the local sync root and use forward slashes.
"""

import re
from typing import Any

_SEPARATORS = re.compile(r"/+")


def normalize_path(path: str) -> str:
    """Normalize separators and strip leading and trailing slashes.

    Examples:
        >>> normalize_path("/notes//daily/")
        'notes/daily'
        >>> normalize_path("notes\\\\a.md")
        'notes/a.md'
    """
    if not path:
        return ""
    return _SEPARATORS.sub("/", path.replace("\\", "/")).strip("/")


def remote_base_path(settings: Any, provider_id: str) -> str:
    """Return the configured base path of a backend, or an empty string."""
    block = settings.provider_settings(provider_id)
    if block is None:
        return ""
    return normalize_path(getattr(block, "sync_path", "") or "")


def map_remote_to_local(remote_path: str, base_path: str) -> str:
    """Map a remote path to a path relative to the local sync root.

    Returns an empty string exactly when ``remote_path`` is the base path
    itself, which marks the sync root rather than an entry. Paths outside
    the base are returned normalized but otherwise unchanged.

    Examples:
        >>> map_remote_to_local("/vault/notes/a.md", "vault")
        'notes/a.md'
        >>> map_remote_to_local("vault/", "/vault")
        ''
        >>> map_remote_to_local("notes/a.md", "")
        'notes/a.md'
    """
    remote = normalize_path(remote_path)
    base = normalize_path(base_path)
    if not base:
        return remote
    if remote == base:
        return ""
    if remote.startswith(base + "/"):
        return remote[len(base) + 1 :]
    return remote


def join_remote_path(base_path: str, local_path: str) -> str:
    """Compose a remote path from the base path and a local relative path.

    Examples:
        >>> join_remote_path("vault/", "/notes/a.md")
        'vault/notes/a.md'
        >>> join_remote_path("", "a.md")
        'a.md'
    """
    base = normalize_path(base_path)
    rel = normalize_path(local_path)
    if not base:
        return rel
    if not rel:
        return base
    return f"{base}/{rel}"


def is_under_base(path: str, base_path: str) -> bool:
    """Check if a remote path is the base path or lies below it."""
    base = normalize_path(base_path)
    if not base:
        return True
    normalized = normalize_path(path)
    return normalized == base or normalized.startswith(base + "/")


def format_path(path: str) -> str:
    """Format a path with a leading slash and no trailing slash."""
    return "/" + normalize_path(path)


def parent_path(path: str) -> str:
    """Return the parent of a normalized path ('' for top level entries)."""
    normalized = normalize_path(path)
    if "/" not in normalized:
        return ""
    return normalized.rsplit("/", 1)[0]


def path_depth(path: str) -> int:
    """Number of segments in a path ('' has depth 0)."""
    normalized = normalize_path(path)
    if not normalized:
        return 0
    return normalized.count("/") + 1


def leaf_name(path: str) -> str:
    """Return the last segment of a path."""
    return normalize_path(path).rsplit("/", 1)[-1]
