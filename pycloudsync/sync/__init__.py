"""Sync engine for pycloudsync - local tree to remote storage."""

from .engine import PassState, SyncEngine
from .filter import RESERVED_DIRS, SyncFileFilter, should_exclude
from .folders import (
    ExistingFolderStrategy,
    FolderCreator,
    FolderStrategy,
    MarkerFileStrategy,
    NativeCreateStrategy,
)
from .manager import SyncManager, make_engine_factory
from .paths import (
    format_path,
    join_remote_path,
    map_remote_to_local,
    normalize_path,
    remote_base_path,
)
from .scanner import LocalEntry, LocalTree
from .scheduler import (
    AutoSyncScheduler,
    DebouncedTrigger,
    LocalChangeHandler,
    watch_local_tree,
)
from .strategies import (
    BidirectionalSync,
    LocalToRemoteSync,
    RemoteToLocalSync,
    SyncAction,
    SyncStats,
    SyncStrategy,
    resolve_conflict,
)
from .transform import ContentTransformer

__all__ = [
    "SyncEngine",
    "PassState",
    "SyncManager",
    "make_engine_factory",
    "AutoSyncScheduler",
    "DebouncedTrigger",
    "LocalChangeHandler",
    "watch_local_tree",
    "SyncFileFilter",
    "RESERVED_DIRS",
    "should_exclude",
    "FolderCreator",
    "FolderStrategy",
    "ExistingFolderStrategy",
    "NativeCreateStrategy",
    "MarkerFileStrategy",
    "LocalEntry",
    "LocalTree",
    "ContentTransformer",
    "SyncStrategy",
    "SyncStats",
    "SyncAction",
    "LocalToRemoteSync",
    "RemoteToLocalSync",
    "BidirectionalSync",
    "resolve_conflict",
    "normalize_path",
    "map_remote_to_local",
    "join_remote_path",
    "remote_base_path",
    "format_path",
]
