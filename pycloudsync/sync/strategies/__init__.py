"""Sync strategies, one per sync direction."""

from ...settings import SyncDirection
from .base import SyncAction, SyncStats, SyncStrategy
from .bidirectional import BidirectionalSync, resolve_conflict
from .local_to_remote import LocalToRemoteSync
from .remote_to_local import RemoteToLocalSync

STRATEGIES = {
    SyncDirection.UPLOAD_ONLY: LocalToRemoteSync,
    SyncDirection.DOWNLOAD_ONLY: RemoteToLocalSync,
    SyncDirection.BIDIRECTIONAL: BidirectionalSync,
}

__all__ = [
    "BidirectionalSync",
    "LocalToRemoteSync",
    "RemoteToLocalSync",
    "STRATEGIES",
    "SyncAction",
    "SyncStats",
    "SyncStrategy",
    "resolve_conflict",
]
