"""PyCloudSync - keep a local folder in sync with WebDAV storage."""

from .exceptions import (
    AuthenticationError,
    CloudSyncError,
    ConfigError,
    ConflictError,
    CryptoError,
    NetworkError,
    NotFoundError,
    ProviderTimeoutError,
    QuotaExceededError,
    RateLimitError,
    StorageProviderError,
    SyncError,
    SyncTimeoutError,
    TransientBackendError,
    UnsupportedOperationError,
)
from .settings import (
    ConflictPolicy,
    SyncDirection,
    SyncMode,
    SyncSettings,
    validate_and_fix,
)
from .sync import SyncEngine, SyncManager, SyncStats

__version__ = "0.1.0"

__all__ = [
    "AuthenticationError",
    "CloudSyncError",
    "ConfigError",
    "ConflictError",
    "ConflictPolicy",
    "CryptoError",
    "NetworkError",
    "NotFoundError",
    "ProviderTimeoutError",
    "QuotaExceededError",
    "RateLimitError",
    "StorageProviderError",
    "SyncDirection",
    "SyncEngine",
    "SyncError",
    "SyncManager",
    "SyncMode",
    "SyncSettings",
    "SyncStats",
    "SyncTimeoutError",
    "TransientBackendError",
    "UnsupportedOperationError",
    "validate_and_fix",
]
