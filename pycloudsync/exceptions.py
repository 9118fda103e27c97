"""Exception classes for pycloudsync."""

from __future__ import annotations


class CloudSyncError(Exception):
    """Base exception for all pycloudsync errors."""


class ConfigError(CloudSyncError):
    """Raised when the configuration is missing or invalid."""


class CryptoError(CloudSyncError):
    """Raised when encrypting or decrypting content fails.

    The ``code`` attribute is one of ``invalid-key``, ``encryption-failed``
    or ``decryption-failed``.
    """

    def __init__(
        self, message: str, code: str, original: Exception | None = None
    ) -> None:
        super().__init__(message)
        self.code = code
        self.original = original


class StorageProviderError(CloudSyncError):
    """Base exception for errors reported by a storage provider."""

    code = "UNKNOWN_ERROR"
    classification = "generic"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        original: Exception | None = None,
    ) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code
        self.original = original

    @classmethod
    def from_error(
        cls, error: Exception, message: str | None = None
    ) -> StorageProviderError:
        """Wrap an arbitrary exception, keeping provider errors unchanged."""
        if isinstance(error, StorageProviderError):
            return error
        return cls(message or str(error) or error.__class__.__name__, original=error)

    def user_message(self) -> str:
        """Human readable description with the error classification."""
        labels = {
            "auth": "Authentication failed",
            "not-found": "Not found",
            "quota": "Storage quota exceeded",
            "conflict": "Conflict",
            "transient": "Backend temporarily unavailable",
            "timeout": "Timed out",
            "network": "Network error",
            "unsupported": "Not supported",
        }
        label = labels.get(self.classification, "Storage error")
        return f"{label}: {self}"


class NotFoundError(StorageProviderError):
    """Raised when a remote file or folder does not exist."""

    code = "NOT_FOUND"
    classification = "not-found"


class AuthenticationError(StorageProviderError):
    """Raised when the backend rejects the credentials (401/403)."""

    code = "AUTH_FAILED"
    classification = "auth"


class ConflictError(StorageProviderError):
    """Raised when the target already exists or its parent is missing."""

    code = "CONFLICT"
    classification = "conflict"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        original: Exception | None = None,
        parent_missing: bool = False,
    ) -> None:
        super().__init__(message, code, original)
        self.parent_missing = parent_missing


class TransientBackendError(StorageProviderError):
    """Raised for retryable backend failures (locks, 5xx, overload)."""

    code = "TRANSIENT_BACKEND_ERROR"
    classification = "transient"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        original: Exception | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, code, original)
        self.retry_after = retry_after


class RateLimitError(TransientBackendError):
    """Raised when the backend reports too many requests."""

    code = "RATE_LIMITED"


class ProviderTimeoutError(StorageProviderError):
    """Raised when a backend request times out."""

    code = "TIMEOUT"
    classification = "timeout"


class QuotaExceededError(StorageProviderError):
    """Raised when the backend has no space left."""

    code = "QUOTA_EXCEEDED"
    classification = "quota"


class NetworkError(StorageProviderError):
    """Raised when the backend cannot be reached."""

    code = "NETWORK_ERROR"
    classification = "network"


class UnsupportedOperationError(StorageProviderError):
    """Raised when a provider lacks an optional capability."""

    code = "UNSUPPORTED"
    classification = "unsupported"


class SyncError(CloudSyncError):
    """Raised when a sync pass fails for a provider.

    ``classification`` mirrors the provider error that caused the failure
    so callers can tell authentication problems from generic ones.
    """

    def __init__(
        self,
        message: str,
        classification: str = "generic",
        provider_id: str | None = None,
        original: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.classification = classification
        self.provider_id = provider_id
        self.original = original


class SyncTimeoutError(SyncError):
    """Raised when the watchdog aborts a pass that ran too long."""

    def __init__(self, message: str = "sync operation timed out") -> None:
        super().__init__(message, classification="timeout")
