"""Storage providers for pycloudsync."""

from typing import Optional

from ..settings import LOCAL_PROVIDER_ID, WEBDAV_PROVIDER_ID, SyncSettings
from .base import (
    ConnectionStatus,
    FileMetadata,
    QuotaInfo,
    RemoteEntry,
    StorageProvider,
)
from .local import LocalFolderProvider
from .rate_limiter import RequestRateLimiter
from .webdav import WebDAVProvider

PROVIDER_TYPES = {
    WEBDAV_PROVIDER_ID: WebDAVProvider,
    LOCAL_PROVIDER_ID: LocalFolderProvider,
}


def create_provider(
    provider_id: str, settings: SyncSettings
) -> Optional[StorageProvider]:
    """Create the provider for an enabled provider id.

    Returns:
        The provider, or None when the id is unknown or not configured
    """
    if provider_id == WEBDAV_PROVIDER_ID and settings.webdav.is_complete():
        return WebDAVProvider(settings.webdav)
    if provider_id == LOCAL_PROVIDER_ID and settings.local.is_complete():
        return LocalFolderProvider(settings.local.root)
    return None


def create_enabled_providers(settings: SyncSettings) -> dict[str, StorageProvider]:
    """Create providers for every enabled and configured provider id."""
    providers: dict[str, StorageProvider] = {}
    for provider_id in settings.enabled_providers:
        provider = create_provider(provider_id, settings)
        if provider is not None:
            providers[provider_id] = provider
    return providers


__all__ = [
    "ConnectionStatus",
    "FileMetadata",
    "LocalFolderProvider",
    "PROVIDER_TYPES",
    "QuotaInfo",
    "RemoteEntry",
    "RequestRateLimiter",
    "StorageProvider",
    "WebDAVProvider",
    "create_enabled_providers",
    "create_provider",
]
