"""Sync settings model and the settings-repair step.

Settings are plain dataclasses passed explicitly into every component.
The only place that mutates them during a pass is :func:`validate_and_fix`,
which the sync manager runs once before each pass.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)

WEBDAV_PROVIDER_ID = "webdav"
LOCAL_PROVIDER_ID = "local"

KNOWN_PROVIDERS = (WEBDAV_PROVIDER_ID, LOCAL_PROVIDER_ID)


class _ParseableEnum(str, Enum):
    """String enum that also accepts camelCase and dashed spellings."""

    @classmethod
    def from_string(cls, value: Any) -> Any:
        """Convert a string (any case, camelCase or snake_case) to a member.

        Raises:
            ValueError: If the value does not name a member
        """
        if isinstance(value, cls):
            return value
        text = str(value).strip()
        if text.isupper():
            text = text.lower()
        normalized = "".join(
            "_" + ch.lower() if ch.isupper() else ch for ch in text
        ).lstrip("_")
        normalized = normalized.replace("-", "_").lower()
        for member in cls:
            if member.value == normalized:
                return member
        valid = ", ".join(m.value for m in cls)
        raise ValueError(f"Invalid {cls.__name__} '{value}'. Valid values: {valid}")


class SyncMode(_ParseableEnum):
    """Which entries take part in a pass."""

    INCREMENTAL = "incremental"
    """Only entries whose timestamp shows a change"""

    FULL = "full"
    """All entries, and extras are pruned"""


class SyncDirection(_ParseableEnum):
    """Direction of a pass."""

    UPLOAD_ONLY = "upload_only"
    """Mirror local changes to the remote"""

    DOWNLOAD_ONLY = "download_only"
    """Mirror remote changes to the local tree"""

    BIDIRECTIONAL = "bidirectional"
    """Transfer in both directions"""


class ConflictPolicy(_ParseableEnum):
    """How a file changed on both sides is resolved.

    None of the policies merges file contents. ``MERGE`` keeps whichever
    side has the newer timestamp.
    """

    OVERWRITE = "overwrite"
    """Local always wins"""

    KEEP_LOCAL = "keep_local"
    """Local wins only when it is newer"""

    KEEP_REMOTE = "keep_remote"
    """Remote wins only when it is newer"""

    MERGE = "merge"
    """Newest wins"""


class RequestDelay(_ParseableEnum):
    """Pacing level for backends that throttle clients."""

    MINIMAL = "minimal"
    NORMAL = "normal"
    CONSERVATIVE = "conservative"


@dataclass
class WebDAVSettings:
    """Connection settings for a WebDAV backend."""

    enabled: bool = False
    username: str = ""
    password: str = ""
    server_url: str = ""
    sync_path: str = ""
    """Remote base path under which all synced content lives"""

    is_paid_user: bool = False
    request_delay: RequestDelay = RequestDelay.NORMAL
    timeout: float = 30.0

    def __post_init__(self) -> None:
        self.request_delay = RequestDelay.from_string(self.request_delay)

    def is_complete(self) -> bool:
        """Check that URL and credentials are all present."""
        return bool(self.server_url and self.username and self.password)

    def to_dict(self) -> dict:
        return {
            "enabled": self.enabled,
            "username": self.username,
            "password": self.password,
            "serverUrl": self.server_url,
            "syncPath": self.sync_path,
            "isPaidUser": self.is_paid_user,
            "requestDelay": self.request_delay.value,
            "timeout": self.timeout,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "WebDAVSettings":
        return cls(
            enabled=bool(data.get("enabled", False)),
            username=data.get("username", ""),
            password=data.get("password", ""),
            server_url=_get(data, "serverUrl", "server_url", ""),
            sync_path=_get(data, "syncPath", "sync_path", ""),
            is_paid_user=bool(_get(data, "isPaidUser", "is_paid_user", False)),
            request_delay=_get(data, "requestDelay", "request_delay", "normal"),
            timeout=float(data.get("timeout", 30.0)),
        )


@dataclass
class LocalProviderSettings:
    """Settings for a backend that is a plain directory."""

    enabled: bool = False
    root: str = ""
    sync_path: str = ""

    def is_complete(self) -> bool:
        return bool(self.root)

    def to_dict(self) -> dict:
        return {"enabled": self.enabled, "root": self.root, "syncPath": self.sync_path}

    @classmethod
    def from_dict(cls, data: dict) -> "LocalProviderSettings":
        return cls(
            enabled=bool(data.get("enabled", False)),
            root=data.get("root", ""),
            sync_path=_get(data, "syncPath", "sync_path", ""),
        )


@dataclass
class EncryptionSettings:
    """Transparent content encryption settings."""

    enabled: bool = False
    key: str = ""

    @property
    def active(self) -> bool:
        """True when encryption is enabled and a key is set."""
        return self.enabled and bool(self.key)

    def to_dict(self) -> dict:
        return {"enabled": self.enabled, "key": self.key}

    @classmethod
    def from_dict(cls, data: dict) -> "EncryptionSettings":
        return cls(enabled=bool(data.get("enabled", False)), key=data.get("key", ""))


def _default_ignore_folders() -> list[str]:
    return [".git", ".obsidian", "node_modules"]


def _default_ignore_files() -> list[str]:
    return [".DS_Store", "desktop.ini", "thumbs.db"]


def _default_ignore_extensions() -> list[str]:
    return ["tmp", "bak", "swp"]


@dataclass
class SyncSettings:
    """All settings that drive a sync pass."""

    enable_sync: bool = False
    local_root: str = ""
    """Local folder that is kept in sync"""

    sync_interval: int = 0
    """Auto sync interval in minutes (0 disables auto sync)"""

    sync_mode: SyncMode = SyncMode.INCREMENTAL
    sync_direction: SyncDirection = SyncDirection.BIDIRECTIONAL
    conflict_policy: ConflictPolicy = ConflictPolicy.OVERWRITE
    delete_local_extra_files: bool = False
    delete_remote_extra_files: bool = False
    ignore_folders: list[str] = field(default_factory=_default_ignore_folders)
    ignore_files: list[str] = field(default_factory=_default_ignore_files)
    ignore_extensions: list[str] = field(default_factory=_default_ignore_extensions)
    enabled_providers: list[str] = field(default_factory=list)
    webdav: WebDAVSettings = field(default_factory=WebDAVSettings)
    local: LocalProviderSettings = field(default_factory=LocalProviderSettings)
    encryption: EncryptionSettings = field(default_factory=EncryptionSettings)
    rewrite_markdown_links: bool = True
    debug_mode: bool = False
    log_level: str = "info"

    def __post_init__(self) -> None:
        self.sync_mode = SyncMode.from_string(self.sync_mode)
        self.sync_direction = SyncDirection.from_string(self.sync_direction)
        self.conflict_policy = ConflictPolicy.from_string(self.conflict_policy)

    def provider_settings(self, provider_id: str) -> Optional[Any]:
        """Return the per-backend settings block for a provider id."""
        if provider_id == WEBDAV_PROVIDER_ID:
            return self.webdav
        if provider_id == LOCAL_PROVIDER_ID:
            return self.local
        return None

    def to_dict(self) -> dict:
        """Convert settings to a dictionary for JSON serialization."""
        return {
            "enableSync": self.enable_sync,
            "localRoot": self.local_root,
            "syncInterval": self.sync_interval,
            "syncMode": self.sync_mode.value,
            "syncDirection": self.sync_direction.value,
            "conflictPolicy": self.conflict_policy.value,
            "deleteLocalExtraFiles": self.delete_local_extra_files,
            "deleteRemoteExtraFiles": self.delete_remote_extra_files,
            "ignoreFolders": list(self.ignore_folders),
            "ignoreFiles": list(self.ignore_files),
            "ignoreExtensions": list(self.ignore_extensions),
            "enabledProviders": list(self.enabled_providers),
            "providerSettings": {
                WEBDAV_PROVIDER_ID: self.webdav.to_dict(),
                LOCAL_PROVIDER_ID: self.local.to_dict(),
            },
            "encryption": self.encryption.to_dict(),
            "rewriteMarkdownLinks": self.rewrite_markdown_links,
            "debugMode": self.debug_mode,
            "logLevel": self.log_level,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SyncSettings":
        """Create settings from a dictionary, filling in defaults.

        Both the camelCase keys written by :meth:`to_dict` and snake_case
        keys are accepted.

        Raises:
            ValueError: If an enum value is invalid
        """
        providers = _get(data, "providerSettings", "provider_settings", {}) or {}
        defaults = cls()
        return cls(
            enable_sync=bool(_get(data, "enableSync", "enable_sync", False)),
            local_root=_get(data, "localRoot", "local_root", ""),
            sync_interval=int(_get(data, "syncInterval", "sync_interval", 0) or 0),
            sync_mode=_get(data, "syncMode", "sync_mode", SyncMode.INCREMENTAL),
            sync_direction=_get(
                data, "syncDirection", "sync_direction", SyncDirection.BIDIRECTIONAL
            ),
            conflict_policy=_get(
                data, "conflictPolicy", "conflict_policy", ConflictPolicy.OVERWRITE
            ),
            delete_local_extra_files=bool(
                _get(data, "deleteLocalExtraFiles", "delete_local_extra_files", False)
            ),
            delete_remote_extra_files=bool(
                _get(data, "deleteRemoteExtraFiles", "delete_remote_extra_files", False)
            ),
            ignore_folders=list(
                _get(data, "ignoreFolders", "ignore_folders", defaults.ignore_folders)
            ),
            ignore_files=list(
                _get(data, "ignoreFiles", "ignore_files", defaults.ignore_files)
            ),
            ignore_extensions=list(
                _get(
                    data,
                    "ignoreExtensions",
                    "ignore_extensions",
                    defaults.ignore_extensions,
                )
            ),
            enabled_providers=list(
                _get(data, "enabledProviders", "enabled_providers", [])
            ),
            webdav=WebDAVSettings.from_dict(providers.get(WEBDAV_PROVIDER_ID, {})),
            local=LocalProviderSettings.from_dict(providers.get(LOCAL_PROVIDER_ID, {})),
            encryption=EncryptionSettings.from_dict(data.get("encryption", {}) or {}),
            rewrite_markdown_links=bool(
                _get(data, "rewriteMarkdownLinks", "rewrite_markdown_links", True)
            ),
            debug_mode=bool(_get(data, "debugMode", "debug_mode", False)),
            log_level=_get(data, "logLevel", "log_level", "info"),
        )


def _get(data: dict, camel: str, snake: str, default: Any) -> Any:
    if camel in data:
        return data[camel]
    return data.get(snake, default)


def validate_and_fix(settings: SyncSettings) -> bool:
    """Repair provider enablement so the settings are self-consistent.

    A backend whose configuration is complete and which is enabled or listed
    is made both enabled and listed, and sync is switched on. A backend with
    an incomplete configuration is removed from the enabled list and
    disabled. Unknown and duplicate provider ids are dropped and a negative
    interval is reset to 0.

    Args:
        settings: Settings to repair in place

    Returns:
        True if anything changed and the settings should be saved
    """
    changed = False

    cleaned: list[str] = []
    for provider_id in settings.enabled_providers:
        if provider_id not in KNOWN_PROVIDERS:
            logger.warning(f"Dropping unknown provider '{provider_id}'")
            changed = True
            continue
        if provider_id in cleaned:
            changed = True
            continue
        cleaned.append(provider_id)

    for provider_id in KNOWN_PROVIDERS:
        block = settings.provider_settings(provider_id)
        listed = provider_id in cleaned
        if block.is_complete():
            if block.enabled or listed:
                if not listed:
                    logger.info(f"Adding configured provider '{provider_id}'")
                    cleaned.append(provider_id)
                    changed = True
                if not block.enabled:
                    logger.info(f"Marking configured provider '{provider_id}' enabled")
                    block.enabled = True
                    changed = True
                if not settings.enable_sync:
                    logger.info("Enabling sync because a provider is configured")
                    settings.enable_sync = True
                    changed = True
        else:
            if listed:
                logger.warning(
                    f"Provider '{provider_id}' is incomplete, removing it from "
                    "enabled providers"
                )
                cleaned.remove(provider_id)
                changed = True
            if block.enabled:
                block.enabled = False
                changed = True

    settings.enabled_providers = cleaned

    if settings.sync_interval < 0:
        settings.sync_interval = 0
        changed = True

    return changed
