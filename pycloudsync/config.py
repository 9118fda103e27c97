"""Configuration file handling for pycloudsync.

Settings are stored as JSON in ``~/.config/pycloudsync/config.json``. The
directory can be moved with the ``PYCLOUDSYNC_CONFIG_DIR`` environment
variable. Credentials can also come from the environment, which takes
precedence over the stored values without being written back; use
:meth:`Config.save_repaired` to store settings that carry such overrides.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from .exceptions import ConfigError
from .settings import KNOWN_PROVIDERS, SyncSettings

logger = logging.getLogger(__name__)

CONFIG_DIR_ENV = "PYCLOUDSYNC_CONFIG_DIR"
CONFIG_FILE_NAME = "config.json"

ENV_OVERRIDES = {
    "PYCLOUDSYNC_WEBDAV_URL": ("webdav", "server_url"),
    "PYCLOUDSYNC_WEBDAV_USERNAME": ("webdav", "username"),
    "PYCLOUDSYNC_WEBDAV_PASSWORD": ("webdav", "password"),
    "PYCLOUDSYNC_ENCRYPTION_KEY": ("encryption", "key"),
}


class Config:
    """Loads and saves the stored sync settings."""

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize config.

        Args:
            config_dir: Configuration directory; defaults to
                ``$PYCLOUDSYNC_CONFIG_DIR`` or ``~/.config/pycloudsync``
        """
        self._config_dir = Path(config_dir) if config_dir else None

    @property
    def config_dir(self) -> Path:
        if self._config_dir is not None:
            return self._config_dir
        env_dir = os.environ.get(CONFIG_DIR_ENV)
        if env_dir:
            return Path(env_dir).expanduser()
        return Path.home() / ".config" / "pycloudsync"

    @config_dir.setter
    def config_dir(self, value: Optional[Path]) -> None:
        self._config_dir = Path(value) if value else None

    def get_config_path(self) -> Path:
        """Return the path of the settings file."""
        return self.config_dir / CONFIG_FILE_NAME

    def is_configured(self) -> bool:
        """Check whether a settings file exists."""
        return self.get_config_path().is_file()

    def load_settings(self, apply_env: bool = True) -> SyncSettings:
        """Load settings, falling back to defaults when no file exists.

        Args:
            apply_env: Apply credential overrides from the environment

        Returns:
            The loaded settings

        Raises:
            ConfigError: If the file cannot be read or holds invalid values
        """
        path = self.get_config_path()
        data: dict = {}
        if path.is_file():
            try:
                with open(path, encoding="utf-8") as f:
                    data = json.load(f)
            except (json.JSONDecodeError, OSError) as e:
                raise ConfigError(f"Could not read config file {path}: {e}") from e
            if not isinstance(data, dict):
                raise ConfigError(f"Config file {path} does not hold an object")
            logger.debug(f"Loaded settings from {path}")

        try:
            settings = SyncSettings.from_dict(data)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid settings in {path}: {e}") from e

        if apply_env:
            self._apply_env_overrides(settings)
        return settings

    def _apply_env_overrides(self, settings: SyncSettings) -> None:
        for variable, (section, attribute) in ENV_OVERRIDES.items():
            value = os.environ.get(variable)
            if not value:
                continue
            logger.debug(f"Using {variable} from the environment")
            setattr(getattr(settings, section), attribute, value)
            if section == "encryption":
                settings.encryption.enabled = True

    def save_settings(self, settings: SyncSettings) -> Path:
        """Write settings to the config file, readable by the owner only.

        Returns:
            Path of the written file
        """
        path = self.get_config_path()
        path.parent.mkdir(parents=True, exist_ok=True)

        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(settings.to_dict(), f, indent=2)
        # The mode argument of os.open does not touch an existing file
        os.chmod(path, 0o600)
        logger.info(f"Saved settings to {path}")
        return path

    def save_repaired(self, settings: SyncSettings) -> Path:
        """Store the changes made by settings repair.

        The file is reloaded without environment overrides and only provider
        enablement, ``enable_sync`` and a negative interval are taken over,
        so credentials from the environment and per-run overrides such as
        the CLI interval are never written.

        Returns:
            Path of the written file
        """
        stored = self.load_settings(apply_env=False)
        stored.enable_sync = settings.enable_sync
        stored.enabled_providers = list(settings.enabled_providers)
        for provider_id in KNOWN_PROVIDERS:
            stored.provider_settings(provider_id).enabled = (
                settings.provider_settings(provider_id).enabled
            )
        if stored.sync_interval < 0:
            stored.sync_interval = 0
        return self.save_settings(stored)


config = Config()
