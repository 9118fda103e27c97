"""Remote folder creation with fallbacks for limited backends.

Some WebDAV servers refuse ``MKCOL`` in certain places or do not report
folders they created. :class:`FolderCreator` tries an ordered list of
strategies; each one names the error classifications that let the next
strategy have a go.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from ..exceptions import AuthenticationError, ConflictError, StorageProviderError
from ..providers.base import StorageProvider
from .paths import join_remote_path, normalize_path, parent_path, path_depth

logger = logging.getLogger(__name__)

EXISTING = "existing"


class FolderStrategy(ABC):
    """One way of making sure a remote folder exists."""

    name = "strategy"

    fallthrough: frozenset = frozenset()
    """Error classifications after which the next strategy is tried"""

    def applies(
        self,
        provider: StorageProvider,
        previous_error: Optional[StorageProviderError],
    ) -> bool:
        return True

    @abstractmethod
    def ensure(self, creator: "FolderCreator", path: str) -> bool:
        """Return True when the folder exists afterwards, False to pass on."""


class ExistingFolderStrategy(FolderStrategy):
    """Nothing to do when the backend already has the folder."""

    name = EXISTING
    fallthrough = frozenset(
        {
            "auth",
            "not-found",
            "conflict",
            "generic",
            "transient",
            "timeout",
            "network",
            "unsupported",
        }
    )

    def ensure(self, creator: "FolderCreator", path: str) -> bool:
        return creator.provider.folder_exists(path)


class NativeCreateStrategy(FolderStrategy):
    """Create the folder with the backend's own folder operation."""

    name = "native"
    fallthrough = frozenset({"auth", "unsupported"})

    def applies(self, provider, previous_error) -> bool:
        return provider.supports_native_folders

    def ensure(self, creator: "FolderCreator", path: str) -> bool:
        try:
            creator.provider.create_folder(path)
        except ConflictError as e:
            if not e.parent_missing:
                logger.debug(f"Folder already exists: {path}")
                return True
            parent = parent_path(path)
            if not parent or not creator.ensure(parent):
                raise
            logger.debug(f"Created parents of {path}, retrying")
            creator.provider.create_folder(path)
        return True


class MarkerFileStrategy(FolderStrategy):
    """Write an empty marker file inside the folder.

    Backends that create intermediate collections implicitly on upload end
    up with the folder. Used for providers without native folders, or for
    providers that allow it after native creation was refused.
    """

    name = "marker"

    def applies(self, provider, previous_error) -> bool:
        if not provider.supports_native_folders:
            return True
        return (
            provider.folder_marker_fallback
            and previous_error is not None
            and previous_error.classification in ("auth", "unsupported")
        )

    def ensure(self, creator: "FolderCreator", path: str) -> bool:
        provider = creator.provider
        marker = join_remote_path(path, provider.folder_marker_name)
        try:
            provider.upload_file(marker, b"")
        except ConflictError as e:
            parent = parent_path(path)
            if not e.parent_missing or not parent or not creator.ensure(parent):
                raise
            provider.upload_file(marker, b"")
        logger.debug(f"Created folder marker {marker}")
        return True


def default_strategies() -> list[FolderStrategy]:
    return [ExistingFolderStrategy(), NativeCreateStrategy(), MarkerFileStrategy()]


class FolderCreator:
    """Makes remote folders exist, caching what it has seen in one pass.

    Examples:
        >>> creator = FolderCreator(provider)
        >>> creator.ensure("vault/notes")
        True
    """

    def __init__(
        self,
        provider: StorageProvider,
        strategies: Optional[list[FolderStrategy]] = None,
    ):
        self.provider = provider
        if strategies is None:
            strategies = default_strategies()
        self.strategies = strategies
        self.results: dict[str, str] = {}
        """Folder path -> name of the strategy that made it exist"""

    def mark_existing(self, path: str) -> None:
        """Record a folder known to exist, e.g. from a listing."""
        path = normalize_path(path)
        if path:
            self.results.setdefault(path, EXISTING)

    @property
    def created(self) -> list[str]:
        """Folders created during this pass (not merely found)."""
        return [path for path, name in self.results.items() if name != EXISTING]

    def ensure(self, path: str) -> bool:
        """Make sure a single folder exists.

        Returns:
            True if the folder exists afterwards

        Raises:
            AuthenticationError: If every applicable strategy was refused
                with an authentication error
        """
        path = normalize_path(path)
        if not path or path in self.results:
            return True

        last_error: Optional[StorageProviderError] = None
        for strategy in self.strategies:
            if not strategy.applies(self.provider, last_error):
                continue
            try:
                if strategy.ensure(self, path):
                    self.results[path] = strategy.name
                    return True
            except StorageProviderError as e:
                last_error = e
                if e.classification in strategy.fallthrough:
                    logger.debug(
                        f"{strategy.name} failed for {path} ({e.classification}), "
                        "trying next strategy"
                    )
                    continue
                logger.warning(f"Could not create folder {path}: {e}")
                break

        if isinstance(last_error, AuthenticationError):
            raise last_error
        return False

    def ensure_with_parents(self, path: str) -> bool:
        """Ensure every folder on the way to ``path``, shallowest first."""
        normalized = normalize_path(path)
        segments = normalized.split("/") if normalized else []
        for depth in range(1, len(segments) + 1):
            if not self.ensure("/".join(segments[:depth])):
                return False
        return True

    def ensure_all(self, paths: list[str]) -> list[str]:
        """Ensure many folders, shallowest first, with one retry round.

        Returns:
            Folders that still could not be created
        """
        unique = {normalize_path(p) for p in paths} - {""}
        ordered = sorted(unique, key=lambda p: (path_depth(p), p))
        failed = [path for path in ordered if not self.ensure(path)]
        if not failed:
            return []

        logger.info(f"Retrying {len(failed)} folder(s) that could not be created")
        return [path for path in failed if not self.ensure(path)]
