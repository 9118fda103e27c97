"""Tests for the sync engine."""

import tempfile
from pathlib import Path
from unittest.mock import Mock

import pytest

from pycloudsync.exceptions import (
    AuthenticationError,
    NetworkError,
    SyncError,
    TransientBackendError,
)
from pycloudsync.output import OutputFormatter
from pycloudsync.providers import LocalFolderProvider
from pycloudsync.settings import LocalProviderSettings, SyncSettings
from pycloudsync.sync import PassState, SyncEngine


class FlakyProvider(LocalFolderProvider):
    """Local folder provider whose first connections fail."""

    def __init__(self, root, failures=0, error=None, provider_id="local"):
        super().__init__(root, provider_id=provider_id)
        self.failures = failures
        self.error = error
        self.connect_calls = 0
        self.disconnect_calls = 0

    def connect(self):
        self.connect_calls += 1
        if self.connect_calls <= self.failures:
            if self.error is not None:
                raise self.error
            return False
        return super().connect()

    def disconnect(self):
        self.disconnect_calls += 1
        super().disconnect()


class ListingErrorProvider(LocalFolderProvider):
    """Local folder provider that fails while listing."""

    def __init__(self, root, error):
        super().__init__(root)
        self.error = error

    def list_files(self, path="", recursive=True):
        raise self.error


class TestSyncEngine:
    """Test SyncEngine functionality."""

    @pytest.fixture
    def mock_output(self):
        """Create a mock output formatter."""
        output = Mock(spec=OutputFormatter)
        output.quiet = True  # Suppress output during tests
        output.json_output = False
        return output

    @pytest.fixture
    def temp_dir(self):
        """Create a temporary directory with local and remote roots."""
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            (root / "local").mkdir()
            (root / "remote").mkdir()
            yield root

    @pytest.fixture
    def settings(self, temp_dir):
        """Create settings syncing into the 'vault' folder."""
        return SyncSettings(
            enabled_providers=["local"],
            local=LocalProviderSettings(
                enabled=True, root=str(temp_dir / "remote"), sync_path="vault"
            ),
        )

    def make_engine(self, settings, temp_dir, providers, output, sleeps=None):
        return SyncEngine(
            settings,
            temp_dir / "local",
            providers,
            output,
            connect_attempts=3,
            connect_delay=2.0,
            sleep=(sleeps.append if sleeps is not None else lambda s: None),
        )

    def test_no_providers(self, settings, temp_dir, mock_output):
        """Test a pass without providers is rejected."""
        engine = self.make_engine(settings, temp_dir, {}, mock_output)
        with pytest.raises(SyncError, match="no storage providers"):
            engine.perform_sync()

    def test_missing_local_root(self, settings, temp_dir, mock_output):
        """Test a pass fails when the local folder is gone."""
        provider = FlakyProvider(temp_dir / "remote")
        engine = SyncEngine(
            settings, temp_dir / "missing", {"local": provider}, mock_output
        )
        with pytest.raises(SyncError, match="local folder does not exist"):
            engine.perform_sync()
        assert provider.connect_calls == 0

    def test_successful_pass(self, settings, temp_dir, mock_output):
        """Test a pass creates the base folder and transfers files."""
        (temp_dir / "local" / "a.md").write_text("hello")
        provider = FlakyProvider(temp_dir / "remote")
        engine = self.make_engine(
            settings, temp_dir, {"local": provider}, mock_output
        )

        results = engine.perform_sync()

        assert results["local"].uploads == 1
        assert (temp_dir / "remote" / "vault" / "a.md").read_text() == "hello"
        assert engine.states["local"] == PassState.DONE
        assert provider.disconnect_calls == 1

    def test_connect_retries(self, settings, temp_dir, mock_output):
        """Test failed connections are retried with a delay."""
        provider = FlakyProvider(temp_dir / "remote", failures=2)
        sleeps = []
        engine = self.make_engine(
            settings, temp_dir, {"local": provider}, mock_output, sleeps
        )

        engine.perform_sync()

        assert provider.connect_calls == 3
        assert sleeps == [2.0, 2.0]

    def test_connect_gives_up(self, settings, temp_dir, mock_output):
        """Test the pass fails after the last connection attempt."""
        provider = FlakyProvider(
            temp_dir / "remote", failures=5, error=NetworkError("unreachable")
        )
        sleeps = []
        engine = self.make_engine(
            settings, temp_dir, {"local": provider}, mock_output, sleeps
        )

        with pytest.raises(SyncError, match="after 3 attempts") as exc_info:
            engine.perform_sync()

        assert exc_info.value.classification == "network"
        assert exc_info.value.provider_id == "local"
        assert provider.connect_calls == 3
        assert len(sleeps) == 2
        assert engine.states["local"] == PassState.FAILED
        assert provider.disconnect_calls == 1

    def test_authentication_aborts(self, settings, temp_dir, mock_output):
        """Test rejected credentials abort without further attempts."""
        provider = FlakyProvider(
            temp_dir / "remote", failures=5, error=AuthenticationError("401")
        )
        engine = self.make_engine(
            settings, temp_dir, {"local": provider}, mock_output
        )

        with pytest.raises(SyncError, match="authentication failed") as exc_info:
            engine.perform_sync()

        assert exc_info.value.classification == "auth"
        assert isinstance(exc_info.value.original, AuthenticationError)
        assert provider.connect_calls == 1

    def test_provider_error_wrapped(self, settings, temp_dir, mock_output):
        """Test provider errors become classified sync errors."""
        provider = ListingErrorProvider(
            temp_dir / "remote", TransientBackendError("locked")
        )
        engine = self.make_engine(
            settings, temp_dir, {"local": provider}, mock_output
        )

        with pytest.raises(SyncError, match="sync operation failed") as exc_info:
            engine.perform_sync()

        assert exc_info.value.classification == "transient"
        assert exc_info.value.provider_id == "local"

    def test_auto_pass_continues(self, settings, temp_dir, mock_output):
        """Test automatic passes skip failing providers."""
        (temp_dir / "local" / "a.md").write_text("a")
        (temp_dir / "other").mkdir()
        broken = FlakyProvider(
            temp_dir / "remote",
            failures=5,
            error=NetworkError("down"),
            provider_id="webdav",
        )
        working = FlakyProvider(temp_dir / "other")
        engine = self.make_engine(
            settings,
            temp_dir,
            {"webdav": broken, "local": working},
            mock_output,
        )

        results = engine.perform_sync(is_auto=True)

        assert list(results) == ["local"]
        assert engine.states == {
            "webdav": PassState.FAILED,
            "local": PassState.DONE,
        }
        assert (temp_dir / "other" / "vault" / "a.md").exists()

    def test_manual_pass_raises_first_failure(self, settings, temp_dir, mock_output):
        """Test manual passes stop at the failing provider."""
        broken = FlakyProvider(
            temp_dir / "remote", failures=5, error=NetworkError("down")
        )
        working = FlakyProvider(temp_dir / "remote")
        engine = self.make_engine(
            settings,
            temp_dir,
            {"local": broken, "second": working},
            mock_output,
        )

        with pytest.raises(SyncError):
            engine.perform_sync()
        assert working.connect_calls == 0

    def test_remote_listing_filtered(self, settings, temp_dir, mock_output):
        """Test ignored remote entries are never downloaded."""
        vault = temp_dir / "remote" / "vault"
        (vault / ".obsidian").mkdir(parents=True)
        (vault / ".obsidian" / "workspace.json").write_text("{}")
        (vault / "note.md").write_text("n")
        (vault / "old.bak").write_text("b")
        provider = FlakyProvider(temp_dir / "remote")
        engine = self.make_engine(
            settings, temp_dir, {"local": provider}, mock_output
        )

        results = engine.perform_sync()

        assert results["local"].downloads == 1
        names = sorted(p.name for p in (temp_dir / "local").iterdir())
        assert names == ["note.md"]
