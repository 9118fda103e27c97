"""Tests for the sync manager."""

import threading
import time
from unittest.mock import Mock

import pytest

from pycloudsync.exceptions import NetworkError, SyncError, SyncTimeoutError
from pycloudsync.output import OutputFormatter
from pycloudsync.providers import StorageProvider
from pycloudsync.settings import SyncSettings, WebDAVSettings
from pycloudsync.sync import SyncEngine, SyncManager, SyncStats


class FakeClock:
    """Controllable time source."""

    def __init__(self, now=10_000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def mock_output():
    """Create a mock output formatter."""
    output = Mock(spec=OutputFormatter)
    output.quiet = True
    output.json_output = False
    return output


@pytest.fixture
def settings():
    """Create settings with a complete WebDAV configuration."""
    return SyncSettings(
        enable_sync=True,
        sync_interval=5,
        enabled_providers=["webdav"],
        webdav=WebDAVSettings(
            enabled=True,
            server_url="https://dav.example.com",
            username="user",
            password="secret",
        ),
    )


def engine_returning(result=None, side_effect=None):
    """Create an engine factory whose engines return a fixed result."""
    engine = Mock(spec=SyncEngine)
    if side_effect is not None:
        engine.perform_sync.side_effect = side_effect
    else:
        engine.perform_sync.return_value = result or {}
    factory = Mock(return_value=engine)
    return factory, engine


class TestManualSync:
    """Tests for SyncManager.manual_sync."""

    def test_successful_pass(self, settings, mock_output):
        """Test a completed pass stores its result and time."""
        stats = {"webdav": SyncStats(uploads=2)}
        factory, engine = engine_returning(stats)
        clock = FakeClock()
        manager = SyncManager(settings, factory, mock_output, clock=clock)

        assert manager.manual_sync() is True

        factory.assert_called_once_with(settings, mock_output)
        engine.perform_sync.assert_called_once_with(is_auto=False)
        assert manager.last_result == stats
        assert manager.last_sync_time == clock.now
        assert manager.last_error is None
        assert manager.is_running is False
        mock_output.success.assert_called_once()

    def test_failed_pass(self, settings, mock_output):
        """Test a failing pass releases the lock and reports the error."""
        error = SyncError("boom", classification="auth")
        factory, _ = engine_returning(side_effect=error)
        manager = SyncManager(settings, factory, mock_output)

        assert manager.manual_sync() is False

        assert manager.last_error is error
        assert manager.is_running is False
        mock_output.error.assert_called_once()

    def test_failure_without_notice(self, settings, mock_output):
        """Test silent passes do not print."""
        factory, _ = engine_returning(side_effect=SyncError("boom"))
        manager = SyncManager(settings, factory, mock_output)

        manager.manual_sync(show_notice=False)

        mock_output.error.assert_not_called()

    def test_concurrent_call_rejected(self, settings, mock_output):
        """Test a second pass is rejected while the first holds the lock."""
        started = threading.Event()
        release = threading.Event()

        def slow_sync(is_auto=False):
            started.set()
            release.wait(5)
            return {}

        factory, engine = engine_returning(side_effect=slow_sync)
        manager = SyncManager(settings, factory, mock_output)
        results = []
        worker = threading.Thread(target=lambda: results.append(manager.manual_sync()))
        worker.start()
        try:
            assert started.wait(5)
            assert manager.is_running is True
            assert manager.manual_sync() is False
            mock_output.warning.assert_called_once()
        finally:
            release.set()
            worker.join(5)

        assert results == [True]
        assert engine.perform_sync.call_count == 1
        assert manager.is_running is False

    def test_watchdog_releases_lock(self, settings, mock_output):
        """Test a pass running too long is released and reported as timed out."""
        released = threading.Event()
        finish = threading.Event()
        manager = None

        def stuck_sync(is_auto=False):
            deadline = time.monotonic() + 5
            while manager.is_running and time.monotonic() < deadline:
                time.sleep(0.01)
            released.set()
            finish.wait(5)
            return {}

        factory, _ = engine_returning(side_effect=stuck_sync)
        manager = SyncManager(
            settings, factory, mock_output, max_sync_duration=0.05
        )
        results = []
        worker = threading.Thread(target=lambda: results.append(manager.manual_sync()))
        worker.start()
        try:
            assert released.wait(5)
            assert manager.is_running is False
        finally:
            finish.set()
            worker.join(5)

        assert results == [False]
        assert isinstance(manager.last_error, SyncTimeoutError)
        assert manager.last_error.classification == "timeout"


class TestSyncIfNeeded:
    """Tests for interval based passes."""

    def test_disabled_interval(self, settings, mock_output):
        """Test an interval of 0 never syncs."""
        settings.sync_interval = 0
        factory, _ = engine_returning()
        manager = SyncManager(settings, factory, mock_output)

        assert manager.sync_if_needed(force=True) is False
        factory.assert_not_called()

    def test_interval_not_elapsed(self, settings, mock_output):
        """Test no pass runs before the interval is over."""
        clock = FakeClock()
        factory, _ = engine_returning()
        manager = SyncManager(settings, factory, mock_output, clock=clock)
        manager.last_sync_time = clock.now - 60

        assert manager.sync_if_needed() is False
        factory.assert_not_called()

    def test_interval_elapsed(self, settings, mock_output):
        """Test an automatic pass runs once the interval is over."""
        clock = FakeClock()
        factory, engine = engine_returning()
        manager = SyncManager(settings, factory, mock_output, clock=clock)
        manager.last_sync_time = clock.now - 5 * 60

        assert manager.sync_if_needed() is True
        engine.perform_sync.assert_called_once_with(is_auto=True)
        mock_output.success.assert_not_called()

    def test_force(self, settings, mock_output):
        """Test force ignores the time since the last pass."""
        clock = FakeClock()
        factory, _ = engine_returning()
        manager = SyncManager(settings, factory, mock_output, clock=clock)
        manager.last_sync_time = clock.now

        assert manager.sync_if_needed(force=True) is True

    def test_no_providers(self, settings, mock_output):
        """Test nothing runs when repair leaves no provider enabled."""
        settings.webdav = WebDAVSettings()
        factory, _ = engine_returning()
        manager = SyncManager(settings, factory, mock_output)

        assert manager.sync_if_needed(force=True) is False
        assert settings.enabled_providers == []
        factory.assert_not_called()


class TestSettingsRepair:
    """Tests for settings repair before a pass."""

    def test_repair_saves(self, settings, mock_output):
        """Test repaired settings are handed to the callback."""
        settings.enabled_providers = ["webdav", "webdav", "dropbox"]
        on_changed = Mock()
        factory, _ = engine_returning()
        manager = SyncManager(
            settings, factory, mock_output, on_settings_changed=on_changed
        )

        manager.manual_sync()

        on_changed.assert_called_once_with(settings)
        assert settings.enabled_providers == ["webdav"]

    def test_consistent_settings_not_saved(self, settings, mock_output):
        """Test the callback is skipped when nothing changed."""
        on_changed = Mock()
        factory, _ = engine_returning()
        manager = SyncManager(
            settings, factory, mock_output, on_settings_changed=on_changed
        )

        assert manager.validate_and_fix_settings() is False
        on_changed.assert_not_called()


class TestProviderTests:
    """Tests for connection tests of all providers."""

    def test_results_per_provider(self, settings, mock_output):
        """Test every provider is tested and disconnected."""
        good = Mock(spec=StorageProvider)
        good.test_connection.return_value = True
        bad = Mock(spec=StorageProvider)
        bad.test_connection.side_effect = NetworkError("down")
        factory, _ = engine_returning()
        manager = SyncManager(
            settings,
            factory,
            mock_output,
            provider_factory=lambda s: {"webdav": good, "local": bad},
        )

        assert manager.test_all_enabled_providers() == {
            "webdav": True,
            "local": False,
        }
        good.disconnect.assert_called_once()
        bad.disconnect.assert_called_once()
