"""Tests for the path mapping helpers."""

import pytest

from pycloudsync.settings import SyncSettings, WebDAVSettings
from pycloudsync.sync.paths import (
    format_path,
    is_under_base,
    join_remote_path,
    map_remote_to_local,
    normalize_path,
    parent_path,
    path_depth,
    remote_base_path,
)


class TestNormalizePath:
    """Tests for normalize_path."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("", ""),
            ("/", ""),
            ("notes", "notes"),
            ("/notes/", "notes"),
            ("notes//daily///a.md", "notes/daily/a.md"),
            ("notes\\daily\\a.md", "notes/daily/a.md"),
        ],
    )
    def test_normalize(self, raw, expected):
        """Test separators are unified and outer slashes stripped."""
        assert normalize_path(raw) == expected


class TestRemoteBasePath:
    """Tests for remote_base_path."""

    def test_configured_base(self):
        """Test the WebDAV sync path is normalized."""
        settings = SyncSettings(webdav=WebDAVSettings(sync_path="/vault/"))
        assert remote_base_path(settings, "webdav") == "vault"

    def test_unknown_provider(self):
        """Test unknown providers have no base path."""
        assert remote_base_path(SyncSettings(), "dropbox") == ""


class TestMapping:
    """Tests for mapping between remote and local path space."""

    @pytest.mark.parametrize("base", ["", "vault", "/vault/", "vault/notes"])
    @pytest.mark.parametrize(
        "local", ["a.md", "daily/2024-01-01.md", "deep/er/still/file.png"]
    )
    def test_round_trip(self, base, local):
        """Test mapping a joined path back gives the local path."""
        remote = join_remote_path(base, local)
        assert map_remote_to_local(remote, base) == local

    @pytest.mark.parametrize("remote", ["vault", "/vault", "vault/", "/vault/"])
    def test_base_itself_maps_to_root(self, remote):
        """Test the base path maps to the empty root marker."""
        assert map_remote_to_local(remote, "vault") == ""

    def test_sibling_prefix_is_not_under_base(self):
        """Test a folder sharing a name prefix is not inside the base."""
        assert map_remote_to_local("vault2/a.md", "vault") == "vault2/a.md"
        assert not is_under_base("vault2/a.md", "vault")
        assert is_under_base("vault/a.md", "vault")
        assert is_under_base("anything", "")

    def test_join_without_local_path(self):
        """Test joining an empty local path gives the base."""
        assert join_remote_path("/vault/", "") == "vault"


class TestPathHelpers:
    """Tests for the small path helpers."""

    def test_format_path(self):
        """Test formatting with a single leading slash."""
        assert format_path("notes/a.md/") == "/notes/a.md"
        assert format_path("") == "/"

    def test_parent_path(self):
        """Test the parent of nested and top level paths."""
        assert parent_path("a/b/c.md") == "a/b"
        assert parent_path("c.md") == ""

    def test_path_depth(self):
        """Test path depth counts segments."""
        assert path_depth("") == 0
        assert path_depth("a") == 1
        assert path_depth("/a/b/c/") == 3
