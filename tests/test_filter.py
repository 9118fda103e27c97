"""Tests for the sync file filter."""

import pytest

from pycloudsync.settings import SyncSettings
from pycloudsync.sync.filter import SyncFileFilter, compile_pattern, should_exclude
from pycloudsync.sync.scanner import LocalEntry


@pytest.fixture
def settings():
    """Settings with folder patterns of every kind."""
    return SyncSettings(
        ignore_folders=["node_*", "/^\\.git$/", "build"],
        ignore_files=["thumbs.db", "draft-?.md"],
        ignore_extensions=["tmp", ".BAK"],
    )


class TestCompilePattern:
    """Tests for ignore pattern compilation."""

    def test_regex_pattern(self):
        """Test /.../ patterns are regular expressions."""
        pattern = compile_pattern("/^arch(ive)?$/")
        assert pattern.kind == "regex"
        assert pattern.matches("archive", "x/archive")
        assert not pattern.matches("archived", "x/archived")

    def test_glob_pattern(self):
        """Test * and ? patterns must match the whole name."""
        pattern = compile_pattern("draft-?.md")
        assert pattern.kind == "glob"
        assert pattern.matches("draft-1.md", "notes/draft-1.md")
        assert not pattern.matches("draft-12.md", "notes/draft-12.md")

    def test_literal_pattern(self):
        """Test literal patterns match anywhere in the name or path."""
        pattern = compile_pattern("build")
        assert pattern.kind == "literal"
        assert pattern.matches("build", "build")
        assert pattern.matches("rebuilder", "src/rebuilder")
        assert pattern.matches("out.md", "old-build/out.md")
        assert not pattern.matches("bild", "notes/bild")

    def test_literal_pattern_is_escaped(self):
        """Test regex characters in literal patterns match themselves."""
        pattern = compile_pattern("a.b")
        assert pattern.matches("xa.by", "xa.by")
        assert not pattern.matches("axb", "axb")

    def test_invalid_regex_matches_everything(self):
        """Test a malformed expression never raises and matches all paths."""
        pattern = compile_pattern("/([/")
        assert pattern.regex is None
        assert pattern.matches("anything", "any/thing")


class TestSyncFileFilter:
    """Tests for SyncFileFilter.should_exclude."""

    def test_root_is_never_excluded(self, settings):
        """Test the sync root itself takes part."""
        assert SyncFileFilter(settings).should_exclude("") is False

    @pytest.mark.parametrize(
        "path,is_folder",
        [
            ("node_modules", True),
            ("node_modules/pkg/index.md", False),
            (".git/config", False),
            ("notes/.hidden.md", False),
            (".obsidian/workspace.json", False),
            (".trash/old.md", False),
            ("$RECYCLE.BIN/x.md", False),
            ("build/out.md", False),
            ("builder/out.md", False),
            ("pics/thumbs.db", False),
            ("notes/draft-1.md", False),
            ("notes/cache.tmp", False),
            ("notes/copy.bak", False),
        ],
    )
    def test_excluded(self, settings, path, is_folder):
        """Test built-in and user exclusions."""
        assert SyncFileFilter(settings).should_exclude(path, is_folder) is True

    @pytest.mark.parametrize(
        "path,is_folder",
        [
            ("notes", True),
            ("notes/node.md", False),
            ("notes/daily/2024-01-01.md", False),
            ("bilder/out.md", False),
            ("notes/draft-12.md", False),
            ("notes/tmp", False),
            ("notes/template.tmpl", False),
        ],
    )
    def test_included(self, settings, path, is_folder):
        """Test ordinary notes are kept."""
        assert SyncFileFilter(settings).should_exclude(path, is_folder) is False

    def test_long_paths_excluded(self, settings):
        """Test over-long paths are left out."""
        path = "/".join(["folder"] * 40) + "/a.md"
        assert SyncFileFilter(settings).should_exclude(path) is True

    def test_extension_only_applies_to_files(self, settings):
        """Test a folder named like an ignored extension is kept."""
        assert SyncFileFilter(settings).should_exclude("x.tmp", is_folder=True) is False

    def test_wrapper_accepts_entries(self, settings):
        """Test the module level helper accepts entries and strings."""
        entry = LocalEntry(path="node_modules", is_folder=True, mtime=0, size=0)
        assert should_exclude(entry, settings) is True
        assert should_exclude("notes/a.md", settings) is False

    def test_literal_file_pattern_matches_substring(self):
        """Test a plain file pattern excludes names that contain it."""
        file_filter = SyncFileFilter(SyncSettings(ignore_files=["draft"]))
        assert file_filter.should_exclude("notes/my-draft.md") is True
        assert file_filter.should_exclude("drafts/idea.md") is True
        assert file_filter.should_exclude("notes/final.md") is False
