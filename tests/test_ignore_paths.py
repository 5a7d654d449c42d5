"""Tests for the ignored-path filter."""

import pytest

from devark.ignore_paths import normalize_path, should_ignore_path


class TestShouldIgnorePath:
    """Tests for should_ignore_path."""

    def test_windows_temp_analysis_folder(self):
        assert should_ignore_path("C:\\Users\\Dev\\.devark\\temp-prompt-analysis")

    def test_regular_project_with_cursor_in_name(self):
        assert not should_ignore_path("/home/user/my-cursor-project")

    def test_standup_folder(self):
        assert should_ignore_path("/home/u/.devark/temp-standup")

    def test_cursor_install_dir(self):
        assert should_ignore_path("C:\\Users\\Dev\\AppData\\Local\\Programs\\cursor\\resources")

    def test_dotcursor_segment_only(self):
        assert should_ignore_path("/home/u/.cursor/extensions")
        assert not should_ignore_path("/home/u/project/.cursorrules")

    @pytest.mark.parametrize("path", [None, "", "   "])
    def test_empty_paths(self, path):
        assert not should_ignore_path(path)

    @pytest.mark.parametrize("path", [
        "/home/u/.devark/temp-standup",
        "/tmp/devark-hooks",
        "/home/user/project",
        "/Users/dev/work/api",
    ])
    def test_stable_under_normalisation(self, path):
        expected = should_ignore_path(path)
        assert should_ignore_path(path + "/") == expected
        assert should_ignore_path(path.replace("/", "\\")) == expected
        assert should_ignore_path(path.upper()) == expected


class TestNormalizePath:
    """Tests for normalize_path."""

    def test_backslashes_and_trailing_slash(self):
        assert normalize_path("C:\\a\\b\\") == "C:/a/b"
