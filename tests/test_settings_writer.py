"""Tests for tool-owned settings files."""

import json

import pytest

from devark.fs import FileSystem
from devark.hooks.settings_writer import (
    ClaudeSettingsPaths,
    CursorSettingsPaths,
    SettingsWriter,
    deep_merge,
    encode_project_path,
)


@pytest.fixture
def fs(tmp_path):
    return FileSystem(home=tmp_path)


@pytest.fixture
def writer(fs):
    return SettingsWriter(fs)


class TestDeepMerge:
    """Tests for deep_merge."""

    def test_nested_objects_merge(self):
        a = {"hooks": {"Stop": [1]}, "theme": "dark"}
        b = {"hooks": {"UserPromptSubmit": [2]}}
        assert deep_merge(a, b) == {"hooks": {"Stop": [1], "UserPromptSubmit": [2]}, "theme": "dark"}

    def test_arrays_replace(self):
        assert deep_merge({"a": [1, 2]}, {"a": [3]}) == {"a": [3]}

    def test_scalar_replaces_object(self):
        assert deep_merge({"a": {"b": 1}}, {"a": None}) == {"a": None}

    def test_empty_merge_is_identity(self):
        settings = {"a": {"b": [1]}, "c": 2}
        assert deep_merge(settings, {}) == settings

    def test_target_not_mutated(self):
        target = {"a": {"b": 1}}
        deep_merge(target, {"a": {"c": 2}})
        assert target == {"a": {"b": 1}}


class TestSettingsWriter:
    """Tests for SettingsWriter."""

    def test_missing_file_reads_empty(self, writer, tmp_path):
        assert writer.read(tmp_path / "missing.json") == {}

    def test_empty_file_reads_empty(self, writer, tmp_path):
        path = tmp_path / "empty.json"
        path.write_text("  \n")
        assert writer.read(path) == {}

    def test_corrupt_file_raises(self, writer, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{nope")
        with pytest.raises(ValueError):
            writer.read(path)

    def test_write_then_read(self, writer, tmp_path):
        data = {"hooks": {"Stop": [{"matcher": "*"}]}, "n": 1}
        path = tmp_path / "nested" / "settings.json"
        writer.write(path, data)
        assert writer.read(path) == data
        assert path.read_text().startswith("{\n  ")

    def test_create_refuses_existing(self, writer, tmp_path):
        path = tmp_path / "settings.json"
        writer.create(path, {"a": 1})
        with pytest.raises(FileExistsError):
            writer.create(path, {"a": 2})

    def test_merge_preserves_other_keys(self, writer, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"model": "opus", "hooks": {"Stop": []}}))
        merged = writer.merge(path, {"hooks": {"UserPromptSubmit": []}})
        assert merged == {"model": "opus", "hooks": {"Stop": [], "UserPromptSubmit": []}}
        assert writer.read(path) == merged


class TestPaths:
    """Tests for tool settings paths."""

    def test_encode_project_path(self):
        assert encode_project_path("/Users/danny/dev") == "Users-danny-dev"

    def test_encode_root(self):
        assert encode_project_path("/") == ""

    def test_claude_paths(self, fs, tmp_path):
        paths = ClaudeSettingsPaths(fs)
        assert paths.global_settings() == tmp_path / ".claude" / "settings.json"
        local = paths.project_local_settings("/Users/danny/dev")
        assert local == tmp_path / ".claude" / "projects" / "Users-danny-dev" / ".claude" / "settings.local.json"
        assert "//" not in str(paths.projects_dir())

    def test_cursor_paths(self, fs, tmp_path):
        paths = CursorSettingsPaths(fs)
        assert paths.global_hooks() == tmp_path / ".cursor" / "hooks.json"
        assert str(paths.project_hooks("/work/app/")) == "/work/app/.cursor/hooks.json"
