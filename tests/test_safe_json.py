"""Tests for tolerant JSON parsing."""

from devark.safe_json import (
    extract_balanced,
    fix_common_issues,
    has_required_fields,
    safe_parse,
    safe_read_json_file,
)


class TestSafeParse:
    """Tests for safe_parse."""

    def test_valid_json(self):
        result = safe_parse('{"a": 1}')
        assert result.success
        assert result.data == {"a": 1}
        assert not result.recovered

    def test_trailing_comma_recovered(self):
        result = safe_parse('{"a":1,}', attempt_recovery=True)
        assert result.success
        assert result.data == {"a": 1}
        assert result.recovered

    def test_no_recovery_without_flag(self):
        result = safe_parse('{"a":1,}')
        assert not result.success
        assert result.data is None
        assert result.error

    def test_empty_content_returns_default(self):
        result = safe_parse("   ", default={})
        assert not result.success
        assert result.data == {}
        assert result.error == "Empty content"

    def test_none_content(self):
        assert not safe_parse(None).success

    def test_balanced_block_with_trailing_garbage(self):
        result = safe_parse('{"prompt": "a } b"} trailing', attempt_recovery=True)
        assert result.success
        assert result.data == {"prompt": "a } b"}

    def test_truncated_write_recovers_prefix(self):
        result = safe_parse('[{"a": 1}, {"b": 2}, {"c":', attempt_recovery=True)
        assert result.success
        assert result.recovered

    def test_validation_failure(self):
        result = safe_parse('{"a": 1}', validate=lambda d: "b" in d, default={})
        assert not result.success
        assert result.error == "Validation failed"
        assert result.data == {}

    def test_bom_stripped(self):
        result = safe_parse('﻿{"a": [1, 2,]}', attempt_recovery=True)
        assert result.success
        assert result.data == {"a": [1, 2]}


class TestHelpers:
    """Tests for the recovery helpers."""

    def test_extract_balanced_ignores_braces_in_strings(self):
        assert extract_balanced('xx {"k": "{not}"} yy') == '{"k": "{not}"}'

    def test_extract_balanced_none(self):
        assert extract_balanced("no json here") is None

    def test_fix_common_issues_keeps_commas_in_strings(self):
        assert fix_common_issues('{"a": ",}"}') == '{"a": ",}"}'

    def test_has_required_fields(self):
        assert has_required_fields({"prompt": "x", "cwd": "/"}, ["prompt"])
        assert not has_required_fields({"cwd": "/"}, ["prompt"])
        assert not has_required_fields(["prompt"], ["prompt"])


class TestSafeReadJsonFile:
    """Tests for reading JSON files from disk."""

    def test_missing_file(self, tmp_path):
        result = safe_read_json_file(tmp_path / "nope.json", default={})
        assert not result.success
        assert result.data == {}
        assert result.error == "File not found"

    def test_recovers_file_content(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text('{"autoAnalyze": false,}')
        result = safe_read_json_file(path)
        assert result.success
        assert result.data == {"autoAnalyze": False}
