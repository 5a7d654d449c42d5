"""Tests for hook installation and the devark-sync hook command."""

import io
import json

import pytest

from devark import config
from devark.fs import FileSystem
from devark.hooks import script
from devark.hooks.installer import (
    ClaudeHookInstaller,
    CursorHookInstaller,
    HookConfig,
    build_command,
    get_installer,
    has_marker,
)


@pytest.fixture
def fs(tmp_path):
    return FileSystem(home=tmp_path)


def read_json(path):
    return json.loads(path.read_text())


class TestClaudeHookInstaller:
    """Tests for ~/.claude/settings.json hook management."""

    def test_install_writes_marked_commands(self, fs, tmp_path):
        installer = ClaudeHookInstaller(fs=fs)
        result = installer.install(HookConfig(hooks=["UserPromptSubmit", "Stop"], timeout=30))

        assert result.success
        assert result.hooks_installed == ["UserPromptSubmit", "Stop"]
        hooks = read_json(tmp_path / ".claude" / "settings.json")["hooks"]
        prompt_entry = hooks["UserPromptSubmit"][0]
        assert "matcher" not in prompt_entry
        assert prompt_entry["hooks"][0]["command"] == "devark-sync --hook-trigger=userpromptsubmit --source=claude --silent"
        assert prompt_entry["hooks"][0]["timeout"] == 30
        assert hooks["Stop"][0]["matcher"] == "*"

    def test_install_is_idempotent_and_keeps_foreign_entries(self, fs, tmp_path):
        settings_path = tmp_path / ".claude" / "settings.json"
        settings_path.parent.mkdir()
        settings_path.write_text(json.dumps({
            "model": "opus",
            "hooks": {"Stop": [{"matcher": "*", "hooks": [{"type": "command", "command": "notify-send done"}]}]},
        }))
        installer = ClaudeHookInstaller(fs=fs)
        installer.install(HookConfig(hooks=["Stop"]))
        installer.install(HookConfig(hooks=["Stop"]))

        settings = read_json(settings_path)
        assert settings["model"] == "opus"
        commands = [h["command"] for entry in settings["hooks"]["Stop"] for h in entry["hooks"]]
        assert commands == ["notify-send done", "devark-sync --hook-trigger=stop --source=claude --silent"]

    def test_invalid_hook_type(self, fs):
        result = ClaudeHookInstaller(fs=fs).install(HookConfig(hooks=["Nope"]))
        assert not result.success
        assert result.errors[0].hook == "Nope"
        assert not result.errors[0].recoverable

    def test_uninstall_leaves_foreign_rows(self, fs, tmp_path):
        settings_path = tmp_path / ".claude" / "settings.json"
        settings_path.parent.mkdir()
        settings_path.write_text(json.dumps({
            "hooks": {"Stop": [{"matcher": "*", "hooks": [{"type": "command", "command": "notify-send done"}]}]},
        }))
        installer = ClaudeHookInstaller(fs=fs)
        installer.install(HookConfig(hooks=["Stop", "SessionStart"]))
        assert installer.uninstall().success

        hooks = read_json(settings_path)["hooks"]
        assert list(hooks) == ["Stop"]
        assert hooks["Stop"][0]["hooks"][0]["command"] == "notify-send done"

    def test_status(self, fs):
        installer = ClaudeHookInstaller(fs=fs)
        assert not installer.get_status().installed
        installer.install(HookConfig(hooks=["UserPromptSubmit"]))
        installer.set_hook_enabled("UserPromptSubmit", False)
        status = installer.get_status()
        assert status.installed
        assert [(h.type, h.enabled) for h in status.hooks] == [("UserPromptSubmit", False)]

    def test_uninstall_single_hook(self, fs):
        installer = ClaudeHookInstaller(fs=fs)
        assert not installer.uninstall_hook("Stop").success
        installer.install(HookConfig(hooks=["Stop", "UserPromptSubmit"]))
        assert installer.uninstall_hook("Stop").success
        assert not installer.is_hook_installed("Stop")
        assert installer.is_hook_installed("UserPromptSubmit")


class TestCursorHookInstaller:
    """Tests for ~/.cursor/hooks.json hook management."""

    def test_install_maps_hook_types(self, fs, tmp_path):
        result = CursorHookInstaller(fs=fs).install(HookConfig(hooks=["UserPromptSubmit", "Stop", "SessionStart"]))
        assert result.hooks_installed == ["UserPromptSubmit", "Stop"]
        assert result.warnings == ["Hook type SessionStart not supported in Cursor"]

        data = read_json(tmp_path / ".cursor" / "hooks.json")
        assert data["version"] == 1
        assert data["hooks"]["beforeSubmitPrompt"] == [
            {"command": "devark-sync --hook-trigger=beforesubmitprompt --source=cursor --silent"}
        ]
        assert len(data["hooks"]["stop"]) == 1

    def test_uninstall(self, fs, tmp_path):
        path = tmp_path / ".cursor" / "hooks.json"
        path.parent.mkdir()
        path.write_text(json.dumps({"version": 1, "hooks": {"stop": [{"command": "./my-script.sh"}]}}))
        installer = CursorHookInstaller(fs=fs)
        installer.install(HookConfig(hooks=["Stop"]))
        assert installer.is_hook_installed("Stop")

        installer.uninstall()
        assert read_json(path)["hooks"] == {"stop": [{"command": "./my-script.sh"}]}


class TestHelpers:
    """Tests for command building and marker matching."""

    def test_build_command_quotes_spaces(self):
        command = build_command("/opt/my tools/devark-sync", "Stop", "claude", debug=True)
        assert command == '"/opt/my tools/devark-sync" --hook-trigger=stop --source=claude --silent --debug'

    def test_has_marker(self):
        assert has_marker("C:\\tools\\DevArk-Sync.exe --x", ("devark-sync",))
        assert not has_marker(None, ("devark-sync",))

    def test_get_installer(self, fs):
        assert isinstance(get_installer("cursor", fs=fs), CursorHookInstaller)
        with pytest.raises(ValueError):
            get_installer("vim")


class TestHookScript:
    """Tests for the devark-sync hook command."""

    def test_claude_prompt(self, tmp_path):
        path = script.handle_hook(
            "claude", "userpromptsubmit", {"prompt": "hi", "cwd": "/home/u/project", "session_id": "s1"}, tmp_path
        )
        data = read_json(path)
        assert path.name.startswith("claude-prompt-")
        assert data["prompt"] == "hi"
        assert data["workspaceRoots"] == ["/home/u/project"]
        assert data["sessionId"] == "s1"
        assert read_json(tmp_path / "latest-claude-prompt.json") == data

    def test_claude_response_from_transcript(self, tmp_path):
        transcript = tmp_path / "t.jsonl"
        transcript.write_text("\n".join([
            json.dumps({"type": "user", "message": {"content": "do it"}}),
            json.dumps({"type": "assistant", "message": {"content": [{"type": "text", "text": "Done with it"}]}}),
        ]))
        path = script.handle_hook("claude", "stop", {"transcript_path": str(transcript), "session_id": "s1"}, tmp_path)
        data = read_json(path)
        assert data["response"] == "Done with it"
        assert data["success"]
        assert data["isFinal"]

    def test_cursor_stop(self, tmp_path):
        path = script.handle_hook("cursor", "stop", {"hook_event_name": "stop", "status": "aborted", "loop_count": 2}, tmp_path)
        data = read_json(path)
        assert data["isFinal"]
        assert not data["success"]
        assert data["stopReason"] == "aborted"
        assert data["toolCalls"] == []

    def test_nothing_to_capture(self, tmp_path):
        assert script.handle_hook("claude", "sessionstart", {}, tmp_path) is None

    def test_extract_text(self):
        assert script.extract_text([{"type": "text", "text": "a"}, {"type": "tool_use"}, "b"]) == "a\nb"
        assert script.extract_text({"message": {"content": "x"}}) == "x"

    def test_main_cursor_prompt_continues(self, tmp_path, monkeypatch, capsys):
        monkeypatch.setattr(config, "HOOKS_DIR", tmp_path)
        monkeypatch.setattr("sys.stdin", io.StringIO(json.dumps({"prompt": "hello", "workspace_roots": ["/w"]})))

        assert script.main(["--hook-trigger=beforeSubmitPrompt", "--source=cursor", "--silent"]) == 0
        assert json.loads(capsys.readouterr().out) == {"continue": True}
        assert read_json(tmp_path / "latest-prompt.json")["prompt"] == "hello"

    def test_main_bad_payload_still_exits_zero(self, tmp_path, monkeypatch):
        monkeypatch.setattr(config, "HOOKS_DIR", tmp_path)
        monkeypatch.setattr("sys.stdin", io.StringIO("{not json"))
        assert script.main(["--hook-trigger=stop", "--source=claude", "--silent"]) == 0
