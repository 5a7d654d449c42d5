"""Tests for the Claude Code and Cursor session readers."""

import json
import shutil
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

import pytest

from devark.models import Message
from devark.readers.claude_code import ClaudeSessionReader, parse_jsonl_lines, should_ignore_project_folder
from devark.readers.cursor import CursorSessionReader, content_hash, normalize_message
from devark.readers.prompts import count_actual_user_prompts, detect_slash_command, filter_image_content
from devark.readers.session_utils import calculate_duration, detect_language, extract_languages, truncate_text
from devark.sessions.unified import UnifiedSessionService

FIXTURES = Path(__file__).parent / "fixtures"
SESSION_ID = "-home-user-webapp/test-claude-session.jsonl/sess-abc"


def at(minute, hour=9):
    return datetime(2026, 3, 1, hour, minute, tzinfo=timezone.utc)


class TestClaudeSessionReader:
    """Tests for Claude Code transcript parsing."""

    @pytest.fixture
    def projects_dir(self, tmp_path):
        project_dir = tmp_path / "projects" / "-home-user-webapp"
        project_dir.mkdir(parents=True)
        shutil.copy(FIXTURES / "claude_code_session.jsonl", project_dir / "test-claude-session.jsonl")
        shutil.copy(FIXTURES / "claude_code_session.jsonl", project_dir / "agent-123.jsonl")
        ignored = tmp_path / "projects" / "-tmp-devark-hooks"
        ignored.mkdir()
        shutil.copy(FIXTURES / "claude_code_session.jsonl", ignored / "other.jsonl")
        return tmp_path / "projects"

    @pytest.fixture
    def reader(self, projects_dir):
        return ClaudeSessionReader(projects_dir=projects_dir)

    def test_unavailable(self, tmp_path):
        reader = ClaudeSessionReader(projects_dir=tmp_path / "missing")
        assert not reader.is_available()
        assert reader.read_sessions() == []

    def test_parse_session_fixture(self, reader):
        sessions = reader.read_sessions()
        assert len(sessions) == 1
        session = sessions[0]

        assert session.id == SESSION_ID
        assert session.claude_session_id == "sess-abc"
        assert session.project_path == "/home/user/webapp"
        assert session.timestamp == at(0)
        assert session.duration == 600
        assert session.git_branch == "feature/auth"
        assert len(session.messages) == 6
        assert session.messages[2].content == "[Tool result]"

    def test_model_and_planning(self, reader):
        session = reader.read_sessions()[0]
        assert session.model_info.primary_model == "claude-sonnet-4"
        assert session.model_info.model_switches == 1
        assert session.planning_mode_info.planning_cycles == 1

    def test_edited_files_and_tokens(self, reader):
        session = reader.read_sessions()[0]
        assert session.metadata["editedFiles"] == ["src/auth.py"]
        assert session.metadata["languages"] == ["Python"]
        assert session.token_usage.source == "api"
        assert session.token_usage.input_tokens == 300
        assert session.token_usage.output_tokens == 130

    def test_highlights(self, reader):
        highlights = reader.read_sessions()[0].highlights
        assert highlights.first_user_message == "Add authentication to the webapp using JWT tokens"
        assert highlights.last_user_message == "Also add tests for the login flow"

    def test_index(self, reader):
        [index] = reader.read_session_index()
        assert index.id == SESSION_ID
        assert index.prompt_count == 2
        assert index.duration == 600
        assert index.workspace_name == "webapp"

    def test_index_reads_only_head_and_tail_of_large_transcript(self, tmp_path, monkeypatch):
        monkeypatch.setattr("devark.readers.claude_code.INDEX_WINDOW_BYTES", 2048)

        def entry(role, text, minute, hour=9):
            return json.dumps({
                "type": role,
                "sessionId": "sess-big",
                "cwd": "/home/user/big",
                "timestamp": f"2026-03-01T{hour:02d}:{minute:02d}:00.000Z",
                "message": {"role": role, "content": text},
            })

        lines = [entry("user", "Start the migration", 0)]
        lines += [entry("assistant", f"Working through step {n} of the migration plan", 30) for n in range(40)]
        lines.append(entry("user", "A prompt deep in the middle", 31))
        lines += [entry("assistant", f"Continuing with step {n} of the migration plan", 32) for n in range(40)]
        lines.append(entry("user", "Wrap it up", 0, hour=11))
        project_dir = tmp_path / "projects" / "-home-user-big"
        project_dir.mkdir(parents=True)
        (project_dir / "big.jsonl").write_text("\n".join(lines) + "\n")

        [index] = ClaudeSessionReader(projects_dir=tmp_path / "projects").read_session_index()
        assert index.duration == 7200
        assert index.prompt_count == 2

    def test_since_filter(self, reader):
        assert reader.read_sessions(since=at(30)) == []

    def test_project_filter(self, reader):
        assert reader.read_sessions(project_path="/home/user/other") == []
        assert len(reader.read_sessions(project_path="/HOME/user")) == 1

    def test_details(self, reader):
        details = reader.get_session_details(SESSION_ID)
        assert len(details.messages) == 6
        assert details.file_context == ["src/auth.py"]
        assert reader.get_session_details("bad-id") is None

    def test_session_by_id(self, reader):
        assert reader.get_session_by_id("sess-abc").id == SESSION_ID

    def test_truncated_tail_line_recovered(self):
        lines = ['{"a": 1}', "not json", '{"b": [1, 2,]}']
        assert list(parse_jsonl_lines(lines)) == [{"a": 1}, {"b": [1, 2]}]

    def test_ignored_folder(self):
        assert should_ignore_project_folder("-Users-dev-.devark-temp-standup")
        assert not should_ignore_project_folder("-Users-dev-webapp")


def make_cursor_db(path):
    conn = sqlite3.connect(path)
    conn.execute("CREATE TABLE cursorDiskKV (key TEXT PRIMARY KEY, value TEXT)")
    rows = {
        "composerData:c1": {
            "workspacePath": "/work/app",
            "createdAt": "2026-03-01T10:00:00Z",
            "messages": [
                {"id": "m1", "role": "user", "content": "Refactor the parser module", "timestamp": "2026-03-01T10:00:00Z"},
                {"id": "m2", "role": "assistant", "content": "Done refactoring", "timestamp": "2026-03-01T10:04:00Z"},
            ],
        },
        "composerData:c2": {"workspacePath": "/work/api", "createdAt": "2026-03-02T10:00:00Z"},
        "composerData:c3": {
            "workspacePath": "/work/app",
            "createdAt": "2026-03-03T10:00:00Z",
            "messages": [
                {"id": "m4", "role": "assistant", "content": "Here is the summary you asked for"},
                {"id": "m5", "role": "user", "content": "[Tool result]"},
            ],
        },
        "bubbleId:c2:001": {"type": 1, "text": "Add an endpoint"},
        "bubbleId:c2:002": {"type": 2, "text": "Endpoint added"},
    }
    for key, value in rows.items():
        conn.execute("INSERT INTO cursorDiskKV VALUES (?, ?)", (key, json.dumps(value)))
    conn.commit()
    conn.close()


class TestCursorSessionReader:
    """Tests for reading Cursor's composer database."""

    @pytest.fixture
    def reader(self, tmp_path):
        path = tmp_path / "state.vscdb"
        make_cursor_db(path)
        reader = CursorSessionReader(db_path=path)
        yield reader
        reader.dispose()

    def test_missing_database(self, tmp_path):
        reader = CursorSessionReader(db_path=tmp_path / "none.vscdb")
        assert not reader.initialize()
        assert reader.read_sessions() == []

    def test_read_sessions(self, reader):
        sessions = reader.read_sessions()
        assert [s.id for s in sessions] == ["cursor-c1", "cursor-c2", "cursor-c3"]
        first = sessions[0]
        assert first.project_path == "/work/app"
        assert first.duration == 240
        assert [m.role for m in first.messages] == ["user", "assistant"]

    def test_bubble_fallback(self, reader):
        reader.initialize()
        messages = reader.get_all_messages_for_session("c2")
        assert [(m.role, m.content) for m in messages] == [("user", "Add an endpoint"), ("assistant", "Endpoint added")]

    def test_index(self, reader):
        reader.initialize()
        index = reader.get_session_index()
        assert [i.id for i in index] == ["c3", "c2", "c1"]
        assert index[2].workspace_name == "app"

    def test_prompt_count_is_actual_user_prompts(self, reader):
        reader.initialize()
        counts = {i.id: i.prompt_count for i in reader.get_session_index()}
        assert counts == {"c1": 1, "c2": 1, "c3": 0}
        assert {s.session_id: s.prompt_count for s in reader.get_active_sessions()} == counts

    def test_unified_index_drops_sessions_without_prompts(self, reader, tmp_path):
        service = UnifiedSessionService(cursor_reader=reader, claude_reader=ClaudeSessionReader(tmp_path / "none"))
        assert [i.id for i in service.get_session_index()] == ["cursor-c2", "cursor-c1"]

    def test_details(self, reader):
        reader.initialize()
        details = reader.get_session_details("c1")
        assert details.messages[0].content == "Refactor the parser module"
        assert reader.get_session_details("nope") is None

    def test_details_fall_back_to_bubbles(self, reader):
        reader.initialize()
        details = reader.get_session_details("c2")
        assert [(m.role, m.content) for m in details.messages] == [
            ("user", "Add an endpoint"),
            ("assistant", "Endpoint added"),
        ]

    def test_session_by_id(self, reader):
        assert reader.get_session_by_id("cursor-c1").id == "cursor-c1"

    def test_message_without_id_gets_stable_hash(self):
        first = normalize_message({"role": "user", "content": "hello"})
        second = normalize_message({"role": "user", "content": "hello"})
        assert first.id == second.id == f"msg-{content_hash('hello', 'user', '')}"

    def test_system_and_empty_messages_dropped(self):
        assert normalize_message({"role": "system", "content": "x"}) is None
        assert normalize_message({"role": "user", "content": "  "}) is None


class TestPromptHelpers:
    """Tests for prompt classification helpers."""

    def test_count_actual_prompts(self):
        messages = [
            Message("user", "fix it"),
            Message("user", "[Tool result]"),
            Message("user", "[Tool: Edit]"),
            Message("assistant", "done"),
            {"role": "user", "content": "again"},
        ]
        assert count_actual_user_prompts(messages) == 2

    def test_slash_command(self):
        command = detect_slash_command("/work-on-item VIB-123")
        assert command.is_slash_command
        assert command.command_name == "work-on-item"
        assert command.arguments == "VIB-123"
        assert not detect_slash_command("fix /etc/hosts").is_slash_command

    def test_filter_image_content(self):
        content = [
            {"type": "text", "text": "look"},
            {"type": "image"},
            {"type": "image"},
            {"type": "tool_use", "name": "Read"},
        ]
        assert filter_image_content(content) == "look\n[Tool: Read]\n[2 image attachments]"


class TestSessionUtils:
    """Tests for duration and language helpers."""

    def test_idle_gaps_excluded(self):
        messages = [Message("user", "a", at(0)), Message("assistant", "b", at(10)), Message("user", "c", at(50))]
        assert calculate_duration(messages) == 600

    def test_languages(self):
        assert detect_language("Dockerfile") == "Docker"
        assert detect_language(".bashrc") is None
        assert extract_languages(["a.py", "b.ts", "c.py"]) == ["Python", "TypeScript"]

    def test_truncate_prefers_word_break(self):
        assert truncate_text("word " * 30, 50) == "word word word word word word word word word..."
