"""Tests for the unified session index and loader."""

from datetime import timedelta

import pytest

from devark.models import Message, SessionData, SessionDetails, SessionIndex
from devark.sessions.unified import (
    SOURCE_PREFIXES,
    TTLCache,
    UnifiedSessionService,
    parse_session_id,
    prefix_session_id,
    to_unified_session,
)
from devark.timeutil import now


def index(id, source, hours_ago, prompts=2, project="/work/app", duration=600):
    return SessionIndex(
        id=id,
        source=source,
        timestamp=now() - timedelta(hours=hours_ago),
        duration=duration,
        project_path=project,
        workspace_name=project.rsplit("/", 1)[-1],
        prompt_count=prompts,
    )


def session(id, tool, hours_ago, prompts=("fix the bug",), project="/work/app"):
    messages = []
    for text in prompts:
        messages.append(Message("user", text))
        messages.append(Message("assistant", "ok"))
    return SessionData(
        id=id,
        project_path=project,
        timestamp=now() - timedelta(hours=hours_ago),
        messages=messages,
        duration=1200,
        tool=tool,
    )


class FakeCursorReader:
    def __init__(self):
        self.detail_requests = []

    def is_ready(self):
        return True

    def initialize(self):
        return True

    def get_session_index(self):
        return [index("c1", "cursor", 1), index("c-empty", "cursor", 2, prompts=0)]

    def read_sessions(self, since=None):
        return [session("cursor-c1", "cursor", 1), session("c2", "cursor", 30)]

    def get_session_details(self, raw_id):
        self.detail_requests.append(raw_id)
        return SessionDetails(messages=[Message("user", "hi")])


class FakeClaudeReader:
    def __init__(self, available=True):
        self.available = available
        self.index_calls = 0

    def is_available(self):
        return self.available

    def read_session_index(self, since=None):
        self.index_calls += 1
        return [
            index("k1", "claude_code", 3),
            index("k2", "claude_code", 0.5, project="/home/u/.devark/temp-standup"),
        ]

    def read_sessions(self, since=None):
        return [session("k1", "claude_code", 3), session("k-tools", "claude_code", 4, prompts=("[Tool result] x",))]

    def get_session_details(self, raw_id):
        return None


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def service(clock):
    return UnifiedSessionService(cursor_reader=FakeCursorReader(), claude_reader=FakeClaudeReader(), clock=clock)


class TestSessionIds:
    """Tests for source-prefixed ids."""

    @pytest.mark.parametrize("source", list(SOURCE_PREFIXES))
    def test_round_trip(self, source):
        session_id = prefix_session_id(source, "abc-123")
        assert parse_session_id(session_id) == (source, "abc-123")

    def test_unprefixed(self):
        assert parse_session_id("abc") == (None, "abc")


class TestTTLCache:
    """Tests for TTLCache."""

    def test_expiry(self, clock):
        cache = TTLCache(10, clock)
        cache.set("k", [1])
        clock.now = 10
        assert cache.get("k") == [1]
        clock.now = 10.5
        assert cache.get("k") is None
        assert len(cache) == 0


class TestSessionIndex:
    """Tests for the lightweight index tier."""

    def test_merged_sorted_and_prefixed(self, service):
        ids = [i.id for i in service.get_session_index()]
        assert ids == ["cursor-c1", "claude-k1"]
        for session_id in ids:
            source, raw = parse_session_id(session_id)
            assert prefix_session_id(source, raw) == session_id

    def test_min_prompt_count_zero_keeps_empty(self, service):
        ids = [i.id for i in service.get_session_index(min_prompt_count=0)]
        assert "cursor-c-empty" in ids

    def test_source_filter(self, service):
        assert [i.source for i in service.get_session_index(sources=["claude_code"])] == ["claude_code"]

    def test_cached_until_ttl(self, service, clock):
        service.get_session_index()
        service.get_session_index()
        assert service.claude_reader.index_calls == 1
        clock.now = 61
        service.get_session_index()
        assert service.claude_reader.index_calls == 2

    def test_invalidate(self, service):
        service.get_session_index()
        service.invalidate_cache()
        service.get_session_index()
        assert service.claude_reader.index_calls == 2

    def test_unavailable_claude(self, clock):
        service = UnifiedSessionService(FakeCursorReader(), FakeClaudeReader(available=False), clock=clock)
        assert [i.source for i in service.get_session_index()] == ["cursor"]

    def test_eligible_count(self, service):
        assert service.get_eligible_session_count() == 2


class TestUnifiedSessions:
    """Tests for the heavy tier."""

    def test_default_window_is_last_day(self, service):
        result = service.get_unified_sessions()
        assert [s.id for s in result.sessions] == ["cursor-c1", "claude-k1"]
        assert result.by_source == {"cursor": 1, "claude_code": 1}

    def test_days(self, service):
        result = service.get_sessions_for_days(2)
        assert [s.id for s in result.sessions] == ["cursor-c1", "claude-k1", "cursor-c2"]

    def test_limit(self, service):
        assert len(service.get_sessions_for_days(2, limit=1).sessions) == 1

    def test_source_metadata(self, service):
        sessions = service.get_sessions_for_days(2).sessions
        metadata = UnifiedSessionService.get_source_metadata(sessions)
        assert metadata["cursor"] == {"display_name": "Cursor", "count": 2, "percentage": 67}

    def test_to_unified_session(self):
        unified = to_unified_session("claude_code", session("k1", "claude_code", 0.1, prompts=("a", "b")))
        assert unified.id == "claude-k1"
        assert unified.prompt_count == 2
        assert unified.duration == 20
        assert unified.workspace_name == "app"
        assert unified.status == "active"


class TestSessionDetails:
    """Tests for routing detail lookups by prefix."""

    def test_cursor(self, service):
        details = service.get_session_details("cursor-c1")
        assert details.messages[0].content == "hi"
        assert service.cursor_reader.detail_requests == ["c1"]

    def test_unknown_prefix(self, service):
        assert service.get_session_details("vim-1") is None
