"""Tests for routing prompts and responses through the detection service."""

from datetime import timedelta

import pytest

from devark.adapters.base import KNOWN_SOURCES
from devark.adapters.detection import PromptDetectionService
from devark.models import CapturedResponse, CoachingResult, DetectedPrompt, PromptContext, SessionIndex
from devark.sessions.manager import SessionManager
from devark.sessions.unified import UnifiedSessionService
from devark.timeutil import now


class CountingClaudeReader:
    def __init__(self):
        self.index_calls = 0

    def is_available(self):
        return True

    def read_session_index(self, since=None):
        self.index_calls += 1
        return [SessionIndex(
            id="k1",
            source="claude_code",
            timestamp=now() - timedelta(hours=1),
            duration=600,
            project_path="/work/app",
            workspace_name="app",
            prompt_count=2,
        )]


class NoCursorReader:
    def is_ready(self):
        return False

    def initialize(self):
        return False


class FakeCoaching:
    def __init__(self):
        self.responses = []

    def process_response(self, response, prompt_text=None):
        self.responses.append(response)
        return CoachingResult(generated=False, reason="throttled")


def make_prompt(text="fix the login bug", project="/work/app"):
    return DetectedPrompt(
        id="claude_code-1-abc",
        text=text,
        timestamp=now(),
        source=KNOWN_SOURCES["claude_code"],
        context=PromptContext(project_path=project, source_session_id="sess-1"),
    )


def make_response(id="r1", **kwargs):
    return CapturedResponse(id=id, timestamp=now().isoformat(), source="claude_code", response="Fixed it", **kwargs)


@pytest.fixture
def manager(tmp_path):
    return SessionManager(state_path=tmp_path / "state.json", persist=False)


@pytest.fixture
def reader():
    return CountingClaudeReader()


@pytest.fixture
def service(manager, reader):
    unified = UnifiedSessionService(cursor_reader=NoCursorReader(), claude_reader=reader)
    messages = []
    detection = PromptDetectionService(
        manager,
        coaching=FakeCoaching(),
        post_message=lambda kind, data: messages.append(kind),
        unified=unified,
    )
    detection.messages = messages
    return detection


class TestResponseRouting:
    """Tests for handle_response."""

    def test_response_recorded_then_coached(self, service, manager):
        service.handle_prompt(make_prompt())
        service.handle_response(make_response(session_id="sess-1"))

        assert manager.get_active_session().responses[0].id == "r1"
        assert [r.id for r in service.coaching.responses] == ["r1"]
        assert service.messages[-1] == "finalResponseDetected"

    def test_internal_folder_response_dropped(self, service, manager):
        service.handle_prompt(make_prompt())
        service.messages.clear()
        service.handle_response(make_response(cwd="/home/u/.devark/temp-standup"))

        assert manager.get_active_session().responses == []
        assert service.coaching.responses == []
        assert service.messages == []


class TestIndexInvalidation:
    """Write events rebuild the cached session index."""

    def test_cached_without_writes(self, service, reader):
        service.unified.get_session_index()
        service.unified.get_session_index()
        assert reader.index_calls == 1

    def test_new_response(self, service, reader):
        service.handle_prompt(make_prompt())
        service.unified.get_session_index()
        service.handle_response(make_response(session_id="sess-1"))
        service.unified.get_session_index()
        assert reader.index_calls == 2

    @pytest.mark.parametrize("change", ["set", "complete", "clear"])
    def test_goal_change(self, service, manager, reader, change):
        service.handle_prompt(make_prompt())
        if change != "set":
            manager.set_goal("Ship login")
        service.unified.get_session_index()
        calls = reader.index_calls

        if change == "set":
            assert manager.set_goal("Ship login")
        elif change == "complete":
            assert manager.complete_goal() is not None
        else:
            assert manager.clear_goal()
        service.unified.get_session_index()
        assert reader.index_calls == calls + 1
