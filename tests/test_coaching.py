"""Tests for coaching generation, throttling and cooldown."""

import json

import pytest

from devark.copilot.coaching import (
    CoachingConfig,
    CoachingService,
    CoachingStorage,
    parse_suggestions,
)
from devark.copilot.response_analyzer import analyze_response, determine_outcome, extract_entities
from devark.models import CapturedResponse, ToolCall


class FakeLLM:
    def __init__(self, reply=None):
        self.reply = reply
        self.prompts = []

    def is_available(self):
        return self.reply is not None

    def complete(self, prompt, system=None, max_tokens=1000):
        self.prompts.append(prompt)
        return self.reply


class FakeClock:
    def __init__(self, now=10_000.0):
        self.now = now

    def __call__(self):
        return self.now


def make_response(id, **kwargs):
    kwargs.setdefault("response", "I modified `src/app.py` and fixed the bug in the parser.")
    kwargs.setdefault("files_modified", ["src/app.py"])
    kwargs.setdefault("session_id", "sess-1")
    return CapturedResponse(id=id, timestamp="2026-03-01T09:00:00Z", source="claude_code", **kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def service(clock):
    return CoachingService(llm=FakeLLM(), clock=clock)


class TestCoachingService:
    """Tests for CoachingService.process_response."""

    def test_generates_fallback_suggestions(self, service):
        result = service.process_response(make_response("r1"))
        assert result.generated
        types = [s.type for s in result.coaching.suggestions]
        assert types == ["test", "follow_up"]
        assert service.get_current_coaching() is result.coaching

    def test_second_call_within_a_minute_is_throttled(self, service, clock):
        assert service.process_response(make_response("r1")).generated
        clock.now += 60
        result = service.process_response(make_response("r2"))
        assert not result.generated
        assert result.reason == "throttled"

    def test_allowed_after_min_interval(self, service, clock):
        service.process_response(make_response("r1"))
        clock.now += 181
        assert service.process_response(make_response("r2")).generated

    def test_dismiss_starts_cooldown(self, service, clock):
        service.process_response(make_response("r1"))
        service.dismiss_all()
        assert service.get_current_coaching() is None

        clock.now += 5 * 60
        result = service.process_response(make_response("r2"))
        assert not result.generated
        assert result.reason == "cooldown"

        clock.now += 6 * 60
        assert service.process_response(make_response("r3")).generated

    def test_force_bypasses_cooldown(self, service):
        service.dismiss_all()
        assert service.process_response(make_response("r1"), force=True).generated

    def test_duplicate_suppressed_even_with_force(self, service, clock):
        service.process_response(make_response("r1"))
        clock.now += 1000
        result = service.process_response(make_response("r1"), force=True)
        assert result.reason == "duplicate"

    def test_internal_folder_not_coached(self, service):
        result = service.process_response(make_response("r1", cwd="/home/u/.devark/temp-standup"), force=True)
        assert not result.generated
        assert result.reason == "ignored_path"
        assert service.get_current_coaching() is None
        assert service.process_response(make_response("r1")).generated

    def test_internal_workspace_root_not_coached(self, service):
        response = make_response("r1", workspace_roots=["/tmp/devark-hooks"])
        assert service.process_response(response).reason == "ignored_path"

    def test_same_response_id_other_session(self, service, clock):
        service.process_response(make_response("r1"))
        clock.now += 1000
        assert service.process_response(make_response("r1", session_id="sess-2")).generated

    def test_error_response_not_coached(self, service):
        result = service.process_response(make_response("r1", success=False))
        assert result.reason == "error_response"

    def test_disabled(self, clock):
        service = CoachingService(llm=FakeLLM(), coaching_config=CoachingConfig(enabled=False), clock=clock)
        assert service.process_response(make_response("r1")).reason == "throttled"
        assert service.process_response(make_response("r2"), force=True).generated

    def test_no_suggestions(self, service):
        result = service.process_response(make_response("r1", response="Done.", files_modified=[]))
        assert not result.generated
        assert result.reason == "no_suggestions"

    def test_llm_suggestions(self, clock):
        reply = json.dumps([{
            "type": "refactor",
            "title": "Split parse_config",
            "description": "It grew two responsibilities",
            "suggestedPrompt": "Split parse_config in src/app.py into read and validate steps",
            "confidence": 0.8,
        }])
        llm = FakeLLM(reply)
        service = CoachingService(llm=llm, clock=clock)
        result = service.process_response(make_response("r1"), prompt_text="fix the parser")
        assert [s.title for s in result.coaching.suggestions] == ["Split parse_config"]
        assert "fix the parser" in llm.prompts[0]

    def test_listener_notified(self, service):
        received = []
        unsubscribe = service.subscribe(received.append)
        service.process_response(make_response("r1"))
        unsubscribe()
        service.dismiss_all()
        assert len(received) == 1

    def test_state(self, service):
        service.process_response(make_response("r1"))
        service.dismiss_all()
        state = service.get_state()
        assert state["on_cooldown"]
        assert state["cooldown_ends_at"] is not None
        assert state["current_coaching"] is None

    def test_persisted_coaching_reloaded(self, tmp_path, clock):
        storage = CoachingStorage(directory=tmp_path)
        service = CoachingService(llm=FakeLLM(), storage=storage, clock=clock)
        service.process_response(make_response("r1", prompt_id="p1"))

        reloaded = CoachingService(llm=FakeLLM(), storage=CoachingStorage(directory=tmp_path), clock=clock)
        coaching = reloaded.get_coaching_for_prompt("p1")
        assert coaching is not None
        assert coaching.response_id == "r1"
        assert coaching.suggestions[0].type == "test"


class TestParseSuggestions:
    """Tests for parsing LLM coaching replies."""

    def test_filters_and_caps(self):
        items = [
            {"type": "test", "title": "a", "suggestedPrompt": "x", "confidence": 0.9},
            {"type": "weird", "title": "b", "suggestedPrompt": "y"},
            {"type": "test", "title": "low", "suggestedPrompt": "z", "confidence": 0.1},
            {"type": "test", "title": "missing prompt"},
            {"type": "test", "title": "c", "suggestedPrompt": "w"},
            {"type": "test", "title": "d", "suggestedPrompt": "v"},
        ]
        suggestions = parse_suggestions("Here you go:\n" + json.dumps(items))
        assert [s.title for s in suggestions] == ["a", "b", "c"]
        assert suggestions[1].type == "follow_up"

    def test_no_array(self):
        assert parse_suggestions("nothing useful") == []


class TestResponseAnalyzer:
    """Tests for heuristic response analysis."""

    def test_outcomes(self):
        assert determine_outcome(make_response("r")) == "success"
        assert determine_outcome(make_response("r", success=False)) == "error"
        assert determine_outcome(make_response("r", success=False, reason="cancelled")) == "partial"
        assert determine_outcome(make_response("r", success=False, reason="aborted", response="")) == "blocked"

    def test_success_flag_wins_over_cancel_marker(self):
        assert determine_outcome(make_response("r", reason="cancelled")) == "success"
        assert determine_outcome(make_response("r", stop_reason="aborted", response="")) == "success"

    def test_entities_from_tool_calls_and_text(self):
        response = make_response(
            "r",
            files_modified=[],
            tool_calls=[ToolCall(name="edit", arguments={"file_path": "./lib/util.py"})],
            response="Updated `README.md` too.",
        )
        assert extract_entities(response) == ["lib/util.py", "README.md"]

    def test_goal_progress_only_with_goal(self):
        response = make_response("r")
        assert analyze_response(response).goal_progress is None
        progress = analyze_response(response, prompts_since_goal=2).goal_progress
        assert progress.before == 10
        assert progress.after == 20
