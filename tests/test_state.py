"""Tests for the reducer, the store and the message bridge."""

import pytest

from devark.state.bridge import MessageBridge, translate
from devark.state.reducer import Action, Store, initial_state, reduce


def run(*actions, state=None):
    state = state if state is not None else initial_state()
    for action in actions:
        state = reduce(state, action)
    return state


class TestReducer:
    """Tests for the pure reducer."""

    def test_unknown_action_returns_same_object(self):
        state = initial_state()
        assert reduce(state, Action("NOPE")) is state

    def test_does_not_mutate(self):
        state = initial_state()
        new = reduce(state, Action("SET_CURRENT_PROMPT", "hello"))
        assert state["current_prompt"] == ""
        assert new["current_prompt"] == "hello"

    def test_analysis_stages(self):
        state = run(Action("SET_CURRENT_PROMPT", "add a login page with oauth"), Action("START_ANALYSIS"))
        assert state["is_analyzing"] and state["is_enhancing"] and state["is_inferring_goal"]

        state = run(Action("SCORE_RECEIVED", {"score": 6, "promptId": "p1"}), state=state)
        assert not state["is_analyzing"]
        assert state["is_enhancing"]
        assert state["current_analysis"]["score"] == 6
        assert state["current_analysis"]["text"] == "add a login page with oauth"

        state = run(Action("ENHANCED_PROMPT_READY", {"improvedVersion": "better"}), state=state)
        assert not state["is_enhancing"]
        assert state["current_analysis"]["improvedVersion"] == "better"

        state = run(Action("ENHANCED_SCORE_READY", {"improvedScore": 9}), state=state)
        assert not state["is_scoring_enhanced"]
        assert state["current_analysis"]["improvedScore"] == 9

        state = run(Action("GOAL_INFERENCE_READY", {"suggestedGoal": "Login"}), state=state)
        assert not state["is_inferring_goal"]
        assert state["inferred_goal"] == {"suggestedGoal": "Login"}

    def test_enhanced_without_analysis_ignored(self):
        state = initial_state()
        assert reduce(state, Action("ENHANCED_PROMPT_READY", {"improvedVersion": "x"})) is state

    def test_analysis_complete_counts_and_caps_history(self):
        state = initial_state()
        for i in range(25):
            state = reduce(state, Action("ANALYSIS_COMPLETE", {"id": str(i)}))
        assert state["analyzed_today"] == 25
        assert len(state["recent_prompts"]) == 20
        assert state["recent_prompts"][0] == {"id": "24"}

    def test_truncated_text(self):
        state = run(Action("SET_CURRENT_PROMPT", "x" * 60), Action("SCORE_RECEIVED", {"score": 1}))
        assert state["current_analysis"]["truncatedText"] == "x" * 50 + "..."

    def test_coaching_per_session(self):
        coaching = {"sessionId": "s1", "suggestions": [{"id": "a"}, {"id": "b"}]}
        state = run(Action("SET_COACHING", coaching))
        assert state["coaching_by_session"]["s1"] is coaching

        state = run(Action("SELECT_SESSION", "s2"), state=state)
        assert state["current_coaching"] is None
        state = run(Action("SELECT_SESSION", "s1"), Action("DISMISS_COACHING_SUGGESTION", "a"), state=state)
        assert [s["id"] for s in state["current_coaching"]["suggestions"]] == ["b"]

    def test_custom_range_clears_custom_summary(self):
        state = run(Action("SET_CUSTOM_SUMMARY", {"x": 1}), Action("SET_CUSTOM_DATE_RANGE", {"start": "a"}))
        assert state["custom_summary"] is None

    def test_toggles(self):
        state = run(Action("TOGGLE_AUTO_ANALYZE"))
        assert state["auto_analyze_enabled"] is False
        assert run(Action("TOGGLE_AUTO_ANALYZE"), state=state)["auto_analyze_enabled"] is True

    def test_first_run(self):
        assert run(Action("SET_FIRST_RUN", True))["current_view"] == "onboarding"
        assert run(Action("SET_FIRST_RUN", False))["current_view"] == "main"

    def test_session_edits(self):
        projects = [{"id": "p", "sessions": [{"id": "s1"}, {"id": "s2"}]}]
        state = run(
            Action("SET_PROJECTS", projects),
            Action("SET_ACTIVE_SESSION", "s2"),
            Action("RENAME_SESSION", {"sessionId": "s1", "customName": "Auth work"}),
            Action("DELETE_SESSION", {"sessionId": "s2"}),
        )
        assert state["projects"][0]["sessions"] == [{"id": "s1", "customName": "Auth work"}]
        assert state["active_session_id"] is None
        assert projects[0]["sessions"] == [{"id": "s1"}, {"id": "s2"}]

    def test_saved_prompt_load(self):
        state = run(Action("LOAD_SAVED_PROMPT", {"id": "sp", "text": "hello", "improvedScore": 7}))
        assert state["prompt_lab"]["current_prompt"] == "hello"
        assert state["prompt_lab"]["current_analysis"]["score"] == 7

    def test_saved_prompt_without_analysis(self):
        state = run(Action("LOAD_SAVED_PROMPT", {"id": "sp", "text": "hello"}))
        assert state["prompt_lab"]["current_analysis"] is None


class TestStore:
    """Tests for Store."""

    def test_subscribers_only_on_change(self):
        store = Store()
        seen = []
        store.subscribe(lambda state, action: seen.append(action.type))
        store.dispatch(Action("NOPE"))
        store.dispatch(Action("TOGGLE_AUTO_ANALYZE"))
        assert seen == ["TOGGLE_AUTO_ANALYZE"]

    def test_unsubscribe(self):
        store = Store()
        seen = []
        unsubscribe = store.subscribe(lambda state, action: seen.append(action.type))
        unsubscribe()
        store.dispatch(Action("TOGGLE_AUTO_ANALYZE"))
        assert seen == []

    def test_failing_subscriber_does_not_block_others(self):
        store = Store()
        seen = []

        def broken(state, action):
            raise RuntimeError("boom")

        store.subscribe(broken)
        store.subscribe(lambda state, action: seen.append(action.type))
        state = store.dispatch(Action("TOGGLE_AUTO_ANALYZE"))
        assert seen == ["TOGGLE_AUTO_ANALYZE"]
        assert state is store.state


class TestBridge:
    """Tests for message translation."""

    @pytest.fixture
    def bridge(self):
        return MessageBridge()

    def test_prompt_then_score(self, bridge):
        bridge.post_message("promptAnalyzing", {"text": "refactor the parser"})
        bridge.post_message("scoreReceived", {"score": 7})
        state = bridge.store.state
        assert state["current_analysis"]["text"] == "refactor the parser"
        assert not state["is_analyzing"]

    def test_empty_prompt_ignored(self):
        assert translate("promptAnalyzing", {}, initial_state()) == []

    def test_unknown_message(self):
        assert translate("somethingElse", {"a": 1}, initial_state()) == []

    def test_final_response_then_coaching(self, bridge):
        bridge.post_message("finalResponseDetected", {})
        assert bridge.store.state["coaching_phase"] == "analyzing_response"
        bridge.post_message("coachingUpdated", {"coaching": {"suggestions": []}})
        assert bridge.store.state["coaching_phase"] == "idle"
        assert bridge.store.state["current_coaching"] == {"suggestions": []}

    def test_analysis_failed(self, bridge):
        bridge.post_message("promptAnalyzing", {"text": "hello"})
        bridge.post_message("analysisFailed", {"error": "x"})
        analysis = bridge.store.state["current_analysis"]
        assert analysis["score"] == 0
        assert analysis["text"] == "hello"

    def test_cancelled_summary_dropped(self, bridge):
        bridge.store.dispatch(Action("CANCEL_LOADING_SUMMARY"))
        bridge.post_message("summaryData", {"type": "today", "summary": {"n": 1}})
        assert bridge.store.state["today_summary"] is None

    def test_summary(self, bridge):
        bridge.store.dispatch(Action("START_LOADING_SUMMARY", "Loading"))
        bridge.post_message("summaryData", {"type": "weekend", "summaries": [1, 2]})
        assert bridge.store.state["weekend_recap"] == [1, 2]
        assert not bridge.store.state["is_loading_summary"]

    def test_outbox(self):
        bridge = MessageBridge(outbox_size=2)
        for i in range(3):
            bridge.post_message("editorInfo", {"i": i})
        assert bridge.drain() == [("editorInfo", {"i": 1}), ("editorInfo", {"i": 2})]
        assert bridge.drain() == []
