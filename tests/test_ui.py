"""Tests for dashboard rendering of the store state."""

from datetime import datetime, timezone

from devark.models import UnifiedSession
from devark.state.reducer import Action, initial_state, reduce
from devark.ui.widgets import SessionItem, render_analysis, render_coaching, score_style, truncate


def with_actions(*actions):
    state = initial_state()
    for action in actions:
        state = reduce(state, action)
    return state


class TestRenderAnalysis:
    """Tests for render_analysis."""

    def test_waiting(self):
        plain = render_analysis(initial_state()).plain
        assert "Auto-analyze: on" in plain
        assert "Analyzed today: 0" in plain
        assert "Waiting for a prompt" in plain

    def test_scoring_in_progress(self):
        state = with_actions(Action("SET_CURRENT_PROMPT", "add\nlogin"), Action("START_ANALYSIS"))
        assert "Scoring: add login" in render_analysis(state).plain

    def test_partial_delivery(self):
        state = with_actions(
            Action("SET_CURRENT_PROMPT", "add login"),
            Action("START_ANALYSIS"),
            Action("SCORE_RECEIVED", {"score": 5, "categoryScores": {"clarity": 6}}),
        )
        plain = render_analysis(state).plain
        assert "Score: 5/10" in plain
        assert "(scoring improved version...)" in plain
        assert "clarity: 6  specificity: ?" in plain
        assert "(improving...)" in plain
        assert "Goal: inferring..." in plain

    def test_complete(self):
        state = with_actions(
            Action("SET_CURRENT_PROMPT", "add login"),
            Action("START_ANALYSIS"),
            Action("SCORE_RECEIVED", {"score": 5}),
            Action("ENHANCED_PROMPT_READY", {"improvedVersion": "Add an OAuth login page"}),
            Action("ENHANCED_SCORE_READY", {"improvedScore": 8}),
            Action("GOAL_INFERENCE_READY", {"suggestedGoal": "Ship login"}),
        )
        plain = render_analysis(state).plain
        assert "5/10  →  8/10" in plain
        assert "Add an OAuth login page" in plain
        assert "Goal: Ship login" in plain


class TestRenderCoaching:
    """Tests for render_coaching."""

    def test_empty(self):
        assert "No coaching yet" in render_coaching(initial_state()).plain

    def test_analyzing(self):
        state = with_actions(Action("SET_COACHING_PHASE", "analyzing_response"))
        assert "Analyzing the agent's response" in render_coaching(state).plain

    def test_suggestions(self):
        coaching = {
            "analysis": {"summary": "Fixed the parser"},
            "suggestions": [
                {"title": "Add tests", "type": "test", "description": "Cover parse()", "suggestedPrompt": "Write tests"},
            ],
        }
        plain = render_coaching(with_actions(Action("SET_COACHING", coaching))).plain
        assert "Fixed the parser" in plain
        assert "[1] Add tests  (test)" in plain
        assert "› Write tests" in plain


class TestHelpers:
    """Tests for small rendering helpers."""

    def test_truncate(self):
        assert truncate("abcdef", 5) == "ab..."
        assert truncate("abc", 5) == "abc"

    def test_score_style(self):
        assert score_style(None) == "dim"
        assert score_style(8) == "bold green"
        assert score_style(5) == "bold yellow"
        assert score_style(2) == "bold red"

    def test_session_item_text(self):
        session = UnifiedSession(
            id="claude-k1",
            source="claude_code",
            workspace_name="app",
            workspace_path="/work/app",
            start_time=datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc),
            end_time=datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc),
            duration=30,
            prompt_count=4,
        )
        plain = SessionItem(session)._build_text(100).plain
        assert "◆ app" in plain
        assert "30m   4p" in plain
        assert "(no prompt)" in plain
