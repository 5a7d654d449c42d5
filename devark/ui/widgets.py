"""UI widgets for the devark dashboard."""

from typing import Optional

from rich.text import Text
from textual.app import ComposeResult
from textual.containers import ScrollableContainer
from textual.widgets import ListItem, Static

from ..adapters.base import get_source_display_name
from ..models import SessionDetails, UnifiedSession

SOURCE_ICONS = {"claude_code": "◆", "cursor": "▲"}
CATEGORIES = ("clarity", "specificity", "context", "actionability")


def truncate(text: str, max_len: int = 100) -> str:
    """Truncate text with ellipsis."""
    if len(text) <= max_len:
        return text
    return text[:max_len - 3] + "..."


def score_style(score) -> str:
    if score is None:
        return "dim"
    if score >= 7:
        return "bold green"
    if score >= 4:
        return "bold yellow"
    return "bold red"


def render_analysis(state: dict) -> Text:
    """Render the co-pilot part of the store: stage flags, score, improvement, goal."""
    text = Text()
    text.append("━━━ Co-Pilot ━━━\n", style="bold cyan")
    text.append("Auto-analyze: ", style="bold")
    text.append("on" if state["auto_analyze_enabled"] else "off", style="green" if state["auto_analyze_enabled"] else "dim")
    text.append("   Analyzed today: ", style="bold")
    text.append(f"{state['analyzed_today']}\n\n")

    analysis = state["current_analysis"]
    if state["is_analyzing"] and not analysis:
        prompt = state["current_prompt"].replace("\n", " ")
        text.append("Scoring: ", style="bold")
        text.append(f"{truncate(prompt, 80)}\n", style="dim")
        return text
    if not analysis:
        text.append("Waiting for a prompt from Claude Code or Cursor...\n", style="dim")
        return text

    text.append("┌─ Prompt ───────────────────────────────\n", style="bold green")
    for line in (analysis.get("text") or "")[:1500].split("\n"):
        text.append("│ ", style="green")
        text.append(f"{line}\n")
    text.append("└───────────────────────────────────────\n\n", style="green")

    score = analysis.get("score")
    text.append("Score: ", style="bold")
    text.append(f"{score if score is not None else '?'}/10", style=score_style(score))
    improved = analysis.get("improvedScore")
    if improved is not None:
        text.append("  →  ", style="dim")
        text.append(f"{improved}/10", style=score_style(improved))
    elif state["is_scoring_enhanced"]:
        text.append("  (scoring improved version...)", style="dim")
    text.append("\n")

    categories = analysis.get("categoryScores") or {}
    if categories:
        text.append("  ".join(f"{name}: {categories.get(name, '?')}" for name in CATEGORIES), style="cyan")
        text.append("\n")

    goal = state["inferred_goal"]
    if goal and goal.get("suggestedGoal"):
        text.append("Goal: ", style="bold")
        text.append(f"{goal['suggestedGoal']}\n", style="yellow")
    elif state["is_inferring_goal"]:
        text.append("Goal: inferring...\n", style="dim")

    text.append("\n")
    text.append("┌─ Improved Prompt ──────────────────────\n", style="bold magenta")
    if analysis.get("improvedVersion"):
        for line in analysis["improvedVersion"][:2000].split("\n"):
            text.append("│ ", style="magenta")
            text.append(f"{line}\n")
    else:
        text.append("│ ", style="magenta")
        text.append("(improving...)\n" if state["is_enhancing"] else "(no improvement)\n", style="dim")
    text.append("└───────────────────────────────────────\n", style="magenta")

    for win in analysis.get("quickWins") or []:
        text.append(f"• {win}\n", style="dim")
    return text


def render_coaching(state: dict) -> Text:
    text = Text()
    phase = state["coaching_phase"]
    coaching = state["current_coaching"]
    if phase == "analyzing_response":
        text.append("Analyzing the agent's response...\n", style="dim")
        return text
    if not coaching:
        text.append("No coaching yet. Suggestions appear after the agent responds.\n", style="dim")
        return text

    analysis = coaching.get("analysis") or {}
    if analysis.get("summary"):
        text.append(f"{analysis['summary']}\n\n", style="italic")
    for i, suggestion in enumerate(coaching.get("suggestions") or [], start=1):
        text.append(f"[{i}] ", style="bold yellow")
        text.append(f"{suggestion.get('title', '')}", style="bold")
        text.append(f"  ({suggestion.get('type', 'follow_up')})\n", style="dim")
        if suggestion.get("description"):
            text.append(f"    {suggestion['description']}\n")
        if suggestion.get("suggestedPrompt"):
            text.append(f"    › {truncate(suggestion['suggestedPrompt'], 200)}\n", style="cyan")
    return text


class SessionItem(ListItem):
    """List item for a unified session."""

    def __init__(self, session: UnifiedSession):
        super().__init__()
        self.session = session
        self._static: Optional[Static] = None

    def compose(self) -> ComposeResult:
        self._static = Static(self._build_text(100))
        yield self._static

    def on_resize(self, event) -> None:
        """Update text when resized."""
        if self._static:
            self._static.update(self._build_text(self.size.width))

    def _build_text(self, width: int) -> Text:
        s = self.session
        text = Text()
        text.append(s.start_time.astimezone().strftime("%m-%d %H:%M"), style="cyan")
        text.append(" │ ", style="dim")
        text.append(f"{SOURCE_ICONS.get(s.source, '?')} ", style="bold")
        text.append(f"{s.workspace_name[:14]:<14}", style="green")
        text.append(" │ ", style="dim")
        text.append(f"{s.duration:>4}m {s.prompt_count:>3}p", style="yellow")
        text.append(" │ ", style="dim")

        first = s.highlights.first_user_message if s.highlights else None
        description = (first or "(no prompt)").replace("\n", " ").strip()
        text.append(truncate(description, max(20, width - 46)), style="white" if first else "dim")
        return text


class InfoPanel(ScrollableContainer, can_focus=True):
    """Scrollable panel that renders one Text block at a time."""

    def update(self, text: Text) -> None:
        for child in list(self.children):
            child.remove()
        self.mount(Static(text, markup=False))

    def show_session(self, session: UnifiedSession, details: Optional[SessionDetails]) -> None:
        text = Text()
        text.append("━━━ Session Details ━━━\n\n", style="bold cyan")
        text.append("Source: ", style="bold")
        text.append(f"{get_source_display_name(session.source)}\n", style="cyan bold")
        text.append("Project: ", style="bold")
        text.append(f"{session.workspace_name}\n")
        text.append("Path: ", style="bold")
        text.append(f"{session.workspace_path}\n", style="dim")
        text.append("Started: ", style="bold")
        text.append(f"{session.start_time.astimezone():%Y-%m-%d %H:%M:%S}\n")
        text.append("Duration: ", style="bold")
        text.append(f"{session.duration} min, {session.prompt_count} prompts\n")
        if session.token_usage:
            text.append("Tokens: ", style="bold")
            text.append(f"{session.token_usage.total_tokens:,}\n", style="yellow")
        text.append("Session ID: ", style="bold")
        text.append(f"{session.id}\n\n", style="dim")

        if details is None:
            text.append("(details unavailable)\n", style="dim")
        else:
            for i, message in enumerate(details.messages[-20:], start=1):
                user = message.role == "user"
                border = "green" if user else "magenta"
                text.append(f"┌─ [{i}] {'User' if user else 'Assistant'} ", style=f"bold {border}")
                text.append("─" * 24 + "\n", style=border)
                for line in truncate(message.content, 1500).split("\n"):
                    text.append("│ ", style=border)
                    text.append(f"{line}\n")
                text.append("└" + "─" * 40 + "\n", style=border)
        self.update(text)
