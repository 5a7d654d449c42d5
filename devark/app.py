"""devark dashboard TUI."""

import logging
import threading
from typing import Optional

from rich.text import Text
from textual import on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.widgets import Footer, Header, ListView, Static

from .models import UnifiedSession, to_jsonable
from .runtime import Runtime
from .sessions.summary import SummaryService
from .state.reducer import Action, State
from .ui import APP_CSS, InfoPanel, SessionItem, render_analysis, render_coaching

logger = logging.getLogger(__name__)


class DevArkDashboard(App):
    """Recent sessions on the left, live co-pilot analysis and coaching on the right."""

    CSS = APP_CSS

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("a", "toggle_auto_analyze", "Auto-analyze"),
        Binding("d", "dismiss_coaching", "Dismiss"),
        Binding("r", "refresh_sessions", "Refresh"),
        Binding("s", "daily_summary", "Summary"),
        Binding("escape", "show_copilot", "Co-pilot"),
        Binding("j", "cursor_down", "Down", show=False),
        Binding("k", "cursor_up", "Up", show=False),
    ]

    def __init__(self, runtime: Optional[Runtime] = None, days: int = 1):
        super().__init__()
        self.runtime = runtime
        self.days = days
        self.sessions: list[UnifiedSession] = []
        self._showing_session = False
        self._unsubscribe = None
        self._ui_thread: Optional[int] = None

    @property
    def store(self):
        return self.runtime.bridge.store

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        with Horizontal():
            with Vertical(id="left-container"):
                with Vertical(id="session-container"):
                    yield Static("[bold]Sessions[/] [dim](newest first)[/]", id="session-header", classes="panel-header")
                    yield ListView(id="session-list")
                yield Static("", id="status-bar")
            with Vertical(id="right-container"):
                with Vertical(id="copilot-container"):
                    yield InfoPanel(id="copilot-panel")
                with Vertical(id="coaching-container"):
                    yield Static("[bold]Coaching[/]", id="coaching-header", classes="panel-header")
                    yield InfoPanel(id="coaching-panel")
        yield Footer()

    def on_mount(self):
        self.title = "devark"
        self._ui_thread = threading.get_ident()
        if self.runtime is None:
            self.runtime = Runtime()
        self._unsubscribe = self.store.subscribe(self._on_state_changed)
        self._render_state(self.store.state)
        self._start_runtime()
        self._load_sessions_background()

    def on_unmount(self):
        if self._unsubscribe:
            self._unsubscribe()
        if self.runtime is not None:
            self.runtime.stop()

    @work(thread=True)
    def _start_runtime(self):
        results = self.runtime.start()
        active = [source for source, ok in results.items() if ok]
        self.call_from_thread(self._set_status, f"Watching: {', '.join(active) or 'nothing'}")

    # --- Store rendering ---

    def _on_state_changed(self, state: State, action: Action) -> None:
        # watcher and pipeline threads dispatch too
        if threading.get_ident() == self._ui_thread:
            self._render_state(state)
        else:
            self.call_from_thread(self._render_state, state)

    def _render_state(self, state: State) -> None:
        if not self._showing_session:
            self.query_one("#copilot-panel", InfoPanel).update(render_analysis(state))
        self.query_one("#coaching-panel", InfoPanel).update(render_coaching(state))
        container = self.query_one("#coaching-container")
        if state["response_analysis_enabled"]:
            container.remove_class("dimmed")
        else:
            container.add_class("dimmed")

    def _set_status(self, message: str) -> None:
        self.query_one("#status-bar", Static).update(Text(message, style="dim"))

    # --- Sessions ---

    @work(exclusive=True, thread=True)
    def _load_sessions_background(self):
        self.call_from_thread(self._set_status, "Loading sessions...")
        try:
            result = self.runtime.unified.get_sessions_for_days(self.days)
        except Exception as e:
            logger.error(f"Failed to load sessions: {e}")
            self.call_from_thread(self.notify, f"Loading sessions failed: {e}", severity="error")
            return
        self.call_from_thread(self._on_sessions_loaded, result.sessions)

    def _on_sessions_loaded(self, sessions: list[UnifiedSession]):
        self.sessions = sessions
        session_list = self.query_one("#session-list", ListView)
        session_list.clear()
        for session in sessions:
            session_list.append(SessionItem(session))
        counts = ", ".join(
            f"{meta['display_name']}: {meta['count']}"
            for meta in self.runtime.unified.get_source_metadata(sessions).values()
        )
        self._set_status(f"{len(sessions)} sessions" + (f" ({counts})" if counts else ""))
        if sessions:
            session_list.index = 0

    @on(ListView.Highlighted, "#session-list")
    def on_session_highlighted(self, event: ListView.Highlighted):
        if not isinstance(event.item, SessionItem):
            return
        session = event.item.session
        self.store.dispatch(Action("SELECT_SESSION", session.id))
        self._show_session_details(session)

    @work(exclusive=True, thread=True, group="details")
    def _show_session_details(self, session: UnifiedSession):
        details = self.runtime.unified.get_session_details(session.id)
        self.call_from_thread(self._display_session, session, details)

    def _display_session(self, session, details):
        self._showing_session = True
        self.query_one("#copilot-panel", InfoPanel).show_session(session, details)

    # --- Actions ---

    def action_show_copilot(self):
        self._showing_session = False
        self._render_state(self.store.state)

    def action_toggle_auto_analyze(self):
        state = self.store.dispatch(Action("TOGGLE_AUTO_ANALYZE"))
        self.runtime.set_auto_analyze(state["auto_analyze_enabled"])
        self.notify(f"Auto-analyze {'on' if state['auto_analyze_enabled'] else 'off'}")

    def action_dismiss_coaching(self):
        if not self.store.state["current_coaching"]:
            return
        self.runtime.coaching.dismiss_all()
        self.store.dispatch(Action("SET_COACHING", None))
        self.notify("Coaching dismissed")

    def action_refresh_sessions(self):
        self.runtime.unified.invalidate_cache()
        self._load_sessions_background()

    @work(exclusive=True, thread=True, group="summary")
    def action_daily_summary(self):
        self.call_from_thread(self.notify, "Building today's summary...")
        summary = SummaryService(self.runtime.unified, self.runtime.llm).daily()
        self.store.dispatch(Action("SET_TODAY_SUMMARY", to_jsonable(summary)))
        self.call_from_thread(
            self.notify,
            summary.insight or f"{summary.total_sessions} sessions, {summary.total_prompts} prompts, {summary.coding_hours}h",
            title="Today",
            timeout=10,
        )

    def action_cursor_down(self):
        self.query_one("#session-list", ListView).action_cursor_down()

    def action_cursor_up(self):
        self.query_one("#session-list", ListView).action_cursor_up()
