"""Coaching suggestions after each agent response.

Throttled to one coaching per ``min_interval`` seconds; dismissing coaching
starts a longer cooldown. Only ``force`` bypasses both. A response is
coached at most once per (response id, session id) pair.
"""

import json
import logging
import re
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Callable, Optional

from .. import config
from ..fs import FileSystem
from ..ignore_paths import should_ignore_path
from ..models import CapturedResponse, CoachingData, CoachingResult, CoachingSuggestion, ResponseAnalysis, to_jsonable
from ..safe_json import safe_read_json_file
from ..sessions.manager import SessionManager
from ..timeutil import now
from .base import CopilotTool
from .response_analyzer import analyze_response

logger = logging.getLogger(__name__)

MAX_COACHING_ENTRIES = 50
MAX_SEEN_RESPONSES = 500
RETENTION_DAYS = 7
MIN_CONFIDENCE = 0.3
MAX_SUGGESTIONS = 3

SUGGESTION_TYPES = (
    "follow_up",
    "test",
    "error_prevention",
    "documentation",
    "refactor",
    "goal_alignment",
    "celebration",
)

COACHING_SYSTEM_PROMPT = """You are an expert coding coach analyzing a developer's AI-assisted coding session.

CRITICAL RULES:
1. NEVER give generic advice like "add tests" or "improve documentation"
2. ALWAYS reference specific files, functions, or code from the context provided
3. ALWAYS explain WHY the suggestion matters for THIS specific work
4. Make suggestions that build directly on what was just accomplished
5. If a goal is set, prioritize suggestions that advance the goal
6. Consider what the developer's prompt was trying to achieve"""

CoachingListener = Callable[[CoachingData], None]


@dataclass
class CoachingConfig:
    min_interval: float = 3 * 60.0
    cooldown_duration: float = 10 * 60.0
    enabled: bool = True


def _safe_key(key: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]", "_", key)


def is_ignored_response(response: CapturedResponse) -> bool:
    """True when the response came from one of devark's own temp workspaces."""
    return any(should_ignore_path(path) for path in (response.cwd, *response.workspace_roots))


class CoachingStorage:
    """One JSON file per coaching under ~/.devark/coaching, kept for 7 days."""

    def __init__(self, directory: Optional[Path] = None, fs: Optional[FileSystem] = None):
        self.directory = Path(directory or config.COACHING_DIR)
        self.fs = fs or FileSystem()

    def path_for(self, key: str) -> Path:
        return self.directory / f"{_safe_key(key)}.json"

    def save(self, key: str, coaching: CoachingData) -> None:
        try:
            self.fs.write_text(self.path_for(key), json.dumps(to_jsonable(coaching), indent=2))
        except OSError as e:
            logger.warning(f"Failed to save coaching {key}: {e}")

    def load(self, key: str) -> Optional[CoachingData]:
        result = safe_read_json_file(self.path_for(key), default=None, context="CoachingStorage")
        if not isinstance(result.data, dict):
            return None
        try:
            return CoachingData.from_dict(result.data)
        except (KeyError, TypeError, ValueError) as e:
            logger.debug(f"Ignoring malformed coaching file {key}: {e}")
            return None

    def recent(self, limit: int = MAX_COACHING_ENTRIES) -> list[tuple[str, CoachingData]]:
        """Newest-first coachings still within the retention window."""
        if not self.directory.exists():
            return []
        entries = []
        for path in self.directory.glob("*.json"):
            coaching = self.load(path.stem)
            if coaching is not None:
                entries.append((path.stem, coaching))
        entries.sort(key=lambda e: e[1].timestamp, reverse=True)
        return entries[:limit]

    def cleanup(self) -> int:
        """Delete coaching files older than the retention window."""
        if not self.directory.exists():
            return 0
        cutoff = time.time() - RETENTION_DAYS * 24 * 3600
        removed = 0
        for path in self.directory.glob("*.json"):
            try:
                if path.stat().st_mtime < cutoff:
                    path.unlink()
                    removed += 1
            except OSError:
                continue
        if removed:
            logger.debug(f"Removed {removed} expired coaching files")
        return removed


def parse_suggestions(
    content: str,
    min_confidence: float = MIN_CONFIDENCE,
    max_suggestions: int = MAX_SUGGESTIONS,
) -> list[CoachingSuggestion]:
    """Parse the first JSON array in an LLM reply into suggestions."""
    match = re.search(r"\[[\s\S]*\]", content or "")
    if not match:
        return []
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError:
        return []
    if not isinstance(parsed, list):
        return []

    stamp = int(time.time() * 1000)
    suggestions = []
    for i, item in enumerate(parsed):
        if not isinstance(item, dict) or not item.get("title") or not item.get("suggestedPrompt"):
            continue
        try:
            confidence = float(item.get("confidence", 0.5))
        except (TypeError, ValueError):
            confidence = 0.5
        if confidence < min_confidence:
            continue
        kind = item.get("type")
        suggestions.append(CoachingSuggestion(
            id=f"suggestion-{stamp}-{i}",
            type=kind if kind in SUGGESTION_TYPES else "follow_up",
            title=str(item["title"])[:100],
            description=str(item.get("description") or "")[:300],
            suggested_prompt=str(item["suggestedPrompt"])[:1000],
            confidence=max(0.0, min(1.0, confidence)),
            reasoning=str(item.get("reasoning") or "")[:300],
        ))
    return suggestions[:max_suggestions]


def fallback_suggestions(analysis: ResponseAnalysis, max_suggestions: int = MAX_SUGGESTIONS) -> list[CoachingSuggestion]:
    """Rule-based suggestions for when no LLM is reachable."""
    stamp = int(time.time() * 1000)
    files = analysis.entities_modified
    suggestions = []

    if files:
        named = ", ".join(files[:3])
        suggestions.append(CoachingSuggestion(
            id=f"fallback-test-{stamp}",
            type="test",
            title="Add tests for changes",
            description=f"Cover the changes in {named} with tests to make sure they work correctly.",
            suggested_prompt=f"Write unit tests for the changes in {named}. Cover the main functionality and edge cases.",
            confidence=0.6,
            reasoning="Files were modified without explicit test updates",
        ))

    if analysis.outcome == "success" and "Bug Fix" in analysis.topics_addressed:
        suggestions.append(CoachingSuggestion(
            id=f"fallback-followup-{stamp}",
            type="follow_up",
            title="Verify the fix",
            description="Test the bug fix to ensure it works as expected.",
            suggested_prompt="Test the bug fix we just made. Verify it works correctly and doesn't introduce any regressions.",
            confidence=0.7,
            reasoning="Bug fixes should be verified",
        ))

    if analysis.outcome == "success" and len(files) > 1:
        suggestions.append(CoachingSuggestion(
            id=f"fallback-celebration-{stamp}",
            type="celebration",
            title=f"Nice work across {len(files)} files",
            description=analysis.summary[:300],
            suggested_prompt="Summarize the changes we just made and list anything left to finish.",
            confidence=0.5,
            reasoning="Multi-file change completed successfully",
        ))

    return suggestions[:max_suggestions]


class CoachingService(CopilotTool):
    """Turns captured responses into coaching, with throttle and cooldown."""

    tool_name = "CoachingService"
    _instance = None
    _instance_lock = threading.Lock()

    def __init__(
        self,
        llm=None,
        session_manager: Optional[SessionManager] = None,
        storage: Optional[CoachingStorage] = None,
        coaching_config: Optional[CoachingConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(llm)
        self.session_manager = session_manager
        self.storage = storage
        self.config = coaching_config or CoachingConfig()
        self._clock = clock
        self.last_coaching_time = 0.0
        self.cooldown_until = 0.0
        self.current_key: Optional[str] = None
        self._coaching: OrderedDict[str, CoachingData] = OrderedDict()
        self._seen: OrderedDict[tuple, None] = OrderedDict()
        self._listeners: list[CoachingListener] = []
        self._lock = threading.RLock()
        if self.storage is not None:
            self._load_recent()

    @classmethod
    def get_instance(cls) -> "CoachingService":
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = cls(session_manager=SessionManager.get_instance(), storage=CoachingStorage())
            return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        with cls._instance_lock:
            cls._instance = None

    def _load_recent(self) -> None:
        self.storage.cleanup()
        for key, coaching in reversed(self.storage.recent(MAX_COACHING_ENTRIES)):
            self._coaching[key] = coaching
        if self._coaching:
            logger.debug(f"Loaded {len(self._coaching)} coachings from disk")

    # --- Throttling ---

    def is_cooldown(self) -> bool:
        return self._clock() < self.cooldown_until

    def should_show_coaching(self) -> bool:
        if self.is_cooldown():
            return False
        return self._clock() - self.last_coaching_time >= self.config.min_interval

    # --- Main entry point ---

    def process_response(
        self,
        response: CapturedResponse,
        prompt_text: Optional[str] = None,
        force: bool = False,
        max_suggestions: int = MAX_SUGGESTIONS,
    ) -> CoachingResult:
        if is_ignored_response(response):
            logger.debug(f"[CoachingService] Ignoring response {response.id} from internal folder")
            return CoachingResult(generated=False, reason="ignored_path")

        pair = (response.id, response.session_id or response.conversation_id)
        with self._lock:
            if pair in self._seen:
                logger.debug(f"[CoachingService] Duplicate response {response.id}")
                return CoachingResult(generated=False, reason="duplicate")
            if not self.config.enabled and not force:
                return CoachingResult(generated=False, reason="throttled")
            if not force and not self.should_show_coaching():
                return CoachingResult(generated=False, reason="cooldown" if self.is_cooldown() else "throttled")
            self._seen[pair] = None
            while len(self._seen) > MAX_SEEN_RESPONSES:
                self._seen.popitem(last=False)

        analysis = analyze_response(response, self._prompts_since_goal())
        if analysis.outcome == "error":
            return CoachingResult(generated=False, reason="error_response")

        suggestions = self.generate_suggestions(response, analysis, prompt_text, max_suggestions)
        if not suggestions:
            return CoachingResult(generated=False, reason="no_suggestions")

        coaching = CoachingData(
            analysis=analysis,
            suggestions=suggestions,
            timestamp=now(),
            response_id=response.id,
            prompt_id=response.prompt_id,
            prompt_text=prompt_text or response.prompt_text,
            source=response.source,
            session_id=response.session_id or response.conversation_id,
        )
        key = response.prompt_id or response.id
        with self._lock:
            self.set_coaching_for_prompt(key, coaching)
            self.current_key = key
            self.last_coaching_time = self._clock()
        logger.info(f"[CoachingService] Generated {len(suggestions)} suggestions for {key}")
        self._notify()
        return CoachingResult(generated=True, coaching=coaching)

    def _prompts_since_goal(self) -> Optional[int]:
        if self.session_manager is None:
            return None
        session = self.session_manager.get_active_session()
        if session is None or session.goal is None:
            return None
        return sum(1 for p in session.prompts if p.timestamp >= session.goal.set_at)

    def generate_suggestions(
        self,
        response: CapturedResponse,
        analysis: ResponseAnalysis,
        prompt_text: Optional[str] = None,
        max_suggestions: int = MAX_SUGGESTIONS,
    ) -> list[CoachingSuggestion]:
        if not self.is_available():
            return fallback_suggestions(analysis, max_suggestions)
        try:
            content = self.llm.complete(
                self.build_prompt(response, analysis, prompt_text),
                system=COACHING_SYSTEM_PROMPT,
                max_tokens=self.max_tokens,
            )
        except Exception as e:
            logger.warning(f"[CoachingService] LLM suggestions failed: {e}")
            return fallback_suggestions(analysis, max_suggestions)
        return parse_suggestions(content, MIN_CONFIDENCE, max_suggestions) or fallback_suggestions(
            analysis, max_suggestions
        )

    def build_prompt(self, response: CapturedResponse, analysis: ResponseAnalysis, prompt_text: Optional[str]) -> str:
        goal_text = "No goal set"
        history = ""
        if self.session_manager is not None:
            goal = self.session_manager.get_goal()
            if goal:
                goal_text = goal.text
            interactions = self.session_manager.get_last_interactions(3)
            history = "".join(
                f'\n<interaction index="{i + 1}">'
                f"\n<user_prompt>{x.prompt.text[:400]}</user_prompt>"
                f"\n<agent_response>{x.response.text[:600] if x.response else 'No response captured'}</agent_response>"
                f"\n<files_modified>{', '.join(x.response.files_modified) if x.response else 'none'}</files_modified>"
                f"\n</interaction>"
                for i, x in enumerate(interactions)
            )
        progress = analysis.goal_progress.after if analysis.goal_progress else 0
        prompt_text = prompt_text or response.prompt_text or "N/A"

        return f"""<coaching_request>

<current_response>
<full_text>{response.response[:3000]}</full_text>
<summary>{analysis.summary}</summary>
<outcome>{analysis.outcome}</outcome>
<files_modified>{', '.join(analysis.entities_modified) or 'none'}</files_modified>
<tool_calls>{', '.join(t.name for t in response.tool_calls) or 'none'}</tool_calls>
</current_response>

<triggering_prompt><text>{prompt_text[:500]}</text></triggering_prompt>

<session_goal>
<text>{goal_text}</text>
<progress>{progress}%</progress>
</session_goal>

<session_history>
<recent_interactions>{history}
</recent_interactions>
</session_history>

<instructions>
Generate 1-3 coaching suggestions for what the developer should do next.
Return as JSON array:
[
  {{
    "type": "test|follow_up|error_prevention|documentation|refactor|goal_alignment|celebration",
    "title": "Short action title (reference specific file/function)",
    "description": "Why this is recommended NOW for THIS specific work",
    "suggestedPrompt": "The exact prompt to use (specific to the code context)",
    "confidence": 0.0-1.0,
    "reasoning": "Why this suggestion based on the context"
  }}
]

Only return the JSON array, no other text.
</instructions>

</coaching_request>"""

    # --- Cache ---

    def set_coaching_for_prompt(self, key: str, coaching: CoachingData) -> None:
        with self._lock:
            self._coaching.pop(key, None)
            while len(self._coaching) >= MAX_COACHING_ENTRIES:
                self._coaching.popitem(last=False)
            self._coaching[key] = coaching
        if self.storage is not None:
            self.storage.save(key, coaching)

    def get_coaching_for_prompt(self, key: str) -> Optional[CoachingData]:
        with self._lock:
            coaching = self._coaching.get(key)
            if coaching is not None:
                self._coaching.move_to_end(key)
                return coaching
        if self.storage is not None:
            coaching = self.storage.load(key)
            if coaching is not None:
                self.set_coaching_for_prompt(key, coaching)
            return coaching
        return None

    def get_current_coaching(self) -> Optional[CoachingData]:
        with self._lock:
            if self.current_key:
                return self._coaching.get(self.current_key)
            return next(reversed(self._coaching.values()), None)

    def set_current_prompt_id(self, key: Optional[str]) -> None:
        self.current_key = key

    def get_state(self) -> dict:
        current = self.get_current_coaching()
        on_cooldown = self.is_cooldown()
        return {
            "is_listening": self.config.enabled,
            "current_coaching": current,
            "last_updated": current.timestamp if current else None,
            "on_cooldown": on_cooldown,
            "cooldown_ends_at": (now() + timedelta(seconds=self.cooldown_until - self._clock())) if on_cooldown else None,
        }

    # --- Listeners ---

    def subscribe(self, listener: CoachingListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        coaching = self.get_current_coaching()
        if coaching is None:
            return
        for listener in list(self._listeners):
            try:
                listener(coaching)
            except Exception as e:
                logger.error(f"[CoachingService] Listener failed: {e}")

    # --- User actions ---

    def dismiss_suggestion(self, suggestion_id: str) -> None:
        with self._lock:
            coaching = self._coaching.get(self.current_key) if self.current_key else None
            if coaching is None:
                return
            coaching.suggestions = [s for s in coaching.suggestions if s.id != suggestion_id]
        self._notify()

    def dismiss_all(self) -> None:
        """Drop the current coaching and start the cooldown."""
        with self._lock:
            if self.current_key:
                self._coaching.pop(self.current_key, None)
            self.current_key = None
            self.cooldown_until = self._clock() + self.config.cooldown_duration
        logger.debug(f"[CoachingService] Cooldown for {self.config.cooldown_duration}s")
        self._notify()

    def clear_all(self) -> None:
        with self._lock:
            self._coaching.clear()
            self.current_key = None

    def reset_cooldown(self) -> None:
        self.cooldown_until = 0.0

    def set_enabled(self, enabled: bool) -> None:
        self.config.enabled = enabled

    def update_config(self, **changes) -> None:
        for name, value in changes.items():
            if hasattr(self.config, name):
                setattr(self.config, name, value)
