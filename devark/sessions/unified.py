"""Unified session index and loader across Cursor and Claude Code.

Two tiers: the index (SessionIndex, cheap, cached 60s) feeds list views,
the heavy tier (UnifiedSession with messages, cached 30s) feeds summaries
and uploads. Session ids are namespaced with their source prefix, which is
the only thing used to route a details lookup.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from .. import config
from ..adapters.base import get_source_display_name
from ..ignore_paths import should_ignore_path
from ..models import SessionData, SessionDetails, SessionIndex, UnifiedSession
from ..readers.claude_code import ClaudeSessionReader
from ..readers.cursor import CursorSessionReader
from ..readers.prompts import count_actual_user_prompts
from ..timeutil import now

logger = logging.getLogger(__name__)

INDEX_CACHE_TTL = 60.0
SESSIONS_CACHE_TTL = 30.0
ACTIVE_WINDOW = timedelta(minutes=30)

SOURCE_PREFIXES = {
    "cursor": "cursor-",
    "claude_code": "claude-",
}
ALL_SOURCES = tuple(SOURCE_PREFIXES)


def prefix_session_id(source: str, raw_id: str) -> str:
    return f"{SOURCE_PREFIXES[source]}{raw_id}"


def parse_session_id(session_id: str) -> tuple[Optional[str], str]:
    """Split a namespaced id into (source, raw id); (None, id) if unprefixed."""
    for source, prefix in SOURCE_PREFIXES.items():
        if session_id.startswith(prefix):
            return source, session_id[len(prefix):]
    return None, session_id


@dataclass
class SessionQuery:
    since: Optional[datetime] = None
    until: Optional[datetime] = None
    sources: tuple[str, ...] = ALL_SOURCES
    limit: Optional[int] = None
    min_prompt_count: int = 1

    def cache_key(self) -> str:
        since = self.since.isoformat() if self.since else ""
        until = self.until.isoformat() if self.until else ""
        return f"{since}|{until}|{','.join(sorted(self.sources))}|{self.limit or ''}|{self.min_prompt_count}"

    def accepts(self, timestamp: datetime, prompt_count: int, project_path: Optional[str]) -> bool:
        if self.since and timestamp < self.since:
            return False
        if self.until and timestamp > self.until:
            return False
        if prompt_count < self.min_prompt_count:
            return False
        return not should_ignore_path(project_path)


@dataclass
class UnifiedSessionsResult:
    sessions: list[UnifiedSession]
    by_source: dict[str, int] = field(default_factory=dict)
    date_range: tuple[Optional[datetime], Optional[datetime]] = (None, None)


class TTLCache:
    """Map of key -> (stored_at, value) entries that expire after ttl seconds."""

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._data: dict[str, tuple[float, object]] = {}
        self._lock = threading.Lock()

    def get(self, key: str):
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            stored_at, value = entry
            if self._clock() - stored_at > self.ttl:
                del self._data[key]
                return None
            return value

    def set(self, key: str, value) -> None:
        with self._lock:
            self._data[key] = (self._clock(), value)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        return len(self._data)


def _workspace_name(project_path: Optional[str]) -> str:
    parts = [p for p in (project_path or "").replace("\\", "/").split("/") if p]
    return parts[-1] if parts else "Unknown Project"


def to_unified_session(source: str, data: SessionData) -> UnifiedSession:
    raw_id = data.id
    if source == "cursor" and raw_id.startswith(SOURCE_PREFIXES["cursor"]):
        raw_id = raw_id[len(SOURCE_PREFIXES["cursor"]):]

    stamps = [m.timestamp for m in data.messages if m.timestamp is not None]
    end_time = max(stamps) if stamps else data.timestamp + timedelta(seconds=data.duration)
    file_context = data.metadata.get("editedFiles") or data.metadata.get("languages") or []

    return UnifiedSession(
        id=prefix_session_id(source, raw_id),
        source=source,
        workspace_name=_workspace_name(data.project_path),
        workspace_path=data.project_path,
        start_time=data.timestamp,
        end_time=end_time,
        duration=round(data.duration / 60),
        prompt_count=count_actual_user_prompts(data.messages),
        file_context=list(file_context),
        status="active" if now() - end_time <= ACTIVE_WINDOW else "historical",
        highlights=data.highlights,
        token_usage=data.token_usage,
        raw=data,
    )


class UnifiedSessionService:
    """Merges sessions from every enabled reader behind two TTL caches."""

    _instance = None
    _instance_lock = threading.Lock()

    def __init__(
        self,
        cursor_reader: Optional[CursorSessionReader] = None,
        claude_reader: Optional[ClaudeSessionReader] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.cursor_reader = cursor_reader or CursorSessionReader()
        self.claude_reader = claude_reader or ClaudeSessionReader()
        self.index_cache = TTLCache(INDEX_CACHE_TTL, clock)
        self.sessions_cache = TTLCache(SESSIONS_CACHE_TTL, clock)

    @classmethod
    def get_instance(cls) -> "UnifiedSessionService":
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        with cls._instance_lock:
            cls._instance = None

    def invalidate_cache(self) -> None:
        self.index_cache.clear()
        self.sessions_cache.clear()
        logger.debug("Session caches invalidated")

    def _cursor_ready(self) -> bool:
        return self.cursor_reader.is_ready() or self.cursor_reader.initialize()

    # --- Index tier ---

    def get_session_index(
        self,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        sources: Iterable[str] = ALL_SOURCES,
        limit: Optional[int] = None,
        min_prompt_count: int = 1,
    ) -> list[SessionIndex]:
        """Lightweight index of sessions, newest first, with prefixed ids."""
        query = SessionQuery(since, until, tuple(sources), limit, min_prompt_count)
        key = query.cache_key()
        cached = self.index_cache.get(key)
        if cached is not None:
            return cached

        indices: list[SessionIndex] = []
        if "cursor" in query.sources:
            indices.extend(self._cursor_index(query))
        if "claude_code" in query.sources:
            indices.extend(self._claude_index(query))

        indices = [i for i in indices if query.accepts(i.timestamp, i.prompt_count, i.project_path)]
        indices.sort(key=lambda i: i.timestamp, reverse=True)
        if query.limit:
            indices = indices[:query.limit]

        self.index_cache.set(key, indices)
        return indices

    def _cursor_index(self, query: SessionQuery) -> list[SessionIndex]:
        try:
            if not self._cursor_ready():
                return []
            raw = self.cursor_reader.get_session_index()
        except Exception as e:
            logger.warning(f"Failed to read Cursor session index: {e}")
            return []
        for index in raw:
            index.id = prefix_session_id("cursor", index.id)
        return raw

    def _claude_index(self, query: SessionQuery) -> list[SessionIndex]:
        if not self.claude_reader.is_available():
            return []
        try:
            raw = self.claude_reader.read_session_index(since=query.since)
        except Exception as e:
            logger.warning(f"Failed to read Claude Code session index: {e}")
            return []
        for index in raw:
            index.id = prefix_session_id("claude_code", index.id)
        return raw

    # --- Heavy tier ---

    def get_unified_sessions(
        self,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        sources: Iterable[str] = ALL_SOURCES,
        limit: Optional[int] = None,
        min_prompt_count: int = 1,
    ) -> UnifiedSessionsResult:
        """Full sessions with messages, defaulting to the last 24 hours."""
        until = until or now()
        since = since or until - timedelta(hours=24)
        query = SessionQuery(since, until, tuple(sources), limit, min_prompt_count)
        key = query.cache_key()
        cached = self.sessions_cache.get(key)
        if cached is not None:
            return cached

        sessions: list[UnifiedSession] = []
        if "cursor" in query.sources:
            sessions.extend(self._read("cursor", query))
        if "claude_code" in query.sources:
            sessions.extend(self._read("claude_code", query))

        sessions = [
            s for s in sessions
            if query.accepts(s.start_time, s.prompt_count, s.workspace_path)
        ]
        sessions.sort(key=lambda s: s.start_time, reverse=True)
        if query.limit:
            sessions = sessions[:query.limit]

        by_source: dict[str, int] = {}
        for s in sessions:
            by_source[s.source] = by_source.get(s.source, 0) + 1

        result = UnifiedSessionsResult(sessions=sessions, by_source=by_source, date_range=(since, until))
        self.sessions_cache.set(key, result)
        return result

    def _read(self, source: str, query: SessionQuery) -> list[UnifiedSession]:
        try:
            if source == "cursor":
                if not self._cursor_ready():
                    return []
                data = self.cursor_reader.read_sessions(since=query.since)
            else:
                if not self.claude_reader.is_available():
                    return []
                data = self.claude_reader.read_sessions(since=query.since)
        except Exception as e:
            logger.warning(f"Failed to read {get_source_display_name(source)} sessions: {e}")
            return []
        return [to_unified_session(source, d) for d in data]

    def get_today_sessions(self, **kwargs) -> UnifiedSessionsResult:
        start = now().astimezone().replace(hour=0, minute=0, second=0, microsecond=0)
        return self.get_unified_sessions(since=start, until=now(), **kwargs)

    def get_sessions_for_days(self, days: int, **kwargs) -> UnifiedSessionsResult:
        end = now()
        return self.get_unified_sessions(since=end - timedelta(days=days), until=end, **kwargs)

    def get_sessions_for_date_range(self, start: datetime, end: datetime, **kwargs) -> UnifiedSessionsResult:
        return self.get_unified_sessions(since=start, until=end, **kwargs)

    def get_eligible_session_count(self, since: Optional[datetime] = None) -> int:
        """Sessions long enough to be uploaded."""
        index = self.get_session_index(since=since)
        return sum(1 for i in index if i.duration >= config.MIN_SYNC_DURATION_SECONDS)

    def get_session_details(self, session_id: str) -> Optional[SessionDetails]:
        source, raw_id = parse_session_id(session_id)
        if source == "cursor":
            if not self._cursor_ready():
                return None
            return self.cursor_reader.get_session_details(raw_id)
        if source == "claude_code":
            return self.claude_reader.get_session_details(raw_id)
        logger.warning(f"Unknown session id prefix: {session_id}")
        return None

    @staticmethod
    def get_source_metadata(sessions: list[UnifiedSession]) -> dict[str, dict]:
        """Per-source counts and percentages for a session list."""
        total = len(sessions)
        counts: dict[str, int] = {}
        for s in sessions:
            counts[s.source] = counts.get(s.source, 0) + 1
        return {
            source: {
                "display_name": get_source_display_name(source),
                "count": count,
                "percentage": round(count / total * 100) if total else 0,
            }
            for source, count in counts.items()
        }
