"""Cursor session reader over the global state.vscdb SQLite database.

Composer sessions live in the ``cursorDiskKV`` table under
``composerData:<composerId>`` keys; newer builds store individual messages
under ``bubbleId:<composerId>:<n>`` keys instead of inline arrays.
"""

import json
import logging
import os
import sqlite3
import sys
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from ..models import ConversationHighlights, Message, SessionData, SessionDetails, SessionIndex
from ..timeutil import now, parse_timestamp
from .prompts import count_actual_user_prompts
from .session_utils import calculate_duration, calculate_token_usage, extract_highlights

logger = logging.getLogger(__name__)

MAX_DB_FILE_SIZE = 100 * 1024 * 1024
RECONNECT_DEBOUNCE_SECONDS = 2.0
# Cursor holds write locks briefly; a busy tick is skipped rather than waited out
BUSY_TIMEOUT_SECONDS = 0.5
MAX_RETRY_ATTEMPTS = 3
MAX_HIGHLIGHT_LENGTH = 300
ACTIVE_WINDOW_HOURS = 24

_CORRUPTION_MARKERS = ("malformed", "corrupt", "disk image")


def is_busy_error(error: BaseException) -> bool:
    message = str(error)
    return "SQLITE_BUSY" in message or "database is locked" in message


def default_database_paths(home: Optional[Path] = None) -> list[Path]:
    home = home or Path.home()
    if sys.platform == "darwin":
        return [home / "Library" / "Application Support" / "Cursor" / "User" / "globalStorage" / "state.vscdb"]
    if sys.platform.startswith("linux"):
        return [home / ".config" / "Cursor" / "User" / "globalStorage" / "state.vscdb"]
    if sys.platform == "win32":
        app_data = Path(os.environ.get("APPDATA") or home / "AppData" / "Roaming")
        return [app_data / "Cursor" / "User" / "globalStorage" / "state.vscdb"]
    return []


@dataclass
class CursorMessage:
    id: str
    role: str  # "user" or "assistant"
    content: str
    timestamp: str


@dataclass
class CursorSession:
    session_id: str
    workspace_name: str
    workspace_path: Optional[str]
    start_time: datetime
    last_activity: datetime
    prompt_count: int
    status: str
    file_context: list[str] = field(default_factory=list)
    highlights: Optional[ConversationHighlights] = None


def content_hash(content: str, role: str, timestamp: str = "") -> str:
    """Stable djb2 hash used as a message id when Cursor provides none."""
    value = 5381
    for ch in f"{role}:{content}:{timestamp}":
        value = ((value << 5) + value + ord(ch)) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return format(abs(value), "x")


def _timestamp_string(raw) -> str:
    parsed = parse_timestamp(raw)
    if parsed is None:
        return raw if isinstance(raw, str) and raw else now().isoformat()
    return parsed.isoformat()


def normalize_message(raw) -> Optional[CursorMessage]:
    """Normalise one inline message of any known Cursor schema."""
    if not isinstance(raw, dict):
        return None
    if raw.get("role") == "system":
        return None

    if raw.get("role") == "assistant" or raw.get("type") in (2, "assistant"):
        role = "assistant"
    else:
        role = "user"

    content = raw.get("content") or raw.get("text") or raw.get("message") or ""
    if not isinstance(content, str) or not content.strip():
        return None

    raw_ts = raw.get("timestamp")
    message_id = raw.get("bubbleId") or raw.get("id")
    if not message_id:
        message_id = f"msg-{content_hash(content, role, '' if raw_ts is None else str(raw_ts))}"

    return CursorMessage(
        id=str(message_id),
        role=role,
        content=content.strip(),
        timestamp=_timestamp_string(raw_ts),
    )


def normalize_bubble(raw, key: str) -> Optional[CursorMessage]:
    if not isinstance(raw, dict):
        return None
    role = "assistant" if raw.get("role") == "assistant" or raw.get("type") in (2, "assistant") else "user"
    content = raw.get("content") or raw.get("text") or raw.get("message") or ""
    if not isinstance(content, str) or not content.strip():
        return None
    raw_ts = raw.get("timestamp")
    message_id = key or f"bubble-{content_hash(content, role, '' if raw_ts is None else str(raw_ts))}"
    return CursorMessage(id=message_id, role=role, content=content.strip(), timestamp=_timestamp_string(raw_ts))


def _looks_like_messages(value: list) -> bool:
    first = value[0] if value else None
    return isinstance(first, dict) and any(k in first for k in ("role", "type", "content", "text", "message"))


def extract_messages(data: dict) -> list[CursorMessage]:
    """Messages from the first inline array found in composer data."""
    for key in ("messages", "conversation", "conversationHistory"):
        if isinstance(data.get(key), list):
            return [m for m in map(normalize_message, data[key]) if m]

    for value in data.values():
        if isinstance(value, list) and _looks_like_messages(value):
            messages = [m for m in map(normalize_message, value) if m]
            if messages:
                return messages
    return []


def extract_prompt_count(data: dict) -> Optional[int]:
    """Actual user prompts in composer data, or None when only bubbles can tell."""
    for key in ("messages", "conversationHistory", "conversation"):
        if isinstance(data.get(key), list):
            return count_actual_user_prompts(m for m in map(normalize_message, data[key]) if m)
    headers = data.get("fullConversationHeadersOnly")
    if isinstance(headers, list):
        # type 1 = user, type 2 = assistant
        return sum(1 for h in headers if isinstance(h, dict) and h.get("type") == 1)
    if isinstance(data.get("promptCount"), (int, float)) and not isinstance(data.get("promptCount"), bool):
        return int(data["promptCount"])
    return None


def extract_workspace_name(data: dict) -> str:
    if data.get("workspaceName"):
        return data["workspaceName"]
    if data.get("workspace"):
        return str(data["workspace"])
    if data.get("workspacePath"):
        return Path(str(data["workspacePath"]).rstrip("/\\")).name
    return "Unknown Workspace"


def extract_workspace_path(data: dict) -> Optional[str]:
    if data.get("workspacePath"):
        return str(data["workspacePath"])
    if isinstance(data.get("workspace"), str) and data["workspace"]:
        return data["workspace"]
    return None


def extract_start_time(data: dict) -> datetime:
    return parse_timestamp(data.get("createdAt")) or now()


def extract_last_activity(data: dict) -> datetime:
    return parse_timestamp(data.get("updatedAt")) or parse_timestamp(data.get("createdAt")) or now()


def extract_file_context(data: dict) -> list[str]:
    files: list[str] = []
    for key in ("files", "fileContext", "contextFiles"):
        if isinstance(data.get(key), list):
            files.extend(str(f) for f in data[key])
    return files


def _normalize_role(raw: dict) -> Optional[str]:
    if raw.get("role") in ("user", "assistant"):
        return raw["role"]
    if raw.get("type") in (1, "user"):
        return "user"
    if raw.get("type") in (2, "assistant"):
        return "assistant"
    return None


def extract_conversation_highlights(data: dict) -> Optional[ConversationHighlights]:
    raw_messages = data.get("messages") or data.get("conversation") or data.get("conversationHistory") or []
    if not isinstance(raw_messages, list):
        return None
    messages = []
    for raw in raw_messages:
        if not isinstance(raw, dict):
            continue
        content = raw.get("content") or raw.get("text") or raw.get("message") or ""
        role = _normalize_role(raw)
        if role and isinstance(content, str) and len(content.strip()) >= 10:
            messages.append(Message(role=role, content=content, timestamp=parse_timestamp(raw.get("timestamp"))))
    if not messages:
        return None
    return extract_highlights(messages, max_length=MAX_HIGHLIGHT_LENGTH)


def determine_status(data: dict) -> str:
    hours = (now() - extract_last_activity(data)).total_seconds() / 3600
    return "active" if hours < ACTIVE_WINDOW_HOURS else "historical"


class CursorSessionReader:
    """Read-only access to Cursor composer sessions.

    Connections are opened with a read-only URI so Cursor keeps ownership
    of the file. Corruption errors (usually a WAL checkpoint racing the
    read) trigger a debounced reconnect and a retry.
    """

    tool = "cursor"

    def __init__(self, db_path: Optional[Path] = None, home: Optional[Path] = None):
        self._explicit_path = Path(db_path) if db_path else None
        self._home = home
        self.db_path: Optional[Path] = None
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self._last_reconnect = 0.0

    # --- Connection lifecycle ---

    def find_database(self) -> Optional[Path]:
        candidates = [self._explicit_path] if self._explicit_path else default_database_paths(self._home)
        for path in candidates:
            if path.is_file() and os.access(path, os.R_OK):
                return path
        return None

    def initialize(self) -> bool:
        with self._lock:
            if self._conn is not None:
                return True
            self.db_path = self.find_database()
            if self.db_path is None:
                logger.debug("Cursor database not found")
                return False
            size = self.db_path.stat().st_size
            if size > MAX_DB_FILE_SIZE:
                logger.warning(f"Cursor database is large: {size // (1024 * 1024)}MB")
            try:
                self._conn = self._connect(self.db_path)
            except sqlite3.Error as e:
                if is_busy_error(e):
                    logger.debug("Cursor database is busy, will retry later")
                else:
                    logger.error(f"Failed to open Cursor database: {e}")
                self._conn = None
                return False
            return True

    @staticmethod
    def _connect(path: Path) -> sqlite3.Connection:
        conn = sqlite3.connect(f"file:{path}?mode=ro", uri=True, timeout=BUSY_TIMEOUT_SECONDS, check_same_thread=False)
        conn.execute("SELECT 1")
        return conn

    def is_ready(self) -> bool:
        return self._conn is not None

    def is_available(self) -> bool:
        return self.initialize()

    def reconnect(self) -> None:
        """Reopen the database unless a reconnect happened in the last 2 seconds."""
        with self._lock:
            if time.monotonic() - self._last_reconnect < RECONNECT_DEBOUNCE_SECONDS:
                logger.debug("Cursor reconnect debounced")
                return
            self._last_reconnect = time.monotonic()
            self._close()
            if self.db_path is None or not self.db_path.exists():
                logger.warning("Cursor database not found during reconnect")
                return
            try:
                self._conn = self._connect(self.db_path)
            except sqlite3.Error as e:
                logger.warning(f"Cursor reconnect failed: {e}")
                self._conn = None

    def _close(self) -> None:
        if self._conn is not None:
            try:
                self._conn.close()
            except sqlite3.Error:
                pass
            self._conn = None

    def dispose(self) -> None:
        with self._lock:
            self._close()

    # --- Queries ---

    def _rows(self, sql: str, params: tuple = ()) -> list[tuple[str, str]]:
        with self._lock:
            if self._conn is None:
                return []
            return self._conn.execute(sql, params).fetchall()

    def _composer_rows(self) -> list[tuple[str, str]]:
        for attempt in range(1, MAX_RETRY_ATTEMPTS + 1):
            try:
                return self._rows("SELECT key, value FROM cursorDiskKV WHERE key LIKE 'composerData:%'")
            except sqlite3.DatabaseError as e:
                if is_busy_error(e):
                    raise
                if any(marker in str(e) for marker in _CORRUPTION_MARKERS) and attempt < MAX_RETRY_ATTEMPTS:
                    logger.warning(f"Cursor database corruption detected (attempt {attempt}/{MAX_RETRY_ATTEMPTS})")
                    self.reconnect()
                    continue
                logger.error(f"Failed to read Cursor sessions: {e}")
                return []
        return []

    def _composer_data(self, session_id: str) -> Optional[dict]:
        rows = self._rows("SELECT key, value FROM cursorDiskKV WHERE key = ?", (f"composerData:{session_id}",))
        if not rows:
            return None
        try:
            data = json.loads(rows[0][1])
        except (TypeError, json.JSONDecodeError):
            return None
        return data if isinstance(data, dict) else None

    def parse_composer_row(self, key: str, value: str) -> Optional[CursorSession]:
        try:
            data = json.loads(value)
        except (TypeError, json.JSONDecodeError):
            logger.debug(f"Skipping unparseable composer row {key}")
            return None
        if not isinstance(data, dict):
            return None
        return CursorSession(
            session_id=key.replace("composerData:", "", 1),
            workspace_name=extract_workspace_name(data),
            workspace_path=extract_workspace_path(data),
            start_time=extract_start_time(data),
            last_activity=extract_last_activity(data),
            prompt_count=self._prompt_count(key.replace("composerData:", "", 1), data),
            status=determine_status(data),
            file_context=extract_file_context(data),
            highlights=extract_conversation_highlights(data),
        )

    def get_active_sessions(self) -> list[CursorSession]:
        """All composer sessions, most recent activity first.

        Busy/locked errors propagate so pollers can skip the tick.
        """
        sessions = [s for s in (self.parse_composer_row(k, v) for k, v in self._composer_rows()) if s]
        sessions.sort(key=lambda s: s.last_activity, reverse=True)
        return sessions

    def get_session_index(self) -> list[SessionIndex]:
        indices = []
        for key, value in self._composer_rows():
            try:
                data = json.loads(value)
            except (TypeError, json.JSONDecodeError):
                continue
            if not isinstance(data, dict):
                continue
            session_id = key.replace("composerData:", "", 1)
            start = extract_start_time(data)
            last = extract_last_activity(data)
            indices.append(SessionIndex(
                id=session_id,
                source="cursor",
                timestamp=start,
                duration=int((last - start).total_seconds()),
                project_path=extract_workspace_path(data) or "",
                workspace_name=extract_workspace_name(data),
                prompt_count=self._prompt_count(session_id, data),
            ))
        indices.sort(key=lambda i: i.timestamp, reverse=True)
        return indices

    def get_cursor_session(self, session_id: str) -> Optional[CursorSession]:
        rows = self._rows("SELECT key, value FROM cursorDiskKV WHERE key = ?", (f"composerData:{session_id}",))
        if not rows:
            return None
        return self.parse_composer_row(*rows[0])

    def get_session_messages(self, session_id: str) -> list[CursorMessage]:
        data = self._composer_data(session_id)
        return extract_messages(data) if data else []

    def get_bubble_messages(self, composer_id: str) -> list[CursorMessage]:
        rows = self._rows(
            "SELECT key, value FROM cursorDiskKV WHERE key LIKE ? ORDER BY key ASC",
            (f"bubbleId:{composer_id}:%",),
        )
        messages = []
        for key, value in rows:
            try:
                message = normalize_bubble(json.loads(value), key)
            except (TypeError, json.JSONDecodeError):
                continue
            if message:
                messages.append(message)
        return messages

    def _prompt_count(self, session_id: str, data: dict) -> int:
        count = extract_prompt_count(data)
        if count is None:
            count = count_actual_user_prompts(self.get_bubble_messages(session_id))
        return count

    def get_all_messages_for_session(self, session_id: str) -> list[CursorMessage]:
        return self.get_session_messages(session_id) or self.get_bubble_messages(session_id)

    def get_session_details(self, session_id: str) -> Optional[SessionDetails]:
        data = self._composer_data(session_id)
        if data is None:
            return None
        raw = extract_messages(data) or self.get_bubble_messages(session_id)
        messages = [Message(role=m.role, content=m.content, timestamp=parse_timestamp(m.timestamp)) for m in raw]
        return SessionDetails(
            messages=messages,
            highlights=extract_conversation_highlights(data),
            file_context=extract_file_context(data),
        )

    # --- Full sessions ---

    def to_session_data(self, session: CursorSession) -> Optional[SessionData]:
        raw = self.get_all_messages_for_session(session.session_id)
        if not raw:
            return None
        messages = [Message(role=m.role, content=m.content, timestamp=parse_timestamp(m.timestamp)) for m in raw]
        return SessionData(
            id=f"cursor-{session.session_id}",
            project_path=session.workspace_path or session.workspace_name or "Unknown",
            timestamp=session.start_time,
            messages=messages,
            duration=calculate_duration(messages),
            tool="cursor",
            metadata={"files_edited": 0, "languages": []},
            highlights=session.highlights,
            token_usage=calculate_token_usage(messages),
        )

    def read_sessions(self, since=None, project_path: Optional[str] = None, limit: Optional[int] = None) -> list[SessionData]:
        if not self.initialize():
            return []
        sessions = []
        for cursor_session in self.get_active_sessions():
            try:
                data = self.to_session_data(cursor_session)
            except sqlite3.Error as e:
                logger.debug(f"Skipping Cursor session {cursor_session.session_id}: {e}")
                continue
            if data is None:
                continue
            if since and data.timestamp < since:
                continue
            if project_path and not data.project_path.lower().startswith(project_path.lower()):
                continue
            sessions.append(data)
            if limit and len(sessions) >= limit:
                break
        sessions.sort(key=lambda s: s.timestamp)
        return sessions

    def get_session_by_id(self, session_id: str) -> Optional[SessionData]:
        if not self.initialize():
            return None
        if session_id.startswith("cursor-"):
            session_id = session_id[len("cursor-"):]
        cursor_session = self.get_cursor_session(session_id)
        return self.to_session_data(cursor_session) if cursor_session else None
