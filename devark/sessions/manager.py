"""Projects, sessions, prompts and responses as seen by the co-pilot.

Sessions belong to a project but only store its ``project_id``; the
project is looked up through the manager when needed.
"""

import hashlib
import json
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Optional

from .. import config
from ..copilot.response_analyzer import determine_outcome
from ..fs import FileSystem
from ..ignore_paths import normalize_path
from ..models import CapturedResponse, DetectedPrompt, to_jsonable
from ..safe_json import safe_read_json_file
from ..timeutil import now, parse_timestamp

logger = logging.getLogger(__name__)

MAX_INACTIVITY_MINUTES = 120
MAX_PROMPTS_PER_SESSION = 100
MAX_RESPONSE_TEXT = 2000
TRUNCATE_LENGTH = 100
UNKNOWN_PROJECT_PATH = "unknown"

SessionEventListener = Callable[[str, dict], None]


def truncate(text: str, length: int = TRUNCATE_LENGTH) -> str:
    return text if len(text) <= length else text[:length] + "..."


def project_id_for_path(path: str) -> str:
    """Stable project id derived from the normalised, lowercased path."""
    digest = hashlib.sha1(normalize_path(path).lower().encode()).hexdigest()[:12]
    return f"proj-{digest}"


@dataclass
class Goal:
    text: str
    set_at: datetime
    completed_at: Optional[datetime] = None


@dataclass
class PromptRecord:
    id: str
    session_id: str
    text: str
    truncated_text: str
    timestamp: datetime
    score: float = 0.0
    breakdown: Optional[dict] = None


@dataclass
class ResponseRecord:
    id: str
    prompt_id: str
    timestamp: datetime
    text: str
    outcome: str  # "success", "partial", "blocked", "error"
    files_modified: list[str] = field(default_factory=list)
    tool_calls: list[str] = field(default_factory=list)
    source: Optional[str] = None


@dataclass
class Session:
    id: str
    project_id: str
    platform: str
    start_time: datetime
    last_activity_time: datetime
    source_session_id: Optional[str] = None
    prompt_count: int = 0
    prompts: list[PromptRecord] = field(default_factory=list)
    responses: list[ResponseRecord] = field(default_factory=list)
    is_active: bool = True
    goal: Optional[Goal] = None
    custom_name: Optional[str] = None
    average_score: float = 0.0


@dataclass
class Project:
    id: str
    name: str
    path: str
    sessions: list[Session] = field(default_factory=list)
    total_sessions: int = 0
    total_prompts: int = 0
    last_activity_time: Optional[datetime] = None


@dataclass
class Interaction:
    prompt: PromptRecord
    response: Optional[ResponseRecord] = None


# --- (De)serialisation ---


def _goal_from_dict(data: Optional[dict]) -> Optional[Goal]:
    if not data:
        return None
    return Goal(
        text=data["text"],
        set_at=parse_timestamp(data.get("set_at")) or now(),
        completed_at=parse_timestamp(data.get("completed_at")),
    )


def _session_from_dict(data: dict) -> Session:
    prompts = [
        PromptRecord(**{**p, "timestamp": parse_timestamp(p["timestamp"]) or now()})
        for p in data.get("prompts", [])
    ]
    responses = [
        ResponseRecord(**{**r, "timestamp": parse_timestamp(r["timestamp"]) or now()})
        for r in data.get("responses", [])
    ]
    return Session(
        id=data["id"],
        project_id=data["project_id"],
        platform=data["platform"],
        start_time=parse_timestamp(data["start_time"]) or now(),
        last_activity_time=parse_timestamp(data["last_activity_time"]) or now(),
        source_session_id=data.get("source_session_id"),
        prompt_count=data.get("prompt_count", len(prompts)),
        prompts=prompts,
        responses=responses,
        is_active=data.get("is_active", False),
        goal=_goal_from_dict(data.get("goal")),
        custom_name=data.get("custom_name"),
        average_score=data.get("average_score", 0.0),
    )


def _project_from_dict(data: dict) -> Project:
    return Project(
        id=data["id"],
        name=data["name"],
        path=data["path"],
        sessions=[_session_from_dict(s) for s in data.get("sessions", [])],
        total_sessions=data.get("total_sessions", 0),
        total_prompts=data.get("total_prompts", 0),
        last_activity_time=parse_timestamp(data.get("last_activity_time")),
    )


class SessionManager:
    """Tracks coding sessions per project and platform."""

    _instance = None
    _instance_lock = threading.Lock()

    def __init__(
        self,
        state_path: Optional[Path] = None,
        fs: Optional[FileSystem] = None,
        max_inactivity_minutes: int = MAX_INACTIVITY_MINUTES,
        persist: bool = True,
    ):
        self.state_path = Path(state_path or config.STATE_PATH)
        self.fs = fs or FileSystem()
        self.max_inactivity = timedelta(minutes=max_inactivity_minutes)
        self.persist = persist
        self.projects: dict[str, Project] = {}
        self.active_session_id: Optional[str] = None
        self.active_project_id: Optional[str] = None
        self._listeners: list[SessionEventListener] = []
        self._lock = threading.RLock()

    @classmethod
    def get_instance(cls) -> "SessionManager":
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = cls()
                cls._instance.load()
            return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        with cls._instance_lock:
            cls._instance = None

    # --- Events ---

    def subscribe(self, listener: SessionEventListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event_type: str, **data) -> None:
        for listener in list(self._listeners):
            try:
                listener(event_type, data)
            except Exception as e:
                logger.error(f"Session event listener failed for {event_type}: {e}")

    # --- Persistence ---

    def load(self) -> bool:
        result = safe_read_json_file(self.state_path, default=None, context="SessionManager")
        state = result.data
        if not isinstance(state, dict) or not isinstance(state.get("projects"), list):
            return False
        with self._lock:
            self.projects.clear()
            for raw in state["projects"]:
                try:
                    project = _project_from_dict(raw)
                except (KeyError, TypeError) as e:
                    logger.warning(f"Skipping malformed project in session state: {e}")
                    continue
                self.projects[project.id] = project
            self.active_session_id = state.get("active_session_id")
            self.active_project_id = state.get("active_project_id")
        logger.debug(f"Loaded {len(self.projects)} projects from {self.state_path}")
        return True

    def save(self) -> None:
        if not self.persist:
            return
        with self._lock:
            state = {
                "projects": to_jsonable(list(self.projects.values())),
                "active_session_id": self.active_session_id,
                "active_project_id": self.active_project_id,
            }
        try:
            self.fs.write_text(self.state_path, json.dumps(state, indent=2))
        except OSError as e:
            logger.warning(f"Failed to save session state: {e}")

    # --- Projects & sessions ---

    def get_or_create_project(self, path: Optional[str], name: Optional[str] = None) -> Project:
        path = path or UNKNOWN_PROJECT_PATH
        project_id = project_id_for_path(path)
        with self._lock:
            project = self.projects.get(project_id)
            if project is None:
                parts = [p for p in normalize_path(path).split("/") if p]
                project = Project(id=project_id, name=name or (parts[-1] if parts else path), path=path)
                self.projects[project_id] = project
                self._emit("project_created", project_id=project_id)
            return project

    def is_session_still_active(self, session: Session, at: Optional[datetime] = None) -> bool:
        return (at or now()) - session.last_activity_time < self.max_inactivity

    def get_or_create_session(
        self,
        project_id: str,
        platform: str,
        source_session_id: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> Session:
        """Return the live session for (project, platform, source session), opening one if needed."""
        at = at or now()
        with self._lock:
            project = self.projects.get(project_id)
            if project is None:
                raise KeyError(f"Project not found: {project_id}")

            for session in project.sessions:
                if session.platform != platform or not session.is_active:
                    continue
                if source_session_id and session.source_session_id != source_session_id:
                    continue
                if self.is_session_still_active(session, at):
                    return session

            for session in project.sessions:
                if session.platform == platform and session.is_active:
                    if source_session_id and session.source_session_id not in (None, source_session_id):
                        continue
                    session.is_active = False
                    self._emit("session_ended", session_id=session.id, project_id=project_id)

            session = Session(
                id=str(uuid.uuid4()),
                project_id=project_id,
                platform=platform,
                start_time=at,
                last_activity_time=at,
                source_session_id=source_session_id,
            )
            project.sessions.insert(0, session)
            project.total_sessions += 1
            self._emit("session_created", session_id=session.id, project_id=project_id)
        return session

    def find_session(self, session_id: str) -> Optional[Session]:
        with self._lock:
            for project in self.projects.values():
                for session in project.sessions:
                    if session.id == session_id:
                        return session
        return None

    def find_session_by_source_id(self, source_session_id: str) -> Optional[Session]:
        with self._lock:
            for project in self.projects.values():
                for session in project.sessions:
                    if session.source_session_id == source_session_id:
                        return session
        return None

    def get_active_session(self) -> Optional[Session]:
        return self.find_session(self.active_session_id) if self.active_session_id else None

    def get_active_project(self) -> Optional[Project]:
        return self.projects.get(self.active_project_id) if self.active_project_id else None

    def get_project(self, project_id: str) -> Optional[Project]:
        return self.projects.get(project_id)

    def switch_session(self, session_id: str) -> Optional[Session]:
        session = self.find_session(session_id)
        if session is None:
            return None
        with self._lock:
            self.active_session_id = session.id
            self.active_project_id = session.project_id
        self._emit("session_switched", session_id=session.id, project_id=session.project_id)
        self.save()
        return session

    def rename_session(self, session_id: str, name: str) -> bool:
        session = self.find_session(session_id)
        if session is None:
            return False
        session.custom_name = name.strip() or None
        self._emit("session_updated", session_id=session_id, project_id=session.project_id)
        self.save()
        return True

    def delete_session(self, session_id: str) -> bool:
        with self._lock:
            for project in self.projects.values():
                for i, session in enumerate(project.sessions):
                    if session.id != session_id:
                        continue
                    del project.sessions[i]
                    project.total_sessions = len(project.sessions)
                    if self.active_session_id == session_id:
                        self.active_session_id = None
                    break
                else:
                    continue
                self._emit("session_deleted", session_id=session_id, project_id=project.id)
                break
            else:
                return False
        self.save()
        return True

    # --- Prompts & responses ---

    def on_prompt_detected(self, prompt: DetectedPrompt) -> Session:
        """Attach a detected prompt to its session, making that session active."""
        project = self.get_or_create_project(prompt.context.project_path, prompt.context.project_name)
        session = self.get_or_create_session(
            project.id,
            prompt.source.id,
            prompt.context.source_session_id,
            at=prompt.timestamp,
        )
        with self._lock:
            self.active_project_id = project.id
            self.active_session_id = session.id
        self.add_prompt(session.id, prompt.text, prompt_id=prompt.id, timestamp=prompt.timestamp)
        return session

    def add_prompt(
        self,
        session_id: str,
        text: str,
        score: float = 0.0,
        breakdown: Optional[dict] = None,
        prompt_id: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> PromptRecord:
        session = self.find_session(session_id)
        if session is None:
            raise KeyError(f"Session not found: {session_id}")
        record = PromptRecord(
            id=prompt_id or str(uuid.uuid4()),
            session_id=session_id,
            text=text,
            truncated_text=truncate(text),
            timestamp=timestamp or now(),
            score=score,
            breakdown=breakdown,
        )
        with self._lock:
            session.prompts.insert(0, record)
            del session.prompts[MAX_PROMPTS_PER_SESSION:]
            session.prompt_count += 1
            session.last_activity_time = record.timestamp
            session.average_score = self._average(session.prompts)
            project = self.projects.get(session.project_id)
            if project:
                project.total_prompts += 1
                project.last_activity_time = record.timestamp
        self._emit("prompt_added", session_id=session_id, prompt_id=record.id, project_id=session.project_id)
        self.save()
        return record

    @staticmethod
    def _average(prompts: list[PromptRecord]) -> float:
        scored = [p.score for p in prompts if p.score]
        if not scored:
            return 0.0
        return round(sum(scored) / len(scored), 1)

    def update_prompt_score(self, prompt_id: str, score: float, breakdown: Optional[dict] = None) -> bool:
        with self._lock:
            for project in self.projects.values():
                for session in project.sessions:
                    for prompt in session.prompts:
                        if prompt.id == prompt_id:
                            prompt.score = score
                            prompt.breakdown = breakdown
                            session.average_score = self._average(session.prompts)
                            break
                    else:
                        continue
                    self._emit("prompt_updated", session_id=session.id, prompt_id=prompt_id, project_id=project.id)
                    self.save()
                    return True
        return False

    def add_response(self, response: CapturedResponse, prompt_id: Optional[str] = None) -> Optional[ResponseRecord]:
        """Record a captured response on its session (or the active one)."""
        source_id = response.session_id or response.conversation_id
        session = self.find_session_by_source_id(source_id) if source_id else None
        session = session or self.get_active_session()
        if session is None:
            logger.warning("No session for captured response; dropping")
            return None

        record = ResponseRecord(
            id=response.id,
            prompt_id=prompt_id or response.prompt_id or (session.prompts[0].id if session.prompts else ""),
            timestamp=parse_timestamp(response.timestamp) or now(),
            text=response.response[:MAX_RESPONSE_TEXT],
            outcome=determine_outcome(response),
            files_modified=list(response.files_modified),
            tool_calls=[t.name for t in response.tool_calls],
            source=response.source,
        )
        with self._lock:
            session.responses.insert(0, record)
            del session.responses[MAX_PROMPTS_PER_SESSION:]
        self._emit(
            "response_added",
            session_id=session.id,
            prompt_id=record.prompt_id,
            response_id=record.id,
            project_id=session.project_id,
        )
        self.save()
        return record

    def get_last_interactions(self, count: int, session_id: Optional[str] = None) -> list[Interaction]:
        """Most recent prompt/response pairs, newest first."""
        session = self.find_session(session_id) if session_id else self.get_active_session()
        if session is None:
            return []
        by_prompt = {r.prompt_id: r for r in reversed(session.responses)}
        return [Interaction(prompt=p, response=by_prompt.get(p.id)) for p in session.prompts[:count]]

    # --- Goals ---

    def _goal_session(self, session_id: Optional[str]) -> Optional[Session]:
        return self.find_session(session_id) if session_id else self.get_active_session()

    def set_goal(self, text: str, session_id: Optional[str] = None) -> bool:
        session = self._goal_session(session_id)
        if session is None or not text.strip():
            return False
        session.goal = Goal(text=text.strip(), set_at=now())
        self._emit("goal_set", session_id=session.id, project_id=session.project_id, goal=session.goal.text)
        self.save()
        return True

    def complete_goal(self, session_id: Optional[str] = None) -> Optional[Goal]:
        session = self._goal_session(session_id)
        if session is None or session.goal is None:
            return None
        session.goal.completed_at = now()
        self._emit("goal_completed", session_id=session.id, project_id=session.project_id, goal=session.goal.text)
        self.save()
        return session.goal

    def clear_goal(self, session_id: Optional[str] = None) -> bool:
        session = self._goal_session(session_id)
        if session is None or session.goal is None:
            return False
        session.goal = None
        self._emit("goal_cleared", session_id=session.id, project_id=session.project_id)
        self.save()
        return True

    def get_goal(self, session_id: Optional[str] = None) -> Optional[Goal]:
        session = self._goal_session(session_id)
        return session.goal if session else None
