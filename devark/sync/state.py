"""Per-project upload bookkeeping in ~/.devark/sync-state.json."""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from .. import config
from ..fs import FileSystem
from ..timeutil import now, parse_timestamp

logger = logging.getLogger(__name__)


@dataclass
class ProjectSyncState:
    project_path: str
    last_sync_time: Optional[datetime]
    sessions_uploaded: int = 0
    last_session_id: Optional[str] = None


@dataclass
class SyncError:
    time: Optional[datetime]
    message: str
    code: Optional[str] = None


@dataclass
class SyncState:
    global_last_sync: Optional[datetime] = None
    projects: dict[str, ProjectSyncState] = field(default_factory=dict)
    total_sessions_uploaded: int = 0
    last_error: Optional[SyncError] = None


class SyncStateStorage:
    def __init__(self, path: Optional[Path] = None, fs: Optional[FileSystem] = None):
        self.path = Path(path) if path else config.SYNC_STATE_PATH
        self.fs = fs or FileSystem()

    def _read(self) -> dict:
        try:
            data = json.loads(self.fs.read_text(self.path))
        except (OSError, ValueError):
            data = None
        if not isinstance(data, dict):
            return {"projects": {}, "totalSessionsUploaded": 0}
        data.setdefault("projects", {})
        data.setdefault("totalSessionsUploaded", 0)
        return data

    def _write(self, data: dict) -> None:
        self.fs.write_text(self.path, json.dumps(data, indent=2))

    def get_last_sync_time(self, project_path: str) -> Optional[datetime]:
        project = self._read()["projects"].get(project_path)
        return parse_timestamp(project.get("lastSyncTime")) if project else None

    def get_global_last_sync(self) -> Optional[datetime]:
        return parse_timestamp(self._read().get("globalLastSync"))

    def record_sync(self, project_path: str, sessions_uploaded: int, last_session_id: Optional[str] = None) -> None:
        data = self._read()
        stamp = now().isoformat()
        project = data["projects"].setdefault(
            project_path, {"projectPath": project_path, "sessionsUploaded": 0}
        )
        project["lastSyncTime"] = stamp
        project["sessionsUploaded"] = project.get("sessionsUploaded", 0) + sessions_uploaded
        project["lastSessionId"] = last_session_id
        data["globalLastSync"] = stamp
        data["totalSessionsUploaded"] += sessions_uploaded
        self._write(data)

    def record_error(self, message: str, code: Optional[str] = None) -> None:
        data = self._read()
        data["lastError"] = {"time": now().isoformat(), "message": message, "code": code}
        self._write(data)

    def get_state(self) -> SyncState:
        data = self._read()
        projects = {
            path: ProjectSyncState(
                project_path=p.get("projectPath", path),
                last_sync_time=parse_timestamp(p.get("lastSyncTime")),
                sessions_uploaded=p.get("sessionsUploaded", 0),
                last_session_id=p.get("lastSessionId"),
            )
            for path, p in data["projects"].items()
        }
        error = data.get("lastError")
        return SyncState(
            global_last_sync=parse_timestamp(data.get("globalLastSync")),
            projects=projects,
            total_sessions_uploaded=data["totalSessionsUploaded"],
            last_error=SyncError(
                time=parse_timestamp(error.get("time")),
                message=error.get("message", ""),
                code=error.get("code"),
            ) if isinstance(error, dict) else None,
        )

    def clear(self) -> None:
        self._write({"projects": {}, "totalSessionsUploaded": 0})
