"""Incremental upload of local sessions to the DevArk backend.

Sessions come from every available reader, are filtered to ones long
enough to count (and outside ignored folders), sanitised, and uploaded in
size-bounded batches. The server's last session timestamp drives
incremental sync unless the caller forces a full upload or gives a date.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import httpx

from .. import config
from ..ignore_paths import should_ignore_path
from ..models import SessionData
from .api_client import DevArkApiClient, UploadProgressCallback, UploadResult
from .auth import AuthService
from .sanitizer import to_sanitized_session
from .state import SyncStateStorage

logger = logging.getLogger(__name__)


@dataclass
class SyncIssue:
    message: str
    code: str
    project_path: Optional[str] = None


@dataclass
class SyncResult:
    success: bool
    sessions_uploaded: int = 0
    sessions_failed: int = 0
    sessions_skipped: int = 0
    projects_synced: list[str] = field(default_factory=list)
    errors: list[SyncIssue] = field(default_factory=list)
    upload_result: Optional[UploadResult] = None


@dataclass
class SyncStatusSummary:
    local_sessions: int
    synced_sessions: int
    pending_uploads: int
    last_synced: Optional[datetime] = None


def is_eligible_for_sync(session: SessionData) -> bool:
    return session.duration >= config.MIN_SYNC_DURATION_SECONDS and not should_ignore_path(session.project_path)


class SyncService:
    def __init__(
        self,
        readers: list,
        api_client: DevArkApiClient,
        auth: AuthService,
        sync_state: Optional[SyncStateStorage] = None,
    ):
        self.readers = readers
        self.api_client = api_client
        self.auth = auth
        self.sync_state = sync_state or SyncStateStorage()

    def server_last_session_date(self) -> Optional[datetime]:
        """None when the server has no sessions or cannot be asked."""
        try:
            return self.api_client.get_last_session_date().timestamp
        except httpx.HTTPError as e:
            logger.warning(f"Could not get server last session, falling back to a full read: {e}")
            return None

    def read_local_sessions(self, since: Optional[datetime] = None, project_path: Optional[str] = None) -> list[SessionData]:
        sessions: list[SessionData] = []
        for reader in self.readers:
            if not reader.is_available():
                continue
            try:
                sessions.extend(reader.read_sessions(since=since, project_path=project_path))
            except Exception as e:
                logger.error(f"Reading sessions from {type(reader).__name__} failed: {e}")
        return sessions

    def sync(
        self,
        since: Optional[datetime] = None,
        force: bool = False,
        on_progress: Optional[UploadProgressCallback] = None,
        project_path: Optional[str] = None,
    ) -> SyncResult:
        if not self.auth.get_token():
            return SyncResult(success=False, errors=[SyncIssue("Not authenticated", "NOT_AUTHENTICATED")])
        if not self.auth.verify():
            return SyncResult(success=False, errors=[SyncIssue("Token is invalid", "TOKEN_INVALID")])

        if since is None and not force:
            since = self.server_last_session_date()
        logger.info(f"Syncing sessions since {since.isoformat() if since else 'the beginning'}")

        local = self.read_local_sessions(since=None if force else since, project_path=project_path)
        eligible = [s for s in local if is_eligible_for_sync(s)]
        skipped = len(local) - len(eligible)
        if not eligible:
            return SyncResult(success=True, sessions_skipped=skipped)

        payload = [to_sanitized_session(s) for s in eligible]
        projects = list(dict.fromkeys(s.project_path for s in eligible))

        try:
            upload = self.api_client.upload_sessions(payload, on_progress=on_progress)
        except httpx.HTTPError as e:
            message = str(e) or "Upload failed"
            logger.error(f"Upload failed: {message}")
            self.sync_state.record_error(message, "UPLOAD_FAILED")
            return SyncResult(
                success=False,
                sessions_failed=len(eligible),
                sessions_skipped=skipped,
                errors=[SyncIssue(message, "UPLOAD_FAILED")],
            )

        for project in projects:
            in_project = [s for s in eligible if s.project_path == project]
            self.sync_state.record_sync(project, len(in_project), in_project[-1].id)

        return SyncResult(
            success=upload.success,
            sessions_uploaded=upload.sessions_processed,
            sessions_skipped=skipped,
            projects_synced=projects,
            upload_result=upload,
        )

    def status(self) -> SyncStatusSummary:
        state = self.sync_state.get_state()
        eligible = [s for s in self.read_local_sessions() if is_eligible_for_sync(s)]
        last = state.global_last_sync
        pending = sum(1 for s in eligible if s.timestamp > last) if last else len(eligible)
        return SyncStatusSummary(
            local_sessions=len(eligible),
            synced_sessions=state.total_sessions_uploaded,
            pending_uploads=pending,
            last_synced=last,
        )
