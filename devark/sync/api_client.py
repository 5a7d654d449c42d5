"""HTTP client for the DevArk backend: auth, session upload and user data."""

import hashlib
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

import httpx

from .. import config
from ..timeutil import parse_timestamp

logger = logging.getLogger(__name__)

TARGET_BATCH_SIZE_BYTES = 500 * 1024
BUFFER_PERCENT = 0.20
SOURCE = "ide_extension"
DEFAULT_TIMEOUT = 30.0

UploadProgressCallback = Callable[[int, int], None]


def to_json(value: Any) -> str:
    """Compact JSON, the form used for both size estimates and checksums."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def estimate_session_size(session: dict) -> int:
    return len(to_json(session).encode("utf-8"))


def calculate_checksum(value: Any) -> str:
    return hashlib.sha256(to_json(value).encode("utf-8")).hexdigest()


def create_size_batches(
    sessions: list[dict],
    target_size_bytes: int = TARGET_BATCH_SIZE_BYTES,
    buffer_percent: float = BUFFER_PERCENT,
    sizes: Optional[list[int]] = None,
) -> list[list[dict]]:
    """Split sessions into order-preserving batches under the effective cap.

    A session is always added to an empty batch, so an oversized session
    travels alone instead of blocking the upload.
    """
    effective_target = target_size_bytes * (1 - buffer_percent)
    if sizes is None:
        sizes = [estimate_session_size(s) for s in sessions]

    batches: list[list[dict]] = []
    current: list[dict] = []
    current_size = 0
    for session, size in zip(sessions, sizes):
        if current and current_size + size > effective_target:
            batches.append(current)
            current = [session]
            current_size = size
        else:
            current.append(session)
            current_size += size
    if current:
        batches.append(current)
    return batches


@dataclass
class AuthSession:
    auth_url: str
    token: str


@dataclass
class AuthCompletion:
    success: bool
    user_id: Optional[Any] = None
    token: Optional[str] = None


@dataclass
class TokenVerification:
    valid: bool
    user_id: Optional[str] = None
    user: Optional[dict] = None


@dataclass
class UploadResult:
    success: bool
    sessions_processed: int = 0
    created: int = 0
    duplicates: int = 0
    analysis_preview: Optional[dict] = None
    streak: Optional[dict] = None
    points_earned: Optional[dict] = None
    batch_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "UploadResult":
        return cls(
            success=bool(data.get("success")),
            sessions_processed=data.get("sessionsProcessed") or 0,
            created=data.get("created") or 0,
            duplicates=data.get("duplicates") or 0,
            analysis_preview=data.get("analysisPreview"),
            streak=data.get("streak"),
            points_earned=data.get("pointsEarned"),
            batch_id=data.get("batchId"),
        )


@dataclass
class LastSession:
    timestamp: Optional[datetime] = None
    session_id: Optional[str] = None


@dataclass
class StreakInfo:
    current: int = 0
    longest: int = 0
    points: int = 0
    extra: dict = field(default_factory=dict)


def merge_points_earned(results: list[UploadResult]) -> Optional[dict]:
    merged = None
    for r in results:
        points = r.points_earned
        if not points:
            continue
        if merged is None:
            merged = dict(points)
            continue
        merged = {
            "streak": max(merged.get("streak") or 0, points.get("streak") or 0),
            "volume": (merged.get("volume") or 0) + (points.get("volume") or 0),
            "share": max(merged.get("share") or 0, points.get("share") or 0),
            "total": (merged.get("total") or 0) + (points.get("total") or 0),
            "message": points.get("message") or merged.get("message"),
        }
    return merged


def merge_results(results: list[UploadResult], total_sessions: int) -> UploadResult:
    if not results:
        return UploadResult(success=True)
    return UploadResult(
        success=all(r.success for r in results),
        sessions_processed=total_sessions,
        created=sum(r.created for r in results),
        duplicates=sum(r.duplicates for r in results),
        analysis_preview=results[0].analysis_preview,
        streak=results[-1].streak,
        points_earned=merge_points_earned(results),
        batch_id=next((r.batch_id for r in results if r.batch_id), None),
    )


class DevArkApiClient:
    """Thin wrapper over ``httpx.Client`` with the backend's endpoints."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.base_url = (base_url or config.api_url()).rstrip("/")
        self._client = httpx.Client(base_url=self.base_url, transport=transport, timeout=timeout)
        self.set_token(token)

    def __enter__(self) -> "DevArkApiClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def set_token(self, token: Optional[str]) -> None:
        if token:
            self._client.headers["Authorization"] = f"Bearer {token}"
        else:
            self._client.headers.pop("Authorization", None)

    def _get(self, path: str, **kwargs) -> Any:
        response = self._client.get(path, **kwargs)
        response.raise_for_status()
        return response.json()

    def _post(self, path: str, payload: Any, headers: Optional[dict] = None) -> Any:
        response = self._client.post(
            path,
            content=to_json(payload).encode("utf-8"),
            headers={"Content-Type": "application/json", **(headers or {})},
        )
        response.raise_for_status()
        return response.json()

    # --- Authentication ---

    def create_auth_session(self) -> AuthSession:
        data = self._post("/api/auth/cli/session", {"timestamp": datetime.now().isoformat(), "source": SOURCE})
        auth_url = data.get("authUrl")
        if not auth_url or not isinstance(auth_url, str):
            raise ValueError("Invalid auth response: missing authUrl")
        token = data.get("token") or data.get("sessionId")
        if not token or not isinstance(token, str):
            raise ValueError("Invalid auth response: missing token")
        separator = "&" if "?" in auth_url else "?"
        return AuthSession(auth_url=f"{auth_url}{separator}source={SOURCE}", token=token)

    def check_auth_completion(self, token: str) -> AuthCompletion:
        """404 means the browser flow has not finished yet."""
        try:
            data = self._get("/api/auth/cli/complete", params={"token": token})
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return AuthCompletion(success=False)
            raise
        token = data.get("token")
        return AuthCompletion(
            success=bool(data.get("success")),
            user_id=data.get("userId"),
            token=token if isinstance(token, str) else None,
        )

    def stream_auth_token(self, session_token: str, timeout: float = 300.0) -> str:
        """Wait on the server-sent event stream for the browser login to finish.

        Returns the API token from the ``success`` event; raises RuntimeError
        for ``error``, ``expired`` and ``timeout`` events.
        """
        with self._client.stream(
            "GET",
            f"/api/auth/cli/stream/{session_token}",
            headers={"Accept": "text/event-stream", "Cache-Control": "no-cache"},
            timeout=httpx.Timeout(timeout, connect=DEFAULT_TIMEOUT),
        ) as response:
            response.raise_for_status()
            for line in response.iter_lines():
                line = line.strip()
                if not line.startswith("data: "):
                    continue
                try:
                    event = json.loads(line[len("data: "):])
                except json.JSONDecodeError as e:
                    logger.debug(f"Ignoring malformed auth event: {e}")
                    continue
                status = event.get("status")
                if status == "success":
                    if not event.get("token"):
                        raise RuntimeError("No token in success response")
                    return event["token"]
                if status == "error":
                    raise RuntimeError(event.get("message") or "Authentication failed")
                if status == "expired":
                    raise RuntimeError("Authentication session expired")
                if status == "timeout":
                    raise RuntimeError("Authentication timed out")
        raise RuntimeError("Authentication stream closed before completion")

    def verify_token(self) -> TokenVerification:
        try:
            data = self._get("/api/auth/cli/verify")
        except Exception as e:
            logger.debug(f"Token verification failed: {e}")
            return TokenVerification(valid=False)
        user = data.get("user")
        return TokenVerification(
            valid=data.get("valid") is True or user is not None,
            user_id=user.get("id") if isinstance(user, dict) else None,
            user=user,
        )

    # --- Sessions ---

    def upload_sessions(
        self,
        sessions: list[dict],
        on_progress: Optional[UploadProgressCallback] = None,
    ) -> UploadResult:
        if not sessions:
            return UploadResult(success=True)

        sizes = [estimate_session_size(s) for s in sessions]
        batches = create_size_batches(sessions, sizes=sizes)
        logger.info(
            f"Uploading {len(sessions)} sessions in {len(batches)} batches ({sum(sizes) / 1024:.2f} KB total)"
        )

        results = []
        uploaded = 0
        for number, batch in enumerate(batches, start=1):
            payload = {
                "sessions": batch,
                "checksum": calculate_checksum(batch),
                "totalSessions": len(sessions),
                "batchNumber": number,
                "totalBatches": len(batches),
            }
            logger.debug(f"Uploading batch {number}/{len(batches)} with {len(batch)} sessions")
            data = self._post("/cli/sessions", payload, headers={"x-devark-source": SOURCE})
            results.append(UploadResult.from_dict(data))
            uploaded += len(batch)
            if on_progress:
                on_progress(uploaded, len(sessions))

        return merge_results(results, len(sessions))

    def get_recent_sessions(
        self,
        limit: int = 10,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[dict]:
        params = {"limit": str(min(max(1, limit), 100))}
        if start:
            params["start"] = start.isoformat()
        if end:
            params["end"] = end.isoformat()
        data = self._get("/api/sessions/recent", params=params)
        if isinstance(data, list):
            return data
        return data.get("sessions") or []

    def get_last_session_date(self) -> LastSession:
        try:
            data = self._get("/api/sessions/last")
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return LastSession()
            raise
        return LastSession(
            timestamp=parse_timestamp(data.get("lastSessionTimestamp")),
            session_id=data.get("lastSessionId"),
        )

    def get_streak(self) -> StreakInfo:
        data = self._get("/api/user/streak")
        known = {"current", "longest", "points"}
        return StreakInfo(
            current=data.get("current") or 0,
            longest=data.get("longest") or 0,
            points=data.get("points") or 0,
            extra={k: v for k, v in data.items() if k not in known},
        )
