"""Claude Code session reader over the JSONL transcripts in ~/.claude/projects."""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

from .. import config
from ..models import (
    Message,
    ModelUsageStats,
    PlanningModeInfo,
    SessionData,
    SessionDetails,
    SessionIndex,
    TokenUsage,
)
from ..safe_json import safe_parse
from ..timeutil import parse_timestamp
from .prompts import filter_image_content, is_actual_user_prompt
from .session_utils import (
    calculate_duration,
    calculate_token_usage,
    count_tokens,
    estimate_context_utilization,
    extract_highlights,
    extract_languages,
)

logger = logging.getLogger(__name__)

HEAD_BYTES = 4096
# Index scans at most this much from each end of a transcript
INDEX_WINDOW_BYTES = 256 * 1024

# Claude-specific noise in highlights
CLAUDE_SKIP_PATTERNS = (
    "<command-name>",
    "<local-command-",
    "Caveat: The messages below were generated",
)

# Project folders are encoded paths, so these match as substrings
IGNORED_FOLDER_SUBSTRINGS = (
    "devark-hooks",
    "devark-temp",
    "devark-analysis",
    "temp-prompt-analysis",
    "temp-standup",
    "temp-productivity-report",
    "programs-cursor",
    "appdata-local-programs-cursor",
)


def should_ignore_project_folder(folder_name: str) -> bool:
    lower = folder_name.lower()
    return any(pattern in lower for pattern in IGNORED_FOLDER_SUBSTRINGS)


def parse_jsonl_lines(lines: list[str]) -> Iterator[dict]:
    """Yield JSON objects from transcript lines.

    Invalid lines are skipped. The final line may still be mid-write, so it
    gets one recovery attempt before being dropped.
    """
    last = len(lines) - 1
    for i, line in enumerate(lines):
        if not line.strip():
            continue
        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            if i != last:
                continue
            result = safe_parse(line, attempt_recovery=True, context="ClaudeSessionReader:tail")
            if not result.success:
                continue
            data = result.data
        if isinstance(data, dict):
            yield data


def read_index_lines(path: Path) -> list[str]:
    """Lines for the index scan: the whole file when small, else its head and tail windows.

    Partial lines at the window edges are dropped, so on large transcripts the
    prompt count and token estimate are lower bounds. The last timestamp
    always comes from the tail.
    """
    size = path.stat().st_size
    with open(path, "rb") as f:
        if size <= 2 * INDEX_WINDOW_BYTES:
            return f.read().decode("utf-8", errors="ignore").splitlines()
        head = f.read(INDEX_WINDOW_BYTES).decode("utf-8", errors="ignore").splitlines()[:-1]
        f.seek(size - INDEX_WINDOW_BYTES)
        tail = f.read().decode("utf-8", errors="ignore").splitlines()[1:]
    return head + tail


def _file_times(path: Path) -> tuple[datetime, datetime]:
    stat = path.stat()
    return (
        datetime.fromtimestamp(stat.st_ctime, tz=timezone.utc),
        datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
    )


def _matches_project(project_path: str, prefix: Optional[str]) -> bool:
    return not prefix or project_path.lower().startswith(prefix.lower())


class _UsageTotals:
    """Accumulates API-reported token usage from assistant entries."""

    def __init__(self):
        self.input_tokens = 0
        self.output_tokens = 0
        self.cache_creation = 0
        self.cache_read = 0
        self.last_context = 0
        self.seen = False

    def add(self, usage) -> None:
        if not isinstance(usage, dict):
            return
        self.seen = True
        self.input_tokens += int(usage.get("input_tokens") or 0)
        self.output_tokens += int(usage.get("output_tokens") or 0)
        self.cache_creation += int(usage.get("cache_creation_input_tokens") or 0)
        self.cache_read += int(usage.get("cache_read_input_tokens") or 0)
        # The latest request's prompt size is what occupies the context window
        self.last_context = (
            int(usage.get("input_tokens") or 0)
            + int(usage.get("cache_creation_input_tokens") or 0)
            + int(usage.get("cache_read_input_tokens") or 0)
        )

    def to_token_usage(self, model: Optional[str]) -> TokenUsage:
        return TokenUsage(
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
            total_tokens=self.input_tokens + self.output_tokens,
            cache_creation_input_tokens=self.cache_creation,
            cache_read_input_tokens=self.cache_read,
            context_utilization=estimate_context_utilization(self.last_context, model),
            source="api",
        )


class ClaudeSessionReader:
    """Reads Claude Code transcripts with model and planning-mode tracking."""

    tool = "claude_code"

    def __init__(self, projects_dir: Optional[Path] = None):
        self.projects_dir = Path(projects_dir or config.CLAUDE_PROJECTS_DIR)

    def is_available(self) -> bool:
        return self.projects_dir.exists()

    def iter_session_files(self) -> Iterator[tuple[str, Path]]:
        """Yield (project folder name, transcript path), skipping agent and ignored files."""
        if not self.projects_dir.exists():
            return
        for project_dir in sorted(self.projects_dir.iterdir()):
            if not project_dir.is_dir():
                continue
            if should_ignore_project_folder(project_dir.name):
                logger.debug(f"Skipping ignored Claude project folder {project_dir.name}")
                continue
            for path in sorted(project_dir.glob("*.jsonl")):
                if path.name.startswith("agent-") or not path.is_file():
                    continue
                yield project_dir.name, path

    # --- Index ---

    def read_session_index(
        self,
        since: Optional[datetime] = None,
        project_path: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[SessionIndex]:
        indices: list[SessionIndex] = []
        for project_dir_name, path in self.iter_session_files():
            try:
                if since:
                    created, modified = _file_times(path)
                    if created < since and modified < since:
                        continue
                index = self.quick_extract_index(path, project_dir_name)
            except OSError as e:
                logger.debug(f"Skipping unreadable transcript {path}: {e}")
                continue
            if index is None:
                continue
            if since and index.timestamp < since:
                continue
            if not _matches_project(index.project_path, project_path):
                continue
            indices.append(index)
            if limit and len(indices) >= limit:
                break
        indices.sort(key=lambda i: i.timestamp, reverse=True)
        return indices

    def quick_extract_index(self, path: Path, project_dir_name: str) -> Optional[SessionIndex]:
        """Build index metadata from the file head plus a bounded line scan."""
        with open(path, "rb") as f:
            head = f.read(HEAD_BYTES).decode("utf-8", errors="ignore")

        session_id = cwd = None
        first_ts = None
        for line in head.splitlines():
            try:
                data = json.loads(line)
            except json.JSONDecodeError:
                continue
            if not isinstance(data, dict):
                continue
            session_id = session_id or data.get("sessionId")
            cwd = cwd or data.get("cwd")
            first_ts = first_ts or parse_timestamp(data.get("timestamp"))
            if session_id and cwd and first_ts:
                break
        if not (session_id and cwd and first_ts):
            return None

        lines = read_index_lines(path)
        prompt_count = 0
        last_ts = first_ts
        input_tokens = output_tokens = 0
        for data in parse_jsonl_lines(lines):
            ts = parse_timestamp(data.get("timestamp"))
            if ts:
                last_ts = ts
            message = data.get("message")
            if not isinstance(message, dict):
                continue
            content = filter_image_content(message.get("content"))
            if message.get("role") == "user":
                input_tokens += count_tokens(content)
                if is_actual_user_prompt(content):
                    prompt_count += 1
            elif message.get("role") == "assistant":
                output_tokens += count_tokens(content)

        parts = [p for p in cwd.replace("\\", "/").split("/") if p]
        total = input_tokens + output_tokens
        return SessionIndex(
            id=f"{project_dir_name}/{path.name}/{session_id}",
            source="claude_code",
            timestamp=first_ts,
            duration=int((last_ts - first_ts).total_seconds()),
            project_path=cwd,
            workspace_name=parts[-1] if parts else "Unknown Project",
            prompt_count=prompt_count,
            token_usage=TokenUsage(
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                total_tokens=total,
                context_utilization=estimate_context_utilization(total),
            ),
        )

    # --- Full sessions ---

    def read_sessions(
        self,
        since: Optional[datetime] = None,
        project_path: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[SessionData]:
        sessions: list[SessionData] = []
        for project_dir_name, path in self.iter_session_files():
            try:
                if since:
                    created, modified = _file_times(path)
                    if created < since and modified < since:
                        continue
                session = self.parse_session_file(path, project_dir_name)
            except OSError as e:
                logger.debug(f"Skipping unreadable transcript {path}: {e}")
                continue
            if session is None:
                continue
            if since and session.timestamp < since:
                continue
            if not _matches_project(session.project_path, project_path):
                continue
            sessions.append(session)
            if limit and len(sessions) >= limit:
                break
        sessions.sort(key=lambda s: s.timestamp)
        logger.debug(f"Read {len(sessions)} Claude Code sessions")
        return sessions

    def get_session_by_id(self, claude_session_id: str) -> Optional[SessionData]:
        return next((s for s in self.read_sessions() if s.claude_session_id == claude_session_id), None)

    def get_session_details(self, session_id: str) -> Optional[SessionDetails]:
        """Load details for an index id of the form "projectDir/fileName/sessionId"."""
        parts = session_id.split("/")
        if len(parts) < 3:
            return None
        path = self.projects_dir / parts[0] / parts[1]
        if not path.is_file():
            return None
        try:
            session = self.parse_session_file(path, parts[0])
        except OSError:
            return None
        if session is None:
            return None
        return SessionDetails(
            messages=session.messages,
            highlights=session.highlights,
            model_info=session.model_info,
            planning_mode_info=session.planning_mode_info,
            file_context=session.metadata.get("editedFiles") or session.metadata.get("languages") or [],
        )

    def parse_session_file(self, path: Path, project_dir_name: str) -> Optional[SessionData]:
        lines = path.read_text(encoding="utf-8", errors="ignore").strip().splitlines()
        if not lines:
            return None

        messages: list[Message] = []
        header = None
        edited_files: list[str] = []
        model_usage: dict[str, int] = {}
        last_model = None
        model_switches = 0
        exit_plan_timestamps: list[datetime] = []
        git_branch = None
        usage = _UsageTotals()

        for data in parse_jsonl_lines(lines):
            git_branch = git_branch or data.get("gitBranch")
            ts = parse_timestamp(data.get("timestamp"))

            if header is None and data.get("sessionId") and data.get("cwd") and ts:
                header = (data["sessionId"], data["cwd"], ts)

            message = data.get("message")
            if isinstance(message, dict) and ts:
                content = message.get("content")
                if isinstance(content, list):
                    for item in content:
                        if isinstance(item, dict) and item.get("type") == "tool_use" and item.get("name") == "ExitPlanMode":
                            exit_plan_timestamps.append(ts)

                role = message.get("role")
                model = message.get("model")
                messages.append(Message(
                    role=role,
                    content=filter_image_content(content),
                    timestamp=ts,
                    model=model if role == "assistant" else None,
                ))
                if role == "assistant":
                    usage.add(message.get("usage"))
                    if model:
                        model_usage[model] = model_usage.get(model, 0) + 1
                        if last_model and last_model != model:
                            model_switches += 1
                        last_model = model

            result = data.get("toolUseResult")
            if isinstance(result, dict) and result.get("type") in ("create", "update"):
                file_path = result.get("filePath")
                if file_path and file_path not in edited_files:
                    edited_files.append(file_path)

        if header is None or not messages:
            return None
        claude_session_id, cwd, started = header

        model_info = None
        if model_usage:
            model_info = ModelUsageStats(
                models=list(model_usage),
                primary_model=max(model_usage, key=model_usage.get),
                model_usage=model_usage,
                model_switches=model_switches,
            )

        planning = None
        if exit_plan_timestamps:
            planning = PlanningModeInfo(
                has_planning_mode=True,
                planning_cycles=len(exit_plan_timestamps),
                exit_plan_timestamps=exit_plan_timestamps,
            )

        primary_model = model_info.primary_model if model_info else None
        if usage.seen:
            token_usage = usage.to_token_usage(primary_model)
        else:
            token_usage = calculate_token_usage(messages, primary_model)

        return SessionData(
            id=f"{project_dir_name}/{path.name}/{claude_session_id}",
            project_path=cwd,
            timestamp=started,
            messages=messages,
            duration=calculate_duration(messages),
            tool="claude_code",
            claude_session_id=claude_session_id,
            metadata={
                "files_edited": len(edited_files),
                "languages": extract_languages(edited_files),
                "editedFiles": edited_files,
                "sourceFile": {
                    "claudeProjectPath": str(self.projects_dir / project_dir_name),
                    "sessionFile": path.name,
                },
            },
            model_info=model_info,
            planning_mode_info=planning,
            git_branch=git_branch,
            highlights=extract_highlights(messages, skip_patterns=CLAUDE_SKIP_PATTERNS),
            token_usage=token_usage,
        )
