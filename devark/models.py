"""Shared data models for prompts, sessions, responses, and coaching."""

from dataclasses import asdict, dataclass, field, is_dataclass
from datetime import datetime
from typing import Any, Optional


@dataclass(frozen=True)
class PromptSource:
    """A tool that prompts can be detected from."""

    id: str  # "claude_code", "cursor", ...
    display_name: str
    detection_method: str  # "hook", "polling", "api", "extension"


@dataclass(frozen=True)
class PromptContext:
    """Where a detected prompt came from."""

    project_path: Optional[str] = None
    project_name: Optional[str] = None
    source_session_id: Optional[str] = None
    files: tuple[str, ...] = ()
    metadata: dict = field(default_factory=dict)


@dataclass(frozen=True)
class DetectedPrompt:
    """A normalised prompt emitted by an adapter."""

    id: str  # "<source_id>-<ms>-<rand7>"
    text: str
    timestamp: datetime
    source: PromptSource
    context: PromptContext = field(default_factory=PromptContext)


@dataclass
class AdapterStatus:
    is_ready: bool = False
    is_available: bool = False
    is_watching: bool = False
    prompts_detected: int = 0
    last_error: Optional[str] = None
    info: Optional[str] = None


# --- Session reading ---


@dataclass
class Message:
    role: str  # "user", "assistant", "system"
    content: str
    timestamp: Optional[datetime] = None
    model: Optional[str] = None


@dataclass
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0
    context_utilization: float = 0.0
    source: str = "estimated"  # "api" or "estimated"


@dataclass
class ConversationHighlights:
    first_user_message: Optional[str] = None
    last_user_message: Optional[str] = None
    last_assistant_message: Optional[str] = None
    session_summaries: list[str] = field(default_factory=list)


@dataclass
class ModelUsageStats:
    models: list[str] = field(default_factory=list)
    primary_model: Optional[str] = None
    model_usage: dict[str, int] = field(default_factory=dict)
    model_switches: int = 0


@dataclass
class PlanningModeInfo:
    has_planning_mode: bool = False
    planning_cycles: int = 0
    exit_plan_timestamps: list[datetime] = field(default_factory=list)


@dataclass
class SessionIndex:
    """Lightweight session metadata held in memory for list views."""

    id: str  # "cursor-..." or "claude-..."
    source: str  # "cursor" or "claude_code"
    timestamp: datetime
    duration: int  # seconds
    project_path: str
    workspace_name: str
    prompt_count: int
    token_usage: Optional[TokenUsage] = None


@dataclass
class SessionDetails:
    """Heavy per-session data, loaded only when a session is opened."""

    messages: list[Message] = field(default_factory=list)
    highlights: Optional[ConversationHighlights] = None
    model_info: Optional[ModelUsageStats] = None
    planning_mode_info: Optional[PlanningModeInfo] = None
    file_context: list[str] = field(default_factory=list)


@dataclass
class SessionData:
    """A fully materialised session as produced by a reader."""

    id: str
    project_path: str
    timestamp: datetime
    messages: list[Message]
    duration: int  # seconds
    tool: str  # "claude_code" or "cursor"
    claude_session_id: Optional[str] = None
    metadata: dict = field(default_factory=dict)
    model_info: Optional[ModelUsageStats] = None
    planning_mode_info: Optional[PlanningModeInfo] = None
    git_branch: Optional[str] = None
    highlights: Optional[ConversationHighlights] = None
    token_usage: Optional[TokenUsage] = None


@dataclass
class UnifiedSession:
    """A session from any source, normalised for summaries and lists."""

    id: str
    source: str
    workspace_name: str
    workspace_path: str
    start_time: datetime
    end_time: datetime
    duration: int  # minutes
    prompt_count: int
    file_context: list[str] = field(default_factory=list)
    status: str = "historical"  # "active" or "historical"
    business_context: Optional[str] = None
    highlights: Optional[ConversationHighlights] = None
    token_usage: Optional[TokenUsage] = None
    raw: Optional[SessionData] = None


# --- Agent responses ---


@dataclass
class ToolCall:
    name: str
    arguments: dict = field(default_factory=dict)


@dataclass
class CapturedResponse:
    """An agent response captured by a stop / after-response hook."""

    id: str
    timestamp: str
    source: str
    response: str = ""
    success: bool = True
    conversation_id: Optional[str] = None
    generation_id: Optional[str] = None
    model: Optional[str] = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    files_modified: list[str] = field(default_factory=list)
    session_id: Optional[str] = None
    transcript_path: Optional[str] = None
    reason: Optional[str] = None  # "completed", "error", "cancelled", "aborted"
    tool_results: list[dict] = field(default_factory=list)
    cwd: Optional[str] = None
    workspace_roots: list[str] = field(default_factory=list)
    prompt_id: Optional[str] = None
    prompt_text: Optional[str] = None
    is_final: bool = False
    stop_reason: Optional[str] = None
    loop_count: Optional[int] = None

    @classmethod
    def from_payload(cls, data: dict, default_source: str = "cursor") -> "CapturedResponse":
        """Build a response from a hook payload using its camelCase keys."""
        tool_calls = []
        for call in data.get("toolCalls") or []:
            if isinstance(call, dict) and call.get("name"):
                tool_calls.append(ToolCall(name=call["name"], arguments=call.get("arguments") or {}))
        return cls(
            id=str(data["id"]),
            timestamp=data.get("timestamp") or datetime.now().isoformat(),
            source=data.get("source") or default_source,
            response=data.get("response") or "",
            success=data.get("success", True) is not False,
            conversation_id=data.get("conversationId"),
            generation_id=data.get("generationId"),
            model=data.get("model"),
            tool_calls=tool_calls[:10],
            files_modified=list(data.get("filesModified") or [])[:20],
            session_id=data.get("sessionId"),
            transcript_path=data.get("transcriptPath"),
            reason=data.get("reason"),
            tool_results=[r for r in data.get("toolResults") or [] if isinstance(r, dict)][:10],
            cwd=data.get("cwd"),
            workspace_roots=list(data.get("workspaceRoots") or []),
            prompt_id=data.get("promptId"),
            prompt_text=data.get("promptText"),
            is_final=bool(data.get("isFinal", False)),
            stop_reason=data.get("stopReason"),
            loop_count=data.get("loopCount"),
        )


# --- Coaching ---


@dataclass
class GoalProgress:
    before: int
    after: int
    just_completed: Optional[str] = None


@dataclass
class ResponseAnalysis:
    summary: str
    outcome: str  # "success", "partial", "blocked", "error"
    topics_addressed: list[str] = field(default_factory=list)
    entities_modified: list[str] = field(default_factory=list)
    goal_progress: Optional[GoalProgress] = None


@dataclass
class CoachingSuggestion:
    id: str
    type: str
    title: str
    description: str
    suggested_prompt: str
    confidence: float
    reasoning: str = ""


@dataclass
class CoachingData:
    analysis: ResponseAnalysis
    suggestions: list[CoachingSuggestion]
    timestamp: datetime
    response_id: Optional[str] = None
    prompt_id: Optional[str] = None
    prompt_text: Optional[str] = None
    source: Optional[str] = None
    session_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "CoachingData":
        analysis = dict(data["analysis"])
        progress = analysis.pop("goal_progress", None)
        return cls(
            analysis=ResponseAnalysis(
                **analysis,
                goal_progress=GoalProgress(**progress) if progress else None,
            ),
            suggestions=[CoachingSuggestion(**s) for s in data.get("suggestions", [])],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            response_id=data.get("response_id"),
            prompt_id=data.get("prompt_id"),
            prompt_text=data.get("prompt_text"),
            source=data.get("source"),
            session_id=data.get("session_id"),
        )


@dataclass
class CoachingResult:
    generated: bool
    coaching: Optional[CoachingData] = None
    reason: Optional[str] = None  # "duplicate", "throttled", "cooldown", "error_response", ...


def to_jsonable(obj: Any) -> Any:
    """Convert dataclasses and datetimes into JSON-serialisable values."""
    if is_dataclass(obj) and not isinstance(obj, type):
        return to_jsonable(asdict(obj))
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, dict):
        return {k: to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_jsonable(v) for v in obj]
    return obj
