"""Heuristic analysis of captured agent responses. No LLM calls."""

import re
from typing import Optional

from ..models import CapturedResponse, GoalProgress, ResponseAnalysis

MAX_TOPICS = 5
MAX_ENTITIES = 20

TOPIC_PATTERNS = [
    (re.compile(r"\b(test|testing|tests|spec)\b", re.I), "Testing"),
    (re.compile(r"\b(fix|fixed|bug|error|issue)\b", re.I), "Bug Fix"),
    (re.compile(r"\b(refactor|clean|improve)\b", re.I), "Refactoring"),
    (re.compile(r"\b(add|create|implement|new)\b", re.I), "Feature"),
    (re.compile(r"\b(type|types|typescript|interface)\b", re.I), "Type Safety"),
    (re.compile(r"\b(style|css|design|ui)\b", re.I), "Styling"),
    (re.compile(r"\b(api|endpoint|request|response)\b", re.I), "API"),
    (re.compile(r"\b(database|db|query|sql)\b", re.I), "Database"),
    (re.compile(r"\b(auth|login|authentication|jwt)\b", re.I), "Authentication"),
    (re.compile(r"\b(deploy|build|ci|cd)\b", re.I), "DevOps"),
    (re.compile(r"\b(config|configuration|setup|env)\b", re.I), "Configuration"),
    (re.compile(r"\b(document|readme|comment)\b", re.I), "Documentation"),
    (re.compile(r"\b(component|react|vue|angular)\b", re.I), "Components"),
    (re.compile(r"\b(hook|useState|useEffect)\b", re.I), "React Hooks"),
    (re.compile(r"\b(state|redux|store|context)\b", re.I), "State Management"),
    (re.compile(r"\b(route|router|navigation)\b", re.I), "Routing"),
    (re.compile(r"\b(validation|validate|schema)\b", re.I), "Validation"),
    (re.compile(r"\b(performance|optimize|cache)\b", re.I), "Performance"),
    (re.compile(r"\b(security|sanitize|escape)\b", re.I), "Security"),
]

_FILE_IN_TEXT = [
    re.compile(r"(?:modified|created|updated|wrote|edited)\s+[`\"']?([\w\-./\\]+\.[a-zA-Z]{2,6})[`\"']?", re.I),
    re.compile(r"`([\w\-./\\]+\.[a-zA-Z]{2,6})`"),
]
_FILE_IN_RESULT = re.compile(r"(?:file|path|wrote|created|modified)[:\s]+([^\s,\n]+)", re.I)
_HAS_EXTENSION = re.compile(r"\.[a-zA-Z]{2,6}$")
_BARE_PATH = re.compile(r"^[\w\-./\\]+$")
_JSON_KEY = re.compile(r'"[^"]+"\s*:')
_CANCEL_REASONS = {"cancelled", "aborted"}
_CANCEL_STOP_REASONS = {"aborted", "cancelled", "loop_limit", "max_turns"}


def extract_topics(text: str) -> list[str]:
    if not text:
        return []
    return [topic for pattern, topic in TOPIC_PATTERNS if pattern.search(text)][:MAX_TOPICS]


def normalize_file_path(path: str) -> str:
    normalized = re.sub(r"^\.[\\/]", "", path).replace("\\", "/")
    if len(normalized) > 50:
        normalized = "/".join(normalized.split("/")[-2:])
    return normalized


def is_valid_file_path(path: str) -> bool:
    if not _HAS_EXTENSION.search(path):
        return False
    if re.match(r"^https?://", path):
        return False
    return not re.search(r'[<>|"?*]', path)


def extract_entities(response: CapturedResponse) -> list[str]:
    """Files touched by the response, from hook fields, tool calls and the text."""
    entities: dict[str, None] = {}

    for path in response.files_modified:
        entities[normalize_file_path(path)] = None

    for call in response.tool_calls:
        for key in ("path", "file", "file_path"):
            value = call.arguments.get(key)
            if isinstance(value, str) and value:
                entities[normalize_file_path(value)] = None

    for result in response.tool_results:
        text = result.get("result")
        if not isinstance(text, str):
            continue
        for match in _FILE_IN_RESULT.finditer(text):
            candidate = match.group(1)
            if "/" in candidate or "\\" in candidate:
                entities[normalize_file_path(candidate)] = None

    for pattern in _FILE_IN_TEXT:
        for match in pattern.finditer(response.response or ""):
            if is_valid_file_path(match.group(1)):
                entities[normalize_file_path(match.group(1))] = None

    return list(entities)[:MAX_ENTITIES]


def is_cancelled(response: CapturedResponse) -> bool:
    return response.reason in _CANCEL_REASONS or response.stop_reason in _CANCEL_STOP_REASONS


def determine_outcome(response: CapturedResponse) -> str:
    if response.success:
        return "success"
    if not is_cancelled(response):
        return "error"
    return "partial" if (response.response or "").strip() else "blocked"


def _is_json_like(line: str) -> bool:
    if line.startswith("{") or line.startswith("["):
        return True
    if len(_JSON_KEY.findall(line)) >= 2:
        return True
    return bool(re.match(r'^"[^"]+"\s*:\s*.+', line))


def first_meaningful_line(text: str) -> Optional[str]:
    for line in (text or "").split("\n"):
        line = line.strip()
        if len(line) < 15:
            continue
        if re.match(r"^#{1,6}\s", line) or line.startswith("```"):
            continue
        if _is_json_like(line) or _BARE_PATH.match(line):
            continue
        return line
    return None


def generate_summary(response: CapturedResponse, outcome: str) -> str:
    line = first_meaningful_line(response.response)
    if line:
        return line

    action = {
        "success": "Completed",
        "partial": "Partially completed",
        "blocked": "Blocked on",
    }.get(outcome, "Error in")
    if response.files_modified:
        first = normalize_file_path(response.files_modified[0])
        if len(response.files_modified) == 1:
            return f"{action} changes to {first}"
        return f"{action} changes to {len(response.files_modified)} files including {first}"
    if response.tool_calls:
        return f"{action} {len(response.tool_calls)} operations"
    return f"{action} task"


def calculate_goal_progress(response: CapturedResponse, prompts_since_goal: int) -> GoalProgress:
    before = min(90, prompts_since_goal * 5)
    increment = 0
    if response.success:
        increment = 5
        increment += min(15, len(response.files_modified) * 5)
        increment += min(10, (len(response.tool_calls) + len(response.tool_results)) * 2)
    after = min(100, before + increment)

    just_completed = None
    if after > before:
        if after >= 90:
            just_completed = "Nearing completion"
        elif response.files_modified:
            just_completed = f"Updated {len(response.files_modified)} file(s)"
        else:
            just_completed = "Made progress"
    return GoalProgress(before=before, after=after, just_completed=just_completed)


def analyze_response(response: CapturedResponse, prompts_since_goal: Optional[int] = None) -> ResponseAnalysis:
    """Summarise what a response accomplished.

    ``prompts_since_goal`` is None when the session has no goal; goal
    progress is only reported when a goal is set.
    """
    outcome = determine_outcome(response)
    return ResponseAnalysis(
        summary=generate_summary(response, outcome),
        outcome=outcome,
        topics_addressed=extract_topics(response.response),
        entities_modified=extract_entities(response),
        goal_progress=(
            calculate_goal_progress(response, prompts_since_goal) if prompts_since_goal is not None else None
        ),
    )
