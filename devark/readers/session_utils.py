"""Duration, highlight, token, and language helpers shared by the readers."""

from pathlib import PurePath
from typing import Iterable, Optional

from ..models import ConversationHighlights, Message, TokenUsage

# Gaps longer than this are idle time and do not count
MAX_IDLE_GAP = 15 * 60
MAX_SESSION_DURATION = 8 * 60 * 60

DEFAULT_MAX_HIGHLIGHT_LENGTH = 500
MIN_MEANINGFUL_LENGTH = 10
_DEFAULT_SKIP_PATTERNS = ("[Tool:", "[Tool result]")

DEFAULT_CONTEXT_WINDOW = 200_000
CONTEXT_WINDOWS = {
    "claude-3-opus": 200_000,
    "claude-3-sonnet": 200_000,
    "claude-3-haiku": 200_000,
    "claude-3.5-sonnet": 200_000,
    "claude-3.5-haiku": 200_000,
    "claude-opus-4": 200_000,
    "claude-sonnet-4": 200_000,
}


def calculate_duration(messages: list[Message]) -> int:
    """Active seconds between consecutive timestamps, capped at 8 hours."""
    stamps = [m.timestamp for m in messages if m.timestamp is not None]
    total = 0
    for prev, cur in zip(stamps, stamps[1:]):
        gap = int((cur - prev).total_seconds())
        if 0 < gap <= MAX_IDLE_GAP:
            total += gap
    return min(total, MAX_SESSION_DURATION)


def is_meaningful_message(content: Optional[str], skip_patterns: Iterable[str] = ()) -> bool:
    if not content or len(content.strip()) < MIN_MEANINGFUL_LENGTH:
        return False
    return not any(p in content for p in (*_DEFAULT_SKIP_PATTERNS, *skip_patterns))


def truncate_text(text: str, max_length: int = DEFAULT_MAX_HIGHLIGHT_LENGTH) -> str:
    """Truncate to max_length including the ellipsis, preferring a word break."""
    if not text or len(text) <= max_length:
        return text
    cut = max_length - 3
    truncated = text[:cut]
    last_space = truncated.rfind(" ")
    if last_space > cut * 0.8:
        return truncated[:last_space] + "..."
    return truncated + "..."


def extract_highlights(
    messages: list[Message],
    max_length: int = DEFAULT_MAX_HIGHLIGHT_LENGTH,
    skip_patterns: Iterable[str] = (),
) -> Optional[ConversationHighlights]:
    """First user intent plus the last meaningful user/assistant exchange."""
    skip = tuple(skip_patterns)
    meaningful = [m for m in messages if is_meaningful_message(m.content, skip)]
    if not meaningful:
        return None

    highlights = ConversationHighlights()
    users = [m for m in meaningful if m.role == "user"]
    if users:
        highlights.first_user_message = truncate_text(users[0].content, max_length)

    last_user_index = None
    for i, m in enumerate(messages):
        if m.role == "user" and is_meaningful_message(m.content, skip):
            last_user_index = i
    if last_user_index is not None:
        reply = next(
            (m for m in messages[last_user_index + 1:]
             if m.role == "assistant" and is_meaningful_message(m.content, skip)),
            None,
        )
        if reply is not None:
            exchange_length = min(max_length, 300)
            highlights.last_user_message = truncate_text(messages[last_user_index].content, exchange_length)
            highlights.last_assistant_message = truncate_text(reply.content, exchange_length)

    if highlights.first_user_message is None and highlights.last_user_message is None:
        return None
    return highlights


def count_tokens(text: Optional[str]) -> int:
    # Roughly four characters per token
    if not text:
        return 0
    return len(text) // 4


def estimate_context_utilization(total_tokens: int, model: Optional[str] = None) -> float:
    window = CONTEXT_WINDOWS.get(model or "", DEFAULT_CONTEXT_WINDOW)
    return min(total_tokens / window, 1.0)


def calculate_token_usage(messages: list[Message], model: Optional[str] = None) -> TokenUsage:
    input_tokens = sum(count_tokens(m.content) for m in messages if m.role == "user")
    output_tokens = sum(count_tokens(m.content) for m in messages if m.role == "assistant")
    total = input_tokens + output_tokens
    return TokenUsage(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        total_tokens=total,
        context_utilization=estimate_context_utilization(total, model),
        source="estimated",
    )


# --- Languages ---

LANGUAGE_MAPPINGS = {
    "js": "JavaScript", "jsx": "JavaScript", "mjs": "JavaScript", "cjs": "JavaScript",
    "ts": "TypeScript", "tsx": "TypeScript", "mts": "TypeScript", "cts": "TypeScript",
    "py": "Python", "pyw": "Python", "pyi": "Python",
    "html": "HTML", "htm": "HTML", "css": "CSS", "scss": "SCSS", "sass": "Sass", "less": "Less",
    "json": "JSON", "yaml": "YAML", "yml": "YAML", "toml": "TOML", "xml": "XML",
    "md": "Markdown", "mdx": "Markdown",
    "sh": "Shell", "bash": "Bash", "zsh": "Zsh", "ps1": "PowerShell", "bat": "Batch", "cmd": "Batch",
    "c": "C", "h": "C", "cpp": "C++", "cc": "C++", "cxx": "C++", "hpp": "C++",
    "java": "Java", "kt": "Kotlin", "kts": "Kotlin", "scala": "Scala", "groovy": "Groovy",
    "gradle": "Groovy", "cs": "C#", "fs": "F#", "vb": "Visual Basic",
    "rs": "Rust", "go": "Go", "zig": "Zig", "swift": "Swift",
    "rb": "Ruby", "php": "PHP", "lua": "Lua", "pl": "Perl", "pm": "Perl",
    "hs": "Haskell", "elm": "Elm", "clj": "Clojure", "cljs": "ClojureScript",
    "ex": "Elixir", "exs": "Elixir", "erl": "Erlang",
    "sql": "SQL", "pgsql": "PostgreSQL", "dart": "Dart", "m": "Objective-C", "mm": "Objective-C",
    "vue": "Vue", "svelte": "Svelte", "astro": "Astro",
    "r": "R", "jl": "Julia", "ipynb": "Jupyter Notebook",
    "tf": "Terraform", "tfvars": "Terraform", "graphql": "GraphQL", "gql": "GraphQL",
    "proto": "Protocol Buffers",
}

SPECIAL_FILENAMES = {
    "dockerfile": "Docker",
    "makefile": "Makefile",
    "cmakelists": "CMake",
    "gemfile": "Ruby",
    "rakefile": "Ruby",
    "podfile": "Ruby",
    "vagrantfile": "Ruby",
    "jenkinsfile": "Groovy",
}


def detect_language(file_path: str) -> Optional[str]:
    name = PurePath(file_path.replace("\\", "/")).name.lower()
    if name in SPECIAL_FILENAMES:
        return SPECIAL_FILENAMES[name]
    if name == "cmakelists.txt":
        return "CMake"
    dot = name.rfind(".")
    if dot <= 0:
        return None
    return LANGUAGE_MAPPINGS.get(name[dot + 1:])


def extract_languages(file_paths: Iterable[str]) -> list[str]:
    """Distinct languages of the given files, in first-seen order."""
    seen: list[str] = []
    for path in file_paths:
        language = detect_language(path)
        if language and language not in seen:
            seen.append(language)
    return seen
