"""Redaction of secrets and personal data from session messages before upload.

Placeholders are numbered sequentially across all messages of one session,
so the same session always yields ``[CREDENTIAL_1]``, ``[CREDENTIAL_2]``...
"""

import json
import re
from dataclasses import dataclass, field
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from ..models import Message, SessionData, to_jsonable

# Patterns that need a literal prefix kept in place capture it as "prefix".
CREDENTIAL_PATTERNS = [
    re.compile(r"\bsk-ant-[a-zA-Z0-9-]{6,}"),
    re.compile(r"\bsk[-_](?:test|live)[-_][a-zA-Z0-9_-]{10,}"),
    re.compile(r"\bpk[-_](?:test|live)[-_][a-zA-Z0-9_-]{10,}"),
    re.compile(r"\brk_(?:live|test)_[a-zA-Z0-9_-]{10,}"),
    re.compile(r"\bsk-[a-zA-Z0-9]{6,}"),
    re.compile(r"\bAKIA[A-Z0-9]{16}\b"),
    re.compile(r"(?P<prefix>AWS_SECRET_ACCESS_KEY=|aws_secret_access_key=)[A-Za-z0-9+/=]{40}"),
    re.compile(r"(?P<prefix>api_key=|apikey=)[a-zA-Z0-9_-]{16,}", re.I),
    re.compile(r"(?P<prefix>Bearer\s)[a-zA-Z0-9._-]{20,}"),
    re.compile(r"\bgh[psohr]_[a-zA-Z0-9]{36,}"),
    re.compile(r"\bxox[bp]-[0-9]+-[0-9]+-[a-zA-Z0-9]+"),
    re.compile(r"\bnpm_[a-zA-Z0-9]{36,}"),
    re.compile(r"\bSG\.[a-zA-Z0-9_-]{20,}\.[a-zA-Z0-9_-]{20,}"),
    re.compile(r"\beyJ[a-zA-Z0-9_-]+\.eyJ[a-zA-Z0-9_-]+\.[a-zA-Z0-9_-]+"),
    re.compile(r"(?P<prefix>secret=|token=|password=|key=)[a-f0-9]{32,}", re.I),
    re.compile(r"(?P<prefix>://[^:\s/@]+:)[^@\s]+(?=@)"),
]

PASSWORD_PATTERN = re.compile(r"""(['"])password\1\s*:\s*(['"])[^'"]+\2""", re.I)

PATH_PATTERNS = [
    re.compile(r"/(?:Users|home)/[a-zA-Z0-9_.-]+(?:/[^\s\"'`]+)?"),
    re.compile(r"[A-Z]:\\Users\\[a-zA-Z0-9_.-]+(?:\\[^\s\"'`]+)?", re.I),
]

EMAIL_PATTERN = re.compile(r"\b[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}\b")
IP_PATTERN = re.compile(r"\b(?:\d{1,3}\.){3}\d{1,3}\b")
ENV_VAR_PATTERNS = [
    re.compile(r"\$\{[A-Z_][A-Z0-9_]*\}"),
    re.compile(r"\$[A-Z_][A-Z0-9_]+\b"),
]
DATABASE_URL_PATTERN = re.compile(r"(?:postgres|postgresql|mysql|mongodb|redis)://[^\s\"'`<>]+")
URL_PATTERN = re.compile(r"https?://[^\s\"'`<>]+")

SENSITIVE_URL_PARAMS = ("token", "key", "secret", "password", "auth", "api_key", "apikey", "access_token")


@dataclass
class SanitizationCounts:
    credentials: int = 0
    paths: int = 0
    emails: int = 0
    urls: int = 0
    ips: int = 0
    env_vars: int = 0
    database_urls: int = 0

    def next_credential(self) -> str:
        self.credentials += 1
        return f"[CREDENTIAL_{self.credentials}]"

    def next_path(self) -> str:
        self.paths += 1
        return f"[PATH_{self.paths}]"

    def next_email(self) -> str:
        self.emails += 1
        return f"[EMAIL_{self.emails}]"

    def next_ip(self) -> str:
        self.ips += 1
        return "[IP_ADDRESS]"

    def next_env_var(self) -> str:
        self.env_vars += 1
        return f"[ENV_VAR_{self.env_vars}]"

    def next_database_url(self) -> str:
        self.database_urls += 1
        return "[DATABASE_URL]"

    def to_metadata(self) -> dict:
        return {
            "credentialsRedacted": self.credentials,
            "pathsRedacted": self.paths,
            "emailsRedacted": self.emails,
            "urlsRedacted": self.urls,
            "ipAddressesRedacted": self.ips,
            "envVarsRedacted": self.env_vars,
            "databaseUrlsRedacted": self.database_urls,
        }


@dataclass
class SanitizedMessages:
    messages: list[dict] = field(default_factory=list)
    counts: SanitizationCounts = field(default_factory=SanitizationCounts)


def _redact_credential(counts: SanitizationCounts):
    def replace(match: re.Match) -> str:
        return (match.groupdict().get("prefix") or "") + counts.next_credential()
    return replace


def _redact_url_params(url: str, counts: SanitizationCounts) -> str:
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if not parts.query:
        return url
    params = parse_qsl(parts.query, keep_blank_values=True)
    modified = False
    redacted = []
    for name, value in params:
        if name in SENSITIVE_URL_PARAMS:
            value = counts.next_credential()[1:-1]
            modified = True
        redacted.append((name, value))
    if not modified:
        return url
    return urlunsplit(parts._replace(query=urlencode(redacted)))


def sanitize_text(content: str, counts: SanitizationCounts) -> str:
    result = DATABASE_URL_PATTERN.sub(lambda m: counts.next_database_url(), content)
    for pattern in CREDENTIAL_PATTERNS:
        result = pattern.sub(_redact_credential(counts), result)
    result = PASSWORD_PATTERN.sub(lambda m: f'{m.group(1)}password{m.group(1)}: "[REDACTED_PASSWORD]"', result)
    for pattern in PATH_PATTERNS:
        result = pattern.sub(lambda m: counts.next_path(), result)
    result = EMAIL_PATTERN.sub(lambda m: counts.next_email(), result)
    result = IP_PATTERN.sub(lambda m: counts.next_ip(), result)
    for pattern in ENV_VAR_PATTERNS:
        result = pattern.sub(lambda m: counts.next_env_var(), result)
    return URL_PATTERN.sub(lambda m: _redact_url_params(m.group(0), counts), result)


def sanitize(content: str) -> tuple[str, SanitizationCounts]:
    """Sanitize one string with fresh numbering."""
    counts = SanitizationCounts()
    return sanitize_text(content, counts), counts


def sanitize_messages(messages: list[Message]) -> SanitizedMessages:
    counts = SanitizationCounts()
    return SanitizedMessages(
        messages=[
            {"role": m.role, "content": sanitize_text(m.content, counts), "originalLength": len(m.content)}
            for m in messages
        ],
        counts=counts,
    )


def extract_project_name(project_path: str) -> str:
    parts = [p for p in re.split(r"[/\\]", project_path or "") if p]
    return parts[-1] if parts else "unknown"


def to_sanitized_session(session: SessionData) -> dict:
    """Upload payload for one session."""
    result = sanitize_messages(session.messages)
    metadata = to_jsonable(session.metadata or {})
    if session.git_branch:
        metadata.setdefault("gitBranch", session.git_branch)
    return {
        "id": session.id,
        "tool": session.tool,
        "timestamp": session.timestamp.isoformat(),
        "duration": session.duration,
        "claudeSessionId": session.claude_session_id,
        "data": {
            "projectName": extract_project_name(session.project_path),
            "messageSummary": json.dumps(result.messages),
            "messageCount": len(session.messages),
            "metadata": metadata,
        },
        "sanitizationMetadata": result.counts.to_metadata(),
    }
