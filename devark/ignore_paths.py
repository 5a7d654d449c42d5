"""Paths that never contribute prompts, sessions, uploads, or coaching.

Temp folders created by devark's own analysis runs and the install
directories of the detected tools would otherwise show up as projects.
"""

import re

IGNORED_PATH_PATTERNS = [
    ".devark/temp-prompt-analysis",
    ".devark/temp-standup",
    ".devark/temp-productivity-report",
    "devark-temp",
    "devark-hooks",
    "devark-analysis",
    "programs/cursor",
    "appdata/local/programs/cursor",
    ".cursor",
]

# Anchored on path segments so ".cursor" never matches ".cursorrules"
_COMPILED = [
    re.compile(r"(^|/)" + re.escape(pattern) + r"(/|$)", re.IGNORECASE)
    for pattern in IGNORED_PATH_PATTERNS
]


def normalize_path(path: str) -> str:
    normalized = path.strip().replace("\\", "/")
    if normalized.endswith("/"):
        normalized = normalized[:-1]
    return normalized


def should_ignore_path(path: str | None) -> bool:
    """Return True if the path lies inside an ignored folder."""
    if not path or not path.strip():
        return False
    normalized = normalize_path(path)
    return any(regex.search(normalized) for regex in _COMPILED)
