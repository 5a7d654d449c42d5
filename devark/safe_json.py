"""Tolerant JSON parsing with recovery for partially written files."""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

_MISSING = object()


@dataclass
class ParseResult:
    """Outcome of a safe parse."""

    success: bool
    data: Any = None
    error: Optional[str] = None
    recovered: bool = False


def extract_balanced(content: str) -> Optional[str]:
    """Return the first balanced {...} or [...] block in content.

    String literals and escapes are honoured, so braces inside strings do
    not affect depth.
    """
    start = -1
    for i, ch in enumerate(content):
        if ch in "{[":
            start = i
            break
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(content)):
        ch = content[i]
        if escaped:
            escaped = False
            continue
        if ch == "\\" and in_string:
            escaped = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch in "{[":
            depth += 1
        elif ch in "}]":
            depth -= 1
            if depth == 0:
                return content[start:i + 1]
    return None


def fix_common_issues(content: str) -> str:
    """Strip BOM, trailing commas before closers, and surrounding whitespace."""
    fixed = content.lstrip("\ufeff")
    # Trailing commas: {"a": 1,} and [1, 2,]
    out = []
    in_string = False
    escaped = False
    i = 0
    while i < len(fixed):
        ch = fixed[i]
        if escaped:
            escaped = False
            out.append(ch)
        elif ch == "\\" and in_string:
            escaped = True
            out.append(ch)
        elif ch == '"':
            in_string = not in_string
            out.append(ch)
        elif ch == "," and not in_string:
            j = i + 1
            while j < len(fixed) and fixed[j].isspace():
                j += 1
            if j < len(fixed) and fixed[j] in "}]":
                i += 1
                continue
            out.append(ch)
        else:
            out.append(ch)
        i += 1
    return "".join(out).strip()


def truncate_to_last_valid(content: str) -> Optional[Any]:
    """Walk backwards over closing braces and return the longest parseable prefix."""
    for end in range(len(content) - 1, -1, -1):
        if content[end] not in "}]":
            continue
        try:
            return json.loads(content[:end + 1])
        except json.JSONDecodeError:
            continue
    return None


def _accept(data: Any, validate: Optional[Callable[[Any], bool]]) -> bool:
    return validate is None or bool(validate(data))


def safe_parse(
    content: Optional[str],
    attempt_recovery: bool = False,
    validate: Optional[Callable[[Any], bool]] = None,
    default: Any = _MISSING,
    context: str = "",
) -> ParseResult:
    """Parse JSON content without raising.

    When ``attempt_recovery`` is set and the direct parse fails, three
    strategies are tried in order: first balanced block, common-issue fixes,
    and truncation to the last valid closing brace. The first result that
    also passes ``validate`` wins and is flagged ``recovered``.
    """
    fallback = None if default is _MISSING else default
    label = f"[{context}] " if context else ""

    if content is None or not content.strip():
        return ParseResult(success=False, data=fallback, error="Empty content")

    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        first_error = str(e)
    else:
        if _accept(data, validate):
            return ParseResult(success=True, data=data)
        logger.debug(f"{label}Parsed JSON failed validation")
        return ParseResult(success=False, data=fallback, error="Validation failed")

    if not attempt_recovery:
        logger.debug(f"{label}JSON parse failed: {first_error}")
        return ParseResult(success=False, data=fallback, error=first_error)

    block = extract_balanced(content)
    if block is not None:
        try:
            data = json.loads(block)
            if _accept(data, validate):
                logger.debug(f"{label}Recovered JSON via balanced extraction")
                return ParseResult(success=True, data=data, recovered=True)
        except json.JSONDecodeError:
            pass

    fixed = fix_common_issues(content)
    try:
        data = json.loads(fixed)
        if _accept(data, validate):
            logger.debug(f"{label}Recovered JSON after fixing common issues")
            return ParseResult(success=True, data=data, recovered=True)
    except json.JSONDecodeError:
        pass

    data = truncate_to_last_valid(fixed)
    if data is not None and _accept(data, validate):
        logger.debug(f"{label}Recovered JSON by truncation")
        return ParseResult(success=True, data=data, recovered=True)

    logger.debug(f"{label}JSON recovery failed: {first_error}")
    return ParseResult(success=False, data=fallback, error=first_error)


def has_required_fields(data: Any, fields: list[str]) -> bool:
    """Check that data is a mapping containing every named field."""
    if not isinstance(data, dict):
        return False
    return all(name in data for name in fields)


def safe_read_json_file(path: Path, default: Any = _MISSING, context: str = "") -> ParseResult:
    """Read and safely parse a JSON file. Missing or unreadable files fail softly."""
    fallback = None if default is _MISSING else default
    try:
        content = Path(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        return ParseResult(success=False, data=fallback, error="File not found")
    except OSError as e:
        logger.debug(f"[{context or path}] Could not read JSON file: {e}")
        return ParseResult(success=False, data=fallback, error=str(e))
    return safe_parse(content, attempt_recovery=True, default=default, context=context or str(path))
