"""Helpers for telling real user prompts apart from tool traffic."""

import re
from dataclasses import dataclass
from typing import Iterable, Optional

_TOOL_MARKER_ONLY = re.compile(r"^\s*\[Tool[^\]]*\]\s*$")
_SLASH_COMMAND = re.compile(r"^/([a-zA-Z][a-zA-Z0-9\-_:]*)(?:\s+(.*))?$", re.DOTALL)


def is_actual_user_prompt(content: Optional[str]) -> bool:
    """Return False for empty content and tool results."""
    if not content or not content.strip():
        return False
    if content.startswith("[Tool result]") or content.startswith("[Tool:"):
        return False
    if _TOOL_MARKER_ONLY.match(content):
        return False
    return True


def count_actual_user_prompts(messages: Iterable) -> int:
    """Count user-role messages that are real prompts.

    Accepts anything with ``role`` and ``content`` attributes or keys.
    """
    count = 0
    for message in messages:
        if isinstance(message, dict):
            role, content = message.get("role"), message.get("content")
        else:
            role, content = message.role, message.content
        if role == "user" and is_actual_user_prompt(content):
            count += 1
    return count


@dataclass
class SlashCommand:
    is_slash_command: bool
    command_name: Optional[str] = None
    arguments: Optional[str] = None


def detect_slash_command(content: Optional[str]) -> SlashCommand:
    """Detect prompts like "/commit" or "/work-on-item VIB-123"."""
    if not content or not content.strip():
        return SlashCommand(False)
    match = _SLASH_COMMAND.match(content.strip())
    if not match:
        return SlashCommand(False)
    args = (match.group(2) or "").strip()
    return SlashCommand(True, match.group(1), args or None)


def filter_image_content(content) -> str:
    """Flatten a message content payload into text.

    Text blocks are kept, tool calls and results become short markers, and
    images collapse into a single attachment count.
    """
    if isinstance(content, str):
        return content
    if content is None:
        return ""
    if not isinstance(content, list):
        return str(content)

    parts = []
    image_count = 0
    for block in content:
        if not isinstance(block, dict):
            continue
        kind = block.get("type")
        if kind == "text" and block.get("text"):
            parts.append(block["text"])
        elif kind in ("image", "image_url"):
            image_count += 1
        elif kind == "tool_use":
            parts.append(f"[Tool: {block.get('name', 'unknown')}]")
        elif kind == "tool_result":
            parts.append("[Tool result]")

    if image_count:
        noun = "attachment" if image_count == 1 else "attachments"
        parts.append(f"[{image_count} image {noun}]")
    return "\n".join(parts)
