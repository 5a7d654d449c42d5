"""Shared plumbing for the LLM-backed co-pilot tools."""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional

from ..llm import LLMError, LLMManager
from ..safe_json import safe_parse

logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")


@dataclass
class InteractionContext:
    prompt: str
    response: Optional[str] = None
    files_modified: list[str] = field(default_factory=list)


@dataclass
class CopilotContext:
    """Background that makes scoring and enhancement more targeted."""

    goal: Optional[str] = None
    tech_stack: list[str] = field(default_factory=list)
    recent_topics: list[str] = field(default_factory=list)
    last_interactions: list[InteractionContext] = field(default_factory=list)

    def hints(self) -> list[str]:
        hints = []
        if self.tech_stack:
            hints.append(f"Note: User is working with {', '.join(self.tech_stack)}.")
        if self.goal:
            hints.append(f'Note: User\'s current goal is "{self.goal}".')
        if self.recent_topics:
            hints.append(f"Note: User has already discussed: {', '.join(self.recent_topics[:3])}.")
        recent = [
            f'[{i + 1}] User: "{x.prompt[:80]}..." -> AI: '
            + (f"responded ({len(x.files_modified)} files)" if x.response else "no response yet")
            for i, x in enumerate(self.last_interactions)
            if x.prompt
        ]
        if recent:
            hints.append("Recent conversation:\n" + "\n".join(recent))
        return hints


def parse_llm_json(content: str, tool_name: str) -> Any:
    """Pull a JSON value out of an LLM reply, with or without code fences."""
    result = safe_parse(content.strip())
    if result.success:
        return result.data

    fence = _CODE_FENCE.search(content)
    if fence:
        result = safe_parse(fence.group(1).strip(), attempt_recovery=True)
        if result.success:
            return result.data

    result = safe_parse(content, attempt_recovery=True, context=tool_name)
    if result.success:
        return result.data

    logger.error(f"[{tool_name}] Failed to parse JSON from response: {content[:500]}")
    raise ValueError(f"{tool_name}: No valid JSON found in response")


class CopilotTool:
    """Builds a prompt, asks the LLM, and parses the reply."""

    tool_name = "CopilotTool"
    max_tokens = 1000

    def __init__(self, llm: Optional[LLMManager] = None):
        self.llm = llm if llm is not None else LLMManager.get_instance()

    def is_available(self) -> bool:
        return self.llm.is_available()

    def ask_json(self, prompt: str, system: Optional[str] = None) -> Any:
        if not self.llm.is_available():
            raise LLMError("No LLM provider available")
        content = self.llm.complete(prompt, system=system, max_tokens=self.max_tokens)
        return parse_llm_json(content, self.tool_name)
