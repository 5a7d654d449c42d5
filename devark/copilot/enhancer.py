"""Prompt enhancement: rewrite a prompt so an agent can act on it directly."""

import logging
from dataclasses import dataclass, field
from typing import Optional

from .base import CopilotContext, CopilotTool

logger = logging.getLogger(__name__)

LEVELS = ("light", "medium", "aggressive")

SYSTEM_PROMPT = """You are a prompt enhancement assistant. Your task is to improve user prompts for better AI interactions.

CRITICAL: You MUST respond ONLY with valid JSON. No markdown, no explanations, no code blocks - just raw JSON.

General Guidelines:
- Preserve the user's original intent
- Add relevant context where missing
- Clarify ambiguous language
- Structure information logically
- Keep improvements proportional to the enhancement level
- Make prompts more specific and actionable

Required JSON format (respond with ONLY this structure, nothing else):
{"enhanced": "the improved prompt text", "improvements": ["improvement 1", "improvement 2"]}

List 2-4 specific improvements you made in the "improvements" array."""

LEVEL_GUIDANCE = {
    "light": """Enhancement Level: LIGHT
- Make minimal changes
- Fix obvious clarity issues
- Add only critical missing information
- Keep the prompt's style and length similar""",
    "medium": """Enhancement Level: MEDIUM
- Make moderate improvements
- Add helpful context where beneficial
- Improve structure and organization
- Clarify ambiguous terms
- Add relevant technical details""",
    "aggressive": """Enhancement Level: AGGRESSIVE
- Make comprehensive improvements
- Add substantial context and background
- Fully restructure for optimal clarity
- Break down complex requests into clear steps
- Include examples or expected formats""",
}


@dataclass
class EnhancedPrompt:
    original: str
    enhanced: str
    improvements: list[str] = field(default_factory=list)
    level: str = "medium"

    @property
    def changed(self) -> bool:
        return self.enhanced.strip() != self.original.strip()


class PromptEnhancer(CopilotTool):
    tool_name = "PromptEnhancer"
    max_tokens = 2000

    def enhance(self, prompt: str, level: str = "medium", context: Optional[CopilotContext] = None) -> EnhancedPrompt:
        """Return an improved prompt; on any failure the original is returned unchanged."""
        if level not in LEVELS:
            level = "medium"
        try:
            if not prompt or not prompt.strip():
                raise ValueError("Prompt cannot be empty")
            parsed = self.ask_json(self.build_prompt(prompt, level, context), system=SYSTEM_PROMPT)
            enhanced, improvements = self.parse_response(parsed)
        except Exception as e:
            logger.warning(f"[PromptEnhancer] Enhancement failed: {e}")
            return EnhancedPrompt(
                original=prompt,
                enhanced=prompt,
                improvements=[f"Enhancement unavailable: {e}"],
                level=level,
            )
        return EnhancedPrompt(original=prompt, enhanced=enhanced, improvements=improvements, level=level)

    @staticmethod
    def build_prompt(prompt: str, level: str, context: Optional[CopilotContext]) -> str:
        parts = []
        if context:
            if context.goal:
                parts.append(f"USER'S SESSION GOAL: {context.goal}")
            if context.tech_stack:
                parts.append(f"TECH STACK: {', '.join(context.tech_stack)}")
            if context.recent_topics:
                parts.append(f"TOPICS ALREADY DISCUSSED: {', '.join(context.recent_topics[:5])}")
            exchanges = [
                f'{i + 1}. User: "{x.prompt[:200]}"\n   AI: {(x.response or "N/A")[:200]}\n'
                f"   Files: {', '.join(x.files_modified) or 'none'}"
                for i, x in enumerate(context.last_interactions)
                if x.prompt
            ]
            if exchanges:
                parts.append(f"RECENT EXCHANGES (last {len(exchanges)}):\n" + "\n".join(exchanges))
        context_section = (
            "\n\nCONTEXT (use to make enhancement more relevant):\n" + "\n\n".join(parts) if parts else ""
        )
        return f"""{LEVEL_GUIDANCE[level]}{context_section}

Improve the following user prompt according to the {level} enhancement level:

Original Prompt:
"{prompt}"

RESPOND WITH JSON ONLY: {{"enhanced": "...", "improvements": ["...", "..."]}}"""

    @staticmethod
    def parse_response(parsed) -> tuple[str, list[str]]:
        if not isinstance(parsed, dict):
            raise ValueError("Enhancement response is not an object")
        enhanced = parsed.get("enhanced")
        if not enhanced or not isinstance(enhanced, str):
            raise ValueError('Missing or invalid "enhanced" field')
        improvements = parsed.get("improvements")
        if not isinstance(improvements, list):
            raise ValueError('Missing or invalid "improvements" field')
        improvements = [item for item in improvements if isinstance(item, str) and item]
        return enhanced.strip(), improvements or ["Prompt enhanced for better clarity and specificity"]
