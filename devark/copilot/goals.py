"""Session goal inference."""

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Optional

from .base import CopilotTool
from .response_analyzer import extract_topics

logger = logging.getLogger(__name__)

MAX_PROMPTS = 8

SYSTEM_PROMPT = """You infer the goal of an AI coding session from the user's prompts.

Respond ONLY with JSON in this format:
{"goal": "<short goal, 4-10 words>", "confidence": <number 0-1>, "reasoning": "<one sentence>"}"""


@dataclass
class GoalInference:
    suggested_goal: str
    confidence: float
    reasoning: str
    detected_theme: Optional[str] = None


class GoalInferenceService(CopilotTool):
    tool_name = "GoalInference"
    max_tokens = 300

    def infer(self, prompts: list[str]) -> Optional[GoalInference]:
        """Suggest a goal from recent prompts (oldest first). None if there is nothing to go on."""
        prompts = [p for p in prompts if p and p.strip()][-MAX_PROMPTS:]
        if not prompts:
            return None
        if self.is_available():
            try:
                return self._infer_with_llm(prompts)
            except Exception as e:
                logger.warning(f"[GoalInference] LLM inference failed, using topics: {e}")
        return self.infer_from_topics(prompts)

    def _infer_with_llm(self, prompts: list[str]) -> GoalInference:
        listing = "\n".join(f'{i + 1}. "{p[:300]}"' for i, p in enumerate(prompts))
        parsed = self.ask_json(f"Session prompts so far:\n{listing}\n\nWhat is the user trying to accomplish?",
                               system=SYSTEM_PROMPT)
        if not isinstance(parsed, dict) or not isinstance(parsed.get("goal"), str) or not parsed["goal"].strip():
            raise ValueError('Missing or invalid "goal" field')
        try:
            confidence = float(parsed.get("confidence", 0.5))
        except (TypeError, ValueError):
            confidence = 0.5
        return GoalInference(
            suggested_goal=parsed["goal"].strip()[:100],
            confidence=max(0.0, min(1.0, confidence)),
            reasoning=str(parsed.get("reasoning") or "")[:300],
        )

    @staticmethod
    def infer_from_topics(prompts: list[str]) -> Optional[GoalInference]:
        counts = Counter(topic for p in prompts for topic in extract_topics(p))
        if not counts:
            return None
        theme, hits = counts.most_common(1)[0]
        return GoalInference(
            suggested_goal=f"Work on {theme.lower()}",
            confidence=round(min(0.8, 0.3 + 0.1 * hits), 2),
            reasoning=f"{hits} of the last {len(prompts)} prompts touch on {theme.lower()}",
            detected_theme=theme,
        )
