"""Five-dimension prompt scoring.

The LLM rates clarity, specificity, context and actionability. Intent is
taken from clarity and constraints are estimated from the prompt text, so
the breakdown always covers all five weighted dimensions.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Optional

from .base import CopilotContext, CopilotTool

logger = logging.getLogger(__name__)

WEIGHTS = {
    "specificity": 0.20,
    "context": 0.25,
    "intent": 0.25,
    "actionability": 0.15,
    "constraints": 0.15,
}

_LIMITS = re.compile(r"\b(must|should|need|require|limit|max|min|only|exactly|without|no |avoid|don't)\b", re.I)
_PERFORMANCE = re.compile(r"\b(fast|slow|performance|efficient|optimize|ms|seconds|memory)\b", re.I)
_COMPATIBILITY = re.compile(r"\b(compatible|support|work with|version|browser|device)\b", re.I)
_BOUNDARIES = re.compile(r"\b(before|after|within|under|between|range)\b", re.I)
_SPECIFICS = re.compile(
    r"\b(file|function|class|component|feature|bug|error|implement|create|add|fix|update|refactor)\b", re.I
)

SYSTEM_PROMPT = """You are a prompt quality analyzer. Your task is to evaluate AI prompts and provide constructive feedback.

Scoring Criteria:
1. Clarity (0-10): Is the request clear and unambiguous? Are there confusing or vague parts?
2. Specificity (0-10): Is there enough detail? Are requirements well-defined?
3. Context (0-10): Is relevant background information provided? Does the AI have what it needs?
4. Actionability (0-10): Can the AI take concrete action? Is it clear what output is expected?

For each score:
- 0-3: Poor (major issues present)
- 4-6: Adequate (some improvements needed)
- 7-8: Good (minor improvements possible)
- 9-10: Excellent (professional quality)

You MUST respond with valid JSON in this exact format:
{
  "clarity": <number 0-10>,
  "specificity": <number 0-10>,
  "context": <number 0-10>,
  "actionability": <number 0-10>,
  "suggestions": ["suggestion 1", "suggestion 2", "suggestion 3"]
}

Provide 2-4 specific, actionable suggestions for improvement. Be constructive and helpful."""


@dataclass
class ScoreBreakdown:
    specificity: float
    context: float
    intent: float
    actionability: float
    constraints: float

    @property
    def total(self) -> float:
        weighted = sum(getattr(self, name) * weight for name, weight in WEIGHTS.items())
        return round(weighted * 10) / 10

    def to_dict(self) -> dict:
        data = {name: {"score": getattr(self, name), "weight": weight} for name, weight in WEIGHTS.items()}
        data["total"] = self.total
        return data


@dataclass
class PromptScore:
    overall: int  # 0-100
    clarity: float
    specificity: float
    context: float
    actionability: float
    constraints: float
    suggestions: list[str] = field(default_factory=list)
    used_fallback: bool = False

    @property
    def intent(self) -> float:
        return self.clarity

    @property
    def breakdown(self) -> ScoreBreakdown:
        return ScoreBreakdown(
            specificity=self.specificity,
            context=self.context,
            intent=self.intent,
            actionability=self.actionability,
            constraints=self.constraints,
        )


def estimate_constraints_score(prompt: str) -> int:
    score = 3.0
    if _LIMITS.search(prompt):
        score += 2
    if _PERFORMANCE.search(prompt):
        score += 2
    if _COMPATIBILITY.search(prompt):
        score += 1.5
    if _BOUNDARIES.search(prompt):
        score += 1.5
    if len(prompt) > 100:
        score += 1
    return min(10, int(score + 0.5))


def _overall(*scores: float) -> int:
    return round(sum(scores) / len(scores) * 10)


def _validate(value, name: str) -> float:
    try:
        score = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid {name} score: not a number") from None
    if not 0 <= score <= 10:
        raise ValueError(f"Invalid {name} score: must be between 0 and 10")
    return score


class PromptScorer(CopilotTool):
    tool_name = "PromptScorer"

    def score(self, prompt: str, context: Optional[CopilotContext] = None) -> PromptScore:
        if not prompt or not prompt.strip():
            return self.minimal_score("Prompt is empty or contains only whitespace")
        try:
            return self._score_with_llm(prompt, context)
        except Exception as e:
            logger.warning(f"[PromptScorer] Scoring failed, using heuristics: {e}")
            return self.fallback_score(prompt)

    def build_prompt(self, prompt: str, context: Optional[CopilotContext]) -> str:
        hints = context.hints() if context else []
        context_section = "\n\nContext for evaluation:\n" + "\n".join(hints) if hints else ""
        return f"""{context_section}

Analyze this AI prompt and score it on four criteria (0-10 each):

Prompt to analyze:
"{prompt}"

Evaluate the prompt and return your scores in JSON format.""".lstrip()

    def _score_with_llm(self, prompt: str, context: Optional[CopilotContext]) -> PromptScore:
        parsed = self.ask_json(self.build_prompt(prompt, context), system=SYSTEM_PROMPT)
        if not isinstance(parsed, dict):
            raise ValueError("Score response is not an object")

        clarity = _validate(parsed.get("clarity"), "clarity")
        specificity = _validate(parsed.get("specificity"), "specificity")
        context_score = _validate(parsed.get("context"), "context")
        actionability = _validate(parsed.get("actionability"), "actionability")
        suggestions = [s for s in parsed.get("suggestions") or [] if isinstance(s, str)]

        return PromptScore(
            overall=_overall(clarity, specificity, context_score, actionability),
            clarity=clarity,
            specificity=specificity,
            context=context_score,
            actionability=actionability,
            constraints=estimate_constraints_score(prompt),
            suggestions=suggestions or ["Consider adding more specific details to your prompt"],
        )

    @staticmethod
    def minimal_score(reason: str) -> PromptScore:
        return PromptScore(
            overall=0,
            clarity=0,
            specificity=0,
            context=0,
            actionability=0,
            constraints=0,
            suggestions=[reason, "Please provide a clear, specific prompt"],
        )

    @staticmethod
    def fallback_score(prompt: str) -> PromptScore:
        """Heuristic score used when no LLM answer is available."""
        length = len(prompt.strip())
        has_question = "?" in prompt
        has_context = length > 50
        has_specifics = bool(_SPECIFICS.search(prompt))

        clarity = 6 if has_question else 5
        specificity = 6 if has_specifics else 4
        context = 6 if has_context else 4
        actionability = 7 if has_question and has_specifics else 5

        suggestions = ["AI scoring unavailable - using basic heuristics"]
        if length < 20:
            suggestions.append("Add more details to your prompt")
        if not has_question:
            suggestions.append("Consider phrasing as a clear question or instruction")
        if not has_specifics:
            suggestions.append("Include specific technical terms or requirements")
        if not has_context:
            suggestions.append("Provide relevant context or background information")

        return PromptScore(
            overall=_overall(clarity, specificity, context, actionability),
            clarity=clarity,
            specificity=specificity,
            context=context,
            actionability=actionability,
            constraints=estimate_constraints_score(prompt),
            suggestions=suggestions,
            used_fallback=True,
        )
