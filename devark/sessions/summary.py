"""Daily, weekly and monthly activity summaries."""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from ..copilot.base import CopilotTool
from ..models import UnifiedSession
from .unified import UnifiedSessionService

logger = logging.getLogger(__name__)

PERIOD_DAYS = {"daily": 1, "weekly": 7, "monthly": 30}
MAX_SESSIONS_IN_PROMPT = 20

SYSTEM_PROMPT = """You are an expert software development analyst who translates technical work into clear, specific accomplishments.

Respond with ONLY a JSON object, no markdown:
{"accomplishments": ["3-5 specific accomplishments naming files or features"], "insight": "one sentence on how the developer worked"}"""


@dataclass
class ProjectActivity:
    name: str
    path: str
    sessions: int = 0
    prompts: int = 0
    minutes: int = 0


@dataclass
class ActivitySummary:
    period: str
    start: datetime
    end: datetime
    total_sessions: int = 0
    total_prompts: int = 0
    coding_minutes: int = 0
    projects: list[ProjectActivity] = field(default_factory=list)
    by_source: dict[str, int] = field(default_factory=dict)
    top_files: list[str] = field(default_factory=list)
    accomplishments: list[str] = field(default_factory=list)
    insight: Optional[str] = None
    used_llm: bool = False

    @property
    def coding_hours(self) -> float:
        return round(self.coding_minutes / 60, 1)


def summarize_sessions(period: str, start: datetime, end: datetime, sessions: list[UnifiedSession]) -> ActivitySummary:
    """Aggregate session counts without any LLM help."""
    projects: dict[str, ProjectActivity] = {}
    files: Counter = Counter()
    by_source: dict[str, int] = {}
    for s in sessions:
        by_source[s.source] = by_source.get(s.source, 0) + 1
        project = projects.setdefault(s.workspace_path, ProjectActivity(name=s.workspace_name, path=s.workspace_path))
        project.sessions += 1
        project.prompts += s.prompt_count
        project.minutes += s.duration
        files.update(s.file_context)

    return ActivitySummary(
        period=period,
        start=start,
        end=end,
        total_sessions=len(sessions),
        total_prompts=sum(s.prompt_count for s in sessions),
        coding_minutes=sum(s.duration for s in sessions),
        projects=sorted(projects.values(), key=lambda p: p.minutes, reverse=True),
        by_source=by_source,
        top_files=[name for name, _ in files.most_common(10)],
    )


class SummaryService(CopilotTool):
    tool_name = "SummaryService"
    max_tokens = 1500

    def __init__(self, unified: Optional[UnifiedSessionService] = None, llm=None):
        super().__init__(llm)
        self.unified = unified or UnifiedSessionService.get_instance()

    def daily(self, day: Optional[datetime] = None, use_llm: bool = True) -> ActivitySummary:
        if day is None:
            result = self.unified.get_today_sessions()
        else:
            start = day.replace(hour=0, minute=0, second=0, microsecond=0)
            result = self.unified.get_sessions_for_date_range(start, start + timedelta(days=1))
        start, end = result.date_range
        return self._finish(summarize_sessions("daily", start, end, result.sessions), result.sessions, use_llm)

    def weekly(self, use_llm: bool = True) -> ActivitySummary:
        return self.for_period("weekly", use_llm)

    def monthly(self, use_llm: bool = True) -> ActivitySummary:
        return self.for_period("monthly", use_llm)

    def for_period(self, period: str, use_llm: bool = True) -> ActivitySummary:
        if period == "daily":
            return self.daily(use_llm=use_llm)
        days = PERIOD_DAYS.get(period)
        if days is None:
            raise ValueError(f"Unknown summary period: {period}")
        result = self.unified.get_sessions_for_days(days)
        start, end = result.date_range
        return self._finish(summarize_sessions(period, start, end, result.sessions), result.sessions, use_llm)

    def _finish(self, summary: ActivitySummary, sessions: list[UnifiedSession], use_llm: bool) -> ActivitySummary:
        if not use_llm or not sessions or not self.is_available():
            return summary
        try:
            parsed = self.ask_json(self.build_prompt(summary, sessions), system=SYSTEM_PROMPT)
        except Exception as e:
            logger.warning(f"[SummaryService] LLM summary failed, using counts only: {e}")
            return summary
        if isinstance(parsed, dict):
            summary.accomplishments = [a for a in parsed.get("accomplishments") or [] if isinstance(a, str)][:5]
            insight = parsed.get("insight")
            summary.insight = insight if isinstance(insight, str) and insight else None
            summary.used_llm = True
        return summary

    @staticmethod
    def build_prompt(summary: ActivitySummary, sessions: list[UnifiedSession]) -> str:
        lines = []
        for s in sessions[:MAX_SESSIONS_IN_PROMPT]:
            first = s.highlights.first_user_message if s.highlights else None
            lines.append(
                f"- [{s.source}] {s.workspace_name}: {s.duration} min, {s.prompt_count} prompts"
                + (f", files: {', '.join(s.file_context[:5])}" if s.file_context else "")
                + (f'\n  First request: "{first[:200]}"' if first else "")
            )
        return (
            f"Summarize this {summary.period} coding activity "
            f"({summary.start:%Y-%m-%d} to {summary.end:%Y-%m-%d}).\n"
            f"Sessions: {summary.total_sessions}, prompts: {summary.total_prompts}, "
            f"coding time: {summary.coding_minutes} minutes.\n\n"
            + "\n".join(lines)
        )
