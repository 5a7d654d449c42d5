"""Progressive prompt analysis.

Each detected prompt fans out into four independent stages on a thread
pool: score, enhance, score the enhanced text, and infer a goal (only when
the session has none). Every stage posts its own message as soon as it
finishes, so the UI renders partial results. Stages that belong to a prompt
which has since been superseded are dropped.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from ..sessions.manager import SessionManager
from ..timeutil import now, to_ms
from .base import CopilotContext, InteractionContext
from .enhancer import EnhancedPrompt, PromptEnhancer
from .goals import GoalInference, GoalInferenceService
from .response_analyzer import extract_topics
from .scoring import PromptScore, PromptScorer

logger = logging.getLogger(__name__)

PostMessage = Callable[[str, dict], None]

CONTEXT_INTERACTIONS = 3


def truncate_prompt(text: str, length: int = 50) -> str:
    return text if len(text) <= length else text[:length] + "..."


def quick_wins(suggestions: list[str]) -> list[str]:
    return [" ".join(s.split()[:3]) for s in suggestions[:3]]


@dataclass
class PipelineRun:
    """Bookkeeping for one prompt moving through the stages."""

    prompt_id: str
    text: str
    source: Optional[str] = None
    score: Optional[PromptScore] = None
    enhanced: Optional[EnhancedPrompt] = None
    enhanced_score: Optional[PromptScore] = None
    goal: Optional[GoalInference] = None
    pending: int = 0
    enhanced_scoring: bool = False
    analyzed: Optional[dict] = None
    done: threading.Event = field(default_factory=threading.Event)
    lock: threading.Lock = field(default_factory=threading.Lock)

    def wait(self, timeout: Optional[float] = None) -> Optional[dict]:
        self.done.wait(timeout)
        return self.analyzed


class CopilotPipeline:
    def __init__(
        self,
        post_message: PostMessage,
        scorer: Optional[PromptScorer] = None,
        enhancer: Optional[PromptEnhancer] = None,
        goal_service: Optional[GoalInferenceService] = None,
        session_manager: Optional[SessionManager] = None,
        max_workers: int = 4,
    ):
        self.post_message = post_message
        self.scorer = scorer or PromptScorer()
        self.enhancer = enhancer or PromptEnhancer(self.scorer.llm)
        self.goal_service = goal_service or GoalInferenceService(self.scorer.llm)
        self.session_manager = session_manager
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="devark-copilot")
        self._current_prompt_id: Optional[str] = None
        self._lock = threading.Lock()
        self.analyzed_today = 0

    @property
    def current_prompt_id(self) -> Optional[str]:
        return self._current_prompt_id

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def build_context(self) -> Optional[CopilotContext]:
        if self.session_manager is None:
            return None
        goal = self.session_manager.get_goal()
        interactions = self.session_manager.get_last_interactions(CONTEXT_INTERACTIONS)
        topics: dict[str, None] = {}
        for interaction in interactions:
            for topic in extract_topics(interaction.prompt.text):
                topics[topic] = None
        return CopilotContext(
            goal=goal.text if goal else None,
            recent_topics=list(topics),
            last_interactions=[
                InteractionContext(
                    prompt=x.prompt.text,
                    response=x.response.text if x.response else None,
                    files_modified=list(x.response.files_modified) if x.response else [],
                )
                for x in interactions
            ],
        )

    def _needs_goal(self) -> bool:
        if self.session_manager is None:
            return False
        return self.session_manager.get_goal() is None

    def _session_prompts(self) -> list[str]:
        session = self.session_manager.get_active_session() if self.session_manager else None
        if session is None:
            return []
        return [p.text for p in reversed(session.prompts)]

    # --- Entry point ---

    def analyze(self, text: str, prompt_id: Optional[str] = None, source: Optional[str] = None) -> PipelineRun:
        """Start analysing ``text``, superseding any analysis still running."""
        run = PipelineRun(prompt_id=prompt_id or str(to_ms(now())), text=text, source=source)
        with self._lock:
            self._current_prompt_id = run.prompt_id
        self.post_message("promptAnalyzing", {"promptId": run.prompt_id, "text": text, "source": source})

        context = self.build_context()
        infer_goal = self._needs_goal()
        # score, enhance and score-enhanced always run
        run.pending = 4 if infer_goal else 3

        self._submit(run, "score", self._score_stage, run, context)
        self._submit(run, "enhance", self._enhance_stage, run, context)
        if infer_goal:
            self._submit(run, "goal", self._goal_stage, run)
        return run

    def _submit(self, run: PipelineRun, stage: str, fn: Callable, *args: Any) -> Future:
        future = self._executor.submit(fn, *args)
        future.add_done_callback(lambda f: self._stage_finished(run, stage, f))
        return future

    def _is_current(self, run: PipelineRun) -> bool:
        return run.prompt_id == self._current_prompt_id

    def _post(self, run: PipelineRun, message_type: str, data: dict) -> None:
        if not self._is_current(run):
            logger.debug(f"[Copilot] Dropping {message_type} for superseded prompt {run.prompt_id}")
            return
        self.post_message(message_type, data)

    # --- Stages ---

    def _score_stage(self, run: PipelineRun, context: Optional[CopilotContext]) -> None:
        score = self.scorer.score(run.text, context)
        run.score = score
        logger.debug(f"[Copilot] Score ready for {run.prompt_id}: {score.overall / 10}")
        if self.session_manager is not None:
            self.session_manager.update_prompt_score(run.prompt_id, score.overall / 10, score.breakdown.to_dict())
        self._post(run, "scoreReceived", {
            "promptId": run.prompt_id,
            "score": score.overall / 10,
            "categoryScores": {
                "clarity": score.clarity,
                "specificity": score.specificity,
                "context": score.context,
                "actionability": score.actionability,
            },
            "breakdown": score.breakdown.to_dict(),
            "source": run.source,
        })

    def _enhance_stage(self, run: PipelineRun, context: Optional[CopilotContext]) -> None:
        enhanced = self.enhancer.enhance(run.text, "medium", context)
        run.enhanced = enhanced
        self._post(run, "enhancedPromptReady", {"promptId": run.prompt_id, "improvedVersion": enhanced.enhanced})
        self._submit(run, "score_enhanced", self._score_enhanced_stage, run)
        run.enhanced_scoring = True

    def _score_enhanced_stage(self, run: PipelineRun) -> None:
        score = self.scorer.score(run.enhanced.enhanced)
        run.enhanced_score = score
        self._post(run, "enhancedScoreReady", {"promptId": run.prompt_id, "improvedScore": score.overall / 10})

    def _goal_stage(self, run: PipelineRun) -> None:
        inference = self.goal_service.infer(self._session_prompts() or [run.text])
        run.goal = inference
        if inference is None:
            return
        self._post(run, "v2GoalInference", {
            "promptId": run.prompt_id,
            "suggestedGoal": inference.suggested_goal,
            "confidence": inference.confidence,
            "detectedTheme": inference.detected_theme,
        })

    def _stage_finished(self, run: PipelineRun, stage: str, future: Future) -> None:
        error = future.exception()
        if error is not None:
            logger.warning(f"[Copilot] {stage} stage failed for {run.prompt_id}: {error}")
        with run.lock:
            run.pending -= 1
            if stage == "enhance" and not run.enhanced_scoring:
                # score_enhanced was never submitted
                run.pending -= 1
            finished = run.pending <= 0
        if finished and not run.done.is_set():
            self._complete(run)

    def _complete(self, run: PipelineRun) -> None:
        if run.score is None:
            logger.error(f"[Copilot] Scoring did not complete for {run.prompt_id}")
            self._post(run, "analysisFailed", {"promptId": run.prompt_id, "error": "Scoring did not complete"})
            run.done.set()
            return

        analyzed = {
            "id": run.prompt_id,
            "text": run.text,
            "truncatedText": truncate_prompt(run.text),
            "score": run.score.overall / 10,
            "timestamp": now().isoformat(),
            "categoryScores": {
                "clarity": run.score.clarity,
                "specificity": run.score.specificity,
                "context": run.score.context,
                "actionability": run.score.actionability,
            },
            "quickWins": quick_wins(run.score.suggestions),
            "improvedVersion": run.enhanced.enhanced if run.enhanced else None,
            "improvedScore": run.enhanced_score.overall / 10 if run.enhanced_score else None,
            "breakdown": run.score.breakdown.to_dict(),
            "source": run.source,
        }
        run.analyzed = analyzed
        if self._is_current(run):
            self.analyzed_today += 1
        self._post(run, "analysisComplete", {"prompt": analyzed, "analyzedToday": self.analyzed_today})
        run.done.set()
