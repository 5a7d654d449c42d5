"""Wires detection, the co-pilot pipeline and coaching to one message bridge."""

import logging
from typing import Optional

from .adapters.detection import PromptDetectionService
from .adapters.responses import ResponseWatcher
from .config import Settings, load_settings
from .copilot.coaching import CoachingConfig, CoachingService, CoachingStorage
from .copilot.orchestrator import CopilotPipeline
from .copilot.scoring import PromptScorer
from .llm import LLMManager
from .sessions.manager import SessionManager
from .sessions.unified import UnifiedSessionService
from .state.bridge import MessageBridge

logger = logging.getLogger(__name__)


class Runtime:
    """Owns the long-lived services of a watching process."""

    def __init__(self, bridge: Optional[MessageBridge] = None, settings: Optional[Settings] = None):
        self.settings = settings or load_settings()
        self.bridge = bridge or MessageBridge()
        self.llm = LLMManager(provider_name=self.settings.llm_provider, model=self.settings.llm_model)
        self.session_manager = SessionManager.get_instance()
        self.unified = UnifiedSessionService.get_instance()
        self.pipeline = CopilotPipeline(
            self.bridge.post_message,
            scorer=PromptScorer(self.llm),
            session_manager=self.session_manager,
        )
        self.coaching = CoachingService(
            llm=self.llm,
            session_manager=self.session_manager,
            storage=CoachingStorage(),
            coaching_config=CoachingConfig(
                min_interval=self.settings.coaching_min_interval,
                cooldown_duration=self.settings.coaching_cooldown,
                enabled=self.settings.response_analysis,
            ),
        )
        self.detection = PromptDetectionService(
            self.session_manager,
            pipeline=self.pipeline,
            coaching=self.coaching,
            post_message=self.bridge.post_message,
            settings=self.settings,
            response_watcher=ResponseWatcher(),
            unified=self.unified,
        )
        self.detection.register_default_adapters()

    def start(self) -> dict[str, bool]:
        results = self.detection.initialize()
        self.detection.start()
        self.bridge.post_message("responseAnalysisStatus", {"enabled": self.settings.response_analysis})
        if not self.llm.is_available():
            logger.info("Scoring with heuristics; set OPENAI_API_KEY or ANTHROPIC_API_KEY for LLM analysis")
        return results

    def set_auto_analyze(self, enabled: bool) -> None:
        self.settings.auto_analyze = enabled

    def stop(self) -> None:
        self.detection.dispose()
        self.pipeline.shutdown(wait=False)
        self.session_manager.save()
