"""Single entry point for prompt and response detection across sources.

Detected prompts go to the session manager first, then to the co-pilot
pipeline when auto-analyze is on. Captured responses are recorded on the
session manager before coaching runs, so coaching for a response is never
delivered ahead of the "response captured" message.
"""

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from ..config import Settings
from ..copilot.coaching import is_ignored_response
from ..models import AdapterStatus, CapturedResponse, DetectedPrompt, to_jsonable
from ..sessions.manager import SessionManager
from . import get_adapter, registered_sources
from .base import KNOWN_SOURCES, PromptDetectedCallback, PromptSourceAdapter, get_source_display_name
from .responses import ResponseWatcher

logger = logging.getLogger(__name__)

PostMessage = Callable[[str, dict], None]

# Session manager events that change what the session index shows
GOAL_EVENTS = ("goal_set", "goal_completed", "goal_cleared")


def _hook_adapter(source_id: str, settings: Settings, hook_dir: Optional[Path]) -> Optional[PromptSourceAdapter]:
    return get_adapter(source_id, hook_dir=hook_dir, poll_interval=settings.claude_poll_interval)


def _polling_adapter(source_id: str, settings: Settings, hook_dir: Optional[Path]) -> Optional[PromptSourceAdapter]:
    return get_adapter(source_id, hook_dir=hook_dir, poll_interval=settings.cursor_poll_interval)


# detection method -> adapter factory
ADAPTER_FACTORIES = {
    "hook": _hook_adapter,
    "polling": _polling_adapter,
}


def create_adapter(
    source_id: str,
    settings: Optional[Settings] = None,
    hook_dir: Optional[Path] = None,
) -> Optional[PromptSourceAdapter]:
    source = KNOWN_SOURCES.get(source_id)
    factory = ADAPTER_FACTORIES.get(source.detection_method) if source else None
    if factory is None:
        logger.debug(f"[Detection] No adapter for {source_id}")
        return None
    return factory(source_id, settings or Settings(), hook_dir)


@dataclass
class AdapterStatusEntry:
    source_id: str
    display_name: str
    status: AdapterStatus


@dataclass
class DetectionStatus:
    enabled: bool
    adapters: list[AdapterStatusEntry] = field(default_factory=list)
    total_prompts_detected: int = 0
    active_adapters: int = 0


class PromptDetectionService:
    def __init__(
        self,
        session_manager: SessionManager,
        pipeline=None,
        coaching=None,
        post_message: Optional[PostMessage] = None,
        settings: Optional[Settings] = None,
        response_watcher: Optional[ResponseWatcher] = None,
        unified=None,
    ):
        self.session_manager = session_manager
        self.pipeline = pipeline
        self.coaching = coaching
        self.post_message = post_message
        self.settings = settings or Settings()
        self.response_watcher = response_watcher
        self.unified = unified
        self.enabled = True
        self.adapters: dict[str, PromptSourceAdapter] = {}
        self._callbacks: list[PromptDetectedCallback] = []
        self._started = False
        self._lock = threading.Lock()
        if self.response_watcher is not None:
            self.response_watcher.on_response(self.handle_response)
        if self.unified is not None:
            self.session_manager.subscribe(self._on_session_event)

    def register_default_adapters(self, hook_dir: Optional[Path] = None) -> None:
        for source_id in registered_sources():
            adapter = create_adapter(source_id, self.settings, hook_dir)
            if adapter is not None:
                self.register_adapter(adapter)

    def register_adapter(self, adapter: PromptSourceAdapter) -> None:
        source_id = adapter.source.id
        previous = self.adapters.get(source_id)
        if previous is not None:
            logger.warning(f"[Detection] Adapter for {source_id} already registered, replacing")
            previous.dispose()
        adapter.on_prompt_detected(self.handle_prompt)
        adapter.on_status_changed(lambda status: self._on_adapter_status(source_id, status))
        self.adapters[source_id] = adapter
        logger.info(f"[Detection] Registered adapter: {adapter.source.display_name}")

    def unregister_adapter(self, source_id: str) -> None:
        adapter = self.adapters.pop(source_id, None)
        if adapter is not None:
            adapter.dispose()

    def initialize(self) -> dict[str, bool]:
        results = {}
        for source_id, adapter in self.adapters.items():
            try:
                results[source_id] = adapter.initialize()
            except Exception as e:
                logger.error(f"[Detection] {source_id} initialization error: {e}")
                results[source_id] = False
            logger.info(f"[Detection] {source_id}: {'initialized' if results[source_id] else 'failed to initialize'}")
        return results

    def enabled_adapters(self) -> list[PromptSourceAdapter]:
        if not self.settings.enabled_sources:
            return list(self.adapters.values())
        return [self.adapters[s] for s in self.settings.enabled_sources if s in self.adapters]

    def start(self) -> None:
        if not self.enabled:
            logger.info("[Detection] Detection is disabled")
            return
        if self._started:
            return
        for adapter in self.enabled_adapters():
            try:
                adapter.start()
                logger.info(f"[Detection] Started: {adapter.source.display_name}")
            except Exception as e:
                logger.error(f"[Detection] Failed to start {adapter.source.display_name}: {e}")
        if self.response_watcher is not None:
            self.response_watcher.start()
        self._started = True
        self._post_status()

    def stop(self) -> None:
        if not self._started:
            return
        for adapter in self.adapters.values():
            adapter.stop()
        if self.response_watcher is not None:
            self.response_watcher.stop()
        self._started = False
        self._post_status()

    def dispose(self) -> None:
        self.stop()
        for adapter in self.adapters.values():
            adapter.dispose()
        self.adapters.clear()
        self._callbacks.clear()

    def on_prompt_detected(self, callback: PromptDetectedCallback) -> Callable[[], None]:
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def get_status(self) -> DetectionStatus:
        entries = [
            AdapterStatusEntry(source_id, get_source_display_name(source_id), adapter.get_status())
            for source_id, adapter in self.adapters.items()
        ]
        return DetectionStatus(
            enabled=self.enabled,
            adapters=entries,
            total_prompts_detected=sum(e.status.prompts_detected for e in entries),
            active_adapters=sum(1 for e in entries if e.status.is_watching),
        )

    # --- Routing ---

    def handle_prompt(self, prompt: DetectedPrompt) -> None:
        logger.info(f"[Detection] Prompt from {prompt.source.display_name}: {prompt.text[:50]}...")
        with self._lock:
            try:
                session = self.session_manager.on_prompt_detected(prompt)
            except Exception as e:
                logger.error(f"[Detection] Failed to record prompt {prompt.id}: {e}")
                return
        if self.unified is not None:
            self.unified.invalidate_cache()

        self._post("newPromptsDetected", {
            "count": 1,
            "sessionId": session.id,
            "prompts": [{
                "id": prompt.id,
                "text": prompt.text,
                "source": prompt.source.id,
                "timestamp": prompt.timestamp.isoformat(),
                "projectPath": prompt.context.project_path,
            }],
        })

        for callback in list(self._callbacks):
            try:
                callback(prompt)
            except Exception as e:
                logger.error(f"[Detection] Prompt callback failed: {e}")

        if self.settings.auto_analyze and self.pipeline is not None:
            self.pipeline.analyze(prompt.text, prompt_id=prompt.id, source=prompt.source.id)

    def handle_response(self, response: CapturedResponse) -> None:
        if is_ignored_response(response):
            logger.debug(f"[Detection] Ignoring response {response.id} from internal folder")
            return
        with self._lock:
            record = self.session_manager.add_response(response)
        if self.unified is not None:
            self.unified.invalidate_cache()
        self._post("finalResponseDetected", {
            "responseId": response.id,
            "source": response.source,
            "sessionId": response.session_id or response.conversation_id,
            "recorded": record is not None,
        })
        if not self.settings.response_analysis or self.coaching is None:
            return

        prompt_text = response.prompt_text
        if prompt_text is None and record is not None:
            session = self.session_manager.get_active_session()
            match = next((p for p in session.prompts if p.id == record.prompt_id), None) if session else None
            prompt_text = match.text if match else None

        result = self.coaching.process_response(response, prompt_text=prompt_text)
        if result.generated:
            self._post("coachingUpdated", {"coaching": to_jsonable(result.coaching)})
        else:
            logger.debug(f"[Detection] No coaching for {response.id}: {result.reason}")

    def _on_session_event(self, event_type: str, data: dict) -> None:
        if event_type in GOAL_EVENTS:
            self.unified.invalidate_cache()

    def _on_adapter_status(self, source_id: str, status: AdapterStatus) -> None:
        if status.last_error:
            logger.debug(f"[Detection] {source_id} status: {status.last_error}")
        self._post_status()

    def _post_status(self) -> None:
        status = self.get_status()
        self._post("detectionStatus", {
            "enabled": status.enabled,
            "totalPromptsDetected": status.total_prompts_detected,
            "activeAdapters": status.active_adapters,
        })

    def _post(self, message_type: str, data: dict) -> None:
        if self.post_message is not None:
            self.post_message(message_type, data)
