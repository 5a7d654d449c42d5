"""Translate outbound service messages into reducer actions.

Services (detection, co-pilot pipeline, sync) only know a
``post_message(type, data)`` callable. The bridge is that callable: it
records each message in a bounded outbox and dispatches the matching
actions to the store.
"""

import logging
import threading
import time
from collections import deque
from typing import Callable, Optional

from .reducer import Action, Store

logger = logging.getLogger(__name__)

DEFAULT_OUTBOX_SIZE = 200

SUMMARY_ACTIONS = {
    "standup": ("SET_STANDUP_SUMMARY", "summary"),
    "today": ("SET_TODAY_SUMMARY", "summary"),
    "yesterday": ("SET_YESTERDAY_SUMMARY", "summary"),
    "weekend": ("SET_WEEKEND_RECAP", "summaries"),
    "week": ("SET_WEEKLY_SUMMARY", "summary"),
    "month": ("SET_MONTHLY_SUMMARY", "summary"),
    "custom": ("SET_CUSTOM_SUMMARY", "summary"),
}

Translator = Callable[[dict, dict], list[Action]]
TRANSLATORS: dict[str, Translator] = {}


def translates(*message_types: str):
    def decorator(fn: Translator) -> Translator:
        for message_type in message_types:
            TRANSLATORS[message_type] = fn
        return fn
    return decorator


def _passthrough(message_type: str, action_type: str) -> None:
    TRANSLATORS[message_type] = lambda data, state: [Action(action_type, data)]


for _message_type, _action_type in {
    "scoreReceived": "SCORE_RECEIVED",
    "enhancedPromptReady": "ENHANCED_PROMPT_READY",
    "enhancedScoreReady": "ENHANCED_SCORE_READY",
    "uploadProgress": "UPLOAD_PROGRESS",
    "uploadHistory": "SET_UPLOAD_HISTORY",
    "syncStatus": "SET_SYNC_STATUS",
    "cloudStatus": "SET_CLOUD_STATE",
    "editorInfo": "SET_EDITOR_INFO",
    "sessionRenamed": "RENAME_SESSION",
    "sessionDeleted": "DELETE_SESSION",
    "promptLabScoreReceived": "PROMPT_LAB_SCORE_RECEIVED",
    "promptLabContextUsed": "PROMPT_LAB_CONTEXT_USED",
    "promptLabEnhancedReady": "PROMPT_LAB_ENHANCED_READY",
    "promptLabEnhancedScoreReady": "PROMPT_LAB_ENHANCED_SCORE_READY",
    "promptLabAnalysisComplete": "PROMPT_LAB_ANALYSIS_COMPLETE",
}.items():
    _passthrough(_message_type, _action_type)


@translates("promptAnalyzing")
def _prompt_analyzing(data, state):
    if not data.get("text"):
        return []
    return [Action("SET_CURRENT_PROMPT", data["text"]), Action("START_ANALYSIS")]


@translates("newPromptsDetected")
def _new_prompts_detected(data, state):
    prompts = data.get("prompts") or []
    if not prompts:
        return []
    return [Action("SET_CURRENT_PROMPT", prompts[0].get("text") or ""), Action("START_ANALYSIS")]


@translates("v2GoalInference")
def _goal_inference(data, state):
    return [Action("GOAL_INFERENCE_READY", {
        "suggestedGoal": data.get("suggestedGoal"),
        "confidence": data.get("confidence"),
        "detectedTheme": data.get("detectedTheme"),
    })]


@translates("analysisComplete")
def _analysis_complete(data, state):
    return [Action("ANALYSIS_COMPLETE", data.get("prompt") or data)]


@translates("analysisFailed")
def _analysis_failed(data, state):
    text = state["current_prompt"]
    return [Action("ANALYSIS_COMPLETE", {
        "id": f"failed-{int(time.time() * 1000)}",
        "text": text,
        "truncatedText": text[:100],
        "score": 0,
        "timestamp": time.time(),
        "quickWins": ["Analysis failed - try again"],
    })]


@translates("coachingUpdated")
def _coaching_updated(data, state):
    return [Action("SET_COACHING", data.get("coaching")), Action("SET_COACHING_PHASE", "idle")]


@translates("coachingStatus")
def _coaching_status(data, state):
    return [Action("SET_COACHING", data["coaching"])] if data.get("coaching") else []


@translates("finalResponseDetected")
def _final_response_detected(data, state):
    return [Action("SET_COACHING_PHASE", "analyzing_response"), Action("SET_COACHING", None)]


@translates("responseAnalysisStatus")
def _response_analysis_status(data, state):
    return [Action("SET_RESPONSE_ANALYSIS_ENABLED", bool(data.get("enabled")))]


@translates("v2ActiveSession")
def _active_session(data, state):
    actions = []
    if data.get("sessionId"):
        actions.append(Action("SET_ACTIVE_SESSION", data["sessionId"]))
        actions.append(Action("SET_CURRENT_WORKSPACE_SESSION", data["sessionId"]))
    actions.append(Action("SET_ACTIVE_SESSION_DETAILS", {"session": data.get("session"), "project": data.get("project")}))
    actions.append(Action("SET_CURRENT_GOAL", data.get("goal")))
    return actions


@translates("v2SessionList")
def _session_list(data, state):
    projects = data.get("projects")
    return [Action("SET_PROJECTS", projects)] if isinstance(projects, list) else []


@translates("v2GoalProgressAnalysis")
def _goal_progress(data, state):
    if not (data.get("success") and data.get("sessionId")):
        return []
    actions = [Action("UPDATE_SESSION_GOAL_PROGRESS", {
        "sessionId": data["sessionId"],
        "progress": data.get("progress") or 0,
        "customName": data.get("sessionTitle"),
    })]
    if data.get("inferredGoal"):
        actions.append(Action("SET_CURRENT_GOAL", data["inferredGoal"]))
    return actions


@translates("v2Prompts")
def _session_prompts(data, state):
    prompts = data.get("prompts")
    return [Action("SET_RECENT_PROMPTS", prompts)] if isinstance(prompts, list) else []


@translates("promptHistoryLoaded")
def _history_loaded(data, state):
    actions = [Action("ADD_RECENT_PROMPT", p) for p in data.get("history") or []]
    if data.get("analyzedToday") is not None:
        actions.append(Action("INCREMENT_ANALYZED_TODAY", data["analyzedToday"]))
    return actions


@translates("loadingProgress")
def _loading_progress(data, state):
    return [Action("UPDATE_LOADING_PROGRESS", {"progress": data.get("progress", 0), "message": data.get("message", "")})]


@translates("summaryData")
def _summary_data(data, state):
    if state["summary_loading_cancelled"]:
        return []
    actions = []
    target = SUMMARY_ACTIONS.get(data.get("type"))
    if target:
        action_type, key = target
        actions.append(Action(action_type, data.get(key)))
    actions.append(Action("FINISH_LOADING_SUMMARY"))
    return actions


@translates("providersUpdate")
def _providers_update(data, state):
    actions = [Action("SET_PROVIDERS", data.get("providers") or [])]
    if data.get("active"):
        actions.append(Action("SET_ACTIVE_PROVIDER", data["active"]))
    return actions


@translates("configLoaded")
def _config_loaded(data, state):
    return [Action("SET_FIRST_RUN", bool(data.get("isFirstRun")))]


@translates("onboardingComplete")
def _onboarding_complete(data, state):
    return [Action("COMPLETE_ONBOARDING")]


@translates("themeChanged")
def _theme_changed(data, state):
    return [Action("SET_THEME", data.get("theme"))]


@translates("savedPromptsLoaded")
def _saved_prompts_loaded(data, state):
    return [Action("SET_SAVED_PROMPTS", data.get("prompts") or [])]


def translate(message_type: str, data: Optional[dict], state: dict) -> list[Action]:
    translator = TRANSLATORS.get(message_type)
    if translator is None:
        return []
    return translator(data or {}, state)


class MessageBridge:
    def __init__(self, store: Optional[Store] = None, outbox_size: int = DEFAULT_OUTBOX_SIZE):
        self.store = store or Store()
        self.outbox: deque[tuple[str, dict]] = deque(maxlen=outbox_size)
        self._lock = threading.Lock()

    def post_message(self, message_type: str, data: Optional[dict] = None) -> None:
        data = data or {}
        with self._lock:
            self.outbox.append((message_type, data))
            # translate against the state the actions will be applied to
            for action in translate(message_type, data, self.store.state):
                self.store.dispatch(action)
        logger.debug(f"Message {message_type} handled")

    def drain(self) -> list[tuple[str, dict]]:
        with self._lock:
            messages = list(self.outbox)
            self.outbox.clear()
        return messages
