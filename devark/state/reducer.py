"""Application state: a pure reducer and a thread-safe store.

State is a plain dict that is never mutated in place; every handler returns
a new dict, so a snapshot handed to the UI stays consistent while workers
keep dispatching. Analysis and coaching records keep the camelCase keys of
the messages they arrive in.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

MAX_RECENT_PROMPTS = 20
TRUNCATE_AT = 50

State = dict
Reducer = Callable[[State, Any], State]


@dataclass(frozen=True)
class Action:
    type: str
    payload: Any = None


def truncate(text: str) -> str:
    return text[:TRUNCATE_AT] + "..." if len(text) > TRUNCATE_AT else text


def initial_state() -> State:
    return {
        # Navigation
        "current_tab": "copilot",
        "current_view": "loading",
        "sidebar_mode": "projects",
        # Cloud
        "cloud": {"is_connected": False, "is_loading": True, "username": None, "auto_sync_enabled": False},
        # Prompt lab
        "prompt_lab": {
            "current_prompt": "",
            "is_analyzing": False,
            "is_enhancing": False,
            "is_scoring_enhanced": False,
            "current_analysis": None,
            "last_context_used": None,
            "saved_prompts": [],
        },
        # Projects and sessions
        "projects": [],
        "active_session_id": None,
        "active_session": None,
        "active_project": None,
        "current_workspace_session_id": None,
        "current_goal": None,
        "upload_history": [],
        "sync_status": None,
        # LLM
        "providers": [],
        "active_provider": None,
        "feature_models": None,
        "available_feature_models": [],
        # Co-pilot
        "auto_analyze_enabled": True,
        "response_analysis_enabled": True,
        "analyzed_today": 0,
        "recent_prompts": [],
        "current_prompt": "",
        "is_analyzing": False,
        "is_enhancing": False,
        "is_scoring_enhanced": False,
        "is_inferring_goal": False,
        "current_analysis": None,
        "inferred_goal": None,
        # Coaching
        "current_coaching": None,
        "coaching_by_session": {},
        "coaching_phase": "idle",
        "context_used": None,
        "session_context": None,
        # Summaries
        "summary_period": "today",
        "custom_date_range": None,
        "standup_summary": None,
        "today_summary": None,
        "yesterday_summary": None,
        "weekend_recap": None,
        "weekly_summary": None,
        "monthly_summary": None,
        "custom_summary": None,
        "is_loading_summary": False,
        "loading_progress": 0,
        "loading_message": "",
        "summary_loading_cancelled": False,
        # Misc
        "settings": {},
        "is_first_run": False,
        "theme": "dark",
        "editor_info": None,
    }


HANDLERS: dict[str, Reducer] = {}


def handles(*action_types: str):
    def decorator(fn: Reducer) -> Reducer:
        for action_type in action_types:
            HANDLERS[action_type] = fn
        return fn
    return decorator


def _setter(action_type: str, key: str) -> None:
    HANDLERS[action_type] = lambda state, action: {**state, key: action.payload}


for _action_type, _key in {
    "SET_TAB": "current_tab",
    "SET_VIEW": "current_view",
    "SET_SUMMARY_PERIOD": "summary_period",
    "SET_PROVIDERS": "providers",
    "SET_ACTIVE_PROVIDER": "active_provider",
    "SET_FEATURE_MODELS": "feature_models",
    "SET_AVAILABLE_FEATURE_MODELS": "available_feature_models",
    "SET_RESPONSE_ANALYSIS_ENABLED": "response_analysis_enabled",
    "SET_CURRENT_PROMPT": "current_prompt",
    "SET_CURRENT_ANALYSIS": "current_analysis",
    "SET_RECENT_PROMPTS": "recent_prompts",
    "SET_TODAY_SUMMARY": "today_summary",
    "SET_YESTERDAY_SUMMARY": "yesterday_summary",
    "SET_WEEKEND_RECAP": "weekend_recap",
    "SET_WEEKLY_SUMMARY": "weekly_summary",
    "SET_MONTHLY_SUMMARY": "monthly_summary",
    "SET_CUSTOM_SUMMARY": "custom_summary",
    "SET_STANDUP_SUMMARY": "standup_summary",
    "SET_THEME": "theme",
    "SET_UPLOAD_HISTORY": "upload_history",
    "SET_SYNC_STATUS": "sync_status",
    "SET_EDITOR_INFO": "editor_info",
    "SET_PROJECTS": "projects",
    "SET_ACTIVE_SESSION": "active_session_id",
    "SET_CURRENT_WORKSPACE_SESSION": "current_workspace_session_id",
    "SET_CURRENT_GOAL": "current_goal",
    "SET_COACHING_PHASE": "coaching_phase",
    "SET_CONTEXT_USED": "context_used",
    "SET_SESSION_CONTEXT": "session_context",
    "SET_SIDEBAR_MODE": "sidebar_mode",
}.items():
    _setter(_action_type, _key)


def reduce(state: State, action: Action) -> State:
    """Apply one action. Unknown actions return the same state object."""
    handler = HANDLERS.get(action.type)
    if handler is None:
        return state
    return handler(state, action)


# --- Navigation, cloud, models ---


@handles("SET_CUSTOM_DATE_RANGE")
def _set_custom_date_range(state, action):
    # a new range invalidates the summary computed for the old one
    return {**state, "custom_date_range": action.payload, "custom_summary": None}


@handles("SET_CLOUD_STATE")
def _set_cloud_state(state, action):
    return {**state, "cloud": {**state["cloud"], **(action.payload or {}), "is_loading": False}}


@handles("UPDATE_FEATURE_MODEL")
def _update_feature_model(state, action):
    if not state["feature_models"]:
        return state
    feature = action.payload["feature"]
    key = {"scoring": "promptScoring", "improvement": "promptImprovement"}.get(feature, feature)
    return {**state, "feature_models": {**state["feature_models"], key: action.payload["model"]}}


@handles("TOGGLE_AUTO_ANALYZE")
def _toggle_auto_analyze(state, action):
    return {**state, "auto_analyze_enabled": not state["auto_analyze_enabled"]}


@handles("TOGGLE_RESPONSE_ANALYSIS")
def _toggle_response_analysis(state, action):
    return {**state, "response_analysis_enabled": not state["response_analysis_enabled"]}


# --- Co-pilot analysis stages ---


@handles("START_ANALYSIS")
def _start_analysis(state, action):
    return {
        **state,
        "is_analyzing": True,
        "is_enhancing": True,
        "is_scoring_enhanced": True,
        "is_inferring_goal": True,
        "current_analysis": None,
        "current_coaching": None,
        "inferred_goal": None,
    }


@handles("SCORE_RECEIVED")
def _score_received(state, action):
    payload = action.payload
    text = state["current_prompt"]
    return {
        **state,
        "current_analysis": {
            "id": payload.get("promptId") or str(int(time.time() * 1000)),
            "text": text,
            "truncatedText": truncate(text),
            "score": payload.get("score"),
            "timestamp": time.time(),
            "categoryScores": payload.get("categoryScores"),
            "breakdown": payload.get("breakdown"),
            "explanation": payload.get("explanation"),
            "source": payload.get("source"),
        },
        "is_analyzing": False,
        "is_enhancing": True,
    }


@handles("ENHANCED_PROMPT_READY")
def _enhanced_prompt_ready(state, action):
    if not state["current_analysis"]:
        return state
    return {
        **state,
        "current_analysis": {**state["current_analysis"], "improvedVersion": action.payload.get("improvedVersion")},
        "is_enhancing": False,
    }


@handles("ENHANCED_SCORE_READY")
def _enhanced_score_ready(state, action):
    if not state["current_analysis"]:
        return state
    return {
        **state,
        "current_analysis": {**state["current_analysis"], "improvedScore": action.payload.get("improvedScore")},
        "is_scoring_enhanced": False,
    }


@handles("GOAL_INFERENCE_READY")
def _goal_inference_ready(state, action):
    return {**state, "inferred_goal": action.payload, "is_inferring_goal": False}


@handles("ANALYSIS_COMPLETE")
def _analysis_complete(state, action):
    return {
        **state,
        "is_analyzing": False,
        "is_enhancing": False,
        "is_scoring_enhanced": False,
        "is_inferring_goal": False,
        "current_analysis": action.payload,
        "recent_prompts": [action.payload, *state["recent_prompts"]][:MAX_RECENT_PROMPTS],
        "analyzed_today": state["analyzed_today"] + 1,
    }


@handles("ADD_RECENT_PROMPT")
def _add_recent_prompt(state, action):
    return {**state, "recent_prompts": [action.payload, *state["recent_prompts"]][:MAX_RECENT_PROMPTS]}


@handles("SELECT_PROMPT_FROM_HISTORY")
def _select_prompt_from_history(state, action):
    return {
        **state,
        "current_prompt": action.payload.get("text", ""),
        "current_analysis": action.payload,
        "is_analyzing": False,
        "is_enhancing": False,
        "is_scoring_enhanced": False,
        "is_inferring_goal": False,
    }


@handles("INCREMENT_ANALYZED_TODAY")
def _increment_analyzed_today(state, action):
    value = action.payload if action.payload is not None else state["analyzed_today"] + 1
    return {**state, "analyzed_today": value}


# --- Summaries ---


@handles("START_LOADING_SUMMARY")
def _start_loading_summary(state, action):
    return {
        **state,
        "is_loading_summary": True,
        "loading_progress": 0,
        "loading_message": action.payload or "",
        "summary_loading_cancelled": False,
    }


@handles("UPDATE_LOADING_PROGRESS")
def _update_loading_progress(state, action):
    return {
        **state,
        "loading_progress": action.payload.get("progress", 0),
        "loading_message": action.payload.get("message", ""),
    }


@handles("FINISH_LOADING_SUMMARY")
def _finish_loading_summary(state, action):
    return {**state, "is_loading_summary": False}


@handles("CANCEL_LOADING_SUMMARY")
def _cancel_loading_summary(state, action):
    return {
        **state,
        "is_loading_summary": False,
        "summary_loading_cancelled": True,
        "loading_progress": 0,
        "loading_message": "",
    }


# --- Settings, onboarding ---


@handles("UPDATE_SETTINGS")
def _update_settings(state, action):
    return {**state, "settings": {**state["settings"], **(action.payload or {})}}


@handles("SET_FIRST_RUN")
def _set_first_run(state, action):
    if action.payload:
        view = "onboarding"
    elif state["current_view"] in ("loading", "onboarding"):
        view = "main"
    else:
        view = state["current_view"]
    return {**state, "is_first_run": bool(action.payload), "current_view": view}


@handles("COMPLETE_ONBOARDING")
def _complete_onboarding(state, action):
    return {**state, "is_first_run": False, "current_view": "main"}


@handles("UPLOAD_PROGRESS")
def _upload_progress(state, action):
    return state


# --- Projects and sessions ---


def _map_sessions(state: State, fn) -> list:
    return [{**p, "sessions": fn(p.get("sessions") or [])} for p in state["projects"]]


@handles("UPDATE_SESSION_GOAL_PROGRESS")
def _update_session_goal_progress(state, action):
    payload = action.payload

    def update(sessions):
        result = []
        for s in sessions:
            if s.get("id") == payload["sessionId"]:
                s = {**s, "goalProgress": payload.get("progress")}
                if payload.get("customName"):
                    s["customName"] = payload["customName"]
            result.append(s)
        return result

    return {**state, "projects": _map_sessions(state, update)}


@handles("TOGGLE_PROJECT")
def _toggle_project(state, action):
    return {
        **state,
        "projects": [
            {**p, "isExpanded": not p.get("isExpanded")} if p.get("id") == action.payload else p
            for p in state["projects"]
        ],
    }


@handles("SET_ACTIVE_SESSION_DETAILS")
def _set_active_session_details(state, action):
    return {**state, "active_session": action.payload.get("session"), "active_project": action.payload.get("project")}


@handles("RENAME_SESSION")
def _rename_session(state, action):
    session_id, name = action.payload["sessionId"], action.payload["customName"]
    return {
        **state,
        "projects": _map_sessions(
            state, lambda sessions: [{**s, "customName": name} if s.get("id") == session_id else s for s in sessions]
        ),
    }


@handles("DELETE_SESSION")
def _delete_session(state, action):
    session_id = action.payload["sessionId"]
    return {
        **state,
        "projects": _map_sessions(state, lambda sessions: [s for s in sessions if s.get("id") != session_id]),
        "active_session_id": None if state["active_session_id"] == session_id else state["active_session_id"],
    }


# --- Coaching ---


@handles("SET_COACHING")
def _set_coaching(state, action):
    coaching = action.payload
    session_id = (coaching or {}).get("sessionId") or state["active_session_id"]
    by_session = state["coaching_by_session"]
    if session_id and coaching:
        by_session = {**by_session, session_id: coaching}
    return {**state, "current_coaching": coaching, "coaching_by_session": by_session}


@handles("SELECT_SESSION")
def _select_session(state, action):
    session_id = action.payload
    return {
        **state,
        "active_session_id": session_id,
        "current_coaching": state["coaching_by_session"].get(session_id) if session_id else None,
    }


@handles("DISMISS_COACHING_SUGGESTION")
def _dismiss_coaching_suggestion(state, action):
    coaching = state["current_coaching"]
    if not coaching:
        return state
    remaining = [s for s in coaching.get("suggestions") or [] if s.get("id") != action.payload]
    return {**state, "current_coaching": {**coaching, "suggestions": remaining}}


# --- Prompt lab ---


def _lab(state: State, **changes) -> State:
    return {**state, "prompt_lab": {**state["prompt_lab"], **changes}}


@handles("SET_PROMPT_LAB_PROMPT")
def _set_prompt_lab_prompt(state, action):
    return _lab(state, current_prompt=action.payload)


@handles("START_PROMPT_LAB_ANALYSIS")
def _start_prompt_lab_analysis(state, action):
    return _lab(
        state,
        is_analyzing=True,
        is_enhancing=True,
        is_scoring_enhanced=True,
        current_analysis=None,
        last_context_used=None,
    )


@handles("PROMPT_LAB_SCORE_RECEIVED")
def _prompt_lab_score_received(state, action):
    payload = action.payload
    text = state["prompt_lab"]["current_prompt"]
    return _lab(
        state,
        is_analyzing=False,
        current_analysis={
            "id": payload.get("promptId") or str(int(time.time() * 1000)),
            "text": text,
            "truncatedText": truncate(text),
            "score": payload.get("score"),
            "timestamp": time.time(),
            "categoryScores": payload.get("categoryScores"),
            "breakdown": payload.get("breakdown"),
            "explanation": payload.get("explanation"),
        },
    )


@handles("PROMPT_LAB_CONTEXT_USED")
def _prompt_lab_context_used(state, action):
    return _lab(state, last_context_used=action.payload)


@handles("PROMPT_LAB_ENHANCED_READY")
def _prompt_lab_enhanced_ready(state, action):
    current = state["prompt_lab"]["current_analysis"]
    if not current:
        logger.debug("Enhanced version arrived without a prompt lab analysis")
        return state
    return _lab(
        state,
        is_enhancing=False,
        current_analysis={**current, "improvedVersion": action.payload.get("improvedVersion")},
    )


@handles("PROMPT_LAB_ENHANCED_SCORE_READY")
def _prompt_lab_enhanced_score_ready(state, action):
    current = state["prompt_lab"]["current_analysis"]
    if not current:
        return state
    return _lab(
        state,
        is_scoring_enhanced=False,
        current_analysis={**current, "improvedScore": action.payload.get("improvedScore")},
    )


@handles("PROMPT_LAB_ANALYSIS_COMPLETE")
def _prompt_lab_analysis_complete(state, action):
    payload = action.payload
    analysis = payload["prompt"] if "prompt" in payload else payload
    return _lab(
        state,
        is_analyzing=False,
        is_enhancing=False,
        is_scoring_enhanced=False,
        current_analysis=dict(analysis),
    )


@handles("CLEAR_PROMPT_LAB")
def _clear_prompt_lab(state, action):
    return _lab(
        state,
        current_prompt="",
        is_analyzing=False,
        is_enhancing=False,
        is_scoring_enhanced=False,
        current_analysis=None,
        last_context_used=None,
    )


@handles("SET_SAVED_PROMPTS")
def _set_saved_prompts(state, action):
    return _lab(state, saved_prompts=list(action.payload))


@handles("ADD_SAVED_PROMPT")
def _add_saved_prompt(state, action):
    return _lab(state, saved_prompts=[action.payload, *state["prompt_lab"]["saved_prompts"]])


@handles("UPDATE_SAVED_PROMPT")
def _update_saved_prompt(state, action):
    prompt_id, updates = action.payload["id"], action.payload["updates"]
    return _lab(
        state,
        saved_prompts=[
            {**p, **updates} if p.get("id") == prompt_id else p for p in state["prompt_lab"]["saved_prompts"]
        ],
    )


@handles("DELETE_SAVED_PROMPT")
def _delete_saved_prompt(state, action):
    return _lab(state, saved_prompts=[p for p in state["prompt_lab"]["saved_prompts"] if p.get("id") != action.payload])


@handles("LOAD_SAVED_PROMPT")
def _load_saved_prompt(state, action):
    saved = action.payload
    has_analysis = any(saved.get(k) is not None for k in ("lastScore", "improvedVersion", "improvedScore"))
    analysis = None
    if has_analysis:
        score = saved.get("lastScore")
        if score is None:
            score = saved.get("improvedScore")
        analysis = {
            "id": saved.get("id"),
            "text": saved["text"],
            "truncatedText": truncate(saved["text"]),
            "score": score if score is not None else 0,
            "timestamp": saved.get("lastAnalyzedAt") or saved.get("lastModifiedAt") or time.time(),
            "improvedVersion": saved.get("improvedVersion"),
            "improvedScore": saved.get("improvedScore"),
        }
    return _lab(
        state,
        current_prompt=saved["text"],
        current_analysis=analysis,
        is_analyzing=False,
        is_enhancing=False,
        is_scoring_enhanced=False,
    )


class Store:
    """Holds the current state; ``dispatch`` is the only way to change it."""

    def __init__(self, state: Optional[State] = None, reducer: Callable[[State, Action], State] = reduce):
        self._state = state if state is not None else initial_state()
        self._reducer = reducer
        self._lock = threading.Lock()
        self._subscribers: list[Callable[[State, Action], None]] = []

    @property
    def state(self) -> State:
        return self._state

    def dispatch(self, action: Action) -> State:
        with self._lock:
            previous = self._state
            self._state = self._reducer(previous, action)
            changed = self._state is not previous
            state = self._state
        if changed:
            for callback in list(self._subscribers):
                try:
                    callback(state, action)
                except Exception as e:
                    logger.error(f"State subscriber failed on {action.type}: {e}")
        return state

    def subscribe(self, callback: Callable[[State, Action], None]) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe
