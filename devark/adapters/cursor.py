"""Cursor prompt detection by polling the composer database.

New prompts are found by diffing each session's user-message ids against
the ids seen on previous ticks. Builds that run the Cursor hooks also drop
``prompt-<id>.json`` files, which are picked up in parallel.
"""

import logging
import threading
from pathlib import Path
from typing import Optional

from .. import config
from ..fs import FileSystem
from ..hooks.processor import HookFileProcessor, HookFileProcessorConfig
from ..ignore_paths import should_ignore_path
from ..models import AdapterStatus, DetectedPrompt, PromptContext
from ..readers.cursor import CursorMessage, CursorSession, CursorSessionReader, is_busy_error
from ..timeutil import now, parse_timestamp
from . import register_adapter
from .base import (
    KNOWN_SOURCES,
    AdapterStatusCallback,
    HookWatcher,
    PromptDetectedCallback,
    generate_prompt_id,
)

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 2.0


@register_adapter
class CursorAdapter:
    """Polls Cursor's state.vscdb for new user messages."""

    source = KNOWN_SOURCES["cursor"]

    def __init__(
        self,
        reader: Optional[CursorSessionReader] = None,
        hook_dir: Optional[Path] = None,
        fs: Optional[FileSystem] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        use_observer: bool = True,
    ):
        self.reader = reader or CursorSessionReader()
        self.fs = fs or FileSystem()
        self.hook_dir = Path(hook_dir or config.HOOKS_DIR)
        self.poll_interval = poll_interval
        self.hook_processor = HookFileProcessor(
            HookFileProcessorConfig(
                hook_dir=self.hook_dir,
                file_prefix="prompt-",
                file_suffix=".json",
                skip_files=["latest-prompt.json"],
                log_context="CursorAdapter",
            ),
            fs=self.fs,
        )
        self.hook_watcher = HookWatcher(
            name="CursorAdapter",
            hook_dir=self.hook_dir,
            list_files=self.hook_processor.list_matching_files,
            matches=self.hook_processor.matches_pattern,
            handler=self.handle_hook_file,
            interval=poll_interval,
            use_observer=use_observer,
        )
        # session id -> user message ids already reported
        self.seen_message_ids: dict[str, set[str]] = {}
        self.prompts_detected = 0
        self.initialized = False
        self.watching = False
        self.last_error: Optional[str] = None
        self._prompt_callback: Optional[PromptDetectedCallback] = None
        self._status_callback: Optional[AdapterStatusCallback] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._poll_lock = threading.Lock()

    def initialize(self) -> bool:
        try:
            if not self.reader.initialize():
                self.last_error = "Cursor database not found"
                logger.warning("[CursorAdapter] Failed to initialize: Cursor database not found")
                return False
            self.hook_processor.ensure_hook_dir()
            self.initialized = True
            logger.info("[CursorAdapter] Initialized")
            return True
        except Exception as e:
            self.last_error = str(e) or "Unknown error"
            logger.error(f"[CursorAdapter] Initialization failed: {e}")
            return False

    def start(self) -> None:
        if not self.initialized and not self.initialize():
            raise RuntimeError("Failed to initialize CursorAdapter")
        if self.watching:
            logger.debug("[CursorAdapter] Already watching")
            return

        logger.info("[CursorAdapter] Starting prompt detection")
        self.initialize_seen_messages()

        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="CursorAdapter-poll", daemon=True)
        self._thread.start()
        self.hook_watcher.start()

        self.watching = True
        logger.info(f"[CursorAdapter] Started, polling every {self.poll_interval}s")
        self._notify_status()

    def stop(self) -> None:
        if not self.watching:
            return
        self._stop.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=max(self.poll_interval * 2, 1.0))
        self._thread = None
        self.hook_watcher.stop()
        self.watching = False
        logger.info("[CursorAdapter] Stopped")
        self._notify_status()

    def is_available(self) -> bool:
        if self.initialized:
            return True
        return self.initialize()

    def get_status(self) -> AdapterStatus:
        return AdapterStatus(
            is_ready=self.initialized,
            is_available=self.initialized and not self.last_error,
            is_watching=self.watching,
            prompts_detected=self.prompts_detected,
            last_error=self.last_error,
            info="Polling Cursor database" if self.watching else None,
        )

    def dispose(self) -> None:
        self.stop()
        self.reader.dispose()
        self.seen_message_ids.clear()
        self.hook_processor.clear_processed_ids()
        self._prompt_callback = None
        self._status_callback = None

    def on_prompt_detected(self, callback: PromptDetectedCallback) -> None:
        self._prompt_callback = callback

    def on_status_changed(self, callback: AdapterStatusCallback) -> None:
        self._status_callback = callback

    # --- Database polling ---

    def initialize_seen_messages(self) -> None:
        """Snapshot existing user messages so history is not reported as new."""
        try:
            for session in self.reader.get_active_sessions():
                messages = self.reader.get_all_messages_for_session(session.session_id)
                self.seen_message_ids[session.session_id] = {m.id for m in messages if m.role == "user"}
            logger.info(f"[CursorAdapter] Tracking {len(self.seen_message_ids)} sessions")
        except Exception as e:
            logger.error(f"[CursorAdapter] Failed to snapshot seen messages: {e}")

    def poll(self) -> None:
        """Run one database poll tick."""
        with self._poll_lock:
            try:
                for session in self.reader.get_active_sessions():
                    for prompt in self.detect_new_prompts(session):
                        self.prompts_detected += 1
                        if self._prompt_callback:
                            self._prompt_callback(prompt)
            except Exception as e:
                if is_busy_error(e):
                    # Cursor is writing; seen ids are untouched so the next tick retries
                    logger.debug("[CursorAdapter] Database busy, skipping tick")
                    return
                logger.error(f"[CursorAdapter] Polling error: {e}")
                self.last_error = str(e)
                self._notify_status()

    def detect_new_prompts(self, session: CursorSession) -> list[DetectedPrompt]:
        messages = self.reader.get_all_messages_for_session(session.session_id)
        seen = self.seen_message_ids.setdefault(session.session_id, set())
        prompts = []
        for message in messages:
            if message.role != "user" or message.id in seen:
                continue
            seen.add(message.id)
            if session.workspace_path and should_ignore_path(session.workspace_path):
                logger.debug(f"[CursorAdapter] Ignoring prompt from internal folder: {session.workspace_path}")
                continue
            prompts.append(self.to_detected_prompt(message, session))
        return prompts

    def to_detected_prompt(self, message: CursorMessage, session: CursorSession) -> DetectedPrompt:
        return DetectedPrompt(
            id=generate_prompt_id(self.source.id),
            text=message.content,
            timestamp=parse_timestamp(message.timestamp) or now(),
            source=self.source,
            context=PromptContext(
                project_path=session.workspace_path,
                project_name=session.workspace_name,
                source_session_id=session.session_id,
                files=tuple(session.file_context),
                metadata={"messageId": message.id},
            ),
        )

    def _run(self) -> None:
        while not self._stop.wait(self.poll_interval):
            self.poll()

    # --- Hook files ---

    def poll_hook_files(self) -> None:
        self.hook_watcher.poll_once()

    def handle_hook_file(self, path: Path) -> None:
        filename = self.hook_processor.get_basename(path)
        if self.hook_processor.should_skip(filename) or self.hook_processor.was_processed(filename):
            return

        content = self.hook_processor.read_file(path)
        if not content:
            return
        self.hook_processor.mark_processed(filename)

        data = self.hook_processor.parse_data(content, filename, ["prompt"])
        if data is None:
            self.hook_processor.quarantine_file(path)
            return
        self.hook_processor.delete_file(path)

        roots = data.get("workspaceRoots") or []
        project_path = roots[0] if roots else None
        if project_path and should_ignore_path(project_path):
            logger.debug(f"[CursorAdapter] Ignoring hook prompt from internal folder: {project_path}")
            return

        files = tuple(
            a["filePath"]
            for a in data.get("attachments") or []
            if isinstance(a, dict) and a.get("type") == "file" and a.get("filePath")
        )
        prompt = DetectedPrompt(
            id=data.get("id") or generate_prompt_id(self.source.id),
            text=data.get("prompt") or "",
            timestamp=parse_timestamp(data.get("timestamp")) or now(),
            source=self.source,
            context=PromptContext(
                project_path=project_path,
                project_name=Path(project_path).name if project_path else None,
                source_session_id=data.get("conversationId"),
                files=files,
                metadata={"model": data.get("model"), "cursorVersion": data.get("cursorVersion")},
            ),
        )
        self.prompts_detected += 1
        if self._prompt_callback:
            self._prompt_callback(prompt)
        self._notify_status()

    def _notify_status(self) -> None:
        if self._status_callback:
            self._status_callback(self.get_status())
