"""Claude Code prompt detection through the UserPromptSubmit hook.

The hook script writes one ``claude-prompt-<id>.json`` file per prompt into
the shared hook directory; this adapter picks the files up, emits a
``DetectedPrompt`` and deletes them.
"""

import logging
from pathlib import Path
from typing import Optional

from .. import config
from ..fs import FileSystem
from ..hooks.processor import HookFileProcessor, HookFileProcessorConfig
from ..ignore_paths import should_ignore_path
from ..models import AdapterStatus, DetectedPrompt, PromptContext
from ..safe_json import safe_parse
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

HOOK_SCRIPT_MARKERS = (
    "devark-sync",
    "claude-hooks/user-prompt-submit.js",
    "bin/devark-sync.js",
    "vibe-log",
)


def hooks_configured(settings: dict) -> bool:
    """Check for a UserPromptSubmit hook that runs one of our sync scripts."""
    hooks = settings.get("hooks") if isinstance(settings, dict) else None
    entries = hooks.get("UserPromptSubmit") if isinstance(hooks, dict) else None
    if not isinstance(entries, list):
        return False
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        for hook in entry.get("hooks") or []:
            command = hook.get("command") if isinstance(hook, dict) else None
            if not command:
                continue
            normalized = command.lower().replace("\\", "/")
            if any(marker in normalized for marker in HOOK_SCRIPT_MARKERS):
                return True
    return False


@register_adapter
class ClaudeCodeAdapter:
    """Watches the hook directory for Claude Code prompt files."""

    source = KNOWN_SOURCES["claude_code"]

    def __init__(
        self,
        hook_dir: Optional[Path] = None,
        fs: Optional[FileSystem] = None,
        poll_interval: float = 0.5,
        use_observer: bool = True,
    ):
        self.fs = fs or FileSystem()
        self.hook_dir = Path(hook_dir or config.HOOKS_DIR)
        self.processor = HookFileProcessor(
            HookFileProcessorConfig(
                hook_dir=self.hook_dir,
                file_prefix="claude-prompt-",
                file_suffix=".json",
                skip_files=["latest-claude-prompt.json"],
                log_context="ClaudeCodeAdapter",
            ),
            fs=self.fs,
        )
        self.watcher = HookWatcher(
            name="ClaudeCodeAdapter",
            hook_dir=self.hook_dir,
            list_files=self.processor.list_matching_files,
            matches=self.processor.matches_pattern,
            handler=self.handle_prompt_file,
            interval=poll_interval,
            use_observer=use_observer,
        )
        self.prompts_detected = 0
        self.initialized = False
        self.watching = False
        self.last_error: Optional[str] = None
        self._prompt_callback: Optional[PromptDetectedCallback] = None
        self._status_callback: Optional[AdapterStatusCallback] = None

    @property
    def settings_path(self) -> Path:
        return self.fs.homedir() / ".claude" / "settings.json"

    def initialize(self) -> bool:
        try:
            self.processor.ensure_hook_dir()
            if not self.check_hooks_configured():
                logger.info("[ClaudeCodeAdapter] Claude Code hooks not configured")
                self.last_error = "Claude Code hooks not installed"
            self.initialized = True
            logger.info("[ClaudeCodeAdapter] Initialized")
            return True
        except Exception as e:
            self.last_error = str(e) or "Unknown error"
            logger.error(f"[ClaudeCodeAdapter] Initialization failed: {e}")
            return False

    def start(self) -> None:
        if not self.initialized:
            self.initialize()
        if self.watching:
            logger.debug("[ClaudeCodeAdapter] Already watching")
            return
        logger.info("[ClaudeCodeAdapter] Starting prompt detection")
        self.watcher.start()
        self.watching = True
        self._notify_status()

    def stop(self) -> None:
        if not self.watching:
            return
        self.watcher.stop()
        self.watching = False
        logger.info("[ClaudeCodeAdapter] Stopped")
        self._notify_status()

    def is_available(self) -> bool:
        return self.check_hooks_configured()

    def get_status(self) -> AdapterStatus:
        return AdapterStatus(
            is_ready=self.initialized,
            is_available=self.initialized and not self.last_error,
            is_watching=self.watching,
            prompts_detected=self.prompts_detected,
            last_error=self.last_error,
            info="Watching for Claude Code prompts" if self.watching else None,
        )

    def dispose(self) -> None:
        self.stop()
        self.processor.clear_processed_ids()
        self._prompt_callback = None
        self._status_callback = None

    def on_prompt_detected(self, callback: PromptDetectedCallback) -> None:
        self._prompt_callback = callback

    def on_status_changed(self, callback: AdapterStatusCallback) -> None:
        self._status_callback = callback

    def check_hooks_configured(self) -> bool:
        try:
            content = self.fs.read_text(self.settings_path)
        except OSError:
            return False
        result = safe_parse(content, attempt_recovery=True, context="ClaudeCodeAdapter:settings.json")
        if not result.success:
            return False
        return hooks_configured(result.data)

    def poll(self) -> None:
        """Process every pending prompt file once."""
        self.watcher.poll_once()

    def handle_prompt_file(self, path: Path) -> None:
        filename = self.processor.get_basename(path)
        if self.processor.should_skip(filename) or self.processor.was_processed(filename):
            return

        content = self.processor.read_file(path)
        if not content:
            # Vanished, or created but not yet written; a later tick retries
            return
        self.processor.mark_processed(filename)

        data = self.processor.parse_data(content, filename, ["prompt"])
        if data is None:
            self.processor.quarantine_file(path)
            return
        self.processor.delete_file(path)

        roots = data.get("workspaceRoots") or []
        project_path = data.get("cwd") or (roots[0] if roots else None)
        if should_ignore_path(project_path):
            logger.debug(f"[ClaudeCodeAdapter] Ignoring prompt from internal folder: {project_path}")
            return

        prompt = self.to_detected_prompt(data)
        logger.debug(f"[ClaudeCodeAdapter] Detected prompt: {prompt.text[:50]}...")
        self.prompts_detected += 1

        if self._prompt_callback:
            self._prompt_callback(prompt)
        self._notify_status()

    def to_detected_prompt(self, data: dict) -> DetectedPrompt:
        roots = data.get("workspaceRoots") or []
        project_path = data.get("cwd") or (roots[0] if roots else None)
        files = tuple(
            a["filePath"]
            for a in data.get("attachments") or []
            if isinstance(a, dict) and a.get("type") == "file" and a.get("filePath")
        )
        return DetectedPrompt(
            id=data.get("id") or generate_prompt_id(self.source.id),
            text=data.get("prompt") or "",
            timestamp=parse_timestamp(data.get("timestamp")) or now(),
            source=self.source,
            context=PromptContext(
                project_path=project_path,
                project_name=Path(project_path).name if project_path else None,
                source_session_id=data.get("sessionId"),
                files=files,
                metadata={
                    "transcriptPath": data.get("transcriptPath"),
                    "hookEventName": data.get("hookEventName"),
                },
            ),
        )

    def _notify_status(self) -> None:
        if self._status_callback:
            self._status_callback(self.get_status())
