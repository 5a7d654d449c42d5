"""Prompt sources, the adapter capability set, and the shared hook watcher."""

import logging
import random
import string
import threading
import time
from pathlib import Path
from typing import Callable, Optional, Protocol, runtime_checkable

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from ..models import AdapterStatus, DetectedPrompt, PromptSource

logger = logging.getLogger(__name__)

KNOWN_SOURCES: dict[str, PromptSource] = {
    "cursor": PromptSource("cursor", "Cursor", "polling"),
    "claude_code": PromptSource("claude_code", "Claude Code", "hook"),
    "vscode": PromptSource("vscode", "VS Code", "extension"),
    "windsurf": PromptSource("windsurf", "Windsurf", "hook"),
    "github_copilot": PromptSource("github_copilot", "GitHub Copilot", "api"),
    "cody": PromptSource("cody", "Sourcegraph Cody", "api"),
}

PromptDetectedCallback = Callable[[DetectedPrompt], None]
AdapterStatusCallback = Callable[[AdapterStatus], None]

_BASE36 = string.digits + string.ascii_lowercase


def generate_prompt_id(source_id: str) -> str:
    """Return "<source>-<epoch ms>-<7 random base36 chars>"."""
    suffix = "".join(random.choice(_BASE36) for _ in range(7))
    return f"{source_id}-{int(time.time() * 1000)}-{suffix}"


def get_source_display_name(source_id: str) -> str:
    source = KNOWN_SOURCES.get(source_id)
    if source:
        return source.display_name
    return " ".join(word.capitalize() for word in source_id.split("_"))


@runtime_checkable
class PromptSourceAdapter(Protocol):
    """Capability set every prompt source adapter provides."""

    source: PromptSource

    def initialize(self) -> bool: ...

    def start(self) -> None: ...

    def stop(self) -> None: ...

    def is_available(self) -> bool: ...

    def get_status(self) -> AdapterStatus: ...

    def dispose(self) -> None: ...

    def on_prompt_detected(self, callback: PromptDetectedCallback) -> None: ...

    def on_status_changed(self, callback: AdapterStatusCallback) -> None: ...


class _HookEventHandler(FileSystemEventHandler):
    def __init__(self, watcher: "HookWatcher"):
        self.watcher = watcher

    def on_created(self, event):
        if event.is_directory:
            return
        self.watcher.handle_path(Path(event.src_path))

    def on_modified(self, event):
        self.on_created(event)

    def on_moved(self, event):
        if event.is_directory:
            return
        self.watcher.handle_path(Path(event.dest_path))


class HookWatcher:
    """Poll loop plus filesystem observer over one hook directory.

    Both paths call ``handler`` with candidate files; a lock serialises the
    calls so files are handled one at a time in the order they were seen.
    Filesystem events are not reliable on every platform, so the poll loop
    always runs and the observer is best-effort.
    """

    def __init__(
        self,
        name: str,
        hook_dir: Path,
        list_files: Callable[[], list[Path]],
        matches: Callable[[str], bool],
        handler: Callable[[Path], None],
        interval: float,
        use_observer: bool = True,
    ):
        self.name = name
        self.hook_dir = Path(hook_dir)
        self.list_files = list_files
        self.matches = matches
        self.handler = handler
        self.interval = interval
        self.use_observer = use_observer
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._observer: Optional[Observer] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        if self.use_observer:
            try:
                observer = Observer()
                observer.schedule(_HookEventHandler(self), str(self.hook_dir), recursive=False)
                observer.start()
                self._observer = observer
                logger.debug(f"[{self.name}] File watcher active for {self.hook_dir}")
            except Exception as e:
                logger.warning(f"[{self.name}] File watcher failed, using polling only: {e}")
                self._observer = None
        self._thread = threading.Thread(target=self._run, name=f"{self.name}-poll", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=2)
            self._observer = None
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=max(self.interval * 4, 1.0))
        self._thread = None

    def poll_once(self) -> None:
        for path in self.list_files():
            self.handle_path(path)

    def handle_path(self, path: Path) -> None:
        if not self.matches(path.name):
            return
        with self._lock:
            try:
                self.handler(path)
            except Exception as e:
                logger.error(f"[{self.name}] Error handling {path.name}: {e}")

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.poll_once()
            except Exception as e:
                logger.error(f"[{self.name}] Poll failed: {e}")
            self._stop.wait(self.interval)
