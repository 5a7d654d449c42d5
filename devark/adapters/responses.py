"""Agent responses captured by the stop / after-response hooks."""

import logging
from pathlib import Path
from typing import Callable, Optional

from .. import config
from ..fs import FileSystem
from ..hooks.processor import HookFileProcessor, HookFileProcessorConfig
from ..models import CapturedResponse
from .base import HookWatcher

logger = logging.getLogger(__name__)

ResponseCallback = Callable[[CapturedResponse], None]


def infer_response_source(filename: str) -> str:
    if filename.startswith("claude-response-"):
        return "claude_code"
    return "cursor"


class ResponseHookProcessor(HookFileProcessor):
    def should_skip(self, filename: str) -> bool:
        return filename.startswith("latest-") or super().should_skip(filename)


class ResponseWatcher:
    """Turns ``*response-<id>.json`` hook files into ``CapturedResponse`` events."""

    def __init__(
        self,
        hook_dir: Optional[Path] = None,
        fs: Optional[FileSystem] = None,
        poll_interval: float = 1.0,
        use_observer: bool = True,
    ):
        self.hook_dir = Path(hook_dir or config.HOOKS_DIR)
        self.processor = ResponseHookProcessor(
            HookFileProcessorConfig(
                hook_dir=self.hook_dir,
                file_prefix="response-",
                additional_prefixes=["cursor-response-", "claude-response-"],
                log_context="ResponseWatcher",
            ),
            fs=fs,
        )
        self.watcher = HookWatcher(
            name="ResponseWatcher",
            hook_dir=self.hook_dir,
            list_files=self.processor.list_matching_files,
            matches=self.processor.matches_pattern,
            handler=self.handle_response_file,
            interval=poll_interval,
            use_observer=use_observer,
        )
        self.responses_detected = 0
        self._callback: Optional[ResponseCallback] = None

    def on_response(self, callback: ResponseCallback) -> None:
        self._callback = callback

    @property
    def running(self) -> bool:
        return self.watcher.running

    def start(self) -> None:
        self.processor.ensure_hook_dir()
        self.watcher.start()
        logger.info(f"[ResponseWatcher] Watching {self.hook_dir}")

    def stop(self) -> None:
        self.watcher.stop()

    def poll(self) -> None:
        self.watcher.poll_once()

    def handle_response_file(self, path: Path) -> None:
        filename = self.processor.get_basename(path)
        if self.processor.should_skip(filename) or self.processor.was_processed(filename):
            return

        content = self.processor.read_file(path)
        if not content:
            return
        self.processor.mark_processed(filename)

        data = self.processor.parse_data(content, filename, ["id"])
        if data is None:
            self.processor.quarantine_file(path)
            return
        self.processor.delete_file(path)

        response = CapturedResponse.from_payload(data, default_source=infer_response_source(filename))
        self.responses_detected += 1
        logger.debug(f"[ResponseWatcher] Captured response {response.id} from {response.source}")
        if self._callback:
            self._callback(response)
