"""Shared handling of JSON files dropped into the hook scratch directory."""

import logging
import os
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from ..fs import FileSystem
from ..safe_json import has_required_fields, safe_parse

logger = logging.getLogger(__name__)

FAILED_DIR_NAME = "failed"


@dataclass
class HookFileProcessorConfig:
    hook_dir: Path
    file_prefix: str
    file_suffix: str = ".json"
    skip_files: list[str] = field(default_factory=list)
    additional_prefixes: list[str] = field(default_factory=list)
    max_processed_ids: int = 200
    log_context: str = "HookFileProcessor"


class HookFileProcessor:
    """Lists, reads, parses, and deletes hook files for one adapter.

    Keeps a bounded, insertion-ordered set of processed identifiers so a
    file delivered twice (watcher event plus poll tick) is handled once.
    """

    def __init__(self, config: HookFileProcessorConfig, fs: Optional[FileSystem] = None):
        self.config = config
        self.fs = fs or FileSystem()
        self._processed: OrderedDict[str, None] = OrderedDict()

    @property
    def hook_dir(self) -> Path:
        return Path(self.config.hook_dir)

    def ensure_hook_dir(self) -> None:
        if not self.fs.exists(self.hook_dir):
            self.fs.mkdir(self.hook_dir)
            logger.info(f"[{self.config.log_context}] Created hook directory: {self.hook_dir}")

    def should_skip(self, filename: str) -> bool:
        return filename in self.config.skip_files

    def matches_pattern(self, filename: str) -> bool:
        prefixes = [self.config.file_prefix, *self.config.additional_prefixes]
        return any(filename.startswith(p) for p in prefixes) and filename.endswith(self.config.file_suffix)

    def was_processed(self, identifier: str) -> bool:
        return identifier in self._processed

    def mark_processed(self, identifier: str) -> None:
        self._processed[identifier] = None
        self._processed.move_to_end(identifier)
        while len(self._processed) > self.config.max_processed_ids:
            self._processed.popitem(last=False)

    def read_file(self, path: Path) -> Optional[str]:
        """Read a hook file, returning None if it vanished or cannot be read."""
        try:
            return self.fs.read_text(path)
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.error(f"[{self.config.log_context}] Error reading file {path}: {e}")
            return None

    def parse_data(self, content: str, filename: str, required_fields: list[str]) -> Optional[Any]:
        result = safe_parse(
            content,
            attempt_recovery=True,
            validate=lambda data: has_required_fields(data, required_fields),
            context=f"{self.config.log_context}:{filename}",
        )
        if not result.success or not result.data:
            logger.error(f"[{self.config.log_context}] Failed to parse {filename}: {result.error or 'Unknown error'}")
            return None
        return result.data

    def delete_file(self, path: Path) -> None:
        try:
            self.fs.unlink(path)
        except OSError:
            pass  # already gone

    def quarantine_file(self, path: Path) -> None:
        """Move an unparseable file into failed/ so it is kept but not re-read."""
        target_dir = self.hook_dir / FAILED_DIR_NAME
        try:
            self.fs.mkdir(target_dir)
            os.replace(path, target_dir / Path(path).name)
            logger.debug(f"[{self.config.log_context}] Moved {Path(path).name} to {target_dir}")
        except OSError:
            self.delete_file(path)

    def list_matching_files(self) -> list[Path]:
        if not self.fs.exists(self.hook_dir):
            return []
        try:
            names = self.fs.listdir(self.hook_dir)
        except OSError:
            return []
        return [
            self.hook_dir / name
            for name in names
            if self.matches_pattern(name) and (self.hook_dir / name).is_file()
        ]

    @staticmethod
    def get_basename(path: Path) -> str:
        return Path(path).name

    def clear_processed_ids(self) -> None:
        self._processed.clear()

    def get_processed_count(self) -> int:
        return len(self._processed)
