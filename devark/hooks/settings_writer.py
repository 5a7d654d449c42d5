"""Read, write, and deep-merge JSON settings files owned by other tools."""

import json
import logging
from pathlib import Path
from typing import Any, Optional

from ..fs import FileSystem, PathLike

logger = logging.getLogger(__name__)


def is_plain_object(value: Any) -> bool:
    return isinstance(value, dict)


def deep_merge(target: dict, source: dict) -> dict:
    """Merge source into a copy of target.

    Nested dicts are merged recursively. Everything else in source, arrays
    and None included, replaces the target value. Keys missing from source
    keep their target value.
    """
    result = dict(target)
    for key, value in source.items():
        existing = result.get(key)
        if is_plain_object(value) and is_plain_object(existing):
            result[key] = deep_merge(existing, value)
        else:
            result[key] = value
    return result


class SettingsWriter:
    """JSON settings file access with empty-as-empty reads and merge writes."""

    def __init__(self, fs: Optional[FileSystem] = None):
        self.fs = fs or FileSystem()

    def read(self, path: PathLike) -> dict:
        """Return the parsed file, or {} if it is missing or empty.

        Any other parse failure propagates so a corrupt file is never
        silently overwritten by a merge.
        """
        try:
            content = self.fs.read_text(path)
        except FileNotFoundError:
            return {}
        if not content.strip():
            return {}
        return json.loads(content)

    def write(self, path: PathLike, data: dict) -> None:
        self.fs.write_text(path, json.dumps(data, indent=2) + "\n")
        logger.debug(f"Wrote settings file {path}")

    def exists(self, path: PathLike) -> bool:
        return self.fs.exists(path)

    def create(self, path: PathLike, data: dict) -> None:
        if self.exists(path):
            raise FileExistsError(f"Settings file already exists: {path}")
        self.write(path, data)

    def merge(self, path: PathLike, updates: dict) -> dict:
        merged = deep_merge(self.read(path), updates)
        self.write(path, merged)
        return merged


# --- Tool-specific paths ---


def encode_project_path(project_path: str) -> str:
    """Encode a project path the way Claude Code names its project folders.

    /Users/danny/dev -> Users-danny-dev
    """
    encoded = project_path.replace("/", "-")
    if encoded.startswith("-"):
        encoded = encoded[1:]
    return encoded


class ClaudeSettingsPaths:
    def __init__(self, fs: Optional[FileSystem] = None):
        self.fs = fs or FileSystem()

    def global_settings(self) -> Path:
        return self.fs.homedir() / ".claude" / "settings.json"

    def projects_dir(self) -> Path:
        return self.fs.homedir() / ".claude" / "projects"

    def project_local_settings(self, project_path: str) -> Path:
        return self.projects_dir() / encode_project_path(project_path) / ".claude" / "settings.local.json"


class CursorSettingsPaths:
    def __init__(self, fs: Optional[FileSystem] = None):
        self.fs = fs or FileSystem()

    def global_hooks(self) -> Path:
        return self.fs.homedir() / ".cursor" / "hooks.json"

    def project_hooks(self, project_path: str) -> Path:
        return Path(project_path.rstrip("/") or "/") / ".cursor" / "hooks.json"
