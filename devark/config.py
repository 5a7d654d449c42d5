"""Paths, constants, and user settings."""

import logging
import os
import tempfile
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional

from .safe_json import safe_read_json_file

logger = logging.getLogger(__name__)

APP_NAME = "devark"

DEVARK_DIR = Path.home() / ".devark"
SETTINGS_PATH = DEVARK_DIR / "settings.json"
STATE_PATH = DEVARK_DIR / "session-state.json"
SYNC_STATE_PATH = DEVARK_DIR / "sync-state.json"
COACHING_DIR = DEVARK_DIR / "coaching"

HOOKS_DIR = Path(os.environ.get("DEVARK_HOOKS_DIR") or Path(tempfile.gettempdir()) / f"{APP_NAME}-hooks")

CLAUDE_DIR = Path.home() / ".claude"
CLAUDE_PROJECTS_DIR = CLAUDE_DIR / "projects"
CURSOR_DIR = Path.home() / ".cursor"

DEFAULT_API_URL = "https://app.devark.ai"

# Sessions shorter than this are not uploaded
MIN_SYNC_DURATION_SECONDS = 240


def api_url() -> str:
    return os.environ.get("DEVARK_API_URL", DEFAULT_API_URL).rstrip("/")


def debug_enabled() -> bool:
    return os.environ.get("DEVARK_DEBUG", "").lower() in ("1", "true", "yes")


def configure_logging(debug: bool = False) -> None:
    """Configure the root logger for CLI use."""
    level = logging.DEBUG if debug or debug_enabled() else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@dataclass
class Settings:
    """User-tunable behaviour, persisted in ~/.devark/settings.json."""

    auto_analyze: bool = True
    response_analysis: bool = True
    coaching_min_interval: float = 3 * 60.0
    coaching_cooldown: float = 10 * 60.0
    claude_poll_interval: float = 0.5
    cursor_poll_interval: float = 2.0
    enabled_sources: list[str] = field(default_factory=list)
    llm_provider: Optional[str] = None
    llm_model: Optional[str] = None


def load_settings(path: Optional[Path] = None) -> Settings:
    """Load settings from disk, ignoring unknown keys and applying env overrides."""
    result = safe_read_json_file(path or SETTINGS_PATH, default={}, context="settings")
    raw = result.data if isinstance(result.data, dict) else {}

    known = {f.name for f in fields(Settings)}
    settings = Settings(**{k: v for k, v in raw.items() if k in known})

    if os.environ.get("DEVARK_LLM_PROVIDER"):
        settings.llm_provider = os.environ["DEVARK_LLM_PROVIDER"]
    if os.environ.get("DEVARK_LLM_MODEL"):
        settings.llm_model = os.environ["DEVARK_LLM_MODEL"]
    return settings
