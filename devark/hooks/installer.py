"""Install and remove devark hook commands in Claude Code and Cursor settings.

Every command we write carries the ``devark-sync`` marker, so installs are
idempotent: existing marker-bearing entries are removed before the new one
is appended, and entries written by anyone else are left untouched.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from ..fs import FileSystem
from .settings_writer import ClaudeSettingsPaths, CursorSettingsPaths, SettingsWriter

logger = logging.getLogger(__name__)

HOOK_TYPES = ("SessionStart", "PreCompact", "SessionEnd", "UserPromptSubmit", "Stop")

CLAUDE_VALID_HOOKS = HOOK_TYPES
CLAUDE_COMMAND_MARKERS = (
    "devark-sync",
    "devark-sync.js",
    "claude-hooks/user-prompt-submit.js",
    "claude-hooks/stop.js",
    "bin/devark-sync.js",
)

# devark hook type -> Cursor hook type
CURSOR_HOOK_MAP = {
    "PreCompact": "stop",
    "SessionEnd": "stop",
    "Stop": "stop",
    "UserPromptSubmit": "beforeSubmitPrompt",
}
CURSOR_COMMAND_MARKERS = ("devark-sync", "cursor-hooks", "before-submit-prompt", "post-response")

DEFAULT_SYNC_COMMAND = "devark-sync"


@dataclass
class HookConfig:
    hooks: list[str]
    mode: str = "all"
    timeout: Optional[int] = None
    debug: bool = False


@dataclass
class HookError:
    hook: str
    error: str
    recoverable: bool


@dataclass
class HookInstallResult:
    success: bool = True
    hooks_installed: list[str] = field(default_factory=list)
    errors: list[HookError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class HookStatus:
    type: str
    installed: bool
    enabled: bool = True


@dataclass
class HooksStatus:
    installed: bool
    mode: str = "all"
    hooks: list[HookStatus] = field(default_factory=list)
    global_settings: bool = False
    project_settings: bool = False


@dataclass
class UninstallResult:
    success: bool
    errors: list[str] = field(default_factory=list)


def has_marker(command, markers) -> bool:
    if not isinstance(command, str):
        return False
    normalized = command.lower().replace("\\", "/")
    return any(marker in normalized for marker in markers)


def build_command(sync_command: str, trigger: str, source: str, debug: bool = False) -> str:
    parts = [f'"{sync_command}"' if " " in sync_command else sync_command]
    parts.append(f"--hook-trigger={trigger.lower()}")
    parts.append(f"--source={source}")
    parts.append("--silent")
    if debug:
        parts.append("--debug")
    return " ".join(parts)


def filter_claude_entries(entries) -> list:
    """Drop our commands from a Claude hook array, and any entry left empty."""
    kept = []
    for entry in entries if isinstance(entries, list) else []:
        if not isinstance(entry, dict):
            kept.append(entry)
            continue
        commands = [
            h for h in entry.get("hooks") or []
            if not (isinstance(h, dict) and has_marker(h.get("command"), CLAUDE_COMMAND_MARKERS))
        ]
        if commands:
            kept.append({**entry, "hooks": commands})
    return kept


class ClaudeHookInstaller:
    """Manages devark hooks in ~/.claude/settings.json."""

    def __init__(
        self,
        fs: Optional[FileSystem] = None,
        sync_command: str = DEFAULT_SYNC_COMMAND,
        writer: Optional[SettingsWriter] = None,
    ):
        self.fs = fs or FileSystem()
        self.writer = writer or SettingsWriter(self.fs)
        self.paths = ClaudeSettingsPaths(self.fs)
        self.sync_command = sync_command
        self.current_config: Optional[HookConfig] = None
        self.disabled_hooks: set[str] = set()

    @property
    def settings_path(self):
        return self.paths.global_settings()

    def install(self, config: HookConfig) -> HookInstallResult:
        result = HookInstallResult()
        self.current_config = config
        for hook_type in config.hooks:
            if hook_type not in CLAUDE_VALID_HOOKS:
                result.errors.append(HookError(hook_type, f"Invalid hook type for Claude: {hook_type}", False))
                result.success = False
                continue
            try:
                self._install_hook(hook_type, config)
                result.hooks_installed.append(hook_type)
            except (OSError, ValueError) as e:
                logger.error(f"Failed to install Claude hook {hook_type}: {e}")
                result.errors.append(HookError(hook_type, str(e), True))
                result.success = False
        return result

    def _install_hook(self, hook_type: str, config: HookConfig) -> None:
        settings = self.writer.read(self.settings_path)
        hooks = settings.get("hooks") if isinstance(settings.get("hooks"), dict) else {}

        command = {"type": "command", "command": build_command(self.sync_command, hook_type, "claude", config.debug)}
        if config.timeout:
            command["timeout"] = config.timeout
        entry = {"hooks": [command]} if hook_type == "UserPromptSubmit" else {"matcher": "*", "hooks": [command]}

        entries = filter_claude_entries(hooks.get(hook_type))
        entries.append(entry)
        self.writer.merge(self.settings_path, {"hooks": {hook_type: entries}})
        logger.info(f"Installed Claude hook {hook_type}")

    def uninstall(self) -> UninstallResult:
        return self._remove(CLAUDE_VALID_HOOKS)

    def uninstall_hook(self, hook_type: str) -> UninstallResult:
        if not self.is_hook_installed(hook_type):
            return UninstallResult(False, [f"Hook {hook_type} is not installed"])
        return self._remove((hook_type,))

    def _remove(self, hook_types) -> UninstallResult:
        errors = []
        try:
            settings = self.writer.read(self.settings_path)
            hooks = settings.get("hooks")
            if isinstance(hooks, dict):
                for hook_type in hook_types:
                    if hook_type not in hooks:
                        continue
                    remaining = filter_claude_entries(hooks[hook_type])
                    if remaining:
                        hooks[hook_type] = remaining
                    else:
                        del hooks[hook_type]
                if not hooks:
                    del settings["hooks"]
                self.writer.write(self.settings_path, settings)
        except (OSError, ValueError) as e:
            errors.append(str(e))
        if len(hook_types) == len(CLAUDE_VALID_HOOKS):
            self.current_config = None
            self.disabled_hooks.clear()
        return UninstallResult(not errors, errors)

    def get_status(self) -> HooksStatus:
        statuses = []
        try:
            hooks = self.writer.read(self.settings_path).get("hooks")
        except (OSError, ValueError):
            hooks = None
        if isinstance(hooks, dict):
            for hook_type in CLAUDE_VALID_HOOKS:
                entries = hooks.get(hook_type)
                if not isinstance(entries, list):
                    continue
                ours = any(
                    isinstance(h, dict) and has_marker(h.get("command"), CLAUDE_COMMAND_MARKERS)
                    for entry in entries if isinstance(entry, dict)
                    for h in entry.get("hooks") or []
                )
                if ours:
                    statuses.append(HookStatus(hook_type, True, hook_type not in self.disabled_hooks))
        return HooksStatus(
            installed=bool(statuses),
            mode=self.current_config.mode if self.current_config else "all",
            hooks=statuses,
            global_settings=bool(statuses),
        )

    def is_hook_installed(self, hook_type: str) -> bool:
        return any(h.type == hook_type and h.installed for h in self.get_status().hooks)

    def set_hook_enabled(self, hook_type: str, enabled: bool) -> None:
        if enabled:
            self.disabled_hooks.discard(hook_type)
        else:
            self.disabled_hooks.add(hook_type)


class CursorHookInstaller:
    """Manages devark hooks in ~/.cursor/hooks.json."""

    def __init__(
        self,
        fs: Optional[FileSystem] = None,
        sync_command: str = DEFAULT_SYNC_COMMAND,
        writer: Optional[SettingsWriter] = None,
    ):
        self.fs = fs or FileSystem()
        self.writer = writer or SettingsWriter(self.fs)
        self.paths = CursorSettingsPaths(self.fs)
        self.sync_command = sync_command
        self.current_config: Optional[HookConfig] = None

    @property
    def hooks_path(self):
        return self.paths.global_hooks()

    def install(self, config: HookConfig) -> HookInstallResult:
        result = HookInstallResult()
        self.current_config = config
        for hook_type in config.hooks:
            cursor_type = CURSOR_HOOK_MAP.get(hook_type)
            if cursor_type is None:
                result.warnings.append(f"Hook type {hook_type} not supported in Cursor")
                continue
            try:
                self._install_hook(cursor_type, config)
                result.hooks_installed.append(hook_type)
            except (OSError, ValueError) as e:
                logger.error(f"Failed to install Cursor hook {hook_type}: {e}")
                result.errors.append(HookError(hook_type, str(e), True))
                result.success = False
        return result

    def _install_hook(self, cursor_type: str, config: HookConfig) -> None:
        existing = self.writer.read(self.hooks_path)
        hooks = existing.get("hooks") if isinstance(existing.get("hooks"), dict) else {}
        entries = [
            h for h in hooks.get(cursor_type) or []
            if not (isinstance(h, dict) and has_marker(h.get("command"), CURSOR_COMMAND_MARKERS))
        ]
        entries.append({"command": build_command(self.sync_command, cursor_type, "cursor", config.debug)})
        self.writer.merge(self.hooks_path, {"version": 1, "hooks": {cursor_type: entries}})
        logger.info(f"Installed Cursor hook {cursor_type}")

    def uninstall(self) -> UninstallResult:
        errors = []
        try:
            existing = self.writer.read(self.hooks_path)
            hooks = existing.get("hooks")
            if isinstance(hooks, dict):
                for cursor_type in list(hooks):
                    entries = hooks[cursor_type]
                    if not isinstance(entries, list):
                        continue
                    remaining = [
                        h for h in entries
                        if not (isinstance(h, dict) and has_marker(h.get("command"), CURSOR_COMMAND_MARKERS))
                    ]
                    if remaining:
                        hooks[cursor_type] = remaining
                    else:
                        del hooks[cursor_type]
                self.writer.write(self.hooks_path, {**existing, "version": 1, "hooks": hooks})
        except (OSError, ValueError) as e:
            errors.append(str(e))
        self.current_config = None
        return UninstallResult(not errors, errors)

    def get_status(self) -> HooksStatus:
        statuses = []
        try:
            hooks = self.writer.read(self.hooks_path).get("hooks")
        except (OSError, ValueError):
            hooks = None
        if isinstance(hooks, dict):
            for hook_type, cursor_type in CURSOR_HOOK_MAP.items():
                entries = hooks.get(cursor_type)
                if isinstance(entries, list) and any(
                    isinstance(h, dict) and has_marker(h.get("command"), CURSOR_COMMAND_MARKERS) for h in entries
                ):
                    statuses.append(HookStatus(hook_type, True))
        return HooksStatus(
            installed=bool(statuses),
            mode=self.current_config.mode if self.current_config else "all",
            hooks=statuses,
            global_settings=bool(statuses),
        )

    def is_hook_installed(self, hook_type: str) -> bool:
        return any(h.type == hook_type and h.installed for h in self.get_status().hooks)


INSTALLERS = {
    "claude": ClaudeHookInstaller,
    "cursor": CursorHookInstaller,
}


def get_installer(tool: str, fs: Optional[FileSystem] = None, sync_command: str = DEFAULT_SYNC_COMMAND):
    cls = INSTALLERS.get(tool)
    if cls is None:
        raise ValueError(f"Unknown tool: {tool}")
    return cls(fs=fs, sync_command=sync_command)
