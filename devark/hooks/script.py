"""The ``devark-sync`` command run by Claude Code and Cursor hooks.

Reads the hook payload from stdin and drops a prompt or response file into
the shared hook directory for the adapters to pick up. It always exits 0
and never blocks the host tool.
"""

import argparse
import json
import logging
import random
import string
import sys
import time
from pathlib import Path
from typing import Optional

from .. import config
from ..fs import FileSystem
from ..timeutil import now

logger = logging.getLogger(__name__)

MAX_RESPONSE_CHARS = 5000
MAX_TOOL_CALLS = 10
MAX_FILES_MODIFIED = 20


def _suffix() -> str:
    return "".join(random.choices(string.ascii_lowercase + string.digits, k=6))


def _ms() -> int:
    return int(time.time() * 1000)


def extract_text(content) -> str:
    """Text of a transcript message in any of the shapes Claude Code writes."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = [
            block if isinstance(block, str) else block.get("text") or ""
            for block in content
            if isinstance(block, str) or (isinstance(block, dict) and block.get("type") == "text")
        ]
        return "\n".join(parts)
    if isinstance(content, dict):
        if content.get("text"):
            return str(content["text"])
        if "content" in content:
            return extract_text(content["content"])
        if "message" in content:
            return extract_text(content["message"])
    return ""


def last_assistant_message(transcript_path: Optional[str]) -> str:
    if not transcript_path:
        return ""
    try:
        lines = Path(transcript_path).read_text(encoding="utf-8").strip().splitlines()
    except OSError as e:
        logger.debug(f"Cannot read transcript {transcript_path}: {e}")
        return ""
    for line in reversed(lines):
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            continue
        if not isinstance(entry, dict):
            continue
        if entry.get("type") == "assistant" or entry.get("role") == "assistant":
            text = extract_text(entry.get("message") or entry.get("content") or entry.get("text") or "")
            if text:
                return text[:MAX_RESPONSE_CHARS]
    return ""


def claude_prompt(payload: dict) -> dict:
    cwd = payload.get("cwd")
    return {
        "id": f"claude-prompt-{_ms()}-{_suffix()}",
        "timestamp": now().isoformat(),
        "prompt": payload.get("prompt") or "",
        "source": "claude_code",
        "sessionId": payload.get("session_id"),
        "transcriptPath": payload.get("transcript_path"),
        "cwd": cwd,
        "hookEventName": payload.get("hook_event_name"),
        "attachments": [],
        "workspaceRoots": [cwd] if cwd else [],
    }


def claude_response(payload: dict) -> dict:
    cwd = payload.get("cwd")
    stop_reason = payload.get("stop_reason") or "completed"
    text = payload.get("last_assistant_message") or last_assistant_message(payload.get("transcript_path"))
    return {
        "id": f"claude-response-{_ms()}-{_suffix()}",
        "timestamp": now().isoformat(),
        "source": "claude_code",
        "response": text[:MAX_RESPONSE_CHARS],
        "success": stop_reason != "error",
        "reason": stop_reason,
        "stopReason": stop_reason,
        "isFinal": True,
        "sessionId": payload.get("session_id"),
        "transcriptPath": payload.get("transcript_path"),
        "cwd": cwd,
        "workspaceRoots": [cwd] if cwd else [],
        "toolResults": list(payload.get("tool_results") or [])[:MAX_TOOL_CALLS],
    }


def cursor_prompt(payload: dict) -> dict:
    return {
        "id": f"prompt-{_ms()}-{_suffix()}",
        "timestamp": now().isoformat(),
        "prompt": payload.get("prompt") or "",
        "source": "cursor",
        "attachments": payload.get("attachments") or [],
        "conversationId": payload.get("conversation_id"),
        "generationId": payload.get("generation_id"),
        "model": payload.get("model"),
        "cursorVersion": payload.get("cursor_version"),
        "workspaceRoots": payload.get("workspace_roots") or [],
    }


def cursor_response(payload: dict) -> dict:
    hook_type = payload.get("hook_event_name") or "afterAgentResponse"
    is_stop = hook_type == "stop"
    tool_calls = [] if is_stop else [
        {"name": tc.get("name") or tc.get("tool"), "arguments": tc.get("arguments") or tc.get("params") or {}}
        for tc in (payload.get("tool_calls") or [])[:MAX_TOOL_CALLS]
        if isinstance(tc, dict)
    ]
    return {
        "id": f"cursor-response-{_ms()}-{_suffix()}",
        "timestamp": now().isoformat(),
        "source": "cursor",
        "hookType": hook_type,
        "isFinal": is_stop,
        "stopReason": (payload.get("status") or "error") if is_stop else None,
        "loopCount": (payload.get("loop_count") or 0) if is_stop else None,
        "response": "" if is_stop else (payload.get("response") or payload.get("text") or "")[:MAX_RESPONSE_CHARS],
        "success": not is_stop or payload.get("status") == "completed",
        "conversationId": payload.get("conversation_id"),
        "generationId": payload.get("generation_id"),
        "model": payload.get("model"),
        "workspaceRoots": payload.get("workspace_roots") or [],
        "toolCalls": tool_calls,
        "filesModified": [] if is_stop else list(payload.get("files_modified") or [])[:MAX_FILES_MODIFIED],
    }


def write_hook_file(hook_dir: Path, filename: str, data: dict, latest: Optional[str] = None, fs: Optional[FileSystem] = None) -> Path:
    fs = fs or FileSystem()
    path = hook_dir / filename
    content = json.dumps(data, indent=2)
    fs.write_text(path, content)
    if latest:
        fs.write_text(hook_dir / latest, content)
    return path


def handle_hook(source: str, trigger: str, payload: dict, hook_dir: Path, fs: Optional[FileSystem] = None) -> Optional[Path]:
    """Write the file for one hook invocation; None when the trigger has nothing to capture."""
    trigger = trigger.lower()
    ms = _ms()
    if source == "claude":
        if trigger == "userpromptsubmit":
            return write_hook_file(hook_dir, f"claude-prompt-{ms}.json", claude_prompt(payload), "latest-claude-prompt.json", fs)
        if trigger == "stop":
            return write_hook_file(hook_dir, f"claude-response-{ms}.json", claude_response(payload), "latest-claude-response.json", fs)
    elif source == "cursor":
        if trigger == "beforesubmitprompt":
            return write_hook_file(hook_dir, f"prompt-{ms}.json", cursor_prompt(payload), "latest-prompt.json", fs)
        if trigger in ("stop", "afteragentresponse"):
            return write_hook_file(hook_dir, f"cursor-response-{ms}.json", cursor_response(payload), "latest-cursor-response.json", fs)
    logger.debug(f"Nothing to capture for {source}/{trigger}")
    return None


def _configure_logging(hook_dir: Path, debug: bool, silent: bool) -> None:
    handlers: list[logging.Handler] = []
    try:
        hook_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(hook_dir / "debug.log", encoding="utf-8"))
    except OSError:
        pass
    if not silent:
        handlers.append(logging.StreamHandler(sys.stderr))
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="[%(asctime)s] [devark-sync] %(levelname)s %(message)s",
        handlers=handlers or [logging.NullHandler()],
    )


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="devark-sync", description="Capture a hook event for devark")
    parser.add_argument("--hook-trigger", required=True, help="Hook event, lower-cased")
    parser.add_argument("--source", choices=["claude", "cursor"], required=True)
    parser.add_argument("--silent", action="store_true")
    parser.add_argument("--debug", action="store_true")
    args = parser.parse_args(argv)

    hook_dir = Path(config.HOOKS_DIR)
    _configure_logging(hook_dir, args.debug, args.silent)

    raw = sys.stdin.read()
    try:
        payload = json.loads(raw) if raw.strip() else {}
    except json.JSONDecodeError as e:
        logger.error(f"Invalid hook payload: {e}")
        payload = {}

    try:
        path = handle_hook(args.source, args.hook_trigger, payload if isinstance(payload, dict) else {}, hook_dir)
        if path:
            logger.info(f"Wrote {path.name}")
    except OSError as e:
        logger.error(f"Failed to write hook file: {e}")

    if args.source == "cursor" and args.hook_trigger.lower() == "beforesubmitprompt":
        sys.stdout.write(json.dumps({"continue": True}))
    return 0


if __name__ == "__main__":
    sys.exit(main())
