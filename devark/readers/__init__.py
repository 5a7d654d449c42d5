"""Session readers for the supported assistant tools."""

from .claude_code import ClaudeSessionReader
from .cursor import CursorSessionReader

__all__ = ["ClaudeSessionReader", "CursorSessionReader"]
