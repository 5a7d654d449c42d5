"""DevArk - prompt coaching sidecar for AI coding assistants."""

__version__ = "0.4.0"
