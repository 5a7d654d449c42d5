"""LLM completion providers used by scoring, enhancement, and coaching.

Every LLM-backed feature has a heuristic fallback, so a missing package or
API key just means ``LLMManager.is_available()`` is False.
"""

import importlib.util
import logging
import os
import threading
from typing import Optional, Protocol

HAS_OPENAI = importlib.util.find_spec("openai") is not None
HAS_ANTHROPIC = importlib.util.find_spec("anthropic") is not None

OPENAI_MODEL = "gpt-5-mini"
ANTHROPIC_MODEL = "claude-haiku-4-5-20251001"

logger = logging.getLogger(__name__)


class LLMError(Exception):
    """Raised when a completion cannot be produced."""


class LLMProvider(Protocol):
    name: str
    model: str

    def is_available(self) -> bool: ...

    def complete(self, prompt: str, system: Optional[str] = None, max_tokens: int = 1000) -> str: ...


class OpenAIProvider:
    name = "openai"

    def __init__(self, model: Optional[str] = None, api_key: Optional[str] = None):
        self.model = model or OPENAI_MODEL
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        self._client = None

    def is_available(self) -> bool:
        return HAS_OPENAI and bool(self.api_key)

    def complete(self, prompt: str, system: Optional[str] = None, max_tokens: int = 1000) -> str:
        if not self.is_available():
            raise LLMError("OpenAI is not configured")
        if self._client is None:
            from openai import OpenAI
            self._client = OpenAI(api_key=self.api_key)

        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        try:
            response = self._client.chat.completions.create(
                model=self.model,
                max_completion_tokens=max_tokens,
                messages=messages,
            )
        except Exception as e:
            raise LLMError(f"{type(e).__name__}: {e}") from e

        content = response.choices[0].message.content
        if not content:
            raise LLMError(f"Empty response from {self.model}")
        return content.strip()


class AnthropicProvider:
    name = "anthropic"

    def __init__(self, model: Optional[str] = None, api_key: Optional[str] = None):
        self.model = model or ANTHROPIC_MODEL
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        self._client = None

    def is_available(self) -> bool:
        return HAS_ANTHROPIC and bool(self.api_key)

    def complete(self, prompt: str, system: Optional[str] = None, max_tokens: int = 1000) -> str:
        if not self.is_available():
            raise LLMError("Anthropic is not configured")
        if self._client is None:
            import anthropic
            self._client = anthropic.Anthropic(api_key=self.api_key)

        kwargs = {
            "model": self.model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            kwargs["system"] = system
        try:
            response = self._client.messages.create(**kwargs)
        except Exception as e:
            raise LLMError(f"{type(e).__name__}: {e}") from e

        text = "".join(block.text for block in response.content if getattr(block, "type", "") == "text")
        if not text:
            raise LLMError(f"Empty response from {self.model}")
        return text.strip()


PROVIDERS = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
}


class LLMManager:
    """Picks the configured (or first usable) provider and runs completions."""

    _instance = None
    _lock = threading.Lock()

    def __init__(
        self,
        provider: Optional[LLMProvider] = None,
        provider_name: Optional[str] = None,
        model: Optional[str] = None,
    ):
        self.provider = provider or self._select(provider_name or os.environ.get("DEVARK_LLM_PROVIDER"), model)
        if self.provider is None:
            logger.info("No LLM provider configured; using heuristic fallbacks")

    @staticmethod
    def _select(name: Optional[str], model: Optional[str]) -> Optional[LLMProvider]:
        model = model or os.environ.get("DEVARK_LLM_MODEL")
        if name:
            provider_class = PROVIDERS.get(name)
            if provider_class is None:
                logger.warning(f"Unknown LLM provider {name!r}")
                return None
            provider = provider_class(model=model)
            return provider if provider.is_available() else None
        for provider_class in PROVIDERS.values():
            provider = provider_class(model=model)
            if provider.is_available():
                return provider
        return None

    @classmethod
    def get_instance(cls) -> "LLMManager":
        with cls._lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        with cls._lock:
            cls._instance = None

    def is_available(self) -> bool:
        return self.provider is not None and self.provider.is_available()

    @property
    def provider_name(self) -> Optional[str]:
        return self.provider.name if self.provider else None

    def complete(self, prompt: str, system: Optional[str] = None, max_tokens: int = 1000) -> str:
        if self.provider is None:
            raise LLMError("No LLM provider available")
        return self.provider.complete(prompt, system=system, max_tokens=max_tokens)
