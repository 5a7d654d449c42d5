"""Adapter registry and discovery."""

from typing import Type

from .base import KNOWN_SOURCES, PromptSourceAdapter

# Registry of adapter classes keyed by source id
_ADAPTERS: dict[str, Type] = {}


def register_adapter(adapter_class: Type) -> Type:
    """Decorator to register an adapter class."""
    _ADAPTERS[adapter_class.source.id] = adapter_class
    return adapter_class


def get_adapter_class(source_id: str) -> Type | None:
    return _ADAPTERS.get(source_id)


def get_adapter(source_id: str, **kwargs) -> PromptSourceAdapter | None:
    """Get an instance of the adapter for a source id."""
    adapter_class = _ADAPTERS.get(source_id)
    if adapter_class:
        return adapter_class(**kwargs)
    return None


def registered_sources() -> list[str]:
    return list(_ADAPTERS)


__all__ = [
    "KNOWN_SOURCES",
    "PromptSourceAdapter",
    "get_adapter",
    "get_adapter_class",
    "register_adapter",
    "registered_sources",
]

# Import adapters to trigger registration
from . import claude_code  # noqa: F401, E402
from . import cursor  # noqa: F401, E402
