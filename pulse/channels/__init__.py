"""Channel adapter registry for agent message delivery."""

from __future__ import annotations

from ..store.base import Store
from .base import ChannelAdapter
from .inapp import InAppAdapter

_REGISTRY: dict[str, type[ChannelAdapter]] = {}


def register_adapter(adapter: type[ChannelAdapter]) -> None:
    """Register a channel adapter class in the global registry."""
    _REGISTRY[adapter.channel_name] = adapter


def get_adapter(name: str) -> type[ChannelAdapter]:
    """Retrieve an adapter class for ``name`` or raise ``KeyError``."""
    normalized = name.lower()
    if normalized not in _REGISTRY:
        raise KeyError(f"Channel '{name}' is not configured")
    return _REGISTRY[normalized]


def get_channel_adapter(store: Store, channel: str = "inapp") -> ChannelAdapter:
    """Instantiate the adapter for ``channel``; unknown identifiers get in-app."""
    try:
        adapter_cls = get_adapter(channel)
    except KeyError:
        adapter_cls = InAppAdapter
    return adapter_cls(store)


# Pre-register built-in adapters
register_adapter(InAppAdapter)

__all__ = [
    "ChannelAdapter",
    "InAppAdapter",
    "get_adapter",
    "get_channel_adapter",
    "register_adapter",
]
