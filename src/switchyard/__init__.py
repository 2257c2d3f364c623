"""One streaming interface over many language-model backends.

The package converts a conversation into each backend's wire format, applies
per-backend request policy, and normalizes whatever the backend streams back
into a single sequence of canonical events (text, reasoning, complete tool
calls, usage, errors).
"""

from __future__ import annotations

from .config import ModelInfo, ProviderConfig, ProviderSettings, RequestMetadata, RoutingPreferences
from .core import AdapterError, Message, MessageRole, ToolSpec, parse_messages
from .core.adapters import ModelAdapter, create_adapter, event_to_dict

__all__ = [
    "AdapterError",
    "Message",
    "MessageRole",
    "ModelAdapter",
    "ModelInfo",
    "ProviderConfig",
    "ProviderSettings",
    "RequestMetadata",
    "RoutingPreferences",
    "ToolSpec",
    "create_adapter",
    "event_to_dict",
    "parse_messages",
]

__version__ = "0.1.0"
