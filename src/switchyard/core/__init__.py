"""Core data structures and adapter interfaces for switchyard."""

from __future__ import annotations

from .errors import AdapterError
from .message import Message, MessageRole, parse_messages
from .adapters.toolbridge import ToolSpec

__all__ = [
    "AdapterError",
    "Message",
    "MessageRole",
    "ToolSpec",
    "parse_messages",
]
