"""Test harness utilities for adapter validation."""

from .event_harness import as_dicts, collect, collect_adapter, event_types, of_type, tool_calls

__all__ = [
    "as_dicts",
    "collect",
    "collect_adapter",
    "event_types",
    "of_type",
    "tool_calls",
]
