"""Custom exception types used by switchyard core utilities."""

from __future__ import annotations


class AdapterError(RuntimeError):
    """Raised when an adapter cannot build or fulfil a request."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
