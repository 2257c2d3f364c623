from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from switchyard.config import ProviderConfig, ProviderSettings  # noqa: E402
from switchyard.core.message import Message, MessageRole  # noqa: E402


@pytest.fixture
def user_turn() -> list[Message]:
    return [Message(role=MessageRole.USER, content="Hello!")]


@pytest.fixture
def make_config():
    """Factory for provider configs with optional caller overrides."""

    def _make(backend: str, model_id: str | None = None, **settings: object) -> ProviderConfig:
        return ProviderConfig(
            backend=backend,
            model_id=model_id,
            api_key="test-key",
            settings=ProviderSettings(**settings),
        )

    return _make
