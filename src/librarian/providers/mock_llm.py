"""Mock chat provider that echoes prompts for deterministic testing."""
from __future__ import annotations

from typing import Optional, Sequence

from .base import ChatCompletion, ChatMessage, ChatProvider


class MockChatProvider(ChatProvider):
    """Return a deterministic response for any conversation."""

    name = "mock"

    def __init__(self, model: Optional[str] = None, **_: object) -> None:
        self.model = model or "mock"
        self.calls: list[list[ChatMessage]] = []

    def complete(self, messages: Sequence[ChatMessage]) -> ChatCompletion:
        """Generate a canned response with a predictable prefix."""

        self.calls.append(list(messages))
        prompt = messages[-1].content if messages else ""
        return ChatCompletion(
            content=f"MOCK_ANSWER: {prompt[:100]}",
            usage={"prompt_tokens": len(prompt.split()), "completion_tokens": 0, "total_tokens": len(prompt.split())},
        )
