"""Base provider interfaces for embeddings and chat models."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

__all__ = ["ChatCompletion", "ChatMessage", "ChatProvider", "EmbeddingProvider"]


@dataclass(slots=True)
class ChatMessage:
    role: str
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(slots=True)
class ChatCompletion:
    content: str
    usage: Optional[Dict[str, int]] = None


class EmbeddingProvider(ABC):
    """Abstract interface for embedding providers.

    ``name`` and ``model`` identify the vector space; an index only accepts
    vectors produced by one provider/model pair.
    """

    name: str = ""
    model: str = ""

    @abstractmethod
    def embed(self, texts: Sequence[str]) -> List[List[float]]:
        """Encode the provided texts into embeddings, one vector per text."""


class ChatProvider(ABC):
    """Abstract interface for chat completion providers."""

    name: str = ""
    model: str = ""

    @abstractmethod
    def complete(self, messages: Sequence[ChatMessage]) -> ChatCompletion:
        """Return the model reply to ``messages``."""
