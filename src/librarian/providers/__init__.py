"""Provider registry for embedding and chat models."""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from librarian.errors import ProviderError

from .base import ChatCompletion, ChatMessage, ChatProvider, EmbeddingProvider
from .gemini_provider import GeminiChatProvider, GeminiEmbeddingProvider
from .mock_embedding import HashEmbeddingProvider
from .mock_llm import MockChatProvider
from .openai_provider import OpenAIChatProvider, OpenAIEmbeddingProvider
from .sentence_transformer import SentenceTransformerEmbeddingProvider

LOGGER = logging.getLogger(__name__)

EMBEDDING_PROVIDERS: Dict[str, Callable[..., EmbeddingProvider]] = {
    "sentence-transformers": SentenceTransformerEmbeddingProvider,
    "openai": OpenAIEmbeddingProvider,
    "gemini": GeminiEmbeddingProvider,
    "hash": HashEmbeddingProvider,
}

CHAT_PROVIDERS: Dict[str, Callable[..., ChatProvider]] = {
    "openai": OpenAIChatProvider,
    "gemini": GeminiChatProvider,
    "mock": MockChatProvider,
}


def _create(registry: Dict[str, Callable[..., Any]], kind: str, name: str, model: Optional[str], options: Any) -> Any:
    key = name.strip().lower()
    factory = registry.get(key)
    if factory is None:
        raise ProviderError(
            f"Unknown {kind} provider '{name}'; expected one of {sorted(registry)}", provider=name
        )
    try:
        provider = factory(model=model, **options)
    except ProviderError:
        raise
    except Exception as error:
        raise ProviderError(f"Failed to initialise {kind} provider '{name}': {error}", provider=key, cause=error) from error
    LOGGER.info("Initialised %s provider %s (model %s)", kind, provider.name, provider.model)
    return provider


def create_embedding_provider(name: str, model: Optional[str] = None, **options: Any) -> EmbeddingProvider:
    """Resolve an embedding provider by name; unknown names raise :class:`ProviderError`."""

    return _create(EMBEDDING_PROVIDERS, "embedding", name, model, options)


def create_chat_provider(name: str, model: Optional[str] = None, **options: Any) -> ChatProvider:
    """Resolve a chat provider by name; unknown names raise :class:`ProviderError`."""

    return _create(CHAT_PROVIDERS, "chat", name, model, options)


__all__ = [
    "CHAT_PROVIDERS",
    "EMBEDDING_PROVIDERS",
    "ChatCompletion",
    "ChatMessage",
    "ChatProvider",
    "EmbeddingProvider",
    "GeminiChatProvider",
    "GeminiEmbeddingProvider",
    "HashEmbeddingProvider",
    "MockChatProvider",
    "OpenAIChatProvider",
    "OpenAIEmbeddingProvider",
    "SentenceTransformerEmbeddingProvider",
    "create_chat_provider",
    "create_embedding_provider",
]
