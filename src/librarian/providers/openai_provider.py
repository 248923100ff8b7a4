"""OpenAI embedding and chat providers."""
from __future__ import annotations

import logging
import os
from typing import Any, List, Optional, Sequence

from librarian.errors import ProviderError

from .base import ChatCompletion, ChatMessage, ChatProvider, EmbeddingProvider

LOGGER = logging.getLogger(__name__)

DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"
DEFAULT_CHAT_MODEL = "gpt-4o-mini"


def _create_client(api_key: Optional[str], request_timeout: float) -> Any:
    try:
        from openai import OpenAI
    except ImportError as error:
        raise ProviderError("OpenAI package not installed; install the 'openai' extra", provider="openai", cause=error) from error

    api_key = api_key or os.getenv("OPENAI_API_KEY")
    if not api_key:
        raise ProviderError("OPENAI_API_KEY not set", provider="openai")
    return OpenAI(api_key=api_key, timeout=request_timeout)


class OpenAIEmbeddingProvider(EmbeddingProvider):
    name = "openai"

    def __init__(
        self,
        model: Optional[str] = None,
        *,
        api_key: Optional[str] = None,
        request_timeout: float = 60.0,
        client: Any = None,
        **_: object,
    ) -> None:
        self.model = model or DEFAULT_EMBEDDING_MODEL
        self._client = client or _create_client(api_key, request_timeout)

    def embed(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []
        try:
            response = self._client.embeddings.create(model=self.model, input=list(texts))
        except Exception as error:
            raise ProviderError(f"OpenAI embedding request failed: {error}", provider=self.name, cause=error) from error
        ordered = sorted(response.data, key=lambda item: item.index)
        return [list(item.embedding) for item in ordered]


class OpenAIChatProvider(ChatProvider):
    name = "openai"

    def __init__(
        self,
        model: Optional[str] = None,
        *,
        api_key: Optional[str] = None,
        request_timeout: float = 60.0,
        temperature: float = 0.0,
        client: Any = None,
        **_: object,
    ) -> None:
        self.model = model or DEFAULT_CHAT_MODEL
        self.temperature = temperature
        self._client = client or _create_client(api_key, request_timeout)

    def complete(self, messages: Sequence[ChatMessage]) -> ChatCompletion:
        try:
            response = self._client.chat.completions.create(
                model=self.model,
                messages=[message.to_dict() for message in messages],
                temperature=self.temperature,
            )
        except Exception as error:
            raise ProviderError(f"OpenAI chat request failed: {error}", provider=self.name, cause=error) from error

        content = (response.choices[0].message.content or "") if response.choices else ""
        usage = None
        if getattr(response, "usage", None) is not None:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }
        LOGGER.debug("OpenAI completion with %s characters", len(content))
        return ChatCompletion(content=content, usage=usage)
