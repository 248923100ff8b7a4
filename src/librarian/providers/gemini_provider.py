"""Google Gemini embedding and chat providers."""
from __future__ import annotations

import logging
import os
from typing import Any, List, Optional, Sequence

from librarian.errors import ProviderError

from .base import ChatCompletion, ChatMessage, ChatProvider, EmbeddingProvider

LOGGER = logging.getLogger(__name__)

DEFAULT_EMBEDDING_MODEL = "models/gemini-embedding-001"
DEFAULT_CHAT_MODEL = "gemini-2.5-flash"


def _configure(api_key: Optional[str]) -> Any:
    try:
        import google.generativeai as genai
    except ImportError as error:
        raise ProviderError(
            "google-generativeai not installed; install the 'gemini' extra", provider="gemini", cause=error
        ) from error

    api_key = api_key or os.getenv("GEMINI_API_KEY")
    if not api_key:
        raise ProviderError("GEMINI_API_KEY not set", provider="gemini")
    genai.configure(api_key=api_key)
    return genai


class GeminiEmbeddingProvider(EmbeddingProvider):
    name = "gemini"

    def __init__(
        self,
        model: Optional[str] = None,
        *,
        api_key: Optional[str] = None,
        request_timeout: float = 60.0,
        **_: object,
    ) -> None:
        self.model = model or DEFAULT_EMBEDDING_MODEL
        self.request_timeout = request_timeout
        self._genai = _configure(api_key)

    def embed(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []
        try:
            result = self._genai.embed_content(
                model=self.model,
                content=list(texts),
                task_type="retrieval_document",
                request_options={"timeout": self.request_timeout},
            )
        except Exception as error:
            raise ProviderError(f"Gemini embedding request failed: {error}", provider=self.name, cause=error) from error
        return [list(vector) for vector in result["embedding"]]


class GeminiChatProvider(ChatProvider):
    name = "gemini"

    def __init__(
        self,
        model: Optional[str] = None,
        *,
        api_key: Optional[str] = None,
        request_timeout: float = 60.0,
        temperature: float = 0.0,
        **_: object,
    ) -> None:
        self.model = model or DEFAULT_CHAT_MODEL
        self.request_timeout = request_timeout
        genai = _configure(api_key)
        self._model = genai.GenerativeModel(
            self.model,
            generation_config=genai.GenerationConfig(temperature=temperature),
        )

    def complete(self, messages: Sequence[ChatMessage]) -> ChatCompletion:
        prompt = "\n\n".join(message.content for message in messages)
        try:
            response = self._model.generate_content(prompt, request_options={"timeout": self.request_timeout})
            content = response.text or ""
        except Exception as error:
            raise ProviderError(f"Gemini chat request failed: {error}", provider=self.name, cause=error) from error

        usage = None
        metadata = getattr(response, "usage_metadata", None)
        if metadata is not None:
            usage = {
                "prompt_tokens": metadata.prompt_token_count,
                "completion_tokens": metadata.candidates_token_count,
                "total_tokens": metadata.total_token_count,
            }
        LOGGER.debug("Gemini completion with %s characters", len(content))
        return ChatCompletion(content=content, usage=usage)
