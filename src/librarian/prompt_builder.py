"""Utilities for constructing grounded answers for the library assistant."""
from __future__ import annotations

import html
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from librarian.ingest.language import LanguageDetector
from librarian.providers.base import ChatMessage, ChatProvider
from librarian.retrieval.hybrid import RetrievalResult, RetrievedUnit
from librarian.telemetry import InteractionLogger, emit_prompt_event, notify

LOGGER = logging.getLogger(__name__)

_PROMPTS_DIR = Path(__file__).resolve().parent / "prompts"

DEFAULT_LANGUAGE = "en"
REFUSALS: Dict[str, str] = {
    "tr": "Üzgünüm, bu konu hakkında belgemde yeterli bilgi bulunmuyor.",
    "en": "I'm sorry, my documents do not contain enough information about this topic.",
}


@lru_cache(maxsize=None)
def _load_template(language: str) -> str:
    """Read and trim the answer template for ``language``."""

    return (_PROMPTS_DIR / language / "answer.txt").read_text(encoding="utf-8").strip()


def refusal_for(language: str) -> str:
    return REFUSALS.get(language, REFUSALS[DEFAULT_LANGUAGE])


def detect_query_language(query: str, detector: Optional[LanguageDetector] = None) -> str:
    """Return ``tr`` or ``en``; anything that is not Turkish gets English."""

    return (detector or LanguageDetector()).choose(query, REFUSALS, DEFAULT_LANGUAGE)


def format_context(units: Sequence[RetrievedUnit]) -> str:
    sections: List[str] = []
    for number, retrieved in enumerate(units, start=1):
        content = retrieved.unit.content.strip()
        if content:
            sections.append(f"[{number}] ({retrieved.unit.citation()})\n{content}")
    return "\n\n".join(sections)


def build_prompt(question: str, result: RetrievalResult, language: str) -> str:
    """Compose the full prompt used for answering a library question."""

    if question is None:
        raise ValueError("question must not be None")
    template = _load_template(language if language in REFUSALS else DEFAULT_LANGUAGE)
    return template.format(
        refusal=refusal_for(language),
        context=format_context(result.units),
        question=question.strip(),
    )


def sources_block(citations: Sequence[str]) -> str:
    if not citations:
        return ""
    items = "".join(f"<li>{html.escape(citation)}</li>" for citation in citations)
    return f"<hr/><b>Sources:</b><ul>{items}</ul>"


@dataclass(slots=True)
class ComposedAnswer:
    text: str
    language: str
    refused: bool
    citations: List[str] = field(default_factory=list)
    usage: Optional[Dict[str, int]] = None


class AnswerComposer:
    """Turn retrieval results into a cited answer via a chat provider."""

    def __init__(
        self,
        chat_provider: ChatProvider,
        *,
        interaction_logger: Optional[InteractionLogger] = None,
        language_detector: Optional[LanguageDetector] = None,
    ) -> None:
        self.chat_provider = chat_provider
        self.interaction_logger = interaction_logger
        self.language_detector = language_detector or LanguageDetector()

    def compose(self, query: str, result: RetrievalResult) -> ComposedAnswer:
        """Answer ``query`` from ``result``.

        The no-information sentinel is answered with the refusal phrase
        without calling the model. Provider errors propagate to the caller.
        """

        language = detect_query_language(query, self.language_detector)
        refusal = refusal_for(language)
        if not result.found:
            LOGGER.info("No relevant information for query, returning refusal (%s)", language)
            answer = ComposedAnswer(text=refusal, language=language, refused=True)
            self._log_chat(answer, query, result)
            return answer

        prompt = build_prompt(query, result, language)
        emit_prompt_event(language=language, sources=result.citations, context_chars=len(prompt))
        completion = self.chat_provider.complete([ChatMessage(role="user", content=prompt)])

        content = completion.content.strip()
        if not content or content == refusal:
            answer = ComposedAnswer(text=refusal, language=language, refused=True, usage=completion.usage)
        else:
            answer = ComposedAnswer(
                text=content + sources_block(result.citations),
                language=language,
                refused=False,
                citations=list(result.citations),
                usage=completion.usage,
            )
        self._log_chat(answer, query, result)
        return answer

    def _log_chat(self, answer: ComposedAnswer, query: str, result: RetrievalResult) -> None:
        notify(
            self.interaction_logger,
            "log_chat",
            answer.text,
            {
                "query": query,
                "language": answer.language,
                "strategy": result.strategy.value,
                "citations": answer.citations,
                "documents": [retrieved.unit.content for retrieved in result.units],
            },
        )
