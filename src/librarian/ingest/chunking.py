"""Chunking utilities for breaking text into embedding-friendly units."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Tuple

from .models import PageContent

_FALLBACK_SENTENCE_RE = re.compile(r"(.+?(?:[.!?](?=\s)|$))", re.DOTALL)
LOGGER = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 1000
DEFAULT_CHUNK_OVERLAP = 300


@dataclass(slots=True)
class ChunkingConfig:
    chunk_chars: int = DEFAULT_CHUNK_SIZE
    overlap_chars: int = DEFAULT_CHUNK_OVERLAP

    def __post_init__(self) -> None:
        if self.chunk_chars <= 0:
            raise ValueError("chunk_chars must be positive")
        if not 0 <= self.overlap_chars < self.chunk_chars:
            raise ValueError("overlap_chars must satisfy 0 <= overlap < chunk_chars")


class SemanticTextChunker:
    """Split document text into chunks respecting semantic boundaries.

    Breaks are searched in the order paragraph, sentence, word; a hard cut
    at ``chunk_chars`` is used only when none of them is far enough into the
    window. The output depends on the input text and configuration alone.
    """

    def __init__(self, config: Optional[ChunkingConfig] = None) -> None:
        self.config = config or ChunkingConfig()

    def chunk(self, text: str) -> List[str]:
        return [chunk_text for chunk_text, _, _ in self._chunk_text(text)]

    def chunk_pages(self, pages: Iterable[PageContent]) -> Iterator[Tuple[Optional[int], str]]:
        chunk_index = 0
        for page in pages:
            for chunk_text, start_offset, end_offset in self._chunk_text(page.text):
                LOGGER.debug(
                    "Chunk %s page %s offsets %s-%s",
                    chunk_index,
                    page.page_number,
                    start_offset,
                    end_offset,
                )
                yield page.page_number, chunk_text
                chunk_index += 1

    def _chunk_text(self, text: str) -> Iterator[Tuple[str, int, int]]:
        if not text:
            return
        chunk_chars = self.config.chunk_chars
        overlap_chars = self.config.overlap_chars
        text_length = len(text)
        start = 0
        while start < text_length:
            tentative_end = min(start + chunk_chars, text_length)
            chunk_end = self._find_semantic_break(text, start, tentative_end)
            if chunk_end <= start:
                chunk_end = tentative_end
            raw_chunk = text[start:chunk_end]
            stripped_chunk = raw_chunk.strip()
            if not stripped_chunk:
                start = chunk_end
                continue
            leading_ws = len(raw_chunk) - len(raw_chunk.lstrip())
            trailing_ws = len(raw_chunk) - len(raw_chunk.rstrip())
            final_start = start + leading_ws
            final_end = chunk_end - trailing_ws
            yield text[final_start:final_end], final_start, final_end
            if chunk_end >= text_length:
                break
            next_start = final_end - overlap_chars
            if next_start <= final_start:
                next_start = chunk_end
            start = max(0, next_start)

    def _find_semantic_break(self, text: str, start: int, tentative_end: int) -> int:
        if tentative_end >= len(text):
            return len(text)
        segment = text[start:tentative_end]
        paragraph_break = segment.rfind("\n\n")
        if paragraph_break != -1 and paragraph_break >= self.config.chunk_chars // 3:
            return start + paragraph_break + 2
        sentence_break = self._find_sentence_break(segment)
        if sentence_break is not None and sentence_break >= self.config.chunk_chars // 4:
            return start + sentence_break
        word_break = segment.rfind(" ")
        if word_break != -1 and word_break >= self.config.chunk_chars // 4:
            return start + word_break
        return tentative_end

    @staticmethod
    def _find_sentence_break(segment: str) -> int | None:
        matches = [match for match in _FALLBACK_SENTENCE_RE.finditer(segment) if match.group(0)[-1:] in ".!?"]
        if not matches:
            return None
        return matches[-1].end()


def chunk(text: str, target_size: int = DEFAULT_CHUNK_SIZE, overlap: int = DEFAULT_CHUNK_OVERLAP) -> List[str]:
    """Split *text* into overlapping chunks of at most ``target_size`` characters."""

    return SemanticTextChunker(ChunkingConfig(chunk_chars=target_size, overlap_chars=overlap)).chunk(text)
