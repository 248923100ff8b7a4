"""Language identification for catalogue text and reader questions.

The collection is mostly Turkish with some English material. Ingestion only
records what langdetect reports; answer composition needs a decision between
the languages it has templates for, and short questions are too little text
for langdetect, so letters that only Turkish uses settle it first.
"""
from __future__ import annotations

import logging
from typing import Collection, Optional

from langdetect import DetectorFactory, LangDetectException, detect

LOGGER = logging.getLogger(__name__)
DetectorFactory.seed = 0

TURKISH_ONLY_LETTERS = frozenset("ğĞışŞİ")


class LanguageDetector:
    """Seeded langdetect over at most ``max_chars`` leading characters."""

    def __init__(self, max_chars: int = 5000) -> None:
        self.max_chars = max_chars

    def detect(self, text: str) -> Optional[str]:
        """ISO 639-1 code of ``text``, or ``None`` when it cannot be told."""

        sample = text.strip()[: self.max_chars]
        if not sample:
            return None
        try:
            return detect(sample)
        except LangDetectException:
            LOGGER.debug("No language features in a %s character sample", len(sample))
            return None

    def choose(self, text: str, supported: Collection[str], default: str) -> str:
        """Pick one of ``supported`` for ``text``, falling back to ``default``."""

        if "tr" in supported and any(char in TURKISH_ONLY_LETTERS for char in text):
            return "tr"
        language = self.detect(text)
        return language if language in supported else default
