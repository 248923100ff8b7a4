"""Cleanup applied to every extracted text before it is chunked or indexed."""
from __future__ import annotations

import re
import unicodedata

# Applied in order after NFC composition; the result is stable under a second pass.
_RULES = (
    (re.compile(r"\r\n?"), "\n"),
    (re.compile("\x00"), ""),
    (re.compile(r"[ \t]+"), " "),
    (re.compile(r" \n"), "\n"),
    (re.compile(r"\n{3,}"), "\n\n"),
)


def normalize_text(text: str) -> str:
    """Compose Unicode, unify line breaks, drop NUL bytes and tidy spacing.

    Runs of spaces and tabs become one space, and paragraphs are separated
    by at most one blank line.
    """

    normalized = unicodedata.normalize("NFC", text)
    for pattern, replacement in _RULES:
        normalized = pattern.sub(replacement, normalized)
    return normalized.strip()
