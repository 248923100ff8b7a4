"""Word tokenisation shared by lexical scoring and hash embeddings."""
from __future__ import annotations

import re
import unicodedata
from typing import List

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


def tokenize(text: str) -> List[str]:
    """Return lower-case word tokens of ``text`` in NFC form."""

    return _TOKEN_RE.findall(unicodedata.normalize("NFC", text).lower())
