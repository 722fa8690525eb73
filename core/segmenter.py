# core/segmenter.py
import re
from typing import List, Optional
from config.settings import settings

# Terminal punctuation stays attached to the sentence it ends.
_BOUNDARY = re.compile(r"(?<=[.!?])\s+")


def segment(text: object, min_chars: Optional[int] = None) -> List[str]:
    """
    Split raw text into sentences in document order.
    Pieces of `min_chars` characters or fewer (headers, fragments) are dropped.
    Non-string or empty input yields [].
    """
    if not isinstance(text, str) or not text:
        return []
    floor = settings.MIN_SENTENCE_CHARS if min_chars is None else min_chars
    out: List[str] = []
    for piece in _BOUNDARY.split(text):
        s = piece.strip()
        if len(s) > floor:
            out.append(s)
    return out
