def clip_chars(text: str, max_chars: int) -> str:
    """
    - Trim 'text' to at most `max_chars` characters (no ellipsis, used before provider calls).
    """
    if max_chars <= 0 or len(text) <= max_chars:
        return text
    return text[:max_chars]


def preview(text: str, max_chars: int = 50) -> str:
    # log-safe prefix of a sentence
    return text if len(text) <= max_chars else text[:max_chars] + "…"


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def round2(value: float) -> float:
    return round(value * 100) / 100
