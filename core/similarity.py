# core/similarity.py
"""
Similarity measures used by the diff engine.

Embedding vectors are compared with cosine similarity, mapped onto [0, 1] so a
single threshold applies. When no embedding provider can serve a pass, the
engine switches to a lexical ratio from rapidfuzz, which under-estimates
paraphrases and therefore runs with its own (higher) threshold.
"""

import numpy as np
from rapidfuzz import fuzz
from core.entities import EmbeddingVector
from util.errors import EmbeddingMismatchError
from util.functions import clamp


def ensure_comparable(a: EmbeddingVector, b: EmbeddingVector) -> None:
    if a.provider != b.provider or a.dimension != b.dimension:
        raise EmbeddingMismatchError(
            f"Cannot compare {a.provider}/{a.dimension}d with {b.provider}/{b.dimension}d"
        )


def cosine_similarity(a: EmbeddingVector, b: EmbeddingVector) -> float:
    """
    Cosine of the angle between two vectors, in [-1, 1].
    A zero-magnitude vector yields 0.0.
    Raises EmbeddingMismatchError if provider or dimension differ.
    """
    ensure_comparable(a, b)
    if a.dimension == 0:
        return 0.0

    norm_a = float(np.linalg.norm(a.values))
    norm_b = float(np.linalg.norm(b.values))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    sim = float(np.dot(a.values, b.values)) / (norm_a * norm_b)
    # float error can push past the bounds
    return float(np.clip(sim, -1.0, 1.0))


def normalized_similarity(a: EmbeddingVector, b: EmbeddingVector) -> float:
    return clamp((cosine_similarity(a, b) + 1.0) / 2.0, 0.0, 1.0)


def lexical_similarity(a: str, b: str) -> float:
    """Case-insensitive normalized edit-distance ratio in [0, 1]."""
    left = (a or "").lower().strip()
    right = (b or "").lower().strip()
    if left == right:
        return 1.0
    return fuzz.ratio(left, right) / 100.0
