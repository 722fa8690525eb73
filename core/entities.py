# core/entities.py
from dataclasses import dataclass, field
from typing import Optional, List, Tuple
import numpy as np
from util.enums import ComparisonMethod, Direction, Label


@dataclass(frozen=True, eq=False)
class EmbeddingVector:
    """
    One provider's vector for one text. Comparable only with vectors of the
    same provider and dimension.
    """

    values: np.ndarray  # (d,) float32
    provider: str
    dimension: int

    @classmethod
    def of(cls, values, provider: str) -> "EmbeddingVector":
        arr = np.asarray(values, dtype=np.float32).reshape(-1)
        return cls(values=arr, provider=provider, dimension=int(arr.shape[0]))


@dataclass(frozen=True)
class FallbackEmbedding:
    vector: EmbeddingVector
    provider_used: str


@dataclass(frozen=True)
class MatchOutcome:
    unmatched: List[str]
    method: ComparisonMethod
    provider: Optional[str] = None
    scanned: int = 0
    idle: bool = False  # answered without scanning (empty source or target)


@dataclass(frozen=True)
class ClassificationInput:
    topic: str
    claim: Optional[str]
    counterpart_claim: Optional[str] = None
    counterpart_context: Optional[str] = None
    direction: Direction = Direction.added


@dataclass(frozen=True)
class ParsedClassification:
    label: Label
    explanation: str
    confidence: Optional[float] = None


@dataclass(frozen=True)
class ConsensusOutcome:
    label: Label
    disagreement: bool
    confidence: float = 0.0
    errors: Tuple[str, ...] = field(default_factory=tuple)
    explanation: Optional[str] = None
