# model/discrepancy.py
from pydantic import BaseModel, ConfigDict, Field
from model.article import ComparisonResult
from util.enums import Direction, Label


class ClassificationVote(BaseModel):
    """One provider's verdict for one discrepancy. `label` is None when `error` is set."""

    model_config = ConfigDict(frozen=True)

    provider: str
    label: Label | None = None
    explanation: str = ""
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.label is not None


class Discrepancy(BaseModel):
    model_config = ConfigDict(frozen=True)

    claim: str
    counterpartContext: str | None = None
    votes: tuple[ClassificationVote, ...] = ()
    consensusLabel: Label
    disagreement: bool
    direction: Direction = Direction.added
    confidence: float = 0.0
    errors: tuple[str, ...] = ()
    explanation: str | None = None  # first explanation given for consensusLabel


class AnalysisSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int
    classified: int
    failed: int
    avgConfidence: float


class AnalysisResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    topic: str
    alignmentScore: float
    comparison: ComparisonResult
    discrepancies: tuple[Discrepancy, ...] = ()
    stats: dict[str, int]
    summary: AnalysisSummary
