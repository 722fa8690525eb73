# model/article.py
from pydantic import BaseModel, ConfigDict, Field
from util.enums import ComparisonMethod


class Article(BaseModel):
    """Raw input document, owned by the fetch collaborator."""

    model_config = ConfigDict(frozen=True)

    title: str = ""
    text: str = ""


class ComparisonStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    sourceCount: int  # reference sentences
    targetCount: int  # candidate sentences
    addedCount: int
    missingCount: int


class ComparisonResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    globalSimilarity: float = Field(ge=0.0, le=1.0)
    method: ComparisonMethod
    addedInCandidate: tuple[str, ...] = ()
    missingInCandidate: tuple[str, ...] = ()
    stats: ComparisonStats
    provider: str | None = None
    embeddingDimension: int | None = None
