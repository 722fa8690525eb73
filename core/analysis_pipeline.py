# core/analysis_pipeline.py
from typing import AsyncIterator, List, Optional, Sequence
from config.settings import settings
from core.consensus import aggregate
from core.diff_engine import DiffEngine
from core.ensemble import EnsembleClassifier
from core.entities import ClassificationInput
from model.article import Article, ComparisonResult
from model.discrepancy import AnalysisResult, AnalysisSummary, Discrepancy
from util.enums import Direction
from util.functions import round2
from util.timing import timed
import logging

logger = logging.getLogger(__name__)


async def classify_one(
    ensemble: EnsembleClassifier,
    *,
    topic: str,
    claim: str,
    context: Optional[str],
    direction: Direction,
) -> Discrepancy:
    """
    Pending -> concurrent provider calls -> Aggregated. No retry at this level.
    """
    votes = await ensemble.classify(
        ClassificationInput(
            topic=topic,
            claim=claim,
            counterpart_claim=None,
            counterpart_context=context,
            direction=direction,
        )
    )
    outcome = aggregate(votes)
    return Discrepancy(
        claim=claim,
        counterpartContext=context,
        votes=tuple(votes),
        consensusLabel=outcome.label,
        disagreement=outcome.disagreement,
        direction=direction,
        confidence=outcome.confidence,
        errors=outcome.errors,
        explanation=outcome.explanation,
    )


def _queue(
    comparison: ComparisonResult,
    reference: Article,
    candidate: Article,
    max_added: int,
    max_missing: int,
    context_chars: int,
) -> List[tuple]:
    ref_ctx = (reference.text or "")[:context_chars] or None
    cand_ctx = (candidate.text or "")[:context_chars] or None
    out: List[tuple] = []
    for s in comparison.addedInCandidate[: max(0, max_added)]:
        out.append((s, ref_ctx, Direction.added))
    for s in comparison.missingInCandidate[: max(0, max_missing)]:
        out.append((s, cand_ctx, Direction.missing))
    return out


async def iter_discrepancies(
    *,
    topic: str,
    reference: Article,
    candidate: Article,
    comparison: ComparisonResult,
    ensemble: EnsembleClassifier,
    max_added: Optional[int] = None,
    max_missing: Optional[int] = None,
    context_chars: Optional[int] = None,
) -> AsyncIterator[Discrepancy]:
    """
    Classify added then missing sentences, one at a time in document order.
    """
    queue = _queue(
        comparison,
        reference,
        candidate,
        settings.CLASSIFY_MAX_ADDED if max_added is None else max_added,
        settings.CLASSIFY_MAX_MISSING if max_missing is None else max_missing,
        settings.CONTEXT_CHARS if context_chars is None else context_chars,
    )
    logger.info(
        "analysis.classify.start topic=%r added=%d missing=%d queued=%d",
        topic,
        len(comparison.addedInCandidate),
        len(comparison.missingInCandidate),
        len(queue),
    )
    for claim, ctx, direction in queue:
        yield await classify_one(
            ensemble, topic=topic, claim=claim, context=ctx, direction=direction
        )


def summarize(discrepancies: Sequence[Discrepancy]) -> AnalysisSummary:
    classified = [d for d in discrepancies if any(v.ok for v in d.votes)]
    avg = (
        round2(sum(d.confidence for d in classified) / len(classified)) if classified else 0.0
    )
    return AnalysisSummary(
        total=len(discrepancies),
        classified=len(classified),
        failed=len(discrepancies) - len(classified),
        avgConfidence=avg,
    )


def build_result(
    topic: str, comparison: ComparisonResult, discrepancies: Sequence[Discrepancy]
) -> AnalysisResult:
    return AnalysisResult(
        topic=topic,
        alignmentScore=comparison.globalSimilarity,
        comparison=comparison,
        discrepancies=tuple(discrepancies),
        stats={
            **comparison.stats.model_dump(),
            "discrepanciesAnalyzed": len(discrepancies),
        },
        summary=summarize(discrepancies),
    )


async def classify_discrepancies(
    *,
    topic: str,
    reference: Article,
    candidate: Article,
    comparison: ComparisonResult,
    ensemble: EnsembleClassifier,
    max_added: Optional[int] = None,
    max_missing: Optional[int] = None,
    context_chars: Optional[int] = None,
) -> AnalysisResult:
    with timed(logger, "analysis.classify", topic=repr(topic)):
        found = [
            d
            async for d in iter_discrepancies(
                topic=topic,
                reference=reference,
                candidate=candidate,
                comparison=comparison,
                ensemble=ensemble,
                max_added=max_added,
                max_missing=max_missing,
                context_chars=context_chars,
            )
        ]
    result = build_result(topic, comparison, found)
    logger.info(
        "analysis.classify.done total=%d classified=%d failed=%d",
        result.summary.total,
        result.summary.classified,
        result.summary.failed,
    )
    return result


async def analyze_articles(
    *,
    topic: str,
    reference: Article,
    candidate: Article,
    engine: DiffEngine,
    ensemble: EnsembleClassifier,
) -> AnalysisResult:
    """
    End-to-end:
    1) compare the two articles (global score, added/missing sentences)
    2) ask the ensemble about each discrepancy
    Returns the AnalysisResult.
    """
    with timed(logger, "analysis.pipeline"):
        comparison = await engine.compare_articles(reference, candidate)
        return await classify_discrepancies(
            topic=topic,
            reference=reference,
            candidate=candidate,
            comparison=comparison,
            ensemble=ensemble,
        )
