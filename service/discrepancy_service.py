# service/discrepancy_service.py
import logging
from typing import AsyncIterator, Dict, Optional
import httpx
from core.analysis_pipeline import analyze_articles, classify_discrepancies
from core.diff_engine import DiffEngine, MatcherConfig
from core.embeddings import EmbeddingRegistry, build_embedding_providers
from core.ensemble import EnsembleClassifier
from core.llm_classifier import build_classification_providers
from core.retry import RetryPolicy
from core.streaming import make_analysis_stream
from model.article import Article, ComparisonResult
from model.discrepancy import AnalysisResult
from util.logger import init_logger

logger = logging.getLogger(__name__)


class DiscrepancyService:
    """
    Entry point for the routing layer. Holds the provider registries, which are
    read-only after construction and shared across requests.
    """

    def __init__(self, engine: DiffEngine, ensemble: EnsembleClassifier) -> None:
        self._engine = engine
        self._ensemble = ensemble

    @classmethod
    def from_settings(
        cls, transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> "DiscrepancyService":
        init_logger()
        policy = RetryPolicy.from_settings()
        registry = EmbeddingRegistry(build_embedding_providers(transport), policy)
        ensemble = EnsembleClassifier(build_classification_providers(transport), policy)
        service = cls(DiffEngine(registry, MatcherConfig.from_settings()), ensemble)
        service.provider_status()
        return service

    def provider_status(self) -> Dict[str, list]:
        """
        Which providers take part. Logs a warning when a stage has none.
        """
        status = {
            "embedding": self._engine.registry.names,
            "classification": self._ensemble.names,
        }
        if not status["embedding"]:
            logger.warning("providers.embedding.none fallback=lexical")
        if not status["classification"]:
            logger.warning("providers.classification.none classify=unavailable")
        logger.info(
            "providers.status embedding=%s classification=%s",
            ",".join(status["embedding"]) or "-",
            ",".join(status["classification"]) or "-",
        )
        return status

    async def compare(self, reference: Article, candidate: Article) -> ComparisonResult:
        """
        Diff only (no classification).
        Logs: sizes only (no payloads).
        """
        logger.info(
            "compare.start reference_chars=%d candidate_chars=%d",
            len(reference.text or ""),
            len(candidate.text or ""),
        )
        return await self._engine.compare_articles(reference, candidate)

    async def classify(
        self,
        topic: str,
        reference: Article,
        candidate: Article,
        comparison: ComparisonResult,
    ) -> AnalysisResult:
        """Classify discrepancies of an existing comparison."""
        return await classify_discrepancies(
            topic=topic,
            reference=reference,
            candidate=candidate,
            comparison=comparison,
            ensemble=self._ensemble,
        )

    async def analyze(self, topic: str, reference: Article, candidate: Article) -> AnalysisResult:
        try:
            result = await analyze_articles(
                topic=topic,
                reference=reference,
                candidate=candidate,
                engine=self._engine,
                ensemble=self._ensemble,
            )
        except Exception:
            logger.error("analyze.error topic=%r", topic)
            raise
        logger.info(
            "analyze.ok topic=%r alignment=%.2f discrepancies=%d",
            topic,
            result.alignmentScore,
            len(result.discrepancies),
        )
        return result

    async def stream_analysis(
        self, topic: str, reference: Article, candidate: Article
    ) -> AsyncIterator[bytes]:
        async for chunk in make_analysis_stream(
            topic=topic,
            reference=reference,
            candidate=candidate,
            engine=self._engine,
            ensemble=self._ensemble,
        ):
            yield chunk
