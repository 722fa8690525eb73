# core/diff_engine.py
"""
Sentence-level diff between a reference and a candidate document.

A source sentence is *unmatched* when no target sentence reaches the similarity
threshold (scores equal to the threshold count as matched). Each source sentence
is embedded once through the fallback chain; all target sentences are then
embedded with the provider that actually served the source, so every comparison
within a pass is between vectors of one provider and one dimension.

If embeddings cannot be obtained for a pass, the pass is re-run with a lexical
ratio and its own threshold. Two caps bound outbound volume: at most
`max_source_sentences` are scanned, and scanning stops once
`max_unmatched` sentences have been collected.
"""

import asyncio
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple
from config.settings import settings
from core.embeddings import EmbeddingRegistry
from core.entities import EmbeddingVector, MatchOutcome
from core.segmenter import segment
from core.similarity import ensure_comparable, lexical_similarity, normalized_similarity
from model.article import Article, ComparisonResult, ComparisonStats
from util.enums import ComparisonMethod
from util.errors import AllProvidersFailed, ProviderError
from util.functions import clip_chars, preview, round2
from util.timing import timed
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatcherConfig:
    embedding_threshold: float = 0.65
    lexical_threshold: float = 0.7
    max_source_sentences: int = 40
    max_unmatched: int = 10
    min_sentence_chars: int = 10
    embed_concurrency: int = 4
    lexical_max_chars: int = 8000

    @classmethod
    def from_settings(cls) -> "MatcherConfig":
        return cls(
            embedding_threshold=settings.MATCH_EMBEDDING_THRESHOLD,
            lexical_threshold=settings.MATCH_LEXICAL_THRESHOLD,
            max_source_sentences=settings.MATCH_MAX_SOURCE_SENTENCES,
            max_unmatched=settings.MATCH_MAX_UNMATCHED,
            min_sentence_chars=settings.MIN_SENTENCE_CHARS,
            embed_concurrency=settings.EMBED_CONCURRENCY,
            lexical_max_chars=settings.EMBEDDING_MAX_INPUT_CHARS,
        )


class _TargetVectors:
    """
    Target-sentence vectors for one pass, keyed by provider. A failed target is
    remembered as None and excluded from comparisons.
    """

    def __init__(self, registry: EmbeddingRegistry, targets: Sequence[str], concurrency: int):
        self._registry = registry
        self._targets = list(targets)
        self._sem = asyncio.Semaphore(max(1, concurrency))
        self._by_provider: Dict[str, List[Optional[EmbeddingVector]]] = {}

    async def _one(self, provider: str, idx: int) -> Optional[EmbeddingVector]:
        async with self._sem:
            try:
                return await self._registry.embed(self._targets[idx], provider)
            except ProviderError as e:
                logger.warning(
                    "compare.target.embed.failed provider=%s idx=%d err=%s", provider, idx, e
                )
                return None

    async def for_provider(self, provider: str) -> List[Optional[EmbeddingVector]]:
        if provider not in self._by_provider:
            with timed(logger, "compare.targets.embed", provider=provider, n=len(self._targets)):
                self._by_provider[provider] = list(
                    await asyncio.gather(*(self._one(provider, i) for i in range(len(self._targets))))
                )
        return self._by_provider[provider]


class DiffEngine:
    def __init__(self, registry: EmbeddingRegistry, config: Optional[MatcherConfig] = None) -> None:
        self._registry = registry
        self._config = config or MatcherConfig()

    @property
    def config(self) -> MatcherConfig:
        return self._config

    @property
    def registry(self) -> EmbeddingRegistry:
        return self._registry

    async def find_unmatched(
        self,
        source: Sequence[str],
        target: Sequence[str],
        threshold: Optional[float] = None,
    ) -> List[str]:
        """Source sentences with no target counterpart at or above `threshold`."""
        outcome = await self.match(source, target, threshold=threshold)
        return outcome.unmatched

    async def match(
        self,
        source: Sequence[str],
        target: Sequence[str],
        threshold: Optional[float] = None,
        label: str = "",
    ) -> MatchOutcome:
        cfg = self._config
        scan = list(source)[: max(0, cfg.max_source_sentences)]
        emb_threshold = cfg.embedding_threshold if threshold is None else threshold

        idle_method = (
            ComparisonMethod.embedding if self._registry else ComparisonMethod.lexical_fallback
        )
        if not scan:
            return MatchOutcome(unmatched=[], method=idle_method, idle=True)

        if not target:
            # nothing to match against; no outbound calls needed
            unmatched = scan[: max(0, cfg.max_unmatched)]
            return MatchOutcome(
                unmatched=unmatched, method=idle_method, scanned=len(unmatched), idle=True
            )

        if self._registry:
            try:
                with timed(logger, "compare.pass.embedding", label=label, n=len(scan)):
                    return await self._embedding_pass(scan, target, emb_threshold, label)
            except AllProvidersFailed as e:
                logger.warning(
                    "compare.pass.fallback label=%s reason=%s", label or "-", e
                )
        else:
            logger.info("compare.pass.lexical label=%s reason=no-embedding-providers", label or "-")

        with timed(logger, "compare.pass.lexical", label=label, n=len(scan)):
            return self._lexical_pass(scan, target, cfg.lexical_threshold, label)

    async def _embedding_pass(
        self, scan: List[str], target: Sequence[str], threshold: float, label: str
    ) -> MatchOutcome:
        cfg = self._config
        vectors = _TargetVectors(self._registry, target, cfg.embed_concurrency)
        unmatched: List[str] = []
        providers_used: List[str] = []
        scanned = 0

        for i, sentence in enumerate(scan, start=1):
            if len(unmatched) >= cfg.max_unmatched:
                logger.info(
                    "compare.pass.capped label=%s unmatched=%d scanned=%d",
                    label or "-",
                    len(unmatched),
                    scanned,
                )
                break
            scanned += 1

            src = await self._registry.embed_with_fallback(sentence)
            provider = src.provider_used
            if provider not in providers_used:
                providers_used.append(provider)

            targets = await vectors.for_provider(provider)
            usable = [v for v in targets if v is not None]
            if not usable:
                raise AllProvidersFailed(f"every target embedding failed for provider {provider}")
            # check the whole set before any score is taken
            for v in usable:
                ensure_comparable(src.vector, v)

            best = max(normalized_similarity(src.vector, v) for v in usable)
            if best >= threshold:
                logger.debug("compare.matched [%d/%d] sim=%.3f", i, len(scan), best)
            else:
                unmatched.append(sentence)
                logger.info(
                    "compare.unmatched label=%s [%d/%d] sim=%.3f text=%r",
                    label or "-",
                    i,
                    len(scan),
                    best,
                    preview(sentence),
                )

        logger.info(
            "compare.pass.done label=%s method=embedding unmatched=%d threshold=%.2f",
            label or "-",
            len(unmatched),
            threshold,
        )
        return MatchOutcome(
            unmatched=unmatched,
            method=ComparisonMethod.embedding,
            provider=",".join(providers_used) or None,
            scanned=scanned,
        )

    def _lexical_pass(
        self, scan: List[str], target: Sequence[str], threshold: float, label: str
    ) -> MatchOutcome:
        cfg = self._config
        unmatched: List[str] = []
        scanned = 0
        for sentence in scan:
            if len(unmatched) >= cfg.max_unmatched:
                break
            scanned += 1
            best = max(lexical_similarity(sentence, t) for t in target)
            if best < threshold:
                unmatched.append(sentence)
        logger.info(
            "compare.pass.done label=%s method=lexical unmatched=%d threshold=%.2f",
            label or "-",
            len(unmatched),
            threshold,
        )
        return MatchOutcome(
            unmatched=unmatched, method=ComparisonMethod.lexical_fallback, scanned=scanned
        )

    async def global_similarity(
        self, reference_text: str, candidate_text: str
    ) -> Tuple[float, ComparisonMethod, Optional[str], Optional[int]]:
        """
        Whole-document score in [0, 1] plus (method, provider, dimension).
        Both texts are embedded with the same provider.
        """
        if self._registry:
            try:
                with timed(logger, "compare.global", chars=len(reference_text) + len(candidate_text)):
                    ref = await self._registry.embed_with_fallback(reference_text)
                    cand = await self._registry.embed(candidate_text, ref.provider_used)
                    score = normalized_similarity(ref.vector, cand)
                return score, ComparisonMethod.embedding, ref.provider_used, ref.vector.dimension
            except (AllProvidersFailed, ProviderError) as e:
                logger.warning("compare.global.fallback reason=%s", e)
        cap = self._config.lexical_max_chars
        score = lexical_similarity(clip_chars(reference_text, cap), clip_chars(candidate_text, cap))
        return score, ComparisonMethod.lexical_fallback, None, None

    async def compare_articles(self, reference: Article, candidate: Article) -> ComparisonResult:
        """
        Global score, sentence segmentation, then the added (candidate vs reference)
        and missing (reference vs candidate) passes.
        """
        ref_text = reference.text or ""
        cand_text = candidate.text or ""

        score, method, provider, dim = await self.global_similarity(ref_text, cand_text)

        ref_sentences = segment(ref_text, self._config.min_sentence_chars)
        cand_sentences = segment(cand_text, self._config.min_sentence_chars)
        logger.info(
            "compare.split reference=%d candidate=%d", len(ref_sentences), len(cand_sentences)
        )

        added = await self.match(cand_sentences, ref_sentences, label="added")
        missing = await self.match(ref_sentences, cand_sentences, label="missing")

        # passes answered without scanning say nothing about the method
        stages = [method] + [o.method for o in (added, missing) if not o.idle]
        overall = ComparisonMethod.embedding
        if ComparisonMethod.lexical_fallback in stages:
            overall = ComparisonMethod.lexical_fallback

        result = ComparisonResult(
            globalSimilarity=round2(score),
            method=overall,
            addedInCandidate=tuple(added.unmatched),
            missingInCandidate=tuple(missing.unmatched),
            stats=ComparisonStats(
                sourceCount=len(ref_sentences),
                targetCount=len(cand_sentences),
                addedCount=len(added.unmatched),
                missingCount=len(missing.unmatched),
            ),
            provider=provider,
            embeddingDimension=dim,
        )
        logger.info(
            "compare.done similarity=%.2f method=%s added=%d missing=%d",
            result.globalSimilarity,
            result.method.value,
            result.stats.addedCount,
            result.stats.missingCount,
        )
        return result
