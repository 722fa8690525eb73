# core/ensemble.py
import asyncio
from typing import List, Optional, Sequence
from core.entities import ClassificationInput
from core.llm_classifier import ClassificationProvider
from core.retry import RetryPolicy, call_with_retry
from model.discrepancy import ClassificationVote
from util.errors import NoProvidersConfigured, ProviderError, describe
from util.functions import preview
from util.timing import timed
import logging

logger = logging.getLogger(__name__)


class EnsembleClassifier:
    """
    Fan one discrepancy out to every configured classification provider and
    collect one vote per provider, in provider-priority order.
    """

    def __init__(
        self,
        providers: Sequence[ClassificationProvider],
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        self._providers: List[ClassificationProvider] = [p for p in providers if p.is_configured]
        self._policy = retry_policy or RetryPolicy()
        skipped = [p.name for p in providers if not p.is_configured]
        if skipped:
            logger.info("classify.providers.skipped names=%s", ",".join(skipped))

    @property
    def names(self) -> List[str]:
        return [p.name for p in self._providers]

    async def _vote(self, provider: ClassificationProvider, inp: ClassificationInput) -> ClassificationVote:
        try:
            parsed = await call_with_retry(self._policy, provider.classify, inp)
        except ProviderError as e:
            logger.warning("classify.vote.failed provider=%s err=%s", provider.name, describe(e))
            return ClassificationVote(provider=provider.name, error=describe(e))
        except Exception as e:
            # an adapter bug fails its own vote only
            logger.exception("classify.vote.crashed provider=%s", provider.name)
            return ClassificationVote(provider=provider.name, error=describe(e))
        return ClassificationVote(
            provider=provider.name,
            label=parsed.label,
            explanation=parsed.explanation,
            confidence=parsed.confidence,
        )

    async def classify(self, inp: ClassificationInput) -> List[ClassificationVote]:
        """
        Every provider runs concurrently; all settle before returning.
        Raises NoProvidersConfigured when no provider has credentials.
        """
        if not self._providers:
            raise NoProvidersConfigured(
                "No classification providers configured - cannot perform ensemble classification"
            )
        with timed(logger, "classify.ensemble", n=len(self._providers), claim=repr(preview(inp.claim or ""))):
            votes = await asyncio.gather(*(self._vote(p, inp) for p in self._providers))
        ok = sum(1 for v in votes if v.ok)
        logger.info("classify.ensemble.votes ok=%d failed=%d", ok, len(votes) - ok)
        return list(votes)
