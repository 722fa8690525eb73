# core/embeddings.py
import asyncio
from functools import lru_cache
from typing import Dict, List, Optional, Sequence
import httpx
import numpy as np
from sentence_transformers import SentenceTransformer
from config.settings import settings
from core.entities import EmbeddingVector, FallbackEmbedding
from core.http_client import post_json
from core.retry import RetryPolicy, call_with_retry
from util.constants import ProviderNames
from util.errors import (
    MalformedResponse,
    NoProviderAvailable,
    ProviderError,
    ProviderRequestError,
    ProviderUnavailable,
)
from util.functions import clip_chars
from util.timing import timed
import logging

logger = logging.getLogger(__name__)


class EmbeddingProvider:
    """
    One embedding backend. Subclasses implement `_request`; `embed` applies the
    input cap and the credential check.
    """

    name: str = "base"

    def __init__(
        self,
        *,
        max_input_chars: int = 8000,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.max_input_chars = max_input_chars
        self._timeout = timeout
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return False

    async def embed(self, text: str) -> EmbeddingVector:
        if not self.is_configured:
            raise ProviderUnavailable(self.name, "no credentials configured")
        values = await self._request(clip_chars(text, self.max_input_chars))
        vec = EmbeddingVector.of(values, provider=self.name)
        if vec.dimension == 0:
            raise MalformedResponse(self.name, "empty embedding")
        return vec

    async def _request(self, text: str) -> Sequence[float]:
        raise NotImplementedError


class OpenAIEmbeddingProvider(EmbeddingProvider):
    name = ProviderNames.OPENAI

    def __init__(self, *, api_key: str, model: str, api_url: str, **kw) -> None:
        super().__init__(**kw)
        self._api_key = api_key
        self._model = model
        self._url = api_url

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def _request(self, text: str) -> Sequence[float]:
        data = await post_json(
            self.name,
            self._url,
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Content-Type": "application/json",
            },
            payload={"input": text, "model": self._model},
            timeout=self._timeout,
            transport=self._transport,
        )
        try:
            return data["data"][0]["embedding"]
        except (KeyError, IndexError, TypeError) as e:
            raise MalformedResponse(self.name, "missing data[0].embedding") from e


class GeminiEmbeddingProvider(EmbeddingProvider):
    name = ProviderNames.GEMINI

    def __init__(self, *, api_key: str, model: str, api_base: str, **kw) -> None:
        super().__init__(**kw)
        self._api_key = api_key
        self._model = model
        self._base = api_base.rstrip("/")

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def _request(self, text: str) -> Sequence[float]:
        data = await post_json(
            self.name,
            f"{self._base}/{self._model}:embedContent",
            headers={"Content-Type": "application/json"},
            params={"key": self._api_key},
            payload={"content": {"parts": [{"text": text}]}},
            timeout=self._timeout,
            transport=self._transport,
        )
        try:
            return data["embedding"]["values"]
        except (KeyError, TypeError) as e:
            raise MalformedResponse(self.name, "missing embedding.values") from e


@lru_cache(maxsize=2)
def _load_model(name: str) -> SentenceTransformer:
    """
    Lazy-load the local sentence embedding model (CPU).
    """
    with timed(logger, "embed.model.load", model=name):
        model = SentenceTransformer(name, device="cpu")
    return model


class LocalEmbeddingProvider(EmbeddingProvider):
    """
    sentence-transformers model run in a worker thread. Opt-in; no network.
    """

    name = ProviderNames.LOCAL

    def __init__(self, *, model_name: str, enabled: bool, **kw) -> None:
        super().__init__(**kw)
        self._model_name = model_name
        self._enabled = enabled

    @property
    def is_configured(self) -> bool:
        return self._enabled

    def _encode(self, text: str) -> np.ndarray:
        model = _load_model(self._model_name)
        return model.encode(
            [text], convert_to_numpy=True, normalize_embeddings=True
        ).astype(np.float32, copy=False)[0]

    async def _request(self, text: str) -> Sequence[float]:
        try:
            return await asyncio.to_thread(self._encode, text)
        except Exception as e:
            raise ProviderRequestError(self.name, f"local encode failed ({type(e).__name__})") from e


class EmbeddingRegistry:
    """
    Configured embedding providers in priority order. Built once; read-only.
    """

    def __init__(
        self,
        providers: Sequence[EmbeddingProvider],
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        self._providers: List[EmbeddingProvider] = [p for p in providers if p.is_configured]
        self._by_name: Dict[str, EmbeddingProvider] = {p.name: p for p in self._providers}
        self._policy = retry_policy or RetryPolicy()
        skipped = [p.name for p in providers if not p.is_configured]
        logger.info(
            "embed.registry providers=%s skipped=%s",
            ",".join(self.names) or "-",
            ",".join(skipped) or "-",
        )

    @property
    def names(self) -> List[str]:
        return [p.name for p in self._providers]

    def __bool__(self) -> bool:
        return bool(self._providers)

    def get(self, name: str) -> EmbeddingProvider:
        try:
            return self._by_name[name]
        except KeyError:
            raise ProviderUnavailable(name, "embedding provider not registered") from None

    async def embed(self, text: str, provider: str) -> EmbeddingVector:
        """Embed with one named provider (rate limits retried)."""
        return await call_with_retry(self._policy, self.get(provider).embed, text)

    async def embed_with_fallback(self, text: str) -> FallbackEmbedding:
        """
        Try providers in priority order; return the first success.
        Raises NoProviderAvailable when none is configured or all fail.
        """
        failures: List[str] = []
        for p in self._providers:
            try:
                vec = await call_with_retry(self._policy, p.embed, text)
                return FallbackEmbedding(vector=vec, provider_used=p.name)
            except ProviderError as e:
                logger.warning("embed.provider.failed provider=%s err=%s", p.name, e)
                failures.append(str(e))
        if not failures:
            raise NoProviderAvailable("No embedding providers configured")
        raise NoProviderAvailable("All embedding providers failed: " + "; ".join(failures))


def build_embedding_providers(
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> List[EmbeddingProvider]:
    """
    Every known embedding provider in EMBEDDING_PROVIDER_ORDER; the registry
    filters to the configured ones.
    """
    common = dict(
        max_input_chars=settings.EMBEDDING_MAX_INPUT_CHARS,
        timeout=settings.HTTP_TIMEOUT_SECONDS,
        transport=transport,
    )
    known: Dict[str, EmbeddingProvider] = {
        ProviderNames.OPENAI: OpenAIEmbeddingProvider(
            api_key=settings.OPENAI_API_KEY,
            model=settings.OPENAI_EMBEDDING_MODEL,
            api_url=settings.OPENAI_EMBEDDING_URL,
            **common,
        ),
        ProviderNames.GEMINI: GeminiEmbeddingProvider(
            api_key=settings.GEMINI_API_KEY,
            model=settings.GEMINI_EMBEDDING_MODEL,
            api_base=settings.GEMINI_API_BASE,
            **common,
        ),
        ProviderNames.LOCAL: LocalEmbeddingProvider(
            model_name=settings.EMBEDDING_MODEL_NAME,
            enabled=settings.LOCAL_EMBEDDINGS_ENABLED,
            **common,
        ),
    }
    order = settings.provider_order(settings.EMBEDDING_PROVIDER_ORDER)
    unknown = [n for n in order if n not in known]
    if unknown:
        logger.warning("embed.order.unknown names=%s", ",".join(unknown))
    return [known[n] for n in order if n in known]
