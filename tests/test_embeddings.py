"""Tests for embedding providers and the fallback registry."""

import json

import httpx
import pytest

from core.embeddings import (
    EmbeddingRegistry,
    GeminiEmbeddingProvider,
    LocalEmbeddingProvider,
    OpenAIEmbeddingProvider,
    build_embedding_providers,
)
from config.settings import settings
from util.errors import (
    AuthenticationFailed,
    MalformedResponse,
    NoProviderAvailable,
    ProviderTimeout,
    ProviderUnavailable,
    RateLimited,
)
from conftest import NO_WAIT, VocabEmbeddingProvider


def openai_provider(handler, **kw):
    return OpenAIEmbeddingProvider(
        api_key=kw.pop("api_key", "sk-test"),
        model="text-embedding-3-small",
        api_url="https://api.openai.test/v1/embeddings",
        transport=httpx.MockTransport(handler),
        **kw,
    )


class TestOpenAIEmbeddingProvider:
    @pytest.mark.asyncio
    async def test_parses_vector_and_sends_model(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"data": [{"embedding": [0.1, 0.2, 0.3]}]})

        vec = await openai_provider(handler).embed("hello world")

        assert vec.provider == "openai"
        assert vec.dimension == 3
        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"] == {"input": "hello world", "model": "text-embedding-3-small"}

    @pytest.mark.asyncio
    async def test_truncates_to_input_cap(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["input"] = json.loads(request.content)["input"]
            return httpx.Response(200, json={"data": [{"embedding": [1.0]}]})

        await openai_provider(handler, max_input_chars=10).embed("x" * 50)
        assert seen["input"] == "x" * 10

    @pytest.mark.asyncio
    async def test_rate_limit_carries_retry_after(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, headers={"retry-after": "2"}, json={})

        with pytest.raises(RateLimited) as exc:
            await openai_provider(handler).embed("text")
        assert exc.value.retry_after == 2.0

    @pytest.mark.asyncio
    async def test_auth_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"error": "bad key"})

        with pytest.raises(AuthenticationFailed):
            await openai_provider(handler).embed("text")

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(ProviderTimeout):
            await openai_provider(handler).embed("text")

    @pytest.mark.asyncio
    async def test_unexpected_shape(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"data": []})

        with pytest.raises(MalformedResponse):
            await openai_provider(handler).embed("text")

    @pytest.mark.asyncio
    async def test_unconfigured_provider_refuses(self):
        def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover
            raise AssertionError("no request expected")

        provider = openai_provider(handler, api_key="")
        assert not provider.is_configured
        with pytest.raises(ProviderUnavailable):
            await provider.embed("text")


class TestGeminiEmbeddingProvider:
    @pytest.mark.asyncio
    async def test_calls_embed_content(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"embedding": {"values": [0.5, 0.5]}})

        provider = GeminiEmbeddingProvider(
            api_key="g-key",
            model="text-embedding-004",
            api_base="https://gemini.test/v1beta/models/",
            transport=httpx.MockTransport(handler),
        )
        vec = await provider.embed("hello")

        assert vec.provider == "gemini"
        assert vec.dimension == 2
        assert seen["url"].startswith("https://gemini.test/v1beta/models/text-embedding-004:embedContent")
        assert "key=g-key" in seen["url"]
        assert seen["body"] == {"content": {"parts": [{"text": "hello"}]}}


class TestLocalEmbeddingProvider:
    def test_disabled_by_default(self):
        provider = LocalEmbeddingProvider(model_name="unused", enabled=False)
        assert not provider.is_configured


class TestEmbeddingRegistry:
    @pytest.mark.asyncio
    async def test_first_provider_wins(self):
        first, second = VocabEmbeddingProvider("openai"), VocabEmbeddingProvider("gemini")
        registry = EmbeddingRegistry([first, second], NO_WAIT)

        result = await registry.embed_with_fallback("some text here")

        assert result.provider_used == "openai"
        assert result.vector.provider == "openai"
        assert second.calls == []

    @pytest.mark.asyncio
    async def test_falls_back_in_priority_order(self):
        first = VocabEmbeddingProvider("openai", fail=True)
        second = VocabEmbeddingProvider("gemini")
        registry = EmbeddingRegistry([first, second], NO_WAIT)

        result = await registry.embed_with_fallback("some text here")

        assert result.provider_used == "gemini"
        assert first.calls == ["some text here"]

    @pytest.mark.asyncio
    async def test_all_failing_raises(self):
        registry = EmbeddingRegistry(
            [VocabEmbeddingProvider("openai", fail=True), VocabEmbeddingProvider("gemini", fail=True)],
            NO_WAIT,
        )
        with pytest.raises(NoProviderAvailable):
            await registry.embed_with_fallback("text")

    @pytest.mark.asyncio
    async def test_empty_registry_raises(self):
        registry = EmbeddingRegistry([], NO_WAIT)
        assert not registry
        with pytest.raises(NoProviderAvailable):
            await registry.embed_with_fallback("text")

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(self):
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            if len(attempts) < 3:
                return httpx.Response(429, json={})
            return httpx.Response(200, json={"data": [{"embedding": [1.0, 0.0]}]})

        registry = EmbeddingRegistry([openai_provider(handler)], NO_WAIT)
        vec = await registry.embed("text", "openai")

        assert vec.dimension == 2
        assert len(attempts) == 3

    def test_unconfigured_providers_are_not_registered(self):
        configured = VocabEmbeddingProvider("gemini")
        registry = EmbeddingRegistry([openai_provider(lambda r: None, api_key=""), configured])
        assert registry.names == ["gemini"]
        with pytest.raises(ProviderUnavailable):
            registry.get("openai")


class TestBuildEmbeddingProviders:
    def test_respects_configured_order_and_keys(self, monkeypatch):
        monkeypatch.setattr(settings, "OPENAI_API_KEY", "")
        monkeypatch.setattr(settings, "GEMINI_API_KEY", "g-key")
        monkeypatch.setattr(settings, "LOCAL_EMBEDDINGS_ENABLED", False)
        monkeypatch.setattr(settings, "EMBEDDING_PROVIDER_ORDER", "gemini, openai, nope")

        providers = build_embedding_providers()

        assert [p.name for p in providers] == ["gemini", "openai"]
        assert EmbeddingRegistry(providers).names == ["gemini"]
