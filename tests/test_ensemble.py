"""Tests for the classification ensemble."""

import asyncio

import pytest

from core.ensemble import EnsembleClassifier
from core.entities import ClassificationInput
from util.enums import Label
from util.errors import (
    AuthenticationFailed,
    MalformedResponse,
    NoProvidersConfigured,
    ProviderTimeout,
    RateLimited,
)
from conftest import NO_WAIT, ScriptedClassifier, reply

INP = ClassificationInput(topic="Lighthouse", claim="The lighthouse was automated in 1990.")


class SlowClassifier(ScriptedClassifier):
    """Records how many calls overlap."""

    active = 0
    peak = 0

    async def _complete(self, prompt: str) -> str:
        SlowClassifier.active += 1
        SlowClassifier.peak = max(SlowClassifier.peak, SlowClassifier.active)
        try:
            await asyncio.sleep(0.01)
            return await super()._complete(prompt)
        finally:
            SlowClassifier.active -= 1


class TestEnsembleClassifier:
    @pytest.mark.asyncio
    async def test_one_vote_per_provider_in_priority_order(self):
        ensemble = EnsembleClassifier(
            [
                ScriptedClassifier("openai", [reply("bias", confidence=0.9)]),
                ScriptedClassifier("gemini", [reply("aligned")]),
                ScriptedClassifier("grok", [reply("bias")]),
            ],
            NO_WAIT,
        )

        votes = await ensemble.classify(INP)

        assert [v.provider for v in votes] == ["openai", "gemini", "grok"]
        assert [v.label for v in votes] == [Label.bias, Label.aligned, Label.bias]
        assert votes[0].confidence == pytest.approx(0.9)
        assert all(v.ok for v in votes)

    @pytest.mark.asyncio
    async def test_providers_run_concurrently(self):
        SlowClassifier.active = SlowClassifier.peak = 0
        ensemble = EnsembleClassifier(
            [SlowClassifier(n, [reply("aligned")]) for n in ("openai", "gemini", "grok")],
            NO_WAIT,
        )

        await ensemble.classify(INP)

        assert SlowClassifier.peak == 3

    @pytest.mark.asyncio
    async def test_failure_becomes_error_vote(self):
        ensemble = EnsembleClassifier(
            [
                ScriptedClassifier("openai", [MalformedResponse("openai", "reply is not a JSON object")]),
                ScriptedClassifier("gemini", [reply("hallucination")]),
            ],
            NO_WAIT,
        )

        votes = await ensemble.classify(INP)

        assert votes[0].label is None
        assert votes[0].error == "MalformedResponse: reply is not a JSON object"
        assert votes[1].label == Label.hallucination

    @pytest.mark.asyncio
    async def test_rate_limit_retried_until_success(self):
        flaky = ScriptedClassifier(
            "openai",
            [RateLimited("openai", "rate limit exceeded"), RateLimited("openai", "rate limit exceeded"), reply("bias")],
        )
        ensemble = EnsembleClassifier([flaky], NO_WAIT)

        votes = await ensemble.classify(INP)

        assert flaky.calls == 3
        assert votes[0].label == Label.bias

    @pytest.mark.asyncio
    async def test_rate_limit_exhausts_attempts(self):
        limited = ScriptedClassifier("openai", [RateLimited("openai", "rate limit exceeded")])
        ensemble = EnsembleClassifier([limited], NO_WAIT)

        votes = await ensemble.classify(INP)

        assert limited.calls == 3
        assert votes[0].error == "RateLimited: rate limit exceeded"

    @pytest.mark.asyncio
    async def test_auth_failure_is_not_retried(self):
        denied = ScriptedClassifier("gemini", [AuthenticationFailed("gemini", "bad key")])
        ensemble = EnsembleClassifier([denied], NO_WAIT)

        votes = await ensemble.classify(INP)

        assert denied.calls == 1
        assert votes[0].error == "AuthenticationFailed: bad key"

    @pytest.mark.asyncio
    async def test_same_prompt_for_every_provider(self):
        a = ScriptedClassifier("openai", [reply("aligned")])
        b = ScriptedClassifier("gemini", [reply("aligned")])

        await EnsembleClassifier([a, b], NO_WAIT).classify(INP)

        assert a.prompts == b.prompts

    @pytest.mark.asyncio
    async def test_no_providers(self):
        with pytest.raises(NoProvidersConfigured):
            await EnsembleClassifier([], NO_WAIT).classify(INP)

    @pytest.mark.asyncio
    async def test_unconfigured_providers_are_dropped(self):
        keyless = ScriptedClassifier("openai", [reply("bias")], api_key="")
        ensemble = EnsembleClassifier([keyless], NO_WAIT)

        assert ensemble.names == []
        with pytest.raises(NoProvidersConfigured):
            await ensemble.classify(INP)
        assert keyless.calls == 0

    @pytest.mark.asyncio
    async def test_timeout_is_not_retried(self):
        slow = ScriptedClassifier("grok", [ProviderTimeout("grok", "no response within 30s")])

        votes = await EnsembleClassifier([slow], NO_WAIT).classify(INP)

        assert slow.calls == 1
        assert votes[0].error == "ProviderTimeout: no response within 30s"


class TestHostileReplies:
    @pytest.mark.asyncio
    async def test_oversized_number_keeps_both_votes(self):
        huge = '{"label": "bias", "explanation": "slanted", "confidence": 1' + "0" * 400 + "}"
        ensemble = EnsembleClassifier(
            [
                ScriptedClassifier("openai", [huge]),
                ScriptedClassifier("gemini", [reply("bias", confidence=0.6)]),
            ],
            NO_WAIT,
        )

        votes = await ensemble.classify(INP)

        assert [v.label for v in votes] == [Label.bias, Label.bias]
        assert votes[0].confidence is None
        assert votes[1].confidence == pytest.approx(0.6)

    @pytest.mark.asyncio
    async def test_deeply_nested_reply_becomes_error_vote(self):
        ensemble = EnsembleClassifier(
            [
                ScriptedClassifier("openai", ["[" * 100_000 + "]" * 100_000]),
                ScriptedClassifier("gemini", [reply("aligned")]),
            ],
            NO_WAIT,
        )

        votes = await ensemble.classify(INP)

        assert votes[0].error == "MalformedResponse: reply is not a JSON object"
        assert votes[1].label == Label.aligned

    @pytest.mark.asyncio
    async def test_unexpected_adapter_error_becomes_error_vote(self):
        broken = ScriptedClassifier("openai", [RuntimeError("adapter bug")])
        ensemble = EnsembleClassifier(
            [broken, ScriptedClassifier("gemini", [reply("bias")])], NO_WAIT
        )

        votes = await ensemble.classify(INP)

        assert broken.calls == 1
        assert votes[0].label is None
        assert votes[0].error == "RuntimeError: adapter bug"
        assert votes[1].label == Label.bias
