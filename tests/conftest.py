"""Shared fakes for the discrepancy engine tests."""

import asyncio
import re
from typing import Dict, List, Optional, Sequence

import numpy as np
import pytest

from core.diff_engine import DiffEngine, MatcherConfig
from core.embeddings import EmbeddingProvider, EmbeddingRegistry
from core.llm_classifier import ClassificationProvider
from core.retry import RetryPolicy
from util.errors import ProviderRequestError

_TOKEN = re.compile(r"[a-z0-9]+")

NO_WAIT = RetryPolicy(max_attempts=3, initial_wait=0.0, max_wait=0.0)


class VocabEmbeddingProvider(EmbeddingProvider):
    """Bag-of-words vectors: each new token gets its own dimension."""

    def __init__(self, name: str = "openai", dim: int = 4096, fail: bool = False) -> None:
        super().__init__(max_input_chars=100_000)
        self.name = name
        self.dim = dim
        self.fail = fail
        self.calls: List[str] = []
        self._vocab: Dict[str, int] = {}

    @property
    def is_configured(self) -> bool:
        return True

    async def _request(self, text: str) -> Sequence[float]:
        self.calls.append(text)
        if self.fail:
            raise ProviderRequestError(self.name, "HTTP 500")
        vec = np.zeros(self.dim, dtype=np.float32)
        for tok in _TOKEN.findall(text.lower()):
            idx = self._vocab.setdefault(tok, len(self._vocab) % self.dim)
            vec[idx] += 1.0
        return vec


class MappingEmbeddingProvider(EmbeddingProvider):
    """Returns fixed vectors per text."""

    def __init__(self, mapping: Dict[str, Sequence[float]], name: str = "openai") -> None:
        super().__init__(max_input_chars=100_000)
        self.name = name
        self.mapping = mapping
        self.calls: List[str] = []

    @property
    def is_configured(self) -> bool:
        return True

    async def _request(self, text: str) -> Sequence[float]:
        self.calls.append(text)
        return self.mapping[text]


class ScriptedClassifier(ClassificationProvider):
    """Replays canned replies (str) or raises canned exceptions, in order."""

    def __init__(self, name: str, replies: Sequence[object], api_key: str = "test-key") -> None:
        super().__init__(api_key=api_key, model="fake-model")
        self.name = name
        self._replies = list(replies)
        self.calls = 0
        self.prompts: List[str] = []

    async def _complete(self, prompt: str) -> str:
        self.calls += 1
        self.prompts.append(prompt)
        reply = self._replies[min(self.calls - 1, len(self._replies) - 1)]
        if isinstance(reply, BaseException):
            raise reply
        await asyncio.sleep(0)
        return str(reply)


def reply(label: str, explanation: str = "because", confidence: Optional[float] = None) -> str:
    body = f'"label": "{label}", "explanation": "{explanation}"'
    if confidence is not None:
        body += f', "confidence": {confidence}'
    return "{" + body + "}"


def disjoint_sentences(n: int, prefix: str) -> List[str]:
    """Sentences that share no token with each other or with other prefixes."""
    return [
        f"{prefix}{i}alpha {prefix}{i}beta {prefix}{i}gamma {prefix}{i}delta."
        for i in range(n)
    ]


def make_engine(*providers: EmbeddingProvider, **config) -> DiffEngine:
    return DiffEngine(EmbeddingRegistry(list(providers), NO_WAIT), MatcherConfig(**config))


@pytest.fixture
def vocab_provider() -> VocabEmbeddingProvider:
    return VocabEmbeddingProvider()


@pytest.fixture
def engine(vocab_provider: VocabEmbeddingProvider) -> DiffEngine:
    return make_engine(vocab_provider)
