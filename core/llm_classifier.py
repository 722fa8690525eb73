# core/llm_classifier.py
import json
import re
from typing import Any, Dict, List, Optional
import httpx
from config.settings import settings
from core.entities import ClassificationInput, ParsedClassification
from core.http_client import post_json
from util.constants import ProviderNames
from util.enums import DEFAULT_LABEL, LABEL_DESCRIPTIONS, Direction, Label
from util.errors import MalformedResponse, ProviderUnavailable
from util.functions import clamp
from util.timing import timed
import logging

logger = logging.getLogger(__name__)

_FENCED_JSON = re.compile(r"```json\s*([\s\S]*?)\s*```")
_FENCED_ANY = re.compile(r"```\s*([\s\S]*?)\s*```")


def build_classification_prompt(
    inp: ClassificationInput,
    reference_name: Optional[str] = None,
    candidate_name: Optional[str] = None,
) -> str:
    """
    Deterministic user prompt: topic, the discrepant claim with its counterpart
    context, the closed label list, and the JSON reply contract.
    """
    ref = reference_name or settings.REFERENCE_SOURCE_NAME
    cand = candidate_name or settings.CANDIDATE_SOURCE_NAME
    extra, other = (cand, ref) if inp.direction == Direction.added else (ref, cand)

    lines: List[str] = [
        f"You are an expert fact-checker analyzing discrepancies between two sources: {cand} and {ref}.",
        "",
        f"Topic: {inp.topic}",
        "",
    ]
    if inp.claim and inp.counterpart_claim:
        lines += [f'{extra} claim: "{inp.claim}"', f'{other} claim: "{inp.counterpart_claim}"', ""]
    elif inp.direction == Direction.added:
        lines += [f"{extra} contains this claim that is NOT present in {other}:", f'"{inp.claim}"', ""]
    else:
        lines += [f"{extra} contains this claim that is MISSING in {other}:", f'"{inp.claim}"', ""]
    if inp.counterpart_context:
        lines += [f"{other} context (for reference):", f'"{inp.counterpart_context}"', ""]

    lines.append("Classify this discrepancy into ONE of these categories:")
    lines += [f"- {label.value}: {desc}" for label, desc in LABEL_DESCRIPTIONS.items()]
    lines += [
        "",
        "Respond ONLY with valid JSON in this exact format:",
        "{",
        '  "label": "one_of_the_labels_above",',
        '  "confidence": 0.0-1.0,',
        '  "explanation": "Brief explanation in 1-2 sentences"',
        "}",
    ]
    return "\n".join(lines)


def _loads_object(raw: str) -> Optional[Dict[str, Any]]:
    try:
        obj = json.loads(raw)
    except (ValueError, RecursionError):
        return None
    return obj if isinstance(obj, dict) else None


def parse_classification(provider: str, text: str) -> ParsedClassification:
    """
    Parse a provider reply. Direct JSON first, then a fenced block; anything else
    raises MalformedResponse. Labels outside the taxonomy become the default label.
    """
    raw = (text or "").strip()
    obj = _loads_object(raw)
    if obj is None:
        m = _FENCED_JSON.search(raw) or _FENCED_ANY.search(raw)
        if m:
            obj = _loads_object(m.group(1))
    if obj is None:
        raise MalformedResponse(provider, "reply is not a JSON object")

    raw_label = str(obj.get("label", "")).strip().lower()
    try:
        label = Label(raw_label)
    except ValueError:
        logger.warning(
            "classify.label.invalid provider=%s label=%r default=%s",
            provider,
            raw_label,
            DEFAULT_LABEL.value,
        )
        label = DEFAULT_LABEL

    conf: Optional[float]
    try:
        conf = clamp(float(obj["confidence"])) if obj.get("confidence") is not None else None
    except (TypeError, ValueError, OverflowError):
        conf = None

    explanation = str(obj.get("explanation") or "").strip() or "No explanation provided"
    return ParsedClassification(label=label, explanation=explanation, confidence=conf)


class ClassificationProvider:
    """
    One chat model taking part in the ensemble. Subclasses implement `_complete`.
    """

    name: str = "base"

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        timeout: float = 30.0,
        temperature: float = 0.3,
        max_tokens: int = 300,
        system_prompt: str = "",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._timeout = timeout
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._system_prompt = system_prompt
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def classify(self, inp: ClassificationInput) -> ParsedClassification:
        if not self.is_configured:
            raise ProviderUnavailable(self.name, "no credentials configured")
        prompt = build_classification_prompt(inp)
        with timed(logger, "ai.classify", provider=self.name, model=self._model):
            text = await self._complete(prompt)
        parsed = parse_classification(self.name, text)
        logger.info("ai.classify.result provider=%s label=%s", self.name, parsed.label.value)
        return parsed

    async def _complete(self, prompt: str) -> str:
        raise NotImplementedError


class ChatCompletionsProvider(ClassificationProvider):
    """OpenAI-style /chat/completions (OpenAI itself, Groq for `grok`)."""

    def __init__(self, *, name: str, api_url: str, **kw) -> None:
        super().__init__(**kw)
        self.name = name
        self._url = api_url

    async def _complete(self, prompt: str) -> str:
        messages = []
        if self._system_prompt:
            messages.append({"role": "system", "content": self._system_prompt})
        messages.append({"role": "user", "content": prompt})
        data = await post_json(
            self.name,
            self._url,
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Content-Type": "application/json",
            },
            payload={
                "model": self._model,
                "messages": messages,
                "temperature": self._temperature,
                "max_tokens": self._max_tokens,
            },
            timeout=self._timeout,
            transport=self._transport,
        )
        try:
            return str(data["choices"][0]["message"]["content"] or "")
        except (KeyError, IndexError, TypeError) as e:
            raise MalformedResponse(self.name, "missing choices[0].message.content") from e


class GeminiProvider(ClassificationProvider):
    name = ProviderNames.GEMINI

    def __init__(self, *, api_base: str, **kw) -> None:
        super().__init__(**kw)
        self._base = api_base.rstrip("/")

    async def _complete(self, prompt: str) -> str:
        payload: Dict[str, Any] = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self._temperature,
                "maxOutputTokens": self._max_tokens,
            },
        }
        if self._system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": self._system_prompt}]}
        data = await post_json(
            self.name,
            f"{self._base}/{self._model}:generateContent",
            headers={"Content-Type": "application/json"},
            params={"key": self._api_key},
            payload=payload,
            timeout=self._timeout,
            transport=self._transport,
        )
        try:
            return str(data["candidates"][0]["content"]["parts"][0]["text"] or "")
        except (KeyError, IndexError, TypeError) as e:
            raise MalformedResponse(self.name, "missing candidates[0].content.parts[0].text") from e


def build_classification_providers(
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> List[ClassificationProvider]:
    """
    Every known classification provider in CLASSIFIER_PROVIDER_ORDER; the
    ensemble keeps the configured ones.
    """
    common = dict(
        timeout=settings.HTTP_TIMEOUT_SECONDS,
        temperature=settings.CLASSIFY_TEMPERATURE,
        max_tokens=settings.CLASSIFY_MAX_TOKENS,
        system_prompt=settings.CLASSIFY_SYSTEM_PROMPT,
        transport=transport,
    )
    known: Dict[str, ClassificationProvider] = {
        ProviderNames.OPENAI: ChatCompletionsProvider(
            name=ProviderNames.OPENAI,
            api_url=settings.OPENAI_API_URL,
            api_key=settings.OPENAI_API_KEY,
            model=settings.OPENAI_MODEL,
            **common,
        ),
        ProviderNames.GEMINI: GeminiProvider(
            api_base=settings.GEMINI_API_BASE,
            api_key=settings.GEMINI_API_KEY,
            model=settings.GEMINI_MODEL,
            **common,
        ),
        ProviderNames.GROK: ChatCompletionsProvider(
            name=ProviderNames.GROK,
            api_url=settings.GROK_API_URL,
            api_key=settings.GROK_API_KEY,
            model=settings.GROK_MODEL,
            **common,
        ),
    }
    order = settings.provider_order(settings.CLASSIFIER_PROVIDER_ORDER)
    unknown = [n for n in order if n not in known]
    if unknown:
        logger.warning("classify.order.unknown names=%s", ",".join(unknown))
    return [known[n] for n in order if n in known]
