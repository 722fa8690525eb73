# core/streaming.py
from typing import AsyncIterator, Dict, Final, List
from core.analysis_pipeline import build_result, iter_discrepancies
from core.diff_engine import DiffEngine
from core.ensemble import EnsembleClassifier
from model.api import StreamEvent
from model.article import Article
from model.discrepancy import Discrepancy
from util.constants import StreamEvents
from util.errors import DiscrepancyError
from util.types import ErrorPayload
import json
import logging

LINE_SEP: Final[str] = "\n"
logger = logging.getLogger(__name__)


def ndjson_line(obj: Dict[str, object]) -> bytes:
    return (json.dumps(obj, separators=(",", ":")) + LINE_SEP).encode("utf-8")


def _event(kind: str, payload: dict) -> bytes:
    return ndjson_line(StreamEvent(type=kind, payload=payload).model_dump(mode="json"))


async def make_analysis_stream(
    *,
    topic: str,
    reference: Article,
    candidate: Article,
    engine: DiffEngine,
    ensemble: EnsembleClassifier,
) -> AsyncIterator[bytes]:
    """
    Progressive NDJSON for the routing layer:
      - one comparison event once the diff is known
      - one discrepancy event per classified sentence
      - done with the summary, or error (then done) on a core failure
    """
    try:
        comparison = await engine.compare_articles(reference, candidate)
        yield _event(StreamEvents.COMPARISON, comparison.model_dump(mode="json"))

        found: List[Discrepancy] = []
        async for d in iter_discrepancies(
            topic=topic,
            reference=reference,
            candidate=candidate,
            comparison=comparison,
            ensemble=ensemble,
        ):
            found.append(d)
            yield _event(StreamEvents.DISCREPANCY, d.model_dump(mode="json"))
    except DiscrepancyError as e:
        logger.error("stream.analysis.error topic=%r err=%s", topic, e)
        err: ErrorPayload = {"message": e.message, "status": int(e.http_status)}
        yield _event(StreamEvents.ERROR, dict(err))
        yield _event(StreamEvents.DONE, {})
        return

    result = build_result(topic, comparison, found)
    logger.info("stream.analysis.done topic=%r count=%d", topic, len(found))
    yield _event(StreamEvents.DONE, {"summary": result.summary.model_dump(), "stats": result.stats})
