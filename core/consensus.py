# core/consensus.py
from collections import Counter
from typing import Dict, Sequence
from core.entities import ConsensusOutcome
from model.discrepancy import ClassificationVote
from util.constants import DEFAULT_VOTE_CONFIDENCE
from util.enums import DEFAULT_LABEL, Label
from util.functions import round2


def aggregate(votes: Sequence[ClassificationVote]) -> ConsensusOutcome:
    """
    Reconcile one discrepancy's votes.

    - Only votes without an error count.
    - Most frequent label wins; on a tie the label cast by the earliest
      provider in `votes` (priority order) wins.
    - `disagreement` is True iff the successful votes hold more than one label.
    - If every vote errored: default label, no disagreement, confidence 0.0.
    - `errors` lists every failed provider as "<provider>: <error>".
    - `explanation` is the first explanation given for the winning label.
    """
    errors = tuple(f"{v.provider}: {v.error}" for v in votes if not v.ok)
    ok = [v for v in votes if v.ok]
    if not ok:
        return ConsensusOutcome(
            label=DEFAULT_LABEL, disagreement=False, confidence=0.0, errors=errors
        )

    counts: Counter = Counter(v.label for v in ok)
    first_seen: Dict[Label, int] = {}
    for i, v in enumerate(ok):
        first_seen.setdefault(v.label, i)

    label = max(counts, key=lambda lb: (counts[lb], -first_seen[lb]))
    confs = [
        v.confidence if v.confidence is not None else DEFAULT_VOTE_CONFIDENCE for v in ok
    ]
    return ConsensusOutcome(
        label=label,
        disagreement=len(counts) > 1,
        confidence=round2(sum(confs) / len(confs)),
        errors=errors,
        explanation=next(v.explanation for v in ok if v.label == label),
    )
