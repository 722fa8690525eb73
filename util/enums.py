# util/enums.py
from enum import Enum


class Environment(str, Enum):
    DEV = "dev"
    PROD = "prod"


class Label(str, Enum):
    factual_inconsistency = "factual_inconsistency"
    missing_context = "missing_context"
    hallucination = "hallucination"
    bias = "bias"
    aligned = "aligned"


DEFAULT_LABEL = Label.factual_inconsistency

# Flow: prompt wording per label, in taxonomy order.
LABEL_DESCRIPTIONS = {
    Label.factual_inconsistency: "Direct contradiction of facts",
    Label.missing_context: "Information present in one source but absent in the other",
    Label.hallucination: "Claim with no factual basis or verification",
    Label.bias: "Slanted or one-sided presentation",
    Label.aligned: "Sources are consistent (no real discrepancy)",
}


class ComparisonMethod(str, Enum):
    embedding = "embedding"
    lexical_fallback = "lexical-fallback"


class Direction(str, Enum):
    added = "added"  # candidate sentence with no reference counterpart
    missing = "missing"  # reference sentence with no candidate counterpart
