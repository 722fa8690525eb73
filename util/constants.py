class ProviderNames:
    OPENAI = "openai"
    GEMINI = "gemini"
    GROK = "grok"
    LOCAL = "local"


class StreamEvents:
    COMPARISON = "comparison"
    DISCREPANCY = "discrepancy"
    ERROR = "error"
    DONE = "done"


# Reported confidence assumed for a successful vote that omits one.
DEFAULT_VOTE_CONFIDENCE = 0.8
