# util/types.py
from typing import Literal, TypedDict


# Flow: Narrow types for NDJSON events handed to the routing layer.
EventType = Literal["comparison", "discrepancy", "done", "error"]


class ErrorPayload(TypedDict, total=False):
    message: str
    status: int
