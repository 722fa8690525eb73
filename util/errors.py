# util/errors.py
from http import HTTPStatus
from typing import Optional


class DiscrepancyError(Exception):
    # Flow: every core failure carries a message plus a status hint for the routing layer.
    http_status: int = HTTPStatus.BAD_GATEWAY

    def __init__(self, message: str, http_status: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        if http_status is not None:
            self.http_status = http_status


class ProviderError(DiscrepancyError):
    """Failure of a single embedding or classification provider."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.reason = message


class ProviderUnavailable(ProviderError):
    http_status = HTTPStatus.SERVICE_UNAVAILABLE


class AuthenticationFailed(ProviderError):
    http_status = HTTPStatus.UNAUTHORIZED


class RateLimited(ProviderError):
    http_status = HTTPStatus.TOO_MANY_REQUESTS

    def __init__(
        self, provider: str, message: str, retry_after: Optional[float] = None
    ) -> None:
        super().__init__(provider, message)
        self.retry_after = retry_after


class MalformedResponse(ProviderError):
    pass


class ProviderTimeout(ProviderError):
    http_status = HTTPStatus.GATEWAY_TIMEOUT


class ProviderRequestError(ProviderError):
    pass


class AllProvidersFailed(DiscrepancyError):
    pass


class NoProviderAvailable(AllProvidersFailed):
    http_status = HTTPStatus.SERVICE_UNAVAILABLE


class NoProvidersConfigured(DiscrepancyError):
    http_status = HTTPStatus.SERVICE_UNAVAILABLE


class EmbeddingMismatchError(DiscrepancyError, ValueError):
    http_status = HTTPStatus.INTERNAL_SERVER_ERROR


def describe(exc: BaseException) -> str:
    """Short `<Type>: <message>` form used in vote error fields."""
    reason = getattr(exc, "reason", None) or str(exc) or "no details"
    return f"{type(exc).__name__}: {reason}"
