# core/http_client.py
from typing import Any, Dict, Optional
import httpx
import logging
from util.errors import (
    AuthenticationFailed,
    MalformedResponse,
    ProviderRequestError,
    ProviderTimeout,
    RateLimited,
)

logger = logging.getLogger(__name__)


def _retry_after(resp: httpx.Response) -> Optional[float]:
    raw = resp.headers.get("retry-after")
    if not raw:
        return None
    try:
        return max(0.0, float(raw))
    except ValueError:
        return None


async def post_json(
    provider: str,
    url: str,
    *,
    headers: Dict[str, str],
    payload: Dict[str, Any],
    params: Optional[Dict[str, str]] = None,
    timeout: float = 30.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    """
    JSON POST to a provider endpoint. Maps transport and HTTP failures onto the
    provider error taxonomy:
      401/403 -> AuthenticationFailed, 429 -> RateLimited, timeout -> ProviderTimeout,
      other non-2xx / network -> ProviderRequestError, non-JSON body -> MalformedResponse.
    """
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            r = await client.post(url, headers=headers, json=payload, params=params)
    except httpx.TimeoutException as e:
        raise ProviderTimeout(provider, f"no response within {timeout:.0f}s") from e
    except httpx.RequestError as e:
        raise ProviderRequestError(provider, f"request failed ({type(e).__name__})") from e

    if r.status_code in (401, 403):
        logger.warning("provider.auth.failed provider=%s status=%d", provider, r.status_code)
        raise AuthenticationFailed(provider, "authentication failed - check the API key")

    if r.status_code == 429:
        raise RateLimited(provider, "rate limit exceeded", retry_after=_retry_after(r))

    if r.status_code // 100 != 2:
        logger.error("provider.http.error provider=%s status=%d", provider, r.status_code)
        raise ProviderRequestError(provider, f"HTTP {r.status_code}")

    try:
        data = r.json()
    except ValueError as e:
        raise MalformedResponse(provider, "response body is not JSON") from e
    if not isinstance(data, dict):
        raise MalformedResponse(provider, "response body is not a JSON object")
    return data
