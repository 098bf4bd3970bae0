"""Shared plumbing for HTTP catalog connectors.

Key Components:
- TokenSupplier: callable returning a pre-acquired access token
- HttpConnector: lazily created httpx.AsyncClient with an injectable transport
- raise_for_provider_status: maps HTTP failures onto the error taxonomy
"""

from collections.abc import Awaitable, Callable
import inspect
from typing import Any

import httpx

from tracklinker.config import get_logger
from tracklinker.domain.errors import (
    AuthError,
    QuotaExhaustedError,
    RateLimitError,
    TransientError,
    UnknownError,
)

logger = get_logger(__name__).bind(service="connectors")

# Returns the current access token; may be sync or async
TokenSupplier = Callable[[], str | None | Awaitable[str | None]]

# Google API error reasons: the daily budget versus short-term throttling
_DAILY_QUOTA_REASONS = {"quotaExceeded", "dailyLimitExceeded"}
_THROTTLE_REASONS = {"rateLimitExceeded", "userRateLimitExceeded"}


def _error_reasons(response: httpx.Response) -> set[str]:
    try:
        payload = response.json()
    except ValueError:
        return set()
    if not isinstance(payload, dict):
        return set()
    error = payload.get("error")
    if not isinstance(error, dict):
        return set()
    return {item.get("reason", "") for item in error.get("errors", []) if isinstance(item, dict)}


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def raise_for_provider_status(response: httpx.Response, service: str) -> None:
    """Raise the taxonomy error matching a non-2xx response.

    - 403 carrying a daily quota reason -> QuotaExhaustedError
    - 429, or 403 carrying a throttling reason -> RateLimitError
    - 401 / 403 -> AuthError
    - 5xx -> TransientError
    - anything else -> UnknownError
    """
    if response.is_success:
        return

    status = response.status_code
    message = f"{service} responded with {status}"

    reasons = _error_reasons(response) if status == 403 else set()
    if reasons & _DAILY_QUOTA_REASONS:
        raise QuotaExhaustedError(f"{message}: daily quota exhausted")
    if status == 429 or reasons & _THROTTLE_REASONS:
        raise RateLimitError(message, retry_after=_retry_after(response))
    if status in (401, 403):
        raise AuthError(message)
    if status >= 500:
        raise TransientError(message)
    raise UnknownError(message)


class HttpConnector:
    """Base for connectors talking JSON over HTTP.

    Tests pass an ``httpx.MockTransport`` as ``transport``.
    """

    base_url: str = ""
    service: str = "http"

    def __init__(
        self,
        token_supplier: TokenSupplier | None = None,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token_supplier = token_supplier
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={"Accept": "application/json"},
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _token(self) -> str | None:
        if self._token_supplier is None:
            return None
        token = self._token_supplier()
        if inspect.isawaitable(token):
            token = await token
        return token

    async def _auth_headers(self, required: bool = True) -> dict[str, str]:
        token = await self._token()
        if not token:
            if required:
                raise AuthError(f"No access token available for {self.service}")
            return {}
        return {"Authorization": f"Bearer {token}"}

    async def _request(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        client = await self._get_client()
        try:
            response = await client.request(
                method, url, params=params, json=json, headers=headers
            )
        except httpx.TimeoutException as e:
            raise TransientError(f"{self.service} request timed out") from e
        except httpx.TransportError as e:
            raise TransientError(f"{self.service} transport error: {e}") from e

        raise_for_provider_status(response, self.service)
        if not response.content:
            return {}
        return response.json()
