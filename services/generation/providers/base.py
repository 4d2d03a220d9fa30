"""
Provider adapter interface and shared HTTP plumbing.

Every backend implements two operations:
- ``start(request)`` -> StartOutcome (a handle to poll, or a terminal status)
- ``poll(handle)`` -> the provider's raw status payload, for the normalizer

HTTP adapters share the transport rules: bearer credential header, JSON in
and out, non-JSON or non-2xx responses surface as TransportError, and every
call goes through the adapter's circuit breaker.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from core.circuit_breaker import CircuitBreaker, CircuitBreakerOpen, breaker_for
from core.errors import TransportError, UnknownJobError

from ..models import GenerationRequest, JobHandle, ProviderId, StartOutcome

logger = logging.getLogger(__name__)


class ProviderAdapter(ABC):
    """Capability interface every render backend implements."""

    provider_id: ProviderId

    @abstractmethod
    async def start(self, request: GenerationRequest) -> StartOutcome:
        """Submit a generation job."""

    @abstractmethod
    async def poll(self, handle: JobHandle) -> Any:
        """
        Fetch the provider's native status representation.

        Raises:
            TransportError: the call itself failed
            UnknownJobError: the provider does not know ``handle.id``
        """

    async def close(self):
        """Release network resources. Default: nothing to release."""


def _safe_to_resubmit(exc: BaseException) -> bool:
    """
    Whether a failed submission can be sent again without risking a duplicate job.

    Only failures where the provider should not have accepted the job qualify:
    the connection never opened, or the provider answered 429 or 5xx. A read
    timeout may hide an accepted (and billed) job, so it is not resubmitted.
    """
    if not isinstance(exc, TransportError) or not exc.retryable:
        return False
    if exc.status_code is not None:
        return True
    return isinstance(exc.__cause__, (httpx.ConnectError, httpx.ConnectTimeout))


# Applied to start() submissions only; polls are retried by the StatusPoller.
retry_submit = retry(
    retry=retry_if_exception(_safe_to_resubmit),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
    reraise=True,
)


class HttpProviderAdapter(ProviderAdapter):
    """Base for adapters talking to a JSON-over-HTTP provider API."""

    def __init__(
        self,
        api_key: str,
        api_base: str,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
        breaker: Optional[CircuitBreaker] = None,
    ):
        self.api_key = api_key
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self._http_client = client
        self._owns_client = client is None
        self._breaker = breaker or breaker_for(self.provider_id.value, timeout)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def close(self):
        """Close the HTTP client if this adapter created it."""
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _url(self, path: str) -> str:
        return f"{self.api_base}/{path.lstrip('/')}"

    def _error(self, message: str, error_code: str, status_code: Optional[int] = None):
        return TransportError(
            f"{self.provider_id.value}: {message}",
            error_code=error_code,
            provider=self.provider_id.value,
            status_code=status_code,
        )

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Perform the request; only transport-level failures raise here."""
        client = await self._get_client()
        try:
            response = await client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.TimeoutException as e:
            raise self._error(f"timeout: {type(e).__name__}", "TIMEOUT") from e
        except httpx.RequestError as e:
            raise self._error(f"request failed: {type(e).__name__}: {e}", "REQUEST_ERROR") from e

        if response.status_code == 429 or response.status_code >= 500:
            raise self._error(
                f"HTTP {response.status_code}: {response.text[:200]}",
                f"HTTP_{response.status_code}",
                response.status_code,
            )
        return response

    async def _request_json(self, method: str, path: str, **kwargs) -> Any:
        """
        Call the provider and decode its JSON body.

        Raises:
            UnknownJobError: HTTP 404
            TransportError: network failure, open breaker, non-2xx status,
                or a body that is not JSON
        """
        url = self._url(path)
        try:
            response = await self._breaker.call(self._send, method, url, **kwargs)
        except CircuitBreakerOpen as e:
            raise self._error(str(e), "CIRCUIT_OPEN") from e
        except asyncio.TimeoutError as e:
            raise self._error("timeout: call exceeded breaker ceiling", "TIMEOUT") from e

        if response.status_code == 404:
            raise UnknownJobError(
                f"{self.provider_id.value}: job not found ({method} {path})",
                error_code="NOT_FOUND",
                provider=self.provider_id.value,
            )
        if not response.is_success:
            raise self._error(
                f"HTTP {response.status_code}: {response.text[:200]}",
                f"HTTP_{response.status_code}",
                response.status_code,
            )
        return self._decode_json(response)

    def _decode_json(self, response: httpx.Response) -> Any:
        content_type = response.headers.get("content-type", "").lower()
        if "json" not in content_type:
            raise self._error(
                f"unexpected content-type {content_type or 'none'}: {response.text[:120]!r}",
                "BAD_CONTENT_TYPE",
                response.status_code,
            )
        if not response.content.strip():
            raise self._error("empty response body", "EMPTY_BODY", response.status_code)
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise self._error(f"invalid JSON body: {e}", "BAD_JSON", response.status_code) from e
