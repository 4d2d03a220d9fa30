"""
Eden-style asynchronous job provider.

POST {base}/{endpoint_path} submits a job; GET {base}/{endpoint_path}/{id}
reports it. Responses are not guaranteed to use one field for the job id,
and some engines answer with a finished asset straight away.
"""

import logging
from typing import Any, Optional

import httpx

from core.circuit_breaker import CircuitBreaker
from core.config import EdenConfig
from core.errors import UnknownJobError, UpstreamContractError

from ..models import GenerationRequest, JobHandle, ProviderId, StartOutcome, Succeeded
from ..normalizer import URL_PRECEDENCE, extract_asset_url, extract_job_id
from .base import HttpProviderAdapter, retry_submit

logger = logging.getLogger(__name__)

PROBE_SNIPPET_CHARS = 500


class EdenAdapter(HttpProviderAdapter):
    """Adapter for an Eden AI style video generation API."""

    provider_id = ProviderId.EDEN

    def __init__(
        self,
        config: EdenConfig,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
        breaker: Optional[CircuitBreaker] = None,
    ):
        super().__init__(config.api_key, config.api_base, timeout, client, breaker)
        self.config = config

    def _payload(self, request: GenerationRequest) -> dict[str, Any]:
        return {
            "providers": self.config.engine,
            "text": request.compose_prompt(),
            "resolution": "720p",
            "aspect_ratio": request.aspect_ratio,
            "fallback_providers": "",
        }

    @retry_submit
    async def _submit(self, payload: dict[str, Any]) -> Any:
        try:
            return await self._request_json("POST", self.config.endpoint_path, json=payload)
        except UnknownJobError as e:
            raise UpstreamContractError(
                f"eden: endpoint {self.config.endpoint_path!r} not found; check EDEN_ENDPOINT_PATH",
                error_code="BAD_ENDPOINT",
                provider=self.provider_id.value,
            ) from e

    async def start(self, request: GenerationRequest) -> StartOutcome:
        logger.info(
            f"Eden request: engine={self.config.engine}, prompt={request.prompt[:50]}..."
        )
        data = await self._submit(self._payload(request))

        job_id = extract_job_id(data)
        if job_id:
            logger.info(f"Eden job created: {job_id}")
            return StartOutcome(handle=JobHandle(id=job_id, provider=self.provider_id))

        url = extract_asset_url(data, URL_PRECEDENCE[self.provider_id])
        if url:
            logger.info("Eden returned a direct asset; no polling needed")
            return StartOutcome(status=Succeeded(asset_url=url))

        raise UpstreamContractError(
            f"eden: no job id or asset url in start response: {str(data)[:200]}",
            error_code="NO_JOB_ID",
            provider=self.provider_id.value,
        )

    async def poll(self, handle: JobHandle) -> Any:
        return await self._request_json("GET", f"{self.config.endpoint_path}/{handle.id}")

    async def probe(self, path: Optional[str] = None) -> dict[str, Any]:
        """
        Submit a one-second test clip and report how the endpoint answered.

        Used to find a working route before setting EDEN_ENDPOINT_PATH. Any
        HTTP status is reported rather than raised, and only a short body
        snippet is returned, with the API key masked.

        Raises:
            TransportError: the request never got an answer
        """
        path = (path or self.config.endpoint_path).strip("/")
        url = self._url(path)
        payload = {
            "providers": self.config.engine,
            "text": "1-second test clip",
            "resolution": "720p",
            "safe_mode": False,
        }
        logger.info(f"Eden probe: POST {url}")

        client = await self._get_client()
        try:
            response = await client.post(url, headers=self._headers(), json=payload)
        except httpx.TimeoutException as e:
            raise self._error(f"probe timeout: {type(e).__name__}", "TIMEOUT") from e
        except httpx.RequestError as e:
            raise self._error(f"probe failed: {type(e).__name__}: {e}", "REQUEST_ERROR") from e

        snippet = response.text[:PROBE_SNIPPET_CHARS]
        if self.api_key:
            snippet = snippet.replace(self.api_key, "***")

        return {
            "tried": {"url": url, "method": "POST", "provider": self.config.engine},
            "response": {
                "status": response.status_code,
                "ok": response.is_success,
                "snippet": snippet,
            },
            "env": {
                "hasKey": bool(self.api_key),
                "EDEN_PROVIDER": self.config.engine,
                "EDEN_BASE": self.config.api_base,
                "EDEN_ENDPOINT_PATH": self.config.endpoint_path,
            },
        }
