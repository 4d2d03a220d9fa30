"""
Replicate-style prediction provider.

Predictions move through ``starting | processing | succeeded | failed |
canceled``. Output may be a bare URL string, an array of strings or objects,
or an object with a named field; the normalizer's precedence for this
provider handles all three.
"""

import logging
from typing import Any, Optional

import httpx

from core.circuit_breaker import CircuitBreaker
from core.config import ReplicateConfig
from core.errors import UnknownJobError, UpstreamContractError

from ..models import Failed, GenerationRequest, JobHandle, ProviderId, StartOutcome, Succeeded
from ..normalizer import classify_status, extract_job_id, normalize
from .base import HttpProviderAdapter, retry_submit

logger = logging.getLogger(__name__)


class ReplicateAdapter(HttpProviderAdapter):
    """Adapter for the Replicate predictions HTTP API."""

    provider_id = ProviderId.REPLICATE

    def __init__(
        self,
        config: ReplicateConfig,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
        breaker: Optional[CircuitBreaker] = None,
    ):
        super().__init__(config.api_key, config.api_base, timeout, client, breaker)
        self.config = config

    def _payload(self, request: GenerationRequest) -> dict[str, Any]:
        body: dict[str, Any] = {
            "input": {
                "prompt": request.compose_prompt(),
                "num_frames": 24,
                "fps": 12,
                "aspect_ratio": request.aspect_ratio,
            },
        }
        if self.config.uses_version_id:
            body["version"] = self.config.model_version
        else:
            body["model"] = self.config.model_version
        return body

    @retry_submit
    async def _submit(self, payload: dict[str, Any]) -> Any:
        try:
            return await self._request_json("POST", self.config.endpoint_path, json=payload)
        except UnknownJobError as e:
            raise UpstreamContractError(
                f"replicate: endpoint {self.config.endpoint_path!r} not found; "
                "check REPLICATE_ENDPOINT_PATH",
                error_code="BAD_ENDPOINT",
                provider=self.provider_id.value,
            ) from e

    async def start(self, request: GenerationRequest) -> StartOutcome:
        logger.info(
            f"Replicate request: model={self.config.model_version}, "
            f"prompt={request.prompt[:50]}..."
        )
        data = await self._submit(self._payload(request))

        # A prediction can already be finished (e.g. cached or Prefer: wait).
        raw_status = data.get("status") if isinstance(data, dict) else None
        if isinstance(raw_status, str) and classify_status(raw_status) in (Succeeded, Failed):
            status = normalize(self.provider_id, data)
            logger.info(f"Replicate prediction resolved synchronously: {status.state.value}")
            return StartOutcome(status=status)

        prediction_id = extract_job_id(data, fields=("id",), buckets=())
        if not prediction_id:
            raise UpstreamContractError(
                f"replicate: no prediction id in start response: {str(data)[:200]}",
                error_code="NO_PREDICTION_ID",
                provider=self.provider_id.value,
            )
        logger.info(f"Replicate prediction created: {prediction_id}")
        return StartOutcome(handle=JobHandle(id=prediction_id, provider=self.provider_id))

    async def poll(self, handle: JobHandle) -> Any:
        # Predictions are read back from predictions/{id} whichever route created them.
        return await self._request_json("GET", f"predictions/{handle.id}")
