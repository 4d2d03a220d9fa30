"""
Simulator provider.

A zero-dependency stand-in used whenever no real provider is configured, so
the whole pipeline runs end-to-end without network access.

Modes:
- instant: ``start()`` resolves synchronously with a fixed sample asset
- delayed: ``start()`` returns a handle and ``poll()`` derives the status
  purely from the time elapsed since the job was created
"""

import logging
import uuid
from typing import Any, Optional

from core.config import SimulatorConfig, SimulatorMode
from core.errors import UnknownJobError

from ..job_clock import JobClock
from ..models import GenerationRequest, JobHandle, ProviderId, StartOutcome, Succeeded
from .base import ProviderAdapter

logger = logging.getLogger(__name__)

STARTING_SECONDS = 1.0
PROCESSING_SECONDS = 3.0


def simulated_payload(elapsed_seconds: float, asset_url: str) -> dict[str, Any]:
    """Raw status payload for a simulated job of the given age."""
    if elapsed_seconds < STARTING_SECONDS:
        return {"status": "starting", "progress": 0}
    if elapsed_seconds < PROCESSING_SECONDS:
        return {"status": "processing", "progress": 50}
    return {"status": "succeeded", "progress": 100, "url": asset_url}


class SimulatorAdapter(ProviderAdapter):
    """Fake provider returning a fixed or time-derived result."""

    provider_id = ProviderId.SIMULATOR

    def __init__(
        self,
        config: Optional[SimulatorConfig] = None,
        job_clock: Optional[JobClock] = None,
    ):
        self.config = config or SimulatorConfig()
        self.job_clock = job_clock or JobClock(max_age_seconds=self.config.job_max_age_seconds)

    @property
    def delayed(self) -> bool:
        return self.config.mode == SimulatorMode.DELAYED

    async def start(self, request: GenerationRequest) -> StartOutcome:
        if not self.delayed:
            logger.info(f"Simulator resolved render instantly: {request.prompt[:50]}...")
            return StartOutcome(status=Succeeded(asset_url=self.config.asset_url))

        job_id = f"sim-{uuid.uuid4().hex[:12]}"
        created_at = self.job_clock.register(job_id)
        logger.info(f"Simulator job created: {job_id}")
        return StartOutcome(
            handle=JobHandle(id=job_id, provider=self.provider_id, created_at=created_at)
        )

    async def poll(self, handle: JobHandle) -> dict[str, Any]:
        elapsed = self.job_clock.elapsed_seconds(handle.id)
        if elapsed is None:
            raise UnknownJobError(
                f"simulator: unknown job id {handle.id}",
                error_code="UNKNOWN_JOB",
                provider=self.provider_id.value,
            )
        return simulated_payload(elapsed, self.config.asset_url)
