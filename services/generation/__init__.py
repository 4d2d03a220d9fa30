"""
Render Job Layer

Starts generation jobs on interchangeable providers and reduces every
provider's response to one canonical JobStatus.

Usage:
    from services.generation import RenderController, StatusPoller, GenerationRequest

    controller = RenderController(ProviderConfig.from_env())
    outcome = await controller.start_job(GenerationRequest(prompt="15s coffee shop ad"))
    if not outcome.is_synchronous:
        final = await StatusPoller(controller.poll_job, outcome.handle).run()
"""

from .controller import RenderController
from .job_clock import JobClock
from .models import (
    AspectFormat,
    Failed,
    GenerationRequest,
    JobHandle,
    JobState,
    JobStatus,
    Processing,
    ProviderId,
    Queued,
    StartOutcome,
    Succeeded,
)
from .normalizer import extract_asset_url, normalize, reconcile
from .poller import PollingPolicy, StatusPoller

__all__ = [
    "RenderController",
    "StatusPoller",
    "PollingPolicy",
    "JobClock",
    "GenerationRequest",
    "AspectFormat",
    "JobHandle",
    "ProviderId",
    "JobState",
    "JobStatus",
    "Queued",
    "Processing",
    "Succeeded",
    "Failed",
    "StartOutcome",
    "normalize",
    "reconcile",
    "extract_asset_url",
]
