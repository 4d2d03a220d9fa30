"""
Render Controller

The facade the HTTP boundary calls:
- ``start_job(request)`` -> StartOutcome (handle to poll, or terminal status)
- ``poll_job(handle)`` -> canonical JobStatus snapshot

The active adapter is chosen once, at construction, from an explicit
ProviderConfig. When a real provider is selected without credentials the
controller falls back to the simulator unless the configured policy says to
fail.
"""

import logging
from collections import OrderedDict
from typing import Optional

import httpx

from core.config import CredentialPolicy, ProviderConfig
from core.errors import (
    ConfigurationError,
    TransportError,
    UnknownJobError,
    UpstreamContractError,
    ValidationError,
)

from .job_clock import JobClock
from .models import Failed, GenerationRequest, JobHandle, JobStatus, ProviderId, StartOutcome
from .normalizer import normalize, reconcile
from .providers import ProviderAdapter, build_adapter, select_provider

logger = logging.getLogger(__name__)

MAX_TRACKED_JOBS = 4096


class RenderController:
    """
    Starts render jobs on the configured provider and normalizes their status.

    Usage:
        controller = RenderController(ProviderConfig.from_env())

        outcome = await controller.start_job(GenerationRequest(prompt="15s coffee shop ad"))
        if outcome.is_synchronous:
            show(outcome.status)
        else:
            status = await controller.poll_job(outcome.handle)
    """

    def __init__(
        self,
        config: ProviderConfig,
        adapters: Optional[dict[ProviderId, ProviderAdapter]] = None,
        client: Optional[httpx.AsyncClient] = None,
        job_clock: Optional[JobClock] = None,
    ):
        """
        Args:
            config: Immutable provider configuration
            adapters: Optional adapter overrides keyed by provider
            client: Optional shared HTTP client for the real adapters
            job_clock: Optional clock store for the simulator
        """
        self.config = config
        self.fallback_reason: Optional[str] = None

        try:
            active = select_provider(config)
        except ConfigurationError as e:
            if config.credential_policy == CredentialPolicy.FAIL:
                raise
            logger.warning(f"{e}; falling back to simulator")
            self.fallback_reason = str(e)
            active = ProviderId.SIMULATOR

        self.active_provider = active

        overrides = adapters or {}
        self._adapters: dict[ProviderId, ProviderAdapter] = {}
        # The simulator stays reachable so simulated handles remain pollable.
        for provider in (active, ProviderId.SIMULATOR):
            if provider not in self._adapters:
                self._adapters[provider] = overrides.get(provider) or build_adapter(
                    provider, config, client=client, job_clock=job_clock
                )

        # Last snapshot per job; terminal entries are absorbing.
        self._snapshots: "OrderedDict[tuple[ProviderId, str], JobStatus]" = OrderedDict()

        logger.info(
            f"RenderController ready: provider={active.value}"
            + (f" (fallback: {self.fallback_reason})" if self.fallback_reason else "")
        )

    @property
    def adapter(self) -> ProviderAdapter:
        return self._adapters[self.active_provider]

    def _adapter_for_request(self, request: GenerationRequest) -> ProviderAdapter:
        hint = (request.provider_hint or "").strip().lower()
        if hint:
            for provider, adapter in self._adapters.items():
                if provider.value == hint:
                    return adapter
            logger.warning(f"Ignoring provider hint {hint!r}: not configured")
        return self.adapter

    async def start_job(self, request: GenerationRequest) -> StartOutcome:
        """
        Start a render job.

        Raises:
            ValidationError: empty prompt; raised before any network call

        Returns:
            StartOutcome with either a handle or a terminal status. Transport
            and contract failures are reported as a terminal ``Failed``.
        """
        request.validate()
        adapter = self._adapter_for_request(request)

        try:
            outcome = await adapter.start(request)
        except TransportError as e:
            logger.error(f"Render start failed on {adapter.provider_id.value}: {e}")
            return StartOutcome(status=Failed(reason=f"upstream unreachable: {e}"))
        except UpstreamContractError as e:
            logger.error(f"Render start broke provider contract: {e}")
            return StartOutcome(status=Failed(reason=str(e)))

        if outcome.is_synchronous:
            logger.info(f"Render resolved synchronously: {outcome.status.state.value}")
        else:
            logger.info(f"Render job queued: {outcome.handle.provider.value}/{outcome.handle.id}")
        return outcome

    async def poll_job(self, handle: JobHandle) -> JobStatus:
        """
        Poll a job and return its canonical snapshot.

        Raises:
            ValidationError: missing job id, or a handle that needs no polling
            UnknownJobError: the provider does not recognise the job
            TransportError: the poll call failed; the caller may retry
        """
        if handle is None or not str(handle.id or "").strip():
            raise ValidationError("Missing job id", error_code="MISSING_JOB_ID")
        if not handle.needs_polling:
            raise ValidationError(
                "Synchronous results have no job to poll", error_code="SYNC_HANDLE"
            )

        adapter = self._adapters.get(handle.provider)
        if adapter is None:
            raise UnknownJobError(
                f"No active adapter for provider {handle.provider.value}",
                error_code="UNKNOWN_PROVIDER",
                provider=handle.provider.value,
            )

        key = (handle.provider, handle.id)
        previous = self._snapshots.get(key)
        if previous is not None and previous.is_terminal:
            return previous

        try:
            raw = await adapter.poll(handle)
        except UpstreamContractError as e:
            status: JobStatus = Failed(reason=str(e))
        else:
            status = normalize(handle.provider, raw)

        status = reconcile(previous, status)
        self._remember(key, status)
        return status

    def _remember(self, key: tuple[ProviderId, str], status: JobStatus) -> None:
        self._snapshots[key] = status
        self._snapshots.move_to_end(key)
        while len(self._snapshots) > MAX_TRACKED_JOBS:
            self._snapshots.popitem(last=False)

    def describe(self) -> dict:
        """Provider selection and breaker state, for health endpoints."""
        breakers = {}
        for provider, adapter in self._adapters.items():
            breaker = getattr(adapter, "_breaker", None)
            if breaker is not None:
                breakers[provider.value] = breaker.snapshot()
        return {
            "provider": self.active_provider.value,
            "fallback_reason": self.fallback_reason,
            "tracked_jobs": len(self._snapshots),
            "circuit_breakers": breakers,
        }

    async def close(self):
        """Close every adapter's network resources."""
        for adapter in self._adapters.values():
            await adapter.close()
