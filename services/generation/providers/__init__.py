"""
Render provider adapters.

- simulator: zero-dependency stand-in (instant or time-derived)
- eden: asynchronous job API
- replicate: prediction API

``select_provider`` decides which one the configuration asks for, and
``build_adapter`` constructs it.
"""

from typing import Optional

import httpx

from core.config import ProviderConfig, ProviderName
from core.errors import ConfigurationError

from ..job_clock import JobClock
from ..models import ProviderId
from .base import HttpProviderAdapter, ProviderAdapter
from .eden import EdenAdapter
from .replicate import ReplicateAdapter
from .simulator import SimulatorAdapter, simulated_payload


def select_provider(config: ProviderConfig) -> ProviderId:
    """
    Resolve the provider the configuration selects.

    Raises:
        ConfigurationError: a real provider is selected, simulation is not
            forced, and its credentials are missing
    """
    if config.force_simulator or config.provider == ProviderName.SIMULATOR:
        return ProviderId.SIMULATOR
    if not config.has_credentials(config.provider):
        raise ConfigurationError(
            f"{config.provider.value} selected but its API key is not configured",
            error_code="MISSING_CREDENTIALS",
            provider=config.provider.value,
        )
    return ProviderId(config.provider.value)


def build_adapter(
    provider: ProviderId,
    config: ProviderConfig,
    client: Optional[httpx.AsyncClient] = None,
    job_clock: Optional[JobClock] = None,
) -> ProviderAdapter:
    """Construct the adapter for ``provider`` from its config section."""
    if provider == ProviderId.SIMULATOR:
        return SimulatorAdapter(config.simulator, job_clock=job_clock)
    if provider == ProviderId.EDEN:
        return EdenAdapter(config.eden, timeout=config.http_timeout_seconds, client=client)
    if provider == ProviderId.REPLICATE:
        return ReplicateAdapter(config.replicate, timeout=config.http_timeout_seconds, client=client)
    raise ConfigurationError(f"No adapter for provider: {provider.value}", error_code="UNKNOWN_PROVIDER")


__all__ = [
    "ProviderAdapter",
    "HttpProviderAdapter",
    "SimulatorAdapter",
    "EdenAdapter",
    "ReplicateAdapter",
    "simulated_payload",
    "select_provider",
    "build_adapter",
]
