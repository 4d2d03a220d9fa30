"""
Orion Studio Core Components

Provides foundational infrastructure for the render pipeline:
- Immutable provider configuration
- Error taxonomy shared by adapters, controller and poller
- Circuit breaker for provider resilience
"""

from .circuit_breaker import CircuitBreaker, CircuitState
from .config import ProviderConfig, get_config
from .errors import (
    ConfigurationError,
    RenderError,
    TransportError,
    UnknownJobError,
    UpstreamContractError,
    ValidationError,
)

__all__ = [
    "CircuitBreaker",
    "CircuitState",
    "ProviderConfig",
    "get_config",
    "RenderError",
    "ValidationError",
    "ConfigurationError",
    "TransportError",
    "UpstreamContractError",
    "UnknownJobError",
]
