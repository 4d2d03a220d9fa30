"""
Error taxonomy for render jobs.

Every failure that crosses a component boundary is one of these types.
Business-level failures (a provider saying "failed") are never raised; they
are carried as a ``Failed`` job status instead.
"""

from typing import Optional


class RenderError(Exception):
    """Base class for all render pipeline errors."""

    def __init__(self, message: str, error_code: str = None, provider: str = None):
        self.error_code = error_code
        self.provider = provider
        super().__init__(message)


class ValidationError(RenderError):
    """Input rejected before any network call (empty prompt, missing job id)."""


class ConfigurationError(RenderError):
    """A non-simulator provider was selected without its credentials."""


class TransportError(RenderError):
    """The network call itself failed, or the response was not usable JSON."""

    def __init__(
        self,
        message: str,
        error_code: str = None,
        provider: str = None,
        status_code: Optional[int] = None,
    ):
        self.status_code = status_code
        super().__init__(message, error_code=error_code, provider=provider)

    @property
    def retryable(self) -> bool:
        """Timeouts, connection failures, 429 and 5xx are worth another attempt."""
        if self.status_code is None:
            return True
        return self.status_code == 429 or self.status_code >= 500


class UpstreamContractError(RenderError):
    """Provider answered with JSON that lacks a job id or asset URL."""


class UnknownJobError(RenderError):
    """The adapter does not recognise the polled job id."""
