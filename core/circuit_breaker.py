"""
Circuit Breaker for Provider Calls

Every real ProviderAdapter (and the copy writer) owns one breaker. After a
run of transport failures the breaker opens and rejects calls immediately,
so a dead provider costs the StatusPoller one fast TransportError per tick
instead of a full HTTP timeout.

States:
- CLOSED: calls pass through
- OPEN: calls are rejected until ``recovery_timeout`` has elapsed
- HALF_OPEN: a few trial calls decide between CLOSED and OPEN

Only failures that retrying could fix count against the breaker. A 401 from a
provider means a bad key, not an outage.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from .errors import TransportError

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


def counts_as_outage(error: BaseException) -> bool:
    """Whether ``error`` should move the breaker towards OPEN."""
    if isinstance(error, TransportError):
        return error.retryable
    return True


@dataclass
class BreakerPolicy:
    """Thresholds for one provider's breaker."""
    failure_threshold: int = 5  # consecutive outages before opening
    recovery_timeout: float = 30.0  # seconds OPEN before trial calls
    half_open_max_calls: int = 3
    success_threshold: int = 2  # trial successes needed to close
    call_timeout: float = 60.0  # ceiling on one call, in seconds


PROVIDER_POLICIES = {
    "eden": BreakerPolicy(failure_threshold=5, recovery_timeout=30.0),
    "replicate": BreakerPolicy(failure_threshold=5, recovery_timeout=30.0),
    "openai": BreakerPolicy(failure_threshold=3, recovery_timeout=60.0),
}


class CircuitBreakerOpen(Exception):
    """Raised instead of calling a provider whose breaker is open."""

    def __init__(self, service_name: str, retry_after: float):
        self.service_name = service_name
        self.retry_after = max(0.0, retry_after)
        super().__init__(
            f"{service_name} circuit open; retry after {self.retry_after:.1f}s"
        )


class CircuitBreaker:
    """
    Breaker guarding one provider.

    Usage:
        breaker = breaker_for("eden", http_timeout=30.0)
        response = await breaker.call(send_request, "GET", url)
    """

    def __init__(
        self,
        service_name: str,
        policy: Optional[BreakerPolicy] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.service_name = service_name
        self.policy = policy or BreakerPolicy()
        self._clock = clock
        self._lock = asyncio.Lock()

        self._state = CircuitState.CLOSED
        self._opened_at = 0.0
        self._consecutive_failures = 0
        self._trial_calls = 0
        self._trial_successes = 0
        self._trial_round = 0

        self.total_calls = 0
        self.total_failures = 0
        self.total_rejected = 0

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == CircuitState.OPEN

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def retry_after(self) -> float:
        """Seconds until an OPEN breaker admits a trial call (0 otherwise)."""
        if self._state != CircuitState.OPEN:
            return 0.0
        return max(0.0, self.policy.recovery_timeout - (self._clock() - self._opened_at))

    def _move(self, state: CircuitState):
        if state == self._state:
            return
        logger.warning(f"Circuit [{self.service_name}] {self._state.value} -> {state.value}")
        self._state = state
        if state == CircuitState.OPEN:
            self._opened_at = self._clock()
        elif state == CircuitState.HALF_OPEN:
            self._trial_round += 1
            self._trial_calls = 0
            self._trial_successes = 0
        else:
            self._consecutive_failures = 0

    async def _admit(self) -> Optional[int]:
        """
        Let a call through or raise CircuitBreakerOpen.

        Returns the trial round a HALF_OPEN call occupies, else None.
        """
        async with self._lock:
            self.total_calls += 1
            if self._state == CircuitState.OPEN and self.retry_after <= 0:
                self._move(CircuitState.HALF_OPEN)

            if self._state == CircuitState.OPEN:
                self.total_rejected += 1
                raise CircuitBreakerOpen(self.service_name, self.retry_after)

            if self._state == CircuitState.HALF_OPEN:
                if self._trial_calls >= self.policy.half_open_max_calls:
                    self.total_rejected += 1
                    raise CircuitBreakerOpen(self.service_name, self.policy.recovery_timeout)
                self._trial_calls += 1
                return self._trial_round
            return None

    async def _record(self, error: Optional[BaseException]):
        async with self._lock:
            if error is None:
                self._consecutive_failures = 0
                if self._state == CircuitState.HALF_OPEN:
                    self._trial_successes += 1
                    if self._trial_successes >= self.policy.success_threshold:
                        self._move(CircuitState.CLOSED)
                return

            if not counts_as_outage(error):
                return

            self.total_failures += 1
            self._consecutive_failures += 1
            logger.warning(
                f"Circuit [{self.service_name}] failure "
                f"{self._consecutive_failures}/{self.policy.failure_threshold}: {error}"
            )
            if self._state == CircuitState.HALF_OPEN:
                self._move(CircuitState.OPEN)
            elif self._consecutive_failures >= self.policy.failure_threshold:
                self._move(CircuitState.OPEN)

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """
        Await ``func(*args, **kwargs)`` under breaker protection.

        Raises:
            CircuitBreakerOpen: the breaker rejected the call
            asyncio.TimeoutError: the call exceeded ``policy.call_timeout``
            Exception: whatever ``func`` raised
        """
        trial_round = await self._admit()
        try:
            result = await asyncio.wait_for(func(*args, **kwargs), timeout=self.policy.call_timeout)
        except asyncio.CancelledError:
            self._release_trial(trial_round)
            raise
        except Exception as e:
            await self._record(e)
            raise
        await self._record(None)
        return result

    def _release_trial(self, trial_round: Optional[int]):
        # Cancelled calls give their trial slot back.
        if (
            trial_round is not None
            and self._state == CircuitState.HALF_OPEN
            and trial_round == self._trial_round
            and self._trial_calls > 0
        ):
            self._trial_calls -= 1

    def reset(self):
        """Force the breaker back to CLOSED."""
        self._move(CircuitState.CLOSED)
        self._consecutive_failures = 0

    def snapshot(self) -> dict:
        """State and counters, for health endpoints."""
        return {
            "service": self.service_name,
            "state": self._state.value,
            "consecutive_failures": self._consecutive_failures,
            "retry_after": round(self.retry_after, 1),
            "total_calls": self.total_calls,
            "total_failures": self.total_failures,
            "total_rejected": self.total_rejected,
        }


def breaker_for(provider: str, http_timeout: float = 60.0) -> CircuitBreaker:
    """
    Build a breaker for ``provider`` ('eden', 'replicate', 'openai').

    The per-call ceiling sits a little above the HTTP client timeout so the
    client's own timeout normally fires first.
    """
    base = PROVIDER_POLICIES.get(provider, BreakerPolicy())
    policy = BreakerPolicy(
        failure_threshold=base.failure_threshold,
        recovery_timeout=base.recovery_timeout,
        half_open_max_calls=base.half_open_max_calls,
        success_threshold=base.success_threshold,
        call_timeout=http_timeout + 5.0,
    )
    return CircuitBreaker(provider, policy)
