"""
Status Poller

Drives ``poll_job`` for one handle on a fixed interval until the job reaches
a terminal state, the session times out, or the subscriber cancels.

Each session ends with exactly one terminal snapshot. Transport failures are
tolerated until ``max_consecutive_transport_errors`` happen in a row.

Usage:
    poller = StatusPoller(controller.poll_job, handle)
    poller.on_status(lambda status: print(status.to_dict()))
    final = await poller.run()

    # or, as an async iterator
    async for status in StatusPoller(controller.poll_job, handle).snapshots():
        ...
"""

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Optional

from core.config import PollingDefaults
from core.errors import TransportError, UnknownJobError, UpstreamContractError

from .models import Failed, JobHandle, JobStatus
from .normalizer import reconcile

logger = logging.getLogger(__name__)

PollFn = Callable[[JobHandle], Awaitable[JobStatus]]
StatusCallback = Callable[[JobStatus], None]


@dataclass(frozen=True)
class PollingPolicy:
    """Interval, deadline and transport-failure budget for one session."""
    interval_ms: int = 900
    timeout_ms: int = 180_000
    max_consecutive_transport_errors: int = 3

    def __post_init__(self):
        if self.interval_ms < 0:
            raise ValueError("interval_ms must not be negative")
        if self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive")
        if self.max_consecutive_transport_errors < 1:
            raise ValueError("max_consecutive_transport_errors must be at least 1")

    @classmethod
    def from_defaults(cls, defaults: PollingDefaults) -> "PollingPolicy":
        return cls(
            interval_ms=defaults.interval_ms,
            timeout_ms=defaults.timeout_ms,
            max_consecutive_transport_errors=defaults.max_consecutive_transport_errors,
        )


class StatusPoller:
    """Polls a single job handle; one instance per polling session."""

    def __init__(
        self,
        poll_fn: PollFn,
        handle: JobHandle,
        policy: Optional[PollingPolicy] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            poll_fn: Coroutine function returning a canonical snapshot, usually
                ``RenderController.poll_job``
            handle: Job to poll; the poller holds a reference, not ownership
            policy: Polling policy, defaults to PollingPolicy()
            clock: Monotonic clock in seconds, injectable for tests
        """
        self.poll_fn = poll_fn
        self.handle = handle
        self.policy = policy or PollingPolicy()
        self._clock = clock
        self._cancelled = asyncio.Event()
        self._callbacks: list[StatusCallback] = []
        self._running = False

        self.last_status: Optional[JobStatus] = None
        self.attempts = 0
        self.consecutive_transport_errors = 0

    def on_status(self, callback: StatusCallback):
        """Register a callback (sync or async) for every emitted snapshot."""
        self._callbacks.append(callback)

    def cancel(self):
        """Stop before the next scheduled poll. An in-flight poll is not interrupted."""
        if not self._cancelled.is_set():
            logger.info(f"Polling cancelled for {self.handle.provider.value}/{self.handle.id}")
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def finished(self) -> bool:
        return self.last_status is not None and self.last_status.is_terminal

    async def _emit(self, status: JobStatus):
        self.last_status = status
        for callback in self._callbacks:
            try:
                result = callback(status)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Status callback error: {e}")

    async def _sleep(self, seconds: float):
        """Wait for the next tick, waking early on cancellation."""
        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(self._cancelled.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def _attempt(self) -> Optional[JobStatus]:
        """
        Run one poll. Returns a snapshot, or None when a transport failure
        should be retried on the next tick.
        """
        self.attempts += 1
        try:
            status = await self.poll_fn(self.handle)
        except TransportError as e:
            self.consecutive_transport_errors += 1
            limit = self.policy.max_consecutive_transport_errors
            logger.warning(
                f"Poll attempt {self.attempts} for {self.handle.id} failed "
                f"({self.consecutive_transport_errors}/{limit}): {e}"
            )
            if self.consecutive_transport_errors >= limit:
                return Failed(reason="upstream unreachable")
            return None
        except (UnknownJobError, UpstreamContractError) as e:
            return Failed(reason=str(e))

        self.consecutive_transport_errors = 0
        return status

    async def snapshots(self) -> AsyncIterator[JobStatus]:
        """
        Yield snapshots until the session ends.

        The first poll happens immediately; later polls wait
        ``interval_ms`` after the previous attempt resolved, so no two polls
        for this handle are ever in flight at once.
        """
        if self._running:
            raise RuntimeError("StatusPoller is already running")
        if self.finished:
            raise RuntimeError("StatusPoller session already ended")
        self._running = True

        deadline = self._clock() + self.policy.timeout_ms / 1000
        interval = self.policy.interval_ms / 1000
        first = True

        try:
            while True:
                if not first:
                    await self._sleep(min(interval, max(0.0, deadline - self._clock())))
                first = False

                if self.cancelled:
                    status: Optional[JobStatus] = Failed(reason="polling aborted")
                elif self._clock() >= deadline:
                    logger.warning(f"Polling timed out for {self.handle.id}")
                    status = Failed(reason="timeout")
                else:
                    status = await self._attempt()
                    if status is None:
                        continue

                status = reconcile(self.last_status, status)
                await self._emit(status)
                yield status

                if status.is_terminal:
                    logger.info(
                        f"Polling finished for {self.handle.id}: {status.state.value} "
                        f"after {self.attempts} attempt(s)"
                    )
                    return
        finally:
            self._running = False

    async def run(self) -> JobStatus:
        """Poll to completion and return the terminal snapshot."""
        async for _ in self.snapshots():
            pass
        return self.last_status
