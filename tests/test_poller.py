"""
Status Poller Tests

Covers:
1. Async provider end-to-end through the controller
2. Consecutive transport failures terminate with "upstream unreachable"
3. Transient failures below the threshold do not abort the job
4. Timeout and cancellation synthesize a terminal Failed
5. Exactly one terminal snapshot per session, no overlapping polls

Run with:
    python -m pytest tests/test_poller.py -v
"""

import asyncio
import os
import sys

import httpx
import pytest
from unittest.mock import AsyncMock

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import EdenConfig, PollingDefaults, ProviderConfig, ProviderName
from core.errors import TransportError, UnknownJobError
from services.generation import (
    Failed,
    GenerationRequest,
    JobHandle,
    PollingPolicy,
    Processing,
    ProviderId,
    Queued,
    RenderController,
    StatusPoller,
    Succeeded,
)

HANDLE = JobHandle(id="abc123", provider=ProviderId.EDEN)
FAST = PollingPolicy(interval_ms=0, timeout_ms=60_000, max_consecutive_transport_errors=3)


def collect(poller: StatusPoller) -> list:
    seen = []
    poller.on_status(seen.append)
    return seen


class TestEndToEnd:
    """Start through the controller, then poll to completion."""

    @pytest.mark.asyncio
    async def test_async_provider_progression(self):
        """Start returns a job id; two processing polls, then success with the asset."""
        responses = [
            httpx.Response(200, json={"job_id": "abc123"}),
            httpx.Response(200, json={"status": "processing"}),
            httpx.Response(200, json={"status": "processing"}),
            httpx.Response(200, json={"status": "succeeded", "video_resource_url": "https://x/y.mp4"}),
        ]
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: responses.pop(0)))
        config = ProviderConfig(
            provider=ProviderName.EDEN,
            force_simulator=False,
            eden=EdenConfig(api_key="k", api_base="https://eden.test/v2"),
        )
        controller = RenderController(config, client=client)

        outcome = await controller.start_job(GenerationRequest(prompt="15s coffee shop ad"))
        poller = StatusPoller(controller.poll_job, outcome.handle, FAST)
        seen = collect(poller)
        final = await poller.run()

        assert seen == [
            Processing(percent=50),
            Processing(percent=50),
            Succeeded(asset_url="https://x/y.mp4"),
        ]
        assert final == Succeeded(asset_url="https://x/y.mp4")
        assert responses == []


class TestTransportFailures:
    """Consecutive transport failures and recovery."""

    @pytest.mark.asyncio
    async def test_threshold_reached(self):
        """Three failures in a row with threshold 3 end the session."""
        poll_fn = AsyncMock(side_effect=[TransportError("timeout")] * 3)
        poller = StatusPoller(poll_fn, HANDLE, FAST)
        seen = collect(poller)

        final = await poller.run()

        assert final == Failed(reason="upstream unreachable")
        assert seen == [Failed(reason="upstream unreachable")]
        assert poll_fn.await_count == 3

    @pytest.mark.asyncio
    async def test_transient_failures_do_not_abort(self):
        poll_fn = AsyncMock(
            side_effect=[
                TransportError("timeout"),
                TransportError("502"),
                Processing(percent=40),
                TransportError("reset"),
                TransportError("reset"),
                Succeeded(asset_url="https://x/y.mp4"),
            ]
        )
        poller = StatusPoller(poll_fn, HANDLE, FAST)
        seen = collect(poller)

        final = await poller.run()

        assert final == Succeeded(asset_url="https://x/y.mp4")
        assert seen == [Processing(percent=40), Succeeded(asset_url="https://x/y.mp4")]
        assert sum(1 for s in seen if s.is_terminal) == 1

    @pytest.mark.asyncio
    async def test_unknown_job_is_terminal(self):
        poll_fn = AsyncMock(side_effect=UnknownJobError("simulator: unknown job id x"))
        final = await StatusPoller(poll_fn, HANDLE, FAST).run()
        assert final == Failed(reason="simulator: unknown job id x")


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestTimeoutAndCancellation:
    """Synthesized terminal snapshots."""

    @pytest.mark.asyncio
    async def test_timeout(self):
        clock = FakeClock()

        async def slow_job(handle):
            clock.now += 1.0
            return Processing(percent=10)

        policy = PollingPolicy(interval_ms=0, timeout_ms=2500)
        poller = StatusPoller(slow_job, HANDLE, policy, clock=clock)
        seen = collect(poller)

        final = await poller.run()

        assert final == Failed(reason="timeout")
        assert len(seen) == 4
        assert poller.attempts == 3

    @pytest.mark.asyncio
    async def test_cancel_stops_future_polls(self):
        poll_fn = AsyncMock(return_value=Queued())
        poller = StatusPoller(poll_fn, HANDLE, FAST)
        seen = []

        def on_status(status):
            seen.append(status)
            poller.cancel()

        poller.on_status(on_status)
        final = await poller.run()

        assert final == Failed(reason="polling aborted")
        assert seen == [Queued(), Failed(reason="polling aborted")]
        assert poll_fn.await_count == 1

    @pytest.mark.asyncio
    async def test_cancel_wakes_sleeping_poller(self):
        poll_fn = AsyncMock(return_value=Processing(percent=5))
        policy = PollingPolicy(interval_ms=60_000, timeout_ms=120_000)
        poller = StatusPoller(poll_fn, HANDLE, policy)
        poller.on_status(lambda status: poller.cancel())

        final = await asyncio.wait_for(poller.run(), timeout=2)
        assert final == Failed(reason="polling aborted")


class TestSessionRules:
    """One terminal snapshot per session and no overlapping polls."""

    @pytest.mark.asyncio
    async def test_first_poll_is_immediate(self):
        poll_fn = AsyncMock(return_value=Succeeded(asset_url="https://x/y.mp4"))
        policy = PollingPolicy(interval_ms=60_000)
        final = await asyncio.wait_for(StatusPoller(poll_fn, HANDLE, policy).run(), timeout=2)
        assert final.is_terminal

    @pytest.mark.asyncio
    async def test_polls_never_overlap(self):
        in_flight = 0
        max_in_flight = 0
        results = [Queued(), Processing(percent=30), Processing(percent=60), Succeeded(asset_url="https://x/z.mp4")]

        async def poll_fn(handle):
            nonlocal in_flight, max_in_flight
            in_flight += 1
            max_in_flight = max(max_in_flight, in_flight)
            await asyncio.sleep(0.001)
            in_flight -= 1
            return results.pop(0)

        await StatusPoller(poll_fn, HANDLE, PollingPolicy(interval_ms=1)).run()
        assert max_in_flight == 1

    @pytest.mark.asyncio
    async def test_second_concurrent_session_rejected(self):
        poll_fn = AsyncMock(return_value=Processing(percent=10))
        poller = StatusPoller(poll_fn, HANDLE, FAST)

        first = poller.snapshots()
        await first.__anext__()
        with pytest.raises(RuntimeError):
            await poller.snapshots().__anext__()
        await first.aclose()

    @pytest.mark.asyncio
    async def test_progress_regression_is_smoothed(self):
        poll_fn = AsyncMock(
            side_effect=[Processing(percent=70), Queued(), Succeeded(asset_url="https://x/y.mp4")]
        )
        poller = StatusPoller(poll_fn, HANDLE, FAST)
        seen = collect(poller)
        await poller.run()
        assert [s.progress for s in seen] == [70, 70, 100]

    @pytest.mark.asyncio
    async def test_callback_errors_do_not_stop_polling(self):
        poll_fn = AsyncMock(side_effect=[Processing(percent=10), Succeeded(asset_url="https://x/y.mp4")])
        poller = StatusPoller(poll_fn, HANDLE, FAST)

        def broken(status):
            raise ValueError("display crashed")

        async def recorder(status):
            seen.append(status)

        seen = []
        poller.on_status(broken)
        poller.on_status(recorder)
        final = await poller.run()

        assert final == Succeeded(asset_url="https://x/y.mp4")
        assert len(seen) == 2


class TestPollingPolicy:
    """Policy construction and validation."""

    def test_from_defaults(self):
        policy = PollingPolicy.from_defaults(PollingDefaults(interval_ms=250, timeout_ms=5000))
        assert policy.interval_ms == 250
        assert policy.timeout_ms == 5000
        assert policy.max_consecutive_transport_errors == 3

    @pytest.mark.parametrize(
        "kwargs",
        [{"interval_ms": -1}, {"timeout_ms": 0}, {"max_consecutive_transport_errors": 0}],
    )
    def test_rejects_invalid(self, kwargs):
        with pytest.raises(ValueError):
            PollingPolicy(**kwargs)
