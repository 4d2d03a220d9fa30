"""
Render Controller Tests

Covers:
1. Simulator mode resolves synchronously (no polling)
2. Empty prompts are rejected before any network call
3. Missing credentials: simulator fallback vs. hard failure
4. Terminal snapshots are idempotent across polls
5. Start-time transport and contract failures become Failed outcomes

Run with:
    python -m pytest tests/test_controller.py -v
"""

import os
import sys
from typing import Any

import httpx
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import (
    SAMPLE_VIDEO_URL,
    CredentialPolicy,
    EdenConfig,
    ProviderConfig,
    ProviderName,
    SimulatorConfig,
    SimulatorMode,
)
from core.errors import (
    ConfigurationError,
    TransportError,
    UnknownJobError,
    UpstreamContractError,
    ValidationError,
)
from services.generation import (
    Failed,
    GenerationRequest,
    JobHandle,
    Processing,
    ProviderId,
    RenderController,
    StartOutcome,
    Succeeded,
)
from services.generation.providers import ProviderAdapter


class ScriptedAdapter(ProviderAdapter):
    """Adapter whose start/poll results are scripted per call."""

    provider_id = ProviderId.EDEN

    def __init__(self, start_result: Any = None, polls: list = None):
        self.start_result = start_result
        self.polls = list(polls or [])
        self.start_calls = 0
        self.poll_calls = 0

    async def start(self, request):
        self.start_calls += 1
        if isinstance(self.start_result, Exception):
            raise self.start_result
        return self.start_result

    async def poll(self, handle):
        self.poll_calls += 1
        result = self.polls.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def eden_config(**overrides) -> ProviderConfig:
    return ProviderConfig(
        provider=ProviderName.EDEN,
        force_simulator=False,
        eden=EdenConfig(api_key="eden-key", api_base="https://eden.test/v2"),
        **overrides,
    )


def recording_client(responses: list, requests: list) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return responses.pop(0)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


EDEN_HANDLE = JobHandle(id="abc123", provider=ProviderId.EDEN)


class TestSimulatorMode:
    """Default configuration runs end-to-end without credentials."""

    @pytest.mark.asyncio
    async def test_synchronous_success(self):
        """Simulator mode returns a terminal success with the sample asset."""
        controller = RenderController(ProviderConfig())
        outcome = await controller.start_job(GenerationRequest(prompt="15s coffee shop ad"))

        assert outcome.is_synchronous
        assert outcome.handle is None
        assert outcome.status == Succeeded(asset_url=SAMPLE_VIDEO_URL)

    @pytest.mark.asyncio
    async def test_delayed_simulator_polls_to_success(self):
        config = ProviderConfig(simulator=SimulatorConfig(mode=SimulatorMode.DELAYED))
        controller = RenderController(config)
        outcome = await controller.start_job(GenerationRequest(prompt="teaser"))

        assert outcome.handle.provider == ProviderId.SIMULATOR
        status = await controller.poll_job(outcome.handle)
        assert status == Processing(percent=0)

    @pytest.mark.asyncio
    async def test_simulator_restart_is_unknown_job(self):
        config = ProviderConfig(simulator=SimulatorConfig(mode=SimulatorMode.DELAYED))
        controller = RenderController(config)
        with pytest.raises(UnknownJobError):
            await controller.poll_job(JobHandle(id="sim-lost", provider=ProviderId.SIMULATOR))


class TestValidation:
    """Inputs rejected before any network call."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("prompt", ["", "   ", None])
    async def test_empty_prompt_makes_no_calls(self, prompt):
        requests: list = []
        controller = RenderController(eden_config(), client=recording_client([], requests))

        with pytest.raises(ValidationError):
            await controller.start_job(GenerationRequest(prompt=prompt))
        assert requests == []

    @pytest.mark.asyncio
    async def test_missing_job_id(self):
        controller = RenderController(ProviderConfig())
        with pytest.raises(ValidationError):
            await controller.poll_job(JobHandle(id="  ", provider=ProviderId.SIMULATOR))

    @pytest.mark.asyncio
    async def test_sync_handle_is_not_pollable(self):
        controller = RenderController(ProviderConfig())
        with pytest.raises(ValidationError):
            await controller.poll_job(JobHandle(id="x", provider=ProviderId.SYNC))

    @pytest.mark.asyncio
    async def test_inactive_provider(self):
        controller = RenderController(ProviderConfig())
        with pytest.raises(UnknownJobError):
            await controller.poll_job(JobHandle(id="x", provider=ProviderId.REPLICATE))


class TestCredentialPolicy:
    """Missing credentials for a real provider."""

    def test_falls_back_to_simulator(self):
        config = ProviderConfig(provider=ProviderName.EDEN, force_simulator=False)
        controller = RenderController(config)
        assert controller.active_provider == ProviderId.SIMULATOR
        assert "eden" in controller.fallback_reason

    def test_fail_policy_raises(self):
        config = ProviderConfig(
            provider=ProviderName.EDEN,
            force_simulator=False,
            credential_policy=CredentialPolicy.FAIL,
        )
        with pytest.raises(ConfigurationError):
            RenderController(config)

    def test_real_provider_selected(self):
        controller = RenderController(eden_config())
        assert controller.active_provider == ProviderId.EDEN
        assert controller.fallback_reason is None


class TestStartOutcomes:
    """start_job returns exactly one of handle or terminal status."""

    @pytest.mark.asyncio
    async def test_async_provider_returns_handle(self):
        requests: list = []
        client = recording_client([httpx.Response(200, json={"job_id": "abc123"})], requests)
        controller = RenderController(eden_config(), client=client)

        outcome = await controller.start_job(GenerationRequest(prompt="ad"))
        assert outcome.handle.id == "abc123"
        assert outcome.status is None

    @pytest.mark.asyncio
    async def test_transport_error_becomes_failed(self):
        adapter = ScriptedAdapter(
            start_result=TransportError("eden: HTTP 401", error_code="HTTP_401", status_code=401)
        )
        controller = RenderController(eden_config(), adapters={ProviderId.EDEN: adapter})

        outcome = await controller.start_job(GenerationRequest(prompt="ad"))
        assert isinstance(outcome.status, Failed)
        assert outcome.status.reason.startswith("upstream unreachable")

    @pytest.mark.asyncio
    async def test_contract_error_becomes_failed(self):
        adapter = ScriptedAdapter(start_result=UpstreamContractError("eden: no job id"))
        controller = RenderController(eden_config(), adapters={ProviderId.EDEN: adapter})

        outcome = await controller.start_job(GenerationRequest(prompt="ad"))
        assert outcome.status == Failed(reason="eden: no job id")

    @pytest.mark.asyncio
    async def test_provider_hint_selects_simulator(self):
        adapter = ScriptedAdapter(start_result=StartOutcome(handle=EDEN_HANDLE))
        controller = RenderController(eden_config(), adapters={ProviderId.EDEN: adapter})

        outcome = await controller.start_job(GenerationRequest(prompt="ad", provider_hint="simulator"))
        assert outcome.status == Succeeded(asset_url=SAMPLE_VIDEO_URL)
        assert adapter.start_calls == 0

    @pytest.mark.asyncio
    async def test_unknown_provider_hint_ignored(self):
        adapter = ScriptedAdapter(start_result=StartOutcome(handle=EDEN_HANDLE))
        controller = RenderController(eden_config(), adapters={ProviderId.EDEN: adapter})

        outcome = await controller.start_job(GenerationRequest(prompt="ad", provider_hint="sora"))
        assert outcome.handle == EDEN_HANDLE


class TestPolling:
    """poll_job normalizes and enforces snapshot ordering."""

    @pytest.mark.asyncio
    async def test_terminal_state_is_idempotent(self):
        """Once Succeeded, later polls return the same result without calling the provider."""
        adapter = ScriptedAdapter(
            polls=[
                {"status": "succeeded", "video_resource_url": "https://x/y.mp4"},
                {"status": "processing"},
            ]
        )
        controller = RenderController(eden_config(), adapters={ProviderId.EDEN: adapter})

        first = await controller.poll_job(EDEN_HANDLE)
        second = await controller.poll_job(EDEN_HANDLE)
        third = await controller.poll_job(EDEN_HANDLE)

        assert first == second == third == Succeeded(asset_url="https://x/y.mp4")
        assert adapter.poll_calls == 1

    @pytest.mark.asyncio
    async def test_progress_never_decreases(self):
        adapter = ScriptedAdapter(
            polls=[
                {"status": "processing", "progress": 80},
                {"status": "processing", "progress": 20},
            ]
        )
        controller = RenderController(eden_config(), adapters={ProviderId.EDEN: adapter})

        assert (await controller.poll_job(EDEN_HANDLE)).progress == 80
        assert (await controller.poll_job(EDEN_HANDLE)).progress == 80

    @pytest.mark.asyncio
    async def test_malformed_poll_becomes_failed(self):
        adapter = ScriptedAdapter(polls=[{"unexpected": True}])
        controller = RenderController(eden_config(), adapters={ProviderId.EDEN: adapter})

        status = await controller.poll_job(EDEN_HANDLE)
        assert isinstance(status, Failed)
        assert "missing status field" in status.reason

    @pytest.mark.asyncio
    async def test_contract_error_on_poll_becomes_failed(self):
        adapter = ScriptedAdapter(polls=[UpstreamContractError("eden: garbage")])
        controller = RenderController(eden_config(), adapters={ProviderId.EDEN: adapter})

        assert await controller.poll_job(EDEN_HANDLE) == Failed(reason="eden: garbage")

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self):
        adapter = ScriptedAdapter(polls=[TransportError("eden: timeout"), {"status": "queued"}])
        controller = RenderController(eden_config(), adapters={ProviderId.EDEN: adapter})

        with pytest.raises(TransportError):
            await controller.poll_job(EDEN_HANDLE)
        assert (await controller.poll_job(EDEN_HANDLE)).progress == 0

    @pytest.mark.asyncio
    async def test_jobs_are_tracked_independently(self):
        adapter = ScriptedAdapter(
            polls=[
                {"status": "succeeded", "url": "https://x/a.mp4"},
                {"status": "processing", "progress": 10},
            ]
        )
        controller = RenderController(eden_config(), adapters={ProviderId.EDEN: adapter})

        await controller.poll_job(EDEN_HANDLE)
        other = await controller.poll_job(JobHandle(id="other", provider=ProviderId.EDEN))
        assert other == Processing(percent=10)

    @pytest.mark.asyncio
    async def test_describe(self):
        controller = RenderController(eden_config())
        info = controller.describe()
        assert info["provider"] == "eden"
        assert info["circuit_breakers"]["eden"]["state"] == "closed"
        await controller.close()
