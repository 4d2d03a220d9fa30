"""
Render HTTP + SSE Server

FastAPI server that provides:
- POST /api/render - Start a render job (handle or immediate result)
- GET /api/status - Poll a job by jobId/provider
- GET /api/monitor/{job_id} - SSE stream driven by a server-side poller
- POST /api/generate-copy - Script, caption and hashtags for a brief
- GET /api/env-check - Which credentials are configured
- GET /api/eden-probe - Try the Eden endpoint with a test clip
- GET /health - Health check

Usage:
    # Start server
    python -m uvicorn services.api.server:app --host 0.0.0.0 --port 8765

    # Or via main.py
    python main.py server
"""

import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from core.config import ProviderConfig, get_config
from core.errors import (
    ConfigurationError,
    RenderError,
    TransportError,
    UnknownJobError,
    UpstreamContractError,
    ValidationError,
)
from services.copywriter import CopyDraft, CopyWriter
from services.generation import (
    JobHandle,
    PollingPolicy,
    ProviderId,
    RenderController,
    StatusPoller,
)
from services.generation.providers import EdenAdapter

from .schemas import (
    CopyRequest,
    EnvCheckResponse,
    ErrorResponse,
    RenderRequest,
    RenderResponse,
    StatusResponse,
)

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {
    ValidationError: 400,
    UnknownJobError: 404,
    ConfigurationError: 503,
    TransportError: 502,
    UpstreamContractError: 502,
}

ERROR_RESPONSES = {
    code: {"model": ErrorResponse}
    for code in sorted(set(ERROR_STATUS_CODES.values()))
}


def _status_code_for(error: RenderError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES.items():
        if isinstance(error, error_type):
            return status_code
    return 500


def _format_sse(data: dict) -> str:
    """Format data as SSE event."""
    return f"data: {json.dumps(data)}\n\n"


def _parse_handle(
    job_id: Optional[str],
    provider: Optional[str],
    created_at: Optional[str],
    default_provider: ProviderId,
) -> JobHandle:
    if not job_id or not job_id.strip():
        raise ValidationError("Missing jobId", error_code="MISSING_JOB_ID")

    if provider:
        try:
            provider_id = ProviderId(provider.strip().lower())
        except ValueError as e:
            raise ValidationError(f"Unknown provider: {provider}", error_code="INVALID_PROVIDER") from e
    else:
        provider_id = default_provider

    if created_at:
        try:
            created = datetime.fromisoformat(created_at.replace("Z", "+00:00"))
        except ValueError as e:
            raise ValidationError(f"Invalid createdAt: {created_at}", error_code="INVALID_CREATED_AT") from e
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        return JobHandle(id=job_id.strip(), provider=provider_id, created_at=created)

    return JobHandle(id=job_id.strip(), provider=provider_id)


def create_app(
    config: Optional[ProviderConfig] = None,
    controller: Optional[RenderController] = None,
    copywriter: Optional[CopyWriter] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """
    Build the API application.

    Args:
        config: Provider configuration; defaults to the process-wide config
        controller: Optional pre-built RenderController (tests inject fakes)
        copywriter: Optional pre-built CopyWriter
        http_client: Optional HTTP client for the Eden probe
    """
    config = config or get_config()
    controller = controller or RenderController(config)
    copywriter = copywriter or CopyWriter(config.copy, timeout=config.http_timeout_seconds)
    eden_probe = EdenAdapter(config.eden, timeout=config.http_timeout_seconds, client=http_client)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events."""
        logger.info(f"Starting render API (provider={controller.active_provider.value})...")
        for issue in config.validate():
            logger.warning(f"Config: {issue}")

        yield

        logger.info("Shutting down render API...")
        await controller.close()
        await copywriter.close()
        await eden_probe.close()

    app = FastAPI(
        title="Orion Studio Render API",
        description="Provider-agnostic render jobs with canonical status polling",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.controller = controller
    app.state.copywriter = copywriter

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.allowed_origins),
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.exception_handler(RenderError)
    async def render_error_handler(request: Request, exc: RenderError):
        status_code = _status_code_for(exc)
        log = logger.warning if status_code < 500 else logger.error
        log(f"{request.method} {request.url.path} -> {status_code}: {exc}")
        return JSONResponse(
            status_code=status_code,
            content={"error": str(exc), "code": exc.error_code},
        )

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {
            "status": "healthy",
            **controller.describe(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/api/env-check", response_model=EnvCheckResponse)
    async def env_check():
        """Report which credentials are configured, never their values."""
        return EnvCheckResponse(
            **config.env_presence(),
            provider=controller.active_provider.value,
        )

    @app.get("/api/eden-probe", responses=ERROR_RESPONSES)
    async def eden_probe_route(path: Optional[str] = None):
        """
        POST a test clip to the Eden endpoint and report what came back.

        Diagnostic only: the HTTP status and a short body snippet are returned
        as data, whatever they are. Pass ``path`` to try another route.
        """
        return await eden_probe.probe(path)

    @app.post(
        "/api/render",
        response_model=RenderResponse,
        response_model_exclude_none=True,
        responses=ERROR_RESPONSES,
    )
    async def render(body: RenderRequest):
        """
        Start a render.

        Returns a handle (``jobId``, ``provider``, ``createdAt``) to poll via
        /api/status, or a terminal result when the provider resolved at once.
        """
        outcome = await controller.start_job(body.to_generation_request())
        return RenderResponse.from_outcome(outcome)

    @app.get(
        "/api/status",
        response_model=StatusResponse,
        response_model_exclude_none=True,
        responses=ERROR_RESPONSES,
    )
    async def status(
        jobId: Optional[str] = None,
        provider: Optional[str] = None,
        createdAt: Optional[str] = None,
    ):
        """Poll a job once and return its canonical snapshot."""
        handle = _parse_handle(jobId, provider, createdAt, controller.active_provider)
        snapshot = await controller.poll_job(handle)
        return StatusResponse.from_status(snapshot)

    @app.get("/api/monitor/{job_id}", responses=ERROR_RESPONSES)
    async def monitor(
        job_id: str,
        provider: Optional[str] = None,
        createdAt: Optional[str] = None,
        intervalMs: Optional[int] = None,
        timeoutMs: Optional[int] = None,
    ):
        """
        SSE stream of canonical snapshots until the job ends.

        Usage:
            curl -N "http://localhost:8765/api/monitor/abc123?provider=eden"
        """
        handle = _parse_handle(job_id, provider, createdAt, controller.active_provider)
        if not handle.needs_polling:
            raise ValidationError(
                "Synchronous results have no job to monitor", error_code="SYNC_HANDLE"
            )
        defaults = PollingPolicy.from_defaults(config.polling)
        try:
            policy = PollingPolicy(
                interval_ms=intervalMs if intervalMs is not None else defaults.interval_ms,
                timeout_ms=timeoutMs if timeoutMs is not None else defaults.timeout_ms,
                max_consecutive_transport_errors=defaults.max_consecutive_transport_errors,
            )
        except ValueError as e:
            raise ValidationError(str(e), error_code="INVALID_POLICY") from e
        poller = StatusPoller(controller.poll_job, handle, policy)

        async def event_stream():
            yield _format_sse({"type": "connected", **handle.to_dict()})
            try:
                async for snapshot in poller.snapshots():
                    yield _format_sse({"type": "status", "jobId": handle.id, **snapshot.to_dict()})
            finally:
                # Client went away: stop polling before the next tick.
                poller.cancel()

        return StreamingResponse(
            event_stream(),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",
            },
        )

    @app.post("/api/generate-copy", response_model=CopyDraft, responses=ERROR_RESPONSES)
    async def generate_copy(body: CopyRequest):
        """Generate script, caption and hashtags for a brief."""
        return await copywriter.generate_copy(body.prompt)

    return app


app = create_app()
