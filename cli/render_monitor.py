#!/usr/bin/env python3
"""
CLI Render Monitor

Starts a render through the HTTP API and polls /api/status until the job
ends, drawing a live progress bar.

Usage:
    python -m cli.render_monitor "15s coffee shop ad"
    python -m cli.render_monitor --server http://localhost:8765 --tone Bold "launch teaser"
    python -m cli.render_monitor --job abc123 --provider eden
"""

import argparse
import asyncio
from datetime import datetime
from typing import Any, Optional

import aiohttp

from core.errors import TransportError, UnknownJobError, ValidationError
from services.generation import (
    JobHandle,
    JobStatus,
    PollingPolicy,
    ProviderId,
    StatusPoller,
    Succeeded,
)


# ANSI color codes
class Colors:
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"

    # Clear line
    CLEAR_LINE = "\033[2K\r"


def colored(text: str, color: str) -> str:
    """Apply color to text."""
    return f"{color}{text}{Colors.RESET}"


def progress_bar(percent: float, width: int = 30) -> str:
    """Create a visual progress bar."""
    percent = max(0.0, min(100.0, percent))
    filled = int(percent / 100 * width)
    bar = "█" * filled + "░" * (width - filled)

    if percent >= 100:
        color = Colors.GREEN
    elif percent >= 50:
        color = Colors.CYAN
    elif percent >= 25:
        color = Colors.YELLOW
    else:
        color = Colors.WHITE

    return colored(f"[{bar}]", color) + f" {percent:5.1f}%"


def format_status(status: JobStatus) -> str:
    """One display line for a snapshot."""
    state = status.state.value
    if status.is_terminal:
        if isinstance(status, Succeeded):
            return f"✅ {colored('SUCCEEDED', Colors.GREEN)} {status.asset_url}"
        return f"❌ {colored('FAILED', Colors.RED)} {status.reason}"
    return f"{Colors.CLEAR_LINE}⏳ {progress_bar(status.progress)} {colored(state, Colors.DIM)}"


class RenderMonitor:
    """HTTP client for the render API plus a client-side StatusPoller."""

    def __init__(
        self,
        server_url: str = "http://localhost:8765",
        policy: Optional[PollingPolicy] = None,
        session: Optional[aiohttp.ClientSession] = None,
        request_timeout: float = 30.0,
    ):
        self.server_url = server_url.rstrip("/")
        self.policy = policy or PollingPolicy()
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=request_timeout)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def close(self):
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    async def _request(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        """
        Call the API and decode its JSON body.

        Raises:
            ValidationError: HTTP 400
            UnknownJobError: HTTP 404
            TransportError: connection failure, timeout, other non-2xx, non-JSON
        """
        session = await self._get_session()
        url = f"{self.server_url}{path}"
        try:
            async with session.request(method, url, **kwargs) as response:
                try:
                    data = await response.json()
                except (aiohttp.ContentTypeError, ValueError) as e:
                    raise TransportError(
                        f"non-JSON response from {path} (HTTP {response.status})",
                        error_code="BAD_CONTENT_TYPE",
                        status_code=response.status,
                    ) from e
                status = response.status
        except asyncio.TimeoutError as e:
            raise TransportError(f"timeout calling {path}", error_code="TIMEOUT") from e
        except aiohttp.ClientError as e:
            raise TransportError(f"request to {path} failed: {e}", error_code="REQUEST_ERROR") from e

        message = data.get("error", "") if isinstance(data, dict) else ""
        code = data.get("code") if isinstance(data, dict) else None
        if status == 400:
            raise ValidationError(message or "bad request", error_code=code)
        if status == 404:
            raise UnknownJobError(message or "job not found", error_code=code)
        if status >= 300:
            raise TransportError(
                message or f"HTTP {status}", error_code=f"HTTP_{status}", status_code=status
            )
        return data

    async def start_render(
        self,
        prompt: str,
        tone: Optional[str] = None,
        format: Optional[str] = None,
    ) -> dict[str, Any]:
        """POST /api/render; returns a handle dict or a terminal result dict."""
        body = {"prompt": prompt, "tone": tone, "format": format}
        return await self._request("POST", "/api/render", json={k: v for k, v in body.items() if v})

    async def poll_status(self, handle: JobHandle) -> JobStatus:
        """GET /api/status for one handle."""
        data = await self._request(
            "GET",
            "/api/status",
            params={
                "jobId": handle.id,
                "provider": handle.provider.value,
                "createdAt": handle.created_at.isoformat(),
            },
        )
        try:
            return JobStatus.from_dict(data)
        except ValueError as e:
            raise TransportError(f"unrecognised status payload: {data}", error_code="BAD_STATUS") from e

    async def watch(self, handle: JobHandle) -> JobStatus:
        """Poll ``handle`` to completion, printing each snapshot."""
        poller = StatusPoller(self.poll_status, handle, self.policy)

        def show(status: JobStatus):
            if status.is_terminal:
                print()
                print(format_status(status))
            else:
                print(format_status(status), end="", flush=True)

        poller.on_status(show)
        try:
            return await poller.run()
        except asyncio.CancelledError:
            poller.cancel()
            raise

    async def run(
        self,
        prompt: str,
        tone: Optional[str] = None,
        format: Optional[str] = None,
    ) -> JobStatus:
        """Start a render and watch it until it ends."""
        print(colored("\n╔═══════════════════════════════════════════╗", Colors.CYAN))
        print(colored("║  Orion Studio Render Monitor              ║", Colors.CYAN))
        print(colored("╚═══════════════════════════════════════════╝", Colors.CYAN))
        print(f"Prompt: {colored(prompt[:60], Colors.BOLD)}")
        print(f"Server: {colored(self.server_url, Colors.DIM)}")
        print(colored("─" * 45, Colors.DIM))

        result = await self.start_render(prompt, tone=tone, format=format)
        if "jobId" not in result:
            status = JobStatus.from_dict(result)
            print(format_status(status))
            return status

        handle = handle_from_dict(result)
        print(f"Job:    {colored(handle.id, Colors.BOLD)} ({handle.provider.value})")
        return await self.watch(handle)


def handle_from_dict(data: dict[str, Any]) -> JobHandle:
    """Rebuild a JobHandle from the /api/render response."""
    created = data.get("createdAt")
    kwargs = {}
    if created:
        kwargs["created_at"] = datetime.fromisoformat(created.replace("Z", "+00:00"))
    return JobHandle(id=data["jobId"], provider=ProviderId(data["provider"]), **kwargs)


async def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Start a render and monitor its progress",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    %(prog)s "15s coffee shop ad"
    %(prog)s --server http://remote:8765 --format "Wide (16:9)" "product launch"
    %(prog)s --job abc123 --provider eden
        """,
    )
    parser.add_argument("prompt", nargs="?", help="Creative brief to render")
    parser.add_argument("--tone", help="Tone hint (Cinematic, Bold, ...)")
    parser.add_argument("--format", help="Format preset or aspect ratio")
    parser.add_argument("--job", help="Monitor an existing job id instead of starting one")
    parser.add_argument("--provider", default="simulator", help="Provider of --job")
    parser.add_argument(
        "--server",
        default="http://localhost:8765",
        help="API server URL (default: http://localhost:8765)",
    )
    parser.add_argument("--interval-ms", type=int, default=900, help="Poll interval")
    parser.add_argument("--timeout-ms", type=int, default=180_000, help="Give up after")

    args = parser.parse_args(argv)
    if not args.prompt and not args.job:
        parser.error("a prompt or --job is required")

    monitor = RenderMonitor(
        server_url=args.server,
        policy=PollingPolicy(interval_ms=args.interval_ms, timeout_ms=args.timeout_ms),
    )
    try:
        if args.job:
            handle = JobHandle(id=args.job, provider=ProviderId(args.provider))
            status = await monitor.watch(handle)
        else:
            status = await monitor.run(args.prompt, tone=args.tone, format=args.format)
    except (ValidationError, TransportError) as e:
        print(colored(f"\n❌ {e}", Colors.RED))
        return 1
    except KeyboardInterrupt:
        print(colored("\n\nInterrupted by user.", Colors.YELLOW))
        return 130
    finally:
        await monitor.close()

    return 0 if isinstance(status, Succeeded) else 1


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
