#!/usr/bin/env python3
"""
Orion Studio - Main Entry Point

Starts the render API or runs render jobs straight from the terminal.

Usage:
    # Start server mode (API + SSE)
    python main.py server

    # Render in-process with the configured provider
    python main.py render "15s coffee shop ad" --tone Cinematic --format "Reel (9:16)"

    # Generate script, caption and hashtags
    python main.py copy "15s coffee shop ad"

    # Start a render on a running server and follow it
    python main.py monitor "15s coffee shop ad" --server http://localhost:8765
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Optional

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("orion_studio")


def start_server(host: str = "0.0.0.0", port: int = 8765):
    """Serve the render API with uvicorn."""
    import uvicorn

    from core.config import get_config

    config = get_config()
    logger.info(f"Orion Studio API running at http://{host}:{port}")
    uvicorn.run(
        "services.api.server:app",
        host=host,
        port=port,
        log_level=config.log_level.lower(),
    )


async def render(
    prompt: str,
    tone: Optional[str] = None,
    format: Optional[str] = None,
    provider_hint: Optional[str] = None,
) -> bool:
    """
    Start a render in-process and poll it to completion.

    Returns:
        True when the job succeeded
    """
    from core.config import get_config
    from services.generation import (
        AspectFormat,
        GenerationRequest,
        PollingPolicy,
        RenderController,
        StatusPoller,
        Succeeded,
    )

    config = get_config()
    request = GenerationRequest(
        prompt=prompt,
        tone=tone,
        format=AspectFormat.parse(format) if format else None,
        provider_hint=provider_hint,
    )

    controller = RenderController(config)
    try:
        outcome = await controller.start_job(request)
        if outcome.is_synchronous:
            status = outcome.status
        else:
            logger.info(f"Polling job {outcome.handle.id} on {outcome.handle.provider.value}")
            poller = StatusPoller(
                controller.poll_job,
                outcome.handle,
                PollingPolicy.from_defaults(config.polling),
            )
            poller.on_status(lambda s: logger.info(f"Status: {s.state.value} {s.progress}%"))
            status = await poller.run()
    finally:
        await controller.close()

    print(json.dumps(status.to_dict(), indent=2))
    return isinstance(status, Succeeded)


async def generate_copy(prompt: str) -> bool:
    """Print generated script, caption and hashtags for ``prompt``."""
    from core.config import get_config
    from services.copywriter import CopyWriter

    config = get_config()
    writer = CopyWriter(config.copy, timeout=config.http_timeout_seconds)
    try:
        draft = await writer.generate_copy(prompt)
    finally:
        await writer.close()

    print(json.dumps(draft.model_dump(), indent=2))
    return True


def env_check() -> bool:
    """Print credential presence and configuration issues."""
    from core.config import get_config

    config = get_config()
    print(json.dumps(config.env_presence(), indent=2))
    issues = config.validate()
    for issue in issues:
        print(f"  - {issue}")
    return not issues


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Orion Studio - provider-agnostic video render jobs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Start the API
    python main.py server --port 8765

    # Render locally (simulator unless USE_SIMULATOR=false)
    python main.py render "Top 5 AI tools for productivity" --tone Bold

    # Copy only
    python main.py copy "Dance tutorial"

    # Render through a running API and watch progress
    python main.py monitor "Dance tutorial" --server http://localhost:8765
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Server command
    server_parser = subparsers.add_parser("server", help="Start the render API")
    server_parser.add_argument("--host", default="0.0.0.0", help="Host to bind")
    server_parser.add_argument("--port", type=int, default=8765, help="Port to bind")

    # Render command
    render_parser = subparsers.add_parser("render", help="Render in-process")
    render_parser.add_argument("prompt", help="Creative brief")
    render_parser.add_argument("--tone", "-t", help="Tone hint (Cinematic, Bold, ...)")
    render_parser.add_argument("--format", "-f", help="Format preset or aspect ratio")
    render_parser.add_argument("--provider", "-p", help="Provider hint (simulator, eden, replicate)")

    # Copy command
    copy_parser = subparsers.add_parser("copy", help="Generate script, caption and hashtags")
    copy_parser.add_argument("prompt", help="Creative brief")

    # Monitor command
    mon_parser = subparsers.add_parser("monitor", help="Render through the API and follow it")
    mon_parser.add_argument("prompt", nargs="?", help="Creative brief")
    mon_parser.add_argument("--job", help="Follow an existing job id instead")
    mon_parser.add_argument("--provider", default="simulator", help="Provider of --job")
    mon_parser.add_argument("--tone", help="Tone hint")
    mon_parser.add_argument("--format", help="Format preset or aspect ratio")
    mon_parser.add_argument(
        "--server",
        default="http://localhost:8765",
        help="API server URL",
    )

    # Env check command
    subparsers.add_parser("env-check", help="Show which credentials are configured")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    from core.errors import RenderError

    try:
        if args.command == "server":
            start_server(host=args.host, port=args.port)
            return 0

        if args.command == "render":
            ok = asyncio.run(render(args.prompt, args.tone, args.format, args.provider))
            return 0 if ok else 1

        if args.command == "copy":
            return 0 if asyncio.run(generate_copy(args.prompt)) else 1

        if args.command == "monitor":
            from cli.render_monitor import main as monitor_main

            monitor_argv = ["--server", args.server]
            if args.job:
                monitor_argv += ["--job", args.job, "--provider", args.provider]
            if args.tone:
                monitor_argv += ["--tone", args.tone]
            if args.format:
                monitor_argv += ["--format", args.format]
            if args.prompt:
                monitor_argv.append(args.prompt)
            return asyncio.run(monitor_main(monitor_argv))

        if args.command == "env-check":
            return 0 if env_check() else 1

    except RenderError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130

    parser.print_help()
    return 1


def cli():
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    cli()
