"""
Orion Studio Services

Services for the render pipeline:
- generation: provider adapters, normalizer, RenderController, StatusPoller
- copywriter: script/caption/hashtag generation
- api: FastAPI HTTP + SSE boundary
"""

from .generation import GenerationRequest, RenderController, StatusPoller

__all__ = [
    "GenerationRequest",
    "RenderController",
    "StatusPoller",
]
