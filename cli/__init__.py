"""
Orion Studio CLI Tools

Command-line tools for interacting with the render API.

Tools:
- render_monitor: Start a render and follow its progress
"""

from .render_monitor import RenderMonitor

__all__ = ["RenderMonitor"]
