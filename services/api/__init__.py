"""
HTTP boundary for the render pipeline.

Usage:
    python -m uvicorn services.api.server:app --host 0.0.0.0 --port 8765
"""
