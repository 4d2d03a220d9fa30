"""
Copy generation for render briefs (script, caption, hashtags).
"""

from .client import CopyDraft, CopyWriter, parse_draft

__all__ = ["CopyDraft", "CopyWriter", "parse_draft"]
