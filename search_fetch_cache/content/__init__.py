"""
Content processing for cached payloads.

Kind detection, text extraction, extractive summaries and grep-like
search, all pure functions over stored bytes.
"""

from .extractor import extract_text
from .processor import build_view, detect_kind, grep_like, summarize, to_text

__all__ = [
    "extract_text",
    "build_view",
    "detect_kind",
    "grep_like",
    "summarize",
    "to_text",
]
