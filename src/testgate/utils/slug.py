"""Utilities for turning task identifiers into safe path segments."""

from __future__ import annotations

import re
from typing import Pattern

_UNSAFE_SEGMENT_PATTERN: Pattern[str] = re.compile(r"[^A-Za-z0-9._-]+")
MAX_SEGMENT_LENGTH = 120


def sanitize_path_segment(
    value: str | None,
    *,
    fallback: str = "task",
    max_length: int = MAX_SEGMENT_LENGTH,
) -> str:
    """Normalise ``value`` into a single filesystem-friendly directory name.

    Runs of characters outside ``[A-Za-z0-9._-]`` collapse into ``_`` and the
    result is capped at ``max_length`` characters. Blank input falls back to
    ``fallback``.
    """
    source = (value or "").strip()
    if not source:
        source = (fallback or "").strip() or "task"
    segment = _UNSAFE_SEGMENT_PATTERN.sub("_", source)
    segment = segment[:max_length]
    if segment in {".", ".."}:
        return segment.replace(".", "_")
    return segment


__all__ = ["MAX_SEGMENT_LENGTH", "sanitize_path_segment"]
