"""Repair hunk headers whose declared line counts disagree with their bodies."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

_HUNK_HEADER = re.compile(
    r"^@@\s+-(?P<old_start>\d+)(?:,(?P<old_count>\d+))?"
    r"\s+\+(?P<new_start>\d+)(?:,(?P<new_count>\d+))?\s+@@(?P<suffix>.*)$"
)
_DIFF_GIT_PREFIX = "diff --git "


@dataclass(slots=True, frozen=True)
class HunkNormalization:
    """Result of :func:`normalize_hunk_counts`."""

    text: str
    changed: bool
    adjustments: tuple[str, ...] = field(default=())


def _default_count(value: str | None) -> int:
    """Return the number of lines represented in a hunk header."""
    return int(value) if value is not None else 1


def _format_range(start: str, declared: str | None, actual: int) -> str:
    """Format one side of an ``@@`` range, keeping correct counts as written."""
    if declared is None:
        return start if actual == 1 else f"{start},{actual}"
    if int(declared) == actual:
        return f"{start},{declared}"
    return f"{start},{actual}"


def _is_file_header(lines: list[str], index: int) -> bool:
    line = lines[index]
    if line.startswith(_DIFF_GIT_PREFIX):
        return True
    return (
        line.startswith("--- ")
        and index + 1 < len(lines)
        and lines[index + 1].startswith("+++ ")
    )


def _count_body(lines: list[str], start: int) -> tuple[int, int, int]:
    """Tally a hunk body starting at ``start``; return (old, new, end index)."""
    old_count = 0
    new_count = 0
    index = start
    while index < len(lines):
        candidate = lines[index]
        if _HUNK_HEADER.match(candidate) or _is_file_header(lines, index):
            break
        prefix = candidate[:1]
        if prefix == " ":
            old_count += 1
            new_count += 1
        elif prefix == "-":
            old_count += 1
        elif prefix == "+":
            new_count += 1
        index += 1
    return old_count, new_count, index


def normalize_hunk_counts(patch_text: str) -> HunkNormalization:
    """Rewrite ``@@`` headers so their counts match the hunk bodies.

    Context and removal lines make up the old count, context and addition
    lines the new count. ``\\ No newline at end of file`` markers and any
    other lines are ignored. Start offsets and the trailing section heading
    are preserved, and only the count that is wrong gets rewritten, so a
    correct header (including ``-0,0`` for a new file) is left byte-for-byte
    untouched.
    """
    lines = (patch_text or "").replace("\r\n", "\n").split("\n")
    adjustments: list[str] = []
    current_file = "<unknown>"

    index = 0
    while index < len(lines):
        line = lines[index]
        if line.startswith(_DIFF_GIT_PREFIX):
            current_file = line[len(_DIFF_GIT_PREFIX) :].strip() or "<unknown>"
            index += 1
            continue

        match = _HUNK_HEADER.match(line)
        if not match:
            index += 1
            continue

        old_count, new_count, end = _count_body(lines, index + 1)
        declared_old = _default_count(match.group("old_count"))
        declared_new = _default_count(match.group("new_count"))
        if declared_old != old_count or declared_new != new_count:
            old_range = _format_range(match.group("old_start"), match.group("old_count"), old_count)
            new_range = _format_range(match.group("new_start"), match.group("new_count"), new_count)
            lines[index] = f"@@ -{old_range} +{new_range} @@{match.group('suffix')}"
            adjustments.append(
                f"{current_file}: adjusted hunk counts "
                f"(-{declared_old}/+{declared_new} -> -{old_count}/+{new_count})"
            )
        index = end

    return HunkNormalization(
        text="\n".join(lines),
        changed=bool(adjustments),
        adjustments=tuple(adjustments),
    )


def ensure_single_trailing_newline(text: str) -> str:
    """Collapse zero or more trailing newlines into exactly one."""
    return text.rstrip("\r\n") + "\n"


__all__ = ["HunkNormalization", "ensure_single_trailing_newline", "normalize_hunk_counts"]
