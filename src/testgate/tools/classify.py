"""Default heuristics for deciding whether a path belongs to test code."""

from __future__ import annotations

import re
from typing import Callable, Iterable, Sequence

PathClassifier = Callable[[Sequence[str]], list[str]]

_EXCLUDED_DIRS = ("node_modules", "docs")
_CACHE_DIR_PATTERN = re.compile(r"(^|/)__pycache__(/|$)")
_BYTECODE_PATTERN = re.compile(r"\.(pyc|pyo)$")
_TEST_SUFFIX_PATTERN = re.compile(r"\.(test|spec)\.[a-z0-9]+$")
_PYTEST_MODULE_PATTERN = re.compile(r"^(test_[^/]+|[^/]+_test)\.py$")
_TEST_DIR_PATTERN = re.compile(r"(^|/)(__tests__|tests?|spec)(/|$)")


def normalise_path(path: str) -> str:
    """Return ``path`` with forward slashes and no leading ``./``."""
    normalised = path.replace("\\", "/").strip()
    return re.sub(r"^(\./)+", "", normalised)


def is_test_like_path(relative_path: str) -> bool:
    """Return ``True`` when ``relative_path`` looks like test code.

    Generated caches and bytecode under test folders are rejected so that
    they never ride along with a patch.
    """
    lowered = normalise_path(relative_path).lower()
    if not lowered:
        return False
    for excluded in _EXCLUDED_DIRS:
        if lowered.startswith(f"{excluded}/") or f"/{excluded}/" in lowered:
            return False
    if _CACHE_DIR_PATTERN.search(lowered) or _BYTECODE_PATTERN.search(lowered):
        return False

    basename = lowered.rsplit("/", 1)[-1]
    if _TEST_SUFFIX_PATTERN.search(basename) or _PYTEST_MODULE_PATTERN.match(basename):
        return True
    return bool(_TEST_DIR_PATTERN.search(lowered))


def filter_test_like_paths(paths: Iterable[str]) -> list[str]:
    """Return the sorted, deduplicated test-like subset of ``paths``."""
    seen: set[str] = set()
    selected: list[str] = []
    for path in paths:
        normalised = normalise_path(path)
        if normalised in seen:
            continue
        seen.add(normalised)
        if is_test_like_path(normalised):
            selected.append(normalised)
    return sorted(selected)


__all__ = ["PathClassifier", "filter_test_like_paths", "is_test_like_path", "normalise_path"]
