from __future__ import annotations

from testgate.utils.slug import MAX_SEGMENT_LENGTH, sanitize_path_segment


def test_unsafe_runs_collapse_to_underscore() -> None:
    assert sanitize_path_segment("feat/add tests: #12") == "feat_add_tests_12"


def test_safe_characters_are_kept() -> None:
    assert sanitize_path_segment("Task-1.2_b") == "Task-1.2_b"


def test_blank_values_use_fallback() -> None:
    assert sanitize_path_segment(None) == "task"
    assert sanitize_path_segment("   ") == "task"
    assert sanitize_path_segment("", fallback="  ") == "task"
    assert sanitize_path_segment("", fallback="plan") == "plan"


def test_length_is_capped() -> None:
    assert len(sanitize_path_segment("x" * 500)) == MAX_SEGMENT_LENGTH == 120


def test_dot_segments_cannot_escape() -> None:
    assert sanitize_path_segment("..") == "__"
    assert sanitize_path_segment(".") == "_"
