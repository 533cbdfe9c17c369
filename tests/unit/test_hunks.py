from __future__ import annotations

from testgate.tools.hunks import ensure_single_trailing_newline, normalize_hunk_counts

HEADER = "diff --git a/tests/t.py b/tests/t.py\n--- a/tests/t.py\n+++ b/tests/t.py\n"


def test_correct_headers_are_left_untouched() -> None:
    patch = HEADER + "@@ -1,2 +1,3 @@ def test():\n context\n-old\n+new\n+extra\n"

    result = normalize_hunk_counts(patch)

    assert result.text == patch
    assert result.changed is False
    assert result.adjustments == ()


def test_wrong_counts_are_recomputed() -> None:
    patch = HEADER + "@@ -10,9 +10,1 @@ class Foo:\n context\n-old\n+new\n+extra\n"

    result = normalize_hunk_counts(patch)

    assert "@@ -10,2 +10,3 @@ class Foo:\n" in result.text
    assert result.changed is True
    assert result.adjustments == (
        "a/tests/t.py b/tests/t.py: adjusted hunk counts (-9/+1 -> -2/+3)",
    )


def test_only_the_wrong_side_is_rewritten() -> None:
    patch = HEADER + "@@ -1 +1,7 @@\n-a\n+b\n+c\n"

    result = normalize_hunk_counts(patch)

    assert "@@ -1 +1,2 @@\n" in result.text


def test_omitted_count_is_added_when_needed() -> None:
    patch = HEADER + "@@ -1 +1 @@\n-a\n+b\n+c\n"

    assert "@@ -1 +1,2 @@\n" in normalize_hunk_counts(patch).text


def test_new_file_header_is_preserved() -> None:
    patch = (
        "diff --git a/tests/n.py b/tests/n.py\nnew file mode 100644\n--- /dev/null\n+++ b/tests/n.py\n"
        "@@ -0,0 +1,2 @@\n+one\n+two\n"
    )

    assert normalize_hunk_counts(patch).text == patch


def test_multiple_hunks_and_files_are_counted_separately() -> None:
    patch = (
        HEADER
        + "@@ -1,5 +1,5 @@\n a\n-b\n+B\n"
        + "@@ -20,1 +20,1 @@\n c\n+d\n"
        + "diff --git a/tests/u.py b/tests/u.py\n--- a/tests/u.py\n+++ b/tests/u.py\n"
        + "@@ -3,3 +3,3 @@\n-x\n"
    )

    result = normalize_hunk_counts(patch)

    assert "@@ -1,2 +1,2 @@\n" in result.text
    assert "@@ -20,1 +20,2 @@\n" in result.text
    assert "@@ -3,1 +3,0 @@\n" in result.text
    assert len(result.adjustments) == 3
    assert result.adjustments[2].startswith("a/tests/u.py b/tests/u.py:")


def test_no_newline_marker_is_not_counted() -> None:
    patch = HEADER + "@@ -1,1 +1,1 @@\n-a\n\\ No newline at end of file\n+b\n\\ No newline at end of file\n"

    assert normalize_hunk_counts(patch).changed is False


def test_bare_file_headers_end_a_hunk() -> None:
    patch = "--- a/tests/t.py\n+++ b/tests/t.py\n@@ -1,4 +1,4 @@\n-a\n+b\n--- a/tests/u.py\n+++ b/tests/u.py\n@@ -1 +1 @@\n-c\n+d\n"

    result = normalize_hunk_counts(patch)

    assert "@@ -1,1 +1,1 @@\n-a\n" in result.text
    assert result.adjustments == ("<unknown>: adjusted hunk counts (-4/+4 -> -1/+1)",)


def test_normalisation_is_idempotent_and_strips_crlf() -> None:
    patch = (HEADER + "@@ -1,3 +1,3 @@\n-a\n+b\n").replace("\n", "\r\n")

    once = normalize_hunk_counts(patch)
    twice = normalize_hunk_counts(once.text)

    assert "\r" not in once.text
    assert twice.text == once.text
    assert twice.changed is False


def test_ensure_single_trailing_newline() -> None:
    assert ensure_single_trailing_newline("abc") == "abc\n"
    assert ensure_single_trailing_newline("abc\n\n\r\n") == "abc\n"
    assert ensure_single_trailing_newline("") == "\n"


def test_hallucinated_counts_collapse_to_body_tally() -> None:
    patch = HEADER + "@@ -1,999 +1,999 @@\n keep\n+added\n-removed\n"

    result = normalize_hunk_counts(patch)

    assert result.changed is True
    assert "@@ -1,2 +1,2 @@\n" in result.text
