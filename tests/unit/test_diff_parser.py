from __future__ import annotations

import textwrap

from testgate.tools.diff_parser import (
    PATCH_MARKER_BEGIN,
    PATCH_MARKER_END,
    ChangedFile,
    ChangeType,
    decode_quoted_path,
    extract_changed_paths,
    extract_patch_from_logs,
    parse_unified_diff,
    split_header_tokens,
)


def test_parse_reports_each_change_type() -> None:
    diff = textwrap.dedent(
        """
        diff --git a/tests/test_a.py b/tests/test_a.py
        index 1111111..2222222 100644
        --- a/tests/test_a.py
        +++ b/tests/test_a.py
        @@ -1 +1 @@
        -old
        +new
        diff --git a/tests/test_b.py b/tests/test_b.py
        new file mode 100644
        --- /dev/null
        +++ b/tests/test_b.py
        @@ -0,0 +1 @@
        +created
        diff --git a/tests/test_c.py b/tests/test_c.py
        deleted file mode 100644
        --- a/tests/test_c.py
        +++ /dev/null
        @@ -1 +0,0 @@
        -gone
        diff --git a/tests/old_name.py b/tests/new_name.py
        similarity index 100%
        rename from tests/old_name.py
        rename to tests/new_name.py
        """
    ).lstrip()

    analysis = parse_unified_diff(diff)

    assert analysis.files == (
        ChangedFile("tests/test_a.py", ChangeType.MODIFIED),
        ChangedFile("tests/test_b.py", ChangeType.ADDED),
        ChangedFile("tests/test_c.py", ChangeType.DELETED),
        ChangedFile("tests/new_name.py", ChangeType.RENAMED, old_path="tests/old_name.py"),
    )
    assert extract_changed_paths(analysis) == [
        "tests/test_a.py",
        "tests/test_b.py",
        "tests/test_c.py",
        "tests/new_name.py",
    ]
    assert analysis.touched_paths[-1] == "tests/old_name.py"


def test_deleted_file_reports_pre_image_path() -> None:
    diff = "diff --git a/tests/x.py b/tests/x.py\ndeleted file mode 100644\n"

    assert parse_unified_diff(diff).files[0].path == "tests/x.py"


def test_duplicate_sections_prefer_rename_record() -> None:
    diff = textwrap.dedent(
        """
        diff --git a/tests/b.py b/tests/b.py
        --- a/tests/b.py
        +++ b/tests/b.py
        diff --git a/tests/a.py b/tests/b.py
        rename from tests/a.py
        rename to tests/b.py
        diff --git a/tests/b.py b/tests/b.py
        --- a/tests/b.py
        +++ b/tests/b.py
        """
    ).lstrip()

    analysis = parse_unified_diff(diff)

    assert analysis.files == (ChangedFile("tests/b.py", ChangeType.RENAMED, old_path="tests/a.py"),)


def test_quoted_paths_decode_octal_utf8() -> None:
    diff = (
        'diff --git "a/tests/\\343\\201\\202.test.ts" "b/tests/\\343\\201\\202.test.ts"\n'
        "new file mode 100644\n"
    )

    analysis = parse_unified_diff(diff)

    assert analysis.paths == ["tests/あ.test.ts"]
    assert analysis.files[0].change_type is ChangeType.ADDED


def test_quoted_rename_markers_are_decoded() -> None:
    diff = (
        'diff --git "a/tests/my file.py" b/tests/renamed.py\n'
        'rename from "tests/my\\tfile.py"\n'
        "rename to tests/renamed.py\n"
    )

    analysis = parse_unified_diff(diff)

    assert analysis.files[0].old_path == "tests/my\tfile.py"


def test_decode_quoted_path_handles_escapes() -> None:
    assert decode_quoted_path(r"a\"b\\c\nd") == 'a"b\\c\nd'
    assert decode_quoted_path(r"caf\303\251") == "café"
    assert decode_quoted_path(r"x\qy") == "xqy"
    assert decode_quoted_path("\\") == "\\"


def test_split_header_tokens_mixes_quoted_and_plain() -> None:
    assert split_header_tokens('"a/sp ace.py"  b/plain.py') == ["a/sp ace.py", "b/plain.py"]


def test_malformed_headers_are_skipped() -> None:
    diff = textwrap.dedent(
        """
        diff --git tests/missing_prefix.py tests/missing_prefix.py
        new file mode 100644
        diff --git a/tests/ok.py
        diff --git a/./tests/ok.py b/./tests/ok.py
        """
    ).lstrip()

    analysis = parse_unified_diff(diff)

    assert analysis.files == (ChangedFile("tests/ok.py", ChangeType.MODIFIED),)


def test_crlf_line_endings_are_tolerated() -> None:
    diff = "diff --git a/tests/w.py b/tests/w.py\r\nnew file mode 100644\r\n"

    assert parse_unified_diff(diff).files == (ChangedFile("tests/w.py", ChangeType.ADDED),)


def test_plain_text_has_no_paths() -> None:
    assert parse_unified_diff("no diff here").files == ()
    assert parse_unified_diff("").paths == []


def test_extract_patch_from_logs() -> None:
    logs = f"noise\n{PATCH_MARKER_BEGIN}\n  diff --git a/x b/x\n{PATCH_MARKER_END}\ntrailer"

    assert extract_patch_from_logs(logs) == "diff --git a/x b/x"
    assert extract_patch_from_logs("no markers") is None
    assert extract_patch_from_logs(f"{PATCH_MARKER_BEGIN} unterminated") is None
