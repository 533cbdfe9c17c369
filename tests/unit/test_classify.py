from __future__ import annotations

import pytest

from testgate.tools.classify import filter_test_like_paths, is_test_like_path, normalise_path


@pytest.mark.parametrize(
    "path",
    [
        "tests/test_calc.py",
        "pkg/calc_test.py",
        "src/__tests__/widget.tsx",
        "web/button.test.ts",
        "web/button.spec.js",
        "spec/models/user_spec.rb",
        "test/fixtures/data.json",
        "./tests/conftest.py",
        "tests\\windows\\test_path.py",
    ],
)
def test_test_like_paths_are_accepted(path: str) -> None:
    assert is_test_like_path(path)


@pytest.mark.parametrize(
    "path",
    [
        "src/calc.py",
        "docs/tests/guide.md",
        "node_modules/lib/tests/index.js",
        "tests/__pycache__/test_calc.cpython-312.pyc",
        "tests/helpers.pyo",
        "pyproject.toml",
        "contest/attest.py",
        "",
    ],
)
def test_other_paths_are_rejected(path: str) -> None:
    assert not is_test_like_path(path)


def test_filter_dedupes_normalises_and_sorts() -> None:
    paths = ["tests/test_b.py", "./tests/test_a.py", "src/app.py", "tests/test_a.py"]

    assert filter_test_like_paths(paths) == ["tests/test_a.py", "tests/test_b.py"]


def test_normalise_path_strips_leading_dot_segments() -> None:
    assert normalise_path("././tests\\x.py ") == "tests/x.py"
