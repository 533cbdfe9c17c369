from __future__ import annotations

import subprocess
import sys
import textwrap
from dataclasses import dataclass
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


@dataclass(slots=True)
class GitRepo:
    """Fixture payload representing a throwaway repository with one commit."""

    root: Path

    def git(self, *args: str) -> str:
        completed = subprocess.run(
            ["git", *args],
            cwd=self.root,
            check=True,
            capture_output=True,
            text=True,
        )
        return completed.stdout

    def read(self, relative: str) -> str:
        return (self.root / relative).read_text(encoding="utf-8")


@pytest.fixture()
def git_repo(tmp_path: Path) -> GitRepo:
    """Create a tiny git repository with production code and a test module."""

    repo_root = tmp_path / "repo"
    repo_root.mkdir()
    repo = GitRepo(root=repo_root)

    repo.git("init")
    repo.git("config", "user.email", "agent@example.com")
    repo.git("config", "user.name", "Test Gate")
    repo.git("config", "core.autocrlf", "false")

    (repo_root / "src").mkdir()
    (repo_root / "src" / "calc.py").write_text(
        textwrap.dedent(
            """
            def add(left, right):
                return left + right
            """
        ).lstrip(),
        encoding="utf-8",
    )
    (repo_root / "tests").mkdir()
    (repo_root / "tests" / "test_calc.py").write_text(
        "from calc import add\n\n\ndef test_add():\n    assert add(1, 2) == 3\n",
        encoding="utf-8",
    )

    repo.git("add", ".")
    repo.git("commit", "-m", "Initial state")
    return repo
