"""Disposable detached worktrees that keep agent work out of the live tree."""

from __future__ import annotations

import logging
import shutil
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from ..utils.slug import sanitize_path_segment
from .classify import PathClassifier, filter_test_like_paths
from .process import GitFailure, GitRunner

LOGGER = logging.getLogger(__name__)

WORKTREES_DIR_NAME = "worktrees"
DEFAULT_REF = "HEAD"


@dataclass(slots=True, frozen=True)
class TemporaryWorktree:
    """A detached worktree owned by a single task."""

    worktree_dir: Path


def _split_paths(output: str) -> list[str]:
    return [
        line.strip().replace("\\", "/")
        for line in output.splitlines()
        if line.strip()
    ]


class TemporaryWorktreeManager:
    """Create and tear down detached worktrees under ``<base_dir>/worktrees``."""

    def __init__(self, base_dir: Path | str, *, runner: GitRunner | None = None) -> None:
        self.base_dir = Path(base_dir)
        self.runner = runner or GitRunner()

    @property
    def worktrees_root(self) -> Path:
        return self.base_dir / WORKTREES_DIR_NAME

    def worktree_dir(self, task_id: str) -> Path:
        return self.worktrees_root / sanitize_path_segment(task_id)

    def create(self, repo_root: Path | str, task_id: str, ref: str | None = None) -> TemporaryWorktree:
        """Create a detached worktree for ``task_id`` at ``ref`` (default ``HEAD``).

        A directory left behind by an earlier crashed run is deleted and its
        stale registration pruned first.
        Raises :class:`~testgate.tools.process.GitError` when git refuses.
        """

        target = self.worktree_dir(task_id).resolve()
        target.parent.mkdir(parents=True, exist_ok=True)
        if target.exists():
            LOGGER.debug("Removing stale worktree directory %s", target)
            shutil.rmtree(target, ignore_errors=True)
        # A crashed run leaves the directory registered; add refuses until pruned.
        self._prune(repo_root)

        checkout_ref = (ref or "").strip() or DEFAULT_REF
        self.runner.run_stdout(repo_root, ["worktree", "add", "--detach", str(target), checkout_ref])
        return TemporaryWorktree(worktree_dir=target)

    def owns(self, path: Path | str) -> bool:
        """Return ``True`` when ``path`` is a worktree directory this manager creates."""

        candidate = Path(path).resolve()
        return candidate.parent == self.worktrees_root.resolve()

    def remove(self, repo_root: Path | str, worktree: TemporaryWorktree | Path | str) -> None:
        """Remove a worktree; every step runs even when an earlier one failed.

        Only directories directly under :attr:`worktrees_root` are touched;
        any other path is logged and left alone.
        """

        target = worktree.worktree_dir if isinstance(worktree, TemporaryWorktree) else Path(worktree)
        if not self.owns(target):
            LOGGER.warning("Refusing to remove %s: not under %s", target, self.worktrees_root)
            return
        target = target.resolve()

        result = self.runner.run(repo_root, ["worktree", "remove", "--force", str(target)])
        if isinstance(result, GitFailure):
            LOGGER.debug("git worktree remove failed for %s: %s", target, result.output)

        self._prune(repo_root)

        try:
            shutil.rmtree(target)
        except FileNotFoundError:
            pass
        except OSError as error:
            LOGGER.warning("Failed to delete worktree directory %s: %s", target, error)

    def _prune(self, repo_root: Path | str) -> None:
        result = self.runner.run(repo_root, ["worktree", "prune"])
        if isinstance(result, GitFailure):
            LOGGER.debug("git worktree prune failed: %s", result.output)

    @contextmanager
    def isolated(
        self,
        repo_root: Path | str,
        task_id: str,
        ref: str | None = None,
    ) -> Iterator[TemporaryWorktree]:
        """Yield a fresh worktree and always remove it afterwards."""

        worktree = self.create(repo_root, task_id, ref)
        try:
            yield worktree
        finally:
            self.remove(repo_root, worktree)

    def collect_test_patch(
        self,
        worktree: TemporaryWorktree | Path | str,
        classify: PathClassifier = filter_test_like_paths,
    ) -> str | None:
        """Return a binary-safe diff of the test files changed in ``worktree``.

        Untracked test files are marked intent-to-add so they appear in the
        diff. Returns ``None`` when no test file changed.
        """

        root = worktree.worktree_dir if isinstance(worktree, TemporaryWorktree) else Path(worktree)
        tracked = self.runner.run_stdout(root, ["diff", "--name-only"])
        untracked = self.runner.run_stdout(root, ["ls-files", "--others", "--exclude-standard"])
        untracked_paths = _split_paths(untracked)

        changed: list[str] = []
        for path in [*_split_paths(tracked), *untracked_paths]:
            if path not in changed:
                changed.append(path)
        test_paths = classify(changed)
        if not test_paths:
            return None

        untracked_set = set(untracked_paths)
        untracked_tests = [path for path in test_paths if path in untracked_set]
        if untracked_tests:
            result = self.runner.run(root, ["add", "-N", "--", *untracked_tests])
            if isinstance(result, GitFailure):
                LOGGER.warning("git add -N failed in %s (continuing): %s", root, result.output)

        patch = self.runner.run_stdout(root, ["diff", "--no-color", "--binary", "--", *test_paths])
        if not patch.strip():
            return None
        return patch if patch.endswith("\n") else f"{patch}\n"


__all__ = ["DEFAULT_REF", "TemporaryWorktree", "TemporaryWorktreeManager"]
