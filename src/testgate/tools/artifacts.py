"""Persist patches and manual-merge instructions that could not be applied."""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Sequence

from ..utils.slug import sanitize_path_segment
from .hunks import ensure_single_trailing_newline

LOGGER = logging.getLogger(__name__)

TMP_DIR_NAME = "tmp"
PATCHES_DIR_NAME = "patches"
INSTRUCTIONS_DIR_NAME = "merge-instructions"
SNAPSHOTS_DIR_NAME = "snapshots"


@dataclass(slots=True, frozen=True)
class MergeRequest:
    """Inputs for a manual merge of a patch that failed to apply."""

    task_id: str
    apply_output: str
    patch_path: Path
    test_paths: tuple[str, ...]
    snapshot_dir: Path | None = None
    check_command: str = ""


def build_merge_prompt(request: MergeRequest) -> str:
    """Render the text a developer can hand to an assistant to finish the merge."""
    targets = "\n".join(f"- {path}" for path in request.test_paths) or "- (none)"
    apply_log = request.apply_output.strip() or "(none)"
    check_command = request.check_command.strip()
    verify_step = "3. Run the type checker/linter and fix errors in **test code only** (at most 3 rounds)"
    if check_command:
        verify_step = f"{verify_step}: {check_command}"

    lines = [
        "Merge the generated test changes below into the current working tree by hand.",
        "Automatic application (git apply) failed, so conflicts must be resolved manually.",
        "",
        "## Note",
        "Any temporary worktree may already be gone; the patch and snapshot listed below are enough to merge.",
        "",
        "## Background",
        f"- taskId: {request.task_id}",
        "",
        "## Failure log (git apply)",
        apply_log,
        "",
        "## Inputs",
        f"- Patch file: {request.patch_path.as_posix()}",
    ]
    if request.snapshot_dir is not None:
        lines.append(f"- Snapshot of the generated tests (final contents): {request.snapshot_dir.as_posix()}")
    lines.extend(
        [
            "- Files to change (tests only):",
            targets,
            "",
            "## Constraints",
            "- Only **test code** may change (for example **/*.test.ts, **/tests/**, **/__tests__/**).",
            "- Do not create or edit docs/** or *.md files.",
            "- Do not edit production code.",
            "- Do not edit configuration files (package.json, pyproject.toml, tsconfig, ...).",
            "",
            "## Expected steps",
            "1. Read the intent of the patch.",
            "2. Compare it with the current files, resolve conflicts and apply the test changes.",
            verify_step,
            "4. Briefly summarise which tests were added or updated.",
        ]
    )
    return "\n".join(lines)


def build_merge_instructions(request: MergeRequest) -> str:
    """Wrap :func:`build_merge_prompt` in a markdown recovery document."""
    return "\n".join(
        [
            "# Manual merge required",
            "",
            "The patch could not be applied automatically. Paste the prompt below into an",
            "assistant, or follow it yourself, to merge the changes.",
            "",
            "```text",
            build_merge_prompt(request),
            "```",
            "",
        ]
    )


class ArtifactStore:
    """File layout for ephemeral and persisted patch artifacts.

    All names derive from the sanitised task id so that concurrent tasks
    never share a file.
    """

    def __init__(self, base_dir: Path | str) -> None:
        self.base_dir = Path(base_dir)

    @property
    def tmp_dir(self) -> Path:
        return self.base_dir / TMP_DIR_NAME

    @property
    def patches_dir(self) -> Path:
        return self.base_dir / PATCHES_DIR_NAME

    @property
    def instructions_dir(self) -> Path:
        return self.base_dir / INSTRUCTIONS_DIR_NAME

    def snapshot_dir(self, task_id: str) -> Path:
        return self.base_dir / SNAPSHOTS_DIR_NAME / sanitize_path_segment(task_id)

    def ephemeral_patch_path(self, task_id: str) -> Path:
        return self.tmp_dir / f"{sanitize_path_segment(task_id)}.patch"

    def persisted_patch_path(self, task_id: str) -> Path:
        return self.patches_dir / f"{sanitize_path_segment(task_id)}.patch"

    def instructions_path(self, task_id: str) -> Path:
        return self.instructions_dir / f"{sanitize_path_segment(task_id)}.md"

    # ------------------------------------------------------------ patches
    def write_ephemeral(self, task_id: str, patch_text: str) -> Path:
        """Write ``patch_text`` to the task's ephemeral location."""

        path = self.ephemeral_patch_path(task_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(ensure_single_trailing_newline(patch_text), encoding="utf-8")
        return path

    def discard(self, path: Path) -> None:
        """Delete an ephemeral patch; failures are logged and ignored."""

        try:
            path.unlink(missing_ok=True)
        except OSError as error:
            LOGGER.debug("Failed to remove ephemeral patch %s: %s", path, error)

    def persist_patch(self, task_id: str, patch_text: str) -> Path:
        """Write ``patch_text`` straight to the permanent patch location."""

        path = self.persisted_patch_path(task_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(ensure_single_trailing_newline(patch_text), encoding="utf-8")
        return path

    def promote(self, ephemeral_path: Path, task_id: str, patch_text: str) -> Path:
        """Move an ephemeral patch to the permanent location.

        When the rename fails (for example across filesystems) the patch is
        written from ``patch_text`` and the ephemeral copy removed afterwards.
        """

        target = self.persisted_patch_path(task_id)
        target.parent.mkdir(parents=True, exist_ok=True)
        try:
            ephemeral_path.replace(target)
        except OSError as error:
            LOGGER.debug("Rename %s -> %s failed (%s); copying instead", ephemeral_path, target, error)
            target.write_text(ensure_single_trailing_newline(patch_text), encoding="utf-8")
            self.discard(ephemeral_path)
        return target

    # ------------------------------------------------------- instructions
    def write_instructions(self, request: MergeRequest) -> Path:
        """Write the markdown recovery document for ``request``."""

        path = self.instructions_path(request.task_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(build_merge_instructions(request), encoding="utf-8")
        return path

    def snapshot_files(self, task_id: str, source_root: Path, relative_paths: Iterable[str]) -> Path:
        """Copy the current contents of ``relative_paths`` into the task snapshot.

        Missing files (for example deletions) are skipped.
        """

        destination_root = self.snapshot_dir(task_id)
        destination_root.mkdir(parents=True, exist_ok=True)
        source = Path(source_root).resolve()
        for relative in relative_paths:
            candidate = (source / relative).resolve()
            try:
                candidate.relative_to(source)
            except ValueError:
                continue
            if not candidate.is_file():
                continue
            target = destination_root / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(candidate, target)
        return destination_root


def format_saved_paths(paths: Sequence[Path | None]) -> str:
    """Render saved artifact paths for user messages."""
    return ", ".join(path.as_posix() for path in paths if path is not None)


__all__ = [
    "ArtifactStore",
    "MergeRequest",
    "build_merge_instructions",
    "build_merge_prompt",
    "format_saved_paths",
]
