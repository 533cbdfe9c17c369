"""Apply agent-generated test patches with guard rails and graceful fallback."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Pattern, Sequence

from ..config import DEFAULT_CASE_ID_PATTERN, Settings
from ..events import EventLevel, EventSink, LoggingEventSink, LoggingNotifier, Notifier
from .artifacts import ArtifactStore, MergeRequest, format_saved_paths
from .classify import PathClassifier, filter_test_like_paths
from .diff_parser import parse_unified_diff
from .hunks import ensure_single_trailing_newline, normalize_hunk_counts
from .process import GitFailure, GitRunner

LOGGER = logging.getLogger(__name__)

_NOWARN = "--whitespace=nowarn"
# Escalating tolerance: each mode is checked first and only then applied.
_APPLY_MODES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("apply", ()),
    ("apply --ignore-whitespace", ("--ignore-whitespace",)),
)
_REVERSE_CHECK_ARGS: tuple[str, ...] = ("apply", "--reverse", "--check", "--ignore-whitespace", _NOWARN)


class ApplyReason(str, Enum):
    """Terminal outcome of a pipeline run."""

    EMPTY_PATCH = "empty-patch"
    NO_DIFF_PATHS = "no-diff-paths"
    NO_TEST_PATHS = "no-test-paths"
    CONTAINS_NON_TEST_PATHS = "contains-non-test-paths"
    APPLY_FAILED = "apply-failed"
    EXCEPTION = "exception"
    APPLIED = "applied"


@dataclass(slots=True, frozen=True)
class ApplyOutcome:
    """Value returned to callers of :class:`PatchApplyPipeline`."""

    applied: bool
    reason: ApplyReason
    test_paths: tuple[str, ...] = ()
    persisted_patch_path: Path | None = None
    persisted_instruction_path: Path | None = None


@dataclass(slots=True, frozen=True)
class _AttemptResult:
    applied: bool
    output: str


@dataclass(slots=True)
class _RunState:
    """Mutable bookkeeping for one run, consulted by the exception boundary."""

    task_id: str
    patch: str = ""
    ephemeral_path: Path | None = None


def introduced_identifiers(patch_text: str, pattern: Pattern[str]) -> list[str]:
    """Return the sorted identifiers matching ``pattern`` on added lines."""
    found: set[str] = set()
    for line in patch_text.split("\n"):
        if not line.startswith("+") or line.startswith("+++ "):
            continue
        found.update(match.group(0) for match in pattern.finditer(line[1:]))
    return sorted(found)


class PatchApplyPipeline:
    """Decide whether and how to ``git apply`` a generated test patch.

    A patch is applied only when every path it touches is test-like. Hunk
    counts are repaired first, application escalates from a strict to a
    whitespace-tolerant ``git apply``, and an already-applied patch is
    recognised with a reverse check. Whatever cannot be applied is saved
    together with manual-merge instructions; nothing raises past :meth:`apply`.
    """

    def __init__(
        self,
        *,
        store: ArtifactStore,
        runner: GitRunner | None = None,
        classify: PathClassifier = filter_test_like_paths,
        events: EventSink | None = None,
        notifier: Notifier | None = None,
        identifier_pattern: str = DEFAULT_CASE_ID_PATTERN,
        check_command: str = "",
    ) -> None:
        self.store = store
        self.runner = runner or GitRunner()
        self.classify = classify
        self.events = events or LoggingEventSink()
        self.notifier = notifier or LoggingNotifier()
        self.identifier_pattern: Pattern[str] | None = (
            re.compile(identifier_pattern) if identifier_pattern else None
        )
        self.check_command = check_command

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        repo_root: Path | str,
        *,
        classify: PathClassifier = filter_test_like_paths,
        events: EventSink | None = None,
        notifier: Notifier | None = None,
    ) -> "PatchApplyPipeline":
        return cls(
            store=ArtifactStore(settings.resolve_storage_dir(repo_root)),
            runner=GitRunner(settings.git_binary, timeout=settings.command_timeout),
            classify=classify,
            events=events,
            notifier=notifier,
            identifier_pattern=settings.case_id_pattern,
        )

    # ------------------------------------------------------------ public
    def apply(
        self,
        task_id: str,
        patch_text: str,
        repo_root: Path | str,
        *,
        snapshot_source: Path | str | None = None,
    ) -> ApplyOutcome:
        """Run the pipeline for ``patch_text`` against ``repo_root``.

        ``snapshot_source`` names a directory (usually the worktree the patch
        was generated in) whose test files are copied next to the saved patch
        when manual merging is needed.
        """

        state = _RunState(task_id=task_id)
        try:
            return self._run(state, patch_text or "", Path(repo_root).resolve(), snapshot_source)
        except Exception as error:
            LOGGER.exception("Patch pipeline for %s raised", task_id)
            persisted = self._rescue_patch(state, patch_text or "")
            saved = persisted.as_posix() if persisted is not None else "not saved"
            self._emit(
                task_id,
                EventLevel.ERROR,
                f"Patch application raised an exception: {error} (patch saved: {saved})",
            )
            self._notify_warning(f"Patch application failed unexpectedly: {error} Saved patch: {saved}")
            return ApplyOutcome(
                applied=False,
                reason=ApplyReason.EXCEPTION,
                persisted_patch_path=persisted,
            )

    # ----------------------------------------------------------- helpers
    def _run(
        self,
        state: _RunState,
        patch_text: str,
        repo_root: Path,
        snapshot_source: Path | str | None,
    ) -> ApplyOutcome:
        task_id = state.task_id
        if not patch_text.strip():
            self._emit(task_id, EventLevel.WARN, "Patch is empty; nothing to apply.")
            return ApplyOutcome(applied=False, reason=ApplyReason.EMPTY_PATCH)

        normalisation = normalize_hunk_counts(patch_text)
        state.patch = ensure_single_trailing_newline(normalisation.text)

        # Renames touch their pre-image path as well.
        paths = parse_unified_diff(state.patch).touched_paths
        if not paths:
            return self._reject(
                state,
                ApplyReason.NO_DIFF_PATHS,
                "Could not extract any changed file paths from the patch.",
            )

        test_paths = tuple(self.classify(paths))
        if not test_paths:
            return self._reject(
                state,
                ApplyReason.NO_TEST_PATHS,
                "Patch does not touch any test files; skipping apply.",
            )

        test_set = set(test_paths)
        non_test_paths = [path for path in paths if path not in test_set]
        if non_test_paths:
            return self._reject(
                state,
                ApplyReason.CONTAINS_NON_TEST_PATHS,
                f"Patch touches non-test files and was not applied: {', '.join(non_test_paths)}",
                warn_user=True,
            )

        for adjustment in normalisation.adjustments:
            self._emit(task_id, EventLevel.INFO, adjustment)

        state.ephemeral_path = self.store.write_ephemeral(task_id, state.patch)
        patch_arg = str(state.ephemeral_path.resolve())

        attempt = self._try_apply(repo_root, patch_arg)
        if attempt.applied:
            self._finish_success(state)
            message = f"Applied test patch ({len(test_paths)} file(s))."
            self._emit(task_id, EventLevel.INFO, message)
            self._notify_info(message)
            return ApplyOutcome(applied=True, reason=ApplyReason.APPLIED, test_paths=test_paths)

        reverse = self.runner.run(repo_root, [*_REVERSE_CHECK_ARGS, patch_arg])
        if not isinstance(reverse, GitFailure):
            self._finish_success(state)
            self._emit(
                task_id,
                EventLevel.INFO,
                "Patch is already present in the working tree (git apply --reverse --check passed).",
            )
            return ApplyOutcome(applied=True, reason=ApplyReason.APPLIED, test_paths=test_paths)

        if self._identifiers_present(repo_root, test_paths, state.patch):
            self._finish_success(state)
            self._emit(
                task_id,
                EventLevel.WARN,
                "git apply failed, but every case id the patch introduces is already present; treating as applied.",
            )
            return ApplyOutcome(applied=True, reason=ApplyReason.APPLIED, test_paths=test_paths)

        return self._persist_failure(state, state.ephemeral_path, test_paths, attempt.output, snapshot_source)

    def _try_apply(self, repo_root: Path, patch_arg: str) -> _AttemptResult:
        logs: list[str] = []
        for label, extra in _APPLY_MODES:
            check_label = label.replace("apply", "apply --check", 1)
            check = self.runner.run(repo_root, ["apply", "--check", *extra, _NOWARN, patch_arg])
            if isinstance(check, GitFailure):
                logs.append(f"[NG] {check_label}\n{check.output}")
                continue
            logs.append(f"[OK] {check_label}")
            result = self.runner.run(repo_root, ["apply", *extra, _NOWARN, patch_arg])
            if not isinstance(result, GitFailure):
                logs.append(f"[OK] {label}")
                return _AttemptResult(applied=True, output="\n\n".join(logs))
            logs.append(f"[NG] {label}\n{result.output}")
        return _AttemptResult(applied=False, output="\n\n".join(logs))

    def _identifiers_present(self, repo_root: Path, test_paths: Sequence[str], patch: str) -> bool:
        if self.identifier_pattern is None:
            return False
        identifiers = introduced_identifiers(patch, self.identifier_pattern)
        if not identifiers:
            return False
        contents: list[str] = []
        for relative in test_paths:
            try:
                contents.append((repo_root / relative).read_text(encoding="utf-8"))
            except (OSError, UnicodeDecodeError):
                return False
        combined = "\n".join(contents)
        return all(identifier in combined for identifier in identifiers)

    def _reject(
        self,
        state: _RunState,
        reason: ApplyReason,
        message: str,
        *,
        warn_user: bool = False,
    ) -> ApplyOutcome:
        persisted = self.store.persist_patch(state.task_id, state.patch)
        self._emit(state.task_id, EventLevel.WARN, f"{message} (patch saved: {persisted.as_posix()})")
        if warn_user:
            self._notify_warning(f"{message} Saved patch: {persisted.as_posix()}")
        return ApplyOutcome(applied=False, reason=reason, persisted_patch_path=persisted)

    def _persist_failure(
        self,
        state: _RunState,
        ephemeral_path: Path,
        test_paths: tuple[str, ...],
        apply_output: str,
        snapshot_source: Path | str | None,
    ) -> ApplyOutcome:
        task_id = state.task_id
        persisted = self.store.promote(ephemeral_path, task_id, state.patch)
        state.ephemeral_path = None

        snapshot_dir = None
        if snapshot_source is not None:
            snapshot_dir = self.store.snapshot_files(task_id, Path(snapshot_source), test_paths)

        instructions = self.store.write_instructions(
            MergeRequest(
                task_id=task_id,
                apply_output=apply_output,
                patch_path=persisted,
                test_paths=test_paths,
                snapshot_dir=snapshot_dir,
                check_command=self.check_command,
            )
        )
        self._emit(task_id, EventLevel.WARN, f"git apply failed:\n{apply_output}")
        self._emit(
            task_id,
            EventLevel.INFO,
            f"Saved manual merge artifacts: {format_saved_paths([persisted, snapshot_dir, instructions])}",
        )
        self._notify_warning(
            "Patch could not be applied automatically; manual merge required "
            f"(patch: {persisted.as_posix()}, instructions: {instructions.as_posix()})"
        )
        return ApplyOutcome(
            applied=False,
            reason=ApplyReason.APPLY_FAILED,
            test_paths=test_paths,
            persisted_patch_path=persisted,
            persisted_instruction_path=instructions,
        )

    def _finish_success(self, state: _RunState) -> None:
        if state.ephemeral_path is not None:
            self.store.discard(state.ephemeral_path)
            state.ephemeral_path = None

    def _rescue_patch(self, state: _RunState, patch_text: str) -> Path | None:
        text = state.patch or patch_text
        try:
            if state.ephemeral_path is not None:
                return self.store.promote(state.ephemeral_path, state.task_id, text)
            if not text.strip():
                return None
            return self.store.persist_patch(state.task_id, text)
        except OSError as error:
            LOGGER.warning("Failed to keep patch for %s: %s", state.task_id, error)
            return None

    def _emit(self, task_id: str, level: EventLevel, message: str) -> None:
        self.events.emit(task_id, level, message)

    def _notify_info(self, message: str) -> None:
        try:
            self.notifier.info(message)
        except Exception:
            LOGGER.debug("Notifier failed", exc_info=True)

    def _notify_warning(self, message: str) -> None:
        try:
            self.notifier.warning(message)
        except Exception:
            LOGGER.debug("Notifier failed", exc_info=True)


__all__ = [
    "ApplyOutcome",
    "ApplyReason",
    "PatchApplyPipeline",
    "introduced_identifiers",
]
