"""Git, diff and artifact tooling behind the patch pipeline."""

from .artifacts import ArtifactStore, MergeRequest, build_merge_instructions
from .classify import PathClassifier, filter_test_like_paths, is_test_like_path
from .diff_parser import (
    ChangedFile,
    ChangeType,
    DiffAnalysis,
    extract_changed_paths,
    extract_patch_from_logs,
    parse_unified_diff,
)
from .hunks import HunkNormalization, normalize_hunk_counts
from .patch import ApplyOutcome, ApplyReason, PatchApplyPipeline
from .process import GitError, GitFailure, GitResult, GitRunner, GitSuccess
from .worktree import TemporaryWorktree, TemporaryWorktreeManager

__all__ = [
    "ApplyOutcome",
    "ApplyReason",
    "ArtifactStore",
    "ChangeType",
    "ChangedFile",
    "DiffAnalysis",
    "GitError",
    "GitFailure",
    "GitResult",
    "GitRunner",
    "GitSuccess",
    "HunkNormalization",
    "MergeRequest",
    "PatchApplyPipeline",
    "PathClassifier",
    "TemporaryWorktree",
    "TemporaryWorktreeManager",
    "build_merge_instructions",
    "extract_changed_paths",
    "extract_patch_from_logs",
    "filter_test_like_paths",
    "is_test_like_path",
    "normalize_hunk_counts",
    "parse_unified_diff",
]
