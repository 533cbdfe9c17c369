"""CLI commands for inspecting and applying generated test patches."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

import typer

from .config import ConfigError, Settings, load_settings
from .events import EventSink, JsonlEventSink, Notifier
from .tools.diff_parser import ChangeType, extract_patch_from_logs, parse_unified_diff
from .tools.hunks import normalize_hunk_counts
from .tools.patch import PatchApplyPipeline
from .tools.process import GitError, GitRunner
from .tools.worktree import TemporaryWorktreeManager

APP_HELP = "Apply agent-generated test patches without touching production code."
STDIN_MARKER = "-"
EVENT_LOG_RELATIVE = Path("logs") / "events.jsonl"

app = typer.Typer(help=APP_HELP)


class EchoNotifier(Notifier):
    """Notifier that prints user messages to stderr."""

    def info(self, message: str) -> None:
        typer.echo(message, err=True)

    def warning(self, message: str) -> None:
        typer.echo(f"Warning: {message}", err=True)


def _read_patch(source: str) -> str:
    if source == STDIN_MARKER:
        return sys.stdin.read()
    path = Path(source)
    try:
        return path.read_text(encoding="utf-8")
    except OSError as error:
        typer.echo(f"Failed to read {path}: {error}", err=True)
        raise typer.Exit(code=1) from error


def _load_settings(repo_root: Path, config: Optional[str]) -> Settings:
    try:
        return load_settings(repo_root, config)
    except ConfigError as error:
        typer.echo(str(error), err=True)
        raise typer.Exit(code=1) from error


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _describe_change(change_type: ChangeType, path: str, old_path: Optional[str]) -> str:
    if old_path:
        return f"{change_type.value:<8} {path} <- {old_path}"
    return f"{change_type.value:<8} {path}"


@app.command()
def analyze(
    patch: str = typer.Argument(..., help="Patch file to inspect, or '-' for stdin."),
) -> None:
    """List the files a patch touches."""
    analysis = parse_unified_diff(_read_patch(patch))
    if not analysis.files:
        typer.echo("No file changes found.")
        raise typer.Exit(code=1)
    for entry in analysis.files:
        typer.echo(_describe_change(entry.change_type, entry.path, entry.old_path))


@app.command()
def normalize(
    patch: str = typer.Argument(..., help="Patch file to normalise, or '-' for stdin."),
) -> None:
    """Print the patch with hunk header counts recomputed."""
    result = normalize_hunk_counts(_read_patch(patch))
    for adjustment in result.adjustments:
        typer.echo(adjustment, err=True)
    typer.echo(result.text, nl=False)


@app.command()
def apply(
    patch: str = typer.Argument(..., help="Patch file (or agent log with --from-logs), '-' for stdin."),
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Repository to apply the patch to."),
    task_id: str = typer.Option(..., "--task-id", "-t", help="Identifier used to name saved artifacts."),
    from_logs: bool = typer.Option(
        False,
        "--from-logs",
        help="Extract the patch from between TESTGATE markers in agent output.",
    ),
    snapshot: Optional[Path] = typer.Option(
        None,
        "--snapshot",
        help="Directory whose test files are snapshotted when manual merging is needed.",
    ),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to testgate.yaml."),
    event_log: Optional[Path] = typer.Option(
        None,
        "--event-log",
        help="JSON lines event log (default: <storage>/logs/events.jsonl).",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Apply a test-only patch, saving it for manual merge when git refuses."""
    _configure_logging(verbose)
    repo_root = repo.resolve()
    settings = _load_settings(repo_root, config)

    raw = _read_patch(patch)
    if from_logs:
        extracted = extract_patch_from_logs(raw)
        if extracted is None:
            typer.echo("No TESTGATE patch markers found in the input.", err=True)
            raise typer.Exit(code=1)
        raw = extracted

    storage_dir = settings.resolve_storage_dir(repo_root)
    events: EventSink = JsonlEventSink(event_log or storage_dir / EVENT_LOG_RELATIVE)
    pipeline = PatchApplyPipeline.from_settings(
        settings,
        repo_root,
        events=events,
        notifier=EchoNotifier(),
    )
    outcome = pipeline.apply(task_id, raw, repo_root, snapshot_source=snapshot)

    typer.echo(f"Outcome: {outcome.reason.value}")
    for path in outcome.test_paths:
        typer.echo(f"- {path}")
    if outcome.persisted_patch_path is not None:
        typer.echo(f"Patch saved: {outcome.persisted_patch_path.as_posix()}")
    if outcome.persisted_instruction_path is not None:
        typer.echo(f"Instructions: {outcome.persisted_instruction_path.as_posix()}")
    if not outcome.applied:
        raise typer.Exit(code=1)


def _worktree_manager(repo_root: Path, settings: Settings) -> TemporaryWorktreeManager:
    return TemporaryWorktreeManager(
        settings.resolve_storage_dir(repo_root),
        runner=GitRunner(settings.git_binary, timeout=settings.command_timeout),
    )


@app.command("worktree-create")
def worktree_create(
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Repository to branch the worktree from."),
    task_id: str = typer.Option(..., "--task-id", "-t", help="Task identifier naming the worktree."),
    ref: Optional[str] = typer.Option(None, "--ref", help="Commit-ish to check out (default from config)."),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to testgate.yaml."),
) -> None:
    """Create a detached worktree for a task and print its path."""
    repo_root = repo.resolve()
    settings = _load_settings(repo_root, config)
    manager = _worktree_manager(repo_root, settings)
    try:
        worktree = manager.create(repo_root, task_id, ref or settings.worktree_ref)
    except GitError as error:
        typer.echo(f"Failed to create worktree: {error}", err=True)
        raise typer.Exit(code=1) from error
    typer.echo(worktree.worktree_dir.as_posix())


@app.command("worktree-remove")
def worktree_remove(
    worktree_dir: Path = typer.Argument(..., help="Worktree directory to remove."),
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Repository that owns the worktree."),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to testgate.yaml."),
) -> None:
    """Remove a worktree created by ``worktree-create``."""
    repo_root = repo.resolve()
    settings = _load_settings(repo_root, config)
    manager = _worktree_manager(repo_root, settings)
    if not manager.owns(worktree_dir):
        typer.echo(
            f"Refusing to remove {worktree_dir.as_posix()}: not a worktree under "
            f"{manager.worktrees_root.as_posix()}",
            err=True,
        )
        raise typer.Exit(code=1)
    manager.remove(repo_root, worktree_dir.resolve())
    typer.echo(f"Removed {worktree_dir.as_posix()}")


if __name__ == "__main__":
    app()
