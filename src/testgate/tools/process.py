"""Run git with controlled argument lists and fold failures into values."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence, Union

LOGGER = logging.getLogger(__name__)

# Keep non-ASCII paths as literal UTF-8 instead of "\343\201..." escapes.
QUOTEPATH_ARGS: tuple[str, ...] = ("-c", "core.quotepath=false")
NO_DETAILS = "(no details)"


class GitError(RuntimeError):
    """Raised when a git command fails where failure cannot be tolerated."""


@dataclass(slots=True, frozen=True)
class GitSuccess:
    """Captured output of a git command that exited with status 0."""

    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return True


@dataclass(slots=True, frozen=True)
class GitFailure:
    """A git command that could not run or exited non-zero."""

    output: str

    @property
    def ok(self) -> bool:
        return False


GitResult = Union[GitSuccess, GitFailure]


def _decode(payload: bytes | str | None) -> str:
    if payload is None:
        return ""
    if isinstance(payload, str):
        return payload
    return payload.decode("utf-8", errors="replace")


def _join_diagnostics(*parts: str) -> str:
    cleaned = [part.strip() for part in parts if part and part.strip()]
    return "\n".join(cleaned) if cleaned else NO_DETAILS


class GitRunner:
    """Invoke ``git`` and return :class:`GitSuccess` or :class:`GitFailure`.

    ``run`` never raises: a missing binary, an invalid working directory, an
    argument the OS rejects (such as one containing a NUL byte), a timeout and
    a non-zero exit are all reported as :class:`GitFailure` whose
    ``output`` combines stderr, stdout and the error message.
    """

    def __init__(self, binary: str = "git", *, timeout: float | None = None) -> None:
        self.binary = binary
        self.timeout = timeout

    def command(self, args: Sequence[str]) -> list[str]:
        """Return the full argv used for ``args``."""

        return [self.binary, *QUOTEPATH_ARGS, *args]

    def run(self, cwd: Path | str, args: Sequence[str]) -> GitResult:
        command = self.command(args)
        try:
            process = subprocess.run(
                command,
                cwd=str(cwd),
                capture_output=True,
                text=False,
                check=False,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as error:
            message = f"git {' '.join(args)} timed out after {error.timeout} seconds"
            LOGGER.debug(message)
            return GitFailure(
                output=_join_diagnostics(_decode(error.stderr), _decode(error.stdout), message)
            )
        except (OSError, ValueError) as error:
            LOGGER.debug("Unable to run %s: %s", self.binary, error)
            return GitFailure(output=_join_diagnostics(str(error)))

        stdout = _decode(process.stdout)
        stderr = _decode(process.stderr)
        if process.returncode != 0:
            message = f"Command failed (exit {process.returncode}): git {' '.join(args)}"
            return GitFailure(output=_join_diagnostics(stderr, stdout, message))
        return GitSuccess(stdout=stdout, stderr=stderr)

    def run_stdout(self, cwd: Path | str, args: Sequence[str]) -> str:
        """Run ``git`` and return stdout, raising :class:`GitError` on failure."""

        result = self.run(cwd, args)
        if isinstance(result, GitFailure):
            raise GitError(f"git {' '.join(args)} failed: {result.output}")
        return result.stdout


__all__ = [
    "GitError",
    "GitFailure",
    "GitResult",
    "GitRunner",
    "GitSuccess",
    "NO_DETAILS",
    "QUOTEPATH_ARGS",
]
