"""Load and validate ``testgate.yaml`` settings."""

from __future__ import annotations

import os
import re
import tempfile
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

DEFAULT_CONFIG_NAME = "testgate.yaml"
DEFAULT_CASE_ID_PATTERN = r"\bTC-[A-Z0-9]+(?:-[A-Z0-9]+)*\b"
STORAGE_DIR_ENV = "TESTGATE_STORAGE_DIR"
GIT_BINARY_ENV = "TESTGATE_GIT_BINARY"


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed or validated."""


class Settings(BaseModel):
    """Runtime settings for patch application and worktree management."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    storage_dir: Optional[str] = None
    git_binary: str = "git"
    command_timeout: Optional[float] = Field(default=None, gt=0)
    worktree_ref: str = "HEAD"
    # Empty string disables the "identifiers already present" leniency check.
    case_id_pattern: str = DEFAULT_CASE_ID_PATTERN

    @field_validator("case_id_pattern")
    @classmethod
    def _check_pattern(cls, value: str) -> str:
        if value:
            try:
                re.compile(value)
            except re.error as error:
                raise ValueError(f"invalid regular expression: {error}") from error
        return value

    @field_validator("git_binary", "worktree_ref")
    @classmethod
    def _require_text(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("must not be blank")
        return cleaned

    def resolve_storage_dir(self, repo_root: Path | str) -> Path:
        """Return the absolute artifact directory for ``repo_root``.

        Relative ``storage_dir`` values resolve against the repository root.
        Without one, artifacts live under ``.git/testgate`` so they never show
        up as untracked files, falling back to the system temp directory when
        ``.git`` is not a directory (for example inside a linked worktree).
        """

        root = Path(repo_root).resolve()
        if self.storage_dir:
            candidate = Path(self.storage_dir).expanduser()
            return candidate if candidate.is_absolute() else (root / candidate).resolve()
        git_dir = root / ".git"
        if git_dir.is_dir():
            return git_dir / "testgate"
        return Path(tempfile.gettempdir()) / "testgate"


def _read_config_file(path: Path) -> Mapping[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle) or {}
    except FileNotFoundError:
        return {}
    except yaml.YAMLError as error:
        raise ConfigError(f"Failed to parse {path}: {error}") from error
    if not isinstance(loaded, Mapping):
        raise ConfigError(f"{path} must contain a mapping at the top level.")
    return loaded


def load_settings(
    repo_root: Path | str,
    config_path: Path | str | None = None,
    *,
    env: Mapping[str, str] | None = None,
) -> Settings:
    """Load settings from ``config_path`` (default ``<repo>/testgate.yaml``).

    A missing file yields defaults. ``TESTGATE_STORAGE_DIR`` and
    ``TESTGATE_GIT_BINARY`` override the file.
    """

    env_mapping = env if env is not None else os.environ
    root = Path(repo_root).resolve()
    if config_path is None:
        candidate = root / DEFAULT_CONFIG_NAME
    else:
        candidate = Path(config_path)
        if not candidate.is_absolute():
            candidate = (root / candidate).resolve()

    payload = dict(_read_config_file(candidate))
    storage_override = (env_mapping.get(STORAGE_DIR_ENV) or "").strip()
    if storage_override:
        payload["storage_dir"] = storage_override
    binary_override = (env_mapping.get(GIT_BINARY_ENV) or "").strip()
    if binary_override:
        payload["git_binary"] = binary_override

    try:
        return Settings.model_validate(payload)
    except ValidationError as error:
        raise ConfigError(f"Invalid configuration in {candidate}: {error}") from error


__all__ = [
    "ConfigError",
    "DEFAULT_CASE_ID_PATTERN",
    "DEFAULT_CONFIG_NAME",
    "GIT_BINARY_ENV",
    "STORAGE_DIR_ENV",
    "Settings",
    "load_settings",
]
