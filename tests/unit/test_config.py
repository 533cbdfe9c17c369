from __future__ import annotations

import tempfile
from pathlib import Path

import pytest

from testgate.config import (
    DEFAULT_CASE_ID_PATTERN,
    GIT_BINARY_ENV,
    STORAGE_DIR_ENV,
    ConfigError,
    Settings,
    load_settings,
)


def test_missing_file_yields_defaults(tmp_path: Path) -> None:
    settings = load_settings(tmp_path, env={})

    assert settings == Settings()
    assert settings.git_binary == "git"
    assert settings.worktree_ref == "HEAD"
    assert settings.case_id_pattern == DEFAULT_CASE_ID_PATTERN
    assert settings.command_timeout is None


def test_values_are_read_from_yaml(tmp_path: Path) -> None:
    (tmp_path / "testgate.yaml").write_text(
        "storage_dir: artifacts\ncommand_timeout: 30\nworktree_ref: main\ncase_id_pattern: ''\n",
        encoding="utf-8",
    )

    settings = load_settings(tmp_path, env={})

    assert settings.command_timeout == 30
    assert settings.worktree_ref == "main"
    assert settings.case_id_pattern == ""
    assert settings.resolve_storage_dir(tmp_path) == (tmp_path / "artifacts").resolve()


def test_explicit_relative_config_path(tmp_path: Path) -> None:
    (tmp_path / "conf").mkdir()
    (tmp_path / "conf" / "gate.yaml").write_text("git_binary: /usr/bin/git\n", encoding="utf-8")

    settings = load_settings(tmp_path, "conf/gate.yaml", env={})

    assert settings.git_binary == "/usr/bin/git"


def test_environment_overrides_file(tmp_path: Path) -> None:
    (tmp_path / "testgate.yaml").write_text("storage_dir: from-file\n", encoding="utf-8")

    settings = load_settings(
        tmp_path,
        env={STORAGE_DIR_ENV: str(tmp_path / "from-env"), GIT_BINARY_ENV: " git2 "},
    )

    assert settings.resolve_storage_dir(tmp_path) == tmp_path / "from-env"
    assert settings.git_binary == "git2"


@pytest.mark.parametrize(
    "content",
    [
        "storage_dir: [unclosed\n",
        "- just\n- a list\n",
        "surprise: true\n",
        "case_id_pattern: '(unbalanced'\n",
        "command_timeout: 0\n",
        "git_binary: '   '\n",
    ],
)
def test_invalid_configuration_raises(tmp_path: Path, content: str) -> None:
    (tmp_path / "testgate.yaml").write_text(content, encoding="utf-8")

    with pytest.raises(ConfigError):
        load_settings(tmp_path, env={})


def test_default_storage_lives_inside_git_dir(tmp_path: Path) -> None:
    (tmp_path / ".git").mkdir()

    assert Settings().resolve_storage_dir(tmp_path) == tmp_path.resolve() / ".git" / "testgate"


def test_default_storage_without_git_dir_uses_temp(tmp_path: Path) -> None:
    (tmp_path / ".git").write_text("gitdir: elsewhere\n", encoding="utf-8")

    assert Settings().resolve_storage_dir(tmp_path) == Path(tempfile.gettempdir()) / "testgate"
