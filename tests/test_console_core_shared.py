from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from console_core import shared


class _SharedError(RuntimeError):
    pass


def _error_factory(message: str) -> Exception:
    return _SharedError(message)


def test_repo_root_finds_pyproject_ancestor(tmp_path: Path) -> None:
    repo = tmp_path / "repo"
    start_dir = repo / "src" / "agent_console"
    start_dir.mkdir(parents=True)
    (repo / "pyproject.toml").write_text("[project]\nname='x'\n", encoding="utf-8")
    start_file = start_dir / "server.py"
    start_file.write_text("", encoding="utf-8")

    assert shared.repo_root(start_file) == repo


def test_repo_root_falls_back_to_start_parent_without_pyproject(tmp_path: Path) -> None:
    start_dir = tmp_path / "a" / "b"
    start_dir.mkdir(parents=True)
    start_file = start_dir / "x.py"
    start_file.write_text("", encoding="utf-8")

    resolved = shared.repo_root(start_file)
    assert resolved == start_dir or (resolved / "pyproject.toml").exists()


def test_default_config_file_lives_under_config_dir(tmp_path: Path) -> None:
    assert shared.default_config_file(tmp_path) == tmp_path / "config" / "console.config.toml"


def test_repository_default_config_is_shipped() -> None:
    assert shared.default_config_file(ROOT).is_file()


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("http://127.0.0.1:23712/", "http://127.0.0.1:23712"),
        ("  https://hub.example/base/ ", "https://hub.example/base"),
    ],
)
def test_normalize_base_url_strips_whitespace_and_trailing_slash(value: str, expected: str) -> None:
    assert shared.normalize_base_url(value, error_factory=_error_factory) == expected


@pytest.mark.parametrize(("value", "message"), [("", "must not be empty"), ("hub:8080", "Invalid hub base URL")])
def test_normalize_base_url_rejects_bad_values(value: str, message: str) -> None:
    with pytest.raises(_SharedError, match=message):
        shared.normalize_base_url(value, error_factory=_error_factory)
