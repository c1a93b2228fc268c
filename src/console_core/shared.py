from __future__ import annotations

from collections.abc import Callable
from pathlib import Path


def repo_root(start_file: Path) -> Path:
    resolved = start_file.resolve()
    for parent in resolved.parents:
        if (parent / "pyproject.toml").exists():
            return parent
    return resolved.parent


def default_config_file(repo_root: Path) -> Path:
    return repo_root / "config" / "console.config.toml"


def normalize_base_url(value: str | None, *, error_factory: Callable[[str], Exception]) -> str:
    candidate = str(value or "").strip()
    if not candidate:
        raise error_factory("Hub base URL must not be empty.")
    if not candidate.startswith(("http://", "https://")):
        raise error_factory(f"Invalid hub base URL: {value!r}. Expected an absolute http(s) URL.")
    return candidate.rstrip("/")
