"""Filesystem locations used by codeclear."""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(os.environ.get("CODECLEAR_HOME", str(Path.home() / ".codeclear"))).expanduser()
BACKUP_DIR = BASE_DIR / "backups"
CONFIG_FILENAME = ".codeclear.toml"
SUPPORTED_EXTENSIONS = {".py"}
SKIP_DIRS = {
    ".git",
    ".hg",
    ".venv",
    "venv",
    "__pycache__",
    ".mypy_cache",
    ".pytest_cache",
    ".ruff_cache",
    ".tox",
    "build",
    "dist",
    "node_modules",
}


def ensure_base_dirs() -> None:
    """Create base directories for local storage if needed."""
    BASE_DIR.mkdir(parents=True, exist_ok=True)
    BACKUP_DIR.mkdir(parents=True, exist_ok=True)
