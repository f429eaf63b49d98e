"""Pytest configuration and fixtures for codeclear tests."""

import shutil
import sys
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from codeclear.config_manager import ClearConfig, save_config
from codeclear.models import AccessLevel, Declaration, DeclarationKind


SAMPLE_APP = '''"""Sample application."""

import sys


def main():
    print(format_greeting(sys.argv[1:]))


def format_greeting(args):
    return "Hello, " + _join(args)


def _join(args):
    return " ".join(args)


def _unused_helper():
    return 42


def legacy_report():
    return "old"


@cython.cfunc
def fast_path(x):
    return x * 2


if __name__ == "__main__":
    main()
'''

SAMPLE_MODELS = '''"""Data types."""

__all__ = ["Record"]


class Record:
    def __init__(self, value):
        self.value = value

    def describe(self):
        return f"Record({self.value})"
'''


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path: Path, monkeypatch):
    """Keep backups written by tests out of the real home directory."""
    home = tmp_path / "codeclear-home"
    monkeypatch.setattr("codeclear.config.BASE_DIR", home)
    monkeypatch.setattr("codeclear.config.BACKUP_DIR", home / "backups")
    monkeypatch.setattr("codeclear.backup.BACKUP_DIR", home / "backups")
    return home


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def make_declaration():
    """Factory for Declarations. The id defaults to the name."""

    def _make(
        name: str = "helper",
        kind: DeclarationKind = DeclarationKind.FUNCTION,
        access: AccessLevel = AccessLevel.INTERNAL,
        file_path: str = "src/app.py",
        line: int = 1,
        end_line: int = None,
        byte_offset: int = 0,
        byte_length: int = 50,
        markers=(),
        modifiers=(),
        decl_id: str = None,
        **kwargs,
    ) -> Declaration:
        return Declaration(
            id=decl_id or name,
            kind=kind,
            name=name,
            file_path=file_path,
            line=line,
            end_line=end_line,
            column=1,
            byte_offset=byte_offset,
            byte_length=byte_length,
            access_level=access,
            markers=frozenset(markers),
            modifiers=frozenset(modifiers),
            **kwargs,
        )

    return _make


@pytest.fixture
def sample_project(temp_dir: Path) -> Path:
    """A small package with two unused helpers and one protected function."""
    root = temp_dir / "sample"
    (root / "pkg").mkdir(parents=True)
    (root / "pkg" / "app.py").write_text(SAMPLE_APP, encoding="utf-8")
    (root / "pkg" / "models.py").write_text(SAMPLE_MODELS, encoding="utf-8")
    (root / "tests").mkdir()
    (root / "tests" / "test_app.py").write_text("def test_nothing():\n    assert True\n", encoding="utf-8")
    return root


@pytest.fixture
def quiet_config() -> ClearConfig:
    """Config with git disabled and a verification command that always passes."""
    config = ClearConfig()
    config.git.enabled = False
    config.testing.command = f'"{sys.executable}" -c "pass"'
    config.testing.timeout = 60
    return config


@pytest.fixture
def quiet_config_file(sample_project: Path, quiet_config: ClearConfig) -> Path:
    return save_config(quiet_config, sample_project / ".codeclear.toml")
