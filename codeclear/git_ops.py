"""Thin wrapper over the git command line used by apply runs."""

from __future__ import annotations

import logging
import shutil
import subprocess
import time
from pathlib import Path
from typing import List, Optional, Sequence

from .config_manager import GitConfig
from .errors import GitError

logger = logging.getLogger(__name__)

GIT_TIMEOUT = 60


class GitOperations:
    """Branch, commit and diff operations in one working tree."""

    def __init__(self, working_dir: Path, config: Optional[GitConfig] = None):
        self.working_dir = Path(working_dir)
        self.config = config or GitConfig()

    def _run(self, args: Sequence[str]) -> str:
        command = "git " + " ".join(args)
        if shutil.which("git") is None:
            raise GitError("git executable not found", command=command)
        try:
            result = subprocess.run(
                ["git", *args],
                cwd=str(self.working_dir),
                capture_output=True,
                text=True,
                timeout=GIT_TIMEOUT,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise GitError(f"git failed to run: {exc}", command=command) from exc
        if result.returncode != 0:
            raise GitError("git command failed", command=command, output=result.stderr or result.stdout)
        return result.stdout

    def is_git_repository(self) -> bool:
        try:
            return self._run(["rev-parse", "--is-inside-work-tree"]).strip() == "true"
        except GitError:
            return False

    def has_uncommitted_changes(self) -> bool:
        return bool(self._run(["status", "--porcelain"]).strip())

    def current_branch(self) -> str:
        return self._run(["rev-parse", "--abbrev-ref", "HEAD"]).strip()

    def generate_branch_name(self) -> str:
        return f"unused-code-{int(time.time())}"

    def create_branch(self, name: Optional[str] = None) -> str:
        """Create and check out ``<branch_prefix>/<name>``.

        Raises:
            GitError: if the tree has uncommitted changes or git fails.
        """
        name = name or self.generate_branch_name()
        full_name = f"{self.config.branch_prefix}/{name}" if self.config.branch_prefix else name
        if self.has_uncommitted_changes():
            raise GitError("working tree has uncommitted changes; commit or stash them first")
        self._run(["checkout", "-b", full_name])
        logger.info("Created branch %s", full_name)
        return full_name

    def format_commit_message(self, count: int) -> str:
        return self.config.commit_message_format.replace("{count}", str(count))

    def commit(self, message: str, paths: Optional[Sequence[str]] = None) -> str:
        """Stage ``paths`` (everything when omitted), commit and return the new HEAD."""
        if paths:
            self._run(["add", "--", *paths])
        else:
            self._run(["add", "-A"])
        self._run(["commit", "-m", message])
        head = self._run(["rev-parse", "HEAD"]).strip()
        logger.info("Committed %s: %s", head[:10], message)
        return head

    def commit_changes(self, count: int, paths: Optional[Sequence[str]] = None) -> str:
        return self.commit(self.format_commit_message(count), paths)

    def diff(self, paths: Optional[List[str]] = None) -> str:
        args = ["diff", "HEAD"]
        if paths:
            args += ["--", *paths]
        return self._run(args)
