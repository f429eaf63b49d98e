"""Exception hierarchy for codeclear.

Resolution gaps and skipped byte ranges are reported as data on the
analysis and rewrite results; only failures that end an operation are
raised.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .apply_models import ApplyResult


class CodeClearError(Exception):
    """Base class for all codeclear errors."""


class ReferenceIndexError(CodeClearError):
    """The reference index could not answer a lookup."""


class GitError(CodeClearError):
    """A git command failed or the working tree is not usable."""

    def __init__(self, message: str, command: str = "", output: str = ""):
        super().__init__(message)
        self.command = command
        self.output = output

    def __str__(self) -> str:
        base = super().__str__()
        if self.command:
            base = f"{base} ({self.command})"
        if self.output:
            base = f"{base}\n{self.output.strip()}"
        return base


class TransactionError(CodeClearError):
    """An apply run failed. ``result`` describes the final state."""

    phase = "apply"

    def __init__(self, message: str, result: Optional["ApplyResult"] = None):
        super().__init__(message)
        self.result = result


class BranchError(TransactionError):
    phase = "branching"


class BackupError(TransactionError):
    phase = "backup"


class RewriteFailed(TransactionError):
    phase = "rewrite"


class VerificationFailed(TransactionError):
    phase = "verification"


class ApplyCancelled(TransactionError):
    phase = "cancelled"


class CommitFailed(TransactionError):
    phase = "commit"
