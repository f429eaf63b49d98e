"""Transactional apply: branch, back up, rewrite, verify, then commit or roll back.

The source tree after a failed or cancelled run is byte-for-byte the tree
before it: every file that may be touched is backed up before the first
write and restored from that backup on any failure after it.
"""

from __future__ import annotations

import logging
import threading
from typing import Iterable, List, NoReturn, Optional, Type

from .apply_models import ApplyResult, ApplyState, RewriteResult
from .backup import BackupStore
from .config_manager import ClearConfig
from .errors import (
    ApplyCancelled,
    BackupError,
    BranchError,
    CommitFailed,
    GitError,
    RewriteFailed,
    TransactionError,
    VerificationFailed,
)
from .git_ops import GitOperations
from .models import Finding
from .rewriter import SafeRewriter
from .verification import CommandVerifier

logger = logging.getLogger(__name__)


class ApplyOrchestrator:
    """Runs one apply transaction over a set of findings."""

    def __init__(
        self,
        rewriter: SafeRewriter,
        backups: BackupStore,
        verifier: Optional[CommandVerifier] = None,
        vcs: Optional[GitOperations] = None,
        config: Optional[ClearConfig] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.rewriter = rewriter
        self.backups = backups
        self.verifier = verifier
        self.vcs = vcs
        self.config = config or ClearConfig()
        self.cancel_event = cancel_event or threading.Event()
        self.state = ApplyState.IDLE
        self.history: List[ApplyState] = [ApplyState.IDLE]

    def cancel(self) -> None:
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def _transition(self, state: ApplyState) -> None:
        logger.info("Apply: %s -> %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)

    # ------------------------------------------------------------------

    def apply(self, findings: Iterable[Finding]) -> ApplyResult:
        """Remove ``findings`` from the tree as one transaction.

        Returns:
            The result of a committed run (also when nothing was removed).

        Raises:
            TransactionError: a subclass naming the failed phase; its
                ``result`` describes the final state.
        """
        self.state = ApplyState.IDLE
        self.history = [ApplyState.IDLE]
        findings = list(findings)
        result = ApplyResult(state=ApplyState.IDLE)
        if not findings:
            result.error = "no findings selected"
            return result

        if self.cancelled:
            self._abort(result, ApplyCancelled, "apply cancelled before it started")

        result.branch = self._branch(result)

        paths = sorted(SafeRewriter.group_ranges(findings))
        try:
            result.backup_id = self.backups.create_backup(
                [self.rewriter.resolve(p) for p in paths],
                label=f"{len(findings)} declarations",
            )
        except BackupError as exc:
            self._abort(result, BackupError, str(exc), exc)
        self._transition(ApplyState.BACKED_UP)

        if self.cancelled:
            self._rollback(result, ApplyCancelled, "apply cancelled before rewrite")

        rewrite = self.rewriter.rewrite(findings)
        self._record_rewrite(result, rewrite)
        if rewrite.errors:
            self._rollback(
                result,
                RewriteFailed,
                "could not rewrite " + ", ".join(str(e) for e in rewrite.errors),
            )
        try:
            self.rewriter.persist(rewrite)
        except OSError as exc:
            self._rollback(result, RewriteFailed, f"could not write rewritten file: {exc}", exc)
        self._transition(ApplyState.REWRITTEN)

        if self.cancelled:
            self._rollback(result, ApplyCancelled, "apply cancelled before verification")

        if result.modified_files:
            self._verify(result)
            self._commit(result)

        self._transition(ApplyState.COMMITTED)
        result.state = self.state
        logger.info("%s", result)
        return result

    # ------------------------------------------------------------------

    def _branch(self, result: ApplyResult) -> Optional[str]:
        git = self.config.git
        if self.vcs is None or not (git.enabled and git.create_branch):
            return None
        if not self.vcs.is_git_repository():
            logger.warning("%s is not a git repository; working without a branch", self.vcs.working_dir)
            return None
        self._transition(ApplyState.BRANCHING)
        try:
            return self.vcs.create_branch()
        except GitError as exc:
            self._abort(result, BranchError, str(exc), exc)

    def _record_rewrite(self, result: ApplyResult, rewrite: RewriteResult) -> None:
        result.removed_count = rewrite.removed_count
        result.modified_files = [f.file_path for f in rewrite.changed_files]
        result.skipped = rewrite.skipped
        result.errors = list(rewrite.errors)
        result.diffs = {f.file_path: f.diff for f in rewrite.changed_files}

    def _verify(self, result: ApplyResult) -> None:
        if self.verifier is None or not self.config.testing.run_tests:
            return
        self._transition(ApplyState.VERIFYING)
        verification = self.verifier.run(self.cancel_event)
        result.verification = verification
        if verification.cancelled or self.cancelled:
            self._rollback(result, ApplyCancelled, "apply cancelled during verification")
        if not verification.passed:
            self._rollback(result, VerificationFailed, str(verification))

    def _commit(self, result: ApplyResult) -> None:
        git = self.config.git
        if self.vcs is None or not (git.enabled and git.auto_commit):
            return
        if not self.vcs.is_git_repository():
            return
        message = self.vcs.format_commit_message(result.removed_count)
        try:
            self.vcs.commit(message, result.modified_files)
        except GitError as exc:
            self._rollback(result, CommitFailed, str(exc), exc)
        result.commit_message = message

    # ------------------------------------------------------------------

    def _abort(
        self,
        result: ApplyResult,
        error_cls: Type[TransactionError],
        message: str,
        cause: Optional[BaseException] = None,
    ) -> NoReturn:
        """Fail a run that has not written anything yet."""
        self._transition(ApplyState.ABORTED)
        result.state = self.state
        result.error = message
        logger.error("Apply aborted: %s", message)
        raise error_cls(message, result) from cause

    def _rollback(
        self,
        result: ApplyResult,
        error_cls: Type[TransactionError],
        message: str,
        cause: Optional[BaseException] = None,
    ) -> NoReturn:
        """Restore every backed-up file, then fail the run."""
        logger.error("Apply failed, rolling back: %s", message)
        try:
            self.backups.restore(result.backup_id)
        except BackupError as exc:
            self._transition(ApplyState.ABORTED)
            result.state = self.state
            result.error = f"{message}; rollback failed: {exc}"
            logger.critical("Rollback from backup %s failed: %s", result.backup_id, exc)
            raise error_cls(result.error, result) from exc

        self._transition(ApplyState.ROLLED_BACK)
        result.state = self.state
        result.error = message
        raise error_cls(message, result) from cause
