"""External build/test command run after a rewrite."""

from __future__ import annotations

import logging
import shlex
import subprocess
import tempfile
import threading
import time
from pathlib import Path
from typing import List, Optional, Sequence, Union

from .apply_models import VerificationResult

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.1
MAX_OUTPUT_CHARS = 20000


class CommandVerifier:
    """Run a verification command and report pass or not-pass.

    Pass means exit code 0 within ``timeout`` seconds. A non-zero exit, a
    crash, a timeout or a cancellation are all not-pass. A command that
    cannot be started is a not-pass when ``required``; otherwise the
    verification is reported as skipped.
    """

    def __init__(
        self,
        command: Union[str, Sequence[str]],
        cwd: Optional[Path] = None,
        timeout: float = 300,
        required: bool = False,
    ):
        self.command = command
        self.cwd = Path(cwd) if cwd is not None else None
        self.timeout = timeout
        self.required = required

    @property
    def args(self) -> List[str]:
        if isinstance(self.command, str):
            return shlex.split(self.command)
        return list(self.command)

    @property
    def display(self) -> str:
        if isinstance(self.command, str):
            return self.command
        return " ".join(shlex.quote(part) for part in self.command)

    def run(self, cancel_event: Optional[threading.Event] = None) -> VerificationResult:
        try:
            args = self.args
        except ValueError as exc:
            return self._not_started(f"cannot parse command: {exc}")
        if not args:
            return self._not_started("empty verification command")

        logger.info("Running verification: %s (timeout %ss)", self.display, self.timeout)
        start = time.monotonic()
        with tempfile.TemporaryFile() as output:
            try:
                proc = subprocess.Popen(
                    args,
                    cwd=str(self.cwd) if self.cwd else None,
                    stdout=output,
                    stderr=subprocess.STDOUT,
                    stdin=subprocess.DEVNULL,
                )
            except OSError as exc:
                return self._not_started(str(exc))

            timed_out = cancelled = False
            while True:
                try:
                    proc.wait(timeout=POLL_INTERVAL)
                    break
                except subprocess.TimeoutExpired:
                    pass
                if cancel_event is not None and cancel_event.is_set():
                    cancelled = True
                elif time.monotonic() - start > self.timeout:
                    timed_out = True
                if cancelled or timed_out:
                    proc.kill()
                    proc.wait()
                    break

            duration = time.monotonic() - start
            output.seek(0)
            text = output.read().decode("utf-8", errors="replace")[-MAX_OUTPUT_CHARS:]

        passed = proc.returncode == 0 and not (timed_out or cancelled)
        result = VerificationResult(
            passed=passed,
            command=self.display,
            returncode=proc.returncode,
            output=text,
            duration=duration,
            timed_out=timed_out,
            cancelled=cancelled,
        )
        if passed:
            logger.info("%s", result)
        else:
            logger.warning("%s", result)
        return result

    def _not_started(self, error: str) -> VerificationResult:
        if self.required:
            logger.error("Verification command could not run: %s", error)
            return VerificationResult(passed=False, command=self.display, error=error)
        logger.warning("Verification command could not run, skipping verification: %s", error)
        return VerificationResult(passed=True, command=self.display, skipped=True, error=error)
