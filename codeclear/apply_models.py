"""Data models for the rewrite and apply phases."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class ByteRange:
    """A half-open byte range ``[offset, offset + length)`` tied to a finding."""
    id: str
    offset: int
    length: int
    label: str = ""

    @property
    def end(self) -> int:
        return self.offset + self.length

    def overlaps(self, other: "ByteRange") -> bool:
        return self.offset < other.end and self.end > other.offset

    def contains(self, other: "ByteRange") -> bool:
        return self.offset <= other.offset and other.end <= self.end


class SkipReason(str, Enum):
    OVERLAP = "overlap"
    OUT_OF_BOUNDS = "out_of_bounds"


@dataclass(frozen=True)
class SkippedRange:
    """A range the rewriter refused to remove."""
    range: ByteRange
    reason: SkipReason
    file_path: str = ""
    conflicts_with: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.range.id,
            "label": self.range.label,
            "file_path": self.file_path,
            "offset": self.range.offset,
            "length": self.range.length,
            "reason": self.reason.value,
            "conflicts_with": list(self.conflicts_with),
        }

    def __str__(self) -> str:
        where = f"{self.file_path} " if self.file_path else ""
        text = f"{where}[{self.range.offset}, {self.range.end}) {self.range.label}: {self.reason.value}"
        if self.conflicts_with:
            text += f" (conflicts with {', '.join(self.conflicts_with)})"
        return text


@dataclass
class RangeRemoval:
    """Output of removing a batch of ranges from one buffer.

    ``cuts`` holds the position in ``content`` where each applied range used
    to start.
    """
    content: bytes
    applied: List[str] = field(default_factory=list)
    skipped: List[SkippedRange] = field(default_factory=list)
    cuts: List[int] = field(default_factory=list)


@dataclass
class FileRewrite:
    """Original and modified bytes of one file."""
    file_path: str
    original: bytes
    modified: bytes
    applied: List[str] = field(default_factory=list)
    skipped: List[SkippedRange] = field(default_factory=list)
    diff: str = ""

    @property
    def changed(self) -> bool:
        return self.original != self.modified


@dataclass(frozen=True)
class FileRewriteError:
    """A file the rewriter could not process at all."""
    file_path: str
    error: str

    def __str__(self) -> str:
        return f"{self.file_path}: {self.error}"


@dataclass
class RewriteResult:
    """Per-file outcome of a rewrite batch."""
    files: List[FileRewrite] = field(default_factory=list)
    errors: List[FileRewriteError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def changed_files(self) -> List[FileRewrite]:
        return [f for f in self.files if f.changed]

    @property
    def removed_count(self) -> int:
        return sum(len(f.applied) for f in self.files)

    @property
    def skipped(self) -> List[SkippedRange]:
        return [s for f in self.files for s in f.skipped]


class ApplyState(str, Enum):
    IDLE = "idle"
    BRANCHING = "branching"
    BACKED_UP = "backed_up"
    REWRITTEN = "rewritten"
    VERIFYING = "verifying"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    ABORTED = "aborted"


@dataclass
class VerificationResult:
    """Outcome of the external build/test command."""
    passed: bool
    command: str = ""
    returncode: Optional[int] = None
    output: str = ""
    duration: float = 0.0
    timed_out: bool = False
    cancelled: bool = False
    skipped: bool = False
    error: Optional[str] = None

    def __str__(self) -> str:
        if self.skipped:
            return f"Verification skipped: {self.error or 'no command'}"
        if self.passed:
            return f"Verification passed in {self.duration:.1f}s"
        if self.timed_out:
            return f"Verification timed out after {self.duration:.1f}s"
        if self.cancelled:
            return "Verification cancelled"
        if self.error:
            return f"Verification could not run: {self.error}"
        return f"Verification failed (exit code {self.returncode})"


@dataclass
class ApplyResult:
    """Result of one apply run."""
    state: ApplyState
    removed_count: int = 0
    modified_files: List[str] = field(default_factory=list)
    skipped: List[SkippedRange] = field(default_factory=list)
    errors: List[FileRewriteError] = field(default_factory=list)
    diffs: Dict[str, str] = field(default_factory=dict)
    backup_id: Optional[str] = None
    branch: Optional[str] = None
    commit_message: Optional[str] = None
    verification: Optional[VerificationResult] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.state is ApplyState.COMMITTED

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    def __str__(self) -> str:
        if self.success:
            return (
                f"Removed {self.removed_count} declarations from "
                f"{len(self.modified_files)} files ({self.skipped_count} skipped)"
            )
        return f"Apply ended in {self.state.value}: {self.error}"
