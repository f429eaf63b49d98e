"""Byte-exact removal of declaration ranges from source files."""

from __future__ import annotations

import bisect
import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .apply_models import (
    ByteRange,
    FileRewrite,
    FileRewriteError,
    RangeRemoval,
    RewriteResult,
    SkippedRange,
    SkipReason,
)
from .diff_engine import DiffEngine
from .models import Finding

logger = logging.getLogger(__name__)

MAX_BLANK_LINES = 2


def remove_ranges(buffer: bytes, ranges: Sequence[ByteRange]) -> RangeRemoval:
    """Remove every valid, non-conflicting range from ``buffer``.

    Ranges are processed by descending offset so earlier offsets stay valid.
    A range is skipped, never clamped or partially applied, when it lies
    outside the buffer or overlaps another range of the batch. Of two nested
    ranges only the outer one is applied; partially overlapping ranges are
    both skipped.
    """
    skipped: List[SkippedRange] = []
    valid: List[ByteRange] = []
    for r in ranges:
        if r.length <= 0 or r.offset < 0 or r.end > len(buffer):
            skipped.append(SkippedRange(range=r, reason=SkipReason.OUT_OF_BOUNDS))
        else:
            valid.append(r)

    ordered = sorted(valid, key=lambda r: (-r.offset, r.length))
    content = bytearray(buffer)
    applied: List[ByteRange] = []
    overlap_skipped: List[ByteRange] = []

    for i, current in enumerate(ordered):
        conflicts = [p.id for p in ordered[i + 1:] if current.overlaps(p)]
        conflicts += [
            s.id for s in overlap_skipped
            if current.overlaps(s) and not current.contains(s)
        ]
        if conflicts:
            overlap_skipped.append(current)
            skipped.append(
                SkippedRange(range=current, reason=SkipReason.OVERLAP, conflicts_with=tuple(conflicts))
            )
            continue
        if current.end > len(content):
            skipped.append(SkippedRange(range=current, reason=SkipReason.OUT_OF_BOUNDS))
            continue
        del content[current.offset:current.end]
        applied.append(current)

    cuts = []
    for r in applied:
        removed_before = sum(other.length for other in applied if other.offset < r.offset)
        cuts.append(r.offset - removed_before)

    return RangeRemoval(
        content=bytes(content),
        applied=[r.id for r in applied],
        skipped=skipped,
        cuts=sorted(cuts),
    )


def collapse_blank_lines(content: bytes, cuts: Iterable[int], max_blank: int = MAX_BLANK_LINES) -> bytes:
    """Reduce runs of blank lines touching a cut point to ``max_blank`` lines.

    Blank runs elsewhere in the file are left alone.
    """
    lines = content.splitlines(keepends=True)
    if not lines:
        return content
    starts = [0]
    for line in lines[:-1]:
        starts.append(starts[-1] + len(line))

    def blank(idx: int) -> bool:
        return not lines[idx].strip()

    seeds = set()
    for cut in cuts:
        idx = min(bisect.bisect_right(starts, cut) - 1, len(lines) - 1)
        if idx < 0:
            continue
        seeds.add(idx)
        if cut == starts[idx] and idx > 0:
            seeds.add(idx - 1)

    drop = set()
    visited = set()
    for seed in sorted(seeds):
        if seed in visited or not blank(seed):
            continue
        first = seed
        while first > 0 and blank(first - 1):
            first -= 1
        last = seed
        while last + 1 < len(lines) and blank(last + 1):
            last += 1
        visited.update(range(first, last + 1))
        drop.update(range(first + max_blank, last + 1))

    if not drop:
        return content
    return b"".join(line for idx, line in enumerate(lines) if idx not in drop)


class SafeRewriter:
    """Apply findings to the files they belong to.

    ``rewrite`` computes new contents without touching the disk; ``persist``
    writes them. Relative declaration paths are resolved against ``root``.
    """

    def __init__(
        self,
        root: Optional[Path] = None,
        collapse_blank_lines: bool = True,
        max_workers: int = 1,
        diff_engine: Optional[DiffEngine] = None,
    ):
        self.root = Path(root) if root is not None else Path.cwd()
        self.collapse = collapse_blank_lines
        self.max_workers = max(1, max_workers)
        self.diff_engine = diff_engine or DiffEngine()

    def resolve(self, file_path: str) -> Path:
        path = Path(file_path)
        return path if path.is_absolute() else self.root / path

    @staticmethod
    def group_ranges(findings: Iterable[Finding]) -> Dict[str, List[ByteRange]]:
        grouped: Dict[str, List[ByteRange]] = {}
        for finding in findings:
            decl = finding.declaration
            grouped.setdefault(decl.file_path, []).append(
                ByteRange(
                    id=decl.id,
                    offset=decl.byte_offset,
                    length=decl.byte_length,
                    label=decl.qualified_name,
                )
            )
        return grouped

    def rewrite_buffer(self, file_path: str, original: bytes, ranges: Sequence[ByteRange]) -> FileRewrite:
        removal = remove_ranges(original, ranges)
        modified = removal.content
        if self.collapse and removal.cuts:
            modified = collapse_blank_lines(modified, removal.cuts)
        skipped = [
            SkippedRange(range=s.range, reason=s.reason, file_path=file_path, conflicts_with=s.conflicts_with)
            for s in removal.skipped
        ]
        for skip in skipped:
            logger.warning("Skipped range: %s", skip)
        return FileRewrite(
            file_path=file_path,
            original=original,
            modified=modified,
            applied=removal.applied,
            skipped=skipped,
            diff=self.diff_engine.create_diff(
                original.decode("utf-8", errors="replace"),
                modified.decode("utf-8", errors="replace"),
                file_path,
            ),
        )

    def rewrite_file(self, file_path: str, ranges: Sequence[ByteRange]) -> FileRewrite:
        original = self.resolve(file_path).read_bytes()
        return self.rewrite_buffer(file_path, original, ranges)

    def _rewrite_one(self, item: Tuple[str, List[ByteRange]]):
        file_path, ranges = item
        try:
            return self.rewrite_file(file_path, ranges)
        except OSError as exc:
            logger.error("Cannot rewrite %s: %s", file_path, exc)
            return FileRewriteError(file_path=file_path, error=str(exc))

    def rewrite(self, findings: Iterable[Finding]) -> RewriteResult:
        grouped = sorted(self.group_ranges(findings).items())
        if self.max_workers > 1 and len(grouped) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                outcomes = list(pool.map(self._rewrite_one, grouped))
        else:
            outcomes = [self._rewrite_one(item) for item in grouped]

        result = RewriteResult()
        for outcome in outcomes:
            if isinstance(outcome, FileRewriteError):
                result.errors.append(outcome)
            else:
                result.files.append(outcome)
        logger.info(
            "Rewrite: %d ranges removed in %d files, %d skipped, %d file errors",
            result.removed_count,
            len(result.changed_files),
            len(result.skipped),
            len(result.errors),
        )
        return result

    def persist(self, result: RewriteResult) -> List[str]:
        """Write every changed file; returns the paths written, in order.

        Raises:
            OSError: on the first file that cannot be written. Files written
                before the failure stay written.
        """
        written: List[str] = []
        for file_rewrite in result.changed_files:
            self.resolve(file_rewrite.file_path).write_bytes(file_rewrite.modified)
            written.append(file_rewrite.file_path)
        return written
