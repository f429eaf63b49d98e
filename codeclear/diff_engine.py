"""DiffEngine for previewing rewrites before they are applied."""

from __future__ import annotations

import difflib
from typing import List

from .apply_models import RewriteResult


class DiffEngine:
    """Builds stable, human-readable diffs of rewritten files."""

    def create_diff(self, original: str, modified: str, filename: str = "file") -> str:
        """Create unified diff between two versions.

        Args:
            original: Original content
            modified: Modified content
            filename: Name of file for diff header

        Returns:
            Unified diff string, empty when the contents are equal
        """
        original_lines = original.splitlines(keepends=True)
        modified_lines = modified.splitlines(keepends=True)

        diff = difflib.unified_diff(
            original_lines,
            modified_lines,
            fromfile=f"a/{filename}",
            tofile=f"b/{filename}",
        )
        return "".join(line if line.endswith("\n") else line + "\n" for line in diff)

    def line_diff(self, original: str, modified: str) -> List[str]:
        """Full line-by-line comparison.

        Every line of both inputs appears once, prefixed with ``"  "``
        (unchanged), ``"- "`` (removed) or ``"+ "`` (added).
        """
        a = original.splitlines()
        b = modified.splitlines()
        out: List[str] = []
        matcher = difflib.SequenceMatcher(a=a, b=b, autojunk=False)
        for tag, i1, i2, j1, j2 in matcher.get_opcodes():
            if tag == "equal":
                out.extend(f"  {line}" for line in a[i1:i2])
                continue
            out.extend(f"- {line}" for line in a[i1:i2])
            out.extend(f"+ {line}" for line in b[j1:j2])
        return out

    def preview(self, result: RewriteResult) -> str:
        """Generate preview of every change in a rewrite result.

        Args:
            result: Output of :meth:`SafeRewriter.rewrite`

        Returns:
            Formatted preview string
        """
        lines = []
        changed = result.changed_files
        lines.append(f"Proposed removals: {result.removed_count} declarations in {len(changed)} file(s)")
        if result.skipped:
            lines.append(f"   [SKIPPED] {len(result.skipped)} range(s)")
        if result.errors:
            lines.append(f"   [ERROR] {len(result.errors)} file(s)")
        lines.append("")

        for file_rewrite in changed:
            lines.append("=" * 60)
            lines.append(f"[MODIFY] {file_rewrite.file_path}")
            lines.append("=" * 60)
            lines.append(file_rewrite.diff.rstrip("\n"))
            lines.append("")

        for skip in result.skipped:
            lines.append(f"[SKIPPED] {skip}")
        for error in result.errors:
            lines.append(f"[ERROR] {error}")

        return "\n".join(lines).rstrip("\n") + "\n"
