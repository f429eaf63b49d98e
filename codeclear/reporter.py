"""Render an AnalysisResult as JSON, plain text, markdown or compiler diagnostics."""

from __future__ import annotations

import json
import logging
from collections import Counter
from enum import Enum
from pathlib import Path
from typing import Dict, List

from .models import AnalysisResult, RiskLevel

logger = logging.getLogger(__name__)

TOOL_NAME = "codeclear"
TEXT_FINDING_LIMIT = 50
MARKDOWN_FINDING_LIMIT = 20
TOP_FILES = 10


class ReportFormat(str, Enum):
    JSON = "json"
    TEXT = "text"
    MARKDOWN = "markdown"
    DIAGNOSTICS = "diagnostics"


def _shorten(path: str) -> str:
    parts = path.split("/")
    if len(parts) > 3:
        return ".../" + "/".join(parts[-3:])
    return path


class Reporter:
    """Formats one analysis result."""

    def __init__(self, result: AnalysisResult):
        self.result = result

    # -- distributions --------------------------------------------------

    def risk_distribution(self) -> Dict[RiskLevel, int]:
        counts = Counter(f.risk_level for f in self.result.findings)
        return {level: counts[level] for level in RiskLevel if counts[level]}

    def file_distribution(self) -> List[tuple]:
        counts = Counter(f.declaration.file_path for f in self.result.findings)
        return sorted(counts.items(), key=lambda item: (-item[1], item[0]))

    def kind_distribution(self) -> List[tuple]:
        counts: Counter = Counter(f.declaration.kind for f in self.result.findings)
        return sorted(counts.items(), key=lambda item: (-item[1], item[0].value))

    def _percent(self, count: int) -> float:
        total = self.result.unused_count
        return count / total * 100 if total else 0.0

    # -- formats --------------------------------------------------------

    def to_json(self) -> str:
        return json.dumps(self.result.to_dict(), indent=2, sort_keys=True)

    def to_text(self) -> str:
        r = self.result
        rule = "-" * 80
        lines = [
            "=" * 80,
            f"{TOOL_NAME} analysis report".center(80),
            "=" * 80,
            "",
            "SUMMARY",
            rule,
            f"Date:                 {r.analysis_date.strftime('%Y-%m-%d %H:%M %Z').strip()}",
            f"Total declarations:   {r.total_declarations}",
            f"Unused:               {r.unused_count}",
            f"Usage:                {r.usage_percentage:.1f}%",
            f"Analyzed files:       {len(r.analyzed_files)}",
            f"Entry points:         {len(r.entry_points)}",
            f"Protected (skipped):  {len(r.protected)}",
            f"Unresolved refs:      {len(r.unresolved_references)}",
            "",
            "RISK DISTRIBUTION",
            rule,
        ]
        for level, count in self.risk_distribution().items():
            lines.append(f"{level.label:<12}: {count} ({self._percent(count):.1f}%)")
        lines += ["", "BY FILE", rule]
        files = self.file_distribution()
        for path, count in files[:TOP_FILES]:
            lines.append(f"{_shorten(path):<60}: {count}")
        if len(files) > TOP_FILES:
            lines.append(f"... and {len(files) - TOP_FILES} more files")
        lines += ["", "BY KIND", rule]
        for kind, count in self.kind_distribution():
            lines.append(f"{kind.display_name:<20}: {count}")

        lines += ["", "FINDINGS", rule]
        for i, finding in enumerate(r.findings[:TEXT_FINDING_LIMIT], start=1):
            decl = finding.declaration
            mark = "x" if finding.is_selected else " "
            lines.append("")
            lines.append(f"{i}. [{mark}] {decl.kind.display_name}: {decl.qualified_name}")
            lines.append(f"   at     {_shorten(decl.file_path)}:{decl.line}")
            lines.append(f"   reason {finding.reason}")
            lines.append(f"   risk   {finding.risk_score}/100 ({finding.risk_level.label})")
            lines.append(f"   action {finding.suggested_action}")
        if len(r.findings) > TEXT_FINDING_LIMIT:
            lines.append(f"\n... and {len(r.findings) - TEXT_FINDING_LIMIT} more findings")

        if r.protected:
            lines += ["", "PROTECTED", rule]
            for skip in r.protected:
                decl = skip.declaration
                lines.append(f"{decl.file_path}:{decl.line} {decl.qualified_name}: {', '.join(skip.reasons)}")
        if r.unresolved_references:
            lines += ["", "UNRESOLVED REFERENCES", rule]
            for unresolved in r.unresolved_references:
                lines.append(f"{unresolved.reference} -> {unresolved.declaration_id}")

        lines += ["", "=" * 80]
        return "\n".join(lines) + "\n"

    def to_markdown(self) -> str:
        r = self.result
        lines = [
            f"# {TOOL_NAME} analysis report",
            "",
            f"**Date:** {r.analysis_date.isoformat(timespec='seconds')}",
            "",
            "## Summary",
            "",
            "| Metric | Value |",
            "|--------|-------|",
            f"| Total declarations | {r.total_declarations} |",
            f"| Unused | {r.unused_count} |",
            f"| Usage | {r.usage_percentage:.1f}% |",
            f"| Analyzed files | {len(r.analyzed_files)} |",
            f"| Entry points | {len(r.entry_points)} |",
            f"| Protected | {len(r.protected)} |",
            "",
            "## Risk distribution",
            "",
            "| Risk level | Count | Percent |",
            "|------------|-------|---------|",
        ]
        for level, count in self.risk_distribution().items():
            lines.append(f"| {level.label} | {count} | {self._percent(count):.1f}% |")
        lines += [
            "",
            "## Files with the most unused code",
            "",
            "| File | Unused declarations |",
            "|------|---------------------|",
        ]
        for path, count in self.file_distribution()[:TOP_FILES]:
            lines.append(f"| `{_shorten(path)}` | {count} |")

        lines += ["", "## Findings", ""]
        for finding in r.findings[:MARKDOWN_FINDING_LIMIT]:
            decl = finding.declaration
            lines.append(f"### `{decl.name}` - {decl.kind.display_name}")
            lines.append("")
            lines.append(f"- **File:** `{_shorten(decl.file_path)}:{decl.line}`")
            lines.append(f"- **Reason:** {finding.reason}")
            lines.append(f"- **Risk score:** {finding.risk_score}/100 ({finding.risk_level.label})")
            lines.append(f"- **Visibility:** `{decl.access_level.value}`")
            if decl.markers:
                lines.append(f"- **Markers:** {', '.join(sorted(m.value for m in decl.markers))}")
            lines.append(f"- **Action:** {finding.suggested_action}")
            lines.append("")
        if len(r.findings) > MARKDOWN_FINDING_LIMIT:
            lines.append(f"_... and {len(r.findings) - MARKDOWN_FINDING_LIMIT} more findings_")
            lines.append("")
        return "\n".join(lines)

    def to_diagnostics(self) -> str:
        """One ``path:line:col: severity: message`` line per finding, plus a note."""
        lines = []
        for finding in self.result.findings:
            decl = finding.declaration
            where = f"{decl.file_path}:{decl.line}:{decl.column}"
            severity = "warning" if finding.risk_score > 50 else "note"
            kind = decl.kind.display_name.lower()
            lines.append(
                f"{where}: {severity}: [{TOOL_NAME}] Unused {kind} '{decl.name}' "
                f"(Risk: {finding.risk_score}/100)"
            )
            lines.append(f"{where}: note: {finding.suggested_action}")
        return "\n".join(lines) + ("\n" if lines else "")

    def render(self, fmt: ReportFormat) -> str:
        fmt = ReportFormat(fmt)
        if fmt is ReportFormat.JSON:
            return self.to_json()
        if fmt is ReportFormat.TEXT:
            return self.to_text()
        if fmt is ReportFormat.MARKDOWN:
            return self.to_markdown()
        return self.to_diagnostics()

    def write(self, path: Path, fmt: ReportFormat) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.render(fmt), encoding="utf-8")
        logger.info("Wrote %s report to %s", ReportFormat(fmt).value, path)
        return path


def save_result(result: AnalysisResult, path: Path) -> Path:
    """Serialize ``result`` as JSON so it can be reported on later."""
    return Reporter(result).write(path, ReportFormat.JSON)


def load_result(path: Path) -> AnalysisResult:
    """Load a result written by :func:`save_result`.

    Raises:
        OSError: if the file cannot be read.
        ValueError, KeyError: if it is not a serialized analysis result.
    """
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return AnalysisResult.from_dict(data)
