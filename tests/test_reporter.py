"""Tests for report rendering."""

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from codeclear.models import (
    AccessLevel,
    AnalysisResult,
    DeclarationKind,
    Finding,
    ProtectedSkip,
    Reference,
    UnresolvedReference,
)
from codeclear.reporter import Reporter, ReportFormat, load_result, save_result


@pytest.fixture
def result(make_declaration) -> AnalysisResult:
    helper = make_declaration(
        name="_helper", access=AccessLevel.FILEPRIVATE, file_path="src/app.py", line=12
    )
    api = make_declaration(
        name="export_all",
        kind=DeclarationKind.METHOD,
        access=AccessLevel.PUBLIC,
        file_path="src/api.py",
        line=40,
        qualified_name="src.api.Exporter.export_all",
    )
    return AnalysisResult(
        findings=(
            Finding(api, "Not an entry point", 90, suggested_action="Treat as a likely false positive; do not delete."),
            Finding(helper, "Not an entry point", 10, suggested_action="Safe to delete directly.", is_selected=True),
        ),
        total_declarations=20,
        analyzed_files=("src/api.py", "src/app.py"),
        entry_points=(),
        analysis_date=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
        protected=(ProtectedSkip(make_declaration(name="on_click", file_path="src/ui.py", line=3), ("UI binding marker",)),),
        unresolved_references=(UnresolvedReference("_helper", Reference("src/app.py", 99, 4)),),
    )


class TestReporter:
    def test_distributions(self, result):
        reporter = Reporter(result)
        assert {level.value: n for level, n in reporter.risk_distribution().items()} == {"low": 1, "very_high": 1}
        assert reporter.file_distribution() == [("src/api.py", 1), ("src/app.py", 1)]
        assert [(k.value, n) for k, n in reporter.kind_distribution()] == [("function", 1), ("method", 1)]

    def test_json(self, result):
        data = json.loads(Reporter(result).to_json())
        assert data["unused_count"] == 2
        assert data["usage_percentage"] == 90.0
        assert data["findings"][0]["declaration"]["name"] == "export_all"

    def test_text(self, result):
        text = Reporter(result).to_text()
        assert "Total declarations:   20" in text
        assert "1. [ ] Method: src.api.Exporter.export_all" in text
        assert "2. [x] Function: _helper" in text
        assert "PROTECTED" in text
        assert "src/ui.py:3 on_click: UI binding marker" in text
        assert "src/app.py:99:4 -> _helper" in text

    def test_markdown(self, result):
        markdown = Reporter(result).to_markdown()
        assert markdown.startswith("# codeclear analysis report")
        assert "| Unused | 2 |" in markdown
        assert "### `export_all` - Method" in markdown

    def test_diagnostics(self, result):
        lines = Reporter(result).to_diagnostics().splitlines()
        assert lines == [
            "src/api.py:40:1: warning: [codeclear] Unused method 'export_all' (Risk: 90/100)",
            "src/api.py:40:1: note: Treat as a likely false positive; do not delete.",
            "src/app.py:12:1: note: [codeclear] Unused function '_helper' (Risk: 10/100)",
            "src/app.py:12:1: note: Safe to delete directly.",
        ]

    def test_diagnostics_empty(self):
        empty = AnalysisResult(findings=(), total_declarations=0, analyzed_files=(), entry_points=())
        assert Reporter(empty).to_diagnostics() == ""

    @pytest.mark.parametrize("fmt", list(ReportFormat))
    def test_render_accepts_strings(self, result, fmt):
        assert Reporter(result).render(fmt.value) == Reporter(result).render(fmt)

    def test_write(self, result, temp_dir: Path):
        path = Reporter(result).write(temp_dir / "out" / "report.md", ReportFormat.MARKDOWN)
        assert path.read_text().startswith("# codeclear analysis report")


def test_save_and_load_round_trip(result, temp_dir: Path):
    path = save_result(result, temp_dir / "result.json")
    assert load_result(path) == result


def test_load_rejects_other_json(temp_dir: Path):
    path = temp_dir / "other.json"
    path.write_text('{"hello": 1}')
    with pytest.raises(KeyError):
        load_result(path)
