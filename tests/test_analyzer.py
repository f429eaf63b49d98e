"""End-to-end tests for the analysis pipeline."""

from pathlib import Path

from codeclear.analyzer import Analyzer, FindingAssembler
from codeclear.config_manager import ClearConfig
from codeclear.index import StaticReferenceIndex
from codeclear.models import AccessLevel, DeclarationKind, Marker, Reference, RiskLevel
from codeclear.reachability import ReachabilityAnalyzer


def _chain_project(make_declaration):
    """98 declarations reachable through a chain from ``main``, plus two orphans."""
    decls = [make_declaration(name="main", line=1, end_line=5, markers={Marker.PROGRAM_ENTRY})]
    index = StaticReferenceIndex()
    for i in range(1, 98):
        decls.append(make_declaration(name=f"step_{i}", line=i * 10, end_line=i * 10 + 5))
        caller_line = decls[i - 1].line + 2
        index.add_for(f"step_{i}", [Reference("src/app.py", caller_line, 5)])

    helper = make_declaration(
        name="_tiny_helper", access=AccessLevel.PRIVATE, line=2000, end_line=2002, byte_length=50
    )
    public = make_declaration(
        name="export_all", access=AccessLevel.PUBLIC, line=2010, end_line=2015, byte_length=100
    )
    return decls + [helper, public], index


class TestAnalyzerScenario:
    """100 declarations, two of them unreachable."""

    def _analyze(self, make_declaration):
        config = ClearConfig()
        config.entry_points.include_public_api = False
        decls, index = _chain_project(make_declaration)
        assert len(decls) == 100
        return Analyzer(config).analyze(decls, index)

    def test_unused_count(self, make_declaration):
        result = self._analyze(make_declaration)
        assert result.total_declarations == 100
        assert result.unused_count == 2
        assert result.usage_percentage == 98.0

    def test_private_helper_is_low_and_selected(self, make_declaration):
        result = self._analyze(make_declaration)
        helper = next(f for f in result.findings if f.declaration.name == "_tiny_helper")
        assert helper.risk_score <= 20
        assert helper.risk_level is RiskLevel.LOW
        assert helper.is_selected

    def test_public_function_is_high_and_not_selected(self, make_declaration):
        result = self._analyze(make_declaration)
        public = next(f for f in result.findings if f.declaration.name == "export_all")
        assert public.risk_score >= 80
        assert public.risk_level in (RiskLevel.HIGH, RiskLevel.VERY_HIGH)
        assert not public.is_selected

    def test_findings_sorted_by_descending_risk(self, make_declaration):
        result = self._analyze(make_declaration)
        assert [f.declaration.name for f in result.findings] == ["export_all", "_tiny_helper"]

    def test_chain_members_are_not_findings(self, make_declaration):
        result = self._analyze(make_declaration)
        names = {f.declaration.name for f in result.findings}
        assert not any(name.startswith("step_") for name in names)


class TestFindingAssembler:
    def test_protected_declarations_are_skipped_individually(self, make_declaration):
        decls = [
            make_declaration(name="on_click", markers={Marker.UI_BINDING}),
            make_declaration(name="table", markers={Marker.PERSISTENCE}),
            make_declaration(name="dead"),
        ]
        reachability = ReachabilityAnalyzer(decls, [], StaticReferenceIndex())
        findings, skipped = FindingAssembler().assemble(reachability.analyze(), reachability)
        assert [f.declaration.name for f in findings] == ["dead"]
        assert [(s.declaration.name, s.reasons) for s in skipped] == [
            ("on_click", ("UI binding marker",)),
            ("table", ("persistence framework marker",)),
        ]

    def test_public_api_checks_disabled(self, make_declaration):
        config = ClearConfig(check_public_api=False)
        config.entry_points.include_public_api = False
        decls = [make_declaration(name="api", access=AccessLevel.PUBLIC)]
        result = Analyzer(config).analyze(decls, StaticReferenceIndex())
        assert result.findings == ()
        assert result.protected[0].reasons == ("public API checks disabled",)

    def test_threshold_controls_selection(self, make_declaration):
        config = ClearConfig(max_auto_select_risk=5)
        decls = [
            make_declaration(name="_private", access=AccessLevel.PRIVATE, kind=DeclarationKind.TYPE),
            make_declaration(name="internal"),
        ]
        result = Analyzer(config).analyze(decls, StaticReferenceIndex())
        selected = {f.declaration.name for f in result.selected_findings}
        assert selected == {"_private"}

    def test_finding_carries_references_and_action(self, make_declaration):
        decl = make_declaration(name="maybe", line=10, end_line=12)
        index = StaticReferenceIndex(by_name={"maybe": [Reference("src/app.py", 500, 1)]})
        result = Analyzer().analyze([decl], index)
        finding = result.findings[0]
        assert len(finding.references) == 1
        assert finding.risk_score == 10
        assert "possible resolution gap" in finding.reason
        assert finding.suggested_action.startswith("Safe to delete directly")
        assert len(result.unresolved_references) == 1


class TestAnalyzeProject:
    def test_sample_project(self, sample_project: Path):
        result = Analyzer().analyze_project(sample_project)
        names = [f.declaration.name for f in result.findings]
        assert names == ["legacy_report", "_unused_helper"]
        assert [s.declaration.name for s in result.protected] == ["fast_path"]
        assert result.analyzed_files == ("pkg/app.py", "pkg/models.py")
        assert all(f.is_selected for f in result.findings)

    def test_entry_points_detected(self, sample_project: Path):
        result = Analyzer().analyze_project(sample_project)
        entries = {(ep.declaration.name, ep.kind.value) for ep in result.entry_points}
        assert ("main", "program_entry") in entries
        assert ("Record", "public_api") in entries
        assert ("__init__", "interop_symbol") in entries

    def test_helpers_used_at_import_time_are_kept(self, temp_dir: Path):
        (temp_dir / "hooks.py").write_text(
            "import atexit\n"
            "\n"
            "\n"
            "def _cleanup():\n"
            "    pass\n"
            "\n"
            "\n"
            "def _stale():\n"
            "    pass\n"
            "\n"
            "\n"
            "# registered below, far from the definition\n"
            "\n"
            "atexit.register(_cleanup)\n"
        )
        result = Analyzer().analyze_project(temp_dir)
        assert [f.declaration.name for f in result.findings] == ["_stale"]
        entries = {(ep.declaration.name, ep.kind.value) for ep in result.entry_points}
        assert ("_cleanup", "program_entry") in entries
