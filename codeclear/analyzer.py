"""Analysis pipeline: declarations in, ranked findings out."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from .config_manager import ClearConfig
from .index import ReferenceIndex
from .models import AnalysisResult, Declaration, EntryPoint, Finding, ProtectedSkip
from .parser import PythonDeclarationParser
from .reachability import ReachabilityAnalyzer, find_entry_points
from .risk_descriptor import build_reason, suggested_action
from .risk_scorer import RiskScorer, is_auto_selectable

logger = logging.getLogger(__name__)


class FindingAssembler:
    """Turns unreachable declarations into scored, explained findings."""

    def __init__(self, config: Optional[ClearConfig] = None):
        self.config = config or ClearConfig()
        self.scorer = RiskScorer(self.config.risk_scoring)

    def assemble(
        self,
        unreachable: Sequence[Declaration],
        reachability: ReachabilityAnalyzer,
    ) -> Tuple[List[Finding], List[ProtectedSkip]]:
        findings: List[Finding] = []
        skipped: List[ProtectedSkip] = []

        for decl in unreachable:
            reasons = reachability.protection_reasons(decl)
            if not self.config.check_public_api and decl.is_public_api:
                reasons.append("public API checks disabled")
            if reasons:
                logger.info("Protected: %s (%s)", decl.qualified_name, ", ".join(reasons))
                skipped.append(ProtectedSkip(declaration=decl, reasons=tuple(reasons)))
                continue

            references = reachability.references_for(decl)
            score = self.scorer.score(decl, references)
            findings.append(
                Finding(
                    declaration=decl,
                    reason=build_reason(decl, references, reachability.explain_unused(decl)),
                    risk_score=score,
                    references=tuple(references),
                    suggested_action=suggested_action(score, decl),
                    is_selected=is_auto_selectable(score, self.config.max_auto_select_risk),
                )
            )

        findings.sort(key=lambda f: (-f.risk_score, f.declaration.file_path, f.declaration.line))
        return findings, skipped


class Analyzer:
    """Run one analysis pass.

    ``analyze`` works on declarations supplied by any front-end;
    ``analyze_project`` runs the bundled Python front-end first.
    """

    def __init__(self, config: Optional[ClearConfig] = None):
        self.config = config or ClearConfig()

    def analyze(
        self,
        declarations: Sequence[Declaration],
        index: Optional[ReferenceIndex] = None,
        entry_points: Optional[Sequence[EntryPoint]] = None,
        analyzed_files: Optional[Sequence[str]] = None,
    ) -> AnalysisResult:
        if entry_points is None:
            entry_points = find_entry_points(declarations, self.config.entry_points)
        logger.info("%d entry points", len(entry_points))

        reachability = ReachabilityAnalyzer(declarations, entry_points, index, self.config)
        unreachable = reachability.analyze()
        findings, protected = FindingAssembler(self.config).assemble(unreachable, reachability)
        logger.info("%d findings, %d protected", len(findings), len(protected))

        if analyzed_files is None:
            analyzed_files = sorted({d.file_path for d in declarations})
        graph = reachability.graph
        return AnalysisResult(
            findings=tuple(findings),
            total_declarations=len(declarations),
            analyzed_files=tuple(analyzed_files),
            entry_points=tuple(entry_points),
            protected=tuple(protected),
            unresolved_references=tuple(graph.unresolved) if graph is not None else (),
            config_used=self.config.source,
        )

    def analyze_project(self, root: Path) -> AnalysisResult:
        parsed = PythonDeclarationParser(Path(root), self.config).parse_project()
        return self.analyze(parsed.declarations, parsed.index, analyzed_files=parsed.files)
