"""Entry-point detection, reachability analysis and protection rules."""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Sequence, Set

from .config_manager import ClearConfig, EntryPointsConfig, ProtectionsConfig
from .errors import ReferenceIndexError
from .graph import ReferenceGraph, build_reference_graph, reachable_from
from .index import EmptyReferenceIndex, ReferenceIndex
from .models import (
    Declaration,
    EntryPoint,
    EntryPointKind,
    Marker,
    Modifier,
    Reference,
)

logger = logging.getLogger(__name__)


def find_entry_points(
    declarations: Sequence[Declaration],
    config: Optional[EntryPointsConfig] = None,
) -> List[EntryPoint]:
    """Return one :class:`EntryPoint` per (declaration, reason) pair."""
    config = config or EntryPointsConfig()
    patterns = [re.compile(p) for p in config.custom_patterns]
    entry_points: List[EntryPoint] = []

    for decl in declarations:
        kinds: List[EntryPointKind] = []
        if config.detect_main and Marker.PROGRAM_ENTRY in decl.markers:
            kinds.append(EntryPointKind.PROGRAM_ENTRY)
        if config.detect_ui_application_root and Marker.UI_APPLICATION_ROOT in decl.markers:
            kinds.append(EntryPointKind.UI_APPLICATION_ROOT)
        if config.detect_framework_application_root and Marker.FRAMEWORK_APPLICATION_ROOT in decl.markers:
            kinds.append(EntryPointKind.FRAMEWORK_APPLICATION_ROOT)
        if config.include_public_api and decl.is_public_api:
            kinds.append(EntryPointKind.PUBLIC_API)
        if config.include_interop_symbols and (Marker.INTEROP in decl.markers or decl.is_dynamic):
            kinds.append(EntryPointKind.INTEROP_SYMBOL)
        if config.include_test_entry_points and Marker.TEST_HARNESS in decl.markers:
            kinds.append(EntryPointKind.TEST_ENTRY)
        if any(p.search(decl.qualified_name) for p in patterns):
            kinds.append(EntryPointKind.CUSTOM_PATTERN)
        entry_points.extend(EntryPoint(declaration=decl, kind=kind) for kind in kinds)

    return entry_points


class ReachabilityAnalyzer:
    """Classify declarations as reachable or not from a set of entry points.

    One instance covers one analysis pass. References are fetched from the
    index once per declaration and cached, so explanations and scoring see
    the same lists the graph was built from.
    """

    def __init__(
        self,
        declarations: Sequence[Declaration],
        entry_points: Sequence[EntryPoint],
        index: Optional[ReferenceIndex] = None,
        config: Optional[ClearConfig] = None,
    ) -> None:
        self.declarations = list(declarations)
        self.entry_points = list(entry_points)
        self.config = config or ClearConfig()
        if index is None:
            logger.warning("No reference index available; only entry points will be reachable")
            index = EmptyReferenceIndex()
        self.index = index
        self._references: Dict[str, List[Reference]] = {}
        self._entry_ids: Set[str] = {ep.declaration.id for ep in self.entry_points}
        self.graph: Optional[ReferenceGraph] = None
        self.reachable: Set[str] = set()

    def references_for(self, declaration: Declaration) -> List[Reference]:
        if declaration.id not in self._references:
            try:
                refs = list(self.index.find_references(declaration))
            except ReferenceIndexError as exc:
                logger.warning("Reference lookup failed for %s: %s", declaration.qualified_name, exc)
                refs = []
            self._references[declaration.id] = refs
        return self._references[declaration.id]

    def build_graph(self) -> ReferenceGraph:
        refs = {decl.id: self.references_for(decl) for decl in self.declarations}
        self.graph = build_reference_graph(self.declarations, refs, self.config.line_tolerance)
        return self.graph

    def analyze(self) -> List[Declaration]:
        """Return the declarations no entry point can reach, in input order."""
        graph = self.build_graph()
        self.reachable = reachable_from(graph, self._entry_ids)
        unreachable = [d for d in self.declarations if d.id not in self.reachable]
        logger.info(
            "%d of %d declarations reachable from %d entry points",
            len(self.declarations) - len(unreachable),
            len(self.declarations),
            len(self._entry_ids),
        )
        return unreachable

    def is_entry_point(self, declaration: Declaration) -> bool:
        return declaration.id in self._entry_ids

    def explain_unused(self, declaration: Declaration) -> str:
        reasons: List[str] = []
        if self.is_entry_point(declaration):
            reasons.append("Entry point")
        else:
            reasons.append("Not an entry point")

        ref_count = len(self.references_for(declaration))
        if ref_count == 0:
            reasons.append("No references found anywhere")
        else:
            plural = "reference" if ref_count == 1 else "references"
            reasons.append(
                f"{ref_count} {plural} found but not reachable from an entry point "
                "(possible resolution gap)"
            )

        reasons.append(f"{declaration.access_level.value} visibility")
        return ", ".join(reasons)

    def protection_reasons(self, declaration: Declaration) -> List[str]:
        return protection_reasons(declaration, self.config.protections)

    def requires_protection(self, declaration: Declaration) -> bool:
        return bool(self.protection_reasons(declaration))


def protection_reasons(declaration: Declaration, config: ProtectionsConfig) -> List[str]:
    """Every enabled protection rule that matches ``declaration``."""
    markers = declaration.markers
    rules = [
        (config.protect_interop, Marker.INTEROP in markers, "interop marker"),
        (config.protect_dynamic, Modifier.DYNAMIC in declaration.modifiers, "dynamic dispatch"),
        (config.protect_ui_binding, Marker.UI_BINDING in markers, "UI binding marker"),
        (config.protect_persistence, Marker.PERSISTENCE in markers, "persistence framework marker"),
        (config.protect_inlinable, Marker.INLINABLE in markers, "inlinable/export marker"),
        (config.protect_abi_boundary, Marker.ABI_BOUNDARY in markers, "ABI boundary marker"),
        (
            config.protect_restricted_interface,
            Marker.RESTRICTED_INTERFACE in markers,
            "restricted interface marker",
        ),
        (
            config.protect_previews,
            Marker.PREVIEW in markers
            or any(declaration.name.endswith(s) for s in config.protected_name_suffixes),
            "preview naming convention",
        ),
    ]
    return [label for enabled, matched, label in rules if enabled and matched]
