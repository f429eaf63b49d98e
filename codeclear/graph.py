"""Declaration reference graph and multi-source reachability.

The graph is an explicit object owned by the caller. Building it and
walking it are separate, side-effect free functions.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set

from .models import Declaration, Reference, UnresolvedReference, group_by_file

logger = logging.getLogger(__name__)

DEFAULT_LINE_TOLERANCE = 3


@dataclass
class ReferenceGraph:
    """Adjacency map where ``edges[x]`` holds the ids that x's body mentions."""

    nodes: Dict[str, Declaration] = field(default_factory=dict)
    edges: Dict[str, Set[str]] = field(default_factory=dict)
    unresolved: List[UnresolvedReference] = field(default_factory=list)

    def add_node(self, declaration: Declaration) -> None:
        self.nodes[declaration.id] = declaration
        self.edges.setdefault(declaration.id, set())

    def add_edge(self, src: str, dst: str) -> None:
        self.edges.setdefault(src, set()).add(dst)

    def successors(self, node_id: str) -> Set[str]:
        return self.edges.get(node_id, set())

    def predecessors(self, node_id: str) -> Set[str]:
        return {src for src, dsts in self.edges.items() if node_id in dsts}

    @property
    def edge_count(self) -> int:
        return sum(len(dsts) for dsts in self.edges.values())


def resolve_reference(
    reference: Reference,
    candidates: Sequence[Declaration],
    line_tolerance: int = DEFAULT_LINE_TOLERANCE,
) -> Optional[Declaration]:
    """Find the declaration whose body contains ``reference``.

    ``candidates`` are the declarations of the reference's file, in
    declaration order. A declaration whose line span encloses the reference
    wins, innermost first. Otherwise the nearest declaration starting less
    than ``line_tolerance`` lines away is used. Ties go to the first
    declared.
    """
    enclosing: Optional[Declaration] = None
    for decl in candidates:
        if decl.line <= reference.line <= decl.end_line:
            if enclosing is None or _is_inner(decl, enclosing):
                enclosing = decl
    if enclosing is not None:
        return enclosing

    nearest: Optional[Declaration] = None
    best = line_tolerance
    for decl in candidates:
        delta = abs(decl.line - reference.line)
        if delta < best:
            nearest = decl
            best = delta
    return nearest


def _is_inner(decl: Declaration, current: Declaration) -> bool:
    return (decl.end_line - decl.line) < (current.end_line - current.line)


def build_reference_graph(
    declarations: Sequence[Declaration],
    references: Mapping[str, Sequence[Reference]],
    line_tolerance: int = DEFAULT_LINE_TOLERANCE,
) -> ReferenceGraph:
    """Build the graph from per-declaration reference lists.

    Each reference to declaration ``y`` is attributed to the declaration
    ``x`` that contains it, giving the edge ``x -> y``. References that
    match no declaration are kept in ``graph.unresolved``.
    """
    graph = ReferenceGraph()
    for decl in declarations:
        graph.add_node(decl)

    by_file = group_by_file(declarations)
    for decl in declarations:
        for ref in references.get(decl.id, ()):
            user = resolve_reference(ref, by_file.get(ref.file_path, ()), line_tolerance)
            if user is None:
                graph.unresolved.append(UnresolvedReference(declaration_id=decl.id, reference=ref))
                continue
            graph.add_edge(user.id, decl.id)

    logger.debug(
        "Reference graph: %d nodes, %d edges, %d unresolved references",
        len(graph.nodes),
        graph.edge_count,
        len(graph.unresolved),
    )
    return graph


def reachable_from(graph: ReferenceGraph, roots: Iterable[str]) -> Set[str]:
    """Breadth-first walk from every root; each node is visited once."""
    visited: Set[str] = set()
    queue = deque()
    for root in roots:
        if root not in visited:
            visited.add(root)
            queue.append(root)

    while queue:
        current = queue.popleft()
        for nxt in graph.successors(current):
            if nxt not in visited:
                visited.add(nxt)
                queue.append(nxt)
    return visited


def unreachable_declarations(graph: ReferenceGraph, roots: Iterable[str]) -> List[Declaration]:
    """Declarations of ``graph`` not reachable from ``roots``, in insertion order."""
    reachable = reachable_from(graph, roots)
    return [decl for node_id, decl in graph.nodes.items() if node_id not in reachable]
