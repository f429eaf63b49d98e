"""Reference index boundary.

The analyzer asks an index "where is this declaration used?". Any object
with a ``find_references(declaration)`` method will do; without one the
engine runs in the empty-reference mode, which keeps working but can only
see entry points as reachable.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional, Protocol, Sequence

from .models import Declaration, Reference


class ReferenceIndex(Protocol):
    def find_references(self, declaration: Declaration) -> List[Reference]:
        ...


class EmptyReferenceIndex:
    """Index used when no reference facility is available."""

    def find_references(self, declaration: Declaration) -> List[Reference]:
        return []


class StaticReferenceIndex:
    """Index backed by precomputed references.

    Lookups try the declaration id first, then the declaration name. The
    declaration's own definition site is never returned.
    """

    def __init__(
        self,
        by_id: Optional[Mapping[str, Sequence[Reference]]] = None,
        by_name: Optional[Mapping[str, Sequence[Reference]]] = None,
    ) -> None:
        self._by_id: Dict[str, List[Reference]] = {k: list(v) for k, v in (by_id or {}).items()}
        self._by_name: Dict[str, List[Reference]] = {k: list(v) for k, v in (by_name or {}).items()}

    def add(self, name: str, reference: Reference) -> None:
        self._by_name.setdefault(name, []).append(reference)

    def add_for(self, declaration_id: str, references: Iterable[Reference]) -> None:
        self._by_id.setdefault(declaration_id, []).extend(references)

    def find_references(self, declaration: Declaration) -> List[Reference]:
        if declaration.id in self._by_id:
            refs = self._by_id[declaration.id]
        else:
            refs = self._by_name.get(declaration.name, [])
        return [
            ref
            for ref in refs
            if not (ref.file_path == declaration.file_path and ref.line == declaration.line
                    and ref.column == declaration.column)
        ]
