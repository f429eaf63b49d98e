"""Core data models shared by analysis, scoring, rewriting and reporting."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple


class DeclarationKind(str, Enum):
    TYPE = "type"
    EXTENSION = "extension"
    FUNCTION = "function"
    METHOD = "method"
    INITIALIZER = "initializer"
    STORED_PROPERTY = "stored_property"
    COMPUTED_PROPERTY = "computed_property"
    CONSTANT = "constant"
    TYPE_ALIAS = "type_alias"
    SUBSCRIPT = "subscript"
    ASSOCIATED_TYPE = "associated_type"

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()


_ACCESS_ORDER = ("private", "fileprivate", "internal", "public", "open")


class AccessLevel(str, Enum):
    """Declared visibility, ordered from most restricted to most open."""

    PRIVATE = "private"
    FILEPRIVATE = "fileprivate"
    INTERNAL = "internal"
    PUBLIC = "public"
    OPEN = "open"

    @property
    def rank(self) -> int:
        return _ACCESS_ORDER.index(self.value)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, AccessLevel):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, AccessLevel):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, AccessLevel):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, AccessLevel):
            return NotImplemented
        return self.rank >= other.rank


class Marker(str, Enum):
    """Binding categories that make static unreachability weak evidence."""

    INTEROP = "interop"
    UI_BINDING = "ui_binding"
    PERSISTENCE = "persistence"
    INLINABLE = "inlinable"
    ABI_BOUNDARY = "abi_boundary"
    RESTRICTED_INTERFACE = "restricted_interface"
    PREVIEW = "preview"
    TEST_HARNESS = "test_harness"
    PROGRAM_ENTRY = "program_entry"
    UI_APPLICATION_ROOT = "ui_application_root"
    FRAMEWORK_APPLICATION_ROOT = "framework_application_root"


ENTRY_POINT_MARKERS = frozenset(
    {Marker.PROGRAM_ENTRY, Marker.UI_APPLICATION_ROOT, Marker.FRAMEWORK_APPLICATION_ROOT}
)

# Markers that always mean "do not delete without review".
PROTECTED_MARKERS = frozenset(
    {
        Marker.INTEROP,
        Marker.UI_BINDING,
        Marker.PERSISTENCE,
        Marker.INLINABLE,
        Marker.ABI_BOUNDARY,
        Marker.RESTRICTED_INTERFACE,
    }
)


class Modifier(str, Enum):
    DYNAMIC = "dynamic"
    OVERRIDE = "override"
    STATIC = "static"


@dataclass(frozen=True)
class Declaration:
    """A named, typed unit of code with an exact byte range in its file."""

    kind: DeclarationKind
    name: str
    file_path: str
    line: int
    column: int
    byte_offset: int
    byte_length: int
    access_level: AccessLevel
    qualified_name: str = ""
    markers: FrozenSet[Marker] = frozenset()
    modifiers: FrozenSet[Modifier] = frozenset()
    is_protocol_requirement: bool = False
    is_protocol_witness: bool = False
    parent: Optional[str] = None
    end_line: Optional[int] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __post_init__(self) -> None:
        if not self.qualified_name:
            object.__setattr__(self, "qualified_name", self.name)
        if self.end_line is None or self.end_line < self.line:
            object.__setattr__(self, "end_line", self.line)
        object.__setattr__(self, "markers", frozenset(Marker(m) for m in self.markers))
        object.__setattr__(self, "modifiers", frozenset(Modifier(m) for m in self.modifiers))

    @property
    def byte_end(self) -> int:
        return self.byte_offset + self.byte_length

    @property
    def is_public_api(self) -> bool:
        return self.access_level in (AccessLevel.PUBLIC, AccessLevel.OPEN)

    @property
    def is_dynamic(self) -> bool:
        return Modifier.DYNAMIC in self.modifiers

    def has_protected_markers(self) -> bool:
        return bool(self.markers & PROTECTED_MARKERS) or self.is_dynamic

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "name": self.name,
            "qualified_name": self.qualified_name,
            "file_path": self.file_path,
            "line": self.line,
            "end_line": self.end_line,
            "column": self.column,
            "byte_offset": self.byte_offset,
            "byte_length": self.byte_length,
            "access_level": self.access_level.value,
            "markers": sorted(m.value for m in self.markers),
            "modifiers": sorted(m.value for m in self.modifiers),
            "is_protocol_requirement": self.is_protocol_requirement,
            "is_protocol_witness": self.is_protocol_witness,
            "parent": self.parent,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Declaration":
        return cls(
            id=data["id"],
            kind=DeclarationKind(data["kind"]),
            name=data["name"],
            qualified_name=data.get("qualified_name", ""),
            file_path=data["file_path"],
            line=data["line"],
            end_line=data.get("end_line"),
            column=data["column"],
            byte_offset=data["byte_offset"],
            byte_length=data["byte_length"],
            access_level=AccessLevel(data["access_level"]),
            markers=frozenset(Marker(m) for m in data.get("markers", [])),
            modifiers=frozenset(Modifier(m) for m in data.get("modifiers", [])),
            is_protocol_requirement=data.get("is_protocol_requirement", False),
            is_protocol_witness=data.get("is_protocol_witness", False),
            parent=data.get("parent"),
        )


@dataclass(frozen=True)
class Reference:
    """An observed use of a symbol name at a source location."""

    file_path: str
    line: int
    column: int
    context: str = ""

    def __str__(self) -> str:
        return f"{self.file_path}:{self.line}:{self.column}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file_path": self.file_path,
            "line": self.line,
            "column": self.column,
            "context": self.context,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Reference":
        return cls(
            file_path=data["file_path"],
            line=data["line"],
            column=data["column"],
            context=data.get("context", ""),
        )


class EntryPointKind(str, Enum):
    PROGRAM_ENTRY = "program_entry"
    UI_APPLICATION_ROOT = "ui_application_root"
    FRAMEWORK_APPLICATION_ROOT = "framework_application_root"
    PUBLIC_API = "public_api"
    INTEROP_SYMBOL = "interop_symbol"
    TEST_ENTRY = "test_entry"
    CUSTOM_PATTERN = "custom_pattern"


@dataclass(frozen=True)
class EntryPoint:
    declaration: Declaration
    kind: EntryPointKind

    def to_dict(self) -> Dict[str, Any]:
        return {"declaration": self.declaration.to_dict(), "kind": self.kind.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EntryPoint":
        return cls(
            declaration=Declaration.from_dict(data["declaration"]),
            kind=EntryPointKind(data["kind"]),
        )


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very_high"

    @classmethod
    def from_score(cls, score: int) -> "RiskLevel":
        if score < 20:
            return cls.LOW
        if score < 50:
            return cls.MEDIUM
        if score < 80:
            return cls.HIGH
        return cls.VERY_HIGH

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()

    @property
    def color(self) -> str:
        return {
            RiskLevel.LOW: "green",
            RiskLevel.MEDIUM: "yellow",
            RiskLevel.HIGH: "dark_orange",
            RiskLevel.VERY_HIGH: "red",
        }[self]


@dataclass(eq=True)
class Finding:
    """An unreachable, unprotected declaration with its risk assessment.

    Everything except ``is_selected`` is fixed at creation.
    """

    declaration: Declaration
    reason: str
    risk_score: int
    references: Tuple[Reference, ...] = ()
    suggested_action: str = ""
    is_selected: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "references", tuple(self.references))

    def __setattr__(self, name: str, value: Any) -> None:
        if name != "is_selected" and name in self.__dict__:
            raise AttributeError(f"Finding.{name} is read-only")
        object.__setattr__(self, name, value)

    @property
    def risk_level(self) -> RiskLevel:
        return RiskLevel.from_score(self.risk_score)

    def select(self) -> None:
        self.is_selected = True

    def deselect(self) -> None:
        self.is_selected = False

    def toggle(self) -> bool:
        self.is_selected = not self.is_selected
        return self.is_selected

    def to_dict(self) -> Dict[str, Any]:
        return {
            "declaration": self.declaration.to_dict(),
            "reason": self.reason,
            "risk_score": self.risk_score,
            "risk_level": self.risk_level.value,
            "references": [r.to_dict() for r in self.references],
            "suggested_action": self.suggested_action,
            "is_selected": self.is_selected,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Finding":
        return cls(
            declaration=Declaration.from_dict(data["declaration"]),
            reason=data["reason"],
            risk_score=data["risk_score"],
            references=tuple(Reference.from_dict(r) for r in data.get("references", [])),
            suggested_action=data.get("suggested_action", ""),
            is_selected=data.get("is_selected", False),
        )


@dataclass(frozen=True)
class ProtectedSkip:
    """A declaration left out of the findings, and every rule that excluded it."""

    declaration: Declaration
    reasons: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {"declaration": self.declaration.to_dict(), "reasons": list(self.reasons)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProtectedSkip":
        return cls(
            declaration=Declaration.from_dict(data["declaration"]),
            reasons=tuple(data.get("reasons", [])),
        )


@dataclass(frozen=True)
class UnresolvedReference:
    """A reference to a declaration that matched no node of the graph."""

    declaration_id: str
    reference: Reference

    def to_dict(self) -> Dict[str, Any]:
        return {"declaration_id": self.declaration_id, "reference": self.reference.to_dict()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UnresolvedReference":
        return cls(
            declaration_id=data["declaration_id"],
            reference=Reference.from_dict(data["reference"]),
        )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AnalysisResult:
    findings: Tuple[Finding, ...]
    total_declarations: int
    analyzed_files: Tuple[str, ...]
    entry_points: Tuple[EntryPoint, ...]
    analysis_date: datetime = field(default_factory=_utcnow)
    protected: Tuple[ProtectedSkip, ...] = ()
    unresolved_references: Tuple[UnresolvedReference, ...] = ()
    config_used: Optional[str] = None

    def __post_init__(self) -> None:
        for name in ("findings", "analyzed_files", "entry_points", "protected", "unresolved_references"):
            object.__setattr__(self, name, tuple(getattr(self, name)))

    @property
    def unused_count(self) -> int:
        return len(self.findings)

    @property
    def usage_percentage(self) -> float:
        if self.total_declarations <= 0:
            return 0.0
        return (self.total_declarations - self.unused_count) / self.total_declarations * 100

    @property
    def selected_findings(self) -> List[Finding]:
        return [f for f in self.findings if f.is_selected]

    def findings_in(self, file_path: str) -> List[Finding]:
        return [f for f in self.findings if f.declaration.file_path == file_path]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "findings": [f.to_dict() for f in self.findings],
            "total_declarations": self.total_declarations,
            "unused_count": self.unused_count,
            "usage_percentage": round(self.usage_percentage, 2),
            "analyzed_files": list(self.analyzed_files),
            "entry_points": [e.to_dict() for e in self.entry_points],
            "analysis_date": self.analysis_date.isoformat(),
            "protected": [p.to_dict() for p in self.protected],
            "unresolved_references": [u.to_dict() for u in self.unresolved_references],
            "config_used": self.config_used,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalysisResult":
        return cls(
            findings=tuple(Finding.from_dict(f) for f in data.get("findings", [])),
            total_declarations=data["total_declarations"],
            analyzed_files=tuple(data.get("analyzed_files", [])),
            entry_points=tuple(EntryPoint.from_dict(e) for e in data.get("entry_points", [])),
            analysis_date=datetime.fromisoformat(data["analysis_date"]),
            protected=tuple(ProtectedSkip.from_dict(p) for p in data.get("protected", [])),
            unresolved_references=tuple(
                UnresolvedReference.from_dict(u) for u in data.get("unresolved_references", [])
            ),
            config_used=data.get("config_used"),
        )


def group_by_file(declarations: Iterable[Declaration]) -> Dict[str, List[Declaration]]:
    grouped: Dict[str, List[Declaration]] = {}
    for decl in declarations:
        grouped.setdefault(decl.file_path, []).append(decl)
    return grouped
