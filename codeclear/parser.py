"""Python front-end: turns source files into Declarations and References.

Built on the standard ``ast`` module. Column offsets reported by ``ast``
are UTF-8 byte offsets, so byte ranges are computed directly against the
raw file bytes and can be handed to the rewriter unchanged.
"""

from __future__ import annotations

import ast
import bisect
import codecs
import fnmatch
import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Tuple, Union

from .config import SKIP_DIRS, SUPPORTED_EXTENSIONS
from .config_manager import ClearConfig
from .index import StaticReferenceIndex
from .models import (
    AccessLevel,
    Declaration,
    DeclarationKind,
    Marker,
    Modifier,
    Reference,
)

logger = logging.getLogger(__name__)

_PROPERTY_DECORATORS = {"property", "cached_property", "functools.cached_property"}
_PROPERTY_SUFFIXES = (".setter", ".getter", ".deleter")
_STATIC_DECORATORS = {"staticmethod", "classmethod"}
_ABSTRACT_DECORATORS = {"abstractmethod", "abc.abstractmethod", "abstractproperty"}
_FINAL_DECORATORS = {"final", "typing.final", "typing_extensions.final"}
_PROTOCOL_BASES = {"Protocol", "ABC"}
_SUBSCRIPT_DUNDERS = {"__getitem__", "__setitem__", "__delitem__"}
_TYPEVAR_CALLS = {"TypeVar", "ParamSpec", "TypeVarTuple"}
_DECLARING_STATEMENTS = (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef, ast.Assign, ast.AnnAssign)


def matches_glob(rel_path: str, pattern: str) -> bool:
    """``fnmatch`` where a leading ``**/`` also matches zero directories."""
    if fnmatch.fnmatch(rel_path, pattern):
        return True
    return pattern.startswith("**/") and fnmatch.fnmatch(rel_path, pattern[3:])


def _is_dunder(name: str) -> bool:
    return len(name) > 4 and name.startswith("__") and name.endswith("__")


def _dotted_name(expr: ast.AST) -> Optional[str]:
    if isinstance(expr, ast.Name):
        return expr.id
    if isinstance(expr, ast.Attribute):
        parts: List[str] = []
        current: ast.AST = expr
        while isinstance(current, ast.Attribute):
            parts.append(current.attr)
            current = current.value
        if isinstance(current, ast.Name):
            parts.append(current.id)
        return ".".join(reversed(parts)) if parts else None
    if isinstance(expr, ast.Call):
        return _dotted_name(expr.func)
    if isinstance(expr, ast.Subscript):
        return _dotted_name(expr.value)
    return None


def _simple(dotted: str) -> str:
    return dotted.rsplit(".", 1)[-1]


def _is_main_guard(stmt: ast.stmt) -> bool:
    if not isinstance(stmt, ast.If) or not isinstance(stmt.test, ast.Compare):
        return False
    test = stmt.test
    if len(test.ops) != 1 or not isinstance(test.ops[0], ast.Eq):
        return False
    sides = [test.left, *test.comparators]
    has_name = any(isinstance(s, ast.Name) and s.id == "__name__" for s in sides)
    has_main = any(isinstance(s, ast.Constant) and s.value == "__main__" for s in sides)
    return has_name and has_main


def _loaded_names(nodes: Iterable[ast.AST]) -> Set[str]:
    names: Set[str] = set()
    for node in nodes:
        for sub in ast.walk(node):
            if isinstance(sub, ast.Name) and not isinstance(sub.ctx, ast.Store):
                names.add(sub.id)
    return names


def _import_time_names(tree: ast.Module) -> Set[str]:
    """Names loaded by module-level code that runs on import.

    Definitions and assignments are skipped, at any depth: what they mention
    is attributed to the declaration whose span holds it.
    """
    names: Set[str] = set()
    pending: List[ast.AST] = [
        s for s in tree.body if not isinstance(s, _DECLARING_STATEMENTS) and not _is_main_guard(s)
    ]
    while pending:
        node = pending.pop()
        if isinstance(node, _DECLARING_STATEMENTS):
            continue
        if isinstance(node, ast.Name) and not isinstance(node.ctx, ast.Store):
            names.add(node.id)
        pending.extend(ast.iter_child_nodes(node))
    return names


def _module_all(tree: ast.Module) -> Set[str]:
    names: Set[str] = set()
    for stmt in tree.body:
        targets: List[ast.expr] = []
        value: Optional[ast.expr] = None
        if isinstance(stmt, ast.Assign):
            targets, value = stmt.targets, stmt.value
        elif isinstance(stmt, (ast.AnnAssign, ast.AugAssign)):
            targets, value = [stmt.target], stmt.value
        if not any(isinstance(t, ast.Name) and t.id == "__all__" for t in targets):
            continue
        if isinstance(value, (ast.List, ast.Tuple)):
            names.update(
                elt.value for elt in value.elts
                if isinstance(elt, ast.Constant) and isinstance(elt.value, str)
            )
    return names


# ===================================================================
# Reference index
# ===================================================================

class SourceReferenceIndex(StaticReferenceIndex):
    """Name-keyed index of every identifier use in the parsed sources."""

    def add_source(self, rel_path: str, tree: ast.AST, lines: List[str]) -> int:
        count = 0
        for node in ast.walk(tree):
            if isinstance(node, ast.Name) and not isinstance(node.ctx, ast.Store):
                name, line, col = node.id, node.lineno, node.col_offset
            elif isinstance(node, ast.Attribute) and isinstance(node.ctx, ast.Load):
                name = node.attr
                line = getattr(node, "end_lineno", None) or node.lineno
                end_col = getattr(node, "end_col_offset", None)
                col = end_col - len(name.encode("utf-8")) if end_col is not None else node.col_offset
            else:
                continue
            context = lines[line - 1].strip() if 0 < line <= len(lines) else ""
            self.add(name, Reference(file_path=rel_path, line=line, column=col + 1, context=context))
            count += 1
        return count


# ===================================================================
# Declaration visitor
# ===================================================================

@dataclass
class _Scope:
    kind: str  # "module", "class" or "function"
    qualname: str
    access: AccessLevel = AccessLevel.OPEN
    markers: FrozenSet[Marker] = frozenset()
    is_protocol: bool = False


@dataclass
class _ClassInfo:
    qualname: str
    bases: List[str]
    is_protocol: bool
    methods: Dict[str, str] = field(default_factory=dict)


class _DeclarationVisitor(ast.NodeVisitor):
    """Walks one module and collects its Declarations."""

    def __init__(
        self,
        rel_path: str,
        module_name: str,
        data: bytes,
        public_names: Set[str],
        main_names: Set[str],
        decorator_markers: Dict[Marker, List[str]],
        base_markers: Dict[Marker, List[str]],
    ) -> None:
        self.rel_path = rel_path
        self.data = data
        self.public_names = public_names
        self.main_names = main_names
        self.decorator_markers = decorator_markers
        self.base_markers = base_markers
        self.line_offsets = self._line_offsets(data)
        self.scopes: List[_Scope] = [_Scope(kind="module", qualname=module_name)]
        self.declarations: List[Declaration] = []
        self.classes: List[_ClassInfo] = []

    @staticmethod
    def _line_offsets(data: bytes) -> List[int]:
        # ast columns on line 1 do not count a UTF-8 BOM
        start = len(codecs.BOM_UTF8) if data.startswith(codecs.BOM_UTF8) else 0
        offsets = [start]
        for line in data[start:].splitlines(keepends=True):
            offsets.append(offsets[-1] + len(line))
        return offsets

    # -- byte ranges ----------------------------------------------------

    def _byte_range(self, node: ast.AST, first_line: int, first_col: int) -> Tuple[int, int]:
        """Return ``(offset, length)`` covering ``node`` and its decorators.

        The range is widened to whole lines when nothing but whitespace (or a
        trailing comment) shares the first and last line with the node.
        """
        end_line = getattr(node, "end_lineno", None) or node.lineno
        end_col = getattr(node, "end_col_offset", None)
        line_start = self.line_offsets[first_line - 1]
        start = line_start + first_col
        end_line_start = self.line_offsets[end_line - 1]
        end_line_stop = self.line_offsets[end_line] if end_line < len(self.line_offsets) else len(self.data)
        end = end_line_start + end_col if end_col is not None else end_line_stop

        prefix = self.data[line_start:start]
        suffix = self.data[end:end_line_stop].strip()
        if not prefix.strip() and (not suffix or suffix.startswith(b"#")):
            start, end = line_start, end_line_stop
        return start, end - start

    def _first_position(self, node: ast.AST) -> Tuple[int, int]:
        decorators = getattr(node, "decorator_list", None) or []
        if decorators:
            first = min(decorators, key=lambda d: (d.lineno, d.col_offset))
            expr_start = self.line_offsets[first.lineno - 1] + first.col_offset
            # the "@" may be followed by spaces, parentheses or a line continuation
            at = self.data.rfind(b"@", 0, expr_start)
            if at >= 0 and not self.data[at + 1:expr_start].strip(b" \t\r\n\\("):
                line = bisect.bisect_right(self.line_offsets, at)
                return line, at - self.line_offsets[line - 1]
            return first.lineno, max(first.col_offset - 1, 0)
        return node.lineno, node.col_offset

    # -- markers --------------------------------------------------------

    def _match(self, names: Iterable[str], table: Dict[Marker, List[str]]) -> Set[Marker]:
        found: Set[Marker] = set()
        for name in names:
            for marker, patterns in table.items():
                if any(fnmatch.fnmatchcase(name, p) for p in patterns):
                    found.add(marker)
        return found

    # -- emission -------------------------------------------------------

    @property
    def scope(self) -> _Scope:
        return self.scopes[-1]

    def _access_for(self, name: str, is_class: bool = False, is_final: bool = False) -> AccessLevel:
        scope = self.scope
        if scope.kind == "function":
            return AccessLevel.PRIVATE
        if name.startswith("__") and not _is_dunder(name):
            own = AccessLevel.PRIVATE
        elif name.startswith("_") and not _is_dunder(name):
            own = AccessLevel.FILEPRIVATE
        elif scope.kind == "module":
            if name not in self.public_names:
                return AccessLevel.INTERNAL
            own = AccessLevel.PUBLIC if (is_final or not is_class) else AccessLevel.OPEN
        else:
            own = AccessLevel.OPEN if is_class and not is_final else AccessLevel.PUBLIC
        return min(own, scope.access)

    def _emit(
        self,
        node: ast.AST,
        name: str,
        kind: DeclarationKind,
        access: AccessLevel,
        markers: Iterable[Marker] = (),
        modifiers: Iterable[Modifier] = (),
        is_requirement: bool = False,
    ) -> Declaration:
        first_line, first_col = self._first_position(node)
        offset, length = self._byte_range(node, first_line, first_col)
        scope = self.scope
        all_markers = set(markers) | (set(scope.markers) - {Marker.PROGRAM_ENTRY})
        if scope.kind == "module" and name in self.main_names:
            all_markers.add(Marker.PROGRAM_ENTRY)
        all_modifiers = set(modifiers)
        if _is_dunder(name):
            all_modifiers.add(Modifier.DYNAMIC)
        decl = Declaration(
            kind=kind,
            name=name,
            qualified_name=f"{scope.qualname}.{name}",
            file_path=self.rel_path,
            line=node.lineno,
            end_line=getattr(node, "end_lineno", None) or node.lineno,
            column=node.col_offset + 1,
            byte_offset=offset,
            byte_length=length,
            access_level=access,
            markers=frozenset(all_markers),
            modifiers=frozenset(all_modifiers),
            is_protocol_requirement=is_requirement,
            parent=None if scope.kind == "module" else scope.qualname,
        )
        self.declarations.append(decl)
        return decl

    # -- visitors -------------------------------------------------------

    def visit_If(self, node: ast.If) -> None:
        if self.scope.kind == "module" and _is_main_guard(node):
            return
        self.generic_visit(node)

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        decorators = [d for d in (_dotted_name(x) for x in node.decorator_list) if d]
        bases = [b for b in (_dotted_name(x) for x in node.bases) if b]
        is_final = any(d in _FINAL_DECORATORS for d in decorators)
        is_protocol = any(_simple(b) in _PROTOCOL_BASES for b in bases) or any(
            kw.arg == "metaclass" and _dotted_name(kw.value) in ("ABCMeta", "abc.ABCMeta")
            for kw in node.keywords
        )

        markers = self._match(decorators, self.decorator_markers) | self._match(bases, self.base_markers)
        if node.name.startswith("Test"):
            markers.add(Marker.TEST_HARNESS)

        access = self._access_for(node.name, is_class=True, is_final=is_final)
        decl = self._emit(node, node.name, DeclarationKind.TYPE, access, markers=markers)
        self.classes.append(
            _ClassInfo(qualname=decl.qualified_name, bases=[_simple(b) for b in bases], is_protocol=is_protocol)
        )

        self.scopes.append(
            _Scope(
                kind="class",
                qualname=decl.qualified_name,
                access=access,
                markers=decl.markers,
                is_protocol=is_protocol,
            )
        )
        for stmt in node.body:
            self.visit(stmt)
        self.scopes.pop()

    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:
        self._visit_function(node)

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> None:
        self._visit_function(node)

    def _visit_function(self, node: Union[ast.FunctionDef, ast.AsyncFunctionDef]) -> None:
        scope = self.scope
        decorators = [d for d in (_dotted_name(x) for x in node.decorator_list) if d]
        markers = self._match(decorators, self.decorator_markers)
        modifiers: Set[Modifier] = set()

        if scope.kind == "class":
            if node.name in ("__init__", "__new__"):
                kind = DeclarationKind.INITIALIZER
            elif node.name in _SUBSCRIPT_DUNDERS:
                kind = DeclarationKind.SUBSCRIPT
            elif any(d in _PROPERTY_DECORATORS or d.endswith(_PROPERTY_SUFFIXES) for d in decorators):
                kind = DeclarationKind.COMPUTED_PROPERTY
            else:
                kind = DeclarationKind.METHOD
            if any(d in _STATIC_DECORATORS for d in decorators):
                modifiers.add(Modifier.STATIC)
        else:
            kind = DeclarationKind.FUNCTION

        if node.name.startswith("test_") and scope.kind in ("module", "class"):
            markers.add(Marker.TEST_HARNESS)

        is_requirement = scope.kind == "class" and (
            scope.is_protocol or any(d in _ABSTRACT_DECORATORS for d in decorators)
        )
        decl = self._emit(
            node,
            node.name,
            kind,
            self._access_for(node.name),
            markers=markers,
            modifiers=modifiers,
            is_requirement=is_requirement,
        )
        if scope.kind == "class":
            for info in reversed(self.classes):
                if info.qualname == scope.qualname:
                    info.methods.setdefault(node.name, decl.id)
                    break

        self.scopes.append(_Scope(kind="function", qualname=decl.qualified_name, access=AccessLevel.PRIVATE))
        for stmt in node.body:
            self.visit(stmt)
        self.scopes.pop()

    def visit_Assign(self, node: ast.Assign) -> None:
        if self.scope.kind == "function":
            return
        if len(node.targets) != 1 or not isinstance(node.targets[0], ast.Name):
            return
        name = node.targets[0].id
        kind = self._assignment_kind(name, node.value)
        self._emit(node, name, kind, self._access_for(name))

    def visit_AnnAssign(self, node: ast.AnnAssign) -> None:
        if self.scope.kind == "function" or not isinstance(node.target, ast.Name):
            return
        name = node.target.id
        annotation = _dotted_name(node.annotation) or ""
        if _simple(annotation) == "TypeAlias":
            kind = DeclarationKind.TYPE_ALIAS
        elif _simple(annotation) == "Final":
            kind = DeclarationKind.CONSTANT
        else:
            kind = self._assignment_kind(name, node.value)
        self._emit(node, name, kind, self._access_for(name))

    def visit_TypeAlias(self, node: ast.AST) -> None:
        if self.scope.kind == "function":
            return
        name_node = getattr(node, "name", None)
        if isinstance(name_node, ast.Name):
            self._emit(node, name_node.id, DeclarationKind.TYPE_ALIAS, self._access_for(name_node.id))

    @staticmethod
    def _assignment_kind(name: str, value: Optional[ast.expr]) -> DeclarationKind:
        if isinstance(value, ast.Call):
            callee = _simple(_dotted_name(value.func) or "")
            if callee in _TYPEVAR_CALLS:
                return DeclarationKind.ASSOCIATED_TYPE
            if callee == "NewType":
                return DeclarationKind.TYPE_ALIAS
        if name.strip("_").isupper():
            return DeclarationKind.CONSTANT
        return DeclarationKind.STORED_PROPERTY


# ===================================================================
# Project parser
# ===================================================================

@dataclass
class ParsedProject:
    """Everything the front-end extracted from one project tree."""
    root: Path
    declarations: List[Declaration]
    index: SourceReferenceIndex
    files: List[str]
    failed: List[str] = field(default_factory=list)


class PythonDeclarationParser:
    """Extract Declarations and References from the ``.py`` files of a project."""

    def __init__(self, project_root: Path, config: Optional[ClearConfig] = None) -> None:
        self.project_root = Path(project_root)
        self.config = config or ClearConfig()
        self.decorator_markers = self._marker_table(self.config.markers.decorators, "decorators")
        self.base_markers = self._marker_table(self.config.markers.base_classes, "base_classes")

    @staticmethod
    def _marker_table(raw: Dict[str, List[str]], section: str) -> Dict[Marker, List[str]]:
        table: Dict[Marker, List[str]] = {}
        for key, patterns in raw.items():
            try:
                marker = Marker(key)
            except ValueError:
                logger.warning("Unknown marker %r in [markers.%s], ignoring", key, section)
                continue
            table[marker] = list(patterns)
        return table

    def is_excluded(self, rel_path: str) -> bool:
        return any(matches_glob(rel_path, pattern) for pattern in self.config.exclude)

    def discover_files(self) -> List[Path]:
        files: List[Path] = []
        for ext in sorted(SUPPORTED_EXTENSIONS):
            for file_path in sorted(self.project_root.rglob(f"*{ext}")):
                rel = file_path.relative_to(self.project_root)
                if any(part in SKIP_DIRS for part in rel.parts):
                    continue
                if self.is_excluded(rel.as_posix()):
                    continue
                files.append(file_path)
        return files

    def _module_name(self, rel_path: str) -> str:
        module = rel_path[:-3] if rel_path.endswith(".py") else rel_path
        module = module.replace("/", ".")
        if module.endswith(".__init__"):
            module = module[: -len(".__init__")]
        return module

    def parse_file(
        self,
        file_path: Path,
        index: Optional[SourceReferenceIndex] = None,
    ) -> Tuple[List[Declaration], List[_ClassInfo]]:
        """Parse one file; references are added to ``index`` when given.

        Raises:
            SyntaxError, ValueError: if the file cannot be parsed.
            OSError: if it cannot be read.
        """
        file_path = Path(file_path)
        data = file_path.read_bytes()
        tree = ast.parse(data, filename=str(file_path))
        try:
            rel_path = file_path.relative_to(self.project_root).as_posix()
        except ValueError:
            rel_path = file_path.as_posix()

        main_names = _import_time_names(tree)
        for stmt in tree.body:
            if _is_main_guard(stmt):
                main_names |= _loaded_names(stmt.body)
        if file_path.name == "__main__.py":
            main_names |= _loaded_names(
                s for s in tree.body
                if not isinstance(s, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef))
            )

        visitor = _DeclarationVisitor(
            rel_path=rel_path,
            module_name=self._module_name(rel_path),
            data=data,
            public_names=_module_all(tree),
            main_names=main_names,
            decorator_markers=self.decorator_markers,
            base_markers=self.base_markers,
        )
        visitor.visit(tree)

        if index is not None:
            lines = data.decode("utf-8-sig", errors="replace").splitlines()
            index.add_source(rel_path, tree, lines)
        return visitor.declarations, visitor.classes

    def parse_project(self) -> ParsedProject:
        index = SourceReferenceIndex()
        declarations: List[Declaration] = []
        classes: List[_ClassInfo] = []
        files: List[str] = []
        failed: List[str] = []

        for file_path in self.discover_files():
            rel = file_path.relative_to(self.project_root).as_posix()
            try:
                decls, infos = self.parse_file(file_path, index)
            except (SyntaxError, ValueError, OSError) as exc:
                logger.warning("Skipping %s: %s", rel, exc)
                failed.append(rel)
                continue
            declarations.extend(decls)
            classes.extend(infos)
            files.append(rel)

        declarations = mark_overrides(declarations, classes)
        logger.info("Parsed %d declarations from %d files", len(declarations), len(files))
        return ParsedProject(
            root=self.project_root,
            declarations=declarations,
            index=index,
            files=files,
            failed=failed,
        )


def mark_overrides(declarations: List[Declaration], classes: List[_ClassInfo]) -> List[Declaration]:
    """Flag methods that re-implement a method of a base class in the project.

    Overriding a requirement of a Protocol/ABC base (or any abstract method)
    makes the method a protocol witness.
    """
    by_name: Dict[str, _ClassInfo] = {}
    for info in classes:
        by_name.setdefault(_simple(info.qualname), info)
    by_id = {d.id: d for d in declarations}

    updated: Dict[str, Declaration] = {}
    for info in classes:
        ancestors: List[_ClassInfo] = []
        seen: Set[str] = {info.qualname}
        pending = list(info.bases)
        while pending:
            base = by_name.get(pending.pop(0))
            if base is None or base.qualname in seen:
                continue
            seen.add(base.qualname)
            ancestors.append(base)
            pending.extend(base.bases)

        for method, decl_id in info.methods.items():
            overridden = [a for a in ancestors if method in a.methods]
            if not overridden:
                continue
            decl = by_id[decl_id]
            witness = any(
                a.is_protocol or by_id[a.methods[method]].is_protocol_requirement for a in overridden
            )
            updated[decl_id] = replace(
                decl,
                modifiers=decl.modifiers | {Modifier.OVERRIDE},
                is_protocol_witness=decl.is_protocol_witness or witness,
            )

    return [updated.get(d.id, d) for d in declarations]


def parse_project(project_root: Path, config: Optional[ClearConfig] = None) -> ParsedProject:
    return PythonDeclarationParser(project_root, config).parse_project()
