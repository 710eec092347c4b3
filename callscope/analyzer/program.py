"""Immutable model of a loaded program.

The loader builds these objects once; every engine operation receives the
``Program`` explicitly and only reads from it, so independent traversals may
share one instance.
"""
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

from tree_sitter import Node, Tree

from callscope.callgraph.symbols import Position, Symbol, SymbolKind, symbol_key

NodeKey = Tuple[int, int, str]

_EMPTY: Mapping = MappingProxyType({})


def node_key(node: Node) -> NodeKey:
    """Stable key for a syntax node within one file."""
    return (node.start_byte, node.end_byte, node.type)


def node_text(node: Optional[Node]) -> str:
    if node is None:
        return ""
    return node.text.decode('utf-8', errors='replace')


@dataclass(frozen=True)
class Selection:
    """A resolved ``x.attr`` selection on a value of known class.

    Attributes:
        receiver: Class symbol the attribute was looked up on
        obj: Member found along the class's MRO (method or field)
        via_class: True for ``Cls.attr`` access on the class object itself
    """
    receiver: Symbol
    obj: Symbol
    via_class: bool = False

    @property
    def is_method(self) -> bool:
        return self.obj.kind == SymbolKind.METHOD


@dataclass(frozen=True)
class TypeInfo:
    """Binding tables for one file, keyed by identifier start byte."""
    uses: Mapping[int, Symbol] = field(default_factory=lambda: _EMPTY)
    selections: Mapping[int, Selection] = field(default_factory=lambda: _EMPTY)


@dataclass(frozen=True)
class ParseIssue:
    """A syntax error that makes a package's binding information incomplete."""
    file: str
    line: int
    message: str

    def __str__(self) -> str:
        return f"{self.file}:{self.line}: {self.message}"


@dataclass(frozen=True)
class ImportRecord:
    """One imported module edge (package -> module path)."""
    module: str
    line: int
    resolved: bool


@dataclass(frozen=True, eq=False)
class SourceFile:
    path: str
    package: str
    source: bytes
    tree: Tree
    info: TypeInfo = field(default_factory=TypeInfo)
    declaration_roots: frozenset = frozenset()

    def position(self, node: Node) -> Position:
        return Position(self.path, node.start_point[0] + 1, node.start_point[1])

    def line_of(self, node: Node) -> int:
        return node.start_point[0] + 1


@dataclass(frozen=True, eq=False)
class Declaration:
    """A declaration whose region of source is walked for references and calls.

    ``node`` is the region root (a decorated definition when decorators are
    present); ``definition`` is the underlying function/class definition, or
    None for variables and module top-level code.
    """
    symbol: Symbol
    file: SourceFile
    node: Node
    definition: Optional[Node] = None

    @property
    def has_body(self) -> bool:
        """True when the declaration carries executable code to walk."""
        if self.symbol.kind in (SymbolKind.FUNC, SymbolKind.METHOD):
            return self.definition is not None and not self.symbol.abstract
        return True

    @property
    def start_line(self) -> int:
        return self.node.start_point[0] + 1

    @property
    def end_line(self) -> int:
        return self.node.end_point[0] + 1

    @property
    def signature(self) -> str:
        """Definition header without the body, e.g. ``def total(self) -> int``."""
        if self.definition is None:
            return self.symbol.qualified_name
        body = self.definition.child_by_field_name('body')
        end = body.start_byte if body is not None else self.definition.end_byte
        header = self.file.source[self.definition.start_byte:end].decode('utf-8', errors='replace')
        header = " ".join(header.split())
        return header.rstrip(':').rstrip()

    @property
    def definition_location(self) -> str:
        return f"{self.file.path}:{self.start_line}:{self.end_line}"


@dataclass(frozen=True, eq=False)
class Package:
    """One Python module, the unit of scoping for the engine."""
    path: str
    directory: str
    files: Tuple[SourceFile, ...]
    declarations: Tuple[Declaration, ...]
    imports: Tuple[ImportRecord, ...] = ()
    issues: Tuple[ParseIssue, ...] = ()
    is_project: bool = True

    @property
    def name(self) -> str:
        return self.path.rsplit(".", 1)[-1]

    @property
    def complete(self) -> bool:
        """False when syntax errors left parts of the package unbound."""
        return not self.issues


class Program:
    """All loaded packages plus lookup tables over their declarations."""

    def __init__(self, root: str, packages: List[Package],
                 initializers: Optional[Mapping[tuple, Symbol]] = None):
        """Initialize program.

        Args:
            root: Project root directory
            packages: Loaded packages
            initializers: Class symbol key -> ``__init__`` found along its MRO
        """
        self.root = root
        self._packages: Tuple[Package, ...] = tuple(packages)
        self._by_path: Mapping[str, Package] = MappingProxyType({p.path: p for p in packages})
        decls: Dict[tuple, Declaration] = {}
        for pkg in packages:
            for decl in pkg.declarations:
                decls[symbol_key(decl.symbol)] = decl
        self._declarations: Mapping[tuple, Declaration] = MappingProxyType(decls)
        self._initializers: Mapping[tuple, Symbol] = MappingProxyType(dict(initializers or {}))

    @property
    def packages(self) -> Tuple[Package, ...]:
        return self._packages

    @property
    def project_packages(self) -> Tuple[Package, ...]:
        return tuple(p for p in self._packages if p.is_project)

    def package(self, path: Optional[str]) -> Optional[Package]:
        if path is None:
            return None
        return self._by_path.get(path)

    def has_package(self, path: Optional[str]) -> bool:
        return path is not None and path in self._by_path

    def declaration_of(self, sym: Optional[Symbol]) -> Optional[Declaration]:
        """Locate the declaration for a symbol, or None if it is not loaded."""
        if sym is None or not sym.package:
            return None
        return self._declarations.get(symbol_key(sym))

    def initializer_of(self, class_symbol: Optional[Symbol]) -> Optional[Symbol]:
        """The ``__init__`` a call to this class runs, or None if not user-defined."""
        if class_symbol is None:
            return None
        return self._initializers.get(symbol_key(class_symbol))

    def declarations(self) -> Iterator[Declaration]:
        for pkg in self._packages:
            yield from pkg.declarations

    def incomplete_packages(self, packages: Optional[Tuple[Package, ...]] = None) -> List[Package]:
        return [p for p in (packages or self._packages) if not p.complete]

    def __len__(self) -> int:
        return len(self._packages)

    def __repr__(self) -> str:
        return f"Program(root={self.root!r}, packages={len(self._packages)})"
