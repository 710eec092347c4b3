"""Reference classification: every use of a symbol, tagged call or non-call."""
import logging
from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Optional, Set

from tree_sitter import Node

from callscope.analyzer.program import Declaration, Package, Program, node_key
from callscope.callgraph.symbols import Symbol, same_symbol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Reference:
    """One identifier occurrence resolving to the target symbol."""
    containing: str  # display name of the innermost enclosing declaration
    file: str
    line: int
    column: int
    package: str
    is_call: bool

    @property
    def kind(self) -> str:
        return "call" if self.is_call else "non-call"

    @property
    def location(self) -> str:
        return f"{self.file}:{self.line}"

    def to_dict(self) -> dict:
        return {
            'containing': self.containing,
            'file': self.file,
            'line': self.line,
            'column': self.column,
            'package': self.package,
            'kind': self.kind,
        }


@dataclass
class RefCounts:
    """Reference statistics split by whether the use is in the target's own package."""
    internal: int = 0
    external: int = 0
    packages: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.internal + self.external

    @property
    def package_count(self) -> int:
        return len(self.packages)


def header_nodes(region: Node) -> List[Node]:
    """Parts of a ``def``/``class`` statement run by the code that executes it.

    Decorators, parameter defaults and base-class lists are evaluated once,
    in the enclosing scope, when the statement runs.
    """
    nodes = [child for child in region.children if child.type == 'decorator']
    definition = region.child_by_field_name('definition') if region.type == 'decorated_definition' else region
    if definition is None:
        return nodes
    if definition.type == 'function_definition':
        params = definition.child_by_field_name('parameters')
        for param in (params.named_children if params is not None else ()):
            if param.type in ('default_parameter', 'typed_default_parameter'):
                value = param.child_by_field_name('value')
                if value is not None:
                    nodes.append(value)
    elif definition.type == 'class_definition':
        superclasses = definition.child_by_field_name('superclasses')
        if superclasses is not None:
            nodes.append(superclasses)
    return nodes


def walk_region(declaration: Declaration) -> Iterator[Node]:
    """Yield every node of a declaration's region, skipping nested declarations.

    Nested functions, classes and module-level variables are declarations
    of their own; their nodes belong to them and are never yielded here,
    except for their headers (see ``header_nodes``), which belong to the
    enclosing declaration. A declaration's own header is skipped.
    """
    nested = declaration.file.declaration_roots
    root = declaration.node
    own_header = {node_key(n) for n in header_nodes(root)}
    stack = [root]
    while stack:
        node = stack.pop()
        if node is not root:
            key = node_key(node)
            if key in own_header:
                continue
            if key in nested:
                stack.extend(reversed(header_nodes(node)))
                continue
        yield node
        stack.extend(reversed(node.children))


def callee_identifier(expression: Optional[Node]) -> Optional[Node]:
    """The identifier actually invoked by a call target expression.

    ``f`` for ``f()``, ``m`` for ``x.m()`` / ``mod.f()``, and the base name
    for a subscripted target such as ``Box[int]()``.
    """
    if expression is None:
        return None
    if expression.type == 'identifier':
        return expression
    if expression.type == 'attribute':
        return expression.child_by_field_name('attribute')
    if expression.type == 'subscript':
        return callee_identifier(expression.child_by_field_name('value'))
    return None


def decorator_expression(decorator: Node) -> Optional[Node]:
    return decorator.named_children[0] if decorator.named_children else None


def call_positions(nodes: Iterable[Node]) -> Set[int]:
    """Start bytes of identifiers sitting in called-function position.

    Bare decorators (``@cached``) count: applying a decorator invokes it.
    """
    positions: Set[int] = set()
    for node in nodes:
        if node.type == 'call':
            ident = callee_identifier(node.child_by_field_name('function'))
        elif node.type == 'decorator':
            ident = callee_identifier(decorator_expression(node))
        else:
            continue
        if ident is not None:
            positions.add(ident.start_byte)
    return positions


def _declaration_references(declaration: Declaration, target: Symbol) -> Iterator[Reference]:
    uses = declaration.file.info.uses
    nodes = list(walk_region(declaration))
    calls = None
    for node in nodes:
        if node.type != 'identifier':
            continue
        if not same_symbol(uses.get(node.start_byte), target):
            continue
        if calls is None:
            calls = call_positions(nodes)
        yield Reference(
            containing=declaration.symbol.display_name,
            file=declaration.file.path,
            line=node.start_point[0] + 1,
            column=node.start_point[1],
            package=declaration.file.package,
            is_call=node.start_byte in calls,
        )


def iter_references(program: Program, target: Symbol,
                    packages: Optional[Iterable[Package]] = None) -> Iterator[Reference]:
    """Yield every reference to ``target`` in the given packages (default: all).

    Args:
        program: Loaded program
        target: Symbol whose uses are wanted
        packages: Packages to search; every loaded package when omitted

    Yields:
        Reference objects classified as call or non-call
    """
    for pkg in (program.packages if packages is None else packages):
        for declaration in pkg.declarations:
            yield from _declaration_references(declaration, target)


def iter_non_call_references(program: Program, target: Symbol,
                             packages: Optional[Iterable[Package]] = None) -> Iterator[Reference]:
    """Escaping references only: the symbol is stored, passed or returned.

    Any of these means the function may be invoked from code this analysis
    cannot see.
    """
    for ref in iter_references(program, target, packages):
        if not ref.is_call:
            yield ref


def _count(refs: Iterable[Reference], target: Symbol) -> RefCounts:
    counts = RefCounts()
    for ref in refs:
        if ref.package == target.package:
            counts.internal += 1
            continue
        counts.external += 1
        if ref.package not in counts.packages:
            counts.packages.append(ref.package)
    return counts


def count_references(program: Program, target: Symbol,
                     packages: Optional[Iterable[Package]] = None) -> RefCounts:
    """Count references, split into same-package and other-package uses."""
    return _count(iter_references(program, target, packages), target)


def count_non_call_references(program: Program, target: Symbol,
                              packages: Optional[Iterable[Package]] = None) -> RefCounts:
    return _count(iter_non_call_references(program, target, packages), target)
