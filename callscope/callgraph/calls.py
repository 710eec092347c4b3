"""Call resolution and call-graph walking.

``resolve_call`` decides, for one call expression, which declaration is
invoked, or says explicitly why it cannot be known statically. The walkers
stream ``Call`` records for one declaration or a whole set of packages.
"""
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, Optional

from tree_sitter import Node

from callscope.analyzer.program import Declaration, Package, Program, SourceFile, node_text
from callscope.callgraph.references import callee_identifier, decorator_expression, walk_region
from callscope.callgraph.symbols import CLASS_KINDS, VALUE_KINDS, Symbol, SymbolKind
from callscope.errors import TraversalCancelled

logger = logging.getLogger(__name__)


class UnresolvedReason(str, Enum):
    """Why a call has no statically known callee."""
    BUILTIN = "builtin"
    FUNCTION_VALUE = "function_value"
    FUNCTION_LITERAL = "function_literal"
    DYNAMIC = "dynamic"  # receiver type not statically determinable
    IMPLICIT_INIT = "implicit_init"  # project class without a user-written __init__


@dataclass(frozen=True)
class Resolution:
    """Outcome of resolving one call: a callee, or a reason there is none."""
    callee: Optional[Symbol] = None
    reason: Optional[UnresolvedReason] = None

    @property
    def resolved(self) -> bool:
        return self.callee is not None

    @property
    def interface(self) -> bool:
        """Resolved to an abstract/Protocol method; the concrete target is unknown."""
        return self.callee is not None and self.callee.abstract


@dataclass(frozen=True)
class Call:
    """One call expression inside a declaration body."""
    caller: Symbol
    callee: Optional[Symbol]
    file: str
    line: int
    column: int
    expression: str  # source text of the invoked expression
    reason: Optional[UnresolvedReason] = None

    @property
    def resolved(self) -> bool:
        return self.callee is not None

    @property
    def interface(self) -> bool:
        return self.callee is not None and self.callee.abstract

    @property
    def callsite(self) -> str:
        return f"{self.file}:{self.line}"


def _unresolved(reason: UnresolvedReason) -> Resolution:
    return Resolution(reason=reason)


def _classify(program: Program, sym: Optional[Symbol]) -> Resolution:
    """Resolution for calling whatever ``sym`` names."""
    if sym is None:
        return _unresolved(UnresolvedReason.DYNAMIC)
    if sym.kind in (SymbolKind.FUNC, SymbolKind.METHOD, SymbolKind.EXTERNAL):
        return Resolution(callee=sym)
    if sym.kind in CLASS_KINDS:
        initializer = program.initializer_of(sym)
        if initializer is None:
            return _unresolved(UnresolvedReason.IMPLICIT_INIT)
        return Resolution(callee=initializer)
    if sym.kind in VALUE_KINDS:
        return _unresolved(UnresolvedReason.FUNCTION_VALUE)
    if sym.kind == SymbolKind.BUILTIN:
        return _unresolved(UnresolvedReason.BUILTIN)
    return _unresolved(UnresolvedReason.DYNAMIC)


def _resolve_expression(program: Program, file: SourceFile, expression: Optional[Node]) -> Resolution:
    if expression is None:
        return _unresolved(UnresolvedReason.DYNAMIC)
    info = file.info
    t = expression.type

    if t == 'parenthesized_expression' and expression.named_children:
        return _resolve_expression(program, file, expression.named_children[0])
    if t == 'lambda':
        return _unresolved(UnresolvedReason.FUNCTION_LITERAL)
    if t == 'call':
        return _unresolved(UnresolvedReason.FUNCTION_VALUE)
    if t == 'identifier':
        return _classify(program, info.uses.get(expression.start_byte))
    if t == 'attribute':
        attr = expression.child_by_field_name('attribute')
        if attr is None:
            return _unresolved(UnresolvedReason.DYNAMIC)
        selection = info.selections.get(attr.start_byte)
        if selection is not None:
            if selection.is_method:
                return Resolution(callee=selection.obj)
            return _classify(program, selection.obj)
        return _classify(program, info.uses.get(attr.start_byte))
    if t == 'subscript':
        base = expression.child_by_field_name('value')
        if base is not None and base.type in ('identifier', 'attribute'):
            return _resolve_expression(program, file, base)
        return _unresolved(UnresolvedReason.FUNCTION_VALUE)
    return _unresolved(UnresolvedReason.DYNAMIC)


def resolve_call(program: Program, file: SourceFile, call: Node) -> Resolution:
    """Statically resolve the callee of a call or bare decorator node.

    Args:
        program: Loaded program
        file: Source file containing the node
        call: A ``call`` node, or a ``decorator`` whose expression is not a call

    Returns:
        Resolution with the callee, or the explicit reason it is unresolved
    """
    if call.type == 'decorator':
        return _resolve_expression(program, file, decorator_expression(call))
    return _resolve_expression(program, file, call.child_by_field_name('function'))


def _invoked_expression(node: Node) -> Optional[Node]:
    if node.type == 'call':
        return node.child_by_field_name('function')
    if node.type == 'decorator':
        expression = decorator_expression(node)
        # @factory(...) is walked as the call node it contains
        if expression is None or expression.type == 'call':
            return None
        return expression
    return None


def iter_calls(program: Program, declaration: Declaration) -> Iterator[Call]:
    """Yield every call made directly in one declaration's region."""
    file = declaration.file
    for node in walk_region(declaration):
        expression = _invoked_expression(node)
        if expression is None:
            continue
        resolution = resolve_call(program, file, node)
        anchor = callee_identifier(expression) or node
        yield Call(
            caller=declaration.symbol,
            callee=resolution.callee,
            file=file.path,
            line=anchor.start_point[0] + 1,
            column=anchor.start_point[1],
            expression=node_text(expression),
            reason=resolution.reason,
        )


def iter_package_calls(program: Program, packages: Iterable[Package],
                       cancel: Optional[threading.Event] = None) -> Iterator[Call]:
    """Yield every call across a set of packages.

    Args:
        program: Loaded program
        packages: Packages to scan
        cancel: Optional event; checked before each package is scanned

    Raises:
        TraversalCancelled: If ``cancel`` is set
    """
    for pkg in packages:
        if cancel is not None and cancel.is_set():
            raise TraversalCancelled(f"call scan (stopped before {pkg.path})")
        for declaration in pkg.declarations:
            yield from iter_calls(program, declaration)
