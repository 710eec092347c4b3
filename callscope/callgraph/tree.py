"""Bounded, cycle-safe call-tree construction in both directions.

Descendants are found by walking each declaration's body. Ancestors cannot
be enumerated from the target alone, so every level performs a full scan of
the in-scope packages for call sites whose callee is the current node.

Both directions share the same rules:

- a node whose (package, qualified name) is already on the current path is
  emitted as a ``cycle`` leaf; the mark is released on return so a cousin
  branch may show the same declaration again
- the cycle check runs before the depth check
- a node at the depth limit is not expanded; it is ``truncated`` only when
  it actually had more to show
- unresolved callees become explicit leaves and are counted
- out-of-scope callees and callers are excluded and not counted
"""
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set, Tuple

from callscope.analyzer.program import Declaration, Package, Program
from callscope.callgraph.calls import Call, iter_calls, iter_package_calls
from callscope.callgraph.invert import invert_callers_tree
from callscope.callgraph.nodes import CallNode, TraversalSummary
from callscope.callgraph.scope import Scope, ScopeFilter
from callscope.callgraph.symbols import Symbol, same_symbol, symbol_key, visit_key
from callscope.errors import InvalidSymbolKind, NoFunctionBody, TraversalCancelled

logger = logging.getLogger(__name__)


@dataclass
class DirectionStats:
    """Counters for one traversal direction."""
    count: int = 0
    unresolved: int = 0
    max_depth: int = 0
    truncated: bool = False
    cycles: int = 0

    def reach(self, depth: int):
        if depth > self.max_depth:
            self.max_depth = depth


@dataclass(frozen=True)
class TreeQuery:
    command: str
    target: str
    up: int
    down: int
    scope: str


@dataclass(frozen=True)
class DefinitionEntry:
    symbol: str
    signature: str
    definition: str


@dataclass(frozen=True)
class PackageDefinitions:
    package: str
    directory: str
    symbols: Tuple[DefinitionEntry, ...]


@dataclass(frozen=True)
class TreeResult:
    """Everything one tree query produces, ready for rendering."""
    query: TreeQuery
    target: str
    signature: str
    definition: str
    callers: Tuple[CallNode, ...]
    callees: Tuple[CallNode, ...]
    summary: TraversalSummary
    definitions: Tuple[PackageDefinitions, ...] = ()
    warnings: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'query': {
                'command': self.query.command,
                'target': self.query.target,
                'up': self.query.up,
                'down': self.query.down,
                'scope': self.query.scope,
            },
            'target': {
                'symbol': self.target,
                'signature': self.signature,
                'definition': self.definition,
            },
            'callers': [node.to_dict() for node in self.callers],
            'calls': [node.to_dict() for node in self.callees],
            'definitions': [
                {
                    'package': pkg.package,
                    'dir': pkg.directory,
                    'symbols': [
                        {'symbol': e.symbol, 'signature': e.signature, 'definition': e.definition}
                        for e in pkg.symbols
                    ],
                }
                for pkg in self.definitions
            ],
            'summary': self.summary.to_dict(),
            'warnings': list(self.warnings),
        }


class TreeBuilder:
    """Builds caller and callee trees for one query.

    Holds per-query caches only; the Program is never modified, so builders
    for independent queries may share one Program.
    """

    def __init__(self, program: Program, scope: Scope | str = Scope.PROJECT,
                 start_package: Optional[str] = None,
                 cancel: Optional[threading.Event] = None):
        """Initialize builder.

        Args:
            program: Loaded program
            scope: Traversal scope (all, project, package)
            start_package: Package of the start symbol, used by ``package`` scope
            cancel: Optional event checked between package scans
        """
        self.program = program
        self.filter = ScopeFilter(program, scope, start_package)
        self.cancel = cancel
        self._package_calls: Dict[str, Tuple[Call, ...]] = {}
        self._collected: Dict[tuple, Declaration] = {}

    # ------------------------------------------------------------------
    # Descendants
    # ------------------------------------------------------------------

    def build_callees(self, declaration: Declaration, depth: int) -> Tuple[Tuple[CallNode, ...], DirectionStats]:
        """What ``declaration`` calls, ``depth`` levels down (0 disables)."""
        stats = DirectionStats()
        self.collect(declaration.symbol)
        if depth <= 0:
            return (), stats
        visited = {visit_key(declaration.symbol)}
        children = self._expand_callees(declaration, 0, depth, visited, stats)
        logger.debug("Callees of %s: %d resolved, %d unresolved, max depth %d",
                     declaration.symbol.display_name, stats.count, stats.unresolved, stats.max_depth)
        return children, stats

    def _expand_callees(self, declaration: Declaration, depth: int, limit: int,
                        visited: Set[tuple], stats: DirectionStats) -> Tuple[CallNode, ...]:
        nodes = []
        for call in iter_calls(self.program, declaration):
            node = self._callee_node(call, depth + 1, limit, visited, stats)
            if node is not None:
                nodes.append(node)
        return tuple(nodes)

    def _callee_node(self, call: Call, depth: int, limit: int,
                     visited: Set[tuple], stats: DirectionStats) -> Optional[CallNode]:
        if not call.resolved:
            stats.unresolved += 1
            stats.reach(depth)
            return CallNode(symbol=call.expression, callsite=call.callsite, unresolved=call.reason)

        callee = call.callee
        if not self.filter.admits(callee):
            return None
        stats.count += 1
        stats.reach(depth)
        self.collect(callee)
        name = callee.display_name

        if call.interface:
            return CallNode(symbol=name, callsite=call.callsite, interface=True)
        declaration = self.program.declaration_of(callee)
        if declaration is None or not declaration.has_body:
            return CallNode(symbol=name, callsite=call.callsite)

        key = visit_key(callee)
        if key in visited:
            stats.cycles += 1
            return CallNode(symbol=name, callsite=call.callsite, cycle=True)
        if depth >= limit:
            more = self._has_callees(declaration)
            stats.truncated = stats.truncated or more
            return CallNode(symbol=name, callsite=call.callsite, truncated=more)

        visited.add(key)
        try:
            children = self._expand_callees(declaration, depth, limit, visited, stats)
        finally:
            visited.discard(key)
        return CallNode(symbol=name, callsite=call.callsite, children=children)

    def _has_callees(self, declaration: Declaration) -> bool:
        """Would expanding this declaration produce at least one node?"""
        for call in iter_calls(self.program, declaration):
            if not call.resolved or self.filter.admits(call.callee):
                return True
        return False

    # ------------------------------------------------------------------
    # Ancestors
    # ------------------------------------------------------------------

    def build_callers(self, declaration: Declaration, depth: int) -> Tuple[Tuple[CallNode, ...], DirectionStats]:
        """Who calls ``declaration``, ``depth`` levels up (0 disables).

        Returns bottom-up nodes: each root is an immediate caller and its
        children are that caller's own callers. ``callsite`` on every node is
        where it calls the node above it.

        Raises:
            TraversalCancelled: If the cancel event is set during a scan
        """
        stats = DirectionStats()
        self.collect(declaration.symbol)
        if depth <= 0:
            return (), stats
        visited = {visit_key(declaration.symbol)}
        roots = self._expand_callers(declaration.symbol, 0, depth, visited, stats)
        logger.debug("Callers of %s: %d found, max depth %d",
                     declaration.symbol.display_name, stats.count, stats.max_depth)
        return roots, stats

    def _expand_callers(self, target: Symbol, depth: int, limit: int,
                        visited: Set[tuple], stats: DirectionStats) -> Tuple[CallNode, ...]:
        nodes = []
        for call in self._calls_to(target):
            caller = call.caller
            node_depth = depth + 1
            stats.count += 1
            stats.reach(node_depth)
            self.collect(caller)
            name = caller.display_name

            key = visit_key(caller)
            if key in visited:
                stats.cycles += 1
                nodes.append(CallNode(symbol=name, callsite=call.callsite, cycle=True))
                continue
            if node_depth >= limit:
                more = self._has_callers(caller)
                stats.truncated = stats.truncated or more
                nodes.append(CallNode(symbol=name, callsite=call.callsite, truncated=more))
                continue

            visited.add(key)
            try:
                children = self._expand_callers(caller, node_depth, limit, visited, stats)
            finally:
                visited.discard(key)
            nodes.append(CallNode(symbol=name, callsite=call.callsite, children=children))
        return tuple(nodes)

    def _calls_to(self, target: Symbol):
        """Every in-scope call site whose resolved callee is ``target``."""
        for pkg in self.filter.packages():
            for call in self._calls_in(pkg):
                if same_symbol(call.callee, target):
                    yield call

    def _has_callers(self, target: Symbol) -> bool:
        for _ in self._calls_to(target):
            return True
        return False

    def _calls_in(self, pkg: Package) -> Tuple[Call, ...]:
        if self.cancel is not None and self.cancel.is_set():
            raise TraversalCancelled(f"caller scan (stopped before {pkg.path})")
        cached = self._package_calls.get(pkg.path)
        if cached is None:
            cached = tuple(iter_package_calls(self.program, (pkg,), self.cancel))
            self._package_calls[pkg.path] = cached
        return cached

    # ------------------------------------------------------------------
    # Definitions table
    # ------------------------------------------------------------------

    def collect(self, sym: Symbol):
        declaration = self.program.declaration_of(sym)
        if declaration is not None:
            self._collected.setdefault(symbol_key(sym), declaration)

    def definitions(self) -> Tuple[PackageDefinitions, ...]:
        """Every declaration seen during the traversal, grouped by package."""
        grouped: Dict[str, List[Declaration]] = {}
        for declaration in self._collected.values():
            grouped.setdefault(declaration.symbol.package, []).append(declaration)

        result = []
        for package in sorted(grouped):
            decls = sorted(grouped[package], key=lambda d: (d.file.path, d.start_line))
            pkg = self.program.package(package)
            result.append(PackageDefinitions(
                package=package,
                directory=pkg.directory if pkg is not None else "",
                symbols=tuple(
                    DefinitionEntry(d.symbol.display_name, d.signature, d.definition_location)
                    for d in decls
                ),
            ))
        return tuple(result)

    def warnings(self) -> Tuple[str, ...]:
        """Incomplete (syntax error) packages the traversal could read."""
        messages = []
        for pkg in self.program.incomplete_packages(self.filter.packages()):
            issue = pkg.issues[0]
            message = f"package {pkg.path} is incomplete ({issue}); calls in it may be missing"
            logger.warning(message)
            messages.append(message)
        return tuple(messages)


def validate_start(program: Program, sym: Symbol) -> Declaration:
    """Check a start symbol is a function/method with a body to walk.

    Raises:
        InvalidSymbolKind: If the symbol is not a function or method
        NoFunctionBody: If it is abstract/Protocol or not declared in the program
    """
    if not sym.is_callable:
        raise InvalidSymbolKind(sym.display_name, sym.kind.value)
    declaration = program.declaration_of(sym)
    if declaration is None:
        raise NoFunctionBody(sym.display_name, "not declared in the loaded program")
    if not declaration.has_body:
        raise NoFunctionBody(sym.display_name, "abstract or interface method")
    return declaration


def build_tree(program: Program, sym: Symbol, up: int = 2, down: int = 2,
               scope: Scope | str = Scope.PROJECT, cancel: Optional[threading.Event] = None,
               command: str = "tree") -> TreeResult:
    """Build the caller and callee trees centered on one function or method.

    Args:
        program: Loaded program
        sym: Start symbol (function or method with a body)
        up: Caller depth; 0 skips the callers direction
        down: Callee depth; 0 skips the callees direction
        scope: Traversal scope
        cancel: Optional cancellation event for the caller scans
        command: Command name recorded in the query block

    Returns:
        TreeResult with top-down callers, callees and summary

    Raises:
        InvalidSymbolKind, NoFunctionBody: For an unusable start symbol
        TraversalCancelled: If ``cancel`` is set during a caller scan
    """
    declaration = validate_start(program, sym)
    scope = Scope(scope)
    builder = TreeBuilder(program, scope, sym.package, cancel)
    target_name = sym.display_name

    bottom_up, up_stats = builder.build_callers(declaration, up)
    callers = invert_callers_tree(bottom_up, target_name)
    callees, down_stats = builder.build_callees(declaration, down)

    summary = TraversalSummary(
        callers=up_stats.count,
        callees=down_stats.count,
        unresolved_callees=down_stats.unresolved,
        max_up_depth=up_stats.max_depth,
        max_down_depth=down_stats.max_depth,
        up_truncated=up_stats.truncated,
        down_truncated=down_stats.truncated,
        up_cycles=up_stats.cycles,
        down_cycles=down_stats.cycles,
    )
    return TreeResult(
        query=TreeQuery(command=command, target=target_name, up=up, down=down, scope=scope.value),
        target=target_name,
        signature=declaration.signature,
        definition=declaration.definition_location,
        callers=callers,
        callees=callees,
        summary=summary,
        definitions=builder.definitions(),
        warnings=builder.warnings(),
    )
