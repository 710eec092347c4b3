"""Change-impact analysis: everything that depends on one symbol.

Combines the transitive callers of a function or method with the references
that are not calls (the symbol stored, passed or returned), since either may
break when the symbol changes. For classes, the callers are those of the
class's ``__init__``.
"""
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple

from callscope.analyzer.program import Program
from callscope.callgraph.nodes import CallNode
from callscope.callgraph.references import Reference, iter_non_call_references, iter_references
from callscope.callgraph.scope import Scope
from callscope.callgraph.symbols import CLASS_KINDS, Symbol
from callscope.callgraph.tree import TreeBuilder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImpactedCaller:
    """A declaration that reaches the target through a chain of calls."""
    symbol: str
    callsite: str  # where it calls the next declaration towards the target
    depth: int  # 1 for direct callers
    truncated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = {'symbol': self.symbol, 'callsite': self.callsite, 'depth': self.depth}
        if self.truncated:
            data['truncated'] = True
        return data


@dataclass(frozen=True)
class ImpactReport:
    target: str
    kind: str
    definition: str
    depth: int
    scope: str
    callers: Tuple[ImpactedCaller, ...]
    references: Tuple[Reference, ...]

    @property
    def affected(self) -> List[str]:
        """Distinct declarations affected, in discovery order."""
        seen: Dict[str, None] = {}
        for caller in self.callers:
            seen.setdefault(caller.symbol, None)
        for ref in self.references:
            seen.setdefault(ref.containing, None)
        return list(seen)

    @property
    def files(self) -> List[str]:
        found: Dict[str, None] = {}
        for caller in self.callers:
            found.setdefault(caller.callsite.split(':', 1)[0], None)
        for ref in self.references:
            found.setdefault(ref.file, None)
        return sorted(found)

    @property
    def truncated(self) -> bool:
        return any(c.truncated for c in self.callers)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'query': {'command': 'impact', 'target': self.target, 'depth': self.depth, 'scope': self.scope},
            'target': {'symbol': self.target, 'kind': self.kind, 'definition': self.definition},
            'callers': [c.to_dict() for c in self.callers],
            'references': [r.to_dict() for r in self.references],
            'summary': {
                'callers': len(self.callers),
                'references': len(self.references),
                'total_locations': len(self.callers) + len(self.references),
                'affected_declarations': len(self.affected),
                'files': len(self.files),
                'truncated': self.truncated,
            },
        }


def _flatten(nodes: Tuple[CallNode, ...], depth: int = 1) -> Iterator[ImpactedCaller]:
    for node in nodes:
        if node.cycle:
            continue
        yield ImpactedCaller(node.symbol, node.callsite, depth, node.truncated)
        yield from _flatten(node.children, depth + 1)


def analyze_impact(program: Program, sym: Symbol, depth: int = 3,
                   scope: Scope | str = Scope.PROJECT,
                   cancel: Optional[threading.Event] = None) -> ImpactReport:
    """Collect what may break if ``sym`` changes.

    Args:
        program: Loaded program
        sym: Symbol of any kind
        depth: Levels of transitive callers to follow
        scope: Traversal scope for the caller scan
        cancel: Optional cancellation event for the caller scans

    Returns:
        ImpactReport with callers (bottom-up order) and references. For
        functions, methods and classes with an ``__init__`` only non-call
        references are listed, as the calls already appear as callers.

    Raises:
        TraversalCancelled: If ``cancel`` is set during a caller scan
    """
    scope = Scope(scope)
    builder = TreeBuilder(program, scope, sym.package, cancel)
    target = program.initializer_of(sym) if sym.kind in CLASS_KINDS else sym
    declaration = program.declaration_of(target)

    callers: Tuple[ImpactedCaller, ...] = ()
    walks_callers = target is not None and target.is_callable and declaration is not None
    if walks_callers:
        bottom_up, _ = builder.build_callers(declaration, depth)
        callers = tuple(_flatten(bottom_up))

    packages = builder.filter.packages()
    if walks_callers:
        references = tuple(iter_non_call_references(program, sym, packages))
    else:
        references = tuple(iter_references(program, sym, packages))

    own = program.declaration_of(sym)
    logger.debug("Impact of %s: %d callers, %d references", sym.display_name, len(callers), len(references))
    return ImpactReport(
        target=sym.display_name,
        kind=sym.kind.value,
        definition=own.definition_location if own is not None else "",
        depth=depth,
        scope=scope.value,
        callers=callers,
        references=references,
    )
