"""Immutable result types of call-tree traversal."""
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional, Tuple

from callscope.callgraph.calls import UnresolvedReason


@dataclass(frozen=True)
class CallNode:
    """One node of a presented call tree.

    Attributes:
        symbol: Qualified display name (``billing.Invoice.total``), or the
                invoked expression text for unresolved calls
        callsite: ``file:line`` of the call; empty for top-level roots
        children: Child nodes in source order
        unresolved: Why the callee is unknown, for unresolved leaves
        interface: Callee is an abstract/Protocol method, never expanded
        cycle: Not expanded because it already occurs on this path
        truncated: Not expanded because the depth limit was reached
    """
    symbol: str
    callsite: str = ""
    children: Tuple['CallNode', ...] = ()
    unresolved: Optional[UnresolvedReason] = None
    interface: bool = False
    cycle: bool = False
    truncated: bool = False

    def iter_nodes(self) -> Iterator['CallNode']:
        """Depth-first iteration over this node and its descendants."""
        yield self
        for child in self.children:
            yield from child.iter_nodes()

    def depth(self) -> int:
        """Number of edges on the longest path below this node."""
        if not self.children:
            return 0
        return 1 + max(child.depth() for child in self.children)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'symbol': self.symbol}
        if self.callsite:
            data['callsite'] = self.callsite
        if self.unresolved is not None:
            data['unresolved'] = self.unresolved.value
        if self.interface:
            data['interface'] = True
        if self.cycle:
            data['cycle'] = True
        if self.truncated:
            data['truncated'] = True
        if self.children:
            data['calls'] = [child.to_dict() for child in self.children]
        return data


@dataclass(frozen=True)
class TraversalSummary:
    """Totals per direction.

    ``*_truncated`` means a node at the depth limit had more to show, so a
    deeper query may find more. ``*_cycles`` counts nodes cut because they
    looped back onto their own path; those never set truncation.
    """
    callers: int = 0
    callees: int = 0
    unresolved_callees: int = 0
    max_up_depth: int = 0
    max_down_depth: int = 0
    up_truncated: bool = False
    down_truncated: bool = False
    up_cycles: int = 0
    down_cycles: int = 0

    @property
    def up_cycle_bounded(self) -> bool:
        return self.up_cycles > 0

    @property
    def down_cycle_bounded(self) -> bool:
        return self.down_cycles > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'callers': self.callers,
            'callees': self.callees,
            'unresolved_callees': self.unresolved_callees,
            'max_up_depth': self.max_up_depth,
            'max_down_depth': self.max_down_depth,
            'up_truncated': self.up_truncated,
            'down_truncated': self.down_truncated,
            'up_cycle_bounded': self.up_cycle_bounded,
            'down_cycle_bounded': self.down_cycle_bounded,
            'up_cycles': self.up_cycles,
            'down_cycles': self.down_cycles,
        }
