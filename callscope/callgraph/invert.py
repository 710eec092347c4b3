"""Turn bottom-up caller chains into top-down call trees.

Ancestor search yields ``target <- caller <- caller's caller``; callers are
read top-down, outermost caller first with the target as the leaf. Every
function here builds new nodes and never modifies its input.
"""
from dataclasses import replace
from typing import Sequence, Tuple

from callscope.callgraph.nodes import CallNode


def add_as_leaf(node: CallNode, leaf: CallNode) -> CallNode:
    """Copy of ``node`` with ``leaf`` attached under every one of its leaves.

    Each root-to-leaf path is a distinct call chain, so the edge back down
    is added at the end of each chain independently.
    """
    if not node.children:
        return replace(node, children=(leaf,))
    return replace(node, children=tuple(add_as_leaf(child, leaf) for child in node.children))


def invert_callers_tree(bottom_up: Sequence[CallNode], target_name: str) -> Tuple[CallNode, ...]:
    """Invert bottom-up caller nodes into top-down roots.

    Args:
        bottom_up: Immediate callers of the target, each holding its own
                   callers as children; ``callsite`` is where it calls the
                   node above it
        target_name: Display name of the node the chains lead back to

    Returns:
        Top-down roots (outermost callers) ending in ``target_name`` leaves
    """
    roots = []
    for node in bottom_up:
        leaf = CallNode(symbol=target_name, callsite=node.callsite)
        if not node.children:
            roots.append(replace(node, callsite="", children=(leaf,)))
            continue
        for top in invert_callers_tree(node.children, node.symbol):
            roots.append(add_as_leaf(top, leaf))
    return tuple(roots)
