"""Tests for turning bottom-up caller chains into top-down trees."""
from callscope.callgraph.invert import add_as_leaf, invert_callers_tree
from callscope.callgraph.nodes import CallNode


def paths(node, prefix=()):
    """Every root-to-leaf path as a tuple of (symbol, callsite)."""
    here = prefix + ((node.symbol, node.callsite),)
    if not node.children:
        return [here]
    found = []
    for child in node.children:
        found.extend(paths(child, here))
    return found


class TestInvert:
    def test_chain_round_trip(self):
        """target <- B <- A becomes A -> B -> target."""
        bottom_up = (
            CallNode("B", "m.py:9", children=(CallNode("A", "m.py:4"),)),
        )
        [root] = invert_callers_tree(bottom_up, "target")
        assert paths(root) == [(("A", ""), ("B", "m.py:4"), ("target", "m.py:9"))]

    def test_direct_caller(self):
        [root] = invert_callers_tree((CallNode("B", "m.py:9"),), "target")
        assert paths(root) == [(("B", ""), ("target", "m.py:9"))]

    def test_shared_ancestor_gets_target_on_every_path(self):
        """Two chains with the same topmost caller each end in the target."""
        bottom_up = (
            CallNode("B", "m.py:9", children=(CallNode("A", "m.py:2"),)),
            CallNode("C", "m.py:14", children=(CallNode("A", "m.py:3"),)),
        )
        roots = invert_callers_tree(bottom_up, "target")
        assert [r.symbol for r in roots] == ["A", "A"]
        all_paths = [p for r in roots for p in paths(r)]
        assert all_paths == [
            (("A", ""), ("B", "m.py:2"), ("target", "m.py:9")),
            (("A", ""), ("C", "m.py:3"), ("target", "m.py:14")),
        ]

    def test_caller_with_two_callers(self):
        bottom_up = (
            CallNode("B", "m.py:9", children=(CallNode("A1", "m.py:2"), CallNode("A2", "m.py:5"))),
        )
        roots = invert_callers_tree(bottom_up, "target")
        assert [paths(r)[0][0][0] for r in roots] == ["A1", "A2"]
        for root in roots:
            [path] = paths(root)
            assert path[-1] == ("target", "m.py:9")

    def test_markers_survive(self):
        bottom_up = (CallNode("B", "m.py:9", children=(CallNode("A", "m.py:4", truncated=True),)),)
        [root] = invert_callers_tree(bottom_up, "target")
        assert root.truncated

    def test_input_is_not_modified(self):
        leaf = CallNode("A", "m.py:4")
        node = CallNode("B", "m.py:9", children=(leaf,))
        invert_callers_tree((node,), "target")
        assert node.children == (leaf,)
        assert leaf.children == ()

    def test_empty(self):
        assert invert_callers_tree((), "target") == ()


class TestAddAsLeaf:
    def test_attaches_under_every_leaf(self):
        tree = CallNode("A", children=(CallNode("X"), CallNode("Y", children=(CallNode("Z"),))))
        grafted = add_as_leaf(tree, CallNode("T", "t.py:1"))
        assert paths(grafted) == [
            (("A", ""), ("X", ""), ("T", "t.py:1")),
            (("A", ""), ("Y", ""), ("Z", ""), ("T", "t.py:1")),
        ]
        # input tree is untouched
        assert paths(tree) == [(("A", ""), ("X", "")), (("A", ""), ("Y", ""), ("Z", ""))]
