"""Tests for bounded, cycle-safe tree construction."""
import threading

import pytest

from callscope.callgraph.calls import UnresolvedReason
from callscope.callgraph.scope import Scope
from callscope.callgraph.tree import TreeBuilder, build_tree
from callscope.errors import InvalidSymbolKind, NoFunctionBody, TraversalCancelled

CHAIN = {
    "chain.py": """
        def a():
            b()


        def b():
            c()


        def c():
            d()


        def d():
            e()


        def e():
            pass
    """,
}


def depth_of(roots):
    """Depth of the deepest node, counting top-level nodes as depth 1."""
    return max((1 + node.depth() for node in roots), default=0)


def symbols(roots):
    return [node.symbol for root in roots for node in root.iter_nodes()]


class TestDepthBound:
    @pytest.mark.parametrize("depth", [1, 2, 3, 4, 6])
    def test_no_node_below_requested_depth(self, load_project, resolve, depth):
        program = load_project(CHAIN)
        result = build_tree(program, resolve(program, "a"), up=0, down=depth)
        assert depth_of(result.callees) <= depth
        assert result.summary.max_down_depth <= depth

    def test_truncation_only_when_more_exists(self, load_project, resolve):
        program = load_project(CHAIN)
        start = resolve(program, "a")

        short = build_tree(program, start, up=0, down=2)
        assert symbols(short.callees) == ["chain.b", "chain.c"]
        assert short.summary.down_truncated
        assert short.callees[0].children[0].truncated

        exact = build_tree(program, start, up=0, down=4)
        assert symbols(exact.callees) == ["chain.b", "chain.c", "chain.d", "chain.e"]
        assert not exact.summary.down_truncated
        assert exact.summary.callees == 4
        assert exact.summary.max_down_depth == 4

    def test_zero_depth_skips_direction(self, load_project, resolve):
        program = load_project(CHAIN)
        result = build_tree(program, resolve(program, "c"), up=0, down=0)
        assert result.callers == ()
        assert result.callees == ()
        assert result.summary.callers == 0
        assert result.summary.callees == 0


class TestCycles:
    def test_self_recursion_is_one_cycle_leaf(self, load_project, resolve):
        program = load_project({
            "loop.py": """
                def spin():
                    spin()
            """,
        })
        for depth in (1, 2, 5):
            result = build_tree(program, resolve(program, "spin"), up=0, down=depth)
            assert len(result.callees) == 1
            node = result.callees[0]
            assert node.symbol == "loop.spin"
            assert node.cycle
            assert node.children == ()
            assert result.summary.down_cycle_bounded
            assert not result.summary.down_truncated

    def test_mutual_recursion(self, load_project, resolve):
        program = load_project({
            "ping.py": """
                def ping(n):
                    pong(n - 1)


                def pong(n):
                    ping(n - 1)
            """,
        })
        result = build_tree(program, resolve(program, "ping"), up=0, down=10)
        assert symbols(result.callees) == ["ping.pong", "ping.ping"]
        assert result.callees[0].children[0].cycle
        assert result.summary.down_cycles == 1
        assert not result.summary.down_truncated

    def test_cousin_branches_both_expand(self, load_project, resolve):
        """The visited mark is released on return, so siblings repeat a shared callee."""
        program = load_project({
            "fan.py": """
                def top():
                    left()
                    right()


                def left():
                    shared()


                def right():
                    shared()


                def shared():
                    pass
            """,
        })
        result = build_tree(program, resolve(program, "top"), up=0, down=3)
        assert symbols(result.callees) == ["fan.left", "fan.shared", "fan.right", "fan.shared"]
        assert result.summary.down_cycles == 0

    def test_same_method_name_on_different_classes(self, load_project, resolve):
        program = load_project({
            "streams.py": """
                class Writer:
                    def close(self):
                        pass


                class Reader:
                    def close(self, sink: Writer):
                        sink.close()
            """,
        })
        result = build_tree(program, resolve(program, "Reader.close"), up=0, down=3)
        assert symbols(result.callees) == ["streams.Writer.close"]
        assert not result.callees[0].cycle


class TestAncestors:
    def test_callers_of_chain_end(self, load_project, resolve):
        """A calls B, B calls C: two callers, B directly and A above it."""
        program = load_project({
            "letters.py": """
                def A():
                    B()


                def B():
                    C()


                def C():
                    pass
            """,
        })
        target = resolve(program, "C")
        builder = TreeBuilder(program, Scope.PROJECT, target.package)
        bottom_up, stats = builder.build_callers(program.declaration_of(target), 2)
        assert [n.symbol for n in bottom_up] == ["letters.B"]
        assert [n.symbol for n in bottom_up[0].children] == ["letters.A"]
        assert stats.count == 2

        result = build_tree(program, target, up=2, down=0)
        assert result.summary.callers == 2
        assert len(result.callers) == 1
        assert symbols(result.callers) == ["letters.A", "letters.B", "letters.C"]
        assert result.callers[0].callsite == ""
        assert result.callers[0].children[0].callsite == "letters.py:2"
        assert result.callers[0].children[0].children[0].callsite == "letters.py:6"
        assert not result.summary.up_truncated

    def test_callers_truncated_at_limit(self, load_project, resolve):
        program = load_project(CHAIN)
        result = build_tree(program, resolve(program, "e"), up=2, down=0)
        assert result.summary.callers == 2
        assert result.summary.up_truncated
        assert symbols(result.callers) == ["chain.c", "chain.d", "chain.e"]

    def test_one_node_per_call_site(self, load_project, resolve):
        program = load_project({
            "twice.py": """
                def target():
                    pass


                def caller():
                    target()
                    target()
            """,
        })
        result = build_tree(program, resolve(program, "target"), up=1, down=0)
        assert result.summary.callers == 2
        assert len(result.callers) == 2

    def test_module_level_call_is_a_caller(self, load_project, resolve):
        program = load_project({
            "boot.py": """
                def setup():
                    pass


                setup()
            """,
        })
        result = build_tree(program, resolve(program, "setup"), up=1, down=0)
        assert [n.symbol for n in result.callers] == ["boot.<module>"]

    def test_decorators_and_defaults_are_called_by_enclosing_code(self, load_project, resolve):
        program = load_project({
            "deco.py": """
                def traced(fn):
                    return fn


                @traced
                def plain():
                    pass


                def uses_default(x=traced(1)):
                    return x
            """,
        })
        result = build_tree(program, resolve(program, "traced"), up=1, down=0)
        assert [n.symbol for n in result.callers] == ["deco.<module>", "deco.<module>"]
        assert [n.children[0].callsite for n in result.callers] == ["deco.py:5", "deco.py:10"]

        plain = build_tree(program, resolve(program, "plain"), up=0, down=1)
        assert plain.callees == ()

    def test_cancelled_caller_scan(self, load_project, resolve):
        program = load_project(CHAIN)
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(TraversalCancelled):
            build_tree(program, resolve(program, "e"), up=2, down=0, cancel=cancel)


class TestLeaves:
    def test_unresolved_callees_are_explicit_leaves(self, load_project, resolve):
        program = load_project({
            "mixed.py": """
                def known():
                    pass


                def start(cb):
                    known()
                    cb()
                    print("done")
            """,
        })
        result = build_tree(program, resolve(program, "start"), up=0, down=2)
        by_symbol = {n.symbol: n for n in result.callees}
        assert by_symbol["cb"].unresolved == UnresolvedReason.FUNCTION_VALUE
        assert by_symbol["print"].unresolved == UnresolvedReason.BUILTIN
        assert by_symbol["mixed.known"].unresolved is None
        assert result.summary.callees == 1
        assert result.summary.unresolved_callees == 2

    def test_interface_callee_is_not_expanded(self, load_project, resolve):
        program = load_project({
            "ports.py": """
                from typing import Protocol


                class Sink(Protocol):
                    def write(self, data: bytes) -> None: ...


                def flush(sink: Sink):
                    sink.write(b"")
            """,
        })
        result = build_tree(program, resolve(program, "flush"), up=0, down=3)
        assert len(result.callees) == 1
        assert result.callees[0].symbol == "ports.Sink.write"
        assert result.callees[0].interface
        assert result.callees[0].children == ()


class TestStartSymbol:
    PROJECT = {
        "things.py": """
            from abc import ABC, abstractmethod

            LIMIT = 3


            class Base(ABC):
                @abstractmethod
                def go(self): ...


            def ok():
                pass
        """,
    }

    def test_class_is_rejected(self, load_project, resolve):
        program = load_project(self.PROJECT)
        with pytest.raises(InvalidSymbolKind):
            build_tree(program, resolve(program, "Base"))

    def test_constant_is_rejected(self, load_project, resolve):
        program = load_project(self.PROJECT)
        with pytest.raises(InvalidSymbolKind):
            build_tree(program, resolve(program, "LIMIT"))

    def test_abstract_method_has_no_body(self, load_project, resolve):
        program = load_project(self.PROJECT)
        with pytest.raises(NoFunctionBody):
            build_tree(program, resolve(program, "Base.go"))


class TestResult:
    def test_target_block_and_definitions(self, load_project, resolve):
        program = load_project(CHAIN)
        result = build_tree(program, resolve(program, "b"), up=1, down=1)
        assert result.target == "chain.b"
        assert result.signature == "def b()"
        assert result.definition == "chain.py:5:6"

        [pkg] = result.definitions
        assert pkg.package == "chain"
        assert [e.symbol for e in pkg.symbols] == ["chain.a", "chain.b", "chain.c"]

    def test_to_dict(self, load_project, resolve):
        program = load_project(CHAIN)
        data = build_tree(program, resolve(program, "b"), up=1, down=1, command="tree").to_dict()
        assert data["query"] == {"command": "tree", "target": "chain.b", "up": 1, "down": 1, "scope": "project"}
        assert data["calls"][0]["symbol"] == "chain.c"
        assert data["calls"][0]["truncated"] is True
        assert data["callers"][0]["symbol"] == "chain.a"
        assert data["callers"][0]["calls"][0]["symbol"] == "chain.b"
        assert data["summary"]["callees"] == 1
        assert data["warnings"] == []

    def test_incomplete_package_warning(self, load_project, resolve):
        program = load_project({
            "good.py": """
                def fine():
                    pass
            """,
            "broken.py": """
                def oops(:
                    pass
            """,
        })
        result = build_tree(program, resolve(program, "fine"), up=1, down=0)
        assert any("broken" in w for w in result.warnings)
