"""Tests for change-impact analysis."""
from callscope.callgraph.impact import analyze_impact
from callscope.callgraph.scope import Scope

PROJECT = {
    "orders.py": """
        class Order:
            def __init__(self, total):
                self.total = total


        class Receipt:
            pass


        LIMIT = 10


        def place(total):
            return Order(total)


        def checkout():
            if 5 < LIMIT:
                place(5)
            return Receipt()


        FACTORIES = [Order, Receipt]
    """,
    "loop.py": """
        def ping(n):
            pong(n)


        def pong(n):
            ping(n)
    """,
}


class TestFunctions:
    def test_callers_with_depth(self, load_project, resolve):
        program = load_project(PROJECT)
        report = analyze_impact(program, resolve(program, "place"))
        assert [(c.symbol, c.depth, c.callsite) for c in report.callers] == [
            ("orders.checkout", 1, "orders.py:19"),
        ]
        assert report.references == ()
        assert report.definition == "orders.py:13:14"

    def test_cycle_is_listed_once(self, load_project, resolve):
        program = load_project(PROJECT)
        report = analyze_impact(program, resolve(program, "ping"), depth=5)
        assert [c.symbol for c in report.callers] == ["loop.pong"]
        assert not report.truncated


class TestClasses:
    def test_constructor_callers_and_stored_class(self, load_project, resolve):
        program = load_project(PROJECT)
        report = analyze_impact(program, resolve(program, "Order"), depth=2)
        assert [(c.symbol, c.depth) for c in report.callers] == [("orders.place", 1), ("orders.checkout", 2)]
        assert [r.containing for r in report.references] == ["orders.FACTORIES"]
        assert report.kind == "type"

    def test_class_without_init_lists_every_reference(self, load_project, resolve):
        program = load_project(PROJECT)
        report = analyze_impact(program, resolve(program, "Receipt"))
        assert report.callers == ()
        where = sorted((r.containing, r.kind) for r in report.references)
        assert where == [("orders.FACTORIES", "non-call"), ("orders.checkout", "call")]


class TestValues:
    def test_constant(self, load_project, resolve):
        program = load_project(PROJECT)
        report = analyze_impact(program, resolve(program, "LIMIT"), scope=Scope.PACKAGE)
        assert report.callers == ()
        assert [r.containing for r in report.references] == ["orders.checkout"]
        assert report.affected == ["orders.checkout"]
        assert report.files == ["orders.py"]
        data = report.to_dict()
        assert data["query"]["scope"] == "package"
        assert data["summary"]["references"] == 1
