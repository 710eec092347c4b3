"""Tests for symbol identity and display names."""
from callscope.callgraph.symbols import Position, Symbol, SymbolKind, same_symbol, visit_key


def make(name="run", package="app.jobs", line=3, qualified=None, kind=SymbolKind.FUNC, receiver=None):
    return Symbol(kind=kind, name=name, package=package, position=Position("app/jobs.py", line, 4),
                  qualified_name=qualified or name, receiver=receiver)


class TestSameSymbol:
    def test_identical_handle(self):
        sym = make()
        assert same_symbol(sym, sym)

    def test_independent_handles_same_location(self):
        """Two lookups of one declaration compare equal by location."""
        assert same_symbol(make(), make())

    def test_different_position(self):
        assert not same_symbol(make(line=3), make(line=9))

    def test_different_package(self):
        assert not same_symbol(make(package="app.jobs"), make(package="app.tasks"))

    def test_missing_package_never_matches(self):
        a = make(package=None)
        b = make(package=None)
        assert not same_symbol(a, b)
        assert same_symbol(a, a)

    def test_none(self):
        assert not same_symbol(None, make())
        assert not same_symbol(make(), None)

    def test_handles_are_not_equal_by_value(self):
        """Equality stays identity; canonical comparison goes through same_symbol."""
        assert make() != make()


class TestNames:
    def test_display_name_uses_short_package(self):
        sym = make(name="total", qualified="Invoice.total", package="app.billing", kind=SymbolKind.METHOD)
        assert sym.display_name == "billing.Invoice.total"
        assert sym.full_name == "app.billing.Invoice.total"

    def test_external_display_name_keeps_full_package(self):
        sym = Symbol(kind=SymbolKind.EXTERNAL, name="get", package="requests.api", position=None,
                     qualified_name="get")
        assert sym.display_name == "requests.api.get"

    def test_builtin_display_name(self):
        sym = Symbol(kind=SymbolKind.BUILTIN, name="len", package=None, position=None, qualified_name="len")
        assert sym.display_name == "len"
        assert not sym.is_callable


class TestVisitKey:
    def test_receiver_is_part_of_key(self):
        """Same-named methods on different classes of one package do not collide."""
        a = make(name="close", qualified="Reader.close", kind=SymbolKind.METHOD, receiver="Reader")
        b = make(name="close", qualified="Writer.close", kind=SymbolKind.METHOD, receiver="Writer", line=20)
        assert visit_key(a) != visit_key(b)

    def test_same_declaration_same_key(self):
        assert visit_key(make()) == visit_key(make())
