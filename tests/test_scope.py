"""Tests for the scope filter and its effect on traversals."""
import pytest

from callscope.callgraph.scope import Scope, ScopeFilter
from callscope.callgraph.tree import build_tree

PROJECT = {
    "core.py": """
        import requests
        import helpers


        def run():
            helpers.assist()
            local()
            requests.get("https://example.com")


        def local():
            pass
    """,
    "helpers.py": """
        import core


        def assist():
            pass


        def outer():
            core.run()
    """,
}


class TestScopeFilter:
    def test_project(self, load_project):
        program = load_project(PROJECT)
        f = ScopeFilter(program, Scope.PROJECT, "core")
        assert f.in_scope("core")
        assert f.in_scope("helpers")
        assert not f.in_scope("requests")
        assert not f.in_scope(None)

    def test_package(self, load_project):
        program = load_project(PROJECT)
        f = ScopeFilter(program, "package", "core")
        assert f.in_scope("core")
        assert not f.in_scope("helpers")
        assert [p.path for p in f.packages()] == ["core"]

    def test_all_admits_externals_but_not_builtins(self, load_project):
        program = load_project(PROJECT)
        f = ScopeFilter(program, Scope.ALL, "core")
        assert f.in_scope("requests")
        assert f.in_scope("helpers")
        assert not f.in_scope(None)

    def test_unknown_scope(self, load_project):
        program = load_project(PROJECT)
        with pytest.raises(ValueError):
            ScopeFilter(program, "galaxy", "core")


class TestScopedTraversal:
    def test_project_callees(self, load_project, resolve):
        program = load_project(PROJECT)
        result = build_tree(program, resolve(program, "core.run"), up=0, down=1, scope=Scope.PROJECT)
        assert [n.symbol for n in result.callees] == ["helpers.assist", "core.local"]
        assert result.summary.callees == 2

    def test_package_callees_exclude_other_packages_without_counting(self, load_project, resolve):
        program = load_project(PROJECT)
        result = build_tree(program, resolve(program, "core.run"), up=0, down=1, scope=Scope.PACKAGE)
        assert [n.symbol for n in result.callees] == ["core.local"]
        assert result.summary.callees == 1
        assert result.summary.unresolved_callees == 0

    def test_all_includes_external_leaf(self, load_project, resolve):
        program = load_project(PROJECT)
        result = build_tree(program, resolve(program, "core.run"), up=0, down=2, scope=Scope.ALL)
        names = [n.symbol for n in result.callees]
        assert names == ["helpers.assist", "core.local", "requests.get"]
        external = result.callees[2]
        assert external.children == ()
        assert not external.truncated

    def test_callers_respect_scope(self, load_project, resolve):
        program = load_project(PROJECT)
        target = resolve(program, "core.run")
        project = build_tree(program, target, up=1, down=0, scope=Scope.PROJECT)
        assert [n.symbol for n in project.callers] == ["helpers.outer"]

        package = build_tree(program, target, up=1, down=0, scope=Scope.PACKAGE)
        assert package.callers == ()
        assert package.summary.callers == 0
