"""Tests for project discovery and loading."""
from dataclasses import MISSING, fields

import pytest

from callscope.analyzer.loader import ProgramLoader
from callscope.analyzer.program import TypeInfo
from callscope.callgraph.symbols import SymbolKind
from callscope.errors import LoadError

from conftest import write_project


class TestDiscovery:
    def test_module_paths(self, load_project):
        program = load_project({
            "app/__init__.py": "",
            "app/billing.py": "def total():\n    pass\n",
            "app/sub/__init__.py": "",
            "app/sub/deep.py": "X = 1\n",
            "script.py": "print('hi')\n",
        })
        assert sorted(p.path for p in program.packages) == [
            "app", "app.billing", "app.sub", "app.sub.deep", "script",
        ]
        billing = program.package("app.billing")
        assert billing.directory == "app"
        assert billing.name == "billing"
        assert billing.files[0].path == "app/billing.py"

    def test_excluded_directories(self, tmp_path):
        write_project(tmp_path, {
            "keep.py": "def a():\n    pass\n",
            ".venv/lib/site.py": "def b():\n    pass\n",
            "node_modules/x.py": "def c():\n    pass\n",
            "build_out/y.py": "def d():\n    pass\n",
        })
        program = ProgramLoader(tmp_path, exclude_dirs=["build_out"]).load()
        assert [p.path for p in program.packages] == ["keep"]

    def test_src_layout(self, load_project):
        program = load_project({
            "src/mylib/__init__.py": "",
            "src/mylib/core.py": "def run():\n    pass\n",
        })
        assert program.has_package("mylib.core")

    def test_non_identifier_files_are_skipped(self, load_project):
        program = load_project({
            "ok.py": "",
            "my-script.py": "def x():\n    pass\n",
        })
        assert [p.path for p in program.packages] == ["ok"]


class TestDeclarations:
    def test_kinds(self, load_project):
        program = load_project({
            "shapes.py": """
                from typing import Protocol

                DEFAULT_SIZE = 3
                registry = {}


                class Drawable(Protocol):
                    def draw(self) -> None: ...


                class Square:
                    side = 1

                    def area(self):
                        def helper():
                            pass
                        return helper()


                def build():
                    pass
            """,
        })
        kinds = {d.symbol.qualified_name: d.symbol.kind for d in program.package("shapes").declarations}
        assert kinds["<module>"] == SymbolKind.MODULE
        assert kinds["DEFAULT_SIZE"] == SymbolKind.CONST
        assert kinds["registry"] == SymbolKind.VAR
        assert kinds["Drawable"] == SymbolKind.INTERFACE
        assert kinds["Drawable.draw"] == SymbolKind.METHOD
        assert kinds["Square"] == SymbolKind.TYPE
        assert kinds["Square.area"] == SymbolKind.METHOD
        assert kinds["Square.area.helper"] == SymbolKind.FUNC
        assert kinds["build"] == SymbolKind.FUNC

    def test_signature(self, load_project, resolve):
        program = load_project({
            "sig.py": """
                import functools


                @functools.lru_cache
                def cached(key: str,
                           default: int = 0) -> int:
                    return default
            """,
        })
        declaration = program.declaration_of(resolve(program, "cached"))
        assert declaration.signature == "def cached(key: str, default: int = 0) -> int"
        assert declaration.start_line == 4
        assert declaration.definition_location == "sig.py:4:7"


class TestErrors:
    def test_missing_root(self, tmp_path):
        with pytest.raises(LoadError):
            ProgramLoader(tmp_path / "nope").load()

    def test_empty_project(self, tmp_path):
        with pytest.raises(LoadError) as exc:
            ProgramLoader(tmp_path).load()
        assert exc.value.code == "load_error"

    def test_syntax_error_marks_package_incomplete(self, load_project):
        program = load_project({
            "fine.py": "def ok():\n    pass\n",
            "bad.py": "def broken(:\n    pass\n",
        })
        assert program.package("fine").complete
        bad = program.package("bad")
        assert not bad.complete
        assert bad.issues[0].file == "bad.py"
        assert [p.path for p in program.incomplete_packages()] == ["bad"]

    def test_on_file_callback(self, tmp_path):
        write_project(tmp_path, {"a.py": "", "b.py": ""})
        seen = []
        ProgramLoader(tmp_path).load(on_file=seen.append)
        assert [p.name for p in seen] == ["a.py", "b.py"]


class TestTypeInfo:
    def test_empty_tables_are_read_only(self):
        info = TypeInfo()
        assert dict(info.uses) == {}
        assert dict(info.selections) == {}
        with pytest.raises(TypeError):
            info.uses[0] = None

    def test_table_defaults_use_factories(self):
        """Mapping proxies are not valid plain defaults on every interpreter."""
        assert all(f.default is MISSING for f in fields(TypeInfo))
