"""Tests for text and console rendering."""
import json

from rich.console import Console

from callscope.callgraph.calls import UnresolvedReason
from callscope.callgraph.nodes import CallNode
from callscope.callgraph.tree import build_tree
from callscope.output import (
    node_label,
    print_tree_result,
    render_call_text,
    render_tree_result_text,
    to_json,
)

ROOTS = (
    CallNode("app.main", children=(
        CallNode("app.load", "app.py:3", children=(CallNode("app.load", "app.py:9", cycle=True),)),
        CallNode("cb", "app.py:4", unresolved=UnresolvedReason.FUNCTION_VALUE),
    )),
)


class TestText:
    def test_unicode_tree(self):
        assert render_call_text(ROOTS) == "\n".join([
            "app.main",
            "├── app.load (app.py:3)",
            "│   └── app.load (app.py:9) [cycle]",
            "└── cb (app.py:4) [unresolved: function_value]",
        ])

    def test_ascii_tree(self):
        text = render_call_text(ROOTS, ascii_only=True)
        assert text.splitlines()[1] == "+-- app.load (app.py:3)"
        assert text.splitlines()[2] == "|   `-- app.load (app.py:9) [cycle]"
        assert all(ord(ch) < 128 for ch in text)

    def test_labels(self):
        assert node_label(CallNode("x.f", "x.py:1", truncated=True)) == "x.f (x.py:1) [depth limit]"
        assert node_label(CallNode("x.P.m", interface=True)) == "x.P.m [interface]"


class TestConsole:
    def test_tree_result(self, load_project, resolve):
        program = load_project({
            "app.py": """
                def main():
                    load()


                def load():
                    pass
            """,
        })
        result = build_tree(program, resolve(program, "load"), up=1, down=1)
        console = Console(record=True, width=120, force_terminal=False)
        print_tree_result(console, result)
        text = console.export_text()
        assert "app.load" in text
        assert "Callers" in text
        assert "app.main" in text
        assert "No calls found." in text
        assert "Definitions: app" in text

    def test_plain_tree_result(self, load_project, resolve):
        program = load_project({
            "app.py": """
                def main():
                    load()


                def load():
                    parse()


                def parse():
                    pass
            """,
        })
        result = build_tree(program, resolve(program, "load"), up=1, down=1)
        text = render_tree_result_text(result, ascii_only=True)
        assert text.splitlines()[:3] == ["tree: app.load", "  def load()", "  app.py:5:6"]
        assert "Callers:\napp.main\n`-- app.load (app.py:2)" in text
        assert "Calls:\napp.parse (app.py:6)" in text
        assert "callers: 1  callees: 1  unresolved: 0" in text

    def test_json(self):
        data = json.loads(to_json({"calls": [ROOTS[0].to_dict()]}))
        assert data["calls"][0]["calls"][0]["calls"][0]["cycle"] is True
        assert data["calls"][0]["calls"][1]["unresolved"] == "function_value"
