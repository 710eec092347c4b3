"""Shared fixtures: write a throwaway project to disk and load it."""
import textwrap
from pathlib import Path
from typing import Dict

import pytest

from callscope.analyzer.index import SymbolIndex
from callscope.analyzer.loader import ProgramLoader
from callscope.config import reset_config


def write_project(root: Path, files: Dict[str, str]) -> Path:
    """Write ``{relative path: source}`` under ``root`` (sources are dedented)."""
    for rel, source in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(source).lstrip("\n"), encoding="utf-8")
    return root


@pytest.fixture
def load_project(tmp_path):
    """Return a loader: ``load_project({'app.py': '...'})`` -> Program."""
    def _load(files: Dict[str, str]):
        write_project(tmp_path, files)
        return ProgramLoader(tmp_path).load()
    return _load


@pytest.fixture
def resolve():
    """Resolve a query in a program to exactly one symbol."""
    def _resolve(program, query: str):
        return SymbolIndex(program).resolve(query)
    return _resolve


@pytest.fixture(autouse=True)
def clean_config(monkeypatch):
    """Keep CALLSCOPE_* settings from leaking between tests."""
    for var in ("CALLSCOPE_UP_DEPTH", "CALLSCOPE_DOWN_DEPTH", "CALLSCOPE_SCOPE",
                "CALLSCOPE_EXCLUDE_DIRS", "CALLSCOPE_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    reset_config()
    yield
    reset_config()
