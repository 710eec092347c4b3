"""Program loader: discover, parse, extract and bind a Python project."""
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from tree_sitter import Tree

from callscope.analyzer.binder import Binder, ModuleUnit
from callscope.analyzer.extractor import EntityExtractor, declaration_roots
from callscope.analyzer.parser import LanguageParser
from callscope.analyzer.program import (
    Declaration, ImportRecord, Package, ParseIssue, Program, SourceFile, TypeInfo,
)
from callscope.analyzer.resolver import ModuleResolver
from callscope.errors import LoadError

logger = logging.getLogger(__name__)

# Vendored, virtualenv and build output directories are never part of the program
EXCLUDED_DIRS = frozenset({
    'venv', '.venv', 'env', '.virtualenv',
    'vendor', 'extern', 'third_party',
    '.tox', '.nox', '.mypy_cache', '.pytest_cache',
    'site-packages',
    'dist', 'build', '__pycache__',
    'node_modules',
    '.git',
})

MAX_ISSUES_PER_FILE = 5


class ProgramLoader:
    """Loads every Python module under a project root into an immutable Program."""

    def __init__(self, project_root: str | Path = ".", exclude_dirs: Optional[Iterable[str]] = None):
        """Initialize loader.

        Args:
            project_root: Root directory of the project to analyze
            exclude_dirs: Extra directory names to skip during discovery
        """
        self.project_root = Path(project_root).resolve()
        self.excluded_dirs: Set[str] = set(EXCLUDED_DIRS) | set(exclude_dirs or ())
        self.parser = LanguageParser('python')
        self.resolver = ModuleResolver(self.project_root)

    def load(self, on_file: Optional[Callable[[Path], None]] = None) -> Program:
        """Parse and bind the whole project.

        Args:
            on_file: Optional callback invoked once per discovered file
                     (used by the CLI to drive a progress bar)

        Returns:
            Loaded Program

        Raises:
            LoadError: If the root is missing or holds no Python modules
        """
        if not self.project_root.is_dir():
            raise LoadError(f"Project root does not exist: {self.project_root}",
                            context={'root': str(self.project_root)})

        files = self._discover_files()
        logger.debug("Discovered %d Python files under %s", len(files), self.project_root)

        units: List[ModuleUnit] = []
        issues: Dict[str, Tuple[ParseIssue, ...]] = {}
        for file_path in files:
            if on_file is not None:
                on_file(file_path)
            unit = self._load_unit(file_path, {u.package for u in units})
            if unit is None:
                continue
            units.append(unit)
            issues[unit.package] = tuple(self._syntax_issues(unit.tree, unit.path))
            for issue in issues[unit.package]:
                logger.warning("Syntax error, package %s is incomplete: %s", unit.package, issue)

        if not units:
            raise LoadError(f"No Python modules found under {self.project_root}",
                            context={'root': str(self.project_root)})

        self.resolver.modules = {u.package for u in units}
        binder = Binder(units, self.resolver)
        tables = binder.bind_all()

        packages = [self._build_package(unit, tables[unit.package], issues[unit.package]) for unit in units]
        program = Program(str(self.project_root), packages, initializers=binder.initializers())
        logger.debug("Loaded %r", program)
        return program

    def _discover_files(self) -> List[Path]:
        """All *.py files under the root, minus excluded directories, in stable order."""
        files = []
        for file_path in self.project_root.rglob('*.py'):
            rel_parts = file_path.relative_to(self.project_root).parts[:-1]
            if any(part in self.excluded_dirs or part.endswith('.egg-info') for part in rel_parts):
                continue
            files.append(file_path)
        return sorted(files)

    def _load_unit(self, file_path: Path, seen: Set[str]) -> Optional[ModuleUnit]:
        module = self.resolver.module_path_for(file_path)
        if module is None:
            logger.debug("Skipping %s: not importable as a module", file_path)
            return None
        package, is_init = module
        if package in seen:
            logger.debug("Skipping %s: module %s already loaded", file_path, package)
            return None

        try:
            source = file_path.read_bytes()
        except OSError as e:
            raise LoadError(f"Cannot read {file_path}: {e}", context={'file': str(file_path)}) from e

        rel_path = file_path.relative_to(self.project_root).as_posix()
        tree = self.parser.parse_source(source)
        entities = EntityExtractor(package, rel_path).extract_entities(tree)
        return ModuleUnit(package=package, is_init=is_init, path=rel_path,
                          source=source, tree=tree, entities=entities)

    @staticmethod
    def _syntax_issues(tree: Tree, rel_path: str) -> List[ParseIssue]:
        """Collect ERROR and MISSING nodes; any of them means incomplete bindings."""
        found: List[ParseIssue] = []
        if not tree.root_node.has_error:
            return found
        stack = [tree.root_node]
        while stack and len(found) < MAX_ISSUES_PER_FILE:
            node = stack.pop()
            if node.type == 'ERROR':
                found.append(ParseIssue(rel_path, node.start_point[0] + 1, "syntax error"))
                continue
            if node.is_missing:
                found.append(ParseIssue(rel_path, node.start_point[0] + 1, f"missing {node.type}"))
                continue
            if node.has_error:
                stack.extend(reversed(node.children))
        if not found:
            found.append(ParseIssue(rel_path, 1, "syntax error"))
        return found

    def _build_package(self, unit: ModuleUnit, table, issues: Tuple[ParseIssue, ...]) -> Package:
        uses, selections = table
        source_file = SourceFile(
            path=unit.path,
            package=unit.package,
            source=unit.source,
            tree=unit.tree,
            info=TypeInfo(uses=MappingProxyType(uses), selections=MappingProxyType(selections)),
            declaration_roots=declaration_roots(unit.entities),
        )
        declarations = tuple(
            Declaration(symbol=e.symbol, file=source_file, node=e.node, definition=e.definition)
            for e in unit.entities
        )
        return Package(
            path=unit.package,
            directory=str(Path(unit.path).parent.as_posix()),
            files=(source_file,),
            declarations=declarations,
            imports=tuple(self._import_records(unit)),
            issues=issues,
        )

    def _import_records(self, unit: ModuleUnit) -> List[ImportRecord]:
        records: Dict[str, ImportRecord] = {}
        extractor = EntityExtractor(unit.package, unit.path)
        for imp in extractor.extract_imports(unit.tree):
            module = self.resolver.absolute_name(unit.package, unit.is_init, imp.module)
            if not module:
                continue
            if imp.name and self.resolver.is_loaded(f"{module}.{imp.name}"):
                module = f"{module}.{imp.name}"
            if module not in records:
                records[module] = ImportRecord(module=module, line=imp.line_number,
                                               resolved=self.resolver.is_loaded(module))
        return list(records.values())
