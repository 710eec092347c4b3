"""Package dependency graph using NetworkX."""
import sys
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

import networkx as nx

from callscope.analyzer.program import Package, Program

STDLIB_MODULES = frozenset(getattr(sys, 'stdlib_module_names', ()))


@dataclass(frozen=True)
class Dependency:
    module: str
    line: int
    kind: str  # project, stdlib, external

    def to_dict(self) -> Dict[str, Any]:
        return {'module': self.module, 'line': self.line, 'kind': self.kind}


@dataclass(frozen=True)
class PackageDeps:
    package: str
    imports: Tuple[Dependency, ...]
    imported_by: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'package': self.package,
            'imports': [d.to_dict() for d in self.imports],
            'imported_by': list(self.imported_by),
        }


class DependencyGraphBuilder:
    """Build a directed import graph over the loaded packages.

    An edge (A, B) means "module A imports module B". Modules that are not
    part of the program become nodes with ``loaded=False``.
    """

    def __init__(self, program: Program):
        """Initialize graph builder.

        Args:
            program: Loaded program whose import records form the edges
        """
        self.program = program
        self.graph = nx.DiGraph()

    def build_graph(self) -> nx.DiGraph:
        """Build the import graph for every loaded package.

        Returns:
            NetworkX DiGraph with package dependencies
        """
        for pkg in self.program.packages:
            self.graph.add_node(pkg.path, loaded=True, directory=pkg.directory)

        for pkg in self.program.packages:
            for record in pkg.imports:
                if record.module == pkg.path:
                    continue
                if record.module not in self.graph:
                    self.graph.add_node(record.module, loaded=False)
                self.graph.add_edge(pkg.path, record.module, line=record.line)
        return self.graph

    @staticmethod
    def classify(module: str, loaded: bool) -> str:
        if loaded:
            return 'project'
        if module.split('.')[0] in STDLIB_MODULES:
            return 'stdlib'
        return 'external'

    def dependencies(self, package: Package, exclude_stdlib: bool = False) -> PackageDeps:
        """What ``package`` imports and which loaded packages import it."""
        if not self.graph:
            self.build_graph()

        imports: List[Dependency] = []
        for _, target, data in self.graph.out_edges(package.path, data=True):
            kind = self.classify(target, self.graph.nodes[target].get('loaded', False))
            if exclude_stdlib and kind == 'stdlib':
                continue
            imports.append(Dependency(module=target, line=data.get('line', 0), kind=kind))
        imports.sort(key=lambda d: (d.kind != 'project', d.module))

        imported_by = sorted(source for source, _ in self.graph.in_edges(package.path))
        return PackageDeps(package=package.path, imports=tuple(imports), imported_by=tuple(imported_by))

    def import_cycles(self) -> List[List[str]]:
        """Import cycles among loaded packages."""
        if not self.graph:
            self.build_graph()
        loaded = self.graph.subgraph(n for n, d in self.graph.nodes(data=True) if d.get('loaded'))
        return [sorted(cycle) for cycle in nx.simple_cycles(loaded)]
