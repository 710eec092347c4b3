"""Scope filter: which packages a traversal may enter."""
from enum import Enum
from typing import Optional, Tuple

from callscope.analyzer.program import Package, Program
from callscope.callgraph.symbols import Symbol


class Scope(str, Enum):
    ALL = "all"          # everything, including external (not loaded) symbols as leaves
    PROJECT = "project"  # loaded project packages only
    PACKAGE = "package"  # the start symbol's package only


class ScopeFilter:
    """Membership predicate applied uniformly to callers and callees."""

    def __init__(self, program: Program, scope: Scope | str = Scope.PROJECT,
                 start_package: Optional[str] = None):
        self.program = program
        self.scope = Scope(scope)
        self.start_package = start_package

    def in_scope(self, package_path: Optional[str]) -> bool:
        """Check whether a package may contribute nodes to a traversal.

        Args:
            package_path: Dotted module path; None (builtins) is never in scope

        Returns:
            True if nodes declared in that package are kept
        """
        if not package_path:
            return False
        if self.scope == Scope.PACKAGE:
            return package_path == self.start_package
        pkg = self.program.package(package_path)
        if pkg is not None:
            return pkg.is_project or self.scope == Scope.ALL
        return self.scope == Scope.ALL

    def admits(self, sym: Symbol) -> bool:
        return self.in_scope(sym.package)

    def packages(self) -> Tuple[Package, ...]:
        """Loaded packages whose call sites are scanned for callers."""
        return tuple(p for p in self.program.packages if self.in_scope(p.path))
