"""Symbol index: turn a human query into one canonical declaration."""
import difflib
import logging
from typing import Dict, List

from callscope.analyzer.program import Declaration, Package, Program
from callscope.callgraph.symbols import SymbolKind, Symbol
from callscope.errors import AmbiguousSymbol, PackageNotFound, SymbolNotFound

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 5


def _package_matches(package: str, prefix: str) -> bool:
    """``prefix`` names ``package`` by its full path or a trailing part of it."""
    return package == prefix or package.endswith("." + prefix)


class SymbolIndex:
    """Lookup of declarations by qualified name.

    Accepted query forms, for ``Invoice.total`` declared in ``app.billing``::

        total
        Invoice.total
        billing.Invoice.total
        app.billing.Invoice.total
    """

    def __init__(self, program: Program):
        self.program = program
        self._by_qualified: Dict[str, List[Declaration]] = {}
        for declaration in program.declarations():
            sym = declaration.symbol
            if sym.kind == SymbolKind.MODULE:
                continue
            self._by_qualified.setdefault(sym.qualified_name, []).append(declaration)

    def lookup(self, query: str) -> List[Declaration]:
        """All declarations matching ``query``."""
        query = query.strip()
        matches = list(self._by_qualified.get(query, []))

        parts = query.split(".")
        for i in range(1, len(parts)):
            prefix, qualified = ".".join(parts[:i]), ".".join(parts[i:])
            for declaration in self._by_qualified.get(qualified, []):
                if _package_matches(declaration.symbol.package, prefix) and declaration not in matches:
                    matches.append(declaration)

        # A bare name also finds methods and nested functions of that name
        if not matches and len(parts) == 1:
            for qualified, declarations in self._by_qualified.items():
                if qualified.rsplit(".", 1)[-1] == query:
                    matches.extend(declarations)
        return matches

    def resolve(self, query: str) -> Symbol:
        """Resolve a query to exactly one symbol.

        Raises:
            SymbolNotFound: With close matches as suggestions
            AmbiguousSymbol: With every matching full name as a candidate
        """
        matches = self.lookup(query)
        if not matches:
            raise SymbolNotFound(query, self.suggest(query))
        if len(matches) > 1:
            candidates = sorted(d.symbol.full_name for d in matches)
            raise AmbiguousSymbol(query, candidates)
        logger.debug("Resolved %r to %r", query, matches[0].symbol)
        return matches[0].symbol

    def suggest(self, query: str) -> List[str]:
        names = set()
        for qualified, declarations in self._by_qualified.items():
            names.add(qualified)
            for declaration in declarations:
                names.add(declaration.symbol.display_name)
        return difflib.get_close_matches(query, sorted(names), n=MAX_SUGGESTIONS, cutoff=0.6)

    def resolve_package(self, query: str) -> Package:
        """Resolve a dotted module path, or a unique trailing part of one.

        Raises:
            PackageNotFound: If nothing or more than one package matches
        """
        pkg = self.program.package(query)
        if pkg is not None:
            return pkg
        matches = [p for p in self.program.packages if _package_matches(p.path, query)]
        if len(matches) == 1:
            return matches[0]
        paths = sorted(p.path for p in self.program.packages)
        if matches:
            raise PackageNotFound(query, sorted(p.path for p in matches))
        raise PackageNotFound(query, difflib.get_close_matches(query, paths, n=MAX_SUGGESTIONS, cutoff=0.5))
