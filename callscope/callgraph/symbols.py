"""Symbol handles and canonical symbol identity.

A Symbol is a handle on one declared entity. Handles for the same entity may
be produced by independent lookups (or by two separate loads of the same
project), so identity is decided by ``same_symbol`` rather than ``is``.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


class SymbolKind(str, Enum):
    """Kinds of declared entities the engine knows about."""
    FUNC = "func"
    METHOD = "method"
    TYPE = "type"
    INTERFACE = "interface"
    VAR = "var"
    CONST = "const"
    FIELD = "field"
    MODULE = "module"
    BUILTIN = "builtin"
    EXTERNAL = "external"


CALLABLE_KINDS = frozenset({SymbolKind.FUNC, SymbolKind.METHOD})
CLASS_KINDS = frozenset({SymbolKind.TYPE, SymbolKind.INTERFACE})
VALUE_KINDS = frozenset({SymbolKind.VAR, SymbolKind.CONST, SymbolKind.FIELD})


@dataclass(frozen=True)
class Position:
    """Source position of a declaring identifier (1-based line, 0-based column)."""
    file: str
    line: int
    column: int

    def __str__(self) -> str:
        return f"{self.file}:{self.line}"


@dataclass(frozen=True, eq=False)
class Symbol:
    """Handle on a declared entity.

    ``eq=False`` keeps handle equality as identity; use ``same_symbol`` for
    canonical comparison.
    """
    kind: SymbolKind
    name: str
    package: Optional[str]
    position: Optional[Position]
    qualified_name: str = ""
    receiver: Optional[str] = None
    abstract: bool = False

    @property
    def short_package(self) -> str:
        """Last component of the dotted package path ("app.billing" -> "billing")."""
        if not self.package:
            return ""
        return self.package.rsplit(".", 1)[-1]

    @property
    def display_name(self) -> str:
        """Qualified display name like ``billing.Invoice.total``."""
        qualified = self.qualified_name or self.name
        if self.kind == SymbolKind.EXTERNAL:
            return f"{self.package}.{qualified}"
        if not self.package:
            return qualified
        return f"{self.short_package}.{qualified}"

    @property
    def full_name(self) -> str:
        """Qualified name prefixed with the full dotted package path."""
        qualified = self.qualified_name or self.name
        if not self.package:
            return qualified
        return f"{self.package}.{qualified}"

    @property
    def is_callable(self) -> bool:
        return self.kind in CALLABLE_KINDS

    def __repr__(self) -> str:
        return f"Symbol({self.kind.value} {self.full_name} @ {self.position})"


def symbol_key(sym: Symbol) -> Tuple[Optional[str], str, Optional[Position]]:
    """Return the canonical identity tuple (package, name, position)."""
    return (sym.package, sym.name, sym.position)


def same_symbol(a: Optional[Symbol], b: Optional[Symbol]) -> bool:
    """Check whether two handles denote the same declared entity.

    Handles match when they are the identical object, or when they agree on
    declaring package, name and declaration position. Missing package
    information never matches.

    Args:
        a: First handle (None never matches)
        b: Second handle (None never matches)

    Returns:
        True if both handles denote the same entity
    """
    if a is None or b is None:
        return False
    if a is b:
        return True
    if not a.package or not b.package:
        return False
    return (
        a.package == b.package
        and a.name == b.name
        and a.position == b.position
    )


def visit_key(sym: Symbol) -> Tuple[Optional[str], str]:
    """Recursion-guard key for tree traversal.

    Includes the receiver type and any enclosing function, so same-named
    methods on different classes of one package never collide.
    """
    return (sym.package, sym.qualified_name or sym.name)
