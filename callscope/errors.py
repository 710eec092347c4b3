"""Structured errors with machine-readable codes and suggestions."""
from typing import Any, Dict, List, Optional


class CallscopeError(Exception):
    """Base error: a code, a message, optional suggestions and context.

    Args:
        message: Human readable description
        suggestions: Close matches or hints the user may try next
        context: Extra key/value details included in JSON output
    """

    code = "error"

    def __init__(self, message: str, suggestions: Optional[List[str]] = None,
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.suggestions = list(suggestions or [])
        self.context = dict(context or {})

    def __str__(self) -> str:
        if self.suggestions:
            return f"{self.message} (did you mean: {', '.join(self.suggestions)}?)"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {'code': self.code, 'message': self.message}
        if self.suggestions:
            body['suggestions'] = self.suggestions
        if self.context:
            body['context'] = self.context
        return {'error': body}


class SymbolNotFound(CallscopeError):
    code = "symbol_not_found"

    def __init__(self, query: str, suggestions: Optional[List[str]] = None):
        super().__init__(f"Cannot resolve symbol '{query}'", suggestions, {'symbol': query})


class AmbiguousSymbol(CallscopeError):
    code = "ambiguous_symbol"

    def __init__(self, query: str, candidates: List[str]):
        super().__init__(f"Ambiguous symbol '{query}' matches multiple definitions",
                         candidates, {'symbol': query, 'matches': len(candidates)})


class InvalidSymbolKind(CallscopeError):
    code = "invalid_symbol_kind"

    def __init__(self, name: str, kind: str):
        super().__init__(f"'{name}' is a {kind}, not a function or method",
                         context={'symbol': name, 'kind': kind})


class NoFunctionBody(CallscopeError):
    code = "no_function_body"

    def __init__(self, name: str, reason: str = "declaration has no body"):
        super().__init__(f"'{name}' has no body to analyze: {reason}",
                         context={'symbol': name})


class PackageNotFound(CallscopeError):
    code = "package_not_found"

    def __init__(self, package: str, suggestions: Optional[List[str]] = None):
        super().__init__(f"Package '{package}' not found", suggestions, {'package': package})


class LoadError(CallscopeError):
    code = "load_error"


class TraversalCancelled(CallscopeError):
    code = "cancelled"

    def __init__(self, operation: str = "traversal"):
        super().__init__(f"Operation cancelled: {operation}", context={'operation': operation})


class ConfigError(CallscopeError):
    code = "config_error"
