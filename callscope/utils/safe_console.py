"""Terminal-safe Console wrapper for the Rich library.

Wraps Rich's Console so trees and tables degrade to ASCII on terminals that
cannot encode box drawing characters.
"""
from typing import Any

from rich.console import Console

from .logger import is_utf8_capable, sanitize_for_terminal


class SafeConsole(Console):
    """Console that sanitizes Unicode output on non-UTF-8 terminals.

    Rich renderables such as Tree choose their guide characters from the
    console's encoding, so only plain strings need rewriting here.
    """

    def __init__(self, *args, **kwargs):
        """Initialize SafeConsole with UTF-8 capability detection.

        All arguments are passed through to Rich's Console.
        """
        self._needs_sanitization = not is_utf8_capable()

        if self._needs_sanitization:
            kwargs.setdefault('legacy_windows', True)
            kwargs.setdefault('safe_box', True)

        super().__init__(*args, **kwargs)

    @property
    def ascii_only(self) -> bool:
        return self._needs_sanitization

    def print(self, *objects: Any, **kwargs) -> None:
        """Print with automatic Unicode sanitization.

        Args:
            *objects: Objects to print (same as Rich Console.print)
            **kwargs: Keyword arguments (same as Rich Console.print)
        """
        if self._needs_sanitization:
            objects = tuple(sanitize_for_terminal(o) if isinstance(o, str) else o for o in objects)
        super().print(*objects, **kwargs)
