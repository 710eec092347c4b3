"""Logging setup and terminal-safe output.

Detects terminal encoding and provides ASCII alternatives for the box
drawing and arrow characters used in call trees, so output never crashes a
terminal that cannot encode them.
"""
import locale
import logging
import sys

from rich.console import Console
from rich.logging import RichHandler

LOG_FORMAT = "%(name)s: %(message)s"

# Unicode to ASCII mapping for tree output on non-UTF-8 terminals
ICON_MAP = {
    # Tree guides
    '│': '|',
    '─': '-',
    '├': '+',
    '└': '`',
    '━': '=',
    '┃': '|',
    '┣': '+',
    '┗': '`',

    # Arrows
    '→': '->',
    '←': '<-',
    '↑': '^',
    '↓': 'v',
    '↻': '(cycle)',

    # Status
    '✓': '[OK]',
    '✗': '[FAIL]',
    '⚠': '[WARN]',
    '…': '...',
    '•': '*',
}


def detect_terminal_encoding() -> str:
    """Detect the terminal's encoding capability.

    Returns:
        str: Terminal encoding ('utf-8', 'cp1252', 'ascii', etc.)
    """
    if getattr(sys.stdout, 'encoding', None):
        return sys.stdout.encoding.lower()

    try:
        return locale.getpreferredencoding().lower()
    except (ValueError, LookupError):
        return 'ascii'


def is_utf8_capable() -> bool:
    return detect_terminal_encoding().replace('_', '-') in ('utf-8', 'utf8')


def sanitize_for_terminal(text: str, force: bool = False) -> str:
    """Replace box drawing and arrow characters if the terminal can't show them.

    Args:
        text: Text potentially containing Unicode tree characters
        force: Sanitize even on a UTF-8 terminal

    Returns:
        str: Text safe for the current terminal
    """
    if not force and is_utf8_capable():
        return text

    for unicode_char, ascii_replacement in ICON_MAP.items():
        text = text.replace(unicode_char, ascii_replacement)
    return text


def setup_logging(level: str | int = logging.WARNING, verbose: bool = False) -> None:
    """Route the package loggers through a rich handler on stderr.

    Args:
        level: Base log level name or number
        verbose: Force DEBUG regardless of ``level``
    """
    if verbose:
        level = logging.DEBUG
    handler = RichHandler(
        console=Console(stderr=True),
        show_time=False,
        show_path=False,
        markup=False,
    )
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=[handler], force=True)
