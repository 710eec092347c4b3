"""Tree-sitter parser for annotated Python sources."""
import logging
from pathlib import Path
from typing import Optional
from tree_sitter import Language, Parser, Tree
import tree_sitter_python as tspython

logger = logging.getLogger(__name__)


class LanguageParser:
    """Python parser using the tree-sitter v0.22+ API."""

    SUPPORTED_LANGUAGES = {
        '.py': 'python',
        '.pyi': 'python',
    }

    def __init__(self, language: str = 'python'):
        """Initialize parser for the given language.

        Args:
            language: Only 'python' is supported

        Raises:
            ValueError: If language is not supported
        """
        self.language = language
        self.parser = self._create_parser()

    def _create_parser(self) -> Parser:
        if self.language != 'python':
            raise ValueError(f"Unsupported language: {self.language}")
        # v0.25+ API: Pass language to Parser constructor
        return Parser(Language(tspython.language()))

    def parse_source(self, source_code: bytes) -> Tree:
        """Parse in-memory source bytes."""
        return self.parser.parse(source_code)

    def parse_file(self, file_path: str | Path) -> Optional[Tree]:
        """Parse file and return tree-sitter Tree.

        Args:
            file_path: Path to source file to parse

        Returns:
            Parsed Tree object, or None if the file could not be read
        """
        file_path = Path(file_path)

        if not file_path.exists():
            return None

        try:
            source_code = file_path.read_bytes()
        except (IOError, OSError) as e:
            logger.warning("Cannot read %s: %s", file_path, e)
            return None
        return self.parser.parse(source_code)

    @classmethod
    def from_file_extension(cls, file_path: str | Path) -> Optional['LanguageParser']:
        """Create parser based on file extension.

        Returns:
            LanguageParser instance, or None if extension not supported
        """
        language = cls.SUPPORTED_LANGUAGES.get(Path(file_path).suffix.lower())
        if language:
            return cls(language)
        return None
