"""Configuration management for callscope.

Loads environment variables (optionally from a project .env file) and
provides centralized config access.
"""
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from callscope.errors import ConfigError

__version__ = "0.3.0"

SCOPES = ("all", "project", "package")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Config:
    """Configuration loader with environment variable support."""

    def __init__(self, project_root: Optional[Path] = None):
        """Initialize config by loading .env file.

        Args:
            project_root: Directory holding the .env file (default: cwd)
        """
        env_path = Path(project_root or Path.cwd()) / ".env"
        load_dotenv(env_path)

        self._validate()

    def _validate(self):
        """Validate every setting up front so bad values fail before loading.

        Raises:
            ConfigError: If a depth is not a non-negative integer, or the
                         scope/log level is unknown
        """
        _ = self.up_depth, self.down_depth
        if self.scope not in SCOPES:
            raise ConfigError(
                f"CALLSCOPE_SCOPE must be one of {', '.join(SCOPES)}, got '{self.scope}'",
                context={'variable': 'CALLSCOPE_SCOPE'},
            )
        if self.log_level not in LOG_LEVELS:
            raise ConfigError(
                f"CALLSCOPE_LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got '{self.log_level}'",
                context={'variable': 'CALLSCOPE_LOG_LEVEL'},
            )

    @staticmethod
    def _depth(variable: str, default: int) -> int:
        raw = os.getenv(variable)
        if raw is None or raw.strip() == "":
            return default
        try:
            value = int(raw)
        except ValueError:
            raise ConfigError(f"{variable} must be an integer, got '{raw}'",
                              context={'variable': variable}) from None
        if value < 0:
            raise ConfigError(f"{variable} must not be negative, got {value}",
                              context={'variable': variable})
        return value

    @property
    def up_depth(self) -> int:
        """Default caller depth for ``tree`` (CALLSCOPE_UP_DEPTH, default 2)."""
        return self._depth("CALLSCOPE_UP_DEPTH", 2)

    @property
    def down_depth(self) -> int:
        """Default callee depth for ``tree`` (CALLSCOPE_DOWN_DEPTH, default 2)."""
        return self._depth("CALLSCOPE_DOWN_DEPTH", 2)

    @property
    def scope(self) -> str:
        """Default traversal scope.

        Returns:
            One of all, project, package (CALLSCOPE_SCOPE, default project)
        """
        return os.getenv("CALLSCOPE_SCOPE", "project").strip().lower()

    @property
    def exclude_dirs(self) -> list[str]:
        """Extra directory names skipped during discovery.

        Returns:
            Names from comma-separated CALLSCOPE_EXCLUDE_DIRS
        """
        raw = os.getenv("CALLSCOPE_EXCLUDE_DIRS", "")
        return [part.strip() for part in raw.split(",") if part.strip()]

    @property
    def log_level(self) -> str:
        return os.getenv("CALLSCOPE_LOG_LEVEL", "WARNING").strip().upper()


# Singleton instance
_config = None


def get_config(project_root: Optional[Path] = None) -> Config:
    """Get or create singleton Config instance.

    Returns:
        Config instance
    """
    global _config
    if _config is None:
        _config = Config(project_root)
    return _config


def reset_config():
    """Drop the cached instance so the next ``get_config`` re-reads the environment."""
    global _config
    _config = None
