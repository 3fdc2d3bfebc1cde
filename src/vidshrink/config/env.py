"""Typed access to VIDSHRINK_* environment variables.

EnvReader takes an optional mapping so tests can supply an environment
without touching os.environ.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

logger = logging.getLogger(__name__)

_TRUE_VALUES = frozenset({"true", "1", "yes", "on"})


class EnvReader:
    """Read environment variables with type conversion.

    Unset variables return the given default. Set but unparseable values
    log a warning and also return the default.

    Example:
        reader = EnvReader({"VIDSHRINK_MAX_CONCURRENCY": "2"})
        reader.get_int("VIDSHRINK_MAX_CONCURRENCY")  # 2
    """

    def __init__(self, env: Mapping[str, str] | None = None) -> None:
        self._env: Mapping[str, str] = env if env is not None else os.environ

    def get_str(self, var: str, default: str | None = None) -> str | None:
        value = self._env.get(var)
        if value is None or value == "":
            return default
        return value

    def get_int(self, var: str, default: int | None = None) -> int | None:
        value = self.get_str(var)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            logger.warning("Invalid integer value for %s: %s", var, value)
            return default

    def get_float(self, var: str, default: float | None = None) -> float | None:
        value = self.get_str(var)
        if value is None:
            return default
        try:
            return float(value)
        except ValueError:
            logger.warning("Invalid float value for %s: %s", var, value)
            return default

    def get_bool(self, var: str, default: bool | None = None) -> bool | None:
        """Get a boolean; "true", "1", "yes" and "on" are true, anything else false."""
        value = self.get_str(var)
        if value is None:
            return default
        return value.strip().lower() in _TRUE_VALUES

    def get_path(self, var: str, default: Path | None = None) -> Path | None:
        """Get a path with tilde expansion. The path need not exist."""
        value = self.get_str(var)
        if value is None:
            return default
        return Path(value).expanduser()

    def get_path_list(
        self, var: str, separator: str = os.pathsep
    ) -> list[Path] | None:
        """Get a separator-delimited list of paths.

        Returns:
            List of expanded paths with empty entries dropped, or None if the
            variable is unset.
        """
        value = self.get_str(var)
        if value is None:
            return None
        return [
            Path(part.strip()).expanduser()
            for part in value.split(separator)
            if part.strip()
        ]
