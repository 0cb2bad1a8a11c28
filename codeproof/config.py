"""
Recording configuration.

Settings are read from `.codeproof/config.toml`, or from a `[tool.codeproof]`
table in the workspace `pyproject.toml`, layered over the defaults below.
Values are validated here so the engine can treat them as trusted.
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_SNAPSHOT_INTERVAL = 30.0  # seconds
DEFAULT_PASTE_THRESHOLD = 50  # characters
DELETE_CHAR_THRESHOLD = 30  # characters, not configurable
DEFAULT_STORAGE_LOCATION = ".codeproof"
CONFIG_FILENAME = "config.toml"

DEFAULT_EXCLUDE_PATTERNS: tuple[str, ...] = (
    "**/node_modules/**",
    "**/.git/**",
    "**/dist/**",
    ".codeproof/**",
)

DEFAULT_INCLUDE_EXTENSIONS: tuple[str, ...] = (
    ".py", ".js", ".jsx", ".ts", ".tsx", ".java", ".c", ".h", ".cpp", ".hpp",
    ".cs", ".go", ".rs", ".rb", ".php", ".swift", ".kt", ".scala", ".html",
    ".css", ".scss", ".sql", ".sh", ".md", ".txt", ".json", ".toml", ".yml", ".yaml",
)


class ConfigError(ValueError):
    """A configuration value is missing or malformed."""


@dataclass(frozen=True)
class CodeProofConfig:
    """Typed view of all recording settings."""

    snapshot_interval: float = DEFAULT_SNAPSHOT_INTERVAL
    paste_threshold: int = DEFAULT_PASTE_THRESHOLD
    exclude_patterns: tuple[str, ...] = DEFAULT_EXCLUDE_PATTERNS
    auto_start: bool = True
    storage_location: str = DEFAULT_STORAGE_LOCATION
    include_extensions: tuple[str, ...] = DEFAULT_INCLUDE_EXTENSIONS

    def to_dict(self) -> dict[str, Any]:
        return {
            "snapshot_interval": self.snapshot_interval,
            "paste_threshold": self.paste_threshold,
            "exclude_patterns": list(self.exclude_patterns),
            "auto_start": self.auto_start,
            "storage_location": self.storage_location,
            "include_extensions": list(self.include_extensions),
        }

    @property
    def effective_exclude_patterns(self) -> tuple[str, ...]:
        """Configured excludes plus the storage directory, which is never recorded."""
        storage = Path(self.storage_location).as_posix().strip("/") + "/**"
        if storage in self.exclude_patterns:
            return self.exclude_patterns
        return (*self.exclude_patterns, storage)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CodeProofConfig:
        """Build a config from raw TOML data, validating every known key."""
        known = {f.name for f in fields(cls)}
        for key in data:
            if key not in known:
                logger.warning("Ignoring unknown config key: %s", key)

        config = cls()
        updates: dict[str, Any] = {}

        if "snapshot_interval" in data:
            value = data["snapshot_interval"]
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                raise ConfigError("snapshot_interval must be a positive number of seconds")
            updates["snapshot_interval"] = float(value)

        if "paste_threshold" in data:
            value = data["paste_threshold"]
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ConfigError("paste_threshold must be a positive integer")
            updates["paste_threshold"] = value

        if "exclude_patterns" in data:
            updates["exclude_patterns"] = _string_tuple(data["exclude_patterns"], "exclude_patterns")

        if "auto_start" in data:
            if not isinstance(data["auto_start"], bool):
                raise ConfigError("auto_start must be true or false")
            updates["auto_start"] = data["auto_start"]

        if "storage_location" in data:
            value = data["storage_location"]
            if not isinstance(value, str) or not value.strip():
                raise ConfigError("storage_location must be a non-empty string")
            if Path(value).is_absolute():
                raise ConfigError("storage_location must be relative to the workspace")
            updates["storage_location"] = value.strip()

        if "include_extensions" in data:
            exts = _string_tuple(data["include_extensions"], "include_extensions")
            updates["include_extensions"] = tuple(
                (e if e.startswith(".") else f".{e}").lower() for e in exts
            )

        return replace(config, **updates)


def _string_tuple(value: Any, key: str) -> tuple[str, ...]:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"{key} must be a list of strings")
    return tuple(value)


def get_config_path(workspace: Path) -> Path:
    """Path of the workspace config file (may not exist)."""
    return workspace / DEFAULT_STORAGE_LOCATION / CONFIG_FILENAME


def get_storage_dir(workspace: Path, config: CodeProofConfig | None = None) -> Path:
    """Directory holding the snapshot, session, replay and flag logs."""
    location = config.storage_location if config else DEFAULT_STORAGE_LOCATION
    return workspace / location


def load_config(workspace: Path) -> CodeProofConfig:
    """
    Load configuration for a workspace.

    Lookup order:
    1. .codeproof/config.toml
    2. [tool.codeproof] in pyproject.toml
    3. defaults

    Raises:
        ConfigError: if the file cannot be parsed or a value is invalid
    """
    config_path = get_config_path(workspace)
    if config_path.exists():
        return CodeProofConfig.from_dict(_read_toml(config_path))

    pyproject = workspace / "pyproject.toml"
    if pyproject.exists():
        table = _read_toml(pyproject).get("tool", {}).get("codeproof")
        if isinstance(table, dict):
            return CodeProofConfig.from_dict(table)

    return CodeProofConfig()


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"{path}: {e}") from e
