"""
Configuration loader — reads hostprep.yml into a HostprepConfig.

The file is optional: with no file every default applies. When one is
found it is parsed with ``yaml.safe_load`` and validated against the
Pydantic schema.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from hostprep.core.models.config import HostprepConfig

logger = logging.getLogger(__name__)

# Default config filename
CONFIG_FILE = "hostprep.yml"


class ConfigError(Exception):
    """Raised when configuration is invalid or unreadable."""


def user_config_path(home: Path | None = None) -> Path:
    """Per-user config location (``~/.config/hostprep/hostprep.yml``)."""
    return (home or Path.home()) / ".config" / "hostprep" / CONFIG_FILE


def find_config_file(start_dir: Path | None = None, home: Path | None = None) -> Path | None:
    """Search for hostprep.yml upward from ``start_dir``, then in the user dir.

    Args:
        start_dir: Directory to start searching from (default: cwd).
        home: Home directory used for the per-user fallback.

    Returns:
        Path to the config file, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    fallback = user_config_path(home)
    if fallback.is_file():
        return fallback
    return None


def load_config(path: Path | None = None) -> HostprepConfig:
    """Load and validate configuration.

    Args:
        path: Explicit config path. If None, searches; if nothing is
            found the defaults are returned.

    Raises:
        ConfigError: If an explicit file is missing, or any file is invalid.
    """
    explicit = path is not None
    if path is None:
        path = find_config_file()

    if path is None:
        logger.debug("No %s found, using defaults", CONFIG_FILE)
        return HostprepConfig()

    if not path.is_file():
        if explicit:
            raise ConfigError(f"Config file not found: {path}")
        return HostprepConfig()

    logger.debug("Loading config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        config = HostprepConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e

    logger.info("Loaded config from %s (variant=%s)", path, config.variant)
    return config
