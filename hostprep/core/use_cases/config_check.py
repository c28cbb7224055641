"""
Config check use case — validate hostprep.yml and report issues.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from hostprep.core.config.credentials import credential_candidates
from hostprep.core.config.loader import ConfigError, find_config_file, load_config
from hostprep.core.models.config import HostprepConfig


@dataclass
class ConfigCheckResult:
    """Result of configuration validation."""

    valid: bool = False
    config: HostprepConfig | None = None
    config_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "config_path": str(self.config_path) if self.config_path else None,
            "errors": self.errors,
            "warnings": self.warnings,
            "variant": self.config.variant if self.config else None,
            "dotfile_count": len(self.config.dotfiles) if self.config else 0,
        }


def check_config(config_path: Path | None = None, home: Path | None = None) -> ConfigCheckResult:
    """Validate configuration and report issues.

    A missing file is valid (defaults apply) but produces a warning.
    """
    result = ConfigCheckResult()
    home = home or Path.home()

    if config_path is None:
        config_path = find_config_file(home=home)
    result.config_path = config_path

    try:
        config = load_config(config_path)
    except ConfigError as e:
        result.errors.append(str(e))
        return result
    result.config = config

    if config_path is None:
        result.warnings.append("No hostprep.yml found, using built-in defaults.")

    # Two repos cloned into one directory back each other up forever
    dests = [d.dest.rstrip("/") for d in config.dotfiles]
    dupes = sorted({d for d in dests if dests.count(d) > 1})
    if dupes:
        result.errors.append(f"Duplicate dotfile destinations: {', '.join(dupes)}")

    candidates = credential_candidates(config.clamav.credentials_file, home)
    if not any(p.is_file() for p in candidates):
        result.warnings.append(
            "No ClamAV notification credentials found "
            f"({', '.join(str(p) for p in candidates)}); 'clamav scan' will fail."
        )

    if config.default_shell and config.default_shell not in ("fish", "bash", "zsh"):
        result.warnings.append(f"Unusual default shell: {config.default_shell}")

    result.valid = not result.errors
    return result
