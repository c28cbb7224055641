"""
Debian sources upgrade — move apt sources to the next release.

    deb http://deb.debian.org/debian bookworm main   →   ... trixie main

The original file is kept next to it as ``sources.list.bak``.
"""

from __future__ import annotations

import logging
from pathlib import Path

from hostprep.adapters.shell.command import ShellCommandAdapter
from hostprep.adapters.shell.filesystem import FilesystemAdapter
from hostprep.core.models.step import StepResult

logger = logging.getLogger(__name__)

SOURCES_LIST = Path("/etc/apt/sources.list")
DEFAULT_OLD = "bookworm"
DEFAULT_NEW = "trixie"


def rewrite_suite(text: str, old: str = DEFAULT_OLD, new: str = DEFAULT_NEW) -> str:
    """Replace every occurrence of ``old`` (``-updates``/``-security`` included)."""
    return text.replace(old, new)


def upgrade_sources(
    shell: ShellCommandAdapter,
    path: Path = SOURCES_LIST,
    old: str = DEFAULT_OLD,
    new: str = DEFAULT_NEW,
) -> StepResult:
    """Rewrite ``path`` in place after backing it up to ``<path>.bak``.

    Must run as root; anything else is a fatal precondition failure.
    """
    if not shell.is_root():
        return StepResult.fatal_error(
            "upgrade-sources", error="This must be run as root (sudo hostprep sources upgrade)"
        )

    fs = FilesystemAdapter(shell)
    current = fs.read_text(path)
    if current.failed:
        return StepResult.fatal_error("upgrade-sources", error=current.error or "")

    text = current.output
    count = text.count(old)
    if count == 0:
        return StepResult.skip("upgrade-sources", f"No '{old}' entries in {path}")

    backup = path.with_name(path.name + ".bak")
    saved = fs.write_text(backup, text)
    if saved.failed:
        return StepResult.failure("upgrade-sources", error=saved.error or "")

    written = fs.write_text(path, rewrite_suite(text, old, new))
    if written.failed:
        return StepResult.failure("upgrade-sources", error=written.error or "")

    logger.info("Replaced %d occurrence(s) of %s with %s in %s", count, old, new, path)
    return StepResult.success(
        "upgrade-sources",
        output=f"{path}: {old} → {new} ({count} occurrence(s)); backup at {backup}",
        metadata={"replaced": count, "backup": str(backup)},
    )
