"""
Git adapter — clone repositories through ``git`` or the GitHub CLI.

Clones are non-destructive: a conflicting destination is either left
alone (``skip``) or renamed to a timestamped backup (``backup``) before
the clone runs. Nothing is ever removed.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Literal

from hostprep.adapters.base import Adapter, Receipt
from hostprep.adapters.shell.command import ShellCommandAdapter
from hostprep.adapters.shell.filesystem import FilesystemAdapter

logger = logging.getLogger(__name__)


class GitAdapter(Adapter):
    """Clone operations on top of the shell and filesystem adapters."""

    def __init__(self, shell: ShellCommandAdapter, fs: FilesystemAdapter):
        self._shell = shell
        self._fs = fs

    @property
    def name(self) -> str:
        return "git"

    def is_available(self) -> bool:
        return self._shell.has("git")

    def gh_available(self) -> bool:
        return self._shell.has("gh")

    def gh_authenticated(self) -> bool:
        return self._shell.run(["gh", "auth", "status"], timeout=30).ok

    def gh_login(self) -> Receipt:
        """Interactive ``gh auth login``."""
        return self._shell.run(["gh", "auth", "login"], interactive=True)

    def clone(
        self,
        repo: str,
        dest: Path,
        method: Literal["gh", "git"] = "gh",
        on_conflict: Literal["backup", "skip"] = "backup",
    ) -> Receipt:
        """Clone ``repo`` into ``dest``.

        ``metadata`` carries ``skipped`` (destination kept) and
        ``backup`` (where the previous destination went, if anywhere).
        """
        operation = f"clone {repo}"
        backup: str | None = None

        if self._fs.exists(dest):
            if on_conflict == "skip":
                logger.info("%s already exists, skipping clone of %s", dest, repo)
                return Receipt.success(
                    adapter=self.name,
                    operation=operation,
                    output=f"{dest} already exists",
                    metadata={"skipped": True, "backup": None},
                )
            moved = self._fs.backup_existing(dest)
            if moved.failed:
                return Receipt.failure(
                    adapter=self.name,
                    operation=operation,
                    error=moved.error or f"Cannot back up {dest}",
                )
            backup = moved.metadata.get("backup")

        parent = self._fs.ensure_dir(dest.parent)
        if parent.failed:
            return Receipt.failure(
                adapter=self.name, operation=operation, error=parent.error or ""
            )

        if method == "gh":
            cmd = ["gh", "repo", "clone", repo, str(dest)]
        else:
            cmd = ["git", "clone", repo, str(dest)]

        result = self._shell.run(cmd)
        if result.failed:
            return Receipt.failure(
                adapter=self.name,
                operation=operation,
                error=f"Failed to clone {repo}: {result.error}",
                metadata={"skipped": False, "backup": backup},
            )

        return Receipt.success(
            adapter=self.name,
            operation=operation,
            output=f"Cloned {repo} into {dest}",
            dry_run=result.dry_run,
            metadata={"skipped": False, "backup": backup},
        )
