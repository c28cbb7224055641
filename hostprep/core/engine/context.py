"""
Step context — everything a step action is allowed to see.

Built once per invocation and passed explicitly to every action. The
only process-level inputs it reads are the home directory, the passwd
login shell and the effective uid (through the shell adapter).
"""

from __future__ import annotations

import os
import pwd
from dataclasses import dataclass, field
from pathlib import Path

from hostprep.adapters.shell.command import ShellCommandAdapter
from hostprep.adapters.shell.filesystem import FilesystemAdapter
from hostprep.adapters.vcs.git import GitAdapter
from hostprep.core.models.config import HostprepConfig
from hostprep.core.models.distro import DistroInfo, DistroProfile


def _login_shell() -> str:
    try:
        return pwd.getpwuid(os.getuid()).pw_shell
    except KeyError:
        return ""


@dataclass
class StepContext:
    """Configuration and adapters handed to every step action."""

    config: HostprepConfig
    shell: ShellCommandAdapter
    home: Path = field(default_factory=Path.home)
    distro: DistroInfo | None = None
    profile: DistroProfile | None = None
    login_shell: str = field(default_factory=_login_shell)
    fs: FilesystemAdapter = field(init=False)
    git: GitAdapter = field(init=False)

    def __post_init__(self) -> None:
        self.fs = FilesystemAdapter(self.shell)
        self.git = GitAdapter(self.shell, self.fs)

    @property
    def dry_run(self) -> bool:
        return self.shell.dry_run

    def expand(self, path: str) -> Path:
        """Resolve ``~`` against the context's home, not the process's."""
        if path == "~":
            return self.home
        if path.startswith("~/"):
            return self.home / path[2:]
        return Path(path)
