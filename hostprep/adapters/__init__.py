"""Adapters — bindings to the external tools provisioning drives.

Public re-exports for convenient access.
"""

from hostprep.adapters.base import Adapter, Receipt
from hostprep.adapters.mock import MockShellAdapter
from hostprep.adapters.shell.command import ShellCommandAdapter
from hostprep.adapters.shell.filesystem import FilesystemAdapter
from hostprep.adapters.vcs.git import GitAdapter

__all__ = [
    "Adapter",
    "FilesystemAdapter",
    "GitAdapter",
    "MockShellAdapter",
    "Receipt",
    "ShellCommandAdapter",
]
