"""
Filesystem adapter — file and directory operations with receipts.

User-owned paths are handled in-process. Root-owned files are written
through ``sudo tee`` on the shell adapter so privilege stays in one
place. Nothing here deletes user data: a conflicting directory is
renamed to a timestamped backup first.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta
from pathlib import Path

from hostprep.adapters.base import Adapter, Receipt
from hostprep.adapters.shell.command import ShellCommandAdapter

logger = logging.getLogger(__name__)


def next_backup_path(path: Path, now: float | None = None) -> Path:
    """Pick ``<path>.bak.<unix-seconds>`` for ``path``.

    The stamp is strictly greater than every existing backup stamp of
    the same path, so two backups taken within one second still get
    distinct, ordered names.
    """
    stamp = int(now if now is not None else time.time())
    prefix = f"{path.name}.bak."
    existing: list[int] = []
    if path.parent.is_dir():
        for sibling in path.parent.iterdir():
            suffix = sibling.name[len(prefix):]
            if sibling.name.startswith(prefix) and suffix.isdigit():
                existing.append(int(suffix))
    if existing:
        stamp = max(stamp, max(existing) + 1)
    return path.with_name(f"{prefix}{stamp}")


class FilesystemAdapter(Adapter):
    """Filesystem operations that return receipts and honour dry-run."""

    def __init__(self, shell: ShellCommandAdapter):
        self._shell = shell

    @property
    def name(self) -> str:
        return "filesystem"

    @property
    def dry_run(self) -> bool:
        return self._shell.dry_run

    def is_available(self) -> bool:
        return True

    def _dry(self, operation: str, message: str) -> Receipt:
        logger.info("[dry-run] %s", message)
        return Receipt.success(
            adapter=self.name, operation=operation, output=message, dry_run=True
        )

    # ── Queries ─────────────────────────────────────────────────

    def exists(self, path: Path) -> bool:
        return path.exists() or path.is_symlink()

    def read_text(self, path: Path) -> Receipt:
        try:
            content = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            return Receipt.failure(
                adapter=self.name, operation="read", error=f"Cannot read {path}: {e}"
            )
        return Receipt.success(adapter=self.name, operation="read", output=content)

    # ── User-owned paths ────────────────────────────────────────

    def backup_existing(self, path: Path, now: float | None = None) -> Receipt:
        """Rename ``path`` out of the way if it exists.

        ``metadata["backup"]`` holds the new location, or None when
        there was nothing to move.
        """
        if not self.exists(path):
            return Receipt.success(
                adapter=self.name, operation="backup", metadata={"backup": None}
            )

        dest = next_backup_path(path, now=now)
        if self.dry_run:
            receipt = self._dry("backup", f"would move {path} → {dest}")
            receipt.metadata["backup"] = str(dest)
            return receipt

        try:
            path.rename(dest)
        except OSError as e:
            return Receipt.failure(
                adapter=self.name,
                operation="backup",
                error=f"Cannot back up {path}: {e}",
            )
        logger.info("Backed up %s → %s", path, dest)
        return Receipt.success(
            adapter=self.name,
            operation="backup",
            output=f"Backed up {path} → {dest}",
            metadata={"backup": str(dest)},
        )

    def ensure_dir(self, path: Path) -> Receipt:
        if self.dry_run:
            return self._dry("mkdir", f"would create {path}")
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return Receipt.failure(
                adapter=self.name, operation="mkdir", error=f"Cannot create {path}: {e}"
            )
        return Receipt.success(adapter=self.name, operation="mkdir", output=str(path))

    def write_text(self, path: Path, content: str, mode: int | None = None) -> Receipt:
        if self.dry_run:
            return self._dry("write", f"would write {len(content)} bytes to {path}")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
            if mode is not None:
                path.chmod(mode)
        except OSError as e:
            return Receipt.failure(
                adapter=self.name, operation="write", error=f"Cannot write {path}: {e}"
            )
        return Receipt.success(
            adapter=self.name,
            operation="write",
            output=f"Written {len(content)} bytes to {path}",
            metadata={"path": str(path), "size": len(content)},
        )

    def append_line_once(self, path: Path, line: str) -> Receipt:
        """Append ``line`` unless the file already contains it verbatim."""
        current = ""
        if path.is_file():
            try:
                current = path.read_text(encoding="utf-8")
            except OSError as e:
                return Receipt.failure(
                    adapter=self.name, operation="append", error=f"Cannot read {path}: {e}"
                )
        if line in current.splitlines():
            return Receipt.success(
                adapter=self.name, operation="append", metadata={"changed": False}
            )
        if self.dry_run:
            receipt = self._dry("append", f"would append to {path}: {line}")
            receipt.metadata["changed"] = True
            return receipt

        prefix = "" if not current or current.endswith("\n") else "\n"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("a", encoding="utf-8") as f:
                f.write(f"{prefix}{line}\n")
        except OSError as e:
            return Receipt.failure(
                adapter=self.name, operation="append", error=f"Cannot write {path}: {e}"
            )
        return Receipt.success(
            adapter=self.name,
            operation="append",
            output=f"Appended to {path}",
            metadata={"changed": True},
        )

    def symlink(self, target: Path, link: Path) -> Receipt:
        if self.dry_run:
            return self._dry("symlink", f"would link {link} → {target}")
        try:
            link.symlink_to(target, target_is_directory=True)
        except OSError as e:
            return Receipt.failure(
                adapter=self.name, operation="symlink", error=f"Cannot link {link}: {e}"
            )
        return Receipt.success(
            adapter=self.name, operation="symlink", output=f"{link} → {target}"
        )

    def prune_older_than(
        self,
        directory: Path,
        pattern: str,
        days: int,
        now: datetime | None = None,
    ) -> Receipt:
        """Delete files matching ``pattern`` whose mtime is older than ``days``."""
        cutoff = (now or datetime.now()) - timedelta(days=days)
        removed: list[str] = []
        if not directory.is_dir():
            return Receipt.success(
                adapter=self.name, operation="prune", metadata={"removed": removed}
            )

        for candidate in sorted(directory.glob(pattern)):
            if not candidate.is_file():
                continue
            try:
                mtime = datetime.fromtimestamp(candidate.stat().st_mtime)
            except OSError:
                continue
            if mtime >= cutoff:
                continue
            removed.append(str(candidate))
            if self.dry_run:
                continue
            try:
                candidate.unlink()
            except OSError as e:
                logger.warning("Cannot remove %s: %s", candidate, e)
                removed.pop()

        return Receipt.success(
            adapter=self.name,
            operation="prune",
            output=f"Removed {len(removed)} file(s)",
            metadata={"removed": removed},
            dry_run=self.dry_run,
        )

    # ── Root-owned paths ────────────────────────────────────────

    def write_system_file(self, path: str, content: str, append: bool = False) -> Receipt:
        """Write a root-owned file via ``sudo tee`` (``-a`` to append)."""
        cmd = ["tee", "-a", path] if append else ["tee", path]
        return self._shell.run(cmd, sudo=True, input_text=content)
