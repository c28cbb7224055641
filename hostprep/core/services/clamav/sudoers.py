"""
Passwordless sudo for scheduled scans.

Cron has no terminal to answer a sudo prompt, so the scan and update
binaries get a NOPASSWD drop-in. The file is validated with
``visudo -cf`` before it is installed; a broken sudoers file locks the
user out of sudo entirely.
"""

from __future__ import annotations

import getpass
import logging
import tempfile
from datetime import datetime
from pathlib import Path

from hostprep.core.engine.context import StepContext
from hostprep.core.models.step import StepResult

logger = logging.getLogger(__name__)

SUDOERS_DIR = "/etc/sudoers.d"


def sudoers_path(user: str) -> str:
    # sudo skips sudoers.d files whose names contain "." or end in "~"
    safe = user.replace(".", "_").replace("~", "_")
    return f"{SUDOERS_DIR}/clamav-{safe}"


def render_sudoers(
    user: str, clamscan: str, freshclam: str, now: datetime | None = None
) -> str:
    stamp = (now or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")
    return (
        f"# ClamAV passwordless sudo for user: {user}\n"
        f"# Created by hostprep on {stamp}\n"
        "# Allows automated virus scanning via cron\n"
        "\n"
        f"{user} ALL=(root) NOPASSWD: {clamscan}\n"
        f"{user} ALL=(root) NOPASSWD: {freshclam}\n"
    )


def install_sudoers(ctx: StepContext, user: str | None = None) -> StepResult:
    """Validate and install the drop-in, then check ``sudo -n`` works."""
    user = user or getpass.getuser()
    clamscan = ctx.shell.which("clamscan") or "/usr/bin/clamscan"
    freshclam = ctx.shell.which("freshclam") or "/usr/bin/freshclam"
    content = render_sudoers(user, clamscan, freshclam)
    target = sudoers_path(user)

    if ctx.dry_run:
        logger.info("[dry-run] would install %s:\n%s", target, content)
        return StepResult.success("install-sudoers", output=content, metadata={"path": target})

    with tempfile.TemporaryDirectory(prefix="hostprep-") as tmp:
        staged = Path(tmp) / "clamav"
        staged.write_text(content, encoding="utf-8")
        staged.chmod(0o644)

        check = ctx.shell.run(["visudo", "-cf", str(staged)], sudo=True)
        if check.failed:
            return StepResult.failure(
                "install-sudoers", error=f"Sudoers syntax check failed: {check.error}"
            )

        receipt = ctx.shell.run(
            ["install", "-m", "0440", "-o", "root", "-g", "root", str(staged), target],
            sudo=True,
        )
        if receipt.failed:
            return StepResult.failure(
                "install-sudoers", error=f"Cannot install {target}: {receipt.error}"
            )

    probe = ctx.shell.run(["sudo", "-n", "clamscan", "--version"], timeout=30)
    if probe.failed:
        logger.warning("sudo -n clamscan still asks for a password")

    return StepResult.success(
        "install-sudoers",
        output=f"Installed {target}",
        metadata={"path": target, "verified": probe.ok},
    )
